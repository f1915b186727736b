# teamchat/client/sync.py
import asyncio
import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone, tzinfo
from functools import partial
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence
import logging
import time
import uuid

from pydantic import ValidationError

from teamchat.client.cache import CONVERSATIONS_KEY, USERS_KEY, QueryCache, QueryKey, messages_key
from teamchat.client.http import ChatApiClient, ChatApiError
from teamchat.client.notifier import LoggingNotifier, Notifier
from teamchat.client.recorder import MICROPHONE_ERROR, RECORDING_ERROR, AudioBlob, AudioInput, VoiceRecorder
from teamchat.client.typing import TypingSignaler
from teamchat.config import settings
from teamchat.schemas.conversation import ConversationResponse
from teamchat.schemas.message import STICKER_TYPE, VOICE_TYPE, AttachmentSchema, DeliveryStatus, MessageResponse
from teamchat.schemas.typing import TypingUser
from teamchat.schemas.user import UserSummary
from teamchat.views.conversations import filter_conversations, total_unread
from teamchat.views.dates import TimelineEntry, group_messages_by_date
from teamchat.views.media import MediaCollection, extract_media, search_messages
from teamchat.views.mentions import MentionQuery, active_mention, extract_mentions, insert_mention, mention_candidates
from teamchat.views.rendering import render_timeline, typing_indicator

logger = logging.getLogger(__name__)

VOICE_MESSAGE_CONTENT = "🎤 Voice message"
GROUP_REQUIREMENTS_ERROR = "Please enter a group name and select at least 2 members"


@dataclass(frozen=True)
class Sticker:
    id: str
    emoji: str
    label: str


STICKERS = [
    Sticker("thumbsup", "👍", "Thumbs Up"),
    Sticker("heart", "❤️", "Heart"),
    Sticker("celebrate", "🎉", "Celebrate"),
    Sticker("fire", "🔥", "Fire"),
    Sticker("clap", "👏", "Clap"),
    Sticker("rocket", "🚀", "Rocket"),
    Sticker("star", "⭐", "Star"),
    Sticker("check", "✅", "Check"),
    Sticker("thinking", "🤔", "Thinking"),
    Sticker("laugh", "😂", "Laugh"),
    Sticker("cool", "😎", "Cool"),
    Sticker("love", "🥰", "Love"),
]


@dataclass
class Composer:
    """Draft state of the message box. Kept intact when a send fails."""
    text: str = ""
    cursor: int = 0
    mention: Optional[MentionQuery] = None
    reply_to: Optional[MessageResponse] = None
    editing: Optional[MessageResponse] = None
    edit_text: str = ""

    def clear_draft(self) -> None:
        self.text = ""
        self.cursor = 0
        self.mention = None
        self.reply_to = None

    def clear_edit(self) -> None:
        self.editing = None
        self.edit_text = ""


@dataclass
class ListView:
    search_query: str = ""
    show_archived: bool = False
    pinned_message_ids: List[str] = field(default_factory=list)


class ChatSyncClient:
    """Keeps a chat screen in sync with the server.

    Reads go through a QueryCache; every mutation invalidates the cached
    collections it touches and refetches the ones on screen. Failures end
    up as one error toast and never propagate.
    """

    def __init__(
        self,
        api: ChatApiClient,
        current_user: Optional[UserSummary] = None,
        notifier: Optional[Notifier] = None,
        clear_unread: Optional[Callable[[], Any]] = None,
        audio_input: Optional[AudioInput] = None,
        typing_poll_interval: float = settings.TYPING_POLL_INTERVAL,
        typing_debounce: float = settings.TYPING_DEBOUNCE_SECONDS,
        typing_idle_timeout: float = settings.TYPING_IDLE_TIMEOUT,
        tz: Optional[tzinfo] = None,
    ):
        self.api = api
        self.current_user = current_user
        self.notifier = notifier or LoggingNotifier()
        self._clear_unread = clear_unread
        self.cache = QueryCache()
        self.composer = Composer()
        self.view = ListView()
        self.recorder = VoiceRecorder(audio_input, self.notifier) if audio_input else None
        self.tz = tz

        self.selected_conversation_id: Optional[str] = None
        self.typing_users: List[TypingUser] = []
        self.pending_message: Optional[MessageResponse] = None

        self.typing_poll_interval = typing_poll_interval
        self._typing_debounce = typing_debounce
        self._typing_idle_timeout = typing_idle_timeout
        self._typing_signaler: Optional[TypingSignaler] = None
        self._typing_poll_task: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Lifecycle and reads
    # ------------------------------------------------------------------

    async def open(self) -> None:
        """Mount the chat screen."""
        if self._clear_unread:
            self._clear_unread()
        if self.current_user is None:
            self.current_user = UserSummary.model_validate(await self.api.get("/users/me"))

        await self.load_users()
        conversations = await self.load_conversations()
        if conversations and not self.selected_conversation_id:
            await self.select_conversation(conversations[0].id)

    async def close(self) -> None:
        await self.deselect_conversation()
        if self.recorder and self.recorder.is_busy:
            self.recorder.cancel()

    async def load_users(self) -> List[UserSummary]:
        async def loader():
            return [UserSummary.model_validate(u) for u in await self.api.get("/users")]
        return await self.cache.fetch(USERS_KEY, loader) or []

    async def load_conversations(self) -> List[ConversationResponse]:
        async def loader():
            return [ConversationResponse.model_validate(c) for c in await self.api.get("/conversations")]
        return await self.cache.fetch(CONVERSATIONS_KEY, loader) or []

    async def load_messages(self, conversation_id: str) -> List[MessageResponse]:
        async def loader():
            data = await self.api.get(f"/conversations/{conversation_id}/messages")
            return [MessageResponse.model_validate(m) for m in data]
        return await self.cache.fetch(messages_key(conversation_id), loader) or []

    async def select_conversation(self, conversation_id: str) -> None:
        if conversation_id == self.selected_conversation_id:
            return
        await self.deselect_conversation()

        self.selected_conversation_id = conversation_id
        self.composer.clear_draft()
        self.composer.clear_edit()
        self._typing_signaler = TypingSignaler(
            partial(self._send_typing, conversation_id),
            debounce=self._typing_debounce,
            idle_timeout=self._typing_idle_timeout,
        )

        messages = await self.load_messages(conversation_id)
        if messages and messages[-1].sender_id != self.current_user.id:
            await self.mark_read(conversation_id, messages[-1].id)

        self._typing_poll_task = asyncio.get_running_loop().create_task(self._poll_typing(conversation_id))

    async def deselect_conversation(self) -> None:
        task, self._typing_poll_task = self._typing_poll_task, None
        if task:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            except Exception as e:
                logger.error(f"Typing poll stopped with an error: {e}")

        signaler, self._typing_signaler = self._typing_signaler, None
        if signaler:
            signaler.reset(notify=True)
            await signaler.drain()

        self.selected_conversation_id = None
        self.typing_users = []
        self.pending_message = None

    async def refresh_typing(self) -> List[TypingUser]:
        conversation_id = self.selected_conversation_id
        if not conversation_id:
            return []
        try:
            data = await self.api.get(f"/conversations/{conversation_id}/typing")
        except ChatApiError as e:
            logger.warning(f"Typing poll for {conversation_id} failed: {e}")
            return self.typing_users
        try:
            typing_users = [TypingUser.model_validate(u) for u in data or []]
        except (TypeError, ValidationError) as e:
            logger.warning(f"Unreadable typing status for {conversation_id}: {e}")
            return self.typing_users
        if conversation_id == self.selected_conversation_id:
            self.typing_users = typing_users
        return self.typing_users

    async def _poll_typing(self, conversation_id: str) -> None:
        while self.selected_conversation_id == conversation_id:
            await self.refresh_typing()
            await asyncio.sleep(self.typing_poll_interval)

    async def _send_typing(self, conversation_id: str, is_typing: bool) -> None:
        await self.api.post(f"/conversations/{conversation_id}/typing", json={"isTyping": is_typing})

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def users(self) -> List[UserSummary]:
        return self.cache.peek(USERS_KEY) or []

    @property
    def conversations(self) -> List[ConversationResponse]:
        return self.cache.peek(CONVERSATIONS_KEY) or []

    @property
    def selected_conversation(self) -> Optional[ConversationResponse]:
        for conversation in self.conversations:
            if conversation.id == self.selected_conversation_id:
                return conversation
        return None

    @property
    def messages(self) -> List[MessageResponse]:
        if not self.selected_conversation_id:
            return []
        messages = list(self.cache.peek(messages_key(self.selected_conversation_id)) or [])
        if self.pending_message and self.pending_message.conversation_id == self.selected_conversation_id:
            messages.append(self.pending_message)
        return messages

    @property
    def visible_conversations(self) -> List[ConversationResponse]:
        return filter_conversations(self.conversations, self.view.search_query, self.view.show_archived)

    @property
    def unread_total(self) -> int:
        return total_unread(self.conversations)

    @property
    def mention_suggestions(self) -> List[UserSummary]:
        mention = self.composer.mention
        if mention is None:
            return []
        return mention_candidates(self.users, mention.query, exclude_user_id=self.current_user.id)

    @property
    def typing_label(self) -> Optional[str]:
        return typing_indicator(self.typing_users)

    @property
    def pinned_messages(self) -> List[MessageResponse]:
        by_id = {m.id: m for m in self.messages}
        return [by_id[mid] for mid in self.view.pinned_message_ids if mid in by_id]

    def timeline(self, now: Optional[datetime] = None) -> List[TimelineEntry]:
        return group_messages_by_date(self.messages, now=now, tz=self.tz)

    def render(self, now: Optional[datetime] = None) -> List[str]:
        return render_timeline(self.messages, self.current_user.id, now=now, tz=self.tz)

    def media(self) -> MediaCollection:
        return extract_media(self.messages)

    def search(self, query: str) -> List[MessageResponse]:
        return search_messages(self.messages, query)

    # ------------------------------------------------------------------
    # Composer
    # ------------------------------------------------------------------

    def on_input_change(self, text: str, cursor: Optional[int] = None) -> None:
        self.composer.text = text
        self.composer.cursor = len(text) if cursor is None else cursor
        self.composer.mention = active_mention(text, self.composer.cursor)
        if self._typing_signaler:
            self._typing_signaler.on_input()

    def choose_mention(self, user: UserSummary) -> None:
        if self.composer.mention is None:
            return
        text, cursor = insert_mention(self.composer.text, self.composer.mention, user)
        self.composer.text = text
        self.composer.cursor = cursor
        self.composer.mention = None

    def reply_to(self, message: MessageResponse) -> None:
        self.composer.reply_to = message

    def cancel_reply(self) -> None:
        self.composer.reply_to = None

    def start_edit(self, message: MessageResponse) -> bool:
        if not self._is_own(message, "edit"):
            return False
        self.composer.editing = message
        self.composer.edit_text = message.content
        return True

    def cancel_edit(self) -> None:
        self.composer.clear_edit()

    def toggle_message_pin(self, message: MessageResponse) -> None:
        """Pin a message to the top of this screen. Local only, nothing is sent."""
        pinned = self.view.pinned_message_ids
        if message.id in pinned:
            pinned.remove(message.id)
            self.notifier.success("Message unpinned")
        else:
            pinned.append(message.id)
            self.notifier.success("Message pinned")

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        fallback: str,
        request: Callable[[], Awaitable[Any]],
        invalidate: Iterable[QueryKey] = (),
        success: Optional[str] = None,
    ) -> Any:
        """Run one mutation: toast on failure, otherwise invalidate and refetch what is on screen."""
        try:
            result = await request()
        except ChatApiError as e:
            logger.info(f"{fallback}: {e}")
            self.notifier.error(e.message or fallback)
            return None

        keys = list(invalidate)
        self.cache.invalidate(*keys)
        await self._refetch_visible(keys)
        if success:
            self.notifier.success(success)
        return result if result is not None else True

    async def _refetch_visible(self, keys: Sequence[QueryKey]) -> None:
        for key in keys:
            if key == CONVERSATIONS_KEY:
                await self.load_conversations()
            elif key == USERS_KEY:
                await self.load_users()
            elif self.selected_conversation_id and key == messages_key(self.selected_conversation_id):
                await self.load_messages(self.selected_conversation_id)

    def _is_own(self, message: MessageResponse, action: str) -> bool:
        if message.sender_id != self.current_user.id:
            self.notifier.error(f"You can only {action} your own messages")
            return False
        return True

    async def _post_message(self, conversation_id: str, body: dict, fallback: str, success: Optional[str] = None):
        result = await self._mutate(
            fallback,
            lambda: self.api.post(f"/conversations/{conversation_id}/messages", json=body),
            invalidate=[messages_key(conversation_id), CONVERSATIONS_KEY],
            success=success,
        )
        return MessageResponse.model_validate(result) if result is not None else None

    async def send_message(self) -> Optional[MessageResponse]:
        """Send the composer text, with its reply target and @mentions."""
        conversation_id = self.selected_conversation_id
        text = self.composer.text.strip()
        if not text or not conversation_id:
            return None

        mentioned_ids = extract_mentions(text, self.users)
        reply_to = self.composer.reply_to
        body = {
            "content": text,
            "mentionedUserIds": mentioned_ids,
            "replyToMessageId": reply_to.id if reply_to else None,
        }

        pending = MessageResponse(
            id=f"pending-{uuid.uuid4()}",
            conversation_id=conversation_id,
            sender_id=self.current_user.id,
            sender_name=self.current_user.name,
            sender_avatar=self.current_user.avatar,
            content=text,
            created_at=datetime.now(timezone.utc),
            reply_to_message_id=body["replyToMessageId"],
            mentioned_user_ids=mentioned_ids,
            delivery_status=DeliveryStatus.SENDING,
        )
        self.pending_message = pending

        sent = await self._post_message(conversation_id, body, "Failed to send message")
        if sent is None:
            self.pending_message = pending.model_copy(update={"delivery_status": DeliveryStatus.FAILED})
            return None

        self.pending_message = None
        self.composer.clear_draft()
        if self._typing_signaler:
            self._typing_signaler.reset()

        if mentioned_ids:
            names = [u.name for u in self.users if u.id in mentioned_ids]
            self.notifier.success(f"Notified {', '.join(names)}")
        return sent

    async def send_sticker(self, sticker: Sticker) -> Optional[MessageResponse]:
        conversation_id = self.selected_conversation_id
        if not conversation_id:
            return None
        body = {
            "content": sticker.emoji,
            "attachments": [{
                "id": str(uuid.uuid4()),
                "filename": f"sticker_{sticker.id}",
                "url": "",
                "size": 0,
                "type": STICKER_TYPE,
            }],
        }
        return await self._post_message(conversation_id, body, "Failed to send sticker")

    async def share_file(self, attachment: AttachmentSchema, caption: str = "") -> Optional[MessageResponse]:
        """Post an already-uploaded file into the selected conversation."""
        conversation_id = self.selected_conversation_id
        if not conversation_id:
            return None
        body = {
            "content": caption.strip(),
            "attachments": [attachment.model_dump(by_alias=True, exclude_none=True)],
        }
        return await self._post_message(conversation_id, body, "Failed to share file", success="File shared successfully")

    async def start_recording(self) -> bool:
        if self.recorder is None:
            self.notifier.error(MICROPHONE_ERROR)
            return False
        return await self.recorder.start()

    def stop_recording(self) -> Optional[AudioBlob]:
        if self.recorder is None:
            return None
        try:
            return self.recorder.stop()
        except Exception as e:
            logger.error(f"Finishing voice recording failed: {e}")
            self.notifier.error(RECORDING_ERROR)
            return None

    def cancel_recording(self) -> None:
        if self.recorder:
            self.recorder.cancel()

    async def send_voice_message(self) -> Optional[MessageResponse]:
        conversation_id = self.selected_conversation_id
        blob = self.recorder.blob if self.recorder else None
        if not blob or not conversation_id:
            return None

        encoded = base64.b64encode(blob.data).decode("ascii")
        body = {
            "content": VOICE_MESSAGE_CONTENT,
            "attachments": [{
                "id": str(uuid.uuid4()),
                "filename": f"voice_{int(time.time() * 1000)}.webm",
                "url": f"data:{VOICE_TYPE};base64,{encoded}",
                "size": blob.size,
                "type": VOICE_TYPE,
            }],
        }
        sent = await self._post_message(conversation_id, body, "Failed to send voice message")
        if sent is not None:
            self.recorder.take_blob()
        return sent

    async def forward_message(self, message: MessageResponse, target_conversation_id: str) -> Optional[MessageResponse]:
        if message.is_deleted:
            return None
        body = {
            "content": message.content,
            "attachments": [
                a.model_dump(by_alias=True, exclude={"id"}) for a in message.attachments
            ],
            "forwardedFrom": message.sender_name,
        }
        return await self._post_message(
            target_conversation_id, body, "Failed to forward message", success="Message forwarded"
        )

    async def edit_message(self, message: Optional[MessageResponse] = None, content: Optional[str] = None) -> Optional[MessageResponse]:
        """Save an edit; defaults to the message and text held in the edit buffer."""
        message = message or self.composer.editing
        content = (self.composer.edit_text if content is None else content).strip()
        if message is None or not content:
            return None
        if not self._is_own(message, "edit"):
            return None

        result = await self._mutate(
            "Failed to edit message",
            lambda: self.api.patch(
                f"/conversations/{message.conversation_id}/messages/{message.id}", json={"content": content}
            ),
            invalidate=[messages_key(message.conversation_id)],
            success="Message edited",
        )
        if result is None:
            return None
        self.composer.clear_edit()
        return MessageResponse.model_validate(result)

    async def unsend_message(self, message: MessageResponse) -> Optional[MessageResponse]:
        if not self._is_own(message, "unsend"):
            return None
        result = await self._mutate(
            "Failed to unsend message",
            lambda: self.api.delete(f"/conversations/{message.conversation_id}/messages/{message.id}"),
            invalidate=[messages_key(message.conversation_id), CONVERSATIONS_KEY],
            success="Message unsent",
        )
        if result is None:
            return None
        if message.id in self.view.pinned_message_ids:
            self.view.pinned_message_ids.remove(message.id)
        return MessageResponse.model_validate(result)

    async def toggle_reaction(self, message: MessageResponse, emoji: str) -> Optional[MessageResponse]:
        result = await self._mutate(
            "Failed to add reaction",
            lambda: self.api.post(
                f"/conversations/{message.conversation_id}/messages/{message.id}/reactions", json={"emoji": emoji}
            ),
            invalidate=[messages_key(message.conversation_id)],
        )
        return MessageResponse.model_validate(result) if result is not None else None

    async def _set_flag(self, conversation_id: str, route: str, field_name: str, value: bool, fallback: str, success: str):
        result = await self._mutate(
            fallback,
            lambda: self.api.post(f"/conversations/{conversation_id}/{route}", json={field_name: value}),
            invalidate=[CONVERSATIONS_KEY],
            success=success,
        )
        return ConversationResponse.model_validate(result) if result is not None else None

    async def set_pinned(self, conversation_id: str, is_pinned: bool) -> Optional[ConversationResponse]:
        return await self._set_flag(
            conversation_id, "pin", "isPinned", is_pinned,
            "Failed to update pin status",
            "Conversation pinned" if is_pinned else "Conversation unpinned",
        )

    async def set_archived(self, conversation_id: str, is_archived: bool) -> Optional[ConversationResponse]:
        return await self._set_flag(
            conversation_id, "archive", "isArchived", is_archived,
            "Failed to archive conversation",
            "Conversation archived" if is_archived else "Conversation unarchived",
        )

    async def set_muted(self, conversation_id: str, is_muted: bool) -> Optional[ConversationResponse]:
        return await self._set_flag(
            conversation_id, "mute", "isMuted", is_muted,
            "Failed to update mute status",
            "Conversation muted" if is_muted else "Conversation unmuted",
        )

    async def mark_read(self, conversation_id: str, message_id: Optional[str] = None) -> Optional[int]:
        result = await self._mutate(
            "Failed to mark as read",
            lambda: self.api.post(f"/conversations/{conversation_id}/read", json={"messageId": message_id}),
            invalidate=[CONVERSATIONS_KEY, messages_key(conversation_id)],
        )
        return result.get("readCount", 0) if isinstance(result, dict) else None

    async def create_direct_conversation(self, user_id: str) -> Optional[ConversationResponse]:
        user = next((u for u in self.users if u.id == user_id), None)
        if user is None:
            return None
        result = await self._mutate(
            "Failed to create conversation",
            lambda: self.api.post("/conversations", json={"participantId": user_id}),
            invalidate=[CONVERSATIONS_KEY],
            success=f"Started conversation with {user.name}",
        )
        if result is None:
            return None
        conversation = ConversationResponse.model_validate(result)
        await self.select_conversation(conversation.id)
        return conversation

    async def create_group_conversation(self, name: str, member_ids: Sequence[str]) -> Optional[ConversationResponse]:
        name = name.strip()
        member_ids = [uid for uid in dict.fromkeys(member_ids) if uid != self.current_user.id]
        if not name or len(member_ids) < 2:
            self.notifier.error(GROUP_REQUIREMENTS_ERROR)
            return None

        result = await self._mutate(
            "Failed to create group",
            lambda: self.api.post("/conversations", json={
                "isGroup": True,
                "name": name,
                "participantIds": member_ids,
            }),
            invalidate=[CONVERSATIONS_KEY],
            success=f"Created group: {name}",
        )
        if result is None:
            return None
        conversation = ConversationResponse.model_validate(result)
        await self.select_conversation(conversation.id)
        return conversation

    async def rename_conversation(self, conversation_id: str, name: str) -> Optional[ConversationResponse]:
        name = name.strip()
        if not name:
            return None
        result = await self._mutate(
            "Failed to update name",
            lambda: self.api.patch(f"/conversations/{conversation_id}", json={"name": name}),
            invalidate=[CONVERSATIONS_KEY],
            success="Conversation updated",
        )
        return ConversationResponse.model_validate(result) if result is not None else None

    async def delete_conversation(self, conversation_id: str) -> bool:
        result = await self._mutate(
            "Failed to delete conversation",
            lambda: self.api.delete(f"/conversations/{conversation_id}"),
            invalidate=[CONVERSATIONS_KEY],
            success="Conversation deleted",
        )
        if result is None:
            return False
        if self.selected_conversation_id == conversation_id:
            await self.deselect_conversation()
        self.cache.invalidate(messages_key(conversation_id))
        return True
