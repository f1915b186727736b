"""Message variants and plain-text rendering of a conversation.

Every message is classified into exactly one variant; rendering matches
on the variant and fails loudly on anything it does not know.
"""
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Dict, Iterable, List, Optional, Sequence, Union

from teamchat.schemas.message import AttachmentSchema, DeliveryStatus, MessageResponse
from teamchat.schemas.typing import TypingUser
from teamchat.views.dates import DateHeader, MessageEntry, TimelineEntry, group_messages_by_date
from teamchat.views.media import is_sticker, is_voice
from teamchat.views.reactions import group_reactions

DELETED_PLACEHOLDER = "This message was deleted"
MISSING_REPLY_PLACEHOLDER = "message not found"
REPLY_PREVIEW_LENGTH = 60


@dataclass(frozen=True)
class TextMessage:
    message: MessageResponse


@dataclass(frozen=True)
class DeletedMessage:
    message: MessageResponse


@dataclass(frozen=True)
class AttachmentMessage:
    message: MessageResponse
    attachments: Sequence[AttachmentSchema]


@dataclass(frozen=True)
class StickerMessage:
    message: MessageResponse
    sticker: str


@dataclass(frozen=True)
class VoiceMessage:
    message: MessageResponse
    recording: AttachmentSchema


MessageVariant = Union[TextMessage, DeletedMessage, AttachmentMessage, StickerMessage, VoiceMessage]


def classify_message(message: MessageResponse) -> MessageVariant:
    if message.is_deleted:
        return DeletedMessage(message)
    attachments = message.attachments
    if attachments:
        if len(attachments) == 1 and is_sticker(attachments[0]):
            return StickerMessage(message, sticker=message.content)
        if len(attachments) == 1 and is_voice(attachments[0]):
            return VoiceMessage(message, recording=attachments[0])
        return AttachmentMessage(message, attachments=attachments)
    return TextMessage(message)


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size} B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f} KB"
    return f"{size / (1024 * 1024):.1f} MB"


def message_body(variant: MessageVariant) -> str:
    if isinstance(variant, DeletedMessage):
        return DELETED_PLACEHOLDER
    if isinstance(variant, TextMessage):
        return variant.message.content
    if isinstance(variant, StickerMessage):
        return f"[sticker] {variant.sticker}"
    if isinstance(variant, VoiceMessage):
        return f"[voice message] {format_size(variant.recording.size)}"
    if isinstance(variant, AttachmentMessage):
        files = ", ".join(f"{a.filename} ({format_size(a.size)})" for a in variant.attachments)
        text = variant.message.content
        return f"{text}\n[attachments] {files}" if text else f"[attachments] {files}"
    raise TypeError(f"Unhandled message variant: {type(variant).__name__}")


def reply_preview(reply_to_message_id: Optional[str], messages_by_id: Dict[str, MessageResponse]) -> Optional[str]:
    """One-line quote of the message being replied to; None when not a reply."""
    if not reply_to_message_id:
        return None
    target = messages_by_id.get(reply_to_message_id)
    if target is None:
        return MISSING_REPLY_PLACEHOLDER
    if target.is_deleted:
        return f"{target.sender_name}: {DELETED_PLACEHOLDER}"
    text = target.content or "attachment"
    if len(text) > REPLY_PREVIEW_LENGTH:
        text = text[:REPLY_PREVIEW_LENGTH] + "..."
    return f"{target.sender_name}: {text}"


def delivery_status(message: MessageResponse, current_user_id: str) -> Optional[DeliveryStatus]:
    """Tick state shown on the viewer's own messages."""
    if message.sender_id != current_user_id:
        return None
    if any(receipt.user_id != current_user_id for receipt in message.read_by):
        return DeliveryStatus.READ
    return message.delivery_status or DeliveryStatus.SENT


def render_message(
    message: MessageResponse,
    messages_by_id: Dict[str, MessageResponse],
    current_user_id: Optional[str] = None,
    tz: Optional[tzinfo] = None,
) -> List[str]:
    variant = classify_message(message)
    lines = []

    header = message.sender_name
    if message.forwarded_from and not message.is_deleted:
        header += f" (forwarded from {message.forwarded_from})"
    header += f" · {message.created_at.astimezone(tz):%H:%M}"
    if message.is_edited and not message.is_deleted:
        header += " (edited)"
    if current_user_id:
        status = delivery_status(message, current_user_id)
        if status:
            header += f" [{status.value}]"
    lines.append(header)

    if not message.is_deleted:
        quote = reply_preview(message.reply_to_message_id, messages_by_id)
        if quote:
            lines.append(f"  > {quote}")

    lines.extend(f"  {line}" for line in message_body(variant).splitlines() or [""])

    if not message.is_deleted:
        groups = group_reactions(message.reactions, current_user_id)
        if groups:
            lines.append("  " + "  ".join(f"{g.emoji} {g.count}" for g in groups))
    return lines


def render_timeline(
    messages: Iterable[MessageResponse],
    current_user_id: Optional[str] = None,
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[str]:
    """The conversation as plain text lines: date headers and messages."""
    messages = list(messages)
    by_id = {m.id: m for m in messages}
    timeline: List[TimelineEntry] = group_messages_by_date(messages, now=now, tz=tz)

    lines: List[str] = []
    for entry in timeline:
        if isinstance(entry, DateHeader):
            lines.append(f"--- {entry.label} ---")
        elif isinstance(entry, MessageEntry):
            lines.extend(render_message(entry.message, by_id, current_user_id, tz))
        else:
            raise TypeError(f"Unhandled timeline entry: {type(entry).__name__}")
    return lines


def typing_indicator(typing_users: Sequence[TypingUser]) -> Optional[str]:
    if not typing_users:
        return None
    if len(typing_users) == 1:
        return f"{typing_users[0].name} is typing..."
    return f"{len(typing_users)} people are typing..."
