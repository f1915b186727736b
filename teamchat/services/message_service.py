# services/message_service.py
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_, delete
from sqlalchemy.orm import selectinload
from typing import List
import logging

from teamchat.config import settings
from teamchat.models.message import Message, MessageReaction, MessageReadReceipt
from teamchat.models.attachment import Attachment
from teamchat.models.conversation import Conversation
from teamchat.models.user import User
from teamchat.models.utils import utcnow
from teamchat.schemas.message import (
    MessageCreate, MessageUpdate, ReactionToggle,
    MessageResponse, AttachmentSchema, ReactionResponse, ReadReceiptResponse
)
from teamchat.services.conversation_service import require_participant

from teamchat.core.exceptions import (
    NotFoundException, ForbiddenException, BadRequestException
)

logger = logging.getLogger(__name__)


class MessageService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_messages(self, conversation_id: str, user_id: str) -> List[MessageResponse]:
        """Every message of the conversation in chronological order, deleted ones included."""
        await require_participant(self.db, conversation_id, user_id)

        result = await self.db.execute(
            select(Message)
            .options(*self._load_options())
            .where(Message.conversation_id == conversation_id)
            .order_by(Message.created_at.asc())
            .execution_options(populate_existing=True)
        )
        return [self._to_response(m) for m in result.scalars().all()]

    async def send_message(self, conversation_id: str, message_data: MessageCreate, sender: User) -> MessageResponse:
        await require_participant(self.db, conversation_id, sender.id)

        content = (message_data.content or "").strip()
        if not content and not message_data.attachments:
            raise BadRequestException("Message content is required")
        if len(content) > settings.MAX_MESSAGE_LENGTH:
            raise BadRequestException("Message is too long")

        now = utcnow()
        new_message = Message(
            conversation_id=conversation_id,
            sender_id=sender.id,
            content=content,
            reply_to_message_id=message_data.reply_to_message_id,
            forwarded_from=message_data.forwarded_from,
            mentioned_user_ids=list(dict.fromkeys(message_data.mentioned_user_ids)),
            created_at=now,
        )
        self.db.add(new_message)
        await self.db.flush()

        for position, attachment in enumerate(message_data.attachments):
            values = dict(
                message_id=new_message.id,
                position=position,
                filename=attachment.filename,
                url=attachment.url,
                size=attachment.size,
                type=attachment.type,
            )
            if attachment.id:
                values["id"] = attachment.id
            self.db.add(Attachment(**values))

        conversation = await self.db.get(Conversation, conversation_id)
        conversation.last_message_at = now
        self.db.add(conversation)
        await self.db.commit()

        if new_message.mentioned_user_ids:
            preview = content[:settings.MESSAGE_PREVIEW_LENGTH]
            logger.info(f"Message {new_message.id} from {sender.id} mentions {new_message.mentioned_user_ids}: {preview!r}")

        return self._to_response(await self._load(new_message.id))

    async def edit_message(self, conversation_id: str, message_id: str, message_data: MessageUpdate, user_id: str) -> MessageResponse:
        """Update a message (sender only)"""
        message = await self._get_for_sender(conversation_id, message_id, user_id, action="edit")

        content = (message_data.content or "").strip()
        if not content:
            raise BadRequestException("Message content is required")

        message.content = content
        message.is_edited = True
        message.edited_at = utcnow()
        self.db.add(message)
        await self.db.commit()
        return self._to_response(await self._load(message_id))

    async def unsend_message(self, conversation_id: str, message_id: str, user_id: str) -> MessageResponse:
        """Soft delete a message (sender only): content and attachments are cleared, the row stays."""
        message = await self._get_for_sender(conversation_id, message_id, user_id, action="unsend")

        message.content = ""
        message.is_deleted = True
        message.deleted_at = utcnow()
        self.db.add(message)
        await self.db.execute(delete(Attachment).where(Attachment.message_id == message_id))
        await self.db.commit()
        logger.info(f"Message {message_id} unsent by {user_id}")
        return self._to_response(await self._load(message_id))

    async def toggle_reaction(self, conversation_id: str, message_id: str, reaction_data: ReactionToggle, user_id: str) -> MessageResponse:
        """Add the viewer's reaction, or remove it if it is already there."""
        await require_participant(self.db, conversation_id, user_id)
        message = await self._get_in_conversation(conversation_id, message_id)
        if message.is_deleted:
            raise NotFoundException("Message not found or deleted")

        result = await self.db.execute(
            select(MessageReaction).where(and_(
                MessageReaction.message_id == message_id,
                MessageReaction.user_id == user_id,
                MessageReaction.emoji == reaction_data.emoji
            ))
        )
        existing = result.scalar_one_or_none()
        if existing:
            await self.db.delete(existing)
        else:
            self.db.add(MessageReaction(
                message_id=message_id,
                user_id=user_id,
                emoji=reaction_data.emoji
            ))
        await self.db.commit()
        return self._to_response(await self._load(message_id))

    async def _get_in_conversation(self, conversation_id: str, message_id: str) -> Message:
        result = await self.db.execute(
            select(Message).where(
                and_(Message.id == message_id, Message.conversation_id == conversation_id)
            )
        )
        message = result.scalar_one_or_none()
        if not message:
            raise NotFoundException("Message not found")
        return message

    async def _get_for_sender(self, conversation_id: str, message_id: str, user_id: str, action: str) -> Message:
        await require_participant(self.db, conversation_id, user_id)
        message = await self._get_in_conversation(conversation_id, message_id)
        if message.is_deleted:
            raise NotFoundException("Message not found or deleted")
        if message.sender_id != user_id:
            raise ForbiddenException(f"Only the sender can {action} this message")
        return message

    @staticmethod
    def _load_options():
        return [
            selectinload(Message.sender),
            selectinload(Message.attachments),
            selectinload(Message.reactions).selectinload(MessageReaction.user),
            selectinload(Message.read_receipts).selectinload(MessageReadReceipt.user),
        ]

    async def _load(self, message_id: str) -> Message:
        result = await self.db.execute(
            select(Message)
            .options(*self._load_options())
            .where(Message.id == message_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one()

    @staticmethod
    def _to_response(message: Message) -> MessageResponse:
        sender = message.sender
        return MessageResponse(
            id=message.id,
            conversation_id=message.conversation_id,
            sender_id=message.sender_id,
            sender_name=sender.name if sender else "Unknown",
            sender_avatar=sender.avatar if sender else None,
            content=message.content or "",
            created_at=message.created_at,
            attachments=[AttachmentSchema.model_validate(a) for a in message.attachments],
            reactions=[
                ReactionResponse(
                    emoji=r.emoji,
                    user_id=r.user_id,
                    user_name=r.user.name if r.user else "Unknown",
                    created_at=r.created_at,
                )
                for r in message.reactions
            ],
            read_by=[
                ReadReceiptResponse(
                    user_id=rr.user_id,
                    user_name=rr.user.name if rr.user else "Unknown",
                    read_at=rr.read_at,
                )
                for rr in message.read_receipts
            ],
            reply_to_message_id=message.reply_to_message_id,
            forwarded_from=message.forwarded_from,
            mentioned_user_ids=message.mentioned_user_ids or [],
            is_edited=bool(message.is_edited),
            edited_at=message.edited_at,
            is_deleted=bool(message.is_deleted),
        )
