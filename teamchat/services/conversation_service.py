from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func, and_, delete, desc
from sqlalchemy.orm import selectinload
from typing import List, Optional
import logging

from teamchat.models.conversation import Conversation, Participant
from teamchat.models.user import User
from teamchat.models.message import Message, MessageReaction, MessageReadReceipt
from teamchat.models.attachment import Attachment
from teamchat.models.utils import utcnow, naive_utc
from teamchat.core.exceptions import NotFoundException, ForbiddenException, BadRequestException

from teamchat.schemas.conversation import (
    ConversationCreate, ConversationResponse, MemberResponse, LastMessageResponse
)

logger = logging.getLogger(__name__)

# Flags a member may toggle on their own view of a conversation
MEMBER_FLAGS = ("is_pinned", "is_archived", "is_muted")


async def get_conversation_or_404(db: AsyncSession, conversation_id: str) -> Conversation:
    result = await db.execute(select(Conversation).where(Conversation.id == conversation_id))
    conversation = result.scalar_one_or_none()
    if not conversation:
        raise NotFoundException("Conversation not found")
    return conversation


async def require_participant(db: AsyncSession, conversation_id: str, user_id: str) -> Participant:
    """Return the viewer's membership row, or raise 404/403."""
    await get_conversation_or_404(db, conversation_id)
    result = await db.execute(
        select(Participant).where(
            and_(Participant.conversation_id == conversation_id, Participant.user_id == user_id)
        )
    )
    participant = result.scalar_one_or_none()
    if not participant:
        raise ForbiddenException("Access denied")
    return participant


class ConversationService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def create_conversation(self, data: ConversationCreate, creator: User) -> ConversationResponse:
        """Create a group, or get-or-create the direct conversation with one user."""
        if data.is_group:
            return await self._create_group(data, creator)

        if not data.participant_id:
            raise BadRequestException("participantId is required for direct messages")
        if data.participant_id == creator.id:
            raise BadRequestException("Cannot start a conversation with yourself")

        other = await self._get_users([data.participant_id])
        existing = await self._find_direct_conversation(creator.id, data.participant_id)
        if existing:
            return await self.get_conversation(existing.id, creator.id)

        conversation = Conversation(
            name=other[0].name,
            is_group=False,
            created_by=creator.id
        )
        self.db.add(conversation)
        await self.db.flush()
        self.db.add(Participant(user_id=creator.id, conversation_id=conversation.id))
        self.db.add(Participant(user_id=data.participant_id, conversation_id=conversation.id))
        await self.db.commit()

        logger.info(f"Direct conversation {conversation.id} created between {creator.id} and {data.participant_id}")
        return await self.get_conversation(conversation.id, creator.id)

    async def _create_group(self, data: ConversationCreate, creator: User) -> ConversationResponse:
        name = (data.name or "").strip()
        if not name:
            raise BadRequestException("Group name is required")

        # Remove duplicates and the creator, keep request order
        member_ids = [uid for uid in dict.fromkeys(data.participant_ids) if uid != creator.id]
        if len(member_ids) < 2:
            raise BadRequestException("Group requires at least 2 participants")
        await self._get_users(member_ids)

        conversation = Conversation(name=name, is_group=True, created_by=creator.id)
        self.db.add(conversation)
        await self.db.flush()
        for user_id in [creator.id] + member_ids:
            self.db.add(Participant(user_id=user_id, conversation_id=conversation.id))
        await self.db.commit()

        logger.info(f"Group conversation {conversation.id} '{name}' created by {creator.id} with {len(member_ids)} members")
        return await self.get_conversation(conversation.id, creator.id)

    async def _get_users(self, user_ids: List[str]) -> List[User]:
        result = await self.db.execute(select(User).where(User.id.in_(user_ids)))
        users = result.scalars().all()
        if len(users) != len(set(user_ids)):
            raise BadRequestException("One or more participants not found")
        return list(users)

    async def _find_direct_conversation(self, user_a: str, user_b: str) -> Optional[Conversation]:
        a = select(Participant.conversation_id).where(Participant.user_id == user_a)
        b = select(Participant.conversation_id).where(Participant.user_id == user_b)
        result = await self.db.execute(
            select(Conversation).where(
                and_(
                    Conversation.is_group == False,  # noqa: E712
                    Conversation.id.in_(a),
                    Conversation.id.in_(b),
                )
            ).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_conversation(self, conversation_id: str, user_id: str) -> ConversationResponse:
        participant = await require_participant(self.db, conversation_id, user_id)
        conversation = await self._load(conversation_id)
        return await self._to_response(conversation, participant)

    async def get_user_conversations(self, user_id: str) -> List[ConversationResponse]:
        """All conversations of the viewer, most recent activity first."""
        result = await self.db.execute(
            select(Conversation, Participant)
            .join(Participant, Conversation.id == Participant.conversation_id)
            .options(selectinload(Conversation.participants).selectinload(Participant.user))
            .where(Participant.user_id == user_id)
            .order_by(desc(func.coalesce(Conversation.last_message_at, Conversation.created_at)))
        )
        conversations = []
        for conversation, participant in result.unique().all():
            conversations.append(await self._to_response(conversation, participant))
        return conversations

    async def rename_conversation(self, conversation_id: str, name: str, user_id: str) -> ConversationResponse:
        await require_participant(self.db, conversation_id, user_id)
        name = (name or "").strip()
        if not name:
            raise BadRequestException("Name is required")

        conversation = await get_conversation_or_404(self.db, conversation_id)
        conversation.name = name
        self.db.add(conversation)
        await self.db.commit()
        return await self.get_conversation(conversation_id, user_id)

    async def delete_conversation(self, conversation_id: str, user_id: str) -> None:
        """Hard delete: messages and everything hanging off them, members, then the conversation."""
        await require_participant(self.db, conversation_id, user_id)

        message_ids = select(Message.id).where(Message.conversation_id == conversation_id)
        await self.db.execute(delete(MessageReadReceipt).where(MessageReadReceipt.message_id.in_(message_ids)))
        await self.db.execute(delete(MessageReaction).where(MessageReaction.message_id.in_(message_ids)))
        await self.db.execute(delete(Attachment).where(Attachment.message_id.in_(message_ids)))
        await self.db.execute(delete(Message).where(Message.conversation_id == conversation_id))
        await self.db.execute(delete(Participant).where(Participant.conversation_id == conversation_id))
        await self.db.execute(delete(Conversation).where(Conversation.id == conversation_id))
        await self.db.commit()
        logger.info(f"Conversation {conversation_id} deleted by {user_id}")

    async def set_member_flag(self, conversation_id: str, user_id: str, flag: str, value: bool) -> ConversationResponse:
        if flag not in MEMBER_FLAGS:
            raise ValueError(f"Unknown member flag: {flag}")
        participant = await require_participant(self.db, conversation_id, user_id)
        setattr(participant, flag, value)
        self.db.add(participant)
        await self.db.commit()
        return await self.get_conversation(conversation_id, user_id)

    async def mark_as_read(self, conversation_id: str, user_id: str, message_id: Optional[str] = None) -> int:
        """Record read receipts for others' messages up to `message_id` (or the latest).

        Returns the number of new receipts.
        """
        participant = await require_participant(self.db, conversation_id, user_id)

        if message_id:
            result = await self.db.execute(
                select(Message).where(
                    and_(Message.id == message_id, Message.conversation_id == conversation_id)
                )
            )
            target = result.scalar_one_or_none()
            if not target:
                raise NotFoundException("Message not found")
            read_until = target.created_at
        else:
            read_until = utcnow()

        already_read = select(MessageReadReceipt.message_id).where(MessageReadReceipt.user_id == user_id)
        result = await self.db.execute(
            select(Message.id).where(
                and_(
                    Message.conversation_id == conversation_id,
                    Message.sender_id != user_id,
                    Message.created_at <= read_until,
                    Message.id.not_in(already_read),
                )
            )
        )
        unread_ids = result.scalars().all()

        now = utcnow()
        for msg_id in unread_ids:
            self.db.add(MessageReadReceipt(message_id=msg_id, user_id=user_id, read_at=now))

        # the read marker only moves forward
        if participant.last_read_at is None or naive_utc(participant.last_read_at) < naive_utc(read_until):
            participant.last_read_at = read_until
            self.db.add(participant)

        await self.db.commit()
        return len(unread_ids)

    async def _load(self, conversation_id: str) -> Conversation:
        result = await self.db.execute(
            select(Conversation)
            .options(selectinload(Conversation.participants).selectinload(Participant.user))
            .where(Conversation.id == conversation_id)
            .execution_options(populate_existing=True)
        )
        conversation = result.scalar_one_or_none()
        if not conversation:
            raise NotFoundException("Conversation not found")
        return conversation

    async def _unread_count(self, conversation_id: str, participant: Participant) -> int:
        conditions = [
            Message.conversation_id == conversation_id,
            Message.sender_id != participant.user_id,
            Message.is_deleted == False,  # noqa: E712
        ]
        if participant.last_read_at is not None:
            conditions.append(Message.created_at > participant.last_read_at)
        result = await self.db.execute(select(func.count(Message.id)).where(and_(*conditions)))
        return result.scalar_one()

    async def _to_response(self, conversation: Conversation, participant: Participant) -> ConversationResponse:
        last_message_result = await self.db.execute(
            select(Message)
            .where(and_(Message.conversation_id == conversation.id, Message.is_deleted == False))  # noqa: E712
            .order_by(desc(Message.created_at))
            .limit(1)
        )
        last_message = last_message_result.scalar_one_or_none()

        members = [
            MemberResponse(
                id=p.user.id,
                name=p.user.name,
                avatar=p.user.avatar,
                is_online=bool(p.user.is_online),
                last_seen_at=p.user.last_seen_at,
            )
            for p in conversation.participants
        ]

        display_name = conversation.name
        if not conversation.is_group:
            for p in conversation.participants:
                if p.user_id != participant.user_id:
                    display_name = p.user.name
                    break

        return ConversationResponse(
            id=conversation.id,
            name=display_name,
            is_group=bool(conversation.is_group),
            created_by=conversation.created_by,
            created_at=conversation.created_at,
            members=members,
            last_message=LastMessageResponse(
                content=last_message.content,
                sender_id=last_message.sender_id,
                created_at=last_message.created_at,
            ) if last_message else None,
            unread_count=await self._unread_count(conversation.id, participant),
            is_pinned=bool(participant.is_pinned),
            is_archived=bool(participant.is_archived),
            is_muted=bool(participant.is_muted),
        )
