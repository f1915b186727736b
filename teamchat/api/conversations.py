from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional
import logging

from teamchat.core.security import get_current_active_user, get_current_user_id
from teamchat.database import get_db
from teamchat.models.user import User
from teamchat.services.conversation_service import ConversationService, require_participant
from teamchat.services.typing_service import TypingPresenceTracker, get_typing_tracker
from teamchat.schemas.conversation import (
    ConversationCreate, ConversationUpdate, ConversationResponse, SuccessResponse,
    PinUpdate, ArchiveUpdate, MuteUpdate, MarkReadRequest, MarkReadResponse
)
from teamchat.schemas.typing import TypingSignal, TypingUser

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("", response_model=List[ConversationResponse])
async def get_user_conversations_endpoint(
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """List the current user's conversations."""
    service = ConversationService(db)
    return await service.get_user_conversations(current_user_id)

@router.post("", response_model=ConversationResponse, status_code=status.HTTP_201_CREATED)
async def create_conversation_endpoint(
    conversation_data: ConversationCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db)
):
    """Create a group conversation, or get-or-create a direct one."""
    service = ConversationService(db)
    return await service.create_conversation(conversation_data, current_user)

@router.get("/{conversation_id}", response_model=ConversationResponse)
async def get_conversation_endpoint(
    conversation_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    return await service.get_conversation(conversation_id, current_user_id)

@router.patch("/{conversation_id}", response_model=ConversationResponse)
async def rename_conversation_endpoint(
    conversation_id: str,
    conversation_data: ConversationUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Rename a conversation."""
    service = ConversationService(db)
    return await service.rename_conversation(conversation_id, conversation_data.name, current_user_id)

@router.delete("/{conversation_id}", response_model=SuccessResponse)
async def delete_conversation_endpoint(
    conversation_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    tracker: TypingPresenceTracker = Depends(get_typing_tracker)
):
    """Hard delete a conversation with all of its messages."""
    service = ConversationService(db)
    await service.delete_conversation(conversation_id, current_user_id)
    tracker.clear_conversation(conversation_id)
    return SuccessResponse()

@router.post("/{conversation_id}/pin", response_model=ConversationResponse)
async def pin_conversation_endpoint(
    conversation_id: str,
    data: PinUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    return await service.set_member_flag(conversation_id, current_user_id, "is_pinned", data.is_pinned)

@router.post("/{conversation_id}/archive", response_model=ConversationResponse)
async def archive_conversation_endpoint(
    conversation_id: str,
    data: ArchiveUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    return await service.set_member_flag(conversation_id, current_user_id, "is_archived", data.is_archived)

@router.post("/{conversation_id}/mute", response_model=ConversationResponse)
async def mute_conversation_endpoint(
    conversation_id: str,
    data: MuteUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    service = ConversationService(db)
    return await service.set_member_flag(conversation_id, current_user_id, "is_muted", data.is_muted)

@router.post("/{conversation_id}/read", response_model=MarkReadResponse)
async def mark_read_endpoint(
    conversation_id: str,
    data: Optional[MarkReadRequest] = None,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Mark the conversation read up to an optional message."""
    service = ConversationService(db)
    read_count = await service.mark_as_read(conversation_id, current_user_id, data.message_id if data else None)
    return MarkReadResponse(read_count=read_count)

@router.get("/{conversation_id}/typing", response_model=List[TypingUser])
async def get_typing_users_endpoint(
    conversation_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    tracker: TypingPresenceTracker = Depends(get_typing_tracker)
):
    """Other members currently typing; polled by clients."""
    await require_participant(db, conversation_id, current_user_id)
    return tracker.typing_users(conversation_id, exclude_user_id=current_user_id)

@router.post("/{conversation_id}/typing", response_model=SuccessResponse)
async def typing_signal_endpoint(
    conversation_id: str,
    signal: TypingSignal,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    tracker: TypingPresenceTracker = Depends(get_typing_tracker)
):
    await require_participant(db, conversation_id, current_user.id)
    tracker.set_typing(conversation_id, current_user.id, current_user.name, signal.is_typing)
    return SuccessResponse()
