from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from teamchat.core.security import get_current_active_user, get_current_user_id
from teamchat.database import get_db
from teamchat.models.user import User
from teamchat.services.message_service import MessageService
from teamchat.services.typing_service import TypingPresenceTracker, get_typing_tracker
from teamchat.schemas.message import (
    MessageCreate, MessageUpdate, ReactionToggle, MessageResponse
)

router = APIRouter()


@router.get("/{conversation_id}/messages", response_model=List[MessageResponse])
async def get_messages_endpoint(
    conversation_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """List the messages of a conversation, oldest first."""
    service = MessageService(db)
    return await service.get_messages(conversation_id, current_user_id)

@router.post("/{conversation_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message_endpoint(
    conversation_id: str,
    message_data: MessageCreate,
    current_user: User = Depends(get_current_active_user),
    db: AsyncSession = Depends(get_db),
    tracker: TypingPresenceTracker = Depends(get_typing_tracker)
):
    """Send a message to a conversation."""
    service = MessageService(db)
    message = await service.send_message(conversation_id, message_data, current_user)
    # a sent message ends the sender's typing state
    tracker.set_typing(conversation_id, current_user.id, current_user.name, False)
    return message

@router.patch("/{conversation_id}/messages/{message_id}", response_model=MessageResponse)
async def edit_message_endpoint(
    conversation_id: str,
    message_id: str,
    message_data: MessageUpdate,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Edit a message (sender only)."""
    service = MessageService(db)
    return await service.edit_message(conversation_id, message_id, message_data, current_user_id)

@router.delete("/{conversation_id}/messages/{message_id}", response_model=MessageResponse)
async def unsend_message_endpoint(
    conversation_id: str,
    message_id: str,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Unsend (soft delete) a message (sender only)."""
    service = MessageService(db)
    return await service.unsend_message(conversation_id, message_id, current_user_id)

@router.post("/{conversation_id}/messages/{message_id}/reactions", response_model=MessageResponse)
async def toggle_reaction_endpoint(
    conversation_id: str,
    message_id: str,
    reaction_data: ReactionToggle,
    current_user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db)
):
    """Toggle the current user's emoji reaction on a message."""
    service = MessageService(db)
    return await service.toggle_reaction(conversation_id, message_id, reaction_data, current_user_id)
