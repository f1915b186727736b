from pydantic import Field
from typing import Optional, List
from .base import CamelModel, UtcDatetime

class ConversationCreate(CamelModel):
    participant_id: Optional[str] = Field(None, description="Other user for a direct conversation")
    participant_ids: List[str] = Field(default_factory=list, description="Members to add to a group")
    is_group: bool = Field(False, description="Whether this is a group conversation")
    name: Optional[str] = Field(None, max_length=100, description="Group name")

class ConversationUpdate(CamelModel):
    name: str = Field(..., max_length=100)

class PinUpdate(CamelModel):
    is_pinned: bool

class ArchiveUpdate(CamelModel):
    is_archived: bool

class MuteUpdate(CamelModel):
    is_muted: bool

class MarkReadRequest(CamelModel):
    message_id: Optional[str] = Field(None, description="Mark read up to and including this message")

class MarkReadResponse(CamelModel):
    success: bool = True
    read_count: int = 0

class MemberResponse(CamelModel):
    id: str
    name: str
    avatar: Optional[str] = None
    is_online: bool = False
    last_seen_at: Optional[UtcDatetime] = None

class LastMessageResponse(CamelModel):
    content: str
    sender_id: str
    created_at: UtcDatetime

class ConversationResponse(CamelModel):
    id: str
    name: Optional[str] = None
    is_group: bool = False
    created_by: Optional[str] = None
    created_at: Optional[UtcDatetime] = None
    members: List[MemberResponse] = []
    last_message: Optional[LastMessageResponse] = None
    unread_count: int = 0
    is_pinned: bool = False
    is_archived: bool = False
    is_muted: bool = False

class SuccessResponse(CamelModel):
    success: bool = True
