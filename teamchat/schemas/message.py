from pydantic import Field
from typing import Optional, List
from enum import Enum
from .base import CamelModel, UtcDatetime

STICKER_TYPE = "sticker"
VOICE_TYPE = "audio/webm"


class DeliveryStatus(str, Enum):
    SENDING = "sending"
    SENT = "sent"
    DELIVERED = "delivered"
    READ = "read"
    FAILED = "failed"


class AttachmentSchema(CamelModel):
    id: Optional[str] = None
    filename: str
    url: str = ""
    size: int = 0
    type: str

class MessageCreate(CamelModel):
    content: str = Field("", description="Message body; may be empty when attachments are present")
    attachments: List[AttachmentSchema] = []
    mentioned_user_ids: List[str] = []
    reply_to_message_id: Optional[str] = Field(None, description="ID of message being replied to")
    forwarded_from: Optional[str] = None

class MessageUpdate(CamelModel):
    content: str = Field(..., description="Updated message content")

class ReactionToggle(CamelModel):
    emoji: str = Field(..., min_length=1, max_length=32, description="Emoji reaction")

class ReactionResponse(CamelModel):
    emoji: str
    user_id: str
    user_name: str
    created_at: Optional[UtcDatetime] = None

class ReadReceiptResponse(CamelModel):
    user_id: str
    user_name: str
    read_at: UtcDatetime

class MessageResponse(CamelModel):
    id: str
    conversation_id: str
    sender_id: str
    sender_name: str
    sender_avatar: Optional[str] = None
    content: str = ""
    created_at: UtcDatetime
    attachments: List[AttachmentSchema] = []
    reactions: List[ReactionResponse] = []
    read_by: List[ReadReceiptResponse] = []
    reply_to_message_id: Optional[str] = None
    forwarded_from: Optional[str] = None
    mentioned_user_ids: List[str] = []
    is_edited: bool = False
    edited_at: Optional[UtcDatetime] = None
    is_deleted: bool = False
    # Client-side annotation for just-sent messages; the server never sets it
    delivery_status: Optional[DeliveryStatus] = None
