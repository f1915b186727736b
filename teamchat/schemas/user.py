from typing import Optional
from .base import CamelModel, UtcDatetime

class UserSummary(CamelModel):
    """Directory entry used for mentions and conversation creation"""
    id: str
    name: str
    email: Optional[str] = None
    avatar: Optional[str] = None
    is_online: bool = False
    last_seen_at: Optional[UtcDatetime] = None
