from sqlalchemy import Column, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from ..database import Base
from .utils import utcnow
import uuid

class User(Base):
    __tablename__ = "users"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    name = Column(String(100), nullable=False, index=True)
    email = Column(String(255), unique=True, index=True)
    avatar = Column(String(500))
    is_online = Column(Boolean, default=False, index=True)
    last_seen_at = Column(DateTime(timezone=True), default=utcnow)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    created_conversations = relationship("Conversation", back_populates="creator")
    participants = relationship("Participant", back_populates="user")
    sent_messages = relationship("Message", back_populates="sender")
