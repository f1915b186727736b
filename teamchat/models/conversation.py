from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey
from sqlalchemy.orm import relationship
from ..database import Base
from .utils import utcnow
import uuid

class Conversation(Base):
    __tablename__ = "conversations"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    name = Column(String(100))  # required for groups, derived per viewer for direct chats
    is_group = Column(Boolean, default=False, nullable=False, index=True)
    created_by = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
    last_message_at = Column(DateTime(timezone=True), index=True)

    # Relationships
    creator = relationship("User", back_populates="created_conversations")
    participants = relationship("Participant", back_populates="conversation")
    messages = relationship("Message", back_populates="conversation")

class Participant(Base):
    __tablename__ = "participants"

    user_id = Column(String, ForeignKey("users.id"), primary_key=True)
    conversation_id = Column(String, ForeignKey("conversations.id"), primary_key=True)
    joined_at = Column(DateTime(timezone=True), default=utcnow)
    last_read_at = Column(DateTime(timezone=True))
    # Per-member flags, each toggled independently
    is_pinned = Column(Boolean, default=False, nullable=False)
    is_archived = Column(Boolean, default=False, nullable=False)
    is_muted = Column(Boolean, default=False, nullable=False)

    # Relationships
    user = relationship("User", back_populates="participants")
    conversation = relationship("Conversation", back_populates="participants")
