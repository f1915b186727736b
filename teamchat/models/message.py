from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, Text, JSON, UniqueConstraint
from sqlalchemy.orm import relationship
from ..database import Base
from .utils import utcnow
import uuid

class Message(Base):
    __tablename__ = "messages"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    conversation_id = Column(String, ForeignKey("conversations.id"), nullable=False, index=True)
    sender_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    # Weak reference: no foreign key, the target may be gone
    reply_to_message_id = Column(String, index=True)
    content = Column(Text, nullable=False, default="")
    forwarded_from = Column(String(255))
    mentioned_user_ids = Column(JSON, default=list)
    is_edited = Column(Boolean, default=False, nullable=False)
    is_deleted = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, index=True)
    edited_at = Column(DateTime(timezone=True))
    deleted_at = Column(DateTime(timezone=True))

    # Relationships
    conversation = relationship("Conversation", back_populates="messages")
    sender = relationship("User", back_populates="sent_messages")
    attachments = relationship("Attachment", back_populates="message", order_by="Attachment.position")
    reactions = relationship("MessageReaction", back_populates="message", order_by="MessageReaction.created_at")
    read_receipts = relationship("MessageReadReceipt", back_populates="message", order_by="MessageReadReceipt.read_at")

class MessageReaction(Base):
    __tablename__ = "message_reactions"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    message_id = Column(String, ForeignKey("messages.id"), nullable=False, index=True)
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    emoji = Column(String(32), nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    message = relationship("Message", back_populates="reactions")
    user = relationship("User")

    # one reaction per user per message per emoji
    __table_args__ = (
        UniqueConstraint("message_id", "user_id", "emoji", name="uq_reaction_user_emoji"),
    )

class MessageReadReceipt(Base):
    __tablename__ = "message_read_receipts"

    message_id = Column(String, ForeignKey("messages.id"), primary_key=True, index=True)
    user_id = Column(String, ForeignKey("users.id"), primary_key=True, index=True)
    read_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    message = relationship("Message", back_populates="read_receipts")
    user = relationship("User")
