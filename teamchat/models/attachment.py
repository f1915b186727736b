from sqlalchemy import Column, String, DateTime, ForeignKey, Integer, Text
from sqlalchemy.orm import relationship
from ..database import Base
from .utils import utcnow
import uuid

class Attachment(Base):
    __tablename__ = "attachments"

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()), index=True)
    message_id = Column(String, ForeignKey("messages.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    filename = Column(String(255), nullable=False)
    url = Column(Text, nullable=False, default="")  # may be a data: URL for voice notes
    size = Column(Integer, default=0)  # in bytes
    type = Column(String(100), nullable=False)  # MIME type, or "sticker"
    uploaded_at = Column(DateTime(timezone=True), default=utcnow)

    # Relationships
    message = relationship("Message", back_populates="attachments")
