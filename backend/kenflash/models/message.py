from sqlalchemy import Boolean, Column, Integer, String, Text, DateTime, Index
from kenflash.clock import utc_now
from kenflash.database import Base

class ChatMessage(Base):
    """Direct message between an admin and a creator."""
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    sender_id = Column(String(36), nullable=False)
    receiver_id = Column(String(36), nullable=False)
    message_text = Column(Text, nullable=False)
    sent_at = Column(DateTime(timezone=True), default=utc_now, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("ix_messages_sender_receiver_sent", "sender_id", "receiver_id", "sent_at"),
    )
