"""
Bulk Message Model - one scheduled outbound SMS of a campaign
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Text, Index

from dealer_bot.db.database import Base, utcnow


class BulkMessageStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"


class BulkMessage(Base):
    """Durable job row drained by the bulk scheduler"""

    __tablename__ = "bulk_messages"

    id = Column(Integer, primary_key=True, index=True)
    campaign_name = Column(String(200), nullable=False, index=True)
    message_template = Column(Text, nullable=False)
    recipient_name = Column(String(200), nullable=True)
    recipient_phone = Column(String(20), nullable=False)

    status = Column(SQLEnum(BulkMessageStatus), default=BulkMessageStatus.PENDING, nullable=False)
    error_message = Column(String(1000), nullable=True)

    scheduled_at = Column(DateTime, nullable=False)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_bulk_messages_status_scheduled", "status", "scheduled_at"),
    )
