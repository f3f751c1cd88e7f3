"""
Conversation Model - Sales Funnel State

One row per funnel run. The stage column holds a ``Stage`` value from the
state machine; the remaining columns are the slots the funnel collects.
"""
import enum
from sqlalchemy import Column, Integer, String, DateTime, Enum as SQLEnum, Index

from dealer_bot.db.database import Base, utcnow


class ConversationStatus(str, enum.Enum):
    ACTIVE = "active"
    STOPPED = "stopped"
    CONVERTED = "converted"


class ConversationIntent(str, enum.Enum):
    TEST_DRIVE = "test_drive"
    CALLBACK = "callback"


class Conversation(Base):
    """Funnel progress and collected slots for one customer"""

    __tablename__ = "conversations"

    id = Column(Integer, primary_key=True, index=True)
    customer_phone = Column(String(20), nullable=False)

    status = Column(SQLEnum(ConversationStatus), default=ConversationStatus.ACTIVE, nullable=False)
    stage = Column(String(20), default="greeting", nullable=False)

    # Slots
    vehicle_type = Column(String(50), nullable=True)
    budget = Column(String(20), nullable=True)  # bucket label, e.g. "$30k-$50k"
    budget_amount = Column(Integer, nullable=True)
    intent = Column(SQLEnum(ConversationIntent), nullable=True)
    customer_name = Column(String(200), nullable=True)
    preferred_time = Column("datetime", String(200), nullable=True)

    started_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index("ix_conversations_phone_status", "customer_phone", "status"),
    )
