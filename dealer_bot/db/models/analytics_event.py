"""
Analytics Event Model - write-only funnel event log
"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, Index

from dealer_bot.db.database import Base, utcnow


class AnalyticsEvent(Base):
    __tablename__ = "analytics"

    id = Column(Integer, primary_key=True, index=True)
    event_type = Column(String(50), nullable=False)
    customer_phone = Column(String(20), nullable=True, index=True)
    data = Column(JSON, default=dict)
    created_at = Column(DateTime, default=utcnow)

    __table_args__ = (
        Index("ix_analytics_type_created", "event_type", "created_at"),
    )
