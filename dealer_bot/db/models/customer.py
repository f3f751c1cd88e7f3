"""
Customer Model - one row per canonical phone number
"""
from sqlalchemy import Column, Integer, String, DateTime

from dealer_bot.db.database import Base, utcnow


class Customer(Base):
    """SMS contact keyed by +1XXXXXXXXXX phone"""

    __tablename__ = "customers"

    id = Column(Integer, primary_key=True, index=True)
    phone = Column(String(20), unique=True, nullable=False, index=True)
    name = Column(String(200), nullable=True)

    last_contact = Column(DateTime, default=utcnow)
    created_at = Column(DateTime, default=utcnow)
