"""
Booking Models - test drive appointments and manager callbacks

Both are produced by the funnel's datetime stage and share the same shape.
``datetime`` is free text (a normalised label such as "Tomorrow afternoon").
"""
from sqlalchemy import Column, Integer, String, DateTime

from dealer_bot.db.database import Base, utcnow


class _BookingColumns:
    id = Column(Integer, primary_key=True, index=True)
    customer_phone = Column(String(20), nullable=False, index=True)
    customer_name = Column(String(200), nullable=True)
    vehicle_type = Column(String(50), nullable=True)
    budget = Column(String(20), nullable=True)
    budget_amount = Column(Integer, nullable=True)
    preferred_time = Column("datetime", String(200), nullable=True)
    created_at = Column(DateTime, default=utcnow)


class Appointment(_BookingColumns, Base):
    """Booked test drive"""

    __tablename__ = "appointments"


class Callback(_BookingColumns, Base):
    """Requested manager call"""

    __tablename__ = "callbacks"
