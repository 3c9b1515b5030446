"""Availability model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String
from booking_backend.database import Base


class AvailabilityWindow(Base):
    """Recurring weekly window during which a service accepts bookings."""
    __tablename__ = "availability"

    id = Column(Integer, primary_key=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False, index=True)
    weekday = Column(Integer, nullable=False)  # 0=Sunday
    start_time = Column(String, nullable=False)  # local HH:MM[:SS]
    end_time = Column(String, nullable=False)
