"""Booking model definitions."""

import secrets
from datetime import datetime, timezone

from sqlalchemy import Column, ForeignKey, Integer, String
from booking_backend.database import Base
from booking_backend.models.types import UTCDateTime
from booking_backend.scheduling.status import BookingStatus


def generate_cancel_token() -> str:
    return secrets.token_urlsafe(32)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Booking(Base):
    """A customer's reservation of ``[starts_at, ends_at)`` for one service."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    starts_at = Column(UTCDateTime, nullable=False)
    ends_at = Column(UTCDateTime, nullable=False)
    customer_name = Column(String, nullable=False)
    customer_email = Column(String, nullable=False)
    cancel_token = Column(String, nullable=False, unique=True, index=True, default=generate_cancel_token)
    status = Column(String, nullable=False, default=BookingStatus.CONFIRMED.value)
    created_at = Column(UTCDateTime, nullable=False, default=_utcnow)
