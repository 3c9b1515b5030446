"""Booking status transitions.

Customers act through their cancel token and may cancel or reschedule
whatever booking the token resolves to. Cancelling twice succeeds both times.
Staff may set any status from any status; those overrides do not re-check
overlaps, so on SQLite staff can knowingly leave two busy bookings on the same
time. On PostgreSQL the exclusion constraint still covers the update, and an
override that would overlap another busy booking is rejected as a conflict.
"""

import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.booking import Booking
from booking_backend.models.service import Service
from booking_backend.scheduling.errors import ConflictError, NotFoundError, StoreError, ValidationError
from booking_backend.scheduling.guard import BookingGuard, is_overlap_violation
from booking_backend.scheduling.status import ALL_STATUSES, BUSY_STATUSES, BookingStatus

logger = logging.getLogger(__name__)

__all__ = [
    'ALL_STATUSES',
    'BUSY_STATUSES',
    'BookingStatus',
    'cancel_booking',
    'find_by_token',
    'reschedule_booking',
    'set_status',
]


def _require_token(token: str | None) -> str:
    normalized = (token or '').strip()
    if not normalized:
        raise ValidationError('Missing token.')
    return normalized


def find_by_token(db: Session, token: str | None) -> Booking:
    normalized = _require_token(token)
    try:
        booking = db.query(Booking).filter(Booking.cancel_token == normalized).first()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Booking lookup by token failed')
        raise StoreError('Could not load the booking.') from exc

    if booking is None:
        db.rollback()
        raise NotFoundError('Booking not found.')
    return booking


def cancel_booking(db: Session, token: str | None) -> Booking:
    booking = find_by_token(db, token)
    booking_id = booking.id

    if booking.status == BookingStatus.CANCELLED.value:
        db.rollback()
        return booking

    try:
        booking.status = BookingStatus.CANCELLED.value
        db.commit()
        db.refresh(booking)
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Cancelling booking %s failed', booking_id)
        raise StoreError('Could not cancel the booking.') from exc

    logger.info('Cancelled booking %s', booking_id)
    return booking


def reschedule_booking(db: Session, token: str | None, new_start: datetime | str) -> Booking:
    booking = find_by_token(db, token)

    try:
        service = db.query(Service).filter(Service.id == booking.service_id).first()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Service lookup failed for booking %s', booking.id)
        raise StoreError('Could not load the service.') from exc

    if service is None:
        db.rollback()
        raise NotFoundError('Service not found.')

    return BookingGuard(db).move_booking(booking, new_start, service.duration_minutes)


def set_status(db: Session, booking_id: int, new_status: str | BookingStatus) -> Booking:
    status_value = new_status.value if isinstance(new_status, BookingStatus) else (new_status or '').strip()
    if status_value not in ALL_STATUSES:
        raise ValidationError('Invalid status.')

    try:
        booking = db.query(Booking).filter(Booking.id == booking_id).first()
        if booking is None:
            db.rollback()
            raise NotFoundError('Booking not found.')

        booking.status = status_value
        db.commit()
        db.refresh(booking)
    except IntegrityError as exc:
        db.rollback()
        if is_overlap_violation(exc):
            logger.info('Exclusion constraint rejected status %s for booking %s', status_value, booking_id)
            raise ConflictError('Another booking already holds this time.') from exc
        logger.exception('Updating status of booking %s failed', booking_id)
        raise StoreError('Could not update the booking.') from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Updating status of booking %s failed', booking_id)
        raise StoreError('Could not update the booking.') from exc

    logger.info('Staff set booking %s to %s', booking_id, status_value)
    return booking
