"""Guarded booking writes.

Every write that places a booking on the calendar goes through
``BookingGuard``. The overlap re-check and the write share one transaction:

* PostgreSQL takes a per-service transaction advisory lock, and the
  ``bookings_no_overlap`` exclusion constraint rejects anything that slips
  past the re-check (SQLSTATE 23P01).
* SQLite opens every transaction with ``BEGIN IMMEDIATE`` (see
  ``booking_backend.database``), so writers are serialized and the re-check
  is authoritative.

Listing slots is a stale read; this is the only place a booking is accepted.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.database import BOOKING_OVERLAP_CONSTRAINT
from booking_backend.models.booking import Booking, generate_cancel_token
from booking_backend.models.service import Service
from booking_backend.scheduling.errors import ConflictError, NotFoundError, StoreError, ValidationError
from booking_backend.scheduling.intervals import as_utc
from booking_backend.scheduling.status import BUSY_STATUSES, BookingStatus

logger = logging.getLogger(__name__)

EXCLUSION_VIOLATION_SQLSTATE = '23P01'
SERVICE_LOCK_NAMESPACE = 4242

CONFLICT_MESSAGE = 'This time is already booked.'


def is_overlap_violation(exc: IntegrityError) -> bool:
    orig = getattr(exc, 'orig', None)
    sqlstate = getattr(orig, 'pgcode', None) or getattr(orig, 'sqlstate', None)
    if sqlstate == EXCLUSION_VIOLATION_SQLSTATE:
        return True

    diag = getattr(orig, 'diag', None)
    constraint_name = getattr(diag, 'constraint_name', '') or ''
    return constraint_name == BOOKING_OVERLAP_CONSTRAINT or BOOKING_OVERLAP_CONSTRAINT in str(orig)


def parse_instant(value: datetime | str | None) -> datetime:
    if isinstance(value, str):
        try:
            value = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError as exc:
            raise ValidationError('Start time is not a valid ISO 8601 timestamp.') from exc

    if not isinstance(value, datetime):
        raise ValidationError('Start time is required.')
    if value.tzinfo is None:
        raise ValidationError('Start time must include a UTC offset.')

    return as_utc(value)


def _require_text(value: str | None, field_name: str) -> str:
    normalized = (value or '').strip()
    if not normalized:
        raise ValidationError(f'{field_name} is required.')
    return normalized


class BookingGuard:
    def __init__(self, db: Session):
        self.db = db

    def create_booking(
        self,
        service_id: int,
        starts_at: datetime | str,
        customer_name: str,
        customer_email: str,
    ) -> Booking:
        name = _require_text(customer_name, 'Customer name')
        email = _require_text(customer_email, 'Customer email').lower()
        starts_at = parse_instant(starts_at)

        try:
            service = self.db.query(Service).filter(Service.id == service_id).first()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Service lookup failed for %s', service_id)
            raise StoreError('Could not load the service.') from exc

        if service is None:
            self.db.rollback()
            raise NotFoundError('Service not found.')

        ends_at = starts_at + self._duration(service.duration_minutes)
        booking = Booking(
            service_id=service.id,
            starts_at=starts_at,
            ends_at=ends_at,
            customer_name=name,
            customer_email=email,
            cancel_token=generate_cancel_token(),
            status=BookingStatus.CONFIRMED.value,
        )
        self._guarded_write(booking)
        logger.info('Created booking %s for service %s at %s', booking.id, service.id, starts_at.isoformat())
        return booking

    def move_booking(self, booking: Booking, starts_at: datetime | str, duration_minutes: int) -> Booking:
        starts_at = parse_instant(starts_at)
        booking.starts_at = starts_at
        booking.ends_at = starts_at + self._duration(duration_minutes)
        booking.status = BookingStatus.RESCHEDULED.value
        self._guarded_write(booking)
        logger.info('Rescheduled booking %s to %s', booking.id, starts_at.isoformat())
        return booking

    @staticmethod
    def _duration(duration_minutes: int | None) -> timedelta:
        if not duration_minutes or duration_minutes <= 0:
            raise ValidationError('Service duration must be a positive number of minutes.')
        return timedelta(minutes=duration_minutes)

    def _lock_service(self, service_id: int) -> None:
        if self.db.get_bind().dialect.name == 'postgresql':
            self.db.execute(
                text('SELECT pg_advisory_xact_lock(:namespace, :service_id)'),
                {'namespace': SERVICE_LOCK_NAMESPACE, 'service_id': service_id},
            )

    def _has_overlap(self, booking: Booking) -> bool:
        query = self.db.query(Booking.id).filter(
            Booking.service_id == booking.service_id,
            Booking.status.in_(sorted(BUSY_STATUSES)),
            Booking.starts_at < booking.ends_at,
            Booking.ends_at > booking.starts_at,
        )
        if booking.id is not None:
            query = query.filter(Booking.id != booking.id)
        return query.first() is not None

    def _guarded_write(self, booking: Booking) -> None:
        service_id = booking.service_id
        starts_at = booking.starts_at

        try:
            self._lock_service(service_id)
            if self._has_overlap(booking):
                self.db.rollback()
                logger.info('Rejected overlapping booking for service %s at %s', service_id, starts_at)
                raise ConflictError(CONFLICT_MESSAGE)

            self.db.add(booking)
            self.db.commit()
        except IntegrityError as exc:
            self.db.rollback()
            if is_overlap_violation(exc):
                logger.info('Exclusion constraint rejected booking for service %s', service_id)
                raise ConflictError(CONFLICT_MESSAGE) from exc
            logger.exception('Booking write failed for service %s', service_id)
            raise StoreError('Could not save the booking.') from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Booking write failed for service %s', service_id)
            raise StoreError('Could not save the booking.') from exc

        try:
            self.db.refresh(booking)
        except SQLAlchemyError as exc:
            logger.exception('Could not reload booking %s after commit', booking.id)
            raise StoreError('Booking saved but could not be reloaded.') from exc
