"""Slot generation.

Each availability window is walked on its own, in steps of the service
duration starting at the window start. A candidate is offered only when it
fits entirely inside the window and overlaps no busy booking. The cursor
always advances by a full duration, so one busy booking can hide more than
its own length of otherwise free time. Slots from overlapping windows are not
deduplicated; the booking guard settles any double offer.
"""

import logging
from datetime import date, datetime, timedelta, tzinfo
from typing import Iterable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.models.booking import Booking
from booking_backend.scheduling.availability import AvailabilityResolver
from booking_backend.scheduling.errors import StoreError
from booking_backend.scheduling.intervals import TimeRange, as_utc, day_bounds, local_to_instant, overlaps
from booking_backend.scheduling.status import BUSY_STATUSES

logger = logging.getLogger(__name__)


def walk_window(
    window_start: datetime,
    window_end: datetime,
    duration: timedelta,
    busy: Iterable[TimeRange],
) -> list[TimeRange]:
    busy = list(busy)
    slots: list[TimeRange] = []
    cursor = window_start

    while True:
        slot_end = cursor + duration
        if slot_end > window_end:
            break

        if not any(overlaps(cursor, slot_end, interval.start, interval.end) for interval in busy):
            slots.append(TimeRange(start=as_utc(cursor), end=as_utc(slot_end)))

        cursor = slot_end

    return slots


class SlotGenerator:
    def __init__(self, db: Session, tz: tzinfo, busy_statuses: Iterable[str] = BUSY_STATUSES):
        self.db = db
        self.tz = tz
        self.busy_statuses = frozenset(busy_statuses)
        self.resolver = AvailabilityResolver(db, tz)

    def busy_intervals(self, service_id: int, day: date) -> list[TimeRange]:
        bounds = day_bounds(day, self.tz)
        rows = self.db.query(Booking.starts_at, Booking.ends_at).filter(
            Booking.service_id == service_id,
            Booking.starts_at >= bounds.start,
            Booking.starts_at <= bounds.end,
            Booking.status.in_(sorted(self.busy_statuses)),
        ).all()

        return [TimeRange(start=starts_at, end=ends_at) for starts_at, ends_at in rows]

    def generate(self, service_id: int, day: date) -> list[TimeRange]:
        try:
            service = self.resolver.get_service(service_id)
            if service is None or not service.duration_minutes or service.duration_minutes <= 0:
                return []

            windows = self.resolver.resolve(service_id, day)
            if not windows:
                return []

            busy = self.busy_intervals(service_id, day)
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception('Failed to load availability for service %s on %s', service_id, day)
            raise StoreError('Could not load availability.') from exc

        duration = timedelta(minutes=service.duration_minutes)
        slots: list[TimeRange] = []

        for window in windows:
            window_start = local_to_instant(day, window.start_time, self.tz)
            window_end = local_to_instant(day, window.end_time, self.tz)

            if window_start is None or window_end is None or window_start >= window_end:
                logger.debug('Skipping unusable availability window %s', window.id)
                continue

            slots.extend(walk_window(window_start, window_end, duration, busy))

        return slots
