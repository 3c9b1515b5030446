from enum import Enum


class BookingStatus(str, Enum):
    CONFIRMED = 'confirmed'
    CANCELLED = 'cancelled'
    RESCHEDULED = 'rescheduled'
    NO_SHOW = 'no_show'


# Statuses that occupy their time range. Cancelled and no-show bookings free it.
BUSY_STATUSES = frozenset({BookingStatus.CONFIRMED.value, BookingStatus.RESCHEDULED.value})

ALL_STATUSES = frozenset(status.value for status in BookingStatus)
