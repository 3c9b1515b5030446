from datetime import date, tzinfo

from sqlalchemy.orm import Session

from booking_backend.models.availability import AvailabilityWindow
from booking_backend.models.service import Service
from booking_backend.scheduling.intervals import weekday_for


class AvailabilityResolver:
    """Looks up the recurring windows that apply to a service on a given date."""

    def __init__(self, db: Session, tz: tzinfo):
        self.db = db
        self.tz = tz

    def get_service(self, service_id: int) -> Service | None:
        return self.db.query(Service).filter(Service.id == service_id).first()

    def resolve(self, service_id: int, day: date) -> list[AvailabilityWindow]:
        # An unknown service simply has no windows.
        if self.get_service(service_id) is None:
            return []

        return self.db.query(AvailabilityWindow).filter(
            AvailabilityWindow.service_id == service_id,
            AvailabilityWindow.weekday == weekday_for(day, self.tz),
        ).order_by(AvailabilityWindow.id.asc()).all()
