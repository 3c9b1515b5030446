"""Service catalog model definitions."""

from sqlalchemy import CheckConstraint, Column, Integer, String
from booking_backend.database import Base


class Service(Base):
    """A bookable service with a fixed appointment length."""
    __tablename__ = "services"
    __table_args__ = (
        CheckConstraint("duration_minutes > 0", name="ck_services_duration_positive"),
    )

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
