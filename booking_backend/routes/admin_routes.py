import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.auth.dependencies import get_current_staff
from booking_backend.core import config
from booking_backend.models.booking import Booking
from booking_backend.models.service import Service
from booking_backend.routes.booking_routes import (
    DATABASE_UNAVAILABLE_DETAIL,
    ensure_database_ready,
    get_db,
    raise_http_error,
)
from booking_backend.scheduling import errors
from booking_backend.scheduling.intervals import day_bounds
from booking_backend.scheduling.lifecycle import set_status

router = APIRouter(tags=['admin'])

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


class AdminBookingRow(BaseModel):
    id: int
    service_id: int
    service_name: str
    starts_at: datetime
    ends_at: datetime
    customer_name: str
    customer_email: str
    status: str


class AdminBookingPage(BaseModel):
    rows: list[AdminBookingRow]
    page: int
    limit: int
    total: int


class UpdateStatusRequest(BaseModel):
    status: str


class UpdateStatusResponse(BaseModel):
    ok: bool
    id: int
    status: str


@router.get('/bookings', response_model=AdminBookingPage)
def list_bookings(
    q: str = Query(default=''),
    booking_status: str = Query(default='', alias='status'),
    date_from: date | None = Query(default=None),
    date_to: date | None = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=MAX_PAGE_SIZE),
    staff_email: str = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    del staff_email
    ensure_database_ready()

    filters = []
    search = q.strip()
    if search:
        pattern = f'%{search.lower()}%'
        filters.append(or_(
            func.lower(Booking.customer_name).like(pattern),
            func.lower(Booking.customer_email).like(pattern),
        ))
    if booking_status.strip():
        filters.append(Booking.status == booking_status.strip())
    if date_from:
        filters.append(Booking.starts_at >= day_bounds(date_from, config.BOOKING_TZ).start)
    if date_to:
        filters.append(Booking.starts_at <= day_bounds(date_to, config.BOOKING_TZ).end)

    try:
        total = db.query(func.count(Booking.id)).filter(*filters).scalar() or 0
        results = db.query(Booking, Service.name).outerjoin(
            Service, Service.id == Booking.service_id,
        ).filter(*filters).order_by(
            Booking.starts_at.desc(),
        ).offset((page - 1) * limit).limit(limit).all()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc

    rows = [
        AdminBookingRow(
            id=booking.id,
            service_id=booking.service_id,
            service_name=service_name or str(booking.service_id),
            starts_at=booking.starts_at,
            ends_at=booking.ends_at,
            customer_name=booking.customer_name,
            customer_email=booking.customer_email,
            status=booking.status,
        )
        for booking, service_name in results
    ]

    return AdminBookingPage(rows=rows, page=page, limit=limit, total=total)


@router.patch('/bookings/{booking_id}', response_model=UpdateStatusResponse)
def update_booking_status(
    booking_id: int,
    data: UpdateStatusRequest,
    staff_email: str = Depends(get_current_staff),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    logger.info('Staff %s requested status %s for booking %s', staff_email, data.status, booking_id)

    try:
        booking = set_status(db, booking_id, data.status)
    except errors.BookingError as exc:
        raise_http_error(exc)

    return UpdateStatusResponse(ok=True, id=booking.id, status=booking.status)
