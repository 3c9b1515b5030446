import logging
from datetime import date, datetime
from typing import NoReturn

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from booking_backend.core import config
from booking_backend.database import SessionLocal, ensure_booking_schema
from booking_backend.models.service import Service
from booking_backend.notifications.email import ResendNotifier, notify_booking_confirmed
from booking_backend.scheduling import errors
from booking_backend.scheduling.guard import BookingGuard
from booking_backend.scheduling.lifecycle import cancel_booking, reschedule_booking
from booking_backend.scheduling.slots import SlotGenerator

router = APIRouter(tags=['bookings'])

logger = logging.getLogger(__name__)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and Postgres credentials.'


class ServiceResponse(BaseModel):
    id: int
    name: str
    duration_minutes: int

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    start: datetime
    end: datetime


class SlotListResponse(BaseModel):
    slots: list[SlotResponse]


class CreateBookingRequest(BaseModel):
    service_id: int
    start: datetime
    name: str
    email: str

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        normalized = value.strip().lower()
        if not normalized:
            raise ValueError('Email is required.')
        if '@' not in normalized:
            raise ValueError('Email address is invalid.')
        return normalized


class RescheduleRequest(BaseModel):
    token: str
    new_start: datetime

    @field_validator('token')
    @classmethod
    def validate_token(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Token is required.')
        return normalized


class BookingResponse(BaseModel):
    id: int
    service_id: int
    starts_at: datetime
    ends_at: datetime
    customer_name: str
    customer_email: str
    status: str
    cancel_token: str

    class Config:
        from_attributes = True


class BookingActionResponse(BaseModel):
    ok: bool
    status: str
    starts_at: datetime | None = None
    ends_at: datetime | None = None


def ensure_database_ready() -> None:
    try:
        ensure_booking_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_notifier() -> ResendNotifier:
    return ResendNotifier()


def as_local_instant(value: datetime) -> datetime:
    # Times sent without an offset are business-local.
    if value.tzinfo is None:
        return value.replace(tzinfo=config.BOOKING_TZ)
    return value


def raise_http_error(exc: errors.BookingError) -> NoReturn:
    if isinstance(exc, errors.ValidationError):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message) from exc
    if isinstance(exc, errors.NotFoundError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.message) from exc
    if isinstance(exc, errors.ConflictError):
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=exc.message) from exc
    raise HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    ) from exc


@router.get('/services', response_model=list[ServiceResponse])
def list_services(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return db.query(Service).order_by(Service.name.asc()).all()
    except SQLAlchemyError as exc:
        logger.exception('Listing services failed')
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@router.get('/slots', response_model=SlotListResponse)
def list_slots(
    service_id: int | None = Query(default=None),
    day: date | None = Query(default=None, alias='date'),
    db: Session = Depends(get_db),
):
    if service_id is None or day is None:
        return SlotListResponse(slots=[])

    ensure_database_ready()

    try:
        slots = SlotGenerator(db, config.BOOKING_TZ).generate(service_id, day)
    except errors.BookingError as exc:
        raise_http_error(exc)

    return SlotListResponse(slots=[SlotResponse(start=slot.start, end=slot.end) for slot in slots])


@router.post('/book', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    notifier: ResendNotifier = Depends(get_notifier),
):
    ensure_database_ready()

    try:
        booking = BookingGuard(db).create_booking(
            service_id=data.service_id,
            starts_at=as_local_instant(data.start),
            customer_name=data.name,
            customer_email=data.email,
        )
        service_name = db.query(Service.name).filter(Service.id == booking.service_id).scalar() or 'your service'
    except errors.BookingError as exc:
        raise_http_error(exc)
    except SQLAlchemyError:
        logger.exception('Could not load service name for booking confirmation')
        service_name = 'your service'

    response = BookingResponse.model_validate(booking)

    # Runs after the response is sent; failures are logged inside and never reach the customer.
    background_tasks.add_task(
        notify_booking_confirmed,
        notifier,
        to_address=response.customer_email,
        customer_name=response.customer_name,
        service_name=service_name,
        starts_at=response.starts_at,
        ends_at=response.ends_at,
        cancel_token=response.cancel_token,
    )

    return response


@router.get('/cancel', response_model=BookingActionResponse)
def cancel_booking_by_token(
    token: str | None = Query(default=None),
    db: Session = Depends(get_db),
):
    if not token or not token.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Missing token.')

    ensure_database_ready()

    try:
        booking = cancel_booking(db, token)
    except errors.BookingError as exc:
        raise_http_error(exc)

    return BookingActionResponse(ok=True, status=booking.status)


@router.post('/reschedule', response_model=BookingActionResponse)
def reschedule_booking_by_token(data: RescheduleRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        booking = reschedule_booking(db, data.token, as_local_instant(data.new_start))
    except errors.BookingError as exc:
        raise_http_error(exc)

    return BookingActionResponse(
        ok=True,
        status=booking.status,
        starts_at=booking.starts_at,
        ends_at=booking.ends_at,
    )
