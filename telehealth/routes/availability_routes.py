from contextlib import contextmanager
from datetime import date

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.core.exceptions import SchedulingError
from telehealth.core.rate_limit import SlidingWindowRateLimiter, enforce_slot_list_limit, get_slot_list_limiter
from telehealth.database import ensure_scheduling_schema, get_db
from telehealth.models.availability import RecurringAvailability
from telehealth.services.availability_manager import AvailabilityManager, window_slot_count
from telehealth.services.slot_booking import SlotBookingManager
from telehealth.services.slot_queries import SlotQueryService

router = APIRouter(tags=['availability'])

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'


class CreateAvailabilityRequest(BaseModel):
    provider_id: int
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int = config.DEFAULT_SLOT_DURATION
    is_active: bool = True

    @field_validator('start_time', 'end_time')
    @classmethod
    def strip_time(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Start time and end time are required.')
        return normalized


class UpdateAvailabilityRequest(BaseModel):
    start_time: str | None = None
    end_time: str | None = None
    slot_duration: int | None = None
    is_active: bool | None = None


class BatchDeactivateRequest(BaseModel):
    provider_id: int
    days_of_week: list[int | str] = Field(default_factory=list)


class BatchCreateRequest(BaseModel):
    availabilities: list[dict]

    @field_validator('availabilities')
    @classmethod
    def require_items(cls, value: list[dict]) -> list[dict]:
        if not value:
            raise ValueError('availabilities array is required')
        return value


class GenerateSlotsRequest(BaseModel):
    start_date: date
    end_date: date


class BookSlotRequest(BaseModel):
    consultation_id: int


class UpdateSlotStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().upper()


class AvailabilityResponse(BaseModel):
    id: int
    provider_id: int
    day_of_week: int
    start_time: str
    end_time: str
    slot_duration: int
    is_active: bool
    slots_per_day: int = 0

    model_config = ConfigDict(from_attributes=True)

    @classmethod
    def from_window(cls, window: RecurringAvailability) -> 'AvailabilityResponse':
        response = cls.model_validate(window)
        response.slots_per_day = window_slot_count(window)
        return response


class TimeSlotResponse(BaseModel):
    id: int
    provider_id: int
    date: date
    start_time: str
    end_time: str
    status: str
    consultation_id: int | None = None

    model_config = ConfigDict(from_attributes=True)


class BatchDeactivateResponse(BaseModel):
    deactivated_availabilities: int = Field(serialization_alias='deactivatedAvailabilities')
    deleted_time_slots: int = Field(serialization_alias='deletedTimeSlots')
    skipped_booked_slots: int = Field(serialization_alias='skippedBookedSlots')
    skipped_booked_slot_ids: list[int] = Field(serialization_alias='skippedBookedSlotIds')


def ensure_database_ready() -> None:
    try:
        ensure_scheduling_schema()
    except SQLAlchemyError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


@contextmanager
def service_errors(db: Session):
    try:
        yield
    except SchedulingError as exc:
        raise exc.to_http_exception() from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=DATABASE_UNAVAILABLE_DETAIL,
        ) from exc


def _windows(windows: list[RecurringAvailability]) -> list[AvailabilityResponse]:
    return [AvailabilityResponse.from_window(window) for window in windows]


@router.post('', response_model=AvailabilityResponse, status_code=status.HTTP_201_CREATED)
def create_availability(data: CreateAvailabilityRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        window = AvailabilityManager(db).create_or_update_availability(
            data.provider_id,
            data.day_of_week,
            data.start_time,
            data.end_time,
            data.slot_duration,
            data.is_active,
        )
        return AvailabilityResponse.from_window(window)


@router.get('/all', response_model=list[AvailabilityResponse])
def list_all_availability(db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return _windows(AvailabilityManager(db).list_all_active())


@router.get('/provider/{provider_id}', response_model=list[AvailabilityResponse])
def list_provider_availability(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return _windows(AvailabilityManager(db).list_active_for_provider(provider_id))


@router.post('/batch-deactivate', response_model=BatchDeactivateResponse)
def batch_deactivate(data: BatchDeactivateRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        result = AvailabilityManager(db).batch_deactivate(data.provider_id, data.days_of_week)
        return BatchDeactivateResponse(
            deactivated_availabilities=result.deactivated_availabilities,
            deleted_time_slots=result.deleted_time_slots,
            skipped_booked_slots=result.skipped_booked_slots,
            skipped_booked_slot_ids=result.skipped_booked_slot_ids,
        )


@router.post('/batch-create', response_model=list[AvailabilityResponse], status_code=status.HTTP_201_CREATED)
def batch_create(data: BatchCreateRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return _windows(AvailabilityManager(db).batch_create(data.availabilities))


@router.post(
    '/generate-slots/{provider_id}',
    response_model=list[TimeSlotResponse],
    status_code=status.HTTP_201_CREATED,
)
def generate_slots(provider_id: int, data: GenerateSlotsRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return AvailabilityManager(db).generate_time_slots(provider_id, data.start_date, data.end_date)


@router.get('/slots/available', response_model=list[TimeSlotResponse])
def list_available_slots(
    provider_id: int = Query(...),
    start_date: date = Query(...),
    end_date: date = Query(...),
    db: Session = Depends(get_db),
    limiter: SlidingWindowRateLimiter = Depends(get_slot_list_limiter),
):
    enforce_slot_list_limit(limiter, provider_id)
    ensure_database_ready()

    return SlotQueryService(db).get_available_slots(provider_id, start_date, end_date)


@router.get('/slots/{provider_id}', response_model=list[TimeSlotResponse])
def list_provider_slots(
    provider_id: int,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    limiter: SlidingWindowRateLimiter = Depends(get_slot_list_limiter),
):
    enforce_slot_list_limit(limiter, provider_id)
    ensure_database_ready()

    return SlotQueryService(db).get_slots_for_provider(provider_id, start_date, end_date)


@router.get('/slots/{provider_id}/all', response_model=list[TimeSlotResponse])
def list_all_provider_slots(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    return SlotQueryService(db).list_all_slots_for_provider(provider_id)


@router.post('/slots/{slot_id}/book', response_model=TimeSlotResponse)
def book_slot(slot_id: int, data: BookSlotRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return SlotBookingManager(db).book(slot_id, data.consultation_id)


@router.post('/slots/{slot_id}/release', response_model=TimeSlotResponse)
def release_slot(slot_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return SlotBookingManager(db).release(slot_id)


@router.patch('/slots/{slot_id}', response_model=TimeSlotResponse)
def update_slot_status(
    slot_id: int,
    data: UpdateSlotStatusRequest,
    provider_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        return SlotBookingManager(db).set_status(slot_id, data.status, provider_id)


@router.delete('/slots/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_slot(
    slot_id: int,
    provider_id: int = Query(...),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    with service_errors(db):
        SlotBookingManager(db).delete_slot(slot_id, provider_id)


@router.get('/{availability_id}', response_model=AvailabilityResponse)
def get_availability(availability_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return AvailabilityResponse.from_window(AvailabilityManager(db).get_availability(availability_id))


@router.patch('/{availability_id}', response_model=AvailabilityResponse)
def update_availability(availability_id: int, data: UpdateAvailabilityRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        window = AvailabilityManager(db).update_availability(
            availability_id,
            **data.model_dump(exclude_none=True),
        )
        return AvailabilityResponse.from_window(window)


@router.delete('/{availability_id}', response_model=AvailabilityResponse)
def remove_availability(availability_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return AvailabilityResponse.from_window(AvailabilityManager(db).deactivate(availability_id))


@router.post('/{availability_id}/reactivate', response_model=AvailabilityResponse)
def reactivate_availability(availability_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()

    with service_errors(db):
        return AvailabilityResponse.from_window(AvailabilityManager(db).reactivate(availability_id))
