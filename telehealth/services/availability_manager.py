"""
Recurring availability windows and the slots generated from them.

A provider has at most one active window per weekday. Creating a window for a
day that already has one updates that row in place rather than failing, so
re-submitting a weekly schedule is idempotent.

Slot generation is safe to repeat and to run concurrently for overlapping
ranges: candidates already in the store are filtered out up front, and the
insert itself skips any (provider, date, start) key that appeared meanwhile.
"""

import logging
from datetime import date
from typing import Iterable, Mapping

from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.core.exceptions import ConflictError, NotFoundError, ValidationError
from telehealth.database import transaction
from telehealth.models.availability import RecurringAvailability
from telehealth.models.time_slot import TimeSlot
from telehealth.repositories.scheduling_repository import SchedulingRepository
from telehealth.services.batch_operations import BatchDeactivateResult, BatchOperations
from telehealth.services.slot_generator import generate_slots, parse_time_to_minutes
from telehealth.services.slot_reconciler import filter_new_slots, partition_by_status
from telehealth.services.validation import (
    require_positive_int,
    validate_date_range,
    validate_day_of_week,
    validate_slot_duration,
    validate_time_string,
    validate_window_times,
)

logger = logging.getLogger(__name__)

UPDATABLE_WINDOW_FIELDS = ('start_time', 'end_time', 'slot_duration', 'is_active')


class AvailabilityManager:
    def __init__(self, db: Session, repository: SchedulingRepository | None = None):
        self.db = db
        self.repository = repository or SchedulingRepository(db)
        self.batch = BatchOperations(db, self.repository)

    # Windows

    def create_or_update_availability(
        self,
        provider_id: int,
        day_of_week: int,
        start_time: str,
        end_time: str,
        slot_duration: int = config.DEFAULT_SLOT_DURATION,
        is_active: bool = True,
    ) -> RecurringAvailability:
        provider_id = require_positive_int(provider_id, 'providerId')
        day_of_week = validate_day_of_week(day_of_week)
        start_time, end_time = validate_window_times(start_time, end_time)
        slot_duration = validate_slot_duration(slot_duration)

        with transaction(self.db):
            window = self.repository.upsert_window(
                provider_id,
                day_of_week,
                start_time,
                end_time,
                slot_duration,
                bool(is_active),
            )

        logger.info(
            'Saved availability %s for provider %s day %s (%s-%s every %s min)',
            window.id,
            provider_id,
            day_of_week,
            start_time,
            end_time,
            slot_duration,
        )
        return window

    def list_active_for_provider(self, provider_id: int) -> list[RecurringAvailability]:
        return self.repository.find_windows(provider_id=provider_id)

    def list_all_active(self) -> list[RecurringAvailability]:
        return self.repository.find_windows()

    def get_availability(self, availability_id: int) -> RecurringAvailability:
        window = self.repository.get_window(availability_id)
        if window is None:
            raise NotFoundError('Availability not found', details={'availability_id': availability_id})
        return window

    def update_availability(self, availability_id: int, **fields) -> RecurringAvailability:
        unknown = set(fields) - set(UPDATABLE_WINDOW_FIELDS)
        if unknown:
            raise ValidationError('Unsupported availability fields', details={'fields': sorted(unknown)})

        changes = {name: value for name, value in fields.items() if value is not None}
        if 'slot_duration' in changes:
            validate_slot_duration(changes['slot_duration'])
        if 'start_time' in changes:
            changes['start_time'] = validate_time_string(changes['start_time'], 'startTime')
        if 'end_time' in changes:
            changes['end_time'] = validate_time_string(changes['end_time'], 'endTime')

        window = self.get_availability(availability_id)

        start_time = changes.get('start_time', window.start_time)
        end_time = changes.get('end_time', window.end_time)
        if 'start_time' in changes or 'end_time' in changes:
            validate_window_times(start_time, end_time)

        if changes.get('is_active') and not window.is_active:
            self._ensure_day_free(window)

        with transaction(self.db):
            self.repository.update_window(window, changes)

        return window

    def deactivate(self, availability_id: int) -> RecurringAvailability:
        """Soft-delete a window. Slots it already produced are left alone."""
        window = self.get_availability(availability_id)
        if not window.is_active:
            return window

        with transaction(self.db):
            self.repository.update_window(window, {'is_active': False})

        logger.info('Deactivated availability %s', availability_id)
        return window

    def reactivate(self, availability_id: int) -> RecurringAvailability:
        window = self.get_availability(availability_id)
        if window.is_active:
            return window

        self._ensure_day_free(window)
        with transaction(self.db):
            self.repository.update_window(window, {'is_active': True})

        logger.info('Reactivated availability %s', availability_id)
        return window

    def _ensure_day_free(self, window: RecurringAvailability) -> None:
        current = self.repository.find_active_window(window.provider_id, window.day_of_week)
        if current is not None and current.id != window.id:
            raise ConflictError(
                'Another availability is already active for this day',
                details={'availability_id': current.id, 'day_of_week': window.day_of_week},
            )

    # Bulk edits

    def batch_deactivate(self, provider_id, days_of_week, today: date | None = None) -> BatchDeactivateResult:
        return self.batch.batch_deactivate(provider_id, days_of_week, today=today)

    def batch_create(self, items: Iterable[Mapping] | None) -> list[RecurringAvailability]:
        return self.batch.batch_create(items)

    # Slots

    def generate_time_slots(self, provider_id: int, start_date: date, end_date: date) -> list[TimeSlot]:
        provider_id = require_positive_int(provider_id, 'providerId')
        start_date, end_date = validate_date_range(start_date, end_date, config.SLOT_HORIZON_DAYS)

        windows = self.list_active_for_provider(provider_id)
        if not windows:
            logger.info('Provider %s has no active availability; nothing to generate', provider_id)
            return self.repository.find_slots(provider_id, (start_date, end_date))

        candidates = generate_slots(provider_id, windows, start_date, end_date)
        existing = self.repository.find_slots(provider_id, (start_date, end_date))
        new_slots = filter_new_slots(candidates, existing)
        bookable, booked = partition_by_status(existing)

        with transaction(self.db):
            inserted = self.repository.bulk_insert_slots([slot.as_row() for slot in new_slots])

        logger.info(
            'Generated slots for provider %s %s..%s: %s candidates, %s existing (%s available, %s booked), %s inserted',
            provider_id,
            start_date,
            end_date,
            len(candidates),
            len(existing),
            len(bookable),
            len(booked),
            inserted,
        )

        return self.repository.find_slots(provider_id, (start_date, end_date))


def window_slot_count(window: RecurringAvailability) -> int:
    """Number of whole slots one occurrence of ``window`` produces."""
    start = parse_time_to_minutes(window.start_time)
    end = parse_time_to_minutes(window.end_time)
    if start is None or end is None or not window.slot_duration or window.slot_duration <= 0:
        return 0
    return max(end - start, 0) // window.slot_duration
