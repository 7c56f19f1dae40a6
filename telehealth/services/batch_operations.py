"""
Bulk edits used by the administrative schedule editor.

``batch_deactivate`` turns off whole weekdays for a provider and clears the
slots those weekdays produced over the generation horizon. Booked slots are
never removed; their ids are reported back so the caller can follow up with
the affected consultations.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Iterable, Mapping

from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.core.exceptions import ValidationError
from telehealth.database import transaction
from telehealth.models.availability import RecurringAvailability
from telehealth.models.time_slot import SlotStatus
from telehealth.repositories.scheduling_repository import SchedulingRepository
from telehealth.services.slot_generator import day_of_week_index, iterate_days
from telehealth.services.validation import coerce_int, require_positive_int

logger = logging.getLogger(__name__)

TRUTHY_STRINGS = {'1', 'true', 'yes', 'on'}


@dataclass
class BatchDeactivateResult:
    deactivated_availabilities: int = 0
    deleted_time_slots: int = 0
    skipped_booked_slot_ids: list[int] = field(default_factory=list)

    @property
    def skipped_booked_slots(self) -> int:
        return len(self.skipped_booked_slot_ids)

    def as_dict(self) -> dict:
        return {
            'deactivatedAvailabilities': self.deactivated_availabilities,
            'deletedTimeSlots': self.deleted_time_slots,
            'skippedBookedSlots': self.skipped_booked_slots,
            'skippedBookedSlotIds': list(self.skipped_booked_slot_ids),
        }


def normalize_days(days_of_week: Iterable) -> list[int]:
    valid_days = set()
    for value in days_of_week:
        day = coerce_int(value)
        if day is not None and 0 <= day <= 6:
            valid_days.add(day)
    return sorted(valid_days)


def horizon_dates(days: Iterable[int], today: date, horizon_days: int) -> list[date]:
    """Every date in ``[today, today + horizon_days]`` falling on one of ``days`` (Sunday=0)."""
    wanted = set(days)
    return [
        day
        for day in iterate_days(today, today + timedelta(days=horizon_days))
        if day_of_week_index(day) in wanted
    ]


def _pick(item: Mapping, *names):
    for name in names:
        if name in item:
            return item[name]
    return None


def _coerce_bool(value, default: bool = True) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in TRUTHY_STRINGS
    return bool(value)


def sanitize_window_item(item: Mapping) -> dict | None:
    """Normalize one batch-create payload; ``None`` means the item is dropped."""
    provider_id = coerce_int(_pick(item, 'provider_id', 'providerId', 'practitionerId'))
    day_of_week = coerce_int(_pick(item, 'day_of_week', 'dayOfWeek'))

    if provider_id is None or provider_id <= 0:
        return None
    if day_of_week is None or not 0 <= day_of_week <= 6:
        return None

    raw_duration = _pick(item, 'slot_duration', 'slotDuration')
    slot_duration = coerce_int(raw_duration) if raw_duration else config.DEFAULT_SLOT_DURATION
    if slot_duration is None or slot_duration <= 0:
        return None

    return {
        'provider_id': provider_id,
        'day_of_week': day_of_week,
        'start_time': str(_pick(item, 'start_time', 'startTime') or '').strip(),
        'end_time': str(_pick(item, 'end_time', 'endTime') or '').strip(),
        'slot_duration': slot_duration,
        'is_active': _coerce_bool(_pick(item, 'is_active', 'isActive')),
    }


class BatchOperations:
    def __init__(self, db: Session, repository: SchedulingRepository | None = None):
        self.db = db
        self.repository = repository or SchedulingRepository(db)

    def batch_deactivate(self, provider_id, days_of_week, today: date | None = None) -> BatchDeactivateResult:
        provider_id = require_positive_int(coerce_int(provider_id), 'providerId')

        if not days_of_week:
            return BatchDeactivateResult()

        valid_days = normalize_days(days_of_week)
        if not valid_days:
            raise ValidationError(
                'daysOfWeek must contain integers between 0 and 6',
                details={'days_of_week': list(days_of_week)},
            )

        today = today or date.today()
        dates = horizon_dates(valid_days, today, config.SLOT_HORIZON_DAYS)

        with transaction(self.db):
            deactivated = self.repository.bulk_update_windows_inactive(provider_id, valid_days)
            deleted = self.repository.bulk_delete_slots(provider_id, dates, SlotStatus.BOOKED.value)
            # Whatever is still booked on those dates survived the delete.
            skipped_ids = self.repository.find_slot_ids_on_dates(provider_id, dates, SlotStatus.BOOKED.value)

        logger.info(
            'Batch deactivate provider=%s days=%s: %s windows off, %s slots deleted, %s booked slots kept',
            provider_id,
            valid_days,
            deactivated,
            deleted,
            len(skipped_ids),
        )

        return BatchDeactivateResult(
            deactivated_availabilities=deactivated,
            deleted_time_slots=deleted,
            skipped_booked_slot_ids=skipped_ids,
        )

    def batch_create(self, items: Iterable[Mapping] | None) -> list[RecurringAvailability]:
        if not items:
            return []

        sanitized = [row for row in (sanitize_window_item(item) for item in items) if row is not None]
        if not sanitized:
            logger.info('Batch create received no usable availability items')
            return []

        with transaction(self.db):
            inserted = self.repository.bulk_insert_windows(sanitized, skip_duplicates=True)

        affected: dict[int, set[int]] = {}
        for row in sanitized:
            affected.setdefault(row['provider_id'], set()).add(row['day_of_week'])

        logger.info(
            'Batch create: %s of %s availability items inserted for providers %s',
            inserted,
            len(sanitized),
            sorted(affected),
        )

        windows: list[RecurringAvailability] = []
        for provider_id in sorted(affected):
            windows.extend(self.repository.find_windows(provider_id=provider_id, days=affected[provider_id]))
        return windows
