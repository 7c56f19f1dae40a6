"""
Read-only slot listings.

These back availability displays, so a failing read degrades to an empty list
instead of breaking the page. Failures are still logged with a traceback.
"""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from telehealth.core import config
from telehealth.models.time_slot import SlotStatus, TimeSlot
from telehealth.repositories.scheduling_repository import SchedulingRepository

logger = logging.getLogger(__name__)


def _as_date(value) -> date | None:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return None


def is_upcoming(slot, now: datetime) -> bool:
    """True when the slot starts strictly after ``now`` (local wall-clock time)."""
    today = now.date()
    if slot.date > today:
        return True
    if slot.date == today:
        return slot.start_time > now.strftime('%H:%M')
    return False


class SlotQueryService:
    def __init__(self, db: Session, repository: SchedulingRepository | None = None):
        self.db = db
        self.repository = repository or SchedulingRepository(db)

    def get_available_slots(self, provider_id: int, start, end, now: datetime | None = None) -> list[TimeSlot]:
        now = now or datetime.now()
        try:
            start_date = _as_date(start)
            end_date = _as_date(end)
            if start_date is None or end_date is None:
                logger.warning('Available slot lookup for provider %s with invalid range %r..%r', provider_id, start, end)
                return []

            slots = self.repository.find_slots(
                provider_id,
                (start_date, end_date),
                status_filter=(SlotStatus.AVAILABLE.value,),
            )
            return [slot for slot in slots if is_upcoming(slot, now)]
        except Exception:
            logger.exception('Error getting available slots for provider %s', provider_id)
            self.db.rollback()
            return []

    def get_slots_for_provider(
        self,
        provider_id: int,
        start=None,
        end=None,
        now: datetime | None = None,
    ) -> list[TimeSlot]:
        now = now or datetime.now()
        try:
            start_date = _as_date(start) or now.date()
            end_date = _as_date(end) or start_date + timedelta(days=config.DEFAULT_SLOT_QUERY_DAYS)
            return self.repository.find_slots(provider_id, (start_date, end_date))
        except Exception:
            logger.exception('Error getting slots for provider %s', provider_id)
            self.db.rollback()
            return []

    def list_all_slots_for_provider(self, provider_id: int) -> list[TimeSlot]:
        """Every slot the provider owns, without date filtering. Diagnostic use."""
        try:
            return self.repository.find_slots(provider_id)
        except Exception:
            logger.exception('Error listing all slots for provider %s', provider_id)
            self.db.rollback()
            return []
