"""
Data access for recurring availability windows and time slots.

This is the only module that talks to the database. It flushes but never
commits; services own the transaction.

Writes that must stay correct under concurrent requests are expressed as a
single statement the database evaluates atomically:

- slot inserts use ``INSERT ... ON CONFLICT DO NOTHING`` against the
  (provider_id, date, start_time) unique index
- status transitions are ``UPDATE ... WHERE status IN (...)``
- cleanup deletes are ``DELETE ... WHERE status != 'BOOKED'``
"""

import logging
from datetime import date
from typing import Iterable, Sequence

from sqlalchemy import insert
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from telehealth.models.availability import RecurringAvailability
from telehealth.models.time_slot import TimeSlot

logger = logging.getLogger(__name__)

INSERT_CHUNK_SIZE = 100


def _chunks(items: Sequence[dict], size: int) -> Iterable[Sequence[dict]]:
    for index in range(0, len(items), size):
        yield items[index:index + size]


class SchedulingRepository:
    def __init__(self, db: Session):
        self.db = db

    @property
    def _dialect(self) -> str:
        return self.db.get_bind().dialect.name

    # Recurring windows

    def get_window(self, window_id: int) -> RecurringAvailability | None:
        return self.db.query(RecurringAvailability).filter(RecurringAvailability.id == window_id).first()

    def find_active_window(self, provider_id: int, day_of_week: int) -> RecurringAvailability | None:
        return self.db.query(RecurringAvailability).filter(
            RecurringAvailability.provider_id == provider_id,
            RecurringAvailability.day_of_week == day_of_week,
            RecurringAvailability.is_active.is_(True),
        ).first()

    def find_windows(
        self,
        provider_id: int | None = None,
        days: Iterable[int] | None = None,
        active_only: bool = True,
    ) -> list[RecurringAvailability]:
        query = self.db.query(RecurringAvailability)
        if provider_id is not None:
            query = query.filter(RecurringAvailability.provider_id == provider_id)
        if days is not None:
            query = query.filter(RecurringAvailability.day_of_week.in_(list(days)))
        if active_only:
            query = query.filter(RecurringAvailability.is_active.is_(True))

        return query.order_by(
            RecurringAvailability.provider_id.asc(),
            RecurringAvailability.day_of_week.asc(),
            RecurringAvailability.id.asc(),
        ).all()

    def upsert_window(
        self,
        provider_id: int,
        day_of_week: int,
        start_time: str,
        end_time: str,
        slot_duration: int,
        is_active: bool,
    ) -> RecurringAvailability:
        """Update the day's active window in place, or insert one if the day has none."""
        fields = {
            'start_time': start_time,
            'end_time': end_time,
            'slot_duration': slot_duration,
            'is_active': is_active,
        }

        existing = self.find_active_window(provider_id, day_of_week)
        if existing is not None:
            return self._apply(existing, fields)

        window = RecurringAvailability(provider_id=provider_id, day_of_week=day_of_week, **fields)
        self.db.add(window)
        try:
            self.db.flush()
        except IntegrityError:
            # Another request activated a window for this day after our lookup.
            # The upsert is the only write in its transaction, so a full rollback is safe.
            self.db.rollback()
            logger.info('Active window for provider %s day %s appeared concurrently; updating it', provider_id, day_of_week)
            existing = self.find_active_window(provider_id, day_of_week)
            if existing is None:
                raise
            return self._apply(existing, fields)

        return window

    def update_window(self, window: RecurringAvailability, fields: dict) -> RecurringAvailability:
        return self._apply(window, fields)

    def _apply(self, window: RecurringAvailability, fields: dict) -> RecurringAvailability:
        for name, value in fields.items():
            setattr(window, name, value)
        self.db.flush()
        return window

    def bulk_insert_windows(self, items: Sequence[dict], skip_duplicates: bool = True) -> int:
        """
        Insert windows; with ``skip_duplicates`` a row that would give a day a
        second active window is silently dropped instead of failing the batch.
        """
        if not items:
            return 0

        if not skip_duplicates:
            self.db.execute(insert(RecurringAvailability), list(items))
            self.db.flush()
            return len(items)

        return self._insert_ignoring_conflicts(RecurringAvailability, items)

    def bulk_update_windows_inactive(self, provider_id: int, days: Iterable[int]) -> int:
        return self.db.query(RecurringAvailability).filter(
            RecurringAvailability.provider_id == provider_id,
            RecurringAvailability.day_of_week.in_(list(days)),
            RecurringAvailability.is_active.is_(True),
        ).update({RecurringAvailability.is_active: False}, synchronize_session=False)

    # Time slots

    def get_slot(self, slot_id: int) -> TimeSlot | None:
        return self.db.query(TimeSlot).populate_existing().filter(TimeSlot.id == slot_id).first()

    def find_slots(
        self,
        provider_id: int,
        date_range: tuple[date, date] | None = None,
        status_filter: Iterable[str] | None = None,
    ) -> list[TimeSlot]:
        query = self.db.query(TimeSlot).populate_existing().filter(TimeSlot.provider_id == provider_id)
        if date_range is not None:
            start, end = date_range
            query = query.filter(TimeSlot.date >= start, TimeSlot.date <= end)
        if status_filter is not None:
            query = query.filter(TimeSlot.status.in_(list(status_filter)))

        return query.order_by(TimeSlot.date.asc(), TimeSlot.start_time.asc()).all()

    def find_slot_ids_on_dates(self, provider_id: int, dates: Sequence[date], status: str) -> list[int]:
        if not dates:
            return []

        rows = self.db.query(TimeSlot.id).filter(
            TimeSlot.provider_id == provider_id,
            TimeSlot.date.in_(list(dates)),
            TimeSlot.status == status,
        ).order_by(TimeSlot.id.asc()).all()
        return [row.id for row in rows]

    def bulk_insert_slots(self, items: Sequence[dict]) -> int:
        """Insert slots whose (provider, date, start) key is free; returns rows inserted."""
        if not items:
            return 0
        return self._insert_ignoring_conflicts(TimeSlot, items)

    def bulk_delete_slots(self, provider_id: int, dates: Sequence[date], exclude_status: str) -> int:
        if not dates:
            return 0

        return self.db.query(TimeSlot).filter(
            TimeSlot.provider_id == provider_id,
            TimeSlot.date.in_(list(dates)),
            TimeSlot.status != exclude_status,
        ).delete(synchronize_session=False)

    def conditional_update_slot_status(
        self,
        slot_id: int,
        from_statuses: Iterable[str],
        to_fields: dict,
        provider_id: int | None = None,
    ) -> bool:
        """Compare-and-set: apply ``to_fields`` only while the slot is in one of ``from_statuses``."""
        query = self.db.query(TimeSlot).filter(
            TimeSlot.id == slot_id,
            TimeSlot.status.in_(list(from_statuses)),
        )
        if provider_id is not None:
            query = query.filter(TimeSlot.provider_id == provider_id)

        updated = query.update(to_fields, synchronize_session=False)
        return updated == 1

    def conditional_delete_slot(self, slot_id: int, provider_id: int, from_statuses: Iterable[str]) -> bool:
        deleted = self.db.query(TimeSlot).filter(
            TimeSlot.id == slot_id,
            TimeSlot.provider_id == provider_id,
            TimeSlot.status.in_(list(from_statuses)),
        ).delete(synchronize_session=False)
        return deleted == 1

    def find_owned_slot(self, slot_id: int, provider_id: int) -> TimeSlot | None:
        return self.db.query(TimeSlot).populate_existing().filter(
            TimeSlot.id == slot_id,
            TimeSlot.provider_id == provider_id,
        ).first()

    def _insert_ignoring_conflicts(self, model, items: Sequence[dict]) -> int:
        rows = list(items)
        dialect = self._dialect

        if dialect in ('postgresql', 'sqlite'):
            dialect_insert = pg_insert if dialect == 'postgresql' else sqlite_insert
            inserted = 0
            for chunk in _chunks(rows, INSERT_CHUNK_SIZE):
                stmt = dialect_insert(model).values(list(chunk)).on_conflict_do_nothing()
                result = self.db.execute(stmt)
                inserted += max(result.rowcount or 0, 0)
            self.db.flush()
            return inserted

        # Generic fallback: one savepoint per row so a clash only drops that row.
        inserted = 0
        for row in rows:
            try:
                with self.db.begin_nested():
                    self.db.execute(insert(model).values(**row))
                inserted += 1
            except IntegrityError:
                continue
        self.db.flush()
        return inserted
