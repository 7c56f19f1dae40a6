"""
Expansion of recurring weekly availability windows into calendar slots.

Everything here is pure: no session, no clock. Callers load the windows and
persist the result.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Iterable

from telehealth.models.time_slot import SlotStatus

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60


@dataclass(frozen=True)
class SlotCandidate:
    provider_id: int
    date: date
    start_time: str
    end_time: str
    status: str = SlotStatus.AVAILABLE.value
    consultation_id: int | None = None

    @property
    def key(self) -> tuple[int, date, str]:
        return (self.provider_id, self.date, self.start_time)

    def as_row(self) -> dict:
        return {
            'provider_id': self.provider_id,
            'date': self.date,
            'start_time': self.start_time,
            'end_time': self.end_time,
            'status': self.status,
            'consultation_id': self.consultation_id,
        }


def day_of_week_index(day: date) -> int:
    """Weekday with Sunday as 0, the numbering recurring windows are stored in."""
    return (day.weekday() + 1) % 7


def parse_time_to_minutes(value) -> int | None:
    if not isinstance(value, str):
        return None

    parts = value.strip().split(':')
    # isdigit() alone admits characters like '²' that int() rejects.
    if len(parts) != 2 or not all(part.isascii() and part.isdigit() for part in parts):
        return None

    hours, minutes = int(parts[0]), int(parts[1])
    if minutes > 59:
        return None

    total = hours * 60 + minutes
    if total > MINUTES_PER_DAY:
        return None

    return total


def format_minutes(total_minutes: int) -> str:
    hours, minutes = divmod(total_minutes, 60)
    return f'{hours:02d}:{minutes:02d}'


def iterate_days(start_date: date, end_date: date) -> Iterable[date]:
    current = start_date
    while current <= end_date:
        yield current
        current += timedelta(days=1)


def generate_slots_for_day(
    provider_id: int,
    day: date,
    start_time: str,
    end_time: str,
    slot_duration: int,
) -> list[SlotCandidate]:
    current = parse_time_to_minutes(start_time)
    day_end = parse_time_to_minutes(end_time)

    if current is None or day_end is None:
        logger.warning('Skipping %s for provider %s: invalid window %r-%r', day, provider_id, start_time, end_time)
        return []

    if not isinstance(slot_duration, int) or isinstance(slot_duration, bool) or slot_duration <= 0:
        logger.warning('Skipping %s for provider %s: invalid slot duration %r', day, provider_id, slot_duration)
        return []

    slots: list[SlotCandidate] = []
    while current + slot_duration <= day_end:
        slots.append(
            SlotCandidate(
                provider_id=provider_id,
                date=day,
                start_time=format_minutes(current),
                end_time=format_minutes(current + slot_duration),
            )
        )
        current += slot_duration

    return slots


def generate_slots(provider_id: int, windows, start_date: date, end_date: date) -> list[SlotCandidate]:
    """
    Expand the active windows over every day in ``[start_date, end_date]``.

    ``windows`` may be ORM rows or any objects exposing ``day_of_week``,
    ``start_time``, ``end_time``, ``slot_duration`` and ``is_active``. Output is
    ordered by date, then start time.
    """
    windows_by_day = {}
    for window in windows:
        if not window.is_active:
            continue
        # First active window wins if the store ever holds two for one day.
        windows_by_day.setdefault(window.day_of_week, window)

    if not windows_by_day:
        return []

    slots: list[SlotCandidate] = []
    for day in iterate_days(start_date, end_date):
        window = windows_by_day.get(day_of_week_index(day))
        if window is None:
            continue

        slots.extend(
            generate_slots_for_day(
                provider_id,
                day,
                window.start_time,
                window.end_time,
                window.slot_duration,
            )
        )

    return slots
