"""Filtering of generated slot candidates against persisted slots."""

from datetime import date
from typing import Iterable

from telehealth.models.time_slot import SlotStatus


def slot_key(provider_id: int, slot_date: date, start_time: str) -> tuple[int, date, str]:
    return (provider_id, slot_date, start_time)


def key_of(slot) -> tuple[int, date, str]:
    return slot_key(slot.provider_id, slot.date, slot.start_time)


def filter_new_slots(candidates: Iterable, existing: Iterable) -> list:
    """Return the candidates whose identity key is not already taken, in input order."""
    seen = {key_of(slot) for slot in existing}

    new_slots = []
    for candidate in candidates:
        key = key_of(candidate)
        if key in seen:
            continue
        seen.add(key)
        new_slots.append(candidate)

    return new_slots


def partition_by_status(slots: Iterable) -> tuple[list, list]:
    """Split slots into (bookable, booked); blocked slots land in neither."""
    bookable = []
    booked = []
    for slot in slots:
        if slot.status == SlotStatus.AVAILABLE.value:
            bookable.append(slot)
        elif slot.status == SlotStatus.BOOKED.value:
            booked.append(slot)

    return bookable, booked
