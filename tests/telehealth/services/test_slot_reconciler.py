from datetime import date
from types import SimpleNamespace

from telehealth.services.slot_generator import SlotCandidate, generate_slots_for_day
from telehealth.services.slot_reconciler import filter_new_slots, key_of, partition_by_status, slot_key

TUESDAY = date(2030, 1, 1)


def _persisted(start_time: str, status: str = 'AVAILABLE', provider_id: int = 7, slot_date: date = TUESDAY):
    return SimpleNamespace(provider_id=provider_id, date=slot_date, start_time=start_time, status=status)


def test_slot_key_matches_for_candidates_and_rows() -> None:
    candidate = SlotCandidate(provider_id=7, date=TUESDAY, start_time='09:00', end_time='09:30')

    assert key_of(candidate) == slot_key(7, TUESDAY, '09:00')
    assert key_of(_persisted('09:00')) == candidate.key


def test_filter_new_slots_drops_existing_keys_and_keeps_order() -> None:
    candidates = generate_slots_for_day(7, TUESDAY, '09:00', '11:00', 30)
    existing = [_persisted('09:30'), _persisted('10:30', status='BOOKED')]

    new_slots = filter_new_slots(candidates, existing)

    assert [slot.start_time for slot in new_slots] == ['09:00', '10:00']


def test_filter_new_slots_treats_other_providers_and_dates_as_distinct() -> None:
    candidates = generate_slots_for_day(7, TUESDAY, '09:00', '10:00', 30)
    existing = [_persisted('09:00', provider_id=8), _persisted('09:00', slot_date=date(2030, 1, 8))]

    assert filter_new_slots(candidates, existing) == candidates


def test_filter_new_slots_collapses_duplicate_candidates() -> None:
    candidates = generate_slots_for_day(7, TUESDAY, '09:00', '10:00', 30) * 2

    new_slots = filter_new_slots(candidates, [])

    assert [slot.start_time for slot in new_slots] == ['09:00', '09:30']


def test_filter_new_slots_does_not_mutate_inputs() -> None:
    candidates = generate_slots_for_day(7, TUESDAY, '09:00', '10:00', 30)
    existing = [_persisted('09:00')]
    candidates_before = list(candidates)
    existing_before = list(existing)

    filter_new_slots(candidates, existing)

    assert candidates == candidates_before
    assert existing == existing_before


def test_partition_by_status_separates_bookable_and_booked() -> None:
    slots = [_persisted('09:00'), _persisted('09:30', 'BOOKED'), _persisted('10:00', 'BLOCKED')]

    bookable, booked = partition_by_status(slots)

    assert [slot.start_time for slot in bookable] == ['09:00']
    assert [slot.start_time for slot in booked] == ['09:30']
