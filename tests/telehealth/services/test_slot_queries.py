from datetime import date, datetime, timedelta

from sqlalchemy.exc import OperationalError

from telehealth.models.time_slot import SlotStatus
from telehealth.repositories.scheduling_repository import SchedulingRepository
from telehealth.services.slot_queries import SlotQueryService, is_upcoming

TUESDAY = date(2030, 1, 1)


def test_is_upcoming_compares_date_then_start_time(make_slot) -> None:
    slot = make_slot(start_time='10:00', end_time='10:30')

    assert is_upcoming(slot, datetime(2029, 12, 31, 23, 0)) is True
    assert is_upcoming(slot, datetime(2030, 1, 1, 9, 59)) is True
    assert is_upcoming(slot, datetime(2030, 1, 1, 10, 0)) is False
    assert is_upcoming(slot, datetime(2030, 1, 2, 8, 0)) is False


def test_available_slots_exclude_booked_blocked_and_past(db_session, make_slot) -> None:
    make_slot(start_time='08:00', end_time='08:30')
    make_slot(start_time='10:00', end_time='10:30')
    make_slot(start_time='10:30', end_time='11:00', status=SlotStatus.BOOKED, consultation_id=3)
    make_slot(start_time='11:00', end_time='11:30', status=SlotStatus.BLOCKED)
    make_slot(slot_date=date(2030, 1, 2), start_time='08:00', end_time='08:30')

    slots = SlotQueryService(db_session).get_available_slots(
        7,
        TUESDAY,
        date(2030, 1, 2),
        now=datetime(2030, 1, 1, 9, 0),
    )

    assert [(slot.date, slot.start_time) for slot in slots] == [
        (TUESDAY, '10:00'),
        (date(2030, 1, 2), '08:00'),
    ]


def test_available_slots_accept_datetime_bounds(db_session, make_slot) -> None:
    make_slot()

    slots = SlotQueryService(db_session).get_available_slots(
        7,
        datetime(2030, 1, 1, 0, 0),
        datetime(2030, 1, 1, 23, 59),
        now=datetime(2029, 1, 1, 0, 0),
    )

    assert len(slots) == 1


def test_available_slots_with_missing_bounds_are_empty(db_session, make_slot) -> None:
    make_slot()

    assert SlotQueryService(db_session).get_available_slots(7, None, TUESDAY) == []


def test_available_slots_swallow_storage_errors(db_session, make_slot, monkeypatch) -> None:
    make_slot()

    def broken_find_slots(self, *args, **kwargs):
        raise OperationalError('SELECT', {}, Exception('database is gone'))

    monkeypatch.setattr(SchedulingRepository, 'find_slots', broken_find_slots)

    service = SlotQueryService(db_session)
    assert service.get_available_slots(7, TUESDAY, TUESDAY, now=datetime(2029, 1, 1)) == []
    assert service.get_slots_for_provider(7, TUESDAY, TUESDAY) == []
    assert service.list_all_slots_for_provider(7) == []


def test_slots_for_provider_default_to_thirty_days_from_today(db_session, make_slot) -> None:
    now = datetime(2030, 1, 1, 12, 0)
    make_slot(slot_date=TUESDAY, status=SlotStatus.BOOKED, consultation_id=1)
    make_slot(slot_date=TUESDAY + timedelta(days=30), start_time='09:00', end_time='09:30')
    make_slot(slot_date=TUESDAY + timedelta(days=31), start_time='09:00', end_time='09:30')
    make_slot(slot_date=TUESDAY - timedelta(days=1), start_time='09:00', end_time='09:30')

    slots = SlotQueryService(db_session).get_slots_for_provider(7, now=now)

    assert [slot.date for slot in slots] == [TUESDAY, TUESDAY + timedelta(days=30)]
    assert slots[0].status == SlotStatus.BOOKED.value


def test_slots_for_provider_default_end_follows_explicit_start(db_session, make_slot) -> None:
    start = date(2030, 3, 1)
    make_slot(slot_date=start + timedelta(days=30))
    make_slot(slot_date=start + timedelta(days=31))

    slots = SlotQueryService(db_session).get_slots_for_provider(7, start=start, now=datetime(2030, 1, 1))

    assert [slot.date for slot in slots] == [start + timedelta(days=30)]


def test_list_all_slots_for_provider_has_no_date_filter(db_session, make_slot) -> None:
    make_slot(slot_date=date(2020, 1, 1))
    make_slot(slot_date=date(2040, 1, 1))
    make_slot(provider_id=8)

    slots = SlotQueryService(db_session).list_all_slots_for_provider(7)

    assert [slot.date for slot in slots] == [date(2020, 1, 1), date(2040, 1, 1)]
