import threading
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from telehealth.core.exceptions import ConflictError, NotFoundError, SchedulingError, ValidationError
from telehealth.database import Base, init_database
from telehealth.models.time_slot import SlotStatus, TimeSlot
from telehealth.services.slot_booking import NOT_OWNED_MESSAGE, SlotBookingManager, normalize_provider_status

TUESDAY = date(2030, 1, 1)


def test_book_marks_slot_booked_with_consultation(db_session, make_slot) -> None:
    slot = make_slot()

    booked = SlotBookingManager(db_session).book(slot.id, 501)

    assert booked.status == SlotStatus.BOOKED.value
    assert booked.consultation_id == 501


def test_book_twice_conflicts_and_keeps_first_consultation(db_session, make_slot) -> None:
    slot = make_slot()
    manager = SlotBookingManager(db_session)
    manager.book(slot.id, 501)

    with pytest.raises(ConflictError) as exception_info:
        manager.book(slot.id, 502)

    assert exception_info.value.message == 'Time slot is not available'
    assert db_session.get(TimeSlot, slot.id).consultation_id == 501


def test_book_blocked_slot_conflicts(db_session, make_slot) -> None:
    slot = make_slot(status=SlotStatus.BLOCKED)

    with pytest.raises(ConflictError):
        SlotBookingManager(db_session).book(slot.id, 501)


def test_book_missing_slot_is_not_found(db_session) -> None:
    with pytest.raises(NotFoundError):
        SlotBookingManager(db_session).book(999, 501)


@pytest.mark.parametrize(('slot_id', 'consultation_id'), [(0, 1), (1, 0), ('1', 1), (1, None)])
def test_book_requires_positive_ids(db_session, slot_id, consultation_id) -> None:
    with pytest.raises(ValidationError):
        SlotBookingManager(db_session).book(slot_id, consultation_id)


def test_release_returns_slot_to_available(db_session, make_slot) -> None:
    slot = make_slot(status=SlotStatus.BOOKED, consultation_id=501)

    released = SlotBookingManager(db_session).release(slot.id)

    assert released.status == SlotStatus.AVAILABLE.value
    assert released.consultation_id is None


def test_release_of_available_slot_is_a_no_op(db_session, make_slot) -> None:
    slot = make_slot()

    released = SlotBookingManager(db_session).release(slot.id)

    assert released.id == slot.id
    assert released.status == SlotStatus.AVAILABLE.value


def test_release_of_blocked_slot_conflicts(db_session, make_slot) -> None:
    slot = make_slot(status=SlotStatus.BLOCKED)

    with pytest.raises(ConflictError):
        SlotBookingManager(db_session).release(slot.id)


def test_release_missing_slot_is_not_found(db_session) -> None:
    with pytest.raises(NotFoundError):
        SlotBookingManager(db_session).release(999)


def test_released_slot_can_be_booked_again(db_session, make_slot) -> None:
    slot = make_slot()
    manager = SlotBookingManager(db_session)

    manager.book(slot.id, 501)
    manager.release(slot.id)
    rebooked = manager.book(slot.id, 502)

    assert rebooked.consultation_id == 502


@pytest.mark.parametrize(
    ('value', 'expected'),
    [('available', 'AVAILABLE'), (' BLOCKED ', 'BLOCKED'), (SlotStatus.BLOCKED, 'BLOCKED')],
)
def test_normalize_provider_status_accepts_settable_values(value, expected) -> None:
    assert normalize_provider_status(value) == expected


@pytest.mark.parametrize('value', ['BOOKED', SlotStatus.BOOKED, 'CANCELLED', None, 3])
def test_normalize_provider_status_rejects_others(value) -> None:
    with pytest.raises(ValidationError):
        normalize_provider_status(value)


def test_set_status_blocks_and_unblocks(db_session, make_slot) -> None:
    slot = make_slot()
    manager = SlotBookingManager(db_session)

    blocked = manager.set_status(slot.id, 'BLOCKED', provider_id=7)
    assert blocked.status == SlotStatus.BLOCKED.value

    unblocked = manager.set_status(slot.id, 'AVAILABLE', provider_id=7)
    assert unblocked.status == SlotStatus.AVAILABLE.value


def test_set_status_cannot_modify_booked_slot(db_session, make_slot) -> None:
    slot = make_slot(status=SlotStatus.BOOKED, consultation_id=501)

    with pytest.raises(ConflictError) as exception_info:
        SlotBookingManager(db_session).set_status(slot.id, 'BLOCKED', provider_id=7)

    assert exception_info.value.message == 'Cannot modify a booked time slot'
    assert db_session.get(TimeSlot, slot.id).status == SlotStatus.BOOKED.value


def test_set_status_hides_foreign_slots_behind_not_found(db_session, make_slot) -> None:
    slot = make_slot(provider_id=7)
    manager = SlotBookingManager(db_session)

    with pytest.raises(NotFoundError) as foreign:
        manager.set_status(slot.id, 'BLOCKED', provider_id=8)
    with pytest.raises(NotFoundError) as missing:
        manager.set_status(999, 'BLOCKED', provider_id=8)

    assert foreign.value.message == missing.value.message == NOT_OWNED_MESSAGE


def test_set_status_cannot_book_directly(db_session, make_slot) -> None:
    slot = make_slot()

    with pytest.raises(ValidationError):
        SlotBookingManager(db_session).set_status(slot.id, 'BOOKED', provider_id=7)


def test_delete_slot_removes_unbooked_slot(db_session, make_slot) -> None:
    slot = make_slot(status=SlotStatus.BLOCKED)

    SlotBookingManager(db_session).delete_slot(slot.id, provider_id=7)

    assert db_session.query(TimeSlot).count() == 0


def test_delete_slot_refuses_booked_slot(db_session, make_slot) -> None:
    slot = make_slot(status=SlotStatus.BOOKED, consultation_id=501)

    with pytest.raises(ConflictError) as exception_info:
        SlotBookingManager(db_session).delete_slot(slot.id, provider_id=7)

    assert exception_info.value.message == 'Cannot delete a booked time slot'
    assert db_session.query(TimeSlot).count() == 1


def test_delete_slot_of_another_provider_is_not_found(db_session, make_slot) -> None:
    make_slot(provider_id=7)
    slot_id = db_session.query(TimeSlot.id).scalar()

    with pytest.raises(NotFoundError):
        SlotBookingManager(db_session).delete_slot(slot_id, provider_id=8)

    assert db_session.query(TimeSlot).count() == 1


def test_concurrent_bookings_of_one_slot_have_a_single_winner(tmp_path) -> None:
    engine = create_engine(
        f"sqlite:///{tmp_path / 'booking.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    init_database(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = session_factory()
    slot = TimeSlot(
        provider_id=7,
        date=TUESDAY,
        start_time='09:00',
        end_time='09:30',
        status=SlotStatus.AVAILABLE.value,
    )
    setup.add(slot)
    setup.commit()
    slot_id = slot.id
    setup.close()

    attempts = 4
    barrier = threading.Barrier(attempts)
    outcomes: list = []
    outcomes_lock = threading.Lock()

    def attempt(consultation_id: int) -> None:
        db = session_factory()
        try:
            barrier.wait()
            SlotBookingManager(db).book(slot_id, consultation_id)
            result = consultation_id
        except SchedulingError as exc:
            result = exc
        finally:
            db.close()
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=attempt, args=(100 + index,)) for index in range(attempts)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    winners = [outcome for outcome in outcomes if isinstance(outcome, int)]
    losers = [outcome for outcome in outcomes if not isinstance(outcome, int)]

    check = session_factory()
    try:
        stored = check.get(TimeSlot, slot_id)
        # A thread that died on an unexpected error records nothing.
        assert len(outcomes) == attempts
        assert len(winners) == 1
        assert all(isinstance(loser, ConflictError) for loser in losers)
        assert stored.status == SlotStatus.BOOKED.value
        assert stored.consultation_id == winners[0]
    finally:
        check.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()
