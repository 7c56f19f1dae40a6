import os
from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from telehealth.database import Base, init_database  # noqa: E402
from telehealth.models.availability import RecurringAvailability  # noqa: E402
from telehealth.models.time_slot import SlotStatus, TimeSlot  # noqa: E402

# 2030-01-01 is a Tuesday.
TUESDAY = date(2030, 1, 1)
SUNDAY_BEFORE = date(2029, 12, 30)
SATURDAY_AFTER = date(2030, 1, 5)


@pytest.fixture
def db_engine():
    engine = create_engine('sqlite:///:memory:')
    init_database(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db_session(db_engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=db_engine)
    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()


@pytest.fixture
def make_window(db_session):
    def _make_window(
        provider_id: int = 7,
        day_of_week: int = 2,
        start_time: str = '09:00',
        end_time: str = '10:00',
        slot_duration: int = 30,
        is_active: bool = True,
    ) -> RecurringAvailability:
        window = RecurringAvailability(
            provider_id=provider_id,
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            slot_duration=slot_duration,
            is_active=is_active,
        )
        db_session.add(window)
        db_session.commit()
        db_session.refresh(window)
        return window

    return _make_window


@pytest.fixture
def make_slot(db_session):
    def _make_slot(
        provider_id: int = 7,
        slot_date: date = TUESDAY,
        start_time: str = '09:00',
        end_time: str = '09:30',
        status: SlotStatus = SlotStatus.AVAILABLE,
        consultation_id: int | None = None,
    ) -> TimeSlot:
        slot = TimeSlot(
            provider_id=provider_id,
            date=slot_date,
            start_time=start_time,
            end_time=end_time,
            status=status.value,
            consultation_id=consultation_id,
        )
        db_session.add(slot)
        db_session.commit()
        db_session.refresh(slot)
        return slot

    return _make_slot
