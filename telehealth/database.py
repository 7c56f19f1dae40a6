from contextlib import contextmanager
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from telehealth.core import config


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.SQL_ECHO,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_scheduling_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def transaction(db):
    """Commit when the block succeeds; roll back and re-raise otherwise."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise


def ensure_scheduling_schema(bind=None) -> None:
    """Add the uniqueness indexes to scheduling tables created before they existed."""
    global _scheduling_schema_checked

    if _scheduling_schema_checked and bind is None:
        return

    target = bind if bind is not None else engine

    with _schema_lock:
        if _scheduling_schema_checked and bind is None:
            return

        inspector = inspect(target)
        table_names = set(inspector.get_table_names())

        statements = []
        if 'time_slots' in table_names:
            statements.append(
                'CREATE UNIQUE INDEX IF NOT EXISTS uq_time_slots_provider_date_start '
                'ON time_slots(provider_id, date, start_time)'
            )
            statements.append(
                'CREATE INDEX IF NOT EXISTS idx_time_slots_provider_status '
                'ON time_slots(provider_id, status)'
            )
        if 'recurring_availability' in table_names:
            active_predicate = 'is_active' if target.dialect.name == 'postgresql' else 'is_active = 1'
            statements.append(
                'CREATE UNIQUE INDEX IF NOT EXISTS uq_recurring_availability_active_day '
                f'ON recurring_availability(provider_id, day_of_week) WHERE {active_predicate}'
            )

        with target.begin() as connection:
            for statement in statements:
                connection.execute(text(statement))

        if bind is None:
            _scheduling_schema_checked = True


def init_database(bind=None) -> None:
    # Models register themselves on Base.metadata when imported.
    from telehealth.models import availability, time_slot  # noqa: F401

    target = bind if bind is not None else engine
    Base.metadata.create_all(bind=target)
    ensure_scheduling_schema(bind)
