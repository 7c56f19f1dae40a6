import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if value is None:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


APP_ENV = os.getenv("APP_ENV", "development")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./telehealth.db")
SQL_ECHO = _get_bool(os.getenv("SQL_ECHO"), default=False)

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Generation and batch-deactivate cleanup must cover the same forward range.
SLOT_HORIZON_DAYS = _get_int(os.getenv("SLOT_HORIZON_DAYS"), 90)
DEFAULT_SLOT_QUERY_DAYS = _get_int(os.getenv("DEFAULT_SLOT_QUERY_DAYS"), 30)

DEFAULT_SLOT_DURATION = _get_int(os.getenv("DEFAULT_SLOT_DURATION"), 30)
MIN_SLOT_DURATION = _get_int(os.getenv("MIN_SLOT_DURATION"), 15)
MAX_SLOT_DURATION = _get_int(os.getenv("MAX_SLOT_DURATION"), 120)

SLOT_LIST_RATE_LIMIT = _get_int(os.getenv("SLOT_LIST_RATE_LIMIT"), 5)
SLOT_LIST_RATE_WINDOW_SECONDS = _get_int(os.getenv("SLOT_LIST_RATE_WINDOW_SECONDS"), 60)

CORS_ALLOWED_ORIGINS = _get_list(
    os.getenv("CORS_ALLOWED_ORIGINS"),
    ["http://localhost:4200", "http://localhost:4201", "http://localhost:4202"],
)


def validate_runtime_config() -> None:
    if SLOT_HORIZON_DAYS <= 0:
        raise RuntimeError("SLOT_HORIZON_DAYS must be a positive number of days.")
    if DEFAULT_SLOT_QUERY_DAYS <= 0:
        raise RuntimeError("DEFAULT_SLOT_QUERY_DAYS must be a positive number of days.")
    if not 0 < MIN_SLOT_DURATION <= MAX_SLOT_DURATION:
        raise RuntimeError("MIN_SLOT_DURATION must be positive and not exceed MAX_SLOT_DURATION.")
    if not MIN_SLOT_DURATION <= DEFAULT_SLOT_DURATION <= MAX_SLOT_DURATION:
        raise RuntimeError("DEFAULT_SLOT_DURATION must lie within the slot duration bounds.")
