from datetime import date, datetime

from telehealth.core import config
from telehealth.core.exceptions import ValidationError
from telehealth.services.slot_generator import format_minutes, parse_time_to_minutes


def coerce_int(value) -> int | None:
    """Best-effort integer coercion for loosely typed batch payloads."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if value.is_integer() else None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped.lstrip('-').isdigit():
            return int(stripped)
    return None


def require_positive_int(value, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f'Valid {field_name} is required', details={'field': field_name, 'value': value})
    return value


def validate_day_of_week(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
        raise ValidationError('dayOfWeek must be between 0 and 6', details={'field': 'day_of_week', 'value': value})
    return value


def validate_time_string(value, field_name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f'Valid {field_name} is required', details={'field': field_name})

    minutes = parse_time_to_minutes(value)
    if minutes is None:
        raise ValidationError(
            f'{field_name} must use 24-hour HH:MM format',
            details={'field': field_name, 'value': value},
        )
    # Stored zero-padded so string order matches chronological order.
    return format_minutes(minutes)


def validate_slot_duration(value) -> int:
    if (
        isinstance(value, bool)
        or not isinstance(value, int)
        or not config.MIN_SLOT_DURATION <= value <= config.MAX_SLOT_DURATION
    ):
        raise ValidationError(
            f'slotDuration must be between {config.MIN_SLOT_DURATION} and {config.MAX_SLOT_DURATION} minutes',
            details={'field': 'slot_duration', 'value': value},
        )
    return value


def validate_window_times(start_time, end_time) -> tuple[str, str]:
    start = validate_time_string(start_time, 'startTime')
    end = validate_time_string(end_time, 'endTime')

    if parse_time_to_minutes(start) >= parse_time_to_minutes(end):
        raise ValidationError(
            'startTime must be earlier than endTime',
            details={'start_time': start, 'end_time': end},
        )
    return start, end


def validate_date_range(start_date, end_date, max_days: int) -> tuple[date, date]:
    if not isinstance(start_date, date) or not isinstance(end_date, date):
        raise ValidationError('Both startDate and endDate are required')

    if isinstance(start_date, datetime):
        start_date = start_date.date()
    if isinstance(end_date, datetime):
        end_date = end_date.date()

    if end_date < start_date:
        raise ValidationError(
            'End date must be after start date',
            details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()},
        )

    if (end_date - start_date).days > max_days:
        raise ValidationError(
            f'Date range exceeds maximum allowed ({max_days} days)',
            details={'start_date': start_date.isoformat(), 'end_date': end_date.isoformat()},
        )

    return start_date, end_date
