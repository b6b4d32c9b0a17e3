from __future__ import annotations

import re


_TIME_REGEX = re.compile(r"^(\d{1,2}):(\d{2})$")


def normalize_time(raw: str) -> str | None:
    """
    Basic HH:mm normalization and validation.

    Accepts "7:05" or "07:05" and returns zero-padded "07:05",
    or None if the value is not a valid time of day.
    """

    match = _TIME_REGEX.match(raw.strip())
    if not match:
        return None
    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        return None
    return f"{hours:02d}:{minutes:02d}"


def validate_time_range(start: str, end: str) -> tuple[str, str]:
    start_norm = normalize_time(start)
    end_norm = normalize_time(end)
    if start_norm is None or end_norm is None:
        raise ValueError("Times must look like HH:mm, e.g. 18:00")
    if end_norm <= start_norm:
        raise ValueError("End time must be after start time")
    return start_norm, end_norm


def validate_day_of_week(value: int) -> int:
    # 0=Sunday .. 6=Saturday
    if not 0 <= value <= 6:
        raise ValueError("Day of week must be between 0 (Sunday) and 6 (Saturday)")
    return value


def validate_capacity(value: int) -> int:
    if value < 1:
        raise ValueError("Capacity must be a positive number")
    return value
