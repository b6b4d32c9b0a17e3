from __future__ import annotations

from datetime import date, timedelta

DAY_NAMES = ["Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday"]
DAY_NAMES_SHORT = ["Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat"]


def get_week_start(day: date | None = None) -> date:
    """Monday of the week containing `day` (today by default)."""
    day = day or date.today()
    return day - timedelta(days=day.weekday())


def week_index_for_day(day_of_week: int) -> int:
    """
    Position of a slot weekday inside a Monday-aligned week.

    Slots use 0=Sunday..6=Saturday, weeks start on Monday,
    so Sunday is the last day (index 6).
    """

    return 6 if day_of_week == 0 else day_of_week - 1


def day_of_week(day: date) -> int:
    """Convert a date to the 0=Sunday..6=Saturday convention used by slots."""
    return (day.weekday() + 1) % 7


def format_day(day: date) -> str:
    return f"{DAY_NAMES_SHORT[day_of_week(day)]} {day.strftime('%d.%m')}"
