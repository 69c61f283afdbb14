import calendar
import re
from datetime import date, datetime, timedelta
from typing import List, Union

MINUTES_PER_DAY = 24 * 60

TIME_PATTERN = re.compile(r'([01][0-9]|2[0-3]):[0-5][0-9]')


def parse_date(value: Union[str, date]) -> date:
    """Parse a YYYY-MM-DD string (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(value.strip(), "%Y-%m-%d").date()


def format_date(value: date) -> str:
    return value.strftime("%Y-%m-%d")


def is_valid_time(value: str) -> bool:
    return bool(value) and bool(TIME_PATTERN.fullmatch(value.strip()))


def get_week_start(value: date) -> date:
    # Weeks start on Monday; Sunday belongs to the week that began six days earlier
    return value - timedelta(days=value.weekday())


def get_week_end(value: date) -> date:
    return get_week_start(value) + timedelta(days=6)


def week_days(week_start: date) -> List[date]:
    return [week_start + timedelta(days=i) for i in range(7)]


def parse_time_to_minutes(value: str) -> int:
    hours, minutes = value.split(':')[:2]
    return int(hours) * 60 + int(minutes)


def minutes_to_time(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def generate_time_slots(start_hour=6, end_hour=24, interval_minutes=30) -> List[str]:
    slots = []
    for hour in range(start_hour, end_hour):
        for minute in range(0, 60, interval_minutes):
            slots.append(minutes_to_time(hour * 60 + minute))
    return slots


def add_days(value: date, days: int) -> date:
    return value + timedelta(days=days)


def add_months(value: date, months: int) -> date:
    """Calendar-month arithmetic; the day is clamped to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def add_weekdays(value: date, count: int) -> date:
    """Return the count-th Monday-Friday date after value."""
    cursor = value
    taken = 0
    while taken < count:
        cursor += timedelta(days=1)
        if cursor.weekday() < 5:
            taken += 1
    return cursor
