"""Date parsing and calendar query ranges.

Ranges are timezone-aware in the host's local zone so that the ISO strings
sent to the calendar procedures carry an explicit offset.
"""

import calendar
from datetime import date, datetime, time, timedelta

from src.nlobby.errors import InputValidationError
from src.nlobby.models import DateRange

END_OF_DAY = time(23, 59, 59, 999000)
DEFAULT_RANGE_DAYS = 7
PERIODS = ("today", "week", "month")


def parse_datetime(value) -> datetime | None:
    """Parse an ISO date or datetime string (or pass a datetime through).

    Date-only strings become midnight. Returns None for anything unparsable.
    """
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime.combine(value, time())
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip().replace("/", "-")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def _local(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.astimezone()


def _require(value, label: str) -> datetime:
    parsed = parse_datetime(value)
    if parsed is None:
        raise InputValidationError(f"Invalid {label} date: {value!r}")
    return _local(parsed)


def create_date_range(from_date, to_date) -> DateRange:
    """Validated range between two caller-supplied dates.

    Raises:
        InputValidationError: If either date is unparsable or the range
            spans less than one day.
    """
    start = _require(from_date, "from")
    end = _require(to_date, "to")
    if end - start < timedelta(days=1):
        raise InputValidationError(
            "to_date must be at least 1 day after from_date. For single day "
            'queries, use period="today" or only from_date.'
        )
    return DateRange(start=start, end=end)


def single_day_range(day) -> DateRange:
    start = _require(day, "target").replace(hour=0, minute=0, second=0, microsecond=0)
    return DateRange(start=start, end=start.replace(
        hour=END_OF_DAY.hour,
        minute=END_OF_DAY.minute,
        second=END_OF_DAY.second,
        microsecond=END_OF_DAY.microsecond,
    ))


def week_range(start_day=None) -> DateRange:
    """Seven calendar days starting at start_day (default today)."""
    first = single_day_range(start_day or datetime.now()).start
    last = single_day_range(first + timedelta(days=6)).end
    return DateRange(start=first, end=last)


def month_range(year: int | None = None, month: int | None = None) -> DateRange:
    """Whole calendar month; month is 1-12, both default to the current month."""
    today = datetime.now()
    year = year if year is not None else today.year
    month = month if month is not None else today.month
    if not 1 <= month <= 12:
        raise InputValidationError(f"Invalid month: {month}")
    last_day = calendar.monthrange(year, month)[1]
    return DateRange(
        start=single_day_range(datetime(year, month, 1)).start,
        end=single_day_range(datetime(year, month, last_day)).end,
    )


def default_range() -> DateRange:
    """Today 00:00 through the end of the day one week from now."""
    today = single_day_range(datetime.now())
    return DateRange(
        start=today.start,
        end=today.end + timedelta(days=DEFAULT_RANGE_DAYS),
    )


def period_range(period: str) -> DateRange:
    if period == "today":
        return single_day_range(datetime.now())
    if period == "week":
        return week_range()
    if period == "month":
        return month_range()
    raise InputValidationError(f"Invalid period {period!r}; expected one of {', '.join(PERIODS)}")
