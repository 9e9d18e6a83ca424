"""Calendar event normalization.

Two upstream shapes reach this module: lobby (school) events with flat
startDateTime/endDateTime strings, and Google Calendar events with nested
start/end objects holding either dateTime or, for all-day events, date.
Upstream end times are not trusted: a missing, unparsable or inverted end is
replaced so that end >= start always holds on the output.
"""

from datetime import datetime, timedelta
from typing import Any

from src.nlobby.dates import parse_datetime
from src.nlobby.models import ScheduleItem

DEFAULT_DURATION = timedelta(hours=1)

# First matching type wins; matched case-insensitively against the title
EVENT_TYPE_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("class", ("授業", "class")),
    ("meeting", ("mtg", "ミーティング", "meeting", "面談")),
    ("exam", ("試験", "exam", "テスト")),
)
DEFAULT_EVENT_TYPE = "event"


def classify_event(title: str) -> str:
    lowered = title.lower()
    for event_type, keywords in EVENT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return event_type
    return DEFAULT_EVENT_TYPE


def _start_of_day(value: datetime) -> datetime:
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(value: datetime) -> datetime:
    return value.replace(hour=23, minute=59, second=59, microsecond=0)


def _align(end: datetime, start: datetime) -> datetime:
    """Give end the same awareness as start so they can be compared."""
    if (end.tzinfo is None) == (start.tzinfo is None):
        return end
    if start.tzinfo is None:
        return end.replace(tzinfo=None)
    return end.replace(tzinfo=start.tzinfo)


def event_times(
    event: dict, end_exclusive: bool = True, now: datetime | None = None
) -> tuple[datetime, datetime, bool]:
    """Resolve (start, end, all_day) for one upstream event.

    Args:
        event: Raw event mapping in either upstream shape.
        end_exclusive: Whether an all-day end date names the day after the
            last day of the event.
        now: Start used when the event carries no usable start.
    """
    all_day = False
    start = end = None

    if event.get("startDateTime"):
        start = parse_datetime(event.get("startDateTime"))
        end = parse_datetime(event.get("endDateTime"))
    elif isinstance(event.get("start"), dict):
        start_info = event["start"]
        end_info = event.get("end") if isinstance(event.get("end"), dict) else {}
        if start_info.get("dateTime"):
            start = parse_datetime(start_info["dateTime"])
        elif start_info.get("date"):
            start = parse_datetime(start_info["date"])
            all_day = start is not None
            if start is not None:
                start = _start_of_day(start)

        if end_info.get("dateTime"):
            end = parse_datetime(end_info["dateTime"])
        elif end_info.get("date"):
            last_day = parse_datetime(end_info["date"])
            if last_day is not None:
                if end_exclusive:
                    last_day -= timedelta(days=1)
                end = _end_of_day(last_day)

    if start is None:
        start = now or datetime.now()
        all_day = False

    if end is None:
        end = _end_of_day(start) if all_day else start + DEFAULT_DURATION
    end = _align(end, start)
    if end < start:
        # all-day: an exclusive-end correction on a same-day event
        end = _end_of_day(start) if all_day else start + DEFAULT_DURATION
    return start, end, all_day


def normalize_event(
    event: dict, index: int = 0, end_exclusive: bool = True
) -> ScheduleItem:
    title = event.get("summary") or event.get("title") or "No Title"
    start, end, all_day = event_times(event, end_exclusive)
    attendees = event.get("attendees")
    participants = (
        [a["email"] for a in attendees if isinstance(a, dict) and a.get("email")]
        if isinstance(attendees, list)
        else []
    )
    event_id = event.get("id") or event.get("microCmsId") or f"event-{index}-{start.isoformat()}"
    location: Any = event.get("location") or ""

    return ScheduleItem(
        id=str(event_id),
        title=str(title),
        description=event.get("description") or "",
        start_time=start,
        end_time=end,
        location=str(location),
        type=classify_event(str(title)),
        participants=participants,
        all_day=all_day,
    )


def normalize_events(events: list[dict], end_exclusive: bool = True) -> list[ScheduleItem]:
    return [
        normalize_event(event, i, end_exclusive)
        for i, event in enumerate(events)
        if isinstance(event, dict)
    ]
