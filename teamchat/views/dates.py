from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Iterable, List, Optional, Union

from teamchat.schemas.message import MessageResponse


@dataclass(frozen=True)
class DateHeader:
    label: str
    day: date


@dataclass(frozen=True)
class MessageEntry:
    message: MessageResponse


TimelineEntry = Union[DateHeader, MessageEntry]


def _local(value: datetime, tz: Optional[tzinfo]) -> datetime:
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(tz)


def date_label(value: datetime, now: Optional[datetime] = None, tz: Optional[tzinfo] = None) -> str:
    """Header label for the calendar day of `value` as seen from `now`.

    "Today", "Yesterday", the weekday name within the last week, otherwise
    "Month Day, Year". `tz` defaults to the local timezone.
    """
    day = _local(value, tz).date()
    today = _local(now or datetime.now(timezone.utc), tz).date()

    days_ago = (today - day).days
    if days_ago == 0:
        return "Today"
    if days_ago == 1:
        return "Yesterday"
    if 1 < days_ago < 7:
        return day.strftime("%A")
    return f"{day:%B} {day.day}, {day.year}"


def group_messages_by_date(
    messages: Iterable[MessageResponse],
    now: Optional[datetime] = None,
    tz: Optional[tzinfo] = None,
) -> List[TimelineEntry]:
    """Interleave one DateHeader before each run of messages sharing a day."""
    now = now or datetime.now(timezone.utc)
    ordered = sorted(messages, key=lambda m: m.created_at)

    timeline: List[TimelineEntry] = []
    last_day = None
    for message in ordered:
        day = _local(message.created_at, tz).date()
        if day != last_day:
            timeline.append(DateHeader(label=date_label(message.created_at, now, tz), day=day))
            last_day = day
        timeline.append(MessageEntry(message=message))
    return timeline
