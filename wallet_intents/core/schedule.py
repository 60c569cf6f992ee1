from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

WEEKDAYS = {
    "monday": 0,
    "mon": 0,
    "tuesday": 1,
    "tue": 1,
    "tues": 1,
    "wednesday": 2,
    "wed": 2,
    "thursday": 3,
    "thu": 3,
    "thurs": 3,
    "friday": 4,
    "fri": 4,
    "saturday": 5,
    "sat": 5,
    "sunday": 6,
    "sun": 6,
}

UNIT_DELTAS = {
    "second": timedelta(seconds=1),
    "sec": timedelta(seconds=1),
    "s": timedelta(seconds=1),
    "minute": timedelta(minutes=1),
    "min": timedelta(minutes=1),
    "m": timedelta(minutes=1),
    "hour": timedelta(hours=1),
    "hr": timedelta(hours=1),
    "h": timedelta(hours=1),
    "day": timedelta(days=1),
    "d": timedelta(days=1),
    "week": timedelta(weeks=1),
    "wk": timedelta(weeks=1),
    "w": timedelta(weeks=1),
}

ABSOLUTE_FORMATS = ("%Y-%m-%d %H:%M", "%Y-%m-%d", "%m/%d/%Y %H:%M", "%m/%d/%Y")

TIME_OF_DAY_RE = re.compile(r"^(?P<hour>\d{1,2})(?::(?P<minute>\d{2}))?\s*(?P<meridiem>am|pm|a\.m\.|p\.m\.)?$")
RELATIVE_RE = re.compile(r"^in\s+(?P<count>\d+|an?)\s*(?P<unit>[a-z]+?)s?$")
TOMORROW_RE = re.compile(r"^tomorrow(?:\s+(?:at\s+)?(?P<time>.+))?$")
TODAY_RE = re.compile(r"^(?:today|tonight)\s+(?:at\s+)?(?P<time>.+)$")
WEEKDAY_RE = re.compile(r"^(?:next|on|this)\s+(?P<day>[a-z]+)(?:\s+(?:at\s+)?(?P<time>.+))?$")
AT_TIME_RE = re.compile(r"^at\s+(?P<time>.+)$")
AT_TIME_DAY_RE = re.compile(r"^at\s+(?P<time>.+?)\s+(?P<day>tomorrow|today|tonight|(?:on|next|this)\s+[a-z]+)$")
INTERVAL_RE = re.compile(r"^(?P<count>\d+)\s*(?P<unit>minute|min|hour|hr|day|week)s?$")

TIME_LIKE_RE = re.compile(
    r"\b(?:tomorrow|today|tonight|noon|midnight|next\s+week|"
    r"(?:mon|tue|tues|wed|thu|thurs|fri|sat|sun)(?:day|nesday|rsday|urday)?|"
    r"in\s+(?:\d+|an?)\s*(?:sec|second|min|minute|hr|hour|day|wk|week)s?|"
    r"\d{1,2}(?::\d{2})?\s*(?:am|pm)|\d{1,2}:\d{2}|\d{4}-\d{2}-\d{2}|\d{1,2}/\d{1,2}/\d{4})\b"
)


@dataclass(frozen=True)
class RecurringInterval:
    name: str
    period: timedelta

    @property
    def seconds(self) -> int:
        return int(self.period.total_seconds())


HOURLY = RecurringInterval("hourly", timedelta(hours=1))
DAILY = RecurringInterval("daily", timedelta(days=1))
WEEKLY = RecurringInterval("weekly", timedelta(weeks=1))
# A month is approximated as thirty days.
MONTHLY = RecurringInterval("monthly", timedelta(days=30))
EVERY_MINUTE = RecurringInterval("every minute", timedelta(minutes=1))

NAMED_INTERVALS = {
    "hour": HOURLY,
    "hourly": HOURLY,
    "day": DAILY,
    "daily": DAILY,
    "week": WEEKLY,
    "weekly": WEEKLY,
    "month": MONTHLY,
    "monthly": MONTHLY,
    "minute": EVERY_MINUTE,
}


def _clean(text: str) -> str:
    return re.sub(r"\s+", " ", (text or "").strip().lower()).rstrip(".!?")


def parse_time_of_day(text: str, *, strict: bool = False) -> time | None:
    """`3pm`, `3:30 pm`, `15:00`, `noon`. In strict mode a bare hour such as
    `15` is rejected so prices are not mistaken for times."""
    value = _clean(text)
    if value == "noon":
        return time(12, 0)
    if value == "midnight":
        return time(0, 0)
    match = TIME_OF_DAY_RE.match(value)
    if not match:
        return None
    hour = int(match.group("hour"))
    minute = int(match.group("minute") or 0)
    meridiem = match.group("meridiem")
    if strict and not meridiem and match.group("minute") is None:
        return None
    if meridiem:
        if not 1 <= hour <= 12:
            return None
        if meridiem.startswith("p") and hour < 12:
            hour += 12
        elif meridiem.startswith("a") and hour == 12:
            hour = 0
    if hour > 23 or minute > 59:
        return None
    return time(hour, minute)


def parse_interval(text: str) -> RecurringInterval | None:
    value = _clean(text)
    if value in NAMED_INTERVALS:
        return NAMED_INTERVALS[value]
    match = INTERVAL_RE.match(value)
    if not match:
        return None
    count = int(match.group("count"))
    if count <= 0:
        return None
    unit = {"min": "minute", "hr": "hour"}.get(match.group("unit"), match.group("unit"))
    label = unit if count == 1 else f"{unit}s"
    return RecurringInterval(f"every {count} {label}", UNIT_DELTAS[unit] * count)


def looks_like_time(text: str) -> bool:
    return bool(TIME_LIKE_RE.search(_clean(text)))


def _at(day: date, at: time, now: datetime) -> datetime:
    return datetime.combine(day, at, tzinfo=now.tzinfo)


def _zeroed(value: datetime) -> datetime:
    return value.replace(second=0, microsecond=0)


def parse_schedule_time(text: str, now: datetime) -> datetime | None:
    """Resolve a time expression against `now`.

    Relative forms keep the clock time of `now` unless an explicit time of
    day is given. Seconds are always truncated and the tzinfo of `now` is kept.
    """
    value = _clean(text)
    if not value:
        return None

    if value == "next week":
        return _zeroed(now + timedelta(weeks=1))

    match = TOMORROW_RE.match(value)
    if match:
        day = now.date() + timedelta(days=1)
        if match.group("time") is None:
            return _zeroed(now + timedelta(days=1))
        at = parse_time_of_day(match.group("time"))
        return _at(day, at, now) if at else None

    match = TODAY_RE.match(value)
    if match:
        at = parse_time_of_day(match.group("time"))
        return _at(now.date(), at, now) if at else None

    match = WEEKDAY_RE.match(value)
    if match and match.group("day") in WEEKDAYS:
        ahead = (WEEKDAYS[match.group("day")] - now.weekday()) % 7 or 7
        day = now.date() + timedelta(days=ahead)
        if match.group("time") is None:
            return _zeroed(_at(day, now.timetz().replace(tzinfo=None), now))
        at = parse_time_of_day(match.group("time"))
        return _at(day, at, now) if at else None

    match = RELATIVE_RE.match(value)
    if match:
        raw_count = match.group("count")
        count = 1 if raw_count in {"a", "an"} else int(raw_count)
        delta = UNIT_DELTAS.get(match.group("unit"))
        if delta is None or count <= 0:
            return None
        return _zeroed(now + delta * count)

    # "at 3pm tomorrow" reads the same as "tomorrow at 3pm".
    match = AT_TIME_DAY_RE.match(value)
    if match:
        return parse_schedule_time(f"{match.group('day')} at {match.group('time')}", now)

    match = AT_TIME_RE.match(value)
    if match:
        at = parse_time_of_day(match.group("time"), strict=True)
        if at is not None:
            candidate = _at(now.date(), at, now)
            if candidate <= now:
                candidate = _at(now.date() + timedelta(days=1), at, now)
            return candidate

    stripped = re.sub(r"^(?:at|on)\s+", "", value)
    for fmt in ABSOLUTE_FORMATS:
        try:
            parsed = datetime.strptime(stripped, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=now.tzinfo)
    return None
