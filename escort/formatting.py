# escort/formatting.py
"""Date/time parsing and display for sheet cell values.

Cells come back from the sheet as formatted strings (or, from other
sources, as serial numbers and ISO strings). Everything here is lenient:
malformed input parses to None rather than raising.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

DEFAULT_TIMEZONE = "America/Chicago"

SHEETS_EPOCH = datetime(1899, 12, 30)
# Placeholders left by empty or time-only cells.
_EMPTY_DATES = {date(1899, 12, 30), date(1970, 1, 1)}

_DATETIME_FORMATS = [
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%b %d, %Y, %I:%M %p",
    "%b %d, %Y %I:%M %p",
]
_DATE_FORMATS = [
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%m/%d/%y",
    "%Y/%m/%d",
    "%m-%d-%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
    "%a, %b %d, %Y",
    "%A, %B %d, %Y",
]

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?\s*([AaPp]\.?[Mm]\.?)?$")
_HOUR_ONLY_RE = re.compile(r"^(\d{1,2})\s*([AaPp]\.?[Mm]\.?)$")
_COMPACT_RE = re.compile(r"^(\d{1,2})(\d{2})$")


def local_now(tz_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Naive wall-clock time in the app timezone."""
    return datetime.now(ZoneInfo(tz_name)).replace(tzinfo=None)


def local_today(tz_name: str = DEFAULT_TIMEZONE) -> date:
    return local_now(tz_name).date()


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def parse_datetime(value: Any, tz_name: str = DEFAULT_TIMEZONE) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        return datetime.combine(value, time())
    elif _is_number(value):
        return SHEETS_EPOCH + timedelta(days=float(value))
    else:
        s = str(value).strip()
        if not s:
            return None
        dt = None
        try:
            dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
        except ValueError:
            for fmt in _DATETIME_FORMATS + _DATE_FORMATS:
                try:
                    dt = datetime.strptime(s, fmt)
                    break
                except ValueError:
                    continue
        if dt is None:
            return None

    if dt.tzinfo is not None:
        dt = dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
    return dt


def parse_date(value: Any, tz_name: str = DEFAULT_TIMEZONE) -> date | None:
    dt = parse_datetime(value, tz_name)
    if dt is None:
        return None
    d = dt.date()
    if d in _EMPTY_DATES:
        return None
    return d


def _meridiem(hour: int, suffix: str | None) -> int | None:
    if not suffix:
        return hour if 0 <= hour <= 23 else None
    if not 1 <= hour <= 12:
        return None
    pm = suffix.lower().startswith("p")
    if hour == 12:
        return 12 if pm else 0
    return hour + 12 if pm else hour


def parse_time(value: Any, tz_name: str = DEFAULT_TIMEZONE) -> time | None:
    """Accepts `2:30 PM`, `14:30`, `14:30:00`, `1430`, `930`, `2 PM`,
    day-fraction serials and datetimes. Invalid input returns None."""
    if value is None:
        return None
    if isinstance(value, time):
        return value
    if isinstance(value, datetime):
        return value.time()
    if _is_number(value):
        frac = float(value) % 1
        seconds = round(frac * 86400)
        if seconds >= 86400:
            return None
        return time(seconds // 3600, (seconds % 3600) // 60)

    s = str(value).strip()
    if not s:
        return None

    m = _CLOCK_RE.match(s)
    if m:
        hour = _meridiem(int(m.group(1)), m.group(4))
        minute = int(m.group(2))
        second = int(m.group(3) or 0)
        if hour is None or minute > 59 or second > 59:
            return None
        return time(hour, minute, second)

    m = _HOUR_ONLY_RE.match(s)
    if m:
        hour = _meridiem(int(m.group(1)), m.group(2))
        return time(hour) if hour is not None else None

    m = _COMPACT_RE.match(s)
    if m:
        hour, minute = int(m.group(1)), int(m.group(2))
        if hour > 23 or minute > 59:
            return None
        return time(hour, minute)

    dt = parse_datetime(s, tz_name)
    if dt is not None and ("T" in s or " " in s):
        return dt.time()
    return None


def format_date(value: Any) -> str:
    """`Oct 19, 2026`; empty for blanks, the raw text when unparseable."""
    if value is None or str(value).strip() == "":
        return ""
    d = parse_date(value)
    if d is None:
        return "" if parse_datetime(value) is not None else str(value).strip()
    return f"{d:%b} {d.day}, {d.year}"


def format_time(value: Any) -> str:
    """`2:30 PM`; empty for blanks, the raw text when unparseable."""
    if value is None or str(value).strip() == "":
        return ""
    t = parse_time(value)
    if t is None:
        return str(value).strip()
    hour = t.hour % 12 or 12
    return f"{hour}:{t.minute:02d} {'PM' if t.hour >= 12 else 'AM'}"


def format_datetime(value: Any) -> str:
    dt = parse_datetime(value)
    if dt is None:
        return "" if value is None else str(value).strip()
    return f"{format_date(dt)}, {format_time(dt)}"


def format_date_mdy(value: Any) -> str:
    d = parse_date(value)
    return f"{d:%m/%d/%Y}" if d else ""


def sheet_date(d: date) -> str:
    return f"{d:%m/%d/%Y}"


def sheet_time(t: time) -> str:
    return format_time(t)


def sheet_timestamp(dt: datetime) -> str:
    return f"{dt:%m/%d/%Y %H:%M:%S}"


def in_window(d: date | None, today: date, days: int) -> bool:
    """today <= d <= today + days, inclusive at both ends."""
    if d is None:
        return False
    return today <= d <= today + timedelta(days=days)
