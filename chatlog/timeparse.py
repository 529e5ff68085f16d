"""Parsing of time points and time ranges written in a variety of formats.

Supported time points:

* Unix timestamps in seconds: ``1609459200``
* dates: ``20060102``, ``2006-01-02``
* dates with a time: ``20060102/15:04``, ``2006-01-02/15:04``
* full times: ``20060102150405`` and ``200601021504``
* RFC 3339: ``2006-01-02T15:04:05Z07:00`` (seconds optional)
* relative times: ``5h-ago``, ``3d-ago``, ``1w-ago``, ``1m-ago``, ``1y-ago``
  and durations such as ``1h30m-ago``
* words: ``now``, ``today``, ``yesterday``, ``this-week``, ``last-week``,
  ``this-month``, ``last-month``, ``this-year``, ``last-year``, ``all``
* years ``2006``, months ``200601`` / ``2006-01`` and quarters ``2006Q1``

All returned datetimes are timezone aware.  Values without an explicit offset
are in the local time zone.
"""

from __future__ import annotations

import calendar
import re
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone, tzinfo
from enum import IntEnum

__all__ = [
    "Granularity",
    "parse_time",
    "time_of",
    "time_range_of",
    "perfect_time_format",
]


class Granularity(IntEnum):
    """How precisely a parsed time point was specified."""

    UNKNOWN = 0
    SECOND = 1
    MINUTE = 2
    HOUR = 3
    DAY = 4
    MONTH = 5
    QUARTER = 6
    YEAR = 7


_EPOCH = datetime(1970, 1, 1)


class _LocalTimezone(tzinfo):
    """The system's local time zone, daylight saving time included."""

    @staticmethod
    def _current() -> timedelta:
        return timedelta(seconds=time.localtime().tm_gmtoff)

    @staticmethod
    def _local_struct(dt: datetime) -> time.struct_time | None:
        try:
            stamp = time.mktime(
                (dt.year, dt.month, dt.day, dt.hour, dt.minute, dt.second,
                 dt.weekday(), 0, -1)
            )
            return time.localtime(stamp)
        except (OverflowError, ValueError, OSError):
            return None

    def utcoffset(self, dt: datetime | None) -> timedelta:
        if dt is None:
            return self._current()
        local = self._local_struct(dt)
        if local is None:
            return self._current()
        return timedelta(seconds=local.tm_gmtoff)

    def dst(self, dt: datetime | None) -> timedelta:
        return timedelta(0)

    def tzname(self, dt: datetime | None) -> str:
        local = self._local_struct(dt) if dt is not None else None
        return (local or time.localtime()).tm_zone

    def fromutc(self, dt: datetime) -> datetime:
        naive = dt.replace(tzinfo=None)
        try:
            stamp = (naive - _EPOCH).total_seconds()
            offset = timedelta(seconds=time.localtime(stamp).tm_gmtoff)
        except (OverflowError, ValueError, OSError):
            offset = self._current()
        return (naive + offset).replace(tzinfo=self)

    def __repr__(self) -> str:
        return "LocalTimezone()"


_LOCAL = _LocalTimezone()
_ZERO = datetime(1, 1, 1, tzinfo=timezone.utc)
_RANGE_ALL = (
    datetime(1970, 1, 1, tzinfo=timezone.utc),
    datetime(9999, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc),
)

_INT_RE = re.compile(r"[+-]?[0-9]+")
_QUARTER_RE = re.compile(r"([0-9]{4})Q([1-4])")
_AGO_RE = re.compile(r"([0-9]+)([hdwmy])")
_LAST_RE = re.compile(r"last-([0-9]+)([dwmy])")
_CLOCK_RE = re.compile(r"[0-9]{2}:[0-9]{2}")
_RFC3339_RE = re.compile(
    r"([0-9]{4})-([0-9]{2})-([0-9]{2})T([0-9]{2}):([0-9]{2})"
    r"(?::([0-9]{2})(?:\.([0-9]+))?)?"
    r"(Z|[+-][0-9]{2}:[0-9]{2})"
)
_DURATION_RE = re.compile(
    r"[-+]?(?:0|(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:ns|us|µs|μs|ms|s|m|h))+)"
)
_DURATION_PART_RE = re.compile(r"([0-9]+(?:\.[0-9]*)?|\.[0-9]+)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_MAX_DURATION_SECONDS = 9223372036.854775807

_FINE = (Granularity.SECOND, Granularity.MINUTE, Granularity.HOUR)


def _invalid(text: str) -> ValueError:
    return ValueError(f"unrecognised time expression: {text!r}")


def _digits(text: str) -> bool:
    return bool(text) and text.isascii() and text.isdigit()


def _atoi(text: str) -> int:
    if not _INT_RE.fullmatch(text):
        raise ValueError(f"not an integer: {text!r}")
    return int(text)


def _now() -> datetime:
    return datetime.now(_LOCAL)


def _local(year: int, month: int, day: int,
           hour: int = 0, minute: int = 0, second: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, second, tzinfo=_LOCAL)


def _midnight(t: datetime) -> datetime:
    return t.replace(hour=0, minute=0, second=0, microsecond=0)


def _end_of_day(t: datetime) -> datetime:
    return t.replace(hour=23, minute=59, second=59, microsecond=999999)


def _last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _add_date(t: datetime, years: int = 0, months: int = 0, days: int = 0) -> datetime:
    """Shift by calendar units, normalising overflowing days like month arithmetic."""
    total = t.month - 1 + months
    year = t.year + years + total // 12
    month = total % 12 + 1
    try:
        base = t.replace(year=year, month=month, day=1)
        return base + timedelta(days=t.day - 1 + days)
    except (ValueError, OverflowError) as exc:
        raise ValueError("date out of range") from exc


def _shift(t: datetime, delta: timedelta) -> datetime:
    """Shift by an absolute amount of elapsed time."""
    try:
        return (t.astimezone(timezone.utc) + delta).astimezone(t.tzinfo)
    except OverflowError as exc:
        raise ValueError("date out of range") from exc


def _check_date(year: int, month: int, day: int, text: str) -> None:
    if not (1970 <= year <= 9999 and 1 <= month <= 12 and 1 <= day <= 31):
        raise _invalid(text)
    if day > _last_day(year, month):
        raise _invalid(text)


def _split_date(part: str, text: str) -> tuple[int, int, int]:
    try:
        if len(part) == 8 and _digits(part):
            return int(part[0:4]), int(part[4:6]), int(part[6:8])
        if len(part) == 10 and part.count("-") == 2:
            year, month, day = part.split("-")
            return _atoi(year), _atoi(month), _atoi(day)
    except ValueError as exc:
        raise _invalid(text) from exc
    raise _invalid(text)


def _week_start(now: datetime, weeks_back: int) -> datetime:
    return _midnight(_add_date(now, days=-now.weekday() - 7 * weeks_back))


_NATURAL: dict[str, Callable[[datetime], tuple[datetime, Granularity]]] = {
    "now": lambda now: (now, Granularity.SECOND),
    "today": lambda now: (_midnight(now), Granularity.DAY),
    "yesterday": lambda now: (_midnight(_add_date(now, days=-1)), Granularity.DAY),
    "this-week": lambda now: (_week_start(now, 0), Granularity.DAY),
    "last-week": lambda now: (_week_start(now, 1), Granularity.DAY),
    "this-month": lambda now: (_midnight(now.replace(day=1)), Granularity.MONTH),
    "last-month": lambda now: (
        _midnight(_add_date(now.replace(day=1), months=-1)),
        Granularity.MONTH,
    ),
    "this-year": lambda now: (_midnight(now.replace(month=1, day=1)), Granularity.YEAR),
    "last-year": lambda now: (
        _midnight(now.replace(year=now.year - 1, month=1, day=1)),
        Granularity.YEAR,
    ),
    "all": lambda now: (_ZERO, Granularity.YEAR),
}


def _parse_duration(text: str) -> timedelta | None:
    if not _DURATION_RE.fullmatch(text):
        return None
    sign = -1 if text.startswith("-") else 1
    body = text[1:] if text[:1] in "+-" else text
    if body == "0":
        return timedelta(0)
    seconds = sum(
        float(part[1]) * _DURATION_UNITS[part[2]]
        for part in _DURATION_PART_RE.finditer(body)
    )
    if seconds > _MAX_DURATION_SECONDS:
        return None
    return timedelta(seconds=sign * seconds)


def _parse_ago(body: str, text: str) -> tuple[datetime, Granularity]:
    now = _now()
    if body == "0d":
        return _midnight(now), Granularity.DAY

    match = _AGO_RE.fullmatch(body)
    if match:
        num = int(match[1])
        if num <= 0:
            raise _invalid(text)
        unit = match[2]
        try:
            if unit == "h":
                return _shift(now, -timedelta(hours=num)), Granularity.HOUR
            if unit == "d":
                return _add_date(now, days=-num), Granularity.DAY
            if unit == "w":
                return _add_date(now, days=-num * 7), Granularity.DAY
            if unit == "m":
                return _add_date(now, months=-num), Granularity.MONTH
            return _add_date(now, years=-num), Granularity.YEAR
        except (ValueError, OverflowError) as exc:
            raise _invalid(text) from exc

    duration = _parse_duration(body)
    if duration is None:
        raise _invalid(text)
    hours = duration.total_seconds() / 3600
    if hours < 1:
        granularity = Granularity.SECOND
    elif hours < 24:
        granularity = Granularity.HOUR
    else:
        granularity = Granularity.DAY
    try:
        return _shift(now, -duration), granularity
    except ValueError as exc:
        raise _invalid(text) from exc


def _parse_rfc3339(text: str) -> datetime | None:
    match = _RFC3339_RE.fullmatch(text)
    if not match:
        return None
    zone = match[8]
    if zone == "Z":
        tz = timezone.utc
    else:
        hours, minutes = int(zone[1:3]), int(zone[4:6])
        if hours >= 24 or minutes >= 60:
            return None
        offset = timedelta(hours=hours, minutes=minutes)
        tz = timezone(-offset if zone[0] == "-" else offset)
    fraction = match[7]
    microsecond = int((fraction + "000000")[:6]) if fraction else 0
    try:
        return datetime(
            int(match[1]), int(match[2]), int(match[3]),
            int(match[4]), int(match[5]), int(match[6] or 0),
            microsecond, tzinfo=tz,
        )
    except ValueError:
        return None


def parse_time(text: str) -> tuple[datetime, Granularity]:
    """Parse a time point and report how precisely it was given.

    Raises ValueError when the text is not a supported time expression.
    """
    if not text:
        raise _invalid(text)
    s = text.strip()

    natural = _NATURAL.get(s.lower())
    if natural is not None:
        return natural(_now())

    if s.endswith("-ago"):
        return _parse_ago(s[: -len("-ago")], text)

    match = _QUARTER_RE.fullmatch(s)
    if match:
        year, quarter = int(match[1]), int(match[2])
        if not 1970 <= year <= 9999:
            raise _invalid(text)
        return _local(year, (quarter - 1) * 3 + 1, 1), Granularity.QUARTER

    if len(s) == 4 and _digits(s):
        year = int(s)
        if not 1970 <= year <= 9999:
            raise _invalid(text)
        return _local(year, 1, 1), Granularity.YEAR

    if (len(s) == 6 and _digits(s)) or (len(s) == 7 and s.count("-") == 1):
        try:
            if len(s) == 6:
                year, month = int(s[0:4]), int(s[4:6])
            else:
                year_part, month_part = s.split("-")
                year, month = _atoi(year_part), _atoi(month_part)
        except ValueError as exc:
            raise _invalid(text) from exc
        if not (1970 <= year <= 9999 and 1 <= month <= 12):
            raise _invalid(text)
        return _local(year, month, 1), Granularity.MONTH

    if (len(s) == 8 and _digits(s)) or (len(s) == 10 and s.count("-") == 2):
        year, month, day = _split_date(s, text)
        _check_date(year, month, day, text)
        return _local(year, month, day), Granularity.DAY

    if len(s) == 12 and _digits(s):
        year, month, day = int(s[0:4]), int(s[4:6]), int(s[6:8])
        hour, minute = int(s[8:10]), int(s[10:12])
        _check_date(year, month, day, text)
        if hour > 23 or minute > 59:
            raise _invalid(text)
        return _local(year, month, day, hour, minute), Granularity.MINUTE

    if "/" in s:
        parts = s.split("/")
        if len(parts) != 2:
            raise _invalid(text)
        date_part, clock_part = parts
        year, month, day = _split_date(date_part, text)
        _check_date(year, month, day, text)
        if not _CLOCK_RE.fullmatch(clock_part):
            raise _invalid(text)
        hour, minute = int(clock_part[0:2]), int(clock_part[3:5])
        if hour > 23 or minute > 59:
            raise _invalid(text)
        return _local(year, month, day, hour, minute), Granularity.MINUTE

    if len(s) == 14 and _digits(s):
        year, month, day = int(s[0:4]), int(s[4:6]), int(s[6:8])
        hour, minute, second = int(s[8:10]), int(s[10:12]), int(s[12:14])
        _check_date(year, month, day, text)
        if hour > 23 or minute > 59 or second > 59:
            raise _invalid(text)
        return _local(year, month, day, hour, minute, second), Granularity.SECOND

    if _digits(s):
        stamp = int(s)
        if not 1_000_000_000 <= stamp <= 253_402_300_799:
            raise _invalid(text)
        try:
            return datetime.fromtimestamp(stamp, _LOCAL), Granularity.SECOND
        except (OverflowError, ValueError, OSError) as exc:
            raise _invalid(text) from exc

    if "T" in s and ("Z" in s or "+" in s or "-" in s):
        parsed = _parse_rfc3339(s)
        if parsed is not None:
            return parsed, Granularity.SECOND

    raise _invalid(text)


def time_of(text: str) -> datetime:
    """Parse a time point. Raises ValueError for unsupported input."""
    return parse_time(text)[0]


def _period_start(t: datetime, granularity: Granularity) -> datetime:
    if granularity == Granularity.MONTH:
        return _midnight(t.replace(day=1))
    if granularity == Granularity.QUARTER:
        first_month = (t.month - 1) // 3 * 3 + 1
        return _midnight(t.replace(month=first_month, day=1))
    if granularity == Granularity.YEAR:
        return _midnight(t.replace(month=1, day=1))
    return _midnight(t)


def _period_end(t: datetime, granularity: Granularity) -> datetime:
    if granularity == Granularity.MONTH:
        return _end_of_day(t.replace(day=_last_day(t.year, t.month)))
    if granularity == Granularity.QUARTER:
        last_month = (t.month - 1) // 3 * 3 + 3
        return _end_of_day(t.replace(month=last_month, day=_last_day(t.year, last_month)))
    if granularity == Granularity.YEAR:
        return _end_of_day(t.replace(month=12, day=31))
    return _end_of_day(t)


def _adjust_start(t: datetime, granularity: Granularity) -> datetime:
    return t if granularity in _FINE else _period_start(t, granularity)


def _adjust_end(t: datetime, granularity: Granularity) -> datetime:
    return t if granularity in _FINE else _period_end(t, granularity)


def time_range_of(text: str) -> tuple[datetime, datetime]:
    """Parse a time range and return its inclusive ``(start, end)``.

    Accepts ``all``, ``last-<n>[dwmy]``, two time points joined by ``~``,
    ``,`` or `` to ``, or a single time point whose range follows from its
    granularity. Raises ValueError for unsupported input.
    """
    if not text:
        raise _invalid(text)
    s = text.strip()

    if s.lower() == "all":
        return _RANGE_ALL

    match = _LAST_RE.fullmatch(s)
    if match:
        num, unit = int(match[1]), match[2]
        if num <= 0:
            raise _invalid(text)
        now = _now()
        end = _end_of_day(now)
        shifts = {
            "d": {"days": -num},
            "w": {"days": -num * 7},
            "m": {"months": -num},
            "y": {"years": -num},
        }
        try:
            start = _midnight(_add_date(now, **shifts[unit]))
        except ValueError as exc:
            raise _invalid(text) from exc
        return start, end

    for separator in ("~", ",", " to "):
        if separator not in s:
            continue
        parts = s.split(separator)
        if len(parts) != 2:
            continue
        try:
            start_time, start_gran = parse_time(parts[0].strip())
            end_time, end_gran = parse_time(parts[1].strip())
        except ValueError:
            continue
        start = _adjust_start(start_time, start_gran)
        end = _adjust_end(end_time, end_gran)
        if start > end:
            start = _adjust_start(end_time, end_gran)
            end = _adjust_end(start_time, start_gran)
        return start, end

    point, granularity = parse_time(s)
    return _period_start(point, granularity), _period_end(point, granularity)


def perfect_time_format(start: datetime, end: datetime) -> str:
    """Pick the shortest strftime format that tells apart times in the range.

    An end exactly at midnight counts as the end of the previous day.
    """
    if (end.hour, end.minute, end.second, end.microsecond) == (0, 0, 0, 0):
        end = end - timedelta(seconds=1)
    if start.year != end.year:
        return "%Y-%m-%d %H:%M:%S"
    if start.timetuple().tm_yday != end.timetuple().tm_yday:
        return "%m-%d %H:%M:%S"
    return "%H:%M:%S"