"""Wall-clock helpers.

Medication times are stored as ``HH:MM`` strings in the reference timezone
(``settings.TZ``) and compared lexically. Call timestamps are naive UTC.
"""
from __future__ import annotations

import datetime as dt
import re
from zoneinfo import ZoneInfo

from app.settings import settings


HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
MINUTES_PER_DAY = 24 * 60


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc).replace(tzinfo=None)


def as_utc_naive(moment: dt.datetime) -> dt.datetime:
    """Naive datetimes are taken to be UTC already."""
    if moment.tzinfo is None:
        return moment
    return moment.astimezone(dt.timezone.utc).replace(tzinfo=None)


def format_hhmm(moment: dt.datetime, tz: str | None = None) -> str:
    aware = moment if moment.tzinfo is not None else moment.replace(tzinfo=dt.timezone.utc)
    return aware.astimezone(ZoneInfo(tz or settings.TZ)).strftime("%H:%M")


def is_valid_hhmm(value: str) -> bool:
    return bool(HHMM_RE.match(value or ""))


def hhmm_to_minutes(value: str) -> int:
    if not is_valid_hhmm(value):
        raise ValueError(f"Invalid time of day: {value!r} (expected HH:MM)")
    hours, minutes = value.split(":")
    return int(hours) * 60 + int(minutes)


def minutes_to_hhmm(total: int) -> str:
    total %= MINUTES_PER_DAY
    return f"{total // 60:02d}:{total % 60:02d}"


def add_minutes(value: str, minutes: int) -> str:
    return minutes_to_hhmm(hhmm_to_minutes(value) + minutes)


def minutes_since(value: str, start: str) -> int:
    """Forward distance from ``start`` to ``value`` on a 24h dial."""
    return (hhmm_to_minutes(value) - hhmm_to_minutes(start)) % MINUTES_PER_DAY


def window_crosses_midnight(start: str, end: str) -> bool:
    return end < start
