from __future__ import annotations

import math
from datetime import datetime, timedelta, timezone
from typing import Any

# Provider timestamps below this are epoch seconds, anything above is millis.
EPOCH_MILLIS_THRESHOLD = 1e12

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def _from_epoch(value: int | float) -> datetime | None:
    if isinstance(value, float) and not math.isfinite(value):
        return None
    millis = value * 1000 if value < EPOCH_MILLIS_THRESHOLD else value
    try:
        return _EPOCH + timedelta(milliseconds=millis)
    except OverflowError:
        return None


def _from_text(value: str) -> datetime | None:
    text = value.strip()
    if not text:
        return None
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_timestamp(value: Any) -> datetime | None:
    """
    Turn a provider timestamp into an aware UTC datetime.

    Accepts epoch seconds, epoch milliseconds, ISO-8601 strings and
    datetimes. Anything else, or anything unparsable, yields None.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return _from_epoch(value)
    if isinstance(value, str):
        return _from_text(value)
    return None


def next_cycle_estimate(base: datetime | None = None) -> datetime:
    """
    Same day-of-month and time-of-day one calendar month after `base`.
    Days past the end of the target month roll into the month after
    (Jan 31 -> Mar 2 or Mar 3).
    """
    base = base or datetime.now(timezone.utc)
    if base.tzinfo is None:
        base = base.replace(tzinfo=timezone.utc)
    base = base.astimezone(timezone.utc)

    year = base.year + base.month // 12
    month = base.month % 12 + 1
    first_of_month = base.replace(year=year, month=month, day=1)
    return first_of_month + timedelta(days=base.day - 1)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def normalize_timestamp_iso(value: Any) -> str | None:
    return to_iso(normalize_timestamp(value))
