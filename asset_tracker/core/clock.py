from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

ISO_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def utc_now_iso() -> str:
    """Current UTC time in the fixed text format every table stores."""

    return datetime.now(timezone.utc).strftime(ISO_FORMAT)


def day_start(value: date) -> str:
    return f"{value.isoformat()}T00:00:00Z"


def next_day_start(value: date) -> str:
    """Exclusive upper bound for an inclusive ``to`` date filter."""

    return day_start(value + timedelta(days=1))
