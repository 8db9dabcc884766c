from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone

from fieldtrack.errors import bad_request

# Reports and history bucket check-ins by the UTC+5:30 calendar day,
# independent of server or client timezone.
BUSINESS_DAY_UTC_OFFSET = timedelta(hours=5, minutes=30)
BUSINESS_TIMEZONE = timezone(BUSINESS_DAY_UTC_OFFSET, name="UTC+05:30")

_DATE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{2}-[0-9]{2}")


def normalize_ts(ts_utc: datetime | None) -> datetime:
    if ts_utc is None:
        return datetime.now(timezone.utc)

    if ts_utc.tzinfo is None:
        return ts_utc.replace(tzinfo=timezone.utc)

    return ts_utc.astimezone(timezone.utc)


def parse_date_param(value: str, *, field: str) -> date:
    if not _DATE_PATTERN.fullmatch(value):
        raise bad_request("INVALID_DATE", f"Invalid {field} format. Use YYYY-MM-DD.")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise bad_request("INVALID_DATE", f"Invalid {field}: not a calendar date.") from exc


def business_day_of(ts_utc: datetime) -> date:
    return (normalize_ts(ts_utc) + BUSINESS_DAY_UTC_OFFSET).date()


def business_day_bounds_utc(day: date) -> tuple[datetime, datetime]:
    """Half-open UTC window [start, end) covering one business day."""
    start_local = datetime.combine(day, time.min, tzinfo=BUSINESS_TIMEZONE)
    start_utc = start_local.astimezone(timezone.utc)
    return start_utc, start_utc + timedelta(days=1)
