"""
Canonical calendar helpers.

All "today" computations go through here so that the calendar boundary never
depends on the deployment host's local clock.
"""

from datetime import date, datetime, timedelta
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from focuslog import config

DATE_FORMAT = '%Y-%m-%d'


def canonical_zone() -> ZoneInfo:
    """Return the configured zone, UTC if the name is unknown."""
    try:
        return ZoneInfo(config.TIMEZONE)
    except (ZoneInfoNotFoundError, ValueError):
        return ZoneInfo('UTC')


def today_canonical(now: Optional[datetime] = None) -> date:
    """Calendar date of `now` (default: current instant) in the canonical zone."""
    zone = canonical_zone()
    if now is None:
        return datetime.now(zone).date()
    if now.tzinfo is None:
        now = now.replace(tzinfo=ZoneInfo('UTC'))
    return now.astimezone(zone).date()


def today_iso(now: Optional[datetime] = None) -> str:
    return today_canonical(now).isoformat()


def parse_date(value) -> Optional[date]:
    """Parse a YYYY-MM-DD string (or date) into a date, None when invalid."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        return None
    try:
        return datetime.strptime(value[:10], DATE_FORMAT).date()
    except ValueError:
        return None


def is_iso_date(value: str) -> bool:
    return isinstance(value, str) and len(value) == 10 and parse_date(value) is not None


def days_back(end: date, count: int):
    """Yield `count` consecutive dates ending at `end`, oldest first."""
    for offset in range(count - 1, -1, -1):
        yield end - timedelta(days=offset)
