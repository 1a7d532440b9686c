"""
Civil date/time to absolute instant conversion in a fixed-offset zone.

Slots are written as wall-clock strings (``2024-06-04`` / ``14:00``) in
Argentina time. Argentina has no daylight-saving rules, so the zone is a
constant UTC-03:00 offset. Nothing here consults the host's local zone:
every datetime carries an explicit tzinfo.

Usage:
    start = normalize("2024-06-04", "14:00")   # 2024-06-04 17:00 UTC
    day_of_week("2024-01-02")                  # 2 (Tuesday)
"""

from datetime import date, datetime, time, timedelta, timezone

from turnero.schemas.booking_schema import TimeRange

ARGENTINA_TZ = timezone(timedelta(hours=-3), "ART")
SLOT_MINUTES = 30

_DATE_FORMAT = "%Y-%m-%d"
_TIME_FORMAT = "%H:%M"


def parse_civil_date(value: str) -> date:
    """Parse a strict ``YYYY-MM-DD`` date."""
    if len(value) != 10:
        raise ValueError(f"date must be YYYY-MM-DD, got {value!r}")
    return datetime.strptime(value, _DATE_FORMAT).date()


def parse_civil_time(value: str) -> time:
    """Parse a strict ``HH:MM`` 24-hour time."""
    if len(value) != 5:
        raise ValueError(f"time must be HH:MM, got {value!r}")
    return datetime.strptime(value, _TIME_FORMAT).time()


def normalize(civil_date: str, civil_time: str, zone: timezone = ARGENTINA_TZ) -> datetime:
    """Return the UTC instant at which ``zone`` reads ``civil_date civil_time``.

    Raises:
        ValueError: If either string is not syntactically valid.
    """
    local = datetime.combine(parse_civil_date(civil_date), parse_civil_time(civil_time), tzinfo=zone)
    return local.astimezone(timezone.utc)


def to_civil(instant: datetime, zone: timezone = ARGENTINA_TZ) -> tuple[str, str]:
    """Render an aware instant back into ``(YYYY-MM-DD, HH:MM)`` in ``zone``."""
    if instant.tzinfo is None:
        raise ValueError("instant must be timezone-aware")
    local = instant.astimezone(zone)
    return local.strftime(_DATE_FORMAT), local.strftime(_TIME_FORMAT)


def day_of_week(civil_date: str, zone: timezone = ARGENTINA_TZ) -> int:
    """Weekday of ``civil_date`` as read in ``zone``: 0=Sunday ... 6=Saturday."""
    local = normalize(civil_date, "12:00", zone).astimezone(zone)
    return local.isoweekday() % 7


def slot_range(
    civil_date: str,
    civil_time: str,
    zone: timezone = ARGENTINA_TZ,
    minutes: int = SLOT_MINUTES,
) -> TimeRange:
    """Absolute range of the slot starting at ``civil_date civil_time``."""
    start = normalize(civil_date, civil_time, zone)
    return TimeRange(start=start, end=start + timedelta(minutes=minutes))
