"""
Centralized configuration with environment variable overrides.

Secrets, calendar settings, and the initial booking policy are read from
the environment (or a local ``.env`` file). The booking policy defined here
only seeds the runtime ``ConfigStore``; admins change it afterwards.
"""

import logging
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

# Kept identical to the previously deployed default so links signed with it
# stay decodable. Production must override ENCRYPTION_SECRET.
DEFAULT_ENCRYPTION_SECRET = "default-secret-key-change-in-production-32-chars!!"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _safe_int(env_var: str, default: str) -> int:
    """Parse an integer from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return int(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer for {env_var}: {raw!r}"
        ) from None


def _safe_float(env_var: str, default: str) -> float:
    """Parse a float from an env var with a clear error on bad values."""
    raw = os.getenv(env_var, default)
    try:
        return float(raw)
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid float for {env_var}: {raw!r}"
        ) from None


def _safe_bool(env_var: str, default: str) -> bool:
    raw = os.getenv(env_var, default).strip().lower()
    if raw in _TRUE_VALUES:
        return True
    if raw in _FALSE_VALUES:
        return False
    raise ValueError(f"Invalid boolean for {env_var}: {raw!r}")


def _safe_int_list(env_var: str, default: str) -> tuple[int, ...]:
    """Parse a comma-separated list of integers, e.g. ``"2,3,4"``."""
    raw = os.getenv(env_var, default)
    try:
        return tuple(int(part) for part in raw.split(",") if part.strip())
    except (ValueError, TypeError):
        raise ValueError(
            f"Invalid integer list for {env_var}: {raw!r}"
        ) from None


def _resolve_base_url() -> str:
    """Public base URL used in confirmation links."""
    for env_var in ("BASE_URL", "NEXT_PUBLIC_BASE_URL"):
        explicit = os.getenv(env_var)
        if explicit:
            return explicit.rstrip("/")
    vercel_host = os.getenv("VERCEL_URL")
    if vercel_host:
        return f"https://{vercel_host}"
    return "http://localhost:3000"


@dataclass(frozen=True)
class SecurityConfig:
    """Secret material for confirmation tokens."""

    encryption_secret: str = os.getenv("ENCRYPTION_SECRET", DEFAULT_ENCRYPTION_SECRET)


@dataclass(frozen=True)
class CalendarConfig:
    """Google Calendar gateway settings."""

    calendar_id: str = os.getenv("GOOGLE_CALENDAR_ID", "")
    api_base: str = os.getenv("GOOGLE_CALENDAR_API", "https://www.googleapis.com/calendar/v3")
    access_token: str = os.getenv("GOOGLE_ACCESS_TOKEN", "")
    timeout_sec: float = _safe_float("GOOGLE_CALENDAR_TIMEOUT", "10.0")
    event_time_zone: str = os.getenv("EVENT_TIME_ZONE", "America/Argentina/Buenos_Aires")
    reminder_minutes: int = _safe_int("EVENT_REMINDER_MINUTES", "10")


@dataclass(frozen=True)
class BookingDefaults:
    """Initial booking policy, before any admin change."""

    enabled: bool = _safe_bool("BOOKINGS_ENABLED", "true")
    start_hour: int = _safe_int("BOOKING_START_HOUR", "10")
    end_hour: int = _safe_int("BOOKING_END_HOUR", "20")
    # 0=Sunday ... 6=Saturday; Tuesday to Saturday by default
    allowed_days: tuple[int, ...] = _safe_int_list("BOOKING_ALLOWED_DAYS", "2,3,4,5,6")
    admin_email: str = os.getenv("DEFAULT_CALENDAR_EMAIL", "")


@dataclass(frozen=True)
class AppConfig:
    """Root configuration aggregating all sub-configs."""

    security: SecurityConfig = field(default_factory=SecurityConfig)
    calendar: CalendarConfig = field(default_factory=CalendarConfig)
    booking: BookingDefaults = field(default_factory=BookingDefaults)
    base_url: str = field(default_factory=_resolve_base_url)
    log_level: str = os.getenv("LOG_LEVEL", "INFO")
    app_name: str = os.getenv("APP_NAME", "turnero")


def _validate_config(config: AppConfig) -> None:
    """Validate configuration values are within acceptable ranges."""
    if not config.security.encryption_secret:
        raise ValueError("ENCRYPTION_SECRET must not be empty")
    if not 0 <= config.booking.start_hour <= 23:
        raise ValueError(
            f"BOOKING_START_HOUR must be between 0 and 23, got {config.booking.start_hour}"
        )
    if not 0 <= config.booking.end_hour <= 23:
        raise ValueError(
            f"BOOKING_END_HOUR must be between 0 and 23, got {config.booking.end_hour}"
        )
    if config.booking.start_hour >= config.booking.end_hour:
        raise ValueError(
            "BOOKING_START_HOUR must be lower than BOOKING_END_HOUR, "
            f"got {config.booking.start_hour} >= {config.booking.end_hour}"
        )
    for day in config.booking.allowed_days:
        if not 0 <= day <= 6:
            raise ValueError(f"BOOKING_ALLOWED_DAYS entries must be 0-6, got {day}")
    if config.calendar.timeout_sec <= 0:
        raise ValueError(
            f"GOOGLE_CALENDAR_TIMEOUT must be > 0, got {config.calendar.timeout_sec}"
        )
    if config.calendar.reminder_minutes < 0:
        raise ValueError(
            f"EVENT_REMINDER_MINUTES must be >= 0, got {config.calendar.reminder_minutes}"
        )


def load_config() -> AppConfig:
    """Load and validate application configuration."""
    config = AppConfig()
    _validate_config(config)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    if config.security.encryption_secret == DEFAULT_ENCRYPTION_SECRET:
        logger.warning("ENCRYPTION_SECRET not set; using the built-in default secret")
    logger.info("Configuration loaded for '%s' (%s)", config.app_name, config.base_url)
    return config


# Singleton instance
settings = load_config()
