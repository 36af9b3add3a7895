# backend/virtual_line/services/slots/config.py
"""
Slot engine configuration and time-format helpers.
"""

import re
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from enum import Enum
from functools import lru_cache

from ...config import settings
from ...exceptions import NotFoundError, ValidationError

_TIME_RE = re.compile(r"^(\d{1,2}):(\d{2})$")

STORE_TS_FORMAT = "%Y-%m-%d %H:%M:%S"


class SlotKind(str, Enum):
    """Slot kind. Stored as time_slots.is_workin (0/1)."""

    REGULAR = "regular"
    WORKIN = "workin"

    @property
    def is_workin(self) -> int:
        return 1 if self is SlotKind.WORKIN else 0

    @classmethod
    def from_flag(cls, is_workin: int) -> "SlotKind":
        return cls.WORKIN if is_workin else cls.REGULAR


@dataclass(frozen=True)
class ScheduleConfig:
    """
    Configuration for the slot allocation engine.

    Attributes:
        hold_ttl_seconds: Lifetime of a hold before it is void
        site_min_intervals: site_id -> minimum minutes between slots
    """
    hold_ttl_seconds: int = 120
    site_min_intervals: dict[int, int] = field(default_factory=lambda: {1: 5, 2: 10})

    def __post_init__(self):
        """Validate configuration."""
        if self.hold_ttl_seconds <= 0:
            raise ValueError(f"hold_ttl_seconds must be positive, got {self.hold_ttl_seconds}")
        for site_id, minutes in self.site_min_intervals.items():
            if minutes <= 0:
                raise ValueError(f"site {site_id}: min interval must be positive, got {minutes}")

    @property
    def hold_ttl(self) -> timedelta:
        return timedelta(seconds=self.hold_ttl_seconds)

    def min_interval_for(self, site_id: int) -> int:
        """Minimum slot interval (minutes) for a site."""
        try:
            return self.site_min_intervals[site_id]
        except KeyError:
            raise NotFoundError(f"Unknown site {site_id}") from None


@lru_cache
def get_schedule_config() -> ScheduleConfig:
    """Engine configuration from application settings (singleton)."""
    return ScheduleConfig(
        hold_ttl_seconds=settings.hold_ttl_seconds,
        site_min_intervals=dict(settings.site_min_intervals),
    )


# ── Time helpers ─────────────────────────────────────────────────────────


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    hour, minute = int(match.group(1)), int(match.group(2))
    if hour > 23 or minute > 59:
        raise ValidationError(f"Invalid time {value!r}, expected HH:MM")
    return hour * 60 + minute


def minutes_to_time_str(minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def normalize_time(value: str) -> str:
    """Canonical "HH:MM" form ("7:05" -> "07:05")."""
    return minutes_to_time_str(time_str_to_minutes(value))


def normalize_date(value: str | date) -> str:
    """Canonical "YYYY-MM-DD" form."""
    if isinstance(value, date):
        return value.isoformat()
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date().isoformat()
    except ValueError:
        raise ValidationError(f"Invalid date {value!r}, expected YYYY-MM-DD") from None


def utc_now() -> datetime:
    """Current UTC time as a naive datetime (store convention)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_store_ts(dt: datetime) -> str:
    return dt.strftime(STORE_TS_FORMAT)
