from abc import ABC, abstractmethod
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from leettracker.core.errors import InvalidTimezone


class Clock(ABC):
    """Source of the current instant. Always returns an aware UTC datetime."""

    @abstractmethod
    def now(self) -> datetime:
        ...


class SystemClock(Clock):
    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class FixedClock(Clock):
    """Clock pinned to one instant; `advance` moves it forward."""

    def __init__(self, instant: datetime):
        if instant.tzinfo is None:
            raise ValueError("FixedClock needs an aware datetime")
        self.instant = instant.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self.instant

    def advance(self, **kwargs: float) -> None:
        self.instant = self.instant + timedelta(**kwargs)


SYSTEM_CLOCK = SystemClock()


def _clock(clock: Clock | None) -> Clock:
    return clock or SYSTEM_CLOCK


def get_zone(tz_name: str) -> ZoneInfo:
    if not tz_name or not isinstance(tz_name, str):
        raise InvalidTimezone("Timezone name is empty", {"timezone": tz_name})
    try:
        return ZoneInfo(tz_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidTimezone(f"Unknown timezone: {tz_name}", {"timezone": tz_name}) from exc


def is_valid_timezone(tz_name: str) -> bool:
    try:
        get_zone(tz_name)
    except InvalidTimezone:
        return False
    return True


def now_in_tz(tz_name: str, clock: Clock | None = None) -> datetime:
    return _clock(clock).now().astimezone(get_zone(tz_name))


def today(tz_name: str, clock: Clock | None = None) -> str:
    return now_in_tz(tz_name, clock).date().isoformat()


def unix_to_tz(ts: int, tz_name: str) -> datetime:
    return datetime.fromtimestamp(ts, tz=timezone.utc).astimezone(get_zone(tz_name))


def to_zoned_date(ts: int, tz_name: str) -> str:
    return unix_to_tz(ts, tz_name).date().isoformat()


def is_today(ts: int, tz_name: str, clock: Clock | None = None) -> bool:
    return to_zoned_date(ts, tz_name) == today(tz_name, clock)


def seconds_until_midnight(tz_name: str, clock: Clock | None = None) -> int:
    """Seconds until the next local midnight in `tz_name`.

    The difference is taken between absolute instants, so on DST transition
    days the local day is 23 or 25 hours long. The result is always below
    the length of the current local day.
    """
    zone = get_zone(tz_name)
    now_utc = _clock(clock).now()
    local_today = now_utc.astimezone(zone).date()
    start = datetime.combine(local_today, time.min, tzinfo=zone).astimezone(timezone.utc)
    end = datetime.combine(local_today + timedelta(days=1), time.min, tzinfo=zone).astimezone(timezone.utc)
    day_length = int((end - start).total_seconds())
    remaining = int((end - now_utc).total_seconds())
    return max(0, min(remaining, day_length - 1))


def previous_day(date_str: str) -> str:
    return (date.fromisoformat(date_str) - timedelta(days=1)).isoformat()


def next_day(date_str: str) -> str:
    return (date.fromisoformat(date_str) + timedelta(days=1)).isoformat()


def date_range(end_date: str, days: int) -> list[str]:
    """`days` dates ending at `end_date`, newest first."""
    end = date.fromisoformat(end_date)
    return [(end - timedelta(days=i)).isoformat() for i in range(max(days, 0))]


def to_utc_iso(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.astimezone(timezone.utc).isoformat()


def format_time(dt: datetime) -> str:
    return dt.strftime("%I:%M %p").lstrip("0")
