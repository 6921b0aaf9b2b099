"""Schedule frequency parsing and next-run evaluation.

Two kinds are supported:
    interval: ISO-8601 duration ("PT1H", "P1D", "PT30M") or short form ("30m", "1h", "1d", "45s")
    cron:     standard 5-field crontab expression, evaluated in the schedule's timezone
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from apscheduler.triggers.cron import CronTrigger

from errors import InvalidFrequency


INTERVAL = "interval"
CRON = "cron"

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?(?:(?P<seconds>\d+)S)?)?$"
)
_SHORT_DURATION = re.compile(r"^(?P<amount>\d+)\s*(?P<unit>[smhdw])$")
_SHORT_UNITS = {"s": "seconds", "m": "minutes", "h": "hours", "d": "days", "w": "weeks"}

# Shortest interval a schedule may use
MIN_INTERVAL = timedelta(minutes=1)


def parse_interval(value: str) -> timedelta:
    """Parse an interval string into a timedelta.

    Raises:
        InvalidFrequency: Unparseable or shorter than one minute
    """
    text = (value or "").strip()
    short = _SHORT_DURATION.match(text.lower())
    if short:
        interval = timedelta(**{_SHORT_UNITS[short.group("unit")]: int(short.group("amount"))})
    else:
        iso = _ISO_DURATION.match(text.upper())
        if not iso or text.upper() in ("P", "PT") or text.upper().endswith("T"):
            raise InvalidFrequency(f"Invalid interval '{value}'")
        parts = {k: int(v) for k, v in iso.groupdict().items() if v}
        interval = timedelta(**parts)

    if interval < MIN_INTERVAL:
        raise InvalidFrequency(f"Interval '{value}' is shorter than {MIN_INTERVAL}")
    return interval


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name or "UTC")
    except (ZoneInfoNotFoundError, ValueError):
        raise InvalidFrequency(f"Unknown timezone '{name}'")


def build_cron_trigger(expression: str, timezone: str) -> CronTrigger:
    try:
        return CronTrigger.from_crontab(expression, timezone=resolve_timezone(timezone))
    except ValueError as e:
        raise InvalidFrequency(f"Invalid cron expression '{expression}': {e}")


@dataclass(frozen=True)
class Frequency:
    """Validated schedule frequency."""
    kind: str
    value: str

    @classmethod
    def parse(cls, kind: str, value: str, timezone: str = "UTC") -> "Frequency":
        """Validate kind/value (and the timezone for cron) up front."""
        if kind == INTERVAL:
            parse_interval(value)
        elif kind == CRON:
            build_cron_trigger(value, timezone)
        else:
            raise InvalidFrequency(f"Unknown frequency kind '{kind}' (expected interval or cron)")
        return cls(kind=kind, value=value.strip())

    def next_run_after(self, anchor: datetime, timezone: str = "UTC") -> datetime:
        """First instant strictly after `anchor` at which the schedule is due.

        Interval schedules are due `interval` after the anchor (the last run, or
        creation time for a schedule that never ran). Cron schedules are due at
        the next crontab occurrence after the anchor in the schedule's timezone.
        """
        if self.kind == INTERVAL:
            return anchor + parse_interval(self.value)

        trigger = build_cron_trigger(self.value, timezone)
        # get_next_fire_time returns the first fire time >= now; nudge past the anchor
        fire_time = trigger.get_next_fire_time(None, anchor + timedelta(microseconds=1))
        if fire_time is None:
            raise InvalidFrequency(f"Cron expression '{self.value}' never fires")
        return fire_time.astimezone(ZoneInfo("UTC"))


def is_weekend(moment: datetime, timezone: str = "UTC") -> bool:
    """Saturday or Sunday in the given timezone."""
    return moment.astimezone(resolve_timezone(timezone)).weekday() >= 5
