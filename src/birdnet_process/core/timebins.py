"""Time-bin units: parsing, flooring and stepping.

Units follow the ``lubridate::floor_date`` vocabulary used by BirdNET
tooling: ``"hour"``, ``"10 min"``, ``"2 hours"``, ``"day"``, ``"week"``,
``"month"``. Multiples floor within the next larger unit (``"10 min"``
gives :00, :10, ... within each hour). Weeks start on Sunday.

All arithmetic is wall-clock arithmetic in the timestamp's own tzinfo.
"""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Union
from zoneinfo import ZoneInfo

_ALIASES: Dict[str, str] = {
    "s": "second", "sec": "second", "secs": "second", "second": "second", "seconds": "second",
    "min": "minute", "mins": "minute", "minute": "minute", "minutes": "minute",
    "h": "hour", "hr": "hour", "hrs": "hour", "hour": "hour", "hours": "hour",
    "d": "day", "day": "day", "days": "day",
    "week": "week", "weeks": "week",
    "month": "month", "months": "month",
    "year": "year", "years": "year",
}

_FIXED_SECONDS = {"second": 1, "minute": 60, "hour": 3600, "day": 86400}

_UNIT_RE = re.compile(r"^\s*(\d+)?\s*([A-Za-z]+)\s*$")


@dataclass(frozen=True)
class BinUnit:
    """A fixed time granularity such as one hour or ten minutes."""
    name: str
    multiple: int = 1

    def __post_init__(self):
        if self.name not in _FIXED_SECONDS and self.name not in ("week", "month", "year"):
            raise ValueError(f"Unknown bin unit: {self.name!r}")
        if self.multiple < 1:
            raise ValueError(f"Bin unit multiple must be positive, got {self.multiple}")
        if self.name == "week" and self.multiple != 1:
            raise ValueError("Multi-week bins are not supported")

    def __str__(self) -> str:
        return self.name if self.multiple == 1 else f"{self.multiple} {self.name}s"


def parse_unit(unit: Union[str, BinUnit]) -> BinUnit:
    """Parse a unit string such as ``"hour"`` or ``"10 min"``.

    Raises:
        ValueError: If the string does not name a known unit.
    """
    if isinstance(unit, BinUnit):
        return unit
    match = _UNIT_RE.match(unit)
    if not match or match.group(2).lower() not in _ALIASES:
        raise ValueError(f"Unknown bin unit: {unit!r}")
    multiple = int(match.group(1)) if match.group(1) else 1
    return BinUnit(_ALIASES[match.group(2).lower()], multiple)


def floor_time(ts: datetime, unit: BinUnit) -> datetime:
    """Round ``ts`` down to the start of its bin."""
    n = unit.multiple
    if unit.name == "second":
        return ts.replace(second=ts.second - ts.second % n, microsecond=0)
    if unit.name == "minute":
        return ts.replace(minute=ts.minute - ts.minute % n, second=0, microsecond=0)
    if unit.name == "hour":
        return ts.replace(hour=ts.hour - ts.hour % n, minute=0, second=0, microsecond=0)

    midnight = ts.replace(hour=0, minute=0, second=0, microsecond=0)
    if unit.name == "day":
        return midnight.replace(day=ts.day - (ts.day - 1) % n)
    if unit.name == "week":
        # isoweekday: Monday=1 .. Sunday=7
        return midnight - timedelta(days=ts.isoweekday() % 7)
    if unit.name == "month":
        return midnight.replace(month=ts.month - (ts.month - 1) % n, day=1)
    return midnight.replace(year=ts.year - ts.year % n, month=1, day=1)


def step_time(ts: datetime, unit: BinUnit) -> datetime:
    """Advance ``ts`` by one unit."""
    n = unit.multiple
    if unit.name in _FIXED_SECONDS:
        return ts + timedelta(seconds=_FIXED_SECONDS[unit.name] * n)
    if unit.name == "week":
        return ts + timedelta(weeks=1)
    if unit.name == "month":
        years, month_index = divmod(ts.month - 1 + n, 12)
        return ts.replace(year=ts.year + years, month=month_index + 1)
    return ts.replace(year=ts.year + n)


def bin_sequence(start: datetime, end: datetime, unit: BinUnit) -> List[datetime]:
    """Every bin from ``floor(start)`` to ``floor(end)`` inclusive.

    A start bin later than the end bin collapses to a single bin.
    """
    first = floor_time(start, unit)
    last = floor_time(end, unit)
    if first > last:
        first = last

    bins = []
    current = first
    while current <= last:
        bins.append(current)
        # floor again so multiples re-align at the start of each larger unit
        current = floor_time(step_time(current, unit), unit)
    return bins


def resolve_tz(tz: Union[str, tzinfo, None]) -> tzinfo:
    """Turn an IANA name such as ``"Europe/Berlin"`` into a tzinfo."""
    if tz is None or tz == "UTC":
        return timezone.utc
    if isinstance(tz, tzinfo):
        return tz
    return ZoneInfo(tz)
