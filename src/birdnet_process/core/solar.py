"""Night intervals from sunrise/sunset for day/night shading.

Sun events come from `astral <https://astral.readthedocs.io>`_. When astral
is not installed the calculator is skipped and callers carry on without
shading.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional, Tuple, Union

from birdnet_process.core.records import ObservationWindow
from birdnet_process.core.timebins import resolve_tz

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SolarInterval:
    """A contiguous dark period from one sunset to the following sunrise."""
    start: datetime
    end: datetime


def _load_astral():
    try:
        from astral import Observer
        from astral.sun import sun
    except ImportError:
        return None
    return Observer, sun


def to_reference(ts: datetime, reference_tz: tzinfo) -> datetime:
    """Express a sun event on the clock the bins follow.

    Detections are real instants (the readers tag recorder time with its
    zone), so this is a plain conversion: an 18:10 sunset in Brisbane lands at
    08:10 on a UTC clock and at 18:10 on a Brisbane clock.
    """
    return ts.astimezone(reference_tz)


def sun_events(latitude: float, longitude: float, days: List[date],
               local_tz: tzinfo) -> Optional[Dict[date, Optional[Tuple[datetime, datetime]]]]:
    """Sunrise and sunset per local day, or None without astral.

    Days on which the sun does not rise or set map to None.
    """
    loaded = _load_astral()
    if loaded is None:
        logger.info("astral is not installed; skipping day/night shading")
        return None
    Observer, sun = loaded

    observer = Observer(latitude=latitude, longitude=longitude)
    events: Dict[date, Optional[Tuple[datetime, datetime]]] = {}
    for day in days:
        try:
            s = sun(observer, date=day, tzinfo=local_tz)
        except ValueError as e:
            # polar day or polar night
            logger.debug(f"No sunrise/sunset on {day}: {e}")
            events[day] = None
            continue
        events[day] = (s["sunrise"], s["sunset"])
    return events


def night_intervals(latitude: float, longitude: float, tz: Union[str, tzinfo],
                    window: ObservationWindow,
                    reference_tz: Union[str, tzinfo] = timezone.utc) -> Optional[List[SolarInterval]]:
    """Nights overlapping the observation window.

    Sun events are computed for every local calendar day from one day before
    the window start to one day after its end. Each interval runs from a
    sunset to the next day's sunrise. Intervals with no overlap with the
    window are dropped; partial overlaps are kept unclipped.

    Args:
        latitude: Site latitude in degrees, -90 to 90.
        longitude: Site longitude in degrees, -180 to 180.
        tz: Local time zone of the site, e.g. ``"America/New_York"``.
        window: Observation window, as used for binning.
        reference_tz: Time zone of the binning clock. Returned intervals are
            expressed in it.

    Returns:
        Ordered list of intervals, or None if sun positions are unavailable.
    """
    if not -90.0 <= latitude <= 90.0:
        raise ValueError(f"Latitude must be in [-90, 90], got {latitude}")
    if not -180.0 <= longitude <= 180.0:
        raise ValueError(f"Longitude must be in [-180, 180], got {longitude}")

    local_tz = resolve_tz(tz)
    reference = resolve_tz(reference_tz)
    first_day = window.start.astimezone(local_tz).date() - timedelta(days=1)
    last_day = window.end.astimezone(local_tz).date() + timedelta(days=1)
    days = [first_day + timedelta(days=i) for i in range((last_day - first_day).days + 1)]

    events = sun_events(latitude, longitude, days, local_tz)
    if events is None:
        return None

    intervals = []
    for today, tomorrow in zip(days, days[1:]):
        if events[today] is None or events[tomorrow] is None:
            continue
        start = to_reference(events[today][1], reference)
        end = to_reference(events[tomorrow][0], reference)
        if window.overlaps(start, end):
            intervals.append(SolarInterval(start, end))
    logger.debug(f"{len(intervals)} night intervals overlap {window.start} - {window.end}")
    return intervals
