"""Detection records and the table-to-record boundary.

The aggregation core works on plain :class:`Detection` objects. Tables coming
out of the readers (``pandas.DataFrame`` with BirdNET column names) are
validated and converted here by :func:`detections_from_frame`.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Iterable, List, Optional, Sequence, Union

import pandas as pd

from birdnet_process.core.exceptions import MissingColumnError

logger = logging.getLogger(__name__)

NOCALL_LABEL = "nocall"

# Accepted column names, first match wins
TIMESTAMP_COLUMNS = ("recording_window_time", "timestamp")
SPECIES_COLUMNS = ("Common name", "Common Name", "species")
CONFIDENCE_COLUMNS = ("Confidence", "confidence")


@dataclass(frozen=True)
class Detection:
    """One species identification event.

    Attributes:
        timestamp: Absolute, timezone-aware time of the detection.
        species: Species label (BirdNET common name).
        confidence: Classifier confidence in [0, 1].
        facet: Optional secondary grouping label, e.g. the recording site.
    """
    timestamp: datetime
    species: str
    confidence: float
    facet: Optional[str] = None


@dataclass(frozen=True)
class ObservationWindow:
    """Closed time range covered by a set of detections."""
    start: datetime
    end: datetime

    @classmethod
    def from_detections(cls, detections: Iterable[Detection]) -> Optional["ObservationWindow"]:
        """Return the window spanning ``detections``, or None if there are none."""
        timestamps = [d.timestamp for d in detections]
        if not timestamps:
            return None
        return cls(min(timestamps), max(timestamps))

    def overlaps(self, start: datetime, end: datetime) -> bool:
        return end >= self.start and start <= self.end


def resolve_column(frame: pd.DataFrame, candidates: Sequence[str]) -> str:
    """Return the first of ``candidates`` present in ``frame``.

    Raises:
        MissingColumnError: If none of the candidate names is present.
    """
    for name in candidates:
        if name in frame.columns:
            return name
    raise MissingColumnError(candidates[0])


def detections_from_frame(frame: pd.DataFrame, facet_by: Optional[str] = None) -> List[Detection]:
    """Convert a BirdNET detection table into :class:`Detection` records.

    Naive timestamps are taken to be UTC. Rows without a timestamp are
    dropped with a warning.

    Args:
        frame: Table with timestamp, species and confidence columns.
        facet_by: Optional column holding the facet label (e.g. ``"Site"``).

    Returns:
        One Detection per usable row, in table order.

    Raises:
        MissingColumnError: If a required column or the facet column is absent.
    """
    time_col = resolve_column(frame, TIMESTAMP_COLUMNS)
    species_col = resolve_column(frame, SPECIES_COLUMNS)
    conf_col = resolve_column(frame, CONFIDENCE_COLUMNS)
    if facet_by is not None and facet_by not in frame.columns:
        raise MissingColumnError(facet_by, source="data (facet column)")

    timestamps = pd.to_datetime(frame[time_col])
    if timestamps.dt.tz is None:
        timestamps = timestamps.dt.tz_localize("UTC")

    valid = timestamps.notna()
    dropped = int((~valid).sum())
    if dropped:
        logger.warning(f"Dropping {dropped} detections without a timestamp")

    if facet_by is not None:
        # blank facet labels become None
        facets = [None if pd.isna(v) or not str(v).strip() else str(v) for v in frame[facet_by]]
    else:
        facets = [None] * len(frame)

    detections = []
    for ts, species, conf, facet in zip(timestamps, frame[species_col], frame[conf_col], facets):
        if pd.isna(ts):
            continue
        detections.append(Detection(
            timestamp=ts.to_pydatetime(),
            species=str(species),
            confidence=float(conf),
            facet=facet,
        ))
    return detections


def as_detections(data: Union[pd.DataFrame, Iterable[Detection]],
                  facet_by: Optional[str] = None) -> List[Detection]:
    """Accept either a detection table or already-built records."""
    if isinstance(data, pd.DataFrame):
        return detections_from_frame(data, facet_by=facet_by)
    detections = list(data)
    for det in detections:
        if det.timestamp.tzinfo is None:
            raise ValueError(f"Detection timestamp must be timezone-aware: {det.timestamp!r}")
    return detections
