"""Filtering and time-bin aggregation of detections.

Grouping is an explicit key -> count mapping. Cells with no detections are
absent from the result; :mod:`birdnet_process.core.zero_fill` adds them.
"""

import logging
from collections import defaultdict
from datetime import datetime, timezone, tzinfo
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from birdnet_process.core.records import NOCALL_LABEL, Detection
from birdnet_process.core.timebins import BinUnit, floor_time

logger = logging.getLogger(__name__)


class CellKey(NamedTuple):
    """Grouping key of an aggregated cell. ``facet`` is None when unfaceted."""
    time_bin: datetime
    species: str
    facet: Optional[str] = None


def filter_detections(detections: Iterable[Detection], confidence_threshold: float,
                      nocall_label: str = NOCALL_LABEL) -> List[Detection]:
    """Keep detections at or above the confidence threshold.

    Detections labelled with the "no detection" sentinel are always dropped.

    Raises:
        ValueError: If the threshold lies outside [0, 1].
    """
    if not 0.0 <= confidence_threshold <= 1.0:
        raise ValueError(f"Confidence threshold must be in [0, 1], got {confidence_threshold}")
    kept = [
        d for d in detections
        if d.confidence >= confidence_threshold and d.species != nocall_label
    ]
    logger.debug(f"{len(kept)} detections at confidence >= {confidence_threshold}")
    return kept


def count_species(detections: Iterable[Detection]) -> Dict[str, int]:
    """Detections per species, keyed in first-encountered order."""
    counts: Dict[str, int] = {}
    for det in detections:
        counts[det.species] = counts.get(det.species, 0) + 1
    return counts


def select_top_species(detections: Sequence[Detection], n: int) -> List[str]:
    """The ``n`` most frequent species, most frequent first.

    Ties keep first-encountered order. Fewer than ``n`` species yields all of
    them.
    """
    if n < 1:
        raise ValueError(f"Number of top species must be at least 1, got {n}")
    counts = count_species(detections)
    # sorted() is stable, so equal counts keep insertion order
    ranked = sorted(counts, key=lambda species: counts[species], reverse=True)
    return ranked[:n]


def aggregate(detections: Iterable[Detection], unit: BinUnit,
              species: Optional[Sequence[str]] = None, facet: bool = False,
              bin_tz: tzinfo = timezone.utc) -> Dict[CellKey, int]:
    """Count detections per (time bin, species[, facet]).

    Args:
        detections: Already confidence-filtered detections.
        unit: Bin width.
        species: Optional allow-list; other species are ignored.
        facet: Group by the detection facet as well.
        bin_tz: Time zone whose wall clock the bins are floored in.

    Returns:
        Mapping of cell key to a positive count. Empty input gives an empty
        mapping.
    """
    allowed = set(species) if species is not None else None
    cells: Dict[CellKey, int] = defaultdict(int)
    for det in detections:
        if allowed is not None and det.species not in allowed:
            continue
        time_bin = floor_time(det.timestamp.astimezone(bin_tz), unit)
        cells[CellKey(time_bin, det.species, det.facet if facet else None)] += 1
    return dict(cells)
