"""Species activity over time: filter, aggregate, zero-fill and shade.

These are the two entry points renderers use::

    >>> result = top_species_activity(detections_df, n_top_species=5, unit="hour")
    >>> result.to_frame().head()

Both return None when no detection survives the confidence filter, so
callers can skip plotting without catching anything.
"""

import logging
from dataclasses import dataclass
from datetime import tzinfo
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import pandas as pd

from birdnet_process.core.aggregate import aggregate, filter_detections, select_top_species
from birdnet_process.core.records import NOCALL_LABEL, Detection, ObservationWindow, as_detections
from birdnet_process.core.solar import SolarInterval, night_intervals
from birdnet_process.core.timebins import BinUnit, parse_unit, resolve_tz
from birdnet_process.core.zero_fill import DenseTable, zero_fill

logger = logging.getLogger(__name__)

DetectionData = Union[pd.DataFrame, Iterable[Detection]]


@dataclass(frozen=True)
class ActivityResult:
    """Dense activity table plus the context a chart needs."""
    table: DenseTable
    species: Tuple[str, ...]
    window: ObservationWindow
    unit: BinUnit
    facet_by: Optional[str] = None
    night: Optional[List[SolarInterval]] = None

    def to_frame(self) -> pd.DataFrame:
        return self.table.to_frame(facet_column=self.facet_by)


def top_species_activity(data: DetectionData, n_top_species: int = 10,
                         confidence_threshold: float = 0.5, unit: Union[str, BinUnit] = "hour",
                         facet_by: Optional[str] = None, latitude: Optional[float] = None,
                         longitude: Optional[float] = None, tz: Union[str, tzinfo] = "UTC",
                         bin_tz: Optional[Union[str, tzinfo]] = None, nocall_label: str = NOCALL_LABEL,
                         window: Optional[ObservationWindow] = None) -> Optional[ActivityResult]:
    """Activity of the most frequently detected species.

    Args:
        data: Detection table or Detection records.
        n_top_species: Number of species to keep, ranked by detection count.
        confidence_threshold: Minimum confidence, inclusive.
        unit: Bin width such as ``"hour"`` or ``"10 min"``.
        facet_by: Optional column to facet by, e.g. ``"Site"``.
        latitude: Site latitude; with ``longitude`` enables night shading.
        longitude: Site longitude.
        tz: Local time zone of the site for sunrise/sunset.
        bin_tz: Time zone whose clock the bins follow. Defaults to ``tz`` so
            bins and night shading read in site-local time.
        nocall_label: Species label meaning "no detection".
        window: Observation window to use when the data alone does not
            define one.

    Returns:
        ActivityResult, or None if nothing passes the confidence filter and
        no window was given.
    """
    detections = as_detections(data, facet_by=facet_by)
    if facet_by is not None:
        detections = _drop_blank_facets(detections, facet_by)
    filtered = filter_detections(detections, confidence_threshold, nocall_label)
    top = select_top_species(filtered, n_top_species) if filtered else []
    if not filtered and window is None:
        logger.info(f"No detections at confidence >= {confidence_threshold}")
        return None
    return _build_activity(filtered, top, unit, facet_by, latitude, longitude, tz, bin_tz, window)


def species_activity(data: DetectionData, species_list: Union[str, Sequence[str]],
                     confidence_threshold: float = 0.5, unit: Union[str, BinUnit] = "hour",
                     facet_by: Optional[str] = None, latitude: Optional[float] = None,
                     longitude: Optional[float] = None, tz: Union[str, tzinfo] = "UTC",
                     bin_tz: Optional[Union[str, tzinfo]] = None, nocall_label: str = NOCALL_LABEL,
                     window: Optional[ObservationWindow] = None) -> Optional[ActivityResult]:
    """Activity of named species.

    The time range comes from all detections passing the confidence filter,
    not just the requested species, so a species that was never detected
    still gets a full series of zeros.

    Args:
        species_list: Exact species labels, or a single label.

    See :func:`top_species_activity` for the remaining arguments.
    """
    if isinstance(species_list, str):
        species_list = [species_list]
    if not species_list:
        logger.info("Empty species list; nothing to aggregate")
        return None

    detections = as_detections(data, facet_by=facet_by)
    if facet_by is not None:
        detections = _drop_blank_facets(detections, facet_by)
    filtered = filter_detections(detections, confidence_threshold, nocall_label)
    if not filtered and window is None:
        logger.info(f"No detections at confidence >= {confidence_threshold}")
        return None

    present = {d.species for d in filtered}
    missing = [name for name in species_list if name not in present]
    if missing:
        logger.warning(f"No detections at confidence >= {confidence_threshold} for: {', '.join(missing)}")
    return _build_activity(filtered, list(species_list), unit, facet_by, latitude, longitude, tz, bin_tz, window)


def _build_activity(filtered: List[Detection], species: List[str], unit: Union[str, BinUnit],
                    facet_by: Optional[str], latitude: Optional[float], longitude: Optional[float],
                    tz: Union[str, tzinfo], bin_tz: Optional[Union[str, tzinfo]],
                    window: Optional[ObservationWindow]) -> ActivityResult:
    bin_unit = parse_unit(unit)
    reference = resolve_tz(bin_tz if bin_tz is not None else tz)
    if window is None:
        window = ObservationWindow.from_detections(filtered)

    faceted = facet_by is not None
    cells = aggregate(filtered, bin_unit, species=species, facet=faceted, bin_tz=reference)
    table = zero_fill(cells, window, bin_unit, species, faceted=faceted, bin_tz=reference)
    logger.info(f"Aggregated {table.total} detections into {len(table)} rows "
                f"({len(table.bins)} bins x {len(table.species)} species)")

    night = None
    if latitude is not None and longitude is not None:
        night = night_intervals(latitude, longitude, tz, window, reference_tz=reference)

    return ActivityResult(
        table=table,
        species=table.species,
        window=window,
        unit=bin_unit,
        facet_by=facet_by,
        night=night,
    )


def _drop_blank_facets(detections: List[Detection], facet_by: str) -> List[Detection]:
    kept = [d for d in detections if d.facet is not None]
    if len(kept) < len(detections):
        logger.warning(f"Dropping {len(detections) - len(kept)} detections without a '{facet_by}' value")
    return kept
