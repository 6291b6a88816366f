"""Expansion of sparse aggregated cells into a dense, chart-ready table."""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone, tzinfo
from itertools import product
from typing import Dict, List, NamedTuple, Optional, Sequence, Tuple

import pandas as pd

from birdnet_process.core.aggregate import CellKey
from birdnet_process.core.records import ObservationWindow
from birdnet_process.core.timebins import BinUnit, bin_sequence

logger = logging.getLogger(__name__)


class ActivityRow(NamedTuple):
    time_bin: datetime
    species: str
    facet: Optional[str]
    count: int


@dataclass(frozen=True)
class DenseTable:
    """One row per (bin, species[, facet]) combination.

    ``facets`` is None when the table is unfaceted, including the degraded
    case where faceting was requested but no facet values were known.
    """
    rows: Tuple[ActivityRow, ...]
    bins: Tuple[datetime, ...]
    species: Tuple[str, ...]
    facets: Optional[Tuple[str, ...]] = None

    def __len__(self) -> int:
        return len(self.rows)

    def __iter__(self):
        return iter(self.rows)

    @property
    def total(self) -> int:
        return sum(row.count for row in self.rows)

    def series(self, species: str, facet: Optional[str] = None) -> List[Tuple[datetime, int]]:
        """Ordered (bin, count) pairs for one species (and facet)."""
        return [(r.time_bin, r.count) for r in self.rows if r.species == species and r.facet == facet]

    def to_frame(self, facet_column: Optional[str] = None) -> pd.DataFrame:
        """Return the table as a DataFrame with ``time_bin``, ``species`` and ``n``.

        Args:
            facet_column: Name for the facet column. Only used when the table
                is faceted.
        """
        records = []
        for row in self.rows:
            record = {"time_bin": row.time_bin, "species": row.species, "n": row.count}
            if self.facets is not None:
                record[facet_column or "facet"] = row.facet
            records.append(record)
        columns = ["time_bin", "species"]
        if self.facets is not None:
            columns.append(facet_column or "facet")
        columns.append("n")
        frame = pd.DataFrame.from_records(records, columns=columns)
        return frame.astype({"n": "int64"})


def _ordered_facets(cells: Dict[CellKey, int]) -> List[str]:
    return sorted({key.facet for key in cells if key.facet is not None})


def zero_fill(cells: Dict[CellKey, int], window: ObservationWindow, unit: BinUnit,
              species_list: Sequence[str], facets: Optional[Sequence[str]] = None,
              faceted: bool = False, bin_tz: tzinfo = timezone.utc) -> DenseTable:
    """Insert explicit zero counts for every missing combination.

    The bin range comes from ``window``, which callers compute from the
    confidence-filtered detections before any species restriction, so a
    species without detections still spans the whole recording period.

    Args:
        cells: Sparse counts from :func:`birdnet_process.core.aggregate.aggregate`.
        window: Observation window to cover.
        unit: Bin width, same as used for aggregation.
        species_list: Species to include, in output order. Duplicates are ignored.
        facets: Facet values to expand over. Defaults to the values present in
            ``cells`` when ``faceted`` is set.
        faceted: Expand over facets as well as bins and species.
        bin_tz: Time zone the bins were floored in.

    Returns:
        DenseTable with ``len(bins) * len(species) * len(facets)`` rows.
    """
    bins = bin_sequence(window.start.astimezone(bin_tz), window.end.astimezone(bin_tz), unit)
    species = list(dict.fromkeys(species_list))

    facet_values: Optional[List[str]] = None
    if faceted:
        facet_values = list(dict.fromkeys(facets)) if facets is not None else _ordered_facets(cells)
        if not facet_values:
            # facet membership cannot be recovered from an empty aggregate
            logger.info("No facet values in aggregated data; returning a time x species grid without facets")
            facet_values = None

    rows = []
    for time_bin, name, facet in product(bins, species, facet_values or [None]):
        count = cells.get(CellKey(time_bin, name, facet), 0)
        rows.append(ActivityRow(time_bin, name, facet, count))

    outside = sum(cells.values()) - sum(row.count for row in rows)
    if outside:
        logger.debug(f"{outside} detections fall outside the requested grid")

    return DenseTable(
        rows=tuple(rows),
        bins=tuple(bins),
        species=tuple(species),
        facets=tuple(facet_values) if facet_values is not None else None,
    )
