"""Quick statistics and count tables over BirdNET detection tables.

All functions take the DataFrame produced by the readers in
:mod:`birdnet_process.ingestion.birdnet_files` and apply the same confidence
rule as the aggregation core (``Confidence >= confidence``, "nocall" rows
dropped).
"""

import logging
from datetime import timezone
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from birdnet_process.core.aggregate import aggregate, filter_detections
from birdnet_process.core.records import (
    CONFIDENCE_COLUMNS, NOCALL_LABEL, SPECIES_COLUMNS, ObservationWindow, detections_from_frame,
    resolve_column,
)
from birdnet_process.core.timebins import bin_sequence, parse_unit

logger = logging.getLogger(__name__)

STATISTIC_LABELS = {
    "n_species": "Number of species",
    "n_recordings": "Number of recordings",
    "recording_window": "Recording window",
    "most_common_bird": "Most common bird",
    "peak_hour": "Peak hour",
    "av_recordings_per_day": "Average recordings per day",
    "av_recordings_per_hour": "Average recordings per hour",
}

BAND_EDGES = np.round(np.linspace(0.0, 1.0, 11), 1)
BAND_LABELS = [f"{lo:.1f} - {hi:.1f}" for lo, hi in zip(BAND_EDGES[:-1], BAND_EDGES[1:])]


def _format_value(value) -> str:
    if isinstance(value, (float, np.floating)):
        return f"{value:.7g}"
    return str(value)


def filter_frame(df: pd.DataFrame, confidence: float = 0.0,
                 nocall_label: str = NOCALL_LABEL) -> pd.DataFrame:
    """Rows at or above ``confidence`` that are not "nocall".

    The species column is renamed to ``Common Name`` and the confidence
    column to ``Confidence`` in the returned copy.
    """
    if not 0.0 <= confidence <= 1.0:
        raise ValueError(f"Confidence threshold must be in [0, 1], got {confidence}")
    species_col = resolve_column(df, SPECIES_COLUMNS)
    conf_col = resolve_column(df, CONFIDENCE_COLUMNS)
    df = df.rename(columns={species_col: "Common Name", conf_col: "Confidence"})
    keep = (df["Confidence"] >= confidence) & (df["Common Name"] != nocall_label)
    return df.loc[keep].copy()


def summarise_detections(df: pd.DataFrame, confidence: float = 0.0,
                         nocall_label: str = NOCALL_LABEL) -> Optional[pd.DataFrame]:
    """Summary statistics of a detection table.

    Args:
        df: Detection table with ``Common Name``, ``Confidence`` and
            ``start_time`` columns.
        confidence: Minimum confidence.
        nocall_label: Label of rows without a detection.

    Returns:
        Two-column table (``statistic``, ``value``) of strings, or None if
        no row passes the filter.
    """
    resolve_column(df, ("start_time",))
    df = filter_frame(df, confidence, nocall_label)
    if df.empty:
        logger.info(f"No detections at confidence >= {confidence}")
        return None

    start = pd.to_datetime(df["start_time"])
    per_species = df.groupby("Common Name").size().sort_values(ascending=False, kind="stable")
    per_start = df.groupby(start).size()
    peak = per_start.sort_values(ascending=False, kind="stable").index[0]
    per_day = df.groupby(start.dt.date).size()

    stats = {
        "n_species": df["Common Name"].nunique(),
        "n_recordings": len(df),
        "recording_window": f"{start.min():%d %b %y} - {start.max():%d %b %y}",
        "most_common_bird": per_species.index[0],
        "peak_hour": f"{peak:%Y-%m-%d %H:%M:%S}",
        "av_recordings_per_day": float(per_day.mean()),
        "av_recordings_per_hour": float(per_start.mean()),
    }
    return pd.DataFrame({
        "statistic": [STATISTIC_LABELS[key] for key in stats],
        "value": [_format_value(value) for value in stats.values()],
    })


def species_counts(df: pd.DataFrame, confidence: float = 0.0,
                   nocall_label: str = NOCALL_LABEL) -> pd.DataFrame:
    """Detections per species, most detected first.

    Ties keep the order in which species first appear.
    """
    df = filter_frame(df, confidence, nocall_label)
    counts = df.groupby("Common Name", sort=False).size().sort_values(ascending=False, kind="stable")
    return counts.rename_axis("species").reset_index(name="n")


def confidence_bands(df: pd.DataFrame, confidence: float = 0.0,
                     nocall_label: str = NOCALL_LABEL) -> pd.DataFrame:
    """Daily detection counts per confidence band.

    Bands are right-closed tenths, labelled ``"0.0 - 0.1"`` to
    ``"0.9 - 1.0"``; a confidence of exactly 0 falls in no band.

    Returns:
        Table with ``date``, ``confidence_band`` and ``n`` columns.
    """
    resolve_column(df, ("start_time",))
    df = filter_frame(df, confidence, nocall_label)
    bands = pd.cut(df["Confidence"], bins=BAND_EDGES, labels=BAND_LABELS, right=True)
    dates = pd.to_datetime(df["start_time"]).dt.date
    counts = (
        pd.DataFrame({"date": dates, "confidence_band": bands})
        .dropna()
        .groupby(["date", "confidence_band"], observed=True)
        .size()
        .reset_index(name="n")
    )
    return counts


def daily_counts(df: pd.DataFrame, confidence: float = 0.0,
                 species: Optional[Sequence[str]] = None,
                 nocall_label: str = NOCALL_LABEL) -> pd.DataFrame:
    """Detections per day across the whole recording period, zeros included.

    Args:
        df: Detection table.
        confidence: Minimum confidence.
        species: Optional species to count; all species when None.
        nocall_label: Label of rows without a detection.

    Returns:
        Table with ``date`` and ``n`` columns, one row per day.
    """
    filtered = filter_detections(detections_from_frame(df), confidence, nocall_label)
    window = ObservationWindow.from_detections(filtered)
    if window is None:
        return pd.DataFrame({"date": pd.Series(dtype="object"), "n": pd.Series(dtype="int64")})

    unit = parse_unit("day")
    cells = aggregate(filtered, unit, species=species)
    per_bin = {}
    for key, count in cells.items():
        per_bin[key.time_bin] = per_bin.get(key.time_bin, 0) + count

    bins = bin_sequence(window.start.astimezone(timezone.utc), window.end.astimezone(timezone.utc), unit)
    return pd.DataFrame({
        "date": [b.date() for b in bins],
        "n": [per_bin.get(b, 0) for b in bins],
    })
