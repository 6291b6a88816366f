"""Dominant species detection for count charts.

A single very common species (thousands of fairy-wren calls next to a dozen
of everything else) flattens a bar chart. Such species are flagged so the
renderer can draw them at 1/``scale`` height on a secondary axis, or drop
them.
"""

import pandas as pd

from birdnet_process.core.exceptions import InsufficientSpeciesError


def flag_dominant_species(counts: pd.DataFrame, mean_factor: float = 10.0,
                          gap_factor: float = 5.0, scale: float = 10.0) -> pd.DataFrame:
    """Mark statistical outliers among species counts.

    A species is dominant when its count exceeds ``mean_factor`` times the
    mean count and ``gap_factor`` times the highest count that is not above
    that threshold.

    Args:
        counts: Table with ``species`` and ``n`` columns.
        mean_factor: Multiple of the mean a count must exceed.
        gap_factor: Multiple of the largest ordinary count a count must exceed.
        scale: Divisor applied to dominant counts in ``n_scaled``.

    Returns:
        Copy of ``counts`` with ``is_dom`` and ``n_scaled`` columns.

    Raises:
        InsufficientSpeciesError: If fewer than two species are present.
    """
    if len(counts) < 2:
        raise InsufficientSpeciesError(
            "One or fewer species detected at this confidence level, figure will not generate")

    flagged = counts.copy()
    threshold = mean_factor * flagged["n"].mean()
    ordinary = flagged.loc[flagged["n"] <= threshold, "n"]
    highest_ordinary = ordinary.max() if not ordinary.empty else 0
    flagged["is_dom"] = (flagged["n"] > threshold) & (flagged["n"] > gap_factor * highest_ordinary)
    flagged["n_scaled"] = flagged["n"].where(~flagged["is_dom"], flagged["n"] / scale)
    return flagged
