"""Charts for activity tables and detection summaries.

Every function returns a ``matplotlib`` Figure and leaves closing it to the
caller (or to :func:`save_figure`). Nothing here switches backends; scripts
without a display should call ``plt.switch_backend("Agg")`` first.
"""

import logging
from pathlib import Path
from typing import Optional, Sequence, Union

import matplotlib.dates as mdates
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.colors import LinearSegmentedColormap, Normalize
from matplotlib.figure import Figure

from birdnet_process.analysis.summary import BAND_LABELS, confidence_bands, daily_counts, species_counts
from birdnet_process.core.activity import ActivityResult
from birdnet_process.core.records import NOCALL_LABEL
from birdnet_process.plotting.dominance import flag_dominant_species

logger = logging.getLogger(__name__)

NIGHT_COLOUR = "#333333"
NIGHT_ALPHA = 0.15
BAR_GRADIENT = ("#a1dab4", "#41b6c4")
DOMINANT_COLOUR = "#708090"
CONFIDENCE_PALETTE = [
    "#FFFFFF", "#FFFFE5", "#F7FCB9", "#D9F0A3", "#ADDD8E",
    "#78C679", "#41AB5D", "#238443", "#006837", "#004529",
]
# tanagR bird palette
STREAM_PALETTE = ["#F6AD4F", "#A45336", "#E6E8DB", "#6CB9A9", "#49A5D6", "#000A1A"]
STREAM_POINTS = 200


def plot_activity(result: ActivityResult, log_scaling: bool = False,
                  title: str = "BirdNET Detections") -> Figure:
    """Line chart of detections per bin for each species.

    Night intervals, when present, are shaded grey. A faceted result gets
    one panel per facet value sharing the time axis.

    Args:
        result: Output of ``top_species_activity`` or ``species_activity``.
        log_scaling: Use a symmetric log y-axis so zeros stay visible.
        title: Figure title.
    """
    table = result.table
    facets = list(table.facets) if table.facets is not None else [None]
    colours = dict(zip(table.species, sns.color_palette("viridis", max(len(table.species), 1))))

    with sns.axes_style("whitegrid"):
        fig, axes = plt.subplots(len(facets), 1, figsize=(12, 4 * len(facets)), sharex=True, squeeze=False)
    for ax, facet in zip(axes[:, 0], facets):
        for night in result.night or []:
            ax.axvspan(night.start, night.end, color=NIGHT_COLOUR, alpha=NIGHT_ALPHA, linewidth=0)

        for species in table.species:
            points = table.series(species, facet)
            if not points:
                continue
            times, counts = zip(*points)
            ax.plot(times, counts, color=colours[species], linewidth=1.5, label=species)
            ax.scatter(times, counts, color=colours[species], s=12, alpha=0.7)

        if len(table.bins) > 1:
            # night shading is not clipped, the axis limits do that
            ax.set_xlim(table.bins[0], table.bins[-1])
        if log_scaling:
            ax.set_yscale("symlog", linthresh=1)
        ax.set_ylabel(f"Calls per {result.unit}")
        if facet is not None:
            ax.set_title(f"{result.facet_by}: {facet}", fontsize=11)

    axes[-1, 0].set_xlabel("Time")
    plt.setp(axes[-1, 0].get_xticklabels(), rotation=45, ha="right")
    handles, labels = axes[0, 0].get_legend_handles_labels()
    if handles:
        fig.legend(handles, labels, title="Species", loc="lower center", ncol=min(len(labels), 5))
    fig.suptitle(title, fontsize=14)
    fig.tight_layout(rect=(0, 0.08, 1, 0.97))
    return fig


def plot_species_counts(df: pd.DataFrame, confidence: float = 0.0, remove_dominants: bool = False,
                        nocall_label: str = NOCALL_LABEL, scale: float = 10.0) -> Figure:
    """Bar chart of detections per species.

    Dominant species are drawn at 1/``scale`` height against a secondary
    axis, or left out entirely when ``remove_dominants`` is set.

    Raises:
        InsufficientSpeciesError: If fewer than two species pass the filter.
    """
    counts = flag_dominant_species(species_counts(df, confidence, nocall_label), scale=scale)

    if remove_dominants:
        dominants = counts[counts["is_dom"]]
        if dominants.empty:
            logger.info("No dominant species removed.")
        else:
            removed = "\n".join(f"- {row.species} (n = {row.n})" for row in dominants.itertuples())
            logger.info(f"Dominant species removed:\n{removed}")
        counts = counts[~counts["is_dom"]]

    counts = counts.sort_values("n", kind="stable")
    ordinary = counts.loc[~counts["is_dom"], "n_scaled"]
    cmap = LinearSegmentedColormap.from_list("counts", BAR_GRADIENT)
    norm = Normalize(vmin=ordinary.min(), vmax=ordinary.max()) if not ordinary.empty else Normalize()
    colours = [DOMINANT_COLOUR if dom else cmap(norm(n)) for n, dom in zip(counts["n_scaled"], counts["is_dom"])]

    with sns.axes_style("whitegrid"):
        fig, ax = plt.subplots(figsize=(max(6, 0.35 * len(counts)), 6))
    ax.bar(counts["species"], counts["n_scaled"], color=colours)
    ax.set_ylabel("recordings")
    ax.margins(y=0.1)
    ax.set_ylim(bottom=0)
    ax.grid(axis="x", visible=False)
    plt.setp(ax.get_xticklabels(), rotation=90, fontsize=8)

    if counts["is_dom"].any():
        secondary = ax.secondary_yaxis("right", functions=(lambda y: y * scale, lambda y: y / scale))
        secondary.set_ylabel("recordings (dominant species)", color=DOMINANT_COLOUR)
        secondary.tick_params(colors=DOMINANT_COLOUR)

    if "start_time" in df.columns and not df.empty:
        start = pd.to_datetime(df["start_time"])
        logger.info(f"Recordings between {start.min():%d %B %Y} - {start.max():%d %B %Y} "
                    f"with confidence >= {confidence}")
    fig.tight_layout()
    return fig


def plot_confidence(df: pd.DataFrame, confidence: float = 0.0,
                    nocall_label: str = NOCALL_LABEL) -> Figure:
    """Stacked area chart of daily detections per confidence band."""
    bands = confidence_bands(df, confidence, nocall_label)
    wide = (
        bands.pivot_table(index="date", columns="confidence_band", values="n",
                          aggfunc="sum", fill_value=0, observed=False)
        .reindex(columns=BAND_LABELS, fill_value=0)
        .sort_index()
    )

    with sns.axes_style("white"):
        fig, ax = plt.subplots(figsize=(12, 5))
    if not wide.empty:
        ax.stackplot(pd.to_datetime(wide.index), wide.T.to_numpy(), labels=BAND_LABELS,
                     colors=CONFIDENCE_PALETTE, alpha=0.7, edgecolor="black", linewidth=0.25)
        ax.legend(title="confidence", loc="upper left", bbox_to_anchor=(1.01, 1))
    ax.set_ylabel("recordings")
    fig.tight_layout()
    return fig


def plot_timeline(df: pd.DataFrame, confidence: float = 0.0,
                  species: Optional[Sequence[str]] = None,
                  nocall_label: str = NOCALL_LABEL) -> Figure:
    """Line chart of detections per day."""
    daily = daily_counts(df, confidence, species=species, nocall_label=nocall_label)

    with sns.axes_style("whitegrid"):
        fig, ax = plt.subplots(figsize=(12, 4))
    ax.plot(pd.to_datetime(daily["date"]), daily["n"], color=BAR_GRADIENT[1])
    ax.set_ylabel("recordings")
    ax.set_ylim(bottom=0)
    fig.autofmt_xdate()
    fig.tight_layout()
    return fig


def plot_species_stream(df: pd.DataFrame, confidence: float = 0.0,
                        species: Optional[Sequence[str]] = None, bw: float = 0.75,
                        nocall_label: str = NOCALL_LABEL) -> Figure:
    """Streamgraph of daily detections per species.

    Each species' zero-filled daily counts are smoothed with a Gaussian
    kernel and the curves are stacked on a zero baseline.

    Args:
        df: Detection table.
        confidence: Minimum confidence (inclusive).
        species: Species to draw, in stacking order. Defaults to every
            species in descending count order.
        bw: Kernel bandwidth in days.
        nocall_label: Label of the no-call class, always excluded.

    Raises:
        ValueError: If ``bw`` is not positive.
    """
    if bw <= 0:
        raise ValueError(f"bw must be positive, got {bw}")
    if species is None:
        species = species_counts(df, confidence, nocall_label)["species"].tolist()
    else:
        species = [species] if isinstance(species, str) else list(species)

    with sns.axes_style("white"):
        fig, ax = plt.subplots(figsize=(12, 5))

    series = [daily_counts(df, confidence, species=[name], nocall_label=nocall_label) for name in species]
    if not series or series[0].empty:
        logger.info(f"No detections with confidence >= {confidence} to draw")
        return fig

    dates = pd.to_datetime(series[0]["date"])
    days = ((dates - dates.iloc[0]) / pd.Timedelta(days=1)).to_numpy(dtype=float)
    grid = np.linspace(days[0] - 2 * bw, days[-1] + 2 * bw, STREAM_POINTS)
    weights = np.exp(-0.5 * ((grid[:, None] - days[None, :]) / bw) ** 2) / (bw * np.sqrt(2 * np.pi))
    curves = np.vstack([weights @ s["n"].to_numpy(dtype=float) for s in series])

    x = mdates.date2num(dates.iloc[0]) + grid
    ax.stackplot(x, curves, labels=species, colors=sns.color_palette(STREAM_PALETTE, len(species)),
                 alpha=0.7, edgecolor="black", linewidth=0.25)
    ax.xaxis.set_major_formatter(mdates.DateFormatter("%b %y"))
    ax.set_ylabel("Relative frequency")
    ax.tick_params(axis="y", labelleft=False)
    ax.legend(title="species name", loc="upper left", bbox_to_anchor=(1.01, 1))
    fig.tight_layout()
    return fig


def save_figure(fig: Figure, path: Union[str, Path], dpi: int = 150) -> Path:
    """Write ``fig`` as an image and close it."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    try:
        fig.savefig(path, dpi=dpi)
        logger.info(f"Saved chart to {path}")
    finally:
        plt.close(fig)
    return path
