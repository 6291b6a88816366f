"""Command-line interface for BirdNET processing.

Usage::

    $ birdnet-process summary data/SiteA
    $ birdnet-process activity data/SiteA data/SiteB --unit "30 min" --plot activity.png
    $ birdnet-process activity data/SiteA --species "Eastern Whipbird" --lat -27.5 --lon 153.0 \\
        --tz Australia/Brisbane --plot whipbird.png
    $ birdnet-process counts data/SiteA --remove-dominants --output counts.png
    $ birdnet-process init-config birdnet.yaml
"""

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt

from birdnet_process import info
from birdnet_process.analysis.summary import summarise_detections
from birdnet_process.config.settings import AnalysisConfig, create_default_config
from birdnet_process.core.activity import species_activity, top_species_activity
from birdnet_process.core.exceptions import BirdnetProcessError
from birdnet_process.ingestion.birdnet_files import read_birdnet_sites
from birdnet_process.plotting.charts import plot_activity, plot_species_counts, save_figure

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="birdnet-process", description="Summarise BirdNET detections")
    parser.add_argument("--config", type=Path, help="YAML or JSON configuration file")
    parser.add_argument("--log-level", type=str, help="Logging level (overrides the configuration)")
    parser.add_argument("--version", action="version", version=info())
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_input(sub: argparse.ArgumentParser):
        sub.add_argument("folders", nargs="+", type=Path, help="Folders of BirdNET files, one per site")
        sub.add_argument("--recursive", action="store_true", help="Also read subdirectories")
        sub.add_argument("--confidence", type=float, help="Minimum confidence (inclusive)")

    summary = subparsers.add_parser("summary", help="Print quick statistics")
    add_input(summary)

    activity = subparsers.add_parser("activity", help="Detections per time bin, zero-filled")
    add_input(activity)
    activity.add_argument("--species", action="append", help="Species to include (repeatable); default top N")
    activity.add_argument("--top", type=int, help="Number of top species")
    activity.add_argument("--unit", type=str, help='Bin width, e.g. "hour" or "10 min"')
    activity.add_argument("--lat", type=float, help="Site latitude for night shading")
    activity.add_argument("--lon", type=float, help="Site longitude for night shading")
    activity.add_argument("--tz", type=str, help="Local time zone of the site")
    activity.add_argument("--log-scaling", action="store_true", help="Symmetric log y-axis")
    activity.add_argument("--output", type=Path, default=Path("activity.csv"), help="CSV output path")
    activity.add_argument("--plot", type=Path, help="Also write a chart to this path")

    counts = subparsers.add_parser("counts", help="Species count bar chart")
    add_input(counts)
    counts.add_argument("--remove-dominants", action="store_true", help="Leave out dominant species")
    counts.add_argument("--output", type=Path, default=Path("species_counts.png"), help="Image output path")

    init = subparsers.add_parser("init-config", help="Write the default configuration file")
    init.add_argument("path", type=Path)
    return parser


def load_config(args: argparse.Namespace) -> AnalysisConfig:
    config = AnalysisConfig.from_file(args.config) if args.config else AnalysisConfig.from_env()
    overrides = {
        "confidence_threshold": getattr(args, "confidence", None),
        "n_top_species": getattr(args, "top", None),
        "unit": getattr(args, "unit", None),
        "latitude": getattr(args, "lat", None),
        "longitude": getattr(args, "lon", None),
        "tz": getattr(args, "tz", None),
        "log_level": args.log_level,
    }
    return replace(config, **{key: value for key, value in overrides.items() if value is not None})


def run_summary(args: argparse.Namespace, config: AnalysisConfig) -> int:
    df = read_birdnet_sites(args.folders, pattern=config.file_pattern, recursive=args.recursive, tz=config.tz)
    if df.empty:
        return 1
    stats = summarise_detections(df, config.confidence_threshold, config.nocall_label)
    if stats is None:
        print(f"No detections at confidence >= {config.confidence_threshold}")
        return 1
    print(stats.to_string(index=False))
    return 0


def run_activity(args: argparse.Namespace, config: AnalysisConfig) -> int:
    df = read_birdnet_sites(args.folders, pattern=config.file_pattern, recursive=args.recursive, tz=config.tz)
    if df.empty:
        return 1

    facet_by = config.facet_by or ("Site" if len(args.folders) > 1 else None)
    options = dict(
        confidence_threshold=config.confidence_threshold,
        unit=config.unit,
        facet_by=facet_by,
        latitude=config.latitude,
        longitude=config.longitude,
        tz=config.tz,
        nocall_label=config.nocall_label,
    )
    if args.species:
        result = species_activity(df, args.species, **options)
    else:
        result = top_species_activity(df, n_top_species=config.n_top_species, **options)

    if result is None:
        logger.warning(f"No detections at confidence >= {config.confidence_threshold}; nothing written")
        return 1

    args.output.parent.mkdir(parents=True, exist_ok=True)
    result.to_frame().to_csv(args.output, index=False)
    logger.info(f"Wrote {len(result.table)} rows to {args.output}")

    if args.plot:
        save_figure(plot_activity(result, log_scaling=args.log_scaling), args.plot)
    return 0


def run_counts(args: argparse.Namespace, config: AnalysisConfig) -> int:
    df = read_birdnet_sites(args.folders, pattern=config.file_pattern, recursive=args.recursive, tz=config.tz)
    if df.empty:
        return 1
    fig = plot_species_counts(df, config.confidence_threshold, remove_dominants=args.remove_dominants,
                              nocall_label=config.nocall_label)
    save_figure(fig, args.output)
    return 0


COMMANDS = {
    "summary": run_summary,
    "activity": run_activity,
    "counts": run_counts,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point of the ``birdnet-process`` script."""
    args = build_parser().parse_args(argv)

    if args.command == "init-config":
        logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s",
                            handlers=[logging.StreamHandler()])
        create_default_config(args.path)
        return 0

    config = load_config(args)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()]
    )
    plt.switch_backend("Agg")

    try:
        return COMMANDS[args.command](args, config)
    except BirdnetProcessError as e:
        logger.error(str(e))
        return 2


if __name__ == "__main__":
    sys.exit(main())
