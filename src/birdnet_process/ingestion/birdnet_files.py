"""BirdNET export readers.

Reads BirdNET output files into ``pandas`` DataFrames with a standard set of
column names, so that the aggregation core and the summaries can rely on
``Common Name``, ``Confidence``, ``start_time`` and ``recording_window_time``.

Two export layouts are understood:

- Raven selection tables (tab-delimited, any extension other than ``.csv``)
  with ``Begin Time (s)`` / ``End Time (s)``.
- BirdNET CSV results with ``Start (s)`` / ``End (s)``.

Recorders encode the start of each recording in the file name as
``YYYYMMDD_HHMMSS``; absolute detection times are the recording start plus
the offset in seconds.

Usage::

    >>> from birdnet_process.ingestion.birdnet_files import read_birdnet_sites
    >>> df = read_birdnet_sites(["data/SiteA", "data/SiteB"])
    >>> df[["Site", "Common Name", "recording_window_time"]].head()
"""

import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from birdnet_process.core.exceptions import MissingColumnError
from birdnet_process.core.timebins import resolve_tz

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = r"BirdNET.*\.(txt|csv)$"

FILENAME_DATETIME = re.compile(r"(\d{8}_\d{6})")

# (standard name, accepted source names)
COLUMN_RENAMES = (
    ("begin_time_s", ("Begin Time (s)", "Start (s)")),
    ("end_time_s", ("End Time (s)", "End (s)")),
    ("Common Name", ("Common name",)),
    ("Scientific Name", ("Scientific name",)),
)

PathLike = Union[str, Path]


def parse_birdnet_filename_datetime(file_name: str, tz: str = "UTC") -> datetime:
    """Extract the recording start time from a BirdNET file name.

    Args:
        file_name: Name or path such as
            ``"1STSMM2_20241105_050000.BirdNET.selection.table.txt"``.
        tz: Time zone the recorder clock is read in.

    Returns:
        Timezone-aware start datetime.

    Raises:
        ValueError: If the name holds no ``YYYYMMDD_HHMMSS`` chunk.

    Example:
        >>> parse_birdnet_filename_datetime("SiteA_20241105_050000.BirdNET.results.csv")
        datetime.datetime(2024, 11, 5, 5, 0, tzinfo=datetime.timezone.utc)
    """
    match = FILENAME_DATETIME.search(Path(file_name).name)
    if not match:
        raise ValueError(f"Filename does not match the expected pattern YYYYMMDD_HHMMSS: {file_name}")
    return datetime.strptime(match.group(1), "%Y%m%d_%H%M%S").replace(tzinfo=resolve_tz(tz))


def standardize_columns(df: pd.DataFrame, source: str = "data") -> pd.DataFrame:
    """Rename Raven / CSV column variants to the standard names.

    Raises:
        MissingColumnError: If no begin-time column is present.
    """
    renames = {}
    for target, candidates in COLUMN_RENAMES:
        if target in df.columns:
            continue
        for name in candidates:
            if name in df.columns:
                renames[name] = target
                break
    df = df.rename(columns=renames)
    if "begin_time_s" not in df.columns:
        raise MissingColumnError("Begin Time (s)' or 'Start (s)", source=source)
    return df


def read_birdnet_file(file_path: PathLike, tz: str = "UTC") -> pd.DataFrame:
    """Read a single BirdNET selection table or CSV results file.

    Args:
        file_path: Path to the file. ``.csv`` files are read comma-separated,
            anything else tab-separated.
        tz: Time zone for the start time parsed from the file name.

    Returns:
        All columns from the file, standardised, plus ``file_name``,
        ``start_time`` and ``recording_window_time``. If the file name holds
        no timestamp both time columns are ``NaT``.
    """
    path = Path(file_path)
    try:
        start_time = pd.Timestamp(parse_birdnet_filename_datetime(path.name, tz=tz))
    except ValueError:
        logger.warning(f"Could not parse datetime from filename: {path.name} - start_time will be NaT. "
                       "Ensure filename matches 'YYYYMMDD_HHMMSS' pattern.")
        start_time = pd.NaT

    sep = "," if path.suffix.lower() == ".csv" else "\t"
    df = pd.read_csv(path, sep=sep)
    df = standardize_columns(df, source=str(path))

    df["file_name"] = path.name
    # keep the column tz-aware even when NaT so frames concatenate cleanly
    df["start_time"] = pd.Series(start_time, index=df.index, dtype=pd.DatetimeTZDtype(tz=tz))
    df["recording_window_time"] = df["start_time"] + pd.to_timedelta(df["begin_time_s"], unit="s")
    logger.debug(f"Read {len(df)} rows from {path}")
    return df


def read_birdnet_folder(folder: PathLike = ".", pattern: str = DEFAULT_PATTERN,
                        recursive: bool = False, tz: str = "UTC") -> pd.DataFrame:
    """Read and concatenate every BirdNET file in a folder.

    Args:
        folder: Directory to scan.
        pattern: Regular expression matched against file names.
        recursive: Also scan subdirectories.
        tz: Time zone for the file name timestamps.

    Returns:
        Combined DataFrame; empty if no file matches.
    """
    folder = Path(folder)
    regex = re.compile(pattern)
    candidates = folder.rglob("*") if recursive else folder.glob("*")
    files = sorted(p for p in candidates if p.is_file() and regex.search(p.name))

    if not files:
        logger.warning(f"No files found matching pattern {pattern!r} in {folder}")
        return pd.DataFrame()

    logger.info(f"Reading {len(files)} BirdNET files from {folder}")
    return pd.concat([read_birdnet_file(f, tz=tz) for f in files], ignore_index=True)


def read_birdnet_sites(folder_paths: Iterable[PathLike], pattern: str = DEFAULT_PATTERN,
                       recursive: bool = False, tz: str = "UTC") -> pd.DataFrame:
    """Read one folder per site and tag rows with a ``Site`` column.

    The site name is the folder name.
    """
    frames = []
    for folder in folder_paths:
        df = read_birdnet_folder(folder, pattern=pattern, recursive=recursive, tz=tz)
        if not df.empty:
            df["Site"] = Path(folder).name
            frames.append(df)
    if not frames:
        return pd.DataFrame()
    return pd.concat(frames, ignore_index=True)
