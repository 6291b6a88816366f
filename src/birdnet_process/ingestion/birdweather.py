#!/usr/bin/env python3
"""BirdWeather detection source.

Fetches station detections from the BirdWeather GraphQL API and normalises
them into the same table layout the BirdNET file readers produce, so API
data can go straight into the aggregation core and the summaries.

Features
--------
- **Resilient Fetching**: exponential backoff on HTTP 429 / 5xx and network
  errors.
- **Cursor-Based Pagination**: detections are streamed page by page.
- **Normalisation**: GraphQL nodes become rows with ``Common Name``,
  ``Scientific Name``, ``Confidence``, ``start_time``, ``begin_time_s``,
  ``recording_window_time`` and ``Site``.

Usage
-----
Command-line interface::

    $ python -m birdnet_process.ingestion.birdweather --station-id 1234 --days 7 \\
        --output detections.csv

Programmatic usage::

    >>> from birdnet_process.ingestion.birdweather import BirdWeatherClient, detections_to_frame
    >>> client = BirdWeatherClient()
    >>> nodes = client.fetch_detections(["1234"], start, end, min_confidence=0.5)
    >>> df = detections_to_frame(nodes)

API Reference
-------------
BirdWeather GraphQL API: https://app.birdweather.com/api/index.html
"""

import argparse
import json
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, Generator, Iterable, List, Optional

import pandas as pd
import requests

from birdnet_process.core.exceptions import BirdnetProcessError

# --- Configuration & Constants ---

API_ENDPOINT = "https://app.birdweather.com/graphql"

HEADERS = {
    "User-Agent": "birdnet-process/0.1 (BirdNET activity summaries)",
    "Content-Type": "application/json",
    "Accept": "application/json",
}

QUERY_DETECTIONS = """
query Detections(
  $stationIds: [ID!],
  $start: ISO8601DateTime,
  $end: ISO8601DateTime,
  $cursor: String,
  $minScore: Float,
  $minConfidence: Float
) {
  detections(
    stationIds: $stationIds
    period: { start: $start, end: $end }
    scoreGte: $minScore
    confidenceGte: $minConfidence
    first: 100
    after: $cursor
    order: ASC
  ) {
    pageInfo { hasNextPage endCursor }
    totalCount
    nodes {
      id
      timestamp
      confidence
      score
      species {
        id
        commonName
        scientificName
      }
      soundscape {
        id
        startTime
        endTime
        timestamp
      }
      station {
        id
        name
      }
    }
  }
}
"""


# --- Logging ---

logger = logging.getLogger(__name__)


class BirdWeatherError(BirdnetProcessError):
    """The BirdWeather API returned an unusable response."""


# --- Client ---

@dataclass
class BirdWeatherClient:
    """HTTP client for the BirdWeather GraphQL API.

    Attributes:
        session: Pooled requests session carrying the JSON headers.
        max_retries: Attempts per query before giving up.
        base_backoff: Base delay in seconds, doubled on every retry.
        page_delay: Pause between pages in seconds.
    """
    session: requests.Session = field(default_factory=requests.Session)
    max_retries: int = 5
    base_backoff: float = 2.0
    page_delay: float = 0.1

    def __post_init__(self):
        self.session.headers.update(HEADERS)

    def _execute_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL query with retry on rate limiting and server errors.

        Args:
            query: The GraphQL query string to execute.
            variables: Optional dictionary of variables to pass with the query.

        Returns:
            The JSON response as a dictionary.

        Raises:
            BirdWeatherError: If retries are exhausted, the response is not
                JSON, or GraphQL reports errors without data.
            requests.RequestException: For network failures on the last attempt.
        """
        payload = {"query": query, "variables": variables or {}}

        for attempt in range(self.max_retries):
            try:
                response = self.session.post(API_ENDPOINT, json=payload, timeout=60)

                if response.status_code == 429 or response.status_code >= 500:
                    sleep_time = self.base_backoff * (2 ** attempt)
                    logger.warning(f"HTTP {response.status_code} from BirdWeather. Retrying in {sleep_time}s...")
                    time.sleep(sleep_time)
                    continue

                try:
                    data = response.json()
                except json.JSONDecodeError:
                    if attempt == self.max_retries - 1:
                        raise BirdWeatherError("Invalid JSON response from server")
                    continue

                if "errors" in data:
                    logger.error(f"GraphQL Errors: {data['errors']}")
                    if not data.get("data"):
                        raise BirdWeatherError(f"GraphQL Error: {data['errors']}")

                return data

            except requests.RequestException as e:
                if attempt == self.max_retries - 1:
                    raise
                logger.warning(f"Network error: {e}. Retrying...")
                time.sleep(self.base_backoff * (2 ** attempt))

        raise BirdWeatherError("Max retries exceeded")

    def fetch_detections(self, station_ids: List[str], start: datetime, end: datetime,
                         min_confidence: Optional[float] = None,
                         min_score: Optional[float] = None) -> Generator[Dict, None, None]:
        """Stream detections for stations within a time range.

        Args:
            station_ids: BirdWeather station IDs.
            start: Start of the period (inclusive).
            end: End of the period (exclusive).
            min_confidence: Server-side minimum confidence (0.0-1.0).
            min_score: Server-side minimum BirdWeather score.

        Yields:
            Dict: Detection node with species, soundscape and station.
        """
        cursor = None
        iso_start = start.isoformat()
        iso_end = end.isoformat()
        fetched = 0

        while True:
            variables = {
                "stationIds": station_ids,
                "start": iso_start,
                "end": iso_end,
                "cursor": cursor,
                "minScore": min_score,
                "minConfidence": min_confidence,
            }
            data = self._execute_query(QUERY_DETECTIONS, variables)

            connection = (data.get("data") or {}).get("detections") or {}
            nodes = connection.get("nodes", [])
            page_info = connection.get("pageInfo", {})

            for node in nodes:
                fetched += 1
                yield node

            if not page_info.get("hasNextPage"):
                logger.info(f"Fetched {fetched} detections for stations {', '.join(map(str, station_ids))}")
                break

            cursor = page_info.get("endCursor")
            time.sleep(self.page_delay)


# --- Normalisation ---

DETECTION_COLUMNS = [
    "Site", "Common Name", "Scientific Name", "Confidence",
    "start_time", "begin_time_s", "end_time_s", "recording_window_time", "detection_id",
]


def _node_to_row(node: Dict[str, Any]) -> Dict[str, Any]:
    timestamp = pd.Timestamp(node["timestamp"])
    species = node.get("species") or {}
    soundscape = node.get("soundscape") or {}
    station = node.get("station") or {}

    # detections sit at an offset into a soundscape recording
    if soundscape.get("timestamp") is not None:
        start_time = pd.Timestamp(soundscape["timestamp"])
        begin = soundscape.get("startTime")
        begin = float(begin) if begin is not None else (timestamp - start_time).total_seconds()
    else:
        start_time = timestamp
        begin = 0.0
    end = soundscape.get("endTime")

    return {
        "Site": station.get("name") or str(station.get("id", "unknown")),
        "Common Name": species.get("commonName"),
        "Scientific Name": species.get("scientificName"),
        "Confidence": node.get("confidence"),
        "start_time": start_time,
        "begin_time_s": begin,
        "end_time_s": float(end) if end is not None else None,
        "recording_window_time": timestamp,
        "detection_id": node.get("id"),
    }


def detections_to_frame(nodes: Iterable[Dict[str, Any]]) -> pd.DataFrame:
    """Normalise BirdWeather detection nodes into the BirdNET table layout.

    Timestamps are converted to UTC.
    """
    df = pd.DataFrame([_node_to_row(node) for node in nodes], columns=DETECTION_COLUMNS)
    for column in ("start_time", "recording_window_time"):
        df[column] = pd.to_datetime(df[column], utc=True)
    return df


# --- CLI Entrypoint ---

def main() -> None:
    """Fetch BirdWeather detections for stations and write them as CSV.

    Example:
        $ python -m birdnet_process.ingestion.birdweather --station-id 1234 --days 7
        $ python -m birdnet_process.ingestion.birdweather --station-id 1234 \\
            --start-date 2024-01-01 --end-date 2024-01-31 --min-confidence 0.7
    """
    parser = argparse.ArgumentParser(description="Fetch BirdWeather station detections")
    parser.add_argument("--station-id", type=str, action="append", required=True, help="Station ID (repeatable)")
    parser.add_argument("--days", type=int, default=7, help="Days to look back")
    parser.add_argument("--start-date", type=str, help="YYYY-MM-DD")
    parser.add_argument("--end-date", type=str, help="YYYY-MM-DD")
    parser.add_argument("--min-confidence", type=float, help="Minimum confidence")
    parser.add_argument("--min-score", type=float, help="Minimum detection score")
    parser.add_argument("--output", type=str, default="birdweather_detections.csv", help="CSV output path")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler()]
    )

    if args.start_date and args.end_date:
        start = datetime.strptime(args.start_date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
        end = datetime.strptime(args.end_date, "%Y-%m-%d").replace(tzinfo=timezone.utc)
    else:
        end = datetime.now(timezone.utc)
        start = end - timedelta(days=args.days)

    client = BirdWeatherClient()
    nodes = client.fetch_detections(args.station_id, start, end,
                                    min_confidence=args.min_confidence, min_score=args.min_score)
    df = detections_to_frame(nodes)

    output = Path(args.output)
    output.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(output, index=False)
    logger.info(f"Wrote {len(df)} detections to {output}")


if __name__ == "__main__":
    main()
