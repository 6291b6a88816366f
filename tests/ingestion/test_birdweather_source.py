"""Tests for the BirdWeather detection source.

Tests cover:
- Query execution with retry and backoff
- Cursor pagination
- Normalisation of detection nodes into the BirdNET table layout
"""

import json
from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import pandas as pd
import pytest
import requests

from birdnet_process.core.activity import top_species_activity
from birdnet_process.ingestion.birdweather import (
    DETECTION_COLUMNS,
    QUERY_DETECTIONS,
    BirdWeatherClient,
    BirdWeatherError,
    detections_to_frame,
)


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def mock_client():
    """Create a BirdWeatherClient with mocked query execution."""
    client = BirdWeatherClient(page_delay=0)
    client._execute_query = MagicMock()
    return client


@pytest.fixture
def sample_detection():
    """Sample detection node as returned by the API."""
    return {
        "id": "det123",
        "timestamp": "2025-01-28T08:30:09Z",
        "confidence": 0.88,
        "score": 0.95,
        "species": {"id": "sp456", "commonName": "European Robin", "scientificName": "Erithacus rubecula"},
        "soundscape": {"id": "ss789", "startTime": 9.0, "endTime": 12.0, "timestamp": "2025-01-28T08:30:00Z"},
        "station": {"id": "12345", "name": "Test Station"},
    }


def _response(status_code=200, payload=None):
    response = MagicMock()
    response.status_code = status_code
    if payload is None:
        response.json.side_effect = json.JSONDecodeError("Expecting value", "", 0)
    else:
        response.json.return_value = payload
    return response


# =============================================================================
# QUERY EXECUTION
# =============================================================================

class TestExecuteQuery:
    """Tests for BirdWeatherClient._execute_query."""

    def test_returns_data(self):
        client = BirdWeatherClient()
        client.session = MagicMock()
        client.session.post.return_value = _response(payload={"data": {"detections": {}}})

        assert client._execute_query("query { x }") == {"data": {"detections": {}}}
        _, kwargs = client.session.post.call_args
        assert kwargs["json"] == {"query": "query { x }", "variables": {}}

    @patch("birdnet_process.ingestion.birdweather.time.sleep")
    def test_retries_rate_limit(self, mock_sleep):
        """HTTP 429 backs off exponentially before succeeding."""
        client = BirdWeatherClient(base_backoff=1.0)
        client.session = MagicMock()
        client.session.post.side_effect = [_response(429), _response(503), _response(payload={"data": {}})]

        assert client._execute_query("q") == {"data": {}}
        assert [c.args[0] for c in mock_sleep.call_args_list] == [1.0, 2.0]

    @patch("birdnet_process.ingestion.birdweather.time.sleep")
    def test_gives_up_after_max_retries(self, mock_sleep):
        client = BirdWeatherClient(max_retries=2)
        client.session = MagicMock()
        client.session.post.return_value = _response(500)

        with pytest.raises(BirdWeatherError, match="Max retries"):
            client._execute_query("q")

    def test_graphql_errors_without_data(self):
        client = BirdWeatherClient()
        client.session = MagicMock()
        client.session.post.return_value = _response(payload={"errors": [{"message": "bad"}]})

        with pytest.raises(BirdWeatherError, match="GraphQL"):
            client._execute_query("q")

    def test_invalid_json(self):
        client = BirdWeatherClient(max_retries=1)
        client.session = MagicMock()
        client.session.post.return_value = _response(payload=None)

        with pytest.raises(BirdWeatherError, match="Invalid JSON"):
            client._execute_query("q")

    @patch("birdnet_process.ingestion.birdweather.time.sleep")
    def test_network_error_reraised_on_last_attempt(self, mock_sleep):
        client = BirdWeatherClient(max_retries=2)
        client.session = MagicMock()
        client.session.post.side_effect = requests.ConnectionError("down")

        with pytest.raises(requests.ConnectionError):
            client._execute_query("q")
        assert mock_sleep.call_count == 1


# =============================================================================
# PAGINATION
# =============================================================================

class TestFetchDetections:
    """Tests for BirdWeatherClient.fetch_detections."""

    def test_follows_cursor(self, mock_client, sample_detection):
        mock_client._execute_query.side_effect = [
            {"data": {"detections": {"nodes": [sample_detection],
                                     "pageInfo": {"hasNextPage": True, "endCursor": "c1"}}}},
            {"data": {"detections": {"nodes": [sample_detection, sample_detection],
                                     "pageInfo": {"hasNextPage": False}}}},
        ]
        start = datetime(2025, 1, 28, tzinfo=timezone.utc)
        end = datetime(2025, 1, 29, tzinfo=timezone.utc)

        nodes = list(mock_client.fetch_detections(["12345"], start, end, min_confidence=0.5))

        assert len(nodes) == 3
        first, second = mock_client._execute_query.call_args_list
        assert first.args[0] == QUERY_DETECTIONS
        assert first.args[1]["cursor"] is None
        assert first.args[1]["minConfidence"] == 0.5
        assert first.args[1]["start"] == "2025-01-28T00:00:00+00:00"
        assert second.args[1]["cursor"] == "c1"

    def test_empty_response(self, mock_client):
        mock_client._execute_query.return_value = {"data": None}
        start = datetime(2025, 1, 28, tzinfo=timezone.utc)
        assert list(mock_client.fetch_detections(["1"], start, start)) == []


# =============================================================================
# NORMALISATION
# =============================================================================

class TestDetectionsToFrame:
    """Tests for detections_to_frame."""

    def test_columns_and_times(self, sample_detection):
        df = detections_to_frame([sample_detection])

        assert list(df.columns) == DETECTION_COLUMNS
        row = df.iloc[0]
        assert row["Site"] == "Test Station"
        assert row["Common Name"] == "European Robin"
        assert row["start_time"] == pd.Timestamp("2025-01-28 08:30:00", tz="UTC")
        assert row["begin_time_s"] == 9.0
        assert row["recording_window_time"] == pd.Timestamp("2025-01-28 08:30:09", tz="UTC")

    def test_without_soundscape(self, sample_detection):
        sample_detection["soundscape"] = None
        sample_detection["station"] = {"id": 77}
        row = detections_to_frame([sample_detection]).iloc[0]

        assert row["start_time"] == row["recording_window_time"]
        assert row["begin_time_s"] == 0.0
        assert row["Site"] == "77"

    def test_empty(self):
        df = detections_to_frame([])
        assert df.empty
        assert list(df.columns) == DETECTION_COLUMNS

    def test_feeds_activity(self, sample_detection):
        """API detections aggregate like file detections."""
        df = detections_to_frame([sample_detection, dict(sample_detection, confidence=0.2)])
        result = top_species_activity(df, confidence_threshold=0.5, facet_by="Site")
        assert result.table.total == 1
        assert result.table.facets == ("Test Station",)
