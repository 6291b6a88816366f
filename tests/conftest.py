"""Shared fixtures for the birdnet_process test suite."""

import os
import sys
from datetime import datetime, timezone

import matplotlib
import pandas as pd
import pytest

# Add src to sys.path to ensure we can import the package if it's not installed
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '../src')))

matplotlib.use("Agg")

from birdnet_process.core.records import Detection  # noqa: E402


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_detection():
    """Factory for Detection records at UTC times."""
    def _make(species, hour, minute=0, confidence=0.9, facet=None, day=1):
        return Detection(utc(2024, 3, day, hour, minute), species, confidence, facet)
    return _make


@pytest.fixture
def detections_df():
    """Detection table shaped like the output of the BirdNET readers."""
    return pd.DataFrame({
        "Site": ["SiteA", "SiteA", "SiteA", "SiteB", "SiteB", "SiteB"],
        "Common Name": ["Bird A", "Bird A", "Bird B", "Bird A", "Bird C", "nocall"],
        "Confidence": [0.9, 0.8, 0.6, 0.7, 0.3, 0.99],
        "start_time": pd.to_datetime([
            "2024-03-01 10:00:00", "2024-03-01 12:00:00", "2024-03-01 11:00:00",
            "2024-03-01 10:00:00", "2024-03-01 11:00:00", "2024-03-01 12:00:00",
        ], utc=True),
        "recording_window_time": pd.to_datetime([
            "2024-03-01 10:05:00", "2024-03-01 12:10:00", "2024-03-01 11:20:00",
            "2024-03-01 10:40:00", "2024-03-01 11:30:00", "2024-03-01 12:00:00",
        ], utc=True),
    })
