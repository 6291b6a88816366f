"""Tests for the quick statistics and count tables."""

from datetime import date

import pandas as pd
import pytest

from birdnet_process.analysis.summary import (
    BAND_LABELS,
    confidence_bands,
    daily_counts,
    filter_frame,
    species_counts,
    summarise_detections,
)
from birdnet_process.core.exceptions import MissingColumnError


@pytest.fixture
def two_day_df():
    """Robin x3 and Sparrow x2 over two days."""
    t1 = pd.Timestamp("2024-01-01 10:00:00")
    t2 = pd.Timestamp("2024-01-01 11:00:00")
    t3 = pd.Timestamp("2024-01-02 10:00:00")
    return pd.DataFrame({
        "Common Name": ["Robin", "Robin", "Sparrow", "Robin", "Sparrow"],
        "Confidence": [0.9, 0.9, 0.9, 0.9, 0.9],
        "start_time": [t1, t1, t1, t2, t3],
    })


def _stat(stats, name):
    return stats.loc[stats["statistic"] == name, "value"].item()


class TestSummariseDetections:
    """Tests for summarise_detections."""

    def test_statistics(self, two_day_df):
        stats = summarise_detections(two_day_df, confidence=0.5)

        assert list(stats.columns) == ["statistic", "value"]
        assert _stat(stats, "Number of species") == "2"
        assert _stat(stats, "Number of recordings") == "5"
        assert _stat(stats, "Most common bird") == "Robin"
        assert _stat(stats, "Peak hour") == "2024-01-01 10:00:00"
        assert _stat(stats, "Average recordings per day") == "2.5"
        assert _stat(stats, "Average recordings per hour") == "1.666667"
        assert "01 Jan 24" in _stat(stats, "Recording window")
        assert "02 Jan 24" in _stat(stats, "Recording window")

    def test_values_are_strings(self, two_day_df):
        stats = summarise_detections(two_day_df)
        assert all(isinstance(v, str) for v in stats["value"])

    def test_threshold_is_inclusive(self, two_day_df):
        stats = summarise_detections(two_day_df, confidence=0.9)
        assert _stat(stats, "Number of recordings") == "5"

    def test_nothing_passes(self, two_day_df):
        assert summarise_detections(two_day_df, confidence=0.95) is None

    def test_requires_start_time(self, two_day_df):
        with pytest.raises(MissingColumnError):
            summarise_detections(two_day_df.drop(columns=["start_time"]))


class TestFilterFrame:
    """Tests for filter_frame."""

    def test_renames_and_drops_nocall(self):
        df = pd.DataFrame({"Common name": ["A", "nocall", "B"], "confidence": [0.5, 0.9, 0.4]})
        filtered = filter_frame(df, 0.5)
        assert filtered["Common Name"].tolist() == ["A"]

    def test_rejects_bad_threshold(self, two_day_df):
        with pytest.raises(ValueError):
            filter_frame(two_day_df, 2.0)


class TestSpeciesCounts:
    """Tests for species_counts."""

    def test_sorted_descending(self):
        df = pd.DataFrame({
            "Common Name": ["Sparrow"] * 5 + ["Robin"] * 10 + ["nocall"],
            "Confidence": [0.8] * 5 + [0.9] * 10 + [0.1],
        })
        counts = species_counts(df, confidence=0.5)
        assert counts.to_dict("records") == [{"species": "Robin", "n": 10}, {"species": "Sparrow", "n": 5}]

    def test_ties_keep_first_appearance(self):
        df = pd.DataFrame({"Common Name": ["B", "A", "A", "B"], "Confidence": [0.9] * 4})
        assert species_counts(df)["species"].tolist() == ["B", "A"]


class TestConfidenceBands:
    """Tests for confidence_bands."""

    def test_right_closed_bands(self):
        df = pd.DataFrame({
            "Common Name": ["A", "A", "A", "A"],
            "Confidence": [0.1, 0.15, 0.95, 1.0],
            "start_time": pd.to_datetime(["2024-01-01 10:00"] * 3 + ["2024-01-02 10:00"]),
        })
        bands = confidence_bands(df)
        records = {(r["date"], r["confidence_band"]): r["n"] for r in bands.to_dict("records")}

        assert records == {
            (date(2024, 1, 1), "0.0 - 0.1"): 1,
            (date(2024, 1, 1), "0.1 - 0.2"): 1,
            (date(2024, 1, 1), "0.9 - 1.0"): 1,
            (date(2024, 1, 2), "0.9 - 1.0"): 1,
        }

    def test_labels(self):
        assert BAND_LABELS[0] == "0.0 - 0.1"
        assert BAND_LABELS[-1] == "0.9 - 1.0"
        assert len(BAND_LABELS) == 10


class TestDailyCounts:
    """Tests for daily_counts."""

    def test_zero_days_included(self):
        df = pd.DataFrame({
            "Common Name": ["A", "A", "B"],
            "Confidence": [0.9, 0.9, 0.9],
            "recording_window_time": pd.to_datetime(["2024-01-01 10:00", "2024-01-03 08:00", "2024-01-03 09:00"]),
        })
        daily = daily_counts(df)
        assert daily["date"].tolist() == [date(2024, 1, 1), date(2024, 1, 2), date(2024, 1, 3)]
        assert daily["n"].tolist() == [1, 0, 2]

    def test_species_subset(self):
        df = pd.DataFrame({
            "Common Name": ["A", "B"],
            "Confidence": [0.9, 0.9],
            "recording_window_time": pd.to_datetime(["2024-01-01 10:00", "2024-01-02 10:00"]),
        })
        assert daily_counts(df, species=["B"])["n"].tolist() == [0, 1]

    def test_empty(self):
        df = pd.DataFrame({
            "Common Name": ["A"],
            "Confidence": [0.1],
            "recording_window_time": pd.to_datetime(["2024-01-01 10:00"]),
        })
        daily = daily_counts(df, confidence=0.5)
        assert daily.empty
        assert list(daily.columns) == ["date", "n"]
