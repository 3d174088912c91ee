"""Tests for the activity histograms."""

from __future__ import annotations

import pytest

from mobility.filters import normalize_filters
from mobility.metrics_activities import compute_activity_histogram

pytestmark = pytest.mark.integration


@pytest.fixture
def activity_file(write_json):
    write_json(
        "histogram_activity_duration.json",
        {
            "Zurich": {
                "Microcensus": {"work": {"0-1h": 0.00001, "1-2h": 0.00002}, "shop": {"0-1h": 0.00003}},
                "Synthetic": {"work": {"0-1h": 0.00002, "1-2h": 0.00001}, "shop": {"0-1h": 0.00004}},
            }
        },
    )


def test_first_activity_when_all(activity_file, make_source) -> None:
    payload = compute_activity_histogram(make_source(), normalize_filters({"canton": "Zurich"}))

    assert payload["id"] == "activity-duration"
    assert payload["activity"] == "work"
    assert payload["title"] == "Activity Duration (work)"
    mc = [r["percentage"] for r in payload["data"] if r["dataset"] == "Microcensus"]
    assert mc == pytest.approx([1.8, 3.6])


def test_selected_purpose_and_custom_scale(activity_file, make_source) -> None:
    f = normalize_filters({"canton": "Zurich", "purpose": "shop"})
    payload = compute_activity_histogram(make_source(), f, value_scale=100.0)

    assert payload["activity"] == "shop"
    assert [r["percentage"] for r in payload["data"]] == pytest.approx([0.003, 0.004])


def test_missing_activity_is_placeholder(activity_file, make_source) -> None:
    f = normalize_filters({"canton": "Zurich", "purpose": "leisure"})
    payload = compute_activity_histogram(make_source(), f)

    assert payload["chart"] is None
    assert payload["title"] == "Activity Duration (leisure)"


def test_all_key_preferred_when_purpose_is_all(write_json, make_source) -> None:
    write_json(
        "histogram_activity_departure_time.json",
        {
            "Bern": {
                "Microcensus": {"work": {"08:00": 0.00001}, "All": {"08:00": 0.00002}},
                "Synthetic": {"work": {"08:00": 0.00001}, "All": {"08:00": 0.00003}},
            }
        },
    )
    payload = compute_activity_histogram(make_source(), normalize_filters({"canton": "Bern"}), "departure")

    assert payload["id"] == "activity-departure"
    assert payload["activity"] == "All"
    assert payload["title"] == "Activity Departure Time (All)"
