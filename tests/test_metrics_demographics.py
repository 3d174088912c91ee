"""Tests for the Microcensus vs Synthetic distribution bars."""

from __future__ import annotations

import pytest

from mobility.filters import normalize_filters
from mobility.metrics_demographics import GENDER_CATEGORIES, compute_distribution

pytestmark = pytest.mark.integration


@pytest.fixture
def demographic_files(write_json):
    write_json(
        "age_distribution.json",
        {"Zurich": {"Microcensus": {"18-24": 0.1, "25-44": 0.4}, "Synthetic": {"18-24": 0.12, "25-44": 0.38}}},
    )
    write_json(
        "gender_distribution.json",
        {"Zurich": {"Microcensus": {"0": 0.49, "1": 0.51}, "Synthetic": {"0": 0.5, "1": 0.5}}},
    )
    write_json(
        "mode_share_by_income.json",
        {
            "Zurich": {
                "Microcensus": {"2": {"car": 0.6, "pt": 0.4}},
                "Synthetic": {"2": {"car": 0.55, "pt": 0.45}},
            }
        },
    )
    write_json(
        "average_distance_by_age.json",
        {
            "Zurich": {
                "Microcensus": {"25-44": {"euclidean_distance": 8000, "network_distance": 11000}},
                "Synthetic": {"25-44": {"euclidean_distance": 7500, "network_distance": 10000}},
            }
        },
    )


def _values(payload, dataset: str) -> list:
    return [r["value"] for r in payload["data"] if r["dataset"] == dataset]


def test_plain_distribution_as_percent(demographic_files, make_source) -> None:
    payload = compute_distribution(
        make_source(),
        normalize_filters({"canton": "Zurich"}),
        chart_id="age",
        data_file="age_distribution.json",
        title="Age Distribution",
        x_label="Age Group",
    )

    assert payload["title"] == "Age Distribution"
    assert _values(payload, "Microcensus") == pytest.approx([10.0, 40.0])
    assert _values(payload, "Synthetic") == pytest.approx([12.0, 38.0])


def test_custom_categories_label_gender(demographic_files, make_source) -> None:
    payload = compute_distribution(
        make_source(),
        normalize_filters({"canton": "Zurich"}),
        chart_id="gender",
        data_file="gender_distribution.json",
        title="Gender",
        x_label="Gender",
        custom_categories=GENDER_CATEGORIES,
    )

    assert [r["category"] for r in payload["data"]][:2] == ["Male", "Female"]


def test_income_split_uses_selected_bracket(demographic_files, make_source) -> None:
    f = normalize_filters({"canton": "Zurich", "income": "2"})
    payload = compute_distribution(
        make_source(),
        f,
        chart_id="by-income",
        data_file="mode_share_by_income.json",
        title="Mode Share by Income",
        x_label="Mode",
        filter_type="income",
    )

    assert payload["title"] == "Mode Share by Income (Class 2)"
    assert _values(payload, "Synthetic") == pytest.approx([55.0, 45.0])


def test_missing_bracket_is_placeholder(demographic_files, make_source) -> None:
    payload = compute_distribution(
        make_source(),
        normalize_filters({"canton": "Zurich", "income": "5"}),
        chart_id="by-income",
        data_file="mode_share_by_income.json",
        title="Mode Share by Income",
        x_label="Mode",
        filter_type="income",
    )

    assert payload["chart"] is None
    assert payload["title"] == "Mode Share by Income (Class 5)"


def test_distance_split_follows_distance_type(demographic_files, make_source) -> None:
    f = normalize_filters({"canton": "Zurich", "distance_type": "network"})
    payload = compute_distribution(
        make_source(),
        f,
        chart_id="dist",
        data_file="average_distance_by_age.json",
        title="Average Distance by Age",
        x_label="Age",
        filter_type="distance",
        value_transform=lambda v: v / 1000,
    )

    assert payload["title"] == "Average Network Distance by Age"
    assert _values(payload, "Microcensus") == pytest.approx([11.0])


def test_unknown_filter_type_raises(demographic_files, make_source) -> None:
    with pytest.raises(ValueError):
        compute_distribution(
            make_source(),
            normalize_filters({}),
            chart_id="x",
            data_file="age_distribution.json",
            title="x",
            x_label="x",
            filter_type="height",
        )


def test_gender_split_maps_female_to_key_1(write_json, make_source) -> None:
    write_json(
        "mode_share_by_gender.json",
        {
            "Zurich": {
                "Microcensus": {"0": {"car": 0.7}, "1": {"car": 0.3}},
                "Synthetic": {"0": {"car": 0.65}, "1": {"car": 0.35}},
            }
        },
    )
    payload = compute_distribution(
        make_source(),
        normalize_filters({"canton": "Zurich", "gender": "female"}),
        chart_id="by-gender",
        data_file="mode_share_by_gender.json",
        title="Mode Share by Gender",
        x_label="Mode",
        filter_type="gender",
    )

    assert payload["title"] == "Mode Share by Gender (Female)"
    assert _values(payload, "Microcensus") == pytest.approx([30.0])
    assert _values(payload, "Synthetic") == pytest.approx([35.0])


def test_label_mapper_and_fixed_y_range(write_json, make_source) -> None:
    write_json(
        "income_distribution.json",
        {"Zurich": {"Microcensus": {"1": 0.2, "2": 0.8}, "Synthetic": {"1": 0.25, "2": 0.75}}},
    )
    payload = compute_distribution(
        make_source(),
        normalize_filters({"canton": "Zurich"}),
        chart_id="income",
        data_file="income_distribution.json",
        title="Income Distribution",
        x_label="Income Class",
        label_mapper=lambda key: f"Class {key}",
        y_range=(0, 100),
    )

    assert [r["category"] for r in payload["data"]][:2] == ["Class 1", "Class 2"]
    assert [r["key"] for r in payload["data"]][:2] == ["1", "2"]
    assert payload["chart"]["layer"][0]["encoding"]["y"]["scale"]["domain"] == [0, 100]
