"""Tests for transit stop matching and the transit charts."""

from __future__ import annotations

import json
import logging

import pytest

from mobility.charts import SELECT_CANTON
from mobility.filters import normalize_filters
from mobility.metrics_transit import (
    TransitStop,
    available_lines,
    clean_stop_ids,
    compute_passengers_by_stop,
    compute_stop_summary,
    compute_transfer_destinations,
    compute_transfer_matrix,
    find_stop_record,
    parse_lines,
    parse_modes,
    resolve_stop,
    resolve_stop_name,
    search_stops,
    stop_suggestions,
    time_bin_labels,
)

HB_IDS = ["8503000:0:3", "8503000:0:4"]
LONG_ID = "8599999:0:1.link:very_long_id_here"


def _feature(name: str, stop_id, lines=None, modes=None) -> dict:
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [8.54, 47.37]},
        "properties": {"name": name, "stop_id": stop_id, "lines": lines or [], "modes_list": modes},
    }


FEATURES = [
    _feature(
        "Zürich HB",
        json.dumps(HB_IDS),
        json.dumps(
            [
                {"line_id": "10", "line_name": "S10", "mode": "rail"},
                {"line_id": "2", "line_name": "", "mode": "tram"},
                {"line_id": "2", "line_name": "Tram 2", "mode": "tram"},
                {"line_id": "10", "line_name": "S10", "mode": "rail"},
            ]
        ),
        "rail,tram",
    ),
    _feature("Zürich Stadelhofen", ["8503003:0:1"]),
    _feature("Oerlikon Zürichstrasse", "8591111"),
    _feature("Bahnhofstrasse", "8591059"),
]


@pytest.fixture
def transit_files(write_json):
    write_json("matsim/transit/stops_by_canton/Zurich_stops.geojson", {"type": "FeatureCollection", "features": FEATURES})
    write_json(
        "matsim/transit/per_canton_counts/Zurich_counts.json",
        [
            {
                "stop_id": "8503000:0:3",
                "line_id": "10",
                "data": [
                    {"time_bin": "07:00", "boardings": 5, "alightings": 2},
                    {"time_bin": "07:15", "boardings": 3, "alightings": 1},
                ],
            },
            {"stop_id": "8503000:0:4", "line_id": "2", "data": [{"time_bin": "07:00", "boardings": 4, "alightings": 4}]},
            {"stop_id": "8503003:0:1", "line_id": "10", "data": [{"time_bin": "08:00", "boardings": 100, "alightings": 50}]},
        ],
    )
    write_json(
        "stop_transfer_data_by_canton.json",
        {
            "Zurich": {
                "8503000:0:3.link:pt_8503000:0:3": {
                    "line_transfers": {"10": {"2": 7}, "2": {"10": 3, "2": 9}},
                    "stop_transfers": {"8503003:0:1": 6, "8591059": 2, LONG_ID: 1},
                    "total_transfers_in": 19,
                    "total_transfers_out": 15,
                }
            },
            "inter_cantonal": {},
        },
    )
    write_json(
        "boarding_data_by_line.json",
        {
            "a": {"line_id": "10", "line_name": "S10", "vehicle": "rail"},
            "b": {"line_id": "2", "line_name": "S10", "vehicle": "rail"},
        },
    )


def _hb(**extra) -> dict:
    return normalize_filters({"canton": "Zurich", "transit_stop": "Zürich HB", **extra})


# ---------------- Parsing / matching ----------------
@pytest.mark.unit
@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, []),
        (["8503000:0:3", ["a", "b"]], ["8503000:0:3", "a", "b"]),
        ('["1:0", "2:0"]', ["1:0", "2:0"]),
        ("8503000:0:3, 8503000:0:4", ["8503000:0:3", "8503000:0:4"]),
        ("8591059", ["8591059"]),
        (8591059, ["8591059"]),
    ],
)
def test_clean_stop_ids(raw, expected) -> None:
    assert clean_stop_ids(raw) == expected


@pytest.mark.unit
def test_parse_lines_and_modes() -> None:
    assert parse_lines('[{"line_id": 1}, "junk"]') == [{"line_id": 1}]
    assert parse_lines("not json") == []
    assert parse_modes('["bus", "tram"]') == ["bus", "tram"]
    assert parse_modes("bus, tram") == ["bus", "tram"]
    assert parse_modes(None) == []


@pytest.mark.unit
def test_search_prefix_before_substring() -> None:
    names = [f["properties"]["name"] for f in search_stops(FEATURES, "zur")]

    assert names == ["Zürich HB", "Zürich Stadelhofen", "Oerlikon Zürichstrasse"]
    assert search_stops(FEATURES, "   ") == []
    assert len(search_stops(FEATURES, "zur", limit=1)) == 1


@pytest.mark.unit
def test_resolve_stop_by_name_accent_or_id() -> None:
    assert resolve_stop(FEATURES, "Zürich HB").stop_ids == HB_IDS
    assert resolve_stop(FEATURES, "zurich hb").name == "Zürich HB"
    assert resolve_stop(FEATURES, "8503003:0:1").name == "Zürich Stadelhofen"
    assert resolve_stop(FEATURES, "Nowhere") is None


@pytest.mark.unit
def test_available_lines_unique_named_and_natural_sorted() -> None:
    hb = resolve_stop(FEATURES, "Zürich HB")
    assert [(l["line_id"], l["line_name"]) for l in available_lines(hb)] == [("10", "S10"), ("2", "Tram 2")]

    stop = TransitStop(
        name="x",
        lines=[{"line_id": i, "line_name": n} for i, n in [("a", "S12"), ("b", "S2"), ("c", "S10")]],
    )
    assert [l["line_name"] for l in available_lines(stop)] == ["S2", "S10", "S12"]
    assert available_lines(None) == []


@pytest.mark.unit
def test_find_stop_record_order() -> None:
    stop = TransitStop(name="x", stop_id="A:1", stop_ids=["A:1", "B:2"])

    assert find_stop_record({"A:1": "primary", "B:2": "alt"}, stop) == "primary"
    assert find_stop_record({"B:2": "alt"}, stop) == "alt"
    assert find_stop_record({"zzz_A:1.link": "partial"}, stop) == "partial"
    assert find_stop_record({"B:9.link": "prefix"}, TransitStop(name="y", stop_ids=["B:2"])) == "prefix"
    assert find_stop_record({"C:3": "other"}, stop) is None


@pytest.mark.unit
def test_resolve_stop_name_fallbacks() -> None:
    lookup = {"8503000": "Zürich HB"}

    assert resolve_stop_name("8503000:0:7", lookup) == "Zürich HB"
    assert resolve_stop_name("short", lookup) == "short"
    assert resolve_stop_name(LONG_ID, lookup) == LONG_ID[:18] + "..."


@pytest.mark.unit
def test_time_bins() -> None:
    labels = time_bin_labels()

    assert len(labels) == 96
    assert labels[:2] == ["00:00", "00:15"]
    assert labels[-1] == "23:45"


# ---------------- Charts ----------------
@pytest.mark.integration
def test_charts_require_canton(make_source) -> None:
    f = normalize_filters({})
    source = make_source()

    for fn in (compute_stop_summary, compute_transfer_matrix, compute_transfer_destinations):
        assert fn(source, f)["message"] == SELECT_CANTON
    assert compute_passengers_by_stop(source, f)["message"] == SELECT_CANTON


@pytest.mark.integration
def test_boardings_for_stop(transit_files, make_source) -> None:
    payload = compute_passengers_by_stop(make_source(), _hb(), "boardings")

    counts = {r["time_bin"]: r["count"] for r in payload["data"]}
    assert len(payload["data"]) == 96
    assert counts["07:00"] == 9
    assert counts["07:15"] == 3
    assert counts["08:00"] == 0
    assert payload["title"] == "Hourly Boardings - Zürich HB"


@pytest.mark.integration
def test_alightings_for_stop_and_line(transit_files, make_source) -> None:
    payload = compute_passengers_by_stop(make_source(), _hb(transit_line="10"), "alightings")

    counts = {r["time_bin"]: r["count"] for r in payload["data"]}
    assert counts["07:00"] == 2
    assert payload["title"] == "Hourly Alightings - Zürich HB (S10)"


@pytest.mark.integration
def test_boardings_canton_wide(transit_files, make_source) -> None:
    payload = compute_passengers_by_stop(make_source(), normalize_filters({"canton": "Zurich"}))

    counts = {r["time_bin"]: r["count"] for r in payload["data"]}
    assert counts["08:00"] == 100
    assert payload["title"] == "Hourly Boardings - Zürich"


@pytest.mark.integration
def test_unknown_stop_is_logged(transit_files, make_source, caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="mobility.metrics_transit"):
        payload = compute_passengers_by_stop(make_source(), normalize_filters({"canton": "Zurich", "transit_stop": "Nowhere"}))

    assert payload["title"] == "Hourly Boardings - Zürich"
    assert any("Nowhere" in r.getMessage() for r in caplog.records)


@pytest.mark.integration
def test_stop_summary(transit_files, make_source) -> None:
    payload = compute_stop_summary(make_source(), _hb())

    assert payload["totals"] == {"boardings": 12, "alightings": 7, "volume": 19}
    assert payload["line_stats"] == {"lines": 2, "routes": 4, "modes": ["rail", "tram"]}
    assert payload["kind"] == "summary"


@pytest.mark.integration
def test_transfer_matrix(transit_files, make_source) -> None:
    payload = compute_transfer_matrix(make_source(), _hb())

    assert payload["line_names"] == ["S10 (rail) #1", "S10 (rail) #2"]
    assert payload["matrix"] == [[0, 7], [3, 0]]
    assert payload["totals"] == {"in": 19, "out": 15}
    assert payload["title"] == "Transfer Matrix (Inbound Trips) - Zürich HB"


@pytest.mark.integration
def test_transfer_matrix_needs_stop_and_two_lines(transit_files, make_source) -> None:
    source = make_source()

    no_stop = compute_transfer_matrix(source, normalize_filters({"canton": "Zurich"}))
    assert no_stop["message"] == "Select a transit stop to view the transfer matrix"

    no_data = compute_transfer_matrix(source, normalize_filters({"canton": "Zurich", "transit_stop": "Bahnhofstrasse"}))
    assert no_data["message"] == "No transfer data available for this stop"


@pytest.mark.integration
def test_transfer_destinations(transit_files, make_source) -> None:
    payload = compute_transfer_destinations(make_source(), _hb())

    rows = [(r["name"], r["count"], r["color"]) for r in payload["data"]]
    assert rows == [
        ("Zürich Stadelhofen", 6, "#f97316"),
        ("Zürich HB", 6, "#3b82f6"),
        ("Bahnhofstrasse", 2, "#f97316"),
        (LONG_ID[:18] + "...", 1, "#f97316"),
    ]
    assert payload["same_stop_transfers"] == 6


@pytest.mark.integration
def test_stop_suggestions(transit_files, make_source) -> None:
    source = make_source()

    assert [s["name"] for s in stop_suggestions(source, "Zurich", "bahnhof")] == ["Bahnhofstrasse"]
    assert stop_suggestions(source, "All", "zur") == []


@pytest.mark.integration
def test_destinations_without_same_stop_transfers(transit_files, write_json, make_source) -> None:
    write_json(
        "stop_transfer_data_by_canton.json",
        {
            "Zurich": {
                "8503000:0:3": {
                    "line_transfers": {},
                    "stop_transfers": {"8591059": 2, "8503003:0:1": 7},
                    "total_transfers_in": 4,
                    "total_transfers_out": 9,
                }
            }
        },
    )
    payload = compute_transfer_destinations(make_source(), _hb())

    assert [(r["name"], r["count"]) for r in payload["data"]] == [("Zürich Stadelhofen", 7), ("Bahnhofstrasse", 2)]
    assert payload["same_stop_transfers"] == 0


@pytest.mark.integration
def test_transfer_matrix_keeps_fractional_counts(transit_files, write_json, make_source) -> None:
    write_json(
        "stop_transfer_data_by_canton.json",
        {
            "Zurich": {
                "8503000:0:3": {
                    "line_transfers": {"10": {"2": 2.5}, "2": {"10": 0.4}},
                    "stop_transfers": {},
                    "total_transfers_in": 2.9,
                    "total_transfers_out": 2.9,
                }
            }
        },
    )
    payload = compute_transfer_matrix(make_source(), _hb())

    assert payload["matrix"] == [[0, 2.5], [0.4, 0]]
    assert payload["totals"] == {"in": 2.9, "out": 2.9}
