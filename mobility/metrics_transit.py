"""Transit stop views: ridership by time of day, stop summary and transfers.

Stop identifiers come from several exports that do not agree on a format:
GeoJSON properties may hold a list, a JSON-encoded list or a comma-separated
string, and transfer data is keyed by link-qualified ids such as
``8508391:0:1.link:pt_8508391:0:1``. The helpers here normalize those and
match a selected stop against each dataset.
"""

from __future__ import annotations

import json
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import altair as alt
import pandas as pd

from mobility.charts import SELECT_CANTON, chart_payload, placeholder
from mobility.data import COUNTS_DIR, STOPS_DIR, DataSource, canton_label
from mobility.filters import FilterSelection


logger = logging.getLogger(__name__)

STOPS_PATH = f"{STOPS_DIR}/{{canton}}_stops.geojson"
COUNTS_PATH = f"{COUNTS_DIR}/{{canton}}_counts.json"
TRANSFERS_FILE = "stop_transfer_data_by_canton.json"
BOARDINGS_BY_LINE_FILE = "boarding_data_by_line.json"
INTER_CANTONAL = "inter_cantonal"

METRICS = {
    "boardings": {"label": "Boardings", "color": "#1f77b4"},
    "alightings": {"label": "Alightings", "color": "#ff7f0e"},
}

SUGGESTION_LIMIT = 8
TOP_DESTINATIONS = 7
WALK_TRANSFER_COLOR = "#f97316"
SAME_STOP_COLOR = "#3b82f6"
HEATMAP_COLORS = ["#f8fafc", "#dbeafe", "#93c5fd", "#3b82f6", "#1d4ed8", "#1e3a8a"]


@dataclass(frozen=True)
class TransitStop:
    name: str
    stop_id: Any = None
    stop_ids: List[str] = field(default_factory=list)
    lines: Any = None
    modes_list: Any = None
    coords: Optional[List[float]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "stop_id": self.stop_id,
            "stop_ids": list(self.stop_ids),
            "lines": parse_lines(self.lines),
            "modes": parse_modes(self.modes_list),
            "coords": self.coords,
        }


# ---------------- Identifier / property parsing ----------------
def clean_stop_ids(value: Any) -> List[str]:
    """Flatten stop ids given as lists, JSON strings or comma-separated strings."""
    if value is None:
        return []
    items = value if isinstance(value, (list, tuple)) else [value]
    out: List[str] = []
    for item in items:
        if isinstance(item, (list, tuple)):
            out.extend(str(x) for x in item)
            continue
        text = str(item).strip()
        try:
            parsed = json.loads(text)
        except ValueError:
            out.extend(part.strip() for part in text.split(","))
            continue
        if isinstance(parsed, list):
            out.extend(str(x) for x in parsed)
        else:
            out.append(parsed if isinstance(parsed, str) else text)
    return [x for x in out if x]


def parse_lines(value: Any) -> List[Dict[str, Any]]:
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except ValueError:
            return []
    if not isinstance(value, list):
        return []
    return [line for line in value if isinstance(line, dict)]


def line_display_name(line: Dict[str, Any]) -> Optional[str]:
    return line.get("line_name") or line.get("lineName") or line.get("name") or None


def parse_modes(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(m) for m in value]
    text = str(value).strip()
    if text.startswith("["):
        try:
            parsed = json.loads(text)
        except ValueError:
            return [text]
        return [str(m) for m in parsed] if isinstance(parsed, list) else [str(parsed)]
    return [m.strip() for m in text.split(",") if m.strip()]


def normalize_text(value: str) -> str:
    decomposed = unicodedata.normalize("NFD", value or "")
    return "".join(c for c in decomposed if not unicodedata.combining(c)).lower()


def natural_key(value: str) -> Tuple[Any, ...]:
    return tuple(int(part) if part.isdigit() else part for part in re.split(r"(\d+)", value))


# ---------------- Stop search / selection ----------------
def load_stop_features(source: DataSource, canton: str) -> List[Dict[str, Any]]:
    geojson = source.load(STOPS_PATH.format(canton=canton))
    return list((geojson or {}).get("features") or [])


def _feature_name(feature: Dict[str, Any]) -> str:
    return str((feature.get("properties") or {}).get("name") or "")


def search_stops(features: List[Dict[str, Any]], term: str, limit: int = SUGGESTION_LIMIT) -> List[Dict[str, Any]]:
    """Stops whose name starts with `term`, then those containing it, each sorted by name."""
    if not term or not term.strip():
        return []
    needle = normalize_text(term)
    starts: List[Dict[str, Any]] = []
    contains: List[Dict[str, Any]] = []
    for feature in features:
        normalized = normalize_text(_feature_name(feature))
        if normalized.startswith(needle):
            starts.append(feature)
        elif needle in normalized:
            contains.append(feature)

    def by_name(f: Dict[str, Any]) -> Tuple[str, str]:
        return normalize_text(_feature_name(f)), _feature_name(f)

    return (sorted(starts, key=by_name) + sorted(contains, key=by_name))[:limit]


def select_stop(feature: Dict[str, Any]) -> TransitStop:
    props = feature.get("properties") or {}
    coords = (feature.get("geometry") or {}).get("coordinates")
    return TransitStop(
        name=str(props.get("name") or ""),
        stop_id=props.get("stop_id"),
        stop_ids=clean_stop_ids(props.get("stop_id")),
        lines=props.get("lines"),
        modes_list=props.get("modes_list"),
        coords=list(coords) if isinstance(coords, (list, tuple)) else None,
    )


def resolve_stop(features: List[Dict[str, Any]], key: Optional[str]) -> Optional[TransitStop]:
    """Find a stop by exact name, accent-insensitive name, or one of its ids."""
    if not key:
        return None
    for feature in features:
        if _feature_name(feature) == key:
            return select_stop(feature)
    needle = normalize_text(key)
    for feature in features:
        if normalize_text(_feature_name(feature)) == needle:
            return select_stop(feature)
    for feature in features:
        if key in clean_stop_ids((feature.get("properties") or {}).get("stop_id")):
            return select_stop(feature)
    return None


def resolve_selected_stop(
    source: DataSource, filters: FilterSelection, features: Optional[List[Dict[str, Any]]] = None
) -> Optional[TransitStop]:
    if not filters.has_canton or not filters.transit_stop:
        return None
    if features is None:
        features = load_stop_features(source, filters.canton)
    stop = resolve_stop(features, filters.transit_stop)
    if stop is None:
        logger.warning("Transit stop %r not found in canton %s", filters.transit_stop, filters.canton)
    return stop


def stop_suggestions(source: DataSource, canton: str, term: str, limit: int = SUGGESTION_LIMIT) -> List[Dict[str, Any]]:
    if not canton or canton == "All":
        return []
    out = []
    for feature in search_stops(load_stop_features(source, canton), term, limit=limit):
        props = feature.get("properties") or {}
        out.append({"name": props.get("name"), "stop_id": props.get("stop_id"), "modes": parse_modes(props.get("modes_list"))})
    return out


def available_lines(stop: Optional[TransitStop]) -> List[Dict[str, Any]]:
    """Unique lines of a stop, named by their first non-empty name, in natural order."""
    if stop is None:
        return []
    by_id: Dict[str, Dict[str, Any]] = {}
    for line in parse_lines(stop.lines):
        line_id = str(line.get("line_id"))
        name = line_display_name(line)
        if line_id not in by_id:
            by_id[line_id] = {"line_id": line_id, "line_name": name, "mode": line.get("mode") or "unknown"}
        elif not by_id[line_id]["line_name"] and name:
            by_id[line_id]["line_name"] = name
    return sorted(by_id.values(), key=lambda l: natural_key(str(l["line_name"] or l["line_id"]).lower()))


def line_name(stop: Optional[TransitStop], line_id: Optional[str]) -> Optional[str]:
    if stop is None or not line_id:
        return None
    for line in parse_lines(stop.lines):
        if str(line.get("line_id")) == str(line_id):
            return line_display_name(line) or str(line_id)
    return str(line_id)


def scope_label(filters: FilterSelection, stop: Optional[TransitStop]) -> str:
    if stop is None:
        return canton_label(filters.canton)
    if filters.transit_line:
        return f"{stop.name} ({line_name(stop, filters.transit_line)})"
    return stop.name


def find_stop_record(canton_data: Dict[str, Any], stop: TransitStop) -> Optional[Dict[str, Any]]:
    """Match a stop against transfer data keys: primary id, alternative ids, then partial ids."""
    if isinstance(stop.stop_id, str) and stop.stop_id in canton_data:
        return canton_data[stop.stop_id]
    for alt_id in stop.stop_ids:
        if alt_id in canton_data:
            return canton_data[alt_id]
    for stop_id in stop.stop_ids:
        if not stop_id:
            continue
        for key in canton_data:
            if stop_id in key or f"{key.split(':')[0]}:" in stop_id:
                return canton_data[key]
    return None


# ---------------- Counts ----------------
def _filtered_counts(source: DataSource, filters: FilterSelection, stop: Optional[TransitStop]) -> List[Dict[str, Any]]:
    rows = source.load(COUNTS_PATH.format(canton=filters.canton)) or []
    if stop is not None:
        ids = set(stop.stop_ids)
        rows = [r for r in rows if str(r.get("stop_id")) in ids]
    if filters.transit_line:
        rows = [r for r in rows if str(r.get("line_id")) == str(filters.transit_line)]
    return rows


def time_bin_labels() -> List[str]:
    return [f"{h:02d}:{m:02d}" for h in range(24) for m in range(0, 60, 15)]


def compute_passengers_by_stop(source: DataSource, filters: FilterSelection, metric: str = "boardings") -> Dict[str, Any]:
    metric = metric if metric in METRICS else "boardings"
    label, color = METRICS[metric]["label"], METRICS[metric]["color"]
    chart_id = f"transit-{metric}"
    if not filters.has_canton:
        return placeholder(chart_id, f"Hourly {label}", SELECT_CANTON)

    stop = resolve_selected_stop(source, filters)
    grouped: Dict[str, float] = {}
    for row in _filtered_counts(source, filters, stop):
        for t in row.get("data") or []:
            grouped[t.get("time_bin")] = grouped.get(t.get("time_bin"), 0) + (t.get(metric) or 0)

    labels = time_bin_labels()
    df = pd.DataFrame({"time_bin": labels, "count": [grouped.get(t, 0) for t in labels]})
    title = f"Hourly {label} - {scope_label(filters, stop)}"
    chart = (
        alt.Chart(df)
        .mark_bar(color=color)
        .encode(
            x=alt.X("time_bin:O", sort=labels, title="Time of Day", axis=alt.Axis(labelAngle=-45)),
            y=alt.Y("count:Q", title="Passenger Count"),
            tooltip=[alt.Tooltip("time_bin:O", title="Time"), alt.Tooltip("count:Q", title=label, format=",")],
        )
    )
    return chart_payload(chart_id, title, chart=chart, data=df, metric=metric)


def compute_stop_summary(source: DataSource, filters: FilterSelection) -> Dict[str, Any]:
    chart_id = "transit-summary"
    if not filters.has_canton:
        return placeholder(chart_id, "Daily Summary", SELECT_CANTON)

    stop = resolve_selected_stop(source, filters)
    boardings = alightings = 0
    for row in _filtered_counts(source, filters, stop):
        for t in row.get("data") or []:
            boardings += t.get("boardings") or 0
            alightings += t.get("alightings") or 0
    totals = {"boardings": boardings, "alightings": alightings, "volume": boardings + alightings}

    line_stats = None
    lines = parse_lines(stop.lines) if stop is not None else []
    if lines:
        line_stats = {
            "lines": len({str(l.get("line_id")) for l in lines}),
            "routes": len(lines),
            "modes": parse_modes(stop.modes_list),
        }

    data = [
        {"metric": "Total Boardings", "value": boardings},
        {"metric": "Total Alightings", "value": alightings},
        {"metric": "Total Volume", "value": totals["volume"]},
    ]
    return chart_payload(
        chart_id,
        f"Daily Summary - {scope_label(filters, stop)}",
        data=data,
        kind="summary",
        totals=totals,
        line_stats=line_stats,
    )


# ---------------- Transfers ----------------
def _line_names(line_ids: List[str], boarding_data: Dict[str, Any]) -> List[str]:
    entries = list((boarding_data or {}).values())

    def base_name(line_id: str) -> str:
        entry = next((e for e in entries if str(e.get("line_id")) == line_id), None)
        return f"{entry.get('line_name')} ({entry.get('vehicle')})" if entry else line_id

    bases = [base_name(l) for l in line_ids]
    counts = {n: bases.count(n) for n in bases}
    used: Dict[str, int] = {}
    names = []
    for name in bases:
        if counts[name] > 1:
            used[name] = used.get(name, 0) + 1
            name = f"{name} #{used[name]}"
        names.append(name)
    return names


def compute_transfer_matrix(source: DataSource, filters: FilterSelection) -> Dict[str, Any]:
    chart_id = "transit-transfer-matrix"
    title = "Transfer Matrix (Inbound Trips)"
    if not filters.has_canton:
        return placeholder(chart_id, title, SELECT_CANTON)

    transfers = source.load(TRANSFERS_FILE) or {}
    boarding_data = source.load(BOARDINGS_BY_LINE_FILE) or {}
    stop = resolve_selected_stop(source, filters)
    if stop is None:
        return placeholder(chart_id, title, "Select a transit stop to view the transfer matrix")

    title = f"{title} - {stop.name}"
    canton_data = {**(transfers.get(filters.canton) or {}), **(transfers.get(INTER_CANTONAL) or {})}
    record = find_stop_record(canton_data, stop) if canton_data else None
    line_transfers = (record or {}).get("line_transfers") or {}

    line_ids = set()
    for from_line, targets in line_transfers.items():
        line_ids.add(str(from_line))
        line_ids.update(str(t) for t in (targets or {}))
    if len(line_ids) < 2:
        return placeholder(chart_id, title, "No transfer data available for this stop")

    ordered = sorted(line_ids)
    names = _line_names(ordered, boarding_data)
    matrix = [
        [0 if i == j else (line_transfers.get(a) or {}).get(b) or 0 for j, b in enumerate(ordered)]
        for i, a in enumerate(ordered)
    ]
    rows = [
        {"from_line": names[i], "to_line": names[j], "transfers": matrix[i][j], "label": str(matrix[i][j]) if matrix[i][j] > 0 else ""}
        for i in range(len(ordered))
        for j in range(len(ordered))
    ]
    df = pd.DataFrame(rows)
    positive = [v for row in matrix for v in row if v > 0]
    midpoint = (max(positive) if positive else 1) / 2

    base = alt.Chart(df).encode(
        x=alt.X("to_line:N", sort=names, title="To Line", axis=alt.Axis(labelAngle=-45)),
        y=alt.Y("from_line:N", sort=names, title="From Line"),
    )
    cells = base.mark_rect(stroke="white", strokeWidth=2).encode(
        color=alt.Color("transfers:Q", scale=alt.Scale(range=HEATMAP_COLORS), title=None),
        tooltip=[
            alt.Tooltip("from_line:N", title="From"),
            alt.Tooltip("to_line:N", title="To"),
            alt.Tooltip("transfers:Q", title="Transfers"),
        ],
    )
    text = base.mark_text(fontSize=10).encode(
        text="label:N",
        color=alt.condition(alt.datum.transfers > midpoint, alt.value("#ffffff"), alt.value("#1e293b")),
    )
    return chart_payload(
        chart_id,
        title,
        chart=alt.layer(cells, text),
        data=df,
        matrix=matrix,
        line_names=names,
        totals={
            "in": record.get("total_transfers_in") or 0,
            "out": record.get("total_transfers_out") or 0,
        },
    )


def stop_name_lookup(features: List[Dict[str, Any]]) -> Dict[str, str]:
    """Map each stop id, and its leading numeric part, to the stop name."""
    lookup: Dict[str, str] = {}
    for feature in features:
        props = feature.get("properties") or {}
        name = props.get("name")
        if not name or not props.get("stop_id"):
            continue
        for sid in clean_stop_ids(props.get("stop_id")):
            lookup[sid] = name
            match = re.match(r"^(\d+)", sid)
            if match:
                lookup[match.group(1)] = name
    return lookup


def resolve_stop_name(raw_id: str, lookup: Dict[str, str]) -> str:
    raw_id = str(raw_id)
    if raw_id in lookup:
        return lookup[raw_id]
    match = re.match(r"^(\d+)", raw_id)
    if match and match.group(1) in lookup:
        return lookup[match.group(1)]
    return raw_id[:18] + "..." if len(raw_id) > 20 else raw_id


def compute_transfer_destinations(source: DataSource, filters: FilterSelection) -> Dict[str, Any]:
    chart_id = "transit-transfer-destinations"
    title = "Top Transfer Destinations (Outbound Trips)"
    if not filters.has_canton:
        return placeholder(chart_id, title, SELECT_CANTON)

    transfers = source.load(TRANSFERS_FILE) or {}
    features = load_stop_features(source, filters.canton)
    stop = resolve_selected_stop(source, filters, features)
    if stop is None:
        return placeholder(chart_id, title, "Select a transit stop to view transfer destinations")

    title = f"{title} - {stop.name}"
    canton_data = transfers.get(filters.canton) or {}
    record = find_stop_record(canton_data, stop) if canton_data else None
    if record is None:
        return placeholder(chart_id, title, "No transfer destination data available for this stop")

    stop_transfers = record.get("stop_transfers") or {}
    total_out = record.get("total_transfers_out") or 0
    same_stop = total_out - sum(stop_transfers.values())
    top = sorted(stop_transfers.items(), key=lambda kv: kv[1], reverse=True)[:TOP_DESTINATIONS]
    if not top and same_stop <= 0:
        return placeholder(chart_id, title, "No transfer destination data available for this stop")

    lookup = stop_name_lookup(features)
    entries = [{"name": resolve_stop_name(sid, lookup), "count": count, "color": WALK_TRANSFER_COLOR} for sid, count in top]
    if same_stop > 0:
        entries.append({"name": stop.name, "count": same_stop, "color": SAME_STOP_COLOR})
    entries.sort(key=lambda e: e["count"], reverse=True)

    df = pd.DataFrame(entries)
    chart = (
        alt.Chart(df)
        .mark_bar()
        .encode(
            x=alt.X("name:N", sort=df["name"].tolist(), title="Destination Stop", axis=alt.Axis(labelAngle=-45)),
            y=alt.Y("count:Q", title="Transfer Count"),
            color=alt.Color("color:N", scale=None),
            tooltip=[alt.Tooltip("name:N", title="Stop"), alt.Tooltip("count:Q", title="Transfers")],
        )
    )
    return chart_payload(chart_id, title, chart=chart, data=df, same_stop_transfers=same_stop)
