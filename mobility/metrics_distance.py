from __future__ import annotations

from typing import Any, Dict, List

import altair as alt
import pandas as pd

from mobility.charts import (
    category_scale,
    chart_payload,
    colors_for,
    dataset_scale,
    placeholder,
    tick_label_expr,
)
from mobility.data import DATASETS, DataSource, load_canton_fragment, ordered_unique
from mobility.filters import FilterSelection


DISTANCE_CATEGORIES = ["0-1000", "1000-5000", "5000-25000", "25000+"]
DISTANCE_LABELS = ["0-1 km", "1-5 km", "5-25 km", "25+ km"]

# Height of each mean marker as a share of the histogram peak.
MEAN_MARKER_HEIGHT = {"Microcensus": 0.8, "Synthetic": 0.65}


def _distance_label(filters: FilterSelection) -> str:
    return "Euclidean" if filters.distance_type == "euclidean" else "Network"


def _histogram_max(*entries: Dict[str, Any]) -> float:
    values: List[float] = []
    for entry in entries:
        values.extend(entry.get("microcensus_histogram") or [])
        values.extend(entry.get("synthetic_histogram") or [])
    return float(max(values)) if values else 0.0


def compute_distance_histogram(source: DataSource, filters: FilterSelection, kind: str = "mode") -> Dict[str, Any]:
    chart_id = f"{kind}-distance-histogram"
    label = _distance_label(filters)

    # The y scale spans both distance types.
    euclidean = load_canton_fragment(source, f"histogram_euclidean_distance_{kind}.json", filters.canton)
    network = load_canton_fragment(source, f"histogram_network_distance_{kind}.json", filters.canton)
    if not euclidean or not network:
        return placeholder(chart_id, f"{label} Distance")

    selected = filters.selected_for(kind)
    option = next(iter(euclidean)) if selected == "all" else selected
    if option not in euclidean or option not in network:
        return placeholder(chart_id, f"{label} Distance", f"No data for selected {kind}")

    entry = euclidean[option] if filters.distance_type == "euclidean" else network[option]
    bins = entry.get("bins") or []
    bin_width = float(entry.get("bin_width") or 0)
    max_y = _histogram_max(euclidean[option], network[option])

    rows = []
    for dataset, hist_key in [("Microcensus", "microcensus_histogram"), ("Synthetic", "synthetic_histogram")]:
        for start, pct in zip(bins, entry.get(hist_key) or []):
            rows.append({"dataset": dataset, "bin_start": float(start), "bin_end": float(start) + bin_width, "percentage": pct})
    hist = pd.DataFrame(rows)

    means = pd.DataFrame(
        [
            {
                "dataset": dataset,
                "mean": float(entry.get(mean_key) or 0.0),
                "zero": 0.0,
                "marker_top": max_y * MEAN_MARKER_HEIGHT[dataset],
                "label": f"{float(entry.get(mean_key) or 0.0):.1f}",
            }
            for dataset, mean_key in [("Microcensus", "microcensus_mean"), ("Synthetic", "synthetic_mean")]
        ]
    )
    sample_sizes = {
        "Microcensus": entry.get("microcensus_sample_size"),
        "Synthetic": entry.get("synthetic_sample_size"),
    }

    y_domain = [0, 1.1 * max_y] if max_y > 0 else [0, 1]
    bars = (
        alt.Chart(hist)
        .mark_bar(opacity=0.6, clip=True)
        .encode(
            x=alt.X("bin_start:Q", title="Distance [m]", scale=alt.Scale(domain=[-bin_width, bin_width * 25])),
            x2="bin_end:Q",
            y=alt.Y("percentage:Q", title="Percentage [%]", stack=None, scale=alt.Scale(domain=y_domain)),
            color=alt.Color("dataset:N", scale=dataset_scale(), title=None),
            tooltip=[
                alt.Tooltip("dataset:N", title="Dataset"),
                alt.Tooltip("bin_start:Q", title="From", format=".1f"),
                alt.Tooltip("bin_end:Q", title="To", format=".1f"),
                alt.Tooltip("percentage:Q", title="Percentage", format=".2f"),
            ],
        )
    )
    rules = (
        alt.Chart(means)
        .mark_rule(strokeDash=[2, 2], clip=True)
        .encode(x="mean:Q", y="zero:Q", y2="marker_top:Q", color=alt.Color("dataset:N", scale=dataset_scale(), title=None))
    )
    labels = (
        alt.Chart(means)
        .mark_text(dy=-6, fontSize=10)
        .encode(x="mean:Q", y="marker_top:Q", text="label:N", color=alt.Color("dataset:N", scale=dataset_scale(), legend=None))
    )
    chart = alt.layer(bars, rules, labels).properties(
        title=alt.TitleParams(
            f"{label} Distance - {option}",
            subtitle=f"n(MC)={sample_sizes['Microcensus']}  n(Syn)={sample_sizes['Synthetic']}",
        )
    )
    return chart_payload(
        chart_id,
        f"{label} Distance - {option}",
        chart=chart,
        data=hist,
        option=option,
        means={row["dataset"]: row["mean"] for row in means.to_dict(orient="records")},
        sample_sizes=sample_sizes,
        y_max=y_domain[1],
    )


def compute_average_distance(source: DataSource, filters: FilterSelection, kind: str = "mode") -> Dict[str, Any]:
    chart_id = f"{kind}-average-distance"
    label = _distance_label(filters)
    title = f"Average {label} Distance ({'All Modes' if kind == 'mode' else 'All Purposes'})"

    fragment = load_canton_fragment(source, f"avg_dist_data_{kind}.json", filters.canton)
    if not fragment or "Microcensus" not in fragment:
        return placeholder(chart_id, title)

    distance_key = f"{filters.distance_type}_distance"
    items = list(fragment["Microcensus"])
    rows = []
    for dataset in DATASETS:
        values = fragment.get(dataset) or {}
        for item in items:
            metres = (values.get(item) or {}).get(distance_key)
            if metres is None:
                continue
            rows.append({"item": item, "dataset": dataset, "distance_km": round(float(metres) / 1000, 1)})
    df = pd.DataFrame(rows)
    if df.empty:
        return placeholder(chart_id, title)

    x_title = "Mode" if kind == "mode" else "Purpose"
    base = alt.Chart(df).encode(
        x=alt.X("item:N", sort=items, title=x_title, axis=alt.Axis(labelAngle=-45)),
        xOffset=alt.XOffset("dataset:N", sort=DATASETS),
        y=alt.Y("distance_km:Q", title="Distance [km]"),
    )
    bars = base.mark_bar().encode(
        color=alt.Color("dataset:N", scale=dataset_scale(), title=None),
        tooltip=["item", "dataset", alt.Tooltip("distance_km:Q", title="Distance [km]", format=".1f")],
    )
    text = base.mark_text(dy=-5, fontSize=9).encode(text=alt.Text("distance_km:Q", format=".1f"))
    return chart_payload(chart_id, title, chart=alt.layer(bars, text), data=df)


def compute_by_distance_stacked(source: DataSource, filters: FilterSelection, kind: str = "mode") -> Dict[str, Any]:
    chart_id = f"{kind}-distance-stacked"
    title = f"{kind.capitalize()} Distribution by Distance Travelled"

    entries = load_canton_fragment(source, f"stacked_bar_{filters.distance_type}_distance_{kind}.json", filters.canton)
    if not entries:
        return placeholder(chart_id, title)

    items = ordered_unique(e.get(kind) for e in entries)
    selected = filters.selected_for(kind)
    shown = items if selected == "all" else [i for i in items if i == selected]

    rows = []
    for category, band in zip(DISTANCE_CATEGORIES, DISTANCE_LABELS):
        for dataset in DATASETS:
            for e in entries:
                if e.get("distance_category") == category and e.get("dataset") == dataset and e.get(kind) in shown:
                    rows.append(
                        {
                            "distance_category": category,
                            "distance_label": band,
                            "dataset": dataset,
                            "item": e.get(kind),
                            "percentage": float(e.get("percentage") or 0.0),
                        }
                    )
    df = pd.DataFrame(rows)
    if df.empty:
        return placeholder(chart_id, title, f"No data for selected {kind}")

    chart = (
        alt.Chart(df)
        .mark_bar(opacity=0.85)
        .encode(
            x=alt.X("dataset:N", sort=DATASETS, title=None),
            y=alt.Y("percentage:Q", stack="zero", title=None, scale=alt.Scale(domain=[0, 105])),
            color=alt.Color("item:N", scale=category_scale(shown, colors_for(kind)), title=kind.capitalize()),
            tooltip=[
                alt.Tooltip("item:N", title=kind.capitalize()),
                "dataset",
                alt.Tooltip("percentage:Q", title="Share [%]", format=".1f"),
            ],
        )
        .properties(width=90)
        .facet(column=alt.Column("distance_label:N", sort=DISTANCE_LABELS, title=None))
    )
    return chart_payload(chart_id, title, chart=chart, data=df)


def compute_share_line(
    source: DataSource, filters: FilterSelection, kind: str = "mode", plot_type: str = "departure"
) -> Dict[str, Any]:
    chart_id = f"{kind}-share-{plot_type}"
    kind_title = kind.capitalize()
    if plot_type == "departure":
        filename = f"lineplot_departure_time_data_{kind}.json"
        title = f"{kind_title} Share by Departure Time"
        x_title = "Departure Time"
    else:
        filename = f"lineplot_{filters.distance_type}_distance_data_{kind}.json"
        title = f"{kind_title} Share by {_distance_label(filters)} Distance"
        x_title = f"{_distance_label(filters)} Distance"

    fragment = load_canton_fragment(source, filename, filters.canton)
    if not fragment:
        return placeholder(chart_id, title)

    selected = filters.selected_for(kind)
    rows = []
    for dataset, key in [("Microcensus", "microcensus"), ("Synthetic", "synthetic")]:
        entries = fragment.get(key) or []
        items = ordered_unique(e.get(kind) for e in entries) if selected == "all" else [selected]
        for item in items:
            for e in entries:
                if e.get(kind) == item:
                    rows.append(
                        {
                            "dataset": dataset,
                            "item": item,
                            "variable_midpoint": e.get("variable_midpoint"),
                            "percentage": e.get("percentage"),
                        }
                    )
    df = pd.DataFrame(rows)
    if df.empty:
        return placeholder(chart_id, title, f"No data for selected {kind}")

    colors = colors_for(kind)
    legend_items = list(colors) if selected == "all" else [selected]
    legend_items = ordered_unique(legend_items + df["item"].tolist())

    tick_vals = list(fragment.get("tick_vals") or [])
    tick_labels = list(fragment.get("tick_labels") or [])
    if plot_type == "departure":
        tick_vals, tick_labels = tick_vals[::2], tick_labels[::2]
    if tick_vals and len(tick_vals) == len(tick_labels):
        axis = alt.Axis(values=tick_vals, labelExpr=tick_label_expr(tick_vals, tick_labels), labelAngle=45)
    else:
        axis = alt.Axis(labelAngle=45)

    chart = (
        alt.Chart(df)
        .mark_line(point=alt.OverlayMarkDef(size=16))
        .encode(
            x=alt.X("variable_midpoint:Q", title=x_title, axis=axis),
            y=alt.Y("percentage:Q", title=f"{kind_title} Share [%]"),
            color=alt.Color("item:N", scale=category_scale(legend_items, colors), title=None),
            strokeDash=alt.StrokeDash(
                "dataset:N", scale=alt.Scale(domain=DATASETS, range=[[1, 0], [6, 4]]), title=None
            ),
            tooltip=["item", "dataset", alt.Tooltip("percentage:Q", title="Share [%]", format=".2f")],
        )
    )
    return chart_payload(chart_id, title, chart=chart, data=df, tick_vals=tick_vals, tick_labels=tick_labels)
