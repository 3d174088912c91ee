from __future__ import annotations

from typing import Any, Dict, Optional

import altair as alt
import pandas as pd

from mobility.charts import chart_payload, dataset_scale, placeholder
from mobility.data import DATASETS, DataSource, load_canton_fragment
from mobility.filters import FilterSelection


ACTIVITY_PLOTS = {
    "duration": {
        "data_file": "histogram_activity_duration.json",
        "title": "Activity Duration",
        "x_label": "Duration",
        "hover_label": "Duration",
    },
    "departure": {
        "data_file": "histogram_activity_departure_time.json",
        "title": "Activity Departure Time",
        "x_label": "Departure Time",
        "hover_label": "Time",
    },
}

# The exported fractions are per-bin densities; this brings them to percent.
DEFAULT_VALUE_SCALE = 180000.0


def compute_activity_histogram(
    source: DataSource,
    filters: FilterSelection,
    plot_type: str = "duration",
    *,
    data_file: Optional[str] = None,
    title: Optional[str] = None,
    x_label: Optional[str] = None,
    value_scale: float = DEFAULT_VALUE_SCALE,
) -> Dict[str, Any]:
    defaults = ACTIVITY_PLOTS.get(plot_type, ACTIVITY_PLOTS["duration"])
    chart_id = f"activity-{plot_type}"
    title = title or defaults["title"]
    x_label = x_label or defaults["x_label"]

    fragment = load_canton_fragment(source, data_file or defaults["data_file"], filters.canton)
    if not fragment:
        return placeholder(chart_id, title)

    options = list(fragment.get("Microcensus") or {})
    activity = filters.purpose
    if activity == "all":
        if not options:
            return placeholder(chart_id, title)
        activity = "All" if "All" in options else options[0]

    mc = (fragment.get("Microcensus") or {}).get(activity)
    syn = (fragment.get("Synthetic") or {}).get(activity)
    if not mc or not syn:
        return placeholder(chart_id, f"{title} ({activity})")

    items = list(mc)
    rows = []
    for dataset, values in zip(DATASETS, [mc, syn]):
        for item in items:
            rows.append({"bin": str(item), "dataset": dataset, "percentage": float(values.get(item) or 0) * value_scale})
    df = pd.DataFrame(rows)

    chart = (
        alt.Chart(df)
        .mark_bar(opacity=0.6)
        .encode(
            x=alt.X("bin:N", sort=[str(i) for i in items], title=x_label, axis=alt.Axis(labelAngle=-45)),
            y=alt.Y("percentage:Q", stack=None, title="Percentage [%]"),
            color=alt.Color("dataset:N", scale=dataset_scale(), title=None),
            tooltip=[
                "dataset",
                alt.Tooltip("bin:N", title=defaults["hover_label"]),
                alt.Tooltip("percentage:Q", title="Percentage", format=".2f"),
            ],
        )
    )
    return chart_payload(chart_id, f"{title} ({activity})", chart=chart, data=df, activity=activity)
