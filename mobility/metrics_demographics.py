from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import altair as alt
import pandas as pd

from mobility.charts import chart_payload, dataset_scale, placeholder
from mobility.data import DATASETS, DataSource, load_canton_fragment
from mobility.filters import FilterSelection


FILTER_TYPES = (None, "income", "age", "gender", "distance")

GENDER_KEYS = {"male": "0", "female": "1"}
GENDER_CATEGORIES: List[Tuple[str, str]] = [("0", "Male"), ("1", "Female")]


def _as_percent(value: float) -> float:
    return value * 100


def _split(fragment: Dict[str, Any], key: str) -> Tuple[Optional[dict], Optional[dict]]:
    return (fragment.get("Microcensus") or {}).get(key), (fragment.get("Synthetic") or {}).get(key)


def compute_distribution(
    source: DataSource,
    filters: FilterSelection,
    *,
    chart_id: str,
    data_file: str,
    title: str,
    x_label: str,
    y_label: str = "Percentage [%]",
    filter_type: Optional[str] = None,
    value_transform: Optional[Callable[[float], float]] = None,
    label_mapper: Optional[Callable[[str], str]] = None,
    custom_categories: Optional[Sequence[Tuple[str, str]]] = None,
    y_range: Optional[Tuple[float, float]] = None,
) -> Dict[str, Any]:
    """Grouped Microcensus vs Synthetic bars for one distribution.

    `filter_type` picks the slice of the payload: None for a plain distribution,
    "income"/"age"/"gender" for the bracket currently selected in `filters`, and
    "distance" for per-category distances (in the selected distance type).
    `custom_categories` is a list of (data key, axis label) pairs.
    """
    if filter_type not in FILTER_TYPES:
        raise ValueError(f"Unknown filter type: {filter_type}")

    fragment = load_canton_fragment(source, data_file, filters.canton)
    if not fragment:
        return placeholder(chart_id, title)

    suffix = ""
    if filter_type == "income":
        mc, syn = _split(fragment, filters.income)
        suffix = f" (Class {filters.income})"
    elif filter_type == "age":
        mc, syn = _split(fragment, filters.age)
        suffix = f" ({filters.age})"
    elif filter_type == "gender":
        mc, syn = _split(fragment, GENDER_KEYS[filters.gender])
        suffix = f" ({filters.gender.capitalize()})"
    else:
        mc, syn = fragment.get("Microcensus"), fragment.get("Synthetic")

    if filter_type == "distance":
        label = "Euclidean" if filters.distance_type == "euclidean" else "Network"
        display_title = title.replace("Average Distance", f"Average {label} Distance")
    else:
        display_title = title + suffix

    if not mc or not syn:
        return placeholder(chart_id, display_title)

    if custom_categories:
        categories = [key for key, _ in custom_categories]
        labels = [lbl for _, lbl in custom_categories]
    else:
        categories = list(mc)
        labels = [label_mapper(c) for c in categories] if label_mapper else [str(c) for c in categories]

    transform = value_transform or _as_percent
    distance_key = f"{filters.distance_type}_distance"

    def value_of(values: dict, category: str) -> float:
        raw = values.get(category)
        if filter_type == "distance":
            raw = (raw or {}).get(distance_key)
        return transform(float(raw or 0))

    rows = []
    for dataset, values in zip(DATASETS, [mc, syn]):
        for category, lbl in zip(categories, labels):
            rows.append({"category": lbl, "key": str(category), "dataset": dataset, "value": value_of(values, category)})
    df = pd.DataFrame(rows)

    decimals = 1 if value_transform else 2
    y_scale = alt.Scale(domain=list(y_range)) if y_range else alt.Undefined
    base = alt.Chart(df).encode(
        x=alt.X("category:N", sort=labels, title=x_label, axis=alt.Axis(labelAngle=-45)),
        xOffset=alt.XOffset("dataset:N", sort=DATASETS),
        y=alt.Y("value:Q", title=y_label, scale=y_scale),
    )
    bars = base.mark_bar().encode(
        color=alt.Color("dataset:N", scale=dataset_scale(), title=None),
        tooltip=["category", "dataset", alt.Tooltip("value:Q", title=y_label, format=f".{decimals}f")],
    )
    text = base.mark_text(dy=-5, fontSize=9).encode(text=alt.Text("value:Q", format=f".{decimals}f"))
    return chart_payload(chart_id, display_title, chart=alt.layer(bars, text), data=df)
