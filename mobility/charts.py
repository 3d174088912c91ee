from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

import altair as alt
import pandas as pd

alt.data_transformers.disable_max_rows()

DATASET_COLORS = {
    "Microcensus": "#4A90E2",
    "Synthetic": "#E07A5F",
}

MODE_COLORS = {
    "car": "#636efa",
    "car_passenger": "#ef553b",
    "pt": "#00cc96",
    "bike": "#ab63fa",
    "walk": "#ffa15a",
}

PURPOSE_COLORS = {
    "education": "#636efa",
    "home": "#ef553b",
    "leisure": "#00cc96",
    "other": "#ab63fa",
    "shop": "#ffa15a",
    "work": "#FFEE8C",
}

FALLBACK_COLOR = "#999"

NO_DATA = "No data available"
SELECT_CANTON = "Please select a specific canton"


def to_vega_spec(chart: alt.TopLevelMixin) -> Dict[str, Any]:
    """Convert an Altair chart into a Vega-Lite spec dict (JSON-serializable)."""
    return chart.to_dict()


def colors_for(kind: str) -> Dict[str, str]:
    return MODE_COLORS if kind == "mode" else PURPOSE_COLORS


def dataset_scale() -> alt.Scale:
    return alt.Scale(domain=list(DATASET_COLORS), range=list(DATASET_COLORS.values()))


def category_scale(keys: Sequence[str], colors: Dict[str, str]) -> alt.Scale:
    keys = list(keys)
    return alt.Scale(domain=keys, range=[colors.get(k, FALLBACK_COLOR) for k in keys])


def tick_label_expr(values: Sequence[Any], labels: Sequence[Any]) -> str:
    """Vega expression mapping tick values to their text labels."""
    expr = "''"
    for value, label in reversed(list(zip(values, labels))):
        text = str(label).replace("\\", "\\\\").replace("'", "\\'")
        expr = f"datum.value == {float(value)!r} ? '{text}' : {expr}"
    return expr


def chart_payload(
    chart_id: str,
    title: str,
    *,
    chart: Optional[alt.TopLevelMixin] = None,
    data: Optional[pd.DataFrame | List[Dict[str, Any]]] = None,
    message: Optional[str] = None,
    **extra: Any,
) -> Dict[str, Any]:
    if isinstance(data, pd.DataFrame):
        records = data.to_dict(orient="records")
    else:
        records = list(data or [])
    payload: Dict[str, Any] = {
        "id": chart_id,
        "title": title,
        "chart": to_vega_spec(chart) if chart is not None else None,
        "data": records,
        "message": message,
    }
    payload.update(extra)
    return payload


def placeholder(chart_id: str, title: str, message: str = NO_DATA, **extra: Any) -> Dict[str, Any]:
    return chart_payload(chart_id, title, message=message, **extra)
