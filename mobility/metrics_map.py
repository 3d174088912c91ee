from __future__ import annotations

from typing import Any, Dict

import altair as alt

from mobility.charts import chart_payload, placeholder
from mobility.data import DataSource, canton_bounds, canton_label
from mobility.filters import FilterSelection


BOUNDARIES_FILE = "TLM_KANTONSGEBIET.geojson"
MAP_COLOR = "#6366f1"


def _bounds_feature(bounds) -> Dict[str, Any]:
    (min_lon, min_lat), (max_lon, max_lat) = bounds
    return {
        "type": "Feature",
        "properties": {},
        "geometry": {
            "type": "Polygon",
            "coordinates": [
                [[min_lon, min_lat], [max_lon, min_lat], [max_lon, max_lat], [min_lon, max_lat], [min_lon, min_lat]]
            ],
        },
    }


def compute_canton_map(source: DataSource, filters: FilterSelection) -> Dict[str, Any]:
    """Canton boundaries with the selected canton highlighted and the view fitted to it."""
    chart_id = "canton-map"
    title = f"Canton Map - {canton_label(filters.canton)}"
    bounds = canton_bounds(filters.canton)
    (min_lon, min_lat), (max_lon, max_lat) = bounds
    extra = {
        "bounds": [list(bounds[0]), list(bounds[1])],
        "center": [round((min_lon + max_lon) / 2, 4), round((min_lat + max_lat) / 2, 4)],
        "highlight": filters.canton if filters.has_canton else None,
    }

    geojson = source.load(BOUNDARIES_FILE)
    features = (geojson or {}).get("features") or []
    if not features:
        return placeholder(chart_id, title, **extra)

    projection = {"type": "mercator", "fit": _bounds_feature(bounds)}
    data = alt.Data(values=features)
    cantons = (
        alt.Chart(data)
        .mark_geoshape(fill=MAP_COLOR, fillOpacity=0.1, stroke=MAP_COLOR, strokeWidth=1, clip=True)
        .encode(tooltip=alt.Tooltip("properties.NAME:N", title="Canton"))
        .project(**projection)
    )
    layers = [cantons]
    if filters.has_canton:
        highlight = (
            alt.Chart(data)
            .mark_geoshape(fill=MAP_COLOR, fillOpacity=0.4, clip=True)
            .transform_filter(alt.FieldEqualPredicate(field="properties.NAME", equal=filters.canton))
            .project(**projection)
        )
        layers.append(highlight)

    chart = alt.layer(*layers).properties(width="container", height=300)
    return chart_payload(chart_id, title, chart=chart, **extra)
