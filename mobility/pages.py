"""Page registry: which charts make up each dashboard page.

Every chart is computed on its own. A chart whose data cannot be loaded, or
whose computation fails, becomes a placeholder without affecting the others.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import partial
from typing import Any, Callable, Dict, List, Optional

import pandas as pd

from mobility.charts import placeholder
from mobility.data import DataSource, DataUnavailableError, default_data_source
from mobility.filters import FilterSelection
from mobility.metrics_activities import compute_activity_histogram
from mobility.metrics_demographics import GENDER_CATEGORIES, compute_distribution
from mobility.metrics_distance import (
    compute_average_distance,
    compute_by_distance_stacked,
    compute_distance_histogram,
    compute_share_line,
)
from mobility.metrics_info import compute_pt_subscription_info
from mobility.metrics_map import compute_canton_map
from mobility.metrics_transit import (
    compute_passengers_by_stop,
    compute_stop_summary,
    compute_transfer_destinations,
    compute_transfer_matrix,
)


logger = logging.getLogger(__name__)

ChartFn = Callable[[DataSource, FilterSelection], Dict[str, Any]]


@dataclass(frozen=True)
class ChartDef:
    id: str
    title: str
    compute: ChartFn


@dataclass(frozen=True)
class PageDef:
    id: str
    label: str
    charts: List[ChartDef]


def _no_source(fn: Callable[[], Dict[str, Any]]) -> ChartFn:
    return lambda source, filters: fn()


def _distance_charts(kind: str) -> List[ChartDef]:
    label = kind.capitalize()
    return [
        ChartDef(f"{kind}-canton-map", "Canton Map", compute_canton_map),
        ChartDef(f"{kind}-distance-histogram", "Distance Histogram", partial(compute_distance_histogram, kind=kind)),
        ChartDef(
            f"{kind}-share-departure",
            f"{label} Share by Departure Time",
            partial(compute_share_line, kind=kind, plot_type="departure"),
        ),
        ChartDef(
            f"{kind}-distance-stacked",
            f"{label} Distribution by Distance Travelled",
            partial(compute_by_distance_stacked, kind=kind),
        ),
        ChartDef(f"{kind}-average-distance", "Average Distance", partial(compute_average_distance, kind=kind)),
        ChartDef(
            f"{kind}-share-distance",
            f"{label} Share by Distance",
            partial(compute_share_line, kind=kind, plot_type="distance"),
        ),
    ]


def _distribution(chart_id: str, title: str, data_file: str, x_label: str, **kwargs: Any) -> ChartDef:
    return ChartDef(
        chart_id,
        title,
        partial(compute_distribution, chart_id=chart_id, data_file=data_file, title=title, x_label=x_label, **kwargs),
    )


def _km(value: float) -> float:
    return value / 1000


def income_class_label(key: str) -> str:
    return f"Class {key}"


PERCENT_RANGE = (0, 100)


PAGES: Dict[str, PageDef] = {
    "mode": PageDef("mode", "Mode", _distance_charts("mode")),
    "purpose": PageDef("purpose", "Purpose", _distance_charts("purpose")),
    "activities": PageDef(
        "activities",
        "Activities",
        [
            ChartDef("activities-canton-map", "Canton Map", compute_canton_map),
            ChartDef("activity-duration", "Activity Duration", partial(compute_activity_histogram, plot_type="duration")),
            ChartDef(
                "activity-departure",
                "Activity Departure Time",
                partial(compute_activity_histogram, plot_type="departure"),
            ),
        ],
    ),
    "demographics": PageDef(
        "demographics",
        "Demographics",
        [
            _distribution("age-distribution", "Age Distribution", "age_distribution.json", "Age Group"),
            _distribution(
                "gender-distribution",
                "Gender Distribution",
                "gender_distribution.json",
                "Gender",
                custom_categories=GENDER_CATEGORIES,
            ),
            _distribution(
                "income-distribution",
                "Income Distribution",
                "income_distribution.json",
                "Income Class",
                label_mapper=income_class_label,
            ),
            _distribution(
                "mode-share-by-income",
                "Mode Share by Income",
                "mode_share_by_income.json",
                "Mode",
                filter_type="income",
            ),
            _distribution("mode-share-by-age", "Mode Share by Age", "mode_share_by_age.json", "Mode", filter_type="age"),
            _distribution(
                "mode-share-by-gender",
                "Mode Share by Gender",
                "mode_share_by_gender.json",
                "Mode",
                filter_type="gender",
            ),
            _distribution(
                "average-distance-by-age",
                "Average Distance by Age",
                "average_distance_by_age.json",
                "Age Group",
                y_label="Average Distance [km]",
                filter_type="distance",
                value_transform=_km,
            ),
        ],
    ),
    "pt-subscription": PageDef(
        "pt-subscription",
        "PT Subscription",
        [
            ChartDef("pt-subscription-info", "Swiss PT Subscription Types", _no_source(compute_pt_subscription_info)),
            _distribution(
                "pt-subscription-distribution",
                "PT Subscription Ownership",
                "pt_subscription_distribution.json",
                "Subscription",
                y_range=PERCENT_RANGE,
            ),
            _distribution(
                "pt-subscription-by-age",
                "PT Subscription Ownership by Age",
                "pt_subscription_by_age.json",
                "Subscription",
                filter_type="age",
            ),
            _distribution(
                "pt-subscription-by-income",
                "PT Subscription Ownership by Income",
                "pt_subscription_by_income.json",
                "Subscription",
                filter_type="income",
            ),
        ],
    ),
    "car-ownership": PageDef(
        "car-ownership",
        "Car Ownership",
        [
            _distribution(
                "car-ownership-distribution",
                "Car Availability",
                "car_ownership_distribution.json",
                "Car Availability",
                y_range=PERCENT_RANGE,
            ),
            _distribution(
                "car-ownership-by-income",
                "Car Availability by Income",
                "car_ownership_by_income.json",
                "Car Availability",
                filter_type="income",
            ),
            _distribution(
                "car-ownership-by-age",
                "Car Availability by Age",
                "car_ownership_by_age.json",
                "Car Availability",
                filter_type="age",
            ),
            _distribution(
                "car-ownership-by-gender",
                "Car Availability by Gender",
                "car_ownership_by_gender.json",
                "Car Availability",
                filter_type="gender",
            ),
        ],
    ),
    "transit-stops": PageDef(
        "transit-stops",
        "Transit Stops",
        [
            ChartDef("transit-summary", "Daily Summary", compute_stop_summary),
            ChartDef("transit-boardings", "Hourly Boardings", partial(compute_passengers_by_stop, metric="boardings")),
            ChartDef(
                "transit-alightings",
                "Hourly Alightings",
                partial(compute_passengers_by_stop, metric="alightings"),
            ),
            ChartDef("transit-transfer-matrix", "Transfer Matrix", compute_transfer_matrix),
            ChartDef("transit-transfer-destinations", "Top Transfer Destinations", compute_transfer_destinations),
        ],
    ),
}

CHARTS: Dict[str, ChartDef] = {chart.id: chart for page in PAGES.values() for chart in page.charts}


def page_options() -> List[Dict[str, str]]:
    return [{"id": p.id, "label": p.label} for p in PAGES.values()]


def _run_chart(chart: ChartDef, source: DataSource, filters: FilterSelection) -> Dict[str, Any]:
    try:
        payload = chart.compute(source, filters)
    except DataUnavailableError as exc:
        logger.warning("Chart %s has no data: %s", chart.id, exc)
        return placeholder(chart.id, chart.title)
    except Exception:
        logger.exception("Chart %s failed", chart.id)
        return placeholder(chart.id, chart.title)
    payload["id"] = chart.id
    return payload


def compute_chart(chart_id: str, filters: FilterSelection, source: Optional[DataSource] = None) -> Dict[str, Any]:
    """Compute a single chart by id; raises KeyError for an unknown id."""
    chart = CHARTS[chart_id]
    return _run_chart(chart, source or default_data_source(), filters)


def compute_page(page: str, filters: FilterSelection, source: Optional[DataSource] = None) -> Dict[str, Any]:
    """Compute every chart of a page; raises KeyError for an unknown page."""
    page_def = PAGES[page]
    source = source or default_data_source()
    return {
        "page": page_def.id,
        "label": page_def.label,
        "filters": filters,
        "charts": [_run_chart(chart, source, filters) for chart in page_def.charts],
    }


def page_export_frame(payload: Dict[str, Any]) -> pd.DataFrame:
    """Stack the data behind every chart of a computed page into one table."""
    frames = []
    for chart in payload.get("charts") or []:
        records = chart.get("data") or []
        if not records:
            continue
        df = pd.DataFrame(records)
        df.insert(0, "chart", chart.get("id"))
        frames.append(df)
    if not frames:
        return pd.DataFrame(columns=["chart"])
    return pd.concat(frames, ignore_index=True, sort=False)
