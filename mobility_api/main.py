from __future__ import annotations

import logging
import math

import numpy as np
import pandas as pd
from fastapi import FastAPI, Query
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.responses import Response

from mobility import config
from mobility.data import DataSource, DataUnavailableError, canton_label, default_data_source
from mobility.filters import ALL, CANTONS, MODES, PURPOSES, FilterSelection, normalize_filters
from mobility.metrics_info import PT_SUBSCRIPTIONS
from mobility.metrics_transit import available_lines, resolve_selected_stop, stop_suggestions
from mobility.pages import CHARTS, PAGES, compute_chart, compute_page, page_export_frame, page_options
from mobility_api.schemas import FilterSelectionModel, TransitLinesRequest


app = FastAPI(title="Canton Mobility Dashboard API", version="0.1.0")
logger = logging.getLogger(__name__)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _data_source() -> DataSource:
    return default_data_source()


def _filters_from_model(model: FilterSelectionModel) -> FilterSelection:
    return normalize_filters(model.model_dump())


def _json(data: object) -> JSONResponse:
    """Return JSON with safe encoding for pandas/numpy objects."""

    def _safe_float(value: object) -> float | None:
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return None
        if math.isnan(out) or math.isinf(out):
            return None
        return out

    return JSONResponse(
        content=jsonable_encoder(
            data,
            custom_encoder={
                type(pd.NA): lambda _: None,
                np.integer: int,
                float: _safe_float,
                np.floating: _safe_float,
                np.bool_: bool,
                np.ndarray: lambda arr: arr.tolist(),
                pd.Timestamp: lambda ts: ts.isoformat(),
            },
        )
    )


def _error(status_code: int, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": str(exc), "type": type(exc).__name__})


def _options(mapping: dict) -> list[dict]:
    return [{"id": key, "label": label} for key, label in mapping.items()]


@app.get("/meta/cantons")
def meta_cantons():
    return _json({"cantons": [{"id": c, "label": canton_label(c)} for c in [ALL, *CANTONS]]})


@app.get("/meta/modes")
def meta_modes():
    return _json({"modes": _options(MODES)})


@app.get("/meta/purposes")
def meta_purposes():
    return _json({"purposes": _options(PURPOSES)})


@app.get("/meta/pages")
def meta_pages():
    return _json({"pages": page_options()})


@app.get("/meta/pt-subscriptions")
def meta_pt_subscriptions():
    return _json({"subscriptions": PT_SUBSCRIPTIONS})


@app.get("/meta/source")
def meta_source():
    try:
        return _json(_data_source().describe())
    except Exception as exc:
        logger.exception("meta_source failed")
        return _error(500, exc)


@app.post("/pages/{page}")
def page_charts(page: str, filters: FilterSelectionModel):
    if page not in PAGES:
        return _error(404, KeyError(f"Unknown page: {page}"))
    try:
        f = _filters_from_model(filters)
        return _json(compute_page(page, f, _data_source()))
    except Exception as exc:
        logger.exception("page %s failed", page)
        return _error(500, exc)


@app.post("/charts/{chart_id}")
def single_chart(chart_id: str, filters: FilterSelectionModel):
    if chart_id not in CHARTS:
        return _error(404, KeyError(f"Unknown chart: {chart_id}"))
    try:
        f = _filters_from_model(filters)
        return _json(compute_chart(chart_id, f, _data_source()))
    except Exception as exc:
        logger.exception("chart %s failed", chart_id)
        return _error(500, exc)


@app.get("/transit/stops")
def transit_stops(
    canton: str = Query(default=ALL),
    q: str = Query(default=""),
    limit: int = Query(default=8, ge=1, le=50),
):
    try:
        return _json({"stops": stop_suggestions(_data_source(), canton, q, limit=limit)})
    except DataUnavailableError as exc:
        logger.warning("No stops for canton %s: %s", canton, exc)
        return _json({"stops": []})
    except Exception as exc:
        logger.exception("transit_stops failed")
        return _error(500, exc)


@app.post("/transit/lines")
def transit_lines(request: TransitLinesRequest):
    try:
        f = normalize_filters({"canton": request.canton, "transit_stop": request.transit_stop})
        stop = resolve_selected_stop(_data_source(), f)
        return _json({"stop": stop.to_dict() if stop else None, "lines": available_lines(stop)})
    except DataUnavailableError as exc:
        logger.warning("No stops for canton %s: %s", request.canton, exc)
        return _json({"stop": None, "lines": []})
    except Exception as exc:
        logger.exception("transit_lines failed")
        return _error(500, exc)


@app.post("/export/{page}")
def export_page(page: str, filters: FilterSelectionModel):
    if page not in PAGES:
        return _error(404, KeyError(f"Unknown page: {page}"))
    f = _filters_from_model(filters)
    export_df = page_export_frame(compute_page(page, f, _data_source()))
    csv_bytes = export_df.to_csv(index=False).encode("utf-8")
    filename = f"{page}.csv"
    return Response(content=csv_bytes, media_type="text/csv", headers={"Content-Disposition": f"attachment; filename={filename}"})
