import logging
from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import altair as alt
import pandas as pd
import streamlit as st

from mobility import config
from mobility.data import DataSource, DataUnavailableError, FileMap, canton_label
from mobility.filters import (
    ALL,
    CANTONS,
    DEFAULT_AGE,
    DEFAULT_INCOME,
    DISTANCE_TYPES,
    GENDERS,
    MODES,
    PURPOSES,
    normalize_filters,
)
from mobility.metrics_transit import available_lines, load_stop_features, resolve_stop, search_stops
from mobility.pages import PAGES, compute_page, page_export_frame

alt.data_transformers.disable_max_rows()
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

MODE_PAGES = {"mode"}
PURPOSE_PAGES = {"purpose", "activities"}
DEMOGRAPHIC_PAGES = {"demographics", "pt-subscription", "car-ownership"}
TRANSIT_PAGES = {"transit-stops"}
INCOME_CLASSES = ["1", "2", "3", "4", "5"]
AGE_GROUPS = ["0-17", "18-24", "25-44", "45-64", "65+"]


# ---------- UI / layout helpers ----------
def inject_base_styles():
    if st.session_state.get("_base_css_injected"):
        return
    st.markdown(
        """
        <style>
        .app-top-bar {padding: 6px 0 4px;border-bottom: 1px solid #e5e7eb;margin-bottom: 10px;}
        .app-top-bar .breadcrumb {color: #6b7280;font-size: 0.9rem;margin-bottom: 2px;}
        .app-top-bar .page-title {font-size: 1.4rem;font-weight: 700;color: #111827;}
        .card-title {font-weight: 600;font-size: 1.0rem;color: #111827;margin-bottom: 6px;}
        .chip-row {display: flex;flex-wrap: wrap;gap: 6px;margin-top: 6px;}
        .chip {background: #f3f4f6;border: 1px solid #e5e7eb;border-radius: 14px;padding: 4px 10px;font-size: 0.85rem;color: #374151;}
        </style>
        """,
        unsafe_allow_html=True,
    )
    st.session_state["_base_css_injected"] = True


@contextmanager
def card(title: str):
    container = st.container(border=True)
    with container:
        st.markdown(f"<div class='card-title'>{title}</div>", unsafe_allow_html=True)
        yield container


def format_filter_summary(filters) -> str:
    chips = [f"Canton: {canton_label(filters.canton)}", f"Distance: {filters.distance_type.capitalize()}"]
    if filters.transit_stop:
        chips.append(f"Stop: {filters.transit_stop}")
    if filters.transit_line:
        chips.append(f"Line: {filters.transit_line}")
    return "".join(f"<span class='chip'>{txt}</span>" for txt in chips)


def render_page_header(title: str, filter_summary_html: str, export_df: Optional[pd.DataFrame] = None, export_name: str = "export.csv"):
    c1, c2 = st.columns([8, 2])
    with c1:
        st.markdown(
            f"<div class='app-top-bar'><div class='breadcrumb'>Canton Mobility Dashboard</div><div class='page-title'>{title}</div></div>",
            unsafe_allow_html=True,
        )
    with c2:
        if st.button("Refresh"):
            st.rerun()
        if export_df is not None and not export_df.empty:
            st.download_button(
                "Export CSV",
                data=export_df.to_csv(index=False).encode("utf-8"),
                file_name=export_name,
                mime="text/csv",
            )
    st.markdown(f"<div class='chip-row'>{filter_summary_html}</div>", unsafe_allow_html=True)


def render_chart(payload: Dict[str, Any]):
    with card(payload.get("title") or ""):
        kind = payload.get("kind")
        if payload.get("chart"):
            st.vega_lite_chart(payload["chart"], use_container_width=True)
        elif kind == "info" and payload.get("data"):
            for entry in payload["data"]:
                st.markdown(f"**{entry['name']}**  \n{entry['description']}")
        elif kind == "summary" and not payload.get("message"):
            totals = payload.get("totals") or {}
            cols = st.columns(3)
            cols[0].metric("Total Boardings", f"{totals.get('boardings', 0):,.0f}")
            cols[1].metric("Total Alightings", f"{totals.get('alightings', 0):,.0f}")
            cols[2].metric("Total Volume", f"{totals.get('volume', 0):,.0f}")
            line_stats = payload.get("line_stats")
            if line_stats:
                st.caption(
                    f"Lines: {line_stats['lines']} | Routes: {line_stats['routes']} | "
                    f"Modes: {', '.join(line_stats['modes']) or 'n/a'}"
                )
        else:
            st.info(payload.get("message") or "No data available")


def render_grid(charts: List[Dict[str, Any]]):
    for start in range(0, len(charts), 2):
        cols = st.columns(2)
        for col, payload in zip(cols, charts[start : start + 2]):
            with col:
                render_chart(payload)


# ---------- UI setup ----------
st.set_page_config(page_title="Canton Mobility Dashboard", layout="wide")
inject_base_styles()
st.title("Canton Mobility Dashboard")
st.caption("Microcensus vs. synthetic population, per canton.")

if "file_map" not in st.session_state:
    st.session_state["file_map"] = FileMap()

# ----- Sidebar: navigation + data source -----
page_ids = list(PAGES)
with st.sidebar:
    st.markdown("### Navigate")
    page_id = st.radio("Navigate", page_ids, format_func=lambda p: PAGES[p].label, index=0)

    st.markdown("---")
    st.markdown("### Data")
    uploads = st.file_uploader(
        "Upload local data files (JSON / GeoJSON)",
        type=["json", "geojson"],
        accept_multiple_files=True,
        key=f"uploads_{st.session_state.get('_upload_round', 0)}",
    )
    if uploads:
        st.session_state["file_map"] = FileMap.from_uploads(uploads)
    file_map: FileMap = st.session_state["file_map"]
    if len(file_map):
        st.caption(f"{len(file_map)} local file(s) shadow the remote source.")
        if st.button("Reset uploads"):
            file_map.clear()
            st.session_state["_upload_round"] = st.session_state.get("_upload_round", 0) + 1
            st.rerun()
    data_url = st.text_input("Data URL override (optional)", value=config.DATA_URL or "")
    st.caption(f"Default source: {config.DEFAULT_DATA_URL}")
    st.markdown(f"[Open the webmap]({config.WEBMAP_URL})")

source = DataSource(file_map=file_map, context_url=data_url.strip() or None)

# ----- Controls bar -----
raw_filters: Dict[str, Any] = {}
controls = st.columns(4)
raw_filters["canton"] = controls[0].selectbox("Canton", [ALL, *CANTONS], format_func=canton_label)
raw_filters["distance_type"] = controls[1].radio(
    "Distance", DISTANCE_TYPES, format_func=str.capitalize, horizontal=True
)
if page_id in MODE_PAGES:
    raw_filters["mode"] = controls[2].selectbox("Mode", list(MODES), format_func=MODES.get)
if page_id in PURPOSE_PAGES:
    raw_filters["purpose"] = controls[2].selectbox("Purpose", list(PURPOSES), format_func=PURPOSES.get)
if page_id in DEMOGRAPHIC_PAGES:
    raw_filters["gender"] = controls[2].radio("Gender", GENDERS, format_func=str.capitalize, horizontal=True)
    demo_cols = controls[3].columns(2)
    raw_filters["income"] = demo_cols[0].selectbox("Income", INCOME_CLASSES, index=INCOME_CLASSES.index(DEFAULT_INCOME))
    raw_filters["age"] = demo_cols[1].selectbox("Age", AGE_GROUPS, index=AGE_GROUPS.index(DEFAULT_AGE))
if page_id in TRANSIT_PAGES and raw_filters["canton"] != ALL:
    try:
        features = load_stop_features(source, raw_filters["canton"])
    except DataUnavailableError:
        features = []
        controls[2].warning("No stop data for this canton.")
    term = controls[2].text_input("Search transit stop", "")
    matches = search_stops(features, term)
    names = [m["properties"]["name"] for m in matches]
    stop_name = controls[2].selectbox("Stop", names, index=None, placeholder="Select a stop") if names else None
    if stop_name:
        raw_filters["transit_stop"] = stop_name
        lines = available_lines(resolve_stop(features, stop_name))
        line_ids = [""] + [l["line_id"] for l in lines]
        line_labels = {l["line_id"]: f"{l['line_name'] or l['line_id']} ({l['mode']})" for l in lines}
        raw_filters["transit_line"] = controls[3].selectbox(
            "Line", line_ids, format_func=lambda l: line_labels.get(l, "All lines")
        )

filters = normalize_filters(raw_filters)
payload = compute_page(page_id, filters, source)

render_page_header(
    PAGES[page_id].label,
    format_filter_summary(filters),
    export_df=page_export_frame(payload),
    export_name=f"{page_id}.csv",
)
render_grid(payload["charts"])
