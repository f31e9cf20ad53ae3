"""UI helpers for Streamlit layout and controls."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Sequence

import streamlit as st

from spendguard.config import PAGE_SIZE_OPTIONS, QUICK_RANGES, DashboardSettings
from spendguard.request_log import SORT_FIELDS, ColumnConfig, RequestFilters, visible_columns

CUSTOM_RANGE = "custom"


@dataclass(frozen=True)
class DashboardFilters:
    quick_range: str | None
    date_from: date
    date_to: date
    timezone: str
    fetch_clicked: bool


@dataclass(frozen=True)
class AnalyticsRange:
    quick_range: str | None = None
    date_from: date | None = None
    date_to: date | None = None


def apply_app_styles() -> None:
    st.markdown(
        """
        <style>
            .block-container {
                padding-top: 1rem;
                padding-bottom: 2rem;
                max-width: 1250px;
            }
            [data-testid="stSidebar"] {
                border-right: 1px solid #e5e7eb;
            }
            [data-testid="metric-container"] {
                border: 1px solid #e5e7eb;
                border-radius: 8px;
                padding: 10px 12px;
                background: #f8fafc;
            }
        </style>
        """,
        unsafe_allow_html=True,
    )


def render_header() -> None:
    st.title("AI SpendGuard")
    st.caption(
        "Spend monitoring across AI providers: request costs, budgets, forecasts and alert thresholds."
    )


def render_sidebar(settings: DashboardSettings, today: date) -> DashboardFilters:
    st.sidebar.header("Time Range")

    options = [*QUICK_RANGES, CUSTOM_RANGE]
    quick_range = st.sidebar.radio(
        "Quick range",
        options=options,
        index=options.index("1m"),
        format_func=lambda code: QUICK_RANGES.get(code, "Custom"),
        horizontal=True,
    )

    default_start = today - timedelta(days=settings.dashboard_lookback_days)
    disabled = quick_range != CUSTOM_RANGE
    date_from = st.sidebar.date_input("From", value=default_start, disabled=disabled)
    date_to = st.sidebar.date_input("To", value=today, disabled=disabled)

    timezone = st.sidebar.text_input(
        "Timezone",
        value=settings.timezone,
        help="IANA name used for day and month buckets, e.g. Europe/Berlin.",
    )

    fetch_clicked = st.sidebar.button("Refresh Data", type="primary")

    if st.sidebar.button("Clear Cached Session"):
        st.cache_data.clear()
        for key in ["filter_signature", "fetch_sequencer", "request_page"]:
            if key in st.session_state:
                del st.session_state[key]
        st.rerun()

    return DashboardFilters(
        quick_range=None if quick_range == CUSTOM_RANGE else quick_range,
        date_from=date_from,
        date_to=date_to,
        timezone=timezone.strip() or settings.timezone,
        fetch_clicked=fetch_clicked,
    )


def render_dashboard_kpis(metrics: dict[str, object]) -> None:
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Spend", f"${metrics['total_spend']:,.2f}")
    c2.metric("Total Requests", f"{int(metrics['total_requests']):,}")
    c3.metric("Avg Cost / Request", f"${metrics['avg_cost_per_request']:.4f}")
    c4.metric("Active Projects", f"{int(metrics['active_projects'])}")


def render_analytics_kpis(summary: dict[str, object]) -> None:
    predictions = summary["predictions"]
    c1, c2, c3, c4 = st.columns(4)
    c1.metric("Total Cost", f"${summary['total_cost']:,.2f}")
    c2.metric("Total Requests", f"{int(summary['total_requests']):,}")
    c3.metric("Avg Cost / Request", f"${summary['avg_cost_per_request']:.4f}")
    c4.metric(
        "Next Month (Forecast)",
        f"${predictions['next_month']:,.2f}",
        delta=f"{predictions['trend_slope']:+,.2f} / month",
        delta_color="inverse",
    )


def render_forecast_card(predictions: dict[str, object]) -> None:
    c1, c2, c3 = st.columns(3)
    c1.metric("Next 3 Months", f"${predictions['next_3_months']:,.2f}")
    c2.metric("Avg Monthly Cost", f"${predictions['avg_monthly_cost']:,.2f}")
    c3.metric("Avg Monthly Requests", f"{int(predictions['avg_monthly_requests']):,}")
    st.caption(f"Trend: **{predictions['trend']}**")


def render_cost_distribution(distribution: dict[str, float]) -> None:
    c1, c2, c3 = st.columns(3)
    c1.metric("Median (p50)", f"${distribution['p50']:.4f}")
    c2.metric("p90", f"${distribution['p90']:.4f}")
    c3.metric("p99", f"${distribution['p99']:.4f}")


def render_request_filters(
    *,
    provider_names: Sequence[str],
    model_names: Sequence[str],
    business_unit_names: Sequence[str],
    date_from: date,
    date_to: date,
) -> RequestFilters:
    search = st.text_input("Search", placeholder="Request ID, model or provider", key="request_search")

    c1, c2, c3 = st.columns(3)
    providers = c1.multiselect("Providers", options=list(provider_names), key="request_providers")
    models = c2.multiselect("Models", options=list(model_names), key="request_models")
    business_units = c3.multiselect("Business Units", options=list(business_unit_names), key="request_units")

    d1, d2 = st.columns(2)
    narrowed_from = d1.date_input("Requests from", value=date_from, key="request_from")
    narrowed_to = d2.date_input("Requests to", value=date_to, key="request_to")

    return RequestFilters(
        date_from=narrowed_from,
        date_to=narrowed_to,
        providers=tuple(providers),
        models=tuple(models),
        business_units=tuple(business_units),
        search=search,
    )


def render_column_picker(columns: Sequence[ColumnConfig]) -> list[ColumnConfig]:
    labels = {column.label: column for column in columns}
    chosen = st.multiselect(
        "Columns",
        options=list(labels),
        default=[column.label for column in columns if column.visible],
        key="request_columns",
    )
    return visible_columns(columns, [labels[label].id for label in chosen])


def render_sort_controls(columns: Sequence[ColumnConfig]) -> tuple[str, bool]:
    sortable = [column for column in columns if column.sortable and column.id in SORT_FIELDS]
    c1, c2 = st.columns(2)
    sort_column = c1.selectbox(
        "Sort by",
        options=[column.id for column in sortable],
        format_func=lambda column_id: next(c.label for c in sortable if c.id == column_id),
        key="request_sort_by",
    )
    direction = c2.radio("Direction", options=["Descending", "Ascending"], horizontal=True, key="request_sort_dir")
    return sort_column, direction == "Ascending"


def stored_page_state(default_page_size: int) -> tuple[int, int]:
    """Page number and size picked on the previous run; the controls render below the table."""
    return (
        int(st.session_state.get("request_page", 1)),
        int(st.session_state.get("request_page_size", default_page_size)),
    )


def render_page_controls(total_count: int, default_page_size: int) -> tuple[int, int]:
    c1, c2, c3 = st.columns([1, 1, 2])
    page_size = c1.selectbox(
        "Rows per page",
        options=list(PAGE_SIZE_OPTIONS),
        index=list(PAGE_SIZE_OPTIONS).index(default_page_size),
        key="request_page_size",
    )
    total_pages = max(1, math.ceil(total_count / page_size))
    if st.session_state.get("request_page", 1) > total_pages:
        st.session_state["request_page"] = 1
    page = c2.selectbox("Page", options=list(range(1, total_pages + 1)), key="request_page")
    c3.caption(f"{total_count:,} matching requests, {total_pages:,} page(s)")
    return int(page), int(page_size)


def render_forecast_disclaimer() -> None:
    st.caption(
        "Forecasts extend the average of the last three months by the first-to-last monthly change. "
        "They are directional, not finance-grade projections."
    )


def render_analytics_range(default_months: int, today: date) -> AnalyticsRange:
    """Analytics window picker; an empty range means the trailing ``default_months`` months."""
    labels = {"default": f"Last {default_months} months", **QUICK_RANGES, CUSTOM_RANGE: "Custom"}
    choice = st.radio(
        "Analytics range",
        options=list(labels),
        format_func=labels.get,
        horizontal=True,
        key="analytics_range",
    )
    if choice == CUSTOM_RANGE:
        c1, c2 = st.columns(2)
        date_from = c1.date_input("Analytics from", value=today.replace(day=1), key="analytics_from")
        date_to = c2.date_input("Analytics to", value=today, key="analytics_to")
        return AnalyticsRange(date_from=date_from, date_to=date_to)
    return AnalyticsRange(quick_range=None if choice == "default" else choice)
