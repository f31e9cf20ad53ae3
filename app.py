"""Streamlit entrypoint for the AI SpendGuard dashboard."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime
from typing import Any
from zoneinfo import ZoneInfo

import pandas as pd
import streamlit as st
from dotenv import load_dotenv

from spendguard.analytics import (
    build_analytics_summary,
    build_budget_progress,
    build_dashboard_metrics,
    evaluate_budget_alerts,
)
from spendguard.charts import (
    budget_progress_chart,
    daily_cost_chart,
    dimension_cost_chart,
    forecast_chart,
    model_usage_chart,
    monthly_cost_chart,
    provider_spend_chart,
    spending_trend_chart,
)
from spendguard.config import (
    CACHE_TTL_SECONDS,
    ENV_LOG_LEVEL,
    ENV_SETTINGS_PATH,
    ENV_SUPABASE_ACCESS_TOKEN,
    ENV_SUPABASE_ANON_KEY,
    ENV_SUPABASE_URL,
    ENV_TIMEZONE,
    POLICY_TYPES,
    USER_ROLES,
    DashboardSettings,
    load_settings,
)
from spendguard.exports import (
    STATS_EXPORTS,
    analytics_report_filename,
    analytics_report_json,
    requests_csv_filename,
    requests_to_csv,
    stats_csv_filename,
    stats_to_csv,
)
from spendguard.fetchers import (
    RequestQuery,
    build_time_window,
    fetch_api_requests,
    fetch_business_units,
    fetch_current_month_budgets,
    fetch_models,
    fetch_providers,
    resolve_analytics_window,
    resolve_quick_range,
)
from spendguard.request_log import (
    REQUEST_LOG_COLUMNS,
    format_requests_table,
    query_request_log,
    status_is_success,
    text_or_missing,
    visible_columns,
)
from spendguard.sequencing import FetchSequencer
from spendguard.services import AlertConfigService, BudgetService, PolicyService, UserService
from spendguard.supabase_client import SupabaseAPIError, SupabaseRestClient
from spendguard.transformers import budget_label, build_budgets_df, build_requests_df, optional_text, reference_names
from spendguard.ui import (
    DashboardFilters,
    apply_app_styles,
    render_analytics_kpis,
    render_analytics_range,
    render_column_picker,
    render_cost_distribution,
    render_dashboard_kpis,
    render_forecast_card,
    render_forecast_disclaimer,
    render_header,
    render_page_controls,
    render_request_filters,
    render_sidebar,
    render_sort_controls,
    stored_page_state,
)
from spendguard.validation import ValidationError, parse_policy_config, parse_recipients

logger = logging.getLogger(__name__)

Connection = tuple[str, str, str]

BUDGET_TABLE_LABELS = {
    "business_unit": "Business Unit",
    "provider": "Provider",
    "period_start": "Start",
    "period_end": "End",
    "allocated_amount": "Allocated",
    "spent_amount": "Spent",
    "used_pct": "Used (%)",
    "status": "Status",
}


def _open_client(conn: Connection) -> SupabaseRestClient:
    url, api_key, access_token = conn
    return SupabaseRestClient(url, api_key, access_token=access_token or None)


@st.cache_data(ttl=CACHE_TTL_SECONDS, show_spinner=False)
def load_requests(conn: Connection, start: datetime, end: datetime, tz_name: str) -> pd.DataFrame:
    with _open_client(conn) as client:
        rows = fetch_api_requests(client, RequestQuery(start=start, end=end))
    return build_requests_df(rows, tz_name)


@st.cache_data(ttl=CACHE_TTL_SECONDS, show_spinner=False)
def load_reference_data(conn: Connection) -> dict[str, list[dict[str, Any]]]:
    with _open_client(conn) as client:
        return {
            "providers": fetch_providers(client),
            "models": fetch_models(client),
            "business_units": fetch_business_units(client),
        }


@st.cache_data(ttl=CACHE_TTL_SECONDS, show_spinner=False)
def load_budgets(conn: Connection, current_month_of: date | None = None) -> pd.DataFrame:
    with _open_client(conn) as client:
        if current_month_of is not None:
            rows = fetch_current_month_budgets(client, current_month_of)
        else:
            rows = BudgetService(client).list()
    return build_budgets_df(rows)


@st.cache_data(ttl=CACHE_TTL_SECONDS, show_spinner=False)
def load_alert_configs(conn: Connection) -> list[dict[str, Any]]:
    with _open_client(conn) as client:
        return AlertConfigService(client).list()


@st.cache_data(ttl=CACHE_TTL_SECONDS, show_spinner=False)
def load_policies(conn: Connection) -> list[dict[str, Any]]:
    with _open_client(conn) as client:
        return PolicyService(client).list()


@st.cache_data(ttl=CACHE_TTL_SECONDS, show_spinner=False)
def load_users(conn: Connection) -> list[dict[str, Any]]:
    with _open_client(conn) as client:
        return UserService(client).list()


def _run_mutation(action: Callable[[], object], success_message: str) -> None:
    """Run a write; show validation/store errors inline, otherwise rerun with a notice."""
    try:
        action()
    except ValidationError as exc:
        st.error(f"Invalid {exc.field.replace('_', ' ')}: {exc.message}")
        return
    except SupabaseAPIError as exc:
        st.error(f"Save failed: {exc}")
        return
    st.session_state["flash"] = success_message
    st.rerun()


def _resolve_window(filters: DashboardFilters) -> tuple[datetime, datetime]:
    if filters.quick_range is None:
        return build_time_window(filters.date_from, filters.date_to, filters.timezone)
    # Minute resolution keeps the cache key stable across reruns.
    now = datetime.now(ZoneInfo(filters.timezone)).replace(second=0, microsecond=0)
    return resolve_quick_range(filters.quick_range, now)


def _load_window_data(
    conn: Connection,
    start: datetime,
    end: datetime,
    tz_name: str,
    today: date,
) -> dict[str, pd.DataFrame]:
    """Fetch requests and this month's budgets for the sidebar window.

    Streamlit stops a superseded script run when a newer one starts, so the
    newest window normally wins on its own. The sequencer only covers a run that
    still finishes its fetch after a newer dispatch, which keeps it from
    overwriting ``window_payload``.
    """
    sequencer: FetchSequencer = st.session_state.setdefault("fetch_sequencer", FetchSequencer())
    signature = (start.isoformat(), end.isoformat(), tz_name, today.isoformat())
    token = sequencer.next_token()

    with st.spinner("Loading request data..."):
        try:
            payload = {
                "requests_df": load_requests(conn, start, end, tz_name),
                "budgets_df": load_budgets(conn, today),
            }
        except SupabaseAPIError as exc:
            st.error(f"Failed to load data: {exc}")
            st.stop()

    if sequencer.accept(token):
        if st.session_state.get("filter_signature") != signature:
            st.session_state["request_page"] = 1
        st.session_state["window_payload"] = payload
        st.session_state["filter_signature"] = signature
    else:
        logger.info("Discarded stale fetch %d for window %s.", token, signature)
    return st.session_state["window_payload"]


def render_dashboard_tab(requests_df: pd.DataFrame, budgets_df: pd.DataFrame, end: datetime) -> None:
    metrics = build_dashboard_metrics(requests_df, budgets_df, end)
    render_dashboard_kpis(metrics)

    if requests_df.empty:
        st.info("No API requests in the selected time range.")

    col1, col2 = st.columns(2)
    col1.plotly_chart(spending_trend_chart(metrics["spending_trend"]), width="stretch")
    col2.plotly_chart(provider_spend_chart(metrics["provider_data"]), width="stretch")

    col3, col4 = st.columns(2)
    col3.plotly_chart(model_usage_chart(metrics["model_usage"]), width="stretch")
    col4.plotly_chart(budget_progress_chart(metrics["budget_progress"]), width="stretch")

    if not requests_df.empty:
        st.subheader("Recent Requests")
        recent = requests_df.head(10)
        columns = visible_columns(REQUEST_LOG_COLUMNS)
        st.dataframe(format_requests_table(recent, columns), width="stretch", hide_index=True)


def render_analytics_tab(conn: Connection, settings: DashboardSettings, now: datetime) -> None:
    picked = render_analytics_range(settings.analytics_lookback_months, now.date())
    try:
        start, end = resolve_analytics_window(
            now,
            settings.analytics_lookback_months,
            quick_range=picked.quick_range,
            date_from=picked.date_from,
            date_to=picked.date_to,
            tz_name=settings.timezone,
        )
    except ValueError as exc:
        st.error(f"Invalid analytics range: {exc}")
        return

    try:
        requests_df = load_requests(conn, start, end, settings.timezone)
    except SupabaseAPIError as exc:
        st.error(f"Failed to load analytics: {exc}")
        return

    summary = build_analytics_summary(requests_df, start, end)
    render_analytics_kpis(summary)
    if requests_df.empty:
        st.info("No API requests in the selected analytics range.")

    st.subheader("Cost Over Time")
    col1, col2 = st.columns(2)
    col1.plotly_chart(daily_cost_chart(summary["daily_costs"]), width="stretch")
    col2.plotly_chart(monthly_cost_chart(summary["monthly_costs"]), width="stretch")

    st.subheader("Forecast")
    render_forecast_card(summary["predictions"])
    st.plotly_chart(forecast_chart(summary["monthly_costs"], summary["predictions"]), width="stretch")
    render_forecast_disclaimer()

    st.subheader("Breakdown")
    breakdown_tabs = st.tabs(["Providers", "Business Units", "Models"])
    specs = [
        ("provider_stats", "Provider", "Cost by Provider"),
        ("business_unit_stats", "Business Unit", "Cost by Business Unit"),
        ("model_stats", "Model", "Cost by Model"),
    ]
    for tab, (key, label, title) in zip(breakdown_tabs, specs):
        with tab:
            stats_df = summary[key]
            st.plotly_chart(dimension_cost_chart(stats_df, title=title, label=label), width="stretch")
            st.dataframe(
                stats_df.rename(
                    columns={"name": label, "cost": "Cost", "requests": "Requests", "avg_cost": "Avg Cost"}
                ),
                width="stretch",
                hide_index=True,
            )

    st.subheader("Cost per Request Distribution")
    render_cost_distribution(summary["cost_distribution"])

    st.subheader("Export")
    export_cols = st.columns(len(STATS_EXPORTS) + 1)
    for column, kind in zip(export_cols, STATS_EXPORTS):
        column.download_button(
            label=f"{kind.title()} CSV",
            data=stats_to_csv(summary, kind).encode("utf-8"),
            file_name=stats_csv_filename(kind),
            mime="text/csv",
        )
    export_cols[-1].download_button(
        label="Full Report (JSON)",
        data=analytics_report_json(summary).encode("utf-8"),
        file_name=analytics_report_filename(now),
        mime="application/json",
    )


def render_requests_tab(
    requests_df: pd.DataFrame,
    reference: dict[str, list[dict[str, Any]]],
    settings: DashboardSettings,
    start: datetime,
    end: datetime,
) -> None:
    filters = render_request_filters(
        provider_names=reference_names(reference["providers"]),
        model_names=reference_names(reference["models"]),
        business_unit_names=reference_names(reference["business_units"], key="name"),
        date_from=start.date(),
        date_to=end.date(),
    )

    with st.expander("Customize columns", expanded=False):
        columns = render_column_picker(REQUEST_LOG_COLUMNS)
    sort_by, ascending = render_sort_controls(REQUEST_LOG_COLUMNS)

    page_number, page_size = stored_page_state(settings.requests_page_size)
    page = query_request_log(
        requests_df, filters, sort_by=sort_by, ascending=ascending, page=page_number, page_size=page_size
    )
    if page.is_empty and page.total_count:
        # The stored page ran past the end after the filters narrowed.
        st.session_state["request_page"] = 1
        page = query_request_log(requests_df, filters, sort_by=sort_by, ascending=ascending, page_size=page_size)

    if requests_df.empty:
        st.info("No API requests in the selected time range.")
        return
    if page.is_empty:
        st.info("No requests match the current filters.")
        return
    if not columns:
        st.warning("Select at least one column to display.")
        return

    st.dataframe(format_requests_table(page.rows, columns), width="stretch", hide_index=True)
    render_page_controls(page.total_count, settings.requests_page_size)
    st.download_button(
        label="Download Page CSV",
        data=requests_to_csv(page.rows, columns).encode("utf-8"),
        file_name=requests_csv_filename(datetime.now()),
        mime="text/csv",
    )

    with st.expander("Request details", expanded=False):
        request_id = st.selectbox("Request", options=list(page.rows["id"]), key="request_detail_id")
        record = page.rows[page.rows["id"] == request_id].iloc[0]
        outcome = "Succeeded" if status_is_success(record["status_code"]) else "Failed"
        st.markdown(f"**Status:** {outcome} ({text_or_missing(record['status_code'])})")
        st.markdown(f"**Request message**\n\n{text_or_missing(record['request_message'])}")
        st.markdown(f"**Response message**\n\n{text_or_missing(record['response_message'])}")
        st.json(record["metadata"] if isinstance(record["metadata"], (dict, list)) else {})


def render_budgets_tab(conn: Connection, reference: dict[str, list[dict[str, Any]]]) -> None:
    try:
        budgets_df = load_budgets(conn)
    except SupabaseAPIError as exc:
        st.error(f"Failed to load budgets: {exc}")
        return

    if budgets_df.empty:
        st.info("No budgets defined yet.")
    else:
        progress = build_budget_progress(budgets_df)
        table = budgets_df.assign(
            used_pct=progress["percentage"].round(1).to_numpy(),
            status=progress["status"].to_numpy(),
        )
        st.dataframe(
            table[list(BUDGET_TABLE_LABELS)].rename(columns=BUDGET_TABLE_LABELS),
            width="stretch",
            hide_index=True,
        )

    units = {row["id"]: row["name"] for row in reference["business_units"]}
    providers = {row["id"]: row["display_name"] for row in reference["providers"]}

    with st.form("create_budget", clear_on_submit=True):
        st.markdown("**New budget**")
        c1, c2 = st.columns(2)
        unit_id = c1.selectbox("Business unit", options=[None, *units], format_func=lambda v: units.get(v, "All"))
        provider_id = c2.selectbox(
            "Provider", options=[None, *providers], format_func=lambda v: providers.get(v, "All")
        )
        c3, c4, c5 = st.columns(3)
        amount = c3.number_input("Allocated amount (USD)", min_value=0.0, step=100.0, key="new_budget_amount")
        period_start = c4.date_input("Period start", value=date.today().replace(day=1))
        period_end = c5.date_input("Period end", value=date.today())
        submitted = st.form_submit_button("Create budget", type="primary")

    if submitted:
        with _open_client(conn) as client:
            service = BudgetService(client, on_change=_clear_budget_caches)
            _run_mutation(
                lambda: service.create(
                    allocated_amount=amount,
                    period_start=period_start,
                    period_end=period_end,
                    business_unit_id=unit_id,
                    provider_id=provider_id,
                ),
                "Budget created successfully",
            )

    if budgets_df.empty:
        return

    labels = {row["id"]: budget_label(row) for _, row in budgets_df.iterrows()}
    st.markdown("**Edit or delete a budget**")
    budget_id = st.selectbox("Budget", options=list(labels), format_func=labels.get, key="edit_budget_id")
    current = budgets_df[budgets_df["id"] == budget_id].iloc[0]
    with st.form("edit_budget"):
        new_amount = st.number_input(
            "Allocated amount (USD)",
            min_value=0.0,
            value=float(current["allocated_amount"]),
            step=100.0,
            key=f"edit_budget_amount_{budget_id}",
        )
        c1, c2 = st.columns(2)
        save = c1.form_submit_button("Save")
        remove = c2.form_submit_button("Delete")

    if save or remove:
        with _open_client(conn) as client:
            service = BudgetService(client, on_change=_clear_budget_caches)
            if remove:
                _run_mutation(lambda: service.delete(budget_id), "Budget deleted successfully")
            else:
                _run_mutation(
                    lambda: service.update(
                        budget_id,
                        allocated_amount=new_amount,
                        period_start=current["period_start"],
                        period_end=current["period_end"],
                        business_unit_id=optional_text(current["business_unit_id"]),
                        provider_id=optional_text(current["provider_id"]),
                    ),
                    "Budget updated successfully",
                )


def render_alerts_tab(conn: Connection, settings: DashboardSettings, budgets_df: pd.DataFrame) -> None:
    try:
        configs = load_alert_configs(conn)
    except SupabaseAPIError as exc:
        st.error(f"Failed to load alert configurations: {exc}")
        return

    enabled = [config for config in configs if config.get("is_enabled")]
    warning_pct = float(enabled[0]["warning_threshold"]) if enabled else settings.alert_warning_pct
    critical_pct = float(enabled[0]["critical_threshold"]) if enabled else settings.alert_critical_pct

    st.subheader("Current Budget Alerts")
    alerts = evaluate_budget_alerts(
        build_budget_progress(budgets_df), warning_pct=warning_pct, critical_pct=critical_pct
    )
    triggered = alerts[alerts["alert_level"] != "none"] if not alerts.empty else alerts
    if triggered.empty:
        st.success(f"No budgets above {warning_pct:.0f}% this month.")
    for _, row in triggered.iterrows():
        message = f"{row['name']}: ${row['spent']:,.2f} of ${row['budget']:,.2f} ({row['percentage']:.1f}%)"
        if row["alert_level"] == "critical":
            st.error(message)
        else:
            st.warning(message)

    st.subheader("Alert Configurations")
    if not configs:
        st.info("No alert configurations yet.")
    for config in configs:
        with st.container(border=True):
            c1, c2, c3 = st.columns([3, 1, 1])
            recipients = ", ".join(config.get("recipients") or []) or "no recipients"
            c1.markdown(
                f"**{config['name']}**  \nwarning {config['warning_threshold']}% · "
                f"critical {config['critical_threshold']}% · {recipients}"
            )
            is_enabled = bool(config.get("is_enabled"))
            if c2.button("Disable" if is_enabled else "Enable", key=f"toggle_alert_{config['id']}"):
                with _open_client(conn) as client:
                    service = AlertConfigService(client, on_change=load_alert_configs.clear)
                    _run_mutation(
                        lambda: service.set_enabled(config["id"], not is_enabled),
                        "Alert configuration updated",
                    )
            if c3.button("Delete", key=f"delete_alert_{config['id']}"):
                with _open_client(conn) as client:
                    service = AlertConfigService(client, on_change=load_alert_configs.clear)
                    _run_mutation(lambda: service.delete(config["id"]), "Alert configuration deleted")

            alert_id = config["id"]
            with st.expander("Edit", expanded=False):
                with st.form(f"edit_alert_{alert_id}"):
                    new_name = st.text_input("Name", value=config["name"], key=f"edit_alert_name_{alert_id}")
                    e1, e2 = st.columns(2)
                    new_warning = e1.slider(
                        "Warning threshold (%)",
                        1,
                        100,
                        int(float(config["warning_threshold"])),
                        key=f"edit_alert_warning_{alert_id}",
                    )
                    new_critical = e2.slider(
                        "Critical threshold (%)",
                        1,
                        100,
                        int(float(config["critical_threshold"])),
                        key=f"edit_alert_critical_{alert_id}",
                    )
                    new_recipients = st.text_area(
                        "Recipients",
                        value="\n".join(config.get("recipients") or []),
                        key=f"edit_alert_recipients_{alert_id}",
                    )
                    saved = st.form_submit_button("Save changes")
            if saved:
                with _open_client(conn) as client:
                    service = AlertConfigService(client, on_change=load_alert_configs.clear)
                    _run_mutation(
                        lambda: service.update(
                            alert_id,
                            name=new_name,
                            warning_threshold=new_warning,
                            critical_threshold=new_critical,
                            recipients=parse_recipients(new_recipients),
                            is_enabled=is_enabled,
                        ),
                        "Alert configuration updated",
                    )

    with st.form("create_alert", clear_on_submit=True):
        st.markdown("**New alert configuration**")
        name = st.text_input("Name")
        c1, c2 = st.columns(2)
        warning = c1.slider("Warning threshold (%)", 1, 100, int(settings.alert_warning_pct))
        critical = c2.slider("Critical threshold (%)", 1, 100, int(settings.alert_critical_pct))
        raw_recipients = st.text_area("Recipients", help="Comma or newline separated email addresses.")
        is_enabled = st.checkbox("Enabled", value=True)
        submitted = st.form_submit_button("Save alert", type="primary")

    if submitted:
        with _open_client(conn) as client:
            service = AlertConfigService(client, on_change=load_alert_configs.clear)
            _run_mutation(
                lambda: service.create(
                    name=name,
                    warning_threshold=warning,
                    critical_threshold=critical,
                    recipients=parse_recipients(raw_recipients),
                    is_enabled=is_enabled,
                ),
                "Alert configuration saved",
            )


def render_admin_tab(conn: Connection) -> None:
    st.subheader("Users & Roles")
    try:
        users = load_users(conn)
    except SupabaseAPIError as exc:
        st.error(f"Failed to load users: {exc}")
        users = []

    if users:
        users_df = pd.DataFrame(
            {
                "Email": [text_or_missing(user.get("email")) for user in users],
                "Name": [text_or_missing(user.get("full_name")) for user in users],
                "Roles": [", ".join(user["roles"]) or "none" for user in users],
            }
        )
        st.dataframe(users_df, width="stretch", hide_index=True)

        user_labels = {str(user["id"]): user.get("email") or str(user["id"]) for user in users}
        with st.form("user_role"):
            c1, c2 = st.columns(2)
            user_id = c1.selectbox("User", options=list(user_labels), format_func=user_labels.get)
            role = c2.selectbox("Role", options=list(USER_ROLES))
            b1, b2 = st.columns(2)
            grant = b1.form_submit_button("Add role")
            revoke = b2.form_submit_button("Remove role")

        if grant or revoke:
            with _open_client(conn) as client:
                service = UserService(client, on_change=load_users.clear)
                if grant:
                    _run_mutation(lambda: service.add_role(user_id, role), "Role added successfully")
                else:
                    _run_mutation(lambda: service.remove_role(user_id, role), "Role removed successfully")
    else:
        st.info("No user profiles visible to this session.")

    st.subheader("Policies")
    try:
        policies = load_policies(conn)
    except SupabaseAPIError as exc:
        st.error(f"Failed to load policies: {exc}")
        return

    if not policies:
        st.info("No policies defined yet.")
    for policy in policies:
        with st.container(border=True):
            c1, c2, c3 = st.columns([3, 1, 1])
            c1.markdown(f"**{policy['name']}** · `{policy['policy_type']}`")
            c1.json(policy.get("config") or {}, expanded=False)
            is_active = bool(policy.get("is_active"))
            if c2.button("Deactivate" if is_active else "Activate", key=f"toggle_policy_{policy['id']}"):
                with _open_client(conn) as client:
                    service = PolicyService(client, on_change=load_policies.clear)
                    _run_mutation(lambda: service.set_active(policy["id"], not is_active), "Policy updated successfully")
            if c3.button("Delete", key=f"delete_policy_{policy['id']}"):
                with _open_client(conn) as client:
                    service = PolicyService(client, on_change=load_policies.clear)
                    _run_mutation(lambda: service.delete(policy["id"]), "Policy deleted successfully")

            policy_id = policy["id"]
            with st.expander("Edit", expanded=False):
                with st.form(f"edit_policy_{policy_id}"):
                    e1, e2 = st.columns(2)
                    new_name = e1.text_input("Name", value=policy["name"], key=f"edit_policy_name_{policy_id}")
                    new_type = e2.selectbox(
                        "Type",
                        options=list(POLICY_TYPES),
                        index=POLICY_TYPES.index(policy["policy_type"]) if policy["policy_type"] in POLICY_TYPES else 0,
                        key=f"edit_policy_type_{policy_id}",
                    )
                    new_config = st.text_area(
                        "Config (JSON)",
                        value=json.dumps(policy.get("config") or {}, indent=2),
                        key=f"edit_policy_config_{policy_id}",
                    )
                    saved = st.form_submit_button("Save changes")
            if saved:
                with _open_client(conn) as client:
                    service = PolicyService(client, on_change=load_policies.clear)
                    _run_mutation(
                        lambda: service.update(
                            policy_id,
                            name=new_name,
                            policy_type=new_type,
                            config=parse_policy_config(new_config),
                            is_active=is_active,
                        ),
                        "Policy updated successfully",
                    )

    with st.form("create_policy", clear_on_submit=True):
        st.markdown("**New policy**")
        c1, c2 = st.columns(2)
        name = c1.text_input("Name")
        policy_type = c2.selectbox("Type", options=list(POLICY_TYPES))
        raw_config = st.text_area("Config (JSON)", value="{}")
        is_active = st.checkbox("Active", value=True)
        submitted = st.form_submit_button("Create policy", type="primary")

    if submitted:
        with _open_client(conn) as client:
            service = PolicyService(client, on_change=load_policies.clear)
            _run_mutation(
                lambda: service.create(
                    name=name,
                    policy_type=policy_type,
                    config=parse_policy_config(raw_config),
                    is_active=is_active,
                ),
                "Policy created successfully",
            )


def _clear_budget_caches() -> None:
    load_budgets.clear()


def main() -> None:
    load_dotenv()
    logging.basicConfig(
        level=os.getenv(ENV_LOG_LEVEL, "INFO").upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    st.set_page_config(page_title="AI SpendGuard", layout="wide")
    apply_app_styles()
    render_header()

    try:
        settings = load_settings(os.getenv(ENV_SETTINGS_PATH), timezone=os.getenv(ENV_TIMEZONE))
    except ValueError as exc:
        st.error(f"Invalid settings file: {exc}")
        return

    conn: Connection = (
        os.getenv(ENV_SUPABASE_URL, "").strip(),
        os.getenv(ENV_SUPABASE_ANON_KEY, "").strip(),
        os.getenv(ENV_SUPABASE_ACCESS_TOKEN, "").strip(),
    )
    if not (conn[0] and conn[1]):
        st.warning(f"Set `{ENV_SUPABASE_URL}` and `{ENV_SUPABASE_ANON_KEY}` in the environment or `.env` to continue.")
        return

    tz_now = datetime.now(ZoneInfo(settings.timezone))
    filters = render_sidebar(settings, tz_now.date())
    if filters.fetch_clicked:
        st.cache_data.clear()

    try:
        settings = replace(settings, timezone=filters.timezone)
        start, end = _resolve_window(filters)
    except ValueError as exc:
        st.error(f"Invalid time range: {exc}")
        return

    now = datetime.now(ZoneInfo(settings.timezone)).replace(second=0, microsecond=0)
    today = now.date()

    flash = st.session_state.pop("flash", None)
    if flash:
        st.success(flash)

    payload = _load_window_data(conn, start, end, settings.timezone, today)
    requests_df = payload["requests_df"]
    budgets_df = payload["budgets_df"]

    try:
        reference = load_reference_data(conn)
    except SupabaseAPIError as exc:
        st.error(f"Failed to load providers and business units: {exc}")
        st.stop()

    tabs = st.tabs(["Dashboard", "Analytics", "Requests", "Budgets", "Alerts", "Admin"])
    with tabs[0]:
        render_dashboard_tab(requests_df, budgets_df, end)
    with tabs[1]:
        render_analytics_tab(conn, settings, now)
    with tabs[2]:
        render_requests_tab(requests_df, reference, settings, start, end)
    with tabs[3]:
        render_budgets_tab(conn, reference)
    with tabs[4]:
        render_alerts_tab(conn, settings, budgets_df)
    with tabs[5]:
        render_admin_tab(conn)


if __name__ == "__main__":
    main()
