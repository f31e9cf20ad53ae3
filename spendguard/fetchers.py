"""Data fetch orchestration for request logs and reference tables."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Any
from zoneinfo import ZoneInfo

import pandas as pd

from spendguard.config import (
    ALERT_CONFIGS_TABLE,
    API_REQUESTS_TABLE,
    BUDGETS_TABLE,
    BUSINESS_UNITS_TABLE,
    DEFAULT_TIMEZONE,
    MODELS_TABLE,
    POLICIES_TABLE,
    PROFILES_TABLE,
    PROVIDERS_TABLE,
    QUICK_RANGES,
    USER_ROLES_TABLE,
)
from spendguard.supabase_client import SupabaseRestClient, eq, gte, lte, order_by

logger = logging.getLogger(__name__)

REQUEST_SELECT = (
    "*,models(display_name,provider_id),providers(display_name),business_units(name)"
)
BUDGET_SELECT = "*,business_units(name),providers(display_name)"


@dataclass(frozen=True)
class RequestQuery:
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None


def build_time_window(
    date_from: date,
    date_to: date,
    tz_name: str = DEFAULT_TIMEZONE,
) -> tuple[datetime, datetime]:
    """Convert an inclusive date range to local-day-bound, timezone-aware datetimes."""
    if date_from > date_to:
        raise ValueError("Start date must be before or equal to end date.")

    tz = ZoneInfo(tz_name)
    start = datetime.combine(date_from, time.min, tzinfo=tz)
    end = datetime.combine(date_to, time.max, tzinfo=tz)
    return start, end


def resolve_quick_range(code: str, now: datetime) -> tuple[datetime, datetime]:
    """Resolve a quick filter (24h / 7d / 1m / 3m) to a [start, now] window."""
    if code not in QUICK_RANGES:
        raise ValueError(f"Unknown quick range '{code}'. Expected one of {list(QUICK_RANGES)}.")

    if code == "24h":
        return now - timedelta(hours=24), now
    if code == "7d":
        return now - timedelta(days=7), now
    return trailing_months_window(now, 1 if code == "1m" else 3)


def trailing_months_window(now: datetime, months: int) -> tuple[datetime, datetime]:
    """Calendar-aware [now - months, now] window; month ends clamp (Mar 31 -> Feb 28)."""
    start = (pd.Timestamp(now) - pd.DateOffset(months=months)).to_pydatetime()
    return start, now


def resolve_analytics_window(
    now: datetime,
    lookback_months: int,
    *,
    quick_range: str | None = None,
    date_from: date | None = None,
    date_to: date | None = None,
    tz_name: str = DEFAULT_TIMEZONE,
) -> tuple[datetime, datetime]:
    """A complete custom range wins, then a quick range, then the trailing lookback."""
    if date_from is not None and date_to is not None:
        return build_time_window(date_from, date_to, tz_name)
    if quick_range is not None:
        return resolve_quick_range(quick_range, now)
    return trailing_months_window(now, lookback_months)


def fetch_api_requests(client: SupabaseRestClient, query: RequestQuery) -> list[dict[str, Any]]:
    """Fetch request records with joined display names, newest first."""
    bounds: list[str] = []
    if query.start is not None:
        bounds.append(gte(query.start))
    if query.end is not None:
        bounds.append(lte(query.end))
    filters: dict[str, Any] = {"request_timestamp": bounds} if bounds else {}

    rows = client.select(
        API_REQUESTS_TABLE,
        columns=REQUEST_SELECT,
        filters=filters,
        order=order_by("request_timestamp", ascending=False),
        limit=query.limit,
    )
    logger.info(
        "Fetched %d request rows (from=%s, to=%s).",
        len(rows),
        query.start.isoformat() if query.start else None,
        query.end.isoformat() if query.end else None,
    )
    return rows


def fetch_providers(client: SupabaseRestClient, *, active_only: bool = True) -> list[dict[str, Any]]:
    filters = {"is_active": eq(True)} if active_only else {}
    return client.select(PROVIDERS_TABLE, filters=filters, order=order_by("display_name"))


def fetch_models(client: SupabaseRestClient, *, active_only: bool = True) -> list[dict[str, Any]]:
    filters = {"is_active": eq(True)} if active_only else {}
    return client.select(MODELS_TABLE, filters=filters, order=order_by("display_name"))


def fetch_business_units(client: SupabaseRestClient) -> list[dict[str, Any]]:
    return client.select(BUSINESS_UNITS_TABLE, order=order_by("name"))


def fetch_budgets(
    client: SupabaseRestClient,
    *,
    period_start_from: date | None = None,
    period_end_to: date | None = None,
) -> list[dict[str, Any]]:
    """Fetch budgets, optionally restricted to periods inside [from, to]."""
    filters: dict[str, Any] = {}
    if period_start_from is not None:
        filters["period_start"] = gte(period_start_from)
    if period_end_to is not None:
        filters["period_end"] = lte(period_end_to)
    return client.select(
        BUDGETS_TABLE,
        columns=BUDGET_SELECT,
        filters=filters,
        order=order_by("period_start", ascending=False),
    )


def fetch_current_month_budgets(client: SupabaseRestClient, today: date) -> list[dict[str, Any]]:
    month_start = today.replace(day=1)
    month_end = (pd.Timestamp(month_start) + pd.offsets.MonthEnd(0)).date()
    return fetch_budgets(client, period_start_from=month_start, period_end_to=month_end)


def fetch_alert_configs(client: SupabaseRestClient) -> list[dict[str, Any]]:
    return client.select(ALERT_CONFIGS_TABLE, order=order_by("created_at", ascending=False))


def fetch_policies(client: SupabaseRestClient) -> list[dict[str, Any]]:
    return client.select(POLICIES_TABLE, order=order_by("created_at", ascending=False))


def fetch_users_with_roles(client: SupabaseRestClient) -> list[dict[str, Any]]:
    """Fetch profiles and attach each user's roles."""
    profiles = client.select(PROFILES_TABLE, order=order_by("created_at", ascending=False))
    roles = client.select(USER_ROLES_TABLE)

    roles_by_user: dict[str, list[str]] = {}
    for row in roles:
        roles_by_user.setdefault(str(row.get("user_id")), []).append(str(row.get("role")))

    return [
        {**profile, "roles": roles_by_user.get(str(profile.get("id")), [])}
        for profile in profiles
    ]
