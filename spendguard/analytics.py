"""Aggregation logic for dashboard metrics, analytics summaries and forecasts."""

from __future__ import annotations

import logging
import math
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

import numpy as np
import pandas as pd

from spendguard.config import (
    BUDGET_CRITICAL_PCT,
    BUDGET_WARNING_PCT,
    FORECAST_WINDOW_MONTHS,
    MONTH_LABEL_FORMAT,
    SPENDING_TREND_DAYS,
    UNASSIGNED_LABEL,
    UNKNOWN_LABEL,
)

logger = logging.getLogger(__name__)

PERCENTILES = {"p50": 0.50, "p90": 0.90, "p99": 0.99}

DAILY_COLUMNS = ["period", "label", "cost", "requests"]
DIMENSION_STATS_COLUMNS = ["name", "cost", "requests", "avg_cost"]
BUDGET_PROGRESS_COLUMNS = ["name", "spent", "budget", "percentage", "status"]


class GroupLabel(str, Enum):
    """Sentinel group names for records missing a dimension reference."""

    UNKNOWN = UNKNOWN_LABEL
    UNASSIGNED = UNASSIGNED_LABEL


DIMENSION_SENTINELS = {
    "provider": GroupLabel.UNKNOWN,
    "model": GroupLabel.UNKNOWN,
    "business_unit": GroupLabel.UNASSIGNED,
}


def round_half_up(value: float, places: int) -> float:
    """Round like ``Math.round(value * 10**places) / 10**places``.

    Halves always round towards positive infinity, which differs from Python's
    banker's rounding in ``round()``.
    """
    factor = 10**places
    return math.floor(value * factor + 0.5) / factor


def aggregate_daily_costs(requests_df: pd.DataFrame, start: date | datetime, end: date | datetime) -> pd.DataFrame:
    days = pd.date_range(_as_date(start), _as_date(end), freq="D")
    if len(days) == 0:
        return pd.DataFrame(columns=DAILY_COLUMNS)

    if requests_df.empty:
        grouped = pd.DataFrame({"cost": 0.0, "requests": 0}, index=days)
    else:
        day = pd.to_datetime(requests_df["timestamp"]).dt.normalize().astype("datetime64[ns]")
        grouped = (
            requests_df.assign(day=day)
            .groupby("day")
            .agg(cost=("cost", "sum"), requests=("cost", "size"))
            .reindex(days, fill_value=0)
        )

    return pd.DataFrame(
        {
            "period": days,
            "label": [f"{d:%b} {d.day}" for d in days],
            "cost": [round_half_up(float(c), 2) for c in grouped["cost"]],
            "requests": grouped["requests"].astype(int).to_numpy(),
        }
    )


def aggregate_monthly_costs(requests_df: pd.DataFrame, start: date | datetime, end: date | datetime) -> pd.DataFrame:
    months = pd.period_range(_as_date(start), _as_date(end), freq="M")
    if len(months) == 0:
        return pd.DataFrame(columns=DAILY_COLUMNS)

    if requests_df.empty:
        grouped = pd.DataFrame({"cost": 0.0, "requests": 0}, index=months)
    else:
        month = pd.to_datetime(requests_df["timestamp"]).dt.to_period("M")
        grouped = (
            requests_df.assign(month=month)
            .groupby("month")
            .agg(cost=("cost", "sum"), requests=("cost", "size"))
            .reindex(months, fill_value=0)
        )

    periods = months.to_timestamp()
    return pd.DataFrame(
        {
            "period": periods,
            "label": [p.strftime(MONTH_LABEL_FORMAT) for p in periods],
            "cost": [round_half_up(float(c), 2) for c in grouped["cost"]],
            "requests": grouped["requests"].astype(int).to_numpy(),
        }
    )


def build_dimension_stats(requests_df: pd.DataFrame, dimension: str) -> pd.DataFrame:
    """Group requests by a dimension's display name, costliest first.

    Averages come from the unrounded sums. Equal rounded costs keep the order
    in which their groups were first seen.
    """
    if dimension not in DIMENSION_SENTINELS:
        raise ValueError(f"Unknown dimension '{dimension}'. Expected one of {list(DIMENSION_SENTINELS)}.")
    if requests_df.empty:
        return pd.DataFrame(columns=DIMENSION_STATS_COLUMNS)

    names = _dimension_names(requests_df[dimension], DIMENSION_SENTINELS[dimension].value)
    grouped = (
        requests_df.assign(name=names)
        .groupby("name", sort=False, as_index=False)
        .agg(raw_cost=("cost", "sum"), requests=("cost", "size"))
    )
    grouped["cost"] = grouped["raw_cost"].map(lambda v: round_half_up(float(v), 2))
    grouped["avg_cost"] = (grouped["raw_cost"] / grouped["requests"]).map(lambda v: round_half_up(float(v), 4))
    grouped["requests"] = grouped["requests"].astype(int)

    return (
        grouped.sort_values("cost", ascending=False, kind="stable")[DIMENSION_STATS_COLUMNS]
        .reset_index(drop=True)
    )


def compute_cost_distribution(requests_df: pd.DataFrame) -> dict[str, float]:
    if requests_df.empty:
        return {key: 0.0 for key in PERCENTILES}

    costs = np.sort(requests_df["cost"].to_numpy(dtype=float))
    count = len(costs)
    distribution: dict[str, float] = {}
    for key, pct in PERCENTILES.items():
        index = math.floor(pct * count)
        value = float(costs[index]) if index < count else 0.0
        distribution[key] = round_half_up(value, 4)
    return distribution


def compute_summary(requests_df: pd.DataFrame) -> dict[str, Any]:
    total_requests = int(len(requests_df))
    total_cost = float(requests_df["cost"].sum()) if total_requests else 0.0
    return {
        "total_cost": total_cost,
        "total_requests": total_requests,
        "avg_cost_per_request": total_cost / total_requests if total_requests else 0.0,
    }


def build_cost_forecast(monthly_df: pd.DataFrame, *, window: int = FORECAST_WINDOW_MONTHS) -> dict[str, Any]:
    """Project next-month and next-3-month spend from the trailing months.

    The slope is the first-to-last delta divided by the number of months, and
    the 3-month projection applies it twice over (``avg * 3 + slope * 6``).
    """
    recent = monthly_df.tail(window) if not monthly_df.empty else monthly_df
    costs = [float(c) for c in recent["cost"]] if not recent.empty else []
    requests = [float(r) for r in recent["requests"]] if not recent.empty else []
    count = len(costs)

    avg_monthly_cost = sum(costs) / count if count else 0.0
    avg_monthly_requests = sum(requests) / count if count else 0.0
    slope = (costs[-1] - costs[0]) / count if count > 1 else 0.0

    if slope > 0:
        trend = "increasing"
    elif slope < 0:
        trend = "decreasing"
    else:
        trend = "stable"

    return {
        "next_month": round_half_up(max(0.0, avg_monthly_cost + slope), 2),
        "next_3_months": round_half_up(max(0.0, avg_monthly_cost * 3 + slope * 6), 2),
        "avg_monthly_cost": round_half_up(avg_monthly_cost, 2),
        "avg_monthly_requests": int(round_half_up(avg_monthly_requests, 0)),
        "trend_slope": round_half_up(slope, 2),
        "trend": trend,
    }


def build_analytics_summary(
    requests_df: pd.DataFrame,
    start: date | datetime,
    end: date | datetime,
) -> dict[str, Any]:
    """Full analytics shape for a date range; every key is present even when empty."""
    daily_costs = aggregate_daily_costs(requests_df, start, end)
    monthly_costs = aggregate_monthly_costs(requests_df, start, end)
    summary = compute_summary(requests_df)

    result = {
        "daily_costs": daily_costs,
        "monthly_costs": monthly_costs,
        **summary,
        "predictions": build_cost_forecast(monthly_costs),
        "provider_stats": build_dimension_stats(requests_df, "provider"),
        "business_unit_stats": build_dimension_stats(requests_df, "business_unit"),
        "model_stats": build_dimension_stats(requests_df, "model"),
        "cost_distribution": compute_cost_distribution(requests_df),
    }
    logger.info(
        "Processed analytics: %d requests, total cost %.4f.",
        summary["total_requests"],
        summary["total_cost"],
    )
    return result


def build_spending_trend(
    requests_df: pd.DataFrame,
    end: date | datetime,
    *,
    days: int = SPENDING_TREND_DAYS,
) -> pd.DataFrame:
    end_date = _as_date(end)
    daily = aggregate_daily_costs(requests_df, end_date - timedelta(days=days - 1), end_date)
    return daily.rename(columns={"cost": "amount"})[["period", "label", "amount"]]


def build_provider_distribution(requests_df: pd.DataFrame) -> pd.DataFrame:
    if requests_df.empty:
        return pd.DataFrame(columns=["name", "value"])

    names = _dimension_names(requests_df["provider"], GroupLabel.UNKNOWN.value)
    return (
        requests_df.assign(name=names)
        .groupby("name", sort=False, as_index=False)
        .agg(value=("cost", "sum"))
    )


def build_model_usage(requests_df: pd.DataFrame) -> pd.DataFrame:
    if requests_df.empty:
        return pd.DataFrame(columns=["model", "requests"])

    names = _dimension_names(requests_df["model"], GroupLabel.UNKNOWN.value)
    return (
        requests_df.assign(model=names)
        .groupby("model", sort=False, as_index=False)
        .agg(requests=("cost", "size"))
    )


def build_budget_progress(budgets_df: pd.DataFrame) -> pd.DataFrame:
    if budgets_df.empty:
        return pd.DataFrame(columns=BUDGET_PROGRESS_COLUMNS)

    df = pd.DataFrame(
        {
            "name": budgets_df["business_unit"].fillna(GroupLabel.UNKNOWN.value),
            "spent": budgets_df["spent_amount"].astype(float),
            "budget": budgets_df["allocated_amount"].astype(float),
        }
    )
    df["percentage"] = [
        (spent / budget) * 100.0 if budget > 0 else 0.0
        for spent, budget in zip(df["spent"], df["budget"])
    ]
    df["status"] = df["percentage"].map(budget_status)
    return df[BUDGET_PROGRESS_COLUMNS].reset_index(drop=True)


def budget_status(percentage: float) -> str:
    if percentage >= BUDGET_CRITICAL_PCT:
        return "critical"
    if percentage >= BUDGET_WARNING_PCT:
        return "warning"
    return "ok"


def evaluate_budget_alerts(
    progress_df: pd.DataFrame,
    *,
    warning_pct: float,
    critical_pct: float,
) -> pd.DataFrame:
    """Tag each budget with the alert level its utilization crosses."""
    if progress_df.empty:
        return pd.DataFrame(columns=[*BUDGET_PROGRESS_COLUMNS, "alert_level"])

    def _level(percentage: float) -> str:
        if percentage >= critical_pct:
            return "critical"
        if percentage >= warning_pct:
            return "warning"
        return "none"

    return progress_df.assign(alert_level=progress_df["percentage"].map(_level))


def build_dashboard_metrics(
    requests_df: pd.DataFrame,
    budgets_df: pd.DataFrame,
    end: date | datetime,
) -> dict[str, Any]:
    summary = compute_summary(requests_df)

    if requests_df.empty:
        active_projects = 0
    else:
        unit_ids = requests_df["business_unit_id"].dropna()
        active_projects = int(unit_ids[unit_ids != ""].nunique())

    return {
        "total_spend": summary["total_cost"],
        "total_requests": summary["total_requests"],
        "avg_cost_per_request": summary["avg_cost_per_request"],
        "active_projects": active_projects,
        "spending_trend": build_spending_trend(requests_df, end),
        "provider_data": build_provider_distribution(requests_df),
        "model_usage": build_model_usage(requests_df),
        "budget_progress": build_budget_progress(budgets_df),
    }


def _as_date(value: date | datetime | pd.Timestamp) -> date:
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    return value


def _dimension_names(values: pd.Series, sentinel: str) -> pd.Series:
    """Missing or empty names collapse into ``sentinel``."""
    return values.where(values.notna() & (values != ""), sentinel)
