"""CSV and JSON exports for the request log and analytics views."""

from __future__ import annotations

import csv
import json
from datetime import datetime
from typing import Any, Sequence

import pandas as pd

from spendguard.request_log import ColumnConfig, format_requests_table

STATS_EXPORTS = {
    "daily": ("daily_costs", {"label": "Date", "cost": "Cost", "requests": "Requests"}),
    "monthly": ("monthly_costs", {"label": "Month", "cost": "Cost", "requests": "Requests"}),
    "providers": (
        "provider_stats",
        {"name": "Provider", "cost": "Cost", "requests": "Requests", "avg_cost": "Avg Cost per Request"},
    ),
    "models": (
        "model_stats",
        {"name": "Model", "cost": "Cost", "requests": "Requests", "avg_cost": "Avg Cost per Request"},
    ),
}


def requests_to_csv(requests_df: pd.DataFrame, columns: Sequence[ColumnConfig]) -> str:
    """Export rows exactly as the table shows them; every field is quoted."""
    table = format_requests_table(requests_df, columns)
    return table.to_csv(index=False, quoting=csv.QUOTE_ALL, lineterminator="\n")


def requests_csv_filename(now: datetime) -> str:
    return f"api-requests-{now:%Y-%m-%d-%H%M%S}.csv"


def analytics_report(summary: dict[str, Any]) -> dict[str, Any]:
    return {
        "summary": {
            "total_cost": float(summary["total_cost"]),
            "total_requests": int(summary["total_requests"]),
            "avg_cost_per_request": float(summary["avg_cost_per_request"]),
        },
        "predictions": dict(summary["predictions"]),
        "provider_stats": _records(summary["provider_stats"]),
        "business_unit_stats": _records(summary["business_unit_stats"]),
        "model_stats": _records(summary["model_stats"]),
        "cost_distribution": dict(summary["cost_distribution"]),
    }


def analytics_report_json(summary: dict[str, Any]) -> str:
    return json.dumps(analytics_report(summary), indent=2)


def analytics_report_filename(now: datetime) -> str:
    return f"analytics-report-{now:%Y-%m-%d-%H%M%S}.json"


def stats_to_csv(summary: dict[str, Any], kind: str) -> str:
    """Export one analytics table (daily, monthly, providers, models) as CSV."""
    if kind not in STATS_EXPORTS:
        raise ValueError(f"Unknown export '{kind}'. Expected one of {list(STATS_EXPORTS)}.")

    key, headers = STATS_EXPORTS[kind]
    frame = summary[key]
    if frame.empty:
        frame = pd.DataFrame(columns=list(headers))
    return frame[list(headers)].rename(columns=headers).to_csv(index=False, lineterminator="\n")


def stats_csv_filename(kind: str) -> str:
    names = {"daily": "daily-costs", "monthly": "monthly-costs", "providers": "provider-stats", "models": "model-stats"}
    return f"{names[kind]}.csv"


def _records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    return [
        {
            "name": str(row["name"]),
            "cost": float(row["cost"]),
            "requests": int(row["requests"]),
            "avg_cost": float(row["avg_cost"]),
        }
        for _, row in frame.iterrows()
    ]
