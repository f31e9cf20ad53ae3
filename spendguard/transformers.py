"""Payload normalization into pandas DataFrames."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

import pandas as pd

from spendguard.config import DEFAULT_TIMEZONE

REQUEST_COLUMNS = [
    "id",
    "timestamp",
    "provider",
    "model",
    "business_unit",
    "provider_id",
    "model_id",
    "business_unit_id",
    "prompt_tokens",
    "completion_tokens",
    "total_tokens",
    "cost",
    "status_code",
    "response_time_ms",
    "was_blocked",
    "request_message",
    "response_message",
    "metadata",
]

BUDGET_COLUMNS = [
    "id",
    "business_unit",
    "provider",
    "business_unit_id",
    "provider_id",
    "period_start",
    "period_end",
    "allocated_amount",
    "spent_amount",
]

TOKEN_COLUMNS = ["prompt_tokens", "completion_tokens", "total_tokens"]


def build_requests_df(rows: Iterable[dict[str, Any]], tz_name: str = DEFAULT_TIMEZONE) -> pd.DataFrame:
    """Flatten request rows (with embedded joins) into one record per request.

    Timestamps are converted to ``tz_name`` and made naive, so day and month
    bucketing downstream happens on local calendar boundaries. Row order is
    preserved; it is the fetch order used as the sort tie-break.
    """
    records: list[dict[str, Any]] = []

    for row in rows:
        records.append(
            {
                "id": str(row.get("id") or ""),
                "timestamp": row.get("request_timestamp"),
                "provider": _joined_name(row.get("providers"), "display_name"),
                "model": _joined_name(row.get("models"), "display_name"),
                "business_unit": _joined_name(row.get("business_units"), "name"),
                "provider_id": row.get("provider_id"),
                "model_id": row.get("model_id"),
                "business_unit_id": row.get("business_unit_id"),
                "prompt_tokens": row.get("prompt_tokens", 0),
                "completion_tokens": row.get("completion_tokens", 0),
                "total_tokens": row.get("total_tokens", 0),
                "cost": row.get("cost", 0),
                "status_code": row.get("status_code"),
                "response_time_ms": row.get("response_time_ms"),
                "was_blocked": bool(row.get("was_blocked", False)),
                "request_message": row.get("request_message"),
                "response_message": row.get("response_message"),
                "metadata": row.get("metadata"),
            }
        )

    df = pd.DataFrame(records, columns=REQUEST_COLUMNS)
    if df.empty:
        return empty_requests_df()

    df["timestamp"] = (
        pd.to_datetime(df["timestamp"], utc=True, format="ISO8601")
        .dt.tz_convert(tz_name)
        .dt.tz_localize(None)
    )
    for col in TOKEN_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0).astype("int64")
    df["cost"] = pd.to_numeric(df["cost"], errors="coerce").fillna(0.0).astype(float)
    df["status_code"] = pd.to_numeric(df["status_code"], errors="coerce").astype("Int64")
    df["response_time_ms"] = pd.to_numeric(df["response_time_ms"], errors="coerce").astype("Int64")
    df["was_blocked"] = df["was_blocked"].astype(bool)
    return df.reset_index(drop=True)


def empty_requests_df() -> pd.DataFrame:
    df = pd.DataFrame(columns=REQUEST_COLUMNS)
    df["timestamp"] = pd.to_datetime(df["timestamp"])
    df["cost"] = df["cost"].astype(float)
    for col in TOKEN_COLUMNS:
        df[col] = df[col].astype("int64")
    return df


def build_budgets_df(rows: Iterable[dict[str, Any]]) -> pd.DataFrame:
    records: list[dict[str, Any]] = []

    for row in rows:
        records.append(
            {
                "id": row.get("id"),
                "business_unit": _joined_name(row.get("business_units"), "name"),
                "provider": _joined_name(row.get("providers"), "display_name"),
                "business_unit_id": row.get("business_unit_id"),
                "provider_id": row.get("provider_id"),
                "period_start": row.get("period_start"),
                "period_end": row.get("period_end"),
                "allocated_amount": row.get("allocated_amount", 0),
                "spent_amount": row.get("spent_amount", 0),
            }
        )

    df = pd.DataFrame(records, columns=BUDGET_COLUMNS)
    if df.empty:
        return df

    df["period_start"] = pd.to_datetime(df["period_start"], errors="coerce").dt.date
    df["period_end"] = pd.to_datetime(df["period_end"], errors="coerce").dt.date
    for col in ["allocated_amount", "spent_amount"]:
        df[col] = pd.to_numeric(df[col], errors="coerce").fillna(0.0).astype(float)
    return df


def reference_names(rows: Iterable[dict[str, Any]], key: str = "display_name") -> list[str]:
    """Distinct non-empty display names, in the order the store returned them."""
    names: list[str] = []
    for row in rows:
        name = row.get(key)
        if name and name not in names:
            names.append(str(name))
    return names


def _joined_name(joined: Any, key: str) -> str | None:
    # PostgREST embeds many-to-one joins as an object, but some views return a list.
    if isinstance(joined, list):
        joined = joined[0] if joined else None
    if isinstance(joined, dict) and joined.get(key):
        return str(joined[key])
    return None


def optional_text(value: Any) -> str | None:
    """Text value or None; pandas may hold missing strings as NaN."""
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return str(value) or None


def budget_label(row: pd.Series | dict[str, Any]) -> str:
    business_unit = optional_text(row["business_unit"]) or "All"
    provider = optional_text(row["provider"]) or "All"
    return f"{business_unit} / {provider} ({row['period_start']} to {row['period_end']})"
