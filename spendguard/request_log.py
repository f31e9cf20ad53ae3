"""Filtering, sorting, pagination and cell formatting for the request log."""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Iterable, Sequence

import pandas as pd

from spendguard.config import MISSING_VALUE, REQUESTS_PAGE_SIZE, TIMESTAMP_DISPLAY_FORMAT
from spendguard.transformers import optional_text


@dataclass(frozen=True)
class ColumnConfig:
    id: str
    label: str
    visible: bool = True
    sortable: bool = False


REQUEST_LOG_COLUMNS: tuple[ColumnConfig, ...] = (
    ColumnConfig("timestamp", "Timestamp", visible=True, sortable=True),
    ColumnConfig("provider", "Provider", visible=True, sortable=True),
    ColumnConfig("model", "Model", visible=True, sortable=True),
    ColumnConfig("business_unit", "Business Unit", visible=True),
    ColumnConfig("tokens", "Tokens", visible=True, sortable=True),
    ColumnConfig("prompt_tokens", "Prompt Tokens", visible=False),
    ColumnConfig("completion_tokens", "Completion Tokens", visible=False),
    ColumnConfig("cost", "Cost", visible=True, sortable=True),
    ColumnConfig("status", "Status", visible=True),
    ColumnConfig("response_time", "Response Time", visible=False),
    ColumnConfig("request_message", "Request Message", visible=False),
    ColumnConfig("response_message", "Response Message", visible=False),
    ColumnConfig("was_blocked", "Blocked", visible=False),
    ColumnConfig("request_id", "Request ID", visible=False),
)

# Sortable column id -> requests DataFrame column.
SORT_FIELDS = {
    "timestamp": "timestamp",
    "cost": "cost",
    "tokens": "total_tokens",
    "provider": "provider",
    "model": "model",
}
TEXT_SORT_FIELDS = {"provider", "model"}


@dataclass(frozen=True)
class RequestFilters:
    date_from: date | None = None
    date_to: date | None = None
    providers: tuple[str, ...] = ()
    models: tuple[str, ...] = ()
    business_units: tuple[str, ...] = ()
    search: str = ""


@dataclass(frozen=True)
class RequestPage:
    rows: pd.DataFrame
    page: int
    page_size: int
    total_count: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_count / self.page_size) if self.total_count else 0

    @property
    def is_empty(self) -> bool:
        return self.rows.empty


def apply_request_filters(requests_df: pd.DataFrame, filters: RequestFilters) -> pd.DataFrame:
    """Apply every active filter with AND semantics, preserving row order."""
    if requests_df.empty:
        return requests_df

    mask = pd.Series(True, index=requests_df.index)
    timestamps = pd.to_datetime(requests_df["timestamp"])

    if filters.date_from is not None:
        mask &= timestamps >= pd.Timestamp(filters.date_from)
    if filters.date_to is not None:
        mask &= timestamps < pd.Timestamp(filters.date_to + timedelta(days=1))

    for column, selected in (
        ("provider", filters.providers),
        ("model", filters.models),
        ("business_unit", filters.business_units),
    ):
        if selected:
            mask &= requests_df[column].isin(set(selected))

    needle = filters.search.strip().lower()
    if needle:
        hit = pd.Series(False, index=requests_df.index)
        for column in ("id", "model", "provider"):
            hit |= requests_df[column].fillna("").astype(str).str.lower().str.contains(needle, regex=False)
        mask &= hit

    return requests_df[mask]


def sort_requests(requests_df: pd.DataFrame, sort_by: str = "timestamp", *, ascending: bool = False) -> pd.DataFrame:
    """Stable sort on one column; ties keep the original fetch order, missing values last."""
    if sort_by not in SORT_FIELDS:
        raise ValueError(f"Cannot sort by '{sort_by}'. Expected one of {list(SORT_FIELDS)}.")
    if requests_df.empty:
        return requests_df

    column = SORT_FIELDS[sort_by]
    key = (lambda s: s.str.lower()) if sort_by in TEXT_SORT_FIELDS else None
    return requests_df.sort_values(
        column,
        ascending=ascending,
        kind="stable",
        na_position="last",
        key=key,
    )


def paginate_requests(requests_df: pd.DataFrame, page: int = 1, page_size: int = REQUESTS_PAGE_SIZE) -> RequestPage:
    """Slice one 1-based page; pages past the end are empty rather than errors."""
    if page < 1:
        raise ValueError("Page numbers start at 1.")
    if page_size <= 0:
        raise ValueError("Page size must be > 0.")

    offset = (page - 1) * page_size
    return RequestPage(
        rows=requests_df.iloc[offset : offset + page_size],
        page=page,
        page_size=page_size,
        total_count=int(len(requests_df)),
    )


def query_request_log(
    requests_df: pd.DataFrame,
    filters: RequestFilters,
    *,
    sort_by: str = "timestamp",
    ascending: bool = False,
    page: int = 1,
    page_size: int = REQUESTS_PAGE_SIZE,
) -> RequestPage:
    filtered = apply_request_filters(requests_df, filters)
    ordered = sort_requests(filtered, sort_by, ascending=ascending)
    return paginate_requests(ordered, page, page_size)


def visible_columns(columns: Iterable[ColumnConfig], visible_ids: Sequence[str] | None = None) -> list[ColumnConfig]:
    """Columns to show, in table order; ``visible_ids`` overrides the defaults."""
    if visible_ids is None:
        return [column for column in columns if column.visible]
    wanted = set(visible_ids)
    return [column for column in columns if column.id in wanted]


def format_cell(row: pd.Series | dict[str, Any], column_id: str) -> str:
    if column_id == "timestamp":
        value = row["timestamp"]
        return MISSING_VALUE if _is_missing(value) else pd.Timestamp(value).strftime(TIMESTAMP_DISPLAY_FORMAT)
    if column_id in {"provider", "model", "business_unit", "request_message", "response_message"}:
        return text_or_missing(row[column_id])
    if column_id == "tokens":
        return f"{int(row['total_tokens']):,}"
    if column_id in {"prompt_tokens", "completion_tokens"}:
        return f"{int(row[column_id]):,}"
    if column_id == "cost":
        return f"${float(row['cost']):.4f}"
    if column_id == "status":
        value = row["status_code"]
        return MISSING_VALUE if _is_missing(value) or not value else str(int(value))
    if column_id == "response_time":
        value = row["response_time_ms"]
        return MISSING_VALUE if _is_missing(value) or not value else f"{int(value)}ms"
    if column_id == "was_blocked":
        return "Yes" if bool(row["was_blocked"]) else "No"
    if column_id == "request_id":
        return text_or_missing(row["id"])
    raise ValueError(f"Unknown request log column '{column_id}'.")


def format_requests_table(requests_df: pd.DataFrame, columns: Sequence[ColumnConfig]) -> pd.DataFrame:
    """Render rows to display strings, one column per visible column label."""
    labels = [column.label for column in columns]
    if requests_df.empty:
        return pd.DataFrame(columns=labels)

    records = [
        [format_cell(row, column.id) for column in columns]
        for _, row in requests_df.iterrows()
    ]
    return pd.DataFrame(records, columns=labels)


def status_is_success(status_code: Any) -> bool:
    if _is_missing(status_code):
        return False
    return 200 <= int(status_code) < 300


def text_or_missing(value: Any, missing: str = MISSING_VALUE) -> str:
    return optional_text(value) or missing


def _is_missing(value: Any) -> bool:
    if value is None:
        return True
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False
