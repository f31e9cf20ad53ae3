"""Thin Supabase (PostgREST) client for the hosted SpendGuard database."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Iterator, Mapping

import requests

from spendguard.config import (
    AUTH_USER_PATH,
    MAX_PAGES,
    REQUEST_TIMEOUT_SECONDS,
    REST_PAGE_SIZE,
    REST_PATH,
)

logger = logging.getLogger(__name__)


@dataclass
class SupabaseAPIError(Exception):
    """Represents a failed query or mutation against the hosted store."""

    message: str
    status_code: int | None = None

    def __str__(self) -> str:
        if self.status_code is None:
            return self.message
        return f"{self.message} (status={self.status_code})"


class NotAuthenticatedError(SupabaseAPIError):
    """Raised when a write needs a signed-in user and none is available."""


def eq(value: Any) -> str:
    return f"eq.{_format_value(value)}"


def gte(value: Any) -> str:
    return f"gte.{_format_value(value)}"


def lte(value: Any) -> str:
    return f"lte.{_format_value(value)}"


def order_by(column: str, *, ascending: bool = True) -> str:
    return f"{column}.{'asc' if ascending else 'desc'}"


class SupabaseRestClient:
    """Minimal PostgREST client: paginated selects plus single-row writes.

    Failures are never retried; every non-2xx response becomes a
    ``SupabaseAPIError`` so callers can tell a failed fetch from an empty one.
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        *,
        access_token: str | None = None,
        timeout_seconds: int = REQUEST_TIMEOUT_SECONDS,
        page_size: int = REST_PAGE_SIZE,
    ) -> None:
        if not base_url:
            raise ValueError("A Supabase project URL is required.")
        if not api_key:
            raise ValueError("A Supabase API key is required.")

        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.page_size = page_size
        self.session = requests.Session()
        self.session.headers.update(
            {
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
                "Accept": "application/json",
            }
        )
        self._has_user_token = bool(access_token)

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "SupabaseRestClient":
        return self

    def __exit__(self, exc_type: Any, exc: Any, tb: Any) -> None:
        self.close()

    def paginate(
        self,
        table: str,
        *,
        params: Mapping[str, Any] | None = None,
        limit: int | None = None,
        max_pages: int = MAX_PAGES,
    ) -> Iterator[dict[str, Any]]:
        """Yield rows from ``table`` page by page until a short page is seen."""
        yielded = 0
        for page_index in range(max_pages):
            page_limit = self.page_size
            if limit is not None:
                page_limit = min(page_limit, limit - yielded)
                if page_limit <= 0:
                    return

            query = dict(params or {})
            query["limit"] = page_limit
            query["offset"] = page_index * self.page_size

            rows = self._request("GET", self._table_url(table), params=query)
            if not isinstance(rows, list):
                raise SupabaseAPIError("Unexpected response payload: expected a list of rows")

            for row in rows:
                if isinstance(row, dict):
                    yield row
                    yielded += 1

            if len(rows) < page_limit:
                return

        raise SupabaseAPIError(
            f"Pagination exceeded {max_pages} pages. Narrow the date range and retry."
        )

    def select(
        self,
        table: str,
        *,
        columns: str = "*",
        filters: Mapping[str, Any] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"select": columns}
        params.update(filters or {})
        if order:
            params["order"] = order
        return list(self.paginate(table, params=params, limit=limit))

    def insert(
        self,
        table: str,
        values: Mapping[str, Any],
        *,
        returning: bool = True,
    ) -> dict[str, Any] | None:
        """Insert one row; with ``returning=False`` the store echoes nothing back."""
        rows = self._request(
            "POST",
            self._table_url(table),
            json=dict(values),
            headers={"Prefer": "return=representation" if returning else "return=minimal"},
        )
        if not returning:
            return None
        return self._single(rows, table, "insert")

    def update(self, table: str, values: Mapping[str, Any], *, filters: Mapping[str, Any]) -> dict[str, Any]:
        if not filters:
            raise ValueError("Refusing to update without a filter.")
        rows = self._request(
            "PATCH",
            self._table_url(table),
            params=dict(filters),
            json=dict(values),
            headers={"Prefer": "return=representation"},
        )
        return self._single(rows, table, "update")

    def delete(self, table: str, *, filters: Mapping[str, Any]) -> None:
        if not filters:
            raise ValueError("Refusing to delete without a filter.")
        self._request("DELETE", self._table_url(table), params=dict(filters))

    def get_user(self) -> dict[str, Any] | None:
        """Return the signed-in user, or None when only the anon key is set."""
        if not self._has_user_token:
            return None
        payload = self._request("GET", f"{self.base_url}{AUTH_USER_PATH}")
        if not isinstance(payload, dict) or not payload.get("id"):
            return None
        return payload

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}{REST_PATH}/{table}"

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Mapping[str, Any] | None = None,
        json: Any = None,
        headers: Mapping[str, str] | None = None,
    ) -> Any:
        try:
            response = self.session.request(
                method,
                url,
                params=params,
                json=json,
                headers=dict(headers or {}),
                timeout=self.timeout_seconds,
            )
        except requests.RequestException as exc:
            logger.warning("%s %s failed: %s", method, url, exc)
            raise SupabaseAPIError(f"Request failed: {exc}") from exc

        if response.status_code >= 400:
            message = self._error_message(response)
            logger.warning("%s %s returned %s: %s", method, url, response.status_code, message)
            raise SupabaseAPIError(message=message, status_code=response.status_code)

        if response.status_code == 204 or not response.content:
            return None

        try:
            return response.json()
        except ValueError as exc:
            raise SupabaseAPIError("Supabase returned non-JSON response") from exc

    @staticmethod
    def _single(rows: Any, table: str, action: str) -> dict[str, Any]:
        if isinstance(rows, list) and rows and isinstance(rows[0], dict):
            return rows[0]
        raise SupabaseAPIError(f"{action.title()} on {table} returned no row")

    @staticmethod
    def _error_message(response: requests.Response) -> str:
        try:
            payload = response.json()
            if isinstance(payload, dict):
                for key in ("message", "msg", "error_description", "error"):
                    if payload.get(key):
                        return str(payload[key])
        except ValueError:
            pass
        return response.text.strip() or "Supabase request failed"


def _format_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if hasattr(value, "isoformat"):
        return value.isoformat()
    return str(value)
