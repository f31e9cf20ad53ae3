from datetime import date, datetime, timedelta, timezone

import pytest

from spendguard.config import API_REQUESTS_TABLE, BUDGETS_TABLE, PROFILES_TABLE, PROVIDERS_TABLE, USER_ROLES_TABLE
from spendguard.fetchers import (
    REQUEST_SELECT,
    RequestQuery,
    build_time_window,
    fetch_api_requests,
    fetch_current_month_budgets,
    fetch_providers,
    fetch_users_with_roles,
    resolve_analytics_window,
    resolve_quick_range,
    trailing_months_window,
)


class FakeClient:
    def __init__(self, tables: dict[str, list[dict]] | None = None) -> None:
        self.tables = tables or {}
        self.calls: list[tuple[str, dict]] = []

    def select(self, table: str, *, columns: str = "*", filters=None, order=None, limit=None) -> list[dict]:
        self.calls.append((table, {"columns": columns, "filters": filters or {}, "order": order, "limit": limit}))
        return list(self.tables.get(table, []))


def test_build_time_window_covers_whole_local_days() -> None:
    start, end = build_time_window(date(2026, 1, 1), date(2026, 1, 1), "Europe/Berlin")

    assert start.isoformat() == "2026-01-01T00:00:00+01:00"
    assert end - start == timedelta(days=1) - timedelta(microseconds=1)


def test_build_time_window_rejects_inverted_range() -> None:
    with pytest.raises(ValueError):
        build_time_window(date(2026, 1, 2), date(2026, 1, 1))


def test_resolve_quick_range_uses_calendar_months() -> None:
    now = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)

    assert resolve_quick_range("24h", now)[0] == datetime(2026, 3, 30, 12, 0, tzinfo=timezone.utc)
    assert resolve_quick_range("7d", now)[0] == datetime(2026, 3, 24, 12, 0, tzinfo=timezone.utc)
    assert resolve_quick_range("1m", now)[0] == datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc)
    assert resolve_quick_range("3m", now) == (datetime(2025, 12, 31, 12, 0, tzinfo=timezone.utc), now)
    with pytest.raises(ValueError):
        resolve_quick_range("1y", now)


def test_trailing_months_window_clamps_to_month_end() -> None:
    now = datetime(2026, 5, 31, 8, 30, tzinfo=timezone.utc)

    start, end = trailing_months_window(now, 3)

    assert start == datetime(2026, 2, 28, 8, 30, tzinfo=timezone.utc)
    assert end == now


def test_analytics_window_prefers_custom_range_then_quick_range() -> None:
    now = datetime(2026, 5, 31, 8, 30, tzinfo=timezone.utc)

    start, end = resolve_analytics_window(
        now, 3, quick_range="7d", date_from=date(2026, 4, 1), date_to=date(2026, 4, 30), tz_name="UTC"
    )
    assert (start, end) == build_time_window(date(2026, 4, 1), date(2026, 4, 30), "UTC")

    assert resolve_analytics_window(now, 3, quick_range="7d", date_from=date(2026, 4, 1)) == resolve_quick_range(
        "7d", now
    )
    assert resolve_analytics_window(now, 3) == trailing_months_window(now, 3)


def test_analytics_window_rejects_inverted_custom_range() -> None:
    with pytest.raises(ValueError):
        resolve_analytics_window(
            datetime(2026, 5, 31, tzinfo=timezone.utc), 3, date_from=date(2026, 5, 2), date_to=date(2026, 5, 1)
        )


def test_fetch_api_requests_bounds_and_orders_query() -> None:
    client = FakeClient({API_REQUESTS_TABLE: [{"id": "r1"}]})
    start = datetime(2026, 1, 1, tzinfo=timezone.utc)
    end = datetime(2026, 1, 31, 23, 59, 59, tzinfo=timezone.utc)

    rows = fetch_api_requests(client, RequestQuery(start=start, end=end, limit=10))

    assert rows == [{"id": "r1"}]
    table, call = client.calls[0]
    assert table == API_REQUESTS_TABLE
    assert call["columns"] == REQUEST_SELECT
    assert call["filters"] == {
        "request_timestamp": ["gte.2026-01-01T00:00:00+00:00", "lte.2026-01-31T23:59:59+00:00"]
    }
    assert call["order"] == "request_timestamp.desc"
    assert call["limit"] == 10


def test_fetch_api_requests_without_bounds_sends_no_filter() -> None:
    client = FakeClient()

    assert fetch_api_requests(client, RequestQuery()) == []
    assert client.calls[0][1]["filters"] == {}


def test_fetch_providers_filters_active_and_orders_by_name() -> None:
    client = FakeClient()

    fetch_providers(client)
    fetch_providers(client, active_only=False)

    assert client.calls[0] == (
        PROVIDERS_TABLE,
        {"columns": "*", "filters": {"is_active": "eq.true"}, "order": "display_name.asc", "limit": None},
    )
    assert client.calls[1][1]["filters"] == {}


def test_fetch_current_month_budgets_bounds_period() -> None:
    client = FakeClient()

    fetch_current_month_budgets(client, date(2026, 2, 14))

    table, call = client.calls[0]
    assert table == BUDGETS_TABLE
    assert call["filters"] == {"period_start": "gte.2026-02-01", "period_end": "lte.2026-02-28"}
    assert call["order"] == "period_start.desc"


def test_fetch_users_with_roles_merges_role_rows() -> None:
    client = FakeClient(
        {
            PROFILES_TABLE: [{"id": "u1", "email": "a@example.com"}, {"id": "u2", "email": "b@example.com"}],
            USER_ROLES_TABLE: [
                {"user_id": "u1", "role": "admin"},
                {"user_id": "u1", "role": "analyst"},
            ],
        }
    )

    users = fetch_users_with_roles(client)

    assert users[0]["roles"] == ["admin", "analyst"]
    assert users[1]["roles"] == []
