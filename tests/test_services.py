from datetime import date

import pytest

from spendguard.config import ALERT_CONFIGS_TABLE, BUDGETS_TABLE, POLICIES_TABLE, USER_ROLES_TABLE
from spendguard.services import AlertConfigService, BudgetService, PolicyService, UserService
from spendguard.supabase_client import NotAuthenticatedError
from spendguard.validation import ValidationError


class FakeClient:
    def __init__(self, user: dict | None = None) -> None:
        self.user = user
        self.inserts: list[tuple[str, dict, bool]] = []
        self.updates: list[tuple[str, dict, dict]] = []
        self.deletes: list[tuple[str, dict]] = []

    def get_user(self) -> dict | None:
        return self.user

    def insert(self, table: str, values: dict, *, returning: bool = True) -> dict | None:
        self.inserts.append((table, dict(values), returning))
        return {"id": "new-id", **values} if returning else None

    def update(self, table: str, values: dict, *, filters: dict) -> dict:
        self.updates.append((table, dict(values), dict(filters)))
        return {"id": "existing", **values}

    def delete(self, table: str, *, filters: dict) -> None:
        self.deletes.append((table, dict(filters)))

    def select(self, table: str, **kwargs) -> list[dict]:
        return []


class ChangeCounter:
    def __init__(self) -> None:
        self.count = 0

    def __call__(self) -> None:
        self.count += 1


def test_budget_create_stamps_creator_and_notifies() -> None:
    client = FakeClient(user={"id": "user-1"})
    changes = ChangeCounter()
    service = BudgetService(client, on_change=changes)

    row = service.create(
        allocated_amount=500,
        period_start=date(2026, 1, 1),
        period_end=date(2026, 1, 31),
        business_unit_id="bu-1",
        provider_id="",
    )

    table, values, _ = client.inserts[0]
    assert table == BUDGETS_TABLE
    assert values == {
        "allocated_amount": 500.0,
        "period_start": "2026-01-01",
        "period_end": "2026-01-31",
        "business_unit_id": "bu-1",
        "provider_id": None,
        "created_by": "user-1",
    }
    assert row["id"] == "new-id"
    assert changes.count == 1


def test_create_without_user_raises_not_authenticated() -> None:
    client = FakeClient(user=None)
    changes = ChangeCounter()

    with pytest.raises(NotAuthenticatedError):
        BudgetService(client, on_change=changes).create(
            allocated_amount=10, period_start=date(2026, 1, 1), period_end=date(2026, 1, 2)
        )
    assert client.inserts == []
    assert changes.count == 0


def test_invalid_budget_never_reaches_store() -> None:
    client = FakeClient(user={"id": "user-1"})

    with pytest.raises(ValidationError):
        BudgetService(client).create(allocated_amount=-5, period_start=date(2026, 1, 1), period_end=date(2026, 1, 2))
    assert client.inserts == []


def test_budget_update_and_delete_filter_by_id() -> None:
    client = FakeClient()
    changes = ChangeCounter()
    service = BudgetService(client, on_change=changes)

    service.update("b-9", allocated_amount=750, period_start=date(2026, 2, 1), period_end=date(2026, 2, 28))
    service.delete("b-9")

    assert client.updates[0][2] == {"id": "eq.b-9"}
    assert client.updates[0][1]["allocated_amount"] == 750.0
    assert client.deletes == [(BUDGETS_TABLE, {"id": "eq.b-9"})]
    assert changes.count == 2


def test_alert_config_create_cleans_recipients() -> None:
    client = FakeClient(user={"id": "user-1"})

    AlertConfigService(client).create(
        name=" Monthly spend ",
        warning_threshold=75,
        critical_threshold=95,
        recipients=["finops@example.com ", ""],
    )

    table, values, _ = client.inserts[0]
    assert table == ALERT_CONFIGS_TABLE
    assert values["name"] == "Monthly spend"
    assert values["recipients"] == ["finops@example.com"]
    assert values["is_enabled"] is True


def test_alert_config_toggle_updates_flag_only() -> None:
    client = FakeClient()

    AlertConfigService(client).set_enabled("a-1", False)

    assert client.updates == [(ALERT_CONFIGS_TABLE, {"is_enabled": False}, {"id": "eq.a-1"})]


def test_alert_config_update_revalidates_and_writes_all_fields() -> None:
    client = FakeClient()

    AlertConfigService(client).update(
        "a-2",
        name="Ops ",
        warning_threshold=70,
        critical_threshold=85,
        recipients=["ops@example.com"],
        is_enabled=False,
    )

    table, values, filters = client.updates[0]
    assert table == ALERT_CONFIGS_TABLE
    assert filters == {"id": "eq.a-2"}
    assert values == {
        "name": "Ops",
        "warning_threshold": 70.0,
        "critical_threshold": 85.0,
        "recipients": ["ops@example.com"],
        "is_enabled": False,
    }

    with pytest.raises(ValidationError):
        AlertConfigService(client).update(
            "a-2", name="Ops", warning_threshold=90, critical_threshold=80, recipients=[], is_enabled=True
        )
    assert len(client.updates) == 1


def test_policy_update_replaces_config() -> None:
    client = FakeClient()

    PolicyService(client).update(
        "p-1", name="Cap", policy_type="cost_cap", config={"max_daily_usd": 25}, is_active=True
    )

    assert client.updates == [
        (
            POLICIES_TABLE,
            {"name": "Cap", "policy_type": "cost_cap", "config": {"max_daily_usd": 25}, "is_active": True},
            {"id": "eq.p-1"},
        )
    ]


def test_policy_create_copies_config() -> None:
    client = FakeClient(user={"id": "user-1"})
    config = {"models": ["gpt-4o"]}

    PolicyService(client).create(name="Allowlist", policy_type="model_allowlist", config=config)

    table, values, _ = client.inserts[0]
    assert table == POLICIES_TABLE
    assert values["config"] == config
    assert values["config"] is not config
    assert values["is_active"] is True


def test_user_roles_are_granted_and_revoked() -> None:
    client = FakeClient()
    changes = ChangeCounter()
    service = UserService(client, on_change=changes)

    service.add_role("u-1", "analyst")
    service.remove_role("u-1", "analyst")

    assert client.inserts == [(USER_ROLES_TABLE, {"user_id": "u-1", "role": "analyst"}, False)]
    assert client.deletes == [(USER_ROLES_TABLE, {"user_id": "eq.u-1", "role": "eq.analyst"})]
    assert changes.count == 2


def test_unknown_role_is_rejected_before_write() -> None:
    client = FakeClient()

    with pytest.raises(ValidationError):
        UserService(client).add_role("u-1", "owner")
    assert client.inserts == []


def test_list_delegates_to_fetchers() -> None:
    client = FakeClient()

    assert BudgetService(client).list() == []
    assert UserService(client).list() == []
