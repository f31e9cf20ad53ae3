"""Create/update/delete services for budgets, alert configs, policies and user roles."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from datetime import date
from typing import Any

from spendguard.config import (
    ALERT_CONFIGS_TABLE,
    BUDGETS_TABLE,
    POLICIES_TABLE,
    USER_ROLES_TABLE,
)
from spendguard.fetchers import (
    fetch_alert_configs,
    fetch_budgets,
    fetch_policies,
    fetch_users_with_roles,
)
from spendguard.supabase_client import NotAuthenticatedError, SupabaseRestClient, eq
from spendguard.validation import (
    validate_alert_config,
    validate_budget,
    validate_policy,
    validate_role,
)

logger = logging.getLogger(__name__)

OnChange = Callable[[], None]


class TableService:
    """Shared write plumbing for one table; ``on_change`` runs after every successful mutation."""

    table: str

    def __init__(self, client: SupabaseRestClient, *, on_change: OnChange | None = None) -> None:
        self.client = client
        self.on_change = on_change

    def delete(self, record_id: str) -> None:
        self.client.delete(self.table, filters={"id": eq(record_id)})
        logger.info("Deleted %s row %s.", self.table, record_id)
        self._changed()

    def _insert(self, values: Mapping[str, Any]) -> dict[str, Any]:
        row = self.client.insert(self.table, {**values, "created_by": self._current_user_id()})
        logger.info("Created %s row %s.", self.table, row.get("id"))
        self._changed()
        return row

    def _update(self, record_id: str, values: Mapping[str, Any]) -> dict[str, Any]:
        row = self.client.update(self.table, values, filters={"id": eq(record_id)})
        logger.info("Updated %s row %s.", self.table, record_id)
        self._changed()
        return row

    def _current_user_id(self) -> str:
        user = self.client.get_user()
        if not user:
            raise NotAuthenticatedError("Not authenticated")
        return str(user["id"])

    def _changed(self) -> None:
        if self.on_change is not None:
            self.on_change()


class BudgetService(TableService):
    table = BUDGETS_TABLE

    def list(self) -> list[dict[str, Any]]:
        return fetch_budgets(self.client)

    def create(
        self,
        *,
        allocated_amount: float,
        period_start: date,
        period_end: date,
        business_unit_id: str | None = None,
        provider_id: str | None = None,
    ) -> dict[str, Any]:
        validate_budget(allocated_amount=allocated_amount, period_start=period_start, period_end=period_end)
        return self._insert(
            _budget_values(allocated_amount, period_start, period_end, business_unit_id, provider_id)
        )

    def update(
        self,
        record_id: str,
        *,
        allocated_amount: float,
        period_start: date,
        period_end: date,
        business_unit_id: str | None = None,
        provider_id: str | None = None,
    ) -> dict[str, Any]:
        validate_budget(allocated_amount=allocated_amount, period_start=period_start, period_end=period_end)
        return self._update(
            record_id,
            _budget_values(allocated_amount, period_start, period_end, business_unit_id, provider_id),
        )


class AlertConfigService(TableService):
    table = ALERT_CONFIGS_TABLE

    def list(self) -> list[dict[str, Any]]:
        return fetch_alert_configs(self.client)

    def create(
        self,
        *,
        name: str,
        warning_threshold: float,
        critical_threshold: float,
        recipients: Iterable[str],
        is_enabled: bool = True,
    ) -> dict[str, Any]:
        cleaned = validate_alert_config(
            name=name,
            warning_threshold=warning_threshold,
            critical_threshold=critical_threshold,
            recipients=recipients,
        )
        return self._insert(
            {
                "name": name.strip(),
                "warning_threshold": float(warning_threshold),
                "critical_threshold": float(critical_threshold),
                "recipients": cleaned,
                "is_enabled": bool(is_enabled),
            }
        )

    def update(
        self,
        record_id: str,
        *,
        name: str,
        warning_threshold: float,
        critical_threshold: float,
        recipients: Iterable[str],
        is_enabled: bool,
    ) -> dict[str, Any]:
        cleaned = validate_alert_config(
            name=name,
            warning_threshold=warning_threshold,
            critical_threshold=critical_threshold,
            recipients=recipients,
        )
        return self._update(
            record_id,
            {
                "name": name.strip(),
                "warning_threshold": float(warning_threshold),
                "critical_threshold": float(critical_threshold),
                "recipients": cleaned,
                "is_enabled": bool(is_enabled),
            },
        )

    def set_enabled(self, record_id: str, is_enabled: bool) -> dict[str, Any]:
        return self._update(record_id, {"is_enabled": bool(is_enabled)})


class PolicyService(TableService):
    table = POLICIES_TABLE

    def list(self) -> list[dict[str, Any]]:
        return fetch_policies(self.client)

    def create(
        self,
        *,
        name: str,
        policy_type: str,
        config: Mapping[str, Any],
        is_active: bool = True,
    ) -> dict[str, Any]:
        validate_policy(name=name, policy_type=policy_type, config=config)
        return self._insert(
            {"name": name.strip(), "policy_type": policy_type, "config": dict(config), "is_active": bool(is_active)}
        )

    def update(
        self,
        record_id: str,
        *,
        name: str,
        policy_type: str,
        config: Mapping[str, Any],
        is_active: bool,
    ) -> dict[str, Any]:
        validate_policy(name=name, policy_type=policy_type, config=config)
        return self._update(
            record_id,
            {"name": name.strip(), "policy_type": policy_type, "config": dict(config), "is_active": bool(is_active)},
        )

    def set_active(self, record_id: str, is_active: bool) -> dict[str, Any]:
        return self._update(record_id, {"is_active": bool(is_active)})


class UserService(TableService):
    """Profiles are read-only here; only role assignments are written."""

    table = USER_ROLES_TABLE

    def list(self) -> list[dict[str, Any]]:
        return fetch_users_with_roles(self.client)

    def add_role(self, user_id: str, role: str) -> None:
        validate_role(role)
        self.client.insert(self.table, {"user_id": user_id, "role": role}, returning=False)
        logger.info("Granted role %s to user %s.", role, user_id)
        self._changed()

    def remove_role(self, user_id: str, role: str) -> None:
        validate_role(role)
        self.client.delete(self.table, filters={"user_id": eq(user_id), "role": eq(role)})
        logger.info("Revoked role %s from user %s.", role, user_id)
        self._changed()


def _budget_values(
    allocated_amount: float,
    period_start: date,
    period_end: date,
    business_unit_id: str | None,
    provider_id: str | None,
) -> dict[str, Any]:
    return {
        "allocated_amount": float(allocated_amount),
        "period_start": period_start.isoformat(),
        "period_end": period_end.isoformat(),
        "business_unit_id": business_unit_id or None,
        "provider_id": provider_id or None,
    }
