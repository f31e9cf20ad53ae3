"""Input checks applied before any write reaches the store."""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping
from datetime import date
from typing import Any

from spendguard.config import POLICY_TYPES, USER_ROLES

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class ValidationError(ValueError):
    """A user-supplied value was rejected; ``field`` names the offending input."""

    def __init__(self, field: str, message: str) -> None:
        super().__init__(message)
        self.field = field
        self.message = message


def validate_budget(
    *,
    allocated_amount: float,
    period_start: date,
    period_end: date,
) -> None:
    if allocated_amount is None or float(allocated_amount) <= 0:
        raise ValidationError("allocated_amount", "Budget amount must be greater than 0.")
    if period_start > period_end:
        raise ValidationError("period_end", "Period end must be on or after period start.")


def validate_email(email: str) -> str:
    cleaned = (email or "").strip()
    if not EMAIL_PATTERN.match(cleaned):
        raise ValidationError("recipients", f"'{email}' is not a valid email address.")
    return cleaned


def validate_alert_config(
    *,
    name: str,
    warning_threshold: float,
    critical_threshold: float,
    recipients: Iterable[str],
) -> list[str]:
    """Check thresholds and recipients; return the cleaned recipient list."""
    if not (name or "").strip():
        raise ValidationError("name", "Alert name is required.")
    if not 0 < warning_threshold < critical_threshold:
        raise ValidationError(
            "warning_threshold",
            "Warning threshold must be above 0 and below the critical threshold.",
        )
    if critical_threshold > 100:
        raise ValidationError("critical_threshold", "Critical threshold cannot exceed 100%.")
    return [validate_email(email) for email in recipients if email and email.strip()]


def validate_policy(*, name: str, policy_type: str, config: Any) -> None:
    if not (name or "").strip():
        raise ValidationError("name", "Policy name is required.")
    if policy_type not in POLICY_TYPES:
        raise ValidationError("policy_type", f"Unknown policy type '{policy_type}'.")
    if not isinstance(config, Mapping):
        raise ValidationError("config", "Policy config must be a JSON object.")


def validate_role(role: str) -> None:
    if role not in USER_ROLES:
        raise ValidationError("role", f"Unknown role '{role}'. Expected one of {list(USER_ROLES)}.")


def parse_recipients(raw: str) -> list[str]:
    """Split a comma or newline separated recipient field."""
    return [part.strip() for part in re.split(r"[,\n]", raw or "") if part.strip()]


def parse_policy_config(raw: str) -> dict[str, Any]:
    """Decode a policy config text field; blank text is an empty object."""
    try:
        config = json.loads((raw or "").strip() or "{}")
    except json.JSONDecodeError as exc:
        raise ValidationError("config", f"Config is not valid JSON: {exc.msg} (line {exc.lineno}).") from exc
    if not isinstance(config, dict):
        raise ValidationError("config", "Policy config must be a JSON object.")
    return config
