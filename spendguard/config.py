"""Application configuration for the AI SpendGuard dashboard."""

from __future__ import annotations

import logging
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

logger = logging.getLogger(__name__)

ENV_SUPABASE_URL = "SUPABASE_URL"
ENV_SUPABASE_ANON_KEY = "SUPABASE_ANON_KEY"
ENV_SUPABASE_ACCESS_TOKEN = "SUPABASE_ACCESS_TOKEN"
ENV_TIMEZONE = "SPENDGUARD_TIMEZONE"
ENV_SETTINGS_PATH = "SPENDGUARD_SETTINGS_PATH"
ENV_LOG_LEVEL = "SPENDGUARD_LOG_LEVEL"

REST_PATH = "/rest/v1"
AUTH_USER_PATH = "/auth/v1/user"

API_REQUESTS_TABLE = "api_requests"
PROVIDERS_TABLE = "providers"
MODELS_TABLE = "models"
BUSINESS_UNITS_TABLE = "business_units"
BUDGETS_TABLE = "budgets"
ALERT_CONFIGS_TABLE = "alert_configs"
POLICIES_TABLE = "policies"
PROFILES_TABLE = "profiles"
USER_ROLES_TABLE = "user_roles"

REQUEST_TIMEOUT_SECONDS = 30
REST_PAGE_SIZE = 1000
MAX_PAGES = 100
CACHE_TTL_SECONDS = 60

DEFAULT_TIMEZONE = "UTC"
DEFAULT_DASHBOARD_LOOKBACK_DAYS = 30
DEFAULT_ANALYTICS_LOOKBACK_MONTHS = 3
SPENDING_TREND_DAYS = 7
FORECAST_WINDOW_MONTHS = 3

REQUESTS_PAGE_SIZE = 50
RECENT_REQUESTS_PAGE_SIZE = 100
PAGE_SIZE_OPTIONS = (REQUESTS_PAGE_SIZE, RECENT_REQUESTS_PAGE_SIZE)

QUICK_RANGES = {
    "24h": "24H",
    "7d": "7D",
    "1m": "1M",
    "3m": "3M",
}

UNKNOWN_LABEL = "Unknown"
UNASSIGNED_LABEL = "Unassigned"
MISSING_VALUE = "N/A"

TIMESTAMP_DISPLAY_FORMAT = "%Y-%m-%d %H:%M:%S"
MONTH_LABEL_FORMAT = "%b %Y"

BUDGET_WARNING_PCT = 75.0
BUDGET_CRITICAL_PCT = 90.0
DEFAULT_ALERT_WARNING_PCT = 80.0
DEFAULT_ALERT_CRITICAL_PCT = 90.0

USER_ROLES = ("admin", "analyst", "viewer")
POLICY_TYPES = ("rate_limit", "model_allowlist", "cost_cap", "content_filter")


@dataclass(frozen=True)
class DashboardSettings:
    """Tunable dashboard settings, overridable from a YAML file."""

    timezone: str = DEFAULT_TIMEZONE
    requests_page_size: int = REQUESTS_PAGE_SIZE
    dashboard_lookback_days: int = DEFAULT_DASHBOARD_LOOKBACK_DAYS
    analytics_lookback_months: int = DEFAULT_ANALYTICS_LOOKBACK_MONTHS
    alert_warning_pct: float = DEFAULT_ALERT_WARNING_PCT
    alert_critical_pct: float = DEFAULT_ALERT_CRITICAL_PCT

    def __post_init__(self) -> None:
        try:
            ZoneInfo(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"Unknown timezone '{self.timezone}'") from exc
        if self.requests_page_size not in PAGE_SIZE_OPTIONS:
            raise ValueError(f"requests_page_size must be one of {PAGE_SIZE_OPTIONS}")
        if self.dashboard_lookback_days <= 0:
            raise ValueError("dashboard_lookback_days must be > 0")
        if self.analytics_lookback_months <= 0:
            raise ValueError("analytics_lookback_months must be > 0")
        if not 0 < self.alert_warning_pct < self.alert_critical_pct <= 100:
            raise ValueError("alert thresholds must satisfy 0 < warning < critical <= 100")


def load_settings(path: Path | str | None = None, *, timezone: str | None = None) -> DashboardSettings:
    """Load dashboard settings from a YAML file.

    A missing path or file yields the defaults. A file that cannot be parsed is
    logged and ignored. Unknown keys are rejected so typos do not silently fall
    back to defaults.

    Args:
        path: Optional path to a YAML mapping of ``DashboardSettings`` fields.
        timezone: Optional timezone override (typically from the environment),
            applied after the file.

    Returns:
        Validated ``DashboardSettings``.

    Raises:
        ValueError: If the file holds unknown keys or invalid values.
    """
    settings = DashboardSettings()

    if path:
        settings_path = Path(path)
        if settings_path.exists():
            raw = _read_yaml(settings_path)
            if raw:
                settings = replace(settings, **_validated_overrides(raw, settings_path))
        else:
            logger.info("Settings file %s not found; using defaults.", settings_path)

    if timezone:
        settings = replace(settings, timezone=timezone)
    return settings


def _read_yaml(settings_path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(settings_path.read_text(encoding="utf-8"))
    except (yaml.YAMLError, OSError) as exc:
        logger.warning("Failed to parse settings YAML at %s: %s", settings_path, exc)
        return {}

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ValueError(f"Settings file {settings_path} must contain a mapping")
    return raw


def _validated_overrides(raw: dict[str, Any], settings_path: Path) -> dict[str, Any]:
    allowed = {f.name for f in fields(DashboardSettings)}
    unknown = set(raw) - allowed
    if unknown:
        raise ValueError(f"Unknown settings keys in {settings_path}: {sorted(unknown)}")
    return dict(raw)
