from datetime import date, datetime

import pandas as pd
import pytest

from spendguard.analytics import (
    GroupLabel,
    aggregate_daily_costs,
    aggregate_monthly_costs,
    build_analytics_summary,
    build_budget_progress,
    build_cost_forecast,
    build_dashboard_metrics,
    build_dimension_stats,
    build_model_usage,
    build_provider_distribution,
    budget_status,
    compute_cost_distribution,
    evaluate_budget_alerts,
    round_half_up,
)
from spendguard.transformers import build_budgets_df, build_requests_df, empty_requests_df


def _row(
    request_id: str,
    timestamp: str,
    cost: float,
    *,
    provider: str | None = "OpenAI",
    model: str | None = "gpt-4o",
    business_unit: str | None = "Finance",
    business_unit_id: str | None = "bu-1",
) -> dict:
    return {
        "id": request_id,
        "request_timestamp": timestamp,
        "cost": cost,
        "prompt_tokens": 100,
        "completion_tokens": 50,
        "total_tokens": 150,
        "status_code": 200,
        "business_unit_id": business_unit_id if business_unit else None,
        "providers": {"display_name": provider} if provider else None,
        "models": {"display_name": model, "provider_id": "p-1"} if model else None,
        "business_units": {"name": business_unit} if business_unit else None,
    }


def _sample_requests_df() -> pd.DataFrame:
    return build_requests_df(
        [
            _row("r1", "2026-01-01T10:00:00Z", 1.25),
            _row("r2", "2026-01-01T18:00:00Z", 0.5, provider="Anthropic", model="claude-3-5-sonnet"),
            _row("r3", "2026-01-03T09:00:00Z", 2.0, business_unit=None),
            _row("r4", "2026-02-10T12:00:00Z", 4.0, provider=None, model=None),
        ]
    )


def _monthly(costs: list[float], requests: list[int] | None = None) -> pd.DataFrame:
    return pd.DataFrame({"cost": costs, "requests": requests or [0] * len(costs)})


def test_round_half_up_rounds_halves_towards_positive_infinity() -> None:
    assert round_half_up(0.125, 2) == 0.13
    assert round_half_up(2.5, 0) == 3.0
    assert round_half_up(-0.5, 0) == 0.0
    assert round_half_up(1.23456, 4) == 1.2346


def test_daily_costs_fill_every_day_in_range() -> None:
    daily = aggregate_daily_costs(_sample_requests_df(), date(2026, 1, 1), date(2026, 1, 4))

    assert list(daily["label"]) == ["Jan 1", "Jan 2", "Jan 3", "Jan 4"]
    assert list(daily["cost"]) == [1.75, 0.0, 2.0, 0.0]
    assert list(daily["requests"]) == [2, 0, 1, 0]


def test_monthly_costs_cover_each_touched_month() -> None:
    monthly = aggregate_monthly_costs(_sample_requests_df(), date(2025, 12, 15), date(2026, 2, 28))

    assert list(monthly["label"]) == ["Dec 2025", "Jan 2026", "Feb 2026"]
    assert list(monthly["cost"]) == [0.0, 3.75, 4.0]
    assert list(monthly["requests"]) == [0, 3, 1]


def test_daily_and_monthly_sums_match_total_cost() -> None:
    df = _sample_requests_df()
    summary = build_analytics_summary(df, date(2026, 1, 1), date(2026, 2, 28))

    total = df["cost"].sum()
    assert summary["daily_costs"]["cost"].sum() == pytest.approx(total, abs=0.01)
    assert summary["monthly_costs"]["cost"].sum() == pytest.approx(total, abs=0.01)
    assert summary["total_cost"] == pytest.approx(7.75)
    assert summary["total_requests"] == 4


def test_dimension_stats_use_sentinels_and_sort_by_cost() -> None:
    df = _sample_requests_df()

    providers = build_dimension_stats(df, "provider")
    assert list(providers["name"]) == [GroupLabel.UNKNOWN.value, "OpenAI", "Anthropic"]
    assert list(providers["cost"]) == [4.0, 3.25, 0.5]
    assert providers["requests"].sum() == len(df)

    units = build_dimension_stats(df, "business_unit")
    assert set(units["name"]) == {"Finance", GroupLabel.UNASSIGNED.value}
    assert units.loc[units["name"] == "Unassigned", "requests"].item() == 1


def test_dimension_stats_ties_keep_first_seen_order_and_average_unrounded_sums() -> None:
    df = build_requests_df(
        [
            _row("a", "2026-01-01T00:00:00Z", 0.004, provider="OpenAI"),
            _row("b", "2026-01-01T01:00:00Z", 0.01, provider="Anthropic"),
            _row("c", "2026-01-01T02:00:00Z", 0.004, provider="OpenAI"),
        ]
    )

    stats = build_dimension_stats(df, "provider")

    assert list(stats["name"]) == ["OpenAI", "Anthropic"]
    assert list(stats["cost"]) == [0.01, 0.01]
    assert stats.loc[0, "avg_cost"] == 0.004


def test_dimension_stats_reject_unknown_dimension() -> None:
    with pytest.raises(ValueError):
        build_dimension_stats(_sample_requests_df(), "region")


def test_cost_distribution_indexes_sorted_costs() -> None:
    rows = [_row(f"r{i}", "2026-01-01T00:00:00Z", float(cost)) for i, cost in enumerate([7, 3, 10, 1, 5, 2, 9, 4, 8, 6])]

    distribution = compute_cost_distribution(build_requests_df(rows))

    assert distribution == {"p50": 6.0, "p90": 10.0, "p99": 10.0}
    assert distribution["p50"] <= distribution["p90"] <= distribution["p99"]


def test_forecast_is_stable_for_flat_months() -> None:
    forecast = build_cost_forecast(_monthly([100.0, 100.0, 100.0], [10, 10, 10]))

    assert forecast["trend_slope"] == 0.0
    assert forecast["next_month"] == 100.0
    assert forecast["next_3_months"] == 300.0
    assert forecast["trend"] == "stable"


def test_forecast_projects_rising_trend() -> None:
    forecast = build_cost_forecast(_monthly([100.0, 150.0, 200.0], [10, 20, 30]))

    assert forecast["avg_monthly_cost"] == 150.0
    assert forecast["avg_monthly_requests"] == 20
    assert forecast["trend_slope"] == 33.33
    assert forecast["next_month"] == 183.33
    assert forecast["next_3_months"] == 650.0
    assert forecast["trend"] == "increasing"


def test_forecast_with_one_month_extends_the_mean() -> None:
    forecast = build_cost_forecast(_monthly([120.0], [12]))

    assert forecast["trend_slope"] == 0.0
    assert forecast["next_month"] == 120.0
    assert forecast["next_3_months"] == 360.0
    assert forecast["trend"] == "stable"


def test_forecast_never_goes_negative() -> None:
    forecast = build_cost_forecast(_monthly([90.0, 0.0, 0.0]))

    assert forecast["trend"] == "decreasing"
    assert forecast["next_month"] == 0.0
    assert forecast["next_3_months"] == 0.0


def test_forecast_uses_only_trailing_window() -> None:
    forecast = build_cost_forecast(_monthly([1000.0, 100.0, 100.0, 100.0]))

    assert forecast["avg_monthly_cost"] == 100.0
    assert forecast["trend"] == "stable"


def test_empty_input_returns_zero_valued_summary() -> None:
    summary = build_analytics_summary(empty_requests_df(), date(2026, 1, 1), date(2026, 1, 7))

    assert summary["total_cost"] == 0.0
    assert summary["total_requests"] == 0
    assert summary["avg_cost_per_request"] == 0.0
    assert summary["cost_distribution"] == {"p50": 0.0, "p90": 0.0, "p99": 0.0}
    assert len(summary["daily_costs"]) == 7
    assert summary["daily_costs"]["cost"].sum() == 0.0
    assert summary["predictions"]["trend"] == "stable"
    assert summary["provider_stats"].empty


def test_dashboard_metrics_count_projects_and_trend_days() -> None:
    df = _sample_requests_df()
    budgets = build_budgets_df(
        [{"id": "b1", "business_units": {"name": "Finance"}, "allocated_amount": 100, "spent_amount": 80}]
    )

    metrics = build_dashboard_metrics(df, budgets, datetime(2026, 1, 3, 12, 0))

    assert metrics["total_requests"] == 4
    assert metrics["active_projects"] == 1
    assert list(metrics["spending_trend"]["label"]) == [
        "Dec 28",
        "Dec 29",
        "Dec 30",
        "Dec 31",
        "Jan 1",
        "Jan 2",
        "Jan 3",
    ]
    assert list(metrics["spending_trend"]["amount"])[-3:] == [1.75, 0.0, 2.0]
    assert list(metrics["provider_data"]["name"]) == ["OpenAI", "Anthropic", "Unknown"]
    assert metrics["budget_progress"].loc[0, "status"] == "warning"


def test_budget_progress_handles_zero_allocation() -> None:
    budgets = build_budgets_df(
        [
            {"id": "b1", "business_units": {"name": "Finance"}, "allocated_amount": 0, "spent_amount": 10},
            {"id": "b2", "business_units": {"name": "Legal"}, "allocated_amount": 100, "spent_amount": 95},
            {"id": "b3", "business_units": None, "allocated_amount": 100, "spent_amount": 10},
        ]
    )

    progress = build_budget_progress(budgets)

    assert progress["percentage"].tolist() == pytest.approx([0.0, 95.0, 10.0])
    assert list(progress["status"]) == ["ok", "critical", "ok"]
    assert progress.loc[2, "name"] == "Unknown"


@pytest.mark.parametrize(
    ("percentage", "status"),
    [(0.0, "ok"), (74.99, "ok"), (75.0, "warning"), (89.9, "warning"), (90.0, "critical"), (140.0, "critical")],
)
def test_budget_status_bands(percentage: float, status: str) -> None:
    assert budget_status(percentage) == status


def test_evaluate_budget_alerts_uses_configured_thresholds() -> None:
    progress = pd.DataFrame(
        {
            "name": ["A", "B", "C"],
            "spent": [50.0, 85.0, 99.0],
            "budget": [100.0, 100.0, 100.0],
            "percentage": [50.0, 85.0, 99.0],
            "status": ["ok", "warning", "critical"],
        }
    )

    alerts = evaluate_budget_alerts(progress, warning_pct=80.0, critical_pct=95.0)

    assert list(alerts["alert_level"]) == ["none", "warning", "critical"]
    assert evaluate_budget_alerts(progress.iloc[0:0], warning_pct=80.0, critical_pct=95.0).empty


def test_provider_and_model_charts_fold_blank_names_into_unknown() -> None:
    df = _sample_requests_df().assign(
        provider=["", None, "OpenAI", "OpenAI"],
        model=["", None, "gpt-4o", ""],
    )

    providers = build_provider_distribution(df)
    models = build_model_usage(df)

    assert dict(zip(providers["name"], providers["value"])) == pytest.approx({"Unknown": 1.75, "OpenAI": 6.0})
    assert dict(zip(models["model"], models["requests"])) == {"Unknown": 3, "gpt-4o": 1}
    assert list(build_dimension_stats(df, "provider")["name"]) == ["OpenAI", "Unknown"]
