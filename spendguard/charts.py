"""Plotly chart builders for the Streamlit dashboard."""

from __future__ import annotations

from typing import Any

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

PLOTLY_TEMPLATE = "plotly_white"
STATUS_COLORS = {"ok": "#0f766e", "warning": "#d97706", "critical": "#b91c1c"}


def empty_figure(message: str) -> go.Figure:
    fig = go.Figure()
    fig.add_annotation(
        x=0.5,
        y=0.5,
        text=message,
        showarrow=False,
        xref="paper",
        yref="paper",
        font={"size": 14},
    )
    fig.update_xaxes(visible=False)
    fig.update_yaxes(visible=False)
    fig.update_layout(template=PLOTLY_TEMPLATE, height=360, margin=dict(l=10, r=10, t=40, b=10))
    return fig


def spending_trend_chart(trend_df: pd.DataFrame) -> go.Figure:
    if trend_df.empty:
        return empty_figure("No spend in the last 7 days")

    fig = px.line(
        trend_df,
        x="label",
        y="amount",
        title="Spending Trend (Last 7 Days)",
        markers=True,
        labels={"label": "Date", "amount": "Cost (USD)"},
        template=PLOTLY_TEMPLATE,
    )
    fig.update_traces(line={"width": 2})
    fig.update_layout(height=360, margin=dict(l=10, r=10, t=50, b=10))
    return fig


def provider_spend_chart(provider_df: pd.DataFrame) -> go.Figure:
    if provider_df.empty:
        return empty_figure("No provider spend data")

    fig = px.pie(
        provider_df,
        names="name",
        values="value",
        hole=0.4,
        title="Spend by Provider",
        template=PLOTLY_TEMPLATE,
    )
    fig.update_layout(height=360, margin=dict(l=10, r=10, t=50, b=10))
    return fig


def model_usage_chart(usage_df: pd.DataFrame) -> go.Figure:
    if usage_df.empty:
        return empty_figure("No model request data")

    fig = px.bar(
        usage_df,
        x="model",
        y="requests",
        title="Requests by Model",
        labels={"model": "Model", "requests": "Requests"},
        template=PLOTLY_TEMPLATE,
    )
    fig.update_layout(height=360, margin=dict(l=10, r=10, t=50, b=10))
    return fig


def budget_progress_chart(progress_df: pd.DataFrame) -> go.Figure:
    if progress_df.empty:
        return empty_figure("No budgets for the current month")

    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=progress_df["percentage"],
            y=progress_df["name"],
            orientation="h",
            marker_color=[STATUS_COLORS.get(status, "#64748b") for status in progress_df["status"]],
            text=[f"{pct:.1f}%" for pct in progress_df["percentage"]],
            textposition="auto",
            customdata=progress_df[["spent", "budget"]].to_numpy(),
            hovertemplate="%{y}<br>$%{customdata[0]:,.2f} of $%{customdata[1]:,.2f}<extra></extra>",
        )
    )
    fig.update_layout(
        title="Budget Utilization",
        template=PLOTLY_TEMPLATE,
        xaxis_title="Used (%)",
        xaxis_range=[0, max(100.0, float(progress_df["percentage"].max()))],
        height=360,
        margin=dict(l=10, r=10, t=50, b=10),
    )
    return fig


def daily_cost_chart(daily_df: pd.DataFrame) -> go.Figure:
    if daily_df.empty:
        return empty_figure("No cost data for selected range")

    fig = px.area(
        daily_df,
        x="period",
        y="cost",
        title="Daily Cost",
        labels={"period": "Date", "cost": "Cost (USD)"},
        hover_data={"requests": True},
        template=PLOTLY_TEMPLATE,
    )
    fig.update_layout(height=360, margin=dict(l=10, r=10, t=50, b=10))
    return fig


def monthly_cost_chart(monthly_df: pd.DataFrame) -> go.Figure:
    if monthly_df.empty:
        return empty_figure("No monthly spend data")

    fig = go.Figure()
    fig.add_trace(
        go.Bar(
            x=monthly_df["label"],
            y=monthly_df["cost"],
            name="Cost (USD)",
            marker_color="#0f766e",
        )
    )
    fig.add_trace(
        go.Scatter(
            x=monthly_df["label"],
            y=monthly_df["requests"],
            name="Requests",
            mode="lines+markers",
            yaxis="y2",
            line={"color": "#1d4ed8", "width": 2},
        )
    )
    fig.update_layout(
        title="Monthly Cost and Requests",
        template=PLOTLY_TEMPLATE,
        yaxis_title="Cost (USD)",
        yaxis2={"title": "Requests", "overlaying": "y", "side": "right"},
        xaxis_title="Month",
        height=360,
        margin=dict(l=10, r=10, t=50, b=10),
    )
    return fig


def forecast_chart(monthly_df: pd.DataFrame, predictions: dict[str, Any]) -> go.Figure:
    """Actual monthly cost followed by a dashed next-month projection."""
    if monthly_df.empty:
        return empty_figure("Not enough data to build forecast")

    actual = monthly_df[["period", "cost"]].assign(series="Actual")
    next_period = pd.Timestamp(monthly_df["period"].iloc[-1]) + pd.DateOffset(months=1)
    projected = pd.DataFrame(
        {
            "period": [monthly_df["period"].iloc[-1], next_period],
            "cost": [float(monthly_df["cost"].iloc[-1]), float(predictions["next_month"])],
            "series": "Forecast",
        }
    )
    plot_df = pd.concat([actual, projected], ignore_index=True)

    fig = px.line(
        plot_df,
        x="period",
        y="cost",
        color="series",
        line_dash="series",
        markers=True,
        title="Monthly Cost Forecast",
        labels={"period": "Month", "cost": "Cost (USD)", "series": "Series"},
        template=PLOTLY_TEMPLATE,
    )
    fig.update_layout(height=360, margin=dict(l=10, r=10, t=50, b=10), legend_title_text="")
    return fig


def dimension_cost_chart(stats_df: pd.DataFrame, *, title: str, label: str) -> go.Figure:
    if stats_df.empty:
        return empty_figure(f"No {label.lower()} cost data")

    fig = px.bar(
        stats_df,
        x="name",
        y="cost",
        title=title,
        labels={"name": label, "cost": "Cost (USD)"},
        hover_data={"requests": True, "avg_cost": ":.4f"},
        template=PLOTLY_TEMPLATE,
    )
    fig.update_layout(height=360, margin=dict(l=10, r=10, t=50, b=10))
    return fig
