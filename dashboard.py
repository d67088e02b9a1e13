# dashboard.py: plotly figures and the KPI row for the Finora dashboard

import streamlit as st
import plotly.express as px
import plotly.graph_objects as go
import pandas as pd
from typing import Optional

from financial_health import FinancialHealthResult
from formatting import format_money

INCOME_COLOR = "#4CAF50"
EXPENSE_COLOR = "#FF5252"

BREAKDOWN_LABELS = {
    "income_vs_expenses": "Income vs expenses",
    "savings_rate": "Savings rate",
    "spending_consistency": "Consistency",
    "volatility": "Volatility",
    "emergency_buffer": "Emergency buffer",
}


def render_kpis(totals: dict, currency: str, deltas: Optional[dict] = None):
    """
    Displays the month's headline numbers.
    ``totals`` comes from ``insights.month_totals``; ``deltas`` from ``insights.last_month_deltas``.
    """
    deltas = deltas or {}
    col1, col2, col3, col4 = st.columns(4)

    income_change = deltas.get("income_change")
    col1.metric(
        "💰 Income",
        format_money(totals["income"], currency),
        delta=format_money(income_change, currency) if income_change else None,
    )
    col2.metric("💸 Expenses", format_money(totals["expenses"], currency), delta_color="inverse")
    col3.metric("🏦 Balance", format_money(totals["balance"], currency))

    savings_delta = deltas.get("savings_delta")
    col4.metric(
        "📈 Savings Rate",
        f"{totals['savings_rate']:.1f}%",
        delta=f"{savings_delta:+.1f} pts" if savings_delta is not None else None,
        help="Share of this month's income left after expenses.",
    )

    if totals["expenses"] > 0:
        st.caption(
            f"Runway: about {totals['runway_months']:.1f} months ({totals['runway_days']} days) "
            "at this month's spending."
        )
    progress = min(1.0, totals["expenses"] / totals["income"]) if totals["income"] > 0 else 0
    st.progress(progress)


def daily_flow_chart(df: pd.DataFrame, month: str):
    """
    Area chart of daily income and expenses for one month.
    """
    frame = df[df["Month"] == month]
    if frame.empty:
        return None

    daily = (
        frame.assign(Day=frame["Date"].dt.date)
        .pivot_table(index="Day", columns="Type", values="Amount", aggfunc="sum", fill_value=0)
        .reindex(columns=["income", "expense"], fill_value=0)
        .reset_index()
    )

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=daily["Day"], y=daily["income"], name="Income", fill="tozeroy", line_color=INCOME_COLOR))
    fig.add_trace(go.Scatter(x=daily["Day"], y=daily["expense"], name="Expenses", fill="tozeroy", line_color=EXPENSE_COLOR))
    fig.update_layout(title="Daily Cash Flow", height=350)
    return fig


def cat_spend(df: pd.DataFrame, month: Optional[str] = None):
    """
    Donut chart of spending by category.
    """
    spend_df = df[df["Type"] == "expense"]
    if month:
        spend_df = spend_df[spend_df["Month"] == month]
    if spend_df.empty:
        return None

    by_cat = spend_df.groupby("Category")["Amount"].sum().reset_index()

    fig = px.pie(by_cat, values="Amount", names="Category", hole=0.4, title="Spending by Category")
    fig.update_traces(textposition="inside", textinfo="percent+label")
    return fig


def income_vs_expense_monthly(monthly):
    """
    Bar chart of Income vs Expenses per month (a ``MonthlyFinance`` list).
    """
    if not monthly:
        return None
    months = [m.month for m in monthly]

    fig = go.Figure()
    fig.add_trace(go.Bar(x=months, y=[m.income for m in monthly], name="Income", marker_color=INCOME_COLOR))
    fig.add_trace(go.Bar(x=months, y=[m.expenses for m in monthly], name="Expenses", marker_color=EXPENSE_COLOR))

    fig.update_layout(barmode="group", title="Income vs Expenses Trend", height=400)
    return fig


def health_breakdown_chart(result: FinancialHealthResult):
    breakdown = result.breakdown.as_dict()
    fig = go.Figure(
        go.Bar(
            x=list(breakdown.values()),
            y=[BREAKDOWN_LABELS[k] for k in breakdown],
            orientation="h",
            marker_color=[INCOME_COLOR if v >= 75 else "#FFB300" if v >= 50 else EXPENSE_COLOR for v in breakdown.values()],
        )
    )
    fig.update_layout(title=f"Financial Health: {result.score}/100", xaxis_range=[0, 100], height=300)
    return fig


def depreciation_history_chart(history: pd.DataFrame):
    """
    Bar chart of total depreciation per year.
    """
    if history.empty:
        return None
    fig = px.bar(history, x="Year", y="Amount", title="Depreciation by Year")
    fig.update_xaxes(type="category")
    fig.update_layout(height=300)
    return fig
