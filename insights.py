from datetime import date
from typing import Iterable, List, Mapping, Optional

import pandas as pd

from financial_health import MonthlyFinance
from formatting import format_money

COLUMNS = ["ID", "Date", "Type", "Amount", "Category", "Note"]
UNCATEGORIZED = "Uncategorized"


def transactions_to_df(records: Iterable[Mapping]) -> pd.DataFrame:
    """Build the analysis frame from transaction records (see ``crud.transaction_records``)."""

    rows = [
        {
            "ID": r.get("id"),
            "Date": r.get("date"),
            "Type": r.get("type") or "expense",
            "Amount": r.get("amount"),
            "Category": r.get("category_name") or UNCATEGORIZED,
            "Note": r.get("note") or "",
        }
        for r in records
    ]
    df = pd.DataFrame(rows, columns=COLUMNS)
    df["Date"] = pd.to_datetime(df["Date"], errors="coerce")
    df = df.dropna(subset=["Date"]).copy()
    df["Amount"] = pd.to_numeric(df["Amount"], errors="coerce").fillna(0.0).astype(float)
    df["Month"] = df["Date"].dt.to_period("M").astype(str)
    return df.sort_values("Date").reset_index(drop=True)


def month_label(today: date, offset: int = 0) -> str:
    """'YYYY-MM' for the month ``offset`` months away from ``today``."""
    return str(pd.Period(today, freq="M") + offset)


def comparison_window_start(today: date, months_back: int = 6) -> date:
    """First day of the month ``months_back`` months before ``today``."""
    return (pd.Period(today, freq="M") - months_back).start_time.date()


def _sum_by_type(frame: pd.DataFrame, tx_type: str) -> float:
    return float(frame.loc[frame["Type"] == tx_type, "Amount"].sum())


def _expense_by_category(frame: pd.DataFrame) -> pd.Series:
    return frame[frame["Type"] == "expense"].groupby("Category")["Amount"].sum()


def _pct_change(current: float, previous: float) -> Optional[float]:
    if not previous:
        return None
    return (current - previous) / previous * 100


def monthly_finance(df: pd.DataFrame, months: Optional[int] = None) -> List[MonthlyFinance]:
    """Month-level income/expense totals, oldest first, for the health score."""

    if df.empty:
        return []

    frame = df.assign(
        Income=df["Amount"].where(df["Type"] == "income", 0.0),
        Expenses=df["Amount"].where(df["Type"] != "income", 0.0),
    )
    grouped = frame.groupby("Month")[["Income", "Expenses"]].sum().sort_index()
    rows = [
        MonthlyFinance(month=str(month), income=float(row["Income"]), expenses=float(row["Expenses"]))
        for month, row in grouped.iterrows()
    ]
    return rows[-months:] if months else rows


def month_totals(df: pd.DataFrame, month: str) -> dict:
    """Income, expenses, balance, savings rate (%) and runway for one month."""

    frame = df[df["Month"] == month] if not df.empty else df
    income = _sum_by_type(frame, "income")
    expenses = _sum_by_type(frame, "expense")
    balance = income - expenses
    savings_rate = (balance / income * 100) if income > 0 else 0.0
    runway_months = max(0.0, balance / expenses) if expenses > 0 else 0.0

    return {
        "month": month,
        "income": income,
        "expenses": expenses,
        "balance": balance,
        "savings_rate": savings_rate,
        "runway_months": runway_months,
        "runway_days": int(round(runway_months * 30)),
        "count": int(len(frame)),
    }


def compare_months(df: pd.DataFrame, today: Optional[date] = None, top_n: int = 3) -> dict:
    """This month vs last month vs the 3-month average before this month."""

    today = today or date.today()
    this_month = month_label(today)
    last_month = month_label(today, -1)
    avg_months = [month_label(today, -i) for i in (3, 2, 1)]

    if df.empty:
        df = transactions_to_df([])

    tx_this = df[df["Month"] == this_month]
    tx_last = df[df["Month"] == last_month]
    tx_avg3 = df[df["Month"].isin(avg_months)]

    this_income, this_expense = _sum_by_type(tx_this, "income"), _sum_by_type(tx_this, "expense")
    last_income, last_expense = _sum_by_type(tx_last, "income"), _sum_by_type(tx_last, "expense")
    avg3_income = _sum_by_type(tx_avg3, "income") / 3 if len(tx_avg3) else 0.0
    avg3_expense = _sum_by_type(tx_avg3, "expense") / 3 if len(tx_avg3) else 0.0

    this_cats = _expense_by_category(tx_this)
    last_cats = _expense_by_category(tx_last)
    drivers = []
    for category in sorted(set(this_cats.index) | set(last_cats.index)):
        current = float(this_cats.get(category, 0.0))
        previous = float(last_cats.get(category, 0.0))
        drivers.append({"category": category, "delta": current - previous, "this": current, "last": previous})
    drivers.sort(key=lambda d: abs(d["delta"]), reverse=True)

    return {
        "totals": {
            "this": {"income": this_income, "expenses": this_expense, "balance": this_income - this_expense},
            "last": {"income": last_income, "expenses": last_expense, "balance": last_income - last_expense},
            "avg3": {"income": avg3_income, "expenses": avg3_expense, "balance": avg3_income - avg3_expense},
        },
        "deltas": {
            "expenses_vs_last_pct": _pct_change(this_expense, last_expense),
            "income_vs_last_pct": _pct_change(this_income, last_income),
            "expenses_vs_avg3_pct": _pct_change(this_expense, avg3_expense),
            "income_vs_avg3_pct": _pct_change(this_income, avg3_income),
            "top_drivers_vs_last": drivers[:top_n],
        },
        "transactions": {
            "this_count": int(len(tx_this)),
            "last_count": int(len(tx_last)),
            "avg3_count": int(len(tx_avg3)),
        },
    }


def last_month_deltas(df: pd.DataFrame, today: Optional[date] = None) -> dict:
    """What changed since last month: income, savings rate and the biggest category move."""

    today = today or date.today()
    current = month_totals(df, month_label(today))
    previous = month_totals(df, month_label(today, -1))

    last_rate = previous["savings_rate"] if previous["income"] > 0 else None
    if last_rate is None or current["income"] <= 0:
        savings_delta = None
    else:
        savings_delta = current["savings_rate"] - last_rate

    biggest = {"category": "-", "delta": 0.0}
    if not df.empty:
        this_cats = _expense_by_category(df[df["Month"] == current["month"]])
        last_cats = _expense_by_category(df[df["Month"] == previous["month"]])
        best = None
        for category in sorted(set(this_cats.index) | set(last_cats.index)):
            delta = float(this_cats.get(category, 0.0)) - float(last_cats.get(category, 0.0))
            if best is None or abs(delta) > abs(best[1]):
                best = (category, delta)
        if best is not None:
            biggest = {"category": best[0], "delta": best[1]}

    return {
        "income_change": current["income"] - previous["income"],
        "savings_delta": savings_delta,
        "biggest_expense_change": biggest,
    }


def budget_status(category, df: pd.DataFrame, pending_amount: float = 0.0, month: Optional[str] = None):
    """Month-to-date spend for one expense category including an amount about to be saved."""

    if category is None or category.type != "expense":
        return None
    limit = float(category.budget_limit or 0)
    if limit <= 0:
        return None

    month = month or month_label(date.today())
    spent = 0.0
    if not df.empty:
        mask = (df["Month"] == month) & (df["Type"] == "expense") & (df["Category"] == category.name)
        spent = float(df.loc[mask, "Amount"].sum())

    total_after = spent + float(pending_amount or 0)
    return {
        "category": category.name,
        "limit": limit,
        "spent": spent,
        "total_after": total_after,
        "is_over": total_after > limit,
        "over_by": max(0.0, total_after - limit),
    }


def budget_watch(categories, df: pd.DataFrame, month: Optional[str] = None) -> List[dict]:
    """Spend vs limit for every expense category that has a budget."""

    month = month or month_label(date.today())
    spent_by_cat = pd.Series(dtype=float)
    if not df.empty:
        spent_by_cat = _expense_by_category(df[df["Month"] == month])

    status = []
    for category in categories:
        limit = float(category.budget_limit or 0)
        if category.type != "expense" or limit <= 0:
            continue
        spent = float(spent_by_cat.get(category.name, 0.0))
        remaining = limit - spent
        status.append({
            "category": category.name,
            "limit": limit,
            "spent": spent,
            "remaining": remaining,
            "pct": spent / limit,
            "is_over": remaining < 0,
        })
    return status


def summarize_budget_watch(status: List[dict], currency: str = "TZS") -> List[str]:
    """Return human-readable budget alerts for overspend and at-risk categories."""

    alerts = []
    for entry in status or []:
        if entry["is_over"]:
            alerts.append(
                f"🔴 **{entry['category']}** is over budget by {format_money(abs(entry['remaining']), currency)} "
                f"(spent {format_money(entry['spent'], currency)} of {format_money(entry['limit'], currency)})."
            )
        elif entry["pct"] >= 0.8:
            alerts.append(
                f"🟠 **{entry['category']}** is {entry['pct'] * 100:.0f}% of its {format_money(entry['limit'], currency)} limit."
            )
    return alerts


def subscription_total(subscriptions) -> float:
    return float(sum(float(s.amount or 0) for s in subscriptions))


def goal_progress(goal) -> dict:
    target = float(goal.target_amount or 0)
    current = float(goal.current_amount or 0)
    pct = min(1.0, max(0.0, current / target)) if target > 0 else 0.0
    return {"name": goal.name, "target": target, "current": current, "pct": pct, "remaining": max(0.0, target - current)}


def search_transactions(records: List[Mapping], query: str) -> List[Mapping]:
    """Case-insensitive match on amount, category, note, date or type."""

    q = (query or "").strip().lower()
    if not q:
        return list(records)

    matches = []
    for r in records:
        fields = [
            str(r.get("amount", "")),
            (r.get("category_name") or "").lower(),
            (r.get("note") or "").lower(),
            str(r.get("date") or "").lower(),
            (r.get("type") or "").lower(),
        ]
        if any(q in f for f in fields):
            matches.append(r)
    return matches


def build_ai_context(df: pd.DataFrame, currency: str, today: Optional[date] = None) -> dict:
    """Figures sent to the AI summary and follow-up chat."""

    today = today or date.today()
    totals = month_totals(df, month_label(today))
    return {
        "month": today.strftime("%B %Y"),
        "currency": currency,
        "income": totals["income"],
        "expenses": totals["expenses"],
        "balance": totals["balance"],
        "transactionsCount": totals["count"],
        "comparison": compare_months(df, today),
    }
