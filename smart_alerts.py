from __future__ import annotations

from dataclasses import asdict, dataclass
from datetime import date, datetime, timezone
from typing import Iterable, List, Mapping, Optional, Union

from formatting import format_number

MonthLike = Union[date, datetime, str, None]


@dataclass
class SmartAlert:
    id: str
    title: str
    message: str
    severity: str  # 'info' | 'warning' | 'danger'
    created_at: str
    emoji: str = ""
    detail: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


def _to_date(value) -> Optional[date]:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return datetime.strptime(text[:10], "%Y-%m-%d").date()
    except ValueError:
        pass
    # month labels like '2026-02'
    try:
        return datetime.strptime(text[:7], "%Y-%m").date()
    except ValueError:
        return None


def _amount(tx: Mapping) -> float:
    try:
        return float(tx.get("amount") or 0)
    except (TypeError, ValueError):
        return 0.0


def filter_by_month(transactions: Iterable[Mapping], selected_month: MonthLike) -> List[Mapping]:
    """Keep transactions in the same calendar month; undated rows are always kept."""
    transactions = list(transactions)
    target = _to_date(selected_month)
    if target is None:
        return transactions

    kept = []
    for tx in transactions:
        tx_date = _to_date(tx.get("date"))
        if tx_date is None or (tx_date.year, tx_date.month) == (target.year, target.month):
            kept.append(tx)
    return kept


def compute_smart_alerts(
    transactions: Iterable[Mapping],
    selected_month: MonthLike = None,
    currency: str = "",
) -> List[SmartAlert]:
    """Rule-based alerts for a list of transaction records.

    Each record is a mapping with ``amount``, optional ``type``
    (missing means expense), ``category`` and ``date``.
    """

    transactions = list(transactions or [])
    if not transactions:
        return []

    filtered = filter_by_month(transactions, selected_month) if selected_month else transactions

    total_expense = sum(_amount(t) for t in filtered if (t.get("type") or "expense") == "expense")
    total_income = sum(_amount(t) for t in filtered if t.get("type") == "income")

    created_at = datetime.now(timezone.utc).isoformat()
    alerts = [
        SmartAlert(
            id="summary",
            title="Monthly summary",
            message=(
                f"Income: {currency}{format_number(total_income)} • "
                f"Expenses: {currency}{format_number(total_expense)}"
            ),
            severity="info",
            created_at=created_at,
            emoji="📊",
            detail="Summary for the selected month." if selected_month else "Summary for your transactions.",
        )
    ]

    if total_expense > total_income and total_income > 0:
        alerts.append(
            SmartAlert(
                id="overspend",
                title="Spending is higher than income",
                message="You spent more than you earned this month.",
                severity="warning",
                created_at=created_at,
                emoji="⚠️",
                detail="Consider setting a budget or trimming non-essentials.",
            )
        )

    if total_income == 0 and total_expense > 0:
        alerts.append(
            SmartAlert(
                id="no-income",
                title="No income recorded",
                message="You have expenses but no income logged for this period.",
                severity="warning",
                created_at=created_at,
                emoji="🧾",
                detail="If this is wrong, add income transactions.",
            )
        )

    return alerts
