"""Financial Health Score (0-100).

Weighted heuristics over monthly income/expense aggregates. The dashboard only
renders the result; all scoring lives here.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Iterable, List, Optional

WEIGHTS = {
    "income_vs_expenses": 0.30,
    "savings_rate": 0.25,
    "spending_consistency": 0.20,
    "volatility": 0.15,
    "emergency_buffer": 0.10,
}

DEFAULT_LOOKBACK_MONTHS = 6
STRENGTH_THRESHOLD = 75


@dataclass
class MonthlyFinance:
    month: str  # 'YYYY-MM'
    income: float
    expenses: float
    savings: Optional[float] = None
    discretionary_spending: Optional[float] = None


@dataclass
class FinancialHealthOptions:
    emergency_fund_amount: Optional[float] = None
    lookback_months: int = DEFAULT_LOOKBACK_MONTHS


@dataclass
class FinancialHealthBreakdown:
    income_vs_expenses: int
    savings_rate: int
    spending_consistency: int
    volatility: int
    emergency_buffer: int

    def as_dict(self) -> dict:
        return {
            "income_vs_expenses": self.income_vs_expenses,
            "savings_rate": self.savings_rate,
            "spending_consistency": self.spending_consistency,
            "volatility": self.volatility,
            "emergency_buffer": self.emergency_buffer,
        }


@dataclass
class FinancialHealthSignals:
    expense_ratio: float
    savings_rate: float
    estimated_savings: float
    buffer_months: float
    volatility_index: float
    consistency_index: float


@dataclass
class FinancialHealthInsight:
    headline: str
    summary: str
    strengths: List[str] = field(default_factory=list)
    improvements: List[str] = field(default_factory=list)


@dataclass
class FinancialHealthResult:
    score: int
    breakdown: FinancialHealthBreakdown
    signals: FinancialHealthSignals
    insight: FinancialHealthInsight
    delta_from_previous_month: Optional[int] = None


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0, high: float = 100) -> float:
    return max(low, min(high, value))


def score_lower_is_better(value: float, good: float, bad: float) -> int:
    """100 at or below ``good``, 0 at or above ``bad``, linear in between."""
    if not math.isfinite(value):
        return 0
    if value <= good:
        return 100
    if value >= bad:
        return 0
    t = (bad - value) / (bad - good)
    return int(_clamp(_round_half_up(t * 100)))


def score_higher_is_better(value: float, bad: float, good: float) -> int:
    """100 at or above ``good``, 0 at or below ``bad``, linear in between."""
    if not math.isfinite(value):
        return 0
    if value >= good:
        return 100
    if value <= bad:
        return 0
    t = (value - bad) / (good - bad)
    return int(_clamp(_round_half_up(t * 100)))


def _mean(values: List[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def _std_dev(values: List[float]) -> float:
    # population standard deviation
    if len(values) < 2:
        return 0.0
    m = _mean(values)
    return math.sqrt(_mean([(x - m) ** 2 for x in values]))


def coefficient_of_variation(values: List[float]) -> float:
    m = _mean(values)
    if m == 0:
        return 0.0
    return _std_dev(values) / abs(m)


def _ratio(numerator: float, denominator: float) -> float:
    if not math.isfinite(numerator) or not math.isfinite(denominator):
        return 0.0
    if denominator == 0:
        return math.inf if numerator > 0 else 0.0
    return numerator / denominator


def _non_negative(value) -> float:
    try:
        value = float(value or 0)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(value):
        return 0.0
    return max(0.0, value)


def _headline(score: int) -> str:
    if score >= 85:
        return "Elite money discipline. Keep this up."
    if score >= 70:
        return "Solid financial health. A few tweaks can push you higher."
    if score >= 50:
        return "Fair, but you've got some leaks to fix."
    return "Your finances are under pressure. Let's stabilise first."


def _compute_for_month(
    current: MonthlyFinance,
    history: List[MonthlyFinance],
    options: FinancialHealthOptions,
) -> FinancialHealthResult:
    lookback = options.lookback_months

    income = _non_negative(current.income)
    expenses = _non_negative(current.expenses)

    derived_savings = max(0.0, income - expenses)
    savings = _non_negative(current.savings) if current.savings is not None else derived_savings

    expense_ratio = _ratio(expenses, income)
    savings_rate = _ratio(savings, income) if income > 0 else 0.0

    # Benchmarks: <= 70% of income spent is excellent, >= 100% is bad
    income_vs_expenses = score_lower_is_better(expense_ratio, 0.7, 1.0)
    # Benchmarks: <= 5% saved is bad, >= 20% is excellent
    savings_score = score_higher_is_better(savings_rate, 0.05, 0.2)

    ordered = sorted(history, key=lambda m: m.month)
    recent = ordered[max(0, len(ordered) - lookback):]
    recent_incomes = [_non_negative(m.income) for m in recent]
    recent_expenses = [_non_negative(m.expenses) for m in recent]

    expense_cv = coefficient_of_variation(recent_expenses)
    spending_consistency = score_lower_is_better(expense_cv, 0.1, 0.5)

    income_cv = coefficient_of_variation(recent_incomes)
    combined_vol = 0.5 * income_cv + 0.5 * expense_cv
    volatility = score_lower_is_better(combined_vol, 0.1, 0.6)

    emergency_fund = _non_negative(options.emergency_fund_amount)
    if expenses > 0:
        buffer_months = emergency_fund / expenses
    else:
        buffer_months = 6.0 if emergency_fund > 0 else 0.0
    emergency_buffer = score_higher_is_better(buffer_months, 0.5, 3.0)

    breakdown = FinancialHealthBreakdown(
        income_vs_expenses=income_vs_expenses,
        savings_rate=savings_score,
        spending_consistency=spending_consistency,
        volatility=volatility,
        emergency_buffer=emergency_buffer,
    )

    raw = sum(getattr(breakdown, name) * weight for name, weight in WEIGHTS.items())
    score = int(_clamp(_round_half_up(raw)))

    strengths: List[str] = []
    improvements: List[str] = []
    rules = [
        (income_vs_expenses, "Good income vs expenses balance", "Reduce expenses relative to income"),
        (savings_score, "Strong savings rate", "Boost savings rate (even +5% helps)"),
        (spending_consistency, "Consistent spending pattern", "Smooth out spending spikes month-to-month"),
        (volatility, "Stable financial flow", "Lower volatility (avoid large swings where possible)"),
        (emergency_buffer, "Healthy emergency buffer", "Build an emergency buffer (aim for 3 months)"),
    ]
    for value, strength, improvement in rules:
        if value >= STRENGTH_THRESHOLD:
            strengths.append(strength)
        else:
            improvements.append(improvement)

    discretionary = _non_negative(current.discretionary_spending)
    if discretionary > 0 and income > 0 and discretionary / income > 0.25:
        improvements.append("High discretionary spend is dragging your score")

    summary_parts = [f"Score {score}/100."]
    if income > 0:
        summary_parts.append(
            f"You spent {expense_ratio * 100:.0f}% of your income and saved {savings_rate * 100:.0f}%."
        )
    else:
        summary_parts.append("Income for this month is low or missing, so the score leans conservative.")
    if emergency_fund > 0:
        summary_parts.append(f"Your emergency buffer is about {buffer_months:.1f} months.")

    signals = FinancialHealthSignals(
        expense_ratio=expense_ratio,
        savings_rate=savings_rate,
        estimated_savings=savings,
        buffer_months=buffer_months,
        volatility_index=_clamp(_round_half_up(combined_vol * 100)) / 100,
        consistency_index=_clamp(_round_half_up((1 - expense_cv) * 100)) / 100,
    )

    return FinancialHealthResult(
        score=score,
        breakdown=breakdown,
        signals=signals,
        insight=FinancialHealthInsight(
            headline=_headline(score),
            summary=" ".join(summary_parts),
            strengths=strengths,
            improvements=improvements,
        ),
    )


def calculate_financial_health(
    months: Iterable[MonthlyFinance],
    options: Optional[FinancialHealthOptions] = None,
) -> Optional[FinancialHealthResult]:
    """Score the latest month; ``delta_from_previous_month`` needs at least two months."""

    months = list(months or [])
    if not months:
        return None

    options = options or FinancialHealthOptions()
    ordered = sorted(months, key=lambda m: m.month)
    current = ordered[-1]

    result = _compute_for_month(current, ordered, options)

    if len(ordered) >= 2:
        previous = _compute_for_month(ordered[-2], ordered[:-1], options)
        result.delta_from_previous_month = int(_clamp(result.score - previous.score, -100, 100))

    return result
