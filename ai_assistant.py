"""AI monthly summary and follow-up chat.

Payload parsing is deliberately lenient: the dashboard and older clients send
the same figures under different field names, and money may arrive as display
strings such as ``"TZS 1,000,000.00"``.
"""

import json
import logging
import math
import re
from collections.abc import Mapping
from datetime import date
from typing import Any, List, Optional

from config import DEFAULT_CURRENCY
from errors import PayloadError, ValidationError
from formatting import plain_number

logger = logging.getLogger(__name__)

MONTH_KEYS = ("month", "monthLabel", "period", "label")
INCOME_KEYS = ("income", "incomeNum", "income_value", "totalIncome", "incomeThisMonth", "incomeText")
EXPENSE_KEYS = ("expenses", "expense", "expensesNum", "expenses_value", "totalExpenses", "expensesThisMonth", "expenseText")
BALANCE_KEYS = ("balance", "bal", "net", "netBalance", "balanceThisMonth", "balanceText")

SUMMARY_HINT = "Send JSON with { month, income, expenses, balance } (numbers), or allow balance to be derived."

MODES = ("advice", "risk", "what-if")
MODE_ALIASES = {"whatif": "what-if", "what_if": "what-if"}
MODE_GUIDANCE = {
    "risk": (
        "Focus on risks, red flags, volatility, and what could go wrong. Include mitigations. "
        "Use clear severity labels (Low/Med/High) when relevant."
    ),
    "what-if": (
        "Treat the question as a scenario simulation. State assumptions clearly, then show the impact and steps. "
        "If key numbers are missing, ask 1 short clarifying question OR give a best-effort outline without inventing figures."
    ),
    "advice": "Give practical, step-by-step recommendations. Keep it actionable and concise.",
}
MAX_HISTORY_TURNS = 6

_NON_NUMERIC = re.compile(r"[^0-9.\-]")


def to_number(value: Any) -> Optional[float]:
    """Coerce numbers and money strings to float; None when nothing usable."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        value = float(value)
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        cleaned = _NON_NUMERIC.sub("", value).strip()
        if not cleaned:
            return None
        try:
            number = float(cleaned)
        except ValueError:
            return None
        return number if math.isfinite(number) else None
    return None


def pick_first(*values):
    for value in values:
        if value is not None:
            return value
    return None


def month_fallback(today: Optional[date] = None) -> str:
    return (today or date.today()).strftime("%B %Y")


def _pick(body: Mapping, keys) -> Any:
    return pick_first(*(body.get(k) for k in keys))


def parse_summary_payload(body: Any, today: Optional[date] = None) -> dict:
    """Return ``{month, income, expenses, balance}`` or raise ``PayloadError``."""
    body = body if isinstance(body, Mapping) else {}

    month = _pick(body, MONTH_KEYS)
    if not isinstance(month, str):
        month = month_fallback(today)

    income = to_number(_pick(body, INCOME_KEYS))
    expenses = to_number(_pick(body, EXPENSE_KEYS))
    balance = to_number(_pick(body, BALANCE_KEYS))
    if balance is None and income is not None and expenses is not None:
        balance = income - expenses

    parsed = {"month": month, "income": income, "expenses": expenses, "balance": balance}
    if income is None or expenses is None or balance is None:
        raise PayloadError(
            "Missing or invalid fields",
            hint=SUMMARY_HINT,
            received={
                "month": _pick(body, MONTH_KEYS),
                "income": _pick(body, ("income", "incomeNum", "totalIncome", "incomeText")),
                "expenses": _pick(body, ("expenses", "expensesNum", "totalExpenses", "expenseText")),
                "balance": _pick(body, ("balance", "bal", "net", "balanceText")),
            },
            parsed=parsed,
        )
    return parsed


def build_summary_prompt(month: str, income: float, expenses: float, balance: float,
                         currency: str = DEFAULT_CURRENCY) -> str:
    return f"""
You are a helpful assistant for a personal finance app.

Use ONLY the figures provided below. Do NOT assume missing transactions or set values to zero.

Month: {month}
Income ({currency}): {plain_number(income)}
Expenses ({currency}): {plain_number(expenses)}
Balance ({currency}): {plain_number(balance)}

Return:
1) A 2-3 sentence summary
2) 2-4 bullet insights (use the numbers)
3) 1 practical next step
""".strip()


def normalize_mode(raw: Any) -> str:
    mode = raw.strip().lower() if isinstance(raw, str) else ""
    mode = MODE_ALIASES.get(mode, mode)
    return mode if mode in MODES else "advice"


def pick_last_turns(history: Any, max_turns: int = MAX_HISTORY_TURNS) -> List[Mapping]:
    if not isinstance(history, list):
        return []
    turns = [turn for turn in history if turn and isinstance(turn, Mapping)]
    return turns[-max_turns:]


def safe_json(value: Any) -> str:
    try:
        return json.dumps(value, indent=2, ensure_ascii=False, default=str)
    except (TypeError, ValueError):
        return str(value)


def build_followup_prompt(question: str, context: Any, history: List[Mapping], mode: str) -> str:
    transcript = "\n".join(
        f"{'User' if turn.get('role') == 'user' else 'Assistant'}: {turn.get('content', '')}"
        for turn in history
    )
    return f"""
You are a helpful finance assistant inside a personal expense tracker app.

Rules:
- Use ONLY the provided context for any numbers.
- Follow the requested mode strictly (advice | risk | what-if).
- If the user asks for calculations and the needed numbers aren't in context, ask 1 short clarifying question OR give best-effort advice without inventing numbers.
- Be concise and practical. Prefer bullets for suggestions.
- For "what-if" questions, outline assumptions clearly (e.g., income drops by 20%).
- Output plain text (no markdown tables).


Mode:
{mode}

Mode guidance:
{MODE_GUIDANCE[mode]}


Context (JSON):
{safe_json(context)}

Conversation (recent):
{transcript or "(none)"}

User question:
{question}
""".strip()


def parse_followup_payload(body: Any) -> dict:
    body = body if isinstance(body, Mapping) else {}
    question = body.get("question")
    question = question.strip() if isinstance(question, str) else ""
    if not question:
        raise ValidationError("Missing question")
    return {
        "question": question,
        "context": body.get("context"),
        "history": pick_last_turns(body.get("history") or []),
        "mode": normalize_mode(body.get("mode")),
    }


def format_ai_response(text: str) -> List[dict]:
    """Split model output into display lines, flagging section headings."""
    if not text:
        return []
    cleaned = re.sub(r"\n+", "\n", text.replace("*", ""))
    lines = [line.strip() for line in cleaned.split("\n")]
    blocks = []
    for line in filter(None, lines):
        lowered = line.lower()
        blocks.append({
            "id": len(blocks),
            "text": line,
            "is_heading": "summary" in lowered or "insight" in lowered or "next step" in lowered,
        })
    return blocks


def request_summary(client, body: Any, today: Optional[date] = None) -> dict:
    parsed = parse_summary_payload(body, today)
    currency = body.get("currency") if isinstance(body, Mapping) else None
    prompt = build_summary_prompt(
        parsed["month"], parsed["income"], parsed["expenses"], parsed["balance"],
        currency=currency if isinstance(currency, str) and currency else DEFAULT_CURRENCY,
    )
    logger.info("AI summary requested for %s", parsed["month"])
    return {"text": client.generate(prompt), "parsed": parsed}


def request_followup(client, body: Any) -> dict:
    payload = parse_followup_payload(body)
    prompt = build_followup_prompt(payload["question"], payload["context"], payload["history"], payload["mode"])
    logger.info("AI follow-up (%s mode, %d turns)", payload["mode"], len(payload["history"]))
    return {
        "text": client.generate(prompt),
        "mode": payload["mode"],
        "question_length": len(payload["question"]),
        "history_turns": len(payload["history"]),
    }
