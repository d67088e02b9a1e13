"""Transaction report export: CSV download and a print-ready HTML page."""

from __future__ import annotations

from datetime import date
from html import escape
from typing import List, Mapping

import pandas as pd

from errors import ValidationError
from formatting import format_money, plain_number

CSV_COLUMNS = ["Date", "Type", "Category", "Amount", "Note"]
NO_DATA_MESSAGE = "No data found for this period."

REPORT_CSS = """
body { font-family: sans-serif; padding: 20px; }
h1 { margin-bottom: 5px; }
.meta { margin-bottom: 20px; color: #555; font-size: 14px; }
table { width: 100%; border-collapse: collapse; margin-top: 20px; }
th, td { border: 1px solid #ddd; padding: 8px; text-align: left; font-size: 12px; }
th { background-color: #f2f2f2; }
.totals { margin-top: 20px; display: flex; gap: 20px; }
.box { padding: 10px; border: 1px solid #ddd; border-radius: 8px; }
"""


def report_filename(start: date, end: date, ext: str = "csv") -> str:
    return f"report_{start}_to_{end}.{ext}"


def report_frame(records: List[Mapping]) -> pd.DataFrame:
    if not records:
        raise ValidationError(NO_DATA_MESSAGE)
    return pd.DataFrame(
        [
            {
                "Date": str(r.get("date") or ""),
                "Type": r.get("type") or "",
                "Category": r.get("category_name") or "Uncategorized",
                "Amount": plain_number(r.get("amount") or 0),
                "Note": (r.get("note") or "").replace(",", " "),
            }
            for r in records
        ],
        columns=CSV_COLUMNS,
    )


def transactions_csv(records: List[Mapping]) -> str:
    """CSV text for the given transaction records, in the order given."""
    return report_frame(records).to_csv(index=False, lineterminator="\n")


def report_totals(records: List[Mapping]) -> dict:
    income = sum(float(r.get("amount") or 0) for r in records if r.get("type") == "income")
    expense = sum(float(r.get("amount") or 0) for r in records if r.get("type") != "income")
    return {"income": income, "expense": expense, "net": income - expense}


def transactions_html(records: List[Mapping], username: str, email: str,
                      start: date, end: date, currency: str = "TZS") -> str:
    """Standalone HTML report that opens the print dialog when loaded."""
    if not records:
        raise ValidationError(NO_DATA_MESSAGE)

    totals = report_totals(records)
    table = pd.DataFrame(
        [
            {
                "Date": str(r.get("date") or ""),
                "Type": (r.get("type") or "").capitalize(),
                "Category": r.get("category_name") or "-",
                "Note": r.get("note") or "-",
                "Amount": format_money(float(r.get("amount") or 0), currency),
            }
            for r in records
        ],
        columns=["Date", "Type", "Category", "Note", "Amount"],
    ).to_html(index=False, escape=True, border=0)

    return f"""<html>
  <head>
    <title>Expense Report</title>
    <style>{REPORT_CSS}</style>
  </head>
  <body>
    <h1>Expense Tracker Report</h1>
    <div class="meta">
      User: {escape(username or "")} ({escape(email or "")})<br/>
      Period: {escape(str(start))} to {escape(str(end))}
    </div>
    <div class="totals">
      <div class="box"><strong>Total Income:</strong> {format_money(totals["income"], currency)}</div>
      <div class="box"><strong>Total Expense:</strong> {format_money(totals["expense"], currency)}</div>
      <div class="box"><strong>Net Balance:</strong> {format_money(totals["net"], currency)}</div>
    </div>
    {table}
    <script>
      window.onload = function() {{ window.print(); }}
    </script>
  </body>
</html>
"""
