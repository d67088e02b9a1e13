from __future__ import annotations

import logging
import math
from datetime import date
from typing import Optional

import pandas as pd

import crud
from errors import ValidationError

logger = logging.getLogger(__name__)

# Reference annual straight-line rates by asset class
ASSET_CLASSES = {
    "Computers & data handling equipment": 0.375,
    "Motor vehicles & plant": 0.25,
    "Furniture & fittings": 0.125,
    "Buildings": 0.05,
    "Agricultural buildings": 0.20,
    "Other assets": 0.10,
    "Custom": None,
}

HISTORY_YEARS = 6


def validate_asset(name: str, purchase_date: Optional[date], cost, rate) -> tuple[str, float, float]:
    """Return cleaned ``(name, cost, rate)`` or raise ``ValidationError``."""
    name = (name or "").strip()
    if not name:
        raise ValidationError("Please enter asset name.")
    if purchase_date is None:
        raise ValidationError("Please select purchase date.")

    try:
        cost = float(cost)
    except (TypeError, ValueError):
        raise ValidationError("Enter a valid cost.")
    if not math.isfinite(cost) or cost <= 0:
        raise ValidationError("Enter a valid cost.")

    try:
        rate = float(rate)
    except (TypeError, ValueError):
        raise ValidationError("Rate must be a decimal between 0 and 1 (e.g. 0.125).")
    if not math.isfinite(rate) or rate < 0 or rate > 1:
        raise ValidationError("Rate must be a decimal between 0 and 1 (e.g. 0.125).")

    return name, cost, rate


def annual_charge(cost: float, rate: float, accumulated: float) -> float:
    """Straight-line charge for one year, capped so NBV never drops below zero."""
    cost = float(cost or 0)
    yearly = max(0.0, cost * float(rate or 0))
    remaining = max(0.0, cost - float(accumulated or 0))
    return min(yearly, remaining)


def apply_annual(asset, year: int) -> float:
    """Charge one year on the asset in place and return the charge."""
    charge = annual_charge(asset.cost, asset.rate, asset.accumulated_depreciation)
    accumulated = float(asset.accumulated_depreciation or 0) + charge
    asset.accumulated_depreciation = accumulated
    asset.nbv = max(0.0, float(asset.cost or 0) - accumulated)
    asset.last_depreciation_year = year
    return charge


def register_asset(db, user_id: int, name: str, category: str, purchase_date, cost, rate):
    name, cost, rate = validate_asset(name, purchase_date, cost, rate)
    return crud.create_asset(db, user_id, name, category, purchase_date, cost, rate)


def run_annual_depreciation(db, user_id: int, year: Optional[int] = None) -> dict:
    """Depreciate every asset for ``year`` and record one line per asset.

    Running a year twice charges the assets again and adds the new charge to
    that year's existing line, so the history always totals the accumulated
    depreciation.
    """
    year = year or date.today().year
    assets = crud.list_assets(db, user_id)
    if not assets:
        raise ValidationError("No assets found.")

    total = 0.0
    try:
        for asset in assets:
            charge = apply_annual(asset, year)
            crud.upsert_dep_line(db, user_id, asset.id, year, charge)
            total += charge
        db.commit()
    except Exception:
        db.rollback()
        logger.exception("Depreciation run for %s failed", year)
        raise

    logger.info("Depreciation run for user %s, year %s: %d assets, %.2f charged", user_id, year, len(assets), total)
    return {"year": year, "assets": len(assets), "total": total}


def yearly_history(lines, years: int = HISTORY_YEARS) -> pd.DataFrame:
    """Total depreciation per year, the last ``years`` years ascending."""
    df = pd.DataFrame(
        [{"Year": int(l.year), "Amount": float(l.amount or 0)} for l in lines],
        columns=["Year", "Amount"],
    )
    if df.empty:
        return df
    history = df.groupby("Year", as_index=False)["Amount"].sum().sort_values("Year")
    return history.tail(years).reset_index(drop=True)


def asset_summary(assets, lines, year: Optional[int] = None) -> dict:
    year = year or date.today().year
    total_nbv = sum(float(a.nbv if a.nbv is not None else a.cost or 0) for a in assets)
    this_year = sum(float(l.amount or 0) for l in lines if l.year == year)
    run_years = [a.last_depreciation_year for a in assets if a.last_depreciation_year]
    return {
        "count": len(assets),
        "total_nbv": total_nbv,
        "this_year": this_year,
        "last_run_year": max(run_years) if run_years else None,
    }
