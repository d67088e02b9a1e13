"""User-scoped data access.

Every function takes the SQLAlchemy session first and the owning ``user_id``
second; no query reads or writes another user's rows.
"""

import logging
from datetime import date
from functools import wraps
from typing import List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import (
    Asset,
    Category,
    DepreciationLine,
    SavingsGoal,
    Subscription,
    Transaction,
)
from errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)

TRANSACTION_TYPES = ("income", "expense")

DEFAULT_CATEGORIES = [
    ("Bills", "expense"),
    ("Food", "expense"),
    ("Transport", "expense"),
    ("Rent", "expense"),
    ("Health", "expense"),
    ("Entertainment", "expense"),
    ("Salary", "income"),
    ("Business", "income"),
    ("Gift", "income"),
]


def _write(fn):
    """Roll back and log on database failure; the error still propagates."""

    @wraps(fn)
    def wrapper(db, *args, **kwargs):
        try:
            return fn(db, *args, **kwargs)
        except SQLAlchemyError:
            db.rollback()
            logger.exception("Database error in %s", fn.__name__)
            raise

    return wrapper


def _check_type(tx_type: str) -> str:
    if tx_type not in TRANSACTION_TYPES:
        raise ValidationError("Type must be income or expense.")
    return tx_type


def _parse_amount(value, message: str = "Enter a valid amount.") -> float:
    try:
        amount = float(value)
    except (TypeError, ValueError):
        raise ValidationError(message)
    if amount != amount or amount <= 0:
        raise ValidationError(message)
    return amount


def _owned(db, model, user_id: int, item_id: int):
    item = db.query(model).filter(model.id == item_id, model.user_id == user_id).first()
    if item is None:
        raise NotFoundError(f"{model.__name__} {item_id} not found.")
    return item


# --- Categories ---

def list_categories(db, user_id: int, tx_type: Optional[str] = None) -> List[Category]:
    query = db.query(Category).filter(Category.user_id == user_id)
    if tx_type:
        query = query.filter(Category.type == tx_type)
    return query.order_by(Category.name).all()


@_write
def create_category(db, user_id: int, name: str, tx_type: str, budget_limit: float = 0.0) -> Category:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Enter a category name.")
    _check_type(tx_type)

    category = Category(user_id=user_id, name=name, type=tx_type, budget_limit=float(budget_limit or 0))
    db.add(category)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError(f"Category '{name}' already exists.")
    db.refresh(category)
    return category


@_write
def delete_category(db, user_id: int, category_id: int) -> None:
    category = _owned(db, Category, user_id, category_id)
    in_use = db.query(Transaction).filter(
        Transaction.user_id == user_id, Transaction.category_id == category.id
    ).first()
    if in_use is not None:
        raise ValidationError("Could not delete. Likely has existing transactions.")
    db.delete(category)
    db.commit()


@_write
def update_budget_limit(db, user_id: int, category_id: int, limit) -> Category:
    try:
        value = float(limit or 0)
    except (TypeError, ValueError):
        raise ValidationError("Enter a valid budget limit.")
    if value < 0:
        raise ValidationError("Budget limit cannot be negative.")
    category = _owned(db, Category, user_id, category_id)
    category.budget_limit = value
    db.commit()
    db.refresh(category)
    return category


@_write
def seed_default_categories(db, user_id: int) -> int:
    """Insert any missing default categories; returns how many were added."""

    existing = {
        (c.name, c.type)
        for c in db.query(Category).filter(Category.user_id == user_id).all()
    }
    added = 0
    for name, tx_type in DEFAULT_CATEGORIES:
        if (name, tx_type) in existing:
            continue
        db.add(Category(user_id=user_id, name=name, type=tx_type, budget_limit=0.0))
        added += 1
    db.commit()
    return added


# --- Transactions ---

@_write
def add_transaction(db, user_id: int, tx_type: str, amount, category_id: Optional[int],
                    tx_date: Optional[date] = None, note: str = "") -> Transaction:
    _check_type(tx_type)
    value = _parse_amount(amount)
    if not category_id:
        raise ValidationError("Pick a category.")
    _owned(db, Category, user_id, category_id)

    txn = Transaction(
        user_id=user_id,
        type=tx_type,
        amount=value,
        category_id=category_id,
        note=(note or "").strip() or None,
        date=tx_date or date.today(),
    )
    db.add(txn)
    db.commit()
    db.refresh(txn)
    return txn


def list_recent_transactions(db, user_id: int, limit: int = 50) -> List[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id)
        .order_by(Transaction.date.desc(), Transaction.id.desc())
        .limit(limit)
        .all()
    )


def list_transactions_between(db, user_id: int, start: date, end: date) -> List[Transaction]:
    """Inclusive date range, oldest first."""
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id, Transaction.date >= start, Transaction.date <= end)
        .order_by(Transaction.date.asc(), Transaction.id.asc())
        .all()
    )


def list_transactions_since(db, user_id: int, start: date) -> List[Transaction]:
    return (
        db.query(Transaction)
        .filter(Transaction.user_id == user_id, Transaction.date >= start)
        .order_by(Transaction.date.asc())
        .all()
    )


@_write
def delete_transaction(db, user_id: int, transaction_id: int) -> None:
    txn = _owned(db, Transaction, user_id, transaction_id)
    db.delete(txn)
    db.commit()


def transaction_records(transactions) -> List[dict]:
    return [
        {
            "id": t.id,
            "type": t.type,
            "amount": float(t.amount or 0),
            "note": t.note or "",
            "date": t.date,
            "category_id": t.category_id,
            "category_name": t.category_name,
        }
        for t in transactions
    ]


# --- Subscriptions ---

def list_subscriptions(db, user_id: int) -> List[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.user_id == user_id)
        .order_by(Subscription.created_at.desc(), Subscription.id.desc())
        .all()
    )


@_write
def add_subscription(db, user_id: int, name: str, amount, category_id: Optional[int] = None) -> Subscription:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Enter a subscription name.")
    value = _parse_amount(amount)
    if category_id:
        _owned(db, Category, user_id, category_id)

    sub = Subscription(user_id=user_id, name=name, amount=value, category_id=category_id or None)
    db.add(sub)
    db.commit()
    db.refresh(sub)
    return sub


@_write
def delete_subscription(db, user_id: int, subscription_id: int) -> None:
    db.delete(_owned(db, Subscription, user_id, subscription_id))
    db.commit()


def _fallback_expense_category(db, user_id: int) -> Optional[Category]:
    expense = list_categories(db, user_id, "expense")
    for category in expense:
        if category.name.lower() == "bills":
            return category
    return expense[0] if expense else None


@_write
def log_subscriptions(db, user_id: int, today: Optional[date] = None) -> int:
    """Record every subscription as an expense dated ``today``."""

    subs = list_subscriptions(db, user_id)
    if not subs:
        raise ValidationError("No subscriptions to log.")

    fallback = _fallback_expense_category(db, user_id)
    today = today or date.today()
    for sub in subs:
        category_id = sub.category_id or (fallback.id if fallback else None)
        db.add(Transaction(
            user_id=user_id,
            type="expense",
            amount=float(sub.amount),
            category_id=category_id,
            note=f"Subscription: {sub.name}",
            date=today,
        ))
    db.commit()
    return len(subs)


# --- Savings goals ---

def list_goals(db, user_id: int) -> List[SavingsGoal]:
    return (
        db.query(SavingsGoal)
        .filter(SavingsGoal.user_id == user_id)
        .order_by(SavingsGoal.created_at.desc(), SavingsGoal.id.desc())
        .all()
    )


@_write
def add_goal(db, user_id: int, name: str, target_amount) -> SavingsGoal:
    name = (name or "").strip()
    if not name:
        raise ValidationError("Enter a goal name.")
    target = _parse_amount(target_amount, "Enter a valid target amount.")

    goal = SavingsGoal(user_id=user_id, name=name, target_amount=target, current_amount=0.0)
    db.add(goal)
    db.commit()
    db.refresh(goal)
    return goal


@_write
def contribute_to_goal(db, user_id: int, goal_id: int, amount) -> SavingsGoal:
    """Add ``amount`` (may be negative for a withdrawal) to the goal."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise ValidationError("Enter a valid amount.")
    if value != value or value == 0:
        raise ValidationError("Enter a valid amount.")

    goal = _owned(db, SavingsGoal, user_id, goal_id)
    goal.current_amount = float(goal.current_amount or 0) + value
    db.commit()
    db.refresh(goal)
    return goal


@_write
def delete_goal(db, user_id: int, goal_id: int) -> None:
    db.delete(_owned(db, SavingsGoal, user_id, goal_id))
    db.commit()


# --- Assets & depreciation lines ---

def list_assets(db, user_id: int) -> List[Asset]:
    return (
        db.query(Asset)
        .filter(Asset.user_id == user_id)
        .order_by(Asset.created_at.desc(), Asset.id.desc())
        .all()
    )


@_write
def create_asset(db, user_id: int, name: str, category: str, purchase_date: date, cost: float, rate: float) -> Asset:
    asset = Asset(
        user_id=user_id,
        name=name,
        category=category,
        purchase_date=purchase_date,
        cost=cost,
        rate=rate,
        method="SL",
        accumulated_depreciation=0.0,
        nbv=cost,
    )
    db.add(asset)
    db.commit()
    db.refresh(asset)
    return asset


@_write
def delete_asset(db, user_id: int, asset_id: int) -> None:
    asset = _owned(db, Asset, user_id, asset_id)
    db.query(DepreciationLine).filter(
        DepreciationLine.user_id == user_id, DepreciationLine.asset_id == asset.id
    ).delete(synchronize_session=False)
    db.delete(asset)
    db.commit()


def list_dep_lines(db, user_id: int) -> List[DepreciationLine]:
    return (
        db.query(DepreciationLine)
        .filter(DepreciationLine.user_id == user_id)
        .order_by(DepreciationLine.year.asc())
        .all()
    )


def upsert_dep_line(db, user_id: int, asset_id: int, year: int, amount: float) -> DepreciationLine:
    """Add ``amount`` to the asset's line for ``year``, creating it if needed.

    Flushes but does not commit; callers commit once per run.
    """
    line = db.query(DepreciationLine).filter(
        DepreciationLine.user_id == user_id,
        DepreciationLine.asset_id == asset_id,
        DepreciationLine.year == year,
    ).first()
    if line is None:
        line = DepreciationLine(user_id=user_id, asset_id=asset_id, year=year)
        db.add(line)
    line.amount = (line.amount or 0.0) + amount
    db.flush()
    return line
