import logging
import os
from datetime import date, timedelta

import crud
from auth import sign_up
from config import configure_logging
from database import SessionLocal, User, init_db

logger = logging.getLogger(__name__)

DEMO_EMAIL = os.getenv("DEMO_EMAIL", "demo@finora.app")
DEMO_PASSWORD = os.getenv("DEMO_PASSWORD", "demo1234")


def seed_demo_user(db) -> User:
    """Create the demo account with default categories and a few transactions."""
    user = db.query(User).filter(User.email == DEMO_EMAIL).first()
    if user:
        logger.info("Demo user already exists. Skipping seed.")
        return user

    user = sign_up(db, DEMO_EMAIL, DEMO_PASSWORD, "Demo")
    crud.seed_default_categories(db, user.id)

    by_name = {c.name: c for c in crud.list_categories(db, user.id)}
    today = date.today()
    crud.add_transaction(db, user.id, "income", 1_500_000, by_name["Salary"].id, today.replace(day=1), "Monthly salary")
    crud.add_transaction(db, user.id, "expense", 450_000, by_name["Rent"].id, today.replace(day=1), "Rent")
    crud.add_transaction(db, user.id, "expense", 85_000, by_name["Food"].id, today, "Groceries")
    crud.add_transaction(db, user.id, "expense", 30_000, by_name["Transport"].id, today - timedelta(days=1), "Bus fare")
    crud.add_subscription(db, user.id, "Internet", 60_000, by_name["Bills"].id)
    logger.info("Database initialized with demo user %s", DEMO_EMAIL)
    return user


def main():
    configure_logging()
    init_db()
    db = SessionLocal()
    try:
        seed_demo_user(db)
    finally:
        db.close()


if __name__ == "__main__":
    main()
