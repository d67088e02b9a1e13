from datetime import datetime

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
    create_engine,
)
from sqlalchemy.orm import declarative_base, relationship, sessionmaker

from config import DATABASE_URL

# Database Setup
def make_engine(url: str = DATABASE_URL, **kwargs):
    connect_args = {"check_same_thread": False} if url.startswith("sqlite") else {}
    return create_engine(url, connect_args=connect_args, **kwargs)


engine = make_engine()
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
Base = declarative_base()

# --- Models ---

class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    username = Column(String)
    password_hash = Column(String, nullable=False)  # bcrypt hash, never plain text
    avatar_url = Column(String, nullable=True)
    api_token_hash = Column(String, nullable=True)  # bcrypt hash of the API token secret
    currency = Column(String, default="TZS")
    created_at = Column(DateTime, default=datetime.utcnow)


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", "type", name="uq_category_user_name_type"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    type = Column(String, nullable=False)  # 'income' or 'expense'
    budget_limit = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)

    transactions = relationship("Transaction", back_populates="category")


class Transaction(Base):
    __tablename__ = "transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    type = Column(String, nullable=False)  # 'income' or 'expense'
    amount = Column(Float, nullable=False)
    note = Column(String, nullable=True)
    date = Column(Date, index=True, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("Category", back_populates="transactions")

    @property
    def category_name(self):
        return self.category.name if self.category else None


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    amount = Column(Float, nullable=False)
    category_id = Column(Integer, ForeignKey("categories.id"), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    category = relationship("Category")


class SavingsGoal(Base):
    __tablename__ = "savings_goals"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    target_amount = Column(Float, nullable=False)
    current_amount = Column(Float, default=0.0)
    created_at = Column(DateTime, default=datetime.utcnow)


class Asset(Base):
    __tablename__ = "assets"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    name = Column(String, nullable=False)
    category = Column(String)
    purchase_date = Column(Date)
    cost = Column(Float, nullable=False)
    rate = Column(Float)  # annual rate as a decimal, e.g. 0.125
    method = Column(String, default="SL")  # straight-line
    accumulated_depreciation = Column(Float, default=0.0)
    nbv = Column(Float)
    last_depreciation_year = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)

    lines = relationship("DepreciationLine", back_populates="asset")


class DepreciationLine(Base):
    __tablename__ = "dep_lines"
    __table_args__ = (UniqueConstraint("user_id", "asset_id", "year", name="uq_dep_line_user_asset_year"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), index=True, nullable=False)
    asset_id = Column(Integer, ForeignKey("assets.id"), nullable=False)
    year = Column(Integer, nullable=False)
    amount = Column(Float, default=0.0)

    asset = relationship("Asset", back_populates="lines")


class AiUsage(Base):
    """Daily request counters keyed by caller (``user:<id>`` or ``ip:<addr>``)."""

    __tablename__ = "ai_usage"
    __table_args__ = (UniqueConstraint("key", "day", name="uq_ai_usage_key_day"),)

    id = Column(Integer, primary_key=True, index=True)
    key = Column(String, nullable=False, index=True)
    day = Column(String, nullable=False)  # YYYY-MM-DD (UTC)
    count = Column(Integer, default=0)

# --- Init DB ---
def init_db(bind=None):
    Base.metadata.create_all(bind=bind or engine)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
