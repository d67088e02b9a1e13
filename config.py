import logging
import os

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

# Database
# Default to local SQLite, but allow override for a hosted Postgres instance
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///finora.db")

# AI provider
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
AI_DAILY_LIMIT = int(os.getenv("AI_DAILY_LIMIT", "20"))

# Runtime
FINORA_ENV = os.getenv("FINORA_ENV", "production").strip().lower()
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "TZS")
CURRENCIES = ("TZS", "USD")

# Storage
S3_BUCKET = os.getenv("S3_BUCKET")
AWS_REGION = os.getenv("AWS_REGION", "us-east-1")
LOCAL_STORAGE_DIR = os.getenv("LOCAL_STORAGE_DIR", "finora_data")

# Login throttling
LOGIN_MAX_ATTEMPTS = int(os.getenv("LOGIN_MAX_ATTEMPTS", "5"))
LOGIN_LOCK_SECONDS = int(os.getenv("LOGIN_LOCK_SECONDS", "60"))


def is_development() -> bool:
    return FINORA_ENV == "development"


def configure_logging(level: str | None = None):
    """Configure root logging once for the UI and the API server."""
    logging.basicConfig(
        level=level or LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
