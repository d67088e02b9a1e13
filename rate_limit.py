import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from sqlalchemy.exc import IntegrityError

from config import AI_DAILY_LIMIT
from database import AiUsage
from errors import RateLimitExceeded

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class RateLimitResult:
    limit: int
    remaining: int
    reset_at: datetime

    def headers(self) -> dict:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": self.reset_at.isoformat(),
        }


def limiter_key(user_id: Optional[str], client_ip: Optional[str]) -> str:
    """``user:<id>`` when the caller is known, else ``ip:<addr>``."""
    if user_id:
        return f"user:{user_id}"
    return f"ip:{client_ip or 'unknown'}"


class DailyRateLimiter:
    """Fixed-window request counter that resets at UTC midnight.

    Counts live in the ``ai_usage`` table so every process shares them.
    """

    def __init__(self, db, limit: int = AI_DAILY_LIMIT, clock: Callable[[], datetime] = _utcnow):
        self.db = db
        self.limit = limit
        self.clock = clock

    def _window(self):
        now = self.clock()
        day = now.date()
        reset_at = datetime(day.year, day.month, day.day, tzinfo=timezone.utc) + timedelta(days=1)
        return day.isoformat(), reset_at

    def _row(self, key: str, day: str) -> AiUsage:
        row = self.db.query(AiUsage).filter(AiUsage.key == key, AiUsage.day == day).first()
        if row is not None:
            return row
        row = AiUsage(key=key, day=day, count=0)
        self.db.add(row)
        try:
            self.db.flush()
        except IntegrityError:
            # another request created it first
            self.db.rollback()
            row = self.db.query(AiUsage).filter(AiUsage.key == key, AiUsage.day == day).one()
        return row

    def peek(self, key: str) -> RateLimitResult:
        day, reset_at = self._window()
        row = self.db.query(AiUsage).filter(AiUsage.key == key, AiUsage.day == day).first()
        used = row.count if row else 0
        return RateLimitResult(self.limit, max(0, self.limit - used), reset_at)

    def hit(self, key: str) -> RateLimitResult:
        """Count one request for ``key``; raises ``RateLimitExceeded`` once the day's limit is used."""
        day, reset_at = self._window()
        row = self._row(key, day)
        if (row.count or 0) >= self.limit:
            self.db.commit()
            logger.warning("Rate limit reached for %s (%d/day)", key, self.limit)
            raise RateLimitExceeded(
                "Daily AI limit reached. Try again tomorrow.",
                limit=self.limit,
                reset_at=reset_at,
            )
        row.count = (row.count or 0) + 1
        self.db.commit()
        return RateLimitResult(self.limit, max(0, self.limit - row.count), reset_at)
