import unittest
from datetime import datetime, timedelta, timezone

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database import AiUsage, Base
from errors import RateLimitExceeded
from rate_limit import DailyRateLimiter, limiter_key


class FakeClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


class RateLimitTests(unittest.TestCase):
    def setUp(self):
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.db = sessionmaker(bind=engine)()
        self.clock = FakeClock(datetime(2026, 2, 10, 22, 30, tzinfo=timezone.utc))
        self.limiter = DailyRateLimiter(self.db, limit=2, clock=self.clock)

    def tearDown(self):
        self.db.close()

    def test_limiter_key(self):
        self.assertEqual(limiter_key("42", "10.0.0.1"), "user:42")
        self.assertEqual(limiter_key(None, "10.0.0.1"), "ip:10.0.0.1")
        self.assertEqual(limiter_key("", None), "ip:unknown")

    def test_counts_down_then_blocks(self):
        first = self.limiter.hit("user:1")
        second = self.limiter.hit("user:1")
        self.assertEqual((first.remaining, second.remaining), (1, 0))
        self.assertEqual(first.reset_at, datetime(2026, 2, 11, tzinfo=timezone.utc))

        with self.assertRaises(RateLimitExceeded) as ctx:
            self.limiter.hit("user:1")
        self.assertEqual(ctx.exception.status_code, 429)
        self.assertEqual(ctx.exception.limit, 2)

        row = self.db.query(AiUsage).filter(AiUsage.key == "user:1").one()
        self.assertEqual((row.day, row.count), ("2026-02-10", 2))

    def test_keys_are_independent(self):
        self.limiter.hit("user:1")
        self.limiter.hit("user:1")
        self.assertEqual(self.limiter.hit("ip:10.0.0.1").remaining, 1)
        self.assertEqual(self.limiter.peek("user:1").remaining, 0)

    def test_resets_at_utc_midnight(self):
        self.limiter.hit("user:1")
        self.limiter.hit("user:1")
        self.clock.now += timedelta(hours=2)

        result = self.limiter.hit("user:1")
        self.assertEqual(result.remaining, 1)
        self.assertEqual(result.headers()["X-RateLimit-Limit"], "2")
        self.assertEqual(result.headers()["X-RateLimit-Remaining"], "1")


if __name__ == "__main__":
    unittest.main()
