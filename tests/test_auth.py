import unittest

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from auth import (
    LoginThrottle,
    authenticate,
    check_password,
    issue_api_token,
    revoke_api_token,
    sign_up,
    update_password,
    update_profile,
    user_for_token,
)
from database import Base
from errors import AuthError, ValidationError


class AuthTests(unittest.TestCase):
    def setUp(self):
        engine = create_engine(
            "sqlite:///:memory:",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        Base.metadata.create_all(engine)
        self.db = sessionmaker(bind=engine)()
        self.user = sign_up(self.db, "  Amina@Example.com ", "secret1", "Amina")

    def tearDown(self):
        self.db.close()

    def test_sign_up_stores_hash(self):
        self.assertEqual(self.user.email, "amina@example.com")
        self.assertEqual(self.user.currency, "TZS")
        self.assertNotEqual(self.user.password_hash, "secret1")
        self.assertTrue(check_password("secret1", self.user.password_hash))

    def test_sign_up_validation(self):
        with self.assertRaises(ValidationError):
            sign_up(self.db, "not-an-email", "secret1")
        with self.assertRaises(ValidationError):
            sign_up(self.db, "new@example.com", "12345")
        with self.assertRaises(ValidationError):
            sign_up(self.db, "AMINA@example.com", "secret1")

    def test_default_username_from_email(self):
        user = sign_up(self.db, "juma@example.com", "secret1")
        self.assertEqual(user.username, "juma")

    def test_authenticate(self):
        throttle = LoginThrottle()
        user = authenticate(self.db, "amina@example.com", "secret1", throttle, now=1000.0)
        self.assertEqual(user.id, self.user.id)

        with self.assertRaises(AuthError) as ctx:
            authenticate(self.db, "amina@example.com", "wrong", throttle, now=1001.0)
        self.assertEqual(ctx.exception.message, "Invalid credentials")
        self.assertEqual(len(throttle.failed_attempts), 1)

    def test_lockout_after_repeated_failures(self):
        throttle = LoginThrottle(max_attempts=5, lock_seconds=60)
        for i in range(4):
            with self.assertRaises(AuthError):
                authenticate(self.db, "amina@example.com", "wrong", throttle, now=1000.0 + i)
        with self.assertRaises(AuthError) as ctx:
            authenticate(self.db, "amina@example.com", "wrong", throttle, now=1004.0)
        self.assertIn("temporarily locked", ctx.exception.message)

        # even the right password is refused while locked
        with self.assertRaises(AuthError) as ctx:
            authenticate(self.db, "amina@example.com", "secret1", throttle, now=1014.0)
        self.assertEqual(ctx.exception.message, "Too many failed attempts. Please wait 50 seconds before trying again.")

        user = authenticate(self.db, "amina@example.com", "secret1", throttle, now=1065.0)
        self.assertEqual(user.id, self.user.id)
        self.assertEqual(throttle.failed_attempts, [])

    def test_stale_attempts_are_pruned(self):
        throttle = LoginThrottle(max_attempts=2)
        with self.assertRaises(AuthError):
            authenticate(self.db, "amina@example.com", "wrong", throttle, now=0.0)
        with self.assertRaises(AuthError) as ctx:
            authenticate(self.db, "amina@example.com", "wrong", throttle, now=301.0)
        self.assertEqual(ctx.exception.message, "Invalid credentials")
        self.assertIsNone(throttle.lock_until)

    def test_api_token(self):
        token = issue_api_token(self.db, self.user)
        user_id, _, secret = token.partition(".")

        self.assertEqual(user_id, str(self.user.id))
        self.assertNotIn(secret, self.user.api_token_hash)
        self.assertEqual(user_for_token(self.db, token).id, self.user.id)

        other = sign_up(self.db, "other@example.com", "secret2")
        for forged in (None, "", secret, f"{other.id}.{secret}", f"{self.user.id}.wrong", "abc.def"):
            self.assertIsNone(user_for_token(self.db, forged), forged)

    def test_reissue_and_revoke_token(self):
        first = issue_api_token(self.db, self.user)
        second = issue_api_token(self.db, self.user)
        self.assertIsNone(user_for_token(self.db, first))
        self.assertIsNotNone(user_for_token(self.db, second))

        revoke_api_token(self.db, self.user)
        self.assertIsNone(user_for_token(self.db, second))

    def test_update_password(self):
        update_password(self.db, self.user.id, "newsecret", "newsecret")
        self.assertTrue(check_password("newsecret", self.user.password_hash))

        with self.assertRaises(ValidationError):
            update_password(self.db, self.user.id, "abc")
        with self.assertRaises(ValidationError):
            update_password(self.db, self.user.id, "newsecret", "other")
        with self.assertRaises(AuthError):
            update_password(self.db, 999, "newsecret")

    def test_update_profile(self):
        user = update_profile(self.db, self.user.id, currency="USD", avatar_url="finora_data/avatars/1.png")
        self.assertEqual(user.currency, "USD")
        self.assertEqual(user.username, "Amina")
        self.assertEqual(user.avatar_url, "finora_data/avatars/1.png")


if __name__ == "__main__":
    unittest.main()
