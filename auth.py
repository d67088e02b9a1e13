import logging
import re
import secrets
import time
from dataclasses import dataclass, field
from typing import List, Optional

import bcrypt
from sqlalchemy.exc import IntegrityError

from config import DEFAULT_CURRENCY, LOGIN_LOCK_SECONDS, LOGIN_MAX_ATTEMPTS
from database import User
from errors import AuthError, ValidationError

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
ATTEMPT_WINDOW_SECONDS = 300
_EMAIL = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def check_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))


def _validate_password(password: str) -> None:
    if len(password or "") < MIN_PASSWORD_LENGTH:
        raise ValidationError(f"Password must be at least {MIN_PASSWORD_LENGTH} characters.")


@dataclass
class LoginThrottle:
    """Failed-attempt tracker kept per browser session."""

    max_attempts: int = LOGIN_MAX_ATTEMPTS
    lock_seconds: int = LOGIN_LOCK_SECONDS
    failed_attempts: List[float] = field(default_factory=list)
    lock_until: Optional[float] = None

    def seconds_locked(self, now: float) -> int:
        if self.lock_until and now < self.lock_until:
            return int(self.lock_until - now)
        return 0

    def record_failure(self, now: float) -> None:
        # Prune stale attempts (keep last 5 minutes)
        self.failed_attempts = [t for t in self.failed_attempts if now - t < ATTEMPT_WINDOW_SECONDS]
        self.failed_attempts.append(now)
        if len(self.failed_attempts) >= self.max_attempts:
            self.lock_until = now + self.lock_seconds

    def reset(self) -> None:
        self.failed_attempts = []
        self.lock_until = None


def sign_up(db, email: str, password: str, username: str = "") -> User:
    email = (email or "").strip().lower()
    if not _EMAIL.match(email):
        raise ValidationError("Enter a valid email address.")
    _validate_password(password)

    if db.query(User).filter(User.email == email).first():
        raise ValidationError("An account with this email already exists.")

    user = User(
        email=email,
        username=(username or "").strip() or email.split("@")[0],
        password_hash=hash_password(password),
        currency=DEFAULT_CURRENCY,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise ValidationError("An account with this email already exists.")
    db.refresh(user)
    logger.info("New account created for %s", email)
    return user


def authenticate(db, email: str, password: str, throttle: LoginThrottle, now: Optional[float] = None) -> User:
    now = time.time() if now is None else now
    wait_for = throttle.seconds_locked(now)
    if wait_for:
        raise AuthError(f"Too many failed attempts. Please wait {wait_for} seconds before trying again.", status_code=429)

    email = (email or "").strip().lower()
    user = db.query(User).filter(User.email == email).first()
    if user and check_password(password, user.password_hash):
        throttle.reset()
        return user

    throttle.record_failure(now)
    logger.warning("Failed login attempt for %s", email)
    if throttle.lock_until:
        raise AuthError("Too many failed attempts. Login temporarily locked for %d seconds." % throttle.lock_seconds)
    raise AuthError("Invalid credentials")


def issue_api_token(db, user: User) -> str:
    """Create a new API token for ``user``, replacing any previous one.

    The token is ``<user id>.<secret>``; only a bcrypt hash of the secret is
    stored, so the plain token is returned once and cannot be shown again.
    """
    secret = secrets.token_urlsafe(32)
    user.api_token_hash = hash_password(secret)
    db.commit()
    logger.info("API token issued for user %s", user.id)
    return f"{user.id}.{secret}"


def user_for_token(db, token: Optional[str]) -> Optional[User]:
    user_id, _, secret = (token or "").strip().partition(".")
    if not user_id.isdigit() or not secret:
        return None
    user = db.query(User).filter(User.id == int(user_id)).first()
    if user is None or not check_password(secret, user.api_token_hash):
        return None
    return user


def revoke_api_token(db, user: User) -> None:
    user.api_token_hash = None
    db.commit()


def update_password(db, user_id: int, new_password: str, confirm: Optional[str] = None) -> None:
    _validate_password(new_password)
    if confirm is not None and confirm != new_password:
        raise ValidationError("Passwords do not match.")
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthError("Session expired. Please sign in again.")
    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info("Password updated for user %s", user_id)


def update_profile(db, user_id: int, username: Optional[str] = None, currency: Optional[str] = None,
                   avatar_url: Optional[str] = None) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise AuthError("Session expired. Please sign in again.")
    if username is not None:
        user.username = username.strip() or user.username
    if currency is not None:
        user.currency = currency
    if avatar_url is not None:
        user.avatar_url = avatar_url
    db.commit()
    db.refresh(user)
    return user
