"""
Session and Credential Service

Gates the dashboard behind a single shared password.

- CredentialStore holds a salted PBKDF2 hash of the dashboard password and
  compares candidates in constant time.
- SessionStore issues opaque random tokens and tracks when each was created.
  Sessions older than the configured TTL are removed on first use and
  swept whenever a new session is opened.

Both stores are plain objects injected through FastAPI dependencies, so each
application (and each test) gets its own state.
"""

import hashlib
import hmac
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Optional

from churnguard.core.config import Settings


logger = logging.getLogger(__name__)

DEFAULT_USER_ID = "admin"
PBKDF2_ITERATIONS = 200_000


class AuthenticationError(Exception):
    """Raised when a password or session token is not accepted."""


class SessionExpiredError(AuthenticationError):
    """Raised when a session token exists but is older than the TTL."""


class PasswordPolicyError(ValueError):
    """Raised when a new password does not meet the minimum requirements."""


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Credentials
# =============================================================================


class CredentialStore:
    """
    Salted password hash for the dashboard.

    Args:
        password: Initial plaintext password.
        min_password_length: Minimum length accepted by change_password.
    """

    def __init__(self, password: str, min_password_length: int = 8):
        self.min_password_length = min_password_length
        self._salt = secrets.token_bytes(16)
        self._hash = self._derive(password)

    def _derive(self, password: str) -> bytes:
        return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), self._salt, PBKDF2_ITERATIONS)

    def verify(self, password: str) -> bool:
        return hmac.compare_digest(self._derive(password or ""), self._hash)

    def change_password(self, current_password: str, new_password: str) -> None:
        """
        Replace the password after checking the current one.

        Raises:
            AuthenticationError: If current_password is wrong.
            PasswordPolicyError: If new_password is shorter than min_password_length.
        """
        if not self.verify(current_password):
            logger.warning("Password change rejected: current password is incorrect")
            raise AuthenticationError("Current password is incorrect")
        if len(new_password or "") < self.min_password_length:
            raise PasswordPolicyError(
                f"New password must be at least {self.min_password_length} characters long"
            )
        self._salt = secrets.token_bytes(16)
        self._hash = self._derive(new_password)
        logger.info("Dashboard password changed")


# =============================================================================
# Sessions
# =============================================================================


@dataclass(frozen=True)
class SessionRecord:
    token: str
    user_id: str
    created_at: datetime


class SessionStore:
    """
    In-process session table keyed by opaque token.

    Args:
        credentials: Password store consulted by login().
        ttl: Session lifetime.
        clock: Returns the current UTC time; replaceable in tests.
    """

    def __init__(
        self,
        credentials: CredentialStore,
        ttl: timedelta = timedelta(hours=24),
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.credentials = credentials
        self.ttl = ttl
        self._clock = clock
        self._sessions: Dict[str, SessionRecord] = {}

    @classmethod
    def from_settings(cls, settings: Settings) -> "SessionStore":
        credentials = CredentialStore(settings.dashboard_password, settings.min_password_length)
        return cls(credentials, ttl=timedelta(hours=settings.session_ttl_hours))

    def __len__(self) -> int:
        return len(self._sessions)

    def login(self, password: str, user_id: str = DEFAULT_USER_ID) -> SessionRecord:
        """
        Open a session for a correct password.

        Raises:
            AuthenticationError: If the password is wrong.
        """
        if not self.credentials.verify(password):
            logger.warning("Login rejected: invalid password")
            raise AuthenticationError("Invalid password")

        self.purge_expired()
        record = SessionRecord(token=secrets.token_urlsafe(32), user_id=user_id, created_at=self._clock())
        self._sessions[record.token] = record
        logger.info(f"Session opened for {user_id}")
        return record

    def validate(self, token: Optional[str]) -> SessionRecord:
        """
        Look up a live session.

        Raises:
            AuthenticationError: If the token is missing or unknown.
            SessionExpiredError: If the session outlived the TTL (it is removed).
        """
        record = self._sessions.get(token) if token else None
        if record is None:
            raise AuthenticationError("Authentication required")

        if self._is_expired(record, self._clock()):
            # Concurrent requests may race to remove the same record
            self._sessions.pop(token, None)
            logger.info(f"Session for {record.user_id} expired")
            raise SessionExpiredError("Session expired")
        return record

    def _is_expired(self, record: SessionRecord, now: datetime) -> bool:
        return now - record.created_at > self.ttl

    def purge_expired(self) -> int:
        """Drop every expired session. Returns the number removed."""
        now = self._clock()
        expired = [token for token, record in list(self._sessions.items()) if self._is_expired(record, now)]
        for token in expired:
            self._sessions.pop(token, None)
        if expired:
            logger.info(f"Purged {len(expired)} expired sessions")
        return len(expired)

    def logout(self, token: Optional[str]) -> None:
        """Drop a session; unknown tokens are ignored."""
        record = self._sessions.pop(token, None) if token else None
        if record is not None:
            logger.info(f"Session closed for {record.user_id}")

    def change_password(self, current_password: str, new_password: str) -> None:
        self.credentials.change_password(current_password, new_password)


__all__ = [
    "AuthenticationError",
    "SessionExpiredError",
    "PasswordPolicyError",
    "CredentialStore",
    "SessionRecord",
    "SessionStore",
]
