"""
Email-code signup.

Flow:
1. start(username, email, password) -> hash password, generate code, send it,
   hold a pending registration keyed by email
2. User receives email with a numeric code
3. verify(email, code) -> consume the pending registration, create the member,
   start its first session

Pending registrations are process-local and short-lived; a restart drops them
and the user simply starts again. The store is injected so it can be replaced
by a shared TTL-backed one without touching the workflow.
"""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Optional, Protocol, Tuple

from sqlalchemy import or_
from sqlalchemy.orm import Session

from bizboost.auth import hash_password, normalize_identity, start_session, utcnow
from bizboost.config import Settings
from bizboost.errors import (
    ConflictError,
    ExpiredCodeError,
    InvalidCodeError,
    ValidationError,
)
from bizboost.logging import get_logger
from bizboost.models import Role, User
from bizboost.notifications import redact_email

logger = get_logger(__name__)

USERNAME_MAX_LENGTH = 64
DUPLICATE_MESSAGE = "Username or email already registered"


@dataclass(frozen=True)
class PendingRegistration:
    username: str
    email: str
    password_hash: str
    code: str
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class PendingSignupStore(Protocol):
    def get(self, email: str) -> Optional[PendingRegistration]: ...

    def put(self, entry: PendingRegistration) -> None: ...

    def discard(self, email: str, expected: Optional[PendingRegistration] = None) -> bool: ...

    def purge_expired(self, now: datetime) -> int: ...


class InMemoryPendingSignupStore:
    """Dict-backed store. Entries are immutable and swapped whole under one lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: Dict[str, PendingRegistration] = {}

    def get(self, email: str) -> Optional[PendingRegistration]:
        with self._lock:
            return self._entries.get(email)

    def put(self, entry: PendingRegistration) -> None:
        with self._lock:
            self._entries[entry.email] = entry

    def discard(self, email: str, expected: Optional[PendingRegistration] = None) -> bool:
        """Remove the entry for email; with expected, only if it is still that entry."""
        with self._lock:
            current = self._entries.get(email)
            if current is None or (expected is not None and current is not expected):
                return False
            del self._entries[email]
            return True

    def purge_expired(self, now: datetime) -> int:
        with self._lock:
            stale = [email for email, entry in self._entries.items() if entry.is_expired(now)]
            for email in stale:
                del self._entries[email]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


def generate_code(digits: int = 6) -> str:
    """Uniformly random numeric code, zero padded."""
    return str(secrets.randbelow(10 ** digits)).zfill(digits)


def _codes_match(expected: str, submitted: str) -> bool:
    return secrets.compare_digest(expected.encode("utf-8"), submitted.strip().encode("utf-8"))


class SignupService:
    """Two-step signup: start issues a code, verify promotes it to a member."""

    def __init__(self, store: PendingSignupStore, notifier, settings: Settings) -> None:
        self.store = store
        self.notifier = notifier
        self.settings = settings

    def _ensure_available(self, db: Session, username: str, email: str) -> None:
        existing = db.query(User).filter(or_(User.username == username, User.email == email)).first()
        if existing is not None:
            raise ConflictError(DUPLICATE_MESSAGE)

    def _validate(self, username: str, email: str, password: str) -> None:
        if not username:
            raise ValidationError("Username is required")
        if len(username) > USERNAME_MAX_LENGTH:
            raise ValidationError("Username too long")
        if "@" in username:
            raise ValidationError("Username cannot contain @")
        if "@" not in email:
            raise ValidationError("A valid email is required")
        if len(password) < self.settings.password_min_length:
            raise ValidationError(
                f"Password must be at least {self.settings.password_min_length} characters"
            )
        if len(password) > self.settings.password_max_length:
            raise ValidationError("Password too long")

    def start(
        self,
        db: Session,
        username: str,
        email: str,
        password: str,
        now: Optional[datetime] = None,
    ) -> PendingRegistration:
        """
        Begin a signup and send the verification code.

        The code is sent before the pending entry is stored: a failed send
        raises NotificationError and leaves any earlier entry untouched, so
        nothing unverifiable is ever held. A successful start replaces any
        earlier pending entry for the email.
        """
        now = now or utcnow()
        username = normalize_identity(username)
        email = normalize_identity(email)

        self._validate(username, email, password)
        self._ensure_available(db, username, email)

        entry = PendingRegistration(
            username=username,
            email=email,
            password_hash=hash_password(password),
            code=generate_code(self.settings.signup_code_digits),
            expires_at=now + timedelta(minutes=self.settings.signup_code_ttl_minutes),
        )

        self.notifier.send_verification_code(
            email, username, entry.code, self.settings.signup_code_ttl_minutes
        )

        self.store.purge_expired(now)
        self.store.put(entry)
        logger.info("signup_started", email=redact_email(email))
        return entry

    def verify(
        self,
        db: Session,
        email: str,
        code: str,
        now: Optional[datetime] = None,
    ) -> Tuple[User, str]:
        """
        Consume a verification code and create the member.

        Returns the new user and its session token.
        """
        now = now or utcnow()
        email = normalize_identity(email)

        entry = self.store.get(email)
        if entry is None:
            raise ExpiredCodeError()

        if entry.is_expired(now):
            self.store.discard(email, entry)
            logger.info("signup_code_expired", email=redact_email(email))
            raise ExpiredCodeError()

        if not _codes_match(entry.code, code):
            logger.info("signup_code_mismatch", email=redact_email(email))
            raise InvalidCodeError()

        # Lost a race with another verify or a newer start
        if not self.store.discard(email, entry):
            raise ExpiredCodeError()

        self._ensure_available(db, entry.username, entry.email)

        user = User(
            role=Role.MEMBER,
            username=entry.username,
            email=entry.email,
            password_hash=entry.password_hash,
        )
        db.add(user)
        token = start_session(db, user, now, conflict_message=DUPLICATE_MESSAGE)

        logger.info("signup_verified", user_id=user.id)
        return user, token
