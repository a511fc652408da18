from argon2 import PasswordHasher
from argon2.exceptions import VerifyMismatchError, InvalidHashError
import secrets
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple
from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from bizboost.config import get_settings
from bizboost.errors import (
    ConflictError,
    InvalidCredentialsError,
    InvalidSessionError,
    NoSessionError,
    SessionExpiredError,
)
from bizboost.logging import get_logger
from bizboost.models import Role, User
from bizboost.oauth import OAuthIdentity

logger = get_logger(__name__)

# Argon2 hasher with secure defaults
# Argon2id is recommended variant (combines Argon2i and Argon2d)
ph = PasswordHasher()

# Verified against when no account matches, so unknown users cost the same as wrong passwords
_DUMMY_HASH = ph.hash(secrets.token_hex(16))


def utcnow() -> datetime:
    """Naive UTC timestamp, matching what the database stores."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def normalize_identity(value: str) -> str:
    """
    Canonical form for usernames and emails: trimmed and case-folded.
    All comparisons and unique constraints operate on this form.
    """
    return value.strip().casefold()


def hash_password(password: str) -> str:
    """
    Hash password using Argon2id.

    Returns hash string that includes algorithm parameters and salt.
    Format: $argon2id$v=19$m=65536,t=3,p=4$salt$hash
    """
    return ph.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    """
    Verify password against stored hash.

    Uses constant-time comparison internally to prevent timing attacks.
    Returns False for any error to avoid information leakage.
    """
    try:
        return ph.verify(password_hash, password)
    except (VerifyMismatchError, InvalidHashError):
        return False


def generate_session_token() -> str:
    """
    Generate cryptographically secure session token.

    Uses 32 bytes (256 bits) of randomness.
    Hex encoded = 64 character string.
    """
    return secrets.token_hex(32)


def issue_token(lifetime: timedelta, now: Optional[datetime] = None) -> Tuple[str, datetime]:
    """
    Produce a fresh token and its expiry. Nothing is persisted here.
    """
    now = now or utcnow()
    return generate_session_token(), now + lifetime


def session_lifetime(role: Role) -> timedelta:
    settings = get_settings()
    if role == Role.GUEST:
        return timedelta(hours=settings.guest_session_expire_hours)
    return timedelta(hours=settings.session_expire_hours)


def commit_or_conflict(db: Session, message: str) -> None:
    """
    Commit, translating any uniqueness violation into ConflictError.

    Check-then-create in application code is not race-free, so the unique
    indexes decide and the loser of a race ends up here.
    """
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        logger.warning("uniqueness_violation", message=message)
        raise ConflictError(message)


def start_session(
    db: Session,
    user: User,
    now: Optional[datetime] = None,
    conflict_message: str = "Account conflict detected",
) -> str:
    """
    Issue a new token for user, replacing any previous one, and commit.

    Works for users that are still pending insertion, so account creation
    and the first session land in the same transaction.
    Returns the token.
    """
    token, expires_at = issue_token(session_lifetime(user.role), now)
    user.session_token = token
    user.session_expires_at = expires_at

    commit_or_conflict(db, conflict_message)
    db.refresh(user)

    logger.info("session_started", user_id=user.id, role=user.role.value)
    return token


def promote_to_member(user: User) -> None:
    """Members have no lifetime ceiling."""
    user.role = Role.MEMBER
    user.guest_expires_at = None


def create_guest(db: Session, now: Optional[datetime] = None) -> User:
    """
    Create an anonymous guest with a live session and a hard lifetime.
    """
    settings = get_settings()
    now = now or utcnow()

    user = User(
        role=Role.GUEST,
        guest_expires_at=now + timedelta(hours=settings.guest_lifetime_hours),
    )
    db.add(user)
    start_session(db, user, now, conflict_message="User creation failed")
    return user


def _delete_identity(db: Session, user: User) -> None:
    db.query(User).filter(User.id == user.id).delete(synchronize_session=False)
    db.expunge(user)
    db.commit()


def _clear_session(db: Session, user: User) -> None:
    db.query(User).filter(User.id == user.id).update(
        {User.session_token: None, User.session_expires_at: None},
        synchronize_session=False,
    )
    db.commit()


# What ending a session means for each role: guests have no account to
# return to, members keep theirs and only lose the token.
_END_SESSION = {
    Role.GUEST: _delete_identity,
    Role.MEMBER: _clear_session,
}


def end_session(db: Session, user: User) -> None:
    """
    Logout, or expiry cleanup. Guests are deleted, members are signed out.
    """
    user_id, role = user.id, user.role
    _END_SESSION[role](db, user)
    logger.info("session_ended", user_id=user_id, role=role.value)


def _reject(error, **fields):
    logger.info("session_rejected", kind=error.kind, **fields)
    return error


def validate_session(db: Session, token: Optional[str], now: Optional[datetime] = None) -> User:
    """
    Resolve a token to its user.

    Raises NoSessionError, InvalidSessionError or SessionExpiredError.
    Expired state is cleaned up before raising. A successful validation
    writes nothing; expiry is fixed when the token is issued.
    """
    if not token:
        raise _reject(NoSessionError())

    settings = get_settings()
    # Shape check before touching storage
    if (
        not isinstance(token, str)
        or not token.isascii()
        or not settings.token_min_length <= len(token) <= settings.token_max_length
    ):
        raise _reject(InvalidSessionError(), reason="malformed")

    user = db.query(User).filter(User.session_token == token).first()
    if user is None:
        raise _reject(InvalidSessionError(), reason="unknown")

    now = now or utcnow()
    user_id, role = user.id, user.role

    if user.session_expires_at is None or now >= user.session_expires_at:
        end_session(db, user)
        raise _reject(SessionExpiredError(), user_id=user_id, role=role.value, reason="session")

    if role == Role.GUEST and user.guest_expires_at is not None and now >= user.guest_expires_at:
        end_session(db, user)
        raise _reject(SessionExpiredError(), user_id=user_id, role=role.value, reason="guest_lifetime")

    return user


def cleanup_expired_sessions(db: Session, now: Optional[datetime] = None) -> int:
    """
    Sweep expired state in bulk: delete lapsed guests, sign out lapsed members.

    Called on startup. Validation performs the same cleanup lazily.
    Returns number of users affected.
    """
    now = now or utcnow()

    guests = db.query(User).filter(
        User.role == Role.GUEST,
        or_(
            User.session_expires_at.is_(None),
            User.session_expires_at <= now,
            User.guest_expires_at <= now,
        ),
    ).delete(synchronize_session=False)

    members = db.query(User).filter(
        User.role == Role.MEMBER,
        User.session_expires_at <= now,
    ).update(
        {User.session_token: None, User.session_expires_at: None},
        synchronize_session=False,
    )

    db.commit()
    logger.info("expired_sessions_swept", guests_deleted=guests, members_signed_out=members)
    return guests + members


def authenticate_password(
    db: Session, identity: str, password: str, now: Optional[datetime] = None
) -> str:
    """
    Log in with username-or-email and password. Returns a fresh token.

    No indication whether the identity or the password was wrong.
    """
    key = normalize_identity(identity)
    # Usernames never contain @, so the shape of the key picks the column
    column = User.email if "@" in key else User.username
    user = db.query(User).filter(column == key).first()

    if user is None or not user.password_hash:
        verify_password(password, _DUMMY_HASH)
        raise InvalidCredentialsError()

    if not verify_password(password, user.password_hash):
        raise InvalidCredentialsError()

    promote_to_member(user)
    return start_session(db, user, now)


def login_with_oauth(db: Session, identity: OAuthIdentity, now: Optional[datetime] = None) -> str:
    """
    Log in with a verified Google identity, creating or linking the account.

    Lookup is by subject first, then by email so an existing password
    account picks up the Google link. Profile data of existing accounts is
    left alone. Returns a fresh token.
    """
    email = normalize_identity(identity.email)

    user = db.query(User).filter(User.google_id == identity.subject).first()
    if user is None:
        user = db.query(User).filter(User.email == email).first()

    if user is None:
        user = User(
            role=Role.MEMBER,
            google_id=identity.subject,
            email=email,
            name=identity.name,
            avatar_url=identity.picture,
        )
        db.add(user)
        logger.info("oauth_account_created", provider="google")
    elif user.google_id is None:
        user.google_id = identity.subject
        logger.info("oauth_account_linked", user_id=user.id, provider="google")
    elif user.google_id != identity.subject:
        raise ConflictError("Account conflict detected")

    promote_to_member(user)
    return start_session(db, user, now)
