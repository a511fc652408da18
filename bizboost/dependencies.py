from functools import lru_cache
from typing import Optional

from fastapi import Depends, Request
from sqlalchemy.orm import Session

from bizboost.auth import validate_session
from bizboost.config import get_settings
from bizboost.database import get_db
from bizboost.errors import ForbiddenError
from bizboost.logging import get_logger
from bizboost.models import User
from bizboost.notifications import EmailNotifier
from bizboost.oauth import GoogleTokenVerifier
from bizboost.signup import InMemoryPendingSignupStore, SignupService

logger = get_logger(__name__)


def get_session_token(request: Request) -> Optional[str]:
    """
    Read the session token from the configured header.
    Header lookup is case-insensitive.
    """
    return request.headers.get(get_settings().token_header)


def get_current_user(
    token: Optional[str] = Depends(get_session_token),
    db: Session = Depends(get_db),
) -> User:
    """
    Authentication gate. Guests and members both pass.

    Any session failure surfaces as a 401 through the AuthError handler;
    the failure kind is logged by the validator.
    """
    return validate_session(db, token)


def require_member(user: User = Depends(get_current_user)) -> User:
    """
    Capability gate on top of authentication: guests get 403.
    """
    if user.is_guest:
        logger.info("member_required", user_id=user.id)
        raise ForbiddenError("Guests cannot perform this action")
    return user


@lru_cache
def get_signup_service() -> SignupService:
    """
    Process-wide signup service. Pending registrations live in its store.
    """
    settings = get_settings()
    return SignupService(
        store=InMemoryPendingSignupStore(),
        notifier=EmailNotifier.from_settings(settings),
        settings=settings,
    )


@lru_cache
def get_oauth_verifier() -> GoogleTokenVerifier:
    return GoogleTokenVerifier(get_settings().google_client_id)
