from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from bizboost.auth import authenticate_password, login_with_oauth
from bizboost.config import get_settings
from bizboost.database import get_db
from bizboost.dependencies import get_oauth_verifier, get_signup_service
from bizboost.oauth import GoogleTokenVerifier
from bizboost.schemas import (
    GoogleLoginRequest,
    LoginRequest,
    SignupStartRequest,
    SignupStartResponse,
    SignupVerifyRequest,
    TokenResponse,
)
from bizboost.signup import SignupService

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/signup/start", response_model=SignupStartResponse, status_code=status.HTTP_202_ACCEPTED)
def signup_start(
    request: SignupStartRequest,
    db: Session = Depends(get_db),
    signup: SignupService = Depends(get_signup_service),
):
    """
    Begin email-code signup.

    Process:
    1. Validate input (shape by Pydantic, rules by the signup service)
    2. Normalize username and email
    3. Reject if either is already registered
    4. Hash password and generate a one-time code
    5. Email the code, then hold the pending registration

    Error cases:
    - 400: Validation failed
    - 409: Username or email already registered
    - 502: Verification email could not be sent
    """
    entry = signup.start(db, request.username, request.email, request.password)

    response = SignupStartResponse(message="Verification code sent")
    if get_settings().expose_dev_code:
        response.dev_code = entry.code
    return response


@router.post("/signup/verify", response_model=TokenResponse)
def signup_verify(
    request: SignupVerifyRequest,
    db: Session = Depends(get_db),
    signup: SignupService = Depends(get_signup_service),
):
    """
    Complete signup with the emailed code and start the first session.

    Error cases:
    - 400: No live pending signup (expired, consumed or never started)
    - 400: Wrong code
    - 409: Username or email registered in the meantime
    """
    _, token = signup.verify(db, request.email, request.code)
    return TokenResponse(token=token)


@router.post("/login", response_model=TokenResponse)
def login(
    request: LoginRequest,
    db: Session = Depends(get_db),
):
    """
    Authenticate with username-or-email and password.

    Security notes:
    - Generic error message prevents account enumeration
    - Constant-time password verification prevents timing attacks
    - Any previous token stops working
    """
    token = authenticate_password(db, request.identity, request.password)
    return TokenResponse(token=token)


@router.post("/google", response_model=TokenResponse)
def google_login(
    request: GoogleLoginRequest,
    db: Session = Depends(get_db),
    verifier: GoogleTokenVerifier = Depends(get_oauth_verifier),
):
    """
    Handle Google login.

    Verifies the Google ID token, then creates, links or refreshes the account.

    Error cases:
    - 400: Google could not vouch for the token
    - 409: Account conflict detected
    """
    identity = verifier.verify(request.token)
    token = login_with_oauth(db, identity)
    return TokenResponse(token=token)
