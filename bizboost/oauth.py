from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import jwt
from jwt import PyJWKClient
from jwt.exceptions import InvalidTokenError, PyJWKClientError

from bizboost.errors import ProviderVerificationError
from bizboost.logging import get_logger

logger = get_logger(__name__)

GOOGLE_CERTS_URL = "https://www.googleapis.com/oauth2/v3/certs"
GOOGLE_ISSUERS = ["accounts.google.com", "https://accounts.google.com"]


@dataclass(frozen=True)
class OAuthIdentity:
    """What a provider vouches for after verifying an ID token."""

    subject: str
    email: str
    name: Optional[str] = None
    picture: Optional[str] = None


class GoogleTokenVerifier:
    """Verifies Google ID tokens against Google's published signing keys."""

    def __init__(self, client_id: Optional[str], *, jwk_client: Optional[PyJWKClient] = None) -> None:
        self.client_id = client_id
        self._jwk_client = jwk_client

    def _keys(self) -> PyJWKClient:
        if self._jwk_client is None:
            self._jwk_client = PyJWKClient(GOOGLE_CERTS_URL)
        return self._jwk_client

    def verify(self, assertion: str) -> OAuthIdentity:
        if not self.client_id:
            logger.error("oauth_not_configured", provider="google")
            raise ProviderVerificationError()

        try:
            signing_key = self._keys().get_signing_key_from_jwt(assertion).key
            payload = jwt.decode(
                assertion,
                signing_key,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=GOOGLE_ISSUERS,
                leeway=60,
            )
        except PyJWKClientError as exc:
            logger.warning("oauth_keys_unavailable", provider="google", error=str(exc))
            raise ProviderVerificationError()
        except InvalidTokenError as exc:
            logger.info("oauth_assertion_rejected", provider="google", error=str(exc))
            raise ProviderVerificationError()

        return identity_from_claims(payload)


def identity_from_claims(payload: dict) -> OAuthIdentity:
    subject = payload.get("sub")
    email = payload.get("email")
    if not isinstance(subject, str) or not subject or not isinstance(email, str) or not email.strip():
        raise ProviderVerificationError()

    if payload.get("email_verified") is False:
        raise ProviderVerificationError("Google email is not verified")

    return OAuthIdentity(
        subject=subject,
        email=email,
        name=payload.get("name"),
        picture=payload.get("picture"),
    )
