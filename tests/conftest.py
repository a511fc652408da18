import os
import tempfile

# Settings are cached on first use, so the environment is prepared before any
# bizboost import. The application engine points at a throwaway file; tests
# get their own per-test database through dependency overrides.
_test_tmp_dir = tempfile.mkdtemp(prefix="bizboost_test_")
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_test_tmp_dir}/app.db")
os.environ.setdefault("DEBUG", "false")
os.environ.setdefault("EXPOSE_DEV_CODE", "true")
os.environ.setdefault("GOOGLE_CLIENT_ID", "test-client-id.apps.googleusercontent.com")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from bizboost.config import get_settings  # noqa: E402
from bizboost.database import build_engine, build_session_factory, get_db, init_db  # noqa: E402
from bizboost.dependencies import get_oauth_verifier, get_signup_service  # noqa: E402
from bizboost.errors import NotificationError, ProviderVerificationError  # noqa: E402
from bizboost.main import app  # noqa: E402
from bizboost.oauth import OAuthIdentity  # noqa: E402
from bizboost.signup import InMemoryPendingSignupStore, SignupService  # noqa: E402


class RecordingNotifier:
    """Stands in for the mail channel and remembers what was sent."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send_verification_code(self, to_email, username, code, ttl_minutes):
        if self.fail:
            raise NotificationError()
        self.sent.append({"email": to_email, "username": username, "code": code})

    def last_code(self, email):
        for message in reversed(self.sent):
            if message["email"] == email:
                return message["code"]
        return None


class FakeGoogleVerifier:
    """Maps assertion strings to identities; anything else is rejected."""

    def __init__(self):
        self.identities = {}

    def verify(self, assertion):
        identity = self.identities.get(assertion)
        if identity is None:
            raise ProviderVerificationError()
        return identity

    def register(self, assertion, subject, email, name=None, picture=None):
        self.identities[assertion] = OAuthIdentity(subject=subject, email=email, name=name, picture=picture)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'test.db'}")
    init_db(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return build_session_factory(engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def signup_service(notifier, settings):
    return SignupService(store=InMemoryPendingSignupStore(), notifier=notifier, settings=settings)


@pytest.fixture
def google():
    return FakeGoogleVerifier()


@pytest.fixture
def client(session_factory, signup_service, google):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_signup_service] = lambda: signup_service
    app.dependency_overrides[get_oauth_verifier] = lambda: google
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()