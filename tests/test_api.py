"""End-to-end tests through the HTTP routes."""

from datetime import timedelta

from bizboost.auth import utcnow
from bizboost.models import Role, User

HEADER = "x-user-token"


def auth(token):
    return {HEADER: token}


def new_guest(client):
    res = client.post("/api/users/generate")
    assert res.status_code == 200, res.text
    return res.json()


def sign_up(client, username="alice", email="a@x.com", password="longenough1"):
    res = client.post(
        "/api/auth/signup/start",
        json={"username": username, "email": email, "password": password},
    )
    assert res.status_code == 202, res.text
    code = res.json()["dev_code"]
    res = client.post("/api/auth/signup/verify", json={"email": email, "code": code})
    assert res.status_code == 200, res.text
    return res.json()["token"]


def load_user(session_factory, user_id):
    db = session_factory()
    try:
        return db.query(User).filter(User.id == user_id).first()
    finally:
        db.close()


def test_health(client):
    assert client.get("/").json()["status"] == "running"


class TestGuestSessions:
    def test_generate_guest(self, client):
        body = new_guest(client)

        assert body["role"] == "guest"
        assert body["token"]
        me = client.get("/api/users/me", headers=auth(body["token"]))
        assert me.status_code == 200, me.text
        assert me.json()["id"] == body["id"]
        assert me.json()["role"] == "guest"
        assert me.json()["guest_expires_at"] is not None

    def test_header_name_is_case_insensitive(self, client):
        body = new_guest(client)
        res = client.get("/api/users/me", headers={"X-User-Token": body["token"]})
        assert res.status_code == 200

    def test_missing_and_invalid_tokens(self, client):
        res = client.get("/api/users/me")
        assert res.status_code == 401
        assert res.json()["kind"] == "no_session"

        res = client.get("/api/users/me", headers=auth("0" * 64))
        assert res.status_code == 401
        assert res.json()["kind"] == "invalid_session"

        res = client.get("/api/users/me", headers=auth("short"))
        assert res.status_code == 401
        assert res.json()["kind"] == "invalid_session"

    def test_expired_guest_is_deleted(self, client, session_factory):
        body = new_guest(client)
        db = session_factory()
        try:
            guest = db.get(User, body["id"])
            guest.guest_expires_at = utcnow() - timedelta(seconds=1)
            db.commit()
        finally:
            db.close()

        res = client.get("/api/users/me", headers=auth(body["token"]))
        assert res.status_code == 401
        assert res.json()["kind"] == "session_expired"
        assert load_user(session_factory, body["id"]) is None

        res = client.get("/api/users/me", headers=auth(body["token"]))
        assert res.json()["kind"] == "invalid_session"

    def test_guest_logout_deletes_guest(self, client, session_factory):
        body = new_guest(client)

        res = client.post("/api/users/logout", headers=auth(body["token"]))
        assert res.status_code == 200
        assert res.json() == {"message": "Session ended"}
        assert load_user(session_factory, body["id"]) is None


class TestSignup:
    def test_signup_scenario(self, client):
        res = client.post(
            "/api/auth/signup/start",
            json={"username": "alice", "email": "a@x.com", "password": "longenough1"},
        )
        assert res.status_code == 202, res.text
        code = res.json()["dev_code"]
        wrong = "000000" if code != "000000" else "111111"

        res = client.post("/api/auth/signup/verify", json={"email": "a@x.com", "code": wrong})
        assert res.status_code == 400
        assert res.json()["kind"] == "invalid_code"

        res = client.post("/api/auth/signup/verify", json={"email": "a@x.com", "code": code})
        assert res.status_code == 200, res.text
        token = res.json()["token"]

        res = client.post("/api/auth/signup/verify", json={"email": "a@x.com", "code": code})
        assert res.status_code == 400
        assert res.json()["kind"] == "expired"

        me = client.get("/api/users/me", headers=auth(token)).json()
        assert me["role"] == "member"
        assert me["username"] == "alice"
        assert me["email"] == "a@x.com"
        assert "password_hash" not in me

    def test_code_is_emailed(self, client, notifier):
        res = client.post(
            "/api/auth/signup/start",
            json={"username": "alice", "email": "a@x.com", "password": "longenough1"},
        )
        assert notifier.last_code("a@x.com") == res.json()["dev_code"]

    def test_validation_errors_are_400(self, client):
        res = client.post(
            "/api/auth/signup/start",
            json={"username": "alice", "email": "a@x.com", "password": "short"},
        )
        assert res.status_code == 400
        assert res.json()["kind"] == "validation_error"

        res = client.post(
            "/api/auth/signup/start",
            json={"username": "alice", "email": "not-an-email", "password": "longenough1"},
        )
        assert res.status_code == 400
        assert res.json()["kind"] == "validation_error"

    def test_duplicate_signup_conflicts(self, client):
        sign_up(client)

        res = client.post(
            "/api/auth/signup/start",
            json={"username": "Alice", "email": "other@x.com", "password": "longenough1"},
        )
        assert res.status_code == 409
        assert res.json()["kind"] == "conflict"

    def test_mail_failure_is_reported(self, client, notifier):
        notifier.fail = True
        res = client.post(
            "/api/auth/signup/start",
            json={"username": "alice", "email": "a@x.com", "password": "longenough1"},
        )
        assert res.status_code == 502
        assert res.json()["kind"] == "external_service_failure"


class TestPasswordLogin:
    def test_login_rotates_token(self, client):
        old_token = sign_up(client)

        res = client.post("/api/auth/login", json={"identity": "a@x.com", "password": "longenough1"})
        assert res.status_code == 200, res.text
        new_token = res.json()["token"]

        assert client.get("/api/users/me", headers=auth(old_token)).status_code == 401
        assert client.get("/api/users/me", headers=auth(new_token)).status_code == 200

    def test_email_shaped_username_cannot_shadow_an_email(self, client):
        victim = sign_up(client, username="victim", email="b@x.com", password="victimpass")
        victim_id = client.get("/api/users/me", headers=auth(victim)).json()["id"]

        res = client.post(
            "/api/auth/signup/start",
            json={"username": "b@x.com", "email": "m@x.com", "password": "mallorypass"},
        )
        assert res.status_code == 400
        assert res.json()["kind"] == "validation_error"

        res = client.post("/api/auth/login", json={"identity": "B@x.com", "password": "victimpass"})
        assert res.status_code == 200, res.text
        me = client.get("/api/users/me", headers=auth(res.json()["token"])).json()
        assert me["id"] == victim_id

    def test_bad_credentials(self, client):
        sign_up(client)

        wrong = client.post("/api/auth/login", json={"identity": "alice", "password": "wrongwrong"})
        unknown = client.post("/api/auth/login", json={"identity": "zed", "password": "longenough1"})

        assert wrong.status_code == unknown.status_code == 401
        assert wrong.json() == unknown.json()

    def test_member_logout_keeps_account(self, client, session_factory):
        token = sign_up(client)
        user_id = client.get("/api/users/me", headers=auth(token)).json()["id"]

        assert client.post("/api/users/logout", headers=auth(token)).status_code == 200

        user = load_user(session_factory, user_id)
        assert user is not None
        assert user.session_token is None
        assert client.get("/api/users/me", headers=auth(token)).status_code == 401

        res = client.post("/api/auth/login", json={"identity": "alice", "password": "longenough1"})
        assert res.status_code == 200


class TestGoogleLogin:
    def test_google_login(self, client, google):
        google.register("assertion-1", subject="g-1", email="dana@example.com", name="Dana")

        res = client.post("/api/auth/google", json={"token": "assertion-1"})
        assert res.status_code == 200, res.text

        me = client.get("/api/users/me", headers=auth(res.json()["token"])).json()
        assert me["role"] == "member"
        assert me["name"] == "Dana"

    def test_rejected_assertion(self, client):
        res = client.post("/api/auth/google", json={"token": "forged"})
        assert res.status_code == 400
        assert res.json()["kind"] == "provider_verification_failed"

    def test_account_conflict(self, client, google):
        google.register("assertion-1", subject="g-1", email="dana@example.com")
        google.register("assertion-2", subject="g-2", email="dana@example.com")
        client.post("/api/auth/google", json={"token": "assertion-1"})

        res = client.post("/api/auth/google", json={"token": "assertion-2"})
        assert res.status_code == 409


class TestFavourites:
    def test_guests_cannot_favourite(self, client):
        token = new_guest(client)["token"]

        res = client.post("/api/favourites/biz-1", headers=auth(token))
        assert res.status_code == 403
        assert res.json()["kind"] == "forbidden"

        res = client.get("/api/favourites/biz-1", headers=auth(token))
        assert res.json() == {"favourited": False}
        assert client.get("/api/users/favourites", headers=auth(token)).json() == {"favourites": []}

    def test_member_toggles_favourite(self, client):
        token = sign_up(client)

        res = client.post("/api/favourites/biz-1", headers=auth(token))
        assert res.json() == {"success": True, "favourited": True}
        assert client.get("/api/favourites/biz-1", headers=auth(token)).json() == {"favourited": True}
        assert client.get("/api/users/favourites", headers=auth(token)).json() == {"favourites": ["biz-1"]}

        res = client.post("/api/favourites/biz-1", headers=auth(token))
        assert res.json() == {"success": True, "favourited": False}
        assert client.get("/api/users/favourites", headers=auth(token)).json() == {"favourites": []}

    def test_favourites_require_session(self, client):
        assert client.post("/api/favourites/biz-1").status_code == 401


class TestProfiles:
    def test_email_only_visible_to_owner(self, client):
        alice = sign_up(client)
        bob = sign_up(client, username="bob", email="b@x.com")
        alice_id = client.get("/api/users/me", headers=auth(alice)).json()["id"]

        own = client.get(f"/api/users/{alice_id}", headers=auth(alice)).json()
        other = client.get(f"/api/users/{alice_id}", headers=auth(bob)).json()

        assert own["email"] == "a@x.com"
        assert other["email"] is None
        assert other["username"] == "alice"
        assert other["role"] == Role.MEMBER.value

    def test_unknown_or_malformed_id(self, client):
        token = new_guest(client)["token"]
        assert client.get("/api/users/999999", headers=auth(token)).status_code == 404
        assert client.get("/api/users/not-an-id", headers=auth(token)).status_code == 404
        assert client.get("/api/users/" + "9" * 30, headers=auth(token)).status_code == 404
        assert client.get("/api/users/\u00b2", headers=auth(token)).status_code == 404
