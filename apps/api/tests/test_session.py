"""Tests for admin login, logout and session cookies."""

import time

from fastapi.testclient import TestClient

from tenantgate_api.auth import codec
from tenantgate_api.auth.session import create_session_token

from conftest import PASSWORD_A, login


def _without_trace(body: dict) -> dict:
    return {key: value for key, value in body.items() if key != "traceId"}


class TestLogin:
    """Credential login."""

    def test_login_sets_session_cookie(self, client, tenant_a):
        """Test successful login returns ids and an httpOnly lax cookie."""
        tenant, user = tenant_a
        response = login(client, user.email, PASSWORD_A)
        body = response.json()
        assert body["ok"] is True
        assert body["data"] == {"userId": user.id, "tenantId": tenant.id}

        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("tg_session=")
        assert "HttpOnly" in set_cookie
        assert "samesite=lax" in set_cookie.lower()
        assert "Path=/" in set_cookie
        assert "Max-Age=2592000" in set_cookie

    def test_cookie_not_secure_outside_production(self, client, tenant_a):
        response = login(client, tenant_a[1].email, PASSWORD_A)
        assert "secure" not in response.headers["set-cookie"].lower()

    def test_cookie_secure_in_production(self, app, tenant_a, monkeypatch):
        """Test that production sessions are only sent over HTTPS."""
        from tenantgate_api.settings import get_settings

        monkeypatch.setenv("ENVIRONMENT", "production")
        get_settings.cache_clear()
        with TestClient(app, base_url="https://testserver") as test_client:
            response = login(test_client, tenant_a[1].email, PASSWORD_A)
        set_cookie = response.headers["set-cookie"]
        assert set_cookie.startswith("tg_session=")
        assert "Secure" in set_cookie
        assert "HttpOnly" in set_cookie

    def test_login_email_is_case_insensitive(self, client, tenant_a):
        login(client, "  OWNER@Acme.Test ", PASSWORD_A)

    def test_wrong_password_and_unknown_email_look_identical(self, client, tenant_a):
        """Test that the two failure paths cannot be told apart by the body."""
        wrong_password = client.post(
            "/api/auth/login", json={"email": tenant_a[1].email, "password": "not-the-password"}
        )
        unknown_email = client.post(
            "/api/auth/login", json={"email": "nobody@nowhere.test", "password": "not-the-password"}
        )
        assert wrong_password.status_code == unknown_email.status_code == 401
        assert _without_trace(wrong_password.json()) == _without_trace(unknown_email.json())
        assert wrong_password.json()["error"] == {"code": "UNAUTHORIZED", "message": "Login failed."}
        assert "set-cookie" not in wrong_password.headers

    def test_login_updates_last_login(self, client, db, tenant_a):
        _, user = tenant_a
        assert user.last_login_at is None
        login(client, user.email, PASSWORD_A)
        db.expire_all()
        db.refresh(user)
        assert user.last_login_at is not None


class TestMe:
    """Current user resolution from the cookie."""

    def test_me_with_session(self, admin_a, tenant_a):
        response = admin_a.get("/api/auth/me")
        assert response.status_code == 200
        data = response.json()["data"]
        assert data["user"]["email"] == "owner@acme.test"
        assert data["tenant"]["slug"] == "acme"

    def test_me_without_session(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "UNAUTHENTICATED"

    def test_legacy_cookie_name_accepted(self, make_client, tenant_a):
        """Test that sessions written under an older cookie name still work."""
        tenant, user = tenant_a
        test_client = make_client()
        test_client.cookies.set("tg_admin_session_v1", create_session_token(user, tenant))
        assert test_client.get("/api/auth/me").status_code == 200
        assert test_client.get("/api/admin/v1/mobile/keys").status_code == 200

    def test_chunked_cookie_accepted(self, make_client, tenant_a):
        """Test that a token split across name.0, name.1 is reassembled."""
        tenant, user = tenant_a
        token = create_session_token(user, tenant)
        middle = len(token) // 2
        test_client = make_client()
        test_client.cookies.set("tg_session.0", token[:middle])
        test_client.cookies.set("tg_session.1", token[middle:])
        assert test_client.get("/api/auth/me").status_code == 200

    def test_expired_session_is_no_session(self, make_client, tenant_a):
        tenant, user = tenant_a
        expired = codec.issue(
            {"uid": user.id, "tid": tenant.id, "tslug": tenant.slug, "role": user.role},
            codec.get_session_secret(),
            60,
            purpose=codec.PURPOSE_SESSION,
            now=int(time.time()) - 3600,
        )
        test_client = make_client()
        test_client.cookies.set("tg_session", expired)
        assert test_client.get("/api/auth/me").status_code == 401
        response = test_client.get("/admin", follow_redirects=False)
        assert response.status_code == 307

    def test_session_for_other_tenant_rejected(self, make_client, tenant_a, tenant_b):
        """Test that a token whose tenant does not match the user's is ignored."""
        _, user = tenant_a
        other_tenant, _ = tenant_b
        forged = codec.issue(
            {"uid": user.id, "tid": other_tenant.id, "tslug": other_tenant.slug, "role": "OWNER"},
            codec.get_session_secret(),
            60,
            purpose=codec.PURPOSE_SESSION,
        )
        test_client = make_client()
        test_client.cookies.set("tg_session", forged)
        assert test_client.get("/api/auth/me").status_code == 401


class TestLogout:
    """Logout clears every recognised cookie."""

    def test_logout_expires_cookies(self, make_client, tenant_a):
        tenant, user = tenant_a
        test_client = make_client()
        login(test_client, user.email, PASSWORD_A)
        test_client.cookies.set("tg_session.0", "chunk")
        test_client.cookies.set("tg_admin_session_v1", "legacy")
        test_client.cookies.set("other_session_cookie", "x")
        test_client.cookies.set("unrelated", "keep")

        response = test_client.post("/api/auth/logout")
        assert response.status_code == 200
        assert response.json()["data"] == {"loggedOut": True}

        cleared = {
            header.split("=", 1)[0]
            for header in response.headers.get_list("set-cookie")
            if "Max-Age=0" in header
        }
        assert {"tg_session", "tg_session.0", "tg_admin_session_v1", "other_session_cookie"} <= cleared
        assert "unrelated" not in cleared
        assert test_client.get("/api/auth/me").status_code == 401

    def test_logout_without_session_succeeds(self, client):
        assert client.post("/api/auth/logout").status_code == 200

    def test_logout_link_redirects_to_login(self, client):
        response = client.get("/api/auth/logout", follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login"


class TestRegister:
    """Self-service tenant registration."""

    def test_register_creates_tenant_and_signs_in(self, client):
        response = client.post(
            "/api/auth/register",
            json={
                "tenantName": "Initech AG",
                "country": "ch",
                "email": "Boss@Initech.test",
                "password": "long enough password",
                "lastName": "Lumbergh",
            },
        )
        assert response.status_code == 201, response.text
        me = client.get("/api/auth/me").json()["data"]
        assert me["tenant"]["slug"] == "initech-ag"
        assert me["tenant"]["country"] == "CH"
        assert me["user"]["email"] == "boss@initech.test"
        assert me["user"]["emailVerified"] is False

    def test_register_duplicate_email(self, client, tenant_a):
        response = client.post(
            "/api/auth/register",
            json={
                "tenantName": "Other",
                "country": "DE",
                "email": "owner@acme.test",
                "password": "long enough password",
                "lastName": "Doe",
            },
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_TAKEN"

    def test_register_short_password(self, client):
        response = client.post(
            "/api/auth/register",
            json={
                "tenantName": "Short",
                "country": "DE",
                "email": "a@b.test",
                "password": "short",
                "lastName": "Doe",
            },
        )
        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "INVALID_BODY"
        # Field hints only, submitted values are not echoed
        assert "short" not in str(error["details"]).replace("string_too_short", "")

    def test_register_race_is_conflict_not_500(self, client, db, tenant_a, monkeypatch):
        """Test that losing the unique-constraint race still answers 409."""
        from tenantgate_api.models import Tenant
        from tenantgate_api.routes import auth as auth_routes

        real_check = auth_routes._registration_conflict
        calls = []

        def check_after_race(session, email, slug):
            calls.append(email)
            # First check runs before the competing row exists
            if len(calls) == 1:
                return None
            return real_check(session, email, slug)

        monkeypatch.setattr(auth_routes, "_registration_conflict", check_after_race)
        response = client.post(
            "/api/auth/register",
            json={
                "tenantName": "Racer",
                "country": "DE",
                "email": "owner@acme.test",
                "password": "long enough password",
                "lastName": "Doe",
            },
        )
        assert response.status_code == 409
        assert response.json()["error"]["code"] == "EMAIL_TAKEN"
        assert len(calls) == 2
        db.expire_all()
        assert db.query(Tenant).filter(Tenant.slug == "racer").first() is None
