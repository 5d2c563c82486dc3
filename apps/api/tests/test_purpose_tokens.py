"""Tests for email verification and password reset."""

import pytest

from tenantgate_api.auth import codec
from tenantgate_api.auth.purpose_tokens import (
    confirm_email,
    issue_email_verification_token,
    issue_password_reset_token,
    reset_password,
)
from tenantgate_api.errors import InvalidTokenError

from conftest import PASSWORD_A, login


@pytest.fixture
def sent_links(monkeypatch):
    """Capture links the auth routes would mail."""
    links = []
    monkeypatch.setattr(
        "tenantgate_api.routes.auth.deliver_link",
        lambda email, subject, url: links.append((email, subject, url)),
    )
    return links


class TestEmailVerification:
    def test_confirm_marks_verified(self, db, tenant_a):
        _, user = tenant_a
        user.email_verified_at = None
        db.commit()
        token = issue_email_verification_token(user)
        assert confirm_email(db, token).id == user.id
        db.refresh(user)
        assert user.email_verified_at is not None

    def test_changed_email_invalidates_token(self, db, tenant_a):
        _, user = tenant_a
        token = issue_email_verification_token(user)
        user.email = "moved@acme.test"
        db.commit()
        assert confirm_email(db, token) is None

    def test_session_token_is_not_a_verification_token(self, db, tenant_a):
        tenant, user = tenant_a
        token = codec.issue(
            {"uid": user.id, "email": user.email, "tid": tenant.id},
            codec.get_session_secret(),
            60,
            purpose=codec.PURPOSE_SESSION,
        )
        assert confirm_email(db, token) is None

    def test_verify_route_redirects(self, client, db, tenant_a):
        _, user = tenant_a
        user.email_verified_at = None
        db.commit()
        token = issue_email_verification_token(user)

        response = client.get("/api/auth/verify", params={"token": token}, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/login?verified=1"

        response = client.get("/api/auth/verify", params={"token": "bogus"}, follow_redirects=False)
        assert response.headers["location"] == "/login?verified=0"

    def test_resend_always_ok(self, client, db, tenant_a, sent_links):
        _, user = tenant_a
        user.email_verified_at = None
        db.commit()
        known = client.post("/api/auth/verify/resend", json={"email": user.email})
        unknown = client.post("/api/auth/verify/resend", json={"email": "nobody@nowhere.test"})
        assert known.status_code == unknown.status_code == 200
        assert known.json()["data"] == unknown.json()["data"] == {"sent": True}
        assert [email for email, _, _ in sent_links] == [user.email]


class TestPasswordReset:
    def test_reset_changes_password(self, client, db, tenant_a):
        _, user = tenant_a
        token = issue_password_reset_token(user)
        reset_password(db, token, "brand new password")
        login(client, user.email, "brand new password")
        response = client.post("/api/auth/login", json={"email": user.email, "password": PASSWORD_A})
        assert response.status_code == 401

    def test_reset_token_is_single_use(self, db, tenant_a):
        """Test that the token dies once the password it was bound to changes."""
        _, user = tenant_a
        token = issue_password_reset_token(user)
        reset_password(db, token, "brand new password")
        with pytest.raises(InvalidTokenError):
            reset_password(db, token, "yet another password")

    def test_verification_token_cannot_reset(self, db, tenant_a):
        _, user = tenant_a
        with pytest.raises(InvalidTokenError):
            reset_password(db, issue_email_verification_token(user), "brand new password")

    def test_forgot_always_ok(self, client, tenant_a, sent_links):
        _, user = tenant_a
        known = client.post("/api/auth/password/forgot", json={"email": user.email})
        unknown = client.post("/api/auth/password/forgot", json={"email": "nobody@nowhere.test"})
        assert known.status_code == unknown.status_code == 200
        assert known.json()["data"] == unknown.json()["data"]
        assert len(sent_links) == 1
        assert "/login?reset=" in sent_links[0][2]

    def test_reset_route(self, client, tenant_a, sent_links):
        _, user = tenant_a
        client.post("/api/auth/password/forgot", json={"email": user.email})
        token = sent_links[0][2].split("reset=", 1)[1]

        response = client.post("/api/auth/password/reset", json={"token": token, "password": "brand new password"})
        assert response.status_code == 200
        assert response.json()["data"] == {"reset": True}

        replay = client.post("/api/auth/password/reset", json={"token": token, "password": "another new one"})
        assert replay.status_code == 400
        assert replay.json()["error"]["code"] == "INVALID_TOKEN"

    def test_register_sends_verification(self, client, sent_links):
        response = client.post(
            "/api/auth/register",
            json={
                "tenantName": "Umbrella",
                "country": "GB",
                "email": "alice@umbrella.test",
                "password": "long enough password",
                "lastName": "Wesker",
            },
        )
        assert response.status_code == 201
        assert sent_links[0][0] == "alice@umbrella.test"
        assert "/api/auth/verify?token=" in sent_links[0][2]
