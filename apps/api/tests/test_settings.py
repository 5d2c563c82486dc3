"""Tests for settings validation."""

import pytest
from fastapi.testclient import TestClient

from tenantgate_api.main import create_app
from tenantgate_api.settings import Settings, get_settings

GOOD_SECRET = "p" * 40


def _production(**overrides) -> Settings:
    values = {
        "environment": "production",
        "auth_session_secret": GOOD_SECRET,
        "mobile_api_key_secret": GOOD_SECRET,
        "cors_origins": ["https://admin.example.test"],
    }
    values.update(overrides)
    return Settings(**values)


class TestProductionValidation:
    """Production refuses to start with unsafe configuration."""

    def test_valid_production_settings(self):
        _production().validate_production_settings()

    @pytest.mark.parametrize("field", ["auth_session_secret", "mobile_api_key_secret"])
    @pytest.mark.parametrize("value", [None, "", "too-short", " " * 40])
    def test_missing_or_short_secret_rejected(self, field, value):
        with pytest.raises(ValueError) as exc_info:
            _production(**{field: value}).validate_production_settings()
        assert field.upper() in str(exc_info.value)

    def test_wildcard_cors_with_credentials_rejected(self):
        with pytest.raises(ValueError):
            _production(cors_origins=["*"], cors_allow_credentials=True).validate_production_settings()

    def test_wildcard_cors_without_credentials_allowed(self):
        _production(cors_origins=["*"], cors_allow_credentials=False).validate_production_settings()

    def test_development_skips_validation(self):
        Settings(
            environment="development", auth_session_secret=None, mobile_api_key_secret=None
        ).validate_production_settings()

    def test_app_refuses_to_start_without_secret(self, session_factory, monkeypatch):
        monkeypatch.setenv("ENVIRONMENT", "production")
        monkeypatch.setenv("AUTH_SESSION_SECRET", "short")
        get_settings.cache_clear()
        app = create_app(session_factory=session_factory)
        with pytest.raises(ValueError):
            with TestClient(app):
                pass


class TestDerivedSettings:
    def test_database_url_from_parts(self):
        settings = Settings(
            database_url=None,
            postgres_user="svc",
            postgres_password="pw",
            postgres_host="db",
            postgres_port=5433,
            postgres_db="gate",
        )
        assert settings.database_url_computed == "postgresql://svc:pw@db:5433/gate"

    def test_cookie_candidates_start_with_configured_name(self):
        settings = Settings(session_cookie_name="custom", legacy_session_cookie_names=["old", "custom"])
        assert settings.session_cookie_candidates == ["custom", "old"]
