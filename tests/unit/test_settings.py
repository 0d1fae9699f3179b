"""Tests for settings checks run at startup."""

import logging

from fastapi.testclient import TestClient

from src.config.settings import Settings, get_settings
from src.main import create_app


def make_settings(**overrides) -> Settings:
    values = {
        "imagekit_private_key": "private_test_key",
        "imagekit_public_key": "public_test_key",
        "imagekit_url_endpoint": "https://ik.example.com/demo",
        "redis_mock_mode": True,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


class TestConfigurationWarnings:
    """Combinations the object store will not accept."""

    def test_scope_binding_with_real_storage_warns(self):
        warnings = make_settings(storage_mock_mode=False).configuration_warnings()

        assert len(warnings) == 1
        assert "CREDENTIAL_BIND_SCOPE" in warnings[0]

    def test_unscoped_signing_with_real_storage_is_clean(self):
        settings = make_settings(storage_mock_mode=False, credential_bind_scope=False)
        assert settings.configuration_warnings() == []

    def test_mock_storage_accepts_scope_binding(self):
        assert make_settings(storage_mock_mode=True).configuration_warnings() == []

    def test_sha256_with_real_storage_warns(self):
        settings = make_settings(
            storage_mock_mode=False,
            credential_bind_scope=False,
            credential_digest="sha256",
        )

        warnings = settings.configuration_warnings()

        assert len(warnings) == 1
        assert "HMAC-SHA1" in warnings[0]


class TestStartupLogging:

    def test_startup_logs_inconsistent_configuration(self, monkeypatch, caplog):
        settings = make_settings(storage_mock_mode=False)
        monkeypatch.setattr("src.main.get_settings", lambda: settings)
        app = create_app()
        app.dependency_overrides[get_settings] = lambda: settings

        with caplog.at_level(logging.WARNING, logger="src.main"):
            with TestClient(app):
                pass

        assert any(
            "Inconsistent configuration" in record.getMessage()
            and "CREDENTIAL_BIND_SCOPE" in record.getMessage()
            for record in caplog.records
        )
