"""Tests for settings validation and startup wiring."""
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from app.core.config import Settings, validate_settings
from app.core.errors import ConfigurationError
from app.main import create_app


class TestSettings:
    def test_defaults(self):
        s = Settings(_env_file=None)
        assert s.FREEZE_HOURS == 15
        assert s.DEFAULT_ROTATION_HOUR == 12
        assert s.freeze_window == timedelta(hours=15)
        assert validate_settings(s) is None

    def test_cors_origins_list(self):
        assert Settings(CORS_ORIGINS="*").cors_origins_list == ["*"]
        s = Settings(CORS_ORIGINS="https://a.example, https://b.example,")
        assert s.cors_origins_list == ["https://a.example", "https://b.example"]

    def test_collects_every_problem(self):
        s = Settings(
            DEFAULT_ROTATION_HOUR=24,
            FREEZE_HOURS=0,
            RETRY_MAX_ATTEMPTS=0,
            ROTATION_WORKERS=0,
            LOG_FORMAT="xml",
        )
        err = validate_settings(s)
        assert isinstance(err, ConfigurationError)
        assert len(err.problems) == 5

    def test_backoff_bounds(self):
        err = validate_settings(Settings(RETRY_BASE_DELAY=3.0, RETRY_MAX_DELAY=1.0))
        assert err is not None
        assert any("RETRY_BASE_DELAY" in p for p in err.problems)


class TestStartup:
    def test_invalid_settings_abort_startup(self, app_settings, session_factory):
        bad = app_settings.model_copy(update={"FREEZE_HOURS": 0})
        app = create_app(settings=bad, session_factory=session_factory)
        with pytest.raises(ConfigurationError):
            with TestClient(app):
                pass

    def test_services_use_configured_hour(self, app_settings, session_factory, clock):
        settings = app_settings.model_copy(update={"DEFAULT_ROTATION_HOUR": 3})
        app = create_app(settings=settings, session_factory=session_factory, clock=clock)
        with TestClient(app) as c:
            assert c.post("/users", json={"user_id": 1}).json()["rotation_hour"] == 3
