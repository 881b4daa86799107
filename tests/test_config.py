"""Tests for configuration loading."""

import pytest

from settlement_engine.config import Settings, get_settings


class TestSettings:
    """Test settings from environment variables."""

    def test_defaults(self, monkeypatch):
        for name in (
            "LOG_LEVEL",
            "FIELD_COMMIT_DELAY_MS",
            "BATCH_COMMIT_DELAY_MS",
            "COMMIT_RETRY_DELAY_MS",
            "COMMIT_MAX_RETRIES",
            "SOURCE_SNAPSHOT_PATH",
        ):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.field_commit_delay_ms == 800
        assert settings.batch_commit_delay_ms == 1000
        assert settings.commit_retry_delay_ms == 2000
        assert settings.commit_max_retries == 3
        assert settings.source_snapshot_path is None

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("FIELD_COMMIT_DELAY_MS", "250")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("PORT", "9001")
        monkeypatch.setenv("DEBUG", "true")

        settings = Settings.from_env()

        assert settings.field_commit_delay_ms == 250
        assert settings.log_level == "DEBUG"
        assert settings.PORT == 9001
        assert settings.DEBUG is True

    def test_negative_delay_rejected(self, monkeypatch):
        monkeypatch.setenv("BATCH_COMMIT_DELAY_MS", "-1")

        with pytest.raises(ValueError):
            Settings.from_env()

    def test_non_numeric_rejected(self, monkeypatch):
        monkeypatch.setenv("COMMIT_MAX_RETRIES", "many")

        with pytest.raises(ValueError):
            Settings.from_env()

    def test_get_settings_is_cached(self):
        get_settings.cache_clear()
        try:
            assert get_settings() is get_settings()
        finally:
            get_settings.cache_clear()
