"""Unit tests for configuration module."""

from pathlib import Path

import pydantic
import pytest

from mail_retention.config import Settings, get_settings


class TestSettings:
    """Test suite for Settings class."""

    def test_default_settings(self) -> None:
        """Test that default settings are properly initialized."""
        settings = Settings()

        assert settings.rules_path == Path("rules.json")
        assert settings.gmail_user_id == "me"
        assert settings.page_size == 500
        assert settings.batch_size == 1000
        assert settings.marker_prefix == "mail-retention"
        assert settings.days_per_month == 30
        assert settings.days_per_year == 365
        assert settings.log_level == "INFO"
        assert settings.debug is False
        assert settings.max_retries == 3

    def test_settings_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test loading settings from environment variables."""
        monkeypatch.setenv("MAIL_RETENTION_RULES_PATH", "/tmp/custom-rules.json")
        monkeypatch.setenv("MAIL_RETENTION_LOG_LEVEL", "DEBUG")
        monkeypatch.setenv("MAIL_RETENTION_DEBUG", "true")
        monkeypatch.setenv("MAIL_RETENTION_MAX_CONCURRENCY", "8")

        # Clear the cache to ensure fresh settings
        get_settings.cache_clear()

        settings = get_settings()

        assert settings.rules_path == Path("/tmp/custom-rules.json")
        assert settings.log_level == "DEBUG"
        assert settings.debug is True
        assert settings.max_concurrency == 8

        # Clean up
        get_settings.cache_clear()

    @pytest.mark.parametrize(
        ("field", "value"),
        [("batch_size", 1001), ("batch_size", 0), ("page_size", 501), ("marker_prefix", "")],
    )
    def test_out_of_range_values_rejected(self, field: str, value: object) -> None:
        """Test that provider limits are enforced on load."""
        with pytest.raises(pydantic.ValidationError):
            Settings(**{field: value})

    def test_get_settings_returns_cached_instance(self) -> None:
        """Test that get_settings returns the same cached instance."""
        get_settings.cache_clear()

        settings1 = get_settings()
        settings2 = get_settings()

        assert settings1 is settings2

        # Clean up
        get_settings.cache_clear()
