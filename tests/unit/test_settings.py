"""Tests for configuration settings."""
import pytest
from pydantic import ValidationError

from mediaflow.config.settings import Settings, get_settings, reset_settings


class TestSettings:
    """Test Settings configuration."""

    def test_settings_without_gemini_key(self, monkeypatch):
        """Settings load without a Gemini key; llm nodes fail at run time instead."""
        monkeypatch.delenv("MEDIAFLOW_GEMINI_API_KEY", raising=False)

        settings = Settings()

        assert settings.gemini_api_key is None
        assert settings.env in ("development", "test")
        assert settings.log_level == "INFO"

    def test_settings_with_gemini_key(self, monkeypatch):
        monkeypatch.setenv("MEDIAFLOW_GEMINI_API_KEY", "gm-test-123")

        settings = Settings()

        assert settings.gemini_api_key.get_secret_value() == "gm-test-123"

    def test_settings_default_values(self, monkeypatch):
        """Test default values are set correctly."""
        monkeypatch.delenv("MEDIAFLOW_DATABASE_URL", raising=False)
        monkeypatch.delenv("MEDIAFLOW_READ_RETRY_DELAY_S", raising=False)

        settings = Settings()

        assert settings.database_url == "sqlite+aiosqlite:///./mediaflow.db"
        assert settings.gemini_base_url == "https://generativelanguage.googleapis.com/v1beta"
        assert settings.gemini_default_model == "gemini-2.5-flash"
        assert settings.llm_max_image_chars == 500_000
        assert settings.transloadit_url == "https://api2.transloadit.com/assemblies"
        assert settings.upload_signature_ttl_s == 3600
        assert settings.media_timeout_s == 30.0
        assert settings.frame_max_dimension == 1024
        assert settings.frame_jpeg_quality == 80
        assert settings.inline_preview_max_chars == 1000
        assert settings.history_limit == 100
        assert settings.history_coalesce_window_s == 0.5
        assert settings.run_list_limit == 20
        assert settings.read_retry_attempts == 3
        assert settings.read_retry_delay_s == 0.5
        assert settings.max_concurrent_nodes == 4

    def test_secrets_are_masked(self):
        settings = Settings()

        assert "test-transloadit-secret" not in repr(settings)
        assert "test-key" not in str(settings.gemini_api_key)

    @pytest.mark.parametrize(
        "name",
        ["MEDIAFLOW_HISTORY_LIMIT", "MEDIAFLOW_RUN_LIST_LIMIT", "MEDIAFLOW_MAX_CONCURRENT_NODES"],
    )
    def test_non_positive_limits_rejected(self, monkeypatch, name):
        monkeypatch.setenv(name, "0")

        with pytest.raises(ValidationError) as exc_info:
            Settings()

        assert "must be positive" in str(exc_info.value)

    def test_jpeg_quality_bounds(self, monkeypatch):
        monkeypatch.setenv("MEDIAFLOW_FRAME_JPEG_QUALITY", "101")

        with pytest.raises(ValidationError):
            Settings()


class TestSettingsSingleton:
    """Test the module-level settings instance."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_reset_settings_reloads_env(self, monkeypatch):
        first = get_settings()
        monkeypatch.setenv("MEDIAFLOW_HISTORY_LIMIT", "7")
        reset_settings()

        second = get_settings()

        assert second is not first
        assert second.history_limit == 7
