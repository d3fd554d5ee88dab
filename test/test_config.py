"""
Tests for environment-driven settings.
"""

import pytest

from callaxis.config import Settings, get_settings
from callaxis.telephony.config import ProviderType, get_telephony_config


class TestSettings:
    def test_defaults(self) -> None:
        settings = Settings(_env_file=None)

        assert settings.store_backend == "sql"
        assert settings.poll_interval_seconds == 2.0
        assert settings.poll_max_session_seconds == 1800.0
        assert settings.dispatch_attempts_per_tier == 1
        assert settings.insights_enabled is False
        assert settings.gemini_models[0] == "gemini-2.0-flash-exp"
        assert len(settings.gemini_models) == 4

    def test_comma_separated_models_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GEMINI_MODELS", "gemini-1.5-pro, gemini-pro,")

        assert get_settings().gemini_models == ["gemini-1.5-pro", "gemini-pro"]

    def test_env_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("STORE_BACKEND", "memory")
        monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0.5")
        monkeypatch.setenv("ANALYSIS_WEBHOOK_URL", "https://processor.test/hook")

        settings = get_settings()

        assert settings.store_backend == "memory"
        assert settings.poll_interval_seconds == 0.5
        assert settings.analysis_webhook_url == "https://processor.test/hook"

    def test_cors_origins_list(self) -> None:
        settings = Settings(cors_origins="http://a.test, http://b.test,")
        assert settings.cors_origins_list == ["http://a.test", "http://b.test"]

    def test_invalid_values_rejected(self) -> None:
        with pytest.raises(ValueError):
            Settings(poll_interval_seconds=0)
        with pytest.raises(ValueError):
            Settings(store_backend="redis")


class TestTelephonyConfig:
    def test_provider_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TELEPHONY_PROVIDER_TYPE", "mock")
        monkeypatch.setenv("TELEPHONY_DEFAULT_CALLER_ID", "08047112233")

        config = get_telephony_config()

        assert config.provider_type is ProviderType.MOCK
        assert config.default_caller_id == "08047112233"
