"""Tests for Settings and its keychain source."""

from unittest.mock import patch

import pytest
from pydantic import ValidationError

from config import Settings
from services.credential_manager import CREDENTIAL_KEYS

SETTINGS_ENV_VARS = (
    "DATABASE_URL",
    "ENVIRONMENT",
    "DEBUG",
    "LOG_LEVEL",
    "CORS_ORIGINS",
    "SECRET_MAX_AGE_DAYS",
    "CALLBACK_SETTLE_SECONDS",
    "AUTH_JWT_AUDIENCE",
    *sorted(CREDENTIAL_KEYS),
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable Settings reads from the process environment."""
    for name in SETTINGS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


@pytest.fixture
def keychain():
    """Patch the keychain lookup; fill the returned dict to store values."""
    stored: dict[str, str] = {}
    with patch("config.get_credential", side_effect=stored.get) as lookup:
        lookup.stored = stored
        yield lookup


def _settings(**kwargs) -> Settings:
    return Settings(_env_file=None, **kwargs)


class TestKeychainSource:
    def test_fills_credential_from_keychain(self, clean_env, keychain):
        keychain.stored["SNAPTRADE_CLIENT_ID"] = "from-keychain"

        s = _settings()

        assert s.SNAPTRADE_CLIENT_ID == "from-keychain"
        assert s.SNAPTRADE_CONSUMER_KEY == ""

    def test_beats_environment(self, clean_env, keychain):
        clean_env.setenv("SNAPTRADE_CONSUMER_KEY", "from-env")
        keychain.stored["SNAPTRADE_CONSUMER_KEY"] = "from-keychain"

        assert _settings().SNAPTRADE_CONSUMER_KEY == "from-keychain"

    def test_environment_used_when_keychain_empty(self, clean_env, keychain):
        clean_env.setenv("AUTH_JWT_SECRET", "from-env")

        assert _settings().AUTH_JWT_SECRET == "from-env"

    def test_init_argument_wins(self, clean_env, keychain):
        keychain.stored["AUTH_JWT_SECRET"] = "from-keychain"

        assert _settings(AUTH_JWT_SECRET="explicit").AUTH_JWT_SECRET == "explicit"

    def test_only_credential_keys_are_looked_up(self, clean_env, keychain):
        _settings()

        looked_up = {call.args[0] for call in keychain.call_args_list}
        assert looked_up == set(CREDENTIAL_KEYS)


class TestDefaults:
    def test_defaults(self, clean_env, keychain):
        s = _settings()

        assert s.DATABASE_URL == "sqlite:///./networth.db"
        assert s.SECRET_MAX_AGE_DAYS == 7
        assert s.CALLBACK_SETTLE_SECONDS == 1.0
        assert s.AUTH_JWT_AUDIENCE == "authenticated"
        assert s.AUTH_JWT_ALGORITHMS == ["HS256"]
        assert s.LOG_LEVEL == "INFO"

    def test_cors_origins_split(self, clean_env, keychain):
        s = _settings(CORS_ORIGINS="http://a.test, ,http://b.test")

        assert s.cors_origins == ["http://a.test", "http://b.test"]

    def test_secret_age_from_environment(self, clean_env, keychain):
        clean_env.setenv("SECRET_MAX_AGE_DAYS", "3")

        assert _settings().SECRET_MAX_AGE_DAYS == 3

    def test_bad_log_level(self, clean_env, keychain):
        with pytest.raises(ValidationError, match="LOG_LEVEL"):
            _settings(LOG_LEVEL="loud")
