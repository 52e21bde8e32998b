"""Application settings.

Values come from, in priority order: explicit init arguments, the system
keychain (credential fields only), environment variables, then ``.env``.
"""

from typing import Any

from pydantic import field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from services.credential_manager import CREDENTIAL_KEYS, get_credential

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


class KeychainSettingsSource(PydanticBaseSettingsSource):
    """Settings source backed by ``services.credential_manager``.

    Only fields named in ``CREDENTIAL_KEYS`` are looked up; a missing
    keychain entry leaves the field to the sources after this one.
    """

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        key = field_name.upper()
        value = get_credential(key) if key in CREDENTIAL_KEYS else None
        return value, field_name, False

    def __call__(self) -> dict[str, Any]:
        found: dict[str, Any] = {}
        for name, info in self.settings_cls.model_fields.items():
            value, _, _ = self.get_field_value(info, name)
            if value is not None:
                found[name] = value
        return found


class Settings(BaseSettings):
    """Dashboard backend settings."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        keychain = KeychainSettingsSource(settings_cls)
        return init_settings, keychain, env_settings, dotenv_settings, file_secret_settings

    DATABASE_URL: str = "sqlite:///./networth.db"

    # SnapTrade partner credentials. Both are required; without them every
    # broker call raises BrokerNotInitializedError.
    SNAPTRADE_CLIENT_ID: str = ""
    SNAPTRADE_CONSUMER_KEY: str = ""

    # Real user secrets older than this are re-registered
    SECRET_MAX_AGE_DAYS: int = 7
    # Wait after refreshing an authorization before listing its accounts
    CALLBACK_SETTLE_SECONDS: float = 1.0

    # Bearer tokens come from the external identity provider
    AUTH_JWT_SECRET: str = ""
    AUTH_JWT_AUDIENCE: str = "authenticated"
    AUTH_JWT_ALGORITHMS: list[str] = ["HS256"]

    CORS_ORIGINS: str = "http://localhost:3000"  # comma-separated

    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Accept any case, store upper case."""
        level = str(v).upper()
        if level not in VALID_LOG_LEVELS:
            raise ValueError(f"LOG_LEVEL must be one of {sorted(VALID_LOG_LEVELS)}, got {v!r}")
        return level

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


settings = Settings()
