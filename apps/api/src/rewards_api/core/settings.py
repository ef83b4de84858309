from functools import lru_cache
from typing import Literal

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="allow")

    environment: Literal["development", "staging", "production"] = "development"
    database_url: str = "sqlite+aiosqlite:///./rewards.db"
    log_level: str = "INFO"

    # Tracing
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str | None = None
    otel_exporter_otlp_headers: str | None = None

    # Application URLs
    frontend_url: str = "http://localhost:3000"
    api_base_url: str = "http://localhost:8000"

    # Internal API security
    internal_api_key: str = ""

    # Store behaviour
    config_cache_ttl_seconds: int = 0
    store_conflict_retries: int = 3

    # Loyalty rules
    default_offer_loyalty_points: int = 10
    member_signup_bonus_points: int = 50
    referral_chain_max_depth: int = 3

    # PhonePe gateway
    phonepe_client_id: str = ""
    phonepe_client_secret: str = ""
    phonepe_client_version: str = "1.0"
    phonepe_env: Literal["SANDBOX", "PRODUCTION"] = "SANDBOX"
    phonepe_base_url: str | None = None
    phonepe_webhook_username: str = ""
    phonepe_webhook_password: str = ""
    phonepe_timeout_seconds: float = 10.0

    @field_validator("phonepe_env", mode="before")
    @classmethod
    def _normalize_phonepe_env(cls, value: object) -> str:
        if value is None:
            return "SANDBOX"
        return str(value).strip().upper() or "SANDBOX"

    @property
    def phonepe_configured(self) -> bool:
        return bool(self.phonepe_client_id and self.phonepe_client_secret)

    @property
    def phonepe_api_base_url(self) -> str:
        if self.phonepe_base_url:
            return self.phonepe_base_url.rstrip("/")
        if self.phonepe_env == "PRODUCTION":
            return "https://api.phonepe.com/apis/hermes"
        return "https://api-preprod.phonepe.com/apis/hermes"


@lru_cache
def get_settings() -> Settings:
    return Settings()  # type: ignore[arg-type]


settings = get_settings()
