from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(default="dev", alias="APP_ENV")
    app_host: str = Field(default="0.0.0.0", alias="APP_HOST")
    app_port: int = Field(default=8000, alias="APP_PORT")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    internal_api_token: str = Field(
        default="dev_internal_token_change_me",
        alias="INTERNAL_API_TOKEN",
    )
    internal_api_allowlist: str = Field(
        default="127.0.0.1/32,::1/128",
        alias="INTERNAL_API_ALLOWLIST",
    )
    internal_api_trusted_proxies: str = Field(default="", alias="INTERNAL_API_TRUSTED_PROXIES")
    visitor_session_secret: str = Field(
        default="dev_visitor_session_secret_change_me",
        alias="VISITOR_SESSION_SECRET",
    )

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(alias="REDIS_URL")
    ephemeral_store_backend: str = Field(default="memory", alias="EPHEMERAL_STORE_BACKEND")

    ad_lock_ttl_seconds: int = Field(default=10, alias="AD_LOCK_TTL_SECONDS")
    ad_reward_coins: int = Field(default=5, alias="AD_REWARD_COINS")
    purchase_attempt_ttl_seconds: int = Field(default=1800, alias="PURCHASE_ATTEMPT_TTL_SECONDS")
    upi_payment_window_seconds: int = Field(default=300, alias="UPI_PAYMENT_WINDOW_SECONDS")
    upi_payee_vpa: str = Field(default="store@upi", alias="UPI_PAYEE_VPA")
    upi_payee_name: str = Field(default="Coin Store", alias="UPI_PAYEE_NAME")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
