from decimal import Decimal
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

    database_url: str = Field(alias="DATABASE_URL")
    redis_url: str = Field(default="redis://localhost:6379/0", alias="REDIS_URL")

    celery_broker_url: str = Field(default="redis://localhost:6379/1", alias="CELERY_BROKER_URL")
    celery_result_backend: str = Field(
        default="redis://localhost:6379/2",
        alias="CELERY_RESULT_BACKEND",
    )

    notification_webhook_url: str = Field(default="", alias="NOTIFICATION_WEBHOOK_URL")
    notification_timeout_seconds: float = Field(default=5.0, alias="NOTIFICATION_TIMEOUT_SECONDS")

    # Seed values for the partner_settings row; the row is authoritative once created.
    partner_program_enabled: bool = Field(default=True, alias="PARTNER_PROGRAM_ENABLED")
    partner_level1_percent: Decimal = Field(default=Decimal("10.00"), alias="PARTNER_LEVEL1_PERCENT")
    partner_level2_percent: Decimal = Field(default=Decimal("5.00"), alias="PARTNER_LEVEL2_PERCENT")
    partner_level3_percent: Decimal = Field(default=Decimal("2.00"), alias="PARTNER_LEVEL3_PERCENT")
    partner_min_payout_amount: Decimal = Field(
        default=Decimal("0.00"),
        alias="PARTNER_MIN_PAYOUT_AMOUNT",
    )
    reward_approval_policy: str = Field(default="manual", alias="REWARD_APPROVAL_POLICY")
    reward_approval_delay_hours: int = Field(default=72, alias="REWARD_APPROVAL_DELAY_HOURS")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
