"""Application configuration primitives."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict

BASE_DIR = Path(__file__).resolve().parents[2]
load_dotenv(BASE_DIR / ".env")


class SessionConfig(BaseModel):
    secret: SecretStr = Field(default=SecretStr("change-me-session-secret"))
    cookie_name: str = Field(default="viral-payouts.session-token")
    algorithm: str = Field(default="HS256")
    ttl_hours: int = Field(default=24 * 30)
    secure_cookie: bool = Field(default=False)


class RazorpayConfig(BaseModel):
    base_url: str = Field(default="https://api.razorpay.com/v1")
    key_id: str = Field(default="rzp_test_stub")
    key_secret: SecretStr = Field(default=SecretStr("stub-key-secret"))
    webhook_secret: SecretStr = Field(default=SecretStr("stub-webhook-secret"))
    account_number: str = Field(default="")
    currency: str = Field(default="INR")
    payout_mode: str = Field(default="UPI")
    timeout: float = Field(default=15.0)


class InstagramConfig(BaseModel):
    base_url: str = Field(default="https://graph.instagram.com/v18.0")
    access_token: SecretStr = Field(default=SecretStr(""))
    timeout: float = Field(default=15.0)


class YouTubeConfig(BaseModel):
    base_url: str = Field(default="https://www.googleapis.com/youtube/v3")
    api_key: SecretStr = Field(default=SecretStr(""))
    timeout: float = Field(default=15.0)


class FraudConfig(BaseModel):
    click_window_minutes: int = Field(default=60)
    max_clicks_per_ip: int = Field(default=5)
    click_burst: int = Field(default=50)
    ip_abuse_clicks: int = Field(default=20)
    bot_min_clicks: int = Field(default=10)
    bot_ratio: float = Field(default=0.5)
    bot_critical_ratio: float = Field(default=0.8)
    view_spike_growth: float = Field(default=5.0)
    conversion_rate_limit: float = Field(default=0.3)
    conversion_min_conversions: int = Field(default=10)
    conversion_min_clicks: int = Field(default=200)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    environment: str = Field(default="production")
    database_url: str = Field(default="sqlite+aiosqlite:///./viral_payouts.db")
    public_base_url: str = Field(default="http://127.0.0.1:8000")
    session: SessionConfig = Field(default_factory=SessionConfig)
    razorpay: RazorpayConfig = Field(default_factory=RazorpayConfig)
    instagram: InstagramConfig = Field(default_factory=InstagramConfig)
    youtube: YouTubeConfig = Field(default_factory=YouTubeConfig)
    fraud: FraudConfig = Field(default_factory=FraudConfig)
    minimum_topup: int = 1000
    minimum_campaign_budget: int = 25_000
    minimum_withdrawal: int = 100
    default_commission_rate: float = 0.15
    tds_threshold: int = 20_000
    tds_rate: float = 0.1
    otp_ttl_minutes: int = 10
    otp_max_attempts: int = 3
    otp_sends_per_window: int = 5
    otp_send_window_seconds: int = 600
    payout_batch_size: int = Field(default=20)

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


@lru_cache()
def get_settings() -> Settings:
    """Return cached settings instance."""

    return Settings()


settings = get_settings()
