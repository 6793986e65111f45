"""Application settings shared by all bounded contexts.

Protean infrastructure (databases, brokers, event store) is configured in
``domain.toml``. Everything the domains need from the outside world that is
not Protean infrastructure lives here and is read from the environment or a
``.env`` file.
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-driven configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    jwt_secret: str = Field("change-me", alias="JWT_SECRET")
    jwt_algorithm: str = "HS256"

    # "fake" keeps everything in-process; "razorpay" talks to the real gateway
    payment_gateway: str = Field("fake", alias="PAYMENT_GATEWAY")
    razorpay_key_id: str = Field("", alias="RAZORPAY_KEY_ID")
    razorpay_key_secret: str = Field("", alias="RAZORPAY_KEY_SECRET")
    razorpay_webhook_secret: str = Field("webhook-secret", alias="RAZORPAY_WEBHOOK_SECRET")
    razorpay_base_url: str = Field("https://api.razorpay.com/v1", alias="RAZORPAY_BASE_URL")
    gateway_timeout_seconds: float = Field(5.0, alias="GATEWAY_TIMEOUT_SECONDS")

    currency: str = Field("INR", alias="CURRENCY")
    allowed_origins: str = Field("*", alias="ALLOWED_ORIGINS")


@lru_cache
def get_settings() -> Settings:
    return Settings()
