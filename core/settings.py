"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Environment variables use the PAYMENT__ prefix, e.g.
PAYMENT__IDEMPOTENCY_TTL_SECONDS=3600 or PAYMENT__STRIPE__SECRET_KEY=sk_...
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field, field_validator


class PaymentRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class StripeSettings(BaseModel):
    secret_key: Optional[str] = None


class PaymentSettings(BaseSettings):
    # memory | redis
    idempotency_backend: str = "memory"
    idempotency_ttl_seconds: int = 24 * 60 * 60
    # how long a duplicate request waits for the in-flight original
    idempotency_wait_seconds: float = 10.0
    # fake | stripe
    processor: str = "fake"
    processor_timeout_seconds: float = 10.0
    # memory | sqlalchemy
    storage_backend: str = "memory"

    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    stripe: StripeSettings = Field(default_factory=StripeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="PAYMENT__",
        case_sensitive=False,
        extra="ignore",
        env_nested_delimiter="__",
    )

    @field_validator("idempotency_backend", "storage_backend", "processor")
    @classmethod
    def _lower(cls, v: str) -> str:
        return (v or "").strip().lower()

    @field_validator("idempotency_ttl_seconds")
    @classmethod
    def _positive_ttl(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("idempotency_ttl_seconds must be positive")
        return v


payment_settings = PaymentSettings()
