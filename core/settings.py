"""
Payment-related settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so gateway credentials live in one place.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import BaseModel, Field


class PaymentRetry(BaseModel):
    max_attempts: int = 3
    base_delay: float = 1.0  # attempt k waits k * base_delay


class WorkerSettings(BaseModel):
    queue_size: int = 1000
    concurrency: int = 4
    shutdown_timeout: float = 30.0


class InfinitePaySettings(BaseModel):
    api_url: str = "https://api.infinitepay.io"
    handle: Optional[str] = None


class PagarmeSettings(BaseModel):
    api_url: str = "https://api.pagar.me/core/v5"
    secret_key: Optional[str] = None


class PaymentSettings(BaseSettings):
    timeout_seconds: float = 30.0
    retry: PaymentRetry = Field(default_factory=PaymentRetry)
    worker: WorkerSettings = Field(default_factory=WorkerSettings)
    reconcile_max_conflict_retries: int = 3

    # public URLs handed to the provider
    backend_url: Optional[str] = None
    frontend_url: Optional[str] = None

    infinitepay: InfinitePaySettings = Field(default_factory=InfinitePaySettings)
    pagarme: PagarmeSettings = Field(default_factory=PagarmeSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
    )

    @property
    def webhook_url(self) -> Optional[str]:
        if not self.backend_url:
            return None
        return f"{self.backend_url.rstrip('/')}/api/v1/webhooks/infinitepay"

    @property
    def redirect_url(self) -> Optional[str]:
        if not self.frontend_url:
            return None
        return f"{self.frontend_url.rstrip('/')}/checkout/success"


payment_settings = PaymentSettings()
