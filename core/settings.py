"""
Point gateway settings using pydantic-settings v2 with nested env keys.

Kept apart from core.config.Settings so the payment stack can be configured
(and overridden in tests) without touching the application settings.
"""
from __future__ import annotations

from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import AliasChoices, BaseModel, Field


class GatewayTimeouts(BaseModel):
    connect: float = 2.0
    read: float = 8.0
    write: float = 8.0
    total: float = 10.0


class GatewayRetry(BaseModel):
    max: int = 2
    base_backoff: float = 0.2


class WebhookSettings(BaseModel):
    # Optional; when set, x-signature headers are verified before ingestion.
    secret: Optional[str] = None


class JanitorSettings(BaseModel):
    passive_interval_seconds: float = 120.0
    delete_attempts: int = 3
    delete_retry_delay_seconds: float = 0.5
    clear_queue_pause_seconds: float = 0.2


class ConfirmationCacheSettings(BaseModel):
    ttl_seconds: float = 3600.0
    sweep_interval_seconds: float = 3600.0
    # Share confirmations across workers; in-process dict when unset.
    redis_url: Optional[str] = None


class PollSettings(BaseModel):
    max_attempts: int = 60
    interval_seconds: float = 3.0


class SearchSettings(BaseModel):
    window_minutes: int = 30
    limit: int = 50


class GatewaySettings(BaseSettings):
    access_token: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MP_ACCESS_TOKEN", "POINT__ACCESS_TOKEN"),
    )
    device_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("MP_DEVICE_ID", "POINT__DEVICE_ID"),
    )
    base_url: str = "https://api.mercadopago.com"
    # POINT__SIMULATION=true forces the simulated terminal even with credentials.
    force_simulation: bool = Field(default=False, validation_alias=AliasChoices("POINT__SIMULATION", "force_simulation"))
    operating_mode: str = "PDV"

    timeouts: GatewayTimeouts = Field(default_factory=GatewayTimeouts)
    retry: GatewayRetry = Field(default_factory=GatewayRetry)
    webhook: WebhookSettings = Field(default_factory=WebhookSettings)
    janitor: JanitorSettings = Field(default_factory=JanitorSettings)
    cache: ConfirmationCacheSettings = Field(default_factory=ConfirmationCacheSettings)
    poll: PollSettings = Field(default_factory=PollSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="POINT__",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    @property
    def simulation(self) -> bool:
        """Forced, or implied by missing credentials (local kiosk demos)."""
        return self.force_simulation or not (self.access_token and self.device_id)


gateway_settings = GatewaySettings()
