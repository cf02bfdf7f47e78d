"""Delivery configuration.

Controls retry defaults, per-channel throughput ceilings and rendered
content bounds. All settings can be overridden via ``DELIVERY_*``
environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from msgbot.subscriptions.schemas import Channel


class DeliveryConfig(BaseSettings):
    """Configuration for delivery attempts and channel dispatch."""

    model_config = SettingsConfigDict(
        env_prefix="DELIVERY_",
        case_sensitive=False,
        extra="ignore",
    )

    # Retry defaults for new attempts
    max_retries: int = Field(
        default=3,
        ge=0,
        le=5,
        description="Retries allowed after the first failed send",
    )
    retry_delay_seconds: float = Field(
        default=300.0,
        gt=0.0,
        description="Base delay for exponential backoff",
    )
    jitter_seconds: float = Field(
        default=1.0,
        ge=0.0,
        description="Upper bound (exclusive) of the uniform jitter added to each retry",
    )
    max_retry_delay_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional cap on the exponential part of the delay",
    )
    timeout_seconds: float = Field(
        default=30.0,
        gt=0.0,
        description="Per-send timeout enforced by the dispatcher",
    )

    # Per-channel throughput ceilings (requests per minute)
    wechat_rate_limit: int = Field(default=600, ge=1)
    telegram_rate_limit: int = Field(default=1800, ge=1)
    discord_rate_limit: int = Field(default=30, ge=1)

    # Per-channel in-flight sends
    wechat_concurrency: int = Field(default=5, ge=1)
    telegram_concurrency: int = Field(default=5, ge=1)
    discord_concurrency: int = Field(default=2, ge=1)

    # Rendered content bounds
    max_title_length: int = Field(default=200, ge=1)
    max_body_length: int = Field(default=2000, ge=1)
    max_summary_length: int = Field(default=500, ge=1)
    summary_preview_length: int = Field(default=100, ge=4)

    def rate_limit_for(self, channel: Channel) -> int:
        """Requests per minute allowed on a channel."""
        return getattr(self, f"{Channel(channel).value}_rate_limit")

    def concurrency_for(self, channel: Channel) -> int:
        """Concurrent sends allowed on a channel."""
        return getattr(self, f"{Channel(channel).value}_concurrency")
