"""Matching engine configuration.

All settings can be overridden via ``MATCHING_*`` environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class MatchingConfig(BaseSettings):
    """Configuration for subscription matching."""

    model_config = SettingsConfigDict(
        env_prefix="MATCHING_",
        case_sensitive=False,
        extra="ignore",
    )

    realtime_bypasses_window: bool = Field(
        default=True,
        description="Realtime subscriptions fire immediately regardless of active hours",
    )
    gate_low_quality: bool = Field(
        default=False,
        description="Drop items failing is_high_quality before matching (pipeline only)",
    )
