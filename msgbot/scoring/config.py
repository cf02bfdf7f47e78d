"""Configuration for the hotness scoring engine.

Engagement weights, author influence shaping, time decay and the
high-quality gate thresholds. All settings can be overridden via
SCORING_* environment variables.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ScoringConfig(BaseSettings):
    """Configuration for item hotness scoring.

    Example:
        SCORING_DECAY_HOURS=12
        SCORING_VERIFIED_MULTIPLIER=1.5
    """

    model_config = SettingsConfigDict(
        env_prefix="SCORING_",
        case_sensitive=False,
        extra="ignore",
    )

    # Engagement weights
    like_weight: float = Field(default=1.0, ge=0.0)
    retweet_weight: float = Field(default=2.0, ge=0.0)
    reply_weight: float = Field(default=1.5, ge=0.0)
    quote_weight: float = Field(default=1.8, ge=0.0)

    # Author influence: 1 + factor * min(followers / unit, cap)
    follower_unit: int = Field(
        default=10_000,
        ge=1,
        description="Followers that count as one influence step",
    )
    influence_cap: float = Field(
        default=5.0,
        ge=0.0,
        description="Maximum influence steps (5 steps * 0.1 = +50%)",
    )
    influence_factor: float = Field(default=0.1, ge=0.0)
    verified_multiplier: float = Field(default=1.2, ge=1.0)

    # Time decay: exp(-age_hours / decay_hours)
    decay_hours: float = Field(
        default=24.0,
        gt=0.0,
        description="e-folding time of the decay (half-life is ~0.69x this)",
    )

    # High-quality gate
    min_engagement: int = Field(
        default=5,
        ge=0,
        description="Minimum likes + retweets + replies",
    )
    min_text_length: int = Field(default=20, ge=0)
    max_spam_score: float = Field(default=0.7, ge=0.0, le=1.0)
