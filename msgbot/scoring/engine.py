"""Time-decayed hotness scoring for items.

Pure functions with no I/O: the score depends only on the item's
engagement counters, author influence, and age relative to ``now``.
Callers decide whether to persist the result.

    base       = 1*likes + 2*retweets + 1.5*replies + 1.8*quotes
    influence  = 1 + 0.1 * min(followers / 10000, 5)
    verified   = 1.2 if author.verified else 1.0
    decay      = exp(-age_hours / 24)
    score      = round(base * influence * verified * decay)
"""

import logging
import math
from datetime import datetime, timezone

from msgbot.items.schemas import Item, ensure_utc
from msgbot.scoring.config import ScoringConfig

logger = logging.getLogger(__name__)

_DEFAULT_CONFIG = ScoringConfig()


def _age_hours(item: Item, now: datetime) -> float:
    """Hours since creation, clamped at zero for future-dated items."""
    age = (ensure_utc(now) - item.created_at).total_seconds() / 3600.0
    if age < 0:
        logger.warning(
            "Item %s is future-dated by %.2fh (clock skew?), treating age as 0",
            item.item_id, -age,
        )
        return 0.0
    return age


def base_engagement(item: Item, config: ScoringConfig = _DEFAULT_CONFIG) -> float:
    """Weighted engagement sum before influence and decay."""
    m = item.metrics
    return (
        m.like_count * config.like_weight
        + m.retweet_count * config.retweet_weight
        + m.reply_count * config.reply_weight
        + m.quote_count * config.quote_weight
    )


def influence_multiplier(item: Item, config: ScoringConfig = _DEFAULT_CONFIG) -> float:
    """Author influence boost, capped, including the verified bonus."""
    steps = min(item.author.followers_count / config.follower_unit, config.influence_cap)
    multiplier = 1.0 + steps * config.influence_factor
    if item.author.verified:
        multiplier *= config.verified_multiplier
    return multiplier


def compute_score(
    item: Item,
    now: datetime | None = None,
    config: ScoringConfig = _DEFAULT_CONFIG,
) -> float:
    """Compute the decayed hotness score of an item.

    Args:
        item: Item to score.
        now: Reference time (defaults to current UTC time).
        config: Scoring weights.

    Returns:
        Non-negative score, rounded to the nearest integer.
    """
    now = now or datetime.now(timezone.utc)
    decay = math.exp(-_age_hours(item, now) / config.decay_hours)
    score = base_engagement(item, config) * influence_multiplier(item, config) * decay
    return float(max(0, round(score)))


def is_high_quality(item: Item, config: ScoringConfig = _DEFAULT_CONFIG) -> bool:
    """Gate low-value items before matching.

    False when raw engagement is below the minimum, the text is too short,
    or the upstream spam score is above the threshold.
    """
    if item.metrics.total_engagement < config.min_engagement:
        return False
    if len(item.text) < config.min_text_length:
        return False
    if item.spam_score > config.max_spam_score:
        return False
    return True


class ScoreEngine:
    """Stateless scorer bound to one ScoringConfig.

    Safe to share across workers; holds no mutable state.
    """

    def __init__(self, config: ScoringConfig | None = None) -> None:
        self._config = config or ScoringConfig()

    @property
    def config(self) -> ScoringConfig:
        return self._config

    def compute_score(self, item: Item, now: datetime | None = None) -> float:
        return compute_score(item, now, self._config)

    def is_high_quality(self, item: Item) -> bool:
        return is_high_quality(item, self._config)

    def refresh(self, item: Item, now: datetime | None = None) -> Item:
        """Return a copy of the item with its hotness score recomputed."""
        return item.with_score(self.compute_score(item, now))
