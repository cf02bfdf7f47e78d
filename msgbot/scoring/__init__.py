"""Hotness scoring for ingested items.

Usage:
    from msgbot.scoring import ScoreEngine

    engine = ScoreEngine()
    item = engine.refresh(item, now)
    if engine.is_high_quality(item):
        ...
"""

from msgbot.scoring.config import ScoringConfig
from msgbot.scoring.engine import (
    ScoreEngine,
    base_engagement,
    compute_score,
    influence_multiplier,
    is_high_quality,
)

__all__ = [
    "ScoreEngine",
    "ScoringConfig",
    "base_engagement",
    "compute_score",
    "influence_multiplier",
    "is_high_quality",
]
