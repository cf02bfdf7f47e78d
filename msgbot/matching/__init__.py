"""Subscription matching for ingested items.

Components:
- MatchingEngine: Orchestrates filters and windows across subscriptions
- MatchResult: One ranked match with its delivery timing
- MatchingConfig: Pydantic settings (MATCHING_*)
"""

from msgbot.matching.config import MatchingConfig
from msgbot.matching.engine import MatchingEngine
from msgbot.matching.schemas import MatchResult

__all__ = [
    "MatchResult",
    "MatchingConfig",
    "MatchingEngine",
]
