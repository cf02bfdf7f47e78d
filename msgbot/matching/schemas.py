"""Schema definitions for match results."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class MatchResult:
    """One subscription matched by one item.

    Attributes:
        subscription_id: Matched subscription.
        matched_keywords: Required keywords found in the item text.
        score: Combined ranking score for this match.
        deferred: True when the subscription's active window is closed and
            delivery waits for ``deliver_at``. A deferred result is still a
            match for statistics.
        deliver_at: Earliest time delivery may start.
    """

    subscription_id: str
    matched_keywords: list[str] = field(default_factory=list)
    score: float = 0.0
    deferred: bool = False
    deliver_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "subscription_id": self.subscription_id,
            "matched_keywords": list(self.matched_keywords),
            "score": self.score,
            "deferred": self.deferred,
            "deliver_at": self.deliver_at.isoformat() if self.deliver_at else None,
        }
