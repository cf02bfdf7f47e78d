"""Matching engine: one item against the full subscription set.

Stateless orchestrator over the pure predicates in
``msgbot.subscriptions``. Safe to call from many workers concurrently
against a shared, read-mostly subscription list; it never mutates its
inputs and has no I/O.

Per subscription, in order:
1. skip if inactive
2. keyword match (required any / exclude none)
3. attribute filters
4. active window, unless the subscription is realtime

A subscription outside its window still produces a MatchResult, flagged
``deferred`` with ``deliver_at`` set to the next window opening.
"""

import logging
from collections.abc import Iterable
from datetime import datetime, timezone

from msgbot.items.schemas import Item, ensure_utc
from msgbot.matching.config import MatchingConfig
from msgbot.matching.schemas import MatchResult
from msgbot.scoring.engine import ScoreEngine
from msgbot.subscriptions.filters import matched_keywords, matches_filters
from msgbot.subscriptions.schemas import Subscription
from msgbot.subscriptions.windows import is_in_active_hours, next_window_start

logger = logging.getLogger(__name__)


class MatchingEngine:
    """Evaluate an item against subscriptions and rank the matches."""

    def __init__(
        self,
        score_engine: ScoreEngine | None = None,
        config: MatchingConfig | None = None,
    ) -> None:
        self._scores = score_engine or ScoreEngine()
        self._config = config or MatchingConfig()

    @property
    def score_engine(self) -> ScoreEngine:
        return self._scores

    @property
    def config(self) -> MatchingConfig:
        return self._config

    def evaluate(
        self,
        item: Item,
        subscription: Subscription,
        item_score: float,
        now: datetime,
    ) -> MatchResult | None:
        """Evaluate a single subscription; None when it does not match."""
        if not subscription.is_active:
            return None

        keywords = matched_keywords(item, subscription)
        if not keywords:
            return None

        if not matches_filters(item, subscription):
            return None

        deferred = False
        deliver_at = now
        bypass = subscription.push.is_realtime and self._config.realtime_bypasses_window
        if not bypass and not is_in_active_hours(subscription, now):
            deferred = True
            deliver_at = next_window_start(subscription, now)

        return MatchResult(
            subscription_id=subscription.subscription_id,
            matched_keywords=keywords,
            score=item_score,
            deferred=deferred,
            deliver_at=deliver_at,
        )

    def match(
        self,
        item: Item,
        subscriptions: Iterable[Subscription],
        now: datetime | None = None,
    ) -> list[MatchResult]:
        """Match an item against every subscription.

        Args:
            item: Ingested item.
            subscriptions: Candidate subscriptions (inactive ones are skipped).
            now: Reference time for scoring and windows (default: UTC now).

        Returns:
            Matches ordered by score descending, then subscription creation
            time, then input order.
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        item_score = self._scores.compute_score(item, now)

        ranked: list[tuple[float, datetime, int, MatchResult]] = []
        for index, subscription in enumerate(subscriptions):
            result = self.evaluate(item, subscription, item_score, now)
            if result is not None:
                ranked.append((-result.score, subscription.created_at, index, result))

        ranked.sort(key=lambda entry: entry[:3])
        matches = [entry[3] for entry in ranked]

        if matches:
            logger.debug(
                "Item %s matched %d subscription(s) (%d deferred)",
                item.item_id, len(matches), sum(1 for m in matches if m.deferred),
            )
        return matches
