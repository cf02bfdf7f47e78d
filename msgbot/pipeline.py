"""
Push pipeline - from one ingested item to dispatched deliveries.

Pipeline stages:
1. Scoring (hotness score refreshed at processing time)
2. Quality gate (optional, MATCHING_GATE_LOW_QUALITY)
3. Matching (keywords, filters, active windows)
4. Statistics (match counters, last processed item)
5. Planning (one attempt per subscription channel)
6. Dispatch (immediate attempts only; deferred ones are returned pending)

Statistics and dispatch failures are logged per subscription and never
abort the rest of the fan-out.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

import structlog

from msgbot.delivery.config import DeliveryConfig
from msgbot.delivery.dispatcher import DeliveryDispatcher, DispatchReport
from msgbot.delivery.planner import plan_deliveries
from msgbot.delivery.schemas import DeliveryAttempt
from msgbot.items.schemas import Item, ensure_utc
from msgbot.matching.engine import MatchingEngine
from msgbot.matching.schemas import MatchResult
from msgbot.observability.logging import log_context
from msgbot.subscriptions.schemas import Subscription
from msgbot.subscriptions.stats import StatsRecorder

logger = structlog.get_logger(__name__)


@dataclass
class PipelineResult:
    """Everything produced for one item."""

    item: Item
    matches: list[MatchResult] = field(default_factory=list)
    attempts: list[DeliveryAttempt] = field(default_factory=list)
    report: DispatchReport | None = None
    skipped_low_quality: bool = False

    @property
    def deferred(self) -> list[DeliveryAttempt]:
        """Attempts waiting for their subscription's active window."""
        deferred_ids = {m.subscription_id for m in self.matches if m.deferred}
        return [a for a in self.attempts if a.subscription_id in deferred_ids]

    def to_dict(self) -> dict[str, Any]:
        return {
            "item_id": self.item.item_id,
            "hotness_score": self.item.hotness_score,
            "skipped_low_quality": self.skipped_low_quality,
            "matches": [m.to_dict() for m in self.matches],
            "attempts": [a.summary() for a in self.attempts],
            "report": self.report.to_dict() if self.report else None,
        }


class PushPipeline:
    """
    Runs one item through scoring, matching, planning and dispatch.

    Usage:
        pipeline = PushPipeline(dispatcher=dispatcher, stats=recorder)
        result = await pipeline.process_item(item, subscriptions)
    """

    def __init__(
        self,
        matching_engine: MatchingEngine | None = None,
        dispatcher: DeliveryDispatcher | None = None,
        stats: StatsRecorder | None = None,
        delivery_config: DeliveryConfig | None = None,
    ):
        """
        Initialize the pipeline.

        Args:
            matching_engine: Matching engine (or create default)
            dispatcher: Delivery dispatcher; without one, attempts are
                planned but not sent
            stats: Statistics recorder; without one, no counters are kept
            delivery_config: Delivery settings used for planning
        """
        self._engine = matching_engine or MatchingEngine()
        self._dispatcher = dispatcher
        self._stats = stats
        self._delivery_config = delivery_config or DeliveryConfig()

    async def process_item(
        self,
        item: Item,
        subscriptions: Iterable[Subscription],
        now: datetime | None = None,
    ) -> PipelineResult:
        """
        Process one item against the subscription set.

        Args:
            item: Ingested item
            subscriptions: Candidate subscriptions
            now: Reference time for scoring, matching and planning
                (default: UTC now); delivery timestamps use the wall clock

        Returns:
            PipelineResult with the scored item, matches and attempts
        """
        now = ensure_utc(now or datetime.now(timezone.utc))
        subscriptions = list(subscriptions)
        by_id = {s.subscription_id: s for s in subscriptions}

        with log_context(item_id=item.item_id):
            scores = self._engine.score_engine
            item = scores.refresh(item, now)
            result = PipelineResult(item=item)

            if self._engine.config.gate_low_quality and not scores.is_high_quality(item):
                logger.info("Item skipped by quality gate", hotness_score=item.hotness_score)
                result.skipped_low_quality = True
                return result

            result.matches = self._engine.match(item, subscriptions, now)
            if not result.matches:
                logger.debug("No subscriptions matched", candidates=len(subscriptions))
                return result

            immediate: list[DeliveryAttempt] = []
            for match in result.matches:
                await self._record_match(match, item, now)
                attempts = plan_deliveries(
                    item,
                    match,
                    by_id[match.subscription_id],
                    config=self._delivery_config,
                    now=now,
                )
                result.attempts.extend(attempts)
                if not match.deferred:
                    immediate.extend(attempts)

            if self._dispatcher is not None and immediate:
                result.report = await self._dispatcher.dispatch_batch(immediate)

            logger.info(
                "Item processed",
                hotness_score=item.hotness_score,
                matches=len(result.matches),
                attempts=len(result.attempts),
                deferred=len(result.deferred),
            )
            return result

    async def _record_match(self, match: MatchResult, item: Item, now: datetime) -> None:
        """Update match statistics; failures are logged, not raised."""
        if self._stats is None:
            return
        try:
            await self._stats.record_match(match.subscription_id, now)
            await self._stats.set_last_processed(match.subscription_id, item.item_id)
        except Exception as e:
            logger.error(
                "Failed to record match statistics",
                subscription_id=match.subscription_id,
                error=str(e),
            )
