"""Delivery dispatcher driving attempts through channel adapters.

Each attempt is sent through the adapter registered for its channel,
under that channel's rate limit and concurrency ceiling. Provider errors,
timeouts and adapter exceptions are recorded on the attempt and never
propagate; a failed attempt is requeued with backoff while retries remain.

Statistics failures are logged and do not affect the delivery outcome
(graceful degradation).

Pattern: Orchestrator, delegates to stateless channel adapters.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from msgbot.delivery.config import DeliveryConfig
from msgbot.delivery.errors import DeliveryError
from msgbot.delivery.retry import RetryPolicy
from msgbot.delivery.schemas import DeliveryAttempt, DeliveryStatus, cancel_for_subscription
from msgbot.items.schemas import ensure_utc
from msgbot.subscriptions.schemas import Channel
from msgbot.subscriptions.stats import StatsRecorder

logger = logging.getLogger(__name__)


@dataclass
class SendOutcome:
    """Result of one adapter send.

    ``permanent`` marks failures that retrying cannot fix (blocked bot,
    unknown recipient); the attempt then stops retrying.
    """

    success: bool
    message_id: str | None = None
    error_code: str | None = None
    error_message: str | None = None
    permanent: bool = False
    raw_response: Any = None


class ChannelAdapter(ABC):
    """Abstract base for channel delivery adapters."""

    @property
    @abstractmethod
    def channel(self) -> Channel:
        """Channel served by this adapter."""

    @abstractmethod
    async def send(self, attempt: DeliveryAttempt) -> SendOutcome:
        """Deliver the attempt's content to its owner.

        Args:
            attempt: Attempt in ``sending`` status.

        Returns:
            SendOutcome describing the provider response.
        """


@dataclass
class RateLimiter:
    """
    Token bucket rate limiter.

    Allows `rate` sends per minute, refilled continuously, with a burst
    capacity of `rate`.
    """

    rate: int  # sends per minute
    _tokens: float = field(init=False)
    _last_update: float = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def __post_init__(self) -> None:
        if self.rate < 1:
            raise ValueError(f"rate must be positive, got {self.rate}")
        self._tokens = float(self.rate)
        self._last_update = time.monotonic()

    async def acquire(self) -> None:
        """Wait until a token is available, then consume it."""
        async with self._lock:
            now = time.monotonic()
            elapsed = now - self._last_update
            self._last_update = now

            self._tokens = min(
                float(self.rate),
                self._tokens + elapsed * (self.rate / 60.0),
            )

            if self._tokens < 1:
                wait_time = (1 - self._tokens) * 60.0 / self.rate
                logger.debug("Rate limited, waiting %.2fs", wait_time)
                await asyncio.sleep(wait_time)
                self._tokens = 0
                self._last_update = time.monotonic()
            else:
                self._tokens -= 1


@dataclass
class DispatchReport:
    """Counts for one dispatch_batch call."""

    sent: int = 0
    failed: int = 0
    requeued: int = 0
    cancelled: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return self.sent + self.failed + self.requeued + self.cancelled

    def to_dict(self) -> dict[str, Any]:
        return {
            "sent": self.sent,
            "failed": self.failed,
            "requeued": self.requeued,
            "cancelled": self.cancelled,
            "errors": list(self.errors),
        }


class DeliveryDispatcher:
    """Sends delivery attempts through registered channel adapters.

    Usage:
        dispatcher = DeliveryDispatcher([TelegramAdapter(...)], stats=recorder)
        report = await dispatcher.dispatch_batch(attempts)
    """

    def __init__(
        self,
        adapters: Iterable[ChannelAdapter],
        config: DeliveryConfig | None = None,
        stats: StatsRecorder | None = None,
        retry_policy: RetryPolicy | None = None,
    ) -> None:
        self._config = config or DeliveryConfig()
        self._stats = stats
        self._retry_policy = retry_policy or RetryPolicy(
            jitter_seconds=self._config.jitter_seconds,
            max_delay_seconds=self._config.max_retry_delay_seconds,
        )
        self._adapters: dict[Channel, ChannelAdapter] = {}
        for adapter in adapters:
            self._adapters[Channel(adapter.channel)] = adapter

        self._limiters = {
            ch: RateLimiter(rate=self._config.rate_limit_for(ch)) for ch in Channel
        }
        self._semaphores = {
            ch: asyncio.Semaphore(self._config.concurrency_for(ch)) for ch in Channel
        }
        self._deactivated: set[str] = set()

    @property
    def adapters(self) -> dict[Channel, ChannelAdapter]:
        """Registered adapters by channel (for inspection/testing)."""
        return dict(self._adapters)

    def deactivate_subscription(
        self,
        subscription_id: str,
        pending: Iterable[DeliveryAttempt] = (),
        now: datetime | None = None,
    ) -> list[DeliveryAttempt]:
        """Stop delivering for a subscription.

        Cancels the given pending/sending attempts now; attempts dispatched
        later for this subscription are cancelled instead of sent.
        """
        self._deactivated.add(subscription_id)
        return cancel_for_subscription(
            list(pending), subscription_id, "subscription deactivated", now
        )

    def reactivate_subscription(self, subscription_id: str) -> None:
        self._deactivated.discard(subscription_id)

    async def dispatch(self, attempt: DeliveryAttempt) -> DeliveryAttempt:
        """Send one pending attempt and record the outcome on it.

        Timestamps are taken from the wall clock as each step happens, so
        queue time and duration include rate-limit and provider waits.

        Args:
            attempt: Attempt in ``pending`` status.

        Returns:
            The same attempt, now in success, failed, pending (requeued)
            or cancelled status.

        Raises:
            InvalidTransitionError: If the attempt is not pending.
        """
        if self._cancel_if_deactivated(attempt):
            return attempt

        adapter = self._adapters.get(attempt.channel)
        if adapter is None:
            attempt.mark_started()
            attempt.mark_failed(
                "no_adapter", f"No adapter registered for {attempt.channel.value}"
            )
            attempt.add_retry_attempt("no_adapter")
            attempt.exhaust_retries()
            logger.error(
                "No adapter for channel %s, attempt %s failed permanently",
                attempt.channel.value, attempt.attempt_id,
            )
            return attempt

        async with self._semaphores[attempt.channel]:
            await self._limiters[attempt.channel].acquire()
            # Deactivation may have landed while waiting for a send slot
            if self._cancel_if_deactivated(attempt):
                return attempt
            attempt.mark_started()
            outcome, elapsed_ms = await self._send(adapter, attempt)

        if outcome.success:
            await self._on_success(attempt, outcome, elapsed_ms)
        else:
            self._on_failure(attempt, outcome, elapsed_ms)
        return attempt

    async def dispatch_batch(self, attempts: list[DeliveryAttempt]) -> DispatchReport:
        """Send attempts concurrently, isolating failures per attempt.

        An unexpected error for one attempt does not affect the others.
        """
        report = DispatchReport()
        if not attempts:
            return report

        results = await asyncio.gather(*(self._dispatch_isolated(a) for a in attempts))
        for attempt, error in zip(attempts, results):
            if error is not None:
                report.errors.append(f"{attempt.attempt_id}: {error}")
            if attempt.status == DeliveryStatus.SUCCESS:
                report.sent += 1
            elif attempt.status == DeliveryStatus.CANCELLED:
                report.cancelled += 1
            elif attempt.status == DeliveryStatus.PENDING and attempt.retry_count > 0:
                report.requeued += 1
            elif attempt.status == DeliveryStatus.FAILED:
                report.failed += 1

        self._mark_batches(attempts)
        logger.info(
            "Dispatched %d attempt(s): %d sent, %d requeued, %d failed, %d cancelled",
            len(attempts), report.sent, report.requeued, report.failed, report.cancelled,
        )
        return report

    def _cancel_if_deactivated(self, attempt: DeliveryAttempt) -> bool:
        if attempt.subscription_id not in self._deactivated:
            return False
        attempt.cancel("subscription deactivated")
        logger.info(
            "Attempt %s cancelled, subscription %s is inactive",
            attempt.attempt_id, attempt.subscription_id,
        )
        return True

    async def _dispatch_isolated(self, attempt: DeliveryAttempt) -> str | None:
        try:
            await self.dispatch(attempt)
        except DeliveryError as e:
            logger.error("Cannot dispatch attempt %s: %s", attempt.attempt_id, e)
            return str(e)
        except Exception as e:
            logger.error(
                "Unexpected error dispatching attempt %s: %s",
                attempt.attempt_id, e,
            )
            return str(e)
        return None

    async def _send(
        self,
        adapter: ChannelAdapter,
        attempt: DeliveryAttempt,
    ) -> tuple[SendOutcome, float]:
        started = time.monotonic()
        try:
            outcome = await asyncio.wait_for(
                adapter.send(attempt), timeout=attempt.timeout_seconds
            )
        except asyncio.TimeoutError:
            outcome = SendOutcome(
                success=False,
                error_code="timeout",
                error_message=f"Send timed out after {attempt.timeout_seconds:.0f}s",
            )
        except Exception as e:
            logger.warning(
                "Adapter %s raised for attempt %s: %s",
                attempt.channel.value, attempt.attempt_id, e,
            )
            outcome = SendOutcome(
                success=False,
                error_code="adapter_error",
                error_message=str(e) or type(e).__name__,
            )
        return outcome, (time.monotonic() - started) * 1000.0

    async def _on_success(
        self,
        attempt: DeliveryAttempt,
        outcome: SendOutcome,
        elapsed_ms: float,
    ) -> None:
        attempt.mark_success(
            outcome.message_id or "",
            response_time_ms=elapsed_ms,
            raw_response=outcome.raw_response,
        )
        if attempt.retry_count:
            logger.info(
                "Attempt %s delivered to %s after %d retry(ies)",
                attempt.attempt_id, attempt.channel.value, attempt.retry_count,
            )

        if self._stats is None:
            return
        delivered_at = attempt.result.delivery_time or datetime.now(timezone.utc)
        try:
            await self._stats.record_push(attempt.subscription_id, delivered_at)
        except Exception as e:
            logger.error(
                "Failed to record push for subscription %s: %s",
                attempt.subscription_id, e,
            )

    def _on_failure(
        self,
        attempt: DeliveryAttempt,
        outcome: SendOutcome,
        elapsed_ms: float,
    ) -> None:
        error_code = outcome.error_code or "send_failed"
        error_message = outcome.error_message or "Channel reported failure"
        attempt.mark_failed(error_code, error_message, outcome.raw_response)
        failed_at = attempt.timing.completed_at
        attempt.add_retry_attempt(error_message, elapsed_ms, failed_at)
        if outcome.permanent:
            attempt.exhaust_retries()

        retry_at = attempt.next_retry_time(failed_at, self._retry_policy)
        if retry_at is None:
            logger.warning(
                "Attempt %s on %s failed permanently after %d failure(s): %s",
                attempt.attempt_id, attempt.channel.value, attempt.retry_count, error_message,
            )
            return

        attempt.requeue(scheduled_at=retry_at, now=failed_at)
        logger.info(
            "Attempt %s on %s failed (%s), retry %d scheduled at %s",
            attempt.attempt_id, attempt.channel.value, error_code,
            attempt.retry_count, ensure_utc(retry_at).isoformat(),
        )

    def _mark_batches(self, attempts: list[DeliveryAttempt]) -> None:
        batches: dict[str, list[DeliveryAttempt]] = {}
        for attempt in attempts:
            if attempt.batch is not None:
                batches.setdefault(attempt.batch.batch_id, []).append(attempt)
        for members in batches.values():
            size = members[0].batch.batch_size
            if len(members) == size and all(m.is_terminal for m in members):
                for m in members:
                    m.batch.is_batch_complete = True
