"""
Exponential backoff with full jitter for failed delivery attempts.

The delay before retry number ``n`` (``n = attempt.retry_count``) is:

    base_delay * multiplier^(n - 1) + uniform[0, jitter)

with an optional cap on the exponential part. The result is a hint for
the external scheduler: it may run the retry later, never earlier.
"""

import random
from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING

from msgbot.items.schemas import ensure_utc

if TYPE_CHECKING:
    from msgbot.delivery.schemas import DeliveryAttempt


class RetryPolicy:
    """
    Computes whether and when a failed attempt may be retried.

    Usage:
        policy = RetryPolicy(jitter_seconds=1.0)
        retry_at = policy.next_retry_time(attempt)
        if retry_at is not None:
            attempt.requeue(scheduled_at=retry_at)
    """

    def __init__(
        self,
        jitter_seconds: float = 1.0,
        max_delay_seconds: float | None = None,
        multiplier: float = 2.0,
        rng: random.Random | None = None,
    ):
        self.jitter_seconds = jitter_seconds
        self.max_delay_seconds = max_delay_seconds
        self.multiplier = multiplier
        self._rng = rng or random.Random()

    def delay_seconds(self, retry_count: int, base_delay: float) -> float:
        """Backoff delay in seconds for the given retry count."""
        delay = base_delay * (self.multiplier ** (retry_count - 1))
        if self.max_delay_seconds is not None:
            delay = min(delay, self.max_delay_seconds)
        # random() is in [0, 1), keeping the jitter strictly below the bound
        return delay + self._rng.random() * self.jitter_seconds

    def next_retry_time(
        self,
        attempt: "DeliveryAttempt",
        now: datetime | None = None,
    ) -> datetime | None:
        """Earliest time the attempt may be re-enqueued, or None if it cannot retry."""
        if not attempt.can_retry():
            return None
        now = ensure_utc(now or datetime.now(timezone.utc))
        delay = self.delay_seconds(attempt.retry_count, attempt.retry_delay_seconds)
        return now + timedelta(seconds=delay)


DEFAULT_RETRY_POLICY = RetryPolicy()
