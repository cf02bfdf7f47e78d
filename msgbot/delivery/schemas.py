"""Delivery attempt records and their state machine.

One DeliveryAttempt tracks the delivery of one item, for one subscription,
through one channel. It is owned by exactly one worker at a time and is
mutated only through the transition methods below::

    pending -> sending -> success
                       -> failed -> pending   (requeue, while can_retry())
    pending | sending  -> cancelled

``success`` and ``cancelled`` are terminal. ``failed`` is terminal once
``can_retry()`` is False. Any transition out of a terminal state raises
InvalidTransitionError; a second ``mark_success`` never overwrites the
first call's timing.

Retry state is an append-only ``retry_history`` log; ``retry_count`` is
derived from it.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from msgbot.delivery.errors import DeliveryValidationError, InvalidTransitionError
from msgbot.delivery.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from msgbot.items.schemas import ensure_utc
from msgbot.subscriptions.schemas import Channel

logger = logging.getLogger(__name__)

VALID_PRIORITIES: frozenset[str] = frozenset({
    "low",
    "normal",
    "high",
    "urgent",
})

VALID_INTERACTIONS: frozenset[str] = frozenset({
    "read",
    "click",
    "feedback",
})

VALID_FEEDBACK: frozenset[str] = frozenset({
    "like",
    "dislike",
    "report",
    "block",
})

MAX_TITLE_LENGTH = 200
MAX_BODY_LENGTH = 2000
MAX_SUMMARY_LENGTH = 500


class DeliveryStatus(str, Enum):
    """Delivery attempt states."""

    PENDING = "pending"
    SENDING = "sending"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


_TRANSITIONS: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.PENDING: frozenset({DeliveryStatus.SENDING, DeliveryStatus.CANCELLED}),
    DeliveryStatus.SENDING: frozenset({
        DeliveryStatus.SUCCESS,
        DeliveryStatus.FAILED,
        DeliveryStatus.CANCELLED,
    }),
    DeliveryStatus.FAILED: frozenset({DeliveryStatus.PENDING}),
    DeliveryStatus.SUCCESS: frozenset(),
    DeliveryStatus.CANCELLED: frozenset(),
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _ms_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() * 1000.0


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _parse_dt(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    return ensure_utc(value)


@dataclass
class DeliveryContent:
    """Rendered content pushed to the channel."""

    title: str = ""
    body: str = ""
    summary: str = ""
    url: str | None = None
    image_url: str | None = None
    template: str = "simple"

    def __post_init__(self) -> None:
        for name, limit in (
            ("title", MAX_TITLE_LENGTH),
            ("body", MAX_BODY_LENGTH),
            ("summary", MAX_SUMMARY_LENGTH),
        ):
            value = getattr(self, name)
            if len(value) > limit:
                raise DeliveryValidationError(
                    f"Content {name} is {len(value)} characters, limit is {limit}"
                )


@dataclass(frozen=True)
class RetryRecord:
    """One failed try, appended to the retry history."""

    attempt: int
    timestamp: datetime
    error: str | None = None
    duration_ms: float = 0.0


@dataclass
class DeliveryTiming:
    """Scheduling and execution timestamps.

    ``queue_time_ms`` is ``started_at - scheduled_at`` and ``duration_ms``
    is ``completed_at - started_at``.
    """

    scheduled_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: float | None = None
    queue_time_ms: float | None = None


@dataclass
class DeliveryResult:
    """Provider outcome of the latest send."""

    message_id: str | None = None
    delivery_time: datetime | None = None
    response_time_ms: float | None = None
    error_code: str | None = None
    error_message: str | None = None
    raw_response: Any = None


@dataclass
class Interaction:
    """Recipient interaction feedback, independent of delivery status."""

    is_read: bool = False
    read_at: datetime | None = None
    is_clicked: bool = False
    clicked_at: datetime | None = None
    click_count: int = 0
    feedback: str | None = None
    feedback_at: datetime | None = None


@dataclass
class BatchInfo:
    """Membership of an attempt in one fan-out batch."""

    batch_id: str
    batch_size: int
    batch_index: int
    is_batch_complete: bool = False

    def __post_init__(self) -> None:
        if self.batch_size < 1 or not (0 <= self.batch_index < self.batch_size):
            raise DeliveryValidationError(
                f"Invalid batch position {self.batch_index} of {self.batch_size}"
            )


@dataclass
class DeliveryAttempt:
    """Delivery of one item to one subscriber through one channel.

    Attributes:
        item_id: Delivered item.
        subscription_id: Subscription that matched the item.
        owner_id: Owner of the subscription (recipient).
        channel: Destination channel.
        content: Rendered content.
        priority: low, normal, high or urgent.
        max_retries: Retries allowed after failures.
        retry_delay_seconds: Base delay for exponential backoff.
        timeout_seconds: Per-send timeout applied by the dispatcher.
        status: Current state-machine status.
        retry_history: Append-only log of failed tries.
        timing: Scheduling/execution timestamps.
        result: Provider outcome.
        interaction: Read/click/feedback signals.
        batch: Fan-out batch membership, if any.
        attempt_id: Unique identifier (push_{uuid_hex[:12]}).
        created_at: When the attempt was created.
    """

    item_id: str
    subscription_id: str
    owner_id: str
    channel: Channel
    content: DeliveryContent = field(default_factory=DeliveryContent)
    priority: str = "normal"
    max_retries: int = 3
    retry_delay_seconds: float = 300.0
    timeout_seconds: float = 30.0
    status: DeliveryStatus = DeliveryStatus.PENDING
    retry_history: list[RetryRecord] = field(default_factory=list)
    timing: DeliveryTiming = field(default_factory=DeliveryTiming)
    result: DeliveryResult = field(default_factory=DeliveryResult)
    interaction: Interaction = field(default_factory=Interaction)
    batch: BatchInfo | None = None
    attempt_id: str = field(default_factory=lambda: f"push_{uuid.uuid4().hex[:12]}")
    created_at: datetime = field(default_factory=_utc_now)
    retries_exhausted: bool = False
    cancel_reason: str | None = None

    def __post_init__(self) -> None:
        for name in ("item_id", "subscription_id", "owner_id"):
            if not getattr(self, name):
                raise DeliveryValidationError(f"Delivery attempt requires {name}")
        if self.channel is None or self.channel == "":
            raise DeliveryValidationError("Delivery attempt requires a channel")
        try:
            self.channel = Channel(self.channel)
        except ValueError as e:
            raise DeliveryValidationError(
                f"Invalid channel {self.channel!r}. "
                f"Must be one of: {sorted(c.value for c in Channel)}"
            ) from e
        self.status = DeliveryStatus(self.status)
        if self.priority not in VALID_PRIORITIES:
            raise DeliveryValidationError(
                f"Invalid priority {self.priority!r}. "
                f"Must be one of: {sorted(VALID_PRIORITIES)}"
            )
        if self.max_retries < 0:
            raise DeliveryValidationError(f"Invalid max_retries {self.max_retries}")
        if self.retry_delay_seconds <= 0:
            raise DeliveryValidationError(
                f"Invalid retry_delay_seconds {self.retry_delay_seconds}"
            )
        if self.timeout_seconds <= 0:
            raise DeliveryValidationError(f"Invalid timeout_seconds {self.timeout_seconds}")

        self.created_at = ensure_utc(self.created_at)
        if self.timing.scheduled_at is None:
            self.timing.scheduled_at = self.created_at
        else:
            self.timing.scheduled_at = ensure_utc(self.timing.scheduled_at)

    # ── Derived state ───────────────────────────────────

    @property
    def retry_count(self) -> int:
        return len(self.retry_history)

    @property
    def is_terminal(self) -> bool:
        if self.status in (DeliveryStatus.SUCCESS, DeliveryStatus.CANCELLED):
            return True
        return self.status == DeliveryStatus.FAILED and not self.can_retry()

    def can_retry(self) -> bool:
        """True iff the attempt failed and retries remain."""
        return (
            self.status == DeliveryStatus.FAILED
            and not self.retries_exhausted
            and self.retry_count < self.max_retries
        )

    def next_retry_time(
        self,
        now: datetime | None = None,
        policy: RetryPolicy | None = None,
    ) -> datetime | None:
        """Backoff hint for re-enqueueing; None when the attempt cannot retry."""
        return (policy or DEFAULT_RETRY_POLICY).next_retry_time(self, now)

    # ── Transitions ─────────────────────────────────────

    def _transition(self, target: DeliveryStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(self.attempt_id, self.status.value, target.value)
        self.status = target

    def mark_started(self, now: datetime | None = None) -> None:
        """pending -> sending. Records start time and queue wait."""
        self._transition(DeliveryStatus.SENDING)
        started = ensure_utc(now or _utc_now())
        self.timing.started_at = started

        if self.timing.scheduled_at is not None:
            queue_time = _ms_between(self.timing.scheduled_at, started)
            if queue_time < 0:
                logger.warning(
                    "Attempt %s started %.0fms before its scheduled time "
                    "(clock or scheduling error)",
                    self.attempt_id, -queue_time,
                )
            self.timing.queue_time_ms = queue_time

    def _complete(self, now: datetime | None) -> datetime:
        completed = ensure_utc(now or _utc_now())
        self.timing.completed_at = completed
        if self.timing.started_at is not None:
            self.timing.duration_ms = _ms_between(self.timing.started_at, completed)
        return completed

    def mark_success(
        self,
        message_id: str,
        response_time_ms: float = 0.0,
        raw_response: Any = None,
        now: datetime | None = None,
    ) -> None:
        """sending -> success. Terminal."""
        self._transition(DeliveryStatus.SUCCESS)
        completed = self._complete(now)
        self.result.message_id = message_id
        self.result.delivery_time = completed
        self.result.response_time_ms = response_time_ms
        self.result.error_code = None
        self.result.error_message = None
        if raw_response is not None:
            self.result.raw_response = raw_response

    def mark_failed(
        self,
        error_code: str,
        error_message: str,
        raw_response: Any = None,
        now: datetime | None = None,
    ) -> None:
        """sending -> failed. Terminal only once can_retry() is False."""
        self._transition(DeliveryStatus.FAILED)
        self._complete(now)
        self.result.error_code = error_code
        self.result.error_message = error_message
        if raw_response is not None:
            self.result.raw_response = raw_response

    def add_retry_attempt(
        self,
        error: str | None,
        duration_ms: float = 0.0,
        now: datetime | None = None,
    ) -> RetryRecord:
        """Append one entry to the retry history. Does not change status."""
        if self.status != DeliveryStatus.FAILED:
            raise InvalidTransitionError(
                self.attempt_id, self.status.value, "retry_history"
            )
        record = RetryRecord(
            attempt=self.retry_count + 1,
            timestamp=ensure_utc(now or _utc_now()),
            error=error,
            duration_ms=duration_ms,
        )
        self.retry_history.append(record)
        return record

    def requeue(self, scheduled_at: datetime | None = None, now: datetime | None = None) -> None:
        """failed -> pending, scheduling the next send.

        Raises InvalidTransitionError when no retries remain.
        """
        if not self.can_retry():
            raise InvalidTransitionError(
                self.attempt_id, self.status.value, DeliveryStatus.PENDING.value
            )
        self._transition(DeliveryStatus.PENDING)
        self.timing = DeliveryTiming(
            scheduled_at=ensure_utc(scheduled_at or now or _utc_now()),
        )

    def exhaust_retries(self) -> None:
        """Stop further retries, e.g. for a permanent provider error."""
        self.retries_exhausted = True

    def cancel(self, reason: str | None = None, now: datetime | None = None) -> None:
        """pending | sending -> cancelled. Terminal."""
        self._transition(DeliveryStatus.CANCELLED)
        self.cancel_reason = reason
        self._complete(now)

    def update_interaction(
        self,
        kind: str,
        feedback: str | None = None,
        now: datetime | None = None,
    ) -> None:
        """Record read/click/feedback. Never changes the delivery status."""
        if kind not in VALID_INTERACTIONS:
            raise DeliveryValidationError(
                f"Invalid interaction {kind!r}. Must be one of: {sorted(VALID_INTERACTIONS)}"
            )
        at = ensure_utc(now or _utc_now())
        if kind == "read":
            self.interaction.is_read = True
            self.interaction.read_at = at
        elif kind == "click":
            self.interaction.is_clicked = True
            self.interaction.clicked_at = at
            self.interaction.click_count += 1
        else:
            if feedback not in VALID_FEEDBACK:
                raise DeliveryValidationError(
                    f"Invalid feedback {feedback!r}. Must be one of: {sorted(VALID_FEEDBACK)}"
                )
            self.interaction.feedback = feedback
            self.interaction.feedback_at = at

    # ── Serialization ───────────────────────────────────

    def summary(self) -> dict[str, Any]:
        """Compact view for listings and logs."""
        return {
            "attempt_id": self.attempt_id,
            "channel": self.channel.value,
            "status": self.status.value,
            "title": self.content.title,
            "summary": self.content.summary,
            "scheduled_at": _iso(self.timing.scheduled_at),
            "completed_at": _iso(self.timing.completed_at),
            "duration_ms": self.timing.duration_ms,
            "message_id": self.result.message_id,
            "error_message": self.result.error_message,
            "retry_count": self.retry_count,
        }

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "attempt_id": self.attempt_id,
            "item_id": self.item_id,
            "subscription_id": self.subscription_id,
            "owner_id": self.owner_id,
            "channel": self.channel.value,
            "status": self.status.value,
            "priority": self.priority,
            "max_retries": self.max_retries,
            "retry_delay_seconds": self.retry_delay_seconds,
            "timeout_seconds": self.timeout_seconds,
            "retries_exhausted": self.retries_exhausted,
            "cancel_reason": self.cancel_reason,
            "created_at": self.created_at.isoformat(),
            "content": {
                "title": self.content.title,
                "body": self.content.body,
                "summary": self.content.summary,
                "url": self.content.url,
                "image_url": self.content.image_url,
                "template": self.content.template,
            },
            "retry_history": [
                {
                    "attempt": r.attempt,
                    "timestamp": r.timestamp.isoformat(),
                    "error": r.error,
                    "duration_ms": r.duration_ms,
                }
                for r in self.retry_history
            ],
            "timing": {
                "scheduled_at": _iso(self.timing.scheduled_at),
                "started_at": _iso(self.timing.started_at),
                "completed_at": _iso(self.timing.completed_at),
                "duration_ms": self.timing.duration_ms,
                "queue_time_ms": self.timing.queue_time_ms,
            },
            "result": {
                "message_id": self.result.message_id,
                "delivery_time": _iso(self.result.delivery_time),
                "response_time_ms": self.result.response_time_ms,
                "error_code": self.result.error_code,
                "error_message": self.result.error_message,
                "raw_response": self.result.raw_response,
            },
            "interaction": {
                "is_read": self.interaction.is_read,
                "read_at": _iso(self.interaction.read_at),
                "is_clicked": self.interaction.is_clicked,
                "clicked_at": _iso(self.interaction.clicked_at),
                "click_count": self.interaction.click_count,
                "feedback": self.interaction.feedback,
                "feedback_at": _iso(self.interaction.feedback_at),
            },
            "batch": None if self.batch is None else {
                "batch_id": self.batch.batch_id,
                "batch_size": self.batch.batch_size,
                "batch_index": self.batch.batch_index,
                "is_batch_complete": self.batch.is_batch_complete,
            },
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeliveryAttempt":
        """Create a DeliveryAttempt from a dictionary produced by to_dict().

        Args:
            data: Dictionary with attempt fields.

        Returns:
            DeliveryAttempt instance.
        """
        content = data.get("content") or {}
        timing = data.get("timing") or {}
        result = data.get("result") or {}
        interaction = data.get("interaction") or {}
        batch = data.get("batch")

        return cls(
            attempt_id=data.get("attempt_id") or f"push_{uuid.uuid4().hex[:12]}",
            item_id=data["item_id"],
            subscription_id=data["subscription_id"],
            owner_id=data["owner_id"],
            channel=data.get("channel"),
            status=data.get("status", DeliveryStatus.PENDING.value),
            priority=data.get("priority", "normal"),
            max_retries=data.get("max_retries", 3),
            retry_delay_seconds=data.get("retry_delay_seconds", 300.0),
            timeout_seconds=data.get("timeout_seconds", 30.0),
            retries_exhausted=data.get("retries_exhausted", False),
            cancel_reason=data.get("cancel_reason"),
            created_at=_parse_dt(data.get("created_at")) or _utc_now(),
            content=DeliveryContent(**content),
            retry_history=[
                RetryRecord(
                    attempt=r["attempt"],
                    timestamp=_parse_dt(r["timestamp"]),
                    error=r.get("error"),
                    duration_ms=r.get("duration_ms", 0.0),
                )
                for r in data.get("retry_history") or []
            ],
            timing=DeliveryTiming(
                scheduled_at=_parse_dt(timing.get("scheduled_at")),
                started_at=_parse_dt(timing.get("started_at")),
                completed_at=_parse_dt(timing.get("completed_at")),
                duration_ms=timing.get("duration_ms"),
                queue_time_ms=timing.get("queue_time_ms"),
            ),
            result=DeliveryResult(
                message_id=result.get("message_id"),
                delivery_time=_parse_dt(result.get("delivery_time")),
                response_time_ms=result.get("response_time_ms"),
                error_code=result.get("error_code"),
                error_message=result.get("error_message"),
                raw_response=result.get("raw_response"),
            ),
            interaction=Interaction(
                is_read=interaction.get("is_read", False),
                read_at=_parse_dt(interaction.get("read_at")),
                is_clicked=interaction.get("is_clicked", False),
                clicked_at=_parse_dt(interaction.get("clicked_at")),
                click_count=interaction.get("click_count", 0),
                feedback=interaction.get("feedback"),
                feedback_at=_parse_dt(interaction.get("feedback_at")),
            ),
            batch=BatchInfo(**batch) if batch else None,
        )


def cancel_for_subscription(
    attempts: list[DeliveryAttempt],
    subscription_id: str,
    reason: str = "subscription deactivated",
    now: datetime | None = None,
) -> list[DeliveryAttempt]:
    """Cancel every pending/sending attempt of a deactivated subscription.

    Attempts in success/failed/cancelled are left untouched.

    Returns:
        The attempts that were cancelled.
    """
    cancelled: list[DeliveryAttempt] = []
    for attempt in attempts:
        if attempt.subscription_id != subscription_id:
            continue
        if attempt.status in (DeliveryStatus.PENDING, DeliveryStatus.SENDING):
            attempt.cancel(reason, now)
            cancelled.append(attempt)
    if cancelled:
        logger.info(
            "Cancelled %d attempt(s) for subscription %s: %s",
            len(cancelled), subscription_id, reason,
        )
    return cancelled
