"""Aggregate statistics over delivery attempts."""

from collections.abc import Iterable
from datetime import datetime
from typing import Any

from msgbot.delivery.schemas import VALID_FEEDBACK, DeliveryAttempt, DeliveryStatus
from msgbot.items.schemas import ensure_utc


def _empty_group() -> dict[str, Any]:
    return {
        "total": 0,
        "status_distribution": {s.value: 0 for s in DeliveryStatus},
        "avg_duration_ms": 0.0,
        "read_count": 0,
        "click_count": 0,
    }


def summarize_attempts(
    attempts: Iterable[DeliveryAttempt],
    owner_id: str | None = None,
    since: datetime | None = None,
    until: datetime | None = None,
) -> dict[str, Any]:
    """Summarize attempts per channel and status.

    Args:
        attempts: Attempts to aggregate.
        owner_id: Optional filter to a single recipient.
        since: Optional inclusive lower bound on ``created_at``.
        until: Optional inclusive upper bound on ``created_at``.

    Returns:
        Dict with overall totals, ``success_rate``, a per-channel breakdown
        and the feedback distribution.
    """
    since = ensure_utc(since) if since else None
    until = ensure_utc(until) if until else None

    overall = _empty_group()
    by_channel: dict[str, dict[str, Any]] = {}
    feedback = {f: 0 for f in sorted(VALID_FEEDBACK)}
    durations: dict[str, list[float]] = {}

    for attempt in attempts:
        if owner_id is not None and attempt.owner_id != owner_id:
            continue
        if since is not None and attempt.created_at < since:
            continue
        if until is not None and attempt.created_at > until:
            continue

        channel = attempt.channel.value
        group = by_channel.setdefault(channel, _empty_group())
        for target, key in ((overall, "_all"), (group, channel)):
            target["total"] += 1
            target["status_distribution"][attempt.status.value] += 1
            target["read_count"] += int(attempt.interaction.is_read)
            target["click_count"] += attempt.interaction.click_count
            if attempt.timing.duration_ms is not None:
                durations.setdefault(key, []).append(attempt.timing.duration_ms)

        if attempt.interaction.feedback:
            feedback[attempt.interaction.feedback] += 1

    for key, target in (("_all", overall), *by_channel.items()):
        values = durations.get(key)
        if values:
            target["avg_duration_ms"] = sum(values) / len(values)

    finished = (
        overall["status_distribution"][DeliveryStatus.SUCCESS.value]
        + overall["status_distribution"][DeliveryStatus.FAILED.value]
    )
    success_rate = (
        overall["status_distribution"][DeliveryStatus.SUCCESS.value] / finished
        if finished else 0.0
    )

    return {
        **overall,
        "success_rate": success_rate,
        "by_channel": dict(sorted(by_channel.items())),
        "feedback_distribution": feedback,
    }
