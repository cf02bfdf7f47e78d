"""Turn a match into per-channel delivery attempts.

Rendering is pure: the same item, subscription and config always yield the
same content. Custom templates are Python format strings over a fixed set
of fields; unknown placeholders render empty.
"""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone

from msgbot.delivery.config import DeliveryConfig
from msgbot.delivery.schemas import BatchInfo, DeliveryAttempt, DeliveryContent
from msgbot.items.schemas import Item, ensure_utc
from msgbot.matching.schemas import MatchResult
from msgbot.subscriptions.schemas import Subscription, Template

logger = logging.getLogger(__name__)


class _TemplateFields(dict):
    def __missing__(self, key: str) -> str:
        return ""


def _clip(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[: max(limit - 3, 0)] + "..."


def _template_fields(item: Item, subscription: Subscription) -> _TemplateFields:
    return _TemplateFields(
        text=item.text,
        author=item.author.username,
        author_name=item.author.name,
        url=item.url,
        likes=item.metrics.like_count,
        retweets=item.metrics.retweet_count,
        replies=item.metrics.reply_count,
        score=item.hotness_score,
        subscription=subscription.name,
        keywords=", ".join(subscription.keywords),
        created_at=item.created_at.isoformat(),
    )


def render_content(
    item: Item,
    subscription: Subscription,
    config: DeliveryConfig | None = None,
) -> DeliveryContent:
    """Render the push content for an item using the subscription's template."""
    config = config or DeliveryConfig()
    template = subscription.push.template
    preview = item.summary(config.summary_preview_length)["text"]
    title = f"[{subscription.name}] @{item.author.username}"

    if template == Template.DETAILED:
        m = item.metrics
        body = (
            f"{item.text}\n\n"
            f"{item.author.name or item.author.username} (@{item.author.username})\n"
            f"{m.like_count} likes · {m.retweet_count} retweets · {m.reply_count} replies\n"
            f"{item.url}"
        )
    elif template == Template.CUSTOM and subscription.push.custom_template:
        try:
            body = subscription.push.custom_template.format_map(
                _template_fields(item, subscription)
            )
        except (ValueError, IndexError, AttributeError, TypeError, KeyError) as e:
            logger.warning(
                "Custom template for subscription %s failed (%s), using simple",
                subscription.subscription_id, e,
            )
            body = f"{preview}\n{item.url}"
    else:
        body = f"{preview}\n{item.url}"

    return DeliveryContent(
        title=_clip(title, config.max_title_length),
        body=_clip(body, config.max_body_length),
        summary=_clip(preview, config.max_summary_length),
        url=item.url,
        template=template.value,
    )


def plan_deliveries(
    item: Item,
    match: MatchResult,
    subscription: Subscription,
    config: DeliveryConfig | None = None,
    batch_id: str | None = None,
    now: datetime | None = None,
) -> list[DeliveryAttempt]:
    """Create one pending attempt per channel of the subscription.

    Attempts share one batch. Realtime subscriptions get ``high`` priority;
    deferred matches are scheduled at the next window opening.
    """
    if match.subscription_id != subscription.subscription_id:
        raise ValueError(
            f"Match for {match.subscription_id} does not belong to "
            f"subscription {subscription.subscription_id}"
        )

    config = config or DeliveryConfig()
    now = ensure_utc(now or datetime.now(timezone.utc))
    channels = sorted(subscription.push.channels, key=lambda c: c.value)
    if not channels:
        return []

    content = render_content(item, subscription, config)
    batch_id = batch_id or f"batch_{uuid.uuid4().hex[:12]}"
    priority = "high" if subscription.push.is_realtime else "normal"
    scheduled_at = match.deliver_at or now

    attempts: list[DeliveryAttempt] = []
    for index, channel in enumerate(channels):
        attempt = DeliveryAttempt(
            item_id=item.item_id,
            subscription_id=subscription.subscription_id,
            owner_id=subscription.owner_id,
            channel=channel,
            content=replace(content),
            priority=priority,
            max_retries=config.max_retries,
            retry_delay_seconds=config.retry_delay_seconds,
            timeout_seconds=config.timeout_seconds,
            batch=BatchInfo(batch_id=batch_id, batch_size=len(channels), batch_index=index),
            created_at=now,
        )
        attempt.timing.scheduled_at = ensure_utc(scheduled_at)
        attempts.append(attempt)

    logger.debug(
        "Planned %d attempt(s) for item %s, subscription %s",
        len(attempts), item.item_id, subscription.subscription_id,
    )
    return attempts
