"""Delivery of matched items to subscribers.

Components:
- DeliveryAttempt: Per-channel delivery record and its state machine
- RetryPolicy: Exponential backoff with jitter for failed attempts
- plan_deliveries / render_content: Match to pending attempts
- DeliveryDispatcher: Sends attempts through ChannelAdapter implementations
- summarize_attempts: Per-channel and per-status aggregates
- DeliveryConfig: Pydantic settings (DELIVERY_*)
"""

from msgbot.delivery.config import DeliveryConfig
from msgbot.delivery.dispatcher import (
    ChannelAdapter,
    DeliveryDispatcher,
    DispatchReport,
    RateLimiter,
    SendOutcome,
)
from msgbot.delivery.errors import (
    DeliveryError,
    DeliveryValidationError,
    InvalidTransitionError,
)
from msgbot.delivery.planner import plan_deliveries, render_content
from msgbot.delivery.reporting import summarize_attempts
from msgbot.delivery.retry import DEFAULT_RETRY_POLICY, RetryPolicy
from msgbot.delivery.schemas import (
    VALID_FEEDBACK,
    VALID_INTERACTIONS,
    VALID_PRIORITIES,
    BatchInfo,
    DeliveryAttempt,
    DeliveryContent,
    DeliveryResult,
    DeliveryStatus,
    DeliveryTiming,
    Interaction,
    RetryRecord,
    cancel_for_subscription,
)

__all__ = [
    "BatchInfo",
    "ChannelAdapter",
    "DEFAULT_RETRY_POLICY",
    "DeliveryAttempt",
    "DeliveryConfig",
    "DeliveryContent",
    "DeliveryDispatcher",
    "DeliveryError",
    "DeliveryResult",
    "DeliveryStatus",
    "DeliveryTiming",
    "DeliveryValidationError",
    "DispatchReport",
    "Interaction",
    "InvalidTransitionError",
    "RateLimiter",
    "RetryPolicy",
    "RetryRecord",
    "SendOutcome",
    "VALID_FEEDBACK",
    "VALID_INTERACTIONS",
    "VALID_PRIORITIES",
    "cancel_for_subscription",
    "plan_deliveries",
    "render_content",
    "summarize_attempts",
]
