"""Subscriptions: matching rules, filter predicates, active windows and statistics.

Components:
- Subscription: Frozen pydantic model (keywords, filters, push settings)
- Channel / Frequency / AttachmentMode / Template: Enums for settings
- matches_keywords / matched_keywords / matches_filters: Pure predicates
- is_in_active_hours / next_window_start: Timezone-aware window checks
- SubscriptionStats / StatsRecorder: Atomic running statistics
"""

from msgbot.subscriptions.filters import (
    matched_keywords,
    matches_filters,
    matches_keywords,
)
from msgbot.subscriptions.schemas import (
    MAX_KEYWORDS,
    ActiveHours,
    AttachmentMode,
    Channel,
    FilterSettings,
    Frequency,
    PushSettings,
    SpecificUser,
    Subscription,
    Template,
)
from msgbot.subscriptions.stats import (
    InMemoryStatsRecorder,
    RedisStatsRecorder,
    StatsRecorder,
    SubscriptionStats,
    create_redis_recorder,
)
from msgbot.subscriptions.windows import (
    hour_in_window,
    is_in_active_hours,
    next_window_start,
)

__all__ = [
    "ActiveHours",
    "AttachmentMode",
    "Channel",
    "FilterSettings",
    "Frequency",
    "InMemoryStatsRecorder",
    "MAX_KEYWORDS",
    "PushSettings",
    "RedisStatsRecorder",
    "SpecificUser",
    "StatsRecorder",
    "Subscription",
    "SubscriptionStats",
    "Template",
    "create_redis_recorder",
    "hour_in_window",
    "is_in_active_hours",
    "matched_keywords",
    "matches_filters",
    "matches_keywords",
    "next_window_start",
]
