"""Active-hour window evaluation.

The window is expressed in the subscription owner's local hours, so
``now`` is converted into the owner's timezone before the hour is taken.
Subscriptions without a timezone use ``Settings.default_timezone``.
Naive ``now`` values are treated as UTC.
"""

from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from msgbot.config.settings import get_settings
from msgbot.items.schemas import ensure_utc
from msgbot.subscriptions.schemas import Subscription


def hour_in_window(hour: int, start: int, end: int) -> bool:
    """Raw window rule on an already-localized hour.

    Same-day window (start <= end): start <= hour <= end.
    Overnight window (start > end): hour >= start or hour <= end.
    """
    if start <= end:
        return start <= hour <= end
    return hour >= start or hour <= end


def subscription_timezone(subscription: Subscription) -> ZoneInfo:
    """Resolve the owner's timezone for a subscription."""
    return ZoneInfo(subscription.push.timezone or get_settings().default_timezone)


def localize(subscription: Subscription, now: datetime) -> datetime:
    """Convert ``now`` into the subscription owner's local time."""
    return ensure_utc(now).astimezone(subscription_timezone(subscription))


def is_in_active_hours(subscription: Subscription, now: datetime | None = None) -> bool:
    """Whether ``now`` falls inside the subscription's active window."""
    now = now or datetime.now(timezone.utc)
    window = subscription.push.active_hours
    return hour_in_window(localize(subscription, now).hour, window.start, window.end)


def next_window_start(subscription: Subscription, now: datetime | None = None) -> datetime:
    """Earliest UTC time at or after ``now`` inside the active window.

    Returns ``now`` itself when already inside the window, otherwise the
    next local occurrence of ``active_hours.start`` on the hour.
    """
    now = ensure_utc(now or datetime.now(timezone.utc))
    if is_in_active_hours(subscription, now):
        return now

    local = localize(subscription, now)
    candidate = local.replace(
        hour=subscription.push.active_hours.start, minute=0, second=0, microsecond=0,
    )
    if candidate <= local:
        candidate += timedelta(days=1)
    return candidate.astimezone(timezone.utc)
