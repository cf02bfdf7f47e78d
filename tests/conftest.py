"""Pytest fixtures for msgbot tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable

import pytest

from msgbot.config.settings import Settings, get_settings
from msgbot.items.schemas import AuthorInfo, Item, PublicMetrics
from msgbot.subscriptions.schemas import (
    ActiveHours,
    Channel,
    FilterSettings,
    Frequency,
    PushSettings,
    Subscription,
)

# Monday, 10:00 UTC
NOW = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def utc_default_timezone(monkeypatch):
    """Pin the fallback timezone so window tests do not depend on the host."""
    monkeypatch.setenv("DEFAULT_TIMEZONE", "UTC")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def test_settings() -> Settings:
    """Settings configured for testing."""
    return Settings(
        environment="development",
        log_level="DEBUG",
        redis_url="redis://localhost:6379/1",  # Use DB 1 for tests
    )


@pytest.fixture
def now() -> datetime:
    return NOW


@pytest.fixture
def make_item() -> Callable[..., Item]:
    """Factory for items; keyword overrides replace defaults."""

    def _make(
        text: str = "New AI breakthrough announced by the research lab today",
        likes: int = 100,
        retweets: int = 50,
        replies: int = 0,
        quotes: int = 0,
        verified: bool = True,
        followers: int = 50000,
        age: timedelta = timedelta(hours=1),
        **overrides: Any,
    ) -> Item:
        fields: dict[str, Any] = {
            "item_id": "1750000000000000001",
            "text": text,
            "author": AuthorInfo(
                id="u_42",
                username="labnews",
                name="Lab News",
                verified=verified,
                followers_count=followers,
            ),
            "metrics": PublicMetrics(
                like_count=likes,
                retweet_count=retweets,
                reply_count=replies,
                quote_count=quotes,
            ),
            "created_at": NOW - age,
            "lang": "en",
        }
        fields.update(overrides)
        return Item(**fields)

    return _make


@pytest.fixture
def make_subscription() -> Callable[..., Subscription]:
    """Factory for subscriptions; keyword overrides replace defaults."""

    def _make(
        keywords: list[str] | None = None,
        exclude: list[str] | None = None,
        channels: list[Channel] | None = None,
        frequency: Frequency = Frequency.HOURLY,
        start: int = 0,
        end: int = 23,
        tz: str | None = None,
        filters: dict[str, Any] | None = None,
        **overrides: Any,
    ) -> Subscription:
        fields: dict[str, Any] = {
            "owner_id": "owner_1",
            "name": "AI news",
            "keywords": keywords if keywords is not None else ["AI"],
            "filters": FilterSettings(exclude_keywords=exclude or [], **(filters or {})),
            "push": PushSettings(
                channels=channels if channels is not None else [Channel.TELEGRAM],
                frequency=frequency,
                active_hours=ActiveHours(start=start, end=end),
                timezone=tz,
            ),
            "created_at": datetime(2026, 1, 1, tzinfo=timezone.utc),
        }
        fields.update(overrides)
        return Subscription(**fields)

    return _make
