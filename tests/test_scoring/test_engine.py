"""Tests for hotness scoring and the quality gate."""

import logging
import math
from datetime import datetime, timedelta, timezone

import pytest

from msgbot.scoring.config import ScoringConfig
from msgbot.scoring.engine import (
    ScoreEngine,
    base_engagement,
    compute_score,
    influence_multiplier,
    is_high_quality,
)

NOW = datetime(2026, 3, 2, 10, 0, 0, tzinfo=timezone.utc)


class TestBaseEngagement:
    """Weighted engagement before influence and decay."""

    def test_weights(self, make_item):
        item = make_item(likes=10, retweets=10, replies=10, quotes=10)
        assert base_engagement(item) == pytest.approx(10 + 20 + 15 + 18)

    def test_zero_engagement(self, make_item):
        assert base_engagement(make_item(likes=0, retweets=0)) == 0.0


class TestInfluenceMultiplier:

    def test_no_followers_unverified(self, make_item):
        assert influence_multiplier(make_item(verified=False, followers=0)) == 1.0

    def test_followers_scale_linearly(self, make_item):
        item = make_item(verified=False, followers=20000)
        assert influence_multiplier(item) == pytest.approx(1.2)

    def test_followers_capped(self, make_item):
        item = make_item(verified=False, followers=10_000_000)
        assert influence_multiplier(item) == pytest.approx(1.5)

    def test_verified_bonus(self, make_item):
        item = make_item(verified=True, followers=0)
        assert influence_multiplier(item) == pytest.approx(1.2)


class TestComputeScore:
    """compute_score(item, now)."""

    def test_reference_example(self, make_item):
        # 100 likes, 50 retweets, verified, 50k followers, 1h old
        item = make_item()
        expected = round(200 * 1.5 * 1.2 * math.exp(-1 / 24))
        assert compute_score(item, NOW) == expected == 345

    def test_fresh_item_has_no_decay(self, make_item):
        item = make_item(likes=10, retweets=0, verified=False, followers=0, age=timedelta(0))
        assert compute_score(item, NOW) == 10.0

    def test_one_decay_period(self, make_item):
        item = make_item(likes=100, retweets=0, verified=False, followers=0, age=timedelta(hours=24))
        assert compute_score(item, NOW) == 37.0

    def test_score_decreases_with_age(self, make_item):
        young = compute_score(make_item(age=timedelta(hours=1)), NOW)
        old = compute_score(make_item(age=timedelta(hours=48)), NOW)
        assert old < young

    def test_future_dated_item_treated_as_age_zero(self, make_item, caplog):
        item = make_item(likes=10, retweets=0, verified=False, followers=0, age=-timedelta(hours=2))
        with caplog.at_level(logging.WARNING, logger="msgbot.scoring.engine"):
            assert compute_score(item, NOW) == 10.0
        assert "future-dated" in caplog.text

    def test_no_engagement_scores_zero(self, make_item):
        assert compute_score(make_item(likes=0, retweets=0), NOW) == 0.0

    def test_naive_now_treated_as_utc(self, make_item):
        item = make_item()
        assert compute_score(item, NOW.replace(tzinfo=None)) == compute_score(item, NOW)

    def test_custom_decay(self, make_item):
        config = ScoringConfig(decay_hours=1.0)
        item = make_item(likes=100, retweets=0, verified=False, followers=0, age=timedelta(hours=1))
        assert compute_score(item, NOW, config) == 37.0


class TestIsHighQuality:

    def test_engaged_long_clean_item_passes(self, make_item):
        assert is_high_quality(make_item()) is True

    def test_low_engagement_fails(self, make_item):
        assert is_high_quality(make_item(likes=2, retweets=2)) is False

    def test_quotes_do_not_count_toward_engagement(self, make_item):
        assert is_high_quality(make_item(likes=0, retweets=0, quotes=50)) is False

    def test_short_text_fails(self, make_item):
        assert is_high_quality(make_item(text="AI is here")) is False

    def test_spammy_item_fails(self, make_item):
        assert is_high_quality(make_item(spam_score=0.9)) is False

    def test_spam_threshold_is_inclusive(self, make_item):
        assert is_high_quality(make_item(spam_score=0.7)) is True


class TestScoreEngine:

    def test_refresh_returns_scored_copy(self, make_item):
        engine = ScoreEngine()
        item = make_item()
        scored = engine.refresh(item, NOW)
        assert scored.hotness_score == 345.0
        assert item.hotness_score == 0.0
        assert scored.item_id == item.item_id

    def test_config_from_env(self, monkeypatch, make_item):
        monkeypatch.setenv("SCORING_MIN_TEXT_LENGTH", "5")
        engine = ScoreEngine(ScoringConfig())
        assert engine.config.min_text_length == 5
        assert engine.is_high_quality(make_item(text="AI is here")) is True
