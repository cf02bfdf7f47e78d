"""Tests for keyword and attribute filters."""

import pytest

from msgbot.subscriptions.filters import matched_keywords, matches_filters, matches_keywords
from msgbot.subscriptions.schemas import AttachmentMode, SpecificUser


class TestKeywordMatching:
    """Required-any / exclude-none substring matching."""

    def test_keyword_hit(self, make_item, make_subscription):
        sub = make_subscription(keywords=["AI"], exclude=["spam"])
        assert matches_keywords(make_item(text="New AI breakthrough"), sub) is True

    def test_exclude_keyword_vetoes(self, make_item, make_subscription):
        sub = make_subscription(keywords=["AI"], exclude=["spam"])
        assert matches_keywords(make_item(text="AI spam deal"), sub) is False

    def test_case_insensitive(self, make_item, make_subscription):
        sub = make_subscription(keywords=["openai"])
        assert matches_keywords(make_item(text="OpenAI ships a new model"), sub) is True

    def test_substring_not_token(self, make_item, make_subscription):
        sub = make_subscription(keywords=["ai"])
        assert matches_keywords(make_item(text="Check out #AIart today"), sub) is True

    def test_exclude_is_case_insensitive(self, make_item, make_subscription):
        sub = make_subscription(keywords=["AI"], exclude=["Giveaway"])
        assert matches_keywords(make_item(text="AI GIVEAWAY now"), sub) is False

    def test_no_keyword_present(self, make_item, make_subscription):
        sub = make_subscription(keywords=["rust", "golang"])
        assert matches_keywords(make_item(text="Python 3.14 released"), sub) is False

    def test_matched_keywords_lists_all_hits_in_order(self, make_item, make_subscription):
        sub = make_subscription(keywords=["GPU", "AI", "quantum"])
        item = make_item(text="AI labs race for GPU supply")
        assert matched_keywords(item, sub) == ["GPU", "AI"]

    def test_matched_keywords_empty_when_excluded(self, make_item, make_subscription):
        sub = make_subscription(keywords=["AI"], exclude=["ad"])
        assert matched_keywords(make_item(text="AI ad campaign"), sub) == []


class TestAttributeFilters:
    """Conjunctive numeric, language, author and attachment filters."""

    def test_defaults_accept_everything(self, make_item, make_subscription):
        assert matches_filters(make_item(), make_subscription()) is True

    @pytest.mark.parametrize(
        "field,value,expected",
        [
            ("min_likes", 100, True),
            ("min_likes", 101, False),
            ("min_retweets", 50, True),
            ("min_retweets", 51, False),
            ("min_replies", 1, False),
        ],
    )
    def test_numeric_thresholds(self, make_item, make_subscription, field, value, expected):
        sub = make_subscription(filters={field: value})
        assert matches_filters(make_item(likes=100, retweets=50, replies=0), sub) is expected

    def test_language_filter(self, make_item, make_subscription):
        sub = make_subscription(filters={"languages": ["ZH", "en"]})
        assert matches_filters(make_item(lang="en"), sub) is True
        assert matches_filters(make_item(lang="ja"), sub) is False

    def test_empty_language_list_means_any(self, make_item, make_subscription):
        sub = make_subscription(filters={"languages": []})
        assert matches_filters(make_item(lang="ja"), sub) is True

    def test_specific_users_by_username(self, make_item, make_subscription):
        sub = make_subscription(filters={"specific_users": [SpecificUser(username="@LabNews")]})
        assert matches_filters(make_item(), sub) is True

    def test_specific_users_by_id(self, make_item, make_subscription):
        sub = make_subscription(filters={"specific_users": [SpecificUser(user_id="u_42")]})
        assert matches_filters(make_item(), sub) is True

    def test_specific_users_rejects_others(self, make_item, make_subscription):
        sub = make_subscription(filters={"specific_users": [SpecificUser(username="someoneelse")]})
        assert matches_filters(make_item(), sub) is False

    @pytest.mark.parametrize(
        "mode,has_media,expected",
        [
            (AttachmentMode.ANY, False, True),
            (AttachmentMode.ANY, True, True),
            (AttachmentMode.REQUIRED, True, True),
            (AttachmentMode.REQUIRED, False, False),
            (AttachmentMode.EXCLUDED, True, False),
            (AttachmentMode.EXCLUDED, False, True),
        ],
    )
    def test_media_modes(self, make_item, make_subscription, mode, has_media, expected):
        sub = make_subscription(filters={"has_media": mode})
        item = make_item(media_keys=["3_123"] if has_media else [])
        assert matches_filters(item, sub) is expected

    def test_links_required(self, make_item, make_subscription):
        sub = make_subscription(filters={"has_links": AttachmentMode.REQUIRED})
        assert matches_filters(make_item(), sub) is False
        assert matches_filters(make_item(urls=["https://example.com/paper"]), sub) is True
