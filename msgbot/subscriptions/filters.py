"""Keyword and attribute filters evaluating one subscription against one item.

Matching logic:
- Keywords are case-insensitive substrings, not tokens, so ``"ai"`` also
  hits ``"#AIart"`` and ``"maintain"``.
- Any exclude keyword vetoes the match.
- Attribute filters are a conjunction; the first failing clause wins.

All functions are pure predicates. "No match" is ``False`` or an empty
list, never an exception.
"""

from msgbot.items.schemas import Item
from msgbot.subscriptions.schemas import AttachmentMode, Subscription


def matched_keywords(item: Item, subscription: Subscription) -> list[str]:
    """Return the required keywords found in the item text.

    Returns an empty list when no keyword hits or when an exclude keyword
    is present.
    """
    lowered = item.text.lower()

    hits = [k for k in subscription.keywords if k.lower() in lowered]
    if not hits:
        return []

    if any(ex.lower() in lowered for ex in subscription.filters.exclude_keywords):
        return []

    return hits


def matches_keywords(item: Item, subscription: Subscription) -> bool:
    """True iff at least one keyword is present and no exclude keyword is."""
    return bool(matched_keywords(item, subscription))


def _attachment_ok(mode: AttachmentMode, present: bool) -> bool:
    if mode == AttachmentMode.REQUIRED:
        return present
    if mode == AttachmentMode.EXCLUDED:
        return not present
    return True


def _author_allowed(item: Item, subscription: Subscription) -> bool:
    users = subscription.filters.specific_users
    if not users:
        return True
    username = item.author.username.lower()
    for user in users:
        if user.user_id and user.user_id == item.author.id:
            return True
        if user.username and user.username.lstrip("@").lower() == username:
            return True
    return False


def matches_filters(item: Item, subscription: Subscription) -> bool:
    """Conjunctive check of engagement, language, author and attachment filters.

    Numeric thresholds run first since they are the cheapest checks.
    """
    filters = subscription.filters
    metrics = item.metrics

    if metrics.like_count < filters.min_likes:
        return False
    if metrics.retweet_count < filters.min_retweets:
        return False
    if metrics.reply_count < filters.min_replies:
        return False

    if filters.languages and item.lang not in filters.languages:
        return False

    if not _author_allowed(item, subscription):
        return False

    if not _attachment_ok(filters.has_media, item.has_media):
        return False
    if not _attachment_ok(filters.has_links, item.has_links):
        return False

    return True
