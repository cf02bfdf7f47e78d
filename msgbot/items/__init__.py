"""Item data shapes consumed by the push core.

Components:
- Item: Frozen pydantic model for one ingested post
- AuthorInfo: Author influence signals (followers, verified flag)
- PublicMetrics: Engagement counters
"""

from msgbot.items.schemas import AuthorInfo, Item, PublicMetrics, ensure_utc

__all__ = [
    "AuthorInfo",
    "Item",
    "PublicMetrics",
    "ensure_utc",
]
