"""
Canonical item schema for the push core.

An item is one ingested content unit (a post). It is immutable after
ingestion; the only field the core ever changes is ``hotness_score``, and
it does so by producing a copy via ``Item.with_score``.
"""

from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class AuthorInfo(BaseModel):
    """Author descriptor carrying the influence signals used for scoring."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1, description="Platform-specific author identifier")
    username: str = Field(..., min_length=1, description="Handle without the @ prefix")
    name: str = Field(default="", description="Display name")
    verified: bool = Field(default=False, description="Whether author is verified")
    followers_count: int = Field(default=0, ge=0)
    following_count: int = Field(default=0, ge=0)
    tweet_count: int = Field(default=0, ge=0)


class PublicMetrics(BaseModel):
    """Engagement counters as reported by the upstream platform."""

    model_config = ConfigDict(frozen=True)

    like_count: int = Field(default=0, ge=0)
    retweet_count: int = Field(default=0, ge=0)
    reply_count: int = Field(default=0, ge=0)
    quote_count: int = Field(default=0, ge=0)

    @property
    def total_engagement(self) -> int:
        """Raw engagement used by the quality gate (quotes excluded)."""
        return self.like_count + self.retweet_count + self.reply_count


class Item(BaseModel):
    """
    One ingested post subject to scoring and matching.

    ``hotness_score`` is always recomputable from the other fields plus the
    current time; see ``msgbot.scoring.engine.compute_score``.
    """

    model_config = ConfigDict(frozen=True)

    # Identity
    item_id: str = Field(..., min_length=1, description="Globally unique external id")
    text: str = Field(..., min_length=1, max_length=2000)

    author: AuthorInfo
    metrics: PublicMetrics = Field(default_factory=PublicMetrics)

    created_at: datetime = Field(..., description="Creation time on the platform")
    lang: str = Field(default="und", description="BCP-47-ish language tag")

    # Attachments and entities
    media_keys: list[str] = Field(default_factory=list)
    urls: list[str] = Field(default_factory=list)
    hashtags: list[str] = Field(default_factory=list)

    # Quality signal supplied by upstream analysis
    spam_score: float = Field(default=0.0, ge=0.0, le=1.0)

    hotness_score: float = Field(default=0.0, ge=0.0)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @field_validator("lang")
    @classmethod
    def normalize_lang(cls, v: str) -> str:
        return (v or "und").strip().lower()

    @property
    def has_media(self) -> bool:
        return bool(self.media_keys)

    @property
    def has_links(self) -> bool:
        return bool(self.urls)

    @property
    def url(self) -> str:
        """Canonical permalink for the post."""
        return f"https://twitter.com/{self.author.username}/status/{self.item_id}"

    def with_score(self, score: float) -> "Item":
        """Return a copy carrying a freshly computed hotness score."""
        return self.model_copy(update={"hotness_score": score})

    def summary(self, max_length: int = 100) -> dict[str, Any]:
        """Short preview of the item for logs and digests."""
        text = self.text
        if len(text) > max_length:
            text = text[: max_length - 3] + "..."
        return {
            "id": self.item_id,
            "text": text,
            "author": self.author.username,
            "metrics": self.metrics.model_dump(),
            "created_at": self.created_at.isoformat(),
            "hotness_score": self.hotness_score,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Item":
        """Build an Item from either the flat shape or the upstream API shape.

        The upstream shape nests counters under ``public_metrics``, the
        creation time and language under ``metadata``, media under
        ``attachments.media_keys`` and links under ``entities.urls``.
        """
        if "public_metrics" not in data and "metadata" not in data:
            return cls.model_validate(data)

        metadata = data.get("metadata") or {}
        attachments = data.get("attachments") or {}
        entities = data.get("entities") or {}
        analysis = data.get("analysis") or {}

        urls = []
        for entry in entities.get("urls") or []:
            if isinstance(entry, dict):
                link = entry.get("expanded_url") or entry.get("url")
                if link:
                    urls.append(link)
            elif entry:
                urls.append(str(entry))

        hashtags = [
            entry["tag"] if isinstance(entry, dict) else str(entry)
            for entry in entities.get("hashtags") or []
        ]

        return cls(
            item_id=data.get("item_id") or data["tweetId"],
            text=data["text"],
            author=AuthorInfo.model_validate(data["author"]),
            metrics=PublicMetrics.model_validate(data.get("public_metrics") or {}),
            created_at=metadata.get("created_at") or data["created_at"],
            lang=metadata.get("lang", data.get("lang", "und")),
            media_keys=list(attachments.get("media_keys") or []),
            urls=urls,
            hashtags=hashtags,
            spam_score=analysis.get("spam_score", data.get("spam_score", 0.0)),
            hotness_score=data.get("hotness_score", 0.0),
        )
