"""Schema definitions for subscriptions.

A subscription is a user-owned standing rule: which items to match
(keywords and filters) and how, when and where to deliver them (push
settings). The definition is immutable from the core's point of view;
running statistics are tracked separately by a ``StatsRecorder``.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from msgbot.items.schemas import ensure_utc

MAX_KEYWORDS = 20
MAX_KEYWORD_LENGTH = 50


class Channel(str, Enum):
    """Outbound delivery destinations."""

    WECHAT = "wechat"
    TELEGRAM = "telegram"
    DISCORD = "discord"


class Frequency(str, Enum):
    """How often a subscription's matches are pushed."""

    REALTIME = "realtime"
    EVERY_5MIN = "every_5min"
    EVERY_15MIN = "every_15min"
    HOURLY = "hourly"
    DAILY = "daily"


class AttachmentMode(str, Enum):
    """Requirement mode for media and link attachments."""

    ANY = "any"
    REQUIRED = "required"
    EXCLUDED = "excluded"


class Template(str, Enum):
    """Rendering template for pushed content."""

    SIMPLE = "simple"
    DETAILED = "detailed"
    CUSTOM = "custom"


def _normalize_terms(values: list[str]) -> list[str]:
    """Trim, drop blanks and de-duplicate (case-insensitively) keeping order."""
    seen: set[str] = set()
    terms: list[str] = []
    for value in values:
        term = value.strip()
        if not term or term.lower() in seen:
            continue
        if len(term) > MAX_KEYWORD_LENGTH:
            raise ValueError(
                f"Keyword {term[:20]!r}... exceeds {MAX_KEYWORD_LENGTH} characters"
            )
        seen.add(term.lower())
        terms.append(term)
    return terms


class SpecificUser(BaseModel):
    """An author the subscription is restricted to."""

    model_config = ConfigDict(frozen=True)

    username: str | None = None
    user_id: str | None = None


class FilterSettings(BaseModel):
    """Engagement, attachment, language and author filters."""

    model_config = ConfigDict(frozen=True)

    languages: list[str] = Field(
        default_factory=list,
        description="Allowed language tags; empty means any language",
    )
    min_likes: int = Field(default=0, ge=0)
    min_retweets: int = Field(default=0, ge=0)
    min_replies: int = Field(default=0, ge=0)
    has_media: AttachmentMode = AttachmentMode.ANY
    has_links: AttachmentMode = AttachmentMode.ANY
    exclude_keywords: list[str] = Field(default_factory=list)
    specific_users: list[SpecificUser] = Field(default_factory=list)

    @field_validator("languages")
    @classmethod
    def normalize_languages(cls, v: list[str]) -> list[str]:
        return sorted({lang.strip().lower() for lang in v if lang.strip()})

    @field_validator("exclude_keywords")
    @classmethod
    def normalize_exclude_keywords(cls, v: list[str]) -> list[str]:
        return _normalize_terms(v)


class ActiveHours(BaseModel):
    """Hour-of-day window in the owner's timezone.

    ``start <= end`` is a same-day window; ``start > end`` wraps past
    midnight (e.g. 22 -> 6). Both ends are inclusive.
    """

    model_config = ConfigDict(frozen=True)

    start: int = Field(default=9, ge=0, le=23)
    end: int = Field(default=22, ge=0, le=23)

    @property
    def wraps_midnight(self) -> bool:
        return self.start > self.end


class PushSettings(BaseModel):
    """Where, when and how matches are delivered."""

    model_config = ConfigDict(frozen=True)

    channels: list[Channel] = Field(default_factory=list)
    frequency: Frequency = Frequency.HOURLY
    active_hours: ActiveHours = Field(default_factory=ActiveHours)
    timezone: str | None = Field(
        default=None,
        description="Owner's IANA timezone; falls back to Settings.default_timezone",
    )
    max_items_per_push: int = Field(default=5, ge=1, le=20)
    template: Template = Template.SIMPLE
    custom_template: str = ""

    @field_validator("channels")
    @classmethod
    def dedupe_channels(cls, v: list[Channel]) -> list[Channel]:
        return list(dict.fromkeys(v))

    @field_validator("timezone")
    @classmethod
    def validate_timezone(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            ZoneInfo(v)
        except (ZoneInfoNotFoundError, ValueError) as e:
            raise ValueError(f"Unknown timezone {v!r}") from e
        return v

    @property
    def is_realtime(self) -> bool:
        return self.frequency == Frequency.REALTIME


class Subscription(BaseModel):
    """A named, user-owned matching rule.

    Attributes:
        subscription_id: Stable identifier.
        owner_id: Owning user account.
        name: Human-readable name.
        keywords: Required keywords, any of which must appear (substring,
            case-insensitive).
        filters: Engagement/attachment/language/author filters.
        push: Delivery settings (channels, frequency, active window).
        is_active: Inactive subscriptions never match.
        created_at: Creation time, used as the stable tie-breaker when
            ordering matches.
        last_processed_item_id: Resume marker for incremental processing.
    """

    model_config = ConfigDict(frozen=True)

    owner_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    keywords: list[str] = Field(default_factory=list)
    subscription_id: str = Field(
        default_factory=lambda: f"sub_{uuid.uuid4().hex[:12]}"
    )
    description: str = Field(default="", max_length=500)
    filters: FilterSettings = Field(default_factory=FilterSettings)
    push: PushSettings = Field(default_factory=PushSettings)
    is_active: bool = True
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )
    last_processed_item_id: str = ""

    @field_validator("name")
    @classmethod
    def strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Subscription name cannot be blank")
        return v

    @field_validator("keywords")
    @classmethod
    def normalize_keywords(cls, v: list[str]) -> list[str]:
        return _normalize_terms(v)

    @field_validator("created_at")
    @classmethod
    def normalize_created_at(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @model_validator(mode="after")
    def check_active_requirements(self) -> "Subscription":
        if len(self.keywords) > MAX_KEYWORDS:
            raise ValueError(
                f"At most {MAX_KEYWORDS} keywords are allowed, got {len(self.keywords)}"
            )
        if self.is_active:
            if not self.keywords:
                raise ValueError("An active subscription needs at least one keyword")
            if not self.push.channels:
                raise ValueError("An active subscription needs at least one channel")
        return self

    def deactivated(self) -> "Subscription":
        """Return an inactive copy of this subscription."""
        return self.model_copy(update={"is_active": False})
