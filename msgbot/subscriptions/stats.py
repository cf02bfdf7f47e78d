"""Running statistics for subscriptions.

Statistics are the one shared-mutable surface of the core: many items can
match the same subscription concurrently. Every recorder therefore
performs increments atomically (a lock in-process, HINCRBY in Redis) and
never does read-modify-write on a cached copy. Last-event timestamps only
ever move forward.
"""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import redis.asyncio as redis

from msgbot.config.settings import Settings, get_settings
from msgbot.items.schemas import ensure_utc


@dataclass
class SubscriptionStats:
    """Counters and last-event timestamps for one subscription."""

    total_matches: int = 0
    total_pushes: int = 0
    last_match_at: datetime | None = None
    last_push_at: datetime | None = None
    last_processed_item_id: str = ""

    def avg_matches_per_day(self, since: datetime, now: datetime | None = None) -> float:
        """Average daily matches since ``since`` (typically the creation time)."""
        now = ensure_utc(now or datetime.now(timezone.utc))
        days = (now - ensure_utc(since)).total_seconds() / 86400.0
        if days <= 0:
            return float(self.total_matches)
        return self.total_matches / max(days, 1.0)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dictionary."""
        return {
            "total_matches": self.total_matches,
            "total_pushes": self.total_pushes,
            "last_match_at": self.last_match_at.isoformat() if self.last_match_at else None,
            "last_push_at": self.last_push_at.isoformat() if self.last_push_at else None,
            "last_processed_item_id": self.last_processed_item_id,
        }


class StatsRecorder(Protocol):
    """Atomic statistics operations required by the pipeline and dispatcher."""

    async def record_match(self, subscription_id: str, at: datetime) -> None:
        ...

    async def record_push(self, subscription_id: str, at: datetime) -> None:
        ...

    async def set_last_processed(self, subscription_id: str, item_id: str) -> None:
        ...

    async def get(self, subscription_id: str) -> SubscriptionStats:
        ...


class InMemoryStatsRecorder:
    """Process-local recorder; increments are serialized by a lock."""

    def __init__(self) -> None:
        self._stats: dict[str, SubscriptionStats] = {}
        self._lock = threading.Lock()

    def _entry(self, subscription_id: str) -> SubscriptionStats:
        return self._stats.setdefault(subscription_id, SubscriptionStats())

    async def record_match(self, subscription_id: str, at: datetime) -> None:
        with self._lock:
            entry = self._entry(subscription_id)
            entry.total_matches += 1
            entry.last_match_at = _latest(entry.last_match_at, ensure_utc(at))

    async def record_push(self, subscription_id: str, at: datetime) -> None:
        with self._lock:
            entry = self._entry(subscription_id)
            entry.total_pushes += 1
            entry.last_push_at = _latest(entry.last_push_at, ensure_utc(at))

    async def set_last_processed(self, subscription_id: str, item_id: str) -> None:
        with self._lock:
            self._entry(subscription_id).last_processed_item_id = item_id

    async def get(self, subscription_id: str) -> SubscriptionStats:
        with self._lock:
            entry = self._stats.get(subscription_id)
            if entry is None:
                return SubscriptionStats()
            return SubscriptionStats(**vars(entry))


def _latest(current: datetime | None, candidate: datetime) -> datetime:
    if current is None or candidate > current:
        return candidate
    return current


class RedisStatsRecorder:
    """Redis-backed recorder.

    Key format: ``{prefix}:{subscription_id}`` holds the counters and the
    last processed item id in a hash; ``{prefix}:{subscription_id}:stamps``
    is a sorted set of last-event timestamps scored by epoch seconds.

    Counters use HINCRBY so concurrent workers never lose increments, and
    timestamps use ZADD GT so an out-of-order write never moves them
    backwards. Both are sent in one MULTI/EXEC pipeline.
    """

    def __init__(self, redis_client: Any, key_prefix: str = "msgbot:sub_stats") -> None:
        self._redis = redis_client
        self._prefix = key_prefix

    def _key(self, subscription_id: str) -> str:
        return f"{self._prefix}:{subscription_id}"

    def _stamps_key(self, subscription_id: str) -> str:
        return f"{self._prefix}:{subscription_id}:stamps"

    async def _increment(self, subscription_id: str, counter: str, stamp: str, at: datetime) -> None:
        pipe = self._redis.pipeline(transaction=True)
        pipe.hincrby(self._key(subscription_id), counter, 1)
        pipe.zadd(
            self._stamps_key(subscription_id),
            {stamp: ensure_utc(at).timestamp()},
            gt=True,
        )
        await pipe.execute()

    async def record_match(self, subscription_id: str, at: datetime) -> None:
        await self._increment(subscription_id, "total_matches", "last_match_at", at)

    async def record_push(self, subscription_id: str, at: datetime) -> None:
        await self._increment(subscription_id, "total_pushes", "last_push_at", at)

    async def set_last_processed(self, subscription_id: str, item_id: str) -> None:
        await self._redis.hset(self._key(subscription_id), "last_processed_item_id", item_id)

    async def get(self, subscription_id: str) -> SubscriptionStats:
        raw = await self._redis.hgetall(self._key(subscription_id))
        data = {_decode(k): _decode(v) for k, v in (raw or {}).items()}
        scored = await self._redis.zrange(
            self._stamps_key(subscription_id), 0, -1, withscores=True
        )
        stamps = {
            _decode(member): datetime.fromtimestamp(score, tz=timezone.utc)
            for member, score in scored or []
        }
        return SubscriptionStats(
            total_matches=int(data.get("total_matches", 0)),
            total_pushes=int(data.get("total_pushes", 0)),
            last_match_at=stamps.get("last_match_at"),
            last_push_at=stamps.get("last_push_at"),
            last_processed_item_id=data.get("last_processed_item_id", ""),
        )


def _decode(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def create_redis_recorder(settings: Settings | None = None) -> RedisStatsRecorder:
    """Build a RedisStatsRecorder from ``REDIS_URL`` and ``STATS_KEY_PREFIX``."""
    settings = settings or get_settings()
    client = redis.from_url(
        str(settings.redis_url),
        encoding="utf-8",
        decode_responses=True,
    )
    return RedisStatsRecorder(client, key_prefix=settings.stats_key_prefix)
