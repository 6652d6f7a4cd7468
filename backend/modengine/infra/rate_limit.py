"""Redis-backed sliding window limiter shared across API workers."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from modengine.domain.errors import RateLimitExceeded, StoreUnavailable
from modengine.domain.rate_limit import SlidingWindowLimiter
from modengine.infra.redis import RedisProxy
from modengine.obs import metrics


@dataclass
class RedisSlidingWindowLimiter(SlidingWindowLimiter):
    """Sorted-set window: one member per admitted event, scored by timestamp.

    Trim, add and count run in one MULTI block so concurrent callers never see
    a count that excludes each other's writes. An over-limit add is removed
    again before the error is raised.
    """

    redis: RedisProxy
    name: str
    limit: int
    window_seconds: int
    prefix: str = "mod:rl"

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{self.name}:{key}"

    async def hit(self, key: str, *, now: datetime) -> int:
        redis_key = self._key(key)
        stamp = now.timestamp()
        member = f"{stamp:.6f}:{uuid4().hex}"
        try:
            pipe = self.redis.pipeline(transaction=True)
            pipe.zremrangebyscore(redis_key, "-inf", stamp - self.window_seconds)
            pipe.zadd(redis_key, {member: stamp})
            pipe.zcard(redis_key)
            pipe.zrange(redis_key, 0, 0, withscores=True)
            pipe.expire(redis_key, self.window_seconds)
            _, _, count, oldest, _ = await pipe.execute()
            if count <= self.limit:
                return int(count)
            await self.redis.zrem(redis_key, member)
        except (RedisConnectionError, RedisTimeoutError, OSError) as exc:
            raise StoreUnavailable("Rate limit store is unavailable") from exc
        metrics.inc_rate_limited(self.name)
        oldest_score = float(oldest[0][1]) if oldest else stamp
        raise RateLimitExceeded(
            retry_after_seconds=int(oldest_score + self.window_seconds - stamp) + 1,
            limit=self.limit,
            window_seconds=self.window_seconds,
        )
