from __future__ import annotations

import asyncio
import math
import time
from collections.abc import Callable
from dataclasses import dataclass
from functools import lru_cache
from uuid import uuid4

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError

from loyalty.core.config import Settings, get_settings

logger = structlog.get_logger(__name__)

RATE_LIMIT_KEY_PREFIX = "loyalty:rl"

REGISTER_ACTIONS = frozenset({"register", "register-password", "login"})
TRANSFER_ACTIONS = frozenset({"transfer"})
WRITE_ACTIONS = frozenset(
    {
        "purchase",
        "withdraw",
        "update-profile",
        "set-credentials",
        "bind-referral",
        "adjust-points",
        "update-withdrawal-status",
        "update-purchase-status",
    }
)


@dataclass(frozen=True, slots=True)
class RateLimitDecision:
    allowed: bool
    retry_after_seconds: int = 0
    count: int = 0
    limit: int = 0


def resolve_action_limit(action: str, settings: Settings) -> int:
    if action in REGISTER_ACTIONS:
        return settings.rate_limit_register
    if action in TRANSFER_ACTIONS:
        return settings.rate_limit_transfer
    if action in WRITE_ACTIONS:
        return settings.rate_limit_write
    return settings.rate_limit_read


def build_rate_limit_key(identity: str, action: str) -> str:
    return f"{RATE_LIMIT_KEY_PREFIX}:{action}:{identity}"


class RateLimiter:
    """Sliding-window log per (identity, action) kept in a Redis sorted set.

    Each accepted hit is a member scored by its timestamp; hits older than the
    window are trimmed before counting. Rejected hits are not recorded.
    Redis errors and timeouts fail open so that the limiter never takes the API down.
    """

    def __init__(
        self,
        redis_client: Redis,
        *,
        window_seconds: int,
        timeout_seconds: float,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.redis_client = redis_client
        self.window_seconds = max(1, int(window_seconds))
        self.timeout_seconds = timeout_seconds
        self.settings = settings
        self.clock = clock

    async def _hit(self, key: str, *, limit: int) -> tuple[int, int]:
        now = self.clock()
        hit_id = f"{now:.6f}:{uuid4().hex}"
        async with self.redis_client.pipeline(transaction=True) as pipe:
            pipe.zremrangebyscore(key, "-inf", now - self.window_seconds)
            pipe.zadd(key, {hit_id: now})
            pipe.zcard(key)
            pipe.zrange(key, 0, 0, withscores=True)
            pipe.expire(key, self.window_seconds)
            _, _, count, oldest, _ = await pipe.execute()

        count = int(count)
        if count <= limit:
            return count, 0
        await self.redis_client.zrem(key, hit_id)
        oldest_score = float(oldest[0][1]) if oldest else now
        retry_after = math.ceil(oldest_score + self.window_seconds - now)
        return count, max(1, retry_after)

    async def allow(self, identity: str, action: str) -> RateLimitDecision:
        limit = resolve_action_limit(action, self.settings)
        key = build_rate_limit_key(identity, action)
        try:
            count, retry_after = await asyncio.wait_for(
                self._hit(key, limit=limit),
                timeout=self.timeout_seconds,
            )
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            logger.warning(
                "rate_limiter_unavailable_fail_open",
                action=action,
                error_type=type(exc).__name__,
            )
            return RateLimitDecision(allowed=True, limit=limit)

        if count > limit:
            return RateLimitDecision(
                allowed=False,
                retry_after_seconds=retry_after,
                count=count,
                limit=limit,
            )
        return RateLimitDecision(allowed=True, count=count, limit=limit)


@lru_cache(maxsize=1)
def get_rate_limiter() -> RateLimiter:
    settings = get_settings()
    redis_client = Redis.from_url(
        settings.redis_url,
        socket_timeout=settings.redis_timeout_seconds,
        socket_connect_timeout=settings.redis_timeout_seconds,
    )
    return RateLimiter(
        redis_client,
        window_seconds=settings.rate_limit_window_seconds,
        timeout_seconds=settings.redis_timeout_seconds,
        settings=settings,
    )
