from __future__ import annotations

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from loyalty.core.config import Settings
from loyalty.services.rate_limiter import (
    RateLimiter,
    build_rate_limit_key,
    resolve_action_limit,
)


def _settings() -> Settings:
    return Settings(
        RATE_LIMIT_REGISTER=2,
        RATE_LIMIT_TRANSFER=3,
        RATE_LIMIT_WRITE=4,
        RATE_LIMIT_READ=5,
    )


def test_resolve_action_limit_groups_actions() -> None:
    settings = _settings()

    assert resolve_action_limit("register", settings) == 2
    assert resolve_action_limit("login", settings) == 2
    assert resolve_action_limit("transfer", settings) == 3
    assert resolve_action_limit("withdraw", settings) == 4
    assert resolve_action_limit("profile", settings) == 5
    assert build_rate_limit_key("U-1", "transfer") == "loyalty:rl:transfer:U-1"


@pytest.mark.asyncio
async def test_rate_limiter_blocks_after_limit_within_window(fake_redis) -> None:
    limiter = RateLimiter(fake_redis, window_seconds=30, timeout_seconds=1.0, settings=_settings())

    decisions = [await limiter.allow("U-1", "transfer") for _ in range(4)]

    assert [decision.allowed for decision in decisions] == [True, True, True, False]
    assert decisions[-1].limit == 3
    assert decisions[-1].count == 4
    assert 1 <= decisions[-1].retry_after_seconds <= 30
    assert await fake_redis.ttl("loyalty:rl:transfer:U-1") > 0


@pytest.mark.asyncio
async def test_rate_limiter_window_slides_with_oldest_hit(fake_redis) -> None:
    clock = {"now": 1_000.0}
    limiter = RateLimiter(
        fake_redis,
        window_seconds=30,
        timeout_seconds=1.0,
        settings=_settings(),
        clock=lambda: clock["now"],
    )

    assert (await limiter.allow("U-1", "transfer")).allowed is True
    clock["now"] = 1_020.0
    assert (await limiter.allow("U-1", "transfer")).allowed is True
    assert (await limiter.allow("U-1", "transfer")).allowed is True

    blocked = await limiter.allow("U-1", "transfer")
    assert blocked.allowed is False
    assert blocked.retry_after_seconds == 10

    clock["now"] = 1_031.0
    assert (await limiter.allow("U-1", "transfer")).allowed is True
    blocked_again = await limiter.allow("U-1", "transfer")
    assert blocked_again.allowed is False
    assert blocked_again.retry_after_seconds == 19


@pytest.mark.asyncio
async def test_rate_limiter_counts_identities_and_actions_separately(fake_redis) -> None:
    limiter = RateLimiter(fake_redis, window_seconds=30, timeout_seconds=1.0, settings=_settings())

    for _ in range(3):
        await limiter.allow("U-1", "transfer")

    assert (await limiter.allow("U-2", "transfer")).allowed is True
    assert (await limiter.allow("U-1", "profile")).allowed is True


@pytest.mark.asyncio
async def test_rate_limiter_fails_open_when_redis_is_unavailable() -> None:
    class _BrokenRedis:
        def pipeline(self, transaction: bool = True):
            raise RedisConnectionError("connection refused")

    limiter = RateLimiter(
        _BrokenRedis(),  # type: ignore[arg-type]
        window_seconds=30,
        timeout_seconds=1.0,
        settings=_settings(),
    )

    decision = await limiter.allow("U-1", "register")

    assert decision.allowed is True
    assert decision.limit == 2
