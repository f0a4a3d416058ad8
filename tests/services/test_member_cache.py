from __future__ import annotations

import pytest
from sqlalchemy import update

from loyalty.db.models.members import Member
from loyalty.services import member_cache
from tests.economy.ledger_fixtures import register_member


async def _set_points(session_factory, member_id: str, points: int) -> None:
    async with session_factory.begin() as session:
        await session.execute(update(Member).where(Member.id == member_id).values(points=points))


@pytest.mark.asyncio
async def test_get_or_load_serves_cached_snapshot_until_invalidated(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        now_utc=now_utc,
    )

    async with session_factory() as session:
        first = await member_cache.get_or_load(session, "U-A", ttl_seconds=60)
    await _set_points(session_factory, "U-A", 999)
    async with session_factory() as session:
        cached = await member_cache.get_or_load(session, "U-A", ttl_seconds=60)

    assert first is not None and cached is not None
    assert cached.points == 100

    member_cache.invalidate("U-A")
    async with session_factory() as session:
        reloaded = await member_cache.get_or_load(session, "U-A", ttl_seconds=60)
    assert reloaded is not None
    assert reloaded.points == 999


@pytest.mark.asyncio
async def test_zero_ttl_always_reloads(session_factory, ledger_config, now_utc) -> None:
    await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        now_utc=now_utc,
    )

    async with session_factory() as session:
        await member_cache.get_or_load(session, "U-A", ttl_seconds=0)
    await _set_points(session_factory, "U-A", 321)
    async with session_factory() as session:
        snapshot = await member_cache.get_or_load(session, "U-A", ttl_seconds=0)

    assert snapshot is not None
    assert snapshot.points == 321


@pytest.mark.asyncio
async def test_unknown_member_is_not_cached(session_factory) -> None:
    async with session_factory() as session:
        assert await member_cache.get_or_load(session, "U-nobody", ttl_seconds=60) is None


@pytest.mark.asyncio
async def test_invalidate_after_write_drops_entry_again_on_commit(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        now_utc=now_utc,
    )

    async with session_factory.begin() as session:
        member_cache.invalidate_after_write(session, "U-A", None)
        await session.execute(update(Member).where(Member.id == "U-A").values(points=555))
        await member_cache.get_or_load(session, "U-A", ttl_seconds=60)
        assert "U-A" in member_cache._MEMBER_CACHE

    assert "U-A" not in member_cache._MEMBER_CACHE
