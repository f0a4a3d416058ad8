from __future__ import annotations

import asyncio
from time import monotonic

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session

from loyalty.core.config import get_settings
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.economy.ledger.types import MemberSnapshot
from loyalty.services.member_directory import to_snapshot

_MEMBER_CACHE: dict[str, tuple[float, MemberSnapshot]] = {}
_MEMBER_CACHE_LOCK = asyncio.Lock()
PENDING_INVALIDATIONS_KEY = "member_cache_pending_invalidations"


def _clamp_cache_ttl_seconds(value: float) -> float:
    return max(0.0, min(3600.0, float(value)))


def _fresh_entry(member_id: str, *, ttl_seconds: float, now_mono: float) -> MemberSnapshot | None:
    cached = _MEMBER_CACHE.get(member_id)
    if cached is None:
        return None
    if (now_mono - cached[0]) > ttl_seconds:
        return None
    return cached[1]


async def get_or_load(
    session: AsyncSession,
    member_id: str,
    *,
    ttl_seconds: float | None = None,
) -> MemberSnapshot | None:
    """Returns a possibly stale snapshot for read-only views.

    Write paths never call this; they lock and re-read the member row instead.
    """
    resolved_ttl = _clamp_cache_ttl_seconds(
        get_settings().member_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
    )
    snapshot = _fresh_entry(member_id, ttl_seconds=resolved_ttl, now_mono=monotonic())
    if snapshot is not None:
        return snapshot

    async with _MEMBER_CACHE_LOCK:
        snapshot = _fresh_entry(member_id, ttl_seconds=resolved_ttl, now_mono=monotonic())
        if snapshot is not None:
            return snapshot

        member = await MembersRepo.get_by_id(session, member_id)
        if member is None:
            return None
        snapshot = to_snapshot(member)
        _MEMBER_CACHE[member_id] = (monotonic(), snapshot)
        return snapshot


def invalidate(*member_ids: str | None) -> None:
    for member_id in member_ids:
        if member_id is not None:
            _MEMBER_CACHE.pop(member_id, None)


def clear_member_cache() -> None:
    _MEMBER_CACHE.clear()


def invalidate_after_write(session: AsyncSession, *member_ids: str | None) -> None:
    """Drops entries now and again once the surrounding transaction commits."""
    invalidate(*member_ids)
    pending = session.info.setdefault(PENDING_INVALIDATIONS_KEY, set())
    pending.update(member_id for member_id in member_ids if member_id is not None)


@event.listens_for(Session, "after_commit")
def _invalidate_committed_members(session: Session) -> None:
    pending = session.info.pop(PENDING_INVALIDATIONS_KEY, None)
    if pending:
        invalidate(*pending)
