from __future__ import annotations

from decimal import Decimal

import pytest
from sqlalchemy.exc import OperationalError

from loyalty.core.config import LedgerConfig
from loyalty.db.repo.referrals_repo import ReferralEventsRepo
from loyalty.economy.errors import (
    AlreadyBoundError,
    InvalidReferralCodeError,
    MemberNotFoundError,
    SelfReferralError,
)
from loyalty.economy.ledger.service import LedgerService
from loyalty.economy.ledger.types import ReferralEventKind, TransactionType
from loyalty.economy.referrals.service import ReferralService
from tests.economy.ledger_fixtures import load_member, load_transactions, register_member


async def _referrer_and_referee(session_factory, ledger_config, now_utc):
    referrer = await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        name="Alice",
        now_utc=now_utc,
    )
    await register_member(
        session_factory,
        ledger_config,
        member_id="U-B",
        phone="0911000002",
        name="Bob",
        referral_code=referrer.referral_code,
        now_utc=now_utc,
    )
    return referrer


@pytest.mark.parametrize(
    ("amount_points", "expected_reward"),
    [(1000, 200), (500, 100), (7, 1), (4, 0), (1, 0)],
)
def test_compute_referral_reward_floors_to_whole_points(
    amount_points: int,
    expected_reward: int,
) -> None:
    assert ReferralService.compute_referral_reward(amount_points, config=LedgerConfig()) == (
        expected_reward
    )


def test_compute_referral_reward_uses_configured_rate() -> None:
    config = LedgerConfig(reward_rate=Decimal("0.05"))

    assert ReferralService.compute_referral_reward(1999, config=config) == 99


@pytest.mark.asyncio
async def test_purchase_by_referee_rewards_referrer(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _referrer_and_referee(session_factory, ledger_config, now_utc)

    async with session_factory.begin() as session:
        result = await LedgerService.purchase(
            session,
            config=ledger_config,
            member_id="U-B",
            points=500,
            now_utc=now_utc,
        )

    assert result.new_balance == 600
    assert result.tier == "SILVER"
    assert result.referrer_id == "U-A"
    assert result.referrer_reward == 100
    assert result.referrer_reward_status == "GRANTED"
    assert result.degraded is False

    referrer_row = await load_member(session_factory, "U-A")
    assert referrer_row.points == 200
    assert referrer_row.lifetime_earned == 200

    referrer_transactions = await load_transactions(session_factory, "U-A")
    assert [row.transaction_type for row in referrer_transactions] == [
        TransactionType.REGISTER.value,
        TransactionType.REFERRAL_PURCHASE_REWARD.value,
    ]
    reward_row = referrer_transactions[-1]
    assert reward_row.points == 100
    assert reward_row.balance_after == 200
    assert reward_row.sender_id == "U-B"
    assert "Bob" in reward_row.message

    referee_row = await load_member(session_factory, "U-B")
    assert referee_row.points == 600


def _stale_referrer_lookup(monkeypatch) -> list[str]:
    """The first referrer lookup misses, as if the bind committed right after it."""
    calls: list[str] = []
    original = ReferralService.get_referrer

    async def _lookup(session, *, member_id):
        calls.append(member_id)
        if len(calls) == 1:
            return None
        return await original(session, member_id=member_id)

    monkeypatch.setattr(ReferralService, "get_referrer", staticmethod(_lookup))
    return calls


@pytest.mark.asyncio
async def test_purchase_rewards_referrer_bound_before_member_lock(
    session_factory,
    ledger_config,
    now_utc,
    monkeypatch,
) -> None:
    await _referrer_and_referee(session_factory, ledger_config, now_utc)
    calls = _stale_referrer_lookup(monkeypatch)

    async with session_factory.begin() as session:
        result = await LedgerService.purchase(
            session,
            config=ledger_config,
            member_id="U-B",
            points=500,
            now_utc=now_utc,
        )

    assert calls == ["U-B", "U-B"]
    assert result.referrer_id == "U-A"
    assert result.referrer_reward == 100
    assert result.referrer_reward_status == "GRANTED"
    assert (await load_member(session_factory, "U-A")).points == 200
    assert (await load_member(session_factory, "U-B")).points == 600


@pytest.mark.asyncio
async def test_withdrawal_rewards_referrer_bound_before_member_lock(
    session_factory,
    ledger_config,
    now_utc,
    monkeypatch,
) -> None:
    await _referrer_and_referee(session_factory, ledger_config, now_utc)
    async with session_factory.begin() as session:
        await LedgerService.admin_adjust(
            session,
            config=ledger_config,
            member_id="U-B",
            delta=900,
            reason="seed",
            now_utc=now_utc,
        )
    _stale_referrer_lookup(monkeypatch)

    async with session_factory.begin() as session:
        result = await LedgerService.withdraw(
            session,
            config=ledger_config,
            member_id="U-B",
            points=1000,
            now_utc=now_utc,
        )

    assert result.referrer_id == "U-A"
    assert result.referrer_reward_status == "GRANTED"
    assert (await load_member(session_factory, "U-A")).points == 300
    assert (await load_member(session_factory, "U-B")).points == 0


@pytest.mark.asyncio
async def test_reward_without_referrer_is_a_no_op(
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
        result = await ReferralService.reward(
            session,
            config=ledger_config,
            referee_id="U-A",
            amount_points=1000,
            event_kind=ReferralEventKind.PURCHASE,
            now_utc=now_utc,
        )

    assert result.granted is False
    assert result.reason == "NO_REFERRER"
    assert len(await load_transactions(session_factory, "U-A")) == 1


@pytest.mark.asyncio
async def test_reward_that_floors_to_zero_writes_nothing(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _referrer_and_referee(session_factory, ledger_config, now_utc)

    async with session_factory.begin() as session:
        result = await ReferralService.reward(
            session,
            config=ledger_config,
            referee_id="U-B",
            amount_points=4,
            event_kind=ReferralEventKind.PURCHASE,
            now_utc=now_utc,
        )

    assert result.granted is False
    assert result.reason == "ZERO_REWARD"
    assert result.referrer_id == "U-A"
    assert (await load_member(session_factory, "U-A")).points == 100


@pytest.mark.asyncio
async def test_withdrawal_by_referee_rewards_referrer(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _referrer_and_referee(session_factory, ledger_config, now_utc)
    async with session_factory.begin() as session:
        await LedgerService.admin_adjust(
            session,
            config=ledger_config,
            member_id="U-B",
            delta=900,
            reason="seed",
            now_utc=now_utc,
        )

    async with session_factory.begin() as session:
        result = await LedgerService.withdraw(
            session,
            config=ledger_config,
            member_id="U-B",
            points=1000,
            now_utc=now_utc,
        )

    assert result.referrer_reward == 200
    assert result.referrer_reward_status == "GRANTED"
    referrer_transactions = await load_transactions(session_factory, "U-A")
    assert referrer_transactions[-1].transaction_type == (
        TransactionType.REFERRAL_WITHDRAW_REWARD.value
    )
    assert (await load_member(session_factory, "U-A")).points == 300


@pytest.mark.asyncio
async def test_purchase_flags_reward_for_reconciliation_when_store_fails(
    session_factory,
    ledger_config,
    now_utc,
    monkeypatch,
) -> None:
    await _referrer_and_referee(session_factory, ledger_config, now_utc)

    async def _failing_create(session, *, event):
        del session, event
        raise OperationalError("INSERT INTO referral_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(ReferralEventsRepo, "create", staticmethod(_failing_create))

    async with session_factory.begin() as session:
        result = await LedgerService.purchase(
            session,
            config=ledger_config,
            member_id="U-B",
            points=500,
            now_utc=now_utc,
        )

    assert result.degraded is True
    assert result.referrer_reward_status == "PENDING_RECONCILIATION"
    assert result.referrer_reward == 100
    assert result.new_balance == 600

    assert (await load_member(session_factory, "U-B")).points == 600
    assert (await load_member(session_factory, "U-A")).points == 100
    assert [row.transaction_type for row in await load_transactions(session_factory, "U-A")] == [
        TransactionType.REGISTER.value,
    ]

    async with session_factory() as session:
        history = await LedgerService.list_purchases(session, member_id="U-B")
    assert history.items[0]["referrerRewardStatus"] == "PENDING_RECONCILIATION"


@pytest.mark.asyncio
async def test_bind_rejects_second_bind_and_self_referral(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    referrer = await _referrer_and_referee(session_factory, ledger_config, now_utc)
    other = await register_member(
        session_factory,
        ledger_config,
        member_id="U-C",
        phone="0911000003",
        now_utc=now_utc,
    )

    with pytest.raises(AlreadyBoundError):
        async with session_factory.begin() as session:
            await ReferralService.bind(
                session,
                referee_id="U-B",
                referral_code=other.referral_code,
                now_utc=now_utc,
            )
    with pytest.raises(SelfReferralError):
        async with session_factory.begin() as session:
            await ReferralService.bind(
                session,
                referee_id="U-A",
                referral_code=referrer.referral_code,
                now_utc=now_utc,
            )
    with pytest.raises(InvalidReferralCodeError):
        async with session_factory.begin() as session:
            await ReferralService.bind(
                session,
                referee_id="U-C",
                referral_code="NOPE22",
                now_utc=now_utc,
            )
    with pytest.raises(MemberNotFoundError):
        async with session_factory.begin() as session:
            await ReferralService.bind(
                session,
                referee_id="U-missing",
                referral_code=referrer.referral_code,
                now_utc=now_utc,
            )

    async with session_factory() as session:
        assert await ReferralService.get_referrer_id(session, referee_id="U-B") == "U-A"


@pytest.mark.asyncio
async def test_bind_after_registration_links_member_once(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    referrer = await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        name="Alice",
        now_utc=now_utc,
    )
    await register_member(
        session_factory,
        ledger_config,
        member_id="U-C",
        phone="0911000003",
        name="Carol",
        now_utc=now_utc,
    )

    async with session_factory.begin() as session:
        result = await ReferralService.bind(
            session,
            referee_id="U-C",
            referral_code=referrer.referral_code,
            now_utc=now_utc,
        )

    assert result.referrer_id == "U-A"
    assert result.referee_name == "Carol"
    assert (await load_member(session_factory, "U-C")).referred_by == referrer.referral_code


@pytest.mark.asyncio
async def test_referral_overview_lists_referees_with_reward_totals(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    referrer = await _referrer_and_referee(session_factory, ledger_config, now_utc)
    async with session_factory.begin() as session:
        await LedgerService.purchase(
            session,
            config=ledger_config,
            member_id="U-B",
            points=1000,
            now_utc=now_utc,
        )

    async with session_factory() as session:
        overview = await ReferralService.get_overview(session, member_id="U-A")
        verified = await ReferralService.verify_referral_code(
            session,
            referral_code=referrer.referral_code,
        )
        referee_view = await ReferralService.get_overview(session, member_id="U-B")

    assert overview.referral_code == referrer.referral_code
    assert overview.referee_count == 1
    assert overview.total_reward == 200
    assert [(item.referee_id, item.total_reward) for item in overview.referees] == [("U-B", 200)]
    assert overview.referred_by is None
    assert verified.referrer_id == "U-A"
    assert referee_view.referred_by is not None
    assert referee_view.referred_by.referrer_name == "Alice"
