from __future__ import annotations

from datetime import timedelta

import pytest

from loyalty.economy.errors import ValidationFailedError
from loyalty.economy.ledger.service import LedgerService
from loyalty.economy.referrals.service import ReferralService
from tests.economy.ledger_fixtures import register_member


async def _purchase(session_factory, ledger_config, now_utc, member_id, points, **extra):
    async with session_factory.begin() as session:
        return await LedgerService.purchase(
            session,
            config=ledger_config,
            member_id=member_id,
            points=points,
            now_utc=now_utc,
            **extra,
        )


async def _members_with_purchases(session_factory, ledger_config, now_utc) -> None:
    for member_id, phone in (("U-A", "0911000001"), ("U-B", "0911000002")):
        await register_member(
            session_factory,
            ledger_config,
            member_id=member_id,
            phone=phone,
            now_utc=now_utc,
        )
    await _purchase(session_factory, ledger_config, now_utc, "U-A", 300, payment_method="cash")
    await _purchase(
        session_factory,
        ledger_config,
        now_utc + timedelta(minutes=1),
        "U-B",
        200,
        payment_method="line_pay",
        amount="150.50",
    )
    await _purchase(
        session_factory,
        ledger_config,
        now_utc + timedelta(minutes=2),
        "U-A",
        100,
        payment_method="cash",
        payment_status="pending",
    )


@pytest.mark.asyncio
async def test_all_purchases_lists_every_member_with_filters(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _members_with_purchases(session_factory, ledger_config, now_utc)

    async with session_factory() as session:
        everything = await LedgerService.list_all_purchases(session)
        paid = await LedgerService.list_all_purchases(session, payment_status="paid")
        completed = await LedgerService.list_all_purchases(session, status=" Completed ")
        rejected = await LedgerService.list_all_purchases(session, status="rejected")

    assert everything.total == 3
    assert [item["memberId"] for item in everything.items] == ["U-A", "U-B", "U-A"]
    assert everything.items[0]["paymentStatus"] == "pending"
    assert everything.items[1]["memberName"] == "Member U-B"
    assert paid.total == 2
    assert {item["paymentStatus"] for item in paid.items} == {"paid"}
    assert completed.total == 3
    assert rejected.total == 0
    assert rejected.items == []


@pytest.mark.asyncio
async def test_all_purchases_rejects_unknown_status(session_factory) -> None:
    async with session_factory() as session:
        with pytest.raises(ValidationFailedError):
            await LedgerService.list_all_purchases(session, status="shipped")


@pytest.mark.asyncio
async def test_all_withdrawals_filters_the_pending_payout_queue(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    for member_id, phone in (("U-A", "0911000001"), ("U-B", "0911000002")):
        await register_member(
            session_factory,
            ledger_config,
            member_id=member_id,
            phone=phone,
            now_utc=now_utc,
        )
        await _purchase(session_factory, ledger_config, now_utc, member_id, 900)

    order_numbers = []
    for offset_minutes, member_id in ((1, "U-A"), (2, "U-B")):
        async with session_factory.begin() as session:
            result = await LedgerService.withdraw(
                session,
                config=ledger_config,
                member_id=member_id,
                points=500,
                now_utc=now_utc + timedelta(minutes=offset_minutes),
            )
        order_numbers.append(result.order_number)

    async with session_factory.begin() as session:
        await LedgerService.update_withdrawal_status(
            session,
            order_number=order_numbers[0],
            status="processing",
            now_utc=now_utc + timedelta(minutes=3),
        )

    async with session_factory() as session:
        pending = await LedgerService.list_all_withdrawals(session, status="pending")
        everything = await LedgerService.list_all_withdrawals(session, page_size=1)

    assert pending.total == 1
    assert pending.items[0]["memberId"] == "U-B"
    assert pending.items[0]["orderNumber"] == order_numbers[1]
    assert pending.items[0]["payoutAmount"] == 335
    assert everything.total == 2
    assert everything.has_more is True
    assert everything.items[0]["orderNumber"] == order_numbers[1]


@pytest.mark.asyncio
async def test_purchase_stats_count_only_paid_purchases(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _members_with_purchases(session_factory, ledger_config, now_utc)

    async with session_factory() as session:
        program = await LedgerService.purchase_stats(session)
        member = await LedgerService.purchase_stats(session, member_id="U-A")

    assert program == {
        "memberId": None,
        "totalPurchases": 2,
        "totalAmount": "450.50",
        "totalPoints": 500,
        "averageAmount": "225.25",
        "averagePoints": 250,
        "paymentMethods": {"cash": 1, "line_pay": 1},
    }
    assert member["totalPurchases"] == 1
    assert member["totalAmount"] == "300.00"
    assert member["paymentMethods"] == {"cash": 1}


@pytest.mark.asyncio
async def test_purchase_stats_without_purchases_are_zero(session_factory) -> None:
    async with session_factory() as session:
        stats = await LedgerService.purchase_stats(session)

    assert stats["totalPurchases"] == 0
    assert stats["averageAmount"] == "0.00"
    assert stats["averagePoints"] == 0
    assert stats["paymentMethods"] == {}


@pytest.mark.asyncio
async def test_referral_program_stats_rank_referrers(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    alice = await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        name="Alice",
        now_utc=now_utc,
    )
    dave = await register_member(
        session_factory,
        ledger_config,
        member_id="U-D",
        phone="0911000004",
        name="Dave",
        now_utc=now_utc,
    )
    referees = (
        ("U-B", "0911000002", alice.referral_code, 1),
        ("U-C", "0911000003", alice.referral_code, 2),
        ("U-E", "0911000005", dave.referral_code, 3),
    )
    for member_id, phone, code, offset_minutes in referees:
        await register_member(
            session_factory,
            ledger_config,
            member_id=member_id,
            phone=phone,
            referral_code=code,
            now_utc=now_utc + timedelta(minutes=offset_minutes),
        )
    await _purchase(session_factory, ledger_config, now_utc, "U-B", 500)

    async with session_factory() as session:
        stats = await ReferralService.get_program_stats(session)

    assert stats.total_referrals == 3
    assert stats.active_referrers == 2
    assert stats.average_referrals == 1.5
    assert stats.total_rewards == 100
    assert [ranking.referrer_id for ranking in stats.top_referrers] == ["U-A", "U-D"]
    assert stats.top_referrers[0].referee_count == 2
    assert stats.top_referrers[0].referral_code == alice.referral_code
    assert stats.top_referrers[0].total_reward == 100
    assert stats.top_referrers[1].total_reward == 0
    assert [referral.referee_id for referral in stats.recent_referrals] == ["U-E", "U-C", "U-B"]
