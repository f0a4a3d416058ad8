from __future__ import annotations

from decimal import Decimal

import pytest

from loyalty.core.config import LedgerConfig
from loyalty.economy.errors import (
    BelowMinimumWithdrawalError,
    InsufficientBalanceError,
    MemberNotFoundError,
    ValidationFailedError,
)
from loyalty.economy.ledger.service import LedgerService, resolve_purchase_amount
from loyalty.economy.ledger.types import TransactionStatus, TransactionType
from tests.economy.ledger_fixtures import load_member, load_transactions, register_member


async def _member_with_points(session_factory, ledger_config, now_utc, *, points: int) -> None:
    await register_member(
        session_factory,
        ledger_config,
        member_id="U-A",
        phone="0911000001",
        name="Alice",
        now_utc=now_utc,
    )
    delta = points - ledger_config.initial_grant
    if delta:
        async with session_factory.begin() as session:
            await LedgerService.admin_adjust(
                session,
                config=ledger_config,
                member_id="U-A",
                delta=delta,
                reason="seed",
                now_utc=now_utc,
            )


def test_quote_withdrawal_applies_exchange_rate_and_fee() -> None:
    quote = LedgerService.quote_withdrawal(10_000, config=LedgerConfig())

    assert quote.amount_before_fee == 7000
    assert quote.fee == 15
    assert quote.payout_amount == 6985
    assert quote.exchange_rate == Decimal("0.7")


def test_quote_withdrawal_floors_fractional_amounts() -> None:
    quote = LedgerService.quote_withdrawal(101, config=LedgerConfig())

    assert quote.amount_before_fee == 70
    assert quote.payout_amount == 55


def test_quote_withdrawal_rejects_amounts_below_minimum_or_fee() -> None:
    with pytest.raises(BelowMinimumWithdrawalError):
        LedgerService.quote_withdrawal(99, config=LedgerConfig())
    with pytest.raises(BelowMinimumWithdrawalError):
        LedgerService.quote_withdrawal(20, config=LedgerConfig(min_withdrawal=1))


def test_resolve_purchase_amount_defaults_to_unit_price() -> None:
    config = LedgerConfig(purchase_unit_price=Decimal("2.5"))

    assert resolve_purchase_amount(10, None, config=config) == Decimal("25.00")
    assert resolve_purchase_amount(10, "99.999", config=config) == Decimal("100.00")


@pytest.mark.asyncio
async def test_purchase_credits_points_and_records_order(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _member_with_points(session_factory, ledger_config, now_utc, points=100)

    async with session_factory.begin() as session:
        result = await LedgerService.purchase(
            session,
            config=ledger_config,
            member_id="U-A",
            points=900,
            payment_method="LINE_PAY",
            amount="900",
            invoice_number="INV-1",
            payment_meta={"gateway_ref": "abc"},
            client_ip="203.0.113.7",
            now_utc=now_utc,
        )

    assert result.order_number.startswith("PUR-20260302103000-")
    assert (result.balance_before, result.new_balance) == (100, 1000)
    assert result.tier == "GOLD"
    assert result.referrer_id is None
    assert result.referrer_reward_status == "NONE"

    async with session_factory() as session:
        history = await LedgerService.list_purchases(session, member_id="U-A")
    record = history.items[0]
    assert record["paymentMethod"] == "line_pay"
    assert record["amount"] == "900.00"
    assert record["invoiceNumber"] == "INV-1"
    assert record["status"] == "completed"
    assert record["paymentStatus"] == "paid"


@pytest.mark.asyncio
async def test_purchase_rejects_unknown_payment_method_and_member(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _member_with_points(session_factory, ledger_config, now_utc, points=100)

    with pytest.raises(ValidationFailedError):
        async with session_factory.begin() as session:
            await LedgerService.purchase(
                session,
                config=ledger_config,
                member_id="U-A",
                points=10,
                payment_method="barter",
                now_utc=now_utc,
            )
    with pytest.raises(MemberNotFoundError):
        async with session_factory.begin() as session:
            await LedgerService.purchase(
                session,
                config=ledger_config,
                member_id="U-missing",
                points=10,
                now_utc=now_utc,
            )


@pytest.mark.asyncio
async def test_purchase_idempotency_key_replays_without_second_credit(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _member_with_points(session_factory, ledger_config, now_utc, points=100)

    async def _purchase():
        async with session_factory.begin() as session:
            return await LedgerService.purchase(
                session,
                config=ledger_config,
                member_id="U-A",
                points=250,
                idempotency_key="pay-42",
                now_utc=now_utc,
            )

    first = await _purchase()
    second = await _purchase()

    assert second.idempotent_replay is True
    assert second.order_number == first.order_number
    assert second.transaction_id == first.transaction_id
    assert (await load_member(session_factory, "U-A")).points == 350

    with pytest.raises(ValidationFailedError):
        async with session_factory.begin() as session:
            await LedgerService.withdraw(
                session,
                config=ledger_config,
                member_id="U-A",
                points=100,
                idempotency_key="pay-42",
                now_utc=now_utc,
            )


@pytest.mark.asyncio
async def test_withdraw_debits_points_and_keeps_pending_transaction(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _member_with_points(session_factory, ledger_config, now_utc, points=10_000)

    async with session_factory.begin() as session:
        result = await LedgerService.withdraw(
            session,
            config=ledger_config,
            member_id="U-A",
            points=10_000,
            bank_name="First Bank",
            bank_code="007",
            bank_account="0012345678",
            account_holder="Alice",
            now_utc=now_utc,
        )

    assert result.order_number.startswith("WD20260302103000")
    assert (result.amount_before_fee, result.fee, result.payout_amount) == (7000, 15, 6985)
    assert (result.balance_before, result.new_balance) == (10_000, 0)
    assert result.status == "pending"
    assert result.tier == "BRONZE"

    withdraw_row = (await load_transactions(session_factory, "U-A"))[-1]
    assert withdraw_row.transaction_type == TransactionType.WITHDRAW.value
    assert withdraw_row.status == TransactionStatus.PENDING.value
    assert withdraw_row.points == -10_000
    assert "****5678" in withdraw_row.message
    assert "0012345678" not in withdraw_row.message


@pytest.mark.asyncio
async def test_withdraw_rejects_insufficient_balance(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    await _member_with_points(session_factory, ledger_config, now_utc, points=100)

    with pytest.raises(InsufficientBalanceError):
        async with session_factory.begin() as session:
            await LedgerService.withdraw(
                session,
                config=ledger_config,
                member_id="U-A",
                points=200,
                now_utc=now_utc,
            )

    assert (await load_member(session_factory, "U-A")).points == 100
