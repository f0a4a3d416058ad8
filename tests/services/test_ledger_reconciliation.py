from __future__ import annotations

import pytest

from loyalty.db.repo.members_repo import MembersRepo
from loyalty.economy.ledger.service import LedgerService
from loyalty.services.ledger_reconciliation import compute_balance_drift, reconciliation_status
from tests.economy.ledger_fixtures import register_member


def test_compute_balance_drift_flags_members_whose_sums_differ() -> None:
    drifted = compute_balance_drift(
        [("U-A", 100, 100), ("U-B", 250, 200), ("U-C", 0, 0), ("U-D", 40, 40), ("U-E", 10, 0)]
    )

    assert drifted == ["U-B", "U-E"]


def test_reconciliation_status() -> None:
    assert reconciliation_status(0) == "OK"
    assert reconciliation_status(3) == "DIFF"


@pytest.mark.asyncio
async def test_balances_and_ledger_sums_are_read_together_in_id_order(
    session_factory,
    ledger_config,
    now_utc,
) -> None:
    for member_id, phone in (("U-B", "0911000002"), ("U-A", "0911000001"), ("U-C", "0911000003")):
        await register_member(
            session_factory,
            ledger_config,
            member_id=member_id,
            phone=phone,
            now_utc=now_utc,
        )
    async with session_factory.begin() as session:
        await LedgerService.transfer(
            session,
            config=ledger_config,
            sender_id="U-A",
            receiver_id="U-C",
            points=30,
            now_utc=now_utc,
        )

    async with session_factory() as session:
        first = await MembersRepo.list_balances_with_ledger_sums_after(
            session,
            after_member_id=None,
            limit=2,
        )
        rest = await MembersRepo.list_balances_with_ledger_sums_after(
            session,
            after_member_id=first[-1][0],
            limit=2,
        )

    assert first == [("U-A", 70, 70), ("U-B", 100, 100)]
    assert rest == [("U-C", 130, 130)]
