from __future__ import annotations

from collections.abc import Iterable


def compute_balance_drift(rows: Iterable[tuple[str, int, int]]) -> list[str]:
    """Member ids whose stored balance differs from the sum of their transactions.

    Each row is ``(member_id, stored_balance, ledger_sum)`` taken from one snapshot.
    """
    return [member_id for member_id, points, ledger_sum in rows if ledger_sum != points]


def reconciliation_status(diff_count: int) -> str:
    return "OK" if diff_count == 0 else "DIFF"
