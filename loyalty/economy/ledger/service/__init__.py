from __future__ import annotations

from .adjustments import admin_adjust
from .back_office import update_purchase_status, update_withdrawal_status
from .history import (
    admin_members,
    admin_stats,
    list_purchases,
    list_transactions,
    list_withdrawals,
    normalize_paging,
    snapshot_to_dict,
)
from .purchases import purchase, resolve_purchase_amount
from .registration import register
from .reports import list_all_purchases, list_all_withdrawals, purchase_stats
from .transfers import transfer
from .withdrawals import WithdrawalQuote, quote_withdrawal, withdraw


class LedgerService:
    register = staticmethod(register)
    transfer = staticmethod(transfer)
    admin_adjust = staticmethod(admin_adjust)
    purchase = staticmethod(purchase)
    withdraw = staticmethod(withdraw)
    quote_withdrawal = staticmethod(quote_withdrawal)
    update_withdrawal_status = staticmethod(update_withdrawal_status)
    update_purchase_status = staticmethod(update_purchase_status)
    list_transactions = staticmethod(list_transactions)
    list_purchases = staticmethod(list_purchases)
    list_withdrawals = staticmethod(list_withdrawals)
    admin_stats = staticmethod(admin_stats)
    admin_members = staticmethod(admin_members)
    list_all_purchases = staticmethod(list_all_purchases)
    list_all_withdrawals = staticmethod(list_all_withdrawals)
    purchase_stats = staticmethod(purchase_stats)


__all__ = [
    "LedgerService",
    "WithdrawalQuote",
    "normalize_paging",
    "resolve_purchase_amount",
    "snapshot_to_dict",
]
