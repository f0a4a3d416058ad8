from loyalty.db.models.ledger_reconciliation_runs import LedgerReconciliationRun
from loyalty.db.models.members import Member
from loyalty.db.models.purchases import Purchase
from loyalty.db.models.referral_events import ReferralEvent
from loyalty.db.models.referrals import Referral
from loyalty.db.models.transactions import Transaction
from loyalty.db.models.withdrawals import Withdrawal

__all__ = [
    "LedgerReconciliationRun",
    "Member",
    "Purchase",
    "ReferralEvent",
    "Referral",
    "Transaction",
    "Withdrawal",
]
