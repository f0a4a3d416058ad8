from loyalty.db.repo.ledger_reconciliation_runs_repo import LedgerReconciliationRunsRepo
from loyalty.db.repo.members_repo import MembersRepo
from loyalty.db.repo.orders_repo import PurchasesRepo, WithdrawalsRepo
from loyalty.db.repo.referrals_repo import ReferralEventsRepo, ReferralsRepo
from loyalty.db.repo.transactions_repo import TransactionsRepo

__all__ = [
    "LedgerReconciliationRunsRepo",
    "MembersRepo",
    "PurchasesRepo",
    "ReferralEventsRepo",
    "ReferralsRepo",
    "TransactionsRepo",
    "WithdrawalsRepo",
]
