from loyalty.workers.tasks.ledger_reconciliation import run_ledger_reconciliation

__all__ = ["run_ledger_reconciliation"]
