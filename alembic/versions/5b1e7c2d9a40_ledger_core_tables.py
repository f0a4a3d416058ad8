"""ledger_core_tables

Revision ID: 5b1e7c2d9a40
Revises:
Create Date: 2026-10-17 09:00:00.000000
"""
from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "5b1e7c2d9a40"
down_revision: str | None = None
branch_labels: Sequence[str] | None = None
depends_on: Sequence[str] | None = None

ORDER_STATUSES = "('pending','processing','completed','rejected')"
REWARD_STATUSES = "('NONE','GRANTED','PENDING_RECONCILIATION')"


def upgrade() -> None:
    op.create_table(
        "members",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("display_name", sa.String(64), nullable=False),
        sa.Column("phone", sa.String(20), nullable=False),
        sa.Column("email", sa.String(254), nullable=True),
        sa.Column("points", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("tier", sa.String(32), nullable=False),
        sa.Column("lifetime_earned", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("lifetime_spent", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("referral_code", sa.String(16), nullable=False),
        sa.Column("referred_by", sa.String(16), nullable=True),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'active'")),
        sa.Column("login_name", sa.String(64), nullable=True),
        sa.Column("password_hash", sa.String(255), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("last_login_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('active','inactive','suspended','blocked')",
            name="ck_members_status",
        ),
        sa.CheckConstraint("lifetime_earned >= 0", name="ck_members_lifetime_earned_non_negative"),
        sa.CheckConstraint("lifetime_spent >= 0", name="ck_members_lifetime_spent_non_negative"),
        sa.UniqueConstraint("phone", name="uq_members_phone"),
        sa.UniqueConstraint("referral_code", name="uq_members_referral_code"),
        sa.UniqueConstraint("login_name", name="uq_members_login_name"),
    )
    op.create_index("idx_members_referred_by", "members", ["referred_by"])
    op.create_index("idx_members_created_at", "members", ["created_at"])
    op.create_index("idx_members_tier", "members", ["tier"])

    op.create_table(
        "transactions",
        sa.Column("seq", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("transaction_id", sa.String(40), nullable=False),
        sa.Column("transaction_type", sa.String(32), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("counterparty_id", sa.String(64), nullable=True),
        sa.Column("sender_id", sa.String(64), nullable=True),
        sa.Column("sender_name", sa.String(64), nullable=True),
        sa.Column("receiver_id", sa.String(64), nullable=True),
        sa.Column("receiver_name", sa.String(64), nullable=True),
        sa.Column("points", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("counterparty_balance_after", sa.BigInteger(), nullable=True),
        sa.Column("message", sa.Text(), nullable=False, server_default=sa.text("''")),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("idempotency_key", sa.String(96), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "transaction_type IN ('register','transfer_out','transfer_in','admin_add',"
            "'admin_deduct','purchase','withdraw','referral_purchase_reward',"
            "'referral_withdraw_reward')",
            name="ck_transactions_type",
        ),
        sa.CheckConstraint("status IN ('completed','pending')", name="ck_transactions_status"),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.UniqueConstraint("transaction_id", name="uq_transactions_transaction_id"),
        sa.UniqueConstraint("idempotency_key", name="uq_transactions_idempotency_key"),
    )
    op.create_index("idx_transactions_member_seq", "transactions", ["member_id", "seq"])
    op.create_index("idx_transactions_created_at", "transactions", ["created_at"])
    op.create_index(
        "idx_transactions_type_created",
        "transactions",
        ["transaction_type", "created_at"],
    )
    op.execute(
        """
        CREATE OR REPLACE FUNCTION fn_transactions_append_only()
        RETURNS trigger AS $$
        BEGIN
            RAISE EXCEPTION 'transactions is append-only';
        END;
        $$ LANGUAGE plpgsql;
        """
    )
    op.execute(
        """
        CREATE TRIGGER trg_transactions_append_only
        BEFORE UPDATE OR DELETE ON transactions
        FOR EACH ROW EXECUTE FUNCTION fn_transactions_append_only();
        """
    )

    op.create_table(
        "referrals",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("referral_code", sa.String(16), nullable=False),
        sa.Column("referrer_id", sa.String(64), nullable=False),
        sa.Column("referrer_name", sa.String(64), nullable=False),
        sa.Column("referee_id", sa.String(64), nullable=False),
        sa.Column("referee_name", sa.String(64), nullable=False),
        sa.Column("referrer_reward", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("referee_reward", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("status", sa.String(16), nullable=False, server_default=sa.text("'ACTIVE'")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("status IN ('ACTIVE')", name="ck_referrals_status"),
        sa.CheckConstraint("referrer_id <> referee_id", name="ck_referrals_no_self_referral"),
        sa.ForeignKeyConstraint(["referrer_id"], ["members.id"]),
        sa.ForeignKeyConstraint(["referee_id"], ["members.id"]),
        sa.UniqueConstraint("referee_id", name="uq_referrals_referee_id"),
    )
    op.create_index("idx_referrals_referrer_created", "referrals", ["referrer_id", "created_at"])
    op.create_index("idx_referrals_code", "referrals", ["referral_code"])

    op.create_table(
        "referral_events",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("referral_id", sa.BigInteger(), nullable=False),
        sa.Column("referrer_id", sa.String(64), nullable=False),
        sa.Column("referrer_name", sa.String(64), nullable=False),
        sa.Column("referee_id", sa.String(64), nullable=False),
        sa.Column("referee_name", sa.String(64), nullable=False),
        sa.Column("event_kind", sa.String(16), nullable=False),
        sa.Column("source_points", sa.BigInteger(), nullable=False),
        sa.Column("reward_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("reward_points", sa.BigInteger(), nullable=False),
        sa.Column("referrer_balance_before", sa.BigInteger(), nullable=False),
        sa.Column("referrer_balance_after", sa.BigInteger(), nullable=False),
        sa.Column("transaction_id", sa.String(40), nullable=False),
        sa.Column("source_order_number", sa.String(40), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint("event_kind IN ('purchase','withdraw')", name="ck_referral_events_kind"),
        sa.CheckConstraint("reward_points > 0", name="ck_referral_events_reward_positive"),
        sa.ForeignKeyConstraint(["referral_id"], ["referrals.id"]),
    )
    op.create_index(
        "idx_referral_events_referrer_created",
        "referral_events",
        ["referrer_id", "created_at"],
    )
    op.create_index("idx_referral_events_referee", "referral_events", ["referee_id"])

    op.create_table(
        "purchases",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(40), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("member_name", sa.String(64), nullable=False),
        sa.Column("points", sa.BigInteger(), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("unit_price", sa.Numeric(12, 4), nullable=False),
        sa.Column("payment_method", sa.String(32), nullable=False),
        sa.Column("payment_status", sa.String(32), nullable=False),
        sa.Column("invoice_number", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column(
            "payment_meta",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'{}'::jsonb"),
        ),
        sa.Column("referrer_id", sa.String(64), nullable=True),
        sa.Column("referrer_name", sa.String(64), nullable=True),
        sa.Column("referrer_reward", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("referrer_reward_status", sa.String(32), nullable=False),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("transaction_id", sa.String(40), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points > 0", name="ck_purchases_points_positive"),
        sa.CheckConstraint(f"status IN {ORDER_STATUSES}", name="ck_purchases_status"),
        sa.CheckConstraint(
            "payment_method IN ('cash','credit_card','bank_transfer','line_pay','manual','other')",
            name="ck_purchases_payment_method",
        ),
        sa.CheckConstraint(
            f"referrer_reward_status IN {REWARD_STATUSES}",
            name="ck_purchases_referrer_reward_status",
        ),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.UniqueConstraint("order_number", name="uq_purchases_order_number"),
        sa.UniqueConstraint("transaction_id", name="uq_purchases_transaction_id"),
    )
    op.create_index("idx_purchases_member_created", "purchases", ["member_id", "created_at"])
    op.create_index("idx_purchases_status_created", "purchases", ["status", "created_at"])
    op.create_index("idx_purchases_reward_status", "purchases", ["referrer_reward_status"])

    op.create_table(
        "withdrawals",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("order_number", sa.String(40), nullable=False),
        sa.Column("member_id", sa.String(64), nullable=False),
        sa.Column("member_name", sa.String(64), nullable=False),
        sa.Column("points", sa.BigInteger(), nullable=False),
        sa.Column("amount_before_fee", sa.BigInteger(), nullable=False),
        sa.Column("fee", sa.BigInteger(), nullable=False),
        sa.Column("payout_amount", sa.BigInteger(), nullable=False),
        sa.Column("exchange_rate", sa.Numeric(6, 4), nullable=False),
        sa.Column("bank_name", sa.String(64), nullable=True),
        sa.Column("bank_code", sa.String(16), nullable=True),
        sa.Column("bank_account", sa.String(64), nullable=True),
        sa.Column("account_holder", sa.String(64), nullable=True),
        sa.Column("client_ip", sa.String(64), nullable=True),
        sa.Column("referrer_id", sa.String(64), nullable=True),
        sa.Column("referrer_name", sa.String(64), nullable=True),
        sa.Column("referrer_reward", sa.BigInteger(), nullable=False, server_default=sa.text("0")),
        sa.Column("referrer_reward_status", sa.String(32), nullable=False),
        sa.Column("balance_before", sa.BigInteger(), nullable=False),
        sa.Column("balance_after", sa.BigInteger(), nullable=False),
        sa.Column("status", sa.String(16), nullable=False),
        sa.Column("transaction_id", sa.String(40), nullable=False),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint("points > 0", name="ck_withdrawals_points_positive"),
        sa.CheckConstraint("payout_amount > 0", name="ck_withdrawals_payout_positive"),
        sa.CheckConstraint(f"status IN {ORDER_STATUSES}", name="ck_withdrawals_status"),
        sa.CheckConstraint(
            f"referrer_reward_status IN {REWARD_STATUSES}",
            name="ck_withdrawals_referrer_reward_status",
        ),
        sa.ForeignKeyConstraint(["member_id"], ["members.id"]),
        sa.UniqueConstraint("order_number", name="uq_withdrawals_order_number"),
        sa.UniqueConstraint("transaction_id", name="uq_withdrawals_transaction_id"),
    )
    op.create_index("idx_withdrawals_member_created", "withdrawals", ["member_id", "created_at"])
    op.create_index("idx_withdrawals_status_created", "withdrawals", ["status", "created_at"])
    op.create_index("idx_withdrawals_reward_status", "withdrawals", ["referrer_reward_status"])

    op.create_table(
        "ledger_reconciliation_runs",
        sa.Column("id", sa.BigInteger(), primary_key=True, autoincrement=True),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("finished_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(32), nullable=False),
        sa.Column("members_checked", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("diff_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("pending_reward_count", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column(
            "drifted_member_ids",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=False,
            server_default=sa.text("'[]'::jsonb"),
        ),
    )
    op.create_index(
        "idx_ledger_reconciliation_runs_started_at",
        "ledger_reconciliation_runs",
        ["started_at"],
    )


def downgrade() -> None:
    op.drop_index("idx_ledger_reconciliation_runs_started_at", table_name="ledger_reconciliation_runs")
    op.drop_table("ledger_reconciliation_runs")
    op.drop_index("idx_withdrawals_reward_status", table_name="withdrawals")
    op.drop_index("idx_withdrawals_status_created", table_name="withdrawals")
    op.drop_index("idx_withdrawals_member_created", table_name="withdrawals")
    op.drop_table("withdrawals")
    op.drop_index("idx_purchases_reward_status", table_name="purchases")
    op.drop_index("idx_purchases_status_created", table_name="purchases")
    op.drop_index("idx_purchases_member_created", table_name="purchases")
    op.drop_table("purchases")
    op.drop_index("idx_referral_events_referee", table_name="referral_events")
    op.drop_index("idx_referral_events_referrer_created", table_name="referral_events")
    op.drop_table("referral_events")
    op.drop_index("idx_referrals_code", table_name="referrals")
    op.drop_index("idx_referrals_referrer_created", table_name="referrals")
    op.drop_table("referrals")
    op.execute("DROP TRIGGER IF EXISTS trg_transactions_append_only ON transactions")
    op.execute("DROP FUNCTION IF EXISTS fn_transactions_append_only()")
    op.drop_index("idx_transactions_type_created", table_name="transactions")
    op.drop_index("idx_transactions_created_at", table_name="transactions")
    op.drop_index("idx_transactions_member_seq", table_name="transactions")
    op.drop_table("transactions")
    op.drop_index("idx_members_tier", table_name="members")
    op.drop_index("idx_members_created_at", table_name="members")
    op.drop_index("idx_members_referred_by", table_name="members")
    op.drop_table("members")
