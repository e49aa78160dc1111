"""Create ledger tables"""

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision = "0001_ledger_tables"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column(
            "updated_at",
            sa.TIMESTAMP(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
            server_onupdate=sa.func.now(),
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "clients",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("first_name", sa.String(length=100), nullable=False),
        sa.Column("last_name", sa.String(length=100), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("phone", sa.String(length=20), nullable=True),
        sa.Column("address", sa.String(length=255), nullable=True),
        sa.Column("city", sa.String(length=100), nullable=True),
        sa.Column("state", sa.String(length=100), nullable=True),
        sa.Column("document_type", sa.String(length=20), nullable=False),
        sa.Column("document_number", sa.LargeBinary(), nullable=False),
        sa.Column("birth_date", sa.Date(), nullable=True),
        sa.Column("gender", sa.String(length=10), nullable=True),
        sa.Column("marital_status", sa.String(length=20), nullable=True),
        sa.Column("occupation", sa.String(length=100), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id", name="pk_clients"),
    )
    op.create_index("ix_clients_last_first", "clients", ["last_name", "first_name"])

    op.create_table(
        "rate_plans",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("loan_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("weekly_payment", sa.Numeric(12, 2), nullable=False),
        sa.Column("weeks_count", sa.Integer(), nullable=False, server_default=sa.text("6")),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("loan_amount > 0", name="ck_rate_plans_loan_amount_positive"),
        sa.CheckConstraint("weekly_payment > 0", name="ck_rate_plans_weekly_payment_positive"),
        sa.CheckConstraint("weeks_count >= 1", name="ck_rate_plans_weeks_count_positive"),
        sa.PrimaryKeyConstraint("id", name="pk_rate_plans"),
    )
    op.create_index("ix_rate_plans_amount_active", "rate_plans", ["loan_amount", "is_active"])

    op.create_table(
        "guarantees",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("value", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("locked_by_loan_id", sa.Uuid(), nullable=True),
        *_timestamps(),
        sa.CheckConstraint("value > 0", name="ck_guarantees_value_positive"),
        sa.PrimaryKeyConstraint("id", name="pk_guarantees"),
        sa.UniqueConstraint("locked_by_loan_id", name="uq_guarantees_locked_by_loan_id"),
    )

    op.create_table(
        "loans",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("client_id", sa.Uuid(), nullable=False),
        sa.Column("rate_plan_id", sa.Uuid(), nullable=False),
        sa.Column("guarantee_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("weekly_payment", sa.Numeric(12, 2), nullable=False),
        sa.Column("weeks_count", sa.Integer(), nullable=False),
        sa.Column("total_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("paid_amount", sa.Numeric(12, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("balance", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="ACTIVE"),
        sa.Column("loan_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("completed_at", sa.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False, server_default=sa.text("1")),
        *_timestamps(),
        sa.CheckConstraint("amount > 0", name="ck_loans_amount_positive"),
        sa.CheckConstraint("weekly_payment > 0", name="ck_loans_weekly_payment_positive"),
        sa.CheckConstraint("total_amount >= 0", name="ck_loans_total_amount_nonneg"),
        sa.CheckConstraint("balance >= 0", name="ck_loans_balance_nonneg"),
        sa.CheckConstraint("status IN ('ACTIVE', 'PAID', 'OVERDUE', 'CANCELLED')", name="ck_loans_status"),
        sa.CheckConstraint("version >= 1", name="ck_loans_version_positive"),
        sa.ForeignKeyConstraint(
            ["client_id"], ["clients.id"], name="fk_loans_client_id_clients", ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["rate_plan_id"], ["rate_plans.id"], name="fk_loans_rate_plan_id_rate_plans", ondelete="RESTRICT"
        ),
        sa.ForeignKeyConstraint(
            ["guarantee_id"], ["guarantees.id"], name="fk_loans_guarantee_id_guarantees", ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_loans"),
    )
    op.create_index("ix_loans_client_status", "loans", ["client_id", "status"])
    op.create_index("ix_loans_guarantee_status", "loans", ["guarantee_id", "status"])
    op.create_foreign_key(
        "fk_guarantees_locked_by_loan_id_loans",
        "guarantees",
        "loans",
        ["locked_by_loan_id"],
        ["id"],
        ondelete="SET NULL",
    )

    op.create_table(
        "payments",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("loan_id", sa.Uuid(), nullable=False),
        sa.Column("amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("payment_date", sa.Date(), nullable=False),
        sa.Column("notes", sa.String(length=500), nullable=True),
        sa.Column("recorded_by", sa.String(length=100), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("amount > 0", name="ck_payments_amount_positive"),
        sa.ForeignKeyConstraint(
            ["loan_id"], ["loans.id"], name="fk_payments_loan_id_loans", ondelete="RESTRICT"
        ),
        sa.PrimaryKeyConstraint("id", name="pk_payments"),
    )
    op.create_index("ix_payments_loan_id", "payments", ["loan_id"])
    op.create_index("ix_payments_loan_date", "payments", ["loan_id", "payment_date"])

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("actor_id", sa.String(length=100), nullable=True),
        sa.Column("request_id", sa.String(length=100), nullable=True),
        sa.Column("action", sa.String(length=255), nullable=False),
        sa.Column("resource_type", sa.String(length=255), nullable=False),
        sa.Column("resource_id", sa.String(length=255), nullable=False),
        sa.Column("old_value", sa.JSON(), nullable=True),
        sa.Column("new_value", sa.JSON(), nullable=True),
        sa.Column("changes", sa.JSON(), nullable=True),
        sa.Column("summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.TIMESTAMP(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id", name="pk_audit_logs"),
    )
    op.create_index("ix_audit_logs_resource", "audit_logs", ["resource_type", "resource_id"])


def downgrade() -> None:
    op.drop_index("ix_audit_logs_resource", table_name="audit_logs")
    op.drop_table("audit_logs")
    op.drop_index("ix_payments_loan_date", table_name="payments")
    op.drop_index("ix_payments_loan_id", table_name="payments")
    op.drop_table("payments")
    op.drop_constraint("fk_guarantees_locked_by_loan_id_loans", "guarantees", type_="foreignkey")
    op.drop_index("ix_loans_guarantee_status", table_name="loans")
    op.drop_index("ix_loans_client_status", table_name="loans")
    op.drop_table("loans")
    op.drop_table("guarantees")
    op.drop_index("ix_rate_plans_amount_active", table_name="rate_plans")
    op.drop_table("rate_plans")
    op.drop_index("ix_clients_last_first", table_name="clients")
    op.drop_table("clients")
