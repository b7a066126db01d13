"""initial_billing_schema

Revision ID: 3f9c1e7a2b10
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f9c1e7a2b10'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

LIVE_FILTER = sa.text("status IN ('ACTIVA', 'MOROSA', 'SUSPENDIDA', 'TRIAL')")


def _enum(*values: str) -> sa.Enum:
    return sa.Enum(*values, native_enum=False, length=20)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime(), nullable=False),
    ]


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("email", sa.String(255), nullable=False),
        sa.Column("hashed_password", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("role", _enum("USER", "ADMIN"), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("country", sa.String(64), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_users_email", "users", ["email"], unique=True)

    op.create_table(
        "plans",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("name", sa.String(120), nullable=False, unique=True),
        sa.Column("tier", _enum("BASIC", "PREMIUM", "ENTERPRISE"), nullable=False),
        sa.Column("monthly_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("user_limit", sa.Integer(), nullable=True),
        sa.Column("storage_quota_gb", sa.Integer(), nullable=True),
        sa.Column("priority_support", sa.Boolean(), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("trial_days", sa.Integer(), nullable=False),
        sa.Column("billing_cycle_days", sa.Integer(), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "subscriptions",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("plan_id", sa.Uuid(), sa.ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False),
        sa.Column(
            "status",
            _enum("TRIAL", "ACTIVA", "MOROSA", "SUSPENDIDA", "CANCELADA", "EXPIRADA"),
            nullable=False,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("next_billing_date", sa.Date(), nullable=False),
        sa.Column("auto_renew", sa.Boolean(), nullable=False),
        sa.Column("effective_price", sa.Numeric(12, 2), nullable=False),
        sa.Column("pending_credit", sa.Numeric(12, 2), nullable=False),
        sa.Column("cancellation_reason", sa.String(500), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(), nullable=True),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"])
    op.create_index("ix_subscriptions_plan_id", "subscriptions", ["plan_id"])
    op.create_index("ix_subscriptions_status", "subscriptions", ["status"])
    op.create_index("ix_subscriptions_next_billing_date", "subscriptions", ["next_billing_date"])
    # One live subscription per user
    op.create_index(
        "uq_subscriptions_live_user",
        "subscriptions",
        ["user_id"],
        unique=True,
        postgresql_where=LIVE_FILTER,
        sqlite_where=LIVE_FILTER,
    )

    op.create_table(
        "invoices",
        sa.Column("id", sa.Uuid(), primary_key=True),
        sa.Column("number", sa.String(32), nullable=False, unique=True),
        sa.Column("sequence", sa.Integer(), nullable=False, unique=True),
        sa.Column(
            "subscription_id", sa.Uuid(), sa.ForeignKey("subscriptions.id", ondelete="RESTRICT"), nullable=False
        ),
        sa.Column("user_id", sa.Uuid(), sa.ForeignKey("users.id", ondelete="RESTRICT"), nullable=False),
        sa.Column("issue_date", sa.Date(), nullable=False),
        sa.Column("due_date", sa.Date(), nullable=False),
        sa.Column("subtotal", sa.Numeric(12, 2), nullable=False),
        sa.Column("tax_rate", sa.Numeric(5, 2), nullable=False),
        sa.Column("tax_amount", sa.Numeric(12, 2), nullable=False),
        sa.Column("total", sa.Numeric(12, 2), nullable=False),
        sa.Column("status", _enum("PENDIENTE", "PAGADA", "CANCELADA", "VENCIDA"), nullable=False),
        sa.Column("paid_at", sa.DateTime(), nullable=True),
        sa.Column("concept", sa.String(255), nullable=True),
        sa.Column("is_proration", sa.Boolean(), nullable=False),
        sa.Column("version", sa.Integer(), nullable=False),
        *_timestamps(),
    )
    for column in ("subscription_id", "user_id", "issue_date", "due_date", "total", "status"):
        op.create_index(f"ix_invoices_{column}", "invoices", [column])

    op.create_table(
        "audit_revisions",
        sa.Column("revision", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("entity_type", _enum("Usuario", "Plan", "Suscripcion", "Factura"), nullable=False),
        sa.Column("entity_id", sa.Uuid(), nullable=False),
        sa.Column("operation", _enum("CREACION", "MODIFICACION", "ELIMINACION"), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.Column("snapshot", sa.JSON(), nullable=False),
        sqlite_autoincrement=True,
    )
    for column in ("entity_type", "entity_id", "operation"):
        op.create_index(f"ix_audit_revisions_{column}", "audit_revisions", [column])


def downgrade() -> None:
    op.drop_table("audit_revisions")
    op.drop_table("invoices")
    op.drop_index("uq_subscriptions_live_user", table_name="subscriptions")
    op.drop_table("subscriptions")
    op.drop_table("plans")
    op.drop_index("ix_users_email", table_name="users")
    op.drop_table("users")
