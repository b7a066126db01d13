"""Subscription model — lifecycle state and billing schedule per user."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum, ForeignKey, Index, Integer, Numeric, String, text
from sqlalchemy.orm import Mapped, mapped_column

from billing_engine.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from billing_engine.models.enums import LIVE_STATUSES, SubscriptionStatus

_LIVE_FILTER = text(
    "status IN ({})".format(", ".join(f"'{s.value}'" for s in sorted(LIVE_STATUSES, key=lambda s: s.value)))
)


class Subscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Links a user to a plan. Every UPDATE is version-checked."""

    __tablename__ = "subscriptions"
    __table_args__ = (
        # At most one live subscription per user
        Index(
            "uq_subscriptions_live_user",
            "user_id",
            unique=True,
            postgresql_where=_LIVE_FILTER,
            sqlite_where=_LIVE_FILTER,
        ),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    plan_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("plans.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    status: Mapped[SubscriptionStatus] = mapped_column(
        Enum(SubscriptionStatus, native_enum=False, length=20), nullable=False, index=True
    )
    start_date: Mapped[date] = mapped_column(nullable=False)
    next_billing_date: Mapped[date] = mapped_column(nullable=False, index=True)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    effective_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    # Downgrade credit deducted from the next cycle invoice
    pending_credit: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0.00"), nullable=False)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Subscription(id={self.id}, user_id={self.user_id}, plan_id={self.plan_id}, status={self.status})>"
