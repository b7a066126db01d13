"""Invoice model — issued bills with tax breakdown."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import Boolean, Enum, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_engine.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from billing_engine.models.enums import InvoiceStatus


class Invoice(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A bill for one billing cycle or one proration charge.

    ``subtotal``, ``tax_rate``, ``tax_amount`` and ``total`` are never changed
    after issuance.
    """

    __tablename__ = "invoices"

    number: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)
    sequence: Mapped[int] = mapped_column(Integer, unique=True, nullable=False)
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="RESTRICT"), nullable=False, index=True
    )
    issue_date: Mapped[date] = mapped_column(nullable=False, index=True)
    due_date: Mapped[date] = mapped_column(nullable=False, index=True)
    subtotal: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    tax_rate: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    tax_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    total: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, index=True)
    status: Mapped[InvoiceStatus] = mapped_column(
        Enum(InvoiceStatus, native_enum=False, length=20), nullable=False, index=True
    )
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    concept: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_proration: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Invoice(id={self.id}, number={self.number}, total={self.total}, status={self.status})>"
