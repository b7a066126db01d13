"""Plan model — catalog entry with price, limits and billing cadence."""

from decimal import Decimal

from sqlalchemy import Boolean, Enum, Integer, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from billing_engine.database import Base, TimestampMixin, UUIDPrimaryKeyMixin
from billing_engine.models.enums import PlanTier


class Plan(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Subscription plan offered in the catalog."""

    __tablename__ = "plans"

    name: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    tier: Mapped[PlanTier] = mapped_column(Enum(PlanTier, native_enum=False, length=20), nullable=False)
    monthly_price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    user_limit: Mapped[int | None] = mapped_column(Integer, nullable=True)  # None = unlimited
    storage_quota_gb: Mapped[int | None] = mapped_column(Integer, nullable=True)
    priority_support: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    trial_days: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    billing_cycle_days: Mapped[int] = mapped_column(Integer, default=30, nullable=False)

    @property
    def offers_trial(self) -> bool:
        return self.trial_days > 0

    def __repr__(self) -> str:
        return f"<Plan id={self.id} name={self.name!r} tier={self.tier!r} price={self.monthly_price}>"
