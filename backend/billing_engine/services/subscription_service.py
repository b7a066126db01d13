"""Subscription commands: creation, plan changes and lifecycle transitions.

Every command re-reads the subscription with ``load_for_update`` inside
``run_with_retry`` so a concurrent writer causes a retry, never a lost
update.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.billing.lifecycle import GUARDED_EVENTS, LifecycleEvent, apply_event, event_for
from billing_engine.billing.money import ZERO, to_money
from billing_engine.billing.proration import ProrationQuote, compute_proration, days_remaining_in_cycle
from billing_engine.config import settings
from billing_engine.database import utcnow
from billing_engine.errors import (
    DependencyInUse,
    InvalidTransition,
    NoOpChange,
    NotFound,
    ValidationError,
)
from billing_engine.models.enums import LIVE_STATUSES, SubscriptionStatus
from billing_engine.models.invoice import Invoice
from billing_engine.models.plan import Plan
from billing_engine.models.subscription import Subscription
from billing_engine.models.user import User
from billing_engine.services import invoice_service
from billing_engine.services.audit_service import record_creation, record_deletion, record_update, snapshot
from billing_engine.services.concurrency import load_for_update, run_with_retry

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_subscription(db: AsyncSession, subscription_id: uuid.UUID) -> Subscription:
    subscription = await db.get(Subscription, subscription_id)
    if subscription is None:
        raise NotFound("Suscripcion", subscription_id)
    return subscription


async def _list(db: AsyncSession, *criteria) -> list[Subscription]:
    result = await db.execute(select(Subscription).where(*criteria).order_by(Subscription.created_at.desc()))
    return list(result.scalars().all())


async def list_subscriptions(db: AsyncSession) -> list[Subscription]:
    return await _list(db)


async def list_by_user(db: AsyncSession, user_id: uuid.UUID) -> list[Subscription]:
    return await _list(db, Subscription.user_id == user_id)


async def list_by_status(db: AsyncSession, status: SubscriptionStatus) -> list[Subscription]:
    return await _list(db, Subscription.status == status)


async def find_live_subscription(
    db: AsyncSession, user_id: uuid.UUID, exclude_id: uuid.UUID | None = None
) -> Subscription | None:
    query = select(Subscription).where(Subscription.user_id == user_id, Subscription.status.in_(LIVE_STATUSES))
    if exclude_id is not None:
        query = query.where(Subscription.id != exclude_id)
    result = await db.execute(query.limit(1))
    return result.scalar_one_or_none()


async def _load(db: AsyncSession, subscription_id: uuid.UUID) -> Subscription:
    subscription = await load_for_update(db, Subscription, subscription_id)
    if subscription is None:
        raise NotFound("Suscripcion", subscription_id)
    return subscription


# ---------------------------------------------------------------------------
# Creation
# ---------------------------------------------------------------------------


async def create_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan_id: uuid.UUID,
    *,
    start_date: date | None = None,
    auto_renew: bool = True,
) -> Subscription:
    """Subscribe a user to a plan.

    Starts in TRIAL when the plan offers one (first billing at trial end),
    otherwise ACTIVA with first billing one cycle after the start date.
    """
    user = await db.get(User, user_id)
    if user is None:
        raise NotFound("Usuario", user_id)
    if not user.is_active:
        raise ValidationError(f"Usuario {user_id} is inactive")
    plan = await db.get(Plan, plan_id)
    if plan is None:
        raise NotFound("Plan", plan_id)
    if not plan.is_active:
        raise ValidationError(f"Plan {plan.name} is not available for new subscriptions")

    start = start_date or date.today()

    async def _create() -> Subscription:
        live = await find_live_subscription(db, user_id)
        if live is not None:
            raise InvalidTransition(
                live.status.value, SubscriptionStatus.ACTIVA.value, f"user already has subscription {live.id}"
            )
        if plan.offers_trial:
            status, next_billing = SubscriptionStatus.TRIAL, start + timedelta(days=plan.trial_days)
        else:
            status, next_billing = SubscriptionStatus.ACTIVA, start + timedelta(days=plan.billing_cycle_days)
        subscription = Subscription(
            user_id=user_id,
            plan_id=plan_id,
            status=status,
            start_date=start,
            next_billing_date=next_billing,
            auto_renew=auto_renew,
            effective_price=to_money(plan.monthly_price),
            pending_credit=ZERO,
        )
        await record_creation(db, subscription)
        return subscription

    subscription = await run_with_retry(db, _create, description=f"subscription for user {user_id}")
    logger.info(
        "Created subscription %s (user=%s plan=%s status=%s)",
        subscription.id,
        user_id,
        plan.name,
        subscription.status.value,
    )
    return subscription


# ---------------------------------------------------------------------------
# Plan change
# ---------------------------------------------------------------------------


@dataclass
class PlanChangeResult:
    subscription: Subscription
    new_price: Decimal
    quote: ProrationQuote
    proration_invoice: Invoice | None = None

    @property
    def charge(self) -> Decimal:
        return self.quote.charge

    @property
    def days_remaining(self) -> int:
        return self.quote.days_remaining


async def change_plan(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    new_plan_id: uuid.UUID,
    effective_date: date | None = None,
) -> PlanChangeResult:
    """Switch plans mid-cycle and settle the price difference.

    An upgrade is invoiced immediately as a proration invoice; a downgrade
    becomes credit against the next cycle invoice.
    """
    effective = effective_date or date.today()
    new_plan = await db.get(Plan, new_plan_id)
    if new_plan is None:
        raise NotFound("Plan", new_plan_id)

    async def _change() -> PlanChangeResult:
        subscription = await _load(db, subscription_id)
        if subscription.status.is_terminal:
            raise InvalidTransition(subscription.status.value, "cambio de plan", "subscription is not live")
        if subscription.plan_id == new_plan.id:
            raise NoOpChange(new_plan.id)
        if not new_plan.is_active:
            raise ValidationError(f"Plan {new_plan.name} is not available")

        current_plan = await db.get(Plan, subscription.plan_id)
        cycle_days = current_plan.billing_cycle_days if current_plan else settings.billing_cycle_days
        # Proration compares list prices; effective_price only fixes what renewals charge
        old_price = to_money(current_plan.monthly_price) if current_plan else subscription.effective_price
        new_price = to_money(new_plan.monthly_price)
        remaining = days_remaining_in_cycle(effective, subscription.next_billing_date)
        before = snapshot(subscription)

        if subscription.status == SubscriptionStatus.TRIAL:
            # Nothing was paid for the trial period, so nothing is prorated
            quote = compute_proration(old_price, new_price, 0, cycle_days)
            if not new_plan.offers_trial:
                apply_event(subscription, LifecycleEvent.ACTIVATE)
                subscription.next_billing_date = effective
        else:
            quote = compute_proration(old_price, new_price, remaining, cycle_days)

        subscription.plan_id = new_plan.id
        subscription.effective_price = new_price
        if quote.is_credit:
            subscription.pending_credit = to_money(subscription.pending_credit - quote.charge)
        await record_update(db, subscription, before)

        proration_invoice = None
        if quote.charge > 0:
            proration_invoice = await invoice_service.issue_invoice(
                db,
                subscription,
                subtotal=quote.charge,
                issue_date=effective,
                due_date=effective + timedelta(days=settings.proration_grace_days),
                concept=f"Prorrateo cambio a plan {new_plan.name} ({quote.days_remaining}/{quote.days_in_cycle} días)",
                is_proration=True,
            )
        return PlanChangeResult(
            subscription=subscription, new_price=new_price, quote=quote, proration_invoice=proration_invoice
        )

    result = await run_with_retry(db, _change, description=f"subscription {subscription_id}")
    logger.info(
        "Subscription %s moved to plan %s: new price %s, proration %s",
        subscription_id,
        new_plan.name,
        result.new_price,
        result.charge,
    )
    return result


# ---------------------------------------------------------------------------
# Lifecycle commands
# ---------------------------------------------------------------------------


async def cancel_subscription(
    db: AsyncSession, subscription_id: uuid.UUID, reason: str, now: datetime | None = None
) -> Subscription:
    """Cancel with a mandatory reason; renewal is switched off."""
    if reason is None or not reason.strip():
        raise ValidationError("A cancellation reason is required")

    async def _cancel() -> Subscription:
        subscription = await _load(db, subscription_id)
        before = snapshot(subscription)
        apply_event(subscription, LifecycleEvent.CANCEL)
        subscription.cancellation_reason = reason.strip()
        subscription.cancelled_at = now or utcnow()
        subscription.auto_renew = False
        await record_update(db, subscription, before)
        return subscription

    subscription = await run_with_retry(db, _cancel, description=f"subscription {subscription_id}")
    logger.info("Subscription %s cancelled: %s", subscription_id, reason)
    return subscription


async def reactivate_subscription(
    db: AsyncSession, subscription_id: uuid.UUID, today: date | None = None
) -> Subscription:
    """Bring a CANCELADA subscription back to ACTIVA.

    Allowed within ``reactivation_grace_days`` of the cancellation, with no
    unpaid invoices and no other live subscription for the same user.
    """
    today = today or date.today()

    async def _reactivate() -> Subscription:
        subscription = await _load(db, subscription_id)
        current = subscription.status
        if current != SubscriptionStatus.CANCELADA:
            raise InvalidTransition(current.value, SubscriptionStatus.ACTIVA.value, "only cancelled subscriptions")
        cancelled_on = subscription.cancelled_at.date() if subscription.cancelled_at else today
        if (today - cancelled_on).days > settings.reactivation_grace_days:
            raise InvalidTransition(
                current.value,
                SubscriptionStatus.ACTIVA.value,
                f"reactivation window of {settings.reactivation_grace_days} days has passed",
            )
        if await invoice_service.has_outstanding_invoices(db, subscription.id):
            raise InvalidTransition(current.value, SubscriptionStatus.ACTIVA.value, "unpaid invoices outstanding")
        other = await find_live_subscription(db, subscription.user_id, exclude_id=subscription.id)
        if other is not None:
            raise InvalidTransition(
                current.value, SubscriptionStatus.ACTIVA.value, f"user already has subscription {other.id}"
            )

        plan = await db.get(Plan, subscription.plan_id)
        cycle_days = plan.billing_cycle_days if plan else settings.billing_cycle_days
        before = snapshot(subscription)
        apply_event(subscription, LifecycleEvent.REACTIVATE)
        subscription.cancellation_reason = None
        subscription.cancelled_at = None
        subscription.auto_renew = True
        subscription.next_billing_date = today + timedelta(days=cycle_days)
        await record_update(db, subscription, before)
        return subscription

    subscription = await run_with_retry(db, _reactivate, description=f"subscription {subscription_id}")
    logger.info("Subscription %s reactivated", subscription_id)
    return subscription


async def change_status(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    requested: SubscriptionStatus,
    reason: str | None = None,
    today: date | None = None,
) -> Subscription:
    """Explicit state change, resolved through the transition table.

    A subscription is only marked MOROSA while it has an overdue invoice and
    only settled back to ACTIVA once nothing is left unpaid.
    """
    today = today or date.today()
    subscription = await get_subscription(db, subscription_id)
    event = event_for(subscription.status, requested)
    if event in GUARDED_EVENTS:
        if event == LifecycleEvent.CANCEL:
            return await cancel_subscription(db, subscription_id, reason or "")
        return await reactivate_subscription(db, subscription_id, today=today)

    async def _apply() -> Subscription:
        fresh = await _load(db, subscription_id)
        current = fresh.status
        fresh_event = event_for(current, requested)
        if fresh_event == LifecycleEvent.SETTLE and await invoice_service.has_outstanding_invoices(db, fresh.id):
            raise InvalidTransition(current.value, requested.value, "unpaid invoices outstanding")
        if fresh_event == LifecycleEvent.MARK_DELINQUENT and not await invoice_service.has_overdue_invoices(
            db, fresh.id, today
        ):
            raise InvalidTransition(current.value, requested.value, "no overdue invoice")
        before = snapshot(fresh)
        apply_event(fresh, fresh_event)
        if requested == SubscriptionStatus.EXPIRADA:
            fresh.auto_renew = False
        await record_update(db, fresh, before)
        return fresh

    subscription = await run_with_retry(db, _apply, description=f"subscription {subscription_id}")
    logger.info("Subscription %s moved to %s via %s", subscription_id, requested.value, event.value)
    return subscription


async def set_auto_renew(db: AsyncSession, subscription_id: uuid.UUID, enabled: bool) -> Subscription:
    async def _toggle() -> Subscription:
        subscription = await _load(db, subscription_id)
        if subscription.status.is_terminal:
            raise InvalidTransition(subscription.status.value, "renovación", "subscription is not live")
        before = snapshot(subscription)
        subscription.auto_renew = enabled
        await record_update(db, subscription, before)
        return subscription

    return await run_with_retry(db, _toggle, description=f"subscription {subscription_id}")


async def delete_subscription(db: AsyncSession, subscription_id: uuid.UUID) -> None:
    """Remove a terminal subscription that never produced an invoice."""
    subscription = await get_subscription(db, subscription_id)
    if not subscription.status.is_terminal:
        raise DependencyInUse(f"Suscripcion {subscription_id} is still {subscription.status.value}")
    invoices = await db.execute(
        select(func.count()).select_from(Invoice).where(Invoice.subscription_id == subscription.id)
    )
    if invoices.scalar_one() > 0:
        raise DependencyInUse(f"Suscripcion {subscription_id} has invoices")
    await record_deletion(db, subscription)
    logger.info("Deleted subscription %s", subscription_id)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LifecycleStatistics:
    total: int
    by_status: dict[str, int]
    auto_renew_enabled: int
    monthly_recurring_revenue: Decimal


async def get_lifecycle_statistics(db: AsyncSession) -> LifecycleStatistics:
    """Subscription counts per state and recurring revenue of live ones."""
    by_status = {status.value: 0 for status in SubscriptionStatus}
    result = await db.execute(select(Subscription.status, func.count()).group_by(Subscription.status))
    for status, count in result.all():
        by_status[status.value] = count

    renewing = await db.execute(
        select(func.count())
        .select_from(Subscription)
        .where(Subscription.auto_renew.is_(True), Subscription.status.in_(LIVE_STATUSES))
    )
    revenue = await db.execute(
        select(func.coalesce(func.sum(Subscription.effective_price), 0)).where(
            Subscription.status.in_((SubscriptionStatus.ACTIVA, SubscriptionStatus.MOROSA))
        )
    )
    return LifecycleStatistics(
        total=sum(by_status.values()),
        by_status=by_status,
        auto_renew_enabled=renewing.scalar_one(),
        monthly_recurring_revenue=to_money(revenue.scalar_one()),
    )
