"""Periodic billing run: renewals, overdue detection and delinquency escalation.

Each subscription (and each overdue invoice) is processed in its own
savepoint and committed on its own, so a failure or an abort leaves every
already-processed subscription intact and a re-run with the same date picks
up exactly where the previous one stopped.
"""

import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import date, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.billing.lifecycle import LifecycleEvent, apply_event
from billing_engine.billing.money import ZERO, to_money
from billing_engine.config import settings
from billing_engine.database import utcnow
from billing_engine.errors import ProcessingError
from billing_engine.models.enums import OUTSTANDING_INVOICE_STATUSES, InvoiceStatus, SubscriptionStatus
from billing_engine.models.invoice import Invoice
from billing_engine.models.plan import Plan
from billing_engine.models.subscription import Subscription
from billing_engine.services import invoice_service
from billing_engine.services.audit_service import record_update, snapshot
from billing_engine.services.concurrency import load_for_update, run_with_retry

logger = logging.getLogger(__name__)

BILLABLE_STATUSES = (SubscriptionStatus.TRIAL, SubscriptionStatus.ACTIVA, SubscriptionStatus.MOROSA)

UNPAID_EXPIRY_REASON = "Expirada automáticamente por impago prolongado"


@dataclass
class BillingRunResult:
    """What one run did. Filled in progressively so an aborted run still reports."""

    as_of: date
    invoices_created: list[Invoice] = field(default_factory=list)
    subscriptions_activated: list[uuid.UUID] = field(default_factory=list)
    subscriptions_expired: list[uuid.UUID] = field(default_factory=list)
    invoices_overdue: list[uuid.UUID] = field(default_factory=list)
    subscriptions_delinquent: list[uuid.UUID] = field(default_factory=list)
    subscriptions_suspended: list[uuid.UUID] = field(default_factory=list)
    errors: list[ProcessingError] = field(default_factory=list)
    processed: int = 0
    aborted: bool = False

    def merge(self, other: "BillingRunResult") -> None:
        self.invoices_created.extend(other.invoices_created)
        self.subscriptions_activated.extend(other.subscriptions_activated)
        self.subscriptions_expired.extend(other.subscriptions_expired)
        self.invoices_overdue.extend(other.invoices_overdue)
        self.subscriptions_delinquent.extend(other.subscriptions_delinquent)
        self.subscriptions_suspended.extend(other.subscriptions_suspended)

    @property
    def succeeded(self) -> bool:
        return not self.errors and not self.aborted


async def _bill_subscription(db: AsyncSession, subscription_id: uuid.UUID, as_of: date, result: BillingRunResult):
    subscription = await load_for_update(db, Subscription, subscription_id)
    # Another writer may have moved it since the candidate query
    if (
        subscription is None
        or subscription.status not in BILLABLE_STATUSES
        or subscription.next_billing_date > as_of
    ):
        return

    before = snapshot(subscription)

    if not subscription.auto_renew:
        apply_event(subscription, LifecycleEvent.EXPIRE)
        await record_update(db, subscription, before)
        result.subscriptions_expired.append(subscription.id)
        logger.info("Subscription %s expired (renewal off)", subscription.id)
        return

    if subscription.status == SubscriptionStatus.TRIAL:
        apply_event(subscription, LifecycleEvent.ACTIVATE)
        result.subscriptions_activated.append(subscription.id)
        logger.info("Subscription %s trial ended, now ACTIVA", subscription.id)

    plan = await db.get(Plan, subscription.plan_id)
    due_date = as_of + timedelta(days=settings.grace_period_days)

    # Catch up every elapsed cycle
    while subscription.next_billing_date <= as_of:
        period_start = subscription.next_billing_date
        credit = min(subscription.pending_credit, subscription.effective_price)
        subtotal = to_money(subscription.effective_price - credit)
        subscription.pending_credit = to_money(subscription.pending_credit - credit)
        subscription.next_billing_date = period_start + timedelta(days=plan.billing_cycle_days)

        if subtotal > ZERO:
            invoice = await invoice_service.issue_invoice(
                db,
                subscription,
                subtotal=subtotal,
                issue_date=as_of,
                due_date=due_date,
                concept=f"Suscripción {plan.name} {period_start.isoformat()} - "
                f"{subscription.next_billing_date.isoformat()}",
            )
            result.invoices_created.append(invoice)

    await record_update(db, subscription, before)


async def _mark_overdue(db: AsyncSession, invoice_id: uuid.UUID, as_of: date, result: BillingRunResult):
    invoice = await load_for_update(db, Invoice, invoice_id)
    if invoice is None or invoice.status != InvoiceStatus.PENDIENTE or invoice.due_date >= as_of:
        return

    before = snapshot(invoice)
    invoice_service.transition_invoice(invoice, InvoiceStatus.VENCIDA)
    await record_update(db, invoice, before)
    result.invoices_overdue.append(invoice.id)

    subscription = await load_for_update(db, Subscription, invoice.subscription_id)
    if subscription is not None and subscription.status == SubscriptionStatus.ACTIVA:
        sub_before = snapshot(subscription)
        apply_event(subscription, LifecycleEvent.MARK_DELINQUENT)
        await record_update(db, subscription, sub_before)
        result.subscriptions_delinquent.append(subscription.id)
        logger.info("Subscription %s delinquent (invoice %s overdue)", subscription.id, invoice.number)


_ESCALATION: dict[SubscriptionStatus, tuple[LifecycleEvent, str]] = {
    SubscriptionStatus.MOROSA: (LifecycleEvent.SUSPEND, "suspension_threshold_days"),
    SubscriptionStatus.SUSPENDIDA: (LifecycleEvent.EXPIRE, "expiration_threshold_days"),
}


async def _escalate(db: AsyncSession, subscription_id: uuid.UUID, as_of: date, result: BillingRunResult):
    subscription = await load_for_update(db, Subscription, subscription_id)
    if subscription is None:
        return

    before = snapshot(subscription)
    # Walk MOROSA -> SUSPENDIDA -> EXPIRADA as far as the unpaid age allows,
    # so a second run for the same date finds nothing left to do.
    while subscription.status in _ESCALATION:
        event, setting = _ESCALATION[subscription.status]
        threshold = getattr(settings, setting)
        unpaid = await db.execute(
            select(Invoice.id)
            .where(
                Invoice.subscription_id == subscription.id,
                Invoice.status.in_(OUTSTANDING_INVOICE_STATUSES),
                Invoice.due_date < as_of - timedelta(days=threshold),
            )
            .limit(1)
        )
        if unpaid.first() is None:
            break
        apply_event(subscription, event)
        if event == LifecycleEvent.EXPIRE:
            subscription.auto_renew = False
            subscription.cancelled_at = utcnow()
            subscription.cancellation_reason = UNPAID_EXPIRY_REASON
            result.subscriptions_expired.append(subscription.id)
        else:
            result.subscriptions_suspended.append(subscription.id)
        logger.warning(
            "Subscription %s escalated to %s (unpaid for more than %d days)",
            subscription.id,
            subscription.status.value,
            threshold,
        )

    await record_update(db, subscription, before)


async def _ids(db: AsyncSession, query) -> list[uuid.UUID]:
    return list((await db.execute(query)).scalars().all())


async def run_billing_cycle(
    db: AsyncSession,
    as_of: date | None = None,
    *,
    should_stop: Callable[[], bool] | None = None,
    result: BillingRunResult | None = None,
    commit: bool = True,
) -> BillingRunResult:
    """Run every billing step for ``as_of`` (today by default).

    ``should_stop`` is polled between units of work; when it returns true the
    run ends early with ``aborted`` set. Passing ``result`` lets the caller
    observe progress even if the run is cancelled.
    """
    as_of = as_of or date.today()
    result = result or BillingRunResult(as_of=as_of)
    logger.info("Billing run started for %s", as_of.isoformat())

    async def _each(ids: list[uuid.UUID], step: Callable[..., Awaitable[None]], label: str) -> bool:
        for entity_id in ids:
            if should_stop is not None and should_stop():
                result.aborted = True
                logger.warning("Billing run for %s aborted during %s", as_of.isoformat(), label)
                return False

            # A fresh scratch result per attempt, so a retried attempt is not counted twice
            async def _attempt(entity_id: uuid.UUID = entity_id) -> BillingRunResult:
                scratch = BillingRunResult(as_of=as_of)
                await step(db, entity_id, as_of, scratch)
                return scratch

            try:
                scratch = await run_with_retry(db, _attempt, description=f"{label} {entity_id}")
            except Exception as e:
                logger.exception("Billing step %s failed for %s", label, entity_id)
                result.errors.append(ProcessingError(entity_id, e, label))
                continue
            if commit:
                await db.commit()
            result.merge(scratch)
            result.processed += 1
        return True

    due = await _ids(
        db,
        select(Subscription.id)
        .where(Subscription.status.in_(BILLABLE_STATUSES), Subscription.next_billing_date <= as_of)
        .order_by(Subscription.next_billing_date.asc()),
    )
    if not await _each(due, _bill_subscription, "subscription"):
        return result

    overdue = await _ids(
        db,
        select(Invoice.id)
        .where(Invoice.status == InvoiceStatus.PENDIENTE, Invoice.due_date < as_of)
        .order_by(Invoice.due_date.asc()),
    )
    if not await _each(overdue, _mark_overdue, "invoice"):
        return result

    delinquent = await _ids(
        db,
        select(Subscription.id).where(
            Subscription.status.in_((SubscriptionStatus.MOROSA, SubscriptionStatus.SUSPENDIDA))
        ),
    )
    await _each(delinquent, _escalate, "escalation")

    logger.info(
        "Billing run for %s finished: %d invoices, %d expired, %d overdue, %d errors",
        as_of.isoformat(),
        len(result.invoices_created),
        len(result.subscriptions_expired),
        len(result.invoices_overdue),
        len(result.errors),
    )
    return result
