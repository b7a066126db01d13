"""Invoice issuance, payment, cancellation and reporting."""

import logging
import math
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.billing.lifecycle import LifecycleEvent, apply_event
from billing_engine.billing.money import ZERO, compute_invoice_amounts, to_money
from billing_engine.billing.taxes import get_tax_rate
from billing_engine.database import utcnow
from billing_engine.errors import InvalidTransition, NotFound, ValidationError
from billing_engine.models.enums import OUTSTANDING_INVOICE_STATUSES, InvoiceStatus, SubscriptionStatus
from billing_engine.models.invoice import Invoice
from billing_engine.models.subscription import Subscription
from billing_engine.models.user import User
from billing_engine.services.audit_service import record_creation, record_deletion, record_update, snapshot
from billing_engine.services.concurrency import load_for_update, run_with_retry

logger = logging.getLogger(__name__)

INVOICE_NUMBER_PREFIX = "FAC-"

INVOICE_TRANSITIONS: dict[InvoiceStatus, frozenset[InvoiceStatus]] = {
    InvoiceStatus.PENDIENTE: frozenset({InvoiceStatus.PAGADA, InvoiceStatus.CANCELADA, InvoiceStatus.VENCIDA}),
    InvoiceStatus.VENCIDA: frozenset({InvoiceStatus.PAGADA}),
}

# Client-facing sort keys accepted by the paginated search
SORT_FIELDS = {
    "fechaEmision": Invoice.issue_date,
    "fechaVencimiento": Invoice.due_date,
    "numeroFactura": Invoice.number,
    "total": Invoice.total,
    "subtotal": Invoice.subtotal,
    "estado": Invoice.status,
    "issue_date": Invoice.issue_date,
    "due_date": Invoice.due_date,
    "number": Invoice.number,
    "status": Invoice.status,
}


def format_invoice_number(sequence: int) -> str:
    return f"{INVOICE_NUMBER_PREFIX}{sequence:06d}"


def transition_invoice(invoice: Invoice, target: InvoiceStatus) -> None:
    if target not in INVOICE_TRANSITIONS.get(invoice.status, frozenset()):
        raise InvalidTransition(invoice.status.value, target.value, f"invoice {invoice.number}")
    invoice.status = target


async def _next_sequence(db: AsyncSession) -> int:
    # Concurrent issuers collide on the unique constraint and are retried
    result = await db.execute(select(func.coalesce(func.max(Invoice.sequence), 0)))
    return int(result.scalar_one()) + 1


async def issue_invoice(
    db: AsyncSession,
    subscription: Subscription,
    *,
    subtotal: Decimal,
    issue_date: date,
    due_date: date,
    concept: str | None = None,
    is_proration: bool = False,
) -> Invoice:
    """Create a PENDIENTE invoice taxed at the subscriber's country rate.

    Must run inside the caller's unit of work (the invoice, its number and
    its revision commit or roll back together with the triggering change).
    """
    user = await db.get(User, subscription.user_id)
    if user is None:
        raise NotFound("Usuario", subscription.user_id)

    amounts = compute_invoice_amounts(subtotal, get_tax_rate(user.country))
    sequence = await _next_sequence(db)
    invoice = Invoice(
        number=format_invoice_number(sequence),
        sequence=sequence,
        subscription_id=subscription.id,
        user_id=user.id,
        issue_date=issue_date,
        due_date=due_date,
        subtotal=amounts.subtotal,
        tax_rate=amounts.tax_rate,
        tax_amount=amounts.tax_amount,
        total=amounts.total,
        status=InvoiceStatus.PENDIENTE,
        concept=concept,
        is_proration=is_proration,
    )
    await record_creation(db, invoice)
    logger.info(
        "Issued invoice %s for subscription %s: %s + %s = %s",
        invoice.number,
        subscription.id,
        invoice.subtotal,
        invoice.tax_amount,
        invoice.total,
    )
    return invoice


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------


async def get_invoice(db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
    invoice = await db.get(Invoice, invoice_id)
    if invoice is None:
        raise NotFound("Factura", invoice_id)
    return invoice


async def _list(db: AsyncSession, *criteria) -> list[Invoice]:
    result = await db.execute(select(Invoice).where(*criteria).order_by(Invoice.sequence.desc()))
    return list(result.scalars().all())


async def list_invoices(db: AsyncSession) -> list[Invoice]:
    return await _list(db)


async def list_by_status(db: AsyncSession, status: InvoiceStatus) -> list[Invoice]:
    return await _list(db, Invoice.status == status)


async def list_by_subscription(db: AsyncSession, subscription_id: uuid.UUID) -> list[Invoice]:
    return await _list(db, Invoice.subscription_id == subscription_id)


async def list_pending(db: AsyncSession) -> list[Invoice]:
    return await _list(db, Invoice.status == InvoiceStatus.PENDIENTE)


async def list_overdue(db: AsyncSession, as_of: date | None = None) -> list[Invoice]:
    """VENCIDA invoices plus PENDIENTE ones already past their due date."""
    as_of = as_of or date.today()
    return await _list(
        db,
        (Invoice.status == InvoiceStatus.VENCIDA)
        | ((Invoice.status == InvoiceStatus.PENDIENTE) & (Invoice.due_date < as_of)),
    )


async def has_outstanding_invoices(db: AsyncSession, subscription_id: uuid.UUID) -> bool:
    result = await db.execute(
        select(func.count())
        .select_from(Invoice)
        .where(Invoice.subscription_id == subscription_id, Invoice.status.in_(OUTSTANDING_INVOICE_STATUSES))
    )
    return result.scalar_one() > 0


async def has_overdue_invoices(db: AsyncSession, subscription_id: uuid.UUID, as_of: date | None = None) -> bool:
    """True when the subscription has a VENCIDA invoice or a PENDIENTE one past its due date."""
    as_of = as_of or date.today()
    result = await db.execute(
        select(func.count())
        .select_from(Invoice)
        .where(
            Invoice.subscription_id == subscription_id,
            (Invoice.status == InvoiceStatus.VENCIDA)
            | ((Invoice.status == InvoiceStatus.PENDIENTE) & (Invoice.due_date < as_of)),
        )
    )
    return result.scalar_one() > 0


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


async def pay_invoice(db: AsyncSession, invoice_id: uuid.UUID, paid_at: datetime | None = None) -> Invoice:
    """Mark an invoice PAGADA and settle a delinquent subscription.

    MOROSA / SUSPENDIDA subscriptions return to ACTIVA once nothing else is
    outstanding.
    """

    async def _pay() -> Invoice:
        invoice = await load_for_update(db, Invoice, invoice_id)
        if invoice is None:
            raise NotFound("Factura", invoice_id)
        before = snapshot(invoice)
        transition_invoice(invoice, InvoiceStatus.PAGADA)
        invoice.paid_at = paid_at or utcnow()
        await record_update(db, invoice, before)

        subscription = await load_for_update(db, Subscription, invoice.subscription_id)
        if (
            subscription is not None
            and subscription.status in (SubscriptionStatus.MOROSA, SubscriptionStatus.SUSPENDIDA)
            and not await has_outstanding_invoices(db, subscription.id)
        ):
            sub_before = snapshot(subscription)
            apply_event(subscription, LifecycleEvent.SETTLE)
            await record_update(db, subscription, sub_before)
            logger.info("Subscription %s settled after payment of %s", subscription.id, invoice.number)
        return invoice

    invoice = await run_with_retry(db, _pay, description=f"invoice {invoice_id}")
    logger.info("Invoice %s paid", invoice.number)
    return invoice


async def cancel_invoice(db: AsyncSession, invoice_id: uuid.UUID) -> Invoice:
    async def _cancel() -> Invoice:
        invoice = await load_for_update(db, Invoice, invoice_id)
        if invoice is None:
            raise NotFound("Factura", invoice_id)
        before = snapshot(invoice)
        transition_invoice(invoice, InvoiceStatus.CANCELADA)
        await record_update(db, invoice, before)
        return invoice

    invoice = await run_with_retry(db, _cancel, description=f"invoice {invoice_id}")
    logger.info("Invoice %s cancelled", invoice.number)
    return invoice


async def delete_invoice(db: AsyncSession, invoice_id: uuid.UUID) -> None:
    """Only cancelled invoices can be removed."""
    invoice = await get_invoice(db, invoice_id)
    if invoice.status != InvoiceStatus.CANCELADA:
        raise InvalidTransition(invoice.status.value, "ELIMINADA", "only cancelled invoices can be deleted")
    await record_deletion(db, invoice)
    logger.info("Deleted invoice %s", invoice.number)


# ---------------------------------------------------------------------------
# Filters and reporting
# ---------------------------------------------------------------------------


def _check_range(low, high, label: str) -> None:
    if low is not None and high is not None and low > high:
        raise ValidationError(f"Invalid {label} range: {low} > {high}")


async def filter_by_issue_date(
    db: AsyncSession, start: date, end: date, status: InvoiceStatus | None = None
) -> list[Invoice]:
    _check_range(start, end, "date")
    criteria = [Invoice.issue_date >= start, Invoice.issue_date <= end]
    if status is not None:
        criteria.append(Invoice.status == status)
    return await _list(db, *criteria)


async def filter_by_total(
    db: AsyncSession, minimum: Decimal, maximum: Decimal, status: InvoiceStatus | None = None
) -> list[Invoice]:
    _check_range(minimum, maximum, "amount")
    criteria = [Invoice.total >= minimum, Invoice.total <= maximum]
    if status is not None:
        criteria.append(Invoice.status == status)
    return await _list(db, *criteria)


@dataclass
class InvoicePage:
    items: list[Invoice]
    total_elements: int
    page: int
    size: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_elements / self.size) if self.size else 0


async def search_invoices(
    db: AsyncSession,
    *,
    status: InvoiceStatus | None = None,
    subscription_id: uuid.UUID | None = None,
    user_id: uuid.UUID | None = None,
    start: date | None = None,
    end: date | None = None,
    minimum: Decimal | None = None,
    maximum: Decimal | None = None,
    page: int = 0,
    size: int = 20,
    sort_by: str = "fechaEmision",
    sort_dir: str = "desc",
) -> InvoicePage:
    """Combined filter with zero-based pagination."""
    if page < 0 or size < 1:
        raise ValidationError("page must be >= 0 and size >= 1")
    column = SORT_FIELDS.get(sort_by)
    if column is None:
        raise ValidationError(f"Unsupported sort field: {sort_by}")
    if sort_dir.lower() not in ("asc", "desc"):
        raise ValidationError(f"Unsupported sort direction: {sort_dir}")
    _check_range(start, end, "date")
    _check_range(minimum, maximum, "amount")

    criteria = []
    if status is not None:
        criteria.append(Invoice.status == status)
    if subscription_id is not None:
        criteria.append(Invoice.subscription_id == subscription_id)
    if user_id is not None:
        criteria.append(Invoice.user_id == user_id)
    if start is not None:
        criteria.append(Invoice.issue_date >= start)
    if end is not None:
        criteria.append(Invoice.issue_date <= end)
    if minimum is not None:
        criteria.append(Invoice.total >= minimum)
    if maximum is not None:
        criteria.append(Invoice.total <= maximum)

    total = (await db.execute(select(func.count()).select_from(Invoice).where(*criteria))).scalar_one()

    order = column.asc() if sort_dir.lower() == "asc" else column.desc()
    result = await db.execute(
        select(Invoice).where(*criteria).order_by(order, Invoice.sequence.desc()).offset(page * size).limit(size)
    )
    return InvoicePage(items=list(result.scalars().all()), total_elements=total, page=page, size=size)


@dataclass(frozen=True)
class StatusSummary:
    count: int
    total: Decimal


async def summary_by_status(db: AsyncSession) -> dict[InvoiceStatus, StatusSummary]:
    """Count and summed total per invoice state, every state present."""
    summary = {status: StatusSummary(count=0, total=ZERO) for status in InvoiceStatus}
    result = await db.execute(
        select(Invoice.status, func.count(), func.coalesce(func.sum(Invoice.total), 0)).group_by(Invoice.status)
    )
    for status, count, total in result.all():
        summary[status] = StatusSummary(count=count, total=to_money(total))
    return summary


@dataclass(frozen=True)
class InvoiceStatistics:
    total_invoices: int
    by_status: dict[str, int]
    total_billed: Decimal
    total_collected: Decimal
    total_outstanding: Decimal
    overdue_count: int


async def get_statistics(db: AsyncSession, as_of: date | None = None) -> InvoiceStatistics:
    per_status = await summary_by_status(db)
    overdue = await list_overdue(db, as_of)
    billed = sum(
        (s.total for status, s in per_status.items() if status != InvoiceStatus.CANCELADA), start=ZERO
    )
    outstanding = sum((per_status[s].total for s in OUTSTANDING_INVOICE_STATUSES), start=ZERO)
    return InvoiceStatistics(
        total_invoices=sum(s.count for s in per_status.values()),
        by_status={status.value: s.count for status, s in per_status.items()},
        total_billed=to_money(billed),
        total_collected=per_status[InvoiceStatus.PAGADA].total,
        total_outstanding=to_money(outstanding),
        overdue_count=len(overdue),
    )


@dataclass(frozen=True)
class PeriodTotals:
    start: date
    end: date
    invoice_count: int
    subtotal: Decimal
    tax_amount: Decimal
    total: Decimal
    collected: Decimal


async def totals_for_period(db: AsyncSession, start: date, end: date) -> PeriodTotals:
    """Sums over non-cancelled invoices issued between ``start`` and ``end`` inclusive."""
    _check_range(start, end, "date")
    in_period = (
        Invoice.issue_date >= start,
        Invoice.issue_date <= end,
        Invoice.status != InvoiceStatus.CANCELADA,
    )
    row = (
        await db.execute(
            select(
                func.count(),
                func.coalesce(func.sum(Invoice.subtotal), 0),
                func.coalesce(func.sum(Invoice.tax_amount), 0),
                func.coalesce(func.sum(Invoice.total), 0),
            ).where(*in_period)
        )
    ).one()
    collected = (
        await db.execute(
            select(func.coalesce(func.sum(Invoice.total), 0)).where(
                *in_period, Invoice.status == InvoiceStatus.PAGADA
            )
        )
    ).scalar_one()
    return PeriodTotals(
        start=start,
        end=end,
        invoice_count=row[0],
        subtotal=to_money(row[1]),
        tax_amount=to_money(row[2]),
        total=to_money(row[3]),
        collected=to_money(collected),
    )
