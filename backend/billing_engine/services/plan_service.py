"""Plan catalog management."""

import logging
import uuid
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.billing.money import to_money
from billing_engine.config import settings
from billing_engine.errors import DependencyInUse, NotFound, ValidationError
from billing_engine.models.enums import LIVE_STATUSES, PlanTier
from billing_engine.models.plan import Plan
from billing_engine.models.subscription import Subscription
from billing_engine.services.audit_service import record_creation, record_deletion, record_update, snapshot

logger = logging.getLogger(__name__)

_UPDATABLE_FIELDS = (
    "name",
    "tier",
    "monthly_price",
    "description",
    "user_limit",
    "storage_quota_gb",
    "priority_support",
    "is_active",
    "trial_days",
    "billing_cycle_days",
)
# Columns an explicit null clears; None on any other field is rejected
_CLEARABLE_FIELDS = frozenset({"description", "user_limit", "storage_quota_gb"})


def _check_terms(price: Decimal | None, trial_days: int | None, cycle_days: int | None) -> None:
    if price is not None and Decimal(price) < 0:
        raise ValidationError("Plan price cannot be negative")
    if trial_days is not None and trial_days < 0:
        raise ValidationError("Trial days cannot be negative")
    if cycle_days is not None and cycle_days <= 0:
        raise ValidationError("Billing cycle must be at least one day")


def _reject_nulls(changes: dict, fields, clearable) -> None:
    for field in fields:
        if field in changes and changes[field] is None and field not in clearable:
            raise ValidationError(f"Field {field} cannot be cleared")


async def _name_taken(db: AsyncSession, name: str, exclude_id: uuid.UUID | None = None) -> bool:
    query = select(Plan.id).where(func.lower(Plan.name) == name.lower())
    if exclude_id is not None:
        query = query.where(Plan.id != exclude_id)
    return (await db.execute(query)).first() is not None


async def create_plan(
    db: AsyncSession,
    *,
    name: str,
    tier: PlanTier,
    monthly_price: Decimal,
    description: str | None = None,
    user_limit: int | None = None,
    storage_quota_gb: int | None = None,
    priority_support: bool = False,
    is_active: bool = True,
    trial_days: int = 0,
    billing_cycle_days: int | None = None,
) -> Plan:
    cycle_days = billing_cycle_days or settings.billing_cycle_days
    _check_terms(monthly_price, trial_days, cycle_days)
    if await _name_taken(db, name):
        raise ValidationError(f"Plan name already exists: {name}")

    plan = Plan(
        name=name.strip(),
        tier=tier,
        monthly_price=to_money(monthly_price),
        description=description,
        user_limit=user_limit,
        storage_quota_gb=storage_quota_gb,
        priority_support=priority_support,
        is_active=is_active,
        trial_days=trial_days,
        billing_cycle_days=cycle_days,
    )
    await record_creation(db, plan)
    logger.info("Created plan %s (%s, %s)", plan.id, plan.name, plan.monthly_price)
    return plan


async def get_plan(db: AsyncSession, plan_id: uuid.UUID) -> Plan:
    plan = await db.get(Plan, plan_id)
    if plan is None:
        raise NotFound("Plan", plan_id)
    return plan


async def list_plans(db: AsyncSession, active_only: bool = False) -> list[Plan]:
    query = select(Plan).order_by(Plan.monthly_price.asc(), Plan.name.asc())
    if active_only:
        query = query.where(Plan.is_active.is_(True))
    result = await db.execute(query)
    return list(result.scalars().all())


async def update_plan(db: AsyncSession, plan_id: uuid.UUID, changes: dict) -> Plan:
    """Partial update. Price changes apply to new subscriptions only.

    Only keys present in ``changes`` are touched; an explicit ``None`` clears
    an optional field.
    """
    plan = await get_plan(db, plan_id)
    _reject_nulls(changes, _UPDATABLE_FIELDS, _CLEARABLE_FIELDS)
    _check_terms(changes.get("monthly_price"), changes.get("trial_days"), changes.get("billing_cycle_days"))
    if changes.get("name") and await _name_taken(db, changes["name"], exclude_id=plan.id):
        raise ValidationError(f"Plan name already exists: {changes['name']}")

    before = snapshot(plan)
    for field in _UPDATABLE_FIELDS:
        if field in changes:
            value = changes[field]
            if field == "monthly_price":
                value = to_money(value)
            setattr(plan, field, value)
    await record_update(db, plan, before)
    return plan


async def delete_plan(db: AsyncSession, plan_id: uuid.UUID) -> bool:
    """Delete a plan, or deactivate it when subscriptions have used it.

    Returns ``True`` on physical deletion.
    """
    plan = await get_plan(db, plan_id)

    live = await db.execute(
        select(func.count())
        .select_from(Subscription)
        .where(Subscription.plan_id == plan.id, Subscription.status.in_(LIVE_STATUSES))
    )
    if live.scalar_one() > 0:
        raise DependencyInUse(f"Plan {plan.id} is used by a live subscription")

    historic = await db.execute(
        select(func.count()).select_from(Subscription).where(Subscription.plan_id == plan.id)
    )
    if historic.scalar_one() > 0:
        before = snapshot(plan)
        plan.is_active = False
        await record_update(db, plan, before)
        logger.info("Deactivated plan %s (historic subscriptions)", plan.id)
        return False

    await record_deletion(db, plan)
    logger.info("Deleted plan %s", plan_id)
    return True
