"""Audit recorder — one immutable revision per entity mutation, plus queries.

Snapshots are built from an explicit field list per entity kind so the stored
format does not depend on whatever attributes a model happens to carry.
"""

import enum
import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.errors import NotFound, ValidationError
from billing_engine.models.audit import AuditRevision
from billing_engine.models.enums import AuditOperation, EntityKind
from billing_engine.models.invoice import Invoice
from billing_engine.models.plan import Plan
from billing_engine.models.subscription import Subscription
from billing_engine.models.user import User

logger = logging.getLogger(__name__)

AuditedEntity = User | Plan | Subscription | Invoice

# The credential hash is deliberately absent from user snapshots.
SNAPSHOT_FIELDS: dict[EntityKind, tuple[str, ...]] = {
    EntityKind.USUARIO: ("id", "email", "name", "role", "is_active", "country", "created_at", "updated_at"),
    EntityKind.PLAN: (
        "id",
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
        "created_at",
        "updated_at",
    ),
    EntityKind.SUSCRIPCION: (
        "id",
        "user_id",
        "plan_id",
        "status",
        "start_date",
        "next_billing_date",
        "auto_renew",
        "effective_price",
        "pending_credit",
        "cancellation_reason",
        "cancelled_at",
        "version",
        "created_at",
        "updated_at",
    ),
    EntityKind.FACTURA: (
        "id",
        "number",
        "subscription_id",
        "user_id",
        "issue_date",
        "due_date",
        "subtotal",
        "tax_rate",
        "tax_amount",
        "total",
        "status",
        "paid_at",
        "concept",
        "is_proration",
        "version",
        "created_at",
        "updated_at",
    ),
}

_KIND_BY_MODEL: dict[type, EntityKind] = {
    User: EntityKind.USUARIO,
    Plan: EntityKind.PLAN,
    Subscription: EntityKind.SUSCRIPCION,
    Invoice: EntityKind.FACTURA,
}

# Fields that change on every write and would make every diff noisy
_VOLATILE_FIELDS = frozenset({"updated_at", "version"})


def entity_kind(entity: AuditedEntity) -> EntityKind:
    return _KIND_BY_MODEL[type(entity)]


def parse_entity_kind(value: str) -> EntityKind:
    """Accept ``Suscripcion``, ``suscripcion`` or ``SUSCRIPCION``."""
    for kind in EntityKind:
        if value.lower() in (kind.value.lower(), kind.name.lower()):
            return kind
    raise ValidationError(f"Unknown audited entity type: {value}")


def _json_value(value: Any) -> Any:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, enum.Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, uuid.UUID):
        return str(value)
    return str(value)


def snapshot(entity: AuditedEntity) -> dict[str, Any]:
    """Field name -> JSON-safe value for every audited field of ``entity``."""
    fields = SNAPSHOT_FIELDS[entity_kind(entity)]
    return {name: _json_value(getattr(entity, name)) for name in fields}


def _has_changes(before: dict[str, Any], after: dict[str, Any]) -> bool:
    return any(before.get(k) != after.get(k) for k in after if k not in _VOLATILE_FIELDS)


async def _append(
    db: AsyncSession,
    entity: AuditedEntity,
    operation: AuditOperation,
    data: dict[str, Any],
) -> AuditRevision:
    revision = AuditRevision(
        entity_type=entity_kind(entity),
        entity_id=entity.id,
        operation=operation,
        snapshot=data,
    )
    db.add(revision)
    # Flushing here is what allocates the global revision number; any failure
    # propagates and rolls back the entity change with it.
    await db.flush()
    logger.debug(
        "Revision %s: %s %s %s",
        revision.revision,
        operation.value,
        revision.entity_type.value,
        revision.entity_id,
    )
    return revision


async def record_creation(db: AsyncSession, entity: AuditedEntity) -> AuditRevision:
    """Persist a new entity together with its CREACION revision."""
    db.add(entity)
    await db.flush()
    return await _append(db, entity, AuditOperation.CREACION, snapshot(entity))


async def record_update(
    db: AsyncSession,
    entity: AuditedEntity,
    before: dict[str, Any],
) -> AuditRevision | None:
    """Flush pending changes on ``entity`` and append a MODIFICACION revision.

    ``before`` is the snapshot taken before mutating. Returns ``None`` (and
    writes nothing) when no audited field changed.
    """
    if not _has_changes(before, snapshot(entity)):
        return None
    db.add(entity)
    await db.flush()
    return await _append(db, entity, AuditOperation.MODIFICACION, snapshot(entity))


async def record_deletion(db: AsyncSession, entity: AuditedEntity) -> AuditRevision:
    """Delete ``entity`` and append an ELIMINACION revision of its last state."""
    data = snapshot(entity)
    await db.delete(entity)
    await db.flush()
    return await _append(db, entity, AuditOperation.ELIMINACION, data)


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


async def get_recent_revisions(db: AsyncSession, limit: int = 50) -> list[AuditRevision]:
    """Most recent revisions across all entity kinds, newest first."""
    result = await db.execute(select(AuditRevision).order_by(AuditRevision.revision.desc()).limit(limit))
    return list(result.scalars().all())


async def get_revisions_by_kind(db: AsyncSession, kind: EntityKind, limit: int = 50) -> list[AuditRevision]:
    result = await db.execute(
        select(AuditRevision)
        .where(AuditRevision.entity_type == kind)
        .order_by(AuditRevision.revision.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


async def get_entity_history(db: AsyncSession, kind: EntityKind, entity_id: uuid.UUID) -> list[AuditRevision]:
    """Full history of one entity, oldest first."""
    result = await db.execute(
        select(AuditRevision)
        .where(AuditRevision.entity_type == kind, AuditRevision.entity_id == entity_id)
        .order_by(AuditRevision.revision.asc())
    )
    return list(result.scalars().all())


@dataclass(frozen=True)
class FieldChange:
    field: str
    old_value: Any
    new_value: Any


@dataclass(frozen=True)
class RevisionComparison:
    entity_type: EntityKind
    entity_id: uuid.UUID
    old_revision: int
    new_revision: int
    changes: list[FieldChange]


async def _get_revision(db: AsyncSession, kind: EntityKind, entity_id: uuid.UUID, number: int) -> AuditRevision:
    result = await db.execute(
        select(AuditRevision).where(
            AuditRevision.revision == number,
            AuditRevision.entity_type == kind,
            AuditRevision.entity_id == entity_id,
        )
    )
    revision = result.scalar_one_or_none()
    if revision is None:
        raise NotFound(f"Revision of {kind.value} {entity_id}", number)
    return revision


async def compare_revisions(
    db: AsyncSession,
    kind: EntityKind,
    entity_id: uuid.UUID,
    old_revision: int,
    new_revision: int,
) -> RevisionComparison:
    """Field-level diff between two revisions of the same entity."""
    old = await _get_revision(db, kind, entity_id, old_revision)
    new = await _get_revision(db, kind, entity_id, new_revision)

    changes = [
        FieldChange(field=name, old_value=old.snapshot.get(name), new_value=new.snapshot.get(name))
        for name in SNAPSHOT_FIELDS[kind]
        if old.snapshot.get(name) != new.snapshot.get(name)
    ]
    return RevisionComparison(
        entity_type=kind,
        entity_id=entity_id,
        old_revision=old_revision,
        new_revision=new_revision,
        changes=changes,
    )


@dataclass(frozen=True)
class AuditStatistics:
    total: int
    by_entity: dict[str, int]
    by_operation: dict[str, int]


async def get_statistics(db: AsyncSession) -> AuditStatistics:
    """Revision counts grouped by entity kind and by operation."""
    by_entity = {kind.value: 0 for kind in EntityKind}
    result = await db.execute(
        select(AuditRevision.entity_type, func.count()).group_by(AuditRevision.entity_type)
    )
    for kind, count in result.all():
        by_entity[kind.value] = count

    by_operation = {op.value: 0 for op in AuditOperation}
    result = await db.execute(select(AuditRevision.operation, func.count()).group_by(AuditRevision.operation))
    for operation, count in result.all():
        by_operation[operation.value] = count

    return AuditStatistics(total=sum(by_entity.values()), by_entity=by_entity, by_operation=by_operation)
