"""Audit trail API router (read-only)."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.api.deps import get_db
from billing_engine.models.audit import AuditRevision
from billing_engine.models.enums import EntityKind
from billing_engine.schemas.auditoria import ComparacionRevisiones, EstadisticasAuditoria, RevisionResponse
from billing_engine.services import audit_service
from billing_engine.services.audit_service import AuditStatistics, RevisionComparison

router = APIRouter(prefix="/api/auditoria", tags=["auditoria"])


@router.get("/recientes", response_model=list[RevisionResponse], summary="Latest changes across all entities")
async def recientes(
    limite: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[AuditRevision]:
    return await audit_service.get_recent_revisions(db, limite)


@router.get("/suscripciones", response_model=list[RevisionResponse], summary="Subscription history")
async def historial_suscripciones(
    limite: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[AuditRevision]:
    return await audit_service.get_revisions_by_kind(db, EntityKind.SUSCRIPCION, limite)


@router.get("/facturas", response_model=list[RevisionResponse], summary="Invoice history")
async def historial_facturas(
    limite: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[AuditRevision]:
    return await audit_service.get_revisions_by_kind(db, EntityKind.FACTURA, limite)


@router.get("/usuarios", response_model=list[RevisionResponse], summary="User history")
async def historial_usuarios(
    limite: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[AuditRevision]:
    return await audit_service.get_revisions_by_kind(db, EntityKind.USUARIO, limite)


@router.get("/planes", response_model=list[RevisionResponse], summary="Plan history")
async def historial_planes(
    limite: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
) -> list[AuditRevision]:
    return await audit_service.get_revisions_by_kind(db, EntityKind.PLAN, limite)


@router.get(
    "/entidad/{tipo}/{entidad_id}",
    response_model=list[RevisionResponse],
    summary="Full history of one entity, oldest first",
)
async def historial_entidad(
    tipo: str, entidad_id: uuid.UUID, db: AsyncSession = Depends(get_db)
) -> list[AuditRevision]:
    return await audit_service.get_entity_history(db, audit_service.parse_entity_kind(tipo), entidad_id)


@router.get("/comparar", response_model=ComparacionRevisiones, summary="Field-level diff between two revisions")
async def comparar(
    tipo_entidad: str = Query(..., alias="tipoEntidad"),
    entity_id: uuid.UUID = Query(..., alias="entityId"),
    revision_anterior: int = Query(..., alias="revisionAnterior"),
    revision_actual: int = Query(..., alias="revisionActual"),
    db: AsyncSession = Depends(get_db),
) -> RevisionComparison:
    return await audit_service.compare_revisions(
        db, audit_service.parse_entity_kind(tipo_entidad), entity_id, revision_anterior, revision_actual
    )


@router.get("/estadisticas", response_model=EstadisticasAuditoria, summary="Revision counts")
async def estadisticas(db: AsyncSession = Depends(get_db)) -> AuditStatistics:
    return await audit_service.get_statistics(db)
