"""Subscription lifecycle API router — cancel, reactivate, renewal toggle."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.api.deps import get_db
from billing_engine.models.subscription import Subscription
from billing_engine.schemas.suscripcion import EstadisticasCicloVida, SuscripcionResponse
from billing_engine.services import subscription_service
from billing_engine.services.subscription_service import LifecycleStatistics

router = APIRouter(prefix="/api/suscripciones/ciclo-vida", tags=["ciclo-vida"])


@router.get("/estadisticas", response_model=EstadisticasCicloVida, summary="Subscription counts per state")
async def estadisticas(db: AsyncSession = Depends(get_db)) -> LifecycleStatistics:
    return await subscription_service.get_lifecycle_statistics(db)


@router.post("/{suscripcion_id}/cancelar", response_model=SuscripcionResponse, summary="Cancel a subscription")
async def cancelar(
    suscripcion_id: uuid.UUID,
    motivo: str = Query(..., min_length=1, max_length=500, description="Cancellation reason"),
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    return await subscription_service.cancel_subscription(db, suscripcion_id, motivo)


@router.post("/{suscripcion_id}/reactivar", response_model=SuscripcionResponse, summary="Reactivate a subscription")
async def reactivar(suscripcion_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Subscription:
    """Raises 409 outside the grace window or with unpaid invoices."""
    return await subscription_service.reactivate_subscription(db, suscripcion_id)


@router.post(
    "/{suscripcion_id}/toggle-renovacion",
    response_model=SuscripcionResponse,
    summary="Turn automatic renewal on or off",
)
async def toggle_renovacion(
    suscripcion_id: uuid.UUID,
    renovacion_automatica: bool = Query(..., alias="renovacionAutomatica"),
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    return await subscription_service.set_auto_renew(db, suscripcion_id, renovacion_automatica)
