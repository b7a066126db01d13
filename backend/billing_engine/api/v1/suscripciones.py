"""Subscriptions API router — creation, queries, plan changes, state changes."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.api.deps import get_db
from billing_engine.models.enums import SubscriptionStatus
from billing_engine.models.subscription import Subscription
from billing_engine.schemas.common import MessageResponse
from billing_engine.schemas.suscripcion import (
    CambioEstadoRequest,
    CambioPlanRequest,
    CambioPlanResponse,
    SuscripcionCreate,
    SuscripcionResponse,
)
from billing_engine.services import subscription_service
from billing_engine.services.subscription_service import PlanChangeResult

router = APIRouter(prefix="/api/suscripciones", tags=["suscripciones"])


@router.get("", response_model=list[SuscripcionResponse], summary="List subscriptions")
async def list_suscripciones(db: AsyncSession = Depends(get_db)) -> list[Subscription]:
    return await subscription_service.list_subscriptions(db)


@router.get(
    "/usuario/{usuario_id}",
    response_model=list[SuscripcionResponse],
    summary="Subscriptions of one user, newest first",
)
async def list_suscripciones_usuario(usuario_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> list[Subscription]:
    return await subscription_service.list_by_user(db, usuario_id)


@router.get("/estado/{estado}", response_model=list[SuscripcionResponse], summary="Subscriptions in one state")
async def list_suscripciones_estado(
    estado: SubscriptionStatus, db: AsyncSession = Depends(get_db)
) -> list[Subscription]:
    return await subscription_service.list_by_status(db, estado)


@router.get("/{suscripcion_id}", response_model=SuscripcionResponse, summary="Get a subscription by ID")
async def get_suscripcion(suscripcion_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Subscription:
    return await subscription_service.get_subscription(db, suscripcion_id)


@router.post(
    "",
    response_model=SuscripcionResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Subscribe a user to a plan",
)
async def create_suscripcion(body: SuscripcionCreate, db: AsyncSession = Depends(get_db)) -> Subscription:
    """Starts in TRIAL when the plan has trial days, otherwise ACTIVA.

    Raises 409 if the user already holds a live subscription.
    """
    return await subscription_service.create_subscription(
        db, body.user_id, body.plan_id, start_date=body.start_date, auto_renew=body.auto_renew
    )


@router.post(
    "/{suscripcion_id}/cambiar-plan",
    response_model=CambioPlanResponse,
    summary="Change plan with proration",
)
async def cambiar_plan(
    suscripcion_id: uuid.UUID,
    body: CambioPlanRequest,
    db: AsyncSession = Depends(get_db),
) -> PlanChangeResult:
    """Positive proration is invoiced at once; negative becomes credit on the next invoice."""
    return await subscription_service.change_plan(db, suscripcion_id, body.plan_id, body.effective_date)


@router.patch("/{suscripcion_id}/estado", response_model=SuscripcionResponse, summary="Request a state change")
async def cambiar_estado(
    suscripcion_id: uuid.UUID,
    body: CambioEstadoRequest,
    db: AsyncSession = Depends(get_db),
) -> Subscription:
    """Resolved through the lifecycle table; CANCELADA needs ``motivo``."""
    return await subscription_service.change_status(db, suscripcion_id, body.status, body.reason)


@router.delete("/{suscripcion_id}", response_model=MessageResponse, summary="Delete a finished subscription")
async def delete_suscripcion(suscripcion_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> dict:
    await subscription_service.delete_subscription(db, suscripcion_id)
    return {"mensaje": "Suscripción eliminada"}
