"""Plan catalog API router."""

import uuid

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.api.deps import get_db
from billing_engine.models.plan import Plan
from billing_engine.schemas.common import MessageResponse
from billing_engine.schemas.plan import PlanCreate, PlanResponse, PlanUpdate
from billing_engine.services import plan_service

router = APIRouter(prefix="/api/planes", tags=["planes"])


@router.get("", response_model=list[PlanResponse], summary="List all plans")
async def list_planes(db: AsyncSession = Depends(get_db)) -> list[Plan]:
    return await plan_service.list_plans(db)


@router.get("/activos", response_model=list[PlanResponse], summary="List plans open for subscription")
async def list_planes_activos(db: AsyncSession = Depends(get_db)) -> list[Plan]:
    return await plan_service.list_plans(db, active_only=True)


@router.get("/{plan_id}", response_model=PlanResponse, summary="Get a plan by ID")
async def get_plan(plan_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Plan:
    return await plan_service.get_plan(db, plan_id)


@router.post("", response_model=PlanResponse, status_code=status.HTTP_201_CREATED, summary="Create a plan")
async def create_plan(body: PlanCreate, db: AsyncSession = Depends(get_db)) -> Plan:
    return await plan_service.create_plan(db, **body.model_dump())


@router.put("/{plan_id}", response_model=PlanResponse, summary="Update a plan")
async def update_plan(plan_id: uuid.UUID, body: PlanUpdate, db: AsyncSession = Depends(get_db)) -> Plan:
    return await plan_service.update_plan(db, plan_id, body.model_dump(exclude_unset=True))


@router.delete("/{plan_id}", response_model=MessageResponse, summary="Delete or deactivate a plan")
async def delete_plan(plan_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> dict:
    deleted = await plan_service.delete_plan(db, plan_id)
    return {"mensaje": "Plan eliminado" if deleted else "Plan desactivado"}
