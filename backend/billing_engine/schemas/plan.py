"""Pydantic v2 request/response schemas for plan endpoints."""

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import Field

from billing_engine.models.enums import PlanTier
from billing_engine.schemas.common import ApiModel


class PlanCreate(ApiModel):
    name: str = Field(..., alias="nombre", min_length=1, max_length=120)
    tier: PlanTier = Field(PlanTier.BASIC, alias="tipoPlan")
    monthly_price: Decimal = Field(..., alias="precioMensual", ge=0, max_digits=12, decimal_places=2)
    description: str | None = Field(None, alias="descripcion")
    user_limit: int | None = Field(None, alias="maxUsuarios", ge=1)
    storage_quota_gb: int | None = Field(None, alias="almacenamientoGb", ge=0)
    priority_support: bool = Field(False, alias="soportePrioritario")
    is_active: bool = Field(True, alias="activo")
    trial_days: int = Field(0, alias="diasPrueba", ge=0)
    billing_cycle_days: int | None = Field(None, alias="diasCiclo", ge=1)


class PlanUpdate(ApiModel):
    """Partial update. All fields optional."""

    name: str | None = Field(None, alias="nombre", min_length=1, max_length=120)
    tier: PlanTier | None = Field(None, alias="tipoPlan")
    monthly_price: Decimal | None = Field(None, alias="precioMensual", ge=0, max_digits=12, decimal_places=2)
    description: str | None = Field(None, alias="descripcion")
    user_limit: int | None = Field(None, alias="maxUsuarios", ge=1)
    storage_quota_gb: int | None = Field(None, alias="almacenamientoGb", ge=0)
    priority_support: bool | None = Field(None, alias="soportePrioritario")
    is_active: bool | None = Field(None, alias="activo")
    trial_days: int | None = Field(None, alias="diasPrueba", ge=0)
    billing_cycle_days: int | None = Field(None, alias="diasCiclo", ge=1)


class PlanResponse(ApiModel):
    id: uuid.UUID
    name: str = Field(..., alias="nombre")
    tier: PlanTier = Field(..., alias="tipoPlan")
    monthly_price: Decimal = Field(..., alias="precioMensual")
    description: str | None = Field(None, alias="descripcion")
    user_limit: int | None = Field(None, alias="maxUsuarios")
    storage_quota_gb: int | None = Field(None, alias="almacenamientoGb")
    priority_support: bool = Field(..., alias="soportePrioritario")
    is_active: bool = Field(..., alias="activo")
    trial_days: int = Field(..., alias="diasPrueba")
    billing_cycle_days: int = Field(..., alias="diasCiclo")
    created_at: datetime = Field(..., alias="fechaCreacion")
