"""Pydantic v2 request/response schemas for subscription endpoints."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from billing_engine.models.enums import SubscriptionStatus
from billing_engine.schemas.common import ApiModel
from billing_engine.schemas.factura import FacturaResponse


class SuscripcionCreate(ApiModel):
    user_id: uuid.UUID = Field(..., alias="usuarioId")
    plan_id: uuid.UUID = Field(..., alias="planId")
    start_date: date | None = Field(None, alias="fechaInicio")
    auto_renew: bool = Field(True, alias="renovacionAutomatica")


class CambioPlanRequest(ApiModel):
    plan_id: uuid.UUID = Field(..., alias="planId")
    effective_date: date | None = Field(None, alias="fechaEfectiva")


class CambioEstadoRequest(ApiModel):
    status: SubscriptionStatus = Field(..., alias="estado")
    reason: str | None = Field(None, alias="motivo", max_length=500)


class SuscripcionResponse(ApiModel):
    id: uuid.UUID
    user_id: uuid.UUID = Field(..., alias="usuarioId")
    plan_id: uuid.UUID = Field(..., alias="planId")
    status: SubscriptionStatus = Field(..., alias="estado")
    start_date: date = Field(..., alias="fechaInicio")
    next_billing_date: date = Field(..., alias="proximaFacturacion")
    auto_renew: bool = Field(..., alias="renovacionAutomatica")
    effective_price: Decimal = Field(..., alias="precioActual")
    pending_credit: Decimal = Field(..., alias="creditoPendiente")
    cancellation_reason: str | None = Field(None, alias="motivoCancelacion")
    cancelled_at: datetime | None = Field(None, alias="fechaCancelacion")
    version: int
    created_at: datetime = Field(..., alias="fechaCreacion")


class CambioPlanResponse(ApiModel):
    subscription: SuscripcionResponse = Field(..., alias="suscripcion")
    new_price: Decimal = Field(..., alias="nuevoPrecio")
    charge: Decimal = Field(..., alias="cargoProrrateo")
    days_remaining: int = Field(..., alias="diasRestantes")
    proration_invoice: FacturaResponse | None = Field(None, alias="facturaProrrateo")


class EstadisticasCicloVida(ApiModel):
    total: int = Field(..., alias="totalSuscripciones")
    by_status: dict[str, int] = Field(..., alias="porEstado")
    auto_renew_enabled: int = Field(..., alias="conRenovacionAutomatica")
    monthly_recurring_revenue: Decimal = Field(..., alias="ingresoMensualRecurrente")
