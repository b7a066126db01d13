"""Pydantic v2 schemas for invoices, invoice reports and billing runs."""

import uuid
from datetime import date, datetime
from decimal import Decimal

from pydantic import Field

from billing_engine.models.enums import InvoiceStatus
from billing_engine.schemas.common import ApiModel


class FacturaResponse(ApiModel):
    id: uuid.UUID
    number: str = Field(..., alias="numeroFactura")
    subscription_id: uuid.UUID = Field(..., alias="suscripcionId")
    user_id: uuid.UUID = Field(..., alias="usuarioId")
    issue_date: date = Field(..., alias="fechaEmision")
    due_date: date = Field(..., alias="fechaVencimiento")
    subtotal: Decimal
    tax_rate: Decimal = Field(..., alias="porcentajeImpuestos")
    tax_amount: Decimal = Field(..., alias="montoImpuestos")
    total: Decimal
    status: InvoiceStatus = Field(..., alias="estado")
    paid_at: datetime | None = Field(None, alias="fechaPago")
    concept: str | None = Field(None, alias="concepto")
    is_proration: bool = Field(..., alias="esProrrateo")
    created_at: datetime = Field(..., alias="fechaCreacion")


class FacturaEstadisticas(ApiModel):
    total_invoices: int = Field(..., alias="totalFacturas")
    by_status: dict[str, int] = Field(..., alias="porEstado")
    total_billed: Decimal = Field(..., alias="totalFacturado")
    total_collected: Decimal = Field(..., alias="totalCobrado")
    total_outstanding: Decimal = Field(..., alias="totalPendiente")
    overdue_count: int = Field(..., alias="facturasVencidas")


class ResumenEstado(ApiModel):
    status: InvoiceStatus = Field(..., alias="estado")
    count: int = Field(..., alias="cantidad")
    total: Decimal


class TotalesPeriodo(ApiModel):
    start: date = Field(..., alias="inicio")
    end: date = Field(..., alias="fin")
    invoice_count: int = Field(..., alias="cantidadFacturas")
    subtotal: Decimal
    tax_amount: Decimal = Field(..., alias="impuestos")
    total: Decimal
    collected: Decimal = Field(..., alias="cobrado")


class ErrorFacturacion(ApiModel):
    entity_id: uuid.UUID = Field(..., alias="entidadId")
    step: str = Field(..., alias="paso")
    message: str = Field(..., alias="mensaje")


class ResultadoFacturacion(ApiModel):
    """Outcome of one billing run."""

    as_of: date = Field(..., alias="fecha")
    invoices_created: list[FacturaResponse] = Field(..., alias="facturasGeneradas")
    subscriptions_activated: list[uuid.UUID] = Field(..., alias="suscripcionesActivadas")
    subscriptions_expired: list[uuid.UUID] = Field(..., alias="suscripcionesExpiradas")
    invoices_overdue: list[uuid.UUID] = Field(..., alias="facturasVencidas")
    subscriptions_delinquent: list[uuid.UUID] = Field(..., alias="suscripcionesMorosas")
    subscriptions_suspended: list[uuid.UUID] = Field(..., alias="suscripcionesSuspendidas")
    errors: list[ErrorFacturacion] = Field(..., alias="errores")
    processed: int = Field(..., alias="procesadas")
    aborted: bool = Field(..., alias="abortada")
