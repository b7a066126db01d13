"""Invoices API router — queries, payment, reporting and billing runs.

Fixed paths are declared before ``/{factura_id}`` so they are never parsed
as invoice ids.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from billing_engine.api.deps import get_billing_scheduler, get_db
from billing_engine.billing.cycle import BillingRunResult
from billing_engine.billing.scheduler import BillingScheduler
from billing_engine.models.enums import InvoiceStatus
from billing_engine.models.invoice import Invoice
from billing_engine.schemas.common import MessageResponse, Page
from billing_engine.schemas.factura import (
    FacturaEstadisticas,
    FacturaResponse,
    ResultadoFacturacion,
    ResumenEstado,
    TotalesPeriodo,
)
from billing_engine.services import invoice_service
from billing_engine.services.invoice_service import InvoiceStatistics, PeriodTotals

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/facturas", tags=["facturas"])


@router.get("", response_model=list[FacturaResponse], summary="List invoices, newest first")
async def list_facturas(db: AsyncSession = Depends(get_db)) -> list[Invoice]:
    return await invoice_service.list_invoices(db)


@router.get("/pendientes", response_model=list[FacturaResponse], summary="Invoices awaiting payment")
async def list_pendientes(db: AsyncSession = Depends(get_db)) -> list[Invoice]:
    return await invoice_service.list_pending(db)


@router.get("/vencidas", response_model=list[FacturaResponse], summary="Overdue invoices")
async def list_vencidas(db: AsyncSession = Depends(get_db)) -> list[Invoice]:
    return await invoice_service.list_overdue(db)


@router.get("/estadisticas", response_model=FacturaEstadisticas, summary="Invoice statistics")
async def estadisticas(db: AsyncSession = Depends(get_db)) -> InvoiceStatistics:
    return await invoice_service.get_statistics(db)


@router.get("/resumen-estado", response_model=list[ResumenEstado], summary="Count and total per state")
async def resumen_estado(db: AsyncSession = Depends(get_db)) -> list[dict]:
    summary = await invoice_service.summary_by_status(db)
    return [{"estado": status, "cantidad": s.count, "total": s.total} for status, s in summary.items()]


@router.get("/totales", response_model=TotalesPeriodo, summary="Totals for invoices issued in a period")
async def totales(
    inicio: date = Query(...),
    fin: date = Query(...),
    db: AsyncSession = Depends(get_db),
) -> PeriodTotals:
    return await invoice_service.totals_for_period(db, inicio, fin)


@router.get("/filtrar/fecha", response_model=list[FacturaResponse], summary="Filter by issue date")
async def filtrar_fecha(
    inicio: date = Query(...),
    fin: date = Query(...),
    estado: InvoiceStatus | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[Invoice]:
    return await invoice_service.filter_by_issue_date(db, inicio, fin, estado)


@router.get("/filtrar/monto", response_model=list[FacturaResponse], summary="Filter by total amount")
async def filtrar_monto(
    minimo: Decimal = Query(..., ge=0),
    maximo: Decimal = Query(..., ge=0),
    estado: InvoiceStatus | None = Query(None),
    db: AsyncSession = Depends(get_db),
) -> list[Invoice]:
    return await invoice_service.filter_by_total(db, minimo, maximo, estado)


@router.get("/buscar", response_model=Page[FacturaResponse], summary="Paginated combined search")
async def buscar(
    estado: InvoiceStatus | None = Query(None),
    usuario_id: uuid.UUID | None = Query(None, alias="usuarioId"),
    suscripcion_id: uuid.UUID | None = Query(None, alias="suscripcionId"),
    fecha_inicio: date | None = Query(None, alias="fechaInicio"),
    fecha_fin: date | None = Query(None, alias="fechaFin"),
    monto_minimo: Decimal | None = Query(None, alias="montoMinimo", ge=0),
    monto_maximo: Decimal | None = Query(None, alias="montoMaximo", ge=0),
    page: int = Query(0, ge=0),
    size: int = Query(10, ge=1, le=100),
    sort_by: str = Query("fechaEmision", alias="sortBy"),
    sort_dir: str = Query("desc", alias="sortDir"),
    db: AsyncSession = Depends(get_db),
) -> dict:
    result = await invoice_service.search_invoices(
        db,
        status=estado,
        subscription_id=suscripcion_id,
        user_id=usuario_id,
        start=fecha_inicio,
        end=fecha_fin,
        minimum=monto_minimo,
        maximum=monto_maximo,
        page=page,
        size=size,
        sort_by=sort_by,
        sort_dir=sort_dir,
    )
    return {
        "content": result.items,
        "totalPages": result.total_pages,
        "totalElements": result.total_elements,
        "number": result.page,
        "size": result.size,
    }


@router.get("/estado/{estado}", response_model=list[FacturaResponse], summary="Invoices in one state")
async def list_por_estado(estado: InvoiceStatus, db: AsyncSession = Depends(get_db)) -> list[Invoice]:
    return await invoice_service.list_by_status(db, estado)


@router.get(
    "/suscripcion/{suscripcion_id}",
    response_model=list[FacturaResponse],
    summary="Invoices of one subscription",
)
async def list_por_suscripcion(suscripcion_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> list[Invoice]:
    return await invoice_service.list_by_subscription(db, suscripcion_id)


@router.post("/ejecutar-facturacion", response_model=ResultadoFacturacion, summary="Run the billing cycle now")
async def ejecutar_facturacion(
    fecha: date | None = Query(None, description="Billing date, defaults to today"),
    db: AsyncSession = Depends(get_db),
    scheduler: BillingScheduler = Depends(get_billing_scheduler),
) -> BillingRunResult:
    """Same run the scheduler performs, bounded by the same timeout.

    Re-running for a date that was already processed changes nothing.
    """
    logger.info("Manual billing run requested for %s", fecha or "today")
    return await scheduler.run_once(fecha, db=db)


@router.post("/facturacion/abortar", response_model=MessageResponse, summary="Abort the billing run in progress")
async def abortar_facturacion(scheduler: BillingScheduler = Depends(get_billing_scheduler)) -> dict:
    if scheduler.abort():
        return {"mensaje": "Facturación abortada"}
    return {"mensaje": "No hay ninguna facturación en curso"}


@router.get("/{factura_id}", response_model=FacturaResponse, summary="Get an invoice by ID")
async def get_factura(factura_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Invoice:
    return await invoice_service.get_invoice(db, factura_id)


@router.post("/{factura_id}/pagar", response_model=FacturaResponse, summary="Mark an invoice as paid")
async def pagar(factura_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Invoice:
    """Paying the last outstanding invoice returns a delinquent subscription to ACTIVA."""
    return await invoice_service.pay_invoice(db, factura_id)


@router.post("/{factura_id}/cancelar", response_model=FacturaResponse, summary="Cancel a pending invoice")
async def cancelar(factura_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> Invoice:
    return await invoice_service.cancel_invoice(db, factura_id)


@router.delete("/{factura_id}", response_model=MessageResponse, summary="Delete a cancelled invoice")
async def delete_factura(factura_id: uuid.UUID, db: AsyncSession = Depends(get_db)) -> dict:
    await invoice_service.delete_invoice(db, factura_id)
    return {"mensaje": "Factura eliminada"}
