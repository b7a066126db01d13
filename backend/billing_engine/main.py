"""Billing Engine — FastAPI application entry point."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from billing_engine.api.v1.auditoria import router as auditoria_router
from billing_engine.api.v1.ciclo_vida import router as ciclo_vida_router
from billing_engine.api.v1.facturas import router as facturas_router
from billing_engine.api.v1.planes import router as planes_router
from billing_engine.api.v1.suscripciones import router as suscripciones_router
from billing_engine.api.v1.usuarios import router as usuarios_router
from billing_engine.billing.scheduler import billing_scheduler
from billing_engine.config import settings
from billing_engine.errors import BillingError

# Configure root logger so all billing_engine.* loggers output to stderr.
logging.basicConfig(
    level=logging.DEBUG if settings.debug else logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the billing scheduler (when enabled) and dispose the engine on shutdown."""
    if settings.billing_scheduler_enabled:
        billing_scheduler.start()
    yield
    await billing_scheduler.stop()

    from billing_engine.database import engine

    await engine.dispose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Subscription lifecycle, prorated plan changes, invoicing with taxes and a full audit trail.",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(BillingError)
async def billing_error_handler(request: Request, exc: BillingError) -> JSONResponse:
    """Render every domain error as ``{"detail", "error"}`` with its status code."""
    logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


# Routers; lifecycle routes go before the generic /{id} subscription routes
app.include_router(usuarios_router)
app.include_router(planes_router)
app.include_router(ciclo_vida_router)
app.include_router(suscripciones_router)
app.include_router(facturas_router)
app.include_router(auditoria_router)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": settings.app_name}


@app.get("/", tags=["root"])
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
    }
