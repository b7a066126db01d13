"""Enumerations shared by models, schemas and services.

Values are the wire/DB representation; they are kept in Spanish because the
administration client depends on them.
"""

import enum


class UserRole(str, enum.Enum):
    USER = "USER"
    ADMIN = "ADMIN"


class PlanTier(str, enum.Enum):
    BASIC = "BASIC"
    PREMIUM = "PREMIUM"
    ENTERPRISE = "ENTERPRISE"


class SubscriptionStatus(str, enum.Enum):
    TRIAL = "TRIAL"
    ACTIVA = "ACTIVA"
    MOROSA = "MOROSA"
    SUSPENDIDA = "SUSPENDIDA"
    CANCELADA = "CANCELADA"
    EXPIRADA = "EXPIRADA"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset({SubscriptionStatus.CANCELADA, SubscriptionStatus.EXPIRADA})
LIVE_STATUSES = frozenset(set(SubscriptionStatus) - TERMINAL_STATUSES)


class InvoiceStatus(str, enum.Enum):
    PENDIENTE = "PENDIENTE"
    PAGADA = "PAGADA"
    CANCELADA = "CANCELADA"
    VENCIDA = "VENCIDA"


OUTSTANDING_INVOICE_STATUSES = frozenset({InvoiceStatus.PENDIENTE, InvoiceStatus.VENCIDA})


class EntityKind(str, enum.Enum):
    """Closed set of audited entity types."""

    USUARIO = "Usuario"
    PLAN = "Plan"
    SUSCRIPCION = "Suscripcion"
    FACTURA = "Factura"


class AuditOperation(str, enum.Enum):
    CREACION = "CREACION"
    MODIFICACION = "MODIFICACION"
    ELIMINACION = "ELIMINACION"
