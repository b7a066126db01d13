"""Shared API dependencies — single import point for all routers::

    from billing_engine.api.deps import get_db, get_billing_scheduler
"""

from billing_engine.billing.scheduler import BillingScheduler, billing_scheduler
from billing_engine.database import get_db


def get_billing_scheduler() -> BillingScheduler:
    """The process-wide scheduler; overridden in tests."""
    return billing_scheduler


__all__ = ["get_db", "get_billing_scheduler"]
