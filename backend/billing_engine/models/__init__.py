"""SQLAlchemy models for the billing engine.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from billing_engine.models.audit import AuditRevision
from billing_engine.models.invoice import Invoice
from billing_engine.models.plan import Plan
from billing_engine.models.subscription import Subscription
from billing_engine.models.user import User

__all__ = [
    "AuditRevision",
    "Invoice",
    "Plan",
    "Subscription",
    "User",
]
