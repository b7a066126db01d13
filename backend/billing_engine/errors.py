"""Domain exceptions raised by the billing services.

Routers never catch these; ``billing_engine.main`` maps each class to an HTTP
status code.
"""


class BillingError(Exception):
    """Base class for every domain error."""

    status_code: int = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(BillingError):
    """Malformed or missing input, rejected before any state is touched."""

    status_code = 400


class NotFound(BillingError):
    """A referenced user, plan, subscription, invoice or revision does not exist."""

    status_code = 404

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} {entity_id} not found")
        self.entity = entity
        self.entity_id = entity_id


class InvalidTransition(BillingError):
    """Illegal lifecycle change for a subscription or invoice."""

    status_code = 409

    def __init__(self, current: str, requested: str, reason: str | None = None) -> None:
        message = f"Cannot transition from {current} to {requested}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.requested = requested


class NoOpChange(InvalidTransition):
    """A plan change that targets the plan already in use."""

    def __init__(self, plan_id: object) -> None:
        super().__init__("plan", "plan", f"subscription is already on plan {plan_id}")
        self.plan_id = plan_id


class ConflictError(BillingError):
    """Concurrent modification of the same entity; the caller should retry."""

    status_code = 409


class DependencyInUse(BillingError):
    """Deletion blocked because a live subscription references the entity."""

    status_code = 409


class ProcessingError(BillingError):
    """One unit of a billing run failed; recorded in the run result."""

    status_code = 500

    def __init__(self, entity_id: object, cause: BaseException, step: str = "subscription") -> None:
        super().__init__(f"Billing {step} step failed for {entity_id}: {cause}")
        self.entity_id = entity_id
        self.step = step
        self.cause = cause
