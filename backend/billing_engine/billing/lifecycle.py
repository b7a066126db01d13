"""Subscription state machine as an explicit transition table.

Every legal move is one ``(state, event) -> state`` entry in ``TRANSITIONS``;
anything absent from the table raises ``InvalidTransition``. Guards that need
data (reactivation window, outstanding invoices) live in the services, the
table only answers "is this move ever legal".
"""

import enum

from billing_engine.errors import InvalidTransition
from billing_engine.models.enums import SubscriptionStatus
from billing_engine.models.subscription import Subscription

TRIAL = SubscriptionStatus.TRIAL
ACTIVA = SubscriptionStatus.ACTIVA
MOROSA = SubscriptionStatus.MOROSA
SUSPENDIDA = SubscriptionStatus.SUSPENDIDA
CANCELADA = SubscriptionStatus.CANCELADA
EXPIRADA = SubscriptionStatus.EXPIRADA


class LifecycleEvent(str, enum.Enum):
    ACTIVATE = "ACTIVATE"  # trial elapsed / first billing
    MARK_DELINQUENT = "MARK_DELINQUENT"  # invoice reached due date unpaid
    SETTLE = "SETTLE"  # outstanding balance paid
    SUSPEND = "SUSPEND"  # delinquency past the grace threshold
    CANCEL = "CANCEL"
    REACTIVATE = "REACTIVATE"
    EXPIRE = "EXPIRE"  # billing date passed with renewal off


TRANSITIONS: dict[tuple[SubscriptionStatus, LifecycleEvent], SubscriptionStatus] = {
    (TRIAL, LifecycleEvent.ACTIVATE): ACTIVA,
    (ACTIVA, LifecycleEvent.MARK_DELINQUENT): MOROSA,
    (MOROSA, LifecycleEvent.SETTLE): ACTIVA,
    (SUSPENDIDA, LifecycleEvent.SETTLE): ACTIVA,
    (MOROSA, LifecycleEvent.SUSPEND): SUSPENDIDA,
    (TRIAL, LifecycleEvent.CANCEL): CANCELADA,
    (ACTIVA, LifecycleEvent.CANCEL): CANCELADA,
    (MOROSA, LifecycleEvent.CANCEL): CANCELADA,
    (SUSPENDIDA, LifecycleEvent.CANCEL): CANCELADA,
    (CANCELADA, LifecycleEvent.REACTIVATE): ACTIVA,
    (TRIAL, LifecycleEvent.EXPIRE): EXPIRADA,
    (ACTIVA, LifecycleEvent.EXPIRE): EXPIRADA,
    (MOROSA, LifecycleEvent.EXPIRE): EXPIRADA,
    (SUSPENDIDA, LifecycleEvent.EXPIRE): EXPIRADA,
}

# Events that need extra input or guards and cannot be requested as a bare
# state change.
GUARDED_EVENTS = frozenset({LifecycleEvent.CANCEL, LifecycleEvent.REACTIVATE})


def next_state(current: SubscriptionStatus, event: LifecycleEvent) -> SubscriptionStatus:
    """Resolve ``event`` applied to ``current`` or raise ``InvalidTransition``."""
    target = TRANSITIONS.get((current, event))
    if target is None:
        raise InvalidTransition(current.value, event.value)
    return target


def can_apply(current: SubscriptionStatus, event: LifecycleEvent) -> bool:
    return (current, event) in TRANSITIONS


def event_for(current: SubscriptionStatus, requested: SubscriptionStatus) -> LifecycleEvent:
    """Find the event that moves ``current`` to ``requested``.

    Used for explicit state-change requests; raises ``InvalidTransition``
    naming both states when no table entry connects them.
    """
    for (state, event), target in TRANSITIONS.items():
        if state == current and target == requested:
            return event
    raise InvalidTransition(current.value, requested.value)


def legal_targets(current: SubscriptionStatus) -> set[SubscriptionStatus]:
    return {target for (state, _), target in TRANSITIONS.items() if state == current}


def apply_event(subscription: Subscription, event: LifecycleEvent) -> SubscriptionStatus:
    """Move ``subscription`` along ``event``; the caller records the revision."""
    subscription.status = next_state(subscription.status, event)
    return subscription.status
