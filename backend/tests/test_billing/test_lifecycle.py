"""Tests for the subscription transition table."""

import pytest

from billing_engine.billing.lifecycle import (
    TRANSITIONS,
    LifecycleEvent,
    can_apply,
    event_for,
    legal_targets,
    next_state,
)
from billing_engine.errors import InvalidTransition
from billing_engine.models.enums import SubscriptionStatus as S

ALL_PAIRS = [(state, event) for state in S for event in LifecycleEvent]


@pytest.mark.parametrize(("state", "event"), ALL_PAIRS)
def test_every_pair_is_either_legal_or_rejected(state, event):
    if (state, event) in TRANSITIONS:
        assert next_state(state, event) == TRANSITIONS[(state, event)]
        assert can_apply(state, event)
    else:
        assert not can_apply(state, event)
        with pytest.raises(InvalidTransition):
            next_state(state, event)


def test_expected_moves():
    assert next_state(S.TRIAL, LifecycleEvent.ACTIVATE) == S.ACTIVA
    assert next_state(S.ACTIVA, LifecycleEvent.MARK_DELINQUENT) == S.MOROSA
    assert next_state(S.MOROSA, LifecycleEvent.SUSPEND) == S.SUSPENDIDA
    assert next_state(S.SUSPENDIDA, LifecycleEvent.SETTLE) == S.ACTIVA
    assert next_state(S.CANCELADA, LifecycleEvent.REACTIVATE) == S.ACTIVA


def test_expired_is_final():
    assert legal_targets(S.EXPIRADA) == set()


def test_cancelled_can_only_be_reactivated():
    assert legal_targets(S.CANCELADA) == {S.ACTIVA}


def test_trial_targets():
    assert legal_targets(S.TRIAL) == {S.ACTIVA, S.CANCELADA, S.EXPIRADA}


class TestEventFor:
    def test_resolves_event(self):
        assert event_for(S.ACTIVA, S.MOROSA) == LifecycleEvent.MARK_DELINQUENT
        assert event_for(S.MOROSA, S.ACTIVA) == LifecycleEvent.SETTLE
        assert event_for(S.ACTIVA, S.CANCELADA) == LifecycleEvent.CANCEL

    def test_unknown_move_names_both_states(self):
        with pytest.raises(InvalidTransition) as exc_info:
            event_for(S.EXPIRADA, S.ACTIVA)
        assert exc_info.value.current == "EXPIRADA"
        assert exc_info.value.requested == "ACTIVA"

    def test_suspend_requires_delinquency_first(self):
        with pytest.raises(InvalidTransition):
            event_for(S.ACTIVA, S.SUSPENDIDA)
