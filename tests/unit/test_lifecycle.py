"""Unit tests for rent plan and signing transition rules"""

import pytest
from datetime import date
from rentease_ledger.domain.exceptions import InvalidStateError
from rentease_ledger.domain.lifecycle import (
    can_advance_signing,
    can_transition,
    next_due_date,
    require_transition,
    sources_for,
)
from rentease_ledger.domain.models import PlanStatus, SigningStatus


@pytest.mark.parametrize(
    "current,target",
    [
        (PlanStatus.PENDING, PlanStatus.ACCEPTED),
        (PlanStatus.PENDING, PlanStatus.REJECTED),
        (PlanStatus.PENDING, PlanStatus.CANCELLED),
        (PlanStatus.ACCEPTED, PlanStatus.COMPLETED),
        (PlanStatus.ACCEPTED, PlanStatus.CANCELLED),
    ],
)
def test_legal_transitions(current, target):
    assert can_transition(current, target) is True


@pytest.mark.parametrize("terminal", [PlanStatus.COMPLETED, PlanStatus.REJECTED, PlanStatus.CANCELLED])
def test_terminal_states_have_no_exits(terminal):
    assert not any(can_transition(terminal, target) for target in PlanStatus)


def test_pending_cannot_complete_directly():
    assert can_transition(PlanStatus.PENDING, PlanStatus.COMPLETED) is False


def test_require_transition_accepts_raw_status_strings():
    require_transition("pending", PlanStatus.ACCEPTED, "accept")


def test_require_transition_error_names_current_status():
    with pytest.raises(InvalidStateError, match="Cannot accept plan with status: rejected"):
        require_transition("rejected", PlanStatus.ACCEPTED, "accept")


def test_sources_for_cancel():
    assert sources_for(PlanStatus.CANCELLED) == {PlanStatus.PENDING, PlanStatus.ACCEPTED}


def test_signing_advances_forward_only():
    assert can_advance_signing(SigningStatus.PENDING, SigningStatus.VIEWED) is True
    assert can_advance_signing(SigningStatus.VIEWED, SigningStatus.SIGNED) is True
    assert can_advance_signing(SigningStatus.SIGNED, SigningStatus.VIEWED) is False
    assert can_advance_signing(SigningStatus.DECLINED, SigningStatus.SIGNED) is False


def test_signing_none_treated_as_pending():
    assert can_advance_signing(None, SigningStatus.SIGNED) is True


def test_next_due_date_one_month_after_start():
    assert next_due_date(date(2024, 4, 1), date(2024, 3, 15)) == date(2024, 5, 1)


def test_next_due_date_defaults_to_today():
    assert next_due_date(None, date(2024, 3, 15)) == date(2024, 4, 15)


def test_next_due_date_clamps_month_end():
    assert next_due_date(date(2024, 1, 31), date(2024, 1, 10)) == date(2024, 2, 29)
