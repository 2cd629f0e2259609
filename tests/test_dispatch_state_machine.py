import pytest

from branchops.core.dispatch.models import DispatchStatus as S
from branchops.core.dispatch.models import WorkflowMode, mode_for
from branchops.core.dispatch.state_machine import (
    IllegalTransition,
    allowed_next,
    can_transition,
    ensure_transition,
)
from branchops.core.errors import ValidationError


@pytest.mark.parametrize(
    "src,dst",
    [
        (S.PENDING, S.PACKING),
        (S.PACKING, S.DISPATCHED),
        (S.DISPATCHED, S.RECEIVING),
        (S.RECEIVING, S.COMPLETED),
        (S.PENDING, S.DISPATCHED),
        (S.DISPATCHED, S.COMPLETED),
        (S.PACKING, S.PACKING),
        (S.COMPLETED, S.COMPLETED),
    ],
)
def test_allowed_transitions(src, dst):
    assert can_transition(src, dst)
    ensure_transition(src, dst)


@pytest.mark.parametrize(
    "src,dst",
    [
        (S.PENDING, S.COMPLETED),
        (S.DISPATCHED, S.PACKING),
        (S.RECEIVING, S.PENDING),
        (S.COMPLETED, S.RECEIVING),
    ],
)
def test_illegal_transitions(src, dst):
    assert not can_transition(src, dst)
    with pytest.raises(IllegalTransition) as exc:
        ensure_transition(src, dst)
    assert isinstance(exc.value, ValidationError)
    assert str(exc.value) == f"Illegal transition: {src.value} -> {dst.value}"


def test_next_states_follow_workflow_order():
    assert allowed_next(S.PENDING) == ["packing", "dispatched"]
    assert allowed_next(S.DISPATCHED) == ["receiving", "completed"]
    assert allowed_next(S.COMPLETED) == []


def test_workflow_mode_follows_status():
    assert mode_for(S.PENDING) == WorkflowMode.PACKING
    assert mode_for(S.PACKING) == WorkflowMode.PACKING
    assert mode_for(S.DISPATCHED) == WorkflowMode.RECEIVING
    assert mode_for(S.RECEIVING) == WorkflowMode.RECEIVING
