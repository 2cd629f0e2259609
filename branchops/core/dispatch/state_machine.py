from __future__ import annotations

from typing import List, Set, Tuple

from branchops.core.dispatch.models import DispatchStatus
from branchops.core.errors import ValidationError


_ALLOWED: Set[Tuple[DispatchStatus, DispatchStatus]] = {
    (DispatchStatus.PENDING, DispatchStatus.PACKING),
    (DispatchStatus.PACKING, DispatchStatus.DISPATCHED),
    (DispatchStatus.DISPATCHED, DispatchStatus.RECEIVING),
    (DispatchStatus.RECEIVING, DispatchStatus.COMPLETED),

    # packing or receiving may be completed in one go without saving progress
    (DispatchStatus.PENDING, DispatchStatus.DISPATCHED),
    (DispatchStatus.DISPATCHED, DispatchStatus.COMPLETED),
}

_TERMINAL: Set[DispatchStatus] = {
    DispatchStatus.COMPLETED,
}


class IllegalTransition(ValidationError):
    pass


def can_transition(src: DispatchStatus, dst: DispatchStatus) -> bool:
    if src == dst:
        return True
    if src in _TERMINAL:
        return False
    return (src, dst) in _ALLOWED


def ensure_transition(src: DispatchStatus, dst: DispatchStatus) -> None:
    if not can_transition(src, dst):
        raise IllegalTransition(f"Illegal transition: {src.value} -> {dst.value}")


def allowed_next(src: DispatchStatus) -> List[str]:
    """Statuses reachable from ``src`` in workflow order."""
    if src in _TERMINAL:
        return []
    return [s.value for s in DispatchStatus if (src, s) in _ALLOWED]
