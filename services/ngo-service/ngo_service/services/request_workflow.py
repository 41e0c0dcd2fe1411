"""
Status workflow for blood requests.

The workflow is a plain table of ``(current status, action) -> new status``
pairs. Anything not listed is an illegal transition.
"""

from typing import Dict, List, Tuple

from ..models.ngo_models import BloodRequestStatus

PENDING = BloodRequestStatus.PENDING
ACCEPTED = BloodRequestStatus.ACCEPTED
REJECTED = BloodRequestStatus.REJECTED
IN_PROGRESS = BloodRequestStatus.IN_PROGRESS
COMPLETED = BloodRequestStatus.COMPLETED
CANCELLED = BloodRequestStatus.CANCELLED

TRANSITIONS: Dict[Tuple[BloodRequestStatus, BloodRequestStatus], BloodRequestStatus] = {
    (PENDING, ACCEPTED): ACCEPTED,
    (PENDING, REJECTED): REJECTED,
    (ACCEPTED, IN_PROGRESS): IN_PROGRESS,
    (ACCEPTED, COMPLETED): COMPLETED,
    (ACCEPTED, CANCELLED): CANCELLED,
    (IN_PROGRESS, COMPLETED): COMPLETED,
    (IN_PROGRESS, CANCELLED): CANCELLED,
}

TERMINAL_STATUSES = frozenset({REJECTED, COMPLETED, CANCELLED})


class TransitionError(Exception):
    """Raised when an action is not allowed from the current status."""

    def __init__(self, current: BloodRequestStatus, action: BloodRequestStatus):
        self.current = current
        self.action = action
        super().__init__(
            f"Cannot apply {action.value} to a request that is {current.value}"
        )


def transition(current, action) -> BloodRequestStatus:
    """Return the status reached by applying ``action`` to ``current``.

    Both arguments accept a ``BloodRequestStatus`` or its string value.
    Unknown strings raise ``ValueError``; legal values that do not form a
    listed pair raise ``TransitionError``.
    """
    current = BloodRequestStatus(current)
    action = BloodRequestStatus(action)
    try:
        return TRANSITIONS[(current, action)]
    except KeyError:
        raise TransitionError(current, action) from None


def allowed_actions(current) -> List[BloodRequestStatus]:
    current = BloodRequestStatus(current)
    return [action for (state, action) in TRANSITIONS if state == current]
