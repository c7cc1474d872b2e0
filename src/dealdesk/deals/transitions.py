"""Buyer-local deal status transition rules.

The state machine is per (buyer, deal) pair, not global: the same deal can
be active for one buyer and pending for another.

The table describes the usual buyer flow; it does not gate commands. The
remote service stays the authority, so an activate or reject outside these
edges (e.g. reopening a passed deal through its CIM) is still sent and only
logged by the status client.

set-pending is accepted by the remote service but has no edge here. Its
source states are not settled, so the buyer-facing client refuses it
instead of guessing. DealGateway.request_transition can still send it.
"""

from __future__ import annotations

from src.dealdesk.deals.schemas import DealStatus, TransitionAction

# Maps each status to the actions allowed from it and where they lead.
VALID_TRANSITIONS: dict[DealStatus, dict[TransitionAction, DealStatus]] = {
    DealStatus.PENDING: {
        TransitionAction.ACTIVATE: DealStatus.ACTIVE,
        TransitionAction.REJECT: DealStatus.REJECTED,
    },
    DealStatus.ACTIVE: {
        TransitionAction.REJECT: DealStatus.REJECTED,
    },
    DealStatus.REJECTED: {},
}

# Bucket a successful action lands in, independent of the source state.
ACTION_DESTINATION: dict[TransitionAction, DealStatus] = {
    TransitionAction.ACTIVATE: DealStatus.ACTIVE,
    TransitionAction.REJECT: DealStatus.REJECTED,
    TransitionAction.SET_PENDING: DealStatus.PENDING,
}


class InvalidTransitionError(ValueError):
    """Raised when an action is not allowed from the buyer's current status."""

    def __init__(self, status: DealStatus, action: TransitionAction) -> None:
        self.status = status
        self.action = action
        allowed = VALID_TRANSITIONS.get(status, {})
        super().__init__(
            f"Invalid deal transition: {action.value} from {status.value}. "
            f"Allowed from {status.value}: {', '.join(a.value for a in allowed) or 'none'}"
        )


def validate_transition(status: DealStatus, action: TransitionAction) -> DealStatus:
    """Validate an action against the buyer-local rules.

    Args:
        status: The buyer's current status for the deal.
        action: Requested action.

    Returns:
        The destination status.

    Raises:
        InvalidTransitionError: If the action is not allowed from status.
    """
    allowed = VALID_TRANSITIONS.get(status, {})
    if action not in allowed:
        raise InvalidTransitionError(status, action)
    return allowed[action]
