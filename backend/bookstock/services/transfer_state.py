# backend/bookstock/services/transfer_state.py
"""
Movement transfer state machine.

LIFECYCLE:
1. pending: Created by the source location (initial)
2. confirmed: Destination received the goods as expected (terminal)
3. claimed: Destination received the goods with a discrepancy message (terminal)

GUARD: Only the destination location may confirm or claim. The source
dispatches the goods and must never certify its own shipment as received.
The guard compares internal location ids, never codes.

Check order for a requested transition:
1. Guard (any caller other than the destination is refused, whatever the status)
2. Terminality (confirmed / claimed never move again)
3. Claim message (claim only)
"""
from __future__ import annotations

from dataclasses import dataclass

from ..models import Movement
from ..models.movements import (
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_STATUS_CONFIRMED,
    MOVEMENT_STATUS_CLAIMED,
)


ACTION_CONFIRM = "confirm"
ACTION_CLAIM = "claim"
ACTIONS = (ACTION_CONFIRM, ACTION_CLAIM)

# (from_status, action) -> to_status
TRANSITIONS = {
    (MOVEMENT_STATUS_PENDING, ACTION_CONFIRM): MOVEMENT_STATUS_CONFIRMED,
    (MOVEMENT_STATUS_PENDING, ACTION_CLAIM): MOVEMENT_STATUS_CLAIMED,
}

TERMINAL_STATUSES = (MOVEMENT_STATUS_CONFIRMED, MOVEMENT_STATUS_CLAIMED)


class TransitionError(Exception):
    """Base for refused transitions."""
    pass


class UnknownAction(TransitionError):
    pass


class NotDestination(TransitionError):
    def __init__(self, requesting_location_id: int | None, destination_location_id: int):
        super().__init__("Only the receiving location can perform this action")
        self.requesting_location_id = requesting_location_id
        self.destination_location_id = destination_location_id


class Finalized(TransitionError):
    def __init__(self, status: str):
        super().__init__(f"Movement is already {status}")
        self.status = status


class ClaimMessageRequired(TransitionError):
    def __init__(self):
        super().__init__("Claim message is required")


@dataclass(frozen=True)
class Transition:
    action: str
    from_status: str
    to_status: str
    claim_message: str | None = None


def is_destination(movement: Movement, requesting_location_id: int | None) -> bool:
    return (
        requesting_location_id is not None
        and requesting_location_id == movement.destination_location_id
    )


def plan_transition(
    movement: Movement,
    action: str,
    requesting_location_id: int | None,
    claim_message: str | None = None,
) -> Transition:
    """
    Decide whether `action` may be applied to `movement` by a location.

    Pure: reads the movement, writes nothing. The caller applies the returned
    transition with a conditional update on `from_status`.

    Raises:
        UnknownAction: action is not confirm or claim
        NotDestination: requesting location is not the destination
        Finalized: movement is confirmed or claimed
        ClaimMessageRequired: claim without a non-blank message
    """
    if action not in ACTIONS:
        raise UnknownAction(f"Invalid action {action!r}. Must be one of: {', '.join(ACTIONS)}")

    if not is_destination(movement, requesting_location_id):
        raise NotDestination(requesting_location_id, movement.destination_location_id)

    if movement.status in TERMINAL_STATUSES:
        raise Finalized(movement.status)

    to_status = TRANSITIONS.get((movement.status, action))
    if to_status is None:
        # Unknown stored status; treat as not transitionable
        raise Finalized(movement.status)

    message = None
    if action == ACTION_CLAIM:
        message = claim_message.strip() if isinstance(claim_message, str) else None
        if not message:
            raise ClaimMessageRequired()

    return Transition(
        action=action,
        from_status=movement.status,
        to_status=to_status,
        claim_message=message,
    )
