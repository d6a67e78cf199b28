"""
Transfer state machine tests.

plan_transition() is pure, so these run on unsaved Movement instances.
"""

import pytest

from bookstock.models import Movement
from bookstock.models.movements import (
    MOVEMENT_STATUS_PENDING,
    MOVEMENT_STATUS_CONFIRMED,
    MOVEMENT_STATUS_CLAIMED,
)
from bookstock.services import transfer_state
from bookstock.services.transfer_state import (
    ClaimMessageRequired,
    Finalized,
    NotDestination,
    UnknownAction,
    plan_transition,
)


SOURCE_ID = 3
DESTINATION_ID = 1
OTHER_ID = 2


def _movement(status=MOVEMENT_STATUS_PENDING) -> Movement:
    return Movement(
        source_location_id=SOURCE_ID,
        destination_location_id=DESTINATION_ID,
        status=status,
    )


def test_destination_confirms_pending():
    transition = plan_transition(_movement(), "confirm", DESTINATION_ID)

    assert transition.from_status == MOVEMENT_STATUS_PENDING
    assert transition.to_status == MOVEMENT_STATUS_CONFIRMED
    assert transition.claim_message is None


def test_destination_claims_pending_with_trimmed_message():
    transition = plan_transition(_movement(), "claim", DESTINATION_ID, "  2 books missing ")

    assert transition.to_status == MOVEMENT_STATUS_CLAIMED
    assert transition.claim_message == "2 books missing"


@pytest.mark.parametrize("requester", [SOURCE_ID, OTHER_ID, None, 999])
@pytest.mark.parametrize("action", ["confirm", "claim"])
def test_only_destination_may_act(requester, action):
    with pytest.raises(NotDestination) as exc_info:
        plan_transition(_movement(), action, requester, "message")

    assert exc_info.value.requesting_location_id == requester
    assert exc_info.value.destination_location_id == DESTINATION_ID


@pytest.mark.parametrize("status", [MOVEMENT_STATUS_CONFIRMED, MOVEMENT_STATUS_CLAIMED])
@pytest.mark.parametrize("action", ["confirm", "claim"])
def test_terminal_states_never_move(status, action):
    with pytest.raises(Finalized) as exc_info:
        plan_transition(_movement(status), action, DESTINATION_ID, "message")

    assert exc_info.value.status == status


def test_guard_checked_before_terminality():
    # A non-destination caller learns nothing about the movement's state
    with pytest.raises(NotDestination):
        plan_transition(_movement(MOVEMENT_STATUS_CONFIRMED), "confirm", SOURCE_ID)


def test_terminality_checked_before_claim_message():
    with pytest.raises(Finalized):
        plan_transition(_movement(MOVEMENT_STATUS_CONFIRMED), "claim", DESTINATION_ID, None)


@pytest.mark.parametrize("message", [None, "", "   ", 42])
def test_claim_requires_message(message):
    with pytest.raises(ClaimMessageRequired):
        plan_transition(_movement(), "claim", DESTINATION_ID, message)


@pytest.mark.parametrize("action", ["approve", "", None, "CONFIRM"])
def test_unknown_action_rejected(action):
    with pytest.raises(UnknownAction):
        plan_transition(_movement(), action, DESTINATION_ID)


def test_unknown_stored_status_is_not_transitionable():
    with pytest.raises(Finalized):
        plan_transition(_movement("archived"), "confirm", DESTINATION_ID)


def test_transition_table_only_leaves_pending():
    assert {from_status for from_status, _ in transfer_state.TRANSITIONS} == {MOVEMENT_STATUS_PENDING}
    assert set(transfer_state.TERMINAL_STATUSES) == {MOVEMENT_STATUS_CONFIRMED, MOVEMENT_STATUS_CLAIMED}
