"""Pay period window state machine with transition validation."""

from __future__ import annotations

from payroll_cycle.models import WindowState
from payroll_cycle.services.errors import InvalidTransitionError


class WindowStateMachine:
    """State machine for the pay period confirmation window.

    Allowed transitions:
    - NONE → OPEN (cycle begins)
    - OPEN → CLOSED (submission deadline)
    - CLOSED → PAID (payout executed)

    There are no reverse transitions. A new period gets a new window.
    """

    VALID_TRANSITIONS: dict[WindowState, list[WindowState]] = {
        WindowState.NONE: [WindowState.OPEN],
        WindowState.OPEN: [WindowState.CLOSED],
        WindowState.CLOSED: [WindowState.PAID],
        WindowState.PAID: [],  # Terminal state
    }

    # States where employees may add, withdraw and confirm
    SUBMISSIONS_MUTABLE = {WindowState.OPEN}

    # States where a late add is accepted if queueing is enabled
    QUEUE_ALLOWED = {WindowState.CLOSED}

    # States where an admin may still review submissions
    REVIEW_ALLOWED = {WindowState.OPEN, WindowState.CLOSED}

    @classmethod
    def can_transition(cls, from_state: WindowState, to_state: WindowState) -> bool:
        """Check if a transition is valid."""
        return to_state in cls.VALID_TRANSITIONS.get(from_state, [])

    @classmethod
    def validate_transition(cls, from_state: WindowState, to_state: WindowState) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_state, to_state):
            raise InvalidTransitionError(from_state.value, to_state.value)

    @classmethod
    def can_mutate(cls, state: WindowState) -> bool:
        """Check if the employee may change the ledger in this state."""
        return state in cls.SUBMISSIONS_MUTABLE

    @classmethod
    def can_queue(cls, state: WindowState) -> bool:
        """Check if a late submission may be queued for the next cycle."""
        return state in cls.QUEUE_ALLOWED

    @classmethod
    def can_review(cls, state: WindowState) -> bool:
        """Check if admin review of submissions is allowed."""
        return state in cls.REVIEW_ALLOWED

    @classmethod
    def get_next_states(cls, current_state: WindowState) -> list[WindowState]:
        """Get list of valid next states from current state."""
        return cls.VALID_TRANSITIONS.get(current_state, [])

    @classmethod
    def is_terminal(cls, state: WindowState) -> bool:
        """Check if no further transition is possible."""
        return not cls.VALID_TRANSITIONS.get(state)
