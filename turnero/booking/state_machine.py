"""
Finite state machine for the two short-lived booking executions.

A request runs SUBMITTED -> VALIDATED -> NOTIFIED. A confirmation runs
LINK_FOLLOWED -> DECODED -> RECHECKED -> COMMITTED. Either may end in
REJECTED. Nothing is persisted between the two runs: the confirmation
token carries all the state the second run needs.

Usage:
    sm = BookingStateMachine.for_confirmation()
    sm.transition(BookingTrigger.TOKEN_DECODED)
    assert sm.current_state == BookingState.DECODED
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

logger = logging.getLogger(__name__)


class BookingState(str, Enum):
    """All states of the request and confirmation flows."""
    SUBMITTED = "submitted"
    VALIDATED = "validated"
    NOTIFIED = "notified"
    LINK_FOLLOWED = "link_followed"
    DECODED = "decoded"
    RECHECKED = "rechecked"
    COMMITTED = "committed"
    REJECTED = "rejected"


class BookingTrigger(str, Enum):
    """Events that cause state transitions."""
    VALIDATION_PASSED = "validation_passed"
    VALIDATION_FAILED = "validation_failed"
    NOTIFICATION_SENT = "notification_sent"
    NOTIFICATION_FAILED = "notification_failed"
    TOKEN_DECODED = "token_decoded"
    TOKEN_REJECTED = "token_rejected"
    BOOKINGS_DISABLED = "bookings_disabled"
    SLOT_FREE = "slot_free"
    SLOT_TAKEN = "slot_taken"
    UPSTREAM_FAILED = "upstream_failed"
    EVENT_CREATED = "event_created"


@dataclass(frozen=True)
class Transition:
    """A single valid state transition."""
    from_state: BookingState
    to_state: BookingState
    trigger: BookingTrigger


@dataclass
class StateEntry:
    """Recorded history entry for a state visit."""
    state: BookingState
    entered_at: datetime
    trigger: Optional[BookingTrigger] = None


class InvalidTransitionError(Exception):
    """Raised when a transition is not valid from the current state."""


TERMINAL_STATES = frozenset({
    BookingState.NOTIFIED,
    BookingState.COMMITTED,
    BookingState.REJECTED,
})


class BookingStateMachine:
    """
    Deterministic state machine for one request or one confirmation.

    The workflow drives it step by step; a trigger without a matching
    transition means the workflow skipped a step and is rejected loudly.
    """

    TRANSITIONS: list[Transition] = [
        # --- Request flow ---
        Transition(BookingState.SUBMITTED, BookingState.VALIDATED,
                   BookingTrigger.VALIDATION_PASSED),
        Transition(BookingState.SUBMITTED, BookingState.REJECTED,
                   BookingTrigger.VALIDATION_FAILED),
        Transition(BookingState.VALIDATED, BookingState.NOTIFIED,
                   BookingTrigger.NOTIFICATION_SENT),
        Transition(BookingState.VALIDATED, BookingState.REJECTED,
                   BookingTrigger.NOTIFICATION_FAILED),

        # --- Confirmation: decode ---
        Transition(BookingState.LINK_FOLLOWED, BookingState.DECODED,
                   BookingTrigger.TOKEN_DECODED),
        Transition(BookingState.LINK_FOLLOWED, BookingState.REJECTED,
                   BookingTrigger.TOKEN_REJECTED),

        # --- Confirmation: re-check ---
        Transition(BookingState.DECODED, BookingState.RECHECKED,
                   BookingTrigger.SLOT_FREE),
        Transition(BookingState.DECODED, BookingState.REJECTED,
                   BookingTrigger.SLOT_TAKEN),
        Transition(BookingState.DECODED, BookingState.REJECTED,
                   BookingTrigger.BOOKINGS_DISABLED),
        Transition(BookingState.DECODED, BookingState.REJECTED,
                   BookingTrigger.VALIDATION_FAILED),
        Transition(BookingState.DECODED, BookingState.REJECTED,
                   BookingTrigger.UPSTREAM_FAILED),

        # --- Confirmation: commit ---
        Transition(BookingState.RECHECKED, BookingState.COMMITTED,
                   BookingTrigger.EVENT_CREATED),
        Transition(BookingState.RECHECKED, BookingState.REJECTED,
                   BookingTrigger.UPSTREAM_FAILED),

        # --- Direct reservation (admin, no token round trip) ---
        Transition(BookingState.VALIDATED, BookingState.RECHECKED,
                   BookingTrigger.SLOT_FREE),
        Transition(BookingState.VALIDATED, BookingState.REJECTED,
                   BookingTrigger.SLOT_TAKEN),
        Transition(BookingState.VALIDATED, BookingState.REJECTED,
                   BookingTrigger.UPSTREAM_FAILED),
    ]

    def __init__(self, initial_state: BookingState = BookingState.SUBMITTED) -> None:
        if initial_state not in (BookingState.SUBMITTED, BookingState.LINK_FOLLOWED):
            raise ValueError(f"A booking flow cannot start in '{initial_state.value}'")
        self._current_state = initial_state
        self._history: list[StateEntry] = [
            StateEntry(state=initial_state, entered_at=datetime.now(timezone.utc))
        ]

    @classmethod
    def for_request(cls) -> "BookingStateMachine":
        return cls(BookingState.SUBMITTED)

    @classmethod
    def for_confirmation(cls) -> "BookingStateMachine":
        return cls(BookingState.LINK_FOLLOWED)

    @property
    def current_state(self) -> BookingState:
        return self._current_state

    def transition(self, trigger: BookingTrigger) -> BookingState:
        """
        Execute a state transition.

        Args:
            trigger: The event triggering the transition.

        Returns:
            The new booking state.

        Raises:
            InvalidTransitionError: If no valid transition exists.
        """
        for t in self.TRANSITIONS:
            if t.from_state == self._current_state and t.trigger == trigger:
                old_state = self._current_state
                self._current_state = t.to_state
                self._history.append(StateEntry(
                    state=self._current_state,
                    entered_at=datetime.now(timezone.utc),
                    trigger=trigger,
                ))
                logger.debug(
                    "State transition: %s -> %s (trigger: %s)",
                    old_state.value, self._current_state.value, trigger.value,
                )
                return self._current_state

        valid = [t.value for t in self.get_valid_triggers()]
        raise InvalidTransitionError(
            f"No valid transition from '{self._current_state.value}' "
            f"with trigger '{trigger.value}'. Valid triggers: {valid}"
        )

    def get_valid_triggers(self) -> list[BookingTrigger]:
        """Return all triggers valid from the current state."""
        return [t.trigger for t in self.TRANSITIONS if t.from_state == self._current_state]

    def get_history(self) -> list[StateEntry]:
        """Return the full state transition history."""
        return list(self._history)

    def get_state_trace(self) -> list[str]:
        """Return ordered list of state names visited."""
        return [entry.state.value for entry in self._history]

    def is_terminal(self) -> bool:
        return self._current_state in TERMINAL_STATES
