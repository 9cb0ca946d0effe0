"""
NetAuth - Handshake state machine.

This module implements the finite state machine that gates every operation
needing a shared key. Authentication and encrypted traffic are only accepted
once the machine has reached COMPLETED; COMPLETED and FAILED are terminal.
"""

import logging
import time
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional

from .constants import MAX_TRANSITION_HISTORY

logger = logging.getLogger(__name__)


class HandshakeState(Enum):
    """Handshake states for one connection."""

    NOT_STARTED = auto()  # No key agreement traffic yet
    AWAITING_PEER_KEY = auto()  # Initiator sent its public value
    KEY_COMPUTED = auto()  # Shared key derived, not yet installed
    COMPLETED = auto()  # Key and IV installed
    FAILED = auto()  # Handshake aborted


class HandshakeEvent(Enum):
    """Events that trigger state transitions."""

    REQUEST_SENT = auto()  # Initiator sent HandshakeRequest
    PEER_KEY_RECEIVED = auto()  # Peer public value processed
    KEY_INSTALLED = auto()  # Cipher session holds key and IV
    FAILURE = auto()  # Any handshake failure


StateListener = Callable[[HandshakeState, HandshakeState], None]


@dataclass
class StateTransition:
    """Represents a state transition."""

    from_state: HandshakeState
    event: HandshakeEvent
    to_state: HandshakeState
    timestamp: float = field(default_factory=time.time)


class HandshakeStateMachine:
    """
    Finite state machine for one connection's handshake.

    Enforces valid transitions, keeps a bounded transition history and
    notifies registered listeners of every state change.
    """

    TRANSITIONS: Dict[HandshakeState, Dict[HandshakeEvent, HandshakeState]] = {
        HandshakeState.NOT_STARTED: {
            HandshakeEvent.REQUEST_SENT: HandshakeState.AWAITING_PEER_KEY,
            HandshakeEvent.PEER_KEY_RECEIVED: HandshakeState.KEY_COMPUTED,
            HandshakeEvent.FAILURE: HandshakeState.FAILED,
        },
        HandshakeState.AWAITING_PEER_KEY: {
            HandshakeEvent.PEER_KEY_RECEIVED: HandshakeState.KEY_COMPUTED,
            HandshakeEvent.FAILURE: HandshakeState.FAILED,
        },
        HandshakeState.KEY_COMPUTED: {
            HandshakeEvent.KEY_INSTALLED: HandshakeState.COMPLETED,
            HandshakeEvent.FAILURE: HandshakeState.FAILED,
        },
        HandshakeState.COMPLETED: {},
        HandshakeState.FAILED: {},
    }

    TERMINAL_STATES = (HandshakeState.COMPLETED, HandshakeState.FAILED)

    def __init__(self):
        self.current_state = HandshakeState.NOT_STARTED
        self.previous_state: Optional[HandshakeState] = None
        self.state_entry_time = time.time()
        self.error_message: Optional[str] = None
        self.transition_history: List[StateTransition] = []
        self.max_history = MAX_TRANSITION_HISTORY
        self._listeners: List[StateListener] = []

    def add_listener(self, listener: StateListener) -> None:
        """Register a callback invoked as listener(old_state, new_state)."""
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_listener(self, listener: StateListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def transition(self, event: HandshakeEvent, error_msg: Optional[str] = None) -> bool:
        """
        Attempt state transition based on event.

        Args:
            event: Event triggering transition
            error_msg: Reason recorded when event is FAILURE

        Returns:
            True if transition successful, False otherwise
        """
        if not self.is_valid_transition(self.current_state, event):
            logger.warning(
                f"Invalid handshake transition: {self.current_state.name} + {event.name}"
            )
            return False

        new_state = self.TRANSITIONS[self.current_state][event]

        if event == HandshakeEvent.FAILURE:
            self.error_message = error_msg or "Unknown error"

        old_state = self.current_state
        self.previous_state = old_state
        self.current_state = new_state
        self.state_entry_time = time.time()

        self.transition_history.append(StateTransition(old_state, event, new_state))
        if len(self.transition_history) > self.max_history:
            self.transition_history = self.transition_history[-self.max_history :]

        logger.info(f"Handshake transition: {old_state.name} -> {new_state.name} (event: {event.name})")

        for listener in list(self._listeners):
            try:
                listener(old_state, new_state)
            except Exception as e:
                logger.error(f"Handshake listener error: {e}")

        return True

    def is_valid_transition(self, from_state: HandshakeState, event: HandshakeEvent) -> bool:
        return event in self.TRANSITIONS.get(from_state, {})

    def get_state(self) -> HandshakeState:
        """Get current state."""
        return self.current_state

    def get_time_in_state(self) -> float:
        """Get time spent in current state (seconds)."""
        return time.time() - self.state_entry_time

    def is_completed(self) -> bool:
        return self.current_state == HandshakeState.COMPLETED

    def is_failed(self) -> bool:
        return self.current_state == HandshakeState.FAILED

    def is_terminal(self) -> bool:
        return self.current_state in self.TERMINAL_STATES

    def get_history(self, count: int = 10) -> List[StateTransition]:
        """
        Get recent transition history.

        Args:
            count: Number of recent transitions to return
        """
        return self.transition_history[-count:]

    def get_statistics(self) -> Dict[str, Any]:
        """
        Get state machine statistics.

        Returns:
            Dictionary with statistics
        """
        event_counts: Dict[str, int] = {}
        for transition in self.transition_history:
            event_name = transition.event.name
            event_counts[event_name] = event_counts.get(event_name, 0) + 1

        return {
            "current_state": self.current_state.name,
            "previous_state": self.previous_state.name if self.previous_state else None,
            "time_in_state": self.get_time_in_state(),
            "error_message": self.error_message,
            "total_transitions": len(self.transition_history),
            "event_counts": event_counts,
            "is_completed": self.is_completed(),
            "is_failed": self.is_failed(),
        }

    def __repr__(self) -> str:
        return (
            f"HandshakeStateMachine(state={self.current_state.name}, "
            f"time_in_state={self.get_time_in_state():.1f}s)"
        )
