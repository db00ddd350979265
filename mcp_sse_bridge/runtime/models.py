"""Runtime state for the single bridge session of a process."""

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Dict, Optional

from mcp_sse_bridge.bridge.connection import RemoteConnection

if TYPE_CHECKING:
    from mcp_sse_bridge.server.transport import LocalListener


class SessionState(str, Enum):
    """Lifecycle states for the bridge session.

    Valid transitions::

        INITIALIZING → CONNECTED → SHUTTING_DOWN → CLOSED
              ↘________________________↗
                   (startup failure)
    """

    INITIALIZING = "initializing"
    CONNECTED = "connected"
    SHUTTING_DOWN = "shutting_down"
    CLOSED = "closed"


# Valid state transitions: current_state → set of allowed next states
_VALID_TRANSITIONS: Dict[SessionState, frozenset[SessionState]] = {
    SessionState.INITIALIZING: frozenset({SessionState.CONNECTED, SessionState.SHUTTING_DOWN}),
    SessionState.CONNECTED: frozenset({SessionState.SHUTTING_DOWN}),
    SessionState.SHUTTING_DOWN: frozenset({SessionState.CLOSED}),
    SessionState.CLOSED: frozenset(),
}


def is_valid_transition(current: SessionState, target: SessionState) -> bool:
    """Check whether a state transition is allowed."""
    return target in _VALID_TRANSITIONS.get(current, frozenset())


@dataclass
class BridgeSession:
    """The live pairing of one local listener and one remote connection.

    Owned by the lifecycle controller, which is the only writer. Handles
    are handed out for release exactly once through :meth:`take_connection`
    and :meth:`take_listener`.
    """

    state: SessionState = SessionState.INITIALIZING
    connection: Optional[RemoteConnection] = None
    listener: Optional["LocalListener"] = None

    def transition(self, new_state: SessionState) -> None:
        """Move to *new_state*.

        Raises :class:`ValueError` if the transition is invalid.
        """
        if not is_valid_transition(self.state, new_state):
            raise ValueError(
                f"Invalid session transition: {self.state.value} → {new_state.value}"
            )
        self.state = new_state

    def take_connection(self) -> Optional[RemoteConnection]:
        connection, self.connection = self.connection, None
        return connection

    def take_listener(self) -> Optional["LocalListener"]:
        listener, self.listener = self.listener, None
        return listener
