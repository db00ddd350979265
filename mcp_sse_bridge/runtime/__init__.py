"""Runtime state of the bridge.

Re-exports the key symbols so callers can write::

    from mcp_sse_bridge.runtime import BridgeSession, SessionState
"""

from mcp_sse_bridge.runtime.models import BridgeSession, SessionState, is_valid_transition

__all__ = [
    "BridgeSession",
    "SessionState",
    "is_valid_transition",
]
