"""Local side of the bridge: stdio transport and session lifecycle."""

from mcp_sse_bridge.server.lifecycle import LifecycleController
from mcp_sse_bridge.server.transport import LocalListener, stdio_listener

__all__ = [
    "LifecycleController",
    "LocalListener",
    "stdio_listener",
]
