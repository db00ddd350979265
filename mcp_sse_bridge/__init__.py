"""
MCP SSE Bridge - exposes a remote SSE MCP server over local stdio.

The bridge speaks MCP to exactly one local client on stdin/stdout and
forwards every request to one remote MCP server reached through the SSE
transport, optionally authenticated with a bearer token.
"""

from mcp_sse_bridge.constants import SERVER_NAME, SERVER_VERSION

__version__ = SERVER_VERSION
__app_name__ = SERVER_NAME

__all__ = [
    "SERVER_NAME",
    "SERVER_VERSION",
    "__version__",
    "__app_name__",
]
