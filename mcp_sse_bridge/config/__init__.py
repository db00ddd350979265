"""Configuration resolution and validation for MCP SSE Bridge."""

from mcp_sse_bridge.config.loader import USAGE, build_arg_parser, resolve_config
from mcp_sse_bridge.config.schema import BridgeConfig

__all__ = [
    "USAGE",
    "BridgeConfig",
    "build_arg_parser",
    "resolve_config",
]
