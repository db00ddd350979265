"""Display subpackage - logging configuration."""

from mcp_sse_bridge.display.logging_config import secret_redaction_filter, setup_logging

__all__ = [
    "secret_redaction_filter",
    "setup_logging",
]
