"""Shared constants for MCP SSE Bridge."""

SERVER_NAME = "MCP SSE Bridge"
SERVER_VERSION = "1.0.0"

# Name reported to local clients when none is configured
DEFAULT_SERVER_NAME = "My MCP Server"

# Identity presented to the remote server during the handshake
CLIENT_NAME = "proxy-client"
CLIENT_VERSION = "1.0.0"

# Process configuration environment variables (override positional args)
ENV_SERVER_NAME = "SERVER_NAME"
ENV_SSE_URL = "SSE_URL"
ENV_API_KEY = "API_KEY"
ENV_LOG_LEVEL = "LOG_LEVEL"
ENV_LOG_FILE = "LOG_FILE"

# Logging defaults
DEFAULT_LOG_LEVEL = "INFO"

# Remote transport timeouts, handed to the SSE transport unchanged
SSE_HTTP_TIMEOUT = 5.0  # seconds for regular HTTP operations
SSE_READ_TIMEOUT = 300.0  # seconds to wait for a new event on the stream

# Exit statuses
EXIT_OK = 0
EXIT_FAILURE = 1
