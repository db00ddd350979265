"""Custom exception classes for MCP SSE Bridge."""

from typing import Optional


class BridgeBaseError(Exception):
    """Base class for all custom exceptions in MCP SSE Bridge."""

    pass


class ConfigurationError(BridgeBaseError):
    """Raised when the process configuration is missing or invalid."""

    pass


class InvalidEndpointError(ConfigurationError):
    """Raised when the remote endpoint address is not a well-formed URI."""

    def __init__(self, address: str, reason: str):
        self.address = address
        self.reason = reason
        super().__init__(f"Invalid SSE URL format: {address!r} - {reason}")


class RemoteConnectionError(BridgeBaseError):
    """
    Raised when the connection or MCP handshake with the remote
    server fails. Fatal during startup.
    """

    def __init__(self, message: str, orig_exc: Optional[BaseException] = None):
        self.orig_exc = orig_exc

        full_msg = f"Remote connection error: {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__}: {orig_exc})"
        super().__init__(full_msg)


class ForwardingError(BridgeBaseError):
    """
    Raised when forwarding an invocation or read request to the remote
    server fails for a reason other than an error reported by the remote.
    """

    def __init__(
        self,
        message: str,
        category: Optional[str] = None,
        orig_exc: Optional[BaseException] = None,
    ):
        self.category = category
        self.orig_exc = orig_exc

        full_msg = "Forwarding error"
        if category:
            full_msg += f" ({category})"
        full_msg += f": {message}"
        if orig_exc:
            full_msg += f" (original error: {type(orig_exc).__name__})"
        super().__init__(full_msg)
