"""Outbound connection to the remote MCP server over the SSE transport."""

import asyncio
import logging
from contextlib import AsyncExitStack
from typing import Any, Optional

import httpx
from mcp import ClientSession
from mcp import types as mcp_types
from mcp.client.sse import sse_client
from pydantic import RootModel

from mcp_sse_bridge.bridge.endpoint import RemoteEndpoint
from mcp_sse_bridge.constants import (
    CLIENT_NAME,
    CLIENT_VERSION,
    SSE_HTTP_TIMEOUT,
    SSE_READ_TIMEOUT,
)
from mcp_sse_bridge.display.logging_config import secret_redaction_filter
from mcp_sse_bridge.errors import RemoteConnectionError

logger = logging.getLogger(__name__)

SSE_NET_EXCS = (
    httpx.ConnectError,
    httpx.TimeoutException,
    httpx.NetworkError,
    httpx.HTTPStatusError,
)


class _RawResult(RootModel[Any]):
    """Accepts any JSON result so replies reach the bridge as sent."""


class RemoteConnection:
    """An established, initialized session with the remote server."""

    def __init__(
        self,
        endpoint: RemoteEndpoint,
        session: ClientSession,
        exit_stack: AsyncExitStack,
        server_info: Optional[mcp_types.Implementation] = None,
    ) -> None:
        self.endpoint = endpoint
        self.server_info = server_info
        self._session = session
        self._exit_stack = exit_stack
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def forward(self, request: Any) -> Any:
        """Send a client request object verbatim and return the raw result.

        Errors reported by the remote surface as ``McpError`` carrying the
        remote's error data.
        """
        result = await self._session.send_request(mcp_types.ClientRequest(request), _RawResult)
        return result.root

    async def close(self) -> None:
        """Release the session and both transport channels. Idempotent."""
        if self._closed:
            logger.debug("Remote connection already closed; nothing to do.")
            return
        self._closed = True
        logger.info("Closing remote connection to %s...", self.endpoint.address)
        await self._exit_stack.aclose()
        logger.info("Remote connection closed.")


def _unwrap_group(e: BaseException) -> BaseException:
    """Return the sole exception of a single-member exception group."""
    inner = getattr(e, "exceptions", None)
    while inner is not None and len(inner) == 1:
        e = inner[0]
        inner = getattr(e, "exceptions", None)
    return e


def _log_connect_fail(endpoint: RemoteEndpoint, e: BaseException) -> None:
    """Helper to log remote connection/handshake failures."""
    e = _unwrap_group(e)
    if isinstance(e, TimeoutError):
        logger.error("[%s] Connection timed out.", endpoint.address)
    elif isinstance(e, (*SSE_NET_EXCS, ConnectionRefusedError, ConnectionError)):
        logger.error(
            "[%s] Network/connection error during connect/initialize: %s: %s",
            endpoint.address,
            type(e).__name__,
            e,
        )
    else:
        logger.error(
            "[%s] Unexpected error during connect/initialize.",
            endpoint.address,
            exc_info=True,
        )


class ConnectionManager:
    """Owns the outbound connection to the remote MCP server."""

    def __init__(
        self,
        timeout: float = SSE_HTTP_TIMEOUT,
        sse_read_timeout: float = SSE_READ_TIMEOUT,
    ) -> None:
        self._timeout = timeout
        self._sse_read_timeout = sse_read_timeout

    async def connect(self, endpoint: RemoteEndpoint) -> RemoteConnection:
        """Validate *endpoint*, open the SSE transport and run the handshake.

        Raises:
            InvalidEndpointError: The address is malformed. Raised before
                any network activity.
            RemoteConnectionError: The transport or the MCP handshake
                failed; the underlying cause is attached.
        """
        parts = endpoint.parse()
        logger.info("Connecting to SSE endpoint: %s", endpoint.address)
        logger.info(
            "URL components - scheme: %s, host: %s, path: %s",
            parts.scheme,
            parts.netloc,
            parts.path or "/",
        )

        headers = endpoint.auth_headers()
        if endpoint.has_credential:
            secret_redaction_filter.register(endpoint.credential or "")
            logger.info("Using API key authentication")
        else:
            logger.info("No API key configured; connecting without authentication")

        exit_stack = AsyncExitStack()
        try:
            transport_ctx = sse_client(
                url=endpoint.address,
                headers=headers or None,
                timeout=self._timeout,
                sse_read_timeout=self._sse_read_timeout,
            )
            read_stream, write_stream = await exit_stack.enter_async_context(transport_ctx)
            logger.debug("(sse) transport streams established.")

            session_ctx = ClientSession(
                read_stream,
                write_stream,
                client_info=mcp_types.Implementation(name=CLIENT_NAME, version=CLIENT_VERSION),
            )
            session = await exit_stack.enter_async_context(session_ctx)

            logger.info("Attempting MCP handshake with remote server...")
            init_result = await session.initialize()
        except asyncio.CancelledError:
            logger.info("[%s] Connection attempt cancelled.", endpoint.address)
            try:
                await exit_stack.aclose()
            except Exception:
                logger.debug("Error releasing partially opened connection.", exc_info=True)
            raise
        except Exception as e_conn:
            _log_connect_fail(endpoint, e_conn)
            try:
                await exit_stack.aclose()
            except Exception:
                logger.debug("Error releasing partially opened connection.", exc_info=True)
            raise RemoteConnectionError(
                f"Failed to connect to SSE server at {endpoint.address}",
                orig_exc=_unwrap_group(e_conn),
            ) from e_conn

        server_info = getattr(init_result, "serverInfo", None)
        if server_info is not None:
            logger.info(
                "Successfully connected to SSE server '%s' v%s.",
                server_info.name,
                server_info.version,
            )
        else:
            logger.info("Successfully connected to SSE server.")
        return RemoteConnection(endpoint, session, exit_stack, server_info=server_info)
