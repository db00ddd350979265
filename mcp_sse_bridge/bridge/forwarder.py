"""Forwards each local request category to the remote server.

Listing categories (tools, resources, resource templates, prompts) never
fail towards the local client: a remote error or an unrecognized reply is
logged and reported as an empty collection. Invocation and read categories
(tool calls, prompt retrieval, resource reads) surface every failure to the
local caller.
"""

import logging
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict

from mcp import types as mcp_types
from mcp.server.lowlevel import Server as McpServer
from mcp.shared.exceptions import McpError
from pydantic import ValidationError

from mcp_sse_bridge.bridge.categories import Category, RequestEnvelope
from mcp_sse_bridge.bridge.normalizer import describe_shape, empty_collection, normalize
from mcp_sse_bridge.errors import ForwardingError

if TYPE_CHECKING:
    from mcp_sse_bridge.runtime.models import BridgeSession

logger = logging.getLogger(__name__)

RequestHandler = Callable[[Any], Awaitable[mcp_types.ServerResult]]


class CapabilityForwarder:
    """Relays requests from the local server to the session's remote connection.

    The connection is looked up on every request, so handlers installed
    before the remote side is ready (or after it is released) behave
    predictably instead of holding a stale handle.
    """

    def __init__(self, session: "BridgeSession") -> None:
        self._session = session

    async def _send(self, envelope: RequestEnvelope) -> Any:
        connection = self._session.connection
        if connection is None or connection.closed:
            raise ForwardingError(
                "no remote connection available",
                category=envelope.category.value,
            )
        return await connection.forward(envelope.request)

    async def forward_listing(self, envelope: RequestEnvelope) -> Dict[str, Any]:
        """Forward a listing request; always returns the canonical shape."""
        category = envelope.category
        logger.info("Forwarding %s request to remote server.", category.value)
        try:
            raw = await self._send(envelope)
        except Exception as e_fwd:
            logger.error(
                "Error listing %s from remote server: %s: %s",
                category.canonical_key,
                type(e_fwd).__name__,
                e_fwd,
            )
            return empty_collection(category)

        logger.debug("Raw %s reply (%s): %r", category.value, describe_shape(raw), raw)
        return normalize(category, raw)

    async def forward_invocation(self, envelope: RequestEnvelope) -> Any:
        """Forward an invocation or read request; failures propagate.

        Errors reported by the remote keep their ``McpError`` identity so the
        local caller sees the remote's code and message. Anything else is
        raised as :class:`ForwardingError`.
        """
        category = envelope.category
        target = envelope.describe()
        logger.info("Forwarding %s request: %s", category.value, target or "-")
        try:
            return await self._send(envelope)
        except (McpError, ForwardingError) as e_fwd:
            logger.error("%s '%s' failed: %s", category.value, target, e_fwd)
            raise
        except Exception as e_fwd:
            logger.error(
                "%s '%s' failed: %s: %s",
                category.value,
                target,
                type(e_fwd).__name__,
                e_fwd,
            )
            raise ForwardingError(
                f"remote call for '{target}' failed",
                category=category.value,
                orig_exc=e_fwd,
            ) from e_fwd

    async def handle(self, envelope: RequestEnvelope) -> mcp_types.ServerResult:
        """Forward *envelope* and build the reply for the local server."""
        if envelope.category.is_listing:
            reply = await self.forward_listing(envelope)
        else:
            reply = await self.forward_invocation(envelope)
        return _to_server_result(envelope.category, reply)

    def _make_handler(self, category: Category) -> RequestHandler:
        async def _handler(req: Any) -> mcp_types.ServerResult:
            return await self.handle(RequestEnvelope(category, req))

        _handler.__name__ = f"forward_{category.name.lower()}"
        return _handler

    def register(self, mcp_server: McpServer) -> None:
        """Install one forwarding handler per category on *mcp_server*."""
        for category in Category:
            mcp_server.request_handlers[category.request_type] = self._make_handler(category)
            logger.debug("Registered forwarding handler for %s.", category.value)
        logger.info("Registered %d forwarding handlers.", len(Category))


def _to_server_result(category: Category, reply: Any) -> mcp_types.ServerResult:
    """Wrap *reply* for the local server without altering its content.

    Replies matching the category's result model are sent typed; other
    mappings are passed through as an open result so the local client
    receives exactly what the remote sent.
    """
    try:
        return mcp_types.ServerResult(category.result_type.model_validate(reply))
    except ValidationError as e_val:
        logger.debug(
            "%s reply does not match %s (%d errors); passing it through.",
            category.value,
            category.result_type.__name__,
            e_val.error_count(),
        )

    if isinstance(reply, dict):
        return mcp_types.ServerResult(mcp_types.EmptyResult.model_validate(reply))

    # Listings are always mappings after normalization; only invocations get here.
    raise ForwardingError(
        f"remote reply is {describe_shape(reply)}, expected an object",
        category=category.value,
    )
