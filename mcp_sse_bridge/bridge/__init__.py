"""Remote side of the bridge: endpoint, connection, forwarding and normalization."""

from mcp_sse_bridge.bridge.categories import Category, RequestEnvelope
from mcp_sse_bridge.bridge.connection import ConnectionManager, RemoteConnection
from mcp_sse_bridge.bridge.endpoint import RemoteEndpoint, validate_address
from mcp_sse_bridge.bridge.forwarder import CapabilityForwarder
from mcp_sse_bridge.bridge.normalizer import empty_collection, normalize

__all__ = [
    "CapabilityForwarder",
    "Category",
    "ConnectionManager",
    "RemoteConnection",
    "RemoteEndpoint",
    "RequestEnvelope",
    "empty_collection",
    "normalize",
    "validate_address",
]
