"""RPC categories handled by the bridge and their protocol bindings."""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Type

from mcp import types as mcp_types


class Category(str, Enum):
    """The request categories forwarded to the remote server.

    The value is the MCP method name.
    """

    LIST_TOOLS = "tools/list"
    CALL_TOOL = "tools/call"
    LIST_RESOURCES = "resources/list"
    READ_RESOURCE = "resources/read"
    LIST_RESOURCE_TEMPLATES = "resources/templates/list"
    LIST_PROMPTS = "prompts/list"
    GET_PROMPT = "prompts/get"

    @property
    def is_listing(self) -> bool:
        return self in CANONICAL_KEYS

    @property
    def canonical_key(self) -> Optional[str]:
        """Key under which a listing reply carries its items."""
        return CANONICAL_KEYS.get(self)

    @property
    def request_type(self) -> Type[Any]:
        return REQUEST_TYPES[self]

    @property
    def result_type(self) -> Type[Any]:
        return RESULT_TYPES[self]


CANONICAL_KEYS: Dict[Category, str] = {
    Category.LIST_TOOLS: "tools",
    Category.LIST_RESOURCES: "resources",
    Category.LIST_RESOURCE_TEMPLATES: "resourceTemplates",
    Category.LIST_PROMPTS: "prompts",
}

REQUEST_TYPES: Dict[Category, Type[Any]] = {
    Category.LIST_TOOLS: mcp_types.ListToolsRequest,
    Category.CALL_TOOL: mcp_types.CallToolRequest,
    Category.LIST_RESOURCES: mcp_types.ListResourcesRequest,
    Category.READ_RESOURCE: mcp_types.ReadResourceRequest,
    Category.LIST_RESOURCE_TEMPLATES: mcp_types.ListResourceTemplatesRequest,
    Category.LIST_PROMPTS: mcp_types.ListPromptsRequest,
    Category.GET_PROMPT: mcp_types.GetPromptRequest,
}

RESULT_TYPES: Dict[Category, Type[Any]] = {
    Category.LIST_TOOLS: mcp_types.ListToolsResult,
    Category.CALL_TOOL: mcp_types.CallToolResult,
    Category.LIST_RESOURCES: mcp_types.ListResourcesResult,
    Category.READ_RESOURCE: mcp_types.ReadResourceResult,
    Category.LIST_RESOURCE_TEMPLATES: mcp_types.ListResourceTemplatesResult,
    Category.LIST_PROMPTS: mcp_types.ListPromptsResult,
    Category.GET_PROMPT: mcp_types.GetPromptResult,
}


@dataclass(frozen=True)
class RequestEnvelope:
    """One inbound request, carried to the remote server untouched.

    ``request`` is the protocol request object received from the local
    client; the bridge never inspects or rewrites its parameters.
    """

    category: Category
    request: Any

    @property
    def params(self) -> Any:
        return getattr(self.request, "params", None)

    def describe(self) -> str:
        """Short target description for log lines (tool/prompt name or URI)."""
        params = self.params
        if params is None:
            return ""
        for attr in ("name", "uri"):
            value = getattr(params, attr, None)
            if value is not None:
                return str(value)
        return ""
