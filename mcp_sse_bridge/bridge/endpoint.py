"""Remote endpoint description and address validation."""

from dataclasses import dataclass, field
from typing import Dict, Optional
from urllib.parse import SplitResult, urlsplit

from mcp_sse_bridge.errors import InvalidEndpointError


@dataclass(frozen=True)
class RemoteEndpoint:
    """Where and how to reach the remote MCP server.

    The credential is excluded from ``repr()`` so an endpoint can be
    logged safely.
    """

    address: str
    credential: Optional[str] = field(default=None, repr=False)

    @property
    def has_credential(self) -> bool:
        return bool(self.credential)

    def auth_headers(self) -> Dict[str, str]:
        """Headers every outbound channel must carry for this endpoint."""
        if not self.credential:
            return {}
        return {"Authorization": f"Bearer {self.credential}"}

    def parse(self) -> SplitResult:
        return validate_address(self.address)


def validate_address(address: Optional[str]) -> SplitResult:
    """Parse *address* and require a scheme and a host.

    Raises :class:`InvalidEndpointError` carrying the offending string and
    the reason when the address is not usable.
    """
    if not isinstance(address, str) or not address.strip():
        raise InvalidEndpointError(str(address or ""), "address is empty")
    if address != address.strip() or any(ch.isspace() for ch in address):
        raise InvalidEndpointError(address, "address contains whitespace")

    try:
        parts = urlsplit(address)
        # Accessing the port validates it (non-numeric or out of range).
        parts.port
    except ValueError as e_parse:
        raise InvalidEndpointError(address, str(e_parse)) from e_parse

    if not parts.scheme:
        raise InvalidEndpointError(address, "missing URI scheme")
    if not parts.hostname:
        raise InvalidEndpointError(address, "missing host")
    return parts
