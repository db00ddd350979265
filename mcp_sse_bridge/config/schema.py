"""Pydantic model for the process configuration."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from mcp_sse_bridge.bridge.endpoint import RemoteEndpoint
from mcp_sse_bridge.constants import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_SERVER_NAME,
    SSE_HTTP_TIMEOUT,
    SSE_READ_TIMEOUT,
)

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class BridgeConfig(BaseModel):
    """Everything the bridge needs, resolved once at startup."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    server_name: str = Field(
        default=DEFAULT_SERVER_NAME,
        min_length=1,
        description="Name reported to the local client.",
    )
    sse_url: str = Field(
        ...,
        min_length=1,
        description="Remote SSE endpoint address.",
    )
    api_key: Optional[str] = Field(
        default=None,
        repr=False,
        description="Optional bearer credential for the remote server.",
    )
    log_level: str = Field(default=DEFAULT_LOG_LEVEL)
    log_file: Optional[str] = Field(
        default=None,
        description="Optional file receiving a copy of the diagnostics.",
    )
    timeout: float = Field(
        default=SSE_HTTP_TIMEOUT,
        gt=0,
        description="HTTP timeout in seconds for the remote transport.",
    )
    sse_read_timeout: float = Field(
        default=SSE_READ_TIMEOUT,
        gt=0,
        description="Seconds to wait for a new event on the remote stream.",
    )

    @field_validator("api_key", "log_file")
    @classmethod
    def _blank_is_none(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def _known_level(cls, v: str) -> str:
        level = v.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level

    def endpoint(self) -> RemoteEndpoint:
        return RemoteEndpoint(address=self.sse_url, credential=self.api_key)
