"""Process configuration resolution.

Values come from positional command-line arguments and from environment
variables; an environment variable always wins over its positional
counterpart. The result is validated into :class:`BridgeConfig`.
"""

import argparse
import os
from typing import Any, Dict, Mapping, Optional, Sequence

from pydantic import ValidationError

from mcp_sse_bridge.config.schema import BridgeConfig
from mcp_sse_bridge.constants import (
    DEFAULT_SERVER_NAME,
    ENV_API_KEY,
    ENV_LOG_FILE,
    ENV_LOG_LEVEL,
    ENV_SERVER_NAME,
    ENV_SSE_URL,
    SERVER_NAME,
    SERVER_VERSION,
)
from mcp_sse_bridge.errors import ConfigurationError

PROG = "mcp-sse-bridge"

USAGE = (
    f"Usage: {PROG} <SERVER_NAME> <SSE_URL> [API_KEY]\n"
    f"   or: {ENV_SERVER_NAME}=<name> {ENV_SSE_URL}=<url> {ENV_API_KEY}=<key> {PROG}\n"
    f'Example: {PROG} "STDIO to SSE Proxy MCP Server" '
    "https://example.com/api/sse your-api-key"
)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=PROG,
        description=f"{SERVER_NAME} v{SERVER_VERSION}: expose a remote SSE MCP server over stdio",
        epilog=USAGE,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "server_name",
        nargs="?",
        default=None,
        help=f"Name reported to the MCP client (env: {ENV_SERVER_NAME}, "
        f"default: {DEFAULT_SERVER_NAME!r})",
    )
    parser.add_argument(
        "sse_url",
        nargs="?",
        default=None,
        help=f"Remote MCP SSE endpoint (env: {ENV_SSE_URL}, required)",
    )
    parser.add_argument(
        "api_key",
        nargs="?",
        default=None,
        help=f"Bearer token for the remote server (env: {ENV_API_KEY})",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["debug", "info", "warning", "error", "critical"],
        help=f"Diagnostic log level (env: {ENV_LOG_LEVEL}, default: info)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default=None,
        help=f"Also write diagnostics to this file (env: {ENV_LOG_FILE})",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help="HTTP timeout in seconds for the remote transport",
    )
    parser.add_argument(
        "--sse-read-timeout",
        type=float,
        default=None,
        help="Seconds to wait for a new event on the remote stream",
    )
    return parser


def _pick(environ: Mapping[str, str], env_name: str, arg_value: Optional[str]) -> Optional[str]:
    """Environment variable first, then the command-line value."""
    env_value = environ.get(env_name)
    if env_value:
        return env_value
    return arg_value or None


def resolve_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> BridgeConfig:
    """Build the validated configuration from *argv* and *environ*.

    Raises:
        ConfigurationError: The remote endpoint address is missing or a
            value fails validation. The message includes usage help.
    """
    if environ is None:
        environ = os.environ
    args = build_arg_parser().parse_args(argv)

    sse_url = _pick(environ, ENV_SSE_URL, args.sse_url)
    if not sse_url:
        raise ConfigurationError(f"Missing remote SSE URL.\n{USAGE}")

    values: Dict[str, Any] = {
        "server_name": _pick(environ, ENV_SERVER_NAME, args.server_name) or DEFAULT_SERVER_NAME,
        "sse_url": sse_url,
        "api_key": _pick(environ, ENV_API_KEY, args.api_key),
    }
    log_level = _pick(environ, ENV_LOG_LEVEL, args.log_level)
    if log_level:
        values["log_level"] = log_level
    log_file = _pick(environ, ENV_LOG_FILE, args.log_file)
    if log_file:
        values["log_file"] = log_file
    if args.timeout is not None:
        values["timeout"] = args.timeout
    if args.sse_read_timeout is not None:
        values["sse_read_timeout"] = args.sse_read_timeout

    try:
        return BridgeConfig(**values)
    except ValidationError as e_val:
        raise ConfigurationError(f"Invalid configuration:\n{e_val}\n{USAGE}") from e_val
