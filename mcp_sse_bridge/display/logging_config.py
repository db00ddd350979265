"""Logging configuration setup.

stdout carries the protocol stream, so every handler configured here
writes to stderr or to a file, never to stdout.
"""

import copy
import logging
import logging.config
import os
import re
import sys
from typing import Optional, Set, Tuple

from mcp_sse_bridge.constants import DEFAULT_LOG_LEVEL

# ── Secret redaction filter ──────────────────────────────────────────────

_REDACTED = "***REDACTED***"


class SecretRedactionFilter(logging.Filter):
    """Logging filter that replaces registered secret values with a placeholder.

    Call :meth:`register` to add values that should be scrubbed.
    """

    def __init__(self) -> None:
        super().__init__()
        self._secrets: Set[str] = set()
        self._pattern: Optional[re.Pattern] = None

    def register(self, value: str) -> None:
        """Register a secret value for redaction."""
        if value and len(value) >= 4:  # skip trivially short values
            self._secrets.add(value)
            # Longest first so overlapping secrets are fully masked
            escaped = sorted((re.escape(s) for s in self._secrets), key=len, reverse=True)
            self._pattern = re.compile("|".join(escaped))

    def filter(self, record: logging.LogRecord) -> bool:
        if self._pattern is not None:
            if isinstance(record.msg, str):
                record.msg = self._pattern.sub(_REDACTED, record.msg)
            if record.args:
                if isinstance(record.args, dict):
                    record.args = {
                        k: self._pattern.sub(_REDACTED, v) if isinstance(v, str) else v
                        for k, v in record.args.items()
                    }
                elif isinstance(record.args, tuple):
                    record.args = tuple(
                        self._pattern.sub(_REDACTED, a) if isinstance(a, str) else a
                        for a in record.args
                    )
        return True


# Module-level singleton so the connection manager can register the credential.
secret_redaction_filter = SecretRedactionFilter()

APP_LOGGERS = (
    "mcp_sse_bridge",
    "mcp_sse_bridge.bridge",
    "mcp_sse_bridge.server",
    "mcp_sse_bridge.config",
    "mcp",
)

BASE_LOG_CFG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "simple_stderr": {
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "datefmt": "%H:%M:%S",
        },
        "simple_file": {
            "format": ("%(asctime)s - %(name)25s:%(lineno)-4d - " "%(levelname)-7s - %(message)s"),
            "datefmt": "%Y-%m-%d %H:%M:%S",
        },
    },
    "handlers": {
        "stderr_handler": {
            "class": "logging.StreamHandler",
            "level": "DEBUG",
            "formatter": "simple_stderr",
            "stream": "ext://sys.stderr",
        },
    },
    "loggers": {
        "httpx": {
            "handlers": ["stderr_handler"],
            "propagate": False,
            "level": "WARNING",
        },
        "httpcore": {
            "handlers": ["stderr_handler"],
            "propagate": False,
            "level": "WARNING",
        },
    },
    "root": {
        "handlers": ["stderr_handler"],
        "level": "WARNING",
    },
}


def setup_logging(log_lvl_str: str, log_file: Optional[str] = None) -> Tuple[Optional[str], str]:
    """
    Set up the logging system.

    Diagnostics go to stderr; when *log_file* is given they are also
    appended to that file.

    Args:
        log_lvl_str: The desired log level string (e.g., 'debug', 'info').
        log_file: Optional path of an additional log file.

    Returns:
        A tuple of (log_file_path or None, validated_log_level).
    """
    log_lvl_valid = (log_lvl_str or DEFAULT_LOG_LEVEL).upper()
    valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if log_lvl_valid not in valid_levels:
        print(
            f"Warning: invalid log level '{log_lvl_str}'. Using '{DEFAULT_LOG_LEVEL}'.",
            file=sys.stderr,
        )
        log_lvl_valid = DEFAULT_LOG_LEVEL

    log_cfg: dict = copy.deepcopy(BASE_LOG_CFG)
    handler_names = ["stderr_handler"]

    if log_file:
        log_dir = os.path.dirname(os.path.abspath(log_file))
        os.makedirs(log_dir, exist_ok=True)
        log_cfg["handlers"]["file_handler"] = {
            "class": "logging.FileHandler",
            "level": "DEBUG",
            "formatter": "simple_file",
            "filename": log_file,
            "encoding": "utf-8",
        }
        handler_names.append("file_handler")
        log_cfg["root"]["handlers"] = list(handler_names)
        for name in ("httpx", "httpcore"):
            log_cfg["loggers"][name]["handlers"] = list(handler_names)

    for name in APP_LOGGERS:
        if "." in name:
            # Children propagate to their top-level logger's handlers.
            log_cfg["loggers"][name] = {"propagate": True, "level": log_lvl_valid}
        else:
            log_cfg["loggers"][name] = {
                "handlers": list(handler_names),
                "propagate": False,
                "level": log_lvl_valid,
            }

    log_cfg["root"]["level"] = log_lvl_valid if log_lvl_valid == "DEBUG" else "WARNING"

    try:
        logging.config.dictConfig(log_cfg)
    except (ValueError, TypeError, AttributeError, ImportError, OSError) as e_log_cfg:
        print(f"Error applying logging configuration: {e_log_cfg}", file=sys.stderr)
        return None, log_lvl_valid

    # Attach secret redaction filter to every handler in use
    for handler in _configured_handlers():
        handler.addFilter(secret_redaction_filter)

    return log_file, log_lvl_valid


def _configured_handlers() -> Set[logging.Handler]:
    handlers: Set[logging.Handler] = set(logging.root.handlers)
    for name in (*APP_LOGGERS, "httpx", "httpcore"):
        handlers.update(logging.getLogger(name).handlers)
    return handlers
