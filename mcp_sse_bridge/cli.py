"""CLI entry point."""

import asyncio
import logging
import sys
from typing import Mapping, Optional, Sequence

from mcp_sse_bridge.config import BridgeConfig, resolve_config
from mcp_sse_bridge.constants import EXIT_FAILURE, EXIT_OK, SERVER_NAME, SERVER_VERSION
from mcp_sse_bridge.display.logging_config import setup_logging
from mcp_sse_bridge.errors import ConfigurationError
from mcp_sse_bridge.server.lifecycle import LifecycleController

module_logger = logging.getLogger(__name__)


def _log_config(cfg: BridgeConfig, log_fpath: Optional[str], log_lvl: str) -> None:
    module_logger.info("---- %s v%s starting (log level: %s) ----", SERVER_NAME, SERVER_VERSION, log_lvl)
    module_logger.info("Server name: %s", cfg.server_name)
    module_logger.info("SSE URL: %s", cfg.sse_url)
    module_logger.info("API Key: %s", "[SET]" if cfg.api_key else "[NOT SET]")
    if log_fpath:
        module_logger.info("Also logging to file: %s", log_fpath)


def run(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> int:
    """Resolve configuration, run the bridge and return the exit status."""
    try:
        cfg = resolve_config(argv, environ)
    except ConfigurationError as e_cfg:
        # Logging is not configured yet; stderr only.
        print(f"Error: {e_cfg}", file=sys.stderr)
        return EXIT_FAILURE

    log_fpath, log_lvl = setup_logging(cfg.log_level, cfg.log_file)
    _log_config(cfg, log_fpath, log_lvl)

    try:
        return asyncio.run(LifecycleController(cfg).run())
    except KeyboardInterrupt:
        module_logger.info("%s interrupted by KeyboardInterrupt.", SERVER_NAME)
        return EXIT_OK
    except Exception as e_fatal:
        module_logger.exception("%s encountered an uncaught fatal error: %s", SERVER_NAME, e_fatal)
        return EXIT_FAILURE
    finally:
        module_logger.info("%s finished.", SERVER_NAME)


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
