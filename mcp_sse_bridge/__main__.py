"""Allow ``python -m mcp_sse_bridge``."""

from mcp_sse_bridge.cli import main

if __name__ == "__main__":
    main()
