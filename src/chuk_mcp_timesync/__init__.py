"""NTP time sync client and MCP server."""

__version__ = "1.0.0"

from chuk_mcp_timesync.server import (
    compare_system_clock,
    get_server_list,
    main,
    query_server,
    set_server_list,
    sync_clock,
)

__all__ = [
    "sync_clock",
    "query_server",
    "compare_system_clock",
    "get_server_list",
    "set_server_list",
    "main",
    "__version__",
]
