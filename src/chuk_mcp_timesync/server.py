"""MCP server and command line entry points for NTP time sync."""

import asyncio
import logging
import signal
import sys

from chuk_mcp_server import run, tool

from chuk_mcp_timesync.clock import SystemClock
from chuk_mcp_timesync.config import (
    ConfigStore,
    TimeSyncConfig,
    get_config,
    servers_from_environment,
)
from chuk_mcp_timesync.errors import TimeSyncError
from chuk_mcp_timesync.models import (
    ClockComparisonResponse,
    ClockStatus,
    NTPResponse,
    ServerListResponse,
    SyncResult,
    SyncStatus,
)
from chuk_mcp_timesync.ntp_client import NTPClient
from chuk_mcp_timesync.scheduler import SyncScheduler

logger = logging.getLogger(__name__)

# Initialize components
_store = ConfigStore()
_config = get_config(_store)
_ntp_client = NTPClient(
    timeout=_config.ntp_timeout, version=_config.ntp_version, port=_config.ntp_port
)
_scheduler = SyncScheduler(_config, clock_setter=SystemClock())


@tool  # type: ignore[arg-type]
async def sync_clock(servers: list[str] | None = None) -> SyncResult:
    """Synchronize the system clock from the first NTP server that answers.

    Servers are tried one at a time in order. If the corrected time differs
    from the local clock by more than the configured threshold (500ms by
    default) the system clock is set.

    Args:
        servers: Servers to try instead of the configured list

    Returns:
        SyncResult with every server tried and the decision taken
    """
    return await _scheduler.sync(servers)


@tool  # type: ignore[arg-type]
async def query_server(server: str) -> NTPResponse:
    """Query a single NTP server without touching the system clock.

    Args:
        server: NTP server hostname or IPv4 address

    Returns:
        NTPResponse with offset, delay and server details
    """
    try:
        sample = await _ntp_client.query(server)
    except TimeSyncError as e:
        return NTPResponse(server=server, success=False, error=e.message, error_type=e.error_type)

    return NTPResponse(
        server=server,
        success=True,
        address=sample.address,
        transmit_time=sample.transmit_time.isoformat(),
        rtt_ms=sample.rtt_ms,
        offset_ms=sample.offset_ms,
        stratum=sample.stratum_level,
        leap_indicator=sample.leap_indicator.name.lower(),
        reference_identifier=sample.reference_identifier,
    )


@tool  # type: ignore[arg-type]
async def compare_system_clock(servers: list[str] | None = None) -> ClockComparisonResponse:
    """Compare the system clock against NTP time without setting it.

    Args:
        servers: Servers to try instead of the configured list

    Returns:
        ClockComparisonResponse with comparison data
    """
    result = await _scheduler.sync(servers, apply=False)

    if result.sample is None or result.drift_ms is None:
        failed = ", ".join(a.server for a in result.attempts) or "none"
        return ClockComparisonResponse(warnings=[f"No NTP server answered (tried: {failed})"])

    # Positive means the system clock is ahead
    delta_ms = -result.drift_ms
    abs_delta = abs(delta_ms)
    if abs_delta < 100:
        status = ClockStatus.OK
    elif abs_delta < 1000:
        status = ClockStatus.DRIFT
    else:
        status = ClockStatus.ERROR

    return ClockComparisonResponse(
        server=result.server,
        system_time=result.local_time.isoformat() if result.local_time else None,
        trusted_time=result.corrected_time.isoformat() if result.corrected_time else None,
        delta_ms=delta_ms,
        rtt_ms=result.sample.rtt_ms,
        status=status,
    )


@tool  # type: ignore[arg-type]
async def get_server_list() -> ServerListResponse:
    """Get the configured NTP servers, in the order they are tried."""
    return ServerListResponse(servers=_store.get_server_list(), config_file=str(_store.path))


@tool  # type: ignore[arg-type]
async def set_server_list(servers: list[str]) -> ServerListResponse:
    """Replace the configured NTP servers.

    The list is saved to the configuration file and used from the next sync.

    Args:
        servers: NTP server hostnames in the order they should be tried

    Returns:
        ServerListResponse with the saved list
    """
    config = TimeSyncConfig.model_validate(
        {**_scheduler.config.model_dump(), "ntp_servers": servers}
    )
    _store.set_server_list(config.ntp_servers)
    _scheduler.reload_config(config)
    return ServerListResponse(servers=config.ntp_servers, config_file=str(_store.path))


def _format_result(result: SyncResult) -> str:
    if result.status == SyncStatus.ALL_SERVERS_FAILED:
        return "Could not get the time from any server in the list"
    if result.status == SyncStatus.NO_SERVERS:
        return "No NTP servers to query"
    summary = f"{result.server}: drift {result.drift_ms:+.1f}ms"
    if result.status == SyncStatus.IN_SYNC:
        return f"{summary}, no adjustment needed"
    if result.status == SyncStatus.CLOCK_SET:
        return f"{summary}, system clock set"
    if result.status == SyncStatus.DRIFT_DETECTED:
        return f"{summary}, clock not adjusted"
    return f"{summary}, failed to set system clock"


async def _run_service() -> None:
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _scheduler.stop)

    logger.info(
        "Time sync service started (interval %.0fs, %d servers)",
        _scheduler.config.sync_interval,
        len(_scheduler.config.ntp_servers),
    )
    try:
        await _scheduler.run_forever()
    finally:
        # An environment override must not end up in the config file
        if not servers_from_environment():
            _store.set_server_list(_scheduler.config.ntp_servers)
        logger.info("Time sync service stopped")


def main() -> None:
    """Main entry point.

    Usage:
        chuk-mcp-timesync                 MCP server over stdio
        chuk-mcp-timesync http            MCP server over HTTP
        chuk-mcp-timesync sync [host...]  Sync once and exit
        chuk-mcp-timesync service         Sync periodically until stopped
    """
    command = sys.argv[1] if len(sys.argv) > 1 else "stdio"

    if command in ["sync", "service"]:
        logging.basicConfig(
            level=logging.INFO,
            format="%(levelname)s:%(name)s:%(message)s",
            stream=sys.stderr,
        )
        if command == "service":
            asyncio.run(_run_service())
            return

        result = asyncio.run(_scheduler.sync(sys.argv[2:] or None))
        print(_format_result(result))
        sys.exit(0 if result.succeeded else 1)

    # Default to stdio for MCP compatibility (Claude Desktop, mcp-cli)
    transport = "stdio"

    if command in ["http", "--http"]:
        transport = "http"
        logging.basicConfig(
            level=logging.INFO,
            format="%(levelname)s:%(name)s:%(message)s",
            stream=sys.stderr,
        )
        logging.getLogger(__name__).info("Starting Chuk MCP TimeSync Server in HTTP mode")

    # Suppress logging in STDIO mode to avoid polluting JSON-RPC stream
    if transport == "stdio":
        logging.basicConfig(
            level=logging.WARNING,
            format="%(levelname)s:%(name)s:%(message)s",
            stream=sys.stderr,
        )
        # Set chuk_mcp_server loggers to ERROR only
        logging.getLogger("chuk_mcp_server").setLevel(logging.ERROR)
        logging.getLogger("chuk_mcp_server.core").setLevel(logging.ERROR)
        logging.getLogger("chuk_mcp_server.stdio_transport").setLevel(logging.ERROR)

    run(transport=transport)


if __name__ == "__main__":
    main()
