"""Tests for the MCP tools and command line entry point."""

from datetime import UTC, datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from chuk_mcp_timesync.config import ConfigStore, TimeSyncConfig
from chuk_mcp_timesync.errors import QueryTimeoutError
from chuk_mcp_timesync.models import (
    ClockStatus,
    ExchangeSample,
    LeapIndicator,
    NTPError,
    ServerAttempt,
    Stratum,
    SyncResult,
    SyncStatus,
)
from chuk_mcp_timesync.scheduler import SyncScheduler

LOCAL_NOW = datetime(2025, 1, 15, 10, 0, 0, tzinfo=UTC)


def _sample(offset_ms: float) -> ExchangeSample:
    server_time = LOCAL_NOW + timedelta(milliseconds=offset_ms)
    return ExchangeSample(
        server="pool.ntp.org",
        address="192.0.2.1",
        originate_time=LOCAL_NOW,
        receive_time=server_time,
        transmit_time=server_time,
        destination_time=LOCAL_NOW + timedelta(milliseconds=20),
        stratum=Stratum.SECONDARY_REFERENCE,
        stratum_level=2,
        leap_indicator=LeapIndicator.NO_WARNING,
        version=3,
        reference_identifier="10.0.0.1",
    )


def _result(status: SyncStatus, drift_ms: float | None = None) -> SyncResult:
    if drift_ms is None:
        return SyncResult(
            status=status,
            attempts=[
                ServerAttempt(
                    server="pool.ntp.org",
                    success=False,
                    error="no response",
                    error_type=NTPError.TIMEOUT,
                )
            ],
        )
    return SyncResult(
        status=status,
        server="pool.ntp.org",
        attempts=[ServerAttempt(server="pool.ntp.org", success=True, offset_ms=drift_ms)],
        local_time=LOCAL_NOW,
        corrected_time=LOCAL_NOW + timedelta(milliseconds=drift_ms),
        drift_ms=drift_ms,
        sample=_sample(drift_ms),
    )


@pytest.mark.asyncio
async def test_sync_clock_delegates_to_scheduler() -> None:
    """Test that sync_clock runs a scan with the given servers."""
    from chuk_mcp_timesync.server import sync_clock

    expected = _result(SyncStatus.CLOCK_SET, 1200.0)
    with patch("chuk_mcp_timesync.server._scheduler.sync", new_callable=AsyncMock) as mock_sync:
        mock_sync.return_value = expected
        response = await sync_clock(servers=["pool.ntp.org"])

    mock_sync.assert_awaited_once_with(["pool.ntp.org"])
    assert response.status == SyncStatus.CLOCK_SET


@pytest.mark.asyncio
async def test_query_server_success() -> None:
    """Test query_server with a successful exchange."""
    from chuk_mcp_timesync.server import query_server

    with patch(
        "chuk_mcp_timesync.server._ntp_client.query", new_callable=AsyncMock
    ) as mock_query:
        mock_query.return_value = _sample(450.0)
        response = await query_server("pool.ntp.org")

    assert response.success is True
    assert response.address == "192.0.2.1"
    assert response.stratum == 2
    assert response.leap_indicator == "no_warning"
    assert response.reference_identifier == "10.0.0.1"
    assert response.offset_ms == pytest.approx(440.0)
    assert response.rtt_ms == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_query_server_failure() -> None:
    """Test that query_server reports errors instead of raising."""
    from chuk_mcp_timesync.server import query_server

    with patch(
        "chuk_mcp_timesync.server._ntp_client.query", new_callable=AsyncMock
    ) as mock_query:
        mock_query.side_effect = QueryTimeoutError("No response from pool.ntp.org within 3.0s")
        response = await query_server("pool.ntp.org")

    assert response.success is False
    assert response.error_type == NTPError.TIMEOUT
    assert "No response" in (response.error or "")


@pytest.mark.asyncio
async def test_compare_system_clock_status_logic() -> None:
    """Test that compare_system_clock correctly categorizes clock status."""
    from chuk_mcp_timesync.server import compare_system_clock

    test_cases = [
        (50.0, ClockStatus.OK),
        (-150.0, ClockStatus.DRIFT),
        (1500.0, ClockStatus.ERROR),
    ]
    for drift_ms, expected_status in test_cases:
        status = SyncStatus.IN_SYNC if abs(drift_ms) <= 500 else SyncStatus.DRIFT_DETECTED
        with patch(
            "chuk_mcp_timesync.server._scheduler.sync", new_callable=AsyncMock
        ) as mock_sync:
            mock_sync.return_value = _result(status, drift_ms)
            response = await compare_system_clock()

        mock_sync.assert_awaited_once_with(None, apply=False)
        assert response.status == expected_status
        # Positive delta means the system clock is ahead
        assert response.delta_ms == pytest.approx(-drift_ms)
        assert response.server == "pool.ntp.org"


@pytest.mark.asyncio
async def test_compare_system_clock_no_server() -> None:
    """Test compare_system_clock when every server fails."""
    from chuk_mcp_timesync.server import compare_system_clock

    with patch("chuk_mcp_timesync.server._scheduler.sync", new_callable=AsyncMock) as mock_sync:
        mock_sync.return_value = _result(SyncStatus.ALL_SERVERS_FAILED)
        response = await compare_system_clock(servers=["pool.ntp.org"])

    assert response.status is None
    assert response.delta_ms is None
    assert any("pool.ntp.org" in w for w in response.warnings)


class _NoClock:
    def set_system_clock(self, when: datetime) -> bool:
        return False


@pytest.mark.asyncio
async def test_set_and_get_server_list(tmp_path: Path) -> None:
    """Test that set_server_list persists the list and stages a reload."""
    from chuk_mcp_timesync.server import get_server_list, set_server_list

    store = ConfigStore(tmp_path / "timesync.ini")
    scheduler = SyncScheduler(TimeSyncConfig(ntp_servers=["old.example"]), clock_setter=_NoClock())

    with (
        patch("chuk_mcp_timesync.server._store", store),
        patch("chuk_mcp_timesync.server._scheduler", scheduler),
    ):
        response = await set_server_list([" ntp.aliyun.com ", "pool.ntp.org"])
        listed = await get_server_list()

    assert response.servers == ["ntp.aliyun.com", "pool.ntp.org"]
    assert listed.servers == ["ntp.aliyun.com", "pool.ntp.org"]
    assert listed.config_file == str(tmp_path / "timesync.ini")
    assert store.get_server_list() == ["ntp.aliyun.com", "pool.ntp.org"]
    # Applied when the next scan starts
    assert scheduler.config.ntp_servers == ["old.example"]


@pytest.mark.asyncio
async def test_set_server_list_rejects_empty(tmp_path: Path) -> None:
    """Test that an empty server list is refused and nothing is written."""
    from pydantic import ValidationError

    from chuk_mcp_timesync.server import set_server_list

    store = ConfigStore(tmp_path / "timesync.ini")
    with patch("chuk_mcp_timesync.server._store", store):
        with pytest.raises(ValidationError):
            await set_server_list([])

    assert not store.path.exists()


def test_server_main_exists() -> None:
    """Test that server main function exists."""
    from chuk_mcp_timesync.server import main

    assert callable(main)


def test_main_stdio_mode() -> None:
    """Test main function in stdio mode."""
    with patch("chuk_mcp_timesync.server.run") as mock_run:
        with patch("sys.argv", ["chuk-mcp-timesync"]):
            from chuk_mcp_timesync.server import main

            main()
            mock_run.assert_called_once_with(transport="stdio")


def test_main_http_mode() -> None:
    """Test main function in http mode."""
    with patch("chuk_mcp_timesync.server.run") as mock_run:
        with patch("sys.argv", ["chuk-mcp-timesync", "http"]):
            from chuk_mcp_timesync.server import main

            main()
            mock_run.assert_called_once_with(transport="http")


def test_main_http_mode_with_flag() -> None:
    """Test main function with --http flag."""
    with patch("chuk_mcp_timesync.server.run") as mock_run:
        with patch("sys.argv", ["chuk-mcp-timesync", "--http"]):
            from chuk_mcp_timesync.server import main

            main()
            mock_run.assert_called_once_with(transport="http")


def test_main_sync_with_explicit_servers(capsys: pytest.CaptureFixture[str]) -> None:
    """Test a one-shot sync against servers given on the command line."""
    from chuk_mcp_timesync.server import main

    with patch("chuk_mcp_timesync.server._scheduler.sync", new_callable=AsyncMock) as mock_sync:
        mock_sync.return_value = _result(SyncStatus.CLOCK_SET, 1200.0)
        with patch("sys.argv", ["chuk-mcp-timesync", "sync", "a.example", "b.example"]):
            with pytest.raises(SystemExit) as exc_info:
                main()

    mock_sync.assert_awaited_once_with(["a.example", "b.example"])
    assert exc_info.value.code == 0
    assert "system clock set" in capsys.readouterr().out


def test_main_sync_configured_servers_failure(capsys: pytest.CaptureFixture[str]) -> None:
    """Test a one-shot sync over the configured list when every server fails."""
    from chuk_mcp_timesync.server import main

    with patch("chuk_mcp_timesync.server._scheduler.sync", new_callable=AsyncMock) as mock_sync:
        mock_sync.return_value = _result(SyncStatus.ALL_SERVERS_FAILED)
        with patch("sys.argv", ["chuk-mcp-timesync", "sync"]):
            with pytest.raises(SystemExit) as exc_info:
                main()

    mock_sync.assert_awaited_once_with(None)
    assert exc_info.value.code == 1
    assert "any server" in capsys.readouterr().out


def test_main_service_saves_server_list(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that the service writes the server list back when it stops."""
    from chuk_mcp_timesync.server import main

    monkeypatch.delenv("TIMESYNC_NTP_SERVERS", raising=False)

    store = ConfigStore(tmp_path / "timesync.ini")
    scheduler = SyncScheduler(TimeSyncConfig(ntp_servers=["svc.example"]), clock_setter=_NoClock())

    with (
        patch("chuk_mcp_timesync.server._store", store),
        patch("chuk_mcp_timesync.server._scheduler", scheduler),
        patch.object(scheduler, "run_forever", new_callable=AsyncMock) as mock_run_forever,
        patch("sys.argv", ["chuk-mcp-timesync", "service"]),
    ):
        main()

    mock_run_forever.assert_awaited_once()
    assert store.get_server_list() == ["svc.example"]


def test_main_service_keeps_environment_servers_out_of_file(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that servers from TIMESYNC_NTP_SERVERS are not written to the config file."""
    from chuk_mcp_timesync.server import main

    monkeypatch.setenv("TIMESYNC_NTP_SERVERS", "env.example")
    store = ConfigStore(tmp_path / "timesync.ini")
    scheduler = SyncScheduler(TimeSyncConfig(ntp_servers=["env.example"]), clock_setter=_NoClock())

    with (
        patch("chuk_mcp_timesync.server._store", store),
        patch("chuk_mcp_timesync.server._scheduler", scheduler),
        patch.object(scheduler, "run_forever", new_callable=AsyncMock) as mock_run_forever,
        patch("sys.argv", ["chuk-mcp-timesync", "service"]),
    ):
        main()

    mock_run_forever.assert_awaited_once()
    assert not store.path.exists()


@pytest.mark.asyncio
@pytest.mark.network
async def test_query_server_public() -> None:
    """Test query_server against a public NTP server."""
    from chuk_mcp_timesync.server import query_server

    response = await query_server("pool.ntp.org")

    assert response.success is True
    assert response.stratum is not None and response.stratum >= 1
    assert response.rtt_ms is not None and response.rtt_ms > 0
