"""Failover scan over the configured NTP servers and periodic resync."""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Protocol

from chuk_mcp_timesync.config import TimeSyncConfig
from chuk_mcp_timesync.errors import TimeSyncError
from chuk_mcp_timesync.models import (
    ExchangeSample,
    SchedulerState,
    ServerAttempt,
    SyncResult,
    SyncStatus,
)
from chuk_mcp_timesync.ntp_client import NTPClient
from chuk_mcp_timesync.timestamp import utc_now

logger = logging.getLogger(__name__)


class ClockSetter(Protocol):
    def set_system_clock(self, when: datetime) -> bool: ...


class Querier(Protocol):
    async def query(self, server: str) -> ExchangeSample: ...


class SyncScheduler:
    """Runs scans one at a time: first server that answers wins."""

    def __init__(
        self,
        config: TimeSyncConfig,
        clock_setter: ClockSetter,
        client: Querier | None = None,
        now: Callable[[], datetime] = utc_now,
    ):
        """Initialize the scheduler.

        Args:
            config: Initial settings
            clock_setter: Applies a corrected time to the system clock
            client: Single-server query engine (built from config if omitted)
            now: Source of the local UTC time
        """
        self._config = config
        self._pending_config: TimeSyncConfig | None = None
        self._clock_setter = clock_setter
        self._client = client or self._build_client(config, now)
        self._owns_client = client is None
        self._now = now
        self._lock = asyncio.Lock()
        self._stopped = asyncio.Event()
        self.state = SchedulerState.IDLE

    @staticmethod
    def _build_client(config: TimeSyncConfig, now: Callable[[], datetime]) -> NTPClient:
        return NTPClient(
            timeout=config.ntp_timeout,
            version=config.ntp_version,
            port=config.ntp_port,
            now=now,
        )

    @property
    def config(self) -> TimeSyncConfig:
        return self._config

    def reload_config(self, config: TimeSyncConfig) -> None:
        """Stage a new config; it takes effect when the next scan starts."""
        self._pending_config = config

    def _apply_pending_config(self) -> None:
        if self._pending_config is None:
            return
        self._config = self._pending_config
        self._pending_config = None
        if self._owns_client:
            self._client = self._build_client(self._config, self._now)
        logger.info("Loaded new configuration (%d servers)", len(self._config.ntp_servers))

    async def sync(self, servers: list[str] | None = None, apply: bool = True) -> SyncResult:
        """Run one scan and act on the result.

        Args:
            servers: Explicit servers to try instead of the configured list
            apply: If False, report drift without setting the clock

        Returns:
            SyncResult describing the servers tried and the decision taken
        """
        async with self._lock:
            self._apply_pending_config()
            snapshot = list(servers) if servers is not None else list(self._config.ntp_servers)
            self.state = SchedulerState.QUERYING
            try:
                return await self._scan(snapshot, apply)
            finally:
                self.state = SchedulerState.IDLE

    async def _scan(self, servers: list[str], apply: bool) -> SyncResult:
        if not servers:
            logger.warning("No NTP servers configured")
            return SyncResult(status=SyncStatus.NO_SERVERS)

        attempts: list[ServerAttempt] = []
        sample: ExchangeSample | None = None
        for server in servers:
            logger.info("Querying NTP server %s", server)
            try:
                sample = await self._client.query(server)
            except TimeSyncError as e:
                logger.warning("Could not get time from %s: %s", server, e)
                attempts.append(
                    ServerAttempt(
                        server=server, success=False, error=e.message, error_type=e.error_type
                    )
                )
                continue

            attempts.append(
                ServerAttempt(
                    server=server,
                    success=True,
                    rtt_ms=sample.rtt_ms,
                    offset_ms=sample.offset_ms,
                    stratum=sample.stratum_level,
                )
            )
            break

        if sample is None:
            logger.error("Could not get time from any of %d servers", len(servers))
            return SyncResult(status=SyncStatus.ALL_SERVERS_FAILED, attempts=attempts)

        corrected = self._now() + sample.clock_offset
        local = self._now()
        drift = corrected - local
        result = SyncResult(
            status=SyncStatus.IN_SYNC,
            server=sample.server,
            attempts=attempts,
            local_time=local,
            corrected_time=corrected,
            drift_ms=drift.total_seconds() * 1000,
            sample=sample,
        )
        logger.info("Local time: %s", local.astimezone().isoformat())
        logger.info("Server time: %s", corrected.astimezone().isoformat())

        if abs(drift) <= timedelta(milliseconds=self._config.max_drift_ms):
            logger.info("Clock within %.0fms, no adjustment needed", self._config.max_drift_ms)
            return result

        if not apply:
            result.status = SyncStatus.DRIFT_DETECTED
            return result

        if self._clock_setter.set_system_clock(corrected.astimezone()):
            logger.info("System clock set to %s", corrected.astimezone().isoformat())
            result.status = SyncStatus.CLOCK_SET
        else:
            logger.error("Setting the system clock failed")
            result.status = SyncStatus.CLOCK_SET_FAILED
        return result

    async def run_forever(self) -> None:
        """Scan now and then every sync_interval seconds until stop()."""
        self._stopped.clear()
        while not self._stopped.is_set():
            result = await self.sync()
            logger.info("Scan finished: %s", result.status.value)
            try:
                await asyncio.wait_for(self._stopped.wait(), self._config.sync_interval)
            except TimeoutError:
                continue

    def stop(self) -> None:
        """Ask run_forever() to return after the current scan."""
        self._stopped.set()
