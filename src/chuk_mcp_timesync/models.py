"""Pydantic models and enums for the time sync MCP server."""

from datetime import datetime, timedelta
from enum import Enum, IntEnum

from pydantic import BaseModel, Field


class LeapIndicator(IntEnum):
    """Pending leap second warning carried in the packet header."""

    NO_WARNING = 0
    LAST_MINUTE_61 = 1
    LAST_MINUTE_59 = 2
    ALARM = 3  # Clock not synchronized


class Mode(IntEnum):
    """Role of the packet sender."""

    RESERVED = 0
    SYMMETRIC_ACTIVE = 1
    SYMMETRIC_PASSIVE = 2
    CLIENT = 3
    SERVER = 4
    BROADCAST = 5
    CONTROL_MESSAGE = 6
    PRIVATE_USE = 7
    UNKNOWN = 0xFF


class Stratum(IntEnum):
    """Distance of the server from a reference clock."""

    UNSPECIFIED = 0
    PRIMARY_REFERENCE = 1
    SECONDARY_REFERENCE = 2
    RESERVED = 3


class NTPError(str, Enum):
    """NTP error types."""

    TIMEOUT = "timeout"
    DNS_ERROR = "dns_error"
    NETWORK_ERROR = "network_error"
    PARSE_ERROR = "parse_error"


class ClockStatus(str, Enum):
    """System clock status relative to trusted time."""

    OK = "ok"  # Delta < 100ms
    DRIFT = "drift"  # Delta 100-1000ms
    ERROR = "error"  # Delta > 1000ms


class SyncStatus(str, Enum):
    """Outcome of one scan over the server list."""

    IN_SYNC = "in_sync"  # Drift within threshold, nothing done
    CLOCK_SET = "clock_set"
    CLOCK_SET_FAILED = "clock_set_failed"
    DRIFT_DETECTED = "drift_detected"  # Drift beyond threshold, not applied
    ALL_SERVERS_FAILED = "all_servers_failed"
    NO_SERVERS = "no_servers"


class SchedulerState(str, Enum):
    """Scheduler state."""

    IDLE = "idle"
    QUERYING = "querying"


class ExchangeSample(BaseModel):
    """Timestamps from one request/response exchange.

    Delay and offset are derived from the four timestamps on every access.
    """

    server: str = Field(description="NTP server hostname as configured")
    address: str = Field(description="IPv4 address the query was sent to")
    originate_time: datetime = Field(description="T1: request left this host")
    receive_time: datetime = Field(description="T2: request reached the server")
    transmit_time: datetime = Field(description="T3: response left the server")
    destination_time: datetime = Field(description="T4: response reached this host")
    stratum: Stratum = Field(description="Stratum class of the server")
    stratum_level: int = Field(description="Raw stratum byte (0-255)")
    leap_indicator: LeapIndicator = Field(description="Leap second warning")
    version: int = Field(description="Protocol version of the response")
    reference_identifier: str = Field("", description="Server reference id")

    @property
    def round_trip_delay(self) -> timedelta:
        """(T4 - T1) - (T3 - T2)"""
        return (self.destination_time - self.originate_time) - (
            self.transmit_time - self.receive_time
        )

    @property
    def clock_offset(self) -> timedelta:
        """((T2 - T1) + (T3 - T4)) / 2"""
        return (
            (self.receive_time - self.originate_time) + (self.transmit_time - self.destination_time)
        ) / 2

    @property
    def rtt_ms(self) -> float:
        return self.round_trip_delay.total_seconds() * 1000

    @property
    def offset_ms(self) -> float:
        return self.clock_offset.total_seconds() * 1000


class ServerAttempt(BaseModel):
    """Outcome of querying a single server during a scan."""

    server: str = Field(description="NTP server hostname")
    success: bool = Field(description="Whether the query succeeded")
    rtt_ms: float | None = Field(None, description="Round-trip delay in milliseconds")
    offset_ms: float | None = Field(None, description="Clock offset in milliseconds")
    stratum: int | None = Field(None, description="NTP stratum (0-255)")
    error: str | None = Field(None, description="Error message if failed")
    error_type: NTPError | None = Field(None, description="Type of error if failed")


class SyncResult(BaseModel):
    """Result of one scan, and the clock decision taken."""

    status: SyncStatus = Field(description="Outcome of the scan")
    server: str | None = Field(None, description="Server whose sample was used")
    attempts: list[ServerAttempt] = Field(
        default_factory=list, description="Every server contacted, in order"
    )
    local_time: datetime | None = Field(None, description="Local clock at decision time")
    corrected_time: datetime | None = Field(None, description="Local clock plus offset")
    drift_ms: float | None = Field(
        None, description="corrected_time - local_time in milliseconds"
    )
    sample: ExchangeSample | None = Field(None, description="Sample the decision used")

    @property
    def succeeded(self) -> bool:
        return self.status in (SyncStatus.IN_SYNC, SyncStatus.CLOCK_SET)


class NTPResponse(BaseModel):
    """Response for the query_server tool."""

    server: str = Field(description="NTP server hostname or IP")
    success: bool = Field(description="Whether the query was successful")
    address: str | None = Field(None, description="Resolved IPv4 address")
    transmit_time: str | None = Field(None, description="Server transmit time (ISO 8601)")
    rtt_ms: float | None = Field(None, description="Round-trip time in milliseconds")
    offset_ms: float | None = Field(None, description="Clock offset in milliseconds")
    stratum: int | None = Field(None, description="NTP stratum (quality indicator, 0-16)")
    leap_indicator: str | None = Field(None, description="Leap second warning")
    reference_identifier: str | None = Field(None, description="Server reference id")
    error: str | None = Field(None, description="Error message if query failed")
    error_type: NTPError | None = Field(None, description="Type of error if query failed")


class ClockComparisonResponse(BaseModel):
    """Response for compare_system_clock tool."""

    server: str | None = Field(None, description="Server used for the comparison")
    system_time: str | None = Field(None, description="Current system clock time (ISO 8601, UTC)")
    trusted_time: str | None = Field(None, description="Corrected time (ISO 8601, UTC)")
    delta_ms: float | None = Field(
        None, description="Difference in milliseconds (positive = system is ahead)"
    )
    rtt_ms: float | None = Field(None, description="Round-trip delay of the sample used")
    status: ClockStatus | None = Field(None, description="Clock status: ok, drift, or error")
    warnings: list[str] = Field(default_factory=list, description="Warnings and issues")


class ServerListResponse(BaseModel):
    """Response for the server list tools."""

    servers: list[str] = Field(description="Configured NTP servers, in query order")
    config_file: str = Field(description="Configuration file holding the list")
