"""Exceptions raised while querying NTP servers."""

from chuk_mcp_timesync.models import NTPError


class TimeSyncError(Exception):
    """Base class for a failed exchange with a single NTP server."""

    error_type: NTPError = NTPError.NETWORK_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.__class__.__name__}: {self.message}"


class ResolutionError(TimeSyncError):
    """The hostname has no usable IPv4 address."""

    error_type = NTPError.DNS_ERROR


class QueryTransportError(TimeSyncError):
    """Socket-level failure while sending or receiving."""

    error_type = NTPError.NETWORK_ERROR


class QueryTimeoutError(TimeSyncError):
    """No response arrived within the configured bound."""

    error_type = NTPError.TIMEOUT


class MalformedResponseError(TimeSyncError):
    """The response is too short to be an NTP packet."""

    error_type = NTPError.PARSE_ERROR
