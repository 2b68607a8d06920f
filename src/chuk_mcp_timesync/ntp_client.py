"""Asynchronous SNTP client: one request, one response per query."""

import asyncio
import logging
import socket
from collections.abc import Callable
from datetime import datetime

from chuk_mcp_timesync.errors import (
    QueryTimeoutError,
    QueryTransportError,
    ResolutionError,
)
from chuk_mcp_timesync.models import ExchangeSample, Mode
from chuk_mcp_timesync.packet import NTPPacket
from chuk_mcp_timesync.timestamp import utc_now

logger = logging.getLogger(__name__)

NTP_PORT = 123
RECV_BUFFER_SIZE = 1024


class NTPClient:
    """Queries a single NTP server at a time over UDP/IPv4."""

    def __init__(
        self,
        timeout: float = 3.0,
        version: int = 3,
        port: int = NTP_PORT,
        now: Callable[[], datetime] = utc_now,
    ):
        """Initialize NTP client.

        Args:
            timeout: Send and receive timeout in seconds (each)
            version: Protocol version written into requests
            port: Server UDP port
            now: Source of the local UTC time used for T1 and T4
        """
        self.timeout = timeout
        self.version = version
        self.port = port
        self._now = now

    async def resolve(self, server: str) -> str:
        """Resolve a hostname to its first IPv4 address.

        Raises:
            ResolutionError: If the name does not resolve to IPv4
        """
        loop = asyncio.get_running_loop()
        try:
            infos = await loop.getaddrinfo(
                server, self.port, family=socket.AF_INET, type=socket.SOCK_DGRAM
            )
        except (socket.gaierror, UnicodeError) as e:
            raise ResolutionError(f"Cannot resolve {server}: {e}") from e

        if not infos:
            raise ResolutionError(f"No IPv4 address for {server}")
        return str(infos[0][4][0])

    async def query(self, server: str) -> ExchangeSample:
        """Perform one request/response exchange with a server.

        Args:
            server: NTP server hostname or IPv4 address

        Returns:
            ExchangeSample with T1..T4 of the exchange

        Raises:
            ResolutionError: Hostname has no IPv4 address
            QueryTimeoutError: No response within the timeout
            QueryTransportError: Socket failure
            MalformedResponseError: Response shorter than 48 bytes
        """
        address = await self.resolve(server)
        loop = asyncio.get_running_loop()

        try:
            sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
        except OSError as e:
            raise QueryTransportError(f"Cannot open socket: {e}") from e

        with sock:
            try:
                sock.setblocking(False)
                sock.connect((address, self.port))

                request = NTPPacket.request(
                    version=self.version, mode=Mode.CLIENT, originate=self._now()
                )
                await asyncio.wait_for(loop.sock_sendall(sock, request.raw), self.timeout)

                data = await asyncio.wait_for(loop.sock_recv(sock, RECV_BUFFER_SIZE), self.timeout)
                destination = self._now()
            except TimeoutError as e:
                raise QueryTimeoutError(
                    f"No response from {server} ({address}) within {self.timeout}s"
                ) from e
            except OSError as e:
                raise QueryTransportError(f"Socket error talking to {server}: {e}") from e

        response = NTPPacket.from_response(data, originate=request.originate_bytes)
        sample = ExchangeSample(
            server=server,
            address=address,
            originate_time=response.originate_time,
            receive_time=response.receive_time,
            transmit_time=response.transmit_time,
            destination_time=destination,
            stratum=response.stratum,
            stratum_level=response.stratum_level,
            leap_indicator=response.leap_indicator,
            version=response.version_number,
            reference_identifier=response.reference_identifier,
        )
        logger.debug(
            "%s: offset=%.1fms delay=%.1fms stratum=%d",
            server,
            sample.offset_ms,
            sample.rtt_ms,
            sample.stratum_level,
        )
        return sample
