"""Shared fixtures: a fake NTP server on the loopback interface."""

import asyncio
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager
from datetime import timedelta

import pytest

from chuk_mcp_timesync.models import LeapIndicator, Mode
from chuk_mcp_timesync.packet import NTPPacket
from chuk_mcp_timesync.timestamp import utc_now


class FakeNTPServer(asyncio.DatagramProtocol):
    """Answers each request with the local clock shifted by ``offset``."""

    def __init__(
        self,
        offset: timedelta = timedelta(0),
        stratum: int = 2,
        reply: bool = True,
        zero_originate: bool = False,
        payload: bytes | None = None,
    ):
        self.offset = offset
        self.stratum = stratum
        self.reply = reply
        self.zero_originate = zero_originate
        self.payload = payload
        self.requests: list[bytes] = []
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        self.requests.append(data)
        if not self.reply or self.transport is None:
            return
        if self.payload is not None:
            self.transport.sendto(self.payload, addr)
            return

        request = NTPPacket(data)
        response = NTPPacket()
        response.leap_indicator = LeapIndicator.NO_WARNING
        response.version_number = request.version_number
        response.mode = Mode.SERVER
        if not self.zero_originate:
            response.originate_time = request.originate_time
        server_time = utc_now() + self.offset
        response.reference_time = server_time
        response.receive_time = server_time
        response.transmit_time = server_time

        raw = bytearray(response.raw)
        raw[1] = self.stratum
        raw[12:16] = bytes([10, 0, 0, 1])
        self.transport.sendto(bytes(raw), addr)


@asynccontextmanager
async def _fake_ntp_server(**kwargs: object) -> AsyncIterator[tuple[FakeNTPServer, int]]:
    loop = asyncio.get_running_loop()
    protocol = FakeNTPServer(**kwargs)  # type: ignore[arg-type]
    transport, _ = await loop.create_datagram_endpoint(
        lambda: protocol, local_addr=("127.0.0.1", 0)
    )
    try:
        yield protocol, transport.get_extra_info("sockname")[1]
    finally:
        transport.close()


@pytest.fixture
def fake_ntp_server() -> Callable[..., object]:
    """Factory for an async context manager yielding (server, port)."""
    return _fake_ntp_server
