"""48-byte NTP packet backed directly by its wire buffer."""

import ipaddress
import struct
from datetime import datetime

from chuk_mcp_timesync.errors import MalformedResponseError
from chuk_mcp_timesync.models import LeapIndicator, Mode, Stratum
from chuk_mcp_timesync.timestamp import (
    NTP_EPOCH,
    TIMESTAMP_SIZE,
    decode_timestamp,
    encode_timestamp,
)

PACKET_SIZE = 48

# Byte 0 layout: LI (2 bits) | VN (3 bits) | Mode (3 bits)
LEAP_MASK = 0b11000000
LEAP_SHIFT = 6
VERSION_MASK = 0b00111000
VERSION_SHIFT = 3
MODE_MASK = 0b00000111

STRATUM_OFFSET = 1
POLL_OFFSET = 2
PRECISION_OFFSET = 3
ROOT_DELAY_OFFSET = 4
ROOT_DISPERSION_OFFSET = 8
REFERENCE_ID_OFFSET = 12
REFERENCE_TIME_OFFSET = 16
ORIGINATE_TIME_OFFSET = 24
RECEIVE_TIME_OFFSET = 32
TRANSMIT_TIME_OFFSET = 40

EPOCH_TIMESTAMP = encode_timestamp(NTP_EPOCH)


class NTPPacket:
    """An NTP message.

    Every accessor reads from or writes into the underlying 48-byte buffer,
    so ``raw`` always reflects exactly what goes on the wire.
    """

    def __init__(self, data: bytes | bytearray | None = None):
        if data is None:
            self._data = bytearray(PACKET_SIZE)
            return
        if len(data) < PACKET_SIZE:
            raise MalformedResponseError(
                f"NTP packet must be {PACKET_SIZE} bytes, got {len(data)}"
            )
        self._data = bytearray(data[:PACKET_SIZE])

    @classmethod
    def request(
        cls,
        version: int = 3,
        mode: Mode = Mode.CLIENT,
        originate: datetime | None = None,
    ) -> "NTPPacket":
        """Build an outgoing request with every other field zeroed."""
        packet = cls()
        packet.mode = mode
        packet.version_number = version
        if originate is not None:
            packet.originate_time = originate
        return packet

    @classmethod
    def from_response(cls, data: bytes, originate: bytes | None = None) -> "NTPPacket":
        """Parse a received buffer.

        Some servers answer with a zeroed originate field. When that happens
        and the request's originate bytes are given, they are copied into the
        response so T1 stays the time the request left this host.

        Args:
            data: Received datagram (at least 48 bytes)
            originate: Encoded originate timestamp of the request that was sent

        Raises:
            MalformedResponseError: If the buffer is shorter than 48 bytes
        """
        packet = cls(data)
        if originate is not None and packet.originate_bytes == EPOCH_TIMESTAMP:
            packet._set_raw(ORIGINATE_TIME_OFFSET, originate)
        return packet

    @property
    def raw(self) -> bytes:
        return bytes(self._data)

    # Header byte

    def _write_header(self, mask: int, shift: int, value: int) -> None:
        # Other fields in the byte are left as they are
        self._data[0] = (self._data[0] & ~mask & 0xFF) | ((int(value) << shift) & mask)

    @property
    def leap_indicator(self) -> LeapIndicator:
        value = (self._data[0] & LEAP_MASK) >> LEAP_SHIFT
        try:
            return LeapIndicator(value)
        except ValueError:
            return LeapIndicator.ALARM

    @leap_indicator.setter
    def leap_indicator(self, value: int) -> None:
        self._write_header(LEAP_MASK, LEAP_SHIFT, value)

    @property
    def version_number(self) -> int:
        return (self._data[0] & VERSION_MASK) >> VERSION_SHIFT

    @version_number.setter
    def version_number(self, value: int) -> None:
        self._write_header(VERSION_MASK, VERSION_SHIFT, value)

    @property
    def mode(self) -> Mode:
        value = self._data[0] & MODE_MASK
        try:
            return Mode(value)
        except ValueError:
            return Mode.UNKNOWN

    @mode.setter
    def mode(self, value: int) -> None:
        self._write_header(MODE_MASK, 0, value)

    # Informational fields

    @property
    def stratum_level(self) -> int:
        return self._data[STRATUM_OFFSET]

    @property
    def stratum(self) -> Stratum:
        level = self._data[STRATUM_OFFSET]
        if level == 0:
            return Stratum.UNSPECIFIED
        if level == 1:
            return Stratum.PRIMARY_REFERENCE
        if level <= 15:
            return Stratum.SECONDARY_REFERENCE
        return Stratum.RESERVED

    @property
    def poll(self) -> int:
        return struct.unpack_from("!b", self._data, POLL_OFFSET)[0]

    @property
    def precision(self) -> int:
        return struct.unpack_from("!b", self._data, PRECISION_OFFSET)[0]

    @property
    def root_delay(self) -> float:
        """Root delay in seconds (16.16 fixed point)."""
        return struct.unpack_from("!I", self._data, ROOT_DELAY_OFFSET)[0] / 65536

    @property
    def root_dispersion(self) -> float:
        """Root dispersion in seconds (16.16 fixed point)."""
        return struct.unpack_from("!I", self._data, ROOT_DISPERSION_OFFSET)[0] / 65536

    @property
    def reference_id(self) -> bytes:
        return bytes(self._data[REFERENCE_ID_OFFSET : REFERENCE_ID_OFFSET + 4])

    @property
    def reference_identifier(self) -> str:
        """Reference id as text: a clock code for stratum 0/1, an IPv4 address above."""
        ref = self.reference_id
        if self.stratum_level <= 1:
            return ref.rstrip(b"\x00").decode("ascii", errors="replace")
        return str(ipaddress.IPv4Address(ref))

    # Timestamps

    def _get_time(self, offset: int) -> datetime:
        return decode_timestamp(self._data, offset)

    def _set_raw(self, offset: int, value: bytes) -> None:
        self._data[offset : offset + TIMESTAMP_SIZE] = value

    def _set_time(self, offset: int, value: datetime) -> None:
        self._set_raw(offset, encode_timestamp(value))

    @property
    def originate_bytes(self) -> bytes:
        return bytes(self._data[ORIGINATE_TIME_OFFSET : ORIGINATE_TIME_OFFSET + TIMESTAMP_SIZE])

    @property
    def reference_time(self) -> datetime:
        return self._get_time(REFERENCE_TIME_OFFSET)

    @reference_time.setter
    def reference_time(self, value: datetime) -> None:
        self._set_time(REFERENCE_TIME_OFFSET, value)

    @property
    def originate_time(self) -> datetime:
        return self._get_time(ORIGINATE_TIME_OFFSET)

    @originate_time.setter
    def originate_time(self, value: datetime) -> None:
        self._set_time(ORIGINATE_TIME_OFFSET, value)

    @property
    def receive_time(self) -> datetime:
        return self._get_time(RECEIVE_TIME_OFFSET)

    @receive_time.setter
    def receive_time(self, value: datetime) -> None:
        self._set_time(RECEIVE_TIME_OFFSET, value)

    @property
    def transmit_time(self) -> datetime:
        return self._get_time(TRANSMIT_TIME_OFFSET)

    @transmit_time.setter
    def transmit_time(self, value: datetime) -> None:
        self._set_time(TRANSMIT_TIME_OFFSET, value)

    def __repr__(self) -> str:
        return (
            f"NTPPacket(mode={self.mode.name}, version={self.version_number}, "
            f"stratum={self.stratum_level}, transmit={self.transmit_time.isoformat()})"
        )
