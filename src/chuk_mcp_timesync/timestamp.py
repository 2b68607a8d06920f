"""Conversion between datetimes and 64-bit NTP timestamps.

An NTP timestamp is 32 bits of whole seconds since 1900-01-01T00:00:00Z
followed by 32 bits of binary fraction, both big-endian. Only millisecond
precision is carried: sub-millisecond parts are truncated on encode and the
fraction is truncated to whole milliseconds on decode, so
``decode_timestamp(encode_timestamp(t))`` is ``t`` truncated to milliseconds.

Seconds wrap modulo 2**32, so values are only meaningful within the
~136-year era starting at 1900.
"""

import struct
from datetime import UTC, datetime, timedelta

NTP_EPOCH = datetime(1900, 1, 1, tzinfo=UTC)
TIMESTAMP_SIZE = 8

_FRACTION_SCALE = 1 << 32
_MILLIS_PER_SECOND = 1000
_TIMESTAMP = struct.Struct("!II")


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(UTC)


def _as_utc(value: datetime) -> datetime:
    # Naive datetimes are taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def encode_timestamp(value: datetime) -> bytes:
    """Encode a datetime as an 8-byte NTP timestamp.

    Args:
        value: Datetime to encode (naive values are treated as UTC)

    Returns:
        8 bytes: big-endian seconds then big-endian fraction
    """
    span = _as_utc(value) - NTP_EPOCH
    seconds = span.days * 86400 + span.seconds
    millis = span.microseconds // 1000
    # Round up so decoding with a floor gives back the same millisecond
    fraction = -(-millis * _FRACTION_SCALE // _MILLIS_PER_SECOND)
    return _TIMESTAMP.pack(seconds & 0xFFFFFFFF, fraction)


def decode_timestamp(data: bytes, offset: int = 0) -> datetime:
    """Decode an 8-byte NTP timestamp starting at ``offset``.

    Args:
        data: Buffer holding the timestamp
        offset: Byte offset of the seconds field

    Returns:
        Aware UTC datetime with millisecond precision
    """
    seconds, fraction = _TIMESTAMP.unpack_from(data, offset)
    millis = fraction * _MILLIS_PER_SECOND // _FRACTION_SCALE
    return NTP_EPOCH + timedelta(seconds=seconds, milliseconds=millis)
