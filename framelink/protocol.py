"""Frame header layout and fixed-capacity frame decoding.

Frame format:
    [0xF1][id_low][id_high][len_low][len_high][0xFF][base64...]

- Start-of-frame: 0xF1
- ID: 2 bytes, little-endian, at most 0xF0FF
- Length: 2 bytes, little-endian - count of base64 characters that follow,
  at most 0xF0FF
- End-of-header: 0xFF
- Base64: standard alphabet, unpadded, encoding payload + CRC-16/USB
  (little-endian). An empty payload has no base64 section and no CRC.
"""

import struct
import sys
from dataclasses import dataclass

from .codec import CRC_SIZE, b64decode_unpadded, crc16_usb, encode_payload
from .errors import (
    InvalidCRC,
    InvalidHeader,
    InvalidID,
    InvalidLength,
    TooFewBytes,
    TooManyBytes,
)

START_OF_FRAME = 0xF1
END_OF_HEADER = 0xFF
HEADER_SIZE = 6

ID_MAX = 0xF0FF
LENGTH_MAX = 0xF0FF

DEFAULT_CAPACITY = 128

_HEADER_STRUCT = struct.Struct("<BHHB")


def _div_round_up(a: int, b: int) -> int:
    return (a + b - 1) // b


@dataclass(frozen=True)
class FrameHeader:
    """Validated 6-byte frame header."""

    id: int
    length: int  # number of base64 characters, not payload bytes

    def __post_init__(self) -> None:
        if not 0 <= self.id <= ID_MAX:
            raise InvalidID(f"packet ID 0x{self.id:x} out of range")
        if not 0 <= self.length <= LENGTH_MAX:
            raise InvalidLength(f"length {self.length} out of range")

    @staticmethod
    def _length_field(payload_length: int) -> int:
        """Number of base64 characters needed for payload + CRC."""
        if payload_length == 0:
            return 0
        # Mirrors the overflow guard of a native-width length calculation
        if payload_length < 0 or payload_length >= sys.maxsize // 8 - 2:
            raise InvalidLength(f"payload length {payload_length} not representable")

        length = _div_round_up((payload_length + CRC_SIZE) * 8, 6)
        if length > LENGTH_MAX:
            raise InvalidLength(f"payload of {payload_length} bytes is too long")
        return length

    @classmethod
    def new(cls, packet_id: int, payload_length: int) -> "FrameHeader":
        """Create a header, calculating the length field from payload_length."""
        return cls(packet_id, cls._length_field(payload_length))

    @classmethod
    def from_raw(cls, packet_id: int, length: int) -> "FrameHeader":
        """Create a header from raw field values."""
        return cls(packet_id, length)

    @classmethod
    def parse(cls, raw: bytes) -> "FrameHeader":
        """Parse a header from exactly HEADER_SIZE wire bytes."""
        if len(raw) < HEADER_SIZE:
            raise TooFewBytes(f"header needs {HEADER_SIZE} bytes, got {len(raw)}")
        if len(raw) > HEADER_SIZE:
            raise TooManyBytes(f"header needs {HEADER_SIZE} bytes, got {len(raw)}")

        start, packet_id, length, end = _HEADER_STRUCT.unpack(raw)
        if start != START_OF_FRAME or end != END_OF_HEADER:
            raise InvalidHeader("bad start-of-frame or end-of-header marker")

        return cls.from_raw(packet_id, length)

    @property
    def data_len(self) -> int:
        """Length of the base64 section."""
        return self.length

    @property
    def total_packet_len(self) -> int:
        return HEADER_SIZE + self.data_len

    @property
    def payload_len(self) -> int:
        """Number of raw payload bytes, excluding the CRC."""
        # base64 to binary: 6 bits per character
        binary_len = self.data_len * 6 // 8
        if binary_len < CRC_SIZE:
            return 0
        return binary_len - CRC_SIZE

    def to_bytes(self) -> bytes:
        return _HEADER_STRUCT.pack(START_OF_FRAME, self.id, self.length, END_OF_HEADER)


class Frame:
    """
    Header plus a payload buffer of fixed capacity.

    The buffer is allocated once at construction and never resized. Only
    the first header.payload_len bytes are meaningful. A Frame built by
    decode() or from_bytes() has passed its CRC check.
    """

    __slots__ = ("_header", "_data")

    def __init__(self, header: FrameHeader, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity < 0:
            raise ValueError(f"capacity must not be negative, got {capacity}")
        if header.payload_len > capacity:
            raise TooManyBytes(
                f"payload of {header.payload_len} bytes exceeds capacity {capacity}"
            )
        self._header = header
        self._data = bytearray(capacity)

    @classmethod
    def new(
        cls,
        packet_id: int,
        payload: bytes,
        capacity: int = DEFAULT_CAPACITY,
    ) -> "Frame":
        """Create a frame for transmission from an ID and raw payload."""
        header = FrameHeader.new(packet_id, len(payload))
        frame = cls(header, capacity)
        memoryview(frame._data)[: len(payload)] = payload
        return frame

    @classmethod
    def decode(
        cls,
        header: FrameHeader,
        encoded: bytes,
        capacity: int = DEFAULT_CAPACITY,
    ) -> "Frame":
        """
        Decode and verify the base64 section that follows a header.

        The bulk of the data is decoded straight into the frame buffer; the
        last few characters, which carry the CRC jointly with the final
        payload bytes, go through a small tail buffer so that the frame
        buffer never needs room for more than the payload itself.
        """
        b64_len = header.data_len
        if b64_len == 0:
            # Empty payload: nothing encoded, no CRC
            if encoded:
                raise TooManyBytes(f"expected no encoded data, got {len(encoded)} bytes")
            return cls(header, capacity)

        if capacity < header.payload_len:
            raise TooManyBytes(
                f"payload of {header.payload_len} bytes exceeds capacity {capacity}"
            )
        if len(encoded) < b64_len:
            raise TooFewBytes(f"expected {b64_len} encoded bytes, got {len(encoded)}")
        if len(encoded) > b64_len:
            raise TooManyBytes(f"expected {b64_len} encoded bytes, got {len(encoded)}")

        frame = cls(header, capacity)
        buffer = memoryview(frame._data)

        # Boundary at a multiple of 4: 4 characters decode into exactly 3 bytes
        split = 0 if b64_len < 8 else (b64_len - 4) & ~3

        bulk = b64decode_unpadded(encoded[:split])
        buffer[: len(bulk)] = bulk

        tail = b64decode_unpadded(encoded[split:])
        if len(tail) < CRC_SIZE:
            raise TooFewBytes("encoded data too short to hold a CRC")

        remaining = len(tail) - CRC_SIZE
        payload_len = len(bulk) + remaining
        if payload_len != header.payload_len:
            raise TooFewBytes(
                f"decoded {payload_len} payload bytes, header declares {header.payload_len}"
            )
        buffer[len(bulk) : payload_len] = tail[:remaining]

        received_crc = int.from_bytes(tail[remaining:], "little")
        expected_crc = crc16_usb(buffer[:payload_len])
        if received_crc != expected_crc:
            raise InvalidCRC(
                f"CRC mismatch: received 0x{received_crc:04x}, expected 0x{expected_crc:04x}"
            )

        return frame

    @classmethod
    def from_bytes(cls, data: bytes, capacity: int = DEFAULT_CAPACITY) -> "Frame":
        """Parse a complete in-memory frame (header + base64 section)."""
        if len(data) < HEADER_SIZE:
            raise TooFewBytes(f"frame needs at least {HEADER_SIZE} bytes, got {len(data)}")
        header = FrameHeader.parse(bytes(data[:HEADER_SIZE]))
        return cls.decode(header, bytes(data[HEADER_SIZE:]), capacity)

    @property
    def header(self) -> FrameHeader:
        return self._header

    @property
    def id(self) -> int:
        return self._header.id

    @property
    def capacity(self) -> int:
        return len(self._data)

    @property
    def payload(self) -> bytes:
        """The meaningful part of the buffer."""
        return bytes(self._data[: self._header.payload_len])

    def to_bytes(self) -> bytes:
        """Serialize this frame to wire bytes."""
        return encode_frame(self.id, self.payload)

    def __repr__(self) -> str:
        return (
            f"Frame(id=0x{self.id:04x}, payload={self.payload!r}, "
            f"capacity={self.capacity})"
        )


def encode_frame(packet_id: int, payload: bytes) -> bytes:
    """Encode a payload into a complete framed packet."""
    header = FrameHeader.new(packet_id, len(payload))
    return header.to_bytes() + b"".join(encode_payload(payload))
