"""CRC-16/USB checksum and unpadded base64 helpers.

Both are leaf primitives of the wire format:

- CRC-16/USB: reflected polynomial 0x8005 (0xA001), init 0xFFFF,
  final XOR 0xFFFF. Check value over b"123456789" is 0xB4C8.
- Base64: standard alphabet, no padding characters on the wire.
"""

import base64
import binascii
from collections.abc import Iterator

from .errors import InvalidBase64

CRC_SIZE = 2

# Must be a multiple of 3: 3 bytes encode into exactly 4 characters
ENCODE_BLOCK_SIZE = 30


def _build_crc_table() -> tuple[int, ...]:
    """Build the 256-entry lookup table for the reflected polynomial."""
    table = []
    for byte_val in range(256):
        crc = byte_val
        for _ in range(8):
            if crc & 1:
                crc = (crc >> 1) ^ 0xA001
            else:
                crc >>= 1
        table.append(crc)
    return tuple(table)


_CRC_TABLE = _build_crc_table()


def crc16_usb(data: bytes) -> int:
    """Calculate CRC-16/USB over data."""
    crc = 0xFFFF
    for b in data:
        crc = (crc >> 8) ^ _CRC_TABLE[(crc ^ b) & 0xFF]
    return crc ^ 0xFFFF


def b64encode_unpadded(data: bytes) -> bytes:
    """Encode data as base64 without trailing '=' padding."""
    return base64.b64encode(data).rstrip(b"=")


def b64decode_unpadded(chunk: bytes) -> bytes:
    """
    Strictly decode an unpadded base64 chunk.

    Rejects padding characters, characters outside the standard alphabet,
    a residue of one character, and non-zero trailing bits.
    """
    chunk = bytes(chunk)
    padding = -len(chunk) % 4
    if padding == 3 or b"=" in chunk:
        raise InvalidBase64(f"malformed base64 chunk of {len(chunk)} characters")

    try:
        decoded = base64.b64decode(chunk + b"=" * padding, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidBase64(str(e)) from e

    # Unused low bits of the final character must be zero
    if b64encode_unpadded(decoded) != chunk:
        raise InvalidBase64("non-canonical trailing bits")
    return decoded


def encode_payload(payload: bytes) -> Iterator[bytes]:
    """
    Yield the base64 section for payload in blocks of ENCODE_BLOCK_SIZE.

    The CRC is appended to the raw bytes of the final block before it is
    encoded, so the checksum shares base64 groups with the end of the
    payload. An empty payload yields nothing.
    """
    if not payload:
        return

    checksum = crc16_usb(payload).to_bytes(CRC_SIZE, "little")
    last_offset = (len(payload) - 1) // ENCODE_BLOCK_SIZE * ENCODE_BLOCK_SIZE
    for offset in range(0, last_offset, ENCODE_BLOCK_SIZE):
        yield b64encode_unpadded(payload[offset : offset + ENCODE_BLOCK_SIZE])
    yield b64encode_unpadded(bytes(payload[last_offset:]) + checksum)
