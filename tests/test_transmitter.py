import pytest

from framelink.errors import InvalidID, InvalidLength, QueueOverflow
from framelink.protocol import Frame, encode_frame
from framelink.queues import ByteQueue
from framelink.transmitter import Transmitter

VALID_FRAME = bytes(
    [0xF1, 0x37, 0x13, 0x07, 0x00, 0xFF, 0x41, 0x41, 0x45, 0x43, 0x44, 0x6D, 0x34]
)


class LyingQueue:
    """Advertises plenty of space but fails after a few writes."""

    def __init__(self, accept: int) -> None:
        self.accept = accept
        self.written = bytearray()

    def space_available(self) -> int:
        return 0xFFFF

    def write(self, byte: int) -> bool:
        if len(self.written) >= self.accept:
            return False
        self.written.append(byte)
        return True


def test_transmit_works():
    queue = ByteQueue(0xFFFF)
    transmitter = Transmitter(queue)

    assert transmitter.transmit(0x1337, bytes([0x00, 0x01, 0x02]))

    # 6-byte header, 7 base64 characters for 3 data bytes + 2 CRC bytes
    assert queue.drain() == VALID_FRAME


def test_transmit_empty_payload_writes_header_only():
    queue = ByteQueue(64)
    assert Transmitter(queue).transmit(0x0042, b"")
    assert queue.drain() == bytes([0xF1, 0x42, 0x00, 0x00, 0x00, 0xFF])


def test_transmit_not_ready_writes_nothing():
    queue = ByteQueue(12)
    assert not Transmitter(queue).transmit(0x1337, bytes([0x00, 0x01, 0x02]))
    assert queue.bytes_available() == 0


def test_transmit_exact_fit():
    queue = ByteQueue(13)
    assert Transmitter(queue).transmit(0x1337, bytes([0x00, 0x01, 0x02]))
    assert queue.space_available() == 0


def test_transmit_invalid_id_writes_nothing():
    queue = ByteQueue(64)
    with pytest.raises(InvalidID):
        Transmitter(queue).transmit(0xF100, b"abc")
    assert queue.bytes_available() == 0


def test_transmit_payload_too_long():
    queue = ByteQueue(0x20000)
    with pytest.raises(InvalidLength):
        Transmitter(queue).transmit(0x0001, bytes(46270))
    assert queue.bytes_available() == 0


def test_transmit_queue_overflow():
    queue = LyingQueue(accept=8)
    with pytest.raises(QueueOverflow):
        Transmitter(queue).transmit(0x1337, bytes([0x00, 0x01, 0x02]))
    assert bytes(queue.written) == VALID_FRAME[:8]


@pytest.mark.parametrize("size", [29, 30, 31, 90, 100])
def test_transmit_multiple_blocks(size):
    payload = bytes(range(size))
    queue = ByteQueue(0xFFFF)
    assert Transmitter(queue).transmit(0x0102, payload)
    assert queue.drain() == encode_frame(0x0102, payload)


def test_transmit_frame():
    frame = Frame.new(0x1337, bytes([0x00, 0x01, 0x02]), capacity=32)
    queue = ByteQueue(64)
    assert Transmitter(queue).transmit_frame(frame)
    assert queue.drain() == VALID_FRAME


def test_transmit_back_to_back():
    queue = ByteQueue(26)
    transmitter = Transmitter(queue)
    assert transmitter.transmit(0x1337, bytes([0x00, 0x01, 0x02]))
    assert transmitter.transmit(0x1337, bytes([0x00, 0x01, 0x02]))
    assert not transmitter.transmit(0x1337, bytes([0x00, 0x01, 0x02]))
    assert queue.drain() == VALID_FRAME * 2
