"""Receive side: resynchronizing frame scanner over a peekable queue."""

from .errors import FramingError, QueueUnderflow, TooManyBytes
from .protocol import DEFAULT_CAPACITY, HEADER_SIZE, START_OF_FRAME, Frame, FrameHeader
from .queues import ReceiveQueue

BYTES_SKIPPED_MAX = 0xFFFFFFFF


class Receiver:
    """
    Polls a receive queue for complete, valid frames.

    No parsing state is kept between calls: every call re-reads the front
    of the queue. Bytes that cannot start a valid frame are discarded one
    at a time, which is how the receiver regains alignment after
    corruption, a dropped connection or a hot-plug.
    """

    def __init__(self, rx: ReceiveQueue) -> None:
        self._rx = rx
        self._bytes_skipped = 0

    @property
    def queue(self) -> ReceiveQueue:
        return self._rx

    @property
    def bytes_skipped(self) -> int:
        """
        Total number of incoming bytes discarded so far.

        Similar to packet loss in networking: a steadily growing count
        indicates a poor link.
        """
        return self._bytes_skipped

    def _skip_byte(self) -> None:
        self._rx.flush(1)
        self._bytes_skipped = min(self._bytes_skipped + 1, BYTES_SKIPPED_MAX)

    def _peek_bytes(self, offset: int, n: int) -> bytes:
        result = bytearray(n)
        for i in range(n):
            byte = self._rx.peek_at(offset + i)
            if byte is None:
                raise QueueUnderflow(f"no byte at offset {offset + i}")
            result[i] = byte
        return bytes(result)

    def _receive_header(self) -> FrameHeader | None:
        # Skip bytes until a start-of-frame marker is at the front
        while True:
            byte = self._rx.peek_at(0)
            if byte is None:
                return None
            if byte == START_OF_FRAME:
                break
            self._skip_byte()

        if self._rx.bytes_available() < HEADER_SIZE:
            return None

        raw = self._peek_bytes(0, HEADER_SIZE)
        try:
            return FrameHeader.parse(raw)
        except FramingError:
            # Not a real header: break the false start marker
            self._skip_byte()
            raise

    def receive(self, capacity: int = DEFAULT_CAPACITY) -> Frame | None:
        """
        Try to take one frame from the front of the queue.

        Returns the frame, or None if more bytes are needed. Raises a
        FramingError after discarding one byte when the front of the queue
        cannot form a valid frame; call again to continue resynchronizing.
        """
        header = self._receive_header()
        if header is None:
            return None

        # Frame would not fit the caller's buffer: abandon it
        if header.payload_len > capacity:
            self._skip_byte()
            raise TooManyBytes(
                f"incoming payload of {header.payload_len} bytes exceeds capacity {capacity}"
            )

        total_len = header.total_packet_len
        if self._rx.bytes_available() < total_len:
            return None

        encoded = self._peek_bytes(HEADER_SIZE, header.data_len)
        try:
            frame = Frame.decode(header, encoded, capacity)
        except FramingError:
            self._skip_byte()
            raise

        self._rx.flush(total_len)
        return frame
