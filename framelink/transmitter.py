"""Transmit side: serialize packets into a transmit queue."""

from .codec import encode_payload
from .errors import QueueOverflow
from .protocol import Frame, FrameHeader
from .queues import TransmitQueue


class Transmitter:
    """Writes framed packets into a transmit queue it owns."""

    def __init__(self, tx: TransmitQueue) -> None:
        self._tx = tx

    @property
    def queue(self) -> TransmitQueue:
        return self._tx

    def _write(self, data: bytes) -> None:
        for byte in data:
            if not self._tx.write(byte):
                raise QueueOverflow("transmit queue full after space check")

    def transmit(self, packet_id: int, payload: bytes) -> bool:
        """
        Frame and queue a packet.

        Returns False without writing anything if the queue lacks room for
        the whole frame; the caller should retry later. Raises a
        FramingError for an invalid ID or payload length, and QueueOverflow
        if the queue fails a write despite having advertised the space.
        """
        header = FrameHeader.new(packet_id, len(payload))

        if self._tx.space_available() < header.total_packet_len:
            return False

        self._write(header.to_bytes())
        for chunk in encode_payload(payload):
            self._write(chunk)
        return True

    def transmit_frame(self, frame: Frame) -> bool:
        """Re-serialize an already validated frame."""
        return self.transmit(frame.id, frame.payload)
