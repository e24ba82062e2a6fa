"""Serial port transport for framed packets."""

import logging
import threading
import time

import serial

from .config import SerialConfig
from .errors import FramingError, QueueUnderflow
from .protocol import DEFAULT_CAPACITY, Frame
from .queues import ByteQueue
from .receiver import Receiver
from .transmitter import Transmitter

logger = logging.getLogger(__name__)

# Reconnection settings
RECONNECT_DELAY_MIN = 1  # seconds
RECONNECT_DELAY_MAX = 60  # seconds


class SerialHandler:
    """Moves bytes between a serial port and the frame receiver/transmitter."""

    def __init__(self, config: SerialConfig, capacity: int = DEFAULT_CAPACITY) -> None:
        self._config = config
        self._capacity = capacity
        self._port: serial.Serial | None = None
        self._rx_queue = ByteQueue(config.rx_buffer)
        self._tx_queue = ByteQueue(config.tx_buffer)
        self._receiver = Receiver(self._rx_queue)
        self._transmitter = Transmitter(self._tx_queue)
        self._write_lock = threading.Lock()
        self._reconnect_delay = RECONNECT_DELAY_MIN

    @property
    def connected(self) -> bool:
        """Return True if serial port is open."""
        return self._port is not None and self._port.is_open

    @property
    def bytes_skipped(self) -> int:
        """Bytes discarded by the receiver while resynchronizing."""
        return self._receiver.bytes_skipped

    def open(self) -> None:
        """Open the serial port."""
        self._port = serial.Serial(
            port=self._config.port,
            baudrate=self._config.baud,
            timeout=0.1,  # 100ms read timeout for polling
        )
        self._reconnect_delay = RECONNECT_DELAY_MIN  # Reset backoff on success
        logger.info(
            "Opened serial port %s at %d baud",
            self._config.port,
            self._config.baud,
        )

    def close(self) -> None:
        """Close the serial port (waits for an in-progress write)."""
        with self._write_lock:
            if self._port and self._port.is_open:
                self._port.close()
                logger.info("Closed serial port")
            self._port = None

    def try_reconnect(self) -> bool:
        """
        Attempt to reconnect to the serial port.

        Returns True if reconnection successful, False otherwise.
        Uses exponential backoff between attempts.
        """
        self.close()
        # Partial frames from before the drop are useless now
        self._rx_queue.clear()
        with self._write_lock:
            self._tx_queue.clear()

        logger.info(
            "Attempting serial reconnection in %d seconds...",
            self._reconnect_delay,
        )
        time.sleep(self._reconnect_delay)

        try:
            self.open()
            return True
        except serial.SerialException as e:
            logger.warning("Serial reconnection failed: %s", e)
            # Exponential backoff
            self._reconnect_delay = min(
                self._reconnect_delay * 2,
                RECONNECT_DELAY_MAX,
            )
            return False

    def _fill_rx_queue(self) -> None:
        space = self._rx_queue.space_available()
        if space == 0:
            return
        try:
            data = self._port.read(min(self._port.in_waiting or 1, space))
        except serial.SerialException as e:
            logger.error("Serial read error: %s", e)
            self.close()
            raise SerialDisconnected() from e
        self._rx_queue.extend(data)

    def read_frames(self) -> list[Frame]:
        """
        Read any available bytes and decode the frames they complete.

        Returns list of decoded frames, or empty list if no data.
        Raises SerialDisconnected if the port is no longer available.
        """
        if not self.connected:
            return []

        self._fill_rx_queue()

        frames = []
        skipped_before = self._receiver.bytes_skipped
        while True:
            try:
                frame = self._receiver.receive(self._capacity)
            except QueueUnderflow:
                raise
            except FramingError as e:
                # One byte was discarded; keep scanning
                logger.debug("Resynchronizing after %s: %s", type(e).__name__, e)
                continue
            if frame is None:
                break
            logger.debug(
                "Received frame 0x%04x from serial: %d bytes",
                frame.id,
                len(frame.payload),
            )
            frames.append(frame)

        if self._receiver.bytes_skipped != skipped_before:
            logger.info(
                "Discarded %d bytes while resynchronizing (%d total)",
                self._receiver.bytes_skipped - skipped_before,
                self._receiver.bytes_skipped,
            )
        return frames

    def _flush_tx_queue(self) -> bool:
        # Caller holds _write_lock
        data = self._tx_queue.drain()
        if self._port is None:
            return False
        if data:
            self._port.write(data)
        return True

    def write_frame(self, packet_id: int, payload: bytes) -> bool:
        """
        Frame a packet and write it to the serial port (thread-safe).

        Returns True once the frame was handed to the port. Raises a
        FramingError if the ID or payload length cannot be framed.
        """
        if not self.connected:
            logger.warning("Cannot write: serial port not open")
            return False

        try:
            with self._write_lock:
                # Port may have been closed while waiting for the lock
                if not self.connected:
                    logger.warning("Cannot write: serial port closed")
                    return False
                # The queue is drained on every call, so a False here means
                # the frame is larger than the whole transmit buffer
                sent = self._transmitter.transmit(packet_id, payload)
                if sent and not self._flush_tx_queue():
                    logger.warning("Dropped frame 0x%04x: serial port closed", packet_id)
                    return False
        except serial.SerialException as e:
            logger.error("Serial write error: %s", e)
            # Don't raise here - let the main loop detect via read_frames
            return False

        if sent:
            logger.debug("Sent frame 0x%04x to serial: %d bytes", packet_id, len(payload))
        else:
            logger.warning(
                "Dropped frame 0x%04x: %d bytes do not fit the transmit buffer",
                packet_id,
                len(payload),
            )
        return sent


class SerialDisconnected(Exception):
    """Raised when serial port becomes unavailable."""

    pass
