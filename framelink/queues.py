"""Byte queue contracts used by the transmitter and receiver."""

from typing import Protocol


class ReceiveQueue(Protocol):
    def bytes_available(self) -> int:
        """Number of bytes that can currently be peeked."""
        ...

    def peek_at(self, offset: int) -> int | None:
        """Read the byte at offset without consuming it, or None."""
        ...

    def flush(self, n_bytes: int) -> None:
        """Discard n_bytes from the front of the queue."""
        ...


class TransmitQueue(Protocol):
    def space_available(self) -> int:
        """Number of bytes that can be written without failing."""
        ...

    def write(self, byte: int) -> bool:
        """Append one byte. Returns False if the queue is full."""
        ...


class ByteQueue:
    """
    Bounded in-memory FIFO implementing both queue contracts.

    The transport side fills it with extend() and empties it with drain().
    """

    def __init__(self, capacity: int) -> None:
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self._capacity = capacity
        self._buffer = bytearray()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._buffer)

    def bytes_available(self) -> int:
        return len(self._buffer)

    def peek_at(self, offset: int) -> int | None:
        if 0 <= offset < len(self._buffer):
            return self._buffer[offset]
        return None

    def flush(self, n_bytes: int) -> None:
        del self._buffer[:n_bytes]

    def space_available(self) -> int:
        return self._capacity - len(self._buffer)

    def write(self, byte: int) -> bool:
        if len(self._buffer) >= self._capacity:
            return False
        self._buffer.append(byte)
        return True

    def extend(self, data: bytes) -> int:
        """Append as much of data as fits. Returns the number of bytes taken."""
        accepted = data[: self.space_available()]
        self._buffer.extend(accepted)
        return len(accepted)

    def drain(self, limit: int | None = None) -> bytes:
        """Remove and return up to limit bytes from the front."""
        if limit is None:
            limit = len(self._buffer)
        data = bytes(self._buffer[:limit])
        del self._buffer[:limit]
        return data

    def clear(self) -> None:
        self._buffer.clear()
