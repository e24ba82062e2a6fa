"""Exceptions raised by the framing core."""


class FramingError(Exception):
    """Base class for all framing errors."""

    pass


class InvalidHeader(FramingError):
    """Start-of-frame or end-of-header marker byte is wrong."""

    pass


class InvalidID(FramingError):
    """Packet ID is outside the representable range."""

    pass


class InvalidLength(FramingError):
    """Length field is outside the representable range or would overflow."""

    pass


class InvalidCRC(FramingError):
    """Checksum over the decoded payload does not match."""

    pass


class InvalidBase64(FramingError):
    """Encoded section contains an invalid character or residue."""

    pass


class TooFewBytes(FramingError):
    pass


class TooManyBytes(FramingError):
    pass


class QueueOverflow(FramingError):
    """Transmit queue rejected a write after its free space was checked."""

    pass


class QueueUnderflow(FramingError):
    """Receive queue had fewer bytes than it advertised."""

    pass
