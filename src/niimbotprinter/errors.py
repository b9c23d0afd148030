"""
Exception hierarchy for the NIIMBOT printer driver.

Codec errors are raised while decoding a single frame, protocol errors
describe what the device answered (or failed to answer), and print/image
errors belong to the print job built on top of both.
"""


# --- Exception Classes ---


class PrinterError(Exception):
    """Base exception for all printer errors."""

    pass


class ConnectionError(PrinterError):
    """Error connecting to or communicating with printer."""

    pass


class FrameError(PrinterError, ValueError):
    """A byte sequence is not a valid protocol frame."""

    pass


class MalformedFrameError(FrameError):
    """Frame is too short or its head/tail markers are missing."""

    pass


class LengthMismatchError(FrameError):
    """Declared payload length disagrees with the frame size."""

    pass


class ChecksumMismatchError(FrameError):
    """XOR checksum does not match the frame contents."""

    pass


class ProtocolError(PrinterError):
    """The device did not give a usable answer to a request."""

    pass


class ResponseError(ProtocolError):
    """Device answered with an explicit error frame (0xDB)."""

    pass


class UnsupportedError(ProtocolError):
    """Device reported the command as not implemented (0x00)."""

    pass


class ResponseTimeoutError(ProtocolError):
    """No matching response arrived within the retry bound."""

    pass


class MalformedResponseError(ProtocolError):
    """Response payload is too short for its decoder."""

    pass


class PrintError(PrinterError):
    """Error during print operation."""

    pass


class ImageError(PrinterError):
    """Error processing image for printing."""

    pass
