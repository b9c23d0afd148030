"""NIIMBOT Label Printer Driver for Linux/macOS."""

__version__ = "0.1.0"

from .printer import NiimbotPrinter, CommandResult, quick_print
from .errors import (
    PrinterError,
    ConnectionError,
    FrameError,
    MalformedFrameError,
    LengthMismatchError,
    ChecksumMismatchError,
    ProtocolError,
    ResponseError,
    UnsupportedError,
    ResponseTimeoutError,
    MalformedResponseError,
    PrintError,
    ImageError,
)
from .image import (
    ImageEncoder,
    ImageProcessor,
    ImageSizeError,
    MAX_IMAGE_DIMENSION,
    MAX_IMAGE_PIXELS,
)
from .connection import BLEConnection, SocketConnection, PrinterInfo
from .protocol import Packet, RequestCode, InfoKey
from .transceiver import Transceiver, FrameBuffer
from .responses import PrintStatus, RFIDTag

__all__ = [
    "NiimbotPrinter",
    "CommandResult",
    "quick_print",
    "PrinterError",
    "ConnectionError",
    "FrameError",
    "MalformedFrameError",
    "LengthMismatchError",
    "ChecksumMismatchError",
    "ProtocolError",
    "ResponseError",
    "UnsupportedError",
    "ResponseTimeoutError",
    "MalformedResponseError",
    "PrintError",
    "ImageError",
    "ImageEncoder",
    "ImageProcessor",
    "ImageSizeError",
    "MAX_IMAGE_DIMENSION",
    "MAX_IMAGE_PIXELS",
    "BLEConnection",
    "SocketConnection",
    "PrinterInfo",
    "Packet",
    "RequestCode",
    "InfoKey",
    "Transceiver",
    "FrameBuffer",
    "PrintStatus",
    "RFIDTag",
]
