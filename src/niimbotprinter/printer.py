"""
High-Level NIIMBOT Printer Interface.

Maps each printer command onto a request/response exchange over the
Transceiver and runs the print-job sequence for an image.
"""

import asyncio
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Generic, Optional, TypeVar, Union

from PIL import Image

from .connection import BLEConnection, PrinterInfo, SocketConnection
from .errors import ConnectionError, PrinterError, PrintError
from .image import ImageEncoder, ImageProcessor, create_test_pattern
from .protocol import RESPONSE_OFFSETS, InfoKey, Packet, RequestCode
from .responses import PrintStatus, RFIDTag, parse_heartbeat, parse_info
from .transceiver import Transceiver

T = TypeVar("T")


@dataclass(frozen=True)
class CommandResult(Generic[T]):
    """
    Outcome of a printer command.

    ``value`` holds the decoded response, or the command's fallback value
    when it failed. ``error`` holds the failure, so callers can tell a
    rejected command from a timeout. ``bool(result)`` is True when the
    command succeeded and its value is not ``False``.
    """

    value: T
    error: Optional[PrinterError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> T:
        """Return the value, or raise the error the command failed with."""
        if self.error is not None:
            raise self.error
        return self.value

    def __bool__(self) -> bool:
        return self.error is None and self.value is not False


class NiimbotPrinter:
    """
    High-level interface to NIIMBOT label printers.

    Commands are strictly one at a time: each waits for its response before
    the next is sent.
    """

    # Payload sent with commands that take no argument
    DEFAULT_ARGUMENT = b"\x01"

    LABEL_TYPES = range(1, 4)
    DENSITIES = range(1, 4)

    def __init__(
        self,
        connection=None,
        attempts: int = Transceiver.MAX_ATTEMPTS,
        retry_delay: float = Transceiver.RETRY_DELAY,
        read_timeout: float = Transceiver.READ_TIMEOUT,
    ):
        """
        Initialize printer interface.

        Args:
            connection: SocketConnection (default) or BLEConnection
            attempts: Read attempts per command (default 6)
            retry_delay: Delay between read attempts in seconds (default 0.1)
            read_timeout: Timeout of each read in seconds (default 1.0)
        """
        self.connection = connection if connection is not None else SocketConnection()
        self.transceiver = Transceiver(
            self.connection,
            attempts=attempts,
            retry_delay=retry_delay,
            read_timeout=read_timeout,
        )
        self.encoder = ImageEncoder()
        self.processor = ImageProcessor()
        self._debug = False

    def set_debug(self, enabled: bool):
        """Enable/disable debug output."""
        self._debug = enabled
        self.transceiver.set_debug(enabled)

    def _log(self, message: str):
        """Print debug message if enabled."""
        if self._debug:
            print(f"[NIIMBOT] {message}")

    @classmethod
    async def scan(cls, timeout: float = 10.0) -> list[PrinterInfo]:
        """Scan for available BLE printers."""
        return await BLEConnection.scan(timeout)

    async def connect(self, address: str, retries: int = 0, retry_delay: float = 1.0) -> bool:
        """
        Connect to a printer.

        Args:
            address: Bluetooth address of the printer
            retries: Number of connection retries (default 0)
            retry_delay: Delay between retries in seconds (default 1.0)

        Returns:
            True if connection successful
        """
        attempts = retries + 1

        for attempt in range(attempts):
            if attempt > 0:
                self._log(f"Connection retry {attempt}/{retries}...")
                await asyncio.sleep(retry_delay)

            self._log(f"Connecting to {address}...")
            if await self.connection.connect(address):
                self._log("Connected")
                self.transceiver.buffer.clear()
                return True
            self._log(f"Connection failed (attempt {attempt + 1}/{attempts})")

        return False

    async def disconnect(self):
        """Disconnect from the printer."""
        await self.connection.disconnect()
        self._log("Disconnected")

    @property
    def is_connected(self) -> bool:
        """Check if currently connected to a printer."""
        return self.connection.is_connected

    # --- Command mapping ---

    async def _command(self, code: RequestCode, data: bytes = DEFAULT_ARGUMENT,
                       offset: Optional[int] = None) -> Packet:
        if offset is None:
            offset = RESPONSE_OFFSETS[code]
        return await self.transceiver.transceive(code, data, offset)

    async def _flag_command(self, code: RequestCode, data: bytes = DEFAULT_ARGUMENT,
                            strict: bool = False) -> CommandResult[bool]:
        """Run a command whose response's first byte reports success.

        With strict, only a first byte of 1 counts as success; otherwise any
        non-zero byte does.
        """
        try:
            packet = await self._command(code, data)
        except PrinterError as e:
            self._log(f"{code.name} failed: {e}")
            return CommandResult(False, e)

        if not packet.data:
            return CommandResult(False)
        if strict:
            return CommandResult(packet.data[0] == 1)
        return CommandResult(packet.data[0] != 0)

    async def set_label_type(self, n: int) -> CommandResult[bool]:
        """Set the label type (1-3)."""
        if n not in self.LABEL_TYPES:
            raise ValueError(f"Label type must be 1-3, got {n}")
        return await self._flag_command(RequestCode.SET_LABEL_TYPE, bytes([n]))

    async def set_label_density(self, n: int) -> CommandResult[bool]:
        """Set the print density (1-3)."""
        if n not in self.DENSITIES:
            raise ValueError(f"Density must be 1-3, got {n}")
        return await self._flag_command(RequestCode.SET_LABEL_DENSITY, bytes([n]))

    async def start_print(self) -> CommandResult[bool]:
        return await self._flag_command(RequestCode.START_PRINT)

    async def end_print(self) -> CommandResult[bool]:
        return await self._flag_command(RequestCode.END_PRINT)

    async def start_page_print(self) -> CommandResult[bool]:
        return await self._flag_command(RequestCode.START_PAGE_PRINT)

    async def end_page_print(self) -> CommandResult[bool]:
        return await self._flag_command(RequestCode.END_PAGE_PRINT)

    async def allow_print_clear(self) -> CommandResult[bool]:
        return await self._flag_command(RequestCode.ALLOW_PRINT_CLEAR, strict=True)

    async def set_dimension(self, width: int, height: int) -> CommandResult[bool]:
        """Set the page dimension in pixels."""
        for name, value in (("width", width), ("height", height)):
            if not 0 <= value <= 0xFFFF:
                raise ValueError(f"Dimension {name} out of range: {value}")
        data = width.to_bytes(2, "big") + height.to_bytes(2, "big")
        return await self._flag_command(RequestCode.SET_DIMENSION, data, strict=True)

    async def set_quantity(self, quantity: int) -> CommandResult[bool]:
        """Set the number of copies."""
        if not 0 <= quantity <= 0xFFFF:
            raise ValueError(f"Quantity out of range: {quantity}")
        return await self._flag_command(
            RequestCode.SET_QUANTITY, quantity.to_bytes(2, "big"), strict=True
        )

    async def get_print_status(self) -> CommandResult[PrintStatus]:
        """Query print progress. Value is a zero status on failure."""
        try:
            packet = await self._command(RequestCode.GET_PRINT_STATUS)
            return CommandResult(PrintStatus.parse(packet.data))
        except PrinterError as e:
            self._log(f"GET_PRINT_STATUS failed: {e}")
            return CommandResult(PrintStatus(), e)

    async def get_info(self, key: InfoKey) -> CommandResult[Any]:
        """Query a device setting or property. Value is None on failure."""
        key = InfoKey(key)
        try:
            packet = await self._command(RequestCode.GET_INFO, bytes([key]), offset=key)
            return CommandResult(parse_info(key, packet.data))
        except PrinterError as e:
            self._log(f"GET_INFO {key.name} failed: {e}")
            return CommandResult(None, e)

    async def get_rfid(self) -> CommandResult[Optional[RFIDTag]]:
        """Read the label roll's RFID tag. Value is None when there is no tag."""
        try:
            packet = await self._command(RequestCode.GET_RFID)
            return CommandResult(RFIDTag.parse(packet.data))
        except PrinterError as e:
            self._log(f"GET_RFID failed: {e}")
            return CommandResult(None, e)

    async def heartbeat(self) -> CommandResult[dict]:
        """Query device state. Fields depend on the firmware's payload length."""
        try:
            packet = await self._command(RequestCode.HEARTBEAT)
            return CommandResult(parse_heartbeat(packet.data))
        except PrinterError as e:
            self._log(f"HEARTBEAT failed: {e}")
            return CommandResult({}, e)

    # --- Print job ---

    async def _wait_for_pages(self, quantity: int, poll_interval: float):
        while True:
            status = (await self.get_print_status()).value
            self._log(f"Print status: {status}")
            if status.page == quantity:
                return
            if poll_interval > 0:
                await asyncio.sleep(poll_interval)

    async def print_image(
        self,
        image: Union[str, Path, bytes, Image.Image],
        density: int = 2,
        label_type: int = 1,
        quantity: int = 1,
        check: bool = False,
        status_timeout: Optional[float] = None,
        poll_interval: float = 0.0,
    ) -> bool:
        """
        Print an image as a label.

        Args:
            image: Image source (path, bytes, or PIL Image)
            density: Print density (1-3, default 2)
            label_type: Label type (1-3, default 1)
            quantity: Number of copies
            check: Reject images that are not 96 pixels wide and under 600 tall
            status_timeout: Seconds to wait for the printer to report all
                copies printed (default None: wait indefinitely)
            poll_interval: Delay between status polls in seconds

        Returns:
            True when the printer reported all copies printed

        Raises:
            ConnectionError: If not connected or the connection is lost
            ImageError: If image cannot be loaded, is too wide to encode or
                fails the check
            PrintError: If the printer does not finish within status_timeout
        """
        if label_type not in self.LABEL_TYPES:
            raise ValueError(f"Label type must be 1-3, got {label_type}")
        if density not in self.DENSITIES:
            raise ValueError(f"Density must be 1-3, got {density}")
        if not 1 <= quantity <= 0xFFFF:
            raise ValueError(f"Quantity out of range: {quantity}")
        if not self.connection.is_connected:
            raise ConnectionError("Not connected to printer")

        self._log("Loading image...")
        img = self.processor.prepare(self.processor.load(image))
        if check:
            self.processor.check(img)
        self._log(f"Image size: {img.width}x{img.height} pixels")
        packets = self.encoder.encode(img)

        # Setup responses vary across models, so failures are only logged
        setup = [
            (self.set_label_type, (label_type,)),
            (self.set_label_density, (density,)),
            (self.start_print, ()),
            (self.allow_print_clear, ()),
            (self.start_page_print, ()),
            # Rows (feed direction) first
            (self.set_dimension, (img.height, img.width)),
            (self.set_quantity, (quantity,)),
        ]
        for command, args in setup:
            result = await command(*args)
            if not result:
                self._log(
                    f"{command.__name__} did not succeed: {result.error or result.value}"
                )

        self._log(f"Sending {len(packets)} rows...")
        for packet in packets:
            await self.transceiver.send(packet)

        await self.end_page_print()

        try:
            await asyncio.wait_for(
                self._wait_for_pages(quantity, poll_interval),
                timeout=status_timeout,
            )
        except asyncio.TimeoutError as e:
            raise PrintError(
                f"Printer did not report {quantity} page(s) within {status_timeout}s"
            ) from e

        await self.end_print()
        self._log("Print job complete")
        return True

    async def print_test_pattern(self, **kwargs) -> bool:
        """Print a 96x96 test pattern (border and diagonals)."""
        return await self.print_image(create_test_pattern(), **kwargs)


async def quick_print(
    address: str,
    image_path: str,
    density: int = 2,
    label_type: int = 1,
    quantity: int = 1,
    retries: int = 0,
) -> bool:
    """
    Convenience function to quickly print an image over RFCOMM.

    Raises:
        ConnectionError: If connection fails
        ImageError: If image cannot be loaded
        PrintError: If the print job fails
    """
    printer = NiimbotPrinter()

    try:
        if await printer.connect(address, retries=retries):
            return await printer.print_image(
                image_path,
                density=density,
                label_type=label_type,
                quantity=quantity,
            )
        raise ConnectionError(f"Failed to connect to {address}")
    finally:
        await printer.disconnect()
