"""
Connection Handlers for NIIMBOT Printers.

Both connections expose the same byte-stream interface to the Transceiver:
``write(data)`` and ``read(timeout)``, which returns ``b""`` when nothing
arrived in time.

- SocketConnection: Bluetooth Classic RFCOMM socket (Linux).
- BLEConnection: Bluetooth Low Energy via the Bleak library.
"""

import asyncio
import platform
import socket
from dataclasses import dataclass
from typing import Optional

from bleak import BleakClient, BleakScanner
from bleak.backends.characteristic import BleakGATTCharacteristic
from bleak.exc import BleakError

from .errors import ConnectionError


@dataclass
class PrinterInfo:
    """Information about a discovered printer.

    Attributes:
        name: Device advertised name (e.g., "B21-C2101234")
        address: Platform-specific identifier for connecting:
            - MAC address (XX:XX:XX:XX:XX:XX) on Linux/Windows
            - UUID on macOS (CoreBluetooth privacy feature)
        rssi: Signal strength in dB
    """
    name: str
    address: str
    rssi: int

    def __str__(self) -> str:
        return f"{self.name} [{self.address}] RSSI: {self.rssi} dB"


class SocketConnection:
    """Manages an RFCOMM stream connection to a printer."""

    # RFCOMM channel the printer listens on
    CHANNEL = 1
    # Maximum bytes returned by a single read
    READ_SIZE = 1024

    def __init__(self, channel: int = CHANNEL):
        self.channel = channel
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None

    @staticmethod
    def _create_socket() -> socket.socket:
        """Create a non-blocking RFCOMM socket."""
        if not hasattr(socket, "AF_BLUETOOTH"):
            raise ConnectionError(
                f"RFCOMM sockets are not supported on {platform.system()}, "
                "use a BLE connection instead"
            )
        sock = socket.socket(
            socket.AF_BLUETOOTH,
            socket.SOCK_STREAM,
            socket.BTPROTO_RFCOMM,
        )
        sock.setblocking(False)
        return sock

    async def connect(self, address: str) -> bool:
        """Connect to a printer by Bluetooth MAC address."""
        sock = self._create_socket()
        loop = asyncio.get_running_loop()
        try:
            await loop.sock_connect(sock, (address, self.channel))
            self._reader, self._writer = await asyncio.open_connection(sock=sock)
            return True
        except OSError:
            sock.close()
            self._reader = None
            self._writer = None
            return False

    async def disconnect(self):
        """Close the connection."""
        if self._writer is not None:
            self._writer.close()
            try:
                await self._writer.wait_closed()
            except OSError:
                pass
        self._reader = None
        self._writer = None

    async def write(self, data: bytes):
        """Write data to the printer."""
        if self._writer is None:
            raise ConnectionError("Not connected to printer")
        try:
            self._writer.write(data)
            await self._writer.drain()
        except OSError as e:
            raise ConnectionError(f"Write failed: {e}") from e

    async def read(self, timeout: float) -> bytes:
        """Return the bytes available within timeout, or b"" if none."""
        if self._reader is None:
            raise ConnectionError("Not connected to printer")
        try:
            data = await asyncio.wait_for(
                self._reader.read(self.READ_SIZE),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            return b""
        except OSError as e:
            raise ConnectionError(f"Read failed: {e}") from e

        if not data:
            raise ConnectionError("Connection closed by printer")
        return data

    @property
    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self._writer is not None and not self._writer.is_closing()


class BLEConnection:
    """Manages BLE connection to a printer."""

    # Known device name patterns
    DEVICE_PATTERNS = ["NIIM", "B21", "B1", "B18", "D11", "D110"]

    # Response queue limits (security: prevent memory exhaustion from malicious devices)
    MAX_QUEUE_SIZE = 100  # Maximum number of queued notifications
    MAX_RESPONSE_SIZE = 4096  # Maximum size of a single notification (bytes)

    # NIIMBOT serial-over-BLE characteristic; carries both directions
    # (write + notify)
    CHARACTERISTIC_UUID = "bef8d6c9-9c21-4c9e-b632-bd58c1009f9f"

    def __init__(self):
        self.client: Optional[BleakClient] = None
        self.write_char: Optional[str] = None
        self.notify_char: Optional[str] = None
        self._response_queue: asyncio.Queue = asyncio.Queue()

    @classmethod
    async def scan(cls, timeout: float = 10.0) -> list[PrinterInfo]:
        """Scan for NIIMBOT printers."""
        printers = []
        devices = await BleakScanner.discover(timeout=timeout, return_adv=True)

        for device, adv_data in devices.values():
            name = device.name or adv_data.local_name or ""
            if any(pattern.upper() in name.upper() for pattern in cls.DEVICE_PATTERNS):
                printers.append(PrinterInfo(
                    name=name,
                    address=device.address,
                    rssi=adv_data.rssi if adv_data.rssi is not None else -100,
                ))

        return sorted(printers, key=lambda p: p.rssi, reverse=True)

    async def connect(self, address: str) -> bool:
        """Connect to a printer by address."""
        self.client = BleakClient(address)

        try:
            await self.client.connect()

            # Discover services and find write/notify characteristics
            self._discover_characteristics()

            if self.notify_char:
                await self.client.start_notify(
                    self.notify_char,
                    self._handle_notification
                )

            return self.write_char is not None
        except (BleakError, OSError, asyncio.TimeoutError):
            return False

    async def disconnect(self):
        """Disconnect from the printer."""
        if self.client and self.client.is_connected:
            if self.notify_char:
                try:
                    await self.client.stop_notify(self.notify_char)
                except BleakError:
                    pass
            await self.client.disconnect()
        self.client = None
        self.write_char = None
        self.notify_char = None

    def _discover_characteristics(self):
        """Find write and notify characteristics, preferring the NIIMBOT one."""
        if not self.client:
            return

        for service in self.client.services:
            for char in service.characteristics:
                props = char.properties
                preferred = char.uuid.lower() == self.CHARACTERISTIC_UUID

                # Find writable characteristic
                if "write" in props or "write-without-response" in props:
                    if preferred or not self.write_char:
                        self.write_char = char.uuid

                # Find notify characteristic
                if "notify" in props or "indicate" in props:
                    if preferred or not self.notify_char:
                        self.notify_char = char.uuid

    def _handle_notification(self, sender: BleakGATTCharacteristic, data: bytearray):
        """Handle incoming notifications from the printer."""
        # Security: reject oversized responses
        if len(data) > self.MAX_RESPONSE_SIZE:
            return

        # Security: if queue is full, drop oldest item to prevent memory exhaustion
        if self._response_queue.qsize() >= self.MAX_QUEUE_SIZE:
            try:
                self._response_queue.get_nowait()
            except asyncio.QueueEmpty:
                pass

        self._response_queue.put_nowait(bytes(data))

    async def write(self, data: bytes):
        """Write data to the printer."""
        if not self.client or not self.write_char:
            raise ConnectionError("Not connected to printer")

        try:
            await self.client.write_gatt_char(
                self.write_char,
                data,
                response=False
            )
        except (BleakError, OSError) as e:
            raise ConnectionError(f"Write failed: {e}") from e

    async def read(self, timeout: float) -> bytes:
        """Return the next notification, or b"" if none arrived in time."""
        if not self.is_connected and self._response_queue.empty():
            raise ConnectionError("Not connected to printer")
        try:
            return await asyncio.wait_for(
                self._response_queue.get(),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            return b""

    @property
    def is_connected(self) -> bool:
        """Check if currently connected."""
        return self.client is not None and self.client.is_connected
