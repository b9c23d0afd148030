"""
Request/response transceiver for the NIIMBOT packet protocol.

The printer answers on the same byte stream it is fed, interleaving
unsolicited frames with the response we are waiting for. The Transceiver
buffers inbound bytes, splits them into frames and picks out the one whose
type matches the request.
"""

import asyncio
from typing import Iterator, Optional, Protocol

from .errors import (
    ConnectionError,
    ResponseError,
    ResponseTimeoutError,
    UnsupportedError,
)
from .protocol import RESPONSE_ERROR, RESPONSE_UNSUPPORTED, Packet


class ByteStream(Protocol):
    """Duplex byte stream the Transceiver talks over."""

    async def write(self, data: bytes) -> None:
        ...

    async def read(self, timeout: float) -> bytes:
        """Return bytes received within timeout, or b"" if none arrived."""
        ...


class FrameBuffer:
    """Accumulates stream bytes and yields complete frames in order."""

    # Bytes needed before the length byte can be read
    MIN_PEEK = 4

    def __init__(self):
        self._data = bytearray()

    def feed(self, data: bytes):
        """Append newly received bytes."""
        self._data.extend(data)

    def clear(self):
        """Drop everything buffered."""
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def next_packet(self) -> Optional[Packet]:
        """
        Remove and decode the leading frame.

        Returns None while the leading frame is still incomplete. The frame's
        bytes are consumed before decoding, so a corrupt frame is dropped even
        though its codec error propagates.
        """
        if len(self._data) < self.MIN_PEEK:
            return None

        frame_len = self._data[Packet.LENGTH_OFFSET] + Packet.OVERHEAD
        if len(self._data) < frame_len:
            return None

        frame = bytes(self._data[:frame_len])
        del self._data[:frame_len]
        return Packet.decode(frame)

    def packets(self) -> Iterator[Packet]:
        """Yield every complete frame currently buffered."""
        while True:
            packet = self.next_packet()
            if packet is None:
                return
            yield packet


class Transceiver:
    """Sends request packets and waits for the matching response."""

    # Read attempts before giving up on a response
    MAX_ATTEMPTS = 6
    # Pause between read attempts in seconds
    RETRY_DELAY = 0.1
    # How long a single read waits for bytes in seconds
    READ_TIMEOUT = 1.0

    def __init__(
        self,
        stream: ByteStream,
        attempts: int = MAX_ATTEMPTS,
        retry_delay: float = RETRY_DELAY,
        read_timeout: float = READ_TIMEOUT,
    ):
        """
        Initialize transceiver.

        Args:
            stream: Open byte stream to the printer
            attempts: Read attempts per request (default 6)
            retry_delay: Delay between attempts in seconds (default 0.1)
            read_timeout: Timeout of each read in seconds (default 1.0)
        """
        if attempts < 1:
            raise ValueError(f"attempts must be at least 1, got {attempts}")

        self.stream = stream
        self.attempts = attempts
        self.retry_delay = retry_delay
        self.read_timeout = read_timeout
        self.buffer = FrameBuffer()
        self._lock = asyncio.Lock()
        self._debug = False

    def set_debug(self, enabled: bool):
        """Enable/disable debug output."""
        self._debug = enabled

    def _log(self, message: str):
        """Print debug message if enabled."""
        if self._debug:
            print(f"[NIIMBOT] {message}")

    async def _write(self, packet: Packet):
        data = packet.encode()
        self._log(f"TX: {data.hex()}")
        try:
            await self.stream.write(data)
        except OSError as e:
            raise ConnectionError(f"Write failed: {e}") from e

    async def _read(self) -> bytes:
        try:
            data = await self.stream.read(self.read_timeout)
        except OSError as e:
            raise ConnectionError(f"Read failed: {e}") from e
        if data:
            self._log(f"RX: {bytes(data).hex()}")
        return data

    async def send(self, packet: Packet):
        """Send a packet without waiting for any response."""
        await self._write(packet)

    async def transceive(
        self,
        request_type: int,
        data: bytes = b"",
        response_offset: int = 0,
    ) -> Packet:
        """
        Send a request and return the response frame that matches it.

        Args:
            request_type: Request packet type
            data: Request payload
            response_offset: Added to request_type to get the response type

        Returns:
            The first buffered frame of the expected response type

        Raises:
            ResponseError: Device sent an error frame
            UnsupportedError: Device does not implement the request
            ResponseTimeoutError: No match after all attempts
            ConnectionError: Stream read or write failed
            FrameError: A buffered frame failed to decode
        """
        response_type = (int(request_type) + int(response_offset)) & 0xFF

        async with self._lock:
            await self._write(Packet(int(request_type), bytes(data)))

            for attempt in range(self.attempts):
                if attempt > 0:
                    self._log(
                        f"No 0x{response_type:02X} response yet, "
                        f"retry {attempt}/{self.attempts - 1}..."
                    )
                    await asyncio.sleep(self.retry_delay)

                self.buffer.feed(await self._read())

                for packet in self.buffer.packets():
                    if packet.type == RESPONSE_ERROR:
                        raise ResponseError(
                            f"Printer rejected request 0x{int(request_type):02X}"
                        )
                    if packet.type == RESPONSE_UNSUPPORTED:
                        raise UnsupportedError(
                            f"Request 0x{int(request_type):02X} not implemented"
                        )
                    if packet.type == response_type:
                        return packet
                    self._log(f"Discarding unexpected {packet!r}")

        raise ResponseTimeoutError(
            f"No 0x{response_type:02X} response after {self.attempts} attempt(s)"
        )
