"""
Pytest configuration for NIIMBOT printer tests.

Provides a scripted in-memory byte stream standing in for the printer, and
command-line options for hardware tests.
"""

from collections import deque

import pytest

from niimbotprinter.protocol import Packet


class FakeStream:
    """Scripted duplex byte stream.

    Each read() returns the next queued chunk, or b"" when nothing is queued.
    A responder, if set, is called with every decoded packet written and may
    return response packets to queue.
    """

    def __init__(self):
        self.written: list[bytes] = []
        self.chunks: deque = deque()
        self.reads = 0
        self.responder = None
        self.connected = True
        self.read_error = None

    def queue(self, *items):
        """Queue raw chunks (bytes) or packets to be read."""
        for item in items:
            if isinstance(item, Packet):
                item = item.encode()
            self.chunks.append(bytes(item))

    async def connect(self, address: str) -> bool:
        self.connected = True
        return True

    async def disconnect(self):
        self.connected = False

    async def write(self, data: bytes):
        self.written.append(bytes(data))
        if self.responder is not None:
            replies = self.responder(Packet.decode(data))
            for reply in replies or ():
                self.queue(reply)

    async def read(self, timeout: float) -> bytes:
        self.reads += 1
        if self.read_error is not None:
            raise self.read_error
        if self.chunks:
            return self.chunks.popleft()
        return b""

    @property
    def written_packets(self) -> list[Packet]:
        return [Packet.decode(data) for data in self.written]

    @property
    def is_connected(self) -> bool:
        return self.connected


@pytest.fixture
def stream():
    """Provide an empty scripted stream."""
    return FakeStream()


def pytest_addoption(parser):
    """Add command-line options for hardware tests."""
    parser.addoption(
        "--address",
        action="store",
        default=None,
        help="Bluetooth address of the printer for hardware tests",
    )


@pytest.fixture
def printer_address(request):
    """Get the printer address from command line."""
    address = request.config.getoption("--address")
    if address is None:
        pytest.skip("No printer address provided (use --address=XX:XX:XX:XX:XX:XX)")
    return address
