"""
NIIMBOT Printer Protocol Implementation.

This module implements packet encoding/decoding and the command code
tables for NIIMBOT-style label printers.

Packet Structure:
    Head:      0x55 0x55 (constant)
    Type:      0x00-0xFF (command or response identifier)
    DataLen:   Number of data bytes (0-255)
    Data:      Payload bytes
    Checksum:  XOR of Type, DataLen and every Data byte
    Tail:      0xAA 0xAA (constant)
"""

from dataclasses import dataclass
from enum import IntEnum

from .errors import ChecksumMismatchError, LengthMismatchError, MalformedFrameError


class RequestCode(IntEnum):
    """Command types sent to the printer."""
    # Queries
    GET_INFO = 0x40
    GET_RFID = 0x1A
    HEARTBEAT = 0xDC
    GET_PRINT_STATUS = 0xA3

    # Label Configuration
    SET_LABEL_TYPE = 0x23
    SET_LABEL_DENSITY = 0x21
    SET_DIMENSION = 0x13
    SET_QUANTITY = 0x15

    # Print Job Control
    START_PRINT = 0x01
    END_PRINT = 0xF3
    START_PAGE_PRINT = 0x03
    END_PAGE_PRINT = 0xE3
    ALLOW_PRINT_CLEAR = 0x20

    # Image Data
    PRINT_BITMAP_ROW = 0x85


class InfoKey(IntEnum):
    """Sub-keys for GET_INFO. The key is also the response offset."""
    DENSITY = 1
    PRINTSPEED = 2
    LABELTYPE = 3
    LANGUAGETYPE = 6
    AUTOSHUTDOWNTIME = 7
    DEVICETYPE = 8
    SOFTVERSION = 9
    BATTERY = 10
    DEVICESERIAL = 11
    HARDVERSION = 12


# Response types that end a request regardless of what was asked
RESPONSE_ERROR = 0xDB
RESPONSE_UNSUPPORTED = 0x00

# Response type = request type + offset. GET_INFO is absent: its offset is
# the InfoKey being queried.
RESPONSE_OFFSETS = {
    RequestCode.GET_RFID: 0,
    RequestCode.HEARTBEAT: 0,
    RequestCode.GET_PRINT_STATUS: 16,
    RequestCode.SET_LABEL_TYPE: 16,
    RequestCode.SET_LABEL_DENSITY: 16,
    RequestCode.SET_DIMENSION: 16,
    RequestCode.SET_QUANTITY: 16,
    RequestCode.START_PRINT: 0,
    RequestCode.END_PRINT: 0,
    RequestCode.START_PAGE_PRINT: 0,
    RequestCode.END_PAGE_PRINT: 0,
    RequestCode.ALLOW_PRINT_CLEAR: 16,
}


def xor_checksum(packet_type: int, data: bytes) -> int:
    """XOR fold of the type byte, the length byte and the payload."""
    checksum = packet_type ^ len(data)
    for b in data:
        checksum ^= b
    return checksum


@dataclass(frozen=True)
class Packet:
    """Represents a protocol packet."""
    type: int
    data: bytes = b""

    # Protocol constants
    HEAD = bytes([0x55, 0x55])
    TAIL = bytes([0xAA, 0xAA])
    # HEAD(2) + TYPE(1) + LEN(1) + CHECKSUM(1) + TAIL(2)
    OVERHEAD = 7
    # Offset of the length byte, used to size frames in a stream
    LENGTH_OFFSET = 3
    MAX_DATA_LENGTH = 255

    def encode(self) -> bytes:
        """Encode packet to bytes for transmission."""
        if not 0 <= self.type <= 0xFF:
            raise ValueError(f"Packet type out of range: {self.type}")
        if len(self.data) > self.MAX_DATA_LENGTH:
            raise ValueError(
                f"Packet data too long: {len(self.data)} bytes "
                f"(max {self.MAX_DATA_LENGTH})"
            )

        data = bytes(self.data)
        checksum = xor_checksum(self.type, data)
        return (
            self.HEAD
            + bytes([self.type, len(data)])
            + data
            + bytes([checksum])
            + self.TAIL
        )

    @classmethod
    def decode(cls, frame: bytes) -> "Packet":
        """
        Decode one complete frame.

        Raises:
            MalformedFrameError: Too short, or head/tail markers missing
            LengthMismatchError: Length byte disagrees with the frame size
            ChecksumMismatchError: Checksum byte does not match
        """
        frame = bytes(frame)
        if len(frame) < 6:
            raise MalformedFrameError(f"Frame too short: {len(frame)} bytes")

        if frame[:2] != cls.HEAD or frame[-2:] != cls.TAIL:
            raise MalformedFrameError(f"Missing frame markers: {frame.hex()}")

        packet_type = frame[2]
        data_len = frame[cls.LENGTH_OFFSET]

        if data_len != len(frame) - cls.OVERHEAD:
            raise LengthMismatchError(
                f"Declared length {data_len} does not match frame of "
                f"{len(frame)} bytes"
            )

        data = frame[4:4 + data_len]
        checksum = frame[4 + data_len]

        calculated = xor_checksum(packet_type, data)
        if calculated != checksum:
            raise ChecksumMismatchError(
                f"Checksum 0x{checksum:02X} != computed 0x{calculated:02X}"
            )

        return cls(type=packet_type, data=data)

    def __repr__(self) -> str:
        return f"Packet(type=0x{self.type:02X}, data={bytes(self.data).hex()})"
