"""
Response Parsers for NIIMBOT Printer Queries.

Decodes the payloads of GET_PRINT_STATUS, GET_INFO, GET_RFID and
HEARTBEAT responses. All multi-byte integers are big-endian.
"""

from dataclasses import dataclass
from typing import Optional, Union

from .errors import MalformedResponseError
from .protocol import InfoKey


@dataclass(frozen=True)
class PrintStatus:
    """
    Parsed GET_PRINT_STATUS response.

    Response structure (first 4 bytes used):
        Offset  Length  Field
        0-1     2       Pages printed so far (uint16)
        2       1       Progress counter 1
        3       1       Progress counter 2
    """

    page: int = 0
    progress1: int = 0
    progress2: int = 0

    @classmethod
    def parse(cls, data: bytes) -> "PrintStatus":
        if len(data) < 4:
            raise MalformedResponseError(
                f"Print status needs 4 bytes, got {len(data)}"
            )
        return cls(
            page=int.from_bytes(data[0:2], "big"),
            progress1=data[2],
            progress2=data[3],
        )

    def __str__(self) -> str:
        return (
            f"page {self.page}, progress {self.progress1}/{self.progress2}"
        )


@dataclass(frozen=True)
class RFIDTag:
    """
    Parsed GET_RFID response for a label roll with an RFID tag.

    Response structure:
        Offset  Length  Field
        0       8       Tag UUID
        8       1       Barcode length (B)
        9       B       Barcode (ASCII)
        9+B     1       Serial length (S)
        10+B    S       Serial (ASCII)
        10+B+S  2       Total label length (uint16)
        12+B+S  2       Used label length (uint16)
        14+B+S  1       Label type
    """

    uuid: str
    barcode: str
    serial: str
    used_len: int
    total_len: int
    type: int

    @classmethod
    def parse(cls, data: bytes) -> Optional["RFIDTag"]:
        """
        Parse GET_RFID response bytes.

        Returns:
            RFIDTag, or None when no tag is present (first byte is 0)

        Raises:
            MalformedResponseError: If the fields run past the payload
        """
        if not data:
            raise MalformedResponseError("Empty RFID response")
        if data[0] == 0:
            return None

        try:
            idx = 0
            uuid = _take(data, idx, 8).hex()
            idx += 8

            barcode_len = _take(data, idx, 1)[0]
            idx += 1
            barcode = _take(data, idx, barcode_len).decode("ascii", "replace")
            idx += barcode_len

            serial_len = _take(data, idx, 1)[0]
            idx += 1
            serial = _take(data, idx, serial_len).decode("ascii", "replace")
            idx += serial_len

            total_len = int.from_bytes(_take(data, idx, 2), "big")
            idx += 2
            used_len = int.from_bytes(_take(data, idx, 2), "big")
            idx += 2
            tag_type = _take(data, idx, 1)[0]
        except IndexError as e:
            raise MalformedResponseError(
                f"Truncated RFID response: {bytes(data).hex()}"
            ) from e

        return cls(
            uuid=uuid,
            barcode=barcode,
            serial=serial,
            used_len=used_len,
            total_len=total_len,
            type=tag_type,
        )


def _take(data: bytes, start: int, length: int) -> bytes:
    """Slice exactly length bytes or raise IndexError."""
    chunk = data[start:start + length]
    if len(chunk) != length:
        raise IndexError(f"need {length} bytes at offset {start}")
    return bytes(chunk)


def parse_info(key: InfoKey, data: bytes) -> Union[int, float, str]:
    """
    Decode a GET_INFO response for the given key.

    DEVICESERIAL is returned as a hex string, SOFTVERSION and HARDVERSION
    as the integer value divided by 100, everything else as an integer.
    """
    if key == InfoKey.DEVICESERIAL:
        return bytes(data).hex()

    if not data:
        raise MalformedResponseError(f"Empty response for {key.name}")

    value = int.from_bytes(data, "big")
    if key in (InfoKey.SOFTVERSION, InfoKey.HARDVERSION):
        return value / 100
    return value


# Heartbeat field offsets, keyed on payload length. Different firmware
# revisions report different layouts.
HEARTBEAT_LAYOUTS = {
    20: {"paperstate": 18, "rfidreadstate": 19},
    19: {"closingstate": 15, "powerlevel": 16, "paperstate": 17, "rfidreadstate": 18},
    13: {"closingstate": 9, "powerlevel": 10, "paperstate": 11, "rfidreadstate": 12},
    10: {"closingstate": 8, "powerlevel": 9, "rfidreadstate": 8},
    9: {"closingstate": 8},
}


def parse_heartbeat(data: bytes) -> dict[str, int]:
    """Decode a HEARTBEAT payload. Unknown lengths yield an empty dict."""
    layout = HEARTBEAT_LAYOUTS.get(len(data), {})
    return {name: data[offset] for name, offset in layout.items()}
