"""Tests for the printer command facade and print job."""

import asyncio

import pytest
from PIL import Image

from niimbotprinter.errors import (
    ConnectionError,
    ImageError,
    PrinterError,
    PrintError,
    ResponseError,
    ResponseTimeoutError,
    UnsupportedError,
)
from niimbotprinter.printer import CommandResult, NiimbotPrinter, quick_print
from niimbotprinter.protocol import InfoKey, Packet, RequestCode
from niimbotprinter.responses import PrintStatus


@pytest.fixture
def printer(stream):
    """Printer wired to the scripted stream, with fast retries."""
    return NiimbotPrinter(stream, retry_delay=0)


def reply(stream, response_type, data):
    """Answer every request with one fixed packet."""
    stream.responder = lambda request: [Packet(response_type, data)]


class TestCommandResult:
    """Test the command result type."""

    def test_success(self):
        result = CommandResult(True)
        assert result.ok
        assert bool(result) is True
        assert result.unwrap() is True

    def test_rejected(self):
        result = CommandResult(False)
        assert result.ok
        assert bool(result) is False

    def test_failed_keeps_error(self):
        error = ResponseTimeoutError("no answer")
        result = CommandResult(False, error)
        assert not result.ok
        assert bool(result) is False
        assert result.error is error
        with pytest.raises(ResponseTimeoutError):
            result.unwrap()

    def test_non_bool_values_are_truthy_when_ok(self):
        assert bool(CommandResult(0))
        assert bool(CommandResult(None))
        assert bool(CommandResult({}))


class TestPreconditions:
    """Out-of-range arguments are rejected before any I/O."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [0, 4, -1])
    async def test_label_type_out_of_range(self, printer, stream, value):
        with pytest.raises(ValueError, match="Label type"):
            await printer.set_label_type(value)
        assert stream.written == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value", [0, 4])
    async def test_density_out_of_range(self, printer, stream, value):
        with pytest.raises(ValueError, match="Density"):
            await printer.set_label_density(value)
        assert stream.written == []

    @pytest.mark.asyncio
    async def test_quantity_out_of_range(self, printer, stream):
        with pytest.raises(ValueError):
            await printer.set_quantity(0x10000)
        assert stream.written == []

    @pytest.mark.asyncio
    async def test_dimension_out_of_range(self, printer, stream):
        with pytest.raises(ValueError):
            await printer.set_dimension(-1, 10)
        assert stream.written == []


class TestCommandMapping:
    """Each command sends its request code and payload and matches its response."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method, args, request_code, payload, response_code", [
        ("set_label_type", (2,), 35, b"\x02", 51),
        ("set_label_density", (3,), 33, b"\x03", 49),
        ("start_print", (), 1, b"\x01", 1),
        ("end_print", (), 243, b"\x01", 243),
        ("start_page_print", (), 3, b"\x01", 3),
        ("end_page_print", (), 227, b"\x01", 227),
        ("allow_print_clear", (), 32, b"\x01", 48),
        ("set_dimension", (240, 96), 19, b"\x00\xf0\x00\x60", 35),
        ("set_quantity", (300,), 21, b"\x01\x2c", 37),
    ])
    async def test_flag_commands(self, printer, stream, method, args,
                                 request_code, payload, response_code):
        reply(stream, response_code, b"\x01")

        result = await getattr(printer, method)(*args)

        assert result.ok
        assert result.value is True
        assert stream.written_packets == [Packet(request_code, payload)]

    @pytest.mark.asyncio
    async def test_zero_response_byte_is_false(self, printer, stream):
        reply(stream, 51, b"\x00")
        result = await printer.set_label_type(1)
        assert result.ok
        assert result.value is False
        assert not result

    @pytest.mark.asyncio
    async def test_strict_commands_need_exactly_one(self, printer, stream):
        """allow_print_clear, set_dimension and set_quantity succeed only on 1."""
        reply(stream, 48, b"\x02")
        assert (await printer.allow_print_clear()).value is False

    @pytest.mark.asyncio
    async def test_lenient_commands_accept_any_non_zero(self, printer, stream):
        reply(stream, 1, b"\x02")
        assert (await printer.start_print()).value is True

    @pytest.mark.asyncio
    async def test_empty_response_is_false(self, printer, stream):
        reply(stream, 1, b"")
        result = await printer.start_print()
        assert result.ok
        assert result.value is False

    @pytest.mark.asyncio
    async def test_get_print_status(self, printer, stream):
        reply(stream, 179, bytes([0x00, 0x01, 0x64, 0x64]))

        result = await printer.get_print_status()

        assert result.value == PrintStatus(page=1, progress1=100, progress2=100)
        assert stream.written_packets == [Packet(163, b"\x01")]

    @pytest.mark.asyncio
    async def test_get_info_uses_key_as_offset(self, printer, stream):
        reply(stream, 64 + 10, b"\x03")

        result = await printer.get_info(InfoKey.BATTERY)

        assert result.value == 3
        assert stream.written_packets == [Packet(64, b"\x0a")]

    @pytest.mark.asyncio
    async def test_get_info_serial(self, printer, stream):
        reply(stream, 64 + 11, bytes([0xAB, 0xCD]))
        assert (await printer.get_info(InfoKey.DEVICESERIAL)).value == "abcd"

    @pytest.mark.asyncio
    async def test_get_info_soft_version(self, printer, stream):
        reply(stream, 64 + 9, bytes([0x01, 0x0E]))
        assert (await printer.get_info(InfoKey.SOFTVERSION)).value == 2.7

    @pytest.mark.asyncio
    async def test_get_rfid_no_tag(self, printer, stream):
        reply(stream, 26, b"\x00")

        result = await printer.get_rfid()

        assert result.ok
        assert result.value is None
        assert stream.written_packets == [Packet(26, b"\x01")]

    @pytest.mark.asyncio
    async def test_get_rfid_tag(self, printer, stream):
        data = bytes(range(1, 9)) + b"\x02AB" + b"\x01S" + b"\x00\xf0\x00\x10\x01"
        reply(stream, 26, data)

        tag = (await printer.get_rfid()).value

        assert tag.uuid == "0102030405060708"
        assert tag.barcode == "AB"
        assert tag.serial == "S"
        assert tag.total_len == 240
        assert tag.used_len == 16
        assert tag.type == 1

    @pytest.mark.asyncio
    async def test_heartbeat(self, printer, stream):
        reply(stream, 220, bytes(range(13)))

        result = await printer.heartbeat()

        assert result.value == {
            "closingstate": 9,
            "powerlevel": 10,
            "paperstate": 11,
            "rfidreadstate": 12,
        }
        assert stream.written_packets == [Packet(220, b"\x01")]


class TestFailureResults:
    """Failures are returned with their specific error kind."""

    @pytest.mark.asyncio
    async def test_timeout_is_false_with_error(self, printer, stream):
        result = await printer.set_label_type(1)

        assert result.value is False
        assert isinstance(result.error, ResponseTimeoutError)
        assert not result

    @pytest.mark.asyncio
    async def test_device_error_is_distinguishable(self, printer, stream):
        reply(stream, 0xDB, b"\x00")
        result = await printer.start_print()
        assert isinstance(result.error, ResponseError)

    @pytest.mark.asyncio
    async def test_unsupported(self, printer, stream):
        reply(stream, 0x00, b"\x00")
        result = await printer.allow_print_clear()
        assert isinstance(result.error, UnsupportedError)

    @pytest.mark.asyncio
    async def test_status_failure_is_zero_status(self, printer, stream):
        result = await printer.get_print_status()
        assert result.value == PrintStatus()
        assert isinstance(result.error, PrinterError)

    @pytest.mark.asyncio
    async def test_status_short_payload_is_zero_status(self, printer, stream):
        reply(stream, 179, b"\x00\x01")
        result = await printer.get_print_status()
        assert result.value == PrintStatus()
        assert not result.ok

    @pytest.mark.asyncio
    async def test_heartbeat_failure_is_empty(self, printer, stream):
        result = await printer.heartbeat()
        assert result.value == {}
        assert not result.ok

    @pytest.mark.asyncio
    async def test_get_info_failure_is_none(self, printer, stream):
        result = await printer.get_info(InfoKey.DENSITY)
        assert result.value is None
        assert not result.ok


def job_responder(pages_after=1, quantity=1):
    """Answer like a printer running a job.

    Every command succeeds; the print status reports ``quantity`` pages once
    it has been polled ``pages_after`` times.
    """
    polls = {"count": 0}

    def respond(request):
        code = request.type
        if code == RequestCode.PRINT_BITMAP_ROW:
            return []
        if code == RequestCode.GET_PRINT_STATUS:
            polls["count"] += 1
            page = quantity if polls["count"] >= pages_after else 0
            return [Packet(code + 16, page.to_bytes(2, "big") + b"\x00\x00")]
        offset = 16 if code in (0x23, 0x21, 0x20, 0x13, 0x15) else 0
        return [Packet(code + offset, b"\x01")]

    respond.polls = polls
    return respond


class TestPrintImage:
    """Test the print job sequence."""

    @pytest.mark.asyncio
    async def test_sequence(self, printer, stream):
        stream.responder = job_responder(pages_after=3, quantity=2)
        img = Image.new("L", (2, 4), color=255)

        assert await printer.print_image(img, density=3, label_type=2, quantity=2)

        types = [p.type for p in stream.written_packets]
        assert types == [
            RequestCode.SET_LABEL_TYPE,
            RequestCode.SET_LABEL_DENSITY,
            RequestCode.START_PRINT,
            RequestCode.ALLOW_PRINT_CLEAR,
            RequestCode.START_PAGE_PRINT,
            RequestCode.SET_DIMENSION,
            RequestCode.SET_QUANTITY,
            0x85, 0x85, 0x85, 0x85,
            RequestCode.END_PAGE_PRINT,
            RequestCode.GET_PRINT_STATUS,
            RequestCode.GET_PRINT_STATUS,
            RequestCode.GET_PRINT_STATUS,
            RequestCode.END_PRINT,
        ]

    @pytest.mark.asyncio
    async def test_payloads(self, printer, stream):
        stream.responder = job_responder(quantity=5)
        img = Image.new("L", (96, 60), color=0)

        await printer.print_image(img, density=1, label_type=3, quantity=5)

        packets = stream.written_packets
        assert packets[0].data == b"\x03"
        assert packets[1].data == b"\x01"
        # Height (rows) first, then width
        assert packets[5].data == bytes([0x00, 60, 0x00, 96])
        assert packets[6].data == b"\x00\x05"
        rows = [p for p in packets if p.type == 0x85]
        assert len(rows) == 60
        assert rows[-1].data[:2] == b"\x00\x3b"

    @pytest.mark.asyncio
    async def test_wide_image_is_rotated(self, printer, stream):
        stream.responder = job_responder()
        img = Image.new("L", (240, 96), color=255)

        await printer.print_image(img)

        rows = [p for p in stream.written_packets if p.type == 0x85]
        assert len(rows) == 240
        assert len(rows[0].data) == 6 + 96

    @pytest.mark.asyncio
    async def test_setup_failures_do_not_stop_job(self, printer, stream):
        respond = job_responder()

        def flaky(request):
            if request.type == RequestCode.ALLOW_PRINT_CLEAR:
                return [Packet(0x00, b"\x00")]
            return respond(request)

        stream.responder = flaky
        assert await printer.print_image(Image.new("L", (96, 2), color=255))

    @pytest.mark.asyncio
    async def test_status_timeout(self, printer, stream):
        """A printer that never reports the pages raises PrintError."""
        stream.responder = job_responder(pages_after=10**9)

        with pytest.raises(PrintError, match="did not report"):
            await printer.print_image(
                Image.new("L", (96, 2), color=255),
                status_timeout=0.05,
                poll_interval=0.001,
            )

    @pytest.mark.asyncio
    async def test_check_rejects_bad_size(self, printer, stream):
        with pytest.raises(ImageError):
            await printer.print_image(Image.new("L", (100, 100)), check=True)
        assert stream.written == []

    @pytest.mark.asyncio
    async def test_not_connected(self, printer, stream):
        stream.connected = False
        with pytest.raises(ConnectionError, match="Not connected"):
            await printer.print_image(Image.new("L", (96, 2)))

    @pytest.mark.asyncio
    async def test_invalid_label_type_before_io(self, printer, stream):
        with pytest.raises(ValueError):
            await printer.print_image(Image.new("L", (96, 2)), label_type=4)
        assert stream.written == []

    @pytest.mark.asyncio
    async def test_too_wide_image_before_io(self, printer, stream):
        """Rows that cannot fit in one packet fail before any command is sent."""
        stream.responder = job_responder()

        with pytest.raises(ImageError, match="exceeds maximum width"):
            await printer.print_image(Image.new("L", (300, 200)))
        assert stream.written == []

    @pytest.mark.asyncio
    async def test_widest_row_prints(self, printer, stream):
        stream.responder = job_responder()

        assert await printer.print_image(Image.new("L", (249, 200), color=255))

        rows = [p for p in stream.written_packets if p.type == 0x85]
        assert len(rows[0].data) == 255

    @pytest.mark.asyncio
    async def test_print_test_pattern(self, printer, stream):
        stream.responder = job_responder()
        assert await printer.print_test_pattern()
        rows = [p for p in stream.written_packets if p.type == 0x85]
        assert len(rows) == 96


class TestQuickPrint:
    """Test the connect, print, disconnect helper."""

    @pytest.fixture
    def image_path(self, tmp_path):
        path = tmp_path / "label.png"
        Image.new("L", (96, 96), color=255).save(path)
        return path

    @pytest.mark.asyncio
    async def test_prints_and_disconnects(self, stream, mocker, image_path):
        mocker.patch("niimbotprinter.printer.SocketConnection", return_value=stream)
        stream.responder = job_responder(quantity=2)

        assert await quick_print("AA:BB:CC:DD:EE:FF", str(image_path), quantity=2)

        types = [p.type for p in stream.written_packets]
        assert types[0] == RequestCode.SET_LABEL_TYPE
        assert types[-1] == RequestCode.END_PRINT
        assert not stream.is_connected

    @pytest.mark.asyncio
    async def test_connect_failure_still_disconnects(self, stream, mocker, image_path):
        mocker.patch("niimbotprinter.printer.SocketConnection", return_value=stream)
        stream.connect = mocker.AsyncMock(return_value=False)
        stream.disconnect = mocker.AsyncMock()

        with pytest.raises(ConnectionError, match="Failed to connect"):
            await quick_print("AA:BB:CC:DD:EE:FF", str(image_path))

        stream.disconnect.assert_awaited_once()
        assert stream.written == []


class TestConnect:
    """Test connection handling."""

    @pytest.mark.asyncio
    async def test_connect_clears_buffer(self, printer, stream):
        printer.transceiver.buffer.feed(b"\x55\x55\x01")
        assert await printer.connect("AA:BB:CC:DD:EE:FF")
        assert len(printer.transceiver.buffer) == 0

    @pytest.mark.asyncio
    async def test_connect_retries(self, stream, mocker):
        printer = NiimbotPrinter(stream)
        stream.connect = mocker.AsyncMock(side_effect=[False, False, True])
        mocker.patch("niimbotprinter.printer.asyncio.sleep", new_callable=mocker.AsyncMock)

        assert await printer.connect("AA:BB:CC:DD:EE:FF", retries=2)
        assert stream.connect.await_count == 3

    @pytest.mark.asyncio
    async def test_connect_gives_up(self, stream, mocker):
        printer = NiimbotPrinter(stream)
        stream.connect = mocker.AsyncMock(return_value=False)

        assert not await printer.connect("AA:BB:CC:DD:EE:FF")

    @pytest.mark.asyncio
    async def test_disconnect(self, printer, stream):
        await printer.disconnect()
        assert not printer.is_connected

    def test_default_connection_is_socket(self):
        from niimbotprinter.connection import SocketConnection

        assert isinstance(NiimbotPrinter().connection, SocketConnection)


class TestDebug:
    """Test debug output."""

    @pytest.mark.asyncio
    async def test_debug_logs_traffic(self, printer, stream, capsys):
        printer.set_debug(True)
        reply(stream, 1, b"\x01")

        await printer.start_print()

        out = capsys.readouterr().out
        assert "[NIIMBOT] TX: 5555010101" in out
        assert "[NIIMBOT] RX:" in out

    @pytest.mark.asyncio
    async def test_quiet_by_default(self, printer, stream, capsys):
        reply(stream, 1, b"\x01")
        await printer.start_print()
        assert capsys.readouterr().out == ""
