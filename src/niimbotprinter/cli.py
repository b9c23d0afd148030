"""
Command-Line Interface for NIIMBOT Printers.

Usage:
    niimbot scan                  - Scan for BLE printers
    niimbot print IMAGE -a ADDR   - Print an image
    niimbot test -a ADDR          - Print test pattern
    niimbot info -a ADDR          - Show device information
"""

import asyncio
import re
import sys

import click

from .connection import BLEConnection, SocketConnection
from .errors import ConnectionError, ImageError, PrinterError, PrintError
from .image import create_test_pattern
from .printer import NiimbotPrinter
from .protocol import InfoKey
from .transceiver import Transceiver


# Bluetooth MAC address format: XX:XX:XX:XX:XX:XX (hex pairs separated by colons)
BLUETOOTH_MAC_PATTERN = re.compile(r"^([0-9A-Fa-f]{2}:){5}[0-9A-Fa-f]{2}$")

# macOS CoreBluetooth UUID format: XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX
MACOS_UUID_PATTERN = re.compile(
    r"^[0-9A-Fa-f]{8}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{4}-[0-9A-Fa-f]{12}$"
)


def validate_bluetooth_address(ctx, param, value):
    """Validate Bluetooth address format.

    Accepts:
        - MAC address format: XX:XX:XX:XX:XX:XX (Linux/Windows)
        - UUID format: XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX (macOS, BLE only)

    Returns:
        The validated address (uppercased for consistency)

    Raises:
        click.BadParameter: If the address format is invalid
    """
    if value is None:
        return None
    if BLUETOOTH_MAC_PATTERN.match(value):
        return value.upper()
    if MACOS_UUID_PATTERN.match(value):
        return value.upper()
    raise click.BadParameter(
        f"Invalid Bluetooth address format: '{value}'. "
        "Expected MAC format XX:XX:XX:XX:XX:XX or "
        "macOS UUID format XXXXXXXX-XXXX-XXXX-XXXX-XXXXXXXXXXXX"
    )


def address_option(f):
    """Shared --address/--ble options for commands that connect."""
    f = click.option(
        "--ble",
        is_flag=True,
        help="Connect over Bluetooth Low Energy instead of RFCOMM",
    )(f)
    f = click.option(
        "--address",
        "-a",
        required=True,
        callback=validate_bluetooth_address,
        help="Printer Bluetooth address",
    )(f)
    return f


def make_printer(ctx, ble: bool) -> NiimbotPrinter:
    """Create a printer with the connection type and settings from the CLI."""
    connection = BLEConnection() if ble else SocketConnection()
    printer = NiimbotPrinter(
        connection,
        attempts=ctx.obj["attempts"],
        retry_delay=ctx.obj["retry_delay"],
    )
    printer.set_debug(ctx.obj["debug"])
    return printer


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug output")
@click.option(
    "--attempts",
    type=click.IntRange(1, None),
    default=Transceiver.MAX_ATTEMPTS,
    help="Read attempts per command (default 6)",
)
@click.option(
    "--retry-delay",
    type=click.FloatRange(0, None),
    default=Transceiver.RETRY_DELAY,
    help="Delay between read attempts in seconds (default 0.1)",
)
@click.pass_context
def main(ctx, debug, attempts, retry_delay):
    """NIIMBOT Label Printer CLI."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug
    ctx.obj["attempts"] = attempts
    ctx.obj["retry_delay"] = retry_delay


@main.command()
@click.option("--timeout", default=10.0, help="Scan timeout in seconds")
def scan(timeout):
    """Scan for NIIMBOT printers over BLE."""

    async def _scan():
        click.echo(f"Scanning for printers ({timeout}s)...")
        printers = await NiimbotPrinter.scan(timeout=timeout)

        if not printers:
            click.echo("No printers found.")
            return

        click.echo(f"\nFound {len(printers)} printer(s):\n")
        for p in printers:
            click.echo(f"  {p}")

    asyncio.run(_scan())


async def _run_print(ctx, address, ble, retry, image, **print_kwargs):
    printer = make_printer(ctx, ble)

    click.echo(f"Connecting to {address}...")

    try:
        if not await printer.connect(address, retries=retry):
            click.echo("Failed to connect!", err=True)
            sys.exit(1)

        click.echo("Printing...")
        await printer.print_image(image, **print_kwargs)
        click.echo("Print complete!")

    except ConnectionError as e:
        click.echo(f"Connection error: {e}", err=True)
        sys.exit(1)
    except ImageError as e:
        click.echo(f"Image error: {e}", err=True)
        sys.exit(1)
    except PrintError as e:
        click.echo(f"Print error: {e}", err=True)
        sys.exit(1)
    except PrinterError as e:
        click.echo(f"Printer error: {e}", err=True)
        sys.exit(1)
    finally:
        await printer.disconnect()


@main.command("print")
@click.argument("image", type=click.Path(exists=True))
@address_option
@click.option(
    "--density",
    "-d",
    type=click.IntRange(1, 3),
    default=2,
    help="Print density (1-3, default 2)",
)
@click.option(
    "--label-type",
    "-t",
    type=click.IntRange(1, 3),
    default=1,
    help="Label type (1-3, default 1)",
)
@click.option("--copies", "-n", type=click.IntRange(1, 0xFFFF), default=1, help="Number of copies")
@click.option(
    "--check/--no-check",
    default=False,
    help="Require a 96 pixel wide image shorter than 600 pixels",
)
@click.option(
    "--status-timeout",
    type=click.FloatRange(0, None),
    default=None,
    help="Seconds to wait for the printer to finish (default: no limit)",
)
@click.option("--retry", default=0, help="Number of connection retries")
@click.pass_context
def print_image(ctx, image, address, ble, density, label_type, copies, check, status_timeout, retry):
    """Print an image file."""
    asyncio.run(_run_print(
        ctx,
        address,
        ble,
        retry,
        image,
        density=density,
        label_type=label_type,
        quantity=copies,
        check=check,
        status_timeout=status_timeout,
    ))


@main.command()
@address_option
@click.option(
    "--status-timeout",
    type=click.FloatRange(0, None),
    default=None,
    help="Seconds to wait for the printer to finish (default: no limit)",
)
@click.option("--retry", default=0, help="Number of connection retries")
@click.pass_context
def test(ctx, address, ble, status_timeout, retry):
    """Print a test pattern."""
    asyncio.run(_run_print(
        ctx,
        address,
        ble,
        retry,
        create_test_pattern(),
        status_timeout=status_timeout,
    ))


@main.command()
@address_option
@click.pass_context
def info(ctx, address, ble):
    """Show device information, heartbeat state and RFID tag."""

    async def _info():
        printer = make_printer(ctx, ble)

        click.echo(f"Connecting to {address}...")

        try:
            if not await printer.connect(address):
                click.echo("Failed to connect!", err=True)
                sys.exit(1)

            click.echo("\nDevice info:")
            for key in InfoKey:
                result = await printer.get_info(key)
                value = result.value if result.ok else f"error: {result.error}"
                click.echo(f"  {key.name.lower()}: {value}")

            heartbeat = await printer.heartbeat()
            click.echo("\nHeartbeat:")
            if not heartbeat.ok:
                click.echo(f"  error: {heartbeat.error}")
            elif not heartbeat.value:
                click.echo("  (unrecognized layout)")
            for name, value in heartbeat.value.items():
                click.echo(f"  {name}: {value}")

            rfid = await printer.get_rfid()
            click.echo("\nRFID:")
            if not rfid.ok:
                click.echo(f"  error: {rfid.error}")
            elif rfid.value is None:
                click.echo("  no tag")
            else:
                tag = rfid.value
                click.echo(f"  uuid: {tag.uuid}")
                click.echo(f"  barcode: {tag.barcode}")
                click.echo(f"  serial: {tag.serial}")
                click.echo(f"  used/total: {tag.used_len}/{tag.total_len}")
                click.echo(f"  type: {tag.type}")

        except PrinterError as e:
            click.echo(f"Printer error: {e}", err=True)
            sys.exit(1)
        finally:
            await printer.disconnect()

    asyncio.run(_info())


if __name__ == "__main__":
    main()
