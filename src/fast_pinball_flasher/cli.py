"""
FAST Pinball Flasher CLI

Command-line interface for listing FAST boards and updating their firmware.
"""

import sys
import logging
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.logging import RichHandler
from rich.progress import Progress, BarColumn, TextColumn, DownloadColumn

from fast_pinball_flasher.catalog import DEFAULT_FIRMWARE_DIR, FirmwareCatalog, FirmwareNotFound
from fast_pinball_flasher.discovery import PortDiscovery, list_port_names
from fast_pinball_flasher.download import FirmwareDownloadError, download_firmware
from fast_pinball_flasher.core.actions import (
    FlasherSession,
    NoHardwareFound,
    flash_exp_board,
    flash_net,
    installed_version,
    list_exp_boards,
    list_net_nodes,
    open_session,
)
from fast_pinball_flasher.core.messages import (
    COMMON_WARNINGS,
    MessageLevel,
    WarningCode,
    WarningItem,
    result_to_warnings,
)
from fast_pinball_flasher.core.parsing import normalize_version, parse_address, sort_versions
from fast_pinball_flasher.core.results import FlashResult
from fast_pinball_flasher.models import (
    NET_CATALOG_KEY,
    ProtocolKind,
    board_type_for_address,
    catalog_key,
)
from fast_pinball_flasher.protocol.flash import FirmwareStreamError, FlashError, TargetSelectError
from fast_pinball_flasher.protocol.net_channel import CONTROLLER_NODE_ID
from fast_pinball_flasher.protocol.responses import BoardInfo, strip_version_suffix
from fast_pinball_flasher.protocol.transport import TransportError

# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)],
)
logger = logging.getLogger("fast_pinball_flasher")

# Setup Rich console
console = Console()

app = typer.Typer(help="🎯 FAST Pinball Flasher - firmware updates for FAST boards")

_state = {
    "firmware_dir": None,
    "verbose": False,
}


def print_header(text: str) -> None:
    """Print fancy header."""
    console.print(Panel(text, expand=False, style="bold blue"))


def print_success(text: str) -> None:
    """Print success message."""
    console.print(f"✓ {text}", style="green")


def print_warning(text: str) -> None:
    """Print warning message."""
    console.print(f"⚠️  {text}", style="yellow")


def print_error(text: str) -> None:
    """Print error message."""
    console.print(f"❌ {text}", style="red")


def print_structured_warning(warning: WarningItem, verbose: bool = False) -> None:
    """Print a structured warning with optional remediation."""
    if warning.level == MessageLevel.ERROR:
        style = "red"
        icon = "❌"
    elif warning.level == MessageLevel.WARN:
        style = "yellow"
        icon = "⚠️"
    else:
        style = "blue"
        icon = "ℹ️"

    console.print(f"{icon} [{warning.code.value}] {warning.title}", style=style)
    if verbose and warning.detail:
        console.print(f"   {warning.detail}", style="dim")
    if verbose and warning.remediation:
        console.print(f"   → {warning.remediation}", style="cyan")


_FAILURE_CODES = (
    (FirmwareNotFound, WarningCode.W_FIRMWARE_NOT_FOUND),
    (FirmwareDownloadError, WarningCode.W_DOWNLOAD_FAILED),
    ((TransportError, FirmwareStreamError, TargetSelectError), WarningCode.W_SERIAL_ERROR),
)


def failure_warning(error: Exception) -> Optional[WarningItem]:
    """Structured warning for an error that aborted an update or download."""
    for error_types, code in _FAILURE_CODES:
        if isinstance(error, error_types):
            return WarningItem.error(code, str(error))
    return None


def report_failure(prefix: str, error: Exception) -> None:
    """Print an abort message and, when the error has a code, its remediation."""
    print_error(f"{prefix}: {error}")
    warning = failure_warning(error)
    if warning is not None:
        print_structured_warning(warning, verbose=True)


def print_flash_result(result: FlashResult) -> None:
    """Print the outcome of a flash with its structured warnings."""
    table = Table(title="Flash Result")
    table.add_column("Property", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Target", result.target)
    table.add_row("Version", result.version)
    table.add_row("File", result.path)
    table.add_row("Bytes", f"{result.bytes_sent:,}/{result.total_bytes:,}")
    table.add_row("Bootloader ack", "yes" if result.bootloader_acked else "no")
    table.add_row("Reported", f"{result.reported_board or '?'} {result.reported_version or '?'}")
    console.print(table)

    for warning in result_to_warnings(result):
        print_structured_warning(warning, verbose=_state["verbose"])

    if result.verified:
        print_success(f"Firmware update verified: {result.target} is running {result.version}")
    else:
        print_warning(f"Flash finished but could not be verified ({result.outcome.value})")


def is_installed(reported: Optional[str], version: str) -> bool:
    """True if a version reported by a board ("v0.48", "02.28") equals ``version``."""
    if not reported:
        return False
    return normalize_version(strip_version_suffix(reported.lstrip("vV"))) == version


def choose(title: str, options: List[str]) -> Optional[int]:
    """
    Print a numbered menu and prompt until a valid choice is entered.

    Returns:
        Zero-based index of the chosen option, or None if the user entered 0.
    """
    console.print(f"\n[bold]{title}[/bold]")
    for i, option in enumerate(options, 1):
        console.print(f"  {i}. {option}")
    console.print("  0. Cancel")

    while True:
        choice = typer.prompt("Select", type=int)
        if choice == 0:
            return None
        if 1 <= choice <= len(options):
            return choice - 1
        print_warning(f"Enter a number between 0 and {len(options)}")


def choose_version(versions: List[str], installed: Optional[str]) -> Optional[str]:
    """Prompt for a version, newest first, with the installed one marked."""
    ordered = sort_versions(versions, newest_first=True)
    labels = [
        f"{v} (installed)" if is_installed(installed, v) else v
        for v in ordered
    ]
    idx = choose("Available firmware versions", labels)
    return None if idx is None else ordered[idx]


def confirm_update(target: str, version: str, yes: bool) -> None:
    """Ask before flashing unless --yes was given."""
    if yes:
        return
    if not typer.confirm(f"Update {target} to firmware {version}?", default=False):
        print_warning("Update cancelled")
        raise typer.Exit(0)


def get_catalog() -> FirmwareCatalog:
    """Catalog for the configured firmware directory, downloading if empty."""
    return FirmwareCatalog(_state["firmware_dir"], downloader=download_firmware)


def connect() -> FlasherSession:
    """Find the buses and open them, exiting if no hardware answers."""
    try:
        return open_session(get_catalog())
    except NoHardwareFound:
        print_structured_warning(COMMON_WARNINGS["no_hardware"], verbose=True)
        raise typer.Exit(1)


def flash_with_progress(run, total_label: str) -> FlashResult:
    """Run a flash action with a rich progress bar attached to its callback."""
    with Progress(
        TextColumn("[{task.description}]"),
        BarColumn(),
        DownloadColumn(),
        TextColumn("[{task.percentage:.0f}%]"),
        console=console,
    ) as progress:
        task = progress.add_task(total_label, total=None)

        def progress_cb(sent: int, total: int) -> None:
            progress.update(task, completed=sent, total=total or None)

        return run(progress_cb)


def show_exp_boards(boards: List[BoardInfo]) -> None:
    if not boards:
        print_warning("No EXP boards responded")
        return

    table = Table(title="EXP Boards")
    table.add_column("Address", style="cyan")
    table.add_column("Board", style="magenta")
    table.add_column("Version", style="green")
    table.add_column("Latest Available", style="yellow")

    for board in boards:
        latest = board.available_versions[-1] if board.available_versions else "-"
        table.add_row(board.address, board.board_name, board.version, latest)

    console.print(table)


def show_net_nodes(session: FlasherSession) -> None:
    nodes = list_net_nodes(session)
    if not nodes:
        print_warning("No NET nodes responded")
        return

    versions = session.catalog.versions(NET_CATALOG_KEY)
    table = Table(title="NET Nodes")
    table.add_column("Node", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Firmware", style="green")
    table.add_column("Extra", style="dim")

    for node in nodes:
        table.add_row(node.node_id, node.node_name, node.firmware, ", ".join(node.extra_fields))

    console.print(table)
    if versions:
        console.print(f"Latest controller firmware available: [yellow]{versions[-1]}[/yellow]")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    firmware_dir: Optional[Path] = typer.Option(
        None,
        "--firmware-dir",
        envvar="FAST_FIRMWARE_DIR",
        help=f"Firmware tree (default {DEFAULT_FIRMWARE_DIR})",
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging, including serial traffic"),
) -> None:
    """List attached boards when no command is given."""
    _state["firmware_dir"] = firmware_dir
    _state["verbose"] = verbose
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    if ctx.invoked_subcommand is None:
        list_all()


@app.command("list")
def list_all() -> None:
    """List boards on both buses."""
    print_header("FAST Boards")
    with connect() as session:
        if session.exp is None:
            print_structured_warning(COMMON_WARNINGS["no_exp"])
        else:
            show_exp_boards(list_exp_boards(session))

        if session.net is None:
            print_structured_warning(COMMON_WARNINGS["no_net"])
        else:
            show_net_nodes(session)


@app.command("list-exp")
def list_exp() -> None:
    """List boards on the EXP bus."""
    print_header("EXP Boards")
    with connect() as session:
        if session.exp is None:
            print_structured_warning(COMMON_WARNINGS["no_exp"], verbose=True)
            raise typer.Exit(1)
        show_exp_boards(list_exp_boards(session))


@app.command("list-net")
def list_net() -> None:
    """List nodes on the NET bus."""
    print_header("NET Nodes")
    with connect() as session:
        if session.net is None:
            print_structured_warning(COMMON_WARNINGS["no_net"], verbose=True)
            raise typer.Exit(1)
        show_net_nodes(session)


@app.command("update-exp")
def update_exp(
    address: Optional[str] = typer.Option(None, "--address", "-a", help="EXP board address (hex, e.g. 88)"),
    version: Optional[str] = typer.Option(None, "--version", help="Firmware version (e.g. 0.48)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Update firmware on one EXP board."""
    print_header("Update EXP Board")

    with connect() as session:
        if session.exp is None:
            print_structured_warning(COMMON_WARNINGS["no_exp"], verbose=True)
            raise typer.Exit(1)

        boards = list_exp_boards(session)

        if address is None:
            if not boards:
                print_error("No EXP boards responded")
                raise typer.Exit(1)
            idx = choose(
                "EXP boards",
                [f"{b.address}  {b.board_name}  {b.version}" for b in boards],
            )
            if idx is None:
                print_warning("Update cancelled")
                raise typer.Exit(0)
            address = boards[idx].address

        try:
            address = parse_address(address)
        except ValueError as e:
            print_error(str(e))
            raise typer.Exit(1)

        board_type = board_type_for_address(address)
        if board_type is None:
            print_error(f"Unknown EXP board address: {address}")
            raise typer.Exit(1)

        current = installed_version(boards, address)
        if version is None:
            versions = session.catalog.versions(catalog_key(board_type, ProtocolKind.EXP))
            if not versions:
                print_error(f"No firmware available for {board_type}")
                raise typer.Exit(1)
            version = choose_version(versions, current)
            if version is None:
                print_warning("Update cancelled")
                raise typer.Exit(0)

        version = normalize_version(version)
        if is_installed(current, version):
            print_warning(f"{board_type} @ {address} already reports version {version}")
        confirm_update(f"{board_type} @ {address}", version, yes)

        try:
            result = flash_with_progress(
                lambda cb: flash_exp_board(session, address, version, progress_cb=cb),
                f"Flashing {board_type} @ {address}",
            )
        except (FlashError, FirmwareNotFound, TransportError) as e:
            report_failure("Update failed", e)
            raise typer.Exit(1)

    print_flash_result(result)


@app.command("update-net")
def update_net(
    version: Optional[str] = typer.Option(None, "--version", help="Firmware version (e.g. 2.28)"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation prompt"),
) -> None:
    """Update firmware on the NET controller and its nodes."""
    print_header("Update NET Controller")

    with connect() as session:
        if session.net is None:
            print_structured_warning(COMMON_WARNINGS["no_net"], verbose=True)
            raise typer.Exit(1)

        current = None
        for node in list_net_nodes(session):
            if node.node_id == CONTROLLER_NODE_ID:
                current = node.firmware

        if version is None:
            versions = session.catalog.versions(NET_CATALOG_KEY)
            if not versions:
                print_error(f"No firmware available for {NET_CATALOG_KEY}")
                raise typer.Exit(1)
            version = choose_version(versions, current)
            if version is None:
                print_warning("Update cancelled")
                raise typer.Exit(0)

        version = normalize_version(version)
        confirm_update("NET controller", version, yes)

        try:
            result = flash_with_progress(
                lambda cb: flash_net(session, version, progress_cb=cb),
                "Flashing NET controller",
            )
        except (FlashError, FirmwareNotFound, TransportError) as e:
            report_failure("Update failed", e)
            raise typer.Exit(1)

    print_flash_result(result)


@app.command("get-latest-firmware")
def get_latest_firmware() -> None:
    """Download the latest firmware archive into the firmware directory."""
    target = Path(_state["firmware_dir"] or DEFAULT_FIRMWARE_DIR)
    print_header("Download Latest Firmware")
    console.print(f"Target: {target}")

    try:
        count = download_firmware(target)
    except FirmwareDownloadError as e:
        report_failure("Download failed", e)
        raise typer.Exit(1)

    print_success(f"Extracted {count} firmware files to {target}")


@app.command("list-firmware")
def list_firmware() -> None:
    """List firmware versions in the local catalog."""
    print_header("Local Firmware")
    catalog = get_catalog()
    keys = catalog.keys()
    if not keys:
        print_warning(f"No firmware found under {catalog.base_dir}")
        return

    table = Table(title=str(catalog.base_dir))
    table.add_column("Board", style="cyan")
    table.add_column("Versions (newest first)", style="green")

    for key in keys:
        versions = sort_versions(catalog.versions(key), newest_first=True)
        table.add_row(key, ", ".join(versions))

    console.print(table)


@app.command()
def ports(
    probe: bool = typer.Option(False, "--probe", help="Probe each port for a FAST bus"),
) -> None:
    """List available serial ports."""
    print_header("Available Serial Ports")

    names = list_port_names()
    if not names:
        print_warning("No serial ports found")
        return

    found = PortDiscovery(list_ports=lambda: names).discover() if probe else {}

    table = Table(title="Serial Ports")
    table.add_column("Port", style="cyan")
    if probe:
        table.add_column("FAST Bus", style="green")

    for name in names:
        if probe:
            protocol = found.get(name)
            table.add_row(name, protocol.value if protocol else "-")
        else:
            table.add_row(name)

    console.print(table)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(0)


if __name__ == "__main__":
    main()
