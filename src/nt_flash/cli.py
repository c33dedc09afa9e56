"""
nt-flash CLI

Command-line interface for flashing disting NT firmware.
"""

import logging
import signal
import sys
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer
from rich.console import Console
from rich.logging import RichHandler

from nt_flash import __version__
from nt_flash.config import FlashConfig
from nt_flash.core.errors import FlashError
from nt_flash.core.messages import FailureCode
from nt_flash.core.orchestrator import FlashOrchestrator
from nt_flash.core.package import load_package_file
from nt_flash.core.parsing import parse_version
from nt_flash.core.progress import Stage
from nt_flash.download import fetch, firmware_url
from nt_flash.models import DEFAULT_MODEL
from nt_flash.reporting import MachineReporter, Reporter, create_reporter

logger = logging.getLogger("nt_flash")

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    help="disting NT firmware flasher",
    add_completion=False,
    epilog="Before flashing, put disting NT in bootloader mode: Menu > Misc > Enter bootloader mode...",
)


def configure_logging(verbose: bool = False, machine: bool = False) -> None:
    """
    Install the log handler for this run.

    Machine mode gets no log output at all so stdout carries only protocol
    lines. Library loggers (spsdk, httpx) stay at WARNING unless verbose.
    """
    if machine:
        handler: logging.Handler = logging.NullHandler()
    else:
        handler = RichHandler(rich_tracebacks=True, console=err_console, show_path=False)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[handler],
        force=True,
    )
    library_level = logging.DEBUG if verbose else logging.WARNING
    for name in ("spsdk", "httpx", "httpcore", "libusbsio"):
        logging.getLogger(name).setLevel(library_level)


def print_versions(reporter: Reporter) -> None:
    """List known firmware releases."""
    model = DEFAULT_MODEL
    if not isinstance(reporter, MachineReporter):
        console.print("Available firmware versions from Expert Sleepers:")
        console.print(f"  {model.release_page}")
        console.print("\nKnown versions:")
    for version in model.known_versions:
        reporter.version(version)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"nt-flash v{__version__}")
        raise typer.Exit()


@contextmanager
def _ignore_interrupts() -> Iterator[None]:
    """
    Hold off Ctrl-C while the device is being written.

    Interrupting mid-flash can leave the module unbootable, so SIGINT is
    only reported until the run ends.
    """
    if threading.current_thread() is not threading.main_thread():
        yield
        return

    def _handler(signum, frame) -> None:
        logger.warning("Flashing in progress - interrupt ignored. Wait for the run to finish.")

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def _fail(reporter: Reporter, message: str, code: Optional[FailureCode] = None) -> None:
    reporter.error(message, code)
    reporter.close()
    raise typer.Exit(1)


@app.command()
def flash(
    archive: Optional[Path] = typer.Argument(
        None, help="Firmware package (.zip) to flash", show_default=False,
    ),
    version: Optional[str] = typer.Option(
        None, "--version", help="Download and flash release X.Y.Z",
    ),
    latest: bool = typer.Option(
        False, "--latest", help="Download and flash the latest release",
    ),
    url: Optional[str] = typer.Option(
        None, "--url", help="Download and flash the package at URL",
    ),
    list_versions: bool = typer.Option(
        False, "--list", help="List available firmware versions and exit",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Show detailed output",
    ),
    dry_run: bool = typer.Option(
        False, "--dry-run", "-n", help="Validate and walk every step without touching the device",
    ),
    machine: bool = typer.Option(
        False, "--machine", "-m", help="Machine-readable output for tool integration",
    ),
    enum_delay: Optional[float] = typer.Option(
        None, "--enum-delay", envvar="NT_FLASH_ENUM_DELAY", min=0.0,
        help="Seconds to wait for the flashloader to enumerate after the SDP jump",
    ),
    version_info: bool = typer.Option(
        False, "--version-info", "-V", callback=_version_callback, is_eager=True,
        help="Show tool version and exit",
    ),
) -> None:
    """Flash disting NT firmware from a local package or a release download."""
    configure_logging(verbose=verbose, machine=machine)

    overrides = {}
    if enum_delay is not None:
        overrides["enumeration_delay"] = enum_delay
    config = FlashConfig(verbose=verbose, dry_run=dry_run, machine=machine, **overrides)
    reporter = create_reporter(config, console=console, err_console=err_console)

    if list_versions:
        print_versions(reporter)
        return

    sources = [s for s in (archive, version, url) if s] + ([latest] if latest else [])
    if len(sources) > 1:
        _fail(reporter, "Specify only one firmware source (ARCHIVE, --version, --latest or --url)")
    if not sources:
        _fail(reporter, "No firmware source specified. Use ARCHIVE, --version, --latest or --url.")

    if latest:
        version = DEFAULT_MODEL.latest_version
        logger.info(f"Using latest firmware ({version})")

    try:
        with tempfile.TemporaryDirectory(prefix="nt-flash-") as tmp:
            if version or url:
                if version:
                    try:
                        version = parse_version(version)
                    except ValueError as e:
                        _fail(reporter, str(e), FailureCode.DOWNLOAD_FAILED)
                    if version not in DEFAULT_MODEL.known_versions:
                        logger.warning(f"Version {version} is not in the known release list")
                    url = firmware_url(version)
                    dest = Path(tmp) / f"{DEFAULT_MODEL.archive_prefix}{version}.zip"
                else:
                    dest = Path(tmp) / f"{DEFAULT_MODEL.archive_prefix}download.zip"
                reporter.status(Stage.DOWNLOAD, f"Downloading firmware from {url}")
                archive = fetch(url, dest)

            reporter.status(Stage.LOAD, f"Loading firmware package {archive.name}")
            package = load_package_file(archive)

            if dry_run:
                logger.info("[DRY RUN MODE - No actual flashing will occur]")

            orchestrator = FlashOrchestrator(config, sink=reporter)
            with _ignore_interrupts():
                result = orchestrator.run(package)
    except FlashError as e:
        _fail(reporter, str(e), e.code)
    except KeyboardInterrupt:
        _fail(reporter, "Aborted by user before flashing")

    if not result.ok:
        _fail(reporter, result.error, result.failure)

    reporter.close()
    if verbose and not machine:
        console.print(result.to_summary(), markup=False)


def main() -> None:
    """Main entry point."""
    try:
        app()
    except KeyboardInterrupt:
        err_console.print("\n[yellow]Operation cancelled by user[/yellow]")
        sys.exit(1)
    except Exception as e:
        err_console.print(f"\n[red bold]Fatal error:[/red bold] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
