"""
Progress reporters.

Both reporters are plain event sinks: the orchestrator calls them with
every ProgressEvent, synchronously, from its own thread.

- MachineReporter writes the line protocol consumed by embedding tools:

      STATUS:<STAGE>:<PERCENT>:<MESSAGE>
      PROGRESS:<STAGE>:<PERCENT>:<MESSAGE>
      ERROR:<MESSAGE>

  One message per line, flushed immediately, nothing else on stdout.

- ConsoleReporter renders numbered steps and a transfer bar with rich.
"""

import sys
from typing import Dict, Optional, TextIO, Union

from rich.console import Console
from rich.panel import Panel
from rich.progress import BarColumn, Progress, TextColumn

from .config import FlashConfig
from .core.messages import FailureCode, failure_message
from .core.progress import EventKind, ProgressEvent, Stage

STEP_COUNT = 7

# Stages announced as numbered steps in human output
STEP_NUMBERS: Dict[str, int] = {
    Stage.SDP_CONNECT.tag: 1,
    Stage.SDP_UPLOAD.tag: 2,
    Stage.SDP_JUMP.tag: 3,
    Stage.WAIT_ENUM.tag: 4,
    Stage.BL_CONNECT.tag: 5,
    Stage.CONFIGURE.tag: 6,
    Stage.WRITE.tag: 7,
}


def _flatten(text: str) -> str:
    return " ".join(str(text).splitlines())


class MachineReporter:
    """Writes the machine-readable line protocol."""

    def __init__(self, stream: Optional[TextIO] = None):
        self._stream = stream

    @property
    def stream(self) -> TextIO:
        # Resolved lazily so redirected stdout (e.g. under test) is honoured.
        return self._stream if self._stream is not None else sys.stdout

    def _write(self, line: str) -> None:
        self.stream.write(line + "\n")
        self.stream.flush()

    def __call__(self, event: ProgressEvent) -> None:
        self._write(f"{event.kind.value}:{event.stage}:{event.percent}:{_flatten(event.message)}")

    def status(self, stage: Stage, message: str) -> None:
        """Emit a STATUS line for a stage outside the orchestrator (DOWNLOAD, LOAD)."""
        self(ProgressEvent(stage.tag, stage.percent, message))

    def version(self, version: str) -> None:
        self._write(f"VERSION:{version}")

    def error(self, message: str, code: Optional[FailureCode] = None) -> None:
        self._write(f"ERROR:{_flatten(message)}")

    def close(self) -> None:
        pass


class ConsoleReporter:
    """
    Human-readable progress with rich.

    Args:
        console: Console for normal output
        err_console: Console for errors (stderr)
        verbose: Also show sub-steps (erase, FCB) and remediation detail
    """

    def __init__(
        self,
        console: Optional[Console] = None,
        err_console: Optional[Console] = None,
        verbose: bool = False,
    ):
        self.console = console or Console()
        self.err_console = err_console or Console(stderr=True)
        self.verbose = verbose
        self._progress: Optional[Progress] = None
        self._task = None

    def __call__(self, event: ProgressEvent) -> None:
        if event.kind is EventKind.PROGRESS:
            self._on_segment(event)
            return

        self._stop_bar()
        stage = event.stage
        if stage == Stage.START.tag:
            self.console.print(Panel(event.message, expand=False, style="bold blue"))
        elif stage in STEP_NUMBERS:
            self.console.print(f"[{STEP_NUMBERS[stage]}/{STEP_COUNT}] {event.message}...", markup=False)
        elif stage == Stage.BL_FOUND.tag:
            self.console.print(f"ℹ️  {event.message}, skipping SDP phase", style="yellow")
        elif stage == Stage.COMPLETE.tag:
            self.console.print(f"✓ {event.message}!", style="green")
        elif stage in (Stage.DOWNLOAD.tag, Stage.LOAD.tag, Stage.RESET.tag):
            self.console.print(f"{event.message}...", markup=False)
        elif self.verbose:
            self.console.print(f"    {event.message}...", style="dim", markup=False)

    def _on_segment(self, event: ProgressEvent) -> None:
        if event.total is None:
            return
        if self._progress is None:
            self._progress = Progress(
                TextColumn("[{task.description}]"),
                BarColumn(),
                TextColumn("[{task.percentage:.0f}%]"),
                console=self.console,
            )
            self._progress.start()
            self._task = self._progress.add_task(event.stage, total=event.total)
        self._progress.update(self._task, completed=event.current, total=event.total)

    def _stop_bar(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
            self._task = None

    def status(self, stage: Stage, message: str) -> None:
        """Show a stage outside the orchestrator (DOWNLOAD, LOAD)."""
        self(ProgressEvent(stage.tag, stage.percent, message))

    def version(self, version: str) -> None:
        self.console.print(f"  {version}", markup=False)

    def error(self, message: str, code: Optional[FailureCode] = None) -> None:
        """Print the error on stderr, followed by a remediation hint when known."""
        self._stop_bar()
        self.err_console.print(f"ERROR: {message}", style="red", markup=False)
        if code is not None:
            hint = failure_message(code, message).remediation
            if hint:
                self.err_console.print(f"   → {hint}", style="cyan", markup=False)

    def close(self) -> None:
        self._stop_bar()


Reporter = Union[MachineReporter, ConsoleReporter]


def create_reporter(
    config: FlashConfig,
    console: Optional[Console] = None,
    err_console: Optional[Console] = None,
) -> Reporter:
    """Pick the reporter for the configured output mode."""
    if config.machine:
        return MachineReporter()
    return ConsoleReporter(console=console, err_console=err_console, verbose=config.verbose)
