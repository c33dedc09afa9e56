"""Tests for machine and console reporters."""

import io

from rich.console import Console

from nt_flash.config import FlashConfig
from nt_flash.core.messages import FailureCode
from nt_flash.core.progress import EventKind, ProgressEvent, Stage
from nt_flash.reporting import ConsoleReporter, MachineReporter, create_reporter


def _console(buf: io.StringIO) -> Console:
    return Console(file=buf, width=120, color_system=None, force_terminal=False)


class TestMachineReporter:
    def test_status_line(self):
        out = io.StringIO()
        MachineReporter(out)(ProgressEvent("SDP_CONNECT", 5, "Connecting to SDP bootloader"))
        assert out.getvalue() == "STATUS:SDP_CONNECT:5:Connecting to SDP bootloader\n"

    def test_progress_line(self):
        out = io.StringIO()
        event = ProgressEvent("WRITE", 80, "50% (512/1024 bytes)", EventKind.PROGRESS, 512, 1024)
        MachineReporter(out)(event)
        assert out.getvalue() == "PROGRESS:WRITE:80:50% (512/1024 bytes)\n"

    def test_error_line(self):
        out = io.StringIO()
        MachineReporter(out).error("Failed to connect\nto bootloader", FailureCode.BOOTLOADER_UNAVAILABLE)
        assert out.getvalue() == "ERROR:Failed to connect to bootloader\n"

    def test_status_helper(self):
        out = io.StringIO()
        MachineReporter(out).status(Stage.LOAD, "Loading firmware package")
        assert out.getvalue() == "STATUS:LOAD:0:Loading firmware package\n"

    def test_version_line(self):
        out = io.StringIO()
        MachineReporter(out).version("1.12.0")
        assert out.getvalue() == "VERSION:1.12.0\n"


class TestConsoleReporter:
    def test_numbered_steps(self):
        buf = io.StringIO()
        reporter = ConsoleReporter(console=_console(buf), err_console=_console(io.StringIO()))

        reporter(ProgressEvent("SDP_CONNECT", 5, "Connecting to SDP bootloader"))
        reporter(ProgressEvent("WRITE", 65, "Writing firmware"))

        text = buf.getvalue()
        assert "[1/7] Connecting to SDP bootloader..." in text
        assert "[7/7] Writing firmware..." in text

    def test_sub_steps_only_when_verbose(self):
        quiet, loud = io.StringIO(), io.StringIO()
        ConsoleReporter(console=_console(quiet))(ProgressEvent("ERASE", 55, "Erasing flash region"))
        ConsoleReporter(console=_console(loud), verbose=True)(ProgressEvent("ERASE", 55, "Erasing flash region"))

        assert "Erasing" not in quiet.getvalue()
        assert "Erasing flash region" in loud.getvalue()

    def test_error_with_remediation(self):
        err = io.StringIO()
        reporter = ConsoleReporter(console=_console(io.StringIO()), err_console=_console(err))

        reporter.error("Device not found in SDP mode or flashloader mode", FailureCode.DEVICE_NOT_FOUND)

        text = err.getvalue()
        assert "ERROR: Device not found" in text
        assert "Menu > Misc > Enter bootloader mode..." in text

    def test_progress_bar_stops_on_next_phase(self):
        buf = io.StringIO()
        reporter = ConsoleReporter(console=_console(buf))
        reporter(ProgressEvent("WRITE", 65, "Writing firmware"))
        reporter(ProgressEvent("WRITE", 80, "50%", EventKind.PROGRESS, 50, 100))
        assert reporter._progress is not None

        reporter(ProgressEvent("RESET", 95, "Resetting device"))
        assert reporter._progress is None
        reporter.close()


def test_create_reporter():
    assert isinstance(create_reporter(FlashConfig(machine=True)), MachineReporter)
    assert isinstance(create_reporter(FlashConfig()), ConsoleReporter)
