"""Tests for the nt-flash command line."""

import pytest
from typer.testing import CliRunner

from nt_flash import cli
from nt_flash.core.orchestrator import FlashOrchestrator
from nt_flash.protocol.transport import CommandResponse

from conftest import FIRMWARE, FakeBus, build_archive

runner = CliRunner()


def _lines(text: str):
    return [line for line in text.splitlines() if line]


@pytest.fixture
def fake_device(monkeypatch, no_sleep):
    """Route the CLI's orchestrator to fake buses; returns the (sdp, bl) buses."""
    buses = {"sdp": FakeBus(), "bl": FakeBus()}

    def factory(config, sink=None):
        return FlashOrchestrator(
            config,
            sink=sink,
            sdp_transport_factory=buses["sdp"],
            bootloader_transport_factory=buses["bl"],
            sleep=no_sleep,
        )

    monkeypatch.setattr(cli, "FlashOrchestrator", factory)
    return buses


class TestSources:
    def test_no_source(self):
        result = runner.invoke(cli.app, [])
        assert result.exit_code == 1
        assert "No firmware source specified" in result.output

    def test_multiple_sources(self, archive_file):
        result = runner.invoke(cli.app, [str(archive_file), "--latest"])
        assert result.exit_code == 1
        assert "only one firmware source" in result.output

    def test_invalid_version(self):
        result = runner.invoke(cli.app, ["--version", "1.x", "-m"])
        assert result.exit_code == 1
        assert _lines(result.stdout)[-1].startswith("ERROR:Invalid version")


class TestList:
    def test_list_human(self):
        result = runner.invoke(cli.app, ["--list"])
        assert result.exit_code == 0
        assert "distingNTfirmwareupdates.html" in result.output
        assert "1.12.0" in result.output

    def test_list_machine(self):
        result = runner.invoke(cli.app, ["--list", "-m"])
        assert result.exit_code == 0
        lines = _lines(result.stdout)
        assert lines[0] == "VERSION:1.12.0"
        assert all(line.startswith("VERSION:") for line in lines)


def test_version_info():
    result = runner.invoke(cli.app, ["-V"])
    assert result.exit_code == 0
    assert "nt-flash v" in result.output


class TestDryRun:
    def test_machine_output(self, archive_file):
        result = runner.invoke(cli.app, [str(archive_file), "--dry-run", "--machine"])

        assert result.exit_code == 0
        lines = _lines(result.stdout)
        assert lines[0].startswith("STATUS:LOAD:0:")
        assert lines[-1] == "STATUS:COMPLETE:100:Flash complete"
        assert all(line.split(":")[0] in ("STATUS", "PROGRESS") for line in lines)
        stages = [line.split(":")[1] for line in lines]
        assert stages == [
            "LOAD", "START", "SDP_CONNECT", "SDP_UPLOAD", "SDP_JUMP", "WAIT_ENUM",
            "BL_CONNECT", "CONFIGURE", "ERASE", "FCB", "WRITE", "RESET", "COMPLETE",
        ]

    def test_human_output(self, archive_file):
        result = runner.invoke(cli.app, [str(archive_file), "-n"])

        assert result.exit_code == 0
        assert "[1/7] Connecting to SDP bootloader..." in result.output
        assert "[7/7] Writing firmware..." in result.output
        assert "Flash complete" in result.output


class TestFailures:
    def test_unsupported_processor(self, tmp_path):
        path = tmp_path / "other.zip"
        path.write_bytes(build_archive(manifest={"processor": "OTHER"}))

        result = runner.invoke(cli.app, [str(path), "-m"])

        assert result.exit_code == 1
        lines = _lines(result.stdout)
        assert lines[-1] == "ERROR:Unsupported processor: OTHER (expected MIMXRT1060)"
        assert [line for line in lines if line.startswith("ERROR:")] == [lines[-1]]

    def test_corrupt_archive(self, tmp_path):
        data = bytearray(build_archive())
        data[data.index(FIRMWARE[:256]) + 10] ^= 0xFF
        path = tmp_path / "bad.zip"
        path.write_bytes(bytes(data))

        result = runner.invoke(cli.app, [str(path), "-m", "-n"])

        assert result.exit_code == 1
        lines = _lines(result.stdout)
        assert lines[0].startswith("STATUS:LOAD:0:")
        assert lines[-1].startswith("ERROR:Failed to read bootable_images/disting_NT.bin")

    def test_missing_file(self, tmp_path):
        result = runner.invoke(cli.app, [str(tmp_path / "nope.zip"), "-m"])
        assert result.exit_code == 1
        assert _lines(result.stdout)[-1].startswith("ERROR:Cannot open file")

    def test_bootloader_never_responds(self, archive_file, fake_device):
        fake_device["bl"].responses["get-property"] = CommandResponse.no_response()

        result = runner.invoke(cli.app, [str(archive_file), "-m"])

        assert result.exit_code == 1
        lines = _lines(result.stdout)
        errors = [line for line in lines if line.startswith("ERROR:")]
        assert len(errors) == 1
        assert lines[-1] == errors[0]
        assert "Failed to connect to bootloader" in errors[0]
        assert len(fake_device["bl"].transports) == 5

    def test_human_error_on_stderr(self, archive_file, fake_device):
        fake_device["sdp"].fail_opens = 100
        fake_device["bl"].fail_opens = 100

        result = runner.invoke(cli.app, [str(archive_file)])

        assert result.exit_code == 1
        assert "ERROR: Device not found" in result.output
        assert "Enter bootloader mode" in result.output


class TestFlash:
    def test_full_run(self, archive_file, fake_device):
        result = runner.invoke(cli.app, [str(archive_file), "-m"])

        assert result.exit_code == 0
        assert _lines(result.stdout)[-1] == "STATUS:COMPLETE:100:Flash complete"
        assert "write-memory" in fake_device["bl"].verbs

    def test_enum_delay_option(self, archive_file, fake_device, no_sleep):
        result = runner.invoke(cli.app, [str(archive_file), "-m", "--enum-delay", "1.5"])
        assert result.exit_code == 0
        assert no_sleep.calls[0] == 1.5

    def test_enum_delay_env(self, archive_file, fake_device, no_sleep):
        result = runner.invoke(cli.app, [str(archive_file), "-m"], env={"NT_FLASH_ENUM_DELAY": "7"})
        assert result.exit_code == 0
        assert no_sleep.calls[0] == 7.0

    def test_download_version(self, monkeypatch, fake_device):
        fetched = []

        def fake_fetch(url, dest):
            fetched.append(url)
            dest.write_bytes(build_archive())
            return dest

        monkeypatch.setattr(cli, "fetch", fake_fetch)
        result = runner.invoke(cli.app, ["--version", "1.11.0", "-m", "-n"])

        assert result.exit_code == 0
        assert fetched == ["https://www.expert-sleepers.co.uk/downloads/firmware/distingNT_1.11.0.zip"]
        assert _lines(result.stdout)[0].startswith("STATUS:DOWNLOAD:0:")

    def test_latest(self, monkeypatch, fake_device):
        fetched = []

        def fake_fetch(url, dest):
            fetched.append(url)
            dest.write_bytes(build_archive())
            return dest

        monkeypatch.setattr(cli, "fetch", fake_fetch)
        result = runner.invoke(cli.app, ["--latest", "-m", "-n"])

        assert result.exit_code == 0
        assert fetched[0].endswith("distingNT_1.12.0.zip")
