"""Shared fixtures: in-memory firmware archives and fake USB transports."""

import io
import json
import zipfile
from typing import Dict, List, Optional, Union

import pytest

from nt_flash.core.errors import TransportError
from nt_flash.models import DEFAULT_MODEL
from nt_flash.protocol.transport import CommandResponse

FLASHLOADER = b"\xA5" * 4096
FIRMWARE = bytes(range(256)) * 400  # 100 KB

_DEFAULT = object()


def build_archive(
    manifest: Union[Dict, str, None, object] = _DEFAULT,
    flashloader: Optional[bytes] = FLASHLOADER,
    firmware: Optional[bytes] = FIRMWARE,
    firmware_path: str = DEFAULT_MODEL.default_firmware_entry,
) -> bytes:
    """
    Build a firmware ZIP in memory.

    ``manifest`` may be a dict (serialized to JSON), a raw string, or None
    to leave MANIFEST.json out. Images set to None are left out.
    """
    if manifest is _DEFAULT:
        manifest = {"processor": DEFAULT_MODEL.processor}

    buf = io.BytesIO()
    with zipfile.ZipFile(buf, "w") as zf:
        if isinstance(manifest, dict):
            zf.writestr(DEFAULT_MODEL.manifest_entry, json.dumps(manifest))
        elif isinstance(manifest, str):
            zf.writestr(DEFAULT_MODEL.manifest_entry, manifest)
        if flashloader is not None:
            zf.writestr(DEFAULT_MODEL.flashloader_entry, flashloader)
        if firmware is not None:
            zf.writestr(firmware_path, firmware)
    return buf.getvalue()


@pytest.fixture
def make_archive():
    """Factory for in-memory firmware archives."""
    return build_archive


@pytest.fixture
def archive_file(tmp_path):
    """Valid firmware archive written to disk."""
    path = tmp_path / "distingNT_1.12.0.zip"
    path.write_bytes(build_archive())
    return path


class FakeTransport:
    """
    Scripted stand-in for SdpTransport / McuBootTransport.

    Records every command sent. Responses are looked up by verb; a value
    that is an exception instance is raised instead of returned, and a
    callable is called with the command to produce the response.
    """

    def __init__(self, usb, timeout_ms, responses=None, open_error=None):
        self.usb = usb
        self.timeout_ms = timeout_ms
        self.responses = responses or {}
        self.open_error = open_error
        self.sent: List = []
        self.open_calls = 0
        self.close_calls = 0
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> None:
        self.open_calls += 1
        if self.open_error is not None:
            raise self.open_error
        self._open = True

    def send(self, command, progress=None) -> CommandResponse:
        if not self._open:
            raise TransportError("not open")
        self.sent.append(command)
        response = self.responses.get(command.verb, CommandResponse.ok())
        if callable(response):
            response = response(command)
        if isinstance(response, Exception):
            raise response
        if progress is not None and command.writes_data:
            total = len(command.data)
            for current in (0, total // 4, total // 2, total):
                progress(current, total)
        return response

    def close(self) -> None:
        if self._open:
            self.close_calls += 1
        self._open = False


class FakeBus:
    """
    Transport factory handing out FakeTransports.

    Args:
        responses: Verb -> response (or exception) for every transport
        fail_opens: Number of initial transports whose open() fails
    """

    def __init__(self, responses=None, fail_opens: int = 0):
        self.responses = responses or {}
        self.fail_opens = fail_opens
        self.transports: List[FakeTransport] = []

    def __call__(self, usb, timeout_ms) -> FakeTransport:
        error = None
        if len(self.transports) < self.fail_opens:
            error = TransportError(f"No device {usb} found")
        transport = FakeTransport(usb, timeout_ms, self.responses, open_error=error)
        self.transports.append(transport)
        return transport

    @property
    def sent(self) -> List:
        return [cmd for t in self.transports for cmd in t.sent]

    @property
    def verbs(self) -> List[str]:
        return [cmd.verb for cmd in self.sent]


@pytest.fixture
def sdp_bus():
    return FakeBus()


@pytest.fixture
def bl_bus():
    return FakeBus()


@pytest.fixture
def no_sleep():
    """Sleep replacement that records requested delays."""
    calls: List[float] = []

    def _sleep(seconds: float) -> None:
        calls.append(seconds)

    _sleep.calls = calls
    return _sleep
