"""Tests for the SDP phase controller."""

import pytest

from nt_flash.config import FlashConfig
from nt_flash.core.errors import SdpUnavailable, TransportError, UploadFailed
from nt_flash.core.package import load_package
from nt_flash.models import DEFAULT_MODEL
from nt_flash.protocol.sdp import SdpController
from nt_flash.protocol.transport import CommandResponse, Outcome

from conftest import FakeBus


@pytest.fixture
def package(make_archive):
    return load_package(make_archive())


def _controller(bus, **config) -> SdpController:
    return SdpController(FlashConfig(**config), DEFAULT_MODEL, transport_factory=bus)


class TestConnect:
    def test_probe_succeeds(self, sdp_bus):
        controller = _controller(sdp_bus)
        controller.connect()

        assert controller.is_connected
        assert sdp_bus.verbs == ["error-status"]
        transport = sdp_bus.transports[0]
        assert transport.usb == DEFAULT_MODEL.sdp_usb
        assert transport.timeout_ms == 5000

    def test_no_device(self):
        bus = FakeBus(fail_opens=1)
        controller = _controller(bus)

        with pytest.raises(SdpUnavailable):
            controller.connect()
        assert not controller.is_connected

    def test_probe_without_answer(self):
        bus = FakeBus(responses={"error-status": CommandResponse.no_response()})
        controller = _controller(bus)

        with pytest.raises(SdpUnavailable):
            controller.connect()
        assert bus.transports[0].close_calls == 1

    def test_any_status_counts_as_answer(self):
        """The HAB status value itself does not matter, only that one came back."""
        bus = FakeBus(responses={"error-status": CommandResponse(0x33CCCC33)})
        controller = _controller(bus)
        controller.connect()
        assert controller.is_connected


class TestUpload:
    def test_upload_flashloader(self, sdp_bus, package):
        controller = _controller(sdp_bus)
        controller.connect()
        progress = []

        controller.upload_flashloader(0x20001C00, package, lambda c, t: progress.append((c, t)))

        command = sdp_bus.sent[-1]
        assert command.verb == "write-file"
        assert command.address == 0x20001C00
        assert command.data == package.flashloader_image
        assert progress[-1] == (4096, 4096)

    def test_upload_failure_status(self, package):
        bus = FakeBus(responses={"write-file": CommandResponse(0x12343412)})
        controller = _controller(bus)
        controller.connect()

        with pytest.raises(UploadFailed) as exc_info:
            controller.upload_flashloader(0x20001C00, package)
        assert exc_info.value.status == 0x12343412

    def test_upload_no_response(self, package):
        bus = FakeBus(responses={"write-file": CommandResponse.no_response()})
        controller = _controller(bus)
        controller.connect()

        with pytest.raises(UploadFailed):
            controller.upload_flashloader(0x20001C00, package)

    def test_upload_disconnect(self, package):
        bus = FakeBus(responses={"write-file": TransportError("USB gone")})
        controller = _controller(bus)
        controller.connect()

        with pytest.raises(UploadFailed, match="USB gone"):
            controller.upload_flashloader(0x20001C00, package)


class TestJump:
    def test_jump_completed(self, sdp_bus):
        controller = _controller(sdp_bus)
        controller.connect()

        assert controller.jump(0x20001C00) is Outcome.COMPLETED
        assert str(sdp_bus.sent[-1]) == "jump-address 0x20001C00"

    def test_disconnect_after_jump_is_expected(self):
        bus = FakeBus(responses={"jump-address": TransportError("device left the bus")})
        controller = _controller(bus)
        controller.connect()

        assert controller.jump(0x20001C00) is Outcome.EXPECTED_DISCONNECT

    def test_no_response_after_jump_is_expected(self):
        bus = FakeBus(responses={"jump-address": CommandResponse.no_response()})
        controller = _controller(bus)
        controller.connect()

        assert controller.jump(0x20001C00) is Outcome.EXPECTED_DISCONNECT


class TestDisconnect:
    def test_disconnect_idempotent(self, sdp_bus):
        controller = _controller(sdp_bus)
        controller.connect()
        controller.disconnect()
        controller.disconnect()

        assert not controller.is_connected
        assert sdp_bus.transports[0].close_calls == 1

    def test_disconnect_without_connect(self, sdp_bus):
        _controller(sdp_bus).disconnect()
        assert sdp_bus.transports == []


class TestDryRun:
    def test_no_device_io(self, sdp_bus, package):
        controller = _controller(sdp_bus, dry_run=True)

        controller.connect()
        controller.upload_flashloader(0x20001C00, package)
        assert controller.jump(0x20001C00) is Outcome.COMPLETED
        controller.disconnect()

        assert sdp_bus.transports == []
