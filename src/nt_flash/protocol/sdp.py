"""
SDP phase controller.

Drives the i.MX RT ROM serial downloader: probe the device, upload the RAM
flashloader and jump to it. The jump makes the device drop off the bus on
purpose, so a lost connection right after it is reported as
Outcome.EXPECTED_DISCONNECT rather than as an error.
"""

import logging
from typing import Callable, Optional

from ..config import FlashConfig
from ..core.errors import SdpUnavailable, TransportError, UploadFailed
from ..core.package import FirmwarePackage
from ..models import DeviceModel, DEFAULT_MODEL, UsbId
from .commands import ErrorStatus, JumpAddress, WriteFile
from .transport import Outcome, SdpTransport, SegmentCallback, Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[UsbId, int], Transport]


class SdpController:
    """
    One SDP session against a ROM-mode device.

    Args:
        config: Run configuration
        model: Target device (USB identity, addresses)
        transport_factory: Builds the transport; defaults to SdpTransport
    """

    def __init__(
        self,
        config: FlashConfig,
        model: DeviceModel = DEFAULT_MODEL,
        transport_factory: Optional[TransportFactory] = None,
    ):
        self.config = config
        self.model = model
        self._factory = transport_factory or SdpTransport
        self._transport: Optional[Transport] = None

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    def connect(self) -> None:
        """
        Open a session and probe with error-status.

        Raises:
            SdpUnavailable: No ROM-mode device answered the probe
        """
        usb = self.model.sdp_usb
        if self.config.dry_run:
            logger.debug(f"[DRY RUN] Would connect to SDP device {usb}")
            return

        transport = self._factory(usb, self.config.sdp_timeout_ms)
        try:
            transport.open()
            response = transport.send(ErrorStatus())
        except TransportError as e:
            transport.close()
            raise SdpUnavailable(f"SDP device {usb} not available: {e}")

        if response.is_no_response:
            transport.close()
            raise SdpUnavailable(f"SDP device {usb} did not answer error-status")

        logger.debug(f"SDP connected, HAB status 0x{response.status:08X}")
        self._transport = transport

    def upload_flashloader(
        self,
        address: int,
        package: FirmwarePackage,
        progress: Optional[SegmentCallback] = None,
    ) -> None:
        """
        Write the package's flashloader image into RAM at ``address``.

        Raises:
            UploadFailed: Device reported failure, timed out or disconnected
        """
        command = WriteFile(address, package.flashloader_image)
        if self.config.dry_run:
            logger.debug(f"[DRY RUN] Would run: {command}")
            return

        self._require_session()
        try:
            response = self._transport.send(command, progress)
        except TransportError as e:
            raise UploadFailed(f"Flashloader upload failed: {e}", command=str(command))
        if not response.is_success:
            raise UploadFailed(
                f"Flashloader upload failed (status {response.status})",
                command=str(command),
                status=response.status,
            )
        logger.debug(f"Uploaded flashloader ({len(package.flashloader_image)} bytes)")

    def jump(self, address: int) -> Outcome:
        """
        Start the uploaded image at ``address``.

        Returns:
            Outcome.EXPECTED_DISCONNECT if the device dropped the session,
            Outcome.COMPLETED otherwise. Never raises for a lost connection.
        """
        command = JumpAddress(address)
        if self.config.dry_run:
            logger.debug(f"[DRY RUN] Would run: {command}")
            return Outcome.COMPLETED

        self._require_session()
        try:
            response = self._transport.send(command)
        except TransportError as e:
            logger.debug(f"Device disconnected after jump (expected): {e}")
            return Outcome.EXPECTED_DISCONNECT
        if response.is_no_response:
            logger.debug("No response to jump-address (expected)")
            return Outcome.EXPECTED_DISCONNECT
        return Outcome.COMPLETED

    def disconnect(self) -> None:
        """Release the session. Safe to call more than once."""
        if self._transport is None:
            return
        self._transport.close()
        self._transport = None

    def _require_session(self) -> None:
        if self._transport is None:
            raise TransportError("SDP session is not connected")
