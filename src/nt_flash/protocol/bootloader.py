"""
Bootloader phase controller.

Drives the RAM flashloader once it has enumerated: connect with bounded
retries, configure the FlexSPI NOR interface, erase, write and reset.

Each device operation is a thin wrapper over run_command(), which turns
the first response value into success, CommandTimeout or CommandFailed.
"""

import logging
import time
from typing import Callable, Optional

from ..config import FlashConfig
from ..core.errors import (
    BootloaderUnavailable,
    CommandFailed,
    CommandTimeout,
    TransportError,
)
from ..models import DeviceModel, DEFAULT_MODEL
from .commands import (
    Command,
    ConfigureMemory,
    FillMemory,
    FlashEraseRegion,
    GetProperty,
    Reset,
    WriteMemory,
)
from .sdp import TransportFactory
from .transport import (
    CommandResponse,
    McuBootTransport,
    Outcome,
    SegmentCallback,
    Transport,
)

logger = logging.getLogger(__name__)


def _format_version(value: int) -> str:
    """Render a packed bootloader version ('K' 2.0.0 style) for logs."""
    name = chr((value >> 24) & 0xFF) if (value >> 24) & 0xFF else ""
    return f"{name}{(value >> 16) & 0xFF}.{(value >> 8) & 0xFF}.{value & 0xFF}"


class BootloaderController:
    """
    One session against the RAM flashloader.

    Args:
        config: Run configuration (timeouts, retry budget, dry-run)
        model: Target device
        transport_factory: Builds the transport; defaults to McuBootTransport
        sleep: Pause function used between connect attempts
    """

    def __init__(
        self,
        config: FlashConfig,
        model: DeviceModel = DEFAULT_MODEL,
        transport_factory: Optional[TransportFactory] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config
        self.model = model
        self._factory = transport_factory or McuBootTransport
        self._sleep = sleep
        self._transport: Optional[Transport] = None
        self.attempts = 0

    @property
    def is_connected(self) -> bool:
        return self._transport is not None

    def connect(self) -> None:
        """
        Open a session and probe with get-property.

        Every failed attempt closes the transport and opens a new one,
        which re-scans the USB bus.

        Raises:
            BootloaderUnavailable: No attempt got an answer
        """
        usb = self.model.bootloader_usb
        if self.config.dry_run:
            logger.debug(f"[DRY RUN] Would connect to bootloader {usb}")
            return

        max_attempts = self.config.connect_attempts
        for attempt in range(1, max_attempts + 1):
            if attempt > 1:
                self._sleep(self.config.connect_interval)
            self.attempts = attempt

            transport = self._factory(usb, self.config.bootloader_timeout_ms)
            try:
                transport.open()
                response = transport.send(GetProperty())
            except TransportError as e:
                logger.debug(f"Bootloader attempt {attempt} failed: {e}")
                transport.close()
            else:
                if not response.is_no_response:
                    if response.values:
                        logger.debug(f"Bootloader version {_format_version(response.values[0])}")
                    logger.debug("Bootloader connected")
                    self._transport = transport
                    return
                transport.close()

            logger.debug(f"Bootloader not ready, retrying... ({attempt}/{max_attempts})")

        raise BootloaderUnavailable(
            f"Failed to connect to bootloader {usb} after {max_attempts} attempts"
        )

    def run_command(
        self,
        command: Command,
        progress: Optional[SegmentCallback] = None,
    ) -> CommandResponse:
        """
        Send one command and check its status.

        Args:
            command: Command to run
            progress: Segment callback for write commands

        Returns:
            The successful response (a synthetic success in dry-run).

        Raises:
            CommandTimeout: No response
            CommandFailed: Any status other than Success/NoResponseExpected
            TransportError: Session lost
        """
        if self.config.dry_run:
            logger.debug(f"[DRY RUN] Would run: {command}")
            return CommandResponse.ok()

        if self._transport is None:
            raise TransportError("Bootloader session is not connected")

        logger.debug(f"Running: {command}")
        response = self._transport.send(command, progress)
        if response.is_no_response:
            raise CommandTimeout(
                f"Command timed out: {command.verb}",
                command=str(command),
                status=response.status,
            )
        if not response.is_success:
            raise CommandFailed(
                f"Command failed: {command.verb} (status {response.status})",
                command=str(command),
                status=response.status,
            )
        return response

    def fill_memory(self, address: int, size: int, pattern: int) -> None:
        self.run_command(FillMemory(address, size, pattern))

    def configure_memory(self, memory_id: int, config_address: int) -> None:
        self.run_command(ConfigureMemory(memory_id, config_address))

    def erase_region(self, address: int, size: int, memory_id: int = 0) -> None:
        self.run_command(FlashEraseRegion(address, size, memory_id))

    def write_memory(
        self,
        address: int,
        payload: bytes,
        memory_id: int = 0,
        progress: Optional[SegmentCallback] = None,
    ) -> None:
        self.run_command(WriteMemory(address, payload, memory_id), progress)

    def configure_flexspi(self, config_word: int) -> None:
        """
        Load a FlexSPI NOR config word and apply it.

        Used twice per run: once with the NOR config word before erasing,
        once with the FCB config word to create the Flash Configuration
        Block.
        """
        model = self.model
        self.fill_memory(model.config_addr, 4, config_word)
        self.configure_memory(model.flexspi_nor_memory_id, model.config_addr)

    def reset(self) -> Outcome:
        """
        Reset the device.

        The device leaves the bus while the response is pending, so any
        failure here is swallowed.
        """
        try:
            self.run_command(Reset())
        except (TransportError, CommandTimeout) as e:
            logger.debug(f"Device disconnected on reset (expected): {e}")
            return Outcome.EXPECTED_DISCONNECT
        except CommandFailed as e:
            logger.debug(f"Ignoring reset status: {e}")
            return Outcome.EXPECTED_DISCONNECT
        return Outcome.COMPLETED

    def disconnect(self) -> None:
        """Release the session. Safe to call more than once."""
        if self._transport is None:
            return
        self._transport.close()
        self._transport = None
