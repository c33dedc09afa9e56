"""
USB transports for the ROM loader and the RAM flashloader.

Wraps spsdk's SDP and McuBoot implementations behind a small
open/send/close interface that speaks the typed commands from
``protocol.commands`` and answers with CommandResponse values.

This module provides:
- Status constants shared with the NXP host tools (blhost numbering)
- CommandResponse / Outcome result types
- SdpTransport (ROM serial downloader, spsdk.sdp)
- McuBootTransport (RAM flashloader, spsdk.mboot)

Every open() scans the USB bus afresh, so a device list cached before the
flashloader re-enumerated is never reused.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional, Tuple, Type

from spsdk.exceptions import SPSDKError

from ..core.errors import TransportError
from ..models import UsbId
from .commands import (
    Command,
    ConfigureMemory,
    ErrorStatus,
    FillMemory,
    FlashEraseRegion,
    GetProperty,
    JumpAddress,
    Reset,
    WriteFile,
    WriteMemory,
)

logger = logging.getLogger(__name__)

STATUS_SUCCESS = 0
STATUS_NO_RESPONSE = 10004
STATUS_NO_RESPONSE_EXPECTED = 10005

SegmentCallback = Callable[[int, int], None]


@dataclass(frozen=True)
class CommandResponse:
    """
    Response to one command.

    Attributes:
        status: First response value (status code, or raw HAB status for SDP probes)
        values: Remaining response values
        payload: Data returned by read-type commands
    """
    status: int
    values: Tuple[int, ...] = ()
    payload: bytes = b""

    @property
    def is_success(self) -> bool:
        return self.status in (STATUS_SUCCESS, STATUS_NO_RESPONSE_EXPECTED)

    @property
    def is_no_response(self) -> bool:
        return self.status == STATUS_NO_RESPONSE

    @classmethod
    def ok(cls, *values: int) -> "CommandResponse":
        return cls(STATUS_SUCCESS, tuple(values))

    @classmethod
    def no_response(cls) -> "CommandResponse":
        return cls(STATUS_NO_RESPONSE)


class Outcome(Enum):
    """How a command that may drop the USB session ended."""
    COMPLETED = "completed"
    EXPECTED_DISCONNECT = "expected_disconnect"


def _status_value(code: Any) -> int:
    """Normalize spsdk status codes (int or SpsdkEnum member) to int."""
    return int(getattr(code, "tag", code))


class Transport:
    """
    Base class for command transports.

    Subclasses register one handler per accepted command class in
    ``_handlers``; send() refuses anything else.
    """

    name = "transport"

    def __init__(self, usb: UsbId, timeout_ms: int):
        self.usb = usb
        self.timeout_ms = timeout_ms
        self._handlers: Dict[Type[Command], Callable[..., CommandResponse]] = {}

    @property
    def is_open(self) -> bool:
        raise NotImplementedError

    def open(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        raise NotImplementedError

    def __enter__(self) -> "Transport":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def send(
        self,
        command: Command,
        progress: Optional[SegmentCallback] = None,
    ) -> CommandResponse:
        """
        Send a command and wait for its response.

        Args:
            command: Command to send
            progress: Segment callback(current, total) for write commands

        Returns:
            CommandResponse. A command timeout is reported as
            STATUS_NO_RESPONSE rather than raised.

        Raises:
            TransportError: Session not open, command not accepted by this
                            transport, or the USB connection failed.
        """
        if not self.is_open:
            raise TransportError(f"{self.name} session is not open")
        handler = self._handlers.get(type(command))
        if handler is None:
            raise TransportError(f"{command.verb} is not supported by {self.name}")

        logger.debug(f">>> {command}")
        try:
            if command.writes_data:
                response = handler(command, progress)
            else:
                response = handler(command)
        except TimeoutError as e:
            logger.debug(f"<<< timeout: {e}")
            return CommandResponse.no_response()
        except SPSDKError as e:
            raise TransportError(f"{command.verb} failed: {e}") from e
        logger.debug(f"<<< status=0x{response.status:X} values={list(response.values)}")
        return response


class SdpTransport(Transport):
    """
    Session with the i.MX RT ROM serial downloader over USB HID.

    Example:
        with SdpTransport(model.sdp_usb, timeout_ms=5000) as sdp:
            sdp.send(ErrorStatus())
            sdp.send(WriteFile(0x20001C00, image))
    """

    name = "SDP"

    def __init__(self, usb: UsbId, timeout_ms: int = 5000):
        super().__init__(usb, timeout_ms)
        self._sdp = None
        self._handlers = {
            ErrorStatus: self._error_status,
            WriteFile: self._write_file,
            JumpAddress: self._jump_address,
        }

    @property
    def is_open(self) -> bool:
        return self._sdp is not None

    def open(self) -> None:
        """
        Find the ROM-mode device and open a session.

        Raises:
            TransportError: If no matching device is present or it cannot be opened
        """
        from spsdk.sdp.interfaces.usb import SdpUSBInterface
        from spsdk.sdp.sdp import SDP

        try:
            interfaces = SdpUSBInterface.scan(device_id=self.usb.device_id, timeout=self.timeout_ms)
            if not interfaces:
                raise TransportError(f"No SDP device {self.usb} found")
            sdp = SDP(interfaces[0], cmd_exception=False)
            sdp.open()
        except SPSDKError as e:
            raise TransportError(f"Cannot open SDP device {self.usb}: {e}") from e
        self._sdp = sdp
        logger.debug(f"Opened SDP device {self.usb}")

    def close(self) -> None:
        if self._sdp is None:
            return
        try:
            self._sdp.close()
        except SPSDKError as e:
            logger.debug(f"Ignoring error while closing SDP session: {e}")
        finally:
            self._sdp = None
            logger.debug(f"Closed SDP device {self.usb}")

    def _error_status(self, command: ErrorStatus) -> CommandResponse:
        status = self._sdp.read_status()
        if status is None:
            return CommandResponse.no_response()
        return CommandResponse(status)

    def _write_file(
        self,
        command: WriteFile,
        progress: Optional[SegmentCallback],
    ) -> CommandResponse:
        total = len(command.data)
        # The ROM loader takes the image in a single transfer.
        if progress:
            progress(0, total)
        if not self._sdp.write_file(command.address, command.data):
            return CommandResponse(_status_value(self._sdp.status_code) or STATUS_NO_RESPONSE)
        if progress:
            progress(total, total)
        return CommandResponse.ok()

    def _jump_address(self, command: JumpAddress) -> CommandResponse:
        if not self._sdp.jump_and_run(command.address):
            return CommandResponse(_status_value(self._sdp.status_code) or STATUS_NO_RESPONSE)
        return CommandResponse.ok()


class McuBootTransport(Transport):
    """
    Session with the RAM flashloader (MCU bootloader protocol) over USB HID.

    Example:
        with McuBootTransport(model.bootloader_usb, timeout_ms=60000) as bl:
            bl.send(GetProperty())
            bl.send(FlashEraseRegion(0x60000000, 0x20000))
    """

    name = "flashloader"

    def __init__(self, usb: UsbId, timeout_ms: int = 60000):
        super().__init__(usb, timeout_ms)
        self._mboot = None
        self._handlers = {
            GetProperty: self._get_property,
            FillMemory: self._fill_memory,
            ConfigureMemory: self._configure_memory,
            FlashEraseRegion: self._flash_erase_region,
            WriteMemory: self._write_memory,
            Reset: self._reset,
        }

    @property
    def is_open(self) -> bool:
        return self._mboot is not None

    def open(self) -> None:
        """
        Find the flashloader device and open a session.

        Raises:
            TransportError: If no matching device is present or it cannot be opened
        """
        from spsdk.mboot.interfaces.usb import MbootUSBInterface
        from spsdk.mboot.mcuboot import McuBoot

        try:
            interfaces = MbootUSBInterface.scan(device_id=self.usb.device_id, timeout=self.timeout_ms)
            if not interfaces:
                raise TransportError(f"No flashloader device {self.usb} found")
            mboot = McuBoot(interfaces[0], cmd_exception=False)
            mboot.open()
        except SPSDKError as e:
            raise TransportError(f"Cannot open flashloader device {self.usb}: {e}") from e
        self._mboot = mboot
        logger.debug(f"Opened flashloader device {self.usb}")

    def close(self) -> None:
        if self._mboot is None:
            return
        try:
            self._mboot.close()
        except SPSDKError as e:
            logger.debug(f"Ignoring error while closing flashloader session: {e}")
        finally:
            self._mboot = None
            logger.debug(f"Closed flashloader device {self.usb}")

    def _status(self, ok: Any) -> CommandResponse:
        status = _status_value(self._mboot.status_code)
        if ok and status != STATUS_NO_RESPONSE_EXPECTED:
            return CommandResponse(STATUS_SUCCESS)
        return CommandResponse(status)

    def _get_property(self, command: GetProperty) -> CommandResponse:
        values = self._mboot.get_property(command.tag)
        if values is None:
            status = _status_value(self._mboot.status_code)
            return CommandResponse(status or STATUS_NO_RESPONSE)
        return CommandResponse(STATUS_SUCCESS, tuple(values))

    def _fill_memory(self, command: FillMemory) -> CommandResponse:
        return self._status(self._mboot.fill_memory(command.address, command.size, command.pattern))

    def _configure_memory(self, command: ConfigureMemory) -> CommandResponse:
        return self._status(
            self._mboot.configure_memory(command.config_address, command.memory_id)
        )

    def _flash_erase_region(self, command: FlashEraseRegion) -> CommandResponse:
        return self._status(
            self._mboot.flash_erase_region(command.address, command.size, command.memory_id)
        )

    def _write_memory(
        self,
        command: WriteMemory,
        progress: Optional[SegmentCallback],
    ) -> CommandResponse:
        return self._status(
            self._mboot.write_memory(
                command.address,
                command.data,
                command.memory_id,
                progress_callback=progress,
            )
        )

    def _reset(self, command: Reset) -> CommandResponse:
        # The device drops off the bus while the response is pending.
        return self._status(self._mboot.reset(reopen=False))
