"""Device protocol layer - typed commands, spsdk transports and phase controllers."""

from .commands import (
    Command,
    ErrorStatus,
    WriteFile,
    JumpAddress,
    GetProperty,
    FillMemory,
    ConfigureMemory,
    FlashEraseRegion,
    WriteMemory,
    Reset,
    SDP_COMMANDS,
    BOOTLOADER_COMMANDS,
)
from .transport import (
    Transport,
    SdpTransport,
    McuBootTransport,
    CommandResponse,
    Outcome,
    STATUS_SUCCESS,
    STATUS_NO_RESPONSE,
    STATUS_NO_RESPONSE_EXPECTED,
)
from .sdp import SdpController
from .bootloader import BootloaderController

__all__ = [
    # Commands
    "Command",
    "ErrorStatus",
    "WriteFile",
    "JumpAddress",
    "GetProperty",
    "FillMemory",
    "ConfigureMemory",
    "FlashEraseRegion",
    "WriteMemory",
    "Reset",
    "SDP_COMMANDS",
    "BOOTLOADER_COMMANDS",
    # Transport
    "Transport",
    "SdpTransport",
    "McuBootTransport",
    "CommandResponse",
    "Outcome",
    "STATUS_SUCCESS",
    "STATUS_NO_RESPONSE",
    "STATUS_NO_RESPONSE_EXPECTED",
    # Controllers
    "SdpController",
    "BootloaderController",
]
