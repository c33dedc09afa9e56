"""
Typed bootloader commands.

One frozen dataclass per verb used against the ROM loader (SDP) or the RAM
flashloader. The set is closed: transports dispatch on the command class,
so an unknown verb cannot be constructed in the first place.

Arguments render the way the NXP host tools print them: addresses and
config words as 0x%X, sizes and ids in decimal.
"""

from dataclasses import dataclass, field
from typing import ClassVar, List, Tuple, Type

from ..core.parsing import format_hex

# get-property tag for the bootloader's current version
PROPERTY_CURRENT_VERSION = 1


@dataclass(frozen=True)
class Command:
    """Base class for all commands."""

    verb: ClassVar[str] = ""
    writes_data: ClassVar[bool] = False

    def args(self) -> List[str]:
        """Ordered string arguments following the verb."""
        return []

    def __str__(self) -> str:
        return " ".join([self.verb] + self.args())


# -----------------------------------------------------------------------------
# ROM serial downloader (SDP)
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class ErrorStatus(Command):
    """Read the HAB error status; used as the SDP liveness probe."""

    verb: ClassVar[str] = "error-status"


@dataclass(frozen=True)
class WriteFile(Command):
    """Write a binary image into device RAM."""

    verb: ClassVar[str] = "write-file"
    writes_data: ClassVar[bool] = True

    address: int
    data: bytes = field(repr=False)

    def args(self) -> List[str]:
        return [format_hex(self.address), f"<{len(self.data)} bytes>"]


@dataclass(frozen=True)
class JumpAddress(Command):
    """Start executing the image at ``address``."""

    verb: ClassVar[str] = "jump-address"

    address: int

    def args(self) -> List[str]:
        return [format_hex(self.address)]


# -----------------------------------------------------------------------------
# RAM flashloader (MCU bootloader)
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class GetProperty(Command):
    verb: ClassVar[str] = "get-property"

    tag: int = PROPERTY_CURRENT_VERSION

    def args(self) -> List[str]:
        return [str(self.tag)]


@dataclass(frozen=True)
class FillMemory(Command):
    verb: ClassVar[str] = "fill-memory"

    address: int
    size: int
    pattern: int
    unit: str = "word"

    def args(self) -> List[str]:
        return [format_hex(self.address), str(self.size), format_hex(self.pattern), self.unit]


@dataclass(frozen=True)
class ConfigureMemory(Command):
    verb: ClassVar[str] = "configure-memory"

    memory_id: int
    config_address: int

    def args(self) -> List[str]:
        return [str(self.memory_id), format_hex(self.config_address)]


@dataclass(frozen=True)
class FlashEraseRegion(Command):
    verb: ClassVar[str] = "flash-erase-region"

    address: int
    size: int
    memory_id: int = 0  # 0 = internal / memory-mapped

    def args(self) -> List[str]:
        return [format_hex(self.address), str(self.size), str(self.memory_id)]


@dataclass(frozen=True)
class WriteMemory(Command):
    verb: ClassVar[str] = "write-memory"
    writes_data: ClassVar[bool] = True

    address: int
    data: bytes = field(repr=False)
    memory_id: int = 0

    def args(self) -> List[str]:
        return [format_hex(self.address), f"<{len(self.data)} bytes>", str(self.memory_id)]


@dataclass(frozen=True)
class Reset(Command):
    verb: ClassVar[str] = "reset"


SDP_COMMANDS: Tuple[Type[Command], ...] = (ErrorStatus, WriteFile, JumpAddress)

BOOTLOADER_COMMANDS: Tuple[Type[Command], ...] = (
    GetProperty,
    FillMemory,
    ConfigureMemory,
    FlashEraseRegion,
    WriteMemory,
    Reset,
)
