"""
Target registry for devices flashed by nt-flash.

Provides a single source of truth for:
- USB identities of the ROM (SDP) loader and the RAM flashloader
- Memory map (flashloader load address, FlexSPI base, firmware address)
- FlexSPI configuration words and memory ids
- Firmware archive layout (manifest and image entry names)
- Release catalogue used by --list / --version / --latest

Usage:
    from nt_flash.models import get_model, list_models, DEFAULT_MODEL

    model = get_model("disting NT")
    erase = model.erase_size(len(firmware))
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class UsbId:
    """USB vendor/product pair."""
    vid: int
    pid: int

    @property
    def device_id(self) -> str:
        """Return the VID:PID form accepted by the spsdk USB scanners."""
        return f"0x{self.vid:04X}:0x{self.pid:04X}"

    def __str__(self) -> str:
        return f"{self.vid:04X}:{self.pid:04X}"


@dataclass(frozen=True)
class DeviceModel:
    """
    Flashing configuration for one target device.

    Attributes:
        name: Human-readable device name
        processor: Processor identifier the firmware manifest must declare
        sdp_usb: USB identity while the ROM serial downloader is active
        bootloader_usb: USB identity while the RAM flashloader is running
        flashloader_addr: RAM address the flashloader is uploaded to and started from
        flash_base: Base of the memory-mapped external NOR flash
        firmware_addr: Address the application image is written to
        config_addr: Scratch RAM address used for FlexSPI configuration words
        flexspi_nor_config: Config word selecting the FlexSPI NOR setup
        fcb_config: Config word that makes the flashloader emit an FCB
        flexspi_nor_memory_id: Memory id of the external NOR
        fcb_header_size: Bytes reserved for the FCB ahead of the firmware
    """
    name: str
    processor: str
    sdp_usb: UsbId
    bootloader_usb: UsbId

    # Memory map
    flashloader_addr: int = 0x20001C00
    flash_base: int = 0x60000000
    firmware_addr: int = 0x60001000
    config_addr: int = 0x2000

    # FlexSPI configuration
    flexspi_nor_config: int = 0xC0000008
    fcb_config: int = 0xF000000F
    flexspi_nor_memory_id: int = 9
    fcb_header_size: int = 0x1000

    # Firmware archive layout
    manifest_entry: str = "MANIFEST.json"
    flashloader_entry: str = "bootable_images/unsigned_MIMXRT1060_flashloader.bin"
    default_firmware_entry: str = "bootable_images/disting_NT.bin"

    # Releases
    firmware_base_url: str = ""
    archive_prefix: str = ""
    release_page: str = ""
    known_versions: Tuple[str, ...] = ()

    @property
    def latest_version(self) -> Optional[str]:
        """Newest version in the release catalogue."""
        return self.known_versions[0] if self.known_versions else None

    def erase_size(self, firmware_len: int) -> int:
        """
        Size of the flash region erased before writing.

        The erased span always starts at flash_base and covers the FCB
        header area plus the firmware image. The header size is a fixed
        constant and is not derived from the archive contents.
        """
        return firmware_len + self.fcb_header_size

    def to_dict(self) -> Dict:
        """Convert to JSON-serializable dict."""
        return {
            "name": self.name,
            "processor": self.processor,
            "sdp_usb": str(self.sdp_usb),
            "bootloader_usb": str(self.bootloader_usb),
            "flashloader_addr": f"0x{self.flashloader_addr:08X}",
            "flash_base": f"0x{self.flash_base:08X}",
            "firmware_addr": f"0x{self.firmware_addr:08X}",
            "known_versions": list(self.known_versions),
        }


# =============================================================================
# Device Registry
# =============================================================================

_MODEL_REGISTRY: Dict[str, DeviceModel] = {}


def _register(config: DeviceModel) -> None:
    """Register a device model."""
    _MODEL_REGISTRY[config.name] = config


_register(DeviceModel(
    name="disting NT",
    processor="MIMXRT1060",
    sdp_usb=UsbId(0x1FC9, 0x0135),        # NXP ROM bootloader, i.MX RT in SDP mode
    bootloader_usb=UsbId(0x15A2, 0x0073),  # NXP flashloader running from RAM
    firmware_base_url="https://www.expert-sleepers.co.uk/downloads/firmware/",
    archive_prefix="distingNT_",
    release_page="https://www.expert-sleepers.co.uk/distingNTfirmwareupdates.html",
    known_versions=(
        "1.12.0", "1.11.0", "1.10.0", "1.9.0", "1.8.0",
        "1.7.1", "1.7.0", "1.6.1", "1.6.0",
    ),
))

DEFAULT_MODEL = _MODEL_REGISTRY["disting NT"]


# =============================================================================
# Public API
# =============================================================================

def list_models() -> List[str]:
    """
    List all registered device names.

    Returns:
        Sorted list of device names.
    """
    return sorted(_MODEL_REGISTRY.keys())


def get_model(name: str) -> Optional[DeviceModel]:
    """
    Get configuration for a device by name (case-insensitive).

    Args:
        name: Device name (e.g., "disting NT")

    Returns:
        DeviceModel if found, None otherwise.
    """
    if name in _MODEL_REGISTRY:
        return _MODEL_REGISTRY[name]

    name_lower = name.lower()
    for model_name, config in _MODEL_REGISTRY.items():
        if model_name.lower() == name_lower:
            return config

    return None
