"""
Stable failure codes and remediation hints for nt-flash.

Both the machine-readable protocol and the console output refer to these
codes, so their values must not change between releases.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, Optional


class FailureCode(Enum):
    """Stable codes for every way a flash run can end in failure."""
    # Pre-flight (no device touched)
    ARCHIVE_INVALID = "ArchiveInvalid"
    MANIFEST_MISSING = "ManifestMissing"
    UNSUPPORTED_PROCESSOR = "UnsupportedProcessor"
    ENTRY_MISSING = "EntryMissing"
    DOWNLOAD_FAILED = "DownloadFailed"

    # Connection
    SDP_UNAVAILABLE = "SdpUnavailable"
    BOOTLOADER_UNAVAILABLE = "BootloaderUnavailable"
    DEVICE_NOT_FOUND = "DeviceNotFound"

    # Device commands
    COMMAND_TIMEOUT = "CommandTimeout"
    COMMAND_FAILED = "CommandFailed"
    UPLOAD_FAILED = "UploadFailed"
    CONFIGURE_FAILED = "ConfigureFailed"
    ERASE_FAILED = "EraseFailed"
    FCB_FAILED = "FcbFailed"
    WRITE_FAILED = "WriteFailed"

    # Transport
    TRANSPORT_ERROR = "TransportError"


FAILURE_REMEDIATIONS: Dict[FailureCode, str] = {
    FailureCode.ARCHIVE_INVALID:
        "Check that the file is a complete firmware .zip downloaded from the release page.",
    FailureCode.MANIFEST_MISSING:
        "The archive has no usable MANIFEST.json. Re-download the firmware package.",
    FailureCode.UNSUPPORTED_PROCESSOR:
        "This package was built for a different processor. Use a disting NT firmware package.",
    FailureCode.ENTRY_MISSING:
        "The archive is missing a required image. Re-download the firmware package.",
    FailureCode.DOWNLOAD_FAILED:
        "Check your network connection and the version number (use --list).",
    FailureCode.SDP_UNAVAILABLE:
        "Make sure the module is connected over USB and in bootloader mode.",
    FailureCode.BOOTLOADER_UNAVAILABLE:
        "The flashloader did not enumerate. Try a longer --enum-delay, then power cycle and retry.",
    FailureCode.DEVICE_NOT_FOUND:
        "Put disting NT in bootloader mode: Menu > Misc > Enter bootloader mode...",
    FailureCode.COMMAND_TIMEOUT:
        "The device stopped responding. Check the USB cable and retry.",
    FailureCode.COMMAND_FAILED:
        "The device rejected a command. Run with --verbose for details.",
    FailureCode.UPLOAD_FAILED:
        "Uploading the flashloader failed. Power cycle the module into bootloader mode and retry.",
    FailureCode.CONFIGURE_FAILED:
        "The flashloader could not configure external flash. Power cycle and retry.",
    FailureCode.ERASE_FAILED:
        "Erasing flash failed. Retry; the module stays recoverable from bootloader mode.",
    FailureCode.FCB_FAILED:
        "Writing the Flash Configuration Block failed. Retry from bootloader mode.",
    FailureCode.WRITE_FAILED:
        "Writing firmware failed. Do not power off; retry from bootloader mode.",
    FailureCode.TRANSPORT_ERROR:
        "The USB connection was lost unexpectedly. Reconnect and retry.",
}


@dataclass
class FailureMessage:
    """
    User-facing description of a failure.

    Attributes:
        code: Stable failure code
        detail: The error text as raised
        remediation: Suggested action to resolve the issue
    """
    code: FailureCode
    detail: str
    remediation: Optional[str] = None

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary for JSON serialization."""
        return {
            "code": self.code.value,
            "detail": self.detail,
            "remediation": self.remediation or "",
        }


def failure_message(code: FailureCode, detail: str) -> FailureMessage:
    """Build a FailureMessage with the default remediation for ``code``."""
    return FailureMessage(
        code=code,
        detail=detail,
        remediation=FAILURE_REMEDIATIONS.get(code),
    )
