"""
Exception hierarchy for nt-flash.

Every error carries a stable FailureCode so callers can report failures
without parsing message text.

    FlashError
    ├── ValidationError        bad archive/manifest, raised before any device I/O
    ├── ConnectError           device not found or unresponsive
    ├── CommandError           device answered a command with failure/timeout
    ├── TransportError         unexpected USB disconnection
    ├── PhaseFailed            terminal failure of an orchestrator phase
    └── DownloadError          firmware archive could not be fetched
"""

from typing import Optional

from .messages import FailureCode


class FlashError(Exception):
    """Base exception for all nt-flash failures."""

    code: FailureCode = FailureCode.TRANSPORT_ERROR

    def __init__(self, message: str, code: Optional[FailureCode] = None):
        super().__init__(message)
        if code is not None:
            self.code = code


# -----------------------------------------------------------------------------
# Validation
# -----------------------------------------------------------------------------

class ValidationError(FlashError):
    """Firmware package rejected before any device was touched."""

    code = FailureCode.ARCHIVE_INVALID


class ArchiveInvalid(ValidationError):
    """Input is not a readable ZIP archive."""

    code = FailureCode.ARCHIVE_INVALID


class ManifestMissing(ValidationError):
    """Manifest entry absent or unparsable."""

    code = FailureCode.MANIFEST_MISSING


class UnsupportedProcessor(ValidationError):
    """Manifest declares a processor other than the supported target."""

    code = FailureCode.UNSUPPORTED_PROCESSOR

    def __init__(self, declared: str, expected: str):
        self.declared = declared
        self.expected = expected
        super().__init__(f"Unsupported processor: {declared} (expected {expected})")


class EntryMissing(ValidationError):
    """A required image is absent (or empty) in the archive."""

    code = FailureCode.ENTRY_MISSING

    def __init__(self, entry: str, path: str):
        self.entry = entry
        self.path = path
        super().__init__(f"Missing {entry} image in archive: {path}")


# -----------------------------------------------------------------------------
# Connection
# -----------------------------------------------------------------------------

class ConnectError(FlashError):
    """Device not found or not answering its probe command."""

    code = FailureCode.DEVICE_NOT_FOUND


class SdpUnavailable(ConnectError):
    """No ROM-mode (SDP) device answered."""

    code = FailureCode.SDP_UNAVAILABLE


class BootloaderUnavailable(ConnectError):
    """The RAM flashloader did not answer within the retry budget."""

    code = FailureCode.BOOTLOADER_UNAVAILABLE


class DeviceNotFound(ConnectError):
    """Neither the ROM loader nor the flashloader answered."""

    code = FailureCode.DEVICE_NOT_FOUND


# -----------------------------------------------------------------------------
# Commands and transport
# -----------------------------------------------------------------------------

class CommandError(FlashError):
    """
    A device command did not succeed.

    Attributes:
        command: Rendered command line (verb plus arguments)
        status: Status value reported for the command, if any
    """

    code = FailureCode.COMMAND_FAILED

    def __init__(self, message: str, command: str = "", status: Optional[int] = None):
        self.command = command
        self.status = status
        super().__init__(message)


class CommandTimeout(CommandError):
    """No response arrived for a command."""

    code = FailureCode.COMMAND_TIMEOUT


class CommandFailed(CommandError):
    """Device answered with a failure status."""

    code = FailureCode.COMMAND_FAILED


class UploadFailed(CommandError):
    """Flashloader upload over SDP failed."""

    code = FailureCode.UPLOAD_FAILED


class TransportError(FlashError):
    """USB session could not be opened or was lost unexpectedly."""

    code = FailureCode.TRANSPORT_ERROR


# -----------------------------------------------------------------------------
# Orchestration / download
# -----------------------------------------------------------------------------

class PhaseFailed(FlashError):
    """
    Terminal failure of one orchestrator phase.

    Attributes:
        phase: Name of the phase that failed
    """

    def __init__(self, code: FailureCode, phase: str, message: str):
        self.phase = phase
        super().__init__(message, code=code)


class DownloadError(FlashError):
    """Fetching a firmware archive failed."""

    code = FailureCode.DOWNLOAD_FAILED
