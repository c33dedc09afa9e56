"""
Core module for nt-flash.

This module provides the single source of truth for:
- Failure codes and remediation hints (messages.py)
- The exception hierarchy (errors.py)
- Version and address parsing (parsing.py)
- Result objects (results.py)
- Firmware package validation (package.py)
- Progress events (progress.py)
- The flash state machine (orchestrator.py)

The CLI calls into this module rather than implementing its own logic.
"""

from .messages import (
    FailureCode,
    FailureMessage,
    FAILURE_REMEDIATIONS,
    failure_message,
)
from .errors import (
    FlashError,
    ValidationError,
    ArchiveInvalid,
    ManifestMissing,
    UnsupportedProcessor,
    EntryMissing,
    ConnectError,
    SdpUnavailable,
    BootloaderUnavailable,
    DeviceNotFound,
    CommandError,
    CommandTimeout,
    CommandFailed,
    UploadFailed,
    TransportError,
    PhaseFailed,
    DownloadError,
)
from .parsing import parse_version, format_hex
from .results import OperationResult
from .package import FirmwarePackage, load_package, load_package_file, parse_manifest
from .progress import Stage, EventKind, ProgressEvent, ProgressModel
# Last: the orchestrator pulls in the protocol layer, which imports the above.
from .orchestrator import Phase, DeviceSession, FlashOrchestrator

__all__ = [
    # Messages
    "FailureCode",
    "FailureMessage",
    "FAILURE_REMEDIATIONS",
    "failure_message",
    # Errors
    "FlashError",
    "ValidationError",
    "ArchiveInvalid",
    "ManifestMissing",
    "UnsupportedProcessor",
    "EntryMissing",
    "ConnectError",
    "SdpUnavailable",
    "BootloaderUnavailable",
    "DeviceNotFound",
    "CommandError",
    "CommandTimeout",
    "CommandFailed",
    "UploadFailed",
    "TransportError",
    "PhaseFailed",
    "DownloadError",
    # Parsing
    "parse_version",
    "format_hex",
    # Results
    "OperationResult",
    # Package
    "FirmwarePackage",
    "load_package",
    "load_package_file",
    "parse_manifest",
    # Progress
    "Stage",
    "EventKind",
    "ProgressEvent",
    "ProgressModel",
    # Orchestration
    "Phase",
    "DeviceSession",
    "FlashOrchestrator",
]
