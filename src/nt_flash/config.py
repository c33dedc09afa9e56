"""
Run configuration for nt-flash.

The verbosity, dry-run and machine-output switches are carried in an
explicit FlashConfig value handed to the orchestrator and controllers at
construction. Nothing here is process-global, so independent orchestrator
instances (for example under test) never interfere.
"""

import sys
from dataclasses import dataclass, replace


def _default_enumeration_delay() -> float:
    # Empirically tuned: macOS needs the longer wait.
    return 3.0 if sys.platform == "win32" else 5.0


@dataclass(frozen=True)
class FlashConfig:
    """
    Settings for one flash run.

    Attributes:
        verbose: Log command-level detail
        dry_run: Walk every phase without touching a device
        machine: Emit only the machine-readable line protocol
        enumeration_delay: Seconds to wait for the flashloader to enumerate
                           after the SDP jump
        connect_attempts: Bootloader connect attempts before giving up
        connect_interval: Seconds between bootloader connect attempts
        sdp_timeout_ms: Per-command timeout for the ROM loader
        bootloader_timeout_ms: Per-command timeout for the flashloader;
                               long because NOR erase is slow
    """
    verbose: bool = False
    dry_run: bool = False
    machine: bool = False
    enumeration_delay: float = _default_enumeration_delay()
    connect_attempts: int = 5
    connect_interval: float = 1.0
    sdp_timeout_ms: int = 5000
    bootloader_timeout_ms: int = 60000

    def __post_init__(self) -> None:
        if self.connect_attempts < 1:
            raise ValueError("connect_attempts must be >= 1")
        if self.enumeration_delay < 0:
            raise ValueError("enumeration_delay must be >= 0")
        if self.connect_interval < 0:
            raise ValueError("connect_interval must be >= 0")

    def with_overrides(self, **changes) -> "FlashConfig":
        """Return a copy with the given fields replaced."""
        return replace(self, **changes)
