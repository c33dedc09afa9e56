"""
nt-flash - firmware flasher for the Expert Sleepers disting NT

Loads a firmware package, boots the RAM flashloader over SDP and writes the
application image to external flash.
"""

__version__ = "0.1.0"

from nt_flash.config import FlashConfig
from nt_flash.core import FlashOrchestrator, load_package, load_package_file

__all__ = [
    "FlashConfig",
    "FlashOrchestrator",
    "load_package",
    "load_package_file",
    "__version__",
]
