"""
Device registry for nt-flash.

Provides the memory map, USB identities and release catalogue of each
supported target.
"""

from .registry import (
    UsbId,
    DeviceModel,
    DEFAULT_MODEL,
    list_models,
    get_model,
)

__all__ = [
    "UsbId",
    "DeviceModel",
    "DEFAULT_MODEL",
    "list_models",
    "get_model",
]
