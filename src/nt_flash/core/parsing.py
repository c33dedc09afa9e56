"""
Centralized parsing and formatting helpers.

Command arguments and CLI values go through these helpers so addresses and
versions are rendered the same way everywhere.
"""

import re
from typing import Optional

_VERSION_RE = re.compile(r"^\d+\.\d+\.\d+$")


def parse_version(value: Optional[str]) -> Optional[str]:
    """
    Validate a firmware version identifier.

    Accepts:
        - "X.Y.Z" with decimal components, e.g. "1.12.0"
        - None or empty for "not given"

    Returns:
        The stripped version string, or None.

    Raises:
        ValueError: If value is not of the form X.Y.Z.
    """
    if value is None:
        return None

    value = value.strip()
    if not value:
        return None

    if not _VERSION_RE.match(value):
        raise ValueError(f"Invalid version '{value}'. Use X.Y.Z, e.g. 1.12.0.")
    return value


def format_hex(value: int) -> str:
    """Render an address or config word the way bootloader tools expect (0x%X)."""
    return f"0x{value:X}"
