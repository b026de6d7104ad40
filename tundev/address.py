"""
Interface identity for utun devices.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

DEVICE_PREFIX = "utun"


@dataclass(frozen=True)
class TunAddress:
    """Identifies a TUN interface by its OS-assigned name."""

    name: str = ""

    def __str__(self) -> str:
        return self.name


def tun_address(name: str) -> TunAddress:
    """Build the address of a resolved interface name."""
    return TunAddress(name=name)


def unit_for_name(name: Optional[str]) -> int:
    """
    Translate a requested device name into a kernel control unit.

    None means "any free utun" (unit 0). ``utunN`` maps to unit N + 1,
    because the kernel names unit U as ``utun{U-1}``.

    Raises:
        ValueError: If the name is not of the form ``utun<digits>``
    """
    if name is None:
        return 0
    suffix = name[len(DEVICE_PREFIX):]
    if not name.startswith(DEVICE_PREFIX) or not (suffix.isascii() and suffix.isdigit()):
        raise ValueError("Device name must be 'utun<index>' or None.")
    return int(suffix) + 1
