"""
tundev - Darwin utun devices for user-space packet I/O.

This package creates virtual point-to-point interfaces through the utun
kernel control and moves raw IP packets between caller-owned buffers and
the device with non-blocking, single-call reads and writes.
"""

from .address import TunAddress, tun_address, unit_for_name
from .buffer import BufferRegion
from .device import DeviceState, ReadStatus, TunDevice
from .exceptions import (
    TunError,
    ResourceExhausted,
    NameTooLong,
    DeviceConfigError,
    IoError,
    ClosedError,
    UnsupportedPlatformError,
    PacketFramingError,
)
from .native import NativeContext, get_context, noop
from .opener import open_device, open_named

__version__ = "1.0.0"
__author__ = "tundev Contributors"

__all__ = [
    "TunAddress",
    "tun_address",
    "unit_for_name",
    "BufferRegion",
    "DeviceState",
    "ReadStatus",
    "TunDevice",
    "TunError",
    "ResourceExhausted",
    "NameTooLong",
    "DeviceConfigError",
    "IoError",
    "ClosedError",
    "UnsupportedPlatformError",
    "PacketFramingError",
    "NativeContext",
    "get_context",
    "noop",
    "open_device",
    "open_named",
]
