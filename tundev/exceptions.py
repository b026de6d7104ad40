"""
Custom exceptions for tundev.

Every failure the device layer reports is one of these types. Transient
"nothing to do right now" and end-of-stream conditions are not exceptions;
see tundev.device.ReadStatus.
"""

import errno as errno_codes
import os
from typing import Optional


class TunError(Exception):
    """Base exception for all tundev errors."""
    pass


# ---------------- Open Errors ----------------

class ResourceExhausted(TunError):
    """The control socket could not be created."""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


class NameTooLong(TunError):
    """The kernel control name does not fit the fixed-size OS buffer."""

    def __init__(self, name: str, max_len: int):
        super().__init__(
            f"Control name '{name}' does not fit in {max_len} bytes"
        )
        self.name = name
        self.max_len = max_len


class DeviceConfigError(TunError):
    """Getting or setting the interface MTU failed."""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno


class UnsupportedPlatformError(TunError):
    """The utun kernel control is not available on this platform."""
    pass


# ---------------- I/O Errors ----------------

_TRANSIENT = frozenset({errno_codes.EINTR, errno_codes.EAGAIN, errno_codes.EWOULDBLOCK})


class IoError(TunError):
    """An OS-level operation failed; carries the underlying errno."""

    def __init__(self, operation: str, errno: Optional[int]):
        if errno is None:
            errno = errno_codes.EIO
        super().__init__(f"{operation} failed: [Errno {errno}] {os.strerror(errno)}")
        self.operation = operation
        self.errno = errno

    @property
    def transient(self) -> bool:
        """True if retrying the same call later may succeed."""
        return self.errno in _TRANSIENT


class ClosedError(TunError):
    """I/O was attempted on a device that has been closed."""

    def __init__(self, name: str = ""):
        super().__init__(f"Device {name or '<unnamed>'} is closed")
        self.name = name


# ---------------- Packet Errors ----------------

class PacketFramingError(TunError):
    """A utun frame or the IP packet inside it is truncated or of unknown type."""
    pass
