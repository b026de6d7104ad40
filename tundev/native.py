"""
Native layer: the Darwin system calls behind the device, and the
process-wide context that owns their one-time initialization.

Everything here works on raw descriptor integers. Calls raise OSError as
the OS reports it; classification into tundev exceptions happens in
tundev.opener and tundev.device.
"""

from __future__ import annotations

import fcntl
import logging
import os
import socket
import struct
import sys
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING, Iterator, List, Optional, Set

from .config import (
    PF_SYSTEM,
    SOCK_DGRAM,
    SYSPROTO_CONTROL,
    UTUN_OPT_IFNAME,
    MAX_KCTL_NAME,
    IFNAMSIZ,
    CTLIOCGINFO,
    SIOCGIFMTU,
    SIOCSIFMTU,
)
from .exceptions import TunError, UnsupportedPlatformError

if TYPE_CHECKING:
    from .device import TunDevice

logger = logging.getLogger(__name__)

IS_DARWIN = sys.platform == "darwin"

_CTL_INFO = struct.Struct(f"I{MAX_KCTL_NAME}s")
_IFREQ_MTU = struct.Struct(f"{IFNAMSIZ}si12x")


class Syscalls:
    """
    Darwin system calls used to create and drive a utun device.

    Tests substitute an object with the same methods to run without a
    kernel control socket.
    """

    def socket(self) -> int:
        """Create a kernel control socket and return its descriptor."""
        sock = socket.socket(PF_SYSTEM, SOCK_DGRAM, SYSPROTO_CONTROL)
        return sock.detach()

    def ctl_id(self, fd: int, control_name: bytes) -> int:
        """Resolve a kernel control name to its id (CTLIOCGINFO)."""
        request = _CTL_INFO.pack(0, control_name)
        reply = fcntl.ioctl(fd, CTLIOCGINFO, request)
        return _CTL_INFO.unpack(reply)[0]

    def connect(self, fd: int, ctl_id: int, unit: int) -> None:
        with _borrowed(fd) as sock:
            sock.connect((ctl_id, unit))

    def ifname(self, fd: int) -> str:
        with _borrowed(fd) as sock:
            raw = sock.getsockopt(SYSPROTO_CONTROL, UTUN_OPT_IFNAME, IFNAMSIZ)
        return raw.split(b"\0", 1)[0].decode("utf-8")

    def get_mtu(self, fd: int, ifname: str) -> int:
        request = _IFREQ_MTU.pack(ifname.encode("utf-8"), 0)
        reply = fcntl.ioctl(fd, SIOCGIFMTU, request)
        return _IFREQ_MTU.unpack(reply)[1]

    def set_mtu(self, fd: int, ifname: str, mtu: int) -> None:
        fcntl.ioctl(fd, SIOCSIFMTU, _IFREQ_MTU.pack(ifname.encode("utf-8"), mtu))

    def set_nonblocking(self, fd: int) -> None:
        os.set_blocking(fd, False)
        os.set_inheritable(fd, False)

    def read(self, fd: int, buffer) -> int:
        return os.readv(fd, [buffer])

    def write(self, fd: int, buffer) -> int:
        return os.write(fd, buffer)

    def close(self, fd: int) -> None:
        os.close(fd)


@contextmanager
def _borrowed(fd: int) -> Iterator[socket.socket]:
    """Wrap a descriptor in a socket object without taking ownership of it."""
    sock = socket.socket(PF_SYSTEM, SOCK_DGRAM, SYSPROTO_CONTROL, fileno=fd)
    try:
        yield sock
    finally:
        sock.detach()


class NativeContext:
    """
    Process-wide owner of the native layer.

    init() selects the system call implementation once; shutdown() closes
    every device still open through this context. Both are idempotent.
    Open devices are held here until they close, whether or not the caller
    still references them.
    """

    def __init__(self, syscalls: Optional[Syscalls] = None):
        self._syscalls = syscalls
        self._lock = threading.RLock()
        self._initialized = False
        self._devices: "Set[TunDevice]" = set()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def syscalls(self) -> Syscalls:
        self.init()
        return self._syscalls

    def init(self) -> None:
        """Initialize the context. Safe to call repeatedly."""
        with self._lock:
            if self._initialized:
                return
            if self._syscalls is None:
                if not IS_DARWIN:
                    raise UnsupportedPlatformError(
                        f"utun devices require Darwin (running on {sys.platform})"
                    )
                self._syscalls = Syscalls()
            self._initialized = True
        logger.debug(f"Native context ready ({type(self._syscalls).__name__})")

    def register(self, device: "TunDevice") -> None:
        with self._lock:
            self._devices.add(device)

    def unregister(self, device: "TunDevice") -> None:
        with self._lock:
            self._devices.discard(device)

    def open_devices(self) -> List["TunDevice"]:
        with self._lock:
            return list(self._devices)

    def shutdown(self) -> None:
        """
        Close all devices opened through this context and reset it.

        Every device is closed even if some closes fail; the first failure
        is re-raised afterwards.
        """
        with self._lock:
            if not self._initialized:
                return
            devices = list(self._devices)
            self._devices.clear()
            self._initialized = False

        first_error: Optional[TunError] = None
        for device in devices:
            try:
                device.close()
            except TunError as e:
                logger.error(f"Failed to close {device.address} during shutdown: {e}")
                if first_error is None:
                    first_error = e

        logger.debug(f"Native context shut down ({len(devices)} device(s) closed)")
        if first_error is not None:
            raise first_error


_context: Optional[NativeContext] = None
_context_lock = threading.Lock()


def get_context() -> NativeContext:
    """Get the default native context, creating it if necessary."""
    global _context
    with _context_lock:
        if _context is None:
            _context = NativeContext()
        return _context


def set_context(context: Optional[NativeContext]) -> Optional[NativeContext]:
    """Replace the default context; returns the previous one."""
    global _context
    with _context_lock:
        previous, _context = _context, context
        return previous


def noop() -> None:
    """Side-effect free call that forces one-time initialization."""
    get_context().init()
