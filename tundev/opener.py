"""
Creation and configuration of utun devices.

open_device() either returns a fully configured TunDevice or raises one
classified error after closing whatever it had allocated. Callers never see
a half-open device.
"""

from __future__ import annotations

import logging
from typing import Optional

from .address import tun_address, unit_for_name
from .config import UTUN_CONTROL_NAME, MAX_KCTL_NAME, INT32_MAX
from .device import TunDevice
from .exceptions import (
    ResourceExhausted,
    NameTooLong,
    DeviceConfigError,
    IoError,
)
from .native import NativeContext, Syscalls, get_context

logger = logging.getLogger(__name__)


def _check_int32(label: str, value: int) -> None:
    if not isinstance(value, int) or isinstance(value, bool):
        raise TypeError(f"{label} must be an int, got {type(value).__name__}")
    if not 0 <= value <= INT32_MAX:
        raise ValueError(f"{label} must be in [0, {INT32_MAX}], got {value}")


def open_device(
    interface_index: int = 0,
    requested_mtu: int = 0,
    *,
    context: Optional[NativeContext] = None,
    control_name: str = UTUN_CONTROL_NAME,
) -> TunDevice:
    """
    Create a utun interface and return it as an open TunDevice.

    Args:
        interface_index: Kernel control unit. 0 lets the OS pick the next
            free utunN; N > 0 requests utun(N-1).
        requested_mtu: 0 keeps the OS-assigned MTU, anything else is set
            on the interface.
        context: Native context to open through (defaults to get_context())
        control_name: Kernel control providing the interface

    Raises:
        ResourceExhausted: The control socket could not be created
        NameTooLong: control_name does not fit the kernel's buffer
        IoError: Control lookup, connect, getsockopt or fcntl failed
        DeviceConfigError: Getting or setting the MTU failed
        UnsupportedPlatformError: Not running on Darwin
    """
    _check_int32("interface_index", interface_index)
    _check_int32("requested_mtu", requested_mtu)

    context = context or get_context()
    syscalls = context.syscalls

    try:
        fd = syscalls.socket()
    except OSError as e:
        raise ResourceExhausted(f"Creating control socket failed: {e}", e.errno) from e

    try:
        name = _connect(syscalls, fd, interface_index, control_name)
        mtu = _configure_mtu(syscalls, fd, name, requested_mtu)
        try:
            syscalls.set_nonblocking(fd)
        except OSError as e:
            raise IoError("fcntl(O_NONBLOCK)", e.errno) from e
        device = TunDevice(fd, mtu, tun_address(name), context)
    except BaseException:
        _close_after_failure(syscalls, fd)
        raise

    context.register(device)
    logger.info(f"Created TUN device: {name} (mtu {mtu}, fd {fd})")
    return device


def open_named(name: Optional[str] = None, requested_mtu: int = 0, **kwargs) -> TunDevice:
    """Open ``utunN`` by name, or any free utun if name is None."""
    return open_device(unit_for_name(name), requested_mtu, **kwargs)


def _connect(syscalls: Syscalls, fd: int, unit: int, control_name: str) -> str:
    """Attach fd to the utun control and return the interface name."""
    encoded = control_name.encode("utf-8")
    # ctl_name must hold the NUL terminator as well
    if len(encoded) >= MAX_KCTL_NAME:
        raise NameTooLong(control_name, MAX_KCTL_NAME)

    try:
        ctl_id = syscalls.ctl_id(fd, encoded)
    except OSError as e:
        raise IoError("ioctl(CTLIOCGINFO)", e.errno) from e

    try:
        syscalls.connect(fd, ctl_id, unit)
    except OSError as e:
        raise IoError("connect", e.errno) from e

    try:
        return syscalls.ifname(fd)
    except OSError as e:
        raise IoError("getsockopt(UTUN_OPT_IFNAME)", e.errno) from e


def _configure_mtu(syscalls: Syscalls, fd: int, name: str, requested_mtu: int) -> int:
    if requested_mtu != 0:
        try:
            syscalls.set_mtu(fd, name, requested_mtu)
        except OSError as e:
            raise DeviceConfigError(
                f"Setting MTU {requested_mtu} on {name} failed: {e}", e.errno
            ) from e
        return requested_mtu

    try:
        mtu = syscalls.get_mtu(fd, name)
    except OSError as e:
        raise DeviceConfigError(f"Reading MTU of {name} failed: {e}", e.errno) from e
    if mtu <= 0:
        raise DeviceConfigError(f"{name} reported invalid MTU {mtu}")
    return mtu


def _close_after_failure(syscalls: Syscalls, fd: int) -> None:
    try:
        syscalls.close(fd)
    except OSError as e:
        # The original error is more useful to the caller than this one
        logger.warning(f"Closing fd {fd} after failed open also failed: {e}")
