"""
TunDevice: an open utun descriptor and its lifecycle.

read() and write() are single-shot and non-blocking. Waiting for
readiness belongs to the caller's reactor (see tundev.channel), keyed by
fileno().
"""

from __future__ import annotations

import errno
import logging
from enum import Enum, IntEnum
from typing import Union

from .address import TunAddress
from .buffer import BufferRegion
from .exceptions import ClosedError, IoError
from .native import NativeContext

logger = logging.getLogger(__name__)

_WOULD_BLOCK = (errno.EAGAIN, errno.EWOULDBLOCK)


class DeviceState(Enum):
    OPEN = "open"
    CLOSED = "closed"


class ReadStatus(IntEnum):
    """Non-error outcomes of a read that transferred no data."""

    WOULD_BLOCK = -1  # Nothing available; wait for readability and retry
    EOF = 0           # Peer side closed


class TunDevice:
    """
    A live utun device.

    Only open_device() creates instances. At most one read and one write
    may be in flight at a time; close() must not race with either.
    """

    def __init__(self, fd: int, mtu: int, address: TunAddress, context: NativeContext):
        if fd < 0:
            raise ValueError(f"invalid descriptor {fd}")
        if mtu <= 0:
            raise ValueError(f"mtu must be positive, got {mtu}")
        self._fd = fd
        self._mtu = mtu
        self._address = address
        self._context = context
        self._syscalls = context.syscalls
        self._state = DeviceState.OPEN

    @property
    def fd(self) -> int:
        """The native descriptor. Only meaningful while OPEN."""
        return self._fd

    def fileno(self) -> int:
        if self._state is DeviceState.CLOSED:
            raise ClosedError(self._address.name)
        return self._fd

    @property
    def mtu(self) -> int:
        return self._mtu

    @property
    def address(self) -> TunAddress:
        return self._address

    @property
    def name(self) -> str:
        return self._address.name

    @property
    def state(self) -> DeviceState:
        return self._state

    @property
    def closed(self) -> bool:
        return self._state is DeviceState.CLOSED

    def read(self, region: BufferRegion) -> Union[int, ReadStatus]:
        """
        Read once from the device into ``region[pos:limit]``.

        Returns:
            Number of bytes read, ReadStatus.WOULD_BLOCK if nothing is
            available, or ReadStatus.EOF if the peer side closed

        Raises:
            ClosedError: The device is closed (no syscall is made)
            IoError: Any other OS failure
            ValueError: The region is empty or read-only
        """
        if self._state is DeviceState.CLOSED:
            raise ClosedError(self._address.name)
        if region.remaining == 0:
            raise ValueError("cannot read into an empty region")
        if not region.writable:
            raise ValueError("cannot read into a read-only region")

        try:
            count = self._syscalls.read(self._fd, region.view())
        except OSError as e:
            if e.errno in _WOULD_BLOCK:
                return ReadStatus.WOULD_BLOCK
            raise IoError("read", e.errno) from e

        if count == 0:
            return ReadStatus.EOF
        return count

    def write(self, region: BufferRegion) -> int:
        """
        Write once from ``region[pos:limit]`` to the device.

        A short write is not an error; call again with
        ``region.advance(written)``. Interrupted or would-block writes are
        raised as transient IoErrors and are not retried here.

        Raises:
            ClosedError: The device is closed (no syscall is made)
            IoError: Any OS failure
        """
        if self._state is DeviceState.CLOSED:
            raise ClosedError(self._address.name)

        try:
            return self._syscalls.write(self._fd, region.view())
        except OSError as e:
            raise IoError("write", e.errno) from e

    def close(self) -> None:
        """
        Release the descriptor. Later calls do nothing.

        Raises:
            IoError: The OS reported a failure closing the descriptor. The
                device is CLOSED regardless and will not retry.
        """
        if self._state is DeviceState.CLOSED:
            return
        self._state = DeviceState.CLOSED
        self._context.unregister(self)

        try:
            self._syscalls.close(self._fd)
        except OSError as e:
            raise IoError("close", e.errno) from e
        logger.info(f"Closed TUN device: {self._address}")

    def __enter__(self) -> "TunDevice":
        return self

    def __exit__(self, *args) -> None:
        self.close()

    def __repr__(self) -> str:
        return (
            f"TunDevice(name={self._address.name!r}, mtu={self._mtu}, "
            f"fd={self._fd}, state={self._state.value})"
        )
