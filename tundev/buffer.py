"""
Caller-owned byte regions used by TunDevice.read() and TunDevice.write().

A region is a span ``[pos, limit)`` over either an in-process buffer
(bytearray, memoryview, mmap, ...) or raw memory identified by an address,
for zero-copy transfers out of foreign allocations. The device only touches
the region for the duration of a single call.
"""

from __future__ import annotations

import ctypes
from typing import Optional, Union

Bufferish = Union[bytes, bytearray, memoryview]


class BufferRegion:
    """A contiguous byte span with a start offset and an end offset."""

    __slots__ = ("_view", "_address", "_capacity", "_pos", "_limit")

    def __init__(self, buffer: Bufferish, pos: int = 0, limit: Optional[int] = None):
        view = memoryview(buffer)
        if view.ndim != 1 or view.format != "B":
            view = view.cast("B")
        self._view: Optional[memoryview] = view
        self._address: Optional[int] = None
        self._capacity = view.nbytes
        self._pos = pos
        self._limit = self._capacity if limit is None else limit
        self._check_bounds()

    @classmethod
    def from_address(cls, address: int, offset: int, length: int) -> "BufferRegion":
        """
        Describe ``length`` bytes of raw memory starting at ``address + offset``.

        The memory must stay valid and writable (for reads) for the duration
        of each call that uses the region.
        """
        if not address:
            raise ValueError("address must be non-zero")
        if offset < 0 or length < 0:
            raise ValueError("offset and length must be non-negative")
        region = cls.__new__(cls)
        region._view = None
        region._address = address + offset
        region._capacity = length
        region._pos = 0
        region._limit = length
        return region

    def _check_bounds(self) -> None:
        if not 0 <= self.pos <= self.limit <= self._capacity:
            raise ValueError(
                f"invalid region [{self.pos}, {self.limit}) for capacity {self._capacity}"
            )

    @property
    def pos(self) -> int:
        return self._pos

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def remaining(self) -> int:
        return self.limit - self.pos

    @property
    def is_raw(self) -> bool:
        return self._address is not None

    @property
    def writable(self) -> bool:
        """Whether the OS may transfer data *into* this region."""
        return self.is_raw or not self._view.readonly

    def view(self):
        """Return a buffer-protocol object covering exactly ``[pos, limit)``."""
        if self._address is not None:
            return (ctypes.c_char * self.remaining).from_address(self._address + self.pos)
        return self._view[self.pos:self.limit]

    def advance(self, count: int) -> "BufferRegion":
        """Return the sub-region that starts ``count`` bytes after ``pos``."""
        if not 0 <= count <= self.remaining:
            raise ValueError(f"cannot advance {count} bytes in a region of {self.remaining}")
        region = BufferRegion.__new__(BufferRegion)
        region._view = self._view
        region._address = self._address
        region._capacity = self._capacity
        region._pos = self._pos + count
        region._limit = self._limit
        return region

    def tobytes(self) -> bytes:
        return bytes(self.view())

    def __len__(self) -> int:
        return self.remaining

    def __repr__(self) -> str:
        kind = "raw" if self.is_raw else "buffer"
        return f"BufferRegion({kind}, pos={self.pos}, limit={self.limit})"
