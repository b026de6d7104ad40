"""
Tests for tundev.buffer module.
"""

import array
import ctypes

import pytest

from tundev.buffer import BufferRegion


class TestBufferRegion:
    """Tests for in-process buffer regions."""

    def test_defaults_cover_whole_buffer(self):
        region = BufferRegion(bytearray(10))

        assert region.pos == 0
        assert region.limit == 10
        assert region.remaining == 10
        assert len(region) == 10

    def test_view_is_window(self):
        buffer = bytearray(b"0123456789")
        region = BufferRegion(buffer, 2, 5)

        assert region.tobytes() == b"234"
        region.view()[:] = b"abc"
        assert bytes(buffer) == b"01abc56789"

    @pytest.mark.parametrize("pos,limit", [(-1, 5), (6, 5), (0, 11)])
    def test_invalid_bounds(self, pos, limit):
        with pytest.raises(ValueError):
            BufferRegion(bytearray(10), pos, limit)

    def test_advance(self):
        region = BufferRegion(b"abcdef", 1, 5)

        rest = region.advance(3)

        assert rest.pos == 4
        assert rest.limit == 5
        assert rest.tobytes() == b"e"
        assert region.pos == 1

    def test_bounds_are_read_only(self):
        region = BufferRegion(bytearray(10), 2, 5)

        with pytest.raises(AttributeError):
            region.pos = 7
        with pytest.raises(AttributeError):
            region.limit = 1
        assert (region.pos, region.limit) == (2, 5)

    def test_advance_past_limit(self):
        with pytest.raises(ValueError):
            BufferRegion(b"abc").advance(4)

    def test_writable(self):
        assert BufferRegion(bytearray(4)).writable
        assert not BufferRegion(b"abcd").writable

    def test_non_byte_format(self):
        """Typed arrays are addressed in bytes."""
        region = BufferRegion(array.array("I", [0, 0]))

        assert region.remaining == 8


class TestRawRegion:
    """Tests for address-based regions."""

    def test_from_address(self):
        memory = ctypes.create_string_buffer(b"0123456789")

        region = BufferRegion.from_address(ctypes.addressof(memory), 3, 4)

        assert region.is_raw
        assert region.writable
        assert region.remaining == 4
        assert region.tobytes() == b"3456"

    def test_raw_advance(self):
        memory = ctypes.create_string_buffer(b"0123456789")
        region = BufferRegion.from_address(ctypes.addressof(memory), 0, 10)

        assert region.advance(8).tobytes() == b"89"

    def test_null_address(self):
        with pytest.raises(ValueError):
            BufferRegion.from_address(0, 0, 4)

    def test_negative_length(self):
        with pytest.raises(ValueError):
            BufferRegion.from_address(0x1000, 0, -1)
