"""
utun packet framing and IP header access.

Darwin prefixes every packet crossing a utun descriptor with a 4-byte,
network-order address family. TunPacket holds the bare IP packet; frame()
and unframe() add and remove that header.

Header accessors read straight from ``data`` and check that the packet is
long enough for its version first, so a truncated or foreign packet raises
PacketFramingError instead of yielding garbage.
"""

from __future__ import annotations

import ipaddress
import struct
from dataclasses import dataclass
from typing import Union

from scapy.layers.inet import IP
from scapy.layers.inet6 import IPv6
from scapy.utils import checksum

from .config import ADDRESS_FAMILY_SIZE, AF_INET, AF_INET6
from .exceptions import PacketFramingError

IPAddress = Union[ipaddress.IPv4Address, ipaddress.IPv6Address]

_HEADER = struct.Struct(">I")

_FAMILY_BY_VERSION = {4: AF_INET, 6: AF_INET6}
_VERSION_BY_FAMILY = {AF_INET: 4, AF_INET6: 6}


# ---------------- IPv4 Header ----------------

IPV4_HEADER_LENGTH = 20   # without options
IPV4_TOTAL_LENGTH = 2
IPV4_IDENTIFICATION = 4
IPV4_FLAGS_AND_FRAGMENT_OFFSET = 6
IPV4_TIME_TO_LIVE = 8
IPV4_PROTOCOL = 9
IPV4_HEADER_CHECKSUM = 10
IPV4_SOURCE_ADDRESS = 12
IPV4_DESTINATION_ADDRESS = 16

# Type of service bits (RFC 791)
TOS_DELAY_MASK = 1 << 4
TOS_THROUGHPUT_MASK = 1 << 3
TOS_RELIABILITY_MASK = 1 << 2

# Flag bits, as returned by TunPacket.flags
FLAGS_DONT_FRAGMENT_MASK = 1 << 1
FLAGS_MORE_FRAGMENTS_MASK = 1 << 0


# ---------------- IPv6 Header ----------------

IPV6_HEADER_LENGTH = 40
IPV6_PAYLOAD_LENGTH = 4
IPV6_NEXT_HEADER = 6
IPV6_HOP_LIMIT = 7
IPV6_SOURCE_ADDRESS = 8
IPV6_DESTINATION_ADDRESS = 24

_MIN_HEADER = {4: IPV4_HEADER_LENGTH, 6: IPV6_HEADER_LENGTH}


def calculate_checksum(header: bytes) -> int:
    """
    Internet checksum over an IPv4 header.

    Returns 0 when ``header`` already carries a valid checksum.
    """
    return checksum(bytes(header))


@dataclass(frozen=True)
class TunPacket:
    """A raw IPv4 or IPv6 packet."""

    data: bytes

    @property
    def version(self) -> int:
        if not self.data:
            raise PacketFramingError("empty packet has no IP version")
        return self.data[0] >> 4

    def _require(self, *versions: int) -> int:
        version = self.version
        if version not in _MIN_HEADER:
            raise PacketFramingError(f"Unknown IP version: {version}")
        if version not in versions:
            raise PacketFramingError(f"Field not present in IPv{version} header")
        minimum = _MIN_HEADER[version]
        if len(self.data) < minimum:
            raise PacketFramingError(
                f"IPv{version} packet truncated: {len(self.data)} < {minimum} bytes"
            )
        return version

    def _u8(self, offset: int) -> int:
        return self.data[offset]

    def _u16(self, offset: int) -> int:
        return struct.unpack_from(">H", self.data, offset)[0]

    # Addresses

    @property
    def source_address(self) -> IPAddress:
        if self._require(4, 6) == 4:
            return ipaddress.IPv4Address(self.data[IPV4_SOURCE_ADDRESS:IPV4_SOURCE_ADDRESS + 4])
        return ipaddress.IPv6Address(self.data[IPV6_SOURCE_ADDRESS:IPV6_SOURCE_ADDRESS + 16])

    @property
    def destination_address(self) -> IPAddress:
        if self._require(4, 6) == 4:
            return ipaddress.IPv4Address(
                self.data[IPV4_DESTINATION_ADDRESS:IPV4_DESTINATION_ADDRESS + 4]
            )
        return ipaddress.IPv6Address(
            self.data[IPV6_DESTINATION_ADDRESS:IPV6_DESTINATION_ADDRESS + 16]
        )

    # IPv4 fields

    @property
    def internet_header_length(self) -> int:
        """Header length in 32-bit words."""
        self._require(4)
        return self.data[0] & 0x0F

    @property
    def type_of_service(self) -> int:
        self._require(4)
        return self._u8(1)

    @property
    def total_length(self) -> int:
        self._require(4)
        return self._u16(IPV4_TOTAL_LENGTH)

    @property
    def identification(self) -> int:
        self._require(4)
        return self._u16(IPV4_IDENTIFICATION)

    @property
    def flags(self) -> int:
        self._require(4)
        return self._u8(IPV4_FLAGS_AND_FRAGMENT_OFFSET) >> 5

    @property
    def fragment_offset(self) -> int:
        self._require(4)
        return self._u16(IPV4_FLAGS_AND_FRAGMENT_OFFSET) & 0x1FFF

    @property
    def time_to_live(self) -> int:
        self._require(4)
        return self._u8(IPV4_TIME_TO_LIVE)

    @property
    def protocol(self) -> int:
        self._require(4)
        return self._u8(IPV4_PROTOCOL)

    @property
    def header_checksum(self) -> int:
        self._require(4)
        return self._u16(IPV4_HEADER_CHECKSUM)

    def _ipv4_header(self) -> bytes:
        self._require(4)
        length = self.internet_header_length * 4
        if length < IPV4_HEADER_LENGTH or length > len(self.data):
            raise PacketFramingError(f"Invalid IPv4 header length: {length} bytes")
        return self.data[:length]

    def verify_checksum(self) -> bool:
        """True if the IPv4 header checksum is correct."""
        return calculate_checksum(self._ipv4_header()) == 0

    # IPv6 fields

    @property
    def payload_length(self) -> int:
        self._require(6)
        return self._u16(IPV6_PAYLOAD_LENGTH)

    @property
    def next_header(self) -> int:
        self._require(6)
        return self._u8(IPV6_NEXT_HEADER)

    @property
    def hop_limit(self) -> int:
        self._require(6)
        return self._u8(IPV6_HOP_LIMIT)

    @property
    def payload(self) -> bytes:
        """Everything after the IP header (IPv4 options excluded)."""
        if self._require(4, 6) == 4:
            return self.data[len(self._ipv4_header()):]
        return self.data[IPV6_HEADER_LENGTH:]

    def __len__(self) -> int:
        return len(self.data)


def frame(packet: TunPacket) -> bytes:
    """Prefix a packet with the utun address-family header."""
    family = _FAMILY_BY_VERSION.get(packet.version)
    if family is None:
        raise PacketFramingError(f"Unknown IP version: {packet.version}")
    return _HEADER.pack(family) + packet.data


def unframe(buffer: Union[bytes, bytearray, memoryview]) -> TunPacket:
    """Strip the utun header from a frame read off the device."""
    if len(buffer) <= ADDRESS_FAMILY_SIZE:
        raise PacketFramingError(f"Frame too short: {len(buffer)} bytes")
    (family,) = _HEADER.unpack_from(buffer)
    if family not in _VERSION_BY_FAMILY:
        raise PacketFramingError(f"Unknown address family: {family}")
    return TunPacket(bytes(buffer[ADDRESS_FAMILY_SIZE:]))


def summary(packet: TunPacket) -> str:
    """One-line human readable description of a packet."""
    version = packet.version
    if version == 4:
        return IP(packet.data).summary()
    if version == 6:
        return IPv6(packet.data).summary()
    return f"unknown IP version {version} ({len(packet)} bytes)"
