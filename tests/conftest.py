"""
Pytest configuration and fixtures for tundev tests.
"""

import os
import socket
import sys

import pytest

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tundev.address import tun_address
from tundev.device import TunDevice
from tundev.native import NativeContext, Syscalls

from fakes import FakeSyscalls, LoopbackSyscalls


@pytest.fixture
def fake_syscalls():
    """In-memory system calls with descriptor accounting."""
    return FakeSyscalls()


@pytest.fixture
def context(fake_syscalls):
    """A native context backed by fake_syscalls."""
    ctx = NativeContext(syscalls=fake_syscalls)
    yield ctx
    ctx.shutdown()


@pytest.fixture
def loopback():
    """Loopback system calls; peers are closed after the test."""
    syscalls = LoopbackSyscalls()
    yield syscalls
    syscalls.close_peers()


@pytest.fixture
def loopback_context(loopback):
    ctx = NativeContext(syscalls=loopback)
    yield ctx
    ctx.shutdown()


@pytest.fixture
def socketpair_device():
    """
    A TunDevice over one end of a real AF_UNIX datagram socketpair.

    Yields (device, peer). The peer plays the kernel side of the interface.
    """
    ours, peer = socket.socketpair(socket.AF_UNIX, socket.SOCK_DGRAM)
    fd = ours.detach()
    os.set_blocking(fd, False)
    peer.settimeout(1.0)

    ctx = NativeContext(syscalls=Syscalls())
    device = TunDevice(fd, 1500, tun_address("utun9"), ctx)
    ctx.register(device)
    yield device, peer
    device.close()
    peer.close()


@pytest.fixture
def random_payload():
    """Generate a random 20-byte payload."""
    return os.urandom(20)
