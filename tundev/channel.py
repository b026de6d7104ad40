"""
TunChannel - selector-driven packet I/O on top of a TunDevice.

The device itself never waits. This module supplies the readiness side:
a reader thread blocks in a selector until the descriptor is readable and
then performs exactly one read per readiness event, and send() waits for
writability when the device reports a transient write failure.

    ┌──────────────┐   on_packet(TunPacket)   ┌──────────────┐
    │  TunChannel  │ ───────────────────────▶ │  application │
    │  (selector)  │ ◀─────────────────────── │              │
    └──────┬───────┘        send(packet)      └──────────────┘
           │ read()/write() on BufferRegion
    ┌──────▼───────┐
    │  TunDevice   │  utunN, non-blocking fd
    └──────────────┘
"""

from __future__ import annotations

import errno
import logging
import selectors
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .buffer import BufferRegion
from .config import ADDRESS_FAMILY_SIZE, SELECT_TIMEOUT, STOP_JOIN_TIMEOUT, WRITE_TIMEOUT
from .device import ReadStatus, TunDevice
from .exceptions import IoError, PacketFramingError, TunError
from .native import NativeContext
from .opener import open_device
from .packet import TunPacket, frame, unframe

logger = logging.getLogger(__name__)

PacketCallback = Callable[[TunPacket], None]


@dataclass
class ChannelStats:
    packets_in: int = 0
    packets_out: int = 0
    bytes_in: int = 0
    bytes_out: int = 0
    dropped: int = 0


class TunChannel:
    """
    Owns one TunDevice and moves whole packets through it.

    Reads happen only on the reader thread; writes are serialized by a
    lock, so the device never sees more than one read and one write in
    flight. stop() joins the reader before closing the device.
    """

    def __init__(
        self,
        interface_index: int = 0,
        mtu: int = 0,
        on_packet: Optional[PacketCallback] = None,
        context: Optional[NativeContext] = None,
    ):
        self.interface_index = interface_index
        self.requested_mtu = mtu
        self.device: Optional[TunDevice] = None
        self._context = context
        self._on_packet = on_packet

        # Threading
        self._running = False
        self._read_thread: Optional[threading.Thread] = None
        self._write_lock = threading.Lock()

        self.stats = ChannelStats()

    @property
    def is_open(self) -> bool:
        """False once the device has been closed."""
        return self.device is None or not self.device.closed

    @property
    def is_active(self) -> bool:
        """True while a device is attached and open."""
        return self.device is not None and not self.device.closed

    @property
    def running(self) -> bool:
        return self._running

    def set_packet_callback(self, callback: Optional[PacketCallback]) -> None:
        """Set the callback that receives every packet read from the device."""
        self._on_packet = callback

    def open(self) -> TunDevice:
        """Create the underlying device."""
        if self.device is not None:
            raise RuntimeError(f"Channel already bound to {self.device.address}")
        self.device = open_device(
            self.interface_index, self.requested_mtu, context=self._context
        )
        return self.device

    def start(self) -> None:
        """Start reading from the device."""
        if self._running or not self.is_active:
            return

        self._running = True
        self._read_thread = threading.Thread(
            target=self._read_loop, name=f"tun-reader-{self.device.name}", daemon=True
        )
        self._read_thread.start()
        logger.info(f"Started TUN reader for {self.device.name}")

    def stop(self) -> None:
        """
        Stop the reader and close the device.

        The device is closed only after the reader thread has exited; a slow
        packet callback delays stop().
        """
        self._running = False
        thread = self._read_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=STOP_JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning(
                    f"TUN reader for {self.device.name} still busy after "
                    f"{STOP_JOIN_TIMEOUT}s, waiting for it before closing"
                )
                thread.join()
        self._read_thread = None
        self._close_device()

    def _close_device(self) -> None:
        if self.device is None:
            return
        with self._write_lock:
            self.device.close()

    def send(self, packet: TunPacket, timeout: float = WRITE_TIMEOUT) -> int:
        """
        Write one packet, resuming short writes until it is fully sent.

        Returns:
            Size of the IP packet written (without the utun header)

        Raises:
            ClosedError: The device is closed
            IoError: A non-transient failure, or ETIMEDOUT if the device
                did not become writable within ``timeout`` seconds
        """
        device = self._require_device()
        region = BufferRegion(frame(packet))
        deadline = time.monotonic() + timeout

        with self._write_lock:
            while region.remaining:
                try:
                    written = device.write(region)
                except IoError as e:
                    if not e.transient:
                        raise
                    self._wait_writable(device, deadline)
                    continue
                if written == 0:
                    self._wait_writable(device, deadline)
                    continue
                region = region.advance(written)

        self.stats.packets_out += 1
        self.stats.bytes_out += len(packet)
        return len(packet)

    def _require_device(self) -> TunDevice:
        if self.device is None:
            raise RuntimeError("Channel has no device; call open() first")
        return self.device

    @staticmethod
    def _wait_writable(device: TunDevice, deadline: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise IoError("write", errno.ETIMEDOUT)
        with selectors.DefaultSelector() as selector:
            selector.register(device.fileno(), selectors.EVENT_WRITE)
            selector.select(remaining)

    def _read_loop(self) -> None:
        """Read frames from the device and hand packets to the callback."""
        device = self.device
        buffer = bytearray(device.mtu + ADDRESS_FAMILY_SIZE)
        region = BufferRegion(buffer)

        with selectors.DefaultSelector() as selector:
            try:
                selector.register(device.fileno(), selectors.EVENT_READ)
            except TunError as e:
                logger.error(f"Cannot watch {device.name}: {e}")
            else:
                self._poll(selector, device, region, buffer)

        if self._running:
            self._running = False
            self._close_device()

    def _poll(
        self,
        selector: selectors.BaseSelector,
        device: TunDevice,
        region: BufferRegion,
        buffer: bytearray,
    ) -> None:
        while self._running:
            if not selector.select(SELECT_TIMEOUT):
                continue

            try:
                result = device.read(region)
            except TunError as e:
                if self._running:
                    logger.error(f"TUN read error on {device.name}: {e}")
                return

            if result is ReadStatus.WOULD_BLOCK:
                continue
            if result is ReadStatus.EOF:
                logger.info(f"{device.name} closed by peer")
                return

            self._deliver(bytes(buffer[:result]))

    def _deliver(self, raw: bytes) -> None:
        try:
            packet = unframe(raw)
        except PacketFramingError as e:
            self.stats.dropped += 1
            logger.debug(f"Dropping frame: {e}")
            return

        self.stats.packets_in += 1
        self.stats.bytes_in += len(packet)

        if self._on_packet is None:
            return
        try:
            self._on_packet(packet)
        except Exception:
            logger.exception("Packet callback failed")

    def get_stats(self) -> Dict:
        """Get channel statistics."""
        return {
            "interface": self.device.name if self.device else None,
            "mtu": self.device.mtu if self.device else None,
            "active": self.is_active,
            "running": self._running,
            "packets_in": self.stats.packets_in,
            "packets_out": self.stats.packets_out,
            "bytes_in": self.stats.bytes_in,
            "bytes_out": self.stats.bytes_out,
            "dropped": self.stats.dropped,
        }

    def __enter__(self) -> "TunChannel":
        if self.device is None:
            self.open()
        return self

    def __exit__(self, *args) -> None:
        self.stop()
