"""
Entry point for tundev.

Run with: sudo python -m tundev [--mtu 1500] [--dump]
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading

from .channel import TunChannel
from .config import (
    CONFIG_FILE,
    RuntimeConfig,
    load_config_file,
    apply_config_file,
    save_default_config,
)
from .exceptions import TunError, UnsupportedPlatformError
from .logging_setup import setup_logging, get_logger, format_block
from .native import get_context
from .packet import TunPacket, summary
from .preflight import run_preflight_checks, validate_startup


def _setup_signal_handlers(stop_flag: threading.Event) -> None:
    """Configure signal handlers for graceful shutdown."""

    def _shutdown_handler(signum: int, frame) -> None:
        sig_name = signal.Signals(signum).name
        get_logger().info(f"[SHUTDOWN] Received {sig_name}, closing device...")
        stop_flag.set()

    signal.signal(signal.SIGTERM, _shutdown_handler)
    signal.signal(signal.SIGINT, _shutdown_handler)


def _print_packet(packet: TunPacket) -> None:
    print(summary(packet), flush=True)


def main(argv=None) -> int:
    """Main entry point for tundev."""
    ap = argparse.ArgumentParser(
        description="tundev - open a utun interface and exchange raw IP packets"
    )
    ap.add_argument(
        "--index",
        type=int,
        help="Kernel control unit (0 = next free utunN, N = utun(N-1))",
    )
    ap.add_argument(
        "--mtu",
        type=int,
        help="Interface MTU (0 = keep the OS default)",
    )
    ap.add_argument(
        "--dump",
        action="store_true",
        help="Print a summary of every packet read from the device",
    )
    ap.add_argument(
        "--check",
        action="store_true",
        help="Run pre-flight checks and exit",
    )
    ap.add_argument(
        "--no-log-file",
        action="store_true",
        help="Disable file logging",
    )
    ap.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Log level (default: INFO)",
    )
    ap.add_argument(
        "--config",
        help=f"Path to config file (default: {CONFIG_FILE})",
    )
    ap.add_argument(
        "--init-config",
        action="store_true",
        help="Generate default configuration file and exit",
    )
    args = ap.parse_args(argv)

    if args.init_config:
        config_path = args.config or CONFIG_FILE
        if save_default_config(config_path):
            print(f"Default configuration saved to: {config_path}")
            return 0
        print(f"Failed to save configuration to: {config_path}")
        return 1

    if args.check:
        results = run_preflight_checks(verbose=True)
        return 0 if all(success for _, success, _ in results) else 1

    # CLI args take precedence over the config file
    config = RuntimeConfig(
        interface_index=args.index,
        mtu=args.mtu,
        log_to_file=not args.no_log_file,
    )
    apply_config_file(config, load_config_file(args.config))
    if args.no_log_file:
        config.log_to_file = False
    if args.log_level:
        config.log_level = args.log_level

    try:
        validate_startup()
    except UnsupportedPlatformError as e:
        print(f"\nError: {e}")
        return 1

    logger = setup_logging(
        log_to_file=config.log_to_file,
        log_to_console=True,
        log_level=config.log_level,
    )

    stop_flag = threading.Event()
    _setup_signal_handlers(stop_flag)

    channel = TunChannel(
        interface_index=config.effective_index,
        mtu=config.effective_mtu,
        on_packet=_print_packet if args.dump else None,
    )
    try:
        device = channel.open()
    except TunError as e:
        logger.error(f"Failed to open utun device: {e}")
        return 1

    logger.info(format_block("DEVICE", [
        f"name : {device.address}",
        f"mtu  : {device.mtu}",
        f"fd   : {device.fd}",
    ]))

    try:
        channel.start()
        while not stop_flag.wait(0.5):
            if not channel.is_active:
                logger.warning(f"{device.name} is no longer active")
                break
    finally:
        channel.stop()
        get_context().shutdown()
        stats = channel.get_stats()
        logger.info(
            f"[STATS] in={stats['packets_in']} pkts/{stats['bytes_in']} B, "
            f"out={stats['packets_out']} pkts/{stats['bytes_out']} B, "
            f"dropped={stats['dropped']}"
        )

    return 0


if __name__ == "__main__":
    sys.exit(main())
