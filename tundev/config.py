"""
Configuration constants for tundev.

Darwin kernel constants, paths, and tunable parameters are centralized here.
"""

from __future__ import annotations

import os
from pathlib import Path
from dataclasses import dataclass
from typing import Optional

import yaml


# ---------------- Darwin Kernel Control ----------------

PF_SYSTEM = 32          # AF_SYSTEM / PF_SYSTEM
SYSPROTO_CONTROL = 2    # Kernel control protocol
SOCK_DGRAM = 2

UTUN_CONTROL_NAME = "com.apple.net.utun_control"
UTUN_OPT_IFNAME = 2     # getsockopt option returning the interface name

MAX_KCTL_NAME = 96      # sizeof(struct ctl_info.ctl_name)
IFNAMSIZ = 16

# _IOWR('N', 3, struct ctl_info)
CTLIOCGINFO = 0xC0644E03
# _IOWR('i', 51, struct ifreq)
SIOCGIFMTU = 0xC0206933
# _IOW('i', 52, struct ifreq)
SIOCSIFMTU = 0x80206934


# ---------------- Packet Framing ----------------

ADDRESS_FAMILY_SIZE = 4  # utun prefixes each packet with a big-endian AF
AF_INET = 2
AF_INET6 = 30            # Darwin value, not Linux's 10

INT32_MAX = 2**31 - 1


# ---------------- Channel Defaults ----------------

DEFAULT_MTU = 0                 # 0 = keep the OS-assigned MTU
SELECT_TIMEOUT = 0.1            # Reader thread poll interval (seconds)
WRITE_TIMEOUT = 2.0             # Max time send() waits for writability
STOP_JOIN_TIMEOUT = 2.0


# ---------------- File Paths ----------------

BASEDIR = os.path.join(os.path.expanduser("~"), ".tundev")
LOG_DIR = os.path.join(BASEDIR, "logs")
CONFIG_FILE = os.path.join(BASEDIR, "config.yaml")


# ---------------- Logging Configuration ----------------

LOG_FILE = os.path.join(LOG_DIR, "tundev.log")
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB per log file
LOG_BACKUP_COUNT = 5


@dataclass
class RuntimeConfig:
    """Runtime configuration assembled from CLI arguments and the config file."""

    interface_index: Optional[int] = None
    mtu: Optional[int] = None
    log_to_file: bool = True
    log_level: str = "INFO"

    @property
    def effective_index(self) -> int:
        return self.interface_index or 0

    @property
    def effective_mtu(self) -> int:
        return self.mtu if self.mtu is not None else DEFAULT_MTU


def load_config_file(path: Optional[str] = None) -> dict:
    """
    Load configuration from YAML file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        Configuration dict (empty if file doesn't exist)

    Raises:
        yaml.YAMLError: If the file exists but is not valid YAML
    """
    config_path = path or CONFIG_FILE

    if not os.path.exists(config_path):
        return {}

    with open(config_path, "r") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


DEFAULT_CONFIG = """\
# tundev configuration

device:
  # Kernel control unit: 0 lets the OS pick the next free utunN,
  # N > 0 requests utun(N-1)
  index: 0
  # 0 keeps the OS default MTU
  mtu: 0

# Logging settings
logging:
  # Enable file logging
  to_file: true
  # Log level: DEBUG, INFO, WARNING, ERROR
  level: INFO
"""


def save_default_config(path: Optional[str] = None) -> bool:
    """
    Save default configuration file.

    Args:
        path: Path to config file (defaults to CONFIG_FILE)

    Returns:
        True if saved successfully
    """
    config_path = path or CONFIG_FILE

    try:
        Path(config_path).parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            f.write(DEFAULT_CONFIG)
        return True
    except OSError:
        return False


def apply_config_file(runtime_config: RuntimeConfig, file_config: dict) -> None:
    """
    Apply file configuration to runtime config.

    File config values are used as defaults, CLI args take precedence.
    """
    device_config = file_config.get("device") or {}
    if runtime_config.interface_index is None and "index" in device_config:
        runtime_config.interface_index = int(device_config["index"])
    if runtime_config.mtu is None and "mtu" in device_config:
        runtime_config.mtu = int(device_config["mtu"])

    logging_config = file_config.get("logging") or {}
    if "to_file" in logging_config:
        runtime_config.log_to_file = bool(logging_config["to_file"])
    if "level" in logging_config:
        runtime_config.log_level = str(logging_config["level"])
