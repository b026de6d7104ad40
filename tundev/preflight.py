"""
Pre-flight checks for tundev.

Validates system requirements before a utun device is opened.
"""

from __future__ import annotations

import os
import platform
from typing import List, Tuple

from .exceptions import UnsupportedPlatformError
from .native import IS_DARWIN


def check_platform() -> Tuple[bool, str]:
    """
    Check that the utun kernel control can exist on this system.

    Returns:
        Tuple of (success, message)
    """
    system = platform.system()
    if IS_DARWIN:
        return True, f"Darwin {platform.release()}"
    return False, f"utun devices require macOS/Darwin (running on {system})"


def check_root_privileges() -> Tuple[bool, str]:
    """
    Check if running with sufficient privileges to create a utun device.

    Returns:
        Tuple of (success, message)
    """
    if os.geteuid() == 0:
        return True, "Running as root"
    return False, "Creating utun devices typically requires root. Try running with sudo"


def check_yaml_available() -> Tuple[bool, str]:
    """
    Check that PyYAML is importable for config file support.

    Returns:
        Tuple of (success, message)
    """
    try:
        import yaml
        return True, f"PyYAML {yaml.__version__} available"
    except ImportError as e:
        return False, f"PyYAML not installed: {e}"


def run_preflight_checks(verbose: bool = True) -> List[Tuple[str, bool, str]]:
    """
    Run all pre-flight checks.

    Args:
        verbose: Whether to print results

    Returns:
        List of (check_name, success, message) tuples
    """
    checks = [
        ("Platform", check_platform),
        ("Privileges", check_root_privileges),
        ("PyYAML", check_yaml_available),
    ]

    results = []
    for name, check_fn in checks:
        success, message = check_fn()
        results.append((name, success, message))

        if verbose:
            status = "[OK]" if success else "[FAIL]"
            print(f"  {status} {name}: {message}")

    return results


def validate_startup() -> None:
    """
    Validate the system is ready to open a utun device.

    Raises UnsupportedPlatformError if any check fails.
    """
    results = run_preflight_checks(verbose=False)
    failures = [(name, msg) for name, success, msg in results if not success]

    if failures:
        error_lines = ["Pre-flight checks failed:"]
        for name, msg in failures:
            error_lines.append(f"  - {name}: {msg}")
        raise UnsupportedPlatformError("\n".join(error_lines))
