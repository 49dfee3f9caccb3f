"""Shared helpers for running commands and validating interface input."""

from __future__ import annotations

import ipaddress
import re
import subprocess

from loguru import logger


def _run_cmd(cmd: list[str], timeout: int = 30) -> str:
    """Run a subprocess command and return stdout.

    A missing executable or a timeout yields an empty string. A non-zero exit
    status is logged and the captured stdout is still returned.
    """
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
    except (subprocess.TimeoutExpired, FileNotFoundError) as e:
        logger.debug(f"Command {cmd[0]} failed: {e}")
        return ""
    logger.debug(f"cmd: {' '.join(cmd)!r} returned {result.returncode}: {result.stdout!r}")
    if result.returncode != 0:
        logger.warning(f"Command {cmd[0]} exited with {result.returncode}: {result.stderr.strip()}")
    return result.stdout


def _validate_interface_name(name: str) -> bool:
    """Validate interface name to prevent injection."""
    return bool(re.match(r"^[a-zA-Z0-9._-]+$", name))


def _validate_ipv4(ip: str) -> bool:
    """Validate IPv4 address string."""
    try:
        ipaddress.IPv4Address(ip)
        return True
    except ValueError:
        return False


def _validate_mask(mask: str) -> bool:
    """Validate a netmask given as prefix length ("24") or dotted quad."""
    if mask.isdigit():
        return 0 <= int(mask) <= 32
    try:
        ipaddress.IPv4Network(f"0.0.0.0/{mask}")
        return True
    except ValueError:
        return False
