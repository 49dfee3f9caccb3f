"""IPv4 link-local (ip4ll / AIPA) address derivation."""

from __future__ import annotations

import hashlib
import re
from pathlib import Path

from loguru import logger

from ethagent._util import _run_cmd, _validate_interface_name
from ethagent.exceptions import InterfaceError

IP4LL_MASK = "16"
IP4LL_SUBNET = "255.255.0.0"

SYSFS_NET = Path("/sys/class/net")


def calculate_ip4ll_address(hwaddr: bytes) -> str:
    """Derive a deterministic ``169.254.x.y`` address from a hardware address.

    The first two bytes of the MD5 digest of ``hwaddr`` become the last two
    octets. ``169.254.255.255`` and ``169.254.0.0`` are never returned: the
    last octet is nudged to ``.254`` or ``.1`` respectively.
    """
    digest = hashlib.md5(hwaddr).digest()
    x, y = digest[0], digest[1]
    if x == 255 and y == 255:
        y -= 1
    if x == 0 and y == 0:
        y += 1
    return f"169.254.{x}.{y}"


def read_hardware_address(interface: str, sysfs_root: Path = SYSFS_NET) -> bytes:
    """Return the raw hardware address of ``interface`` as exposed by the kernel.

    Reads ``/sys/class/net/<if>/address`` verbatim (text MAC plus newline). Falls
    back to ``ip link show`` output, normalised to the same sysfs form.

    Raises:
        InterfaceError: If the interface name is invalid or no address is found.
    """
    if not _validate_interface_name(interface):
        raise InterfaceError(f"Invalid interface name: {interface}", interface=interface)

    try:
        return (sysfs_root / interface / "address").read_bytes()
    except OSError as e:
        logger.debug(f"sysfs address for {interface} unavailable: {e}")

    link_output = _run_cmd(["ip", "link", "show", "dev", interface])
    m = re.search(r"link/\w+ ([0-9a-f]{2}(?::[0-9a-f]{2})+)", link_output)
    if not m:
        raise InterfaceError(f"No hardware address found for {interface}", interface=interface)
    return f"{m.group(1)}\n".encode()


def ip4ll_params(hwaddr: bytes) -> dict[str, str]:
    """Address attributes for link-local configuration of the interface owning ``hwaddr``."""
    return {
        "ip": calculate_ip4ll_address(hwaddr),
        "mask": IP4LL_MASK,
        "subnet": IP4LL_SUBNET,
    }
