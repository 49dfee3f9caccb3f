"""DHCP request adapter around an external ``udhcpc`` process.

udhcpc is run in the foreground for a single attempt. Instead of configuring
the interface itself, it calls a tiny helper script that dumps the environment
udhcpc prepared, wrapped in ``[`` / ``]`` marker lines::

    [
    status='bound'
    ip='10.0.0.5'
    mask='24'
    ...
    ]

udhcpc may call the script several times (deconfig, then bound or leasefail),
so only the last block is authoritative.
"""

from __future__ import annotations

import re
from pathlib import Path

from loguru import logger

from ethagent._util import _run_cmd, _validate_interface_name
from ethagent.exceptions import DhcpError
from ethagent.models import DHCP_KEYS

UDHCPC_SCRIPT = "#!/bin/sh\necho [\necho status=\\'$1\\'\nset\necho ]\n"

SUCCESS_STATUSES = ("bound", "renew")

_BLOCK_RE = re.compile(r"^\[$(.*?)^\]$", re.MULTILINE | re.DOTALL)
_ASSIGNMENT_RE = re.compile(r"^(\w+)='(.*)'$", re.MULTILINE)


def parse_dhcp_output(output: str) -> dict[str, str]:
    """Extract the whitelisted attributes of the last bracketed block in ``output``.

    Returns an empty dict when no block is present.
    """
    blocks = _BLOCK_RE.findall(output)
    if not blocks:
        return {}
    last_response = blocks[-1]
    return {key: value for key, value in _ASSIGNMENT_RE.findall(last_response) if key in DHCP_KEYS}


def is_success(params: dict[str, str]) -> bool:
    """True when the DHCP outcome is ``bound`` or ``renew``."""
    return params.get("status") in SUCCESS_STATUSES


class DhcpClient:
    """Run one blocking DHCP attempt and report the resulting attributes."""

    def __init__(
        self,
        executable: str = "udhcpc",
        script_path: Path = Path("/tmp/udhcpc.sh"),
        timeout: int = 60,
    ):
        self.executable = executable
        self.script_path = Path(script_path)
        self.timeout = timeout

    def install_script(self) -> None:
        """Write the environment-dumping helper script used by udhcpc.

        Raises:
            DhcpError: If the script cannot be written.
        """
        try:
            self.script_path.write_text(UDHCPC_SCRIPT)
            self.script_path.chmod(0o777)
        except OSError as e:
            raise DhcpError(f"Cannot install DHCP helper script at {self.script_path}: {e}") from e
        logger.debug(f"DHCP helper script installed at {self.script_path}")

    def build_command(self, interface: str, hostname: str) -> list[str]:
        return [
            self.executable,
            "-n",
            "-q",
            "-f",
            "-s",
            str(self.script_path),
            f"--interface={interface}",
            "-x",
            f"hostname:{hostname}",
        ]

    def request(self, interface: str, hostname: str) -> dict[str, str]:
        """Make a single DHCP request on ``interface`` announcing ``hostname``.

        Any failure (invalid interface, missing executable, timeout, no
        response block) yields an empty mapping.
        """
        if not _validate_interface_name(interface):
            logger.error(f"Refusing DHCP request on invalid interface name: {interface!r}")
            return {}

        logger.info(f"making dhcp req from '{hostname}' on {interface}")
        output = _run_cmd(self.build_command(interface, hostname), timeout=self.timeout)
        params = parse_dhcp_output(output)
        if not params:
            logger.warning(f"DHCP client produced no usable response on {interface}")
        elif "status" not in params:
            logger.warning(f"DHCP response without status on {interface}: {params}")
            return {}
        else:
            logger.debug(f"DHCP response on {interface}: {params}")
        return params
