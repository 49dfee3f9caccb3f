"""Interface configuration port and its iproute2 implementation."""

from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from ethagent._util import _run_cmd, _validate_interface_name, _validate_ipv4, _validate_mask
from ethagent.exceptions import InterfaceError


class BaseInterfaceConfigurator(ABC):
    """Abstract base class for applying addresses to an interface."""

    @abstractmethod
    def link_up(self, interface: str) -> None:
        """Administratively enable the interface."""

    @abstractmethod
    def configure(self, interface: str, ip: str, mask: str, router: str | None = None) -> bool:
        """Replace the interface addresses with ``ip/mask`` and, if given, set the default route.

        Returns True on success.
        """


class IpRouteConfigurator(BaseInterfaceConfigurator):
    """Configure addresses with the ``ip`` command from iproute2."""

    def __init__(self, ip_command: str = "ip", timeout: int = 10):
        self.ip_command = ip_command
        self.timeout = timeout

    def _ip(self, *args: str) -> str:
        return _run_cmd([self.ip_command, *args], timeout=self.timeout)

    @staticmethod
    def _check_interface(interface: str) -> None:
        if not _validate_interface_name(interface):
            raise InterfaceError(f"Invalid interface name: {interface}", interface=interface)

    def link_up(self, interface: str) -> None:
        self._check_interface(interface)
        self._ip("link", "set", interface, "up")

    def configure(self, interface: str, ip: str, mask: str, router: str | None = None) -> bool:
        self._check_interface(interface)
        if not (_validate_ipv4(ip) and _validate_mask(mask)):
            logger.error(f"Not applying malformed address {ip}/{mask} to {interface}")
            return False

        self._ip("addr", "flush", "dev", interface)
        self._ip("addr", "add", f"{ip}/{mask}", "dev", interface)
        if router:
            if _validate_ipv4(router):
                self._ip("route", "add", "default", "via", router, "dev", interface)
            else:
                logger.warning(f"Skipping default route via malformed router {router!r}")
        return True
