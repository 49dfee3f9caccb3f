"""Externally pushed configuration requests over SSDP (HTTP over UDP multicast).

Besides ``NOTIFY`` and ``M-SEARCH`` (owned by the discovery service), a
controller may multicast requests such as::

    PUT http://169.254.12.34:8080/sys/ip/static HTTP/1.1
    X-IP: 192.168.1.10
    X-Subnet: 24
    X-Router: 192.168.1.1

Since every device on the segment receives them, packets whose target URI is
not rooted at this device's base URI are silently dropped.
"""

from __future__ import annotations

import re
import socket
import struct
import threading
from typing import Callable

from loguru import logger

from ethagent.models import ExternalRequest

STATIC_IP_PATH = "sys/ip/static"
AUTO_IP_PATH = "sys/ip/auto"

# handled by the discovery service, not by us
DISCOVERY_VERBS = ("notify", "m-search")

_LINE_SPLIT_RE = re.compile(r"\r?\n")


class RootDevice:
    """This device's presence on the network, as seen by SSDP controllers."""

    def __init__(self, ip_provider: Callable[[], str | None], port: int = 8080, uri: str = "/"):
        self._ip_provider = ip_provider
        self.port = port
        self.uri = uri

    def base_uri(self) -> str | None:
        """Lower-cased ``http://ip:port/uri``, or None while we have no address."""
        ip = self._ip_provider()
        if not ip:
            return None
        return f"http://{ip}:{self.port}{self.uri}".lower()


def parse_request(packet: str, base_uri: str) -> ExternalRequest | None:
    """Parse ``packet`` into an :class:`ExternalRequest` if it targets ``base_uri``.

    Returns None for packets addressed to other devices and for packets whose
    request line cannot be parsed. Header lines without a ``:`` are dropped.
    """
    raw_http_line, *raw_params = _LINE_SPLIT_RE.split(packet)
    tokens = raw_http_line.lower().strip().split()
    if len(tokens) < 2:
        return None
    http_verb, full_uri = tokens[0], tokens[1]

    base_uri = base_uri.lower()
    if not full_uri.startswith(base_uri):
        logger.debug(f"SSDP {http_verb} {full_uri} received, but not for me")
        return None
    rel_uri = full_uri[len(base_uri) :].strip("/")

    params: dict[str, str] = {}
    for line in raw_params:
        key, sep, value = line.partition(":")
        key = key.strip().lower()
        if not sep or not key:
            continue
        params[key] = value.strip()

    return ExternalRequest(verb=http_verb, path=rel_uri, params=params)


class SsdpRequestHandler:
    """Filter inbound packets for this device and hand requests to ``dispatch``."""

    def __init__(self, root_device: RootDevice, dispatch: Callable[[ExternalRequest], None]):
        self.root_device = root_device
        self._dispatch = dispatch

    def handle_packet(self, packet: str, addr: tuple[str, int] | None = None) -> ExternalRequest | None:
        base_uri = self.root_device.base_uri()
        if base_uri is None:
            logger.debug("SSDP packet dropped: no address configured yet")
            return None
        request = parse_request(packet, base_uri)
        if request is None:
            return None
        logger.debug(f"SSDP {request.verb} {request.path} from {addr}: {request.params}")
        self._dispatch(request)
        return request


class SsdpListener:
    """Receive SSDP multicast datagrams and pass non-discovery verbs to a handler."""

    def __init__(
        self,
        handler: SsdpRequestHandler,
        group: str = "239.255.255.250",
        port: int = 1900,
        bind: str = "0.0.0.0",
    ):
        self.handler = handler
        self.group = group
        self.port = port
        self.bind = bind
        self._thread: threading.Thread | None = None

    def _open_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM, socket.IPPROTO_UDP)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((self.bind, self.port))
        mreq = struct.pack("4s4s", socket.inet_aton(self.group), socket.inet_aton("0.0.0.0"))
        sock.setsockopt(socket.IPPROTO_IP, socket.IP_ADD_MEMBERSHIP, mreq)
        sock.settimeout(1.0)
        return sock

    def handle_datagram(self, data: bytes, addr: tuple[str, int]) -> ExternalRequest | None:
        packet = data.decode("utf-8", errors="replace")
        verb = packet.split(None, 1)[0].lower() if packet.strip() else ""
        if not verb or verb in DISCOVERY_VERBS:
            return None
        return self.handler.handle_packet(packet, addr)

    def serve(self, stop_event: threading.Event, sock: socket.socket | None = None) -> None:
        """Receive until ``stop_event`` is set."""
        if sock is None:
            sock = self._open_socket()
        logger.info(f"SSDP listener on {self.group}:{self.port}")
        try:
            while not stop_event.is_set():
                try:
                    data, addr = sock.recvfrom(8192)
                except socket.timeout:
                    continue
                except OSError as e:
                    logger.warning(f"SSDP recv error: {e}")
                    continue
                self.handle_datagram(data, addr)
        finally:
            sock.close()
        logger.info("SSDP listener stopped.")

    def start(self, stop_event: threading.Event) -> threading.Thread:
        """Join the group now (so socket errors surface here) and serve on a daemon thread."""
        sock = self._open_socket()
        self._thread = threading.Thread(target=self.serve, args=(stop_event, sock), name="ssdp-listener", daemon=True)
        self._thread.start()
        return self._thread
