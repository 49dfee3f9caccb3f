"""CLI entry point for the ethernet agent.

Examples:
  # DHCP with ip4ll fallback on eth0, announcing hostname "radio"
  ethagent run -i eth0 --hostname radio

  # Static address unless a runtime static config was persisted earlier
  ethagent run -i eth0 --static-ip 192.168.1.10 --static-mask 24 \\
      --static-router 192.168.1.1 --storage-path /var/lib/ethagent/static.json

  # Show the link-local address eth0 would fall back to
  ethagent ip4ll -i eth0
"""

from __future__ import annotations

import argparse
import os
import signal
import sys
import threading
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError
from tabulate import tabulate

from ethagent import __version__, configure_logging
from ethagent.agent import EthernetAgent
from ethagent.exceptions import ConfigurationError, InterfaceError
from ethagent.ip4ll import calculate_ip4ll_address, read_hardware_address
from ethagent.models import AgentConfig, StaticConfig
from ethagent.ssdp import RootDevice, SsdpListener, SsdpRequestHandler
from ethagent.storage import BaseStorage, create_storage


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Build argparse parser for the agent CLI."""
    parser = argparse.ArgumentParser(
        description="Single-interface IP configuration agent (static, DHCP, ip4ll fallback)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Verbose logging",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Manage the interface until interrupted")
    run.add_argument("-i", "--interface", help="Interface to manage (default: eth0)")
    run.add_argument("--hostname", help="Hostname sent with DHCP requests (default: cell)")
    run.add_argument("--config", metavar="FILE", help="JSON agent configuration file")
    run.add_argument("--static-ip", help="Build-time static IPv4 address")
    run.add_argument("--static-mask", help="Prefix length or netmask for --static-ip")
    run.add_argument("--static-router", help="Default router for --static-ip")
    run.add_argument("--storage-path", help="Persist runtime static configuration to this JSON file")
    run.add_argument("--dhcp-client", help="DHCP client executable (default: udhcpc)")
    run.add_argument("--device-port", type=int, help="Port of this device's SSDP base URI (default: 8080)")
    run.add_argument(
        "--no-ssdp",
        action="store_true",
        help="Do not listen for SSDP configuration requests",
    )

    ip4ll = subparsers.add_parser("ip4ll", help="Print the link-local address of an interface")
    ip4ll.add_argument("-i", "--interface", default="eth0", help="Interface (default: eth0)")

    return parser.parse_args(args)


def build_config(parsed: argparse.Namespace) -> AgentConfig:
    """Merge defaults, the optional JSON config file and command-line flags.

    Raises:
        ConfigurationError: If static flags are incomplete or the config file is unreadable.
        ValidationError: If the merged configuration is invalid.
    """
    base = AgentConfig()
    if parsed.config:
        try:
            base = AgentConfig.model_validate_json(Path(parsed.config).read_text())
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {parsed.config}: {e}") from e

    static_config: StaticConfig | None = None
    if parsed.static_ip or parsed.static_mask or parsed.static_router:
        if not (parsed.static_ip and parsed.static_mask):
            raise ConfigurationError("--static-ip and --static-mask must be given together")
        static_config = StaticConfig(ip=parsed.static_ip, mask=parsed.static_mask, router=parsed.static_router)

    return base.with_overrides(
        interface=parsed.interface,
        hostname=parsed.hostname,
        static_config=static_config,
        storage_path=parsed.storage_path,
        dhcp_client=parsed.dhcp_client,
        device_port=parsed.device_port,
    )


def _startup_rows(config: AgentConfig, ssdp: bool = True) -> list[list[str]]:
    static = config.static_config
    rows = [
        ["version", __version__],
        ["pid", str(os.getpid())],
        ["interface", config.interface],
        ["hostname", config.hostname],
        ["static config", f"{static.ip}/{static.mask}" if static else "-"],
        ["dhcp client", config.dhcp_client],
        ["storage", str(config.storage_path) if config.storage_path else "-"],
        ["ssdp", f"{config.ssdp_group}:{config.ssdp_port}" if ssdp else "off"],
    ]
    buildtime = os.environ.get("BUILDTIME")
    if buildtime and not buildtime.endswith("_is_undefined"):
        rows.append(["buildtime", buildtime])
    return rows


def _print_startup_banner(config: AgentConfig, ssdp: bool = True) -> None:
    lines = tabulate(_startup_rows(config, ssdp), tablefmt="mixed_grid").split("\n")
    width = len(lines[0])
    title = f"ethagent on {config.interface}"
    header = [
        "┍" + "━" * (width - 2) + "┑",
        "│ " + title.center(width - 4) + " │",
        lines[0].replace("┍", "┝").replace("┑", "┥").replace("┯", "┿"),
    ]
    logger.opt(raw=True).info("\n{}\n", "\n".join(header + lines[1:]))


def _log_change(changes: dict[str, Any]) -> None:
    logger.info(f"interface state changed: {changes}")


def cmd_ip4ll(parsed: argparse.Namespace) -> int:
    try:
        hwaddr = read_hardware_address(parsed.interface)
    except InterfaceError as e:
        logger.error(str(e))
        return 1
    print(calculate_ip4ll_address(hwaddr))
    return 0


def cmd_run(parsed: argparse.Namespace) -> int:
    try:
        config = build_config(parsed)
    except (ConfigurationError, ValidationError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 2
    _print_startup_banner(config, ssdp=not parsed.no_ssdp)

    storage: BaseStorage | None = None
    if config.storage_path is not None:
        storage = create_storage("json", path=config.storage_path)

    agent = EthernetAgent(config, storage=storage, on_change=_log_change)
    stop_event = threading.Event()

    def _stop(sig: int, _: Any) -> None:
        logger.info(f"Signal {sig} received, shutting down...")
        stop_event.set()

    for s in (signal.SIGINT, signal.SIGTERM):
        signal.signal(s, _stop)

    agent.start()
    if not parsed.no_ssdp:
        root_device = RootDevice(lambda: agent.current_ip, port=config.device_port, uri=config.device_uri)
        handler = SsdpRequestHandler(root_device, agent.post)
        listener = SsdpListener(handler, group=config.ssdp_group, port=config.ssdp_port)
        try:
            listener.start(stop_event)
        except OSError as e:
            logger.error(f"SSDP listener unavailable: {e}")

    try:
        stop_event.wait()
    finally:
        agent.stop()
    return 0


COMMANDS = {
    "run": cmd_run,
    "ip4ll": cmd_ip4ll,
}


def main(args: list[str] | None = None) -> None:
    """Main entry point for the agent CLI."""
    parsed = parse_args(args)
    configure_logging("DEBUG" if parsed.verbose else None)
    sys.exit(COMMANDS[parsed.command](parsed))
