"""Single-interface IP configuration agent.

Keeps one ethernet interface addressed: persisted static configuration first,
then build-time static configuration, then DHCP, falling back to IPv4
link-local (ip4ll / AIPA) addressing while periodically retrying DHCP.

Library logging is off until :func:`configure_logging` is called.
"""

__version__ = "0.1.0"

import os
import sys
from typing import Any, Callable, Dict, Optional

from loguru import logger as glogger

glogger.disable(__name__)

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | <level>{level: <8}</level> | "
    "<cyan>{extra[classname]}</cyan>.<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)


def _skiplog_filter(record: dict) -> bool:  # type: ignore[type-arg]
    return not record["extra"].get("skiplog", False)


def configure_logging(
    level: Optional[str] = None,
    loguru_filter: Callable[[Dict[str, Any]], bool] = _skiplog_filter,
) -> None:
    """Replace all sinks with one stderr sink and enable the package's log records.

    ``level`` wins over ``LOGURU_LEVEL``; without either, INFO is used.
    """
    level = level or os.getenv("LOGURU_LEVEL") or "INFO"
    glogger.remove()
    glogger.configure(extra={"classname": "-", "skiplog": False})
    glogger.add(sys.stderr, level=level, format=LOG_FORMAT, filter=loguru_filter)  # type: ignore[arg-type]
    glogger.enable(__name__)


from ethagent.agent import EthernetAgent  # noqa: E402
from ethagent.exceptions import (  # noqa: E402
    ConfigurationError,
    DhcpError,
    EthAgentError,
    InterfaceError,
    StorageError,
)
from ethagent.ip4ll import calculate_ip4ll_address  # noqa: E402
from ethagent.models import AgentConfig, InterfaceState, StaticConfig, Status  # noqa: E402
from ethagent.storage import create_storage, list_storages  # noqa: E402

__all__ = [
    "glogger",
    "configure_logging",
    "EthernetAgent",
    "AgentConfig",
    "InterfaceState",
    "StaticConfig",
    "Status",
    "calculate_ip4ll_address",
    "create_storage",
    "list_storages",
    "EthAgentError",
    "ConfigurationError",
    "InterfaceError",
    "StorageError",
    "DhcpError",
]
