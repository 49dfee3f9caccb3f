"""Shared fixtures for the ethagent test suite."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from ethagent.agent import EthernetAgent
from ethagent.configurator import BaseInterfaceConfigurator
from ethagent.dhcp import DhcpClient
from ethagent.models import AgentConfig
from ethagent.scheduler import Scheduler
from ethagent.storage import BaseStorage

HWADDR = b"aa:bb:cc:dd:ee:ff\n"

# ── collaborator mocks ───────────────────────────────────────────────


@pytest.fixture()
def mock_dhcp_client():
    """MagicMock of DhcpClient; every request fails unless configured otherwise."""
    client = MagicMock(spec=DhcpClient)
    client.request.return_value = {}
    return client


@pytest.fixture()
def mock_configurator():
    """MagicMock of an interface configurator that always succeeds."""
    configurator = MagicMock(spec=BaseInterfaceConfigurator)
    configurator.configure.return_value = True
    return configurator


@pytest.fixture()
def mock_scheduler():
    """MagicMock of Scheduler handing out a fresh timer handle per send_after."""
    scheduler = MagicMock(spec=Scheduler)
    scheduler.send_after.side_effect = lambda delay_ms, message: MagicMock(name=f"timer-{message}")
    return scheduler


@pytest.fixture()
def mock_storage():
    """MagicMock of a storage backend holding nothing."""
    storage = MagicMock(spec=BaseStorage)
    storage.get.return_value = None
    return storage


@pytest.fixture()
def changes():
    """List collecting every on_change notification."""
    return []


# ── agent factory ────────────────────────────────────────────────────


@pytest.fixture()
def make_agent(mock_dhcp_client, mock_configurator, mock_scheduler, changes):
    """Factory fixture returning an EthernetAgent wired to mocks."""

    def _make(config: AgentConfig | None = None, **kwargs):
        defaults = dict(
            on_change=changes.append,
            storage=None,
            dhcp_client=mock_dhcp_client,
            configurator=mock_configurator,
            scheduler=mock_scheduler,
            hwaddr_reader=lambda interface: HWADDR,
        )
        defaults.update(kwargs)
        return EthernetAgent(config or AgentConfig(interface="eth0", hostname="cell"), **defaults)

    return _make


@pytest.fixture()
def udhcpc_output():
    """Raw udhcpc stdout with a deconfig block followed by a bound block."""
    return (
        "udhcpc: started, v1.36.1\n"
        "[\n"
        "status='deconfig'\n"
        "interface='eth0'\n"
        "]\n"
        "udhcpc: broadcasting discover\n"
        "udhcpc: lease of 10.0.0.5 obtained from 10.0.0.1, lease time 3600\n"
        "[\n"
        "status='bound'\n"
        "interface='eth0'\n"
        "ip='10.0.0.5'\n"
        "mask='24'\n"
        "subnet='255.255.255.0'\n"
        "router='10.0.0.1'\n"
        "dns='10.0.0.1 8.8.8.8'\n"
        "lease='3600'\n"
        "serverid='10.0.0.1'\n"
        "opt53='05'\n"
        "PATH='/usr/sbin:/usr/bin:/sbin:/bin'\n"
        "PS1='\\w \\$ '\n"
        "]\n"
    )
