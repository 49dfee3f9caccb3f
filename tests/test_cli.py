"""Tests for ethagent/cli.py"""

import json
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
from pydantic import ValidationError

from ethagent import cli
from ethagent.cli import build_config, cmd_ip4ll, cmd_run, parse_args
from ethagent.exceptions import ConfigurationError, InterfaceError
from ethagent.ip4ll import calculate_ip4ll_address
from ethagent.models import StaticConfig


class TestParseArgs:
    """Tests for parse_args function."""

    def test_run_minimal(self):
        """Test parsing the run command without options."""
        args = parse_args(["run"])

        assert args.command == "run"
        assert args.interface is None
        assert args.no_ssdp is False
        assert args.verbose is False

    def test_run_all_flags(self):
        """Test all run flags are parsed correctly."""
        args = parse_args(
            [
                "-v",
                "run",
                "-i",
                "eth1",
                "--hostname",
                "radio",
                "--static-ip",
                "192.168.1.10",
                "--static-mask",
                "24",
                "--static-router",
                "192.168.1.1",
                "--storage-path",
                "/var/lib/ethagent/static.json",
                "--dhcp-client",
                "/sbin/udhcpc",
                "--device-port",
                "9090",
                "--no-ssdp",
            ]
        )

        assert args.verbose is True
        assert args.interface == "eth1"
        assert args.hostname == "radio"
        assert args.static_ip == "192.168.1.10"
        assert args.static_mask == "24"
        assert args.static_router == "192.168.1.1"
        assert args.storage_path == "/var/lib/ethagent/static.json"
        assert args.dhcp_client == "/sbin/udhcpc"
        assert args.device_port == 9090
        assert args.no_ssdp is True

    def test_ip4ll_default_interface(self):
        """Test the ip4ll command defaults to eth0."""
        args = parse_args(["ip4ll"])

        assert args.command == "ip4ll"
        assert args.interface == "eth0"

    def test_command_required(self):
        """Test that a subcommand is mandatory."""
        with pytest.raises(SystemExit):
            parse_args([])


class TestBuildConfig:
    """Tests for build_config function."""

    def test_defaults(self):
        """Test that no flags yield the default configuration."""
        config = build_config(parse_args(["run"]))

        assert config.interface == "eth0"
        assert config.hostname == "cell"
        assert config.static_config is None
        assert config.storage_path is None

    def test_flags_override(self):
        """Test flags are applied on top of defaults."""
        config = build_config(parse_args(["run", "-i", "eth1", "--hostname", "radio", "--device-port", "9090"]))

        assert config.interface == "eth1"
        assert config.hostname == "radio"
        assert config.device_port == 9090

    def test_static_flags(self):
        """Test static flags build a StaticConfig."""
        config = build_config(parse_args(["run", "--static-ip", "192.168.1.10", "--static-mask", "24"]))

        assert config.static_config == StaticConfig(ip="192.168.1.10", mask="24")

    def test_incomplete_static_flags(self):
        """Test that a static ip without mask is a configuration error."""
        with pytest.raises(ConfigurationError, match="together"):
            build_config(parse_args(["run", "--static-ip", "192.168.1.10"]))

    def test_router_alone_is_incomplete(self):
        """Test that a static router alone is a configuration error."""
        with pytest.raises(ConfigurationError):
            build_config(parse_args(["run", "--static-router", "192.168.1.1"]))

    def test_invalid_static_ip(self):
        """Test that an invalid static ip fails validation."""
        with pytest.raises(ValidationError):
            build_config(parse_args(["run", "--static-ip", "999.1.1.1", "--static-mask", "24"]))

    def test_config_file(self, tmp_path: Path):
        """Test values from the JSON config file, with flags winning."""
        config_file = tmp_path / "agent.json"
        config_file.write_text(
            json.dumps(
                {
                    "interface": "eth2",
                    "hostname": "from-file",
                    "static_config": {"ip": "10.1.1.1", "mask": 8},
                }
            )
        )

        config = build_config(parse_args(["run", "--config", str(config_file), "--hostname", "from-flag"]))

        assert config.interface == "eth2"
        assert config.hostname == "from-flag"
        assert config.static_config == StaticConfig(ip="10.1.1.1", mask="8")

    def test_missing_config_file(self, tmp_path: Path):
        """Test that an unreadable config file is a configuration error."""
        with pytest.raises(ConfigurationError, match="Cannot read"):
            build_config(parse_args(["run", "--config", str(tmp_path / "missing.json")]))


class TestCmdIp4ll:
    """Tests for cmd_ip4ll function."""

    def test_prints_address(self, capsys):
        """Test the derived address is printed."""
        hwaddr = b"aa:bb:cc:dd:ee:ff\n"
        with patch("ethagent.cli.read_hardware_address", return_value=hwaddr) as reader:
            rc = cmd_ip4ll(parse_args(["ip4ll", "-i", "eth1"]))

        assert rc == 0
        reader.assert_called_once_with("eth1")
        assert capsys.readouterr().out.strip() == calculate_ip4ll_address(hwaddr)

    def test_unknown_interface(self, capsys):
        """Test a missing interface exits non-zero without output."""
        error = InterfaceError("No hardware address for eth9", interface="eth9")
        with patch("ethagent.cli.read_hardware_address", side_effect=error):
            rc = cmd_ip4ll(parse_args(["ip4ll", "-i", "eth9"]))

        assert rc == 1
        assert capsys.readouterr().out == ""


class TestCmdRun:
    """Tests for cmd_run function."""

    def test_invalid_configuration(self):
        """Test that bad flags exit with code 2 before anything starts."""
        with patch("ethagent.cli.EthernetAgent") as agent_cls:
            rc = cmd_run(parse_args(["run", "--static-ip", "192.168.1.10"]))

        assert rc == 2
        agent_cls.assert_not_called()

    def test_runs_until_stopped(self, tmp_path: Path):
        """Test the agent is started, the store is wired, and the agent is stopped."""
        storage_path = tmp_path / "static.json"
        with (
            patch("ethagent.cli.EthernetAgent") as agent_cls,
            patch("ethagent.cli.signal.signal"),
            patch("ethagent.cli.threading.Event") as event_cls,
        ):
            rc = cmd_run(parse_args(["run", "--no-ssdp", "--storage-path", str(storage_path)]))

        assert rc == 0
        agent = agent_cls.return_value
        agent.start.assert_called_once_with()
        agent.stop.assert_called_once_with()
        event_cls.return_value.wait.assert_called_once_with()
        storage = agent_cls.call_args.kwargs["storage"]
        assert storage.path == storage_path

    def test_ssdp_listener_started(self):
        """Test the SSDP listener is wired to the agent mailbox."""
        with (
            patch("ethagent.cli.EthernetAgent") as agent_cls,
            patch("ethagent.cli.SsdpListener") as listener_cls,
            patch("ethagent.cli.signal.signal"),
            patch("ethagent.cli.threading.Event"),
        ):
            rc = cmd_run(parse_args(["run"]))

        assert rc == 0
        handler = listener_cls.call_args.args[0]
        assert handler._dispatch is agent_cls.return_value.post
        assert handler.root_device._ip_provider() is agent_cls.return_value.current_ip
        listener_cls.return_value.start.assert_called_once()

    def test_ssdp_unavailable_is_not_fatal(self):
        """Test that a socket error on the listener leaves the agent running."""
        listener = MagicMock()
        listener.start.side_effect = OSError("Address already in use")
        with (
            patch("ethagent.cli.EthernetAgent") as agent_cls,
            patch("ethagent.cli.SsdpListener", return_value=listener),
            patch("ethagent.cli.signal.signal"),
            patch("ethagent.cli.threading.Event"),
        ):
            rc = cmd_run(parse_args(["run"]))

        assert rc == 0
        agent_cls.return_value.stop.assert_called_once_with()
class TestStartupBanner:
    """Tests for the startup banner rows."""

    def test_agent_rows(self):
        """Test the banner describes the agent being started."""
        config = build_config(
            parse_args(
                [
                    "run",
                    "-i",
                    "eth1",
                    "--hostname",
                    "radio",
                    "--static-ip",
                    "192.168.1.10",
                    "--static-mask",
                    "24",
                    "--storage-path",
                    "/var/lib/ethagent/static.json",
                ]
            )
        )

        rows = dict(cli._startup_rows(config))

        assert rows["interface"] == "eth1"
        assert rows["hostname"] == "radio"
        assert rows["static config"] == "192.168.1.10/24"
        assert rows["dhcp client"] == "udhcpc"
        assert rows["storage"] == "/var/lib/ethagent/static.json"
        assert rows["ssdp"] == "239.255.255.250:1900"

    def test_dynamic_without_ssdp(self):
        """Test placeholders for absent static config, storage and listener."""
        rows = dict(cli._startup_rows(build_config(parse_args(["run"])), ssdp=False))

        assert rows["static config"] == "-"
        assert rows["storage"] == "-"
        assert rows["ssdp"] == "off"

    def test_banner_printed_on_run(self):
        """Test cmd_run prints the banner once the configuration is valid."""
        with (
            patch("ethagent.cli._print_startup_banner") as banner,
            patch("ethagent.cli.EthernetAgent"),
            patch("ethagent.cli.signal.signal"),
            patch("ethagent.cli.threading.Event"),
        ):
            cmd_run(parse_args(["run", "--no-ssdp", "-i", "eth1"]))

        config = banner.call_args.args[0]
        assert config.interface == "eth1"
        assert banner.call_args.kwargs == {"ssdp": False}


class TestMain:
    """Tests for main function."""

    def test_dispatches_and_exits(self):
        """Test main dispatches to the command and exits with its return code."""
        command = MagicMock(return_value=3)
        with (
            patch.dict(cli.COMMANDS, {"ip4ll": command}),
            patch("ethagent.cli.configure_logging") as configure,
        ):
            with pytest.raises(SystemExit) as exc_info:
                cli.main(["-v", "ip4ll"])

        assert exc_info.value.code == 3
        command.assert_called_once()
        configure.assert_called_once_with("DEBUG")

    def test_default_log_level(self):
        """Test without -v the level is left to LOGURU_LEVEL or INFO."""
        with (
            patch.dict(cli.COMMANDS, {"ip4ll": MagicMock(return_value=0)}),
            patch("ethagent.cli.configure_logging") as configure,
        ):
            with pytest.raises(SystemExit):
                cli.main(["ip4ll"])

        configure.assert_called_once_with(None)
