"""Pydantic models and enums for the interface configuration agent."""

from __future__ import annotations

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ethagent._util import _validate_interface_name, _validate_ipv4, _validate_mask


class Status(str, Enum):
    INIT = "init"
    REQUESTING = "requesting"
    BOUND = "bound"
    RENEW = "renew"
    IP4LL = "ip4ll"
    STATIC = "static"


class AgentEvent(str, Enum):
    """Self-addressed mailbox messages."""

    START = "start"
    LEASE_EXPIRED = "dhcp_lease_expired"
    IP4LL_RETRY = "ip4ll_dhcp_retry"
    STOP = "stop"


class RequestOutcome(str, Enum):
    APPLIED = "applied"
    UNCHANGED = "unchanged"
    RESTARTED = "restarted"
    NOT_IMPLEMENTED = "not_implemented"
    REJECTED = "rejected"
    IGNORED = "ignored"


# Attributes taken from the DHCP client's environment dump
DHCP_KEYS: tuple[str, ...] = (
    "status",
    "ip",
    "subnet",
    "mask",
    "timezone",
    "router",
    "timesvr",
    "dns",
    "domain",
    "ipttl",
    "broadcast",
    "ntpsrv",
    "opt53",
    "lease",
    "dhcptype",
    "serverid",
    "message",
)

# Strategy-supplied attributes, cleared when another strategy takes over
ADDRESS_KEYS: tuple[str, ...] = tuple(k for k in DHCP_KEYS if k != "status")

PUBLIC_KEYS: frozenset[str] = frozenset(("interface", "hostname", "status", "dhcp_retries", "type") + DHCP_KEYS)


def _coerce_str(value: Any) -> Any:
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class StaticConfig(BaseModel):
    """Manually supplied (or persisted) static address configuration."""

    ip: str
    mask: str
    subnet: Optional[str] = None
    router: Optional[str] = None
    dns: Optional[str] = None

    @field_validator("mask", mode="before")
    @classmethod
    def _mask_as_str(cls, v: Any) -> Any:
        return _coerce_str(v)

    @field_validator("ip")
    @classmethod
    def _check_ip(cls, v: str) -> str:
        if not _validate_ipv4(v):
            raise ValueError(f"invalid IPv4 address: {v!r}")
        return v

    @field_validator("mask")
    @classmethod
    def _check_mask(cls, v: str) -> str:
        if not _validate_mask(v):
            raise ValueError(f"invalid netmask: {v!r}")
        return v

    @field_validator("router")
    @classmethod
    def _check_router(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not _validate_ipv4(v):
            raise ValueError(f"invalid router address: {v!r}")
        return v

    def as_changes(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class AgentConfig(BaseModel):
    """Immutable agent configuration, built once at startup."""

    model_config = ConfigDict(frozen=True)

    interface: str = "eth0"
    hostname: str = "cell"
    static_config: Optional[StaticConfig] = None
    dhcp_client: str = "udhcpc"
    dhcp_script_path: Path = Path("/tmp/udhcpc.sh")
    dhcp_timeout: int = Field(default=60, gt=0)
    device_port: int = Field(default=8080, gt=0, lt=65536)
    device_uri: str = "/"
    ssdp_group: str = "239.255.255.250"
    ssdp_port: int = Field(default=1900, gt=0, lt=65536)
    storage_path: Optional[Path] = None

    @field_validator("interface")
    @classmethod
    def _check_interface(cls, v: str) -> str:
        if not _validate_interface_name(v):
            raise ValueError(f"invalid interface name: {v!r}")
        return v

    @field_validator("device_uri")
    @classmethod
    def _check_device_uri(cls, v: str) -> str:
        if not v.startswith("/"):
            v = "/" + v
        if not v.endswith("/"):
            v = v + "/"
        return v

    def with_overrides(self, **overrides: Any) -> AgentConfig:
        """Return a new, re-validated config with ``overrides`` applied (``None`` values are skipped)."""
        data = self.model_dump()
        data.update({k: v for k, v in overrides.items() if v is not None})
        return AgentConfig.model_validate(data)


class InterfaceState(BaseModel):
    """Mutable record of the managed interface, owned by the agent's actor thread."""

    model_config = ConfigDict(validate_assignment=True)

    interface: str = Field(frozen=True)
    hostname: str = "cell"
    status: Status = Status.INIT
    dhcp_retries: int = Field(default=0, ge=0)
    type: str = "ethernet"

    ip: Optional[str] = None
    subnet: Optional[str] = None
    mask: Optional[str] = None
    router: Optional[str] = None
    timezone: Optional[str] = None
    timesvr: Optional[str] = None
    dns: Optional[str] = None
    domain: Optional[str] = None
    broadcast: Optional[str] = None
    ipttl: Optional[str] = None
    ntpsrv: Optional[str] = None
    opt53: Optional[str] = None
    lease: Optional[int] = None
    dhcptype: Optional[str] = None
    serverid: Optional[str] = None
    message: Optional[str] = None

    @field_validator("mask", "ipttl", "opt53", "dhcptype", mode="before")
    @classmethod
    def _numbers_as_str(cls, v: Any) -> Any:
        return _coerce_str(v)

    def apply(self, changes: dict[str, Any]) -> dict[str, Any]:
        """Assign ``changes`` field by field and return the public attributes that changed.

        Unknown keys are ignored. Returned values are JSON-friendly (enums as strings).
        """
        changed: list[str] = []
        for key, value in changes.items():
            if key not in InterfaceState.model_fields or key == "interface":
                continue
            old = getattr(self, key)
            setattr(self, key, value)
            if getattr(self, key) != old and key in PUBLIC_KEYS:
                changed.append(key)
        if not changed:
            return {}
        return self.model_dump(mode="json", include=set(changed))

    def public_view(self) -> dict[str, Any]:
        """Public attributes currently set."""
        return self.model_dump(mode="json", include=set(PUBLIC_KEYS), exclude_none=True)


class ExternalRequest(BaseModel):
    """An externally pushed configuration request addressed to this device."""

    verb: str
    path: str
    params: dict[str, str] = Field(default_factory=dict)
