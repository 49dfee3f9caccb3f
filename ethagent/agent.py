"""EthernetAgent: the configuration state machine for one interface.

The agent is an actor. Every stimulus (startup, lease expiry, DHCP retry
timer, externally pushed request, state query) is a message in one mailbox
and is handled to completion on the agent's own thread, so the
:class:`InterfaceState` record is never touched concurrently.

Strategy selection::

    init ──► persisted static config? ──► static
         └─► build-time static config? ─► static
         └─► requesting ──► DHCP bound/renew ──► bound (lease timer armed)
                        └─► otherwise ───────► ip4ll (retry timer armed)

While in ip4ll a retry timer periodically re-runs DHCP: 10 s for the first
ten retries, 60 s after that. Lease expiry restarts acquisition unless the
interface was made static in the meantime.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from loguru import logger
from pydantic import ValidationError

from ethagent.configurator import BaseInterfaceConfigurator, IpRouteConfigurator
from ethagent.dhcp import DhcpClient, is_success
from ethagent.exceptions import DhcpError, InterfaceError, StorageError
from ethagent.ip4ll import ip4ll_params, read_hardware_address
from ethagent.models import (
    ADDRESS_KEYS,
    AgentConfig,
    AgentEvent,
    ExternalRequest,
    InterfaceState,
    RequestOutcome,
    StaticConfig,
    Status,
)
from ethagent.scheduler import OneShotTimer, RetryScheduler, Scheduler, TimerEvent
from ethagent.ssdp import AUTO_IP_PATH, STATIC_IP_PATH
from ethagent.storage import BaseStorage

OnChange = Callable[[dict[str, Any]], None]

# lease timers are never armed for less than this
MIN_LEASE_SECONDS = 10


@dataclass
class StateQuery:
    """Mailbox message answered with the public attribute view."""

    future: Future = field(default_factory=Future)


class EthernetAgent:
    """Keep one interface addressed by static config, DHCP or ip4ll."""

    def __init__(
        self,
        config: AgentConfig | None = None,
        *,
        on_change: Optional[OnChange] = None,
        storage: Optional[BaseStorage] = None,
        dhcp_client: Optional[DhcpClient] = None,
        configurator: Optional[BaseInterfaceConfigurator] = None,
        scheduler: Optional[Scheduler] = None,
        hwaddr_reader: Optional[Callable[[str], bytes]] = None,
    ):
        self.config = config or AgentConfig()
        self.state = InterfaceState(interface=self.config.interface, hostname=self.config.hostname)
        self.storage = storage
        self.dhcp = dhcp_client or DhcpClient(
            executable=self.config.dhcp_client,
            script_path=self.config.dhcp_script_path,
            timeout=self.config.dhcp_timeout,
        )
        self.configurator = configurator or IpRouteConfigurator()
        self.scheduler = scheduler or Scheduler(self.post)
        self._on_change = on_change
        self._hwaddr_reader = hwaddr_reader or read_hardware_address
        self._retry = RetryScheduler(self.scheduler, AgentEvent.IP4LL_RETRY)
        self._lease = OneShotTimer(self.scheduler, AgentEvent.LEASE_EXPIRED)
        self._current_ip: str | None = None
        self._mailbox: queue.Queue[Any] = queue.Queue()
        self._thread: threading.Thread | None = None
        self._logger = logger.bind(classname=type(self).__name__)

        self._routes: dict[tuple[str, str], Callable[[dict[str, str]], RequestOutcome]] = {
            ("put", STATIC_IP_PATH): self._put_static_ip,
            ("delete", STATIC_IP_PATH): self._delete_static_ip,
            ("put", AUTO_IP_PATH): self._put_auto_ip,
            ("delete", AUTO_IP_PATH): self._delete_auto_ip,
        }

    # ── mailbox ──────────────────────────────────────────────────────────

    def post(self, message: Any) -> None:
        """Enqueue ``message`` for the actor thread. Safe to call from any thread."""
        self._mailbox.put(message)

    def start(self) -> None:
        """Start the actor thread and run strategy selection on it."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._thread = threading.Thread(target=self._run, name=f"ethagent-{self.state.interface}", daemon=True)
        self._thread.start()
        self.post(AgentEvent.START)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop the actor thread after the messages already queued, and cancel timers."""
        if self._thread is not None and self._thread.is_alive():
            self.post(AgentEvent.STOP)
            self._thread.join(timeout)
        self._thread = None
        self._retry.cancel()
        self._lease.cancel()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        while True:
            message = self._mailbox.get()
            if message is AgentEvent.STOP:
                break
            self.handle_message(message)
        self._logger.info(f"ethernet agent on {self.state.interface} stopped")

    def handle_message(self, message: Any) -> Any:
        """Handle a single mailbox message to completion.

        Exceptions are logged and swallowed so that one bad message never kills the actor.
        """
        try:
            if message is AgentEvent.START:
                return self.initialize()
            if isinstance(message, TimerEvent):
                return self._handle_timer(message)
            if isinstance(message, ExternalRequest):
                return self.handle_request(message)
            if isinstance(message, StateQuery):
                message.future.set_result(self.state.public_view())
                return None
            self._logger.warning(f"ignoring unknown message {message!r}")
        except Exception:
            self._logger.exception(f"error while handling {message!r}")
        return None

    def query_state(self, timeout: float = 5.0) -> dict[str, Any]:
        """Public attribute view, answered by the actor when it is running."""
        if not self.running:
            return self.state.public_view()
        query = StateQuery()
        self.post(query)
        return query.future.result(timeout)

    @property
    def current_ip(self) -> str | None:
        """Address published by the actor after its last state update.

        Safe to read from other threads (the SSDP listener), unlike ``state``.
        """
        return self._current_ip

    # ── startup ──────────────────────────────────────────────────────────

    def initialize(self) -> None:
        """Prepare the DHCP subsystem, bring the link up and pick a strategy."""
        self._logger.info(f"ethernet init with config {self.config.model_dump(mode='json')}")
        self._announce(self.state.public_view())

        try:
            self.dhcp.install_script()
        except DhcpError as e:
            self._logger.error(f"DHCP subsystem not ready: {e}")
        try:
            self.configurator.link_up(self.state.interface)
        except InterfaceError as e:
            self._logger.error(f"Cannot bring up {self.state.interface}: {e}")

        self._init_static_or_dynamic_ip()
        self._logger.info(f"started ethernet agent in state {self.state.public_view()}")

    def _init_static_or_dynamic_ip(self) -> None:
        # persisted static config wins over build-time static config
        self._logger.debug("reading static configuration")
        persisted = self._storage_get()
        if persisted is not None:
            self._logger.info("found persistent static config")
            self.configure_with_static_ip(persisted)
        elif self.config.static_config is not None:
            self._logger.info("static configuration found in agent config")
            self.configure_with_static_ip(self.config.static_config)
        else:
            self._logger.info("no static ip configuration found, trying dynamic config")
            self.configure_with_dynamic_ip()

    # ── strategies ───────────────────────────────────────────────────────

    def configure_with_static_ip(self, config: StaticConfig) -> None:
        self._logger.info(f"configuring static ip as {config.as_changes()}")
        self._retry.cancel()
        self._lease.cancel()
        self._configure_interface({**config.as_changes(), "status": Status.STATIC, "dhcp_retries": 0})

    def configure_with_dynamic_ip(self) -> None:
        """Run one DHCP attempt; bind on success, otherwise fall back to ip4ll."""
        self._logger.debug("starting dynamic ip allocation")
        self._retry.cancel()
        self._update_and_announce({"status": Status.REQUESTING})
        params = self.dhcp.request(self.state.interface, self.state.hostname)
        if is_success(params):
            self._configure_dhcp(params)
        else:
            self._configure_ip4ll()

    def _configure_dhcp(self, params: dict[str, str]) -> None:
        self._retry.cancel()
        self._lease.cancel()
        changes: dict[str, Any] = {**params, "dhcp_retries": 0}

        lease: int | None = None
        if "lease" in changes:
            try:
                lease = int(changes["lease"])
            except ValueError:
                self._logger.warning(f"ignoring malformed lease {changes['lease']!r}")
                del changes["lease"]

        self._configure_interface(changes)
        if lease is not None:
            if lease < MIN_LEASE_SECONDS:
                self._logger.warning(f"lease of {lease}s too short, renewing after {MIN_LEASE_SECONDS}s")
                lease = MIN_LEASE_SECONDS
            self._lease.arm(lease * 1000)

    def _configure_ip4ll(self) -> None:
        self._lease.cancel()
        try:
            params: dict[str, str] = ip4ll_params(self._hwaddr_reader(self.state.interface))
        except InterfaceError as e:
            self._logger.error(f"cannot derive link-local address: {e}")
            params = {}
        # the first probe is not a retry: the counter starts at 0
        self._retry.arm_retry(0)
        self._configure_interface({**params, "status": Status.IP4LL, "dhcp_retries": 0})

    def _configure_interface(self, changes: dict[str, Any]) -> None:
        """Apply ``changes`` to the interface and the state; unsupplied address attributes are cleared."""
        full: dict[str, Any] = dict.fromkeys(ADDRESS_KEYS)
        full.update(changes)
        ip, mask = full.get("ip"), full.get("mask")
        if bool(ip) != bool(mask):
            self._logger.warning(f"dropping partial address ip={ip!r} mask={mask!r}")
            full.update(ip=None, mask=None, subnet=None)
            ip = mask = None

        self._logger.info(f"setting up interface {self.state.interface} with: {changes}")
        if ip and mask:
            try:
                ok = self.configurator.configure(self.state.interface, ip, mask, full.get("router"))
            except InterfaceError as e:
                self._logger.error(f"configuring {self.state.interface} failed: {e}")
                ok = False
            if not ok:
                self._logger.warning(f"{ip}/{mask} may not be active on {self.state.interface}")
        self._update_and_announce(full)

    # ── timers ───────────────────────────────────────────────────────────

    def _handle_timer(self, message: TimerEvent) -> None:
        if message.event is AgentEvent.LEASE_EXPIRED:
            if self._lease.accept(message):
                self._handle_lease_expired()
        elif message.event is AgentEvent.IP4LL_RETRY:
            if self._retry.accept(message):
                self._handle_ip4ll_retry()
        else:
            self._logger.warning(f"ignoring unknown timer {message!r}")

    def _handle_lease_expired(self) -> None:
        # renew unless we've been configured as a static ip in the meantime
        if self.state.status is Status.STATIC:
            self._logger.debug("lease expired while static, ignoring")
            return
        self._logger.info("dhcp lease expired, requesting a new one")
        self.configure_with_dynamic_ip()

    def _handle_ip4ll_retry(self) -> None:
        if self.state.status is not Status.IP4LL:
            self._logger.debug(f"stale ip4ll retry in status {self.state.status.value}, ignoring")
            return
        params = self.dhcp.request(self.state.interface, self.state.hostname)
        if is_success(params):
            self._logger.info("dhcp server is back, leaving link-local addressing")
            self._configure_dhcp(params)
        else:
            retries = self._retry.schedule(self.state.dhcp_retries)
            self._update_and_announce({"dhcp_retries": retries})

    # ── external requests ────────────────────────────────────────────────

    def handle_request(self, request: ExternalRequest) -> RequestOutcome:
        """Route an externally pushed request on (verb, path)."""
        handler = self._routes.get((request.verb.lower(), request.path))
        if handler is None:
            self._logger.debug(f"{request.verb} {request.path} is not handled here")
            return RequestOutcome.IGNORED
        return handler(request.params)

    def _put_static_ip(self, params: dict[str, str]) -> RequestOutcome:
        self._logger.info(f"request to put static IP with params {params}")
        ip, mask, router = params.get("x-ip"), params.get("x-subnet"), params.get("x-router")
        if (ip, mask, router) == (self.state.ip, self.state.mask, self.state.router):
            self._logger.debug("static IP request matches current configuration")
            return RequestOutcome.UNCHANGED
        try:
            config = StaticConfig(ip=ip, mask=mask, router=router)  # type: ignore[arg-type]
        except ValidationError as e:
            self._logger.warning(f"rejecting static IP request: {e.errors(include_url=False)}")
            return RequestOutcome.REJECTED
        self.configure_with_static_ip(config)
        self._storage_put(config)
        return RequestOutcome.APPLIED

    def _put_auto_ip(self, params: dict[str, str]) -> RequestOutcome:
        self._logger.info(f"NOT YET IMPLEMENTED - asked to configure autohop IP with params {params}")
        return RequestOutcome.NOT_IMPLEMENTED

    def _delete_static_ip(self, params: dict[str, str]) -> RequestOutcome:
        self._logger.info("deconfiguring static IP")
        self._storage_delete()
        self.configure_with_dynamic_ip()
        return RequestOutcome.RESTARTED

    def _delete_auto_ip(self, params: dict[str, str]) -> RequestOutcome:
        self._logger.info("deconfiguring automatic hopping IP")
        self.configure_with_dynamic_ip()
        return RequestOutcome.RESTARTED

    # ── persistence ──────────────────────────────────────────────────────

    def _storage_get(self) -> StaticConfig | None:
        if self.storage is None:
            return None
        try:
            return self.storage.get()
        except StorageError as e:
            self._logger.error(f"reading persisted configuration failed: {e}")
            return None

    def _storage_put(self, config: StaticConfig) -> None:
        if self.storage is None:
            return
        try:
            self.storage.put(config)
        except StorageError as e:
            self._logger.error(f"persisting static configuration failed: {e}")

    def _storage_delete(self) -> None:
        if self.storage is None:
            return
        try:
            self.storage.delete()
        except StorageError as e:
            self._logger.error(f"removing persisted configuration failed: {e}")

    # ── announcements ────────────────────────────────────────────────────

    def _update_and_announce(self, changes: dict[str, Any]) -> None:
        public_changes = self.state.apply(changes)
        self._current_ip = self.state.ip
        self._announce(public_changes)

    def _announce(self, public_changes: dict[str, Any]) -> None:
        if not public_changes or self._on_change is None:
            return
        try:
            self._on_change(public_changes)
        except Exception:
            self._logger.exception("on_change callback failed")
