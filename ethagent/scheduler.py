"""One-shot delayed self-messages and the link-local DHCP retry policy."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any, Callable, Protocol

from loguru import logger

# retry after 10 seconds for the first 10 retries, then every minute
FAST_RETRY_MS = 10_000
SLOW_RETRY_MS = 60_000
FAST_RETRY_COUNT = 10


def dhcp_retry_interval(tries: int) -> int:
    """Delay in milliseconds before DHCP retry number ``tries`` (0-based)."""
    if tries >= FAST_RETRY_COUNT:
        return SLOW_RETRY_MS
    return FAST_RETRY_MS


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@dataclass(frozen=True)
class TimerEvent:
    """Message posted by an expired timer; ``seq`` identifies the arming it belongs to."""

    event: Any
    seq: int


class Scheduler:
    """Deliver a message to ``post`` once, after a delay.

    Timers never repeat; every cycle must arm a new one. The returned handle
    can be cancelled as long as the timer has not fired.
    """

    def __init__(self, post: Callable[[Any], None]):
        self._post = post

    def send_after(self, delay_ms: int, message: Any) -> TimerHandle:
        timer = threading.Timer(delay_ms / 1000.0, self._post, args=(message,))
        timer.daemon = True
        timer.start()
        logger.debug(f"armed {message!r} in {delay_ms} ms")
        return timer


class OneShotTimer:
    """Slot holding at most one outstanding timer for ``event``.

    Each arming posts a :class:`TimerEvent` with a fresh sequence number. A
    timer can fire and enqueue its message just before it is cancelled, so
    delivered messages must be claimed with :meth:`accept`, which only
    succeeds for the timer currently pending.
    """

    def __init__(self, scheduler: Scheduler, event: Any):
        self._scheduler = scheduler
        self.event = event
        self._seq = 0
        self._pending: TimerHandle | None = None

    @property
    def pending(self) -> bool:
        return self._pending is not None

    def arm(self, delay_ms: int) -> TimerEvent:
        """Replace any outstanding timer with one firing after ``delay_ms``."""
        self.cancel()
        self._seq += 1
        message = TimerEvent(self.event, self._seq)
        self._pending = self._scheduler.send_after(delay_ms, message)
        return message

    def accept(self, message: TimerEvent) -> bool:
        """Claim a delivered message. False if it came from a cancelled or replaced timer."""
        if self._pending is None or message.event != self.event or message.seq != self._seq:
            logger.debug(f"dropping stale {message!r}, pending seq {self._seq if self._pending else None}")
            return False
        self._pending = None
        return True

    def cancel(self) -> None:
        if self._pending is not None:
            self._pending.cancel()
            self._pending = None


class RetryScheduler(OneShotTimer):
    """The DHCP retry timer, armed according to :func:`dhcp_retry_interval`."""

    def arm_retry(self, tries: int) -> int:
        """Arm the timer for retry number ``tries`` and return the delay used."""
        interval = dhcp_retry_interval(tries)
        self.arm(interval)
        return interval

    def schedule(self, tries: int) -> int:
        """Arm the next retry and return the incremented retry counter."""
        interval = self.arm_retry(tries)
        logger.debug(f"scheduling dhcp retry #{tries + 1} for {interval} ms")
        return tries + 1
