"""Simulated interrupt hardware and the simulated clock."""

from __future__ import annotations

import heapq
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from .stats import SYSTEM_TICK, USER_TICK, Statistics

log = logging.getLogger(__name__)


class IntStatus(Enum):
    """Whether interrupts are disabled or enabled."""

    OFF = "off"
    ON = "on"


class MachineStatus(Enum):
    """What the machine is doing: idling, running kernel or user code."""

    IDLE = "idle"
    SYSTEM = "system"
    USER = "user"


class IntType(Enum):
    """The hardware device that generated an interrupt."""

    TIMER = "timer"
    DISK = "disk"
    CONSOLE_WRITE = "console write"
    CONSOLE_READ = "console read"
    NETWORK_SEND = "network send"
    NETWORK_RECV = "network recv"


@dataclass
class PendingInterrupt:
    """An interrupt scheduled to occur at simulated time ``when``."""

    handler: Callable[[], None]
    when: int
    kind: IntType


class MachineHalted(Exception):
    """Raised when the simulated machine shuts down."""

    def __init__(self, stats: Statistics):
        super().__init__("machine halted")
        self.stats = stats


class Interrupt:
    """Tracks the interrupt level, pending device interrupts and simulated time."""

    def __init__(
        self,
        stats: Optional[Statistics] = None,
        on_yield: Optional[Callable[[], None]] = None,
    ):
        self.stats = stats if stats is not None else Statistics()
        self.on_yield = on_yield
        # Called just before any interrupt handler runs (e.g. to finish a
        # delayed load of the CPU simulation).
        self.pre_handler: Optional[Callable[[], None]] = None
        self.status = MachineStatus.SYSTEM
        self._level = IntStatus.OFF
        self._pending: list[tuple[int, int, PendingInterrupt]] = []
        self._seq = itertools.count()
        self._in_handler = False
        self._yield_on_return = False

    @property
    def level(self) -> IntStatus:
        """Whether interrupts are currently enabled."""
        return self._level

    @property
    def in_handler(self) -> bool:
        return self._in_handler

    @property
    def pending(self) -> list[PendingInterrupt]:
        """Scheduled interrupts in the order they will fire."""
        return [item for _, _, item in sorted(self._pending)]

    def _change_level(self, old: IntStatus, now: IntStatus) -> None:
        self._level = now
        log.debug("interrupts: %s -> %s", old.value, now.value)

    def _push(self, item: PendingInterrupt) -> None:
        heapq.heappush(self._pending, (item.when, next(self._seq), item))

    def set_level(self, now: IntStatus) -> IntStatus:
        """Change the interrupt level; enabling advances time. Returns the old level."""
        old = self._level
        if now is IntStatus.ON and self._in_handler:
            raise RuntimeError("interrupt handlers may not enable interrupts")
        self._change_level(old, now)
        if now is IntStatus.ON and old is IntStatus.OFF:
            self.one_tick()
        return old

    def enable(self) -> None:
        """Turn interrupts on."""
        self.set_level(IntStatus.ON)

    def one_tick(self) -> None:
        """Advance simulated time and fire any interrupts that are now due."""
        old = self.status
        if self.status is MachineStatus.SYSTEM:
            self.stats.total_ticks += SYSTEM_TICK
            self.stats.system_ticks += SYSTEM_TICK
        else:
            self.stats.total_ticks += USER_TICK
            self.stats.user_ticks += USER_TICK
        log.debug("== Tick %d ==", self.stats.total_ticks)

        self._change_level(IntStatus.ON, IntStatus.OFF)
        while self.check_if_due(False):
            pass
        self._change_level(IntStatus.OFF, IntStatus.ON)
        if self._yield_on_return:
            self._yield_on_return = False
            self.status = MachineStatus.SYSTEM
            if self.on_yield is not None:
                self.on_yield()
            self.status = old

    def yield_on_return(self) -> None:
        """From inside a handler, request a context switch once it returns."""
        if not self._in_handler:
            raise RuntimeError("yield_on_return called outside an interrupt handler")
        self._yield_on_return = True

    def idle(self) -> None:
        """Advance time to the next pending interrupt, or halt if there is none."""
        log.debug("Machine idling; checking for interrupts.")
        self.status = MachineStatus.IDLE
        if self.check_if_due(True):
            while self.check_if_due(False):
                pass
            self._yield_on_return = False
            self.status = MachineStatus.SYSTEM
            return
        log.debug("Machine idle.  No interrupts to do.")
        print("No threads ready or runnable, and no pending interrupts.")
        print("Assuming the program completed.")
        self.halt()

    def halt(self) -> None:
        """Print the statistics and shut the machine down."""
        print("Machine halting!\n")
        print(self.stats.summary())
        raise MachineHalted(self.stats)

    def schedule(
        self, handler: Callable[[], None], from_now: int, kind: IntType
    ) -> None:
        """Arrange for ``handler`` to run ``from_now`` ticks in the future."""
        if from_now <= 0:
            raise ValueError("an interrupt must be scheduled in the future")
        when = self.stats.total_ticks + from_now
        log.debug("Scheduling interrupt handler the %s at time = %d", kind.value, when)
        self._push(PendingInterrupt(handler, when, kind))

    def check_if_due(self, advance_clock: bool) -> bool:
        """Fire the next pending interrupt if it is due; return whether one fired."""
        old = self.status
        if self._level is not IntStatus.OFF:
            raise RuntimeError("interrupts must be disabled to run a handler")
        if log.isEnabledFor(logging.DEBUG):
            log.debug("%s", self.dump_state())
        if not self._pending:
            return False
        when, _, item = heapq.heappop(self._pending)

        if advance_clock and when > self.stats.total_ticks:
            self.stats.idle_ticks += when - self.stats.total_ticks
            self.stats.total_ticks = when
        elif when > self.stats.total_ticks:
            self._push(item)
            return False

        if (
            self.status is MachineStatus.IDLE
            and item.kind is IntType.TIMER
            and not self._pending
        ):
            self._push(item)
            return False

        log.debug(
            "Invoking interrupt handler for the %s at time %d", item.kind.value, item.when
        )
        if self.pre_handler is not None:
            self.pre_handler()
        self._in_handler = True
        self.status = MachineStatus.SYSTEM
        try:
            item.handler()
        finally:
            self.status = old
            self._in_handler = False
        return True

    def dump_state(self) -> str:
        """Return a description of the time, level and pending interrupts."""
        lines = [
            f"Time: {self.stats.total_ticks}, interrupts {self._level.value}",
            "Pending interrupts:",
        ]
        lines.extend(
            f"Interrupt handler {item.kind.value}, scheduled at {item.when}"
            for item in self.pending
        )
        lines.append("End of pending interrupts")
        return "\n".join(lines)