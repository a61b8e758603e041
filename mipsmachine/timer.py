"""A simulated hardware timer that interrupts periodically."""

from __future__ import annotations

from typing import Callable

from . import host
from .interrupt import Interrupt, IntType
from .stats import TIMER_TICKS


class Timer:
    """Calls ``handler`` every TIMER_TICKS ticks, or at random intervals.

    With ``randomize`` set, each interval is a pseudo-random number of ticks
    between 1 and twice TIMER_TICKS, which makes time-slicing less regular.
    """

    def __init__(
        self,
        interrupt: Interrupt,
        handler: Callable[[], None],
        randomize: bool = False,
    ):
        self.interrupt = interrupt
        self.handler = handler
        self.randomize = randomize
        self.interrupt.schedule(
            self.timer_expired, self.time_of_next_interrupt(), IntType.TIMER
        )

    def timer_expired(self) -> None:
        """Schedule the next timer interrupt, then run the handler."""
        self.interrupt.schedule(
            self.timer_expired, self.time_of_next_interrupt(), IntType.TIMER
        )
        self.handler()

    def time_of_next_interrupt(self) -> int:
        """Return how many ticks from now the timer should next fire."""
        if self.randomize:
            return 1 + host.random_int() % (TIMER_TICKS * 2)
        return TIMER_TICKS