"""
Shuttle Delays
A Delay sets a Signal once a duration has elapsed. Nothing here sleeps:
the TimerService owns the clock and the control loop polls it once per
tick, which fires every expired Delay.
"""

import time
import logging
import threading
from typing import Callable, Optional

from shuttle.sequencing.signal import Signal


logger: logging.Logger = logging.getLogger(__name__)


class TimerService:
    """
    Owner of mission time for all Delays.
    The clock is injectable so tests and the simulator can drive time
    explicitly instead of waiting on the wall clock.
    """

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        self._clock: Callable[[], float] = clock or time.monotonic
        self._armed: list["Delay"] = []
        self._lock: threading.Lock = threading.Lock()

    def now(self) -> float:
        return self._clock()

    def poll(self) -> int:
        """Fire every Delay whose deadline has passed. Returns how many fired."""
        now: float = self.now()
        with self._lock:
            due: list[Delay] = [d for d in self._armed if d.fire_at is not None and d.fire_at <= now]
            self._armed = [d for d in self._armed if d not in due]

        for delay in due:
            delay._fire()
        return len(due)

    @property
    def pending(self) -> int:
        with self._lock:
            return len(self._armed)

    def _register(self, delay: "Delay") -> None:
        with self._lock:
            if delay not in self._armed:
                self._armed.append(delay)

    def _unregister(self, delay: "Delay") -> None:
        with self._lock:
            if delay in self._armed:
                self._armed.remove(delay)


class Delay:
    """
    One-shot timer that sets a target Signal after a duration.
    At most one pending arm per instance; arming again before expiry
    replaces both the deadline and the target.
    """

    def __init__(self, timers: TimerService, name: str = "") -> None:
        self._timers: TimerService = timers
        self._name: str = name or "delay"
        self._fire_at: Optional[float] = None
        self._target: Optional[Signal] = None
        self._expired: bool = False

    @property
    def name(self) -> str:
        return self._name

    @property
    def fire_at(self) -> Optional[float]:
        return self._fire_at

    @property
    def armed(self) -> bool:
        return self._fire_at is not None

    @property
    def expired(self) -> bool:
        """True once the current arm has fired. Reset by the next arm()."""
        return self._expired

    def arm(self, duration: float, target: Signal) -> None:
        """Schedule target.set() once duration seconds have elapsed."""
        if duration < 0:
            raise ValueError(f"Delay duration must be non-negative, got {duration}")

        if self._fire_at is not None:
            logger.debug("%s: re-armed before expiry, previous deadline dropped", self._name)

        self._fire_at = self._timers.now() + duration
        self._expired = False
        self._target = target
        self._timers._register(self)
        logger.debug("%s: armed %.3fs -> %s", self._name, duration, target.name)

    def cancel(self) -> None:
        """Abandon the pending arm without setting the target."""
        self._fire_at = None
        self._target = None
        self._timers._unregister(self)

    def _fire(self) -> None:
        target: Optional[Signal] = self._target
        self._expired = True
        self._fire_at = None
        self._target = None
        if target is not None:
            logger.debug("%s: expired, setting %s", self._name, target.name)
            target.set()

    def __repr__(self) -> str:
        return f"Delay(name='{self._name}', fire_at={self._fire_at})"


class ManualClock:
    """Clock that only moves when told to. Drop-in for time.monotonic in simulation."""

    def __init__(self, start: float = 0.0) -> None:
        self._now: float = start
        self._lock: threading.Lock = threading.Lock()

    def __call__(self) -> float:
        with self._lock:
            return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError(f"Cannot move the clock backwards by {seconds}")
        with self._lock:
            self._now += seconds

    def set(self, now: float) -> None:
        with self._lock:
            self._now = now
