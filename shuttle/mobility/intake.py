"""
Shuttle Intake Interface
Spinner intake that both collects and ejects freight. Two kinds of
request carry a completion Signal: a timed run (used to dump) and a run
that ends when the freight sensor trips (used to pick up). The sensor
may trip on its own thread; it only ever sets the Signal.
"""

import logging
import threading
from typing import Any, Optional
from abc import ABC, abstractmethod

from shuttle.core.config import ShuttleConfig
from shuttle.sequencing.signal import Signal
from shuttle.sequencing.delay import TimerService


logger: logging.Logger = logging.getLogger(__name__)


class Intake(ABC):
    """What a mission step may ask of the intake."""

    @abstractmethod
    def run_timed(self, power: float, duration: float, done: Signal) -> None:
        """Run at power for duration seconds, then stop and set done."""

    @abstractmethod
    def run_until_triggered(self, power: float, done: Signal) -> None:
        """Run at power until the freight sensor trips, then set done."""

    @abstractmethod
    def set_power(self, power: float) -> None:
        """Direct power. Zero also abandons any pending request."""

    @abstractmethod
    def has_captured_object(self) -> bool:
        ...


class SimIntake(Intake):
    """
    Simulated intake with a scripted freight sensor.
    pickup_outcomes lists, per run_until_triggered() request, whether the
    sensor trips (True) or the intake jams (False); once exhausted every
    request succeeds. Tripping happens pickup_time seconds into the run,
    or immediately through trigger().
    """

    def __init__(
        self,
        timers: TimerService,
        config: Optional[ShuttleConfig] = None,
        pickup_outcomes: Optional[list[bool]] = None
    ) -> None:
        if config is None:
            config = ShuttleConfig()

        self._timers: TimerService = timers
        self._pickup_time: float = config.number("intake", "sim_pickup_time", default=0.6)
        self._outcomes: list[bool] = list(pickup_outcomes or [])

        self._power: float = 0.0
        self._has_object: bool = False
        self._timed_done: Optional[Signal] = None
        self._timed_until: Optional[float] = None
        self._trigger_done: Optional[Signal] = None
        self._trigger_at: Optional[float] = None

        self._lock: threading.Lock = threading.Lock()

        logger.info("Simulated intake created - pickup_time=%.2fs", self._pickup_time)

    def run_timed(self, power: float, duration: float, done: Signal) -> None:
        with self._lock:
            self._drop_requests()
            self._power = power
            self._timed_done = done
            self._timed_until = self._timers.now() + duration
        logger.debug("Intake timed run - power=%.2f, %.2fs", power, duration)

    def run_until_triggered(self, power: float, done: Signal) -> None:
        with self._lock:
            self._drop_requests()
            self._power = power
            self._trigger_done = done
            succeeds: bool = self._outcomes.pop(0) if self._outcomes else True
            self._trigger_at = self._timers.now() + self._pickup_time if succeeds else None
        logger.debug("Intake armed for pickup - power=%.2f, will_trip=%s", power, succeeds)

    def set_power(self, power: float) -> None:
        with self._lock:
            if power == 0.0:
                self._drop_requests()
            self._power = power

    def has_captured_object(self) -> bool:
        with self._lock:
            return self._has_object

    def trigger(self) -> None:
        """Freight sensor callback. Safe to call from any thread."""
        with self._lock:
            self._has_object = True
            done: Optional[Signal] = self._trigger_done
            self._trigger_done = None
            self._trigger_at = None
        if done is not None:
            logger.debug("Freight sensor tripped")
            done.set()

    def load(self, has_object: bool = True) -> None:
        """Preload freight, as at the start of a match."""
        with self._lock:
            self._has_object = has_object

    def update(self) -> None:
        """Advance the simulation to the timer service's current time."""
        now: float = self._timers.now()
        timed_done: Optional[Signal] = None

        with self._lock:
            if self._timed_until is not None and now >= self._timed_until:
                if self._power < 0:
                    self._has_object = False
                self._power = 0.0
                timed_done = self._timed_done
                self._timed_done = None
                self._timed_until = None
            trip: bool = self._trigger_at is not None and now >= self._trigger_at

        if timed_done is not None:
            timed_done.set()
        if trip:
            self.trigger()

    def _drop_requests(self) -> None:
        """Forget pending request signals. Caller holds the lock."""
        self._timed_done = None
        self._timed_until = None
        self._trigger_done = None
        self._trigger_at = None

    @property
    def power(self) -> float:
        return self._power

    @property
    def request_pending(self) -> bool:
        with self._lock:
            return self._timed_done is not None or self._trigger_done is not None

    def stats(self) -> dict[str, Any]:
        return {
            "power": self._power,
            "has_object": self._has_object,
            "request_pending": self.request_pending,
        }

    def __repr__(self) -> str:
        return f"SimIntake(power={self._power}, has_object={self._has_object})"
