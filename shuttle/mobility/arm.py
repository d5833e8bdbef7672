"""
Shuttle Arm Interface
Preset-level lift arm. Levels 1-3 match the hub tiers; level 0 is the
travel/home position.
"""

import logging
from typing import Optional
from abc import ABC, abstractmethod

from shuttle.core.config import ShuttleConfig
from shuttle.sequencing.delay import TimerService


logger: logging.Logger = logging.getLogger(__name__)


class Arm(ABC):

    @abstractmethod
    def set_preset_position(self, level: int, delay: float = 0.0) -> None:
        """Move to a preset level, optionally after delay seconds."""

    @abstractmethod
    def cancel(self) -> None:
        """Drop a delayed move that has not started yet."""

    @abstractmethod
    def zero_calibrate(self) -> None:
        """Lower to the hard stop and re-zero. Leaves the arm home."""


class SimArm(Arm):
    """Records the commanded level; delayed moves land on update()."""

    def __init__(self, timers: TimerService, config: Optional[ShuttleConfig] = None) -> None:
        if config is None:
            config = ShuttleConfig()

        self._timers: TimerService = timers
        self._max_level: int = config.get("arm", "max_level", default=3)
        self._level: int = 0
        self._pending: Optional[tuple[int, float]] = None
        self._calibrated: bool = False

    def set_preset_position(self, level: int, delay: float = 0.0) -> None:
        if level < 0 or level > self._max_level:
            raise ValueError(f"Arm level {level} outside 0..{self._max_level}")
        if delay > 0:
            self._pending = (level, self._timers.now() + delay)
        else:
            self._pending = None
            self._level = level
        logger.debug("Arm preset level=%d delay=%.2fs", level, delay)

    def cancel(self) -> None:
        if self._pending is not None:
            logger.debug("Arm delayed move to level %d dropped", self._pending[0])
        self._pending = None

    def zero_calibrate(self) -> None:
        self._pending = None
        self._level = 0
        self._calibrated = True
        logger.debug("Arm zero calibrated")

    def update(self) -> None:
        if self._pending is not None and self._timers.now() >= self._pending[1]:
            self._level = self._pending[0]
            self._pending = None

    @property
    def level(self) -> int:
        return self._level

    @property
    def calibrated(self) -> bool:
        return self._calibrated
