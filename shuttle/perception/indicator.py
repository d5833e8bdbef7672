"""
Shuttle Status Indicator
LED pattern states the mission and vision turn on and off. The real
LED driver sits outside this package and resolves overlapping states
by its own priority order.
"""

import logging
from enum import Enum
from abc import ABC, abstractmethod


logger: logging.Logger = logging.getLogger(__name__)


class Pattern(Enum):
    """Named indicator states, highest priority last."""
    HINT_POS_1 = "hint_pos_1"
    HINT_POS_2 = "hint_pos_2"
    HINT_POS_3 = "hint_pos_3"
    SAW_TARGET = "saw_target"
    GOT_TARGET = "got_target"


HINT_PATTERNS: dict[int, Pattern] = {
    1: Pattern.HINT_POS_1,
    2: Pattern.HINT_POS_2,
    3: Pattern.HINT_POS_3,
}


class StatusIndicator(ABC):

    @abstractmethod
    def set_pattern_state(self, pattern: Pattern, on: bool) -> None:
        ...


class SimIndicator(StatusIndicator):
    """Keeps the set of patterns that are currently on."""

    def __init__(self) -> None:
        self._active: set[Pattern] = set()

    def set_pattern_state(self, pattern: Pattern, on: bool) -> None:
        if on:
            self._active.add(pattern)
        else:
            self._active.discard(pattern)
        logger.debug("Indicator %s -> %s", pattern.value, "on" if on else "off")

    def is_on(self, pattern: Pattern) -> bool:
        return pattern in self._active

    @property
    def active(self) -> set[Pattern]:
        return set(self._active)
