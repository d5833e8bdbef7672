"""
Shuttle Signal
Level-triggered completion flag shared between the scheduler and the
subsystems that finish asynchronous work. Subsystems only ever set it;
the scheduler reads it and clears it when a wait consumes it.
"""

import threading


class Signal:
    """
    A set-once-per-use boolean condition.
    Backed by threading.Event so a sensor callback thread can set it
    while the control loop reads it.
    """

    def __init__(self, name: str = "") -> None:
        self._name: str = name or "signal"
        self._event: threading.Event = threading.Event()

    @property
    def name(self) -> str:
        return self._name

    def set(self) -> None:
        self._event.set()

    def is_set(self) -> bool:
        return self._event.is_set()

    def clear(self) -> None:
        """Reset for reuse. Only the owner of the wait calls this."""
        self._event.clear()

    def __repr__(self) -> str:
        return f"Signal(name='{self._name}', set={self.is_set()})"
