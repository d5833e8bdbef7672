"""
Shuttle Step Scheduler
Cooperative finite-state engine behind every autonomous mission. The
mission polls it once per control tick; it never blocks and never runs
callbacks. Waiting is expressed as an armed rule (one Signal, or a race
of several) that is evaluated at the top of current_ready_step().

Transition rules:
    - arm_single_wait(signal, step): advance when signal is set
    - arm_race([a, b, ...], step):   advance when any signal is set
    - set_step_immediate(step):      advance now, dispatch in the same tick

Arming always replaces the previous rule. When a rule is consumed the
scheduler clears every Signal it referenced, so a Signal can be reused
for the next wait without the caller resetting it.
"""

import logging
from typing import Generic, Optional, TypeVar
from enum import Enum
from dataclasses import dataclass, field

from shuttle.sequencing.signal import Signal


logger: logging.Logger = logging.getLogger(__name__)

StepT = TypeVar("StepT", bound=Enum)


class SchedulerError(RuntimeError):
    """Raised when a mission drives the scheduler in a way that indicates a logic bug."""
    pass


@dataclass
class WaitRule(Generic[StepT]):
    """The armed rule for leaving the current Step."""
    signals: list[Signal] = field(default_factory=list)
    next_step: Optional[StepT] = None
    race: bool = False

    def satisfied(self) -> bool:
        return any(s.is_set() for s in self.signals)

    def fired(self) -> list[str]:
        return [s.name for s in self.signals if s.is_set()]


class Scheduler(Generic[StepT]):
    """
    Holds the current Step, the armed wait rule, and any pending
    same-tick fallthrough. At most one transition is resolved per
    current_ready_step() call; fallthroughs are handed back to the
    mission through take_fallthrough() so it can dispatch the new Step
    without waiting for the next tick.
    """

    def __init__(self, name: str = "scheduler") -> None:
        self._name: str = name
        self._active: bool = False
        self._current_step: Optional[StepT] = None
        self._rule: Optional[WaitRule[StepT]] = None
        self._fallthrough: bool = False
        self._transitions: int = 0

    def start(self, initial_step: StepT) -> None:
        if self._active:
            self._misuse(f"start({initial_step.name}) while already active")
        self._active = True
        self._current_step = initial_step
        self._rule = None
        self._fallthrough = False
        logger.info("%s: started at %s", self._name, initial_step.name)

    def stop(self) -> None:
        """Deactivate and drop any armed rule. Safe to call repeatedly."""
        if self._rule is not None:
            self._clear_signals(self._rule)
        was_active: bool = self._active
        self._active = False
        self._current_step = None
        self._rule = None
        self._fallthrough = False
        if was_active:
            logger.info("%s: stopped", self._name)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def current_step(self) -> Optional[StepT]:
        """The Step the scheduler is in, waiting or not. None when inactive."""
        return self._current_step if self._active else None

    @property
    def is_waiting(self) -> bool:
        return self._active and self._rule is not None

    @property
    def waiting_on(self) -> list[str]:
        if self._rule is None:
            return []
        return [s.name for s in self._rule.signals]

    @property
    def transitions(self) -> int:
        return self._transitions

    def current_ready_step(self) -> Optional[StepT]:
        """
        Resolve a satisfied wait, then return the Step whose body should run.
        Returns None when inactive or when the armed rule is still pending.
        """
        if not self._active:
            return None

        if self._rule is not None:
            if not self._rule.satisfied():
                return None
            rule: WaitRule[StepT] = self._rule
            logger.debug(
                "%s: %s satisfied by %s",
                self._name, "race" if rule.race else "wait", ", ".join(rule.fired())
            )
            self._rule = None
            self._clear_signals(rule)
            self._transition(rule.next_step)

        self._fallthrough = False
        return self._current_step

    def take_fallthrough(self) -> Optional[StepT]:
        """
        Return the new Step once after set_step_immediate(), else None.
        The mission calls this after each Step body to chain same-tick
        transitions.
        """
        if not self._active or not self._fallthrough:
            return None
        self._fallthrough = False
        return self._current_step

    def arm_single_wait(self, signal: Signal, next_step: StepT) -> None:
        self._require_active(f"arm_single_wait({signal.name}, {next_step.name})")
        self._rule = WaitRule(signals=[signal], next_step=next_step, race=False)
        self._fallthrough = False

    def arm_race(self, signals: list[Signal], next_step: StepT) -> None:
        self._require_active(f"arm_race({next_step.name})")
        if not signals:
            self._misuse(f"arm_race({next_step.name}) with no signals")
        self._rule = WaitRule(signals=list(signals), next_step=next_step, race=True)
        self._fallthrough = False

    def set_step_immediate(self, next_step: StepT) -> None:
        self._require_active(f"set_step_immediate({next_step.name})")
        self._rule = None
        self._transition(next_step)
        self._fallthrough = True

    def _transition(self, next_step: Optional[StepT]) -> None:
        previous: Optional[StepT] = self._current_step
        self._current_step = next_step
        self._transitions += 1
        logger.info(
            "%s: %s -> %s",
            self._name,
            previous.name if previous is not None else "none",
            next_step.name if next_step is not None else "none"
        )

    def _clear_signals(self, rule: WaitRule[StepT]) -> None:
        for signal in rule.signals:
            signal.clear()

    def _require_active(self, operation: str) -> None:
        if not self._active:
            self._misuse(f"{operation} while inactive")

    def _misuse(self, message: str) -> None:
        logger.error("%s: %s", self._name, message)
        raise SchedulerError(f"{self._name}: {message}")

    def __repr__(self) -> str:
        step: str = self._current_step.name if self._current_step is not None else "none"
        return (
            f"Scheduler(name='{self._name}', active={self._active}, "
            f"step={step}, waiting_on={self.waiting_on})"
        )
