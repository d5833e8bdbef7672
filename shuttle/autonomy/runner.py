"""
Shuttle Auto Runner
The external tick driver. Once per control period it fires expired
delays, advances simulated subsystems, and ticks the mission with the
elapsed mission time. It owns the cadence; the mission owns the logic.
"""

import time
import logging
from typing import Any, Callable, Optional
from dataclasses import dataclass, field

from shuttle.core.config import ShuttleConfig
from shuttle.autonomy.context import RobotContext
from shuttle.autonomy.shuttle_mission import ShuttleMission


logger: logging.Logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one mission run."""
    completed: bool = False
    timed_out: bool = False
    ticks: int = 0
    elapsed_seconds: float = 0.0
    final_status: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "completed": self.completed,
            "timed_out": self.timed_out,
            "ticks": self.ticks,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "final_status": self.final_status
        }


class AutoRunner:
    """
    Fixed-cadence loop around a ShuttleMission.
    Time comes from the context's TimerService so the mission, its
    delays, and the simulation all agree on "now". Pass a sleep that
    advances a ManualClock to run faster than real time.
    """

    def __init__(
        self,
        mission: ShuttleMission,
        context: RobotContext,
        config: Optional[ShuttleConfig] = None,
        sleep: Optional[Callable[[float], None]] = None
    ) -> None:
        if config is None:
            config = ShuttleConfig()

        self._mission: ShuttleMission = mission
        self._ctx: RobotContext = context
        self._sleep: Callable[[float], None] = sleep or time.sleep

        self._period: float = config.number("system", "tick_period", default=0.05)
        self._budget: float = config.number("mission", "time_budget", default=30.0)
        self._grace: float = config.number("system", "overrun_grace", default=2.0)

        self._status_callback: Optional[Callable[[dict[str, Any]], None]] = None
        self._status_interval: int = max(1, int(round(1.0 / self._period)))

        logger.info(
            "Auto runner created - period=%.3fs, budget=%.1fs, grace=%.1fs",
            self._period, self._budget, self._grace
        )

    def register_status_callback(self, callback: Callable[[dict[str, Any]], None]) -> None:
        """Register callback for periodic status: callback(status_dict), about once a second."""
        self._status_callback = callback

    def step(self, elapsed: float) -> bool:
        """One control period. Returns True when the mission has finished."""
        self._ctx.timers.poll()
        self._ctx.update_simulation()
        return self._mission.tick(elapsed)

    def run(self) -> RunResult:
        """Tick until the mission finishes or overruns its budget."""
        timers = self._ctx.timers
        start: float = timers.now()
        result: RunResult = RunResult()

        while True:
            tick_start: float = timers.now()
            elapsed: float = tick_start - start

            done: bool = self.step(elapsed)
            result.ticks += 1

            if done:
                result.completed = True
                break

            if elapsed > self._budget + self._grace:
                logger.warning(
                    "Mission overran %.1fs budget, stuck at %s - cancelling",
                    self._budget, self._mission.status.step
                )
                self._mission.cancel()
                result.timed_out = True
                break

            if self._status_callback and result.ticks % self._status_interval == 0:
                try:
                    self._status_callback(self._mission.status.to_dict())
                except Exception as e:
                    logger.error("Status callback error: %s", e)

            remaining: float = self._period - (timers.now() - tick_start)
            if remaining > 0:
                self._sleep(remaining)

        result.elapsed_seconds = timers.now() - start
        result.final_status = self._mission.status.to_dict()
        logger.info("Run finished - %s", {k: v for k, v in result.to_dict().items() if k != "final_status"})
        return result
