"""
Shuttle Sequencing — Non-blocking step scheduling primitives.
Signals, delays, and the tick-driven step scheduler.
"""

from shuttle.sequencing.signal import Signal
from shuttle.sequencing.delay import Delay, TimerService, ManualClock
from shuttle.sequencing.scheduler import Scheduler, SchedulerError

__all__ = [
    "Signal",
    "Delay",
    "TimerService",
    "ManualClock",
    "Scheduler",
    "SchedulerError",
]
