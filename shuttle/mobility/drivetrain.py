"""
Shuttle Drivetrain Interface
The path-following drivetrain the mission steps command. The real
controller (pure pursuit over odometry) lives outside this package;
the mission only sees this interface. SimDrivetrain stands in for it
on a dev machine and in tests.
"""

import logging
import threading
from typing import Any, Optional
from abc import ABC, abstractmethod

from shuttle.core.config import ShuttleConfig
from shuttle.mobility.pose import Pose
from shuttle.sequencing.signal import Signal
from shuttle.sequencing.delay import TimerService


logger: logging.Logger = logging.getLogger(__name__)


class Drivetrain(ABC):
    """What a mission step may ask of the drivetrain."""

    @abstractmethod
    def path_follow(self, done: Signal, current_pose: Pose, relative: bool, *waypoints: Pose) -> None:
        """Follow waypoints from current_pose; set done on arrival."""

    @abstractmethod
    def cancel(self) -> None:
        """Abandon the active path. done is never set for a cancelled path."""

    @abstractmethod
    def current_pose(self) -> Pose:
        ...

    @abstractmethod
    def set_field_pose(self, pose: Pose) -> None:
        """Overwrite odometry, e.g. at the start position or after squaring on a wall."""

    @abstractmethod
    def set_output_limit(self, fraction: float) -> None:
        ...

    @abstractmethod
    def drive(self, x: float, y: float, rotation: float) -> None:
        """Open-loop holonomic drive. x = strafe, y = forward."""

    @abstractmethod
    def stop(self) -> None:
        ...


class SimDrivetrain(Drivetrain):
    """
    Kinematic stand-in for the real drivetrain.
    Paths complete after distance / (max_speed * output_limit) seconds of
    mission time; open-loop drive integrates power * max_speed. Call
    update() once per tick, or complete() to finish the active path now.
    """

    def __init__(self, timers: TimerService, config: Optional[ShuttleConfig] = None) -> None:
        if config is None:
            config = ShuttleConfig()

        self._timers: TimerService = timers
        self._max_speed: float = config.number("drivetrain", "max_speed_ips", default=40.0)
        self._min_path_time: float = config.number("drivetrain", "min_path_time", default=0.1)

        self._pose: Pose = Pose()
        self._output_limit: float = 1.0
        self._command: tuple[float, float, float] = (0.0, 0.0, 0.0)
        self._path: list[Pose] = []
        self._done: Optional[Signal] = None
        self._finish_at: Optional[float] = None
        self._last_update: Optional[float] = None

        self._paths_started: int = 0
        self._paths_cancelled: int = 0
        self._lock: threading.Lock = threading.Lock()

        logger.info("Simulated drivetrain created - max_speed=%.1f in/s", self._max_speed)

    def path_follow(self, done: Signal, current_pose: Pose, relative: bool, *waypoints: Pose) -> None:
        if not waypoints:
            raise ValueError("path_follow needs at least one waypoint")

        targets: list[Pose] = [wp.relative_to(current_pose) if relative else wp for wp in waypoints]

        distance: float = 0.0
        previous: Pose = current_pose
        for wp in targets:
            distance += previous.distance_to(wp)
            previous = wp

        speed: float = max(self._max_speed * self._output_limit, 1e-6)
        duration: float = max(distance / speed, self._min_path_time)

        with self._lock:
            if self._done is not None:
                logger.debug("Path replaced before completion")
            self._path = targets
            self._done = done
            self._finish_at = self._timers.now() + duration
            self._command = (0.0, 0.0, 0.0)
            self._paths_started += 1

        logger.debug(
            "Path started - %d waypoint(s), %.1f in, %.2fs, relative=%s",
            len(targets), distance, duration, relative
        )

    def cancel(self) -> None:
        with self._lock:
            if self._done is not None:
                self._paths_cancelled += 1
                logger.debug("Path cancelled")
            self._path = []
            self._done = None
            self._finish_at = None

    def current_pose(self) -> Pose:
        with self._lock:
            return self._pose

    def set_field_pose(self, pose: Pose) -> None:
        with self._lock:
            self._pose = pose

    def set_output_limit(self, fraction: float) -> None:
        with self._lock:
            self._output_limit = max(0.0, min(1.0, fraction))

    def drive(self, x: float, y: float, rotation: float) -> None:
        with self._lock:
            self._command = (x, y, rotation)

    def stop(self) -> None:
        with self._lock:
            self._command = (0.0, 0.0, 0.0)

    def complete(self) -> None:
        """Finish the active path immediately, as if it had arrived."""
        with self._lock:
            done: Optional[Signal] = self._arrive()
        if done is not None:
            done.set()

    def update(self) -> None:
        """Advance the simulation to the timer service's current time."""
        now: float = self._timers.now()
        done: Optional[Signal] = None

        with self._lock:
            dt: float = 0.0 if self._last_update is None else now - self._last_update
            self._last_update = now

            x, y, _ = self._command
            if dt > 0 and (x or y):
                offset: Pose = Pose(x * self._max_speed * dt, y * self._max_speed * dt, 0.0)
                moved: Pose = offset.relative_to(self._pose)
                self._pose = Pose(moved.x, moved.y, self._pose.heading)

            if self._finish_at is not None and now >= self._finish_at:
                done = self._arrive()

        if done is not None:
            done.set()

    def _arrive(self) -> Optional[Signal]:
        """Land on the last waypoint and hand back the signal to set. Caller holds the lock."""
        if self._done is None:
            return None
        if self._path:
            self._pose = self._path[-1]
        done: Signal = self._done
        self._path = []
        self._done = None
        self._finish_at = None
        return done

    @property
    def path_active(self) -> bool:
        with self._lock:
            return self._done is not None

    @property
    def output_limit(self) -> float:
        return self._output_limit

    @property
    def command(self) -> tuple[float, float, float]:
        return self._command

    @property
    def path_targets(self) -> list[Pose]:
        with self._lock:
            return list(self._path)

    def stats(self) -> dict[str, Any]:
        return {
            "paths_started": self._paths_started,
            "paths_cancelled": self._paths_cancelled,
            "pose": self._pose.to_dict(),
            "output_limit": self._output_limit,
        }

    def __repr__(self) -> str:
        return f"SimDrivetrain(pose={self._pose}, path_active={self._done is not None})"
