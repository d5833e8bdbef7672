"""
Shuttle Autonomous Mission
Scores the preloaded freight on the alliance hub at the level given by
the hint, then shuttles between the warehouse and the hub, picking up
and dumping freight until there is no longer time for a full round trip.

Step sequence:
    START_DELAY -> DRIVE_TO_HUB -> DUMP_FREIGHT -> PREP_FOR_WAREHOUSE
    -> ALIGN_TO_WALL -> DRIVE_INTO_WAREHOUSE -> LOOK_FOR_FREIGHT
    -> PICK_UP_FREIGHT -> DETERMINE_NEXT -> DRIVE_OUT_TO_HUB -> DUMP_FREIGHT ...
    DETERMINE_NEXT -> RETRY_PICKUP -> PICK_UP_FREIGHT   (nothing picked up)
    DETERMINE_NEXT -> DONE                              (out of time)

With back_out_after_pickup the robot leaves the warehouse through
BACK_UP -> REALIGN_TO_WALL -> BACK_OUT_OF_WAREHOUSE -> DRIVE_TO_HUB
instead of DRIVE_OUT_TO_HUB.

Pickup is a race: the intake's freight sensor and the drivetrain's
arrival each set their own Signal, and whichever lands first ends the
step. DETERMINE_NEXT runs in the same tick and stops the loser.

The only bound on the PICK_UP_FREIGHT/RETRY_PICKUP cycle is the time
budget re-checked in DETERMINE_NEXT, plus the optional
max_pickup_retries cap.
"""

import logging
from typing import Any, Callable, Optional
from enum import Enum
from dataclasses import dataclass, field

from shuttle.core.config import ShuttleConfig
from shuttle.sequencing.signal import Signal
from shuttle.sequencing.delay import Delay
from shuttle.sequencing.scheduler import Scheduler, SchedulerError
from shuttle.mobility.pose import Pose
from shuttle.perception.indicator import Pattern
from shuttle.perception.vision import TargetInfo
from shuttle.autonomy.context import RobotContext
from shuttle.autonomy.choices import AutoChoices
from shuttle.autonomy.field_geometry import FieldGeometry


logger: logging.Logger = logging.getLogger(__name__)


class Step(Enum):
    """Mission steps, in declaration order."""
    START_DELAY = "start_delay"
    DRIVE_TO_HUB = "drive_to_hub"
    DUMP_FREIGHT = "dump_freight"
    PREP_FOR_WAREHOUSE = "prep_for_warehouse"
    ALIGN_TO_WALL = "align_to_wall"
    DRIVE_INTO_WAREHOUSE = "drive_into_warehouse"
    LOOK_FOR_FREIGHT = "look_for_freight"
    PICK_UP_FREIGHT = "pick_up_freight"
    DETERMINE_NEXT = "determine_next"
    RETRY_PICKUP = "retry_pickup"
    BACK_UP = "back_up"
    REALIGN_TO_WALL = "realign_to_wall"
    BACK_OUT_OF_WAREHOUSE = "back_out_of_warehouse"
    DRIVE_OUT_TO_HUB = "drive_out_to_hub"
    DONE = "done"


@dataclass
class MissionStatus:
    """Snapshot for status output. A stalled mission shows its step and what it waits on."""
    active: bool = False
    step: str = ""
    waiting_on: list[str] = field(default_factory=list)
    elapsed_seconds: float = 0.0
    hint_position: int = 0
    pickup_retries: int = 0
    heading_increment: float = 0.0
    cycles_completed: int = 0
    freight_dumped: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "active": self.active,
            "step": self.step,
            "waiting_on": self.waiting_on,
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "hint_position": self.hint_position,
            "pickup_retries": self.pickup_retries,
            "heading_increment": self.heading_increment,
            "cycles_completed": self.cycles_completed,
            "freight_dumped": self.freight_dumped
        }


class ShuttleMission:
    """
    The shuttle autonomous routine as a tick-driven command.
    Call tick(elapsed) once per control period; it never blocks and
    returns True once the mission has finished or been cancelled.
    """

    def __init__(
        self,
        context: RobotContext,
        choices: Optional[AutoChoices] = None,
        config: Optional[ShuttleConfig] = None
    ) -> None:
        if config is None:
            config = ShuttleConfig()
        if choices is None:
            choices = AutoChoices.from_config(config)

        self._ctx: RobotContext = context
        self._choices: AutoChoices = choices
        self._geometry: FieldGeometry = FieldGeometry(choices.alliance, config)

        self._time_budget: float = config.require("mission", "time_budget")
        self._cycle_trip_time: float = config.require("mission", "cycle_trip_time")
        self._min_start_delay: float = config.number("mission", "min_start_delay", default=0.0)
        self._fallback_hint: int = config.get("mission", "fallback_hint", default=3)
        self._heading_step: float = config.number("mission", "pickup_heading_step", default=5.0)
        self._max_retries: int = config.get("mission", "max_pickup_retries", default=0)
        self._look_window: float = config.number("mission", "look_window", default=2.0)

        self._dump_power: float = config.number("intake", "dump_power", default=-0.6)
        self._dump_time: float = config.number("intake", "dump_time", default=1.0)
        self._pickup_power: float = config.number("intake", "pickup_power", default=1.0)

        self._pickup_output_limit: float = config.number("drivetrain", "pickup_output_limit", default=0.3)
        self._align_power: float = config.number("drivetrain", "align_power", default=0.3)
        self._align_time: float = config.number("drivetrain", "align_time", default=0.8)
        self._warehouse_power: float = config.number("drivetrain", "warehouse_power", default=0.5)
        self._warehouse_time: float = config.number("drivetrain", "warehouse_time", default=1.0)
        self._realign_time: float = config.number("drivetrain", "realign_time", default=0.5)
        self._back_out_power: float = config.number("drivetrain", "back_out_power", default=-0.3)
        self._back_out_time: float = config.number("drivetrain", "back_out_time", default=1.0)

        self._top_level: int = config.get("arm", "top_level", default=3)
        self._travel_level: int = config.get("arm", "travel_level", default=0)
        self._travel_delay: float = config.number("arm", "travel_delay", default=0.5)

        self._sm: Scheduler[Step] = Scheduler("shuttle")
        self._event: Signal = Signal("event")
        self._pickup_event: Signal = Signal("pickup")
        self._timer: Delay = Delay(context.timers, "shuttle_timer")

        self._looking_pose: Pose = self._geometry.path_point(1.65, -2.7, 90.0)

        self._elapsed: float = 0.0
        self._hint: int = 0
        self._hint_detected: int = 0
        self._use_vision_for_pickup: bool = choices.use_vision_for_pickup
        self._freight_target: Optional[TargetInfo] = None
        self._look_expires: Optional[float] = None
        self._heading_inc: float = 0.0
        self._retries: int = 0
        self._cycles: int = 0
        self._dumped: int = 0

        self._handlers: dict[Step, Callable[[float], None]] = {
            Step.START_DELAY: self._start_delay,
            Step.DRIVE_TO_HUB: self._drive_to_hub,
            Step.DUMP_FREIGHT: self._dump_freight,
            Step.PREP_FOR_WAREHOUSE: self._prep_for_warehouse,
            Step.ALIGN_TO_WALL: self._align_to_wall,
            Step.DRIVE_INTO_WAREHOUSE: self._drive_into_warehouse,
            Step.LOOK_FOR_FREIGHT: self._look_for_freight,
            Step.PICK_UP_FREIGHT: self._pick_up_freight,
            Step.DETERMINE_NEXT: self._determine_next,
            Step.RETRY_PICKUP: self._retry_pickup,
            Step.BACK_UP: self._back_up,
            Step.REALIGN_TO_WALL: self._realign_to_wall,
            Step.BACK_OUT_OF_WAREHOUSE: self._back_out_of_warehouse,
            Step.DRIVE_OUT_TO_HUB: self._drive_out_to_hub,
            Step.DONE: self._done,
        }

        logger.info("Shuttle mission created - choices=%s", choices.to_dict())
        self._sm.start(Step.START_DELAY)

    @property
    def is_active(self) -> bool:
        return self._sm.is_active

    @property
    def current_step(self) -> Optional[Step]:
        return self._sm.current_step

    def cancel(self) -> None:
        """
        Stop every outstanding subsystem request, then the scheduler.
        A collaborator that fails to stop is logged and the rest are
        still stopped; the scheduler always ends inactive.
        """
        if not self._sm.is_active:
            return
        logger.info("Shuttle mission cancelled at %s", self._sm.current_step.name)

        stops: list[tuple[str, Callable[[], None]]] = [
            ("timer", self._timer.cancel),
            ("drivetrain path", self._ctx.drivetrain.cancel),
            ("drivetrain", self._ctx.drivetrain.stop),
            ("intake", lambda: self._ctx.intake.set_power(0.0)),
            ("arm", self._ctx.arm.cancel),
        ]
        try:
            for name, stop in stops:
                try:
                    stop()
                except Exception as e:
                    logger.error("Failed to stop %s on cancel: %s", name, e)
        finally:
            self._sm.stop()

    def tick(self, elapsed_time: float) -> bool:
        """
        Drive the mission forward by one control period.
        Runs the body of the ready step plus any same-tick fallthroughs.
        Returns True when the mission is no longer active.
        """
        self._elapsed = elapsed_time
        step: Optional[Step] = self._sm.current_ready_step()
        hops: int = 0

        try:
            while step is not None:
                hops += 1
                if hops > len(Step):
                    raise SchedulerError(f"fallthrough did not settle within {len(Step)} steps")
                self._handlers[step](elapsed_time)
                logger.debug("[%.3f] ran %s, state=%s", elapsed_time, step.name, self._sm)
                step = self._sm.take_fallthrough()
        except Exception as e:
            logger.exception("Step %s failed - cancelling mission: %s", step.name if step else "?", e)
            self.cancel()

        return not self._sm.is_active

    @property
    def status(self) -> MissionStatus:
        step: Optional[Step] = self._sm.current_step
        return MissionStatus(
            active=self._sm.is_active,
            step=step.name if step is not None else "",
            waiting_on=self._sm.waiting_on,
            elapsed_seconds=self._elapsed,
            hint_position=self._hint_detected,
            pickup_retries=self._retries,
            heading_increment=self._heading_inc,
            cycles_completed=self._cycles,
            freight_dumped=self._dumped
        )

    # ------------------------------------------------------------------
    # Step bodies
    # ------------------------------------------------------------------

    def _start_delay(self, elapsed: float) -> None:
        self._ctx.drivetrain.set_field_pose(self._geometry.start_pose())
        self._hint = self._resolve_hint()
        self._hint_detected = self._hint
        self._ctx.arm.set_preset_position(self._hint)

        delay: float = max(self._choices.start_delay, self._min_start_delay)
        if delay == 0.0:
            # Intentional same-tick fallthrough.
            self._sm.set_step_immediate(Step.DRIVE_TO_HUB)
        else:
            self._timer.arm(delay, self._event)
            self._sm.arm_single_wait(self._event, Step.DRIVE_TO_HUB)

    def _drive_to_hub(self, elapsed: float) -> None:
        self._ctx.drivetrain.stop()
        self._follow(self._geometry.hub_approach(self._hint))
        self._ctx.arm.set_preset_position(self._hint)
        # Only the first dump scores the hint bonus; every later one goes to the top.
        self._hint = self._top_level
        self._sm.arm_single_wait(self._event, Step.DUMP_FREIGHT)

    def _dump_freight(self, elapsed: float) -> None:
        self._show(Pattern.GOT_TARGET, False)
        self._show(Pattern.SAW_TARGET, False)
        self._ctx.intake.run_timed(self._dump_power, self._dump_time, self._event)
        self._dumped += 1
        self._sm.arm_single_wait(self._event, Step.PREP_FOR_WAREHOUSE)

    def _prep_for_warehouse(self, elapsed: float) -> None:
        self._ctx.arm.set_preset_position(self._travel_level, delay=self._travel_delay)
        self._follow(self._geometry.path_point(0.5, -2.5, 90.0))
        self._sm.arm_single_wait(self._event, Step.ALIGN_TO_WALL)

    def _align_to_wall(self, elapsed: float) -> None:
        self._ctx.drivetrain.drive(self._geometry.strafe_toward_wall(self._align_power), 0.0, 0.0)
        self._timer.arm(self._align_time, self._event)
        self._sm.arm_single_wait(self._event, Step.DRIVE_INTO_WAREHOUSE)

    def _drive_into_warehouse(self, elapsed: float) -> None:
        drivetrain = self._ctx.drivetrain
        drivetrain.stop()
        drivetrain.set_field_pose(self._geometry.wall_relocalized(drivetrain.current_pose()))
        drivetrain.set_output_limit(1.0)
        drivetrain.drive(0.0, self._warehouse_power, 0.0)
        self._timer.arm(self._warehouse_time, self._event)
        self._sm.arm_single_wait(self._event, Step.LOOK_FOR_FREIGHT)

    def _look_for_freight(self, elapsed: float) -> None:
        vision = self._ctx.vision
        if not self._use_vision_for_pickup or vision is None or not vision.has_freight_detector:
            self._sm.set_step_immediate(Step.PICK_UP_FREIGHT)
            return

        if self._look_expires is None:
            # Hold still while the camera looks.
            self._ctx.drivetrain.stop()
            self._look_expires = elapsed + self._look_window

        target: Optional[TargetInfo] = vision.closest_freight()
        if target is not None:
            logger.info("Freight seen at %s", target.to_dict())
            self._freight_target = target
            self._look_expires = None
            self._show(Pattern.SAW_TARGET, True)
            self._sm.set_step_immediate(Step.PICK_UP_FREIGHT)
        elif elapsed > self._look_expires:
            # Vision is not finding freight; stop spending time on it this match.
            logger.warning("No freight seen in %.1fs - vision pickup disabled", self._look_window)
            self._use_vision_for_pickup = False
            self._look_expires = None
            self._sm.set_step_immediate(Step.PICK_UP_FREIGHT)

    def _pick_up_freight(self, elapsed: float) -> None:
        drivetrain = self._ctx.drivetrain
        self._ctx.intake.run_until_triggered(self._pickup_power, self._pickup_event)
        drivetrain.set_output_limit(self._pickup_output_limit)

        if self._freight_target is not None:
            target: TargetInfo = self._freight_target
            self._freight_target = None
            drivetrain.path_follow(
                self._event, drivetrain.current_pose(), True,
                Pose(target.x, target.y, target.angle)
            )
        else:
            self._follow(self._geometry.path_point(2.6, -2.6, 90.0 - self._heading_inc))

        self._sm.arm_race([self._event, self._pickup_event], Step.DETERMINE_NEXT)

    def _determine_next(self, elapsed: float) -> None:
        self._stop_pickup()

        remaining: float = self._time_budget - elapsed
        if remaining <= self._cycle_trip_time:
            logger.info("%.1fs left, not enough for a round trip - finishing", remaining)
            self._sm.set_step_immediate(Step.DONE)
        elif self._ctx.intake.has_captured_object():
            self._show(Pattern.GOT_TARGET, True)
            # Keep the intake running so the freight does not fall out.
            self._ctx.intake.set_power(self._pickup_power)
            self._cycles += 1
            if self._choices.back_out_after_pickup:
                self._sm.set_step_immediate(Step.BACK_UP)
            else:
                self._sm.set_step_immediate(Step.DRIVE_OUT_TO_HUB)
        elif self._max_retries and self._retries >= self._max_retries:
            logger.warning("Pickup retry limit %d reached - finishing", self._max_retries)
            self._sm.set_step_immediate(Step.DONE)
        else:
            self._sm.set_step_immediate(Step.RETRY_PICKUP)

    def _retry_pickup(self, elapsed: float) -> None:
        self._follow(self._looking_pose)
        self._heading_inc += self._heading_step
        self._retries += 1
        logger.info("Pickup retry %d, heading offset %.1f", self._retries, self._heading_inc)
        self._sm.arm_single_wait(self._event, Step.PICK_UP_FREIGHT)

    def _back_up(self, elapsed: float) -> None:
        self._follow(self._geometry.path_point(1.3, -2.6, 90.0))
        self._sm.arm_single_wait(self._event, Step.REALIGN_TO_WALL)

    def _realign_to_wall(self, elapsed: float) -> None:
        self._ctx.drivetrain.drive(self._geometry.strafe_toward_wall(self._align_power), 0.0, 0.0)
        self._timer.arm(self._realign_time, self._event)
        self._sm.arm_single_wait(self._event, Step.BACK_OUT_OF_WAREHOUSE)

    def _back_out_of_warehouse(self, elapsed: float) -> None:
        self._ctx.drivetrain.drive(0.0, self._back_out_power, 0.0)
        self._timer.arm(self._back_out_time, self._event)
        self._sm.arm_single_wait(self._event, Step.DRIVE_TO_HUB)

    def _drive_out_to_hub(self, elapsed: float) -> None:
        self._ctx.arm.set_preset_position(self._top_level)
        point = self._geometry.path_point
        self._follow(
            point(1.5, -2.65, 90.0),
            point(-0.4, -2.65, 90.0),
            point(-0.4, -2.5, 0.0),
            point(-0.3, -1.8, 0.0)
        )
        self._sm.arm_single_wait(self._event, Step.DUMP_FREIGHT)

    def _done(self, elapsed: float) -> None:
        # Zero calibrating lowers the arm home.
        self._ctx.arm.zero_calibrate()
        logger.info("Shuttle mission complete - %s", self.status.to_dict())
        self.cancel()

    # ------------------------------------------------------------------

    def _resolve_hint(self) -> int:
        position: int = 0
        if self._ctx.vision is not None:
            position = self._ctx.vision.detect_hint_position()

        if position == 0:
            position = self._fallback_hint
            logger.info("No hint found, defaulting to position %d", position)
        else:
            logger.info("Hint found at position %d", position)
        return position

    def _follow(self, *waypoints: Pose) -> None:
        drivetrain = self._ctx.drivetrain
        drivetrain.path_follow(self._event, drivetrain.current_pose(), False, *waypoints)

    def _stop_pickup(self) -> None:
        """Stop whichever half of the pickup race is still running."""
        self._ctx.drivetrain.cancel()
        self._ctx.intake.set_power(0.0)
        self._ctx.drivetrain.set_output_limit(1.0)
        # Both requests are stopped now. A sensor that fired after the race
        # resolved must not satisfy the next race on the same signals.
        self._event.clear()
        self._pickup_event.clear()

    def _show(self, pattern: Pattern, on: bool) -> None:
        if self._ctx.indicator is not None:
            self._ctx.indicator.set_pattern_state(pattern, on)

    def __repr__(self) -> str:
        return f"ShuttleMission(alliance={self._choices.alliance.value}, scheduler={self._sm})"
