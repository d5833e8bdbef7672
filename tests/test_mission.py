"""
Tests for shuttle.autonomy.shuttle_mission — ShuttleMission
Drives the mission tick by tick on a manual clock against the simulated
robot. Covers the start delay, the pickup race, the time budget check,
retries, the back-out sequence, vision-guided pickup, cancellation, and
error containment at the tick boundary.
"""

import pytest
from typing import Any, Callable, Optional
from unittest.mock import MagicMock

from shuttle.core.config import ShuttleConfig, ConfigError
from shuttle.sequencing.delay import ManualClock, TimerService
from shuttle.mobility.arm import Arm, SimArm
from shuttle.mobility.drivetrain import Drivetrain, SimDrivetrain
from shuttle.mobility.intake import Intake, SimIntake
from shuttle.mobility.pose import Pose
from shuttle.perception.indicator import Pattern, StatusIndicator
from shuttle.perception.vision import (
    Vision, CachedHintDetector, FreightDetector, TargetInfo, SimCamera
)
from shuttle.autonomy.field_geometry import Alliance
from shuttle.autonomy.choices import AutoChoices
from shuttle.autonomy.context import RobotContext
from shuttle.autonomy.shuttle_mission import ShuttleMission, Step
from shuttle.autonomy.runner import AutoRunner


PERIOD: float = 0.05


class Harness:
    """Steps a mission one control period at a time on a ManualClock."""

    def __init__(
        self,
        mission: ShuttleMission,
        robot: RobotContext,
        clock: ManualClock,
        config: ShuttleConfig
    ) -> None:
        self.mission: ShuttleMission = mission
        self.robot: RobotContext = robot
        self.clock: ManualClock = clock
        self.runner: AutoRunner = AutoRunner(mission, robot, config)
        self.visited: list[Step] = []

    def tick(self) -> bool:
        done: bool = self.runner.step(self.clock())
        step: Optional[Step] = self.mission.current_step
        if step is not None and (not self.visited or self.visited[-1] != step):
            self.visited.append(step)
        self.clock.advance(PERIOD)
        return done

    def advance_until(self, condition: Callable[[], bool], limit: int = 2000) -> int:
        for count in range(1, limit + 1):
            self.tick()
            if condition():
                return count
        raise AssertionError(f"condition not reached in {limit} ticks, at {self.mission.current_step}")

    def at(self, step: Step) -> Callable[[], bool]:
        return lambda: self.mission.current_step == step


class FixedFreight(FreightDetector):
    def __init__(self, target: Optional[TargetInfo]) -> None:
        self._target: Optional[TargetInfo] = target

    def closest_target(self) -> Optional[TargetInfo]:
        return self._target


class SensorOnCancelDrivetrain(SimDrivetrain):
    """Trips the intake sensor from inside cancel(), as a sensor thread could."""

    def __init__(self, timers: TimerService, config: ShuttleConfig, intake: SimIntake) -> None:
        super().__init__(timers, config)
        self._intake: SimIntake = intake

    def cancel(self) -> None:
        super().cancel()
        self._intake.trigger()


def make(
    timers: TimerService,
    clock: ManualClock,
    config: ShuttleConfig,
    choices: Optional[AutoChoices] = None,
    prescan_position: int = 0,
    pickup_outcomes: Optional[list[bool]] = None,
    camera: Optional[SimCamera] = None
) -> Harness:
    robot: RobotContext = RobotContext.simulated(
        timers, config,
        prescan_position=prescan_position,
        pickup_outcomes=pickup_outcomes,
        camera=camera
    )
    mission: ShuttleMission = ShuttleMission(robot, choices or AutoChoices(), config)
    return Harness(mission, robot, clock, config)


class TestStart:
    """START_DELAY and the hint."""

    def test_active_after_construction(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        assert h.mission.is_active
        assert h.mission.current_step == Step.START_DELAY

    def test_zero_delay_reaches_drive_to_hub_on_first_tick(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        assert h.tick() is False
        assert h.mission.current_step == Step.DRIVE_TO_HUB
        assert h.robot.drivetrain.path_active
        assert h.mission.status.waiting_on == ["event"]

    def test_start_delay_waits(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(start_delay=1.0))
        h.tick()
        assert h.mission.current_step == Step.START_DELAY
        assert not h.robot.drivetrain.path_active

        ticks: int = h.advance_until(h.at(Step.DRIVE_TO_HUB))
        assert ticks == pytest.approx(1.0 / PERIOD, abs=1)

    def test_min_start_delay_clamps(self, timers, clock, config) -> None:
        config._data["mission"]["min_start_delay"] = 0.5
        h: Harness = make(timers, clock, config)
        h.tick()
        assert h.mission.current_step == Step.START_DELAY

    def test_no_hint_uses_fallback(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.tick()
        assert h.mission.status.hint_position == 3
        assert h.robot.arm.level == 3

    def test_prescan_hint_sets_arm_and_indicator(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, prescan_position=1)
        h.tick()
        assert h.mission.status.hint_position == 1
        assert h.robot.arm.level == 1
        assert h.robot.indicator.is_on(Pattern.HINT_POS_1)
        assert not h.robot.indicator.is_on(Pattern.HINT_POS_3)

    def test_start_pose_set(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.tick()
        pose: Pose = h.robot.drivetrain.current_pose()
        assert pose.x == pytest.approx(0.25 * 24)
        assert pose.y == pytest.approx(-2.65 * 24)
        assert h.robot.drivetrain.stats()["paths_started"] == 1

    def test_blue_alliance_mirrors_hub_approach(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(alliance=Alliance.BLUE))
        h.tick()
        target: Pose = h.robot.drivetrain.path_targets[-1]
        assert target.heading == pytest.approx(210.0)
        assert target.y > 0

    def test_missing_time_budget_rejected(self, timers, clock, config) -> None:
        del config._data["mission"]["time_budget"]
        with pytest.raises(ConfigError, match="time_budget"):
            make(timers, clock, config)


class TestFirstCycle:
    """Preloaded freight is dumped, then the robot heads for the warehouse."""

    def test_dump_then_warehouse(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert h.visited == [
            Step.DRIVE_TO_HUB,
            Step.DUMP_FREIGHT,
            Step.PREP_FOR_WAREHOUSE,
            Step.ALIGN_TO_WALL,
            Step.DRIVE_INTO_WAREHOUSE,
            Step.PICK_UP_FREIGHT,
        ]
        assert h.mission.status.freight_dumped == 1
        assert not h.robot.intake.has_captured_object()

    def test_dump_empties_intake(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.advance_until(h.at(Step.DUMP_FREIGHT))
        assert h.robot.intake.power < 0
        h.advance_until(h.at(Step.PREP_FOR_WAREHOUSE))
        assert not h.robot.intake.has_captured_object()

    def test_later_dumps_use_top_level(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, prescan_position=1)
        h.advance_until(h.at(Step.DRIVE_OUT_TO_HUB))
        assert h.robot.arm.level == 3

    def test_wall_relocalization(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.advance_until(h.at(Step.DRIVE_INTO_WAREHOUSE))
        pose: Pose = h.robot.drivetrain.current_pose()
        assert pose.heading == 90.0
        assert pose.y == pytest.approx(-(72.0 - 7.0))
        assert h.robot.drivetrain.command == (0.0, 0.5, 0.0)


class TestPickupRace:
    """PICK_UP_FREIGHT races the intake sensor against path arrival."""

    def test_intake_wins_on_fifth_tick(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        drivetrain: SimDrivetrain = h.robot.drivetrain
        cancelled: int = drivetrain.stats()["paths_cancelled"]
        assert drivetrain.output_limit == pytest.approx(0.3)

        for _ in range(4):
            h.tick()
            assert h.mission.current_step == Step.PICK_UP_FREIGHT

        h.robot.intake.trigger()
        h.tick()

        assert h.mission.current_step == Step.DRIVE_OUT_TO_HUB
        assert drivetrain.stats()["paths_cancelled"] == cancelled + 1
        assert drivetrain.output_limit == 1.0
        assert h.robot.intake.power == 1.0
        assert h.robot.indicator.is_on(Pattern.GOT_TARGET)
        assert h.mission.status.cycles_completed == 1

    def test_drive_wins_intake_stopped(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert h.robot.intake.request_pending

        h.robot.drivetrain.complete()
        h.tick()

        assert h.mission.current_step == Step.RETRY_PICKUP
        assert not h.robot.intake.request_pending
        assert h.robot.intake.power == 0.0
        assert h.mission.status.pickup_retries == 1
        assert h.mission.status.heading_increment == 5.0

    def test_both_finish_same_tick_single_transition(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))

        h.robot.drivetrain.complete()
        h.robot.intake.trigger()
        h.tick()

        assert h.mission.current_step == Step.DRIVE_OUT_TO_HUB
        h.tick()
        assert h.mission.current_step == Step.DRIVE_OUT_TO_HUB

    def test_simulated_sensor_trips(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        ticks: int = h.advance_until(h.at(Step.DRIVE_OUT_TO_HUB))
        assert ticks <= int(0.6 / PERIOD) + 2

    def test_late_sensor_does_not_resolve_next_race(self, timers, clock, config) -> None:
        intake: SimIntake = SimIntake(timers, config, pickup_outcomes=[False, False])
        intake.load()
        robot: RobotContext = RobotContext(
            timers=timers,
            drivetrain=SensorOnCancelDrivetrain(timers, config, intake),
            intake=intake,
            arm=SimArm(timers, config)
        )
        h: Harness = Harness(ShuttleMission(robot, AutoChoices(), config), robot, clock, config)

        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        robot.drivetrain.complete()
        h.tick()
        assert h.mission.current_step == Step.DRIVE_OUT_TO_HUB

        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        pose: Pose = robot.drivetrain.current_pose()
        h.tick()

        assert h.mission.current_step == Step.PICK_UP_FREIGHT
        assert h.mission.status.pickup_retries == 0
        assert robot.drivetrain.path_active
        assert intake.request_pending
        assert robot.drivetrain.current_pose() == pose


class TestRetry:
    """Failed pickups retry with a growing heading offset."""

    def test_retry_heading_increments(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False, False])
        h.advance_until(h.at(Step.RETRY_PICKUP))
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert h.robot.drivetrain.path_targets[-1].heading == pytest.approx(85.0)

        h.advance_until(h.at(Step.RETRY_PICKUP))
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert h.robot.drivetrain.path_targets[-1].heading == pytest.approx(80.0)
        assert h.mission.status.pickup_retries == 2

    def test_retry_goes_to_looking_pose(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.RETRY_PICKUP))
        target: Pose = h.robot.drivetrain.path_targets[-1]
        assert target.x == pytest.approx(1.65 * 24)
        assert target.y == pytest.approx(-2.7 * 24)
        assert target.heading == 90.0

    def test_retry_cap_finishes(self, timers, clock, config) -> None:
        config._data["mission"]["max_pickup_retries"] = 1
        h: Harness = make(timers, clock, config, pickup_outcomes=[False] * 5)
        h.advance_until(lambda: not h.mission.is_active)
        assert h.mission.status.pickup_retries == 1
        assert h.robot.arm.calibrated

    def test_uncapped_retries_end_at_budget(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False] * 100)
        h.advance_until(lambda: not h.mission.is_active)
        assert clock() <= 30.0
        assert h.mission.status.pickup_retries >= 2
        assert h.mission.status.freight_dumped == 1


class TestBudget:
    """DETERMINE_NEXT finishes when no round trip fits in the remaining time."""

    def test_budget_exceeded_goes_done(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))

        clock.set(26.0)
        h.robot.intake.trigger()
        assert h.tick() is True

        assert not h.mission.is_active
        assert h.robot.arm.calibrated
        assert h.robot.arm.level == 0
        assert h.robot.intake.power == 0.0
        assert h.robot.drivetrain.command == (0.0, 0.0, 0.0)

    def test_exact_trip_time_left_goes_done(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))

        clock.set(25.0)
        h.robot.intake.trigger()
        assert h.tick() is True


class TestBackOut:
    """back_out_after_pickup replaces DRIVE_OUT_TO_HUB with the back-out sequence."""

    def test_back_out_sequence(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(back_out_after_pickup=True))
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        start: int = len(h.visited) - 1

        h.advance_until(h.at(Step.DUMP_FREIGHT))
        assert h.visited[start:] == [
            Step.PICK_UP_FREIGHT,
            Step.BACK_UP,
            Step.REALIGN_TO_WALL,
            Step.BACK_OUT_OF_WAREHOUSE,
            Step.DRIVE_TO_HUB,
            Step.DUMP_FREIGHT,
        ]
        assert Step.DRIVE_OUT_TO_HUB not in h.visited

    def test_back_out_reverses(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(back_out_after_pickup=True))
        h.advance_until(h.at(Step.BACK_OUT_OF_WAREHOUSE))
        assert h.robot.drivetrain.command == (0.0, -0.3, 0.0)


class TestVisionPickup:
    """LOOK_FOR_FREIGHT steers the pickup toward a seen target."""

    def _with_freight(self, h: Harness, target: Optional[TargetInfo]) -> None:
        h.robot.vision = Vision(
            [CachedHintDetector(2)],
            freight_detector=FixedFreight(target),
            indicator=h.robot.indicator
        )

    def test_target_drives_relative_path(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(use_vision_for_pickup=True))
        self._with_freight(h, TargetInfo(x=0.0, y=18.0, angle=0.0, pixels=120))

        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert h.mission.status.hint_position == 2
        assert h.robot.indicator.is_on(Pattern.SAW_TARGET)

        pose: Pose = h.robot.drivetrain.current_pose()
        target: Pose = h.robot.drivetrain.path_targets[-1]
        assert target.x == pytest.approx(pose.x + 18.0)
        assert target.y == pytest.approx(pose.y)
        assert target.heading == pytest.approx(90.0)

    def test_no_target_times_out_and_disables(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(use_vision_for_pickup=True))
        self._with_freight(h, None)

        h.advance_until(h.at(Step.LOOK_FOR_FREIGHT))
        looked_at: float = clock()
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert clock() - looked_at == pytest.approx(2.0, abs=0.2)

        target: Pose = h.robot.drivetrain.path_targets[-1]
        assert target.x == pytest.approx(2.6 * 24)
        assert target.heading == pytest.approx(90.0)

    def test_robot_holds_still_while_looking(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(use_vision_for_pickup=True))
        self._with_freight(h, None)

        h.advance_until(h.at(Step.LOOK_FOR_FREIGHT))
        assert h.robot.drivetrain.command == (0.0, 0.0, 0.0)
        pose: Pose = h.robot.drivetrain.current_pose()
        for _ in range(5):
            h.tick()
        assert h.mission.current_step == Step.LOOK_FOR_FREIGHT
        assert h.robot.drivetrain.current_pose() == pose

    def test_disabled_look_falls_through(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert Step.LOOK_FOR_FREIGHT not in h.visited

    def test_simulated_camera_end_to_end(self, timers, clock, config) -> None:
        camera: SimCamera = SimCamera.from_config(config, hint_position=1, freight_visible=True)
        h: Harness = make(timers, clock, config, AutoChoices(use_vision_for_pickup=True), camera=camera)

        h.advance_until(h.at(Step.PICK_UP_FREIGHT))
        assert h.mission.status.hint_position == 1
        assert h.robot.vision.last_source == "blob"
        assert h.robot.indicator.is_on(Pattern.SAW_TARGET)
        assert Step.LOOK_FOR_FREIGHT in h.visited


class TestCancel:
    """cancel() stops every outstanding request and is idempotent."""

    def test_cancel_mid_race(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, pickup_outcomes=[False])
        h.advance_until(h.at(Step.PICK_UP_FREIGHT))

        h.mission.cancel()
        assert not h.mission.is_active
        assert h.mission.current_step is None
        assert not h.robot.drivetrain.path_active
        assert not h.robot.intake.request_pending
        assert h.robot.intake.power == 0.0

        h.robot.intake.trigger()
        assert h.tick() is True
        assert h.mission.current_step is None

    def test_cancel_drops_pending_delay(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config, AutoChoices(start_delay=5.0))
        h.tick()
        assert timers.pending == 1
        h.mission.cancel()
        assert timers.pending == 0

    def test_cancel_drops_delayed_arm_move(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.advance_until(h.at(Step.PREP_FOR_WAREHOUSE))
        level: int = h.robot.arm.level
        assert level == 3

        h.mission.cancel()
        clock.advance(1.0)
        h.robot.update_simulation()
        assert h.robot.arm.level == level

    def test_terminal_ticks_touch_no_collaborator(self, timers, clock, config) -> None:
        drivetrain: MagicMock = MagicMock(spec=Drivetrain)
        drivetrain.current_pose.return_value = Pose()
        intake: MagicMock = MagicMock(spec=Intake)
        arm: MagicMock = MagicMock(spec=Arm)
        vision: MagicMock = MagicMock(spec=Vision)
        vision.detect_hint_position.return_value = 2
        indicator: MagicMock = MagicMock(spec=StatusIndicator)
        robot: RobotContext = RobotContext(
            timers=timers,
            drivetrain=drivetrain,
            intake=intake,
            arm=arm,
            vision=vision,
            indicator=indicator
        )
        mission: ShuttleMission = ShuttleMission(robot, AutoChoices(), config)
        assert mission.tick(0.0) is False

        mission.cancel()
        collaborators: list[MagicMock] = [drivetrain, intake, arm, vision, indicator]
        for collaborator in collaborators:
            collaborator.reset_mock()

        mission.cancel()
        for elapsed in (0.05, 0.10, 0.15):
            assert mission.tick(elapsed) is True

        for collaborator in collaborators:
            assert collaborator.mock_calls == []
        assert mission.status.active is False
        assert mission.status.step == ""


class TestErrorContainment:
    """Nothing escapes tick(); a failing step cancels the mission."""

    def test_step_exception_cancels(self, timers, clock, config) -> None:
        arm: MagicMock = MagicMock(spec=Arm)
        arm.set_preset_position.side_effect = RuntimeError("arm fault")
        intake: SimIntake = SimIntake(timers, config)
        robot: RobotContext = RobotContext(
            timers=timers,
            drivetrain=SimDrivetrain(timers, config),
            intake=intake,
            arm=arm
        )
        mission: ShuttleMission = ShuttleMission(robot, AutoChoices(), config)

        assert mission.tick(0.0) is True
        assert not mission.is_active
        assert mission.tick(0.05) is True

    def test_failing_stop_still_terminates(self, timers, clock, config) -> None:
        drivetrain: MagicMock = MagicMock(spec=Drivetrain)
        drivetrain.current_pose.return_value = Pose()
        drivetrain.path_follow.side_effect = RuntimeError("bus fault")
        drivetrain.cancel.side_effect = RuntimeError("bus fault")
        intake: MagicMock = MagicMock(spec=Intake)
        arm: MagicMock = MagicMock(spec=Arm)
        robot: RobotContext = RobotContext(timers=timers, drivetrain=drivetrain, intake=intake, arm=arm)
        mission: ShuttleMission = ShuttleMission(robot, AutoChoices(), config)

        assert mission.tick(0.0) is True
        assert not mission.is_active
        intake.set_power.assert_called_with(0.0)
        arm.cancel.assert_called_once()
        assert mission.tick(0.05) is True

    def test_runs_without_vision(self, timers, clock, config) -> None:
        robot: RobotContext = RobotContext(
            timers=timers,
            drivetrain=SimDrivetrain(timers, config),
            intake=SimIntake(timers, config),
            arm=MagicMock(spec=Arm)
        )
        mission: ShuttleMission = ShuttleMission(robot, AutoChoices(), config)
        assert mission.tick(0.0) is False
        robot.arm.set_preset_position.assert_called_with(3)


class TestStatus:
    """MissionStatus snapshot."""

    def test_to_dict_keys(self, timers, clock, config) -> None:
        h: Harness = make(timers, clock, config)
        h.tick()
        status: dict[str, Any] = h.mission.status.to_dict()
        assert status["active"] is True
        assert status["step"] == "DRIVE_TO_HUB"
        assert status["waiting_on"] == ["event"]
        assert set(status) >= {"hint_position", "pickup_retries", "cycles_completed", "freight_dumped"}
