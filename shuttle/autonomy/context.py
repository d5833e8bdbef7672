"""
Shuttle Robot Context
Everything a mission is allowed to touch, handed to it once at
construction. Missions never reach for subsystems any other way.
"""

from typing import Optional
from dataclasses import dataclass

from shuttle.core.config import ShuttleConfig
from shuttle.sequencing.delay import TimerService
from shuttle.mobility.drivetrain import Drivetrain, SimDrivetrain
from shuttle.mobility.intake import Intake, SimIntake
from shuttle.mobility.arm import Arm, SimArm
from shuttle.perception.indicator import StatusIndicator, SimIndicator
from shuttle.perception.vision import Vision, SimCamera


@dataclass
class RobotContext:
    """Collaborators for one mission. vision and indicator are optional."""
    timers: TimerService
    drivetrain: Drivetrain
    intake: Intake
    arm: Arm
    vision: Optional[Vision] = None
    indicator: Optional[StatusIndicator] = None

    @classmethod
    def simulated(
        cls,
        timers: TimerService,
        config: Optional[ShuttleConfig] = None,
        prescan_position: int = 0,
        pickup_outcomes: Optional[list[bool]] = None,
        camera: Optional[SimCamera] = None
    ) -> "RobotContext":
        """
        Wire up the simulated subsystems, as used by the run script and tests.
        Without a camera, vision has only the prescan hint and no freight detector.
        """
        if config is None:
            config = ShuttleConfig()

        indicator: SimIndicator = SimIndicator()
        intake: SimIntake = SimIntake(timers, config, pickup_outcomes=pickup_outcomes)
        intake.load()
        return cls(
            timers=timers,
            drivetrain=SimDrivetrain(timers, config),
            intake=intake,
            arm=SimArm(timers, config),
            vision=Vision.from_config(
                config,
                frame_source=camera,
                prescan_position=prescan_position,
                indicator=indicator
            ),
            indicator=indicator
        )

    def update_simulation(self) -> None:
        """Advance any simulated subsystem to the current mission time."""
        for subsystem in (self.drivetrain, self.intake, self.arm):
            update = getattr(subsystem, "update", None)
            if callable(update):
                update()
