"""
Shuttle Mobility — Drivetrain, intake, and arm interfaces.
Abstract interfaces the mission commands, plus simulated stand-ins.
"""

from shuttle.mobility.pose import Pose
from shuttle.mobility.drivetrain import Drivetrain, SimDrivetrain
from shuttle.mobility.intake import Intake, SimIntake
from shuttle.mobility.arm import Arm, SimArm

__all__ = [
    "Pose",
    "Drivetrain",
    "SimDrivetrain",
    "Intake",
    "SimIntake",
    "Arm",
    "SimArm",
]
