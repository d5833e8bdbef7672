"""
Shuttle Pose
Field pose shared by the drivetrain and the mission geometry.
x/y in inches, heading in degrees (0 = +Y, clockwise positive).
"""

import math
from typing import Any
from dataclasses import dataclass


def normalize_heading(heading: float) -> float:
    """Wrap a heading into (-180, 180]."""
    wrapped: float = math.fmod(heading, 360.0)
    if wrapped <= -180.0:
        wrapped += 360.0
    elif wrapped > 180.0:
        wrapped -= 360.0
    return wrapped


@dataclass(frozen=True)
class Pose:
    """Field pose. x/y in inches, heading in degrees."""
    x: float = 0.0
    y: float = 0.0
    heading: float = 0.0

    def distance_to(self, other: "Pose") -> float:
        return math.hypot(other.x - self.x, other.y - self.y)

    def relative_to(self, origin: "Pose") -> "Pose":
        """Interpret this pose as an offset in origin's robot frame (x right, y forward)."""
        theta: float = math.radians(origin.heading)
        x: float = origin.x + self.x * math.cos(theta) + self.y * math.sin(theta)
        y: float = origin.y - self.x * math.sin(theta) + self.y * math.cos(theta)
        return Pose(x, y, normalize_heading(origin.heading + self.heading))

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "heading": round(self.heading, 1)
        }
