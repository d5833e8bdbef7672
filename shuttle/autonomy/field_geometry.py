"""
Shuttle Field Geometry
Poses, alliance mirroring, and the handful of computed targets the
shuttle mission drives to. All mission geometry is written once in
RED alliance tile coordinates; BLUE is produced by mirroring across
the field's X axis (y -> -y, heading -> 180 - heading).

Units:
    tiles:   field tiles, the unit mission points are written in
    inches:  what the drivetrain consumes (tile_inches per tile)
    degrees: headings, 0 = +Y, clockwise positive
"""

import math
from typing import Optional
from enum import Enum

from shuttle.core.config import ShuttleConfig
from shuttle.mobility.pose import Pose


# Hub stand-off distance (tiles) per hint level; anything else uses the default
HUB_DISTANCE_BY_HINT: dict[int, float] = {
    3: 0.7,
    2: 0.9,
}
HUB_DISTANCE_DEFAULT: float = 0.85


class Alliance(Enum):
    """Which side of the field the robot starts on."""
    RED = "red"
    BLUE = "blue"


class FieldGeometry:
    """
    Converts RED-frame tile points into alliance-correct drivetrain poses
    and computes the hub approach point for the detected hint level.
    """

    def __init__(self, alliance: Alliance, config: Optional[ShuttleConfig] = None) -> None:
        if config is None:
            config = ShuttleConfig()

        self._alliance: Alliance = alliance
        self._tile_inches: float = config.number("field", "tile_inches", default=24.0)
        self._half_field_inches: float = config.number("field", "half_field_inches", default=72.0)
        self._robot_width: float = config.number("field", "robot_width_inches", default=14.0)
        self._hub_center: tuple[float, float] = tuple(
            config.get("field", "hub_center", default=[-0.5, -1.0])
        )
        self._hub_heading: float = config.number("field", "hub_heading", default=-30.0)
        self._start_pose: list[float] = config.get(
            "field", "start_pose", default=[0.25, -2.65, 0.0]
        )

    @property
    def alliance(self) -> Alliance:
        return self._alliance

    @property
    def mirrored(self) -> bool:
        return self._alliance == Alliance.BLUE

    def path_point(self, x: float, y: float, heading: float) -> Pose:
        """A RED-frame tile point as an alliance-correct pose in inches."""
        if self.mirrored:
            y = -y
            heading = 180.0 - heading
        return Pose(x * self._tile_inches, y * self._tile_inches, heading)

    def strafe_toward_wall(self, power: float) -> float:
        """Sign a strafe power so it pushes toward this alliance's side wall."""
        return -power if self.mirrored else power

    def start_pose(self) -> Pose:
        x, y, heading = self._start_pose
        return self.path_point(x, y, heading)

    def hub_approach(self, hint: int) -> Pose:
        """
        Point on the hub perimeter facing the hub centre.
        Closer for the top level so the arm reaches over the rim.
        """
        distance: float = HUB_DISTANCE_BY_HINT.get(hint, HUB_DISTANCE_DEFAULT)
        heading: float = self._hub_heading
        center_x, center_y = self._hub_center
        x: float = center_x - distance * math.sin(math.radians(heading))
        y: float = center_y - distance * math.cos(math.radians(heading))
        return self.path_point(x, y, heading)

    def wall_relocalized(self, current: Pose) -> Pose:
        """Pose after squaring against the side wall: known Y, heading 90."""
        wall_y: float = self._half_field_inches - self._robot_width / 2.0
        y: float = wall_y if self.mirrored else -wall_y
        return Pose(current.x, y, 90.0)

    def __repr__(self) -> str:
        return f"FieldGeometry(alliance={self._alliance.value}, tile={self._tile_inches}in)"
