"""
Shuttle Autonomy — The autonomous mission and its tick driver.
Field geometry, pre-match choices, robot context, mission steps.
"""

from shuttle.autonomy.field_geometry import Alliance, FieldGeometry
from shuttle.autonomy.choices import AutoChoices
from shuttle.autonomy.context import RobotContext
from shuttle.autonomy.shuttle_mission import ShuttleMission, MissionStatus, Step
from shuttle.autonomy.runner import AutoRunner, RunResult

__all__ = [
    "Alliance",
    "FieldGeometry",
    "AutoChoices",
    "RobotContext",
    "ShuttleMission",
    "MissionStatus",
    "Step",
    "AutoRunner",
    "RunResult",
]
