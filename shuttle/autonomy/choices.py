"""
Shuttle Autonomous Choices
The selections made before the match starts: alliance, start delay,
and the optional behaviors that change the step sequence. Loaded from
the mission section of shuttle.yaml; the run script can override them.
"""

from typing import Any, Optional
from dataclasses import dataclass

from shuttle.core.config import ShuttleConfig, ConfigError
from shuttle.autonomy.field_geometry import Alliance


@dataclass
class AutoChoices:
    """Pre-match selections for one mission run."""
    alliance: Alliance = Alliance.RED
    start_delay: float = 0.0
    use_vision_for_pickup: bool = False
    back_out_after_pickup: bool = False

    @classmethod
    def from_config(cls, config: Optional[ShuttleConfig] = None) -> "AutoChoices":
        if config is None:
            config = ShuttleConfig()

        alliance_str: str = str(config.get("mission", "alliance", default="red")).lower()
        try:
            alliance: Alliance = Alliance(alliance_str)
        except ValueError as e:
            raise ConfigError(f"Unknown alliance '{alliance_str}' (expected red or blue)") from e

        return cls(
            alliance=alliance,
            start_delay=float(config.get("mission", "start_delay", default=0.0)),
            use_vision_for_pickup=bool(config.get("mission", "use_vision_for_pickup", default=False)),
            back_out_after_pickup=bool(config.get("mission", "back_out_after_pickup", default=False))
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "alliance": self.alliance.value,
            "start_delay": self.start_delay,
            "use_vision_for_pickup": self.use_vision_for_pickup,
            "back_out_after_pickup": self.back_out_after_pickup
        }
