"""
Shuttle Configuration Validator
Validates shuttle.yaml before a mission is built. Checks required
fields, types, value ranges, and cross-references between the mission
timing values. Bad config never reaches the field.
"""

import logging
from typing import Any, Optional
from dataclasses import dataclass, field
from enum import Enum

from shuttle.core.config import ShuttleConfig


logger: logging.Logger = logging.getLogger(__name__)


class Severity(Enum):
    """Validation issue severity."""
    ERROR = "error"
    WARNING = "warning"


@dataclass
class ValidationIssue:
    """A single validation issue found in the config."""
    path: str
    message: str
    severity: Severity = Severity.ERROR
    value: Any = None

    def __str__(self) -> str:
        prefix: str = "ERROR" if self.severity == Severity.ERROR else "WARN"
        val_str: str = f" (got: {self.value})" if self.value is not None else ""
        return f"[{prefix}] {self.path}: {self.message}{val_str}"


@dataclass
class ValidationResult:
    """Complete validation result."""
    issues: list[ValidationIssue] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not any(i.severity == Severity.ERROR for i in self.issues)

    @property
    def error_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.ERROR)

    @property
    def warning_count(self) -> int:
        return sum(1 for i in self.issues if i.severity == Severity.WARNING)

    def add_error(self, path: str, message: str, value: Any = None) -> None:
        self.issues.append(ValidationIssue(path, message, Severity.ERROR, value))

    def add_warning(self, path: str, message: str, value: Any = None) -> None:
        self.issues.append(ValidationIssue(path, message, Severity.WARNING, value))

    def summary(self) -> str:
        if self.valid and self.warning_count == 0:
            return "Configuration valid - no issues found"
        parts: list[str] = []
        if self.error_count > 0:
            parts.append(f"{self.error_count} error(s)")
        if self.warning_count > 0:
            parts.append(f"{self.warning_count} warning(s)")
        return f"Configuration validation: {', '.join(parts)}"


class ConfigValidator:
    """
    Validates the full shuttle.yaml configuration.
    Call validate() before building a mission.
    Returns a ValidationResult with all issues found.
    """

    VALID_LOG_LEVELS: set[str] = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}

    VALID_ALLIANCES: set[str] = {"red", "blue"}

    VALID_DETECTORS: set[str] = {"prescan", "blob"}

    def __init__(self, config: Optional[ShuttleConfig] = None) -> None:
        if config is None:
            config = ShuttleConfig()
        self._config: ShuttleConfig = config
        self._result: ValidationResult = ValidationResult()

    def validate(self) -> ValidationResult:
        """Run all validation checks. Returns the complete result."""
        self._result = ValidationResult()

        self._validate_system()
        self._validate_mission()
        self._validate_field()
        self._validate_drivetrain()
        self._validate_intake()
        self._validate_arm()
        self._validate_vision()

        for issue in self._result.issues:
            if issue.severity == Severity.ERROR:
                logger.error(str(issue))
            else:
                logger.warning(str(issue))

        logger.info(self._result.summary())
        return self._result

    def _get(self, *keys: str, default: Any = None) -> Any:
        """Safe config access."""
        return self._config.get(*keys, default=default)

    def _require_field(self, path: str, *keys: str) -> Any:
        """Check that a required field exists."""
        value: Any = self._get(*keys)
        if value is None:
            self._result.add_error(path, "Required field missing")
            return None
        return value

    def _check_type(self, path: str, value: Any, expected_type: type) -> bool:
        """Validate value type."""
        if value is None:
            return True
        if not isinstance(value, expected_type):
            self._result.add_error(path, f"Expected {expected_type.__name__}, got {type(value).__name__}", value)
            return False
        return True

    def _check_range(self, path: str, value: Any, min_val: float, max_val: float) -> bool:
        """Validate numeric value is within range."""
        if value is None:
            return True
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            self._result.add_error(path, "Expected a number", value)
            return False
        if value < min_val or value > max_val:
            self._result.add_error(path, f"Must be between {min_val} and {max_val}", value)
            return False
        return True

    def _check_positive(self, path: str, value: Any) -> bool:
        """Validate value is positive."""
        if value is None:
            return True
        if not isinstance(value, (int, float)) or value <= 0:
            self._result.add_error(path, "Must be positive", value)
            return False
        return True

    def _check_non_negative(self, path: str, value: Any) -> bool:
        """Validate value is zero or positive."""
        if value is None:
            return True
        if not isinstance(value, (int, float)) or value < 0:
            self._result.add_error(path, "Must be non-negative", value)
            return False
        return True

    def _check_in_set(self, path: str, value: Any, valid: set) -> bool:
        """Validate value is in a set of valid options."""
        if value is None:
            return True
        if value not in valid:
            self._result.add_error(path, f"Must be one of: {sorted(valid)}", value)
            return False
        return True

    def _check_pose(self, path: str, value: Any) -> bool:
        """Validate a [x, y, heading] or [x, y] list of numbers."""
        if value is None:
            return True
        if not isinstance(value, list) or len(value) not in (2, 3):
            self._result.add_error(path, "Expected a list of 2 or 3 numbers", value)
            return False
        if not all(isinstance(v, (int, float)) for v in value):
            self._result.add_error(path, "All elements must be numbers", value)
            return False
        return True

    def _validate_system(self) -> None:
        """Validate system section."""
        self._require_field("system.name", "system", "name")

        log_level: Any = self._get("system", "log_level", default="INFO")
        self._check_in_set("system.log_level", log_level, self.VALID_LOG_LEVELS)

        self._check_range("system.tick_period", self._get("system", "tick_period"), 0.005, 1.0)
        self._check_non_negative("system.overrun_grace", self._get("system", "overrun_grace"))

    def _validate_mission(self) -> None:
        """Validate mission choices and timing."""
        alliance: Any = self._get("mission", "alliance")
        if alliance is not None:
            self._check_in_set("mission.alliance", str(alliance).lower(), self.VALID_ALLIANCES)

        self._check_range("mission.start_delay", self._get("mission", "start_delay"), 0.0, 30.0)
        self._check_range("mission.min_start_delay", self._get("mission", "min_start_delay"), 0.0, 30.0)
        self._check_range("mission.fallback_hint", self._get("mission", "fallback_hint"), 1, 3)
        self._check_non_negative("mission.max_pickup_retries", self._get("mission", "max_pickup_retries"))
        self._check_positive("mission.look_window", self._get("mission", "look_window"))

        heading_step: Any = self._get("mission", "pickup_heading_step")
        if self._check_range("mission.pickup_heading_step", heading_step, 0.0, 45.0) and heading_step == 0:
            self._result.add_warning(
                "mission.pickup_heading_step",
                "Retries will repeat the same approach heading"
            )

        budget: Any = self._get("mission", "time_budget")
        trip: Any = self._get("mission", "cycle_trip_time")
        budget_ok: bool = self._check_positive("mission.time_budget", budget)
        trip_ok: bool = self._check_positive("mission.cycle_trip_time", trip)
        if budget_ok and trip_ok and budget is not None and trip is not None and trip >= budget:
            self._result.add_error(
                "mission.cycle_trip_time",
                "Must be shorter than mission.time_budget or no pickup cycle can start",
                trip
            )

        max_retries: Any = self._get("mission", "max_pickup_retries", default=0)
        if max_retries == 0:
            self._result.add_warning(
                "mission.max_pickup_retries",
                "Pickup retries are bounded only by the time budget"
            )

    def _validate_field(self) -> None:
        """Validate field geometry."""
        self._check_positive("field.tile_inches", self._get("field", "tile_inches"))
        self._check_positive("field.half_field_inches", self._get("field", "half_field_inches"))
        self._check_positive("field.robot_width_inches", self._get("field", "robot_width_inches"))
        self._check_pose("field.start_pose", self._get("field", "start_pose"))
        self._check_pose("field.hub_center", self._get("field", "hub_center"))
        self._check_range("field.hub_heading", self._get("field", "hub_heading"), -180.0, 360.0)

    def _validate_drivetrain(self) -> None:
        """Validate drivetrain powers and timings."""
        for key in ("pickup_output_limit",):
            self._check_range(f"drivetrain.{key}", self._get("drivetrain", key), 0.05, 1.0)

        for key in ("align_power", "warehouse_power", "back_out_power"):
            self._check_range(f"drivetrain.{key}", self._get("drivetrain", key), -1.0, 1.0)

        for key in ("align_time", "warehouse_time", "realign_time", "back_out_time"):
            self._check_range(f"drivetrain.{key}", self._get("drivetrain", key), 0.0, 10.0)

        self._check_positive("drivetrain.max_speed_ips", self._get("drivetrain", "max_speed_ips"))

    def _validate_intake(self) -> None:
        """Validate intake powers and timings."""
        dump_power: Any = self._get("intake", "dump_power")
        self._check_range("intake.dump_power", dump_power, -1.0, 1.0)
        self._check_range("intake.pickup_power", self._get("intake", "pickup_power"), -1.0, 1.0)
        self._check_range("intake.dump_time", self._get("intake", "dump_time"), 0.0, 10.0)

        pickup_power: Any = self._get("intake", "pickup_power")
        if (
            isinstance(dump_power, (int, float)) and isinstance(pickup_power, (int, float))
            and dump_power * pickup_power > 0
        ):
            self._result.add_warning(
                "intake.dump_power",
                "Same direction as pickup_power - dumping will pull freight in",
                dump_power
            )

    def _validate_arm(self) -> None:
        """Validate arm preset levels."""
        max_level: Any = self._get("arm", "max_level", default=3)
        if self._check_type("arm.max_level", max_level, int):
            self._check_range("arm.top_level", self._get("arm", "top_level"), 0, max_level)
            self._check_range("arm.travel_level", self._get("arm", "travel_level"), 0, max_level)
        self._check_non_negative("arm.travel_delay", self._get("arm", "travel_delay"))

    def _validate_vision(self) -> None:
        """Validate the hint detector chain."""
        detectors: Any = self._get("vision", "detectors")
        if detectors is not None:
            if not isinstance(detectors, list):
                self._result.add_error("vision.detectors", "Expected a list of detector names", detectors)
            else:
                for i, name in enumerate(detectors):
                    self._check_in_set(f"vision.detectors[{i}]", name, self.VALID_DETECTORS)
                if not detectors:
                    self._result.add_warning(
                        "vision.detectors",
                        "No hint detectors - every match uses mission.fallback_hint"
                    )

        for key in ("hint_channel", "freight_channel"):
            self._check_range(f"vision.{key}", self._get("vision", key), 0, 2)
        for key in ("hint_threshold", "freight_threshold"):
            self._check_range(f"vision.{key}", self._get("vision", key), 0, 255)
        self._check_positive("vision.min_blob_pixels", self._get("vision", "min_blob_pixels"))
        self._check_range("vision.horizontal_fov_deg", self._get("vision", "horizontal_fov_deg"), 10.0, 180.0)


def validate_config(config: Optional[ShuttleConfig] = None) -> ValidationResult:
    """Convenience function to validate the configuration."""
    validator: ConfigValidator = ConfigValidator(config)
    return validator.validate()
