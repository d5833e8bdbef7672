"""
Shuttle Test Fixtures
Shared fixtures for all test modules. Creates a minimal valid config,
a manually driven clock, and the simulated robot so every module can be
tested without hardware or wall-clock waits.
"""

import os
import sys
import tempfile
import shutil
import pytest
from copy import deepcopy
from typing import Any, Generator

import yaml


PROJECT_ROOT: str = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)


MINIMAL_CONFIG: dict[str, Any] = {
    "system": {
        "name": "shuttle-test",
        "version": "1.0.0-test",
        "log_level": "DEBUG",
        "log_dir": "data/logs",
        "tick_period": 0.05,
        "overrun_grace": 2.0
    },
    "mission": {
        "alliance": "red",
        "start_delay": 0.0,
        "min_start_delay": 0.0,
        "use_vision_for_pickup": False,
        "back_out_after_pickup": False,
        "time_budget": 30.0,
        "cycle_trip_time": 5.0,
        "fallback_hint": 3,
        "pickup_heading_step": 5.0,
        "max_pickup_retries": 0,
        "look_window": 2.0
    },
    "field": {
        "tile_inches": 24.0,
        "half_field_inches": 72.0,
        "robot_width_inches": 14.0,
        "start_pose": [0.25, -2.65, 0.0],
        "hub_center": [-0.5, -1.0],
        "hub_heading": -30.0
    },
    "drivetrain": {
        "max_speed_ips": 40.0,
        "min_path_time": 0.1,
        "pickup_output_limit": 0.3,
        "align_power": 0.3,
        "align_time": 0.8,
        "warehouse_power": 0.5,
        "warehouse_time": 1.0,
        "realign_time": 0.5,
        "back_out_power": -0.3,
        "back_out_time": 1.0
    },
    "intake": {
        "dump_power": -0.6,
        "dump_time": 1.0,
        "pickup_power": 1.0,
        "sim_pickup_time": 0.6
    },
    "arm": {
        "max_level": 3,
        "top_level": 3,
        "travel_level": 0,
        "travel_delay": 0.5
    },
    "vision": {
        "detectors": ["prescan", "blob"],
        "hint_channel": 1,
        "hint_threshold": 150,
        "freight_channel": 2,
        "freight_threshold": 150,
        "min_blob_pixels": 50,
        "horizontal_fov_deg": 60.0,
        "freight_look_distance": 18.0
    }
}


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for test artifacts."""
    path: str = tempfile.mkdtemp(prefix="shuttle_test_")
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def config_path(temp_dir: str) -> str:
    """Write minimal config to a temp YAML file and return the path."""
    config: dict[str, Any] = deepcopy(MINIMAL_CONFIG)
    config["system"]["log_dir"] = os.path.join(temp_dir, "logs")

    yaml_path: str = os.path.join(temp_dir, "shuttle.yaml")
    with open(yaml_path, "w", encoding="utf-8") as f:
        yaml.dump(config, f, default_flow_style=False)

    return yaml_path


@pytest.fixture
def config(config_path: str) -> Generator:
    """Create a ShuttleConfig instance from the temp config file."""
    from shuttle.core.config import ShuttleConfig
    ShuttleConfig.reset()
    cfg = ShuttleConfig(config_path)
    yield cfg
    ShuttleConfig.reset()


@pytest.fixture
def clock() -> Any:
    """A clock that only moves when the test advances it."""
    from shuttle.sequencing.delay import ManualClock
    return ManualClock()


@pytest.fixture
def timers(clock) -> Any:
    from shuttle.sequencing.delay import TimerService
    return TimerService(clock)


@pytest.fixture
def robot(timers, config) -> Any:
    """Simulated robot with freight preloaded and no camera."""
    from shuttle.autonomy.context import RobotContext
    return RobotContext.simulated(timers, config)
