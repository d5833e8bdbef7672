#!/usr/bin/env python3
"""
Shuttle Simulation Runner
Runs one autonomous shuttle mission against the simulated drivetrain,
intake, and arm. Useful on a dev machine to watch the step sequence and
the timing of each cycle without a robot.

Usage:
    python scripts/run_sim.py
    python scripts/run_sim.py --alliance blue --delay 2 --hint 1
    python scripts/run_sim.py --fast --jams 2 --verbose
    python scripts/run_sim.py --fast --camera-hint 1 --vision-pickup

Exit codes:
    0 = Mission finished inside its time budget
    1 = Mission overran and was cancelled
    2 = Fatal error during setup (bad config, invalid choices)
"""

import os
import sys
import json
import logging
import argparse
import traceback
from typing import Any, Optional

PROJECT_ROOT: str = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, PROJECT_ROOT)

from shuttle.core.config import ShuttleConfig, ConfigError
from shuttle.core.config_validator import validate_config, ValidationResult
from shuttle.core.logger import setup_logging
from shuttle.sequencing.delay import TimerService, ManualClock
from shuttle.perception.vision import SimCamera
from shuttle.autonomy.field_geometry import Alliance
from shuttle.autonomy.choices import AutoChoices
from shuttle.autonomy.context import RobotContext
from shuttle.autonomy.shuttle_mission import ShuttleMission
from shuttle.autonomy.runner import AutoRunner, RunResult


def _print_status(status: dict[str, Any]) -> None:
    waiting: str = ", ".join(status["waiting_on"]) or "-"
    print(
        f"  [{status['elapsed_seconds']:6.2f}s] {status['step']:<24} "
        f"waiting_on={waiting:<16} dumped={status['freight_dumped']} "
        f"retries={status['pickup_retries']}"
    )


def _print_summary(result: RunResult) -> None:
    final: dict[str, Any] = result.final_status
    print("\n" + "-" * 60)
    print(f"  Ticks:          {result.ticks}")
    print(f"  Elapsed:        {result.elapsed_seconds:.2f}s")
    print(f"  Hint position:  {final.get('hint_position')}")
    print(f"  Freight dumped: {final.get('freight_dumped')}")
    print(f"  Cycles:         {final.get('cycles_completed')}")
    print(f"  Pickup retries: {final.get('pickup_retries')}")
    status: str = "COMPLETED" if result.completed else "OVERRAN - CANCELLED"
    print(f"\n  {status}")
    print("=" * 60 + "\n")


def run(args: argparse.Namespace) -> int:
    config: ShuttleConfig = ShuttleConfig(args.config)
    if args.verbose:
        config.override("system", "log_level", "DEBUG")

    clock: Optional[ManualClock] = ManualClock() if args.fast else None
    timers: TimerService = TimerService(clock)
    setup_logging(config, clock=timers.now)

    validation: ValidationResult = validate_config(config)
    if not validation.valid:
        print("\n  Configuration errors:")
        for issue in validation.issues:
            print(f"    {issue}")
        return 2

    choices: AutoChoices = AutoChoices.from_config(config)
    if args.alliance is not None:
        choices.alliance = Alliance(args.alliance)
    if args.delay is not None:
        if args.delay < 0:
            raise ValueError(f"Start delay must be non-negative, got {args.delay}")
        choices.start_delay = args.delay
    if args.vision_pickup:
        choices.use_vision_for_pickup = True
    if args.back_out:
        choices.back_out_after_pickup = True

    camera: SimCamera = SimCamera.from_config(
        config,
        hint_position=args.camera_hint,
        freight_visible=args.vision_pickup
    )
    context: RobotContext = RobotContext.simulated(
        timers,
        config,
        prescan_position=args.hint,
        pickup_outcomes=[False] * args.jams,
        camera=camera
    )
    mission: ShuttleMission = ShuttleMission(context, choices, config)
    runner: AutoRunner = AutoRunner(
        mission,
        context,
        config,
        sleep=clock.advance if clock is not None else None
    )
    runner.register_status_callback(_print_status)

    print("\n" + "=" * 60)
    print("  SHUTTLE AUTONOMOUS - SIMULATION")
    print(f"  {json.dumps(choices.to_dict())}")
    print("=" * 60)

    result: RunResult = runner.run()
    _print_summary(result)
    return 0 if result.completed and not result.timed_out else 1


def main() -> int:
    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Shuttle autonomous mission simulator"
    )
    parser.add_argument(
        "--config", "-c",
        type=str, default=None,
        help="Path to shuttle.yaml config file"
    )
    parser.add_argument(
        "--alliance", "-a",
        choices=[a.value for a in Alliance], default=None,
        help="Override mission.alliance"
    )
    parser.add_argument(
        "--delay", "-d",
        type=float, default=None,
        help="Override mission.start_delay (seconds)"
    )
    parser.add_argument(
        "--hint",
        type=int, choices=[0, 1, 2, 3], default=0,
        help="Pre-scanned hint position (0 = not seen)"
    )
    parser.add_argument(
        "--camera-hint",
        type=int, choices=[0, 1, 2, 3], default=0,
        help="Hint position the simulated camera shows (0 = no marker in view)"
    )
    parser.add_argument(
        "--jams",
        type=int, default=0,
        help="Number of pickups that fail before the intake starts catching freight"
    )
    parser.add_argument(
        "--vision-pickup",
        action="store_true",
        help="Enable the vision-guided pickup look step and put freight in camera view"
    )
    parser.add_argument(
        "--back-out",
        action="store_true",
        help="Leave the warehouse through the back-out sequence"
    )
    parser.add_argument(
        "--fast",
        action="store_true",
        help="Run on a manual clock instead of wall time"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Debug logging and full tracebacks on failure"
    )
    args: argparse.Namespace = parser.parse_args()

    try:
        return run(args)
    except (ConfigError, ValueError) as e:
        print(f"\n  FATAL: {e}")
        if args.verbose:
            traceback.print_exc()
        return 2
    except Exception as e:
        logging.getLogger("run_sim").exception("Simulation aborted: %s", e)
        return 2


if __name__ == "__main__":
    sys.exit(main())
