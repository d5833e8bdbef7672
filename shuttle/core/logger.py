"""
Shuttle Logging Setup
Console plus two rotating files under system.log_dir: shuttle.log gets
everything at the configured level, shuttle_errors.log only ERROR and
above. Every line carries the mission clock next to the wall clock so a
step transition in the log can be matched against the tick that made it.
"""

import os
import sys
import logging
from logging.handlers import RotatingFileHandler
from typing import Callable, Optional

from shuttle.core.config import ShuttleConfig


_logger_initialized: bool = False

LOG_FORMAT: str = "%(asctime)s | t=%(mission_time)s | %(name)-32s | %(levelname)-8s | %(message)s"
LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

# (file name, minimum level); None means the configured level.
LOG_FILES: tuple[tuple[str, Optional[int]], ...] = (
    ("shuttle.log", None),
    ("shuttle_errors.log", logging.ERROR),
)


class MissionTimeFilter(logging.Filter):
    """Stamps records with seconds on the mission clock since logging started."""

    def __init__(self, clock: Optional[Callable[[], float]] = None) -> None:
        super().__init__()
        self._clock: Optional[Callable[[], float]] = clock
        self._origin: float = clock() if clock is not None else 0.0

    def filter(self, record: logging.LogRecord) -> bool:
        if self._clock is None:
            record.mission_time = "      -"
        else:
            record.mission_time = f"{self._clock() - self._origin:7.3f}"
        return True


def setup_logging(
    config: Optional[ShuttleConfig] = None,
    clock: Optional[Callable[[], float]] = None
) -> None:
    """
    Configure the root logger once per process.
    clock is normally TimerService.now, so simulated runs on a manual
    clock log simulated time rather than wall time.
    """
    global _logger_initialized

    if _logger_initialized:
        return

    if config is None:
        config = ShuttleConfig()

    level_name: str = str(config.get("system", "log_level", default="INFO"))
    log_dir: str = config.get("system", "log_dir", default="data/logs")
    max_bytes: int = config.get("system", "log_max_bytes", default=10485760)
    backup_count: int = config.get("system", "log_backup_count", default=5)
    level: int = getattr(logging, level_name.upper(), logging.INFO)

    os.makedirs(log_dir, exist_ok=True)

    root: logging.Logger = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    formatter: logging.Formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    stamp: MissionTimeFilter = MissionTimeFilter(clock)

    console: logging.StreamHandler = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    console.setFormatter(formatter)
    console.addFilter(stamp)
    root.addHandler(console)

    logger: logging.Logger = logging.getLogger(__name__)

    for filename, file_level in LOG_FILES:
        path: str = os.path.join(log_dir, filename)
        try:
            handler: RotatingFileHandler = RotatingFileHandler(
                filename=path,
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8"
            )
        except OSError as e:
            logger.error("Cannot open log file %s: %s", path, e)
            continue
        handler.setLevel(file_level if file_level is not None else level)
        handler.setFormatter(formatter)
        handler.addFilter(stamp)
        root.addHandler(handler)

    _logger_initialized = True
    logger.info("Logging initialized - level=%s, dir=%s", level_name, log_dir)
