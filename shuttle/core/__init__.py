"""
Shuttle Core — Foundation systems.
Config, config validation, and logging.
"""

from shuttle.core.config import ShuttleConfig, ConfigError
from shuttle.core.config_validator import ConfigValidator, ValidationResult, validate_config
from shuttle.core.logger import setup_logging

__all__ = [
    "ShuttleConfig",
    "ConfigError",
    "ConfigValidator",
    "ValidationResult",
    "validate_config",
    "setup_logging",
]
