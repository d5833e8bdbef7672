"""
Shuttle Perception — Hint and freight detection, status indicator.
"""

from shuttle.perception.indicator import Pattern, StatusIndicator, SimIndicator
from shuttle.perception.vision import (
    Vision, HintDetector, CachedHintDetector, BlobHintDetector,
    FreightDetector, BlobFreightDetector, TargetInfo, SimCamera
)

__all__ = [
    "Pattern",
    "StatusIndicator",
    "SimIndicator",
    "Vision",
    "HintDetector",
    "CachedHintDetector",
    "BlobHintDetector",
    "FreightDetector",
    "BlobFreightDetector",
    "TargetInfo",
    "SimCamera",
]
