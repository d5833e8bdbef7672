"""
Shuttle Vision
Finds the hint (which of three barcode positions the marker sits on)
and, optionally, the nearest freight for a vision-guided pickup.

Hint detection is a ranked fallback chain. Each provider implements
detect() -> Optional[int]; Vision asks them in declared order and the
first one that answers 1, 2, or 3 wins:
    1. prescan: the position captured during init, before the match
    2. blob:    color blob in a live camera frame, by image sixths
A provider that raises is logged and skipped. If nobody answers, the
mission falls back to its configured default level.
"""

import math
import logging
from typing import Any, Callable, Optional
from dataclasses import dataclass
from abc import ABC, abstractmethod

import numpy as np

from shuttle.core.config import ShuttleConfig
from shuttle.perception.indicator import StatusIndicator, HINT_PATTERNS


logger: logging.Logger = logging.getLogger(__name__)

FrameSource = Callable[[], Optional[np.ndarray]]

VALID_HINT_POSITIONS: tuple[int, ...] = (1, 2, 3)


def determine_hint_position(offset_from_center: float, image_width: float) -> int:
    """
    Map a horizontal offset from image center to barcode position.
    Left sixth and beyond is 1, right sixth and beyond is 3, else 2.
    """
    one_sixth: float = image_width / 6.0
    if offset_from_center <= -one_sixth:
        return 1
    if offset_from_center >= one_sixth:
        return 3
    return 2


def _blob_mask(frame: np.ndarray, channel: int, threshold: int) -> np.ndarray:
    """Pixels where the chosen channel is bright and dominates the others."""
    pixels: np.ndarray = frame.astype(np.int16)
    target: np.ndarray = pixels[:, :, channel]
    others: np.ndarray = np.delete(pixels, channel, axis=2).max(axis=2)
    return (target >= threshold) & (target > others)


@dataclass
class TargetInfo:
    """A detected object relative to the robot. Inches / degrees, x right, y forward."""
    x: float = 0.0
    y: float = 0.0
    angle: float = 0.0
    pixels: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "x": round(self.x, 2),
            "y": round(self.y, 2),
            "angle": round(self.angle, 1),
            "pixels": self.pixels
        }


class HintDetector(ABC):
    """One provider in the hint fallback chain."""

    name: str = "detector"

    @abstractmethod
    def detect(self) -> Optional[int]:
        """Return 1, 2, or 3, or None when this provider has no answer."""


class FreightDetector(ABC):

    @abstractmethod
    def closest_target(self) -> Optional[TargetInfo]:
        ...


class CachedHintDetector(HintDetector):
    """Answers with a value captured earlier, e.g. during the init scan."""

    name = "prescan"

    def __init__(self, position: int = 0) -> None:
        self._position: int = position

    def update(self, position: int) -> None:
        self._position = position

    def detect(self) -> Optional[int]:
        return self._position if self._position in VALID_HINT_POSITIONS else None


class BlobHintDetector(HintDetector):
    """
    Thresholds one color channel of a camera frame and places the blob
    centroid into an image sixth. Frames are HxWx3 uint8 arrays.
    """

    name = "blob"

    def __init__(
        self,
        frame_source: FrameSource,
        channel: int = 1,
        threshold: int = 150,
        min_pixels: int = 50
    ) -> None:
        self._frame_source: FrameSource = frame_source
        self._channel: int = channel
        self._threshold: int = threshold
        self._min_pixels: int = min_pixels

    def detect(self) -> Optional[int]:
        frame: Optional[np.ndarray] = self._frame_source()
        if frame is None:
            return None

        mask: np.ndarray = _blob_mask(frame, self._channel, self._threshold)
        count: int = int(mask.sum())
        if count < self._min_pixels:
            logger.debug("Blob detector - %d pixels, below minimum %d", count, self._min_pixels)
            return None

        columns: np.ndarray = np.nonzero(mask)[1]
        width: int = frame.shape[1]
        offset: float = float(columns.mean()) - width / 2.0
        return determine_hint_position(offset, width)


class BlobFreightDetector(FreightDetector):
    """
    Locates the largest bright blob and projects it onto the floor at a
    fixed look-ahead distance using the camera's horizontal field of view.
    """

    def __init__(
        self,
        frame_source: FrameSource,
        channel: int = 2,
        threshold: int = 150,
        min_pixels: int = 50,
        horizontal_fov_deg: float = 60.0,
        look_distance: float = 18.0
    ) -> None:
        self._frame_source: FrameSource = frame_source
        self._channel: int = channel
        self._threshold: int = threshold
        self._min_pixels: int = min_pixels
        self._fov: float = horizontal_fov_deg
        self._look_distance: float = look_distance

    def closest_target(self) -> Optional[TargetInfo]:
        frame: Optional[np.ndarray] = self._frame_source()
        if frame is None:
            return None

        mask: np.ndarray = _blob_mask(frame, self._channel, self._threshold)
        count: int = int(mask.sum())
        if count < self._min_pixels:
            return None

        width: int = frame.shape[1]
        center_x: float = float(np.nonzero(mask)[1].mean())
        angle: float = (center_x - width / 2.0) / width * self._fov
        return TargetInfo(
            x=self._look_distance * math.sin(math.radians(angle)),
            y=self._look_distance * math.cos(math.radians(angle)),
            angle=angle,
            pixels=count
        )


class SimCamera:
    """
    Synthetic camera for the simulator. Each call returns an HxWx3 uint8
    frame with a square marker in the hint channel over the column of
    the hint position, and a freight blob in the freight channel when
    freight is in view. Position 0 draws no marker.
    """

    def __init__(
        self,
        hint_position: int = 0,
        freight_visible: bool = False,
        freight_offset: float = 0.0,
        width: int = 320,
        height: int = 240,
        hint_channel: int = 1,
        freight_channel: int = 2,
        blob_size: int = 24
    ) -> None:
        self.hint_position: int = hint_position
        self.freight_visible: bool = freight_visible
        self.freight_offset: float = freight_offset
        self._width: int = width
        self._height: int = height
        self._hint_channel: int = hint_channel
        self._freight_channel: int = freight_channel
        self._blob_size: int = blob_size
        self._frames: int = 0

    @classmethod
    def from_config(
        cls,
        config: Optional[ShuttleConfig] = None,
        hint_position: int = 0,
        freight_visible: bool = False
    ) -> "SimCamera":
        if config is None:
            config = ShuttleConfig()
        return cls(
            hint_position=hint_position,
            freight_visible=freight_visible,
            hint_channel=config.get("vision", "hint_channel", default=1),
            freight_channel=config.get("vision", "freight_channel", default=2)
        )

    def __call__(self) -> np.ndarray:
        frame: np.ndarray = np.zeros((self._height, self._width, 3), dtype=np.uint8)
        if self.hint_position in VALID_HINT_POSITIONS:
            # Marker centered in the left, middle, or right third.
            center: int = int(self._width * (2 * self.hint_position - 1) / 6)
            self._draw(frame, self._hint_channel, center, self._height // 4)
        if self.freight_visible:
            center = int(self._width / 2 + self.freight_offset * self._width)
            self._draw(frame, self._freight_channel, center, 3 * self._height // 4)
        self._frames += 1
        return frame

    def _draw(self, frame: np.ndarray, channel: int, center_x: int, center_y: int) -> None:
        half: int = self._blob_size // 2
        left: int = max(0, min(self._width - self._blob_size, center_x - half))
        top: int = max(0, min(self._height - self._blob_size, center_y - half))
        frame[top:top + self._blob_size, left:left + self._blob_size, channel] = 255

    @property
    def frames(self) -> int:
        return self._frames


class Vision:
    """
    Front door for the mission: the ranked hint chain, the optional
    freight detector, and the indicator feedback for what was seen.
    """

    def __init__(
        self,
        detectors: list[HintDetector],
        freight_detector: Optional[FreightDetector] = None,
        indicator: Optional[StatusIndicator] = None
    ) -> None:
        self._detectors: list[HintDetector] = list(detectors)
        self._freight_detector: Optional[FreightDetector] = freight_detector
        self._indicator: Optional[StatusIndicator] = indicator
        self._last_hint_position: int = 0
        self._last_source: str = ""

        logger.info(
            "Vision created - hint chain=[%s], freight=%s",
            ", ".join(d.name for d in self._detectors),
            type(freight_detector).__name__ if freight_detector else "none"
        )

    @classmethod
    def from_config(
        cls,
        config: Optional[ShuttleConfig] = None,
        frame_source: Optional[FrameSource] = None,
        prescan_position: int = 0,
        indicator: Optional[StatusIndicator] = None
    ) -> "Vision":
        """Build the chain named by vision.detectors, skipping ones that need a camera when there is none."""
        if config is None:
            config = ShuttleConfig()

        names: list[str] = config.get("vision", "detectors", default=["prescan", "blob"])
        detectors: list[HintDetector] = []
        for name in names:
            if name == "prescan":
                detectors.append(CachedHintDetector(prescan_position))
            elif name == "blob":
                if frame_source is None:
                    logger.info("Blob hint detector skipped - no camera frame source")
                    continue
                detectors.append(BlobHintDetector(
                    frame_source,
                    channel=config.get("vision", "hint_channel", default=1),
                    threshold=config.get("vision", "hint_threshold", default=150),
                    min_pixels=config.get("vision", "min_blob_pixels", default=50)
                ))
            else:
                logger.warning("Unknown hint detector '%s' - ignored", name)

        freight: Optional[FreightDetector] = None
        if frame_source is not None:
            freight = BlobFreightDetector(
                frame_source,
                channel=config.get("vision", "freight_channel", default=2),
                threshold=config.get("vision", "freight_threshold", default=150),
                min_pixels=config.get("vision", "min_blob_pixels", default=50),
                horizontal_fov_deg=config.get("vision", "horizontal_fov_deg", default=60.0),
                look_distance=config.get("vision", "freight_look_distance", default=18.0)
            )

        return cls(detectors, freight_detector=freight, indicator=indicator)

    def detect_hint_position(self) -> int:
        """Walk the chain. Returns 1-3, or 0 when no provider answered."""
        for detector in self._detectors:
            try:
                position: Optional[int] = detector.detect()
            except Exception as e:
                logger.warning("Hint detector '%s' failed: %s", detector.name, e)
                continue

            if position in VALID_HINT_POSITIONS:
                self._last_hint_position = position
                self._last_source = detector.name
                self._show_hint(position)
                logger.info("Hint position %d from '%s'", position, detector.name)
                return position

            if position is not None:
                logger.warning("Hint detector '%s' returned invalid position %s", detector.name, position)

        logger.info("No hint detector answered")
        return 0

    def closest_freight(self) -> Optional[TargetInfo]:
        if self._freight_detector is None:
            return None
        try:
            return self._freight_detector.closest_target()
        except Exception as e:
            logger.warning("Freight detector failed: %s", e)
            return None

    def _show_hint(self, position: int) -> None:
        if self._indicator is None:
            return
        for pos, pattern in HINT_PATTERNS.items():
            self._indicator.set_pattern_state(pattern, pos == position)

    @property
    def has_freight_detector(self) -> bool:
        return self._freight_detector is not None

    @property
    def last_hint_position(self) -> int:
        return self._last_hint_position

    @property
    def last_source(self) -> str:
        return self._last_source

    def __repr__(self) -> str:
        return f"Vision(detectors={[d.name for d in self._detectors]}, last={self._last_hint_position})"
