"""
Calibration data models.

Eye-space and screen-space points are normalized to [0, 1]; pixel
coordinates only appear at the presentation boundary.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


@dataclass(frozen=True)
class EyePoint:
    x: float
    y: float


@dataclass(frozen=True)
class ScreenPoint:
    x: float
    y: float

    def to_pixels(self, width: int, height: int) -> Tuple[int, int]:
        px = int(round(self.x * (width - 1)))
        py = int(round(self.y * (height - 1)))
        return min(width - 1, max(0, px)), min(height - 1, max(0, py))

    @classmethod
    def from_pixels(cls, x: float, y: float, width: int, height: int) -> "ScreenPoint":
        return cls(float(x) / max(1, width - 1), float(y) / max(1, height - 1))

    def clamped(self) -> "ScreenPoint":
        return ScreenPoint(min(1.0, max(0.0, self.x)), min(1.0, max(0.0, self.y)))


CENTER = ScreenPoint(0.5, 0.5)


@dataclass(frozen=True)
class CalibrationSample:
    eye: EyePoint
    screen: ScreenPoint
    # actual - predicted at the moment a live correction was recorded
    error: Optional[ScreenPoint] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "eye": {"x": self.eye.x, "y": self.eye.y},
            "screen": {"x": self.screen.x, "y": self.screen.y},
        }
        if self.error is not None:
            data["error"] = {"x": self.error.x, "y": self.error.y}
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CalibrationSample":
        try:
            eye = EyePoint(float(data["eye"]["x"]), float(data["eye"]["y"]))
            screen = ScreenPoint(float(data["screen"]["x"]), float(data["screen"]["y"]))
            err = data.get("error")
            error = ScreenPoint(float(err["x"]), float(err["y"])) if err is not None else None
        except (KeyError, TypeError, ValueError) as e:
            raise ValueError(f"malformed calibration sample: {data!r}") from e
        return cls(eye=eye, screen=screen, error=error)


@dataclass(frozen=True)
class CalibrationMap:
    """Padded bounding box over the eye component of a calibration set."""

    eye_min_x: float
    eye_max_x: float
    eye_min_y: float
    eye_max_y: float

    @classmethod
    def from_samples(cls, samples: Sequence[CalibrationSample], padding: float = 0.1) -> Optional["CalibrationMap"]:
        if not samples:
            return None
        xs = [s.eye.x for s in samples]
        ys = [s.eye.y for s in samples]
        min_x, max_x = min(xs), max(xs)
        min_y, max_y = min(ys), max(ys)
        pad_x = (max_x - min_x) * padding
        pad_y = (max_y - min_y) * padding
        return cls(min_x - pad_x, max_x + pad_x, min_y - pad_y, max_y + pad_y)


class CalibrationState(str, Enum):
    NOT_STARTED = "notStarted"
    IN_PROGRESS = "inProgress"
    FINISHED = "finished"


@dataclass(frozen=True)
class FrameObservation:
    eye: EyePoint
    left_ear: float
    right_ear: float


# Configuration ---------------------------------------------------------


@dataclass
class SmoothingConfig:
    algorithm: str = "lerp"  # 'lerp' | 'one_euro'
    alpha: float = 0.15
    freq: float = 30.0
    min_cutoff: float = 1.0
    beta: float = 0.007
    d_cutoff: float = 1.0


@dataclass
class MapperConfig:
    strategy: str = "idw"  # 'linear' | 'idw' | 'polynomial'
    k: int = 4
    power: float = 4.0
    snap_threshold: float = 0.1
    epsilon: float = 1e-9
    sensitivity: float = 1.0
    min_samples: int = 6
    padding: float = 0.1
    mirror_x: bool = False


@dataclass
class BlinkConfig:
    ear_threshold: float = 0.25
    closing_frames: int = 1
    closed_frames: int = 2
    max_click_frames: Optional[int] = None  # default closed_frames + 3
    squint_timeout_frames: Optional[int] = None  # default closed_frames * 5
    cooldown_frames: int = 0
    on_lost: str = "freeze"  # 'freeze' | 'reset'

    @property
    def click_window(self) -> int:
        if self.max_click_frames is not None:
            return int(self.max_click_frames)
        return self.closed_frames + 3

    @property
    def squint_timeout(self) -> int:
        if self.squint_timeout_frames is not None:
            return int(self.squint_timeout_frames)
        return self.closed_frames * 5


@dataclass
class CalibrationConfig:
    layout: str = "9"  # '9' | '5'
    margin: float = 0.1
    dwell_s: float = 1.8
    capture_window_s: float = 1.0
    sample_rate_hz: float = 10.0
    capture_mode: str = "average"  # 'average' | 'confirm'
    targets: List[Tuple[float, float]] = field(default_factory=list)

    def target_points(self) -> List[ScreenPoint]:
        if self.targets:
            return [ScreenPoint(float(x), float(y)) for x, y in self.targets]
        lo, mid, hi = self.margin, 0.5, 1.0 - self.margin
        if self.layout == "5":
            pts = [(mid, mid), (lo, lo), (hi, lo), (lo, hi), (hi, hi)]
        elif self.layout == "9":
            pts = [(x, y) for y in (lo, mid, hi) for x in (lo, mid, hi)]
        else:
            raise ValueError(f"unknown calibration layout: {self.layout!r}")
        return [ScreenPoint(x, y) for x, y in pts]
