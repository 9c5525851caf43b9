"""
Event and output dataclasses passed to the presentation layer.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

from GazeTrack.calibration.models import CalibrationState, ScreenPoint


class ClickSide(str, Enum):
    NONE = "none"
    LEFT = "left"
    RIGHT = "right"


@dataclass(frozen=True)
class ClickEvent:
    side: ClickSide


@dataclass(frozen=True)
class FrameOutput:
    cursor_xy: Tuple[int, int]  # device pixels
    click: ClickSide
    calibration_state: CalibrationState
    calibration_progress: float  # 0..1
    calibration_target: Optional[ScreenPoint] = None
    correction_feedback: bool = False
    correction_xy: Optional[Tuple[int, int]] = None
