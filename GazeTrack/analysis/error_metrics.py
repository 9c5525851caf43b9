from __future__ import annotations

import math
from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np

from GazeTrack.calibration.models import CalibrationSample


@dataclass
class PointError:
    true_xy: Tuple[int, int]
    pred_xy: Tuple[int, int]
    dist_px: float


@dataclass
class ErrorSummary:
    count: int
    mean_px: float
    max_px: float
    rms_px: float
    within_px: float  # threshold used for hit_rate
    hit_rate: float

    def caption(self) -> str:
        return (
            f"{self.count} samples   mean {self.mean_px:.1f} px   max {self.max_px:.1f} px   "
            f"rms {self.rms_px:.1f} px   {self.hit_rate * 100:.0f}% within {self.within_px:.0f} px"
        )


def compute_point_errors(samples: Sequence[CalibrationSample], mapper, screen_size: Tuple[int, int]) -> List[PointError]:
    """Predict every sample's eye point and measure the miss in pixels.

    The mapper sees the full set, so this is a training-set (resubstitution)
    error: snapping strategies report zero on their own samples.
    """
    w, h = int(screen_size[0]), int(screen_size[1])
    out: List[PointError] = []
    for s in samples:
        t = s.screen.to_pixels(w, h)
        p = mapper.predict(s.eye, samples).to_pixels(w, h)
        out.append(PointError(true_xy=t, pred_xy=p, dist_px=math.hypot(p[0] - t[0], p[1] - t[1])))
    return out


def error_distances(errors: Sequence[PointError]) -> np.ndarray:
    return np.fromiter((e.dist_px for e in errors), dtype=float, count=len(errors))


def summarize_errors(errors: Sequence[PointError], within_px: float = 50.0) -> ErrorSummary:
    d = error_distances(errors)
    if d.size == 0:
        return ErrorSummary(0, 0.0, 0.0, 0.0, float(within_px), 0.0)
    return ErrorSummary(
        count=int(d.size),
        mean_px=float(d.mean()),
        max_px=float(d.max()),
        rms_px=float(np.sqrt(np.mean(d * d))),
        within_px=float(within_px),
        hit_rate=float(np.count_nonzero(d <= within_px)) / d.size,
    )


def correction_error_vectors(samples: Sequence[CalibrationSample], screen_size: Tuple[int, int]) -> np.ndarray:
    """(N, 2) pixel error vectors recorded with live corrections."""
    w, h = int(screen_size[0]), int(screen_size[1])
    vecs = [(s.error.x * w, s.error.y * h) for s in samples if s.error is not None]
    if not vecs:
        return np.zeros((0, 2), dtype=float)
    return np.array(vecs, dtype=float)
