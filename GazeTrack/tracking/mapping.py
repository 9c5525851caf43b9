"""
Gaze mapping strategies: eye-space point + calibration set -> screen point.

All strategies share predict(eye, samples) -> ScreenPoint (normalized) and
never raise for small or degenerate sets; they fall back to a simpler
answer instead. Fitted parameters are cached per sample sequence and only
recomputed when the sequence changes.

- LinearMapper: min-max normalization over the padded eye bounding box
- IdwMapper: k-nearest-neighbour inverse-distance weighting with snapping
- PolynomialMapper: quadratic least squares, one model per screen axis
"""
from __future__ import annotations

import logging
import math
from typing import List, Optional, Sequence, Tuple

import numpy as np

from GazeTrack.calibration.models import (
    CENTER,
    CalibrationMap,
    CalibrationSample,
    EyePoint,
    MapperConfig,
    ScreenPoint,
)

logger = logging.getLogger(__name__)

PIVOT_EPS = 1e-9


def _clamp01(v: float) -> float:
    return min(1.0, max(0.0, float(v)))


class _CachedFit:
    """Tracks which sample sequence the cached parameters belong to."""

    def __init__(self) -> None:
        self._fit_source: Optional[Tuple[CalibrationSample, ...]] = None

    def invalidate(self) -> None:
        self._fit_source = None

    def _needs_fit(self, samples: Sequence[CalibrationSample]) -> bool:
        src = self._fit_source
        if src is None:
            return True
        if samples is src:
            return False
        return tuple(samples) != src

    def _mark_fitted(self, samples: Sequence[CalibrationSample]) -> None:
        self._fit_source = samples if isinstance(samples, tuple) else tuple(samples)


class LinearMapper(_CachedFit):
    def __init__(self, padding: float = 0.1, mirror_x: bool = False) -> None:
        super().__init__()
        self.padding = float(padding)
        self.mirror_x = bool(mirror_x)
        self.calibration_map: Optional[CalibrationMap] = None
        self._last = CENTER

    def invalidate(self) -> None:
        super().invalidate()
        self.calibration_map = None
        self._last = CENTER

    def fit(self, samples: Sequence[CalibrationSample]) -> None:
        self.calibration_map = CalibrationMap.from_samples(samples, self.padding)
        self._mark_fitted(samples)

    def predict(self, eye: EyePoint, samples: Sequence[CalibrationSample]) -> ScreenPoint:
        if self._needs_fit(samples):
            self.fit(samples)
        m = self.calibration_map
        if m is None:
            return CENTER
        span_x = m.eye_max_x - m.eye_min_x
        span_y = m.eye_max_y - m.eye_min_y
        if span_x <= 0 or span_y <= 0:
            # degenerate box: hold the previous target
            return self._last
        nx = _clamp01((eye.x - m.eye_min_x) / span_x)
        ny = _clamp01((eye.y - m.eye_min_y) / span_y)
        if self.mirror_x:
            nx = 1.0 - nx
        self._last = ScreenPoint(nx, ny)
        return self._last


class IdwMapper:
    """K-nearest-neighbour inverse-distance weighting in eye-space.

    With at least k samples, a query closer than snap_threshold to a sample
    returns that sample's screen point; otherwise the k nearest samples are
    blended with weights 1 / (d**power + epsilon). With fewer than k samples
    the nearest sample is translated by the eye-space delta (times
    sensitivity). Output is clamped to [0, 1].
    """

    def __init__(self, k: int = 4, power: float = 4.0, snap_threshold: float = 0.1, epsilon: float = 1e-9, sensitivity: float = 1.0) -> None:
        self.k = max(1, int(k))
        self.power = float(power)
        self.snap_threshold = float(snap_threshold)
        self.epsilon = float(epsilon)
        self.sensitivity = float(sensitivity)

    def invalidate(self) -> None:
        # nothing cached; distances depend on the query
        pass

    def predict(self, eye: EyePoint, samples: Sequence[CalibrationSample]) -> ScreenPoint:
        if not samples:
            return CENTER
        # stable sort keeps insertion order among equal distances
        ranked: List[Tuple[float, CalibrationSample]] = sorted(
            ((math.hypot(s.eye.x - eye.x, s.eye.y - eye.y), s) for s in samples),
            key=lambda p: p[0],
        )
        if len(samples) < self.k:
            _, nearest = ranked[0]
            dx = (eye.x - nearest.eye.x) * self.sensitivity
            dy = (eye.y - nearest.eye.y) * self.sensitivity
            return ScreenPoint(_clamp01(nearest.screen.x + dx), _clamp01(nearest.screen.y + dy))

        d0, s0 = ranked[0]
        if d0 < self.snap_threshold:
            return s0.screen.clamped()

        total = 0.0
        wx = 0.0
        wy = 0.0
        for d, s in ranked[: self.k]:
            w = 1.0 / (d ** self.power + self.epsilon)
            total += w
            wx += s.screen.x * w
            wy += s.screen.y * w
        if total <= 0 or not math.isfinite(total):
            return s0.screen.clamped()
        return ScreenPoint(_clamp01(wx / total), _clamp01(wy / total))


def quadratic_features(ex: float, ey: float) -> List[float]:
    return [1.0, ex, ey, ex * ey, ex * ex, ey * ey]


def solve_linear_system(a, b) -> Optional[np.ndarray]:
    """Gaussian elimination with partial pivoting.

    Returns None when a pivot falls below PIVOT_EPS (singular system).
    """
    m = np.array(a, dtype=float)
    v = np.array(b, dtype=float)
    n = m.shape[0]
    for col in range(n):
        pivot_row = col + int(np.argmax(np.abs(m[col:, col])))
        if abs(m[pivot_row, col]) < PIVOT_EPS:
            return None
        if pivot_row != col:
            m[[col, pivot_row]] = m[[pivot_row, col]]
            v[[col, pivot_row]] = v[[pivot_row, col]]
        for row in range(col + 1, n):
            factor = m[row, col] / m[col, col]
            if factor != 0.0:
                m[row, col:] -= factor * m[col, col:]
                v[row] -= factor * v[col]
    out = np.zeros(n, dtype=float)
    for row in range(n - 1, -1, -1):
        out[row] = (v[row] - float(np.dot(m[row, row + 1:], out[row + 1:]))) / m[row, row]
    return out


class PolynomialMapper(_CachedFit):
    """screen = c0 + c1*ex + c2*ey + c3*ex*ey + c4*ex^2 + c5*ey^2, per axis."""

    def __init__(self, min_samples: int = 6, fallback: Optional[IdwMapper] = None) -> None:
        super().__init__()
        self.min_samples = max(6, int(min_samples))
        self.fallback = fallback or IdwMapper()
        self.coef_x: Optional[np.ndarray] = None
        self.coef_y: Optional[np.ndarray] = None

    def invalidate(self) -> None:
        super().invalidate()
        self.coef_x = None
        self.coef_y = None

    @property
    def is_fitted(self) -> bool:
        return self.coef_x is not None and self.coef_y is not None

    def fit(self, samples: Sequence[CalibrationSample]) -> bool:
        """Refit on samples.

        Too few samples drops the model (predictions use the fallback); a
        singular system keeps the previous coefficients.
        """
        self._mark_fitted(samples)
        if len(samples) < self.min_samples:
            logger.debug("polynomial fit skipped: %d < %d samples", len(samples), self.min_samples)
            self.coef_x = None
            self.coef_y = None
            return False
        X = np.array([quadratic_features(s.eye.x, s.eye.y) for s in samples], dtype=float)
        yx = np.array([s.screen.x for s in samples], dtype=float)
        yy = np.array([s.screen.y for s in samples], dtype=float)
        xtx = X.T @ X
        cx = solve_linear_system(xtx, X.T @ yx)
        cy = solve_linear_system(xtx, X.T @ yy)
        if cx is None or cy is None:
            logger.warning("polynomial fit rejected: singular normal equations (%d samples)", len(samples))
            return False
        self.coef_x, self.coef_y = cx, cy
        return True

    def predict(self, eye: EyePoint, samples: Sequence[CalibrationSample]) -> ScreenPoint:
        if self._needs_fit(samples):
            self.fit(samples)
        if not self.is_fitted:
            return self.fallback.predict(eye, samples)
        f = np.array(quadratic_features(eye.x, eye.y), dtype=float)
        px = float(f @ self.coef_x)
        py = float(f @ self.coef_y)
        if not (math.isfinite(px) and math.isfinite(py)):
            return self.fallback.predict(eye, samples)
        return ScreenPoint(_clamp01(px), _clamp01(py))


def make_mapper(config: MapperConfig):
    name = (config.strategy or "").strip().lower()
    idw = IdwMapper(
        k=config.k,
        power=config.power,
        snap_threshold=config.snap_threshold,
        epsilon=config.epsilon,
        sensitivity=config.sensitivity,
    )
    if name == "idw":
        return idw
    if name == "linear":
        return LinearMapper(padding=config.padding, mirror_x=config.mirror_x)
    if name == "polynomial":
        return PolynomialMapper(min_samples=config.min_samples, fallback=idw)
    raise ValueError(f"unknown mapper strategy: {config.strategy!r}")
