from __future__ import annotations

import math
from typing import Optional

from GazeTrack.calibration.models import ScreenPoint, SmoothingConfig


class LerpFilter:
    """Exponential lerp toward the latest target.

    smoothed' = smoothed + (target - smoothed) * alpha

    The first sample initializes the state unless an initial value is given.
    Timestamps are accepted for interface parity and ignored.
    """

    def __init__(self, alpha: float = 0.15, initial: Optional[float] = None) -> None:
        alpha = float(alpha)
        if not (0.0 < alpha <= 1.0):
            raise ValueError("alpha must be in (0, 1]")
        self.alpha = alpha
        self._initial = initial
        self._value: Optional[float] = None if initial is None else float(initial)

    def reset(self) -> None:
        self._value = None if self._initial is None else float(self._initial)

    def snap(self, value: float) -> None:
        self._value = float(value)

    @property
    def value(self) -> Optional[float]:
        return self._value

    def apply(self, value: float, timestamp: Optional[float] = None) -> float:
        x = float(value)
        if self._value is None:
            self._value = x
            return x
        self._value = self._value + (x - self._value) * self.alpha
        return self._value


class OneEuroFilter:
    """Adaptive low-pass filter: the cutoff rises with signal speed.

    Parameters:
    - freq: nominal update rate (Hz), used when no timestamp is supplied
    - min_cutoff: cutoff when still; lower = more smoothing at rest
    - beta: speed coefficient; higher = less lag during fast moves
    - d_cutoff: fixed cutoff for the derivative estimate

    Reference: http://cristal.univ-lille.fr/~casiez/1euro/
    """

    def __init__(self, freq: float = 30.0, min_cutoff: float = 1.0, beta: float = 0.007, d_cutoff: float = 1.0) -> None:
        self.freq = max(1e-3, float(freq))
        self.min_cutoff = float(min_cutoff)
        self.beta = float(beta)
        self.d_cutoff = float(d_cutoff)
        self.reset()

    def reset(self) -> None:
        self.previous_value = 0.0
        self.previous_derivative = 0.0
        self.previous_timestamp = 0.0
        self.is_first_sample = True

    def snap(self, value: float) -> None:
        self.previous_value = float(value)
        self.previous_derivative = 0.0
        # keep the clock so the next dt stays meaningful
        if self.is_first_sample:
            self.previous_timestamp = 0.0
            self.is_first_sample = False

    @property
    def value(self) -> Optional[float]:
        return None if self.is_first_sample else self.previous_value

    @staticmethod
    def _coefficient(cutoff: float, dt: float) -> float:
        r = 2.0 * math.pi * cutoff * dt
        return r / (r + 1.0)

    def apply(self, value: float, timestamp: Optional[float] = None) -> float:
        x = float(value)
        if timestamp is None:
            timestamp = (self.previous_timestamp + 1.0 / self.freq) if not self.is_first_sample else 0.0
        t = float(timestamp)
        if self.is_first_sample:
            self.previous_value = x
            self.previous_derivative = 0.0
            self.previous_timestamp = t
            self.is_first_sample = False
            return x

        dt = t - self.previous_timestamp
        if dt <= 0:
            return self.previous_value

        dx = (x - self.previous_value) / dt
        a_d = self._coefficient(self.d_cutoff, dt)
        dx_hat = self.previous_derivative + a_d * (dx - self.previous_derivative)

        cutoff = self.min_cutoff + self.beta * abs(dx_hat)
        a = self._coefficient(cutoff, dt)
        x_hat = self.previous_value + a * (x - self.previous_value)

        self.previous_value = x_hat
        self.previous_derivative = dx_hat
        self.previous_timestamp = t
        return x_hat


class PointSmoother:
    """Two independent scalar channels, one per screen axis."""

    def __init__(self, x_filter, y_filter) -> None:
        self.x = x_filter
        self.y = y_filter

    def reset(self) -> None:
        self.x.reset()
        self.y.reset()

    def snap(self, point: ScreenPoint) -> None:
        self.x.snap(point.x)
        self.y.snap(point.y)

    def apply(self, point: ScreenPoint, timestamp: Optional[float] = None) -> ScreenPoint:
        return ScreenPoint(self.x.apply(point.x, timestamp), self.y.apply(point.y, timestamp))


def make_smoother(config: SmoothingConfig, initial: Optional[ScreenPoint] = None) -> PointSmoother:
    algo = (config.algorithm or "").strip().lower()
    if algo == "lerp":
        ix = initial.x if initial is not None else None
        iy = initial.y if initial is not None else None
        return PointSmoother(LerpFilter(config.alpha, ix), LerpFilter(config.alpha, iy))
    if algo in ("one_euro", "oneeuro", "1euro"):
        return PointSmoother(
            OneEuroFilter(config.freq, config.min_cutoff, config.beta, config.d_cutoff),
            OneEuroFilter(config.freq, config.min_cutoff, config.beta, config.d_cutoff),
        )
    raise ValueError(f"unknown smoothing algorithm: {config.algorithm!r}")
