"""
Calibration manager: structured multi-point calibration plus live corrections.

Structured run (state IN_PROGRESS), per target in order:
  1. dwell   - target shown, no sampling for dwell_s
  2. capture - 'average': sample the freshest eye reading at sample_rate_hz
               for capture_window_s and average; 'confirm': take the latest
               reading when confirm() is called
One CalibrationSample is appended per target. A target with no eye reading
(tracking lost) uses its own screen position as the eye point.

All waits are callbacks on the injected scheduler; start(), cancel() and
reset paths tear every pending callback down.
"""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Callable, Dict, List, Optional, Tuple

from GazeTrack.calibration.models import (
    CalibrationConfig,
    CalibrationMap,
    CalibrationSample,
    CalibrationState,
    EyePoint,
    ScreenPoint,
)

logger = logging.getLogger(__name__)

FORMAT_VERSION = 1


class CalibrationManager:
    def __init__(self, scheduler, config: Optional[CalibrationConfig] = None, padding: float = 0.1) -> None:
        self.scheduler = scheduler
        self.config = config or CalibrationConfig()
        if self.config.capture_mode not in ("average", "confirm"):
            raise ValueError(f"unknown capture mode: {self.config.capture_mode!r}")
        self.targets: List[ScreenPoint] = self.config.target_points()
        self.padding = float(padding)

        self.state = CalibrationState.NOT_STARTED
        self.phase: Optional[str] = None  # 'dwell' | 'capture' | None
        self._index = 0
        self._samples: Tuple[CalibrationSample, ...] = ()
        self._map: Optional[CalibrationMap] = None
        self._handles: List[Any] = []
        self._latest_eye: Optional[EyePoint] = None
        self._fresh_eye: Optional[EyePoint] = None
        self._readings: List[EyePoint] = []
        self._listeners: List[Callable[[], None]] = []

    # ------------------------------------------------------------------
    # Sample set
    # ------------------------------------------------------------------
    @property
    def samples(self) -> Tuple[CalibrationSample, ...]:
        """Insertion-ordered snapshot; a new tuple after every change."""
        return self._samples

    @property
    def calibration_map(self) -> Optional[CalibrationMap]:
        return self._map

    def _set_samples(self, samples: Tuple[CalibrationSample, ...]) -> None:
        self._samples = samples
        self._map = CalibrationMap.from_samples(samples, self.padding)

    def on_changed(self, callback: Callable[[], None]) -> None:
        """Register a listener fired when the set completes, changes or clears."""
        self._listeners.append(callback)

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb()

    # ------------------------------------------------------------------
    # Structured calibration
    # ------------------------------------------------------------------
    @property
    def current_target(self) -> Optional[ScreenPoint]:
        if self.state is not CalibrationState.IN_PROGRESS:
            return None
        if 0 <= self._index < len(self.targets):
            return self.targets[self._index]
        return None

    @property
    def progress(self) -> float:
        if self.state is CalibrationState.FINISHED:
            return 1.0
        if self.state is CalibrationState.NOT_STARTED or not self.targets:
            return 0.0
        return min(1.0, self._index / float(len(self.targets)))

    def start(self) -> None:
        self._cancel_pending()
        self._set_samples(())
        self._index = 0
        self._latest_eye = None
        self.state = CalibrationState.IN_PROGRESS
        logger.info("calibration started: %d targets, mode=%s", len(self.targets), self.config.capture_mode)
        self._begin_target()

    def cancel(self) -> None:
        if self.state is not CalibrationState.IN_PROGRESS:
            self._cancel_pending()
            return
        self._cancel_pending()
        self._set_samples(())
        self.state = CalibrationState.NOT_STARTED
        self.phase = None
        logger.info("calibration cancelled at target %d/%d", self._index + 1, len(self.targets))
        self._notify()

    def observe(self, eye: EyePoint) -> None:
        self._latest_eye = eye
        self._fresh_eye = eye

    def confirm(self) -> bool:
        """Explicit capture for 'confirm' mode. Returns True if a sample was taken."""
        if self.state is not CalibrationState.IN_PROGRESS or self.phase != "capture":
            return False
        if self.config.capture_mode != "confirm":
            return False
        target = self.targets[self._index]
        eye = self._latest_eye
        if eye is None:
            logger.warning("no eye reading for target %d; using target position", self._index + 1)
            eye = EyePoint(target.x, target.y)
        self._append_and_advance(CalibrationSample(eye=eye, screen=target))
        return True

    def _schedule(self, delay_s: float, callback: Callable[[], None]) -> None:
        self._handles.append(self.scheduler.call_later(delay_s, callback))

    def _cancel_pending(self) -> None:
        for h in self._handles:
            self.scheduler.cancel(h)
        self._handles.clear()
        self._readings.clear()
        self._fresh_eye = None

    def _begin_target(self) -> None:
        if self._index >= len(self.targets):
            self._finish()
            return
        self.phase = "dwell"
        self._readings.clear()
        self._schedule(self.config.dwell_s, self._begin_capture)

    def _begin_capture(self) -> None:
        self._handles.clear()
        self.phase = "capture"
        if self.config.capture_mode == "confirm":
            return
        self._fresh_eye = None
        rate = max(1e-3, float(self.config.sample_rate_hz))
        interval = 1.0 / rate
        ticks = max(1, int(round(self.config.capture_window_s * rate)))
        for i in range(1, ticks + 1):
            self._schedule(interval * i, self._on_sample_tick)
        self._schedule(interval * ticks, self._end_capture)

    def _on_sample_tick(self) -> None:
        if self._fresh_eye is not None:
            self._readings.append(self._fresh_eye)
            self._fresh_eye = None

    def _end_capture(self) -> None:
        self._handles.clear()
        target = self.targets[self._index]
        if self._readings:
            n = float(len(self._readings))
            eye = EyePoint(sum(e.x for e in self._readings) / n, sum(e.y for e in self._readings) / n)
        else:
            logger.warning("tracking lost at target %d; using target position", self._index + 1)
            eye = EyePoint(target.x, target.y)
        self._append_and_advance(CalibrationSample(eye=eye, screen=target))

    def _append_and_advance(self, sample: CalibrationSample) -> None:
        self._samples = self._samples + (sample,)
        logger.debug("target %d/%d captured: eye=(%.3f, %.3f)", self._index + 1, len(self.targets), sample.eye.x, sample.eye.y)
        self._readings.clear()
        self._index += 1
        self._begin_target()

    def _finish(self) -> None:
        self._cancel_pending()
        self.phase = None
        self._set_samples(self._samples)
        self.state = CalibrationState.FINISHED
        logger.info("calibration finished with %d samples", len(self._samples))
        self._notify()

    # ------------------------------------------------------------------
    # Live corrections
    # ------------------------------------------------------------------
    def add_correction(self, eye: EyePoint, screen: ScreenPoint, predicted: Optional[ScreenPoint] = None) -> bool:
        if self.state is CalibrationState.IN_PROGRESS:
            return False
        error = None
        if predicted is not None:
            error = ScreenPoint(screen.x - predicted.x, screen.y - predicted.y)
        self._set_samples(self._samples + (CalibrationSample(eye=eye, screen=screen, error=error),))
        logger.info("correction recorded at (%.3f, %.3f); %d samples", screen.x, screen.y, len(self._samples))
        self._notify()
        return True

    def clear(self) -> None:
        if self.state is CalibrationState.IN_PROGRESS:
            # a partial run cannot keep one sample per target
            self.cancel()
            return
        self._set_samples(())
        if self.state is CalibrationState.FINISHED:
            self.state = CalibrationState.NOT_STARTED
        logger.info("calibration samples cleared")
        self._notify()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def export_samples(self) -> List[Dict[str, Any]]:
        return [s.to_dict() for s in self._samples]

    def import_samples(self, items: List[Dict[str, Any]]) -> None:
        samples = tuple(CalibrationSample.from_dict(d) for d in items)
        self._cancel_pending()
        self.phase = None
        self._set_samples(samples)
        self.state = CalibrationState.FINISHED if samples else CalibrationState.NOT_STARTED
        self._notify()

    def save(self, path: str) -> None:
        data = {"version": FORMAT_VERSION, "samples": self.export_samples()}
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
        logger.info("saved %d calibration samples to %s", len(self._samples), path)

    def load(self, path: str) -> None:
        if not os.path.exists(path):
            raise FileNotFoundError(path)
        with open(path, "r", encoding="utf-8") as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"{path}: not valid JSON") from e
        items = data.get("samples") if isinstance(data, dict) else data
        if not isinstance(items, list):
            raise ValueError(f"{path}: expected a list of calibration samples")
        self.import_samples(items)
        logger.info("loaded %d calibration samples from %s", len(self._samples), path)
