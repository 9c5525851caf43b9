from __future__ import annotations

import logging
from typing import Callable, List, Optional, Tuple

from GazeTrack.calibration.models import (
    CENTER,
    BlinkConfig,
    CalibrationState,
    FrameObservation,
    ScreenPoint,
)
from GazeTrack.control.events import ClickEvent, ClickSide, FrameOutput
from GazeTrack.tracking.calibration import CalibrationManager
from GazeTrack.tracking.smoothing import PointSmoother
from GazeTrack.utils.blink import BlinkDetector

logger = logging.getLogger(__name__)

STATUS_TEXT = {
    CalibrationState.NOT_STARTED: "Initializing...",
    CalibrationState.IN_PROGRESS: "Calibrating...",
    CalibrationState.FINISHED: "Tracking Active",
}


class ControlLoop:
    """Per-frame orchestration.

    Two cooperative activities share one piece of state, the target point:
    - update(): perception step; pulls an observation, feeds the blink
      detectors, the calibration manager (while calibrating) or the mapper,
      and writes the new target
    - render(): smoothing step; smooths the target and publishes a
      FrameOutput to the presenter

    They may run at different cadences; step() runs both once.
    """

    def __init__(
        self,
        adapter,
        calibration: CalibrationManager,
        mapper,
        smoother: PointSmoother,
        screen_size: Tuple[int, int],
        scheduler,
        presenter: Optional[Callable[[FrameOutput], None]] = None,
        blink_config: Optional[BlinkConfig] = None,
        feedback_s: float = 0.2,
    ) -> None:
        self.adapter = adapter
        self.calibration = calibration
        self.mapper = mapper
        self.smoother = smoother
        self.screen_size = (int(screen_size[0]), int(screen_size[1]))
        self.scheduler = scheduler
        self.presenter = presenter
        self.feedback_s = float(feedback_s)
        self.left_blink = BlinkDetector(ClickSide.LEFT, blink_config)
        self.right_blink = BlinkDetector(ClickSide.RIGHT, blink_config)

        self.target: ScreenPoint = CENTER
        self.cursor: ScreenPoint = CENTER
        self.last_observation: Optional[FrameObservation] = None
        self.correction_mode = False
        self._pending_clicks: List[ClickEvent] = []
        self._feedback_xy: Optional[Tuple[int, int]] = None
        self._feedback_handle = None

        self.smoother.snap(CENTER)
        self.calibration.on_changed(self.mapper.invalidate)

    # ------------------------------------------------------------------
    # Perception step
    # ------------------------------------------------------------------
    def update(self, observation: Optional[FrameObservation] = None) -> None:
        obs = observation if observation is not None else self.adapter.read()
        if obs is None:
            # transient loss: blink detectors follow their policy, target held
            self.left_blink.update(None)
            self.right_blink.update(None)
            return

        self.last_observation = obs
        calibrating = self.calibration.state is CalibrationState.IN_PROGRESS
        if calibrating:
            self.calibration.observe(obs.eye)
        for detector, ear in ((self.left_blink, obs.left_ear), (self.right_blink, obs.right_ear)):
            event = detector.update(ear)
            if event is None:
                continue
            # in confirm mode a blink during capture takes the sample instead of clicking
            if calibrating and self.calibration.confirm():
                logger.debug("%s blink confirmed calibration target", event.side.value)
                continue
            self._pending_clicks.append(event)

        if calibrating:
            return
        # both axes written at once
        self.target = self.mapper.predict(obs.eye, self.calibration.samples)

    # ------------------------------------------------------------------
    # Smoothing / publish step
    # ------------------------------------------------------------------
    def render(self, timestamp: Optional[float] = None) -> FrameOutput:
        t = self.scheduler.now() if timestamp is None else float(timestamp)
        self.cursor = self.smoother.apply(self.target, t).clamped()
        click = ClickSide.NONE
        if self._pending_clicks:
            click = self._pending_clicks.pop(0).side
        out = FrameOutput(
            cursor_xy=self.cursor.to_pixels(*self.screen_size),
            click=click,
            calibration_state=self.calibration.state,
            calibration_progress=self.calibration.progress,
            calibration_target=self.calibration.current_target,
            correction_feedback=self._feedback_xy is not None,
            correction_xy=self._feedback_xy,
        )
        if self.presenter is not None:
            self.presenter(out)
        return out

    def step(self, observation: Optional[FrameObservation] = None) -> FrameOutput:
        self.update(observation)
        return self.render()

    # ------------------------------------------------------------------
    # Live correction
    # ------------------------------------------------------------------
    def set_correction_mode(self, held: bool) -> None:
        self.correction_mode = bool(held)

    def handle_click(self, x_px: float, y_px: float) -> bool:
        """Record a correction at the clicked pixel when the modifier is held."""
        if not self.correction_mode or self.last_observation is None:
            return False
        w, h = self.screen_size
        screen = ScreenPoint.from_pixels(x_px, y_px, w, h).clamped()
        eye = self.last_observation.eye
        predicted = self.mapper.predict(eye, self.calibration.samples)
        if not self.calibration.add_correction(eye, screen, predicted):
            return False
        self.target = screen
        self.smoother.snap(screen)
        self.cursor = screen
        self._show_feedback(screen.to_pixels(w, h))
        return True

    def _show_feedback(self, xy: Tuple[int, int]) -> None:
        if self._feedback_handle is not None:
            self.scheduler.cancel(self._feedback_handle)
        self._feedback_xy = xy
        self._feedback_handle = self.scheduler.call_later(self.feedback_s, self._clear_feedback)

    def _clear_feedback(self) -> None:
        self._feedback_xy = None
        self._feedback_handle = None

    def clear_corrections(self) -> None:
        self.calibration.clear()

    def source_changed(self) -> None:
        """Perception source switched (e.g. another camera): old samples no longer apply."""
        logger.info("perception source changed; clearing calibration samples")
        self.calibration.clear()
        self.left_blink.reset()
        self.right_blink.reset()
        self._pending_clicks.clear()
        self.target = CENTER
        self.smoother.reset()
        self.smoother.snap(CENTER)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start_calibration(self) -> None:
        self.calibration.start()

    def stop(self) -> None:
        self.calibration.cancel()
        if self._feedback_handle is not None:
            self.scheduler.cancel(self._feedback_handle)
        self._clear_feedback()

    def status_text(self) -> str:
        return STATUS_TEXT[self.calibration.state]
