"""
Cursor control via pyautogui.

CursorController is the presentation sink for FrameOutput:
- moves the OS cursor to the published pixel position
- optionally turns blink clicks into OS clicks
- holds a short-lived click indicator (click_state) that resets to "none"
  after click_feedback_s, independent of the blink detectors

Notes:
- pyautogui is imported on first use; built-in pauses are disabled
  (PAUSE=0) and FAILSAFE is off.
"""
from __future__ import annotations

import logging
from typing import Optional, Tuple

from GazeTrack.control.events import ClickSide, FrameOutput

logger = logging.getLogger(__name__)


def _load_pyautogui():
    import pyautogui

    pyautogui.FAILSAFE = False
    pyautogui.PAUSE = 0  # disable built-in delays
    return pyautogui


class CursorController:
    def __init__(
        self,
        scheduler,
        clicks_enabled: bool = False,
        click_feedback_s: float = 0.2,
        move_enabled: bool = True,
        backend=None,
    ) -> None:
        self.scheduler = scheduler
        self.clicks_enabled = bool(clicks_enabled)
        self.click_feedback_s = float(click_feedback_s)
        self.move_enabled = bool(move_enabled)
        self._backend = backend
        self.click_state = ClickSide.NONE
        self.last_xy: Optional[Tuple[int, int]] = None
        self._reset_handle = None

    @property
    def backend(self):
        if self._backend is None:
            self._backend = _load_pyautogui()
        return self._backend

    def __call__(self, output: FrameOutput) -> None:
        self.publish(output)

    # Public API ------------------------------------------------------
    def publish(self, output: FrameOutput) -> None:
        x, y = output.cursor_xy
        if self.move_enabled and output.cursor_xy != self.last_xy:
            self.backend.moveTo(int(x), int(y), duration=0)
        self.last_xy = output.cursor_xy
        if output.click is not ClickSide.NONE:
            self._on_click(output.click, x, y)

    def _on_click(self, side: ClickSide, x: int, y: int) -> None:
        logger.info("%s click at (%d, %d)", side.value, x, y)
        if self.clicks_enabled:
            self.backend.click(x=int(x), y=int(y), button=side.value)
        self.click_state = side
        if self._reset_handle is not None:
            self.scheduler.cancel(self._reset_handle)
        self._reset_handle = self.scheduler.call_later(self.click_feedback_s, self._reset_click)

    def _reset_click(self) -> None:
        self.click_state = ClickSide.NONE
        self._reset_handle = None

    def close(self) -> None:
        if self._reset_handle is not None:
            self.scheduler.cancel(self._reset_handle)
            self._reset_handle = None
        self.click_state = ClickSide.NONE
