"""
Blink detection from an eye-aspect-ratio (EAR) proxy.

One BlinkDetector per eye. Each frame, update(ear) advances a small state
machine and returns a ClickEvent when a blink completes:

    open -> closing -> closed -> [cooldown] -> open

- A single-frame dip below the threshold is rejected as noise.
- A closure longer than the squint timeout returns to open without a click.
- update(None) means the eye was not visible this frame; the lost-detection
  policy either freezes the state ("freeze") or resets it ("reset").
"""
from __future__ import annotations

import logging
from enum import Enum
from typing import Optional

from GazeTrack.calibration.models import BlinkConfig
from GazeTrack.control.events import ClickEvent, ClickSide

logger = logging.getLogger(__name__)


class BlinkState(str, Enum):
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"
    COOLDOWN = "cooldown"


class BlinkDetector:
    def __init__(self, side: ClickSide, config: Optional[BlinkConfig] = None) -> None:
        self.side = side
        self.config = config or BlinkConfig()
        if self.config.on_lost not in ("freeze", "reset"):
            raise ValueError(f"unknown lost-detection policy: {self.config.on_lost!r}")
        self.state = BlinkState.OPEN
        self.frames = 0
        # set after a squint timeout; cleared once the eye reopens
        self._squinting = False

    def reset(self) -> None:
        self.state = BlinkState.OPEN
        self.frames = 0
        self._squinting = False

    def _to_open(self) -> None:
        self.state = BlinkState.OPEN
        self.frames = 0

    # Public API ---------------------------------------------------------
    def update(self, ear: Optional[float]) -> Optional[ClickEvent]:
        if ear is None or ear != ear:  # not visible / NaN
            if self.config.on_lost == "reset":
                self._to_open()
            return None

        cfg = self.config
        below = float(ear) < cfg.ear_threshold

        if self.state is BlinkState.OPEN:
            if not below:
                self._squinting = False
            elif not self._squinting:
                self.state = BlinkState.CLOSING
                self.frames = 1
            return None

        if self.state is BlinkState.CLOSING:
            if not below:
                self._to_open()
            elif self.frames >= cfg.closing_frames:
                self.state = BlinkState.CLOSED
                self.frames = 1
            else:
                self.frames += 1
            return None

        if self.state is BlinkState.CLOSED:
            if not below:
                fired = 0 < self.frames <= cfg.click_window
                closed_for = self.frames
                if fired and cfg.cooldown_frames > 0:
                    self.state = BlinkState.COOLDOWN
                    self.frames = 0
                else:
                    self._to_open()
                if fired:
                    logger.debug("%s blink after %d closed frames", self.side.value, closed_for)
                    return ClickEvent(self.side)
                return None
            if self.frames > cfg.squint_timeout:
                logger.debug("%s eye closed past squint timeout; no click", self.side.value)
                self._to_open()
                self._squinting = True
            else:
                self.frames += 1
            return None

        # cooldown: EAR ignored until the frame budget is spent
        self.frames += 1
        if self.frames >= cfg.cooldown_frames:
            self._to_open()
        return None
