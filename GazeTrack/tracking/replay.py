"""
Replay perception adapter.

Reads recorded per-frame observations from a CSV file with the columns
eye_x, eye_y, left_ear, right_ear. A row whose eye fields are empty means
"no detection" for that frame.
"""
from __future__ import annotations

import csv
from typing import List, Optional

from GazeTrack.calibration.models import EyePoint, FrameObservation

COLUMNS = ("eye_x", "eye_y", "left_ear", "right_ear")


def load_observations(path: str) -> List[Optional[FrameObservation]]:
    frames: List[Optional[FrameObservation]] = []
    with open(path, newline="", encoding="utf-8") as f:
        r = csv.DictReader(f)
        missing = [c for c in COLUMNS if c not in (r.fieldnames or [])]
        if missing:
            raise ValueError(f"{path}: missing columns {', '.join(missing)}")
        for line, row in enumerate(r, start=2):
            ex = (row["eye_x"] or "").strip()
            ey = (row["eye_y"] or "").strip()
            if not ex or not ey:
                frames.append(None)
                continue
            try:
                frames.append(
                    FrameObservation(
                        eye=EyePoint(float(ex), float(ey)),
                        left_ear=float(row["left_ear"]),
                        right_ear=float(row["right_ear"]),
                    )
                )
            except (TypeError, ValueError) as e:
                raise ValueError(f"{path}:{line}: malformed observation row") from e
    return frames


class ReplayAdapter:
    def __init__(self, frames: List[Optional[FrameObservation]], loop: bool = False) -> None:
        self._frames = list(frames)
        self.loop = bool(loop)
        self._pos = 0

    @classmethod
    def from_csv(cls, path: str, loop: bool = False) -> "ReplayAdapter":
        return cls(load_observations(path), loop=loop)

    @property
    def exhausted(self) -> bool:
        return not self.loop and self._pos >= len(self._frames)

    def read(self) -> Optional[FrameObservation]:
        if not self._frames:
            return None
        if self._pos >= len(self._frames):
            if not self.loop:
                return None
            self._pos = 0
        obs = self._frames[self._pos]
        self._pos += 1
        return obs
