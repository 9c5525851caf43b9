"""
Settings manager for GazeTrack.

Loads/saves JSON settings (default GazeTrack/settings.json) and exposes typed
config objects consumed once at construction time. Sections present in the
file are merged over the defaults, so a file only needs the keys it changes.
"""
from __future__ import annotations

import copy
import json
import os
from dataclasses import fields
from typing import Any, Dict, Optional, Tuple

from GazeTrack.calibration.models import BlinkConfig, CalibrationConfig, MapperConfig, SmoothingConfig

DEFAULTS: Dict[str, Any] = {
    "screen": {"width": 1920, "height": 1080, "auto_detect": True},
    "smoothing": {
        "algorithm": "lerp",
        "alpha": 0.15,
        "freq": 30.0,
        "min_cutoff": 1.0,
        "beta": 0.007,
        "d_cutoff": 1.0,
    },
    "mapper": {
        "strategy": "idw",
        "k": 4,
        "power": 4.0,
        "snap_threshold": 0.1,
        "epsilon": 1e-9,
        "sensitivity": 1.0,
        "min_samples": 6,
        "padding": 0.1,
        "mirror_x": False,
    },
    "blink": {
        "ear_threshold": 0.25,
        "closing_frames": 1,
        "closed_frames": 2,
        "max_click_frames": None,
        "squint_timeout_frames": None,
        "cooldown_frames": 0,
        "on_lost": "freeze",
    },
    "calibration": {
        "layout": "9",
        "margin": 0.1,
        "dwell_s": 1.8,
        "capture_window_s": 1.0,
        "sample_rate_hz": 10.0,
        "capture_mode": "average",
        "targets": [],
    },
    "feedback": {"correction_s": 0.2, "click_s": 0.2},
    "loop": {"update_interval_ms": 33, "render_interval_ms": 16},
    "cursor": {"clicks_enabled": False},
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in override.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def _build(cls, section: Dict[str, Any]):
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(section) - known)
    if unknown:
        raise ValueError(f"unknown {cls.__name__} keys: {', '.join(unknown)}")
    return cls(**section)


class SettingsManager:
    def __init__(self, path: Optional[str] = None) -> None:
        if path is None:
            here = os.path.dirname(os.path.abspath(__file__))
            path = os.path.join(os.path.dirname(here), "settings.json")
        self.path = path
        self.data: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.path):
            self.data = copy.deepcopy(DEFAULTS)
            return
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                loaded = json.load(f)
            except json.JSONDecodeError as e:
                raise ValueError(f"{self.path}: not valid JSON") from e
        if not isinstance(loaded, dict):
            raise ValueError(f"{self.path}: settings must be a JSON object")
        self.data = _merge(DEFAULTS, loaded)

    def save(self) -> None:
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(self.data, f, indent=2)

    # Convenience accessors -------------------------------------------------
    def screen_size(self) -> Tuple[int, int]:
        s = self.data.get("screen", {})
        return int(s.get("width", 1920)), int(s.get("height", 1080))

    def set_screen_size(self, w: int, h: int) -> None:
        self.data.setdefault("screen", {}).update({"width": int(w), "height": int(h)})

    def auto_detect_screen(self) -> bool:
        return bool(self.data.get("screen", {}).get("auto_detect", True))

    def smoothing_config(self) -> SmoothingConfig:
        return _build(SmoothingConfig, self.data.get("smoothing", {}))

    def mapper_config(self) -> MapperConfig:
        return _build(MapperConfig, self.data.get("mapper", {}))

    def blink_config(self) -> BlinkConfig:
        return _build(BlinkConfig, self.data.get("blink", {}))

    def calibration_config(self) -> CalibrationConfig:
        section = dict(self.data.get("calibration", {}))
        section["targets"] = [tuple(p) for p in section.get("targets") or []]
        return _build(CalibrationConfig, section)

    def set_mapper_strategy(self, name: str) -> None:
        self.data.setdefault("mapper", {})["strategy"] = str(name)

    def feedback_s(self) -> float:
        return float(self.data.get("feedback", {}).get("correction_s", 0.2))

    def click_feedback_s(self) -> float:
        return float(self.data.get("feedback", {}).get("click_s", 0.2))

    def update_interval_ms(self) -> int:
        return int(self.data.get("loop", {}).get("update_interval_ms", 33))

    def render_interval_ms(self) -> int:
        return int(self.data.get("loop", {}).get("render_interval_ms", 16))

    def clicks_enabled(self) -> bool:
        return bool(self.data.get("cursor", {}).get("clicks_enabled", False))
