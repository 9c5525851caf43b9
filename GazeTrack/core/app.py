"""
GazeTrack application: replay recorded observations through the control loop
and drive the OS cursor.

    python run.py --replay session.csv --calibrate --calibration calib.json

Two Qt timers run the cooperative loop: perception updates at camera cadence
and smoothing/publishing at display cadence.
"""
from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import List, Optional, Tuple

from PyQt6.QtCore import QCoreApplication, QTimer

from GazeTrack.analysis.error_metrics import compute_point_errors, summarize_errors
from GazeTrack.control.cursor import CursorController
from GazeTrack.core.scheduler import QtScheduler
from GazeTrack.core.settings import SettingsManager
from GazeTrack.tracking.calibration import CalibrationManager
from GazeTrack.tracking.mapping import make_mapper
from GazeTrack.tracking.pipeline import ControlLoop
from GazeTrack.tracking.replay import ReplayAdapter
from GazeTrack.tracking.smoothing import make_smoother

logger = logging.getLogger(__name__)


def build_loop(settings: SettingsManager, adapter, scheduler, presenter=None, screen_size: Optional[Tuple[int, int]] = None) -> ControlLoop:
    """Construct every component once from settings and wire them together."""
    size = screen_size or settings.screen_size()
    mapper_cfg = settings.mapper_config()
    calibration = CalibrationManager(scheduler, settings.calibration_config(), padding=mapper_cfg.padding)
    return ControlLoop(
        adapter=adapter,
        calibration=calibration,
        mapper=make_mapper(mapper_cfg),
        smoother=make_smoother(settings.smoothing_config()),
        screen_size=size,
        scheduler=scheduler,
        presenter=presenter,
        blink_config=settings.blink_config(),
        feedback_s=settings.feedback_s(),
    )


class AppCore:
    def __init__(self, settings: SettingsManager, adapter: ReplayAdapter, move_cursor: bool = True) -> None:
        self.settings = settings
        self.adapter = adapter
        self.scheduler = QtScheduler()
        self.cursor = CursorController(
            self.scheduler,
            clicks_enabled=settings.clicks_enabled(),
            click_feedback_s=settings.click_feedback_s(),
            move_enabled=move_cursor,
        )
        self.loop = build_loop(settings, adapter, self.scheduler, self.cursor, self._screen_size(move_cursor))
        self._last_status = ""

        self.update_timer = QTimer()
        self.update_timer.setInterval(settings.update_interval_ms())
        self.update_timer.timeout.connect(self._on_update)  # type: ignore[attr-defined]
        self.render_timer = QTimer()
        self.render_timer.setInterval(settings.render_interval_ms())
        self.render_timer.timeout.connect(self._on_render)  # type: ignore[attr-defined]

    def _screen_size(self, query_os: bool) -> Tuple[int, int]:
        if query_os and self.settings.auto_detect_screen():
            w, h = self.cursor.backend.size()
            return int(w), int(h)
        return self.settings.screen_size()

    def start(self, calibrate: bool) -> None:
        if calibrate:
            self.loop.start_calibration()
        self.update_timer.start()
        self.render_timer.start()

    def stop(self) -> None:
        self.update_timer.stop()
        self.render_timer.stop()
        self.loop.stop()
        self.cursor.close()
        self.scheduler.cancel_all()

    def _on_update(self) -> None:
        self.loop.update()
        status = self.loop.status_text()
        if status != self._last_status:
            logger.info("status: %s", status)
            self._last_status = status
        if self.adapter.exhausted:
            logger.info("replay finished")
            QCoreApplication.quit()

    def _on_render(self) -> None:
        self.loop.render()


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Gaze cursor with blink clicks, driven by recorded observations")
    p.add_argument("--settings", help="settings JSON (default GazeTrack/settings.json)")
    p.add_argument("--replay", required=True, help="CSV with eye_x, eye_y, left_ear, right_ear")
    p.add_argument("--loop", action="store_true", help="restart the replay when it ends")
    p.add_argument("--calibration", help="calibration samples JSON to load before and save after the run")
    p.add_argument("--calibrate", action="store_true", help="run the structured calibration at start")
    p.add_argument("--report", help="write a calibration accuracy PNG here on exit")
    p.add_argument("--no-cursor", action="store_true", help="do not move the OS cursor")
    p.add_argument("--verbose", "-v", action="store_true")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    try:
        settings = SettingsManager(args.settings)
        adapter = ReplayAdapter.from_csv(args.replay, loop=args.loop)
    except (OSError, ValueError) as e:
        logger.error("startup failed: %s", e)
        return 1

    qt_app = QCoreApplication.instance() or QCoreApplication(sys.argv[:1])
    core = AppCore(settings, adapter, move_cursor=not args.no_cursor)
    calib = core.loop.calibration
    if args.calibration and os.path.exists(args.calibration):
        try:
            calib.load(args.calibration)
        except ValueError as e:
            logger.error("could not load calibration: %s", e)
            return 1

    core.start(calibrate=args.calibrate)
    try:
        qt_app.exec()
    finally:
        core.stop()

    if args.calibration and calib.samples:
        calib.save(args.calibration)
    if calib.samples:
        size = core.loop.screen_size
        errors = compute_point_errors(calib.samples, core.loop.mapper, size)
        logger.info("calibration accuracy: %s", summarize_errors(errors).caption())
        if args.report:
            from GazeTrack.analysis.plots import save_report

            save_report(errors, size, args.report)
            logger.info("report written to %s", args.report)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
