import math

from GazeTrack.calibration.models import (
    BlinkConfig,
    CalibrationConfig,
    CalibrationState,
    EyePoint,
    FrameObservation,
    MapperConfig,
    ScreenPoint,
    SmoothingConfig,
)
from GazeTrack.control.events import ClickSide
from GazeTrack.core.scheduler import VirtualScheduler
from GazeTrack.tracking.calibration import CalibrationManager
from GazeTrack.tracking.mapping import make_mapper
from GazeTrack.tracking.pipeline import ControlLoop
from GazeTrack.tracking.replay import ReplayAdapter
from GazeTrack.tracking.smoothing import make_smoother

SCREEN = (1001, 501)
OPEN = 0.35
SHUT = 0.1


def obs(x, y, left=OPEN, right=OPEN):
    return FrameObservation(eye=EyePoint(x, y), left_ear=left, right_ear=right)


def make_loop(frames=(), strategy="idw", alpha=1.0, calib=None):
    sched = VirtualScheduler()
    published = []
    loop = ControlLoop(
        adapter=ReplayAdapter(list(frames)),
        calibration=CalibrationManager(sched, calib or CalibrationConfig(layout="5", dwell_s=0.5, capture_window_s=0.5)),
        mapper=make_mapper(MapperConfig(strategy=strategy)),
        smoother=make_smoother(SmoothingConfig(algorithm="lerp", alpha=alpha)),
        screen_size=SCREEN,
        scheduler=sched,
        presenter=published.append,
        blink_config=BlinkConfig(),
    )
    return loop, sched, published


def test_uncalibrated_cursor_starts_at_center():
    loop, _, published = make_loop([obs(0.2, 0.8)])
    out = loop.step()
    assert out.cursor_xy == (500, 250)
    assert out.calibration_state is CalibrationState.NOT_STARTED
    assert published == [out]
    assert loop.status_text() == "Initializing..."


def test_no_detection_holds_target():
    loop, _, _ = make_loop()
    loop.calibration.add_correction(EyePoint(0.5, 0.5), ScreenPoint(0.9, 0.9))
    loop.update(obs(0.5, 0.5))
    held = loop.target
    assert held == ScreenPoint(0.9, 0.9)
    loop.update()  # adapter has nothing: no detection
    assert loop.target == held


def test_blinks_are_published_once():
    frames = [obs(0.5, 0.5), obs(0.5, 0.5, left=SHUT), obs(0.5, 0.5, left=SHUT), obs(0.5, 0.5), obs(0.5, 0.5)]
    loop, _, _ = make_loop(frames)
    clicks = [loop.step().click for _ in frames]
    assert clicks == [ClickSide.NONE, ClickSide.NONE, ClickSide.NONE, ClickSide.LEFT, ClickSide.NONE]


def test_right_eye_blink_distinguished():
    frames = [obs(0.5, 0.5, right=SHUT), obs(0.5, 0.5, right=SHUT), obs(0.5, 0.5)]
    loop, _, _ = make_loop(frames)
    clicks = [loop.step().click for _ in frames]
    assert clicks[-1] is ClickSide.RIGHT


def test_lost_frames_freeze_blink_state():
    loop, _, _ = make_loop()
    loop.update(obs(0.5, 0.5, left=SHUT))
    loop.update(obs(0.5, 0.5, left=SHUT))
    loop.update()  # face lost mid-blink
    loop.update(obs(0.5, 0.5))
    assert loop.render().click is ClickSide.LEFT


def test_calibration_then_tracking():
    calib = CalibrationConfig(targets=[(0.1, 0.1), (0.9, 0.1), (0.1, 0.9), (0.9, 0.9)], dwell_s=0.5, capture_window_s=0.5)
    loop, sched, _ = make_loop(strategy="linear", calib=calib)
    loop.start_calibration()
    assert loop.status_text() == "Calibrating..."
    for _ in range(120):
        target = loop.calibration.current_target
        if target is None:
            break
        # eye-space is a shrunken copy of screen-space
        out = loop.step(obs(0.3 + 0.4 * target.x, 0.3 + 0.4 * target.y))
        assert out.calibration_target == target
        assert out.cursor_xy == (500, 250)  # mapping is paused while calibrating
        sched.advance(0.05)
    assert loop.calibration.state is CalibrationState.FINISHED
    assert len(loop.calibration.samples) == 4
    out = loop.step(obs(0.5, 0.5))
    assert out.calibration_progress == 1.0
    assert abs(out.cursor_xy[0] - 500) <= 1 and abs(out.cursor_xy[1] - 250) <= 1
    assert loop.status_text() == "Tracking Active"


def test_correction_click_requires_modifier_and_snaps():
    loop, sched, _ = make_loop(alpha=0.1)
    loop.update(obs(0.4, 0.6))
    assert not loop.handle_click(800, 100)
    loop.set_correction_mode(True)
    assert loop.handle_click(800, 100)
    sample = loop.calibration.samples[-1]
    assert sample.eye == EyePoint(0.4, 0.6)
    assert math.isclose(sample.screen.x, 0.8) and math.isclose(sample.screen.y, 0.2)
    # predicted was screen center
    assert math.isclose(sample.error.x, 0.3) and math.isclose(sample.error.y, -0.3)
    out = loop.render()
    assert out.cursor_xy == (800, 100)
    assert out.correction_feedback and out.correction_xy == (800, 100)
    sched.advance(0.25)
    assert not loop.render().correction_feedback


def test_correction_rejected_during_calibration():
    loop, _, _ = make_loop()
    loop.update(obs(0.4, 0.6))
    loop.start_calibration()
    loop.set_correction_mode(True)
    assert not loop.handle_click(10, 10)


def test_blink_confirms_target_in_confirm_mode():
    calib = CalibrationConfig(targets=[(0.2, 0.2), (0.8, 0.8)], dwell_s=0.5, capture_mode="confirm")
    loop, sched, _ = make_loop(calib=calib)
    loop.start_calibration()

    def blink_at(x, y):
        return [loop.step(f).click for f in (obs(x, y, left=SHUT), obs(x, y, left=SHUT), obs(x, y))]

    sched.advance(0.6)
    assert blink_at(0.3, 0.3) == [ClickSide.NONE] * 3
    assert len(loop.calibration.samples) == 1
    assert loop.calibration.samples[0].eye == EyePoint(0.3, 0.3)
    assert loop.calibration.state is CalibrationState.IN_PROGRESS

    sched.advance(0.6)
    assert blink_at(0.7, 0.7) == [ClickSide.NONE] * 3
    assert loop.calibration.state is CalibrationState.FINISHED
    assert [s.screen for s in loop.calibration.samples] == [ScreenPoint(0.2, 0.2), ScreenPoint(0.8, 0.8)]


def test_blink_while_dwelling_is_still_a_click():
    calib = CalibrationConfig(targets=[(0.2, 0.2)], dwell_s=5.0, capture_mode="confirm")
    loop, _, _ = make_loop(calib=calib)
    loop.start_calibration()
    clicks = [loop.step(f).click for f in (obs(0.5, 0.5, left=SHUT), obs(0.5, 0.5, left=SHUT), obs(0.5, 0.5))]
    assert clicks[-1] is ClickSide.LEFT
    assert loop.calibration.samples == ()


def test_clear_corrections_during_calibration_aborts_run():
    loop, sched, _ = make_loop()
    loop.start_calibration()
    sched.advance(1.2)
    loop.clear_corrections()
    assert loop.calibration.state is CalibrationState.NOT_STARTED
    assert loop.status_text() == "Initializing..."


def test_corrections_invalidate_polynomial_cache():
    loop, _, _ = make_loop(strategy="polynomial")
    mapper = loop.mapper
    pts = [(0.3, 0.3), (0.5, 0.3), (0.7, 0.3), (0.3, 0.5), (0.5, 0.5), (0.7, 0.5), (0.3, 0.7), (0.5, 0.7)]
    for ex, ey in pts:
        loop.calibration.add_correction(EyePoint(ex, ey), ScreenPoint(2 * ex - 0.5, 2 * ey - 0.5))
    loop.update(obs(0.6, 0.4))
    assert mapper.is_fitted
    assert math.isclose(loop.target.x, 0.7, abs_tol=1e-6)
    loop.clear_corrections()
    assert not mapper.is_fitted
    loop.update(obs(0.6, 0.4))
    assert loop.target == ScreenPoint(0.5, 0.5)


def test_source_changed_resets_everything():
    loop, _, _ = make_loop()
    loop.calibration.add_correction(EyePoint(0.5, 0.5), ScreenPoint(0.9, 0.9))
    loop.update(obs(0.5, 0.5, left=SHUT))
    loop.source_changed()
    assert loop.calibration.samples == ()
    assert loop.target == ScreenPoint(0.5, 0.5)
    assert loop.left_blink.frames == 0


def test_stop_cancels_scheduled_actions():
    loop, sched, _ = make_loop()
    loop.start_calibration()
    loop.update(obs(0.4, 0.6))
    loop.stop()
    assert sched.pending() == 0
    assert loop.calibration.state is CalibrationState.NOT_STARTED
