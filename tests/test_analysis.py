import math

import numpy as np

from GazeTrack.analysis.error_metrics import (
    compute_point_errors,
    correction_error_vectors,
    error_distances,
    summarize_errors,
)
from GazeTrack.calibration.models import CalibrationSample, EyePoint, ScreenPoint
from GazeTrack.tracking.mapping import IdwMapper, LinearMapper

SIZE = (1001, 1001)


def test_snapping_mapper_has_zero_training_error():
    samples = tuple(
        CalibrationSample(EyePoint(x, y), ScreenPoint(x, y)) for x in (0.2, 0.5, 0.8) for y in (0.2, 0.5, 0.8)
    )
    errors = compute_point_errors(samples, IdwMapper(), SIZE)
    summary = summarize_errors(errors)
    assert summary.count == 9
    assert summary.max_px == 0.0
    assert summary.hit_rate == 1.0


def test_error_summary():
    samples = (
        CalibrationSample(EyePoint(0.0, 0.0), ScreenPoint(0.0, 0.0)),
        CalibrationSample(EyePoint(1.0, 1.0), ScreenPoint(0.5, 0.5)),
    )
    # linear maps the eye box to the full screen: second sample lands on (1000, 1000)
    errors = compute_point_errors(samples, LinearMapper(padding=0.0), SIZE)
    miss = math.hypot(500, 500)
    assert np.allclose(error_distances(errors), [0.0, miss])
    s = summarize_errors(errors, within_px=50.0)
    assert math.isclose(s.mean_px, miss / 2)
    assert math.isclose(s.max_px, miss)
    assert math.isclose(s.rms_px, miss / math.sqrt(2))
    assert s.hit_rate == 0.5
    assert "2 samples" in s.caption()


def test_empty_summary():
    s = summarize_errors([])
    assert s.count == 0 and s.mean_px == 0.0 and s.hit_rate == 0.0
    assert error_distances([]).shape == (0,)


def test_correction_error_vectors():
    samples = (
        CalibrationSample(EyePoint(0.5, 0.5), ScreenPoint(0.5, 0.5)),
        CalibrationSample(EyePoint(0.5, 0.5), ScreenPoint(0.6, 0.5), error=ScreenPoint(0.1, -0.2)),
    )
    v = correction_error_vectors(samples, (1000, 500))
    assert v.shape == (1, 2)
    assert math.isclose(v[0, 0], 100.0) and math.isclose(v[0, 1], -100.0)


def test_report_is_written(tmp_path):
    from GazeTrack.analysis.plots import fig_histogram, fig_scatter, save_report

    samples = (
        CalibrationSample(EyePoint(0.3, 0.3), ScreenPoint(0.1, 0.1)),
        CalibrationSample(EyePoint(0.7, 0.7), ScreenPoint(0.9, 0.9)),
    )
    errors = compute_point_errors(samples, LinearMapper(), SIZE)
    assert fig_scatter(errors, SIZE).axes
    assert fig_histogram(errors).axes
    out = tmp_path / "report.png"
    save_report(errors, SIZE, str(out))
    assert out.exists() and out.stat().st_size > 0
    empty = tmp_path / "empty.png"
    save_report([], SIZE, str(empty))
    assert empty.exists()
