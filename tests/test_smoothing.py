import math

import pytest

from GazeTrack.calibration.models import ScreenPoint, SmoothingConfig
from GazeTrack.tracking.smoothing import LerpFilter, OneEuroFilter, PointSmoother, make_smoother


def test_lerp_converges_geometrically():
    alpha = 0.2
    f = LerpFilter(alpha=alpha, initial=0.0)
    target = 1.0
    for n in range(1, 30):
        out = f.apply(target)
        assert math.isclose(target - out, (1 - alpha) ** n, rel_tol=1e-9)


def test_lerp_first_sample_initializes():
    f = LerpFilter(alpha=0.1)
    assert f.apply(0.7) == 0.7
    assert math.isclose(f.apply(0.8), 0.71)


def test_lerp_rejects_bad_alpha():
    with pytest.raises(ValueError):
        LerpFilter(alpha=0.0)
    with pytest.raises(ValueError):
        LerpFilter(alpha=1.5)


def test_one_euro_first_sample_passthrough():
    f = OneEuroFilter(freq=30.0)
    assert f.apply(0.42, 1.0) == 0.42


def test_one_euro_non_positive_dt_returns_previous():
    f = OneEuroFilter(freq=30.0)
    f.apply(0.0, 1.0)
    prev = f.apply(1.0, 1.1)
    assert f.apply(5.0, 1.1) == prev
    assert f.apply(5.0, 1.05) == prev
    assert f.previous_timestamp == 1.1


def test_one_euro_converges_to_constant():
    f = OneEuroFilter(freq=30.0, min_cutoff=1.0, beta=0.007, d_cutoff=1.0)
    f.apply(0.0, 0.0)
    out = 0.0
    t = 0.0
    for _ in range(200):
        t += 1.0 / 30.0
        out = f.apply(1.0, t)
    assert abs(out - 1.0) < 1e-3


def test_one_euro_coefficient_matches_formula():
    f = OneEuroFilter(freq=10.0, min_cutoff=2.0, beta=0.0, d_cutoff=1.0)
    f.apply(0.0, 0.0)
    out = f.apply(1.0, 0.1)
    r = 2 * math.pi * 2.0 * 0.1
    assert math.isclose(out, r / (r + 1))


def test_one_euro_uses_nominal_rate_without_timestamps():
    a = OneEuroFilter(freq=20.0)
    b = OneEuroFilter(freq=20.0)
    for i, v in enumerate([0.0, 0.3, 0.5, 0.4]):
        assert math.isclose(a.apply(v), b.apply(v, i / 20.0))


def test_point_smoother_axes_are_independent():
    sm = PointSmoother(LerpFilter(0.5, 0.0), LerpFilter(0.5, 1.0))
    out = sm.apply(ScreenPoint(1.0, 1.0))
    assert out == ScreenPoint(0.5, 1.0)


def test_snap_breaks_lag():
    sm = make_smoother(SmoothingConfig(algorithm="lerp", alpha=0.1), initial=ScreenPoint(0.5, 0.5))
    sm.snap(ScreenPoint(0.9, 0.1))
    assert sm.apply(ScreenPoint(0.9, 0.1)) == ScreenPoint(0.9, 0.1)


def test_make_smoother_selects_algorithm():
    assert isinstance(make_smoother(SmoothingConfig(algorithm="one_euro")).x, OneEuroFilter)
    assert isinstance(make_smoother(SmoothingConfig(algorithm="lerp")).y, LerpFilter)
    with pytest.raises(ValueError):
        make_smoother(SmoothingConfig(algorithm="kalman"))
