import json

import pytest

from GazeTrack.core.settings import SettingsManager


def test_defaults_when_file_missing(tmp_path):
    s = SettingsManager(str(tmp_path / "settings.json"))
    assert s.screen_size() == (1920, 1080)
    assert s.smoothing_config().algorithm == "lerp"
    assert s.mapper_config().k == 4
    assert s.blink_config().squint_timeout == 10
    assert s.blink_config().click_window == 5
    assert len(s.calibration_config().target_points()) == 9
    assert s.feedback_s() == 0.2


def test_partial_file_merges_over_defaults(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({
        "mapper": {"strategy": "polynomial"},
        "calibration": {"targets": [[0.2, 0.2], [0.8, 0.8]]},
    }))
    s = SettingsManager(str(path))
    m = s.mapper_config()
    assert m.strategy == "polynomial" and m.power == 4.0
    assert s.calibration_config().targets == [(0.2, 0.2), (0.8, 0.8)]


def test_save_round_trip(tmp_path):
    path = tmp_path / "settings.json"
    s = SettingsManager(str(path))
    s.set_mapper_strategy("linear")
    s.set_screen_size(800, 600)
    s.save()
    again = SettingsManager(str(path))
    assert again.mapper_config().strategy == "linear"
    assert again.screen_size() == (800, 600)


def test_unknown_keys_rejected(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text(json.dumps({"blink": {"ear_treshold": 0.2}}))
    s = SettingsManager(str(path))
    with pytest.raises(ValueError):
        s.blink_config()


def test_malformed_file(tmp_path):
    path = tmp_path / "settings.json"
    path.write_text("[1, 2]")
    with pytest.raises(ValueError):
        SettingsManager(str(path))
