import importlib.util


def test_core_main_callable():
    from GazeTrack.core.app import main
    assert callable(main)


def test_run_module_entry():
    spec = importlib.util.find_spec("GazeTrack.core.app")
    assert spec is not None, "core.app module should be discoverable"
