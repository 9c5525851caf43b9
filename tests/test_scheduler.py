from GazeTrack.core.scheduler import VirtualScheduler


def test_fires_in_deadline_order():
    s = VirtualScheduler()
    fired = []
    s.call_later(0.3, lambda: fired.append("c"))
    s.call_later(0.1, lambda: fired.append("a"))
    s.call_later(0.2, lambda: fired.append("b"))
    s.advance(0.25)
    assert fired == ["a", "b"]
    assert s.now() == 0.25
    s.advance(1.0)
    assert fired == ["a", "b", "c"]


def test_callbacks_scheduled_while_advancing():
    s = VirtualScheduler()
    seen = []

    def tick():
        seen.append(s.now())
        if len(seen) < 3:
            s.call_later(0.5, tick)

    s.call_later(0.5, tick)
    s.advance(2.0)
    assert seen == [0.5, 1.0, 1.5]


def test_cancel():
    s = VirtualScheduler()
    fired = []
    h = s.call_later(0.1, lambda: fired.append(1))
    s.cancel(h)
    assert s.pending() == 0
    s.advance(1.0)
    assert fired == []


def test_cancelling_fired_or_unknown_handles_keeps_nothing():
    s = VirtualScheduler()
    for _ in range(50):
        h = s.call_later(0.1, lambda: None)
        s.advance(0.2)
        s.cancel(h)
        s.cancel(h + 1000)
    assert s.pending() == 0
    assert not s._live and not s._queue


def test_cancelled_entries_do_not_count_as_pending():
    s = VirtualScheduler()
    fired = []
    keep = s.call_later(0.5, lambda: fired.append("keep"))
    drop = s.call_later(0.2, lambda: fired.append("drop"))
    s.cancel(drop)
    assert s.pending() == 1
    s.advance(1.0)
    assert fired == ["keep"]
    assert s.pending() == 0
    s.cancel(keep)
    assert s.pending() == 0


def test_virtual_clock_imports_without_qt(monkeypatch):
    import importlib
    import sys

    import GazeTrack.core.scheduler as scheduler

    monkeypatch.setitem(sys.modules, "PyQt6", None)
    monkeypatch.setitem(sys.modules, "PyQt6.QtCore", None)
    reloaded = importlib.reload(scheduler)
    s = reloaded.VirtualScheduler()
    fired = []
    s.call_later(0.1, lambda: fired.append(1))
    s.advance(0.1)
    assert fired == [1]
