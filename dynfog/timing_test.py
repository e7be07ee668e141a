"""Tests for pass instrumentation."""

import pytest

from dynfog import timing
from dynfog.timing import PerformanceReport, Timer


@pytest.fixture
def clock(monkeypatch):
    now = [0.0]
    monkeypatch.setattr(timing.time, "perf_counter", lambda: now[0])
    return now


def test_timer_accumulates_across_pauses(clock):
    t = Timer().start()
    clock[0] = 1.0
    t.pause()
    clock[0] = 5.0  # paused, not counted
    t.resume()
    clock[0] = 5.5
    assert t.stop() == pytest.approx(1500.0)


def test_stop_twice_keeps_total(clock):
    t = Timer().start()
    clock[0] = 0.25
    assert t.stop() == pytest.approx(250.0)
    clock[0] = 1.0
    assert t.stop() == pytest.approx(250.0)


def test_resume_twice_does_not_reset(clock):
    t = Timer().start()
    clock[0] = 1.0
    t.resume()
    clock[0] = 2.0
    assert t.stop() == pytest.approx(2000.0)


def test_report_to_dict():
    report = PerformanceReport(12.4, 3.6, cache_hits=2, cache_misses=1)
    assert report.to_dict() == {
        "compute_time": "12 ms",
        "communication_time": "4 ms",
        "cache_hits": 2,
        "cache_misses": 1,
    }
