from datetime import UTC, datetime, timedelta

import pytest

from docqueue.core.clock import ManualClock, SystemClock, plus_seconds


def test_system_clock_is_utc_aware():
    now = SystemClock().now()
    assert now.tzinfo is not None
    assert now.utcoffset() == timedelta(0)


def test_manual_clock_default_start():
    assert ManualClock().now() == datetime(2024, 1, 1, tzinfo=UTC)


def test_manual_clock_stands_still():
    clock = ManualClock()
    assert clock.now() == clock.now()


def test_manual_clock_advance_seconds():
    clock = ManualClock()
    start = clock.now()
    assert clock.advance(1.5) == start + timedelta(seconds=1.5)
    assert clock.now() == start + timedelta(seconds=1.5)


def test_manual_clock_advance_timedelta():
    clock = ManualClock(current=datetime(2030, 6, 1, tzinfo=UTC))
    clock.advance(timedelta(hours=1))
    assert clock.now() == datetime(2030, 6, 1, 1, tzinfo=UTC)


def test_manual_clock_refuses_to_go_back():
    with pytest.raises(ValueError):
        ManualClock().advance(-1)


def test_plus_seconds():
    start = datetime(2024, 1, 1, tzinfo=UTC)
    assert plus_seconds(start, 30) == datetime(2024, 1, 1, 0, 0, 30, tzinfo=UTC)
    assert plus_seconds(start, 0) == start
