import time

import pytest

from timevault.core.clock import ManualClock, SystemClock


def test_system_clock_tracks_wall_time():
    now = SystemClock()()
    assert isinstance(now, int)
    assert abs(now - int(time.time())) <= 1


def test_manual_clock_only_moves_forward():
    clock = ManualClock(start=100)
    assert clock() == 100
    assert clock.advance(10) == 110
    clock.set(200)
    assert clock() == 200

    with pytest.raises(ValueError):
        clock.advance(-1)
    with pytest.raises(ValueError):
        clock.set(150)
    assert clock() == 200


def test_manual_clock_rejects_bad_start():
    with pytest.raises(ValueError):
        ManualClock(start=-5)
