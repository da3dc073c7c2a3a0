from __future__ import annotations

import threading

from services.scheduler import RepeatingTimer


def test_repeating_timer_fires_until_cancelled() -> None:
    calls: list[int] = []
    fired_twice = threading.Event()

    def callback() -> None:
        calls.append(1)
        if len(calls) >= 2:
            fired_twice.set()

    timer = RepeatingTimer(0.01, callback)
    timer.start()
    try:
        assert fired_twice.wait(timeout=5)
    finally:
        timer.cancel()

    timer._thread.join(timeout=5)
    assert timer.cancelled is True
    assert timer.is_alive() is False


def test_repeating_timer_survives_failing_callback() -> None:
    attempts: list[int] = []
    recovered = threading.Event()

    def callback() -> None:
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("first tick fails")
        recovered.set()

    timer = RepeatingTimer(0.01, callback)
    timer.start()
    try:
        assert recovered.wait(timeout=5)
    finally:
        timer.cancel()
