"""
Tests for shuttle.sequencing.signal and shuttle.sequencing.delay
Validates Signal set/clear semantics, cross-thread visibility, Delay
arming, re-arming, cancellation, and the TimerService/ManualClock pair.
"""

import threading
import pytest

from shuttle.sequencing.signal import Signal
from shuttle.sequencing.delay import Delay, TimerService, ManualClock


class TestSignal:
    """Level-triggered completion flag."""

    def test_starts_clear(self) -> None:
        assert not Signal("a").is_set()

    def test_set_is_sticky(self) -> None:
        signal: Signal = Signal("a")
        signal.set()
        assert signal.is_set()
        assert signal.is_set()

    def test_clear_resets(self) -> None:
        signal: Signal = Signal("a")
        signal.set()
        signal.clear()
        assert not signal.is_set()

    def test_default_name(self) -> None:
        assert Signal().name == "signal"

    def test_set_from_other_thread(self) -> None:
        signal: Signal = Signal("sensor")
        worker: threading.Thread = threading.Thread(target=signal.set)
        worker.start()
        worker.join(timeout=2.0)
        assert signal.is_set()


class TestManualClock:
    """Test clock that only moves when told to."""

    def test_advance(self) -> None:
        clock: ManualClock = ManualClock(10.0)
        clock.advance(0.5)
        assert clock() == pytest.approx(10.5)

    def test_backwards_rejected(self) -> None:
        with pytest.raises(ValueError):
            ManualClock().advance(-1.0)

    def test_set(self) -> None:
        clock: ManualClock = ManualClock()
        clock.set(42.0)
        assert clock() == 42.0


class TestDelay:
    """One-shot Delay driven by TimerService.poll()."""

    def test_fires_after_duration(self, clock: ManualClock, timers: TimerService) -> None:
        target: Signal = Signal("t")
        delay: Delay = Delay(timers, "d")
        delay.arm(1.0, target)

        clock.advance(0.99)
        assert timers.poll() == 0
        assert not target.is_set()

        clock.advance(0.01)
        assert timers.poll() == 1
        assert target.is_set()
        assert delay.expired
        assert not delay.armed

    def test_zero_fires_on_next_poll(self, timers: TimerService) -> None:
        target: Signal = Signal("t")
        Delay(timers).arm(0.0, target)
        assert not target.is_set()
        timers.poll()
        assert target.is_set()

    def test_fires_once_per_arm(self, clock: ManualClock, timers: TimerService) -> None:
        target: Signal = Signal("t")
        Delay(timers).arm(0.5, target)
        clock.advance(1.0)
        assert timers.poll() == 1
        target.clear()
        clock.advance(1.0)
        assert timers.poll() == 0
        assert not target.is_set()

    def test_rearm_replaces_deadline_and_target(self, clock: ManualClock, timers: TimerService) -> None:
        first: Signal = Signal("first")
        second: Signal = Signal("second")
        delay: Delay = Delay(timers)
        delay.arm(0.5, first)
        delay.arm(2.0, second)
        assert timers.pending == 1

        clock.advance(1.0)
        timers.poll()
        assert not first.is_set()
        assert not second.is_set()

        clock.advance(1.0)
        timers.poll()
        assert not first.is_set()
        assert second.is_set()

    def test_rearm_clears_expired(self, clock: ManualClock, timers: TimerService) -> None:
        delay: Delay = Delay(timers)
        delay.arm(0.0, Signal())
        timers.poll()
        assert delay.expired
        delay.arm(1.0, Signal())
        assert not delay.expired

    def test_negative_duration_rejected(self, timers: TimerService) -> None:
        with pytest.raises(ValueError, match="non-negative"):
            Delay(timers).arm(-0.1, Signal())

    def test_cancel_prevents_fire(self, clock: ManualClock, timers: TimerService) -> None:
        target: Signal = Signal("t")
        delay: Delay = Delay(timers)
        delay.arm(0.5, target)
        delay.cancel()
        assert timers.pending == 0

        clock.advance(1.0)
        timers.poll()
        assert not target.is_set()
        assert not delay.expired

    def test_independent_delays(self, clock: ManualClock, timers: TimerService) -> None:
        a: Signal = Signal("a")
        b: Signal = Signal("b")
        Delay(timers, "da").arm(0.2, a)
        Delay(timers, "db").arm(0.4, b)

        clock.advance(0.3)
        timers.poll()
        assert a.is_set()
        assert not b.is_set()
