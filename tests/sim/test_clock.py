"""Tests for ringsim.sim.clock."""

from __future__ import annotations

import pytest

from ringsim.sim.clock import EventClock


class TestSchedule:
    """Test one-shot timers."""

    def test_run_step_advances_time(self):
        clock = EventClock()
        fired = []
        clock.schedule(30, fired.append, "a")

        assert clock.run_step() is True
        assert fired == ["a"]
        assert clock.now == 30

    def test_empty_queue(self):
        assert EventClock().run_step() is False

    def test_equal_due_times_fire_in_scheduling_order(self):
        clock = EventClock()
        fired = []
        for name in "abc":
            clock.schedule(5, fired.append, name)
        while clock.run_step():
            pass
        assert fired == ["a", "b", "c"]

    def test_cancel(self):
        clock = EventClock()
        fired = []
        timer = clock.schedule(5, fired.append, "x")
        timer.cancel()

        assert clock.pending == 0
        assert clock.run_step() is False
        assert fired == []

    def test_negative_delay_is_now(self):
        clock = EventClock(start_ms=100)
        clock.schedule(-5, lambda: None)
        clock.run_step()
        assert clock.now == 100


class TestRunSteps:
    """Test bounded pumping."""

    def test_fires_only_due_timers(self):
        clock = EventClock()
        fired = []
        clock.schedule(10, fired.append, 1)
        clock.schedule(50, fired.append, 2)

        assert clock.run_steps(20) == 1
        assert fired == [1]
        assert clock.now == 20
        assert clock.pending == 1

    def test_timer_scheduled_inside_window_fires(self):
        clock = EventClock()
        fired = []
        clock.schedule(5, lambda: clock.schedule(5, fired.append, "chained"))
        clock.run_steps(10)
        assert fired == ["chained"]


class TestPeriodic:
    """Test repeating timers."""

    def test_repeats_until_cancelled(self):
        clock = EventClock()
        fired = []
        timer = clock.schedule_periodic(100, lambda: fired.append(clock.now), first_delay_ms=10)

        clock.run_steps(350)
        assert fired == [10, 110, 210, 310]

        timer.cancel()
        clock.run_steps(1000)
        assert len(fired) == 4

    def test_callback_may_cancel_itself(self):
        clock = EventClock()
        fired = []
        holder = {}

        def once():
            fired.append(clock.now)
            holder["timer"].cancel()

        holder["timer"] = clock.schedule_periodic(10, once)
        clock.run_steps(100)
        assert fired == [10]

    def test_invalid_period(self):
        with pytest.raises(ValueError):
            EventClock().schedule_periodic(0, lambda: None)
