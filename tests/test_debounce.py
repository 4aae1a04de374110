"""Tests for the debounced writer."""

from finbot.wizard.debounce import Debouncer


def test_burst_collapses_into_one_call_with_latest_args(timers):
    calls = []
    debouncer = Debouncer(0.3, calls.append, timer_factory=timers)

    debouncer.schedule("a")
    debouncer.schedule("b")
    debouncer.schedule("c")

    assert len(timers.live) == 1
    assert timers.live[0].delay == 0.3
    assert timers.live[0].daemon
    timers.fire_all()
    assert calls == ["c"]
    assert not debouncer.pending


def test_stale_timer_does_nothing(timers):
    calls = []
    debouncer = Debouncer(0.3, calls.append, timer_factory=timers)

    debouncer.schedule("old")
    stale = timers.timers[0]
    debouncer.schedule("new")
    # A timer that already started running before being cancelled
    stale.fn()

    assert calls == []
    timers.fire_all()
    assert calls == ["new"]


def test_flush_runs_pending_call_now(timers):
    calls = []
    debouncer = Debouncer(0.3, calls.append, timer_factory=timers)

    debouncer.schedule("x")

    assert debouncer.flush()
    assert calls == ["x"]
    assert timers.timers[0].cancelled
    assert not debouncer.flush()


def test_cancel_drops_pending_call(timers):
    calls = []
    debouncer = Debouncer(0.3, calls.append, timer_factory=timers)

    debouncer.schedule("x")
    debouncer.cancel()
    timers.timers[0].fn()

    assert calls == []
    assert not debouncer.pending


def test_errors_in_func_are_logged_not_raised(timers):
    def broken(value):
        raise RuntimeError("disk full")

    debouncer = Debouncer(0.3, broken, timer_factory=timers)
    debouncer.schedule("x")

    timers.fire_all()
    debouncer.schedule("y")
    assert debouncer.flush()
