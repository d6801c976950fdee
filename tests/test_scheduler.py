from fc_session import Scheduler, TkScheduler
from fc_test_helpers import ManualScheduler


class FakeWidget:
    """Records ``after`` calls instead of running a Tk main loop."""
    def __init__(self):
        self.pending = {}
        self.next_id = 0

    def after(self, ms, fn):
        self.next_id += 1
        after_id = f"after#{self.next_id}"
        self.pending[after_id] = (ms, fn)
        return after_id

    def after_cancel(self, after_id):
        self.pending.pop(after_id, None)

    def fire_all(self):
        due, self.pending = self.pending, {}
        for _ms, fn in due.values():
            fn()


def test_schedulers_match_protocol():
    assert isinstance(TkScheduler(FakeWidget()), Scheduler)
    assert isinstance(ManualScheduler(), Scheduler)


def test_tk_repeating_rearms_until_cancelled():
    widget = FakeWidget()
    calls = []

    def cb(timer):
        calls.append(timer)
        if len(calls) == 3:
            timer.cancel()

    TkScheduler(widget).schedule_repeating(1.4, cb)
    assert [ms for ms, _ in widget.pending.values()] == [1400]
    for _ in range(5):
        widget.fire_all()
    assert len(calls) == 3
    assert widget.pending == {}


def test_tk_once_fires_once():
    widget = FakeWidget()
    calls = []
    TkScheduler(widget).schedule_once(0.6, calls.append)
    assert [ms for ms, _ in widget.pending.values()] == [600]
    widget.fire_all()
    widget.fire_all()
    assert len(calls) == 1


def test_tk_cancel_before_fire():
    widget = FakeWidget()
    calls = []
    timer = TkScheduler(widget).schedule_once(1.0, calls.append)
    timer.cancel()
    timer.cancel()
    assert widget.pending == {}
    assert calls == []


def test_manual_scheduler_orders_by_due_time():
    clock = ManualScheduler()
    order = []
    clock.schedule_once(2.0, lambda t: order.append("b"))
    clock.schedule_once(1.0, lambda t: order.append("a"))
    clock.schedule_repeating(1.5, lambda t: order.append("r"))
    clock.advance(3.0)
    assert order == ["a", "r", "b", "r"]
    assert clock.now == 3.0
