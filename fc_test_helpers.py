"""Deterministic stand-ins for the clock and audio collaborators, for tests."""
from typing import List


class ManualTimer:
    def __init__(self, seq: int, due: float, interval: float, callback, repeats: bool):
        self.seq = seq
        self.due = due
        self.interval = interval
        self.callback = callback
        self.repeats = repeats
        self.cancelled = False
        self.fired = 0

    def cancel(self):
        self.cancelled = True


class ManualScheduler:
    """Virtual clock. Nothing fires until advance() is called.

    With ``honor_cancel=False`` a cancelled timer still fires one more time,
    like a host timer that was already in flight when it was cancelled.
    """
    def __init__(self, honor_cancel: bool = True):
        self.honor_cancel = honor_cancel
        self.now = 0.0
        self.timers: List[ManualTimer] = []
        self._seq = 0

    def _add(self, interval, callback, repeats):
        self._seq += 1
        timer = ManualTimer(self._seq, self.now + interval, interval, callback, repeats)
        self.timers.append(timer)
        return timer

    def schedule_repeating(self, interval, callback):
        return self._add(interval, callback, True)

    def schedule_once(self, interval, callback):
        return self._add(interval, callback, False)

    @property
    def pending(self) -> List[ManualTimer]:
        return [t for t in self.timers if not t.cancelled]

    def _next_due(self, until: float):
        live = self.timers if not self.honor_cancel else self.pending
        due = [t for t in live if t.due <= until + 1e-9]
        if not due:
            return None
        return min(due, key=lambda t: (t.due, t.seq))

    def advance(self, seconds: float) -> None:
        """Fire every timer due within the next ``seconds``, in time order."""
        until = self.now + seconds
        while True:
            timer = self._next_due(until)
            if timer is None:
                break
            self.now = max(self.now, timer.due)
            if timer.cancelled or not timer.repeats:
                self.timers.remove(timer)
            else:
                timer.due += timer.interval
            timer.fired += 1
            timer.callback(timer)
        self.now = until
        if self.honor_cancel:
            self.timers = self.pending

    def run_until_idle(self, step: float = 0.1, limit: float = 10000.0) -> None:
        """Advance until no live timers remain, or ``limit`` virtual seconds pass."""
        end = self.now + limit
        while self.pending and self.now < end:
            self.advance(step)


class RecordingAudio:
    """Audio collaborator that records the indexes it was asked to play."""
    def __init__(self):
        self.played: List[int] = []

    def play(self, index: int) -> None:
        self.played.append(index)
