"""Drill sequencing, timers and audio cue playback for FourCorners.

This module runs the DrillSequencer which walks a drill through its phases
(countdown, sets, breaks), an AudioThread consumer that writes cue buffers to
sounddevice, and the SessionLog that records drill events to CSV.

The sequencer never sleeps or spawns threads: every phase is a timer obtained
from an injected Scheduler, and all state changes happen inside those timer
callbacks on the host's event loop.
"""
from dataclasses import dataclass, replace
import csv
import logging
import os
import queue
import random
import threading
import time
from typing import Any, Callable, List, Optional, Protocol, Tuple, runtime_checkable

try:
    import sounddevice as sd
except (ImportError, OSError):
    # OSError: PortAudio library missing on the host
    sd = None

from fc_drill import (
    ConfigurationError, DrillConfig, Position, ProbabilityModel, apply_difficulty,
    make_positions, next_in_order, validate_config, validate_positions,
)
from fc_synth import CueConfig, CueSynth
from fc_utils import INITIAL_COUNTDOWN

logger = logging.getLogger(__name__)

# Audio processing constants
AUDIO_QUEUE_MAX_SIZE = 4

# Countdown and break timers tick at 1 Hz
TICK_SECONDS = 1.0


class Phase:
    IDLE = "idle"
    COUNTDOWN = "countdown"
    SET_ACTIVE = "set_active"
    BREAK = "break"
    COMPLETE = "complete"


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None: ...


@runtime_checkable
class Scheduler(Protocol):
    """Clock collaborator.

    Callbacks receive their own handle so a repeating timer can cancel
    itself. Cancelling an already-cancelled or fired handle is a no-op.
    """
    def schedule_repeating(self, interval: float, callback: Callable[[Any], None]) -> TimerHandle: ...
    def schedule_once(self, interval: float, callback: Callable[[Any], None]) -> TimerHandle: ...


class _TkTimer:
    """One ``after`` chain on a Tk widget."""

    def __init__(self, widget, interval: float, callback, repeats: bool):
        self._widget = widget
        self._ms = max(1, int(round(interval * 1000)))
        self._callback = callback
        self._repeats = repeats
        self._after_id = None
        self.cancelled = False

    def _arm(self):
        self._after_id = self._widget.after(self._ms, self._fire)

    def _fire(self):
        self._after_id = None
        if self.cancelled:
            return
        # re-arm first so a cancel() from inside the callback removes it
        if self._repeats:
            self._arm()
        self._callback(self)

    def cancel(self):
        self.cancelled = True
        if self._after_id is not None:
            self._widget.after_cancel(self._after_id)
            self._after_id = None


class TkScheduler:
    """Scheduler backed by ``widget.after`` on the Tk main loop."""

    def __init__(self, widget):
        self.widget = widget

    def schedule_repeating(self, interval: float, callback) -> _TkTimer:
        timer = _TkTimer(self.widget, interval, callback, repeats=True)
        timer._arm()
        return timer

    def schedule_once(self, interval: float, callback) -> _TkTimer:
        timer = _TkTimer(self.widget, interval, callback, repeats=False)
        timer._arm()
        return timer


class AudioThread(threading.Thread):
    """Background thread that pulls cue buffers from a queue and writes them.

    The thread exits gracefully on receipt of None or when stop_flag is set.
    """
    def __init__(self, q_frames: queue.Queue, stop_flag: threading.Event, sample_rate: int):
        super().__init__(daemon=True)
        self.q_frames = q_frames
        self.stop_flag = stop_flag
        self.sample_rate = sample_rate

    def run(self):
        """Continuously read buffers and write to sound device output stream."""
        try:
            with sd.OutputStream(channels=2, dtype='float32', samplerate=self.sample_rate) as stream:
                while not self.stop_flag.is_set():
                    try:
                        frame = self.q_frames.get(timeout=0.1)
                    except queue.Empty:
                        continue
                    if frame is None:
                        break
                    stream.write(frame)
        except Exception as e:
            logger.error("Audio error: %s", e)


class CuePlayer:
    """Audio collaborator: ``play(index)`` sounds the cue for one corner.

    Playback is fire-and-forget. If no output device is available the player
    logs once and every play() becomes a no-op.
    """
    def __init__(self, cfg: Optional[CueConfig] = None):
        self.cfg = cfg or CueConfig()
        self.cues: List[Any] = []
        self.stop_flag = threading.Event()
        self.q_frames: 'queue.Queue' = queue.Queue(maxsize=AUDIO_QUEUE_MAX_SIZE)
        self._thread: Optional[AudioThread] = None

    @property
    def available(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def open(self) -> None:
        """Render the cues and start the output thread."""
        self.cues = CueSynth(self.cfg).all_cues()
        if sd is None:
            logger.warning("sounddevice is not available; cues will be silent")
            return
        self.stop_flag.clear()
        self._thread = AudioThread(self.q_frames, self.stop_flag, self.cfg.sample_rate)
        self._thread.start()

    def play(self, index: int) -> None:
        if not self.available:
            logger.debug("No audio output, skipping cue %d", index)
            return
        if not 0 <= index < len(self.cues):
            logger.warning("No cue for position %d", index)
            return
        try:
            self.q_frames.put_nowait(self.cues[index])
        except queue.Full:
            logger.warning("Audio queue full, dropping cue %d", index)

    def close(self) -> None:
        """Signal the output thread to stop."""
        self.stop_flag.set()
        try:
            self.q_frames.put(None, timeout=0.1)
        except queue.Full:
            pass  # Queue is full, thread will exit via stop_flag
        self._thread = None


class SessionLog:
    """CSV event log for one drill run.

    Write failures are logged and turn the log off; they never stop a drill.
    """
    HEADER = ["timestamp", "set", "bird", "event", "info"]

    def __init__(self, path: str):
        self.path = path
        self._file = None
        self._writer = None

    def open(self) -> None:
        try:
            os.makedirs(os.path.dirname(self.path) or ".", exist_ok=True)
            self._file = open(self.path, 'a', newline='')
            self._writer = csv.writer(self._file)
            self._writer.writerow(self.HEADER)
        except OSError as e:
            logger.warning("Cannot open session log %s: %s", self.path, e)
            self._file = None
            self._writer = None

    def record(self, set_no: int, bird_no: int, event: str, info: str = "") -> None:
        if self._writer is None:
            return
        try:
            self._writer.writerow([time.time(), set_no, bird_no, event, info])
            self._file.flush()
        except (OSError, ValueError) as e:
            logger.warning("Session log write failed: %s", e)
            self._writer = None

    def close(self) -> None:
        if self._file is not None:
            self._file.close()
        self._file = None
        self._writer = None


@dataclass(frozen=True)
class DrillSnapshot:
    """Read-only view of the sequencer handed to observers."""
    phase: str
    in_progress: bool
    positions: Tuple[Position, ...]
    remaining_sets: int
    remaining_birds: int
    remaining_break: float
    countdown: int
    picks: int


def format_status(snap: DrillSnapshot) -> Tuple[str, str]:
    """Return the (headline, subline) pair shown above the corners."""
    if snap.phase == Phase.COUNTDOWN:
        return f"Starting in {snap.countdown}", ""
    if snap.phase == Phase.COMPLETE:
        return "Drill complete", f"{snap.picks} birds"
    if snap.phase == Phase.BREAK:
        return f"{snap.remaining_break:.0f} seconds until next set", f"{snap.remaining_sets} sets left"
    if snap.phase == Phase.SET_ACTIVE:
        return f"{snap.remaining_birds} birds left", f"{snap.remaining_sets} sets left"
    return "Ready", ""


class DrillSequencer:
    """Drive a drill: countdown, sets of picks, breaks, completion.

    Responsibilities:
      - Own the positions and run counters; publish snapshots to listeners
      - Ask the ProbabilityModel for a corner once per pick
      - Cue the audio collaborator with the picked corner's index
      - Record events to an optional SessionLog

    Stopping is cooperative. stop() clears ``in_progress`` and cancels every
    known timer; a callback that still fires afterwards sees the flag, or finds
    its handle no longer tracked, and cancels itself without touching any state.
    """
    def __init__(self, scheduler: Scheduler, audio=None, config: Optional[DrillConfig] = None,
                 positions: Optional[List[Position]] = None, rng: Optional[random.Random] = None,
                 model: Optional[ProbabilityModel] = None, event_log: Optional[SessionLog] = None):
        self.scheduler = scheduler
        self.audio = audio
        self.config = config or DrillConfig()
        self.positions = positions if positions is not None else make_positions()
        self.rng = rng or random.Random()
        self.model = model or ProbabilityModel()
        self.event_log = event_log

        self.phase = Phase.IDLE
        self.in_progress = False
        self.remaining_sets = self.config.num_sets
        self.remaining_birds = self.config.birds_per_set
        self.remaining_break = self.config.set_interval
        self.countdown = INITIAL_COUNTDOWN
        self.last_visited_index: Optional[int] = None
        self.picks = 0

        self._timers: List[Any] = []
        self._listeners: List[Callable[[DrillSnapshot], None]] = []

    # ---- observers ----
    def subscribe(self, listener: Callable[[DrillSnapshot], None]) -> Callable[[], None]:
        """Register ``listener`` for snapshots; returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return unsubscribe

    def snapshot(self) -> DrillSnapshot:
        return DrillSnapshot(
            phase=self.phase,
            in_progress=self.in_progress,
            positions=tuple(replace(p) for p in self.positions),
            remaining_sets=self.remaining_sets,
            remaining_birds=self.remaining_birds,
            remaining_break=self.remaining_break,
            countdown=self.countdown,
            picks=self.picks,
        )

    def _notify(self):
        snap = self.snapshot()
        for listener in list(self._listeners):
            try:
                listener(snap)
            except Exception:
                logger.exception("Drill listener failed")

    # ---- configuration (idle only) ----
    def _require_idle(self):
        if self.in_progress:
            raise ConfigurationError("Cannot change settings while a drill is running")

    def update_config(self, **changes) -> DrillConfig:
        """Replace config fields, e.g. ``update_config(num_sets=3)``."""
        self._require_idle()
        self.config = replace(self.config, **changes)
        self._notify()
        return self.config

    def apply_difficulty(self, difficulty: str) -> DrillConfig:
        self._require_idle()
        cfg = replace(self.config)
        apply_difficulty(cfg, difficulty)
        self.config = cfg
        self._notify()
        return cfg

    def set_position_enabled(self, index: int, enabled: bool) -> None:
        self._require_idle()
        self.positions[index].enabled = enabled
        self._notify()

    # ---- lifecycle ----
    def _reset(self):
        """Idle entry: counters back to the configured values."""
        cfg = self.config
        self.remaining_sets = cfg.num_sets
        self.remaining_birds = cfg.birds_per_set
        self.remaining_break = cfg.set_interval
        self.countdown = INITIAL_COUNTDOWN
        self.last_visited_index = None
        self.picks = 0
        for p in self.positions:
            p.is_active = False
            p.was_last_visited = False

    def start(self) -> None:
        """Validate and begin the countdown. Raises ConfigurationError."""
        if self.in_progress:
            raise ConfigurationError("A drill is already running")
        error = validate_config(self.config) or validate_positions(self.positions)
        if error:
            raise ConfigurationError(error)

        self._cancel_all()
        self._reset()
        self.in_progress = True
        self.phase = Phase.COUNTDOWN
        cfg = self.config
        logger.info("Drill started: %d sets x %d birds, pick every %.2fs",
                    cfg.num_sets, cfg.birds_per_set, cfg.pick_interval)
        self._record("start", f"{cfg.num_sets}x{cfg.birds_per_set} {cfg.placement}")
        self._schedule(TICK_SECONDS, self._countdown_tick, repeats=True)
        self._notify()

    def stop(self) -> None:
        """User cancel. Counters stay as they are until the next start()."""
        if self.phase == Phase.IDLE:
            return
        was_running = self.in_progress
        self.in_progress = False
        self._cancel_all()
        for p in self.positions:
            p.is_active = False
        self.phase = Phase.IDLE
        if was_running:
            logger.info("Drill stopped after %d picks", self.picks)
            self._record("stop", f"{self.picks} picks")
        self._notify()

    # ---- timers ----
    def _schedule(self, interval: float, fn, repeats: bool):
        def tick(timer):
            # a handle we no longer track was cancelled while in flight
            if not self.in_progress or timer not in self._timers:
                timer.cancel()
                return
            if not repeats:
                self._forget(timer)
            fn(timer)

        if repeats:
            handle = self.scheduler.schedule_repeating(interval, tick)
        else:
            handle = self.scheduler.schedule_once(interval, tick)
        self._timers.append(handle)
        return handle

    def _forget(self, timer):
        if timer in self._timers:
            self._timers.remove(timer)

    def _cancel(self, timer):
        timer.cancel()
        self._forget(timer)

    def _cancel_all(self):
        timers, self._timers = self._timers, []
        for timer in timers:
            timer.cancel()

    # ---- phases ----
    def _countdown_tick(self, timer):
        self.countdown -= 1
        if self.countdown <= 0:
            self.countdown = 0
            self._cancel(timer)
            self._begin_set()
            return
        self._notify()

    def _begin_set(self):
        self.phase = Phase.SET_ACTIVE
        self.remaining_sets -= 1
        self.remaining_birds = self.config.birds_per_set
        set_no = self.config.num_sets - self.remaining_sets
        logger.info("Set %d of %d", set_no, self.config.num_sets)
        self._record("set_start")
        self._schedule(self.config.pick_interval, self._pick_tick, repeats=True)
        self._notify()

    def _pick_tick(self, timer):
        if self.remaining_birds <= 0:
            self._cancel(timer)
            self._end_set()
            return
        self._pick()

    def _choose(self) -> int:
        if self.config.placement == "in_order":
            return next_in_order(self.positions, self.last_visited_index)
        return self.model.pick(self.positions, self.last_visited_index, self.rng)

    def _pick(self):
        index = self._choose()
        self.last_visited_index = index
        self.remaining_birds -= 1
        self.picks += 1
        for p in self.positions:
            p.is_active = p.index == index
        name = self.positions[index].name
        logger.debug("Pick %d: %s", self.picks, name)
        self._record("pick", name)
        if self.config.sound_enabled and self.audio is not None:
            self._play_cue(index)
        self._schedule(self.config.preview_time, self._clear_active, repeats=False)
        self._notify()

    def _play_cue(self, index: int):
        try:
            self.audio.play(index)
        except Exception as e:
            logger.warning("Cue for position %d failed: %s", index, e)

    def _clear_active(self, timer):
        for p in self.positions:
            p.is_active = False
        self._notify()

    def _end_set(self):
        self._record("set_end")
        if self.remaining_sets <= 0:
            self._complete()
            return
        self.phase = Phase.BREAK
        self.remaining_break = self.config.set_interval
        if self.remaining_break <= 0:
            self._begin_set()
            return
        self._schedule(TICK_SECONDS, self._break_tick, repeats=True)
        self._notify()

    def _break_tick(self, timer):
        self.remaining_break = max(0.0, self.remaining_break - TICK_SECONDS)
        if self.remaining_break <= 0:
            self._cancel(timer)
            self._begin_set()
            return
        self._notify()

    def _complete(self):
        self.in_progress = False
        self.phase = Phase.COMPLETE
        self._cancel_all()
        for p in self.positions:
            p.is_active = False
        logger.info("Drill complete: %d picks", self.picks)
        self._record("complete", f"{self.picks} picks")
        self._notify()

    def _record(self, event: str, info: str = ""):
        if self.event_log is None:
            return
        set_no = self.config.num_sets - self.remaining_sets
        bird_no = self.config.birds_per_set - self.remaining_birds
        self.event_log.record(set_no, bird_no, event, info)
