"""GUI front-end for FourCorners (Tkinter application).

This module defines the App class which builds the setup and in-drill views
and maps controls to the DrillSequencer. The UI only reads the snapshots the
sequencer publishes; settings are written back through the sequencer's
config setters, which refuse changes while a drill is running.
"""
import tkinter as tk
from tkinter import ttk, messagebox
import logging
import os
import time

from fc_config import load_config, save_config, get_default_log_dir
from fc_drill import (
    ConfigurationError, DrillConfig, DIFFICULTY_PRESETS, DEFAULT_DIFFICULTY,
)
from fc_session import (
    CuePlayer, DrillSequencer, DrillSnapshot, Phase, SessionLog, TkScheduler, format_status,
)
from fc_utils import NUM_POSITIONS, snap

logger = logging.getLogger(__name__)

# Court drawing
COURT_WIDTH = 360
COURT_HEIGHT = 480
CORNER_RADIUS = 36
COLOR_ON = "#d62828"
COLOR_OFF = "#9e9e9e"


class App(tk.Tk):
    """Main application window: drill settings, court view and Start/Cancel."""

    def __init__(self):
        super().__init__()
        self.title("FourCorners")
        self.geometry("520x860")
        self.resizable(True, True)

        # Set up window close handler to stop a running drill
        self.protocol("WM_DELETE_WINDOW", self._on_closing)

        self.log_dir = get_default_log_dir()
        self.audio = CuePlayer()
        self.audio.open()
        self.session_log: SessionLog | None = None
        self.sequencer = DrillSequencer(TkScheduler(self), audio=self.audio)
        self._last_snapshot: DrillSnapshot | None = None

        # Setting variables
        defaults = DrillConfig()
        self.difficulty = tk.StringVar(value=DEFAULT_DIFFICULTY)
        self.set_interval = tk.DoubleVar(value=defaults.set_interval)
        self.recovery_time = tk.DoubleVar(value=defaults.recovery_time)
        self.preview_time = tk.DoubleVar(value=defaults.preview_time)
        self.num_sets = tk.IntVar(value=defaults.num_sets)
        self.birds_per_set = tk.IntVar(value=defaults.birds_per_set)
        self.sound_enabled = tk.BooleanVar(value=defaults.sound_enabled)
        self.placement = tk.StringVar(value=defaults.placement)

        self._build_ui()
        self._load_params()
        self.sequencer.subscribe(self._on_snapshot)
        self._on_snapshot(self.sequencer.snapshot())

    def _build_ui(self):
        ttk.Label(self, text="FourCorners", font=('', 20)).pack(pady=(8, 4))

        # Settings
        self.settings_frame = ttk.LabelFrame(self, text="Drill Settings")
        self.settings_frame.pack(fill="x", padx=8, pady=4)
        f = self.settings_frame

        ttk.Label(f, text="Difficulty:").grid(row=0, column=0, sticky="e", padx=4, pady=4)
        diff = ttk.Combobox(f, textvariable=self.difficulty, values=list(DIFFICULTY_PRESETS),
                            state="readonly", width=14)
        diff.grid(row=0, column=1, sticky="w", padx=4, pady=4)
        diff.bind("<<ComboboxSelected>>", lambda _e: self._on_difficulty())

        self.set_interval_label = self._slider_row(f, 1, "Set interval:", self.set_interval, 10, 50, 5.0)
        self.recovery_label = self._slider_row(f, 2, "Recovery between birds:", self.recovery_time, 0.3, 1.6, 0.05)
        self.preview_label = self._slider_row(f, 3, "Preview timer:", self.preview_time, 0.3, 1.6, 0.05)

        ttk.Label(f, text="Sets:").grid(row=4, column=0, sticky="e", padx=4, pady=4)
        ttk.Spinbox(f, from_=1, to=10, increment=1, textvariable=self.num_sets, width=6).grid(
            row=4, column=1, sticky="w", padx=4, pady=4)

        ttk.Label(f, text="Birds per set:").grid(row=5, column=0, sticky="e", padx=4, pady=4)
        ttk.Spinbox(f, from_=10, to=29, increment=1, textvariable=self.birds_per_set, width=6).grid(
            row=5, column=1, sticky="w", padx=4, pady=4)

        ttk.Checkbutton(f, text="Sound", variable=self.sound_enabled).grid(
            row=6, column=0, sticky="w", padx=4, pady=4)
        place = ttk.Frame(f)
        place.grid(row=6, column=1, columnspan=2, sticky="w")
        ttk.Radiobutton(place, text="Random", value="random", variable=self.placement).pack(side="left", padx=4)
        ttk.Radiobutton(place, text="In order", value="in_order", variable=self.placement).pack(side="left", padx=4)
        f.columnconfigure(2, weight=1)

        # Status
        self.headline = ttk.Label(self, text="Ready", font=('', 16))
        self.headline.pack(pady=(8, 0))
        self.subline = ttk.Label(self, text="", font=('', 12))
        self.subline.pack()

        # Court
        self.canvas = tk.Canvas(self, width=COURT_WIDTH, height=COURT_HEIGHT, bg="#2e7d32",
                                highlightthickness=0)
        self.canvas.pack(padx=8, pady=8)
        self.canvas.bind("<Button-1>", self._on_court_click)

        self.start_btn = tk.Button(self, text="Start", font=('', 18), fg="white", bg="#1e88e5",
                                   command=self._on_start_cancel)
        self.start_btn.pack(pady=8)

    def _slider_row(self, parent, row, text, var, lo, hi, step):
        """Add a labelled slider that snaps to ``step``; returns the value label."""
        ttk.Label(parent, text=text).grid(row=row, column=0, sticky="e", padx=4, pady=4)
        value_label = ttk.Label(parent, width=8)
        value_label.grid(row=row, column=1, sticky="w", padx=4)
        ttk.Scale(parent, from_=lo, to=hi, orient="horizontal", variable=var).grid(
            row=row, column=2, sticky="ew", padx=4, pady=4)

        def on_write(*_):
            v = var.get()
            snapped = snap(v, step)
            if snapped != v:
                var.set(snapped)
                return
            value_label.config(text=f"{v:.0f} s" if step >= 1 else f"{v * 1000:.0f} ms")
        var.trace_add("write", on_write)
        on_write()
        return value_label

    # ---- court drawing ----
    def _corner_centers(self):
        """Canvas centres for the positions, two per row in canonical order."""
        rows = (NUM_POSITIONS + 1) // 2
        xs = (CORNER_RADIUS + 24, COURT_WIDTH - CORNER_RADIUS - 24)
        step = (COURT_HEIGHT - 2 * (CORNER_RADIUS + 24)) / max(1, rows - 1)
        return [(xs[i % 2], CORNER_RADIUS + 24 + (i // 2) * step) for i in range(NUM_POSITIONS)]

    def _draw_court(self, snapshot: DrillSnapshot):
        c = self.canvas
        c.delete("all")
        c.create_rectangle(12, 12, COURT_WIDTH - 12, COURT_HEIGHT - 12, outline="white", width=2)
        c.create_line(12, COURT_HEIGHT / 2, COURT_WIDTH - 12, COURT_HEIGHT / 2, fill="white", width=3)
        for p, (x, y) in zip(snapshot.positions, self._corner_centers()):
            lit = p.is_active if snapshot.in_progress else p.enabled
            c.create_oval(x - CORNER_RADIUS, y - CORNER_RADIUS, x + CORNER_RADIUS, y + CORNER_RADIUS,
                          fill=COLOR_ON if lit else COLOR_OFF, outline="white")
            c.create_text(x, y, text=str(p.index + 1), fill="white", font=('', 18))

    def _on_court_click(self, event):
        if self.sequencer.in_progress:
            return
        for i, (x, y) in enumerate(self._corner_centers()):
            if (event.x - x) ** 2 + (event.y - y) ** 2 <= CORNER_RADIUS ** 2:
                pos = self.sequencer.positions[i]
                self.sequencer.set_position_enabled(i, not pos.enabled)
                return

    # ---- sequencer wiring ----
    def _on_snapshot(self, snapshot: DrillSnapshot):
        headline, subline = format_status(snapshot)
        self.headline.config(text=headline)
        self.subline.config(text=subline)
        self._draw_court(snapshot)

        state = "disabled" if snapshot.in_progress else "normal"
        for child in self.settings_frame.winfo_children():
            self._set_state(child, state)
        if snapshot.in_progress:
            self.start_btn.config(text="Cancel", bg="#e53935")
        else:
            self.start_btn.config(text="Start", bg="#1e88e5")

        if snapshot.phase == Phase.COMPLETE and self._last_snapshot and self._last_snapshot.in_progress:
            self._close_session_log()
        self._last_snapshot = snapshot

    def _set_state(self, widget, state):
        if isinstance(widget, ttk.Frame):
            for child in widget.winfo_children():
                self._set_state(child, state)
            return
        if isinstance(widget, ttk.Combobox):
            widget.config(state="readonly" if state == "normal" else "disabled")
        elif isinstance(widget, (ttk.Scale, ttk.Spinbox, ttk.Checkbutton, ttk.Radiobutton)):
            widget.config(state=state)

    def _on_difficulty(self):
        preview, recovery = DIFFICULTY_PRESETS[self.difficulty.get()]
        self.preview_time.set(preview)
        self.recovery_time.set(recovery)

    def _config_from_vars(self) -> DrillConfig:
        return DrillConfig(
            recovery_time=self.recovery_time.get(),
            set_interval=self.set_interval.get(),
            preview_time=self.preview_time.get(),
            num_sets=self.num_sets.get(),
            birds_per_set=self.birds_per_set.get(),
            sound_enabled=self.sound_enabled.get(),
            placement=self.placement.get(),
        )

    def _on_start_cancel(self):
        if self.sequencer.phase not in (Phase.IDLE, Phase.COMPLETE):
            self.sequencer.stop()
            self._close_session_log()
            return

        try:
            cfg = self._config_from_vars()
        except tk.TclError:
            messagebox.showerror("Validation Error", "Sets and birds per set must be whole numbers")
            return
        self._save_params()

        self.session_log = SessionLog(os.path.join(self.log_dir, f"drill_{int(time.time())}.csv"))
        self.session_log.open()
        self.sequencer.event_log = self.session_log
        try:
            self.sequencer.update_config(**cfg.to_params())
            self.sequencer.start()
        except ConfigurationError as e:
            logger.warning("Drill not started: %s", e)
            self._close_session_log()
            messagebox.showerror("Validation Error", str(e))

    def _close_session_log(self):
        if self.session_log is not None:
            self.session_log.close()
            self.session_log = None
        self.sequencer.event_log = None

    # ---- persistence ----
    def _load_params(self):
        """Load saved parameters from config file and restore the controls."""
        config = load_config()
        cfg = DrillConfig.from_params(config.get('drill', {}))
        self.set_interval.set(cfg.set_interval)
        self.recovery_time.set(cfg.recovery_time)
        self.preview_time.set(cfg.preview_time)
        self.num_sets.set(cfg.num_sets)
        self.birds_per_set.set(cfg.birds_per_set)
        self.sound_enabled.set(cfg.sound_enabled)
        self.placement.set(cfg.placement)
        if config.get('difficulty') in DIFFICULTY_PRESETS:
            self.difficulty.set(config['difficulty'])

        enabled = config.get('enabled')
        if isinstance(enabled, list) and len(enabled) == NUM_POSITIONS:
            for i, on in enumerate(enabled):
                self.sequencer.set_position_enabled(i, bool(on))

    def _save_params(self):
        """Save current parameters and the enabled corners to config file."""
        try:
            drill = self._config_from_vars().to_params()
        except tk.TclError:
            drill = self.sequencer.config.to_params()
        save_config({
            'difficulty': self.difficulty.get(),
            'drill': drill,
            'enabled': [p.enabled for p in self.sequencer.positions],
        })

    def _on_closing(self):
        """Clean up and close the application gracefully."""
        self._save_params()
        self.sequencer.stop()
        self._close_session_log()
        self.audio.close()
        self.destroy()


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    app = App()
    app.mainloop()


if __name__ == '__main__':
    main()
