"""Utility functions and constants for FourCorners.

This module holds shared constants (corner names, cue tones, defaults) and
small helpers used across the package: slider snapping and envelope
generation.
"""
from typing import List
import numpy as np

# Canonical order: rows top to bottom, left then right
CORNER_NAMES: List[str] = [
    "top-left", "top-right",
    "left", "right",
    "bottom-left", "bottom-right",
]
NUM_POSITIONS = len(CORNER_NAMES)

# Cue tone per position, in canonical order
CUE_TONES_HZ: List[float] = [523.25, 587.33, 659.25, 698.46, 783.99, 880.0]

# Default audio constants
DEFAULT_SAMPLE_RATE = 48000

# Ticks before the first set starts (1 Hz)
INITIAL_COUNTDOWN = 5


def snap(value: float, step: float) -> float:
    """Snap ``value`` to the nearest multiple of ``step``.

    Used by the sliders so the stored config matches the step the UI shows.
    The result is rounded to 6 places to keep 0.05 steps free of drift.
    """
    if step <= 0:
        return value
    return round(round(value / step) * step, 6)


def env_ramp(samples: int) -> 'np.ndarray':
    """Generate a cosine-shaped envelope ramp of length ``samples``.

    The ramp is applied as fade-in/fade-out on cue pips to avoid clicks.

    Args:
        samples: Number of ramp samples (int).

    Returns:
        A numpy float32 array containing the ramp from ~0 to 1.
    """
    t = np.arange(samples, dtype=np.float32)
    ramp = 0.5 * (1 - np.cos(np.pi * (t + 1) / (samples + 1)))
    return ramp.astype(np.float32)
