"""Drill data model and corner selection for FourCorners.

This module provides the Position and DrillConfig dataclasses, the config
range checks used before a drill may start, the difficulty presets, and the
ProbabilityModel that picks the next corner.
"""
from dataclasses import dataclass, asdict, fields
from typing import Any, Dict, List, Optional, Sequence
import logging
import math
import random

from fc_utils import CORNER_NAMES

logger = logging.getLogger(__name__)

PLACEMENT_MODES = ("random", "in_order")

# name -> (preview_time, recovery_time)
DIFFICULTY_PRESETS: Dict[str, tuple] = {
    "Easy": (1.1, 1.4),
    "Medium": (1.0, 1.2),
    "Hard": (0.8, 1.1),
    "Professional": (0.6, 0.8),
}
DEFAULT_DIFFICULTY = "Professional"

# field -> (min, max), inclusive
CONFIG_RANGES: Dict[str, tuple] = {
    "recovery_time": (0.1, 1.6),
    "preview_time": (0.1, 1.6),
    "set_interval": (0.0, 120.0),
    "num_sets": (1, 20),
    "birds_per_set": (1, 50),
}


class ConfigurationError(ValueError):
    """Raised when a drill cannot start or be reconfigured."""


@dataclass
class Position:
    """One court corner.

    ``weight`` is the cumulative upper bound of this corner in the current
    partition, not its own share.
    """
    index: int
    name: str
    enabled: bool = True
    weight: float = 0.0
    was_last_visited: bool = False
    is_active: bool = False


def make_positions(names: Sequence[str] = CORNER_NAMES) -> List[Position]:
    """Build the canonical position list, all enabled."""
    return [Position(index=i, name=name) for i, name in enumerate(names)]


@dataclass
class DrillConfig:
    """Parameters of one drill run.

    Defaults match the Professional difficulty.
    """
    recovery_time: float = 0.8
    set_interval: float = 30.0
    preview_time: float = 0.6
    num_sets: int = 5
    birds_per_set: int = 20
    sound_enabled: bool = True
    placement: str = "random"      # 'random' | 'in_order'

    @property
    def pick_interval(self) -> float:
        """Seconds between two picks of the same set."""
        return self.recovery_time + self.preview_time

    def to_params(self) -> Dict[str, Any]:
        """Return a JSON-friendly dict for persistence."""
        return asdict(self)

    @classmethod
    def from_params(cls, params: Dict[str, Any]) -> 'DrillConfig':
        """Build a config from saved params.

        Unknown keys are ignored. Values of the wrong type fall back to the
        field default so a hand-edited config file cannot break startup.
        """
        defaults = cls()
        kwargs: Dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in params:
                continue
            value = params[f.name]
            default = getattr(defaults, f.name)
            if isinstance(default, bool):
                ok = isinstance(value, bool)
            elif isinstance(default, int):
                ok = isinstance(value, int) and not isinstance(value, bool)
            elif isinstance(default, float):
                ok = isinstance(value, (int, float)) and not isinstance(value, bool)
                value = float(value) if ok else value
            else:
                ok = isinstance(value, str)
            if ok:
                kwargs[f.name] = value
            else:
                logger.warning("Ignoring saved %s=%r", f.name, value)
        return cls(**kwargs)


def apply_difficulty(cfg: DrillConfig, difficulty: str) -> None:
    """Write the preview/recovery pair of a difficulty preset into ``cfg``."""
    if difficulty not in DIFFICULTY_PRESETS:
        raise ConfigurationError(f"Unknown difficulty '{difficulty}'")
    cfg.preview_time, cfg.recovery_time = DIFFICULTY_PRESETS[difficulty]


def validate_config(cfg: DrillConfig) -> Optional[str]:
    """Validate drill parameters. Returns error message or None if valid."""
    for name, (lo, hi) in CONFIG_RANGES.items():
        value = getattr(cfg, name)
        if isinstance(lo, int):
            if not isinstance(value, int) or isinstance(value, bool):
                return f"{name} must be a whole number"
        elif not isinstance(value, (int, float)) or isinstance(value, bool) or math.isnan(value):
            return f"{name} must be a number"
        if not (lo <= value <= hi):
            return f"{name} must be between {lo} and {hi}"
    if cfg.placement not in PLACEMENT_MODES:
        return f"placement must be one of {', '.join(PLACEMENT_MODES)}"
    return None


def validate_positions(positions: Sequence[Position]) -> Optional[str]:
    """Check that at least one corner can be picked."""
    if not any(p.enabled for p in positions):
        return "Enable at least one corner"
    return None


class ProbabilityModel:
    """Weighted-random corner picker.

    Every pick rebuilds a cumulative partition over the enabled positions in
    canonical order. The last-visited corner gets half the uniform share and
    the others split the rest evenly, so an immediate repeat is half as likely
    as any other corner.

    The last enabled weight is always forced to exactly 1.0. Summing the
    slices in floating point may land just under 1.0, and the draw rule would
    then find no match for a sample near the top of the range.
    """

    def recompute(self, positions: Sequence[Position],
                  last_visited_index: Optional[int] = None) -> List[float]:
        """Rewrite ``weight`` on every enabled position; return all weights.

        Disabled positions keep whatever weight they had and are never
        picked. Raises ConfigurationError when no position is enabled.
        """
        enabled = [p for p in positions if p.enabled]
        count = len(enabled)
        if count == 0:
            raise ConfigurationError("Enable at least one corner")

        base = 1.0 / count
        last = None
        if last_visited_index is not None and count > 1:
            last = next((p for p in enabled if p.index == last_visited_index), None)

        if last is None:
            for i, p in enumerate(enabled):
                p.weight = (i + 1) * base
        else:
            half_base = base / 2
            adj_base = (1.0 - half_base) / (count - 1)
            reached_last = False
            for i, p in enumerate(enabled):
                if p is last:
                    reached_last = True
                if reached_last:
                    p.weight = i * adj_base + half_base
                else:
                    p.weight = (i + 1) * adj_base

        enabled[-1].weight = 1.0
        return [p.weight for p in positions]

    def draw(self, positions: Sequence[Position], r: float) -> int:
        """Select the first enabled position with ``r <= weight``.

        Marks it as last visited, clears the flag everywhere else and returns
        its index. ``r`` is a uniform sample from [0, 1).
        """
        if not (0.0 <= r <= 1.0):
            raise ValueError(f"sample {r!r} outside [0, 1]")
        chosen = next((p for p in positions if p.enabled and r <= p.weight), None)
        if chosen is None:
            raise ConfigurationError("Enable at least one corner")
        for p in positions:
            p.was_last_visited = p is chosen
        return chosen.index

    def pick(self, positions: Sequence[Position], last_visited_index: Optional[int],
             rng: random.Random) -> int:
        """Recompute the partition and draw one position from ``rng``."""
        self.recompute(positions, last_visited_index)
        return self.draw(positions, rng.random())


def next_in_order(positions: Sequence[Position], last_visited_index: Optional[int]) -> int:
    """Return the next enabled position after ``last_visited_index``, wrapping.

    With no history the first enabled position is returned. Marks the result
    as last visited the same way ProbabilityModel.draw does.
    """
    enabled = [p for p in positions if p.enabled]
    if not enabled:
        raise ConfigurationError("Enable at least one corner")
    chosen = enabled[0]
    if last_visited_index is not None:
        later = [p for p in enabled if p.index > last_visited_index]
        if later:
            chosen = later[0]
    for p in positions:
        p.was_last_visited = p is chosen
    return chosen.index
