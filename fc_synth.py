"""Cue synthesizer module.

Contains the CueConfig dataclass and CueSynth which generates one stereo
numpy audio buffer per court position.
"""
from dataclasses import dataclass, field
from typing import List
import numpy as np
from fc_utils import DEFAULT_SAMPLE_RATE, CUE_TONES_HZ, env_ramp

# Audio envelope constants
RAMP_DURATION_SECONDS = 0.005


@dataclass
class CueConfig:
    """Configuration for the cue synthesizer.

    Position ``i`` sounds as ``i + 1`` pips at ``tones_hz[i]`` so each corner
    can be told apart by ear.
    """
    sample_rate: int = DEFAULT_SAMPLE_RATE
    tones_hz: List[float] = field(default_factory=lambda: list(CUE_TONES_HZ))
    pip_seconds: float = 0.06
    gap_seconds: float = 0.04
    gain: float = 0.25


class CueSynth:
    """Generate cue buffers according to a CueConfig.

    Public methods:
      - cue_audio(index): return stereo buffer for one position
      - all_cues(): return the buffers for every configured position
    """
    def __init__(self, cfg: CueConfig):
        self.cfg = cfg

    def _tone(self, seconds: float, freq: float) -> 'np.ndarray':
        """Synthesize a ramped stereo tone.

        Returns:
            A numpy array shape (n_samples, 2) float32 scaled by gain.
        """
        sr = self.cfg.sample_rate
        n = max(1, int(seconds * sr))
        t = np.arange(n, dtype=np.float32) / sr
        sig = np.sin(2 * np.pi * freq * t).astype(np.float32)

        ramp_samps = min(n // 2, max(1, int(RAMP_DURATION_SECONDS * sr)))
        if ramp_samps > 0:
            ramp = env_ramp(ramp_samps)
            sig[:ramp_samps] *= ramp
            sig[-ramp_samps:] *= ramp[::-1]

        stereo = np.stack([sig, sig], axis=1)
        return (stereo * self.cfg.gain).astype(np.float32)

    def _silence(self, seconds: float) -> 'np.ndarray':
        """Return a stereo silence buffer for ``seconds`` seconds."""
        n = max(1, int(seconds * self.cfg.sample_rate))
        return np.zeros((n, 2), dtype=np.float32)

    def cue_audio(self, index: int) -> 'np.ndarray':
        """Build the cue for the position at canonical ``index``."""
        tones = self.cfg.tones_hz
        if not 0 <= index < len(tones):
            raise IndexError(f"no cue tone for position {index}")
        chunks = []
        for pip in range(index + 1):
            if pip:
                chunks.append(self._silence(self.cfg.gap_seconds))
            chunks.append(self._tone(self.cfg.pip_seconds, tones[index]))
        return np.concatenate(chunks, axis=0)

    def all_cues(self) -> List['np.ndarray']:
        return [self.cue_audio(i) for i in range(len(self.cfg.tones_hz))]
