import numpy as np
import pytest

import fc_session
from fc_session import CuePlayer
from fc_synth import CueConfig, CueSynth
from fc_utils import NUM_POSITIONS, env_ramp, snap


def test_cue_length_counts_pips():
    cfg = CueConfig()
    synth = CueSynth(cfg)
    pip = int(cfg.pip_seconds * cfg.sample_rate)
    gap = int(cfg.gap_seconds * cfg.sample_rate)
    for i in range(NUM_POSITIONS):
        audio = synth.cue_audio(i)
        assert audio.shape == ((i + 1) * pip + i * gap, 2)
        assert audio.dtype == np.float32
        assert np.abs(audio).max() <= cfg.gain + 1e-6


def test_cues_are_distinct_and_ramped():
    cues = CueSynth(CueConfig()).all_cues()
    assert len(cues) == NUM_POSITIONS
    first = cues[0]
    assert abs(first[0, 0]) < 1e-3
    assert abs(first[-1, 0]) < 0.05
    assert not np.array_equal(cues[0], cues[1][:len(cues[0])])


def test_unknown_position_has_no_cue():
    with pytest.raises(IndexError):
        CueSynth(CueConfig()).cue_audio(NUM_POSITIONS)


def test_player_without_device_is_silent(monkeypatch):
    monkeypatch.setattr(fc_session, "sd", None)
    player = CuePlayer()
    player.open()
    assert len(player.cues) == NUM_POSITIONS
    assert not player.available
    player.play(0)
    assert player.q_frames.empty()
    player.close()


def test_player_drops_cues_when_queue_full(monkeypatch):
    player = CuePlayer()
    player.cues = CueSynth(CueConfig()).all_cues()
    monkeypatch.setattr(CuePlayer, "available", property(lambda self: True))
    for _ in range(fc_session.AUDIO_QUEUE_MAX_SIZE + 3):
        player.play(1)
    player.play(99)
    assert player.q_frames.qsize() == fc_session.AUDIO_QUEUE_MAX_SIZE


def test_helpers():
    assert snap(0.83, 0.05) == 0.85
    assert snap(27, 5.0) == 25.0
    assert snap(0.7, 0) == 0.7
    ramp = env_ramp(8)
    assert ramp.dtype == np.float32
    assert np.all(np.diff(ramp) > 0)
