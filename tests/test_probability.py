from itertools import product
import random

import pytest

from fc_drill import ConfigurationError, ProbabilityModel, make_positions, next_in_order


def positions_with_mask(mask):
    positions = make_positions()
    for p, on in zip(positions, mask):
        p.enabled = on
    return positions


def slices(positions):
    """Width of each enabled position's slice, keyed by index."""
    out, prev = {}, 0.0
    for p in positions:
        if p.enabled:
            out[p.index] = p.weight - prev
            prev = p.weight
    return out


ALL_MASKS = [m for m in product([True, False], repeat=6) if any(m)]


def test_partition_valid_for_every_mask_and_history():
    model = ProbabilityModel()
    for mask in ALL_MASKS:
        for last in [None] + list(range(6)):
            positions = positions_with_mask(mask)
            model.recompute(positions, last)
            weights = [p.weight for p in positions if p.enabled]
            assert weights == sorted(weights)
            assert all(0.0 <= w <= 1.0 for w in weights)
            assert weights[-1] == 1.0


def test_last_visited_gets_half_slice():
    model = ProbabilityModel()
    for mask in ALL_MASKS:
        enabled = [i for i, on in enumerate(mask) if on]
        count = len(enabled)
        if count < 2:
            continue
        for last in enabled:
            positions = positions_with_mask(mask)
            model.recompute(positions, last)
            widths = slices(positions)
            assert widths[last] == pytest.approx(1 / (2 * count))
            for i in enabled:
                if i != last:
                    assert widths[i] == pytest.approx((1 - 1 / (2 * count)) / (count - 1))


def test_six_corners_last_visited_three():
    positions = make_positions()
    ProbabilityModel().recompute(positions, 3)
    weights = [p.weight for p in positions]
    assert weights[:5] == pytest.approx([11 / 60, 22 / 60, 33 / 60, 38 / 60, 49 / 60])
    assert weights[5] == 1.0
    widths = slices(positions)
    assert widths[3] == pytest.approx(1 / 12)
    for i in (0, 1, 2, 4, 5):
        assert widths[i] == pytest.approx(11 / 60)


def test_uniform_partition_without_history():
    positions = make_positions()
    ProbabilityModel().recompute(positions, None)
    assert [p.weight for p in positions] == pytest.approx([1 / 6, 2 / 6, 3 / 6, 4 / 6, 5 / 6, 1.0])


def test_disabled_last_visited_falls_back_to_uniform():
    positions = positions_with_mask([True, False, True, True, False, True])
    ProbabilityModel().recompute(positions, 1)
    widths = slices(positions)
    assert list(widths) == [0, 2, 3, 5]
    assert all(w == pytest.approx(0.25) for w in widths.values())


def test_disabled_weight_untouched():
    positions = positions_with_mask([True, False, True, True, True, True])
    positions[1].weight = 0.42
    ProbabilityModel().recompute(positions, 0)
    assert positions[1].weight == 0.42


def test_single_enabled_position_is_forced():
    model = ProbabilityModel()
    positions = positions_with_mask([False, False, False, False, True, False])
    model.recompute(positions, 4)
    assert positions[4].weight == 1.0
    for r in (0.0, 0.5, 0.999, 1.0):
        assert model.draw(positions, r) == 4


def test_no_enabled_positions_raises():
    positions = positions_with_mask([False] * 6)
    with pytest.raises(ConfigurationError):
        ProbabilityModel().recompute(positions, None)


def test_draw_is_deterministic_for_fixed_sample():
    model = ProbabilityModel()
    results = set()
    for _ in range(5):
        positions = make_positions()
        model.recompute(positions, 3)
        results.add(model.draw(positions, 0.6))
    # 33/60 < 0.6 <= 38/60
    assert results == {3}


def test_draw_boundaries_are_inclusive():
    model = ProbabilityModel()
    positions = make_positions()
    model.recompute(positions, None)
    assert model.draw(positions, 0.0) == 0
    assert model.draw(positions, positions[0].weight) == 0
    assert model.draw(positions, 0.9999999) == 5


def test_disabled_never_drawn():
    model = ProbabilityModel()
    samples = [i / 1000 for i in range(1000)] + [0.9999999999]
    for mask in ALL_MASKS:
        for last in [None] + [i for i, on in enumerate(mask) if on]:
            positions = positions_with_mask(mask)
            model.recompute(positions, last)
            for r in samples:
                assert mask[model.draw(positions, r)]


def test_draw_marks_only_chosen_as_last_visited():
    model = ProbabilityModel()
    positions = make_positions()
    positions[5].was_last_visited = True
    model.recompute(positions, 5)
    chosen = model.draw(positions, 0.1)
    assert chosen == 0
    assert [p.was_last_visited for p in positions] == [True, False, False, False, False, False]


def test_draw_rejects_out_of_range_sample():
    model = ProbabilityModel()
    positions = make_positions()
    model.recompute(positions, None)
    with pytest.raises(ValueError):
        model.draw(positions, -0.1)
    with pytest.raises(ValueError):
        model.draw(positions, 1.5)


def test_repeats_happen_about_half_as_often():
    model = ProbabilityModel()
    rng = random.Random(1234)
    positions = make_positions()
    last = None
    repeats = 0
    n = 20000
    for _ in range(n):
        index = model.pick(positions, last, rng)
        repeats += index == last
        last = index
    # uniform would repeat 1/6 of the time
    assert repeats / n == pytest.approx(1 / 12, abs=0.01)


def test_in_order_wraps_and_skips_disabled():
    positions = positions_with_mask([True, False, True, False, False, True])
    seq, last = [], None
    for _ in range(5):
        last = next_in_order(positions, last)
        seq.append(last)
    assert seq == [0, 2, 5, 0, 2]
    assert positions[2].was_last_visited
    assert sum(p.was_last_visited for p in positions) == 1
