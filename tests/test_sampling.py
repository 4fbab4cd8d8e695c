import math

import numpy as np
import pytest

from buddhabrot.core.complex import SAMPLE_EXTENT, Complex
from buddhabrot.core.histogram import Histogram
from buddhabrot.core.orbit import Orbit, evaluate
from buddhabrot.core.sampling import (SEARCH_LIMIT, SEARCH_MAX_DEPTH, SMALL_STEP_MAX, SMALL_STEP_MIN,
                                      ChainState, Sampler, accept_prob, find_initial_sample,
                                      mutate, transition_prob)


@pytest.fixture
def frame():
    return Histogram(64, 64, Complex(-0.4, 0.0), 0.35)


def test_equal_orbits_are_always_accepted():
    assert accept_prob(500, 120, 0.25, 120, 0.25) == 1.0
    assert accept_prob(50000, 1, 1.0, 1, 1.0) == 1.0


def test_zero_contribution_proposal_is_rejected():
    assert accept_prob(500, 10, 0.5, 10, 0.0) == 0.0


def test_proposal_from_empty_state_is_accepted():
    assert accept_prob(500, 10, 0.0, 10, 0.1) == 1.0


def test_acceptance_follows_contribution_ratio():
    assert accept_prob(500, 40, 0.5, 40, 0.25) == pytest.approx(0.5)
    assert accept_prob(500, 40, 0.25, 40, 0.5) == 1.0


def test_acceptance_is_a_probability():
    rng = np.random.default_rng(3)
    for _ in range(1000):
        limit = int(rng.integers(2, 1000))
        value = accept_prob(limit, int(rng.integers(1, limit)), rng.random(),
                            int(rng.integers(1, limit)), rng.random())
        assert 0.0 <= value <= 1.0


def test_transition_prob_is_length_ratio():
    assert transition_prob(1000, 200, 50) == pytest.approx(4.0)
    assert transition_prob(1000, 50, 200) == pytest.approx(0.25)
    assert transition_prob(1000, 300, 300) == pytest.approx(1.0)


def test_plain_sampling_always_draws_from_the_square(rng):
    current = Complex(0.0, 0.0)
    for _ in range(500):
        candidate = mutate(current, 1000.0, rng, use_metropolis=False)
        assert abs(candidate.r) <= SAMPLE_EXTENT
        assert abs(candidate.i) <= SAMPLE_EXTENT


@pytest.mark.parametrize("zoom", [1.0, 10.0, 1000.0])
def test_small_steps_scale_with_zoom(rng, zoom):
    current = Complex(-0.5, 0.25)
    small = 0
    draws = 2000
    for _ in range(draws):
        step = math.sqrt((mutate(current, zoom, rng) - current).norm_sqr())
        if step <= SMALL_STEP_MAX / zoom * (1 + 1e-6):
            small += 1
            assert step >= SMALL_STEP_MIN / zoom * (1 - 1e-6)

    # 4 in 5 proposals are local moves; large moves almost never land that close.
    assert 0.75 < small / draws < 0.85


def test_find_initial_sample_hits_the_frame(frame, rng):
    seed = find_initial_sample(frame, Complex(), 4.0, rng)
    assert seed is not None

    orbit = Orbit()
    assert evaluate(seed, SEARCH_LIMIT, orbit) is not None
    assert frame.count_in_frame(orbit) > 0
    assert frame.total() == 0


def test_find_initial_sample_gives_up_past_depth_bound(frame, rng):
    assert find_initial_sample(frame, Complex(), 4.0, rng, depth=SEARCH_MAX_DEPTH + 1) is None


def test_find_initial_sample_zooms_in_on_small_viewport(rng):
    frame = Histogram(16, 16, Complex(-0.1, 0.75), 5.0)
    seed = find_initial_sample(frame, Complex(), 4.0, rng)
    assert seed is not None

    orbit = Orbit()
    evaluate(seed, SEARCH_LIMIT, orbit)
    assert frame.count_in_frame(orbit) > 0


def test_plain_step_records_accepted_orbit(frame):
    sampler = Sampler((200,), frame.zoom, np.random.default_rng(5), use_metropolis=False,
                      skip_seed_point=False)
    state = ChainState(Complex(0.0, 0.0))

    for _ in range(200):
        before = frame.total()
        accepted = sampler.step(state, 0, frame)
        if accepted:
            assert state.contribution > 0.0
            assert frame.total() - before == round(state.contribution * state.length)
        else:
            assert frame.total() == before

    assert sampler.accepted > 0
    assert frame.total() > 0


def test_accepted_state_matches_its_seed(frame):
    sampler = Sampler((500,), frame.zoom, np.random.default_rng(11))
    state = ChainState(Complex(1.0, 0.0))
    sampler.measure(state, 0, frame)
    assert state.contribution == 0.5
    for _ in range(300):
        sampler.step(state, 0, frame)

    recomputed = ChainState(state.seed)
    sampler.measure(recomputed, 0, frame)
    assert recomputed.contribution == pytest.approx(state.contribution)
    assert recomputed.length == state.length


def test_warm_up_does_not_write(frame):
    sampler = Sampler((500, 50), frame.zoom, np.random.default_rng(2))
    state = ChainState(Complex(-1.0, 0.3))
    sampler.measure(state, 1, frame)
    sampler.warm_up(state, 1, frame, steps=200)
    assert frame.total() == 0
    assert sampler.proposed == 200


def test_measure_bounded_seed_has_no_contribution(frame):
    sampler = Sampler((100,), frame.zoom, np.random.default_rng(0))
    state = ChainState(Complex(0.0, 0.0), contribution=0.7, length=3)
    sampler.measure(state, 0, frame)
    assert state.contribution == 0.0
    assert state.length == 100
