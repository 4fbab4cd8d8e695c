"""
Metropolis-Hastings sampling of Buddhabrot seeds.

This module holds the pieces of the Markov chain: the mutation kernel that
proposes new seeds, the acceptance evaluator that corrects for the bias of
variable-length orbits, the adaptive search for a first usable seed in sparse
deep-zoom viewports, and the Sampler that ties them to one worker's random
generator and orbit buffer.
"""

import logging
import math
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np

from .complex import Complex
from .histogram import Histogram
from .orbit import Orbit, evaluate
from ..acceleration.numba_backend import nearest_point_kernel

logger = logging.getLogger(__name__)

# Probability of an independence ("large") move.
LARGE_STEP_PROBABILITY = 0.2

# Mutation radius bounds at zoom 1.0; both shrink as 1/zoom.
SMALL_STEP_MIN = 0.0001
SMALL_STEP_MAX = 0.1

# Initial-sample search parameters.
SEARCH_MAX_DEPTH = 500
SEARCH_CANDIDATES = 200
SEARCH_LIMIT = 50000
SEARCH_RADIUS = 4.0

DEFAULT_WARMUP_STEPS = 10000


@dataclass
class ChainState:
    """
    Current state of one Markov chain on one channel.

    ``length`` is the orbit length of ``seed`` under the channel's cap and is
    always updated together with ``seed`` and ``contribution``.
    """
    seed: Complex
    contribution: float = 0.0
    length: int = 1


def mutate(current: Complex, zoom: float, rng: np.random.Generator,
           use_metropolis: bool = True) -> Complex:
    """
    Propose a new seed from the current one.

    Args:
        current: Current seed of the chain
        zoom: Viewport zoom; local steps scale as 1/zoom
        rng: Random generator
        use_metropolis: If False every proposal is an independent draw

    Returns:
        Candidate seed
    """
    if not use_metropolis or rng.random() < LARGE_STEP_PROBABILITY:
        return Complex.random(rng)

    r1 = SMALL_STEP_MIN / zoom
    r2 = SMALL_STEP_MAX / zoom
    angle = rng.uniform(0.0, 2.0 * math.pi)
    radius = r2 * math.exp(-math.log(r2 / r1) * rng.random())
    return current + Complex.polar(radius, angle)


def transition_prob(length: int, from_length: int, to_length: int) -> float:
    """
    Relative probability of proposing an orbit of ``to_length`` from one of
    ``from_length`` when orbits are capped at ``length`` steps.
    """
    numerator = 1.0 - (length - from_length) / length
    denominator = 1.0 - (length - to_length) / length
    if denominator <= 0.0:
        return 0.0
    return numerator / denominator


def accept_prob(length: int, current_length: int, current_contrib: float,
                proposed_length: int, proposed_contrib: float) -> float:
    """
    Metropolis-Hastings acceptance probability for a proposed seed.

    Args:
        length: Iteration cap of the channel
        current_length: Orbit length of the current seed
        current_contrib: In-frame fraction of the current orbit
        proposed_length: Orbit length of the proposed seed
        proposed_contrib: In-frame fraction of the proposed orbit

    Returns:
        Acceptance probability in [0, 1]
    """
    if proposed_contrib <= 0.0:
        return 0.0
    if current_contrib <= 0.0:
        return 1.0

    forward = transition_prob(length, current_length, proposed_length)
    reverse = transition_prob(length, proposed_length, current_length)
    if reverse <= 0.0:
        return 1.0

    return min(1.0, (proposed_contrib * forward) / (current_contrib * reverse))


def _random_in_disk(rng: np.random.Generator, center: Complex, radius: float) -> Complex:
    angle = rng.uniform(0.0, 2.0 * math.pi)
    distance = radius * math.sqrt(rng.random())
    return center + Complex.polar(distance, angle)


def find_initial_sample(histogram: Histogram, origin: Complex, radius: float,
                        rng: np.random.Generator, depth: int = 0,
                        orbit: Optional[Orbit] = None) -> Optional[Complex]:
    """
    Search for a seed whose orbit visits the viewport.

    Each level draws candidates from a disk around the current center. An
    escaping candidate with any in-frame orbit point is returned at once;
    otherwise the search re-centers on the candidate whose orbit passed
    closest to the viewport center and halves the radius.

    Args:
        histogram: Defines the viewport (counts are not touched)
        origin: Center of the first search disk
        radius: Search radius; candidates fall within radius / 2
        rng: Random generator
        depth: Starting depth
        orbit: Optional reusable orbit buffer

    Returns:
        A productive seed, or None if the depth bound was exhausted
    """
    if orbit is None:
        orbit = Orbit(SEARCH_LIMIT)
    target = histogram.origin
    center = origin

    while depth <= SEARCH_MAX_DEPTH:
        best_seed = None
        best_distance = math.inf

        for _ in range(SEARCH_CANDIDATES):
            candidate = _random_in_disk(rng, center, radius * 0.5)
            if evaluate(candidate, SEARCH_LIMIT, orbit) is None:
                continue

            if histogram.count_in_frame(orbit) > 0:
                logger.debug(f"Initial sample found at depth {depth}: ({candidate.r}, {candidate.i})")
                return candidate

            distance = nearest_point_kernel(orbit.points, orbit.length, target.r, target.i)
            if distance < best_distance:
                best_distance = distance
                best_seed = candidate

        if best_seed is not None:
            center = best_seed
        radius *= 0.5
        depth += 1

    return None


class Sampler:
    """Mutate/evaluate/accept loop bound to one random generator."""

    def __init__(self, limits: Sequence[int], zoom: float, rng: np.random.Generator,
                 use_metropolis: bool = True, skip_seed_point: bool = True):
        """
        Initialize the sampler.

        Args:
            limits: Iteration cap for each channel
            zoom: Viewport zoom, used to scale local mutations
            rng: Random generator owned by this sampler
            use_metropolis: Metropolis sampling or plain independent sampling
            skip_seed_point: Leave the seed itself (orbit index 0) out of the histogram
        """
        self.limits = [int(limit) for limit in limits]
        self.zoom = zoom
        self.rng = rng
        self.use_metropolis = use_metropolis
        self.plot_start = 1 if skip_seed_point else 0
        self.orbit = Orbit(max(self.limits))
        self.accepted = 0
        self.proposed = 0

    def contribution(self, histogram: Histogram, orbit: Orbit) -> float:
        """Fraction of the orbit's points that land inside the frame."""
        if orbit.length == 0:
            return 0.0
        return histogram.count_in_frame(orbit) / orbit.length

    def measure(self, state: ChainState, channel: int, histogram: Histogram) -> None:
        """Recompute a state's contribution and length from its seed."""
        if evaluate(state.seed, self.limits[channel], self.orbit) is None:
            state.contribution = 0.0
        else:
            state.contribution = self.contribution(histogram, self.orbit)
        state.length = self.orbit.length

    def step(self, state: ChainState, channel: int, histogram: Histogram,
             record: bool = True) -> bool:
        """
        Advance one chain by one mutate/evaluate/accept iteration.

        Args:
            state: Chain state, updated in place on acceptance
            channel: Channel whose iteration cap applies
            histogram: Viewport for contributions; receives the accepted orbit
            record: Whether an accepted orbit is written into ``histogram``

        Returns:
            True if the proposal was accepted
        """
        limit = self.limits[channel]
        candidate = mutate(state.seed, self.zoom, self.rng, self.use_metropolis)
        self.proposed += 1

        if evaluate(candidate, limit, self.orbit) is None:
            return False

        contrib = self.contribution(histogram, self.orbit)
        if contrib <= 0.0:
            return False

        if self.use_metropolis:
            alpha = accept_prob(limit, state.length, state.contribution,
                                self.orbit.length, contrib)
            if self.rng.random() >= alpha:
                return False

        state.seed = candidate
        state.contribution = contrib
        state.length = self.orbit.length
        self.accepted += 1

        if record:
            histogram.accumulate(channel, self.orbit, self.plot_start)
        return True

    def warm_up(self, state: ChainState, channel: int, histogram: Histogram,
                steps: int = DEFAULT_WARMUP_STEPS) -> None:
        """Run ``steps`` iterations without writing to any histogram."""
        for _ in range(steps):
            self.step(state, channel, histogram, record=False)

    def acceptance_rate(self) -> float:
        return self.accepted / self.proposed if self.proposed else 0.0

    def reset_stats(self) -> None:
        self.accepted = 0
        self.proposed = 0
