"""
Batch-producing sampling worker.

A Worker owns a set of Markov chains (one state per chain slot and channel)
and a random generator. Each batch it runs every chain for ``batch_steps``
rounds into a fresh Histogram and hands the finished histogram off; the
chain states persist from batch to batch.
"""

import logging
import time
from typing import Callable, List, Optional

import numpy as np

from .complex import Complex
from .histogram import Histogram
from .orbit import Orbit
from .sampling import SEARCH_LIMIT, SEARCH_RADIUS, ChainState, Sampler, find_initial_sample
from ..io.config import RenderConfig

logger = logging.getLogger(__name__)


class Worker:
    """Single sampling worker with persistent chain state."""

    def __init__(self, config: RenderConfig, worker_id: int = 0,
                 seed_sequence: Optional[np.random.SeedSequence] = None):
        """
        Initialize the worker.

        Args:
            config: Run configuration
            worker_id: Index used in log messages
            seed_sequence: Entropy source; a fixed sequence makes runs reproducible
        """
        self.config = config
        self.worker_id = worker_id
        self.rng = np.random.default_rng(seed_sequence)
        self.sampler = Sampler(config.limits, config.zoom, self.rng,
                               use_metropolis=config.use_metropolis,
                               skip_seed_point=config.skip_seed_point)
        self.chains: List[List[ChainState]] = []
        self.batches = 0

    def new_histogram(self) -> Histogram:
        return Histogram(self.config.width, self.config.height, self.config.origin,
                         self.config.zoom, self.config.channels)

    def prepare(self) -> int:
        """
        Create the chain slots.

        With Metropolis sampling each slot is seeded by the initial-sample
        search and warmed up per channel; slots whose search fails are
        skipped. Plain sampling starts every slot from a random seed.

        Returns:
            Number of live chain slots
        """
        start_time = time.time()
        frame = self.new_histogram()
        self.chains = []

        if not self.config.use_metropolis:
            for _ in range(self.config.warmup_count):
                self.chains.append([ChainState(Complex.random(self.rng))
                                    for _ in range(self.config.channels)])
            return len(self.chains)

        search_orbit = Orbit(SEARCH_LIMIT)
        for slot in range(self.config.warmup_count):
            seed = find_initial_sample(frame, Complex(), SEARCH_RADIUS, self.rng,
                                       orbit=search_orbit)
            if seed is None:
                logger.warning(f"Worker {self.worker_id}: no initial sample for chain {slot}, skipping")
                continue

            states = []
            for channel in range(self.config.channels):
                state = ChainState(seed)
                self.sampler.measure(state, channel, frame)
                self.sampler.warm_up(state, channel, frame, self.config.warmup_steps)
                states.append(state)
            self.chains.append(states)

        logger.info(f"Worker {self.worker_id}: {len(self.chains)}/{self.config.warmup_count} chains "
                    f"ready in {time.time() - start_time:.2f}s")
        return len(self.chains)

    def run_batch(self, cancelled: Optional[Callable[[], bool]] = None) -> Optional[Histogram]:
        """
        Sample one batch.

        Args:
            cancelled: Polled once per round; a True result abandons the batch

        Returns:
            The completed batch histogram, or None if the batch was cancelled
        """
        histogram = self.new_histogram()
        self.sampler.reset_stats()
        start_time = time.time()

        for _ in range(self.config.batch_steps):
            if cancelled is not None and cancelled():
                return None
            for states in self.chains:
                for channel, state in enumerate(states):
                    self.sampler.step(state, channel, histogram)

        self.batches += 1
        logger.debug(f"Worker {self.worker_id}: batch {self.batches} in {time.time() - start_time:.2f}s, "
                     f"acceptance {self.sampler.acceptance_rate():.3f}")
        return histogram

    def run(self, hand_off: Callable[[Histogram], bool],
            cancelled: Optional[Callable[[], bool]] = None) -> int:
        """
        Produce batches until a hand-off fails or the run is cancelled.

        Args:
            hand_off: Transfers a finished histogram; returns False once the
                receiving side has shut down
            cancelled: Optional cancellation check

        Returns:
            Number of batches handed off
        """
        if not self.chains and not self.prepare():
            logger.error(f"Worker {self.worker_id}: no usable chains, nothing to sample")
            return 0

        delivered = 0
        while True:
            histogram = self.run_batch(cancelled)
            if histogram is None or not hand_off(histogram):
                break
            delivered += 1

        logger.info(f"Worker {self.worker_id}: stopping after {delivered} batches")
        return delivered
