"""
Multiprocessing pipeline for Buddhabrot sampling.

Each worker process owns its chain states and a batch-local histogram. A
finished batch is pickled through a bounded multiprocessing queue to the
parent, where a single Aggregator sums batches into the cumulative
histogram. Workers share nothing else; closing the receiver sets a stop
event that every worker observes between sampling rounds and while waiting
on a full queue.
"""

import logging
import multiprocessing as mp
import os
import queue
import signal
import time
from typing import Callable, List, Optional

import numpy as np

from ..core.histogram import Histogram
from ..core.worker import Worker
from ..io.config import RenderConfig
from .numba_backend import warm_up_kernels

logger = logging.getLogger(__name__)

HAND_OFF_POLL_SECONDS = 0.1
RECEIVE_POLL_SECONDS = 0.25
SHUTDOWN_TIMEOUT_SECONDS = 5.0


def _hand_off(hand_off_queue, stop_event, histogram: Histogram) -> bool:
    """Put a histogram on the queue, giving up once the stop event is set."""
    while not stop_event.is_set():
        try:
            hand_off_queue.put(histogram, timeout=HAND_OFF_POLL_SECONDS)
            return True
        except queue.Full:
            continue
    return False


def worker_process_main(worker_id: int, config: RenderConfig,
                        seed_sequence: np.random.SeedSequence,
                        hand_off_queue, stop_event, log_level: int) -> None:
    """
    Entry point of a worker process.

    Args:
        worker_id: Worker index
        config: Run configuration
        seed_sequence: This worker's random stream
        hand_off_queue: Queue to the aggregator
        stop_event: Set by the receiver on shutdown
        log_level: Logging level to use in the child
    """
    # The parent owns Ctrl-C handling and shuts workers down through the stop event.
    signal.signal(signal.SIGINT, signal.SIG_IGN)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=log_level,
                            format='%(asctime)s - %(processName)s - %(name)s - %(levelname)s - %(message)s')

    logger.info(f"Worker {worker_id} started (pid {os.getpid()})")

    worker = Worker(config, worker_id, seed_sequence)
    worker.run(lambda histogram: _hand_off(hand_off_queue, stop_event, histogram),
               cancelled=stop_event.is_set)

    # Exiting joins the queue feeder, so a batch already handed off is written
    # out in full while the receiver drains.


class HistogramReceiver:
    """Receiving end of the worker-to-aggregator queue."""

    def __init__(self, hand_off_queue, stop_event, processes: List[mp.Process]):
        self.queue = hand_off_queue
        self.stop_event = stop_event
        self.processes = processes
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def alive(self) -> bool:
        """True while at least one worker process is running."""
        return any(process.is_alive() for process in self.processes)

    def get(self, timeout: Optional[float] = None) -> Optional[Histogram]:
        """Block up to ``timeout`` seconds for the next batch."""
        if self._closed:
            return None
        try:
            return self.queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def poll(self, limit: int) -> List[Histogram]:
        """Take up to ``limit`` batches that are already waiting, without blocking."""
        batches = []
        while not self._closed and len(batches) < limit:
            try:
                batches.append(self.queue.get_nowait())
            except queue.Empty:
                break
        return batches

    def _discard_pending(self) -> int:
        discarded = 0
        while True:
            try:
                self.queue.get_nowait()
                discarded += 1
            except (queue.Empty, OSError, ValueError):
                return discarded

    def close(self, timeout: float = SHUTDOWN_TIMEOUT_SECONDS) -> None:
        """Stop all workers and release the queue."""
        if self._closed:
            return
        self._closed = True
        self.stop_event.set()

        # Draining is only safe while every writer is alive: a terminated
        # worker can leave a partial message in the pipe.
        deadline = time.time() + timeout
        discarded = 0
        while self.alive and time.time() < deadline:
            discarded += self._discard_pending()
            time.sleep(0.05)

        for process in self.processes:
            if process.is_alive():
                logger.warning(f"Terminating unresponsive worker {process.name}")
                process.terminate()
            process.join()

        self.queue.close()
        self.queue.cancel_join_thread()
        logger.info(f"Workers stopped ({discarded} pending batches discarded)")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def spawn_workers(config: RenderConfig, log_level: Optional[int] = None) -> HistogramReceiver:
    """
    Start ``config.n_threads`` worker processes.

    Args:
        config: Run configuration
        log_level: Logging level for the workers (defaults to the parent's)

    Returns:
        Receiver for the workers' batch histograms
    """
    config.validate()
    if log_level is None:
        log_level = logging.getLogger().getEffectiveLevel()

    # Compile in the parent so workers load the cached kernels.
    warm_up_kernels()

    context = mp.get_context()
    hand_off_queue = context.Queue(maxsize=config.hand_off_capacity)
    stop_event = context.Event()

    seeds = np.random.SeedSequence(config.seed).spawn(config.n_threads)
    processes = []
    for worker_id, seed_sequence in enumerate(seeds):
        process = context.Process(
            target=worker_process_main,
            args=(worker_id, config, seed_sequence, hand_off_queue, stop_event, log_level),
            name=f"buddhabrot-worker-{worker_id}",
            daemon=True,
        )
        process.start()
        processes.append(process)

    logger.info(f"Spawned {len(processes)} worker processes "
                f"(queue bound {config.hand_off_capacity})")
    return HistogramReceiver(hand_off_queue, stop_event, processes)


class Aggregator:
    """Single consumer that sums batch histograms into a cumulative one."""

    def __init__(self, template: Histogram):
        """
        Initialize the aggregator.

        Args:
            template: Defines the geometry of the cumulative histogram
        """
        self.histogram = template.empty_like()
        self.batches = 0

    def add(self, histogram: Histogram) -> None:
        """Sum one batch into the cumulative histogram."""
        self.histogram.add(histogram)
        self.batches += 1

    def drain(self, receiver: HistogramReceiver, limit: int) -> int:
        """
        Add up to ``limit`` waiting batches without blocking.

        Returns:
            Number of batches added
        """
        batches = receiver.poll(limit)
        for histogram in batches:
            self.add(histogram)
        return len(batches)

    def run(self, receiver: HistogramReceiver, max_batches: Optional[int] = None,
            refresh_batches: int = 8,
            on_refresh: Optional[Callable[['Aggregator'], None]] = None,
            should_stop: Optional[Callable[[], bool]] = None) -> Histogram:
        """
        Consume batches until ``max_batches`` is reached, ``should_stop``
        returns True, or every worker has exited.

        Args:
            receiver: Source of batch histograms
            max_batches: Optional stop condition on the number of batches
            refresh_batches: Most batches drained per refresh cycle
            on_refresh: Called after each cycle that added batches
            should_stop: External cancellation check

        Returns:
            The cumulative histogram
        """
        while max_batches is None or self.batches < max_batches:
            if should_stop is not None and should_stop():
                logger.info("Aggregation cancelled")
                break

            limit = refresh_batches
            if max_batches is not None:
                limit = min(limit, max_batches - self.batches)

            added = self.drain(receiver, limit)
            if added == 0:
                histogram = receiver.get(timeout=RECEIVE_POLL_SECONDS)
                if histogram is None:
                    if receiver.closed or not receiver.alive:
                        logger.warning("All workers have exited, ending aggregation")
                        break
                    continue
                self.add(histogram)

            if on_refresh is not None:
                on_refresh(self)

        return self.histogram


def aggregate(receiver: HistogramReceiver, config: RenderConfig,
              on_refresh: Optional[Callable[[Aggregator], None]] = None,
              should_stop: Optional[Callable[[], bool]] = None,
              aggregator: Optional[Aggregator] = None) -> Histogram:
    """
    Sum batches from ``receiver`` until the configured batch cap or cancellation.

    Ctrl-C ends aggregation and returns what has been accumulated so far.

    Args:
        receiver: Receiver returned by spawn_workers
        config: Run configuration
        on_refresh: Progress callback
        should_stop: External cancellation check
        aggregator: Existing aggregator to continue

    Returns:
        The cumulative histogram
    """
    if aggregator is None:
        template = Histogram(config.width, config.height, config.origin, config.zoom, config.channels)
        aggregator = Aggregator(template)

    start_time = time.time()
    try:
        aggregator.run(receiver, config.max_batches, config.refresh_batches,
                       on_refresh=on_refresh, should_stop=should_stop)
    except KeyboardInterrupt:
        logger.info("Interrupted, keeping the batches received so far")

    logger.info(f"Aggregated {aggregator.batches} batches in {time.time() - start_time:.2f}s")
    return aggregator.histogram
