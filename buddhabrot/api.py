"""
Main API for Buddhabrot rendering.

This module ties the sampling pipeline together: it spawns the worker
processes, aggregates their batches, tone maps the result and writes the
image and optional raw dump.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from .acceleration.multiprocessing import Aggregator, aggregate, spawn_workers
from .core.histogram import Histogram
from .io.config import RenderConfig
from .rendering.coloring import color_map
from .rendering.image_output import (ImageExporter, RenderMetadata, load_raw_histogram,
                                     raw_path_for, save_raw_histogram)

logger = logging.getLogger(__name__)


class BuddhabrotRenderer:
    """Runs one sampling session and produces its image."""

    def __init__(self, config: Optional[RenderConfig] = None):
        """
        Initialize the renderer.

        Args:
            config: Run configuration (uses defaults if None)
        """
        self.config = config or RenderConfig()
        self.config.validate()

        self.image_exporter = ImageExporter()
        self.aggregator = Aggregator(self._template())
        self.render_time = 0.0

        logger.info(f"BuddhabrotRenderer initialized: {self.config.width}x{self.config.height}, "
                    f"limits={list(self.config.limits)}, metropolis={self.config.use_metropolis}, "
                    f"workers={self.config.n_threads}")

    def _template(self) -> Histogram:
        return Histogram(self.config.width, self.config.height, self.config.origin,
                         self.config.zoom, self.config.channels)

    @property
    def histogram(self) -> Histogram:
        """The cumulative histogram so far."""
        return self.aggregator.histogram

    def snapshot(self) -> np.ndarray:
        """Tone map the cumulative histogram at the window resolution."""
        return color_map(self.histogram, self.config.window_width, self.config.window_height)

    def render(self, progress_callback: Optional[Callable[[int, Histogram], None]] = None,
               should_stop: Optional[Callable[[], bool]] = None) -> np.ndarray:
        """
        Sample until ``max_batches`` is reached or the run is cancelled, then
        tone map and save.

        Args:
            progress_callback: Called with (batches, cumulative histogram)
                after every refresh cycle
            should_stop: External cancellation check

        Returns:
            RGB image array (height, width, 3)
        """
        if self.config.max_batches is None and should_stop is None:
            logger.info("No max_batches set, sampling until interrupted (Ctrl-C)")

        start_time = time.time()
        last_report = [start_time]

        def on_refresh(aggregator: Aggregator):
            now = time.time()
            if now - last_report[0] >= 5.0:
                last_report[0] = now
                logger.info(f"{aggregator.batches} batches, {aggregator.histogram.total()} hits")
            if progress_callback is not None:
                progress_callback(aggregator.batches, aggregator.histogram)

        with spawn_workers(self.config) as receiver:
            aggregate(receiver, self.config, on_refresh=on_refresh,
                      should_stop=should_stop, aggregator=self.aggregator)

        self.render_time = time.time() - start_time
        logger.info(f"Sampling complete: {self.aggregator.batches} batches in {self.render_time:.2f}s")

        image = self.snapshot()
        if self.config.output_path:
            self.save(self.config.output_path, image)
        return image

    def metadata(self) -> RenderMetadata:
        return RenderMetadata(
            origin=(self.config.origin.r, self.config.origin.i),
            zoom=self.config.zoom,
            resolution=(self.config.width, self.config.height),
            limits=list(self.config.limits),
            use_metropolis=self.config.use_metropolis,
            batches=self.aggregator.batches,
            total_hits=self.histogram.total(),
            render_time_seconds=self.render_time,
        )

    def save(self, output_path, image: Optional[np.ndarray] = None) -> Path:
        """
        Write the image and, if configured, the raw histogram next to it.

        Returns:
            Path of the image written
        """
        if image is None:
            image = self.snapshot()

        path = self.image_exporter.save_image(image, Path(output_path), self.metadata())
        if self.config.save_raw:
            save_raw_histogram(self.histogram, raw_path_for(path))
        return path


def recolor(raw_path, output_path, window_width: Optional[int] = None,
            window_height: Optional[int] = None) -> Path:
    """
    Tone map a saved raw histogram into a new image without resampling.

    Args:
        raw_path: Path of a raw dump (.npz)
        output_path: Image path to write
        window_width, window_height: Optional output size

    Returns:
        Path of the image written
    """
    histogram = load_raw_histogram(raw_path)
    image = color_map(histogram, window_width, window_height)
    logger.info(f"Recolored {histogram} ({histogram.total()} hits)")
    return ImageExporter().save_image(image, Path(output_path))
