"""
Per-channel 2-D histogram of orbit points.

A Histogram maps points of the complex plane onto a width x height pixel grid
centered on ``origin`` and keeps one integer count per channel in each cell.
"""

import logging
import math
from typing import Tuple

import numpy as np

from .complex import Complex
from .orbit import Orbit
from ..acceleration.numba_backend import accumulate_kernel, count_in_frame_kernel, project_kernel

logger = logging.getLogger(__name__)


class Histogram:
    """Width x height grid of per-channel counts over a viewport."""

    def __init__(self, width: int, height: int, origin: Complex, zoom: float,
                 channels: int = 3):
        """
        Initialize an empty histogram.

        Args:
            width, height: Grid resolution in pixels
            origin: Center of the viewport in the complex plane
            zoom: Viewport scale (1.0 fits a unit square in the shorter side)
            channels: Number of count planes
        """
        if width <= 0 or height <= 0:
            raise ValueError("Width and height must be positive")
        if channels <= 0:
            raise ValueError("channels must be positive")
        if zoom <= 0:
            raise ValueError("zoom must be positive")

        self.width = int(width)
        self.height = int(height)
        self.origin = origin
        self.zoom = float(zoom)
        self.counts = np.zeros((self.height, self.width, channels), dtype=np.int64)

    @property
    def channels(self) -> int:
        return self.counts.shape[2]

    def project(self, point: Complex) -> Tuple[int, int]:
        """
        Convert a complex point to pixel coordinates.

        Coordinates are floored, so anything left of or above the frame maps
        to a negative index instead of collapsing onto the first row/column.
        """
        x, y = project_kernel(point.r, point.i, self.origin.r, self.origin.i,
                              self.zoom, self.width, self.height)
        return math.floor(x), math.floor(y)

    def _in_frame(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def check(self, point: Complex) -> bool:
        """True if the point projects inside the frame."""
        return self._in_frame(*self.project(point))

    def increment(self, channel: int, point: Complex) -> bool:
        """
        Count one hit for ``point`` on ``channel``.

        Returns:
            False (and leaves the histogram untouched) if the channel is
            invalid or the point falls outside the frame.
        """
        if not 0 <= channel < self.channels:
            return False

        x, y = self.project(point)
        if not self._in_frame(x, y):
            return False

        self.counts[y, x, channel] += 1
        return True

    def count_in_frame(self, orbit: Orbit, start: int = 0) -> int:
        """Number of orbit points from ``start`` on that land inside the frame."""
        return int(count_in_frame_kernel(orbit.points, start, orbit.length,
                                         self.origin.r, self.origin.i, self.zoom,
                                         self.width, self.height))

    def accumulate(self, channel: int, orbit: Orbit, start: int = 0) -> int:
        """
        Increment ``channel`` for every in-frame point of ``orbit``.

        Returns:
            Number of cells incremented
        """
        if not 0 <= channel < self.channels:
            return 0
        return int(accumulate_kernel(self.counts, channel, orbit.points, start, orbit.length,
                                     self.origin.r, self.origin.i, self.zoom))

    def same_geometry(self, other: 'Histogram') -> bool:
        return (self.counts.shape == other.counts.shape
                and self.origin == other.origin
                and self.zoom == other.zoom)

    def add(self, other: 'Histogram') -> None:
        """Add another histogram's counts element-wise and channel-wise."""
        if not self.same_geometry(other):
            raise ValueError(
                f"Histogram geometry mismatch: {self.counts.shape} at {self.origin}x{self.zoom} "
                f"vs {other.counts.shape} at {other.origin}x{other.zoom}")
        self.counts += other.counts

    def __iadd__(self, other: 'Histogram') -> 'Histogram':
        self.add(other)
        return self

    def empty_like(self) -> 'Histogram':
        """New zeroed histogram with the same geometry."""
        return Histogram(self.width, self.height, self.origin, self.zoom, self.channels)

    def copy(self) -> 'Histogram':
        clone = self.empty_like()
        clone.counts[...] = self.counts
        return clone

    def total(self) -> int:
        """Total number of hits over all cells and channels."""
        return int(self.counts.sum())

    def __repr__(self) -> str:
        return (f"Histogram({self.width}x{self.height}, channels={self.channels}, "
                f"origin=({self.origin.r}, {self.origin.i}), zoom={self.zoom})")
