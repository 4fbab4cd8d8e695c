"""
Numba JIT kernels for the sampler's inner loops.

Every Metropolis step evaluates an orbit of up to tens of thousands of
points and then projects each point into the viewport. These kernels do that
work on raw float64 buffers so the Python-level sampler only pays for a
couple of dispatches per step.
"""

import logging
import math

import numba
import numpy as np
from numba import jit

logger = logging.getLogger(__name__)


@jit(nopython=True, cache=True)
def orbit_kernel(seed_r, seed_i, cap, points):
    """
    Iterate z <- z^2 + c starting from z = c.

    Args:
        seed_r, seed_i: The seed c
        cap: Maximum number of steps
        points: Output buffer of shape (>= cap, 2)

    Returns:
        Step index at which the orbit escaped, or -1 if it stayed bounded.
        On escape, points[0..index] hold the pre-escape values.
    """
    zr = seed_r
    zi = seed_i

    for n in range(cap):
        points[n, 0] = zr
        points[n, 1] = zi

        zr_sq = zr * zr
        zi_sq = zi * zi
        zi = 2.0 * zr * zi + seed_i
        zr = zr_sq - zi_sq + seed_r

        if zr * zr + zi * zi > 4.0:
            return n

    return -1


@jit(nopython=True, cache=True)
def project_kernel(pr, pi, origin_r, origin_i, zoom, width, height):
    """Map a point to continuous pixel coordinates."""
    size = min(width, height)
    aspect = width / height
    x = ((pr - origin_r) * zoom + 0.5 * aspect) * size
    y = ((pi - origin_i) * zoom + 0.5) * size
    return x, y


@jit(nopython=True, cache=True)
def count_in_frame_kernel(points, start, length, origin_r, origin_i, zoom, width, height):
    """Count orbit points in [start, length) that project inside the frame."""
    hits = 0
    for n in range(start, length):
        x, y = project_kernel(points[n, 0], points[n, 1], origin_r, origin_i, zoom, width, height)
        if x >= 0.0 and x < width and y >= 0.0 and y < height:
            hits += 1
    return hits


@jit(nopython=True, cache=True)
def accumulate_kernel(counts, channel, points, start, length, origin_r, origin_i, zoom):
    """
    Increment counts[y, x, channel] for every in-frame orbit point.

    Args:
        counts: int64 array of shape (height, width, channels)
        channel: Channel plane to write
        points: Orbit buffer
        start, length: Range of orbit indices to plot
        origin_r, origin_i, zoom: Viewport

    Returns:
        Number of points written
    """
    height = counts.shape[0]
    width = counts.shape[1]
    hits = 0

    for n in range(start, length):
        x, y = project_kernel(points[n, 0], points[n, 1], origin_r, origin_i, zoom, width, height)
        if x >= 0.0 and x < width and y >= 0.0 and y < height:
            counts[int(y), int(x), channel] += 1
            hits += 1

    return hits


@jit(nopython=True, cache=True)
def nearest_point_kernel(points, length, target_r, target_i):
    """Smallest squared distance from any of the first ``length`` points to the target."""
    best = math.inf
    for n in range(length):
        dr = points[n, 0] - target_r
        di = points[n, 1] - target_i
        dist = dr * dr + di * di
        if dist < best:
            best = dist
    return best


def warm_up_kernels():
    """Compile all kernels on a tiny problem so the first batch is not skewed."""
    points = np.zeros((4, 2), dtype=np.float64)
    counts = np.zeros((2, 2, 1), dtype=np.int64)

    length = orbit_kernel(1.0, 1.0, 4, points) + 1
    count_in_frame_kernel(points, 0, length, 0.0, 0.0, 1.0, 2, 2)
    accumulate_kernel(counts, 0, points, 0, length, 0.0, 0.0, 1.0)
    nearest_point_kernel(points, length, 0.0, 0.0)

    logger.debug(f"Numba {numba.__version__} kernels compiled")
