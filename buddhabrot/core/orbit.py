"""
Orbit evaluation for the quadratic map z <- z^2 + c.

The orbit buffer is owned by the caller and reused across evaluations so the
sampling loop never allocates per step.
"""

import logging
from typing import Optional

import numpy as np

from .complex import Complex
from ..acceleration.numba_backend import orbit_kernel

logger = logging.getLogger(__name__)


class Orbit:
    """Reusable buffer of orbit points."""

    def __init__(self, capacity: int = 0):
        """
        Initialize an empty orbit.

        Args:
            capacity: Initial number of points the buffer can hold
        """
        self.points = np.zeros((max(1, capacity), 2), dtype=np.float64)
        self.length = 0

    @property
    def capacity(self) -> int:
        return self.points.shape[0]

    def reserve(self, capacity: int) -> None:
        """Grow the buffer so it can hold ``capacity`` points."""
        if capacity > self.capacity:
            self.points = np.zeros((capacity, 2), dtype=np.float64)

    def clear(self) -> None:
        self.length = 0

    def __len__(self) -> int:
        return self.length

    def __getitem__(self, index: int) -> Complex:
        if not -self.length <= index < self.length:
            raise IndexError("orbit index out of range")
        if index < 0:
            index += self.length
        return Complex(float(self.points[index, 0]), float(self.points[index, 1]))

    def __iter__(self):
        for n in range(self.length):
            yield Complex(float(self.points[n, 0]), float(self.points[n, 1]))

    def as_array(self) -> np.ndarray:
        """Copy of the current points as a complex128 array."""
        view = self.points[:self.length]
        return view[:, 0] + 1j * view[:, 1]


def evaluate(seed: Complex, cap: int, out_orbit: Orbit) -> Optional[int]:
    """
    Iterate the map from ``seed`` and record the orbit.

    Args:
        seed: The parameter c; iteration starts at z = c
        cap: Maximum number of steps
        out_orbit: Buffer that receives the orbit

    Returns:
        The step index at which the orbit escaped, or None if it stayed
        bounded for ``cap`` steps.
    """
    out_orbit.clear()
    out_orbit.reserve(cap)

    index = orbit_kernel(seed.r, seed.i, cap, out_orbit.points)
    if index < 0:
        out_orbit.length = cap
        return None

    out_orbit.length = int(index) + 1
    return int(index)
