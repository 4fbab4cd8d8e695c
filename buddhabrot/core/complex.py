"""
Complex value type used by the sampler.

A small immutable (r, i) pair with the handful of operators the orbit
evaluator, mutation kernel and histogram projection need. Hot loops run in
Numba kernels on raw floats; this type is the Python-level currency.
"""

import math
from dataclasses import dataclass
from typing import Union

import numpy as np

# Half-width of the square the independence sampler draws seeds from.
SAMPLE_EXTENT = 3.5

# Squared bailout radius (|z| > 2).
ESCAPE_RADIUS_SQ = 4.0


@dataclass(frozen=True)
class Complex:
    """Complex number with real part ``r`` and imaginary part ``i``."""
    r: float = 0.0
    i: float = 0.0

    @classmethod
    def from_complex(cls, value: complex) -> 'Complex':
        """Create from a built-in ``complex``."""
        return cls(float(value.real), float(value.imag))

    @classmethod
    def polar(cls, radius: float, angle: float) -> 'Complex':
        """Create from polar coordinates."""
        return cls(radius * math.cos(angle), radius * math.sin(angle))

    @classmethod
    def random(cls, rng: np.random.Generator, extent: float = SAMPLE_EXTENT) -> 'Complex':
        """
        Draw a point uniformly from the square [-extent, extent]^2.

        Args:
            rng: NumPy random generator
            extent: Half-width of the sampling square

        Returns:
            Random Complex
        """
        return cls(rng.uniform(-extent, extent), rng.uniform(-extent, extent))

    def __add__(self, other: 'Complex') -> 'Complex':
        return Complex(self.r + other.r, self.i + other.i)

    def __sub__(self, other: 'Complex') -> 'Complex':
        return Complex(self.r - other.r, self.i - other.i)

    def __mul__(self, other: Union['Complex', float, int]) -> 'Complex':
        if isinstance(other, Complex):
            return Complex(self.r * other.r - self.i * other.i,
                           self.r * other.i + self.i * other.r)
        if isinstance(other, (int, float)):
            return Complex(self.r * other, self.i * other)
        return NotImplemented

    def __rmul__(self, other: Union[float, int]) -> 'Complex':
        if isinstance(other, (int, float)):
            return Complex(self.r * other, self.i * other)
        return NotImplemented

    def __complex__(self) -> complex:
        return complex(self.r, self.i)

    def norm_sqr(self) -> float:
        """Squared magnitude."""
        return self.r * self.r + self.i * self.i

    def escaped(self) -> bool:
        """True iff the point lies strictly outside the bailout radius."""
        return self.norm_sqr() > ESCAPE_RADIUS_SQ
