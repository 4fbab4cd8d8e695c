"""
Tone mapping of raw Buddhabrot counts into 8-bit RGB.

Hit counts are heavy-tailed: a handful of cells near the attractors collect
orders of magnitude more hits than the faint outer orbits. Each channel is
normalized by its own maximum and pushed through a gain curve that lifts the
low end and compresses the top.
"""

import logging
import math
from typing import Optional, Tuple

import numpy as np

from ..core.histogram import Histogram

logger = logging.getLogger(__name__)

# Gain curve parameter.
GAIN = 0.2

OUTPUT_CHANNELS = 3


def bias(x: np.ndarray, v: float) -> np.ndarray:
    """Schlick bias curve: x^(log v / log 0.5), zero when v <= 0."""
    if v <= 0:
        return np.zeros_like(np.asarray(x, dtype=np.float64))
    return np.power(x, math.log(v) / math.log(0.5))


def gain(x: np.ndarray, v: float = GAIN) -> np.ndarray:
    """
    Gain curve on normalized counts.

    Args:
        x: Values in [0, 1]
        v: Gain parameter

    Returns:
        Values in [0, 2], monotonically non-decreasing in x
    """
    x = np.asarray(x, dtype=np.float64)
    low = bias(np.minimum(2.0 * x, 1.0), 1.0 - v)
    high = 2.0 - bias(np.clip(2.0 - 2.0 * x, 0.0, 1.0), 1.0 - v)
    return np.where(x < 0.5, low, high)


def sampling_strides(width: int, height: int,
                     output_width: Optional[int] = None,
                     output_height: Optional[int] = None) -> Tuple[int, int]:
    """Pixel skip per axis needed to fit the histogram into the output size."""
    stride_x = max(1, math.ceil(width / output_width)) if output_width else 1
    stride_y = max(1, math.ceil(height / output_height)) if output_height else 1
    return stride_x, stride_y


def channel_maxima(histogram: Histogram) -> np.ndarray:
    """Maximum count of every channel (zero for an empty channel)."""
    return histogram.counts.reshape(-1, histogram.channels).max(axis=0)


def color_map(histogram: Histogram, output_width: Optional[int] = None,
              output_height: Optional[int] = None) -> np.ndarray:
    """
    Convert cumulative counts into an 8-bit RGB image.

    Args:
        histogram: Histogram to render (not modified)
        output_width, output_height: Optional target size; the histogram is
            subsampled by a whole-pixel stride when it is larger

    Returns:
        uint8 array of shape (rows, cols, 3). Channel k of the histogram
        becomes color component k; missing components stay black.
    """
    if histogram.channels > OUTPUT_CHANNELS:
        raise ValueError(f"Cannot map {histogram.channels} channels to RGB")

    stride_x, stride_y = sampling_strides(histogram.width, histogram.height,
                                          output_width, output_height)
    counts = histogram.counts[::stride_y, ::stride_x, :]
    maxima = channel_maxima(histogram)

    rgb = np.zeros(counts.shape[:2] + (OUTPUT_CHANNELS,), dtype=np.uint8)
    for channel in range(histogram.channels):
        peak = maxima[channel]
        if peak == 0:
            continue

        normalized = counts[:, :, channel].astype(np.float64) / float(peak)
        values = gain(normalized) * 255.0
        rgb[:, :, channel] = np.clip(values, 0.0, 255.0).astype(np.uint8)

    return rgb
