"""
Buddhabrot rendering by Metropolis-Hastings orbit sampling.

Orbits of z <- z^2 + c are sampled by independent Markov chains that favor
seeds whose orbits pass through the viewport. Worker processes accumulate
batches of orbit points into per-channel histograms; a single aggregator sums
them and the tone mapper turns the counts into an 8-bit image.

Example usage:
    >>> from buddhabrot import BuddhabrotRenderer, RenderConfig
    >>> config = RenderConfig(width=1024, height=1024, max_batches=20, output_path="buddha.png")
    >>> image = BuddhabrotRenderer(config).render()
"""

__version__ = "1.0.0"

from buddhabrot.core.complex import Complex
from buddhabrot.core.histogram import Histogram
from buddhabrot.core.orbit import Orbit, evaluate
from buddhabrot.io.config import RenderConfig, ConfigError, load_config
from buddhabrot.rendering.coloring import color_map
from buddhabrot.acceleration.multiprocessing import spawn_workers, aggregate, Aggregator
from buddhabrot.api import BuddhabrotRenderer, recolor

__all__ = [
    "BuddhabrotRenderer",
    "RenderConfig",
    "ConfigError",
    "load_config",
    "Complex",
    "Histogram",
    "Orbit",
    "evaluate",
    "color_map",
    "spawn_workers",
    "aggregate",
    "Aggregator",
    "recolor",
]
