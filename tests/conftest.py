import numpy as np
import pytest

from buddhabrot.core.complex import Complex
from buddhabrot.core.histogram import Histogram
from buddhabrot.io.config import RenderConfig


@pytest.fixture
def rng():
    return np.random.default_rng(1234)


@pytest.fixture
def small_config():
    """Tiny plain-sampling run that finishes in well under a second per batch."""
    return RenderConfig(
        use_metropolis=False,
        limits=(200, 50, 20),
        width=32,
        height=32,
        window_width=32,
        window_height=32,
        batch_steps=10,
        n_threads=1,
        warmup_count=4,
        warmup_steps=20,
        seed=42,
    )


@pytest.fixture
def metropolis_config(small_config):
    return small_config.replace(use_metropolis=True, warmup_count=2, skip_seed_point=False)


@pytest.fixture
def histogram():
    return Histogram(200, 200, Complex(0.0, 0.0), 0.125)
