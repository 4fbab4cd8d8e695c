import numpy as np
import pytest

from buddhabrot.core.complex import Complex
from buddhabrot.core.histogram import Histogram
from buddhabrot.core.orbit import Orbit, evaluate


@pytest.mark.parametrize("width, height", [(200, 100), (100, 200), (64, 64), (101, 37)])
def test_origin_projects_to_frame_center(width, height):
    origin = Complex(-0.4, 0.3)
    histogram = Histogram(width, height, origin, 0.35)
    size = min(width, height)
    aspect = width / height
    assert histogram.project(origin) == (int(0.5 * aspect * size), int(0.5 * size))


def test_increment_in_frame(histogram):
    assert histogram.increment(1, Complex(1.0, 0.0))
    # x = (1 * 0.125 + 0.5) * 200, y = 0.5 * 200
    assert histogram.counts[100, 125, 1] == 1
    assert histogram.total() == 1


@pytest.mark.parametrize("point", [
    Complex(100.0, 0.0),
    Complex(0.0, -100.0),
    Complex(4.0, 0.0),  # lands exactly on x == width
    Complex(-4.02, 0.0),  # just left of the frame
])
def test_increment_outside_frame_leaves_histogram_untouched(histogram, point):
    assert not histogram.increment(0, point)
    assert not histogram.check(point)
    assert histogram.total() == 0


@pytest.mark.parametrize("channel", [-1, 3, 10])
def test_increment_rejects_invalid_channel(histogram, channel):
    assert not histogram.increment(channel, Complex(0.0, 0.0))
    assert histogram.total() == 0


def test_check_does_not_mutate(histogram):
    assert histogram.check(Complex(0.0, 0.0))
    assert histogram.total() == 0


def test_accumulate_orbit(histogram):
    orbit = Orbit()
    evaluate(Complex(1.0, 0.0), 100, orbit)  # points 1 and 2

    assert histogram.count_in_frame(orbit) == 2
    assert histogram.accumulate(2, orbit) == 2
    assert histogram.counts[100, 125, 2] == 1
    assert histogram.counts[100, 150, 2] == 1


def test_accumulate_skips_leading_points(histogram):
    orbit = Orbit()
    evaluate(Complex(1.0, 0.0), 100, orbit)

    assert histogram.count_in_frame(orbit, start=1) == 1
    assert histogram.accumulate(0, orbit, start=1) == 1
    assert histogram.counts[100, 125, 0] == 0
    assert histogram.counts[100, 150, 0] == 1


def test_accumulate_rejects_invalid_channel(histogram):
    orbit = Orbit()
    evaluate(Complex(1.0, 0.0), 100, orbit)
    assert histogram.accumulate(5, orbit) == 0
    assert histogram.total() == 0


def test_add_sums_counts(histogram):
    other = histogram.empty_like()
    histogram.increment(0, Complex(0.0, 0.0))
    other.increment(0, Complex(0.0, 0.0))
    other.increment(2, Complex(1.0, 0.0))

    histogram += other
    assert histogram.counts[100, 100, 0] == 2
    assert histogram.counts[100, 125, 2] == 1
    assert histogram.total() == 3


def test_add_rejects_geometry_mismatch(histogram):
    with pytest.raises(ValueError):
        histogram.add(Histogram(100, 200, Complex(0.0, 0.0), 0.125))
    with pytest.raises(ValueError):
        histogram.add(Histogram(200, 200, Complex(0.5, 0.0), 0.125))


def test_copy_is_independent(histogram):
    histogram.increment(0, Complex(0.0, 0.0))
    clone = histogram.copy()
    clone.increment(0, Complex(0.0, 0.0))
    assert histogram.total() == 1
    assert clone.total() == 2
    assert np.array_equal(histogram.empty_like().counts, np.zeros_like(histogram.counts))


def test_invalid_dimensions():
    with pytest.raises(ValueError):
        Histogram(0, 10, Complex(), 1.0)
    with pytest.raises(ValueError):
        Histogram(10, 10, Complex(), 0.0)
