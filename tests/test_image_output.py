import numpy as np
import pytest

from buddhabrot.core.complex import Complex
from buddhabrot.core.histogram import Histogram
from buddhabrot.rendering.image_output import (ImageExporter, RenderMetadata, load_raw_histogram,
                                               raw_path_for, save_raw_histogram)


@pytest.fixture
def image():
    rng = np.random.default_rng(0)
    return rng.integers(0, 256, size=(12, 16, 3), dtype=np.uint8)


@pytest.fixture
def metadata():
    return RenderMetadata(origin=(-0.4, 0.0), zoom=0.35, resolution=(16, 12),
                          limits=[200, 50, 20], use_metropolis=True, batches=3,
                          total_hits=1234)


def test_png_roundtrip_with_metadata(tmp_path, image, metadata):
    exporter = ImageExporter()
    path = exporter.save_image(image, tmp_path / "out.png", metadata)
    assert path.exists()

    restored = exporter.extract_metadata_from_image(path)
    assert restored.batches == 3
    assert restored.total_hits == 1234
    assert restored.limits == [200, 50, 20]


def test_png_without_metadata(tmp_path, image):
    exporter = ImageExporter()
    path = exporter.save_image(image, tmp_path / "plain.png")
    assert exporter.extract_metadata_from_image(path) is None


def test_jpeg_writes_companion_json(tmp_path, image, metadata):
    path = ImageExporter().save_image(image, tmp_path / "out.jpg", metadata)
    assert path.exists()
    assert (tmp_path / "out.json").exists()


def test_unsupported_format(tmp_path, image):
    with pytest.raises(ValueError):
        ImageExporter().save_image(image, tmp_path / "out.bmp")


def test_raw_histogram_roundtrip(tmp_path):
    histogram = Histogram(5, 4, Complex(0.25, -0.5), 1.5, channels=2)
    histogram.counts[1, 2, 1] = 17
    histogram.counts[3, 4, 0] = 2

    path = save_raw_histogram(histogram, tmp_path / "dump")
    assert path.suffix == ".npz"

    restored = load_raw_histogram(path)
    assert restored.same_geometry(histogram)
    assert np.array_equal(restored.counts, histogram.counts)


def test_raw_path_for():
    assert raw_path_for("renders/buddha.png").name == "buddha.npz"
