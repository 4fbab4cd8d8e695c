"""
Image export and raw histogram persistence.

Rendered images are written through Pillow (PNG, TIFF or JPEG) with the run
parameters embedded as metadata. The cumulative histogram can be dumped to a
compressed NumPy archive and reloaded later to re-tone-map without
resampling.
"""

import json
import logging
from dataclasses import asdict, dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple, Union

import numpy as np
from PIL import Image, PngImagePlugin

from .. import __version__
from ..core.complex import Complex
from ..core.histogram import Histogram

logger = logging.getLogger(__name__)

RAW_SUFFIX = '.npz'


@dataclass
class RenderMetadata:
    """Metadata for Buddhabrot renders."""

    # Viewport
    origin: Tuple[float, float]
    zoom: float
    resolution: Tuple[int, int]  # histogram width, height

    # Sampling
    limits: List[int]
    use_metropolis: bool
    batches: int
    total_hits: int

    # Timing
    render_time_seconds: float = 0.0

    # Generation info
    timestamp: str = ""
    software_version: str = __version__

    def __post_init__(self):
        """Set default timestamp if not provided."""
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def to_dict(self) -> Dict[str, Any]:
        """Convert metadata to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RenderMetadata':
        """Create metadata from dictionary."""
        return cls(**data)

    def to_json(self, indent: int = 2) -> str:
        """Convert to JSON string."""
        return json.dumps(self.to_dict(), indent=indent)

    @classmethod
    def from_json(cls, json_str: str) -> 'RenderMetadata':
        """Create metadata from JSON string."""
        return cls.from_dict(json.loads(json_str))


class ImageExporter:
    """Image export with metadata support."""

    def __init__(self):
        """Initialize image exporter."""
        self.supported_formats = {
            '.png': self._save_png,
            '.tiff': self._save_tiff,
            '.tif': self._save_tiff,
            '.jpg': self._save_jpeg,
            '.jpeg': self._save_jpeg,
        }

    def save_image(self, image_array: np.ndarray, filepath: Union[str, Path],
                   metadata: Optional[RenderMetadata] = None, quality: int = 95) -> Path:
        """
        Save an RGB image array to file with metadata.

        Args:
            image_array: uint8 RGB array (height, width, 3)
            filepath: Output file path; the suffix selects the format
            metadata: Render metadata to embed
            quality: JPEG quality (1-100)

        Returns:
            The path written
        """
        filepath = Path(filepath)
        suffix = filepath.suffix.lower()

        if suffix not in self.supported_formats:
            supported = ', '.join(self.supported_formats.keys())
            raise ValueError(f"Unsupported format '{suffix}'. Supported: {supported}")

        if image_array.ndim != 3 or image_array.shape[2] != 3:
            raise ValueError(f"Expected RGB image array (H, W, 3), got {image_array.shape}")
        if image_array.dtype != np.uint8:
            image_array = np.clip(image_array, 0, 255).astype(np.uint8)

        pil_image = Image.fromarray(image_array)
        filepath.parent.mkdir(parents=True, exist_ok=True)
        self.supported_formats[suffix](pil_image, filepath, metadata, quality)

        logger.info(f"Saved image: {filepath} ({pil_image.size[0]}x{pil_image.size[1]})")
        return filepath

    def _save_png(self, pil_image: Image.Image, filepath: Path,
                  metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as PNG with metadata text chunks."""
        pnginfo = PngImagePlugin.PngInfo()

        if metadata:
            pnginfo.add_text("Title", "Buddhabrot")
            pnginfo.add_text("Software", f"buddhabrot v{metadata.software_version}")
            pnginfo.add_text("Creation Time", metadata.timestamp)
            pnginfo.add_text("BuddhabrotMetadata", metadata.to_json())

        pil_image.save(filepath, "PNG", pnginfo=pnginfo, compress_level=6)

    def _save_tiff(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as LZW-compressed TIFF."""
        save_kwargs = {'format': 'TIFF', 'compression': 'tiff_lzw'}
        if metadata:
            save_kwargs['description'] = metadata.to_json()
        pil_image.save(filepath, **save_kwargs)

    def _save_jpeg(self, pil_image: Image.Image, filepath: Path,
                   metadata: Optional[RenderMetadata], quality: int) -> None:
        """Save as JPEG; metadata goes to a companion JSON file."""
        pil_image.save(filepath, "JPEG", quality=quality, optimize=True)

        if metadata:
            json_path = filepath.with_suffix('.json')
            with open(json_path, 'w') as f:
                f.write(metadata.to_json())
            logger.info(f"Saved metadata: {json_path}")

    def extract_metadata_from_image(self, filepath: Union[str, Path]) -> Optional[RenderMetadata]:
        """Read metadata back from a PNG written by save_image."""
        with Image.open(filepath) as img:
            text = getattr(img, 'text', {}) or {}
            if "BuddhabrotMetadata" not in text:
                return None
            return RenderMetadata.from_json(text["BuddhabrotMetadata"])


def raw_path_for(image_path: Union[str, Path]) -> Path:
    """Path of the raw dump that accompanies an image."""
    return Path(image_path).with_suffix(RAW_SUFFIX)


def save_raw_histogram(histogram: Histogram, filepath: Union[str, Path]) -> Path:
    """
    Save the full histogram as a compressed archive.

    Args:
        histogram: Histogram to save
        filepath: Output path (.npz is appended if missing)

    Returns:
        The path written
    """
    filepath = Path(filepath)
    if filepath.suffix.lower() != RAW_SUFFIX:
        filepath = filepath.with_suffix(RAW_SUFFIX)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    np.savez_compressed(
        filepath,
        width=np.uint32(histogram.width),
        height=np.uint32(histogram.height),
        origin=np.array([histogram.origin.r, histogram.origin.i], dtype=np.float64),
        zoom=np.float64(histogram.zoom),
        counts=histogram.counts,
    )

    logger.info(f"Saved raw data: {filepath}")
    return filepath


def load_raw_histogram(filepath: Union[str, Path]) -> Histogram:
    """
    Load a histogram written by save_raw_histogram.

    Args:
        filepath: Input .npz path

    Returns:
        Restored Histogram
    """
    with np.load(Path(filepath)) as data:
        width = int(data['width'])
        height = int(data['height'])
        origin = Complex(float(data['origin'][0]), float(data['origin'][1]))
        counts = data['counts']

        if counts.shape[:2] != (height, width):
            raise ValueError(f"Raw dump is corrupt: counts {counts.shape} for {width}x{height}")

        histogram = Histogram(width, height, origin, float(data['zoom']), counts.shape[2])
        histogram.counts[...] = counts

    return histogram
