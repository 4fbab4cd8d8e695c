"""
Run configuration and configuration file loading.

A run is described by an immutable RenderConfig. Configuration files may be
TOML or JSON and use the flat key names below; anything not given falls back
to the defaults.
"""

import json
import logging
import os
import tomllib
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

from ..core.complex import Complex

logger = logging.getLogger(__name__)


class ConfigError(ValueError):
    """Raised for invalid configuration values or unreadable config files."""


DEFAULT_LIMITS = (50000, 5000, 500)


def _default_threads() -> int:
    return os.cpu_count() or 1


@dataclass(frozen=True)
class RenderConfig:
    """Configuration for one Buddhabrot run."""

    # Sampling
    use_metropolis: bool = True
    limits: Tuple[int, ...] = DEFAULT_LIMITS  # red, green, blue
    warmup_count: int = 10  # chain slots per worker
    warmup_steps: int = 10000
    skip_seed_point: bool = True
    seed: Optional[int] = None

    # Canvas and viewport
    width: int = 512
    height: int = 512
    window_width: Optional[int] = 512
    window_height: Optional[int] = 512
    origin: Complex = field(default_factory=lambda: Complex(-0.4, 0.0))
    zoom: float = 0.35

    # Pipeline
    batch_steps: int = 5000
    n_threads: int = field(default_factory=_default_threads)
    max_batches: Optional[int] = None
    refresh_batches: int = 8
    queue_size: Optional[int] = None

    # Output
    output_path: Optional[str] = None
    save_raw: bool = False

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.width <= 0 or self.height <= 0:
            raise ConfigError("width and height must be positive")

        if self.window_width is not None and self.window_width <= 0:
            raise ConfigError("window_width must be positive")
        if self.window_height is not None and self.window_height <= 0:
            raise ConfigError("window_height must be positive")

        if not 1 <= len(self.limits) <= 3:
            raise ConfigError("limits must name between one and three channels")
        if any(limit <= 0 for limit in self.limits):
            raise ConfigError("channel iteration limits must be positive")

        if self.zoom <= 0:
            raise ConfigError("zoom must be positive")

        if self.batch_steps <= 0:
            raise ConfigError("batch_steps must be positive")
        if self.n_threads <= 0:
            raise ConfigError("n_threads must be positive")
        if self.warmup_count <= 0:
            raise ConfigError("warmup_count must be positive")
        if self.warmup_steps < 0:
            raise ConfigError("warmup_steps must be >= 0")
        if self.max_batches is not None and self.max_batches <= 0:
            raise ConfigError("max_batches must be positive")
        if self.refresh_batches <= 0:
            raise ConfigError("refresh_batches must be positive")
        if self.queue_size is not None and self.queue_size <= 0:
            raise ConfigError("queue_size must be positive")

    @property
    def channels(self) -> int:
        return len(self.limits)

    @property
    def hand_off_capacity(self) -> int:
        """Bound of the worker-to-aggregator queue."""
        return self.queue_size or 2 * self.n_threads

    def replace(self, **overrides) -> 'RenderConfig':
        """Copy with some fields replaced."""
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['origin'] = [self.origin.r, self.origin.i]
        data['limits'] = list(self.limits)
        return data


# Keys accepted in configuration files.
CONFIG_KEYS = (
    "use_metropolis",
    "red_limit",
    "green_limit",
    "blue_limit",
    "limits",
    "width",
    "height",
    "window_width",
    "window_height",
    "batch_steps",
    "n_threads",
    "warmup_count",
    "warmup_steps",
    "max_batches",
    "r",
    "i",
    "zoom",
    "fname",
    "save_raw",
    "skip_seed_point",
    "seed",
    "refresh_batches",
    "queue_size",
)

_CHANNEL_KEYS = ("red_limit", "green_limit", "blue_limit")


def load_config_file(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Read a TOML or JSON configuration file.

    Args:
        path: Path to a .toml or .json file

    Returns:
        The raw key/value table
    """
    path = Path(path)
    suffix = path.suffix.lower()

    try:
        if suffix == '.toml':
            with open(path, 'rb') as f:
                data = tomllib.load(f)
        elif suffix == '.json':
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        else:
            raise ConfigError(f"Unsupported config format '{suffix}'. Supported: .toml, .json")
    except (OSError, tomllib.TOMLDecodeError, json.JSONDecodeError) as e:
        raise ConfigError(f"Could not read config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError("Config must be a table of key/value pairs")

    logger.info(f"Loaded config: {path}")
    return data


def _typed(data: Dict[str, Any], key: str, kind, default):
    if key not in data or data[key] is None:
        return default
    value = data[key]
    if kind is bool:
        if not isinstance(value, bool):
            raise ConfigError(f"{key} must be true or false")
        return value
    try:
        return kind(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e


def config_from_dict(data: Dict[str, Any], base: Optional[RenderConfig] = None) -> RenderConfig:
    """
    Build a RenderConfig from a configuration table.

    Args:
        data: Key/value table, typically from load_config_file
        base: Config supplying defaults for missing keys

    Returns:
        Validated RenderConfig
    """
    base = base or RenderConfig()

    for key in data:
        if key not in CONFIG_KEYS:
            logger.warning(f"Unrecognized key `{key}` in config.")

    if "limits" in data:
        try:
            limits = tuple(int(limit) for limit in data["limits"])
        except (TypeError, ValueError) as e:
            raise ConfigError(f"Invalid value for limits: {data['limits']!r}") from e
    elif any(key in data for key in _CHANNEL_KEYS):
        fallback = tuple(base.limits) + DEFAULT_LIMITS[len(base.limits):]
        limits = tuple(
            _typed(data, key, int, fallback[n])
            for n, key in enumerate(_CHANNEL_KEYS)
        )
    else:
        limits = tuple(base.limits)

    origin = Complex(_typed(data, "r", float, base.origin.r),
                     _typed(data, "i", float, base.origin.i))

    config = RenderConfig(
        use_metropolis=_typed(data, "use_metropolis", bool, base.use_metropolis),
        limits=limits,
        warmup_count=_typed(data, "warmup_count", int, base.warmup_count),
        warmup_steps=_typed(data, "warmup_steps", int, base.warmup_steps),
        skip_seed_point=_typed(data, "skip_seed_point", bool, base.skip_seed_point),
        seed=_typed(data, "seed", int, base.seed),
        width=_typed(data, "width", int, base.width),
        height=_typed(data, "height", int, base.height),
        window_width=_typed(data, "window_width", int, base.window_width),
        window_height=_typed(data, "window_height", int, base.window_height),
        origin=origin,
        zoom=_typed(data, "zoom", float, base.zoom),
        batch_steps=_typed(data, "batch_steps", int, base.batch_steps),
        n_threads=_typed(data, "n_threads", int, base.n_threads),
        max_batches=_typed(data, "max_batches", int, base.max_batches),
        refresh_batches=_typed(data, "refresh_batches", int, base.refresh_batches),
        queue_size=_typed(data, "queue_size", int, base.queue_size),
        output_path=_typed(data, "fname", str, base.output_path),
        save_raw=_typed(data, "save_raw", bool, base.save_raw),
    )
    config.validate()
    return config


def load_config(path: Optional[Union[str, Path]] = None) -> RenderConfig:
    """Load a RenderConfig from a file, or return the defaults when no path is given."""
    if path is None:
        config = RenderConfig()
        config.validate()
        return config
    return config_from_dict(load_config_file(path))
