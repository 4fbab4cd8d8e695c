"""
Command-line interface for Buddhabrot rendering.

This module exposes the sampling pipeline as a ``buddhabrot`` command with
subcommands to render from a configuration file and to re-tone-map a saved
raw histogram.
"""

import json
import logging
import sys
import time
from typing import Optional

import click
import numba

from .. import __version__
from ..api import BuddhabrotRenderer, recolor as recolor_raw
from ..core.complex import Complex
from ..io.config import load_config

logger = logging.getLogger(__name__)


def _parse_origin(value: Optional[str]) -> Optional[Complex]:
    if value is None:
        return None
    try:
        parts = [float(x.strip()) for x in value.split(',')]
    except ValueError:
        raise click.BadParameter("Use 'real,imag'")
    if len(parts) != 2:
        raise click.BadParameter("Origin must have exactly 2 coordinates")
    return Complex(parts[0], parts[1])


def _fail(ctx, error: Exception):
    click.echo(f"Error: {error}", err=True)
    if ctx.obj.get('verbose'):
        import traceback
        traceback.print_exc()
    sys.exit(1)


@click.group(invoke_without_command=True)
@click.option('--version', is_flag=True, help='Show version information')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--quiet', '-q', is_flag=True, help='Suppress most output')
@click.pass_context
def main(ctx, version, verbose, quiet):
    """
    Buddhabrot - Metropolis-sampled Buddhabrot renderer.

    Samples orbits of z -> z^2 + c on several worker processes and
    accumulates them into a per-channel histogram that is tone mapped to RGB.
    """
    if quiet:
        logging.basicConfig(level=logging.ERROR)
    elif verbose:
        logging.basicConfig(level=logging.DEBUG,
                            format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    else:
        logging.basicConfig(level=logging.INFO,
                            format='%(levelname)s: %(message)s')

    if version:
        click.echo(f"buddhabrot v{__version__}")
        click.echo(f"Python: {sys.version}")
        click.echo(f"Numba: {numba.__version__}")
        if ctx.invoked_subcommand is None:
            sys.exit(0)

    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose


@main.command()
@click.argument('config_file', type=click.Path(exists=True, dir_okay=False), required=False)
@click.option('--output', '-o', type=click.Path(), help='Output image path (overrides fname)')
@click.option('--width', '-w', type=int, help='Histogram width')
@click.option('--height', '-h', type=int, help='Histogram height')
@click.option('--zoom', type=float, help='Viewport zoom')
@click.option('--origin', type=str, help='Viewport center "real,imag"')
@click.option('--threads', type=int, help='Number of worker processes')
@click.option('--max-batches', type=int, help='Stop after this many batches')
@click.option('--batch-steps', type=int, help='Sampling rounds per batch')
@click.option('--seed', type=int, help='Random seed for reproducible runs')
@click.option('--no-metropolis', is_flag=True, help='Use plain independent sampling')
@click.option('--save-raw', is_flag=True, help='Also write the raw histogram (.npz)')
@click.option('--print-config', is_flag=True, help='Print the effective configuration and exit')
@click.pass_context
def render(ctx, config_file, output, width, height, zoom, origin, threads, max_batches,
           batch_steps, seed, no_metropolis, save_raw, print_config):
    """
    Sample and render a Buddhabrot image.

    CONFIG_FILE: Optional TOML or JSON configuration file
    """
    try:
        config = load_config(config_file)

        overrides = {
            'output_path': output,
            'width': width,
            'height': height,
            'zoom': zoom,
            'origin': _parse_origin(origin),
            'n_threads': threads,
            'max_batches': max_batches,
            'batch_steps': batch_steps,
            'seed': seed,
        }
        overrides = {k: v for k, v in overrides.items() if v is not None}
        if no_metropolis:
            overrides['use_metropolis'] = False
        if save_raw:
            overrides['save_raw'] = True

        config = config.replace(**overrides)
        config.validate()

        if print_config:
            click.echo(json.dumps(config.to_dict(), indent=2))
            return

        renderer = BuddhabrotRenderer(config)

        def progress_callback(batches, histogram):
            if ctx.obj.get('verbose'):
                click.echo(f"Batches: {batches}")

        click.echo(f"Sampling {config.width}x{config.height} on {config.n_threads} workers...")
        start_time = time.time()

        renderer.render(progress_callback)

        click.echo(f"Render complete: {renderer.aggregator.batches} batches in "
                   f"{time.time() - start_time:.2f}s")
        if config.output_path:
            click.echo(f"Saved: {config.output_path}")
        else:
            click.echo("No output path configured, image not saved")

    except click.BadParameter:
        raise
    except Exception as e:
        _fail(ctx, e)


@main.command()
@click.argument('raw_file', type=click.Path(exists=True, dir_okay=False))
@click.argument('output', type=click.Path())
@click.option('--window-width', type=int, help='Downsample target width')
@click.option('--window-height', type=int, help='Downsample target height')
@click.pass_context
def recolor(ctx, raw_file, output, window_width, window_height):
    """
    Tone map a saved raw histogram into an image without resampling.

    RAW_FILE: Raw histogram dump (.npz)
    OUTPUT: Output image path
    """
    try:
        path = recolor_raw(raw_file, output, window_width, window_height)
        click.echo(f"Saved: {path}")
    except Exception as e:
        _fail(ctx, e)


if __name__ == '__main__':
    main()
