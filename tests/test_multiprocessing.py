import threading

import numpy as np

from buddhabrot.acceleration.multiprocessing import aggregate, spawn_workers
from buddhabrot.api import BuddhabrotRenderer, recolor


def test_workers_feed_the_aggregator(small_config):
    config = small_config.replace(n_threads=2, max_batches=4, seed=1)

    with spawn_workers(config) as receiver:
        histogram = aggregate(receiver, config)
    assert not receiver.alive

    assert histogram.counts.shape == (config.height, config.width, config.channels)
    assert histogram.total() > 0


def test_close_before_consuming(small_config):
    receiver = spawn_workers(small_config.replace(n_threads=2))
    receiver.close()
    assert receiver.closed
    assert not receiver.alive
    assert receiver.get(timeout=0.1) is None


def test_renderer_writes_image_and_raw(tmp_path, small_config):
    output = tmp_path / "buddha.png"
    config = small_config.replace(max_batches=3, output_path=str(output), save_raw=True)

    renderer = BuddhabrotRenderer(config)
    image = renderer.render()

    assert image.shape == (config.window_height, config.window_width, 3)
    assert renderer.aggregator.batches == 3
    assert output.exists()
    assert output.with_suffix(".npz").exists()

    recolored = recolor(output.with_suffix(".npz"), tmp_path / "again.png")
    assert recolored.exists()


def test_renderer_stops_on_request(small_config):
    renderer = BuddhabrotRenderer(small_config)
    image = renderer.render(should_stop=lambda: True)
    assert renderer.aggregator.batches == 0
    assert not np.asarray(image).any()


def test_repeated_shutdown_with_large_batches(small_config):
    # Batches far larger than a pipe buffer and a one-slot queue keep workers
    # mid-write when the receiver closes.
    config = small_config.replace(n_threads=4, width=256, height=256, window_width=256,
                                  window_height=256, batch_steps=1, max_batches=2,
                                  queue_size=1)
    finished = []

    def cycle():
        for _ in range(10):
            with spawn_workers(config) as receiver:
                aggregate(receiver, config)
            assert not receiver.alive
            finished.append(receiver)

    runner = threading.Thread(target=cycle, daemon=True)
    runner.start()
    runner.join(timeout=120)

    assert not runner.is_alive(), f"close() hung after {len(finished)} clean shutdowns"
    assert len(finished) == 10
