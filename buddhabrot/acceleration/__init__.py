"""Numba kernels and the multiprocessing batch pipeline."""
