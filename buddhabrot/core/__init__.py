"""Core sampling components: complex values, orbits, histograms and the Metropolis sampler."""
