"""
Pytest configuration and shared fixtures for memtoolbox tests.
"""

import memtoolbox  # noqa: F401  (sets JAX environment before jax is imported)

import jax
import jax.numpy as jnp
import jax.scipy.stats as jstats
import numpy as np
import pytest

from memtoolbox.registry import _REGISTRY

jax.config.update("jax_enable_x64", True)


@pytest.fixture
def rng_seed():
    """Default RNG seed for reproducible tests."""
    return 42


@pytest.fixture
def fast_config():
    """Small MCMC configuration for quick driver tests."""
    return {
        'verbosity': 0,
        'burn_round_size': 300,
        'samples_per_chain': 1000,
        'rng_seed': 42,
    }


def gaussian_known_variance_model(sigma=1.0, lower=-10.0, upper=10.0,
                                  start=((-5.0,), (0.0,), (5.0,)), move_std=0.1):
    """
    1-D Gaussian likelihood with known variance, uniform prior on [lower, upper].

    Analytical posterior (bounds far from the data):
        mu | y ~ N(mean(y), sigma^2 / n)
    """
    def logpdf(data, mu):
        return jstats.norm.logpdf(data['y'], mu, sigma)

    return {
        'name': 'Gaussian, known variance',
        'param_names': ['mu'],
        'lower_bound': [lower],
        'upper_bound': [upper],
        'move_std': [move_std],
        'start': [list(s) for s in start],
        'logpdf': logpdf,
    }


def flat_model(lower=-10.0, upper=10.0, start=((-5.0,), (5.0,)), move_std=1.0):
    """Constant likelihood: every in-bounds point has the same density."""
    def logpdf(data, mu):
        return jnp.zeros(())

    return {
        'param_names': ['mu'],
        'lower_bound': [lower],
        'upper_bound': [upper],
        'move_std': [move_std],
        'start': [list(s) for s in start],
        'logpdf': logpdf,
    }


def degenerate_model():
    """Flat model whose first parameter is pinned: lower == upper == 0."""
    def logpdf(data, a, b):
        return jnp.zeros(())

    return {
        'param_names': ['a', 'b'],
        'lower_bound': [0.0, -1.0],
        'upper_bound': [0.0, 1.0],
        'move_std': [1.0, 1.0],
        'start': [[0.0, -0.5], [0.0, 0.5]],
        'logpdf': logpdf,
    }


@pytest.fixture
def gaussian_model():
    return gaussian_known_variance_model()


@pytest.fixture
def gaussian_data():
    """1000 synthetic observations from N(0.7, 1)."""
    rng = np.random.default_rng(123)
    return {'y': rng.normal(0.7, 1.0, 1000)}


@pytest.fixture
def preserve_registry():
    """
    Fixture to snapshot the model registry and restore it after the test.

    Usage:
        def test_something(preserve_registry):
            clear_registry()  # safe, restored afterwards
    """
    saved = dict(_REGISTRY)
    yield
    _REGISTRY.clear()
    _REGISTRY.update(saved)
