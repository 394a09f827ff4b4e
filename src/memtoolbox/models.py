"""
Model Library - Mixture Models for Continuous-Report Memory Data

Each factory returns a partial model dict (see memtoolbox.model). Only the
density is given; the log density, prior and sampling prior are filled in by
ensure_all_model_methods(). The data is a dict with an 'errors' array of
response errors in radians, in [-pi, pi].

Models:
    standard_mixture_model_with_bias: von Mises around a biased center mu,
        mixed with uniform guessing (mu, g, K)
    standard_mixture_model: the same with the center fixed at 0 (g, K)
"""

import jax.numpy as jnp
import jax.scipy.special
import numpy as np

from .registry import register_model


def vonmises_logpdf(x, mu, kappa):
    """
    Log density of the von Mises distribution on [-pi, pi].

    Uses the exponentially scaled Bessel function so large concentrations
    do not overflow: log I0(k) = log(i0e(k)) + k.
    """
    return (kappa * (jnp.cos(x - mu) - 1.0)
            - jnp.log(2 * jnp.pi)
            - jnp.log(jax.scipy.special.i0e(kappa)))


def vonmises_pdf(x, mu, kappa):
    return jnp.exp(vonmises_logpdf(x, mu, kappa))


def circular_uniform_pdf(x):
    """Uniform density on [-pi, pi]; zero outside."""
    return jnp.where(jnp.abs(x) <= jnp.pi, 1.0 / (2 * jnp.pi), 0.0)


# ============================================================================
# STANDARD MIXTURE MODEL WITH BIAS - (mu, g, K)
# ============================================================================

def _standard_mixture_with_bias_pdf(data, mu, g, K):
    errors = jnp.ravel(data['errors'])
    return (1 - g) * vonmises_pdf(errors, mu, K) + g * circular_uniform_pdf(errors)


def _standard_mixture_with_bias_generator(params, size, rng=None):
    """
    Draw response errors: a guess with probability g, else von Mises(mu, K).

    Args:
        params: (mu, g, K)
        size: Output shape
        rng: numpy Generator or seed
    """
    rng = np.random.default_rng(rng)
    mu, g, K = params
    n = int(np.prod(size))
    r = rng.uniform(-np.pi, np.pi, n)
    guesses = rng.uniform(size=n) < g
    r[~guesses] = rng.vonmises(mu, K, size=int(np.sum(~guesses)))
    return r.reshape(size)


def standard_mixture_model_with_bias():
    """Two-component mixture model with a bias term on the von Mises center."""
    return {
        'name': 'Standard mixture model with bias',
        'param_names': ['mu', 'g', 'K'],
        'lower_bound': [-np.pi, 0.0, 0.0],
        'upper_bound': [np.pi, 1.0, np.inf],
        'move_std': [0.01, 0.02, 0.1],
        'pdf': _standard_mixture_with_bias_pdf,
        'start': [[0.1, 0.2, 10.0],    # mu, g, K
                  [0.0, 0.4, 15.0],
                  [-0.1, 0.1, 20.0]],
        'generator': _standard_mixture_with_bias_generator,
    }


# ============================================================================
# STANDARD MIXTURE MODEL - (g, K)
# ============================================================================

def _standard_mixture_pdf(data, g, K):
    errors = jnp.ravel(data['errors'])
    return (1 - g) * vonmises_pdf(errors, 0.0, K) + g * circular_uniform_pdf(errors)


def _standard_mixture_generator(params, size, rng=None):
    g, K = params
    return _standard_mixture_with_bias_generator((0.0, g, K), size, rng)


def standard_mixture_model():
    """Two-component mixture of von Mises (centered at 0) and uniform guessing."""
    return {
        'name': 'Standard mixture model',
        'param_names': ['g', 'K'],
        'lower_bound': [0.0, 0.0],
        'upper_bound': [1.0, np.inf],
        'move_std': [0.02, 0.1],
        'pdf': _standard_mixture_pdf,
        'start': [[0.2, 10.0],    # g, K
                  [0.4, 15.0],
                  [0.1, 20.0]],
        'generator': _standard_mixture_generator,
    }


register_model('standard_mixture_with_bias', standard_mixture_model_with_bias)
register_model('standard_mixture', standard_mixture_model)
