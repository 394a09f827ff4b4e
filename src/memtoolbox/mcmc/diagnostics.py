"""
MCMC Diagnostics.

Convergence diagnostics for MCMC chains:
- compute_rhat: Gelman-Rubin potential scale reduction per parameter
- convergence_check: R-hat plus the global convergence decision
- is_converged: Boolean convergence test on per-chain traces
- log_rhat_summary: Log per-parameter R-hat values
- log_acceptance_summary: Log per-chain acceptance rates
"""

from typing import Sequence, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np

from ..error_handling import ConfigurationError
from .types import ChainTrace

import logging
logger = logging.getLogger('memtoolbox')


@jax.jit
def compute_rhat(history: jnp.ndarray) -> jnp.ndarray:
    """
    Gelman-Rubin R-hat (Gelman & Rubin, 1992).

    For each parameter, with C chains of N samples each:
        W  = mean over chains of the within-chain sample variance
        B  = N / (C - 1) * sum_c (chain_mean_c - global_mean)^2
        Sp = (N - 1) / N * W + B / N
        R  = sqrt(Sp / W)

    Zero within-chain variance gives NaN (0/0) when the chains also agree,
    and inf when they sit at different points.

    Args:
        history: Sample history array (n_samples, n_chains, n_params)

    Returns:
        rhat: (n_params,) array of R-hat values.
    """
    n_samples, n_chains, n_params = history.shape

    chain_means = jnp.mean(history, axis=0)           # (n_chains, n_params)
    global_means = jnp.mean(chain_means, axis=0)      # (n_params,)

    W = jnp.mean(jnp.var(history, axis=0, ddof=1), axis=0)
    B = (n_samples / (n_chains - 1)) * jnp.sum((chain_means - global_means) ** 2, axis=0)

    Sp = ((n_samples - 1) / n_samples) * W + B / n_samples
    return jnp.sqrt(Sp / W)


def _as_history(traces) -> jnp.ndarray:
    if isinstance(traces, ChainTrace):
        return traces.history()
    if isinstance(traces, (list, tuple)) and traces and isinstance(traces[0], ChainTrace):
        return jnp.stack([t.vals for t in traces], axis=1)
    return jnp.asarray(traces)


def convergence_check(
    traces: Union[ChainTrace, Sequence[ChainTrace], jnp.ndarray],
    threshold: float,
) -> Tuple[bool, np.ndarray]:
    """
    Compute R-hat and decide global convergence.

    Args:
        traces: Stacked ChainTrace, list of single-chain ChainTraces, or a
            history array (n_samples, n_chains, n_params)
        threshold: R-hat every parameter must fall below

    Returns:
        converged: True iff every R-hat is below threshold or undefined (NaN)
        rhat: (n_params,) numpy array

    Raises:
        ConfigurationError: With fewer than 2 chains or 2 samples per chain
    """
    history = _as_history(traces)
    if history.ndim != 3:
        raise ConfigurationError(
            f"Expected history of shape (n_samples, n_chains, n_params), got {history.shape}"
        )
    n_samples, n_chains, _ = history.shape
    if n_chains < 2:
        raise ConfigurationError(
            "Convergence detection requires at least 2 chains, got "
            f"{n_chains}. Please pass a model with multiple rows in 'start'."
        )
    if n_samples < 2:
        raise ConfigurationError(
            f"Convergence detection requires at least 2 samples per chain, got {n_samples}"
        )

    rhat = np.asarray(jax.device_get(compute_rhat(history)))
    # A zero-variance dimension cannot indicate non-convergence
    converged = bool(np.all((rhat < threshold) | np.isnan(rhat)))
    return converged, rhat


def is_converged(traces, threshold: float) -> bool:
    """True iff every parameter's R-hat is below threshold (or undefined)."""
    converged, _ = convergence_check(traces, threshold)
    return converged


def log_rhat_summary(rhat: np.ndarray, param_names: Sequence[str] = ()) -> None:
    """Log R-hat for every parameter on one line."""
    names = param_names or [f"p{i}" for i in range(len(rhat))]
    logger.info("   R-hat: " + " ".join(f"{n}={r:0.3f}" for n, r in zip(names, rhat)))
    n_nan = int(np.sum(np.isnan(rhat)))
    if n_nan > 0:
        logger.info(f"   ({n_nan} parameter(s) with zero within-chain variance)")


def log_acceptance_summary(acceptance_rates: np.ndarray) -> None:
    """Log the acceptance rate of every chain."""
    for c, rate in enumerate(np.asarray(acceptance_rates)):
        logger.info(f"    MCMC chain {c} acceptance rate: {rate:0.2f}")
