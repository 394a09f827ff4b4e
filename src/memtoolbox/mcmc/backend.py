"""
MCMC Backend - Main Entry Point.

This module provides the main mcmc() function: Markov chain Monte Carlo with
tuned proposals and automatic convergence detection (Gelman & Rubin, 1992).

Chains run in rounds. After every burn round each chain learns its proposal
covariance from its own trace, and R-hat is checked on the traces just
produced. Once converged, one final round per chain is collected with the
tuned (now frozen) covariances and returned as the posterior sample.

To use it as a plain MCMC sampler without convergence detection, pass
{'convergence_threshold': float('inf')}: sampling then stops after the
second burn round.

The implementation is split across several modules:

- types: Data structures (ChainState, ChainTrace, PosteriorSample)
- config: Configuration and initialization
- sampling: Proposal and Metropolis round functions
- diagnostics: Convergence diagnostics
"""

import time
from dataclasses import replace
from typing import Any, Dict, Mapping, Optional, Tuple, Union

import jax
import jax.numpy as jnp
import numpy as np

from ..error_handling import (
    ConvergenceError,
    NumericalError,
    diagnose_sampler_issues,
    print_diagnostics,
)
from ..model import Model, ensure_all_model_methods
from ..settings import (
    COV_KEEP_WEIGHT,
    COV_LEARN_WEIGHT,
    LOW_ACCEPTANCE,
    LOW_ACCEPTANCE_SHRINK,
)
from .config import configure_mcmc_system, initialize_chains
from .diagnostics import convergence_check, log_acceptance_summary, log_rhat_summary
from .sampling import check_round_output, make_round_kernel
from .types import ChainState, ChainTrace, PosteriorSample

import logging
logger = logging.getLogger('memtoolbox')

__all__ = [
    'mcmc',
    'run_round',
    'tune_proposals',
    'sample_covariance',
]


def sample_covariance(vals: jnp.ndarray) -> jnp.ndarray:
    """Sample covariance (ddof=1) of a (n_steps, n_params) trace, always 2-D."""
    centered = vals - jnp.mean(vals, axis=0)
    return centered.T @ centered / (vals.shape[0] - 1)


@jax.jit
def tune_proposals(states: ChainState, trace: ChainTrace) -> ChainState:
    """
    Learn each chain's proposal covariance from its latest round.

    burn_covariance <- 0.75 * burn_covariance + 0.25 * cov(trace), then
    divided by 3 for chains whose acceptance rate fell below 0.15.
    """
    learned = jax.vmap(sample_covariance)(trace.vals)
    covariance = COV_KEEP_WEIGHT * states.burn_covariance + COV_LEARN_WEIGHT * learned

    # Increase acceptance rate
    shrink = jnp.where(trace.acceptance < LOW_ACCEPTANCE, LOW_ACCEPTANCE_SHRINK, 1.0)
    covariance = covariance / shrink[:, None, None]
    return replace(states, burn_covariance=covariance)


def run_round(kernel, states: ChainState) -> Tuple[ChainTrace, ChainState]:
    """
    Run one round of every chain and check its output.

    All chains execute inside a single vmapped kernel call; returning from
    it is the barrier between rounds.

    Raises:
        NumericalError: If a proposal covariance is not positive definite or
            a trace contains non-finite parameter values
        BoundsError: If some step of some chain found no in-bounds proposal
    """
    trace, states = kernel(states)
    check_round_output(trace)
    return trace, states


def _check_covariance(states: ChainState) -> None:
    covariance = np.asarray(jax.device_get(states.burn_covariance))
    if not np.all(np.isfinite(covariance)):
        bad = np.flatnonzero(~np.all(np.isfinite(covariance), axis=(1, 2)))
        raise NumericalError(f"Proposal covariance of chain(s) {bad.tolist()} is not finite")


def mcmc(
    data: Any,
    model: Union[Mapping[str, Any], Model],
    mcmc_config: Optional[Dict[str, Any]] = None,
) -> PosteriorSample:
    """
    Markov chain Monte Carlo with tuned proposals and convergence detection.

    Args:
        data: Data pytree passed as the first argument of the model's logpdf
        model: Partial model dict or completed Model; needs >= 2 start rows
        mcmc_config: Optional configuration dict. Keys:
            verbosity: 0 print nothing, 1 phases and convergence,
                2 adds per-parameter R-hat each round, 3 adds per-chain
                acceptance rates (default 1)
            convergence_threshold: R-hat every parameter must fall below
                (default 1.2)
            samples_per_chain: Samples collected per chain after
                convergence (default 5000)
            burn_round_size: Steps per chain in each tuning round
                (default 2000)
            max_rounds: Burn rounds allowed before giving up; None loops
                until convergence (default 200)
            max_proposal_tries: In-bounds redraws allowed per step
                (default 1000)
            rng_seed: Seed for all chains (default 42)
            use_double: Run in float64 (default True)

    Returns:
        PosteriorSample with num_chains * samples_per_chain rows

    Raises:
        ConfigurationError: Fewer than 2 chains, no density, invalid config
        BoundsError: No in-bounds proposal within the retry limit
        NumericalError: Non-finite covariance or trace
        ConvergenceError: No convergence within max_rounds burn rounds
    """
    model = ensure_all_model_methods(model)
    user_config, runtime_ctx = configure_mcmc_system(mcmc_config, data, model)

    verbosity = user_config['verbosity']
    threshold = user_config['convergence_threshold']
    burn_round_size = user_config['burn_round_size']
    max_rounds = user_config['max_rounds']
    num_chains = user_config['num_chains']

    states = initialize_chains(model, user_config, runtime_ctx)
    kernel = make_round_kernel(
        runtime_ctx['log_post_fn'],
        runtime_ctx['lower_bound'],
        runtime_ctx['upper_bound'],
        user_config['max_proposal_tries'],
    )

    if verbosity >= 1:
        logger.info(f"   Running {num_chains} chains...")

    start_time = time.perf_counter()

    # Run chains until convergence detected
    converged = False
    count = 0
    rhat = None
    while not converged:
        trace, states = run_round(kernel, states)
        count += 1

        # The first round only moves chains away from their starting points
        if count > 1:
            converged, rhat = convergence_check(trace, threshold)
            if verbosity >= 2:
                log_rhat_summary(rhat, model.param_names)

        if verbosity >= 3:
            log_acceptance_summary(jax.device_get(trace.acceptance))

        # Learn about covariance
        states = tune_proposals(states, trace)
        _check_covariance(states)

        if not converged:
            if verbosity >= 1:
                logger.info(f"   ... not yet converged ({count * burn_round_size})")
            if max_rounds is not None and count >= max_rounds:
                raise ConvergenceError(
                    f"Chains did not converge after {count} rounds "
                    f"({count * burn_round_size} samples per chain). "
                    f"Last R-hat: {rhat}"
                )

    samples_per_chain = user_config['samples_per_chain']
    if verbosity >= 1:
        logger.info(f"   ... chains converged after {count * burn_round_size} samples!")
        logger.info(f"   ... collecting {samples_per_chain} samples from converged distribution")

    # Collect samples from converged chains; covariances stay fixed
    states = replace(states, sample_budget=int(samples_per_chain))
    trace, states = run_round(kernel, states)

    if verbosity >= 3:
        log_acceptance_summary(jax.device_get(trace.acceptance))

    diagnostics = {
        'rhat': rhat,
        'burn_rounds': count,
        'burn_samples_per_chain': count * burn_round_size,
        'acceptance': np.asarray(jax.device_get(trace.acceptance)),
        'burn_covariance': np.asarray(jax.device_get(states.burn_covariance)),
        'wall_time': time.perf_counter() - start_time,
    }

    sample = PosteriorSample.from_trace(trace, model.param_names, diagnostics)
    diagnostics = diagnose_sampler_issues(sample, diagnostics)
    if verbosity >= 1 or diagnostics['issues']:
        print_diagnostics(diagnostics)

    return replace(sample, diagnostics=diagnostics)
