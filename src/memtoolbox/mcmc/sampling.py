"""
MCMC Sampling Functions.

Core sampling functions for the adaptive Metropolis sampler:
- within_bounds: Check a parameter vector against the box constraints
- propose_in_bounds: Draw a truncated multivariate-normal proposal
- safe_log_posterior: Log posterior with non-finite values mapped to -inf
- chain_round: Run a fixed number of Metropolis steps for one chain
- make_round_kernel: Jit (and optionally vmap) chain_round for a model
- check_round_output: Raise on exhausted retries or non-finite output
- run_chain: Run one round for a single chain from Python

Proposal: x' = x + s * L z, z ~ N(0, I), L L^T = burn_covariance
where s = BIG_MOVE_FACTOR with probability PROB_BIG_MOVE, else 1.

The proposal is implicitly a multivariate normal renormalized to be truncated
by the edges of the legal parameter values: candidates falling outside the
bounds are redrawn before their density is ever evaluated. The mixture of
step sizes is symmetric, so the Hastings ratio is the posterior ratio alone.
"""

from dataclasses import replace
from functools import partial

import jax
import jax.numpy as jnp
import jax.random as random
import numpy as np

from ..error_handling import BoundsError, NumericalError
from ..model import bind_log_posterior, ensure_all_model_methods
from ..settings import PROB_BIG_MOVE, BIG_MOVE_FACTOR, COV_NUGGET
from .types import ChainState, ChainTrace


def within_bounds(params, lower, upper):
    """True iff every coordinate lies in [lower, upper]. NaN is out of bounds."""
    return jnp.all((params >= lower) & (params <= upper))


def propose_in_bounds(key, position, chol, lower, upper, max_tries):
    """
    Draw candidates until one lies inside the bounds.

    Args:
        key: JAX random key
        position: Current parameter values (n_params,)
        chol: Lower Cholesky factor of the proposal covariance
        lower, upper: Parameter bounds (n_params,)
        max_tries: Maximum number of candidates to draw

    Returns:
        candidate: Last candidate drawn (in bounds unless found is False)
        tries: Number of candidates drawn
        found: Whether the candidate is in bounds
    """
    def draw(key):
        key, normal_key, move_key = random.split(key, 3)
        movement = chol @ random.normal(normal_key, shape=position.shape, dtype=position.dtype)
        big_move = random.uniform(move_key, dtype=position.dtype) < PROB_BIG_MOVE
        step_scale = jnp.where(big_move, BIG_MOVE_FACTOR, 1.0)
        return key, position + step_scale * movement

    def keep_drawing(val):
        _, candidate, tries = val
        return jnp.logical_not(within_bounds(candidate, lower, upper)) & (tries < max_tries)

    def redraw(val):
        key, _, tries = val
        key, candidate = draw(key)
        return key, candidate, tries + 1

    key, candidate = draw(key)
    _, candidate, tries = jax.lax.while_loop(
        keep_drawing, redraw, (key, candidate, jnp.int32(1))
    )
    return candidate, tries, within_bounds(candidate, lower, upper)


def safe_log_posterior(log_post_fn, params, lower, upper):
    """Log posterior at params; NaN/Inf and out-of-bounds points give -inf."""
    lp = log_post_fn(params)
    lp = jnp.nan_to_num(lp, nan=-jnp.inf, posinf=-jnp.inf, neginf=-jnp.inf)
    return jnp.where(within_bounds(params, lower, upper), lp, -jnp.inf)


def chain_round(state: ChainState, log_post_fn, lower, upper, max_tries):
    """
    Run state.sample_budget Metropolis steps for one chain.

    Args:
        state: ChainState of a single chain
        log_post_fn: Function mapping a parameter vector to its log posterior
        lower, upper: Parameter bounds (n_params,)
        max_tries: In-bounds redraws allowed per step

    Returns:
        trace: ChainTrace of the round (post-step position of every step)
        state: Updated ChainState (position, log posterior, acceptance, key)
    """
    dtype = state.position.dtype
    n_params = state.position.shape[0]
    num_steps = state.sample_budget

    chol = jnp.linalg.cholesky(
        state.burn_covariance + COV_NUGGET * jnp.eye(n_params, dtype=dtype)
    )

    new_key, round_key = random.split(state.key)
    step_keys = random.split(round_key, num_steps)

    # Starting log posterior is recomputed every round
    current_lp = safe_log_posterior(log_post_fn, state.position, lower, upper)

    def step(carry, step_key):
        position, lp = carry
        proposal_key, accept_key = random.split(step_key)

        candidate, tries, found = propose_in_bounds(
            proposal_key, position, chol, lower, upper, max_tries
        )

        # Only in-bounds points are ever scored; an exhausted search scores
        # the current position and is rejected below
        scored = jnp.where(found, candidate, position)
        candidate_lp = jnp.where(
            found, safe_log_posterior(log_post_fn, scored, lower, upper), -jnp.inf
        )

        # log(u) < lp' - lp  <=>  u < exp(lp' - lp), without overflow.
        # -inf candidates are never accepted; NaN ratios (both -inf) reject.
        log_u = jnp.log(random.uniform(accept_key, dtype=dtype))
        accept = log_u < candidate_lp - lp

        next_position = jnp.where(accept, candidate, position)
        next_lp = jnp.where(accept, candidate_lp, lp)
        return (next_position, next_lp), (next_position, next_lp, accept, tries, found)

    (final_position, final_lp), (vals, like, accepts, tries, found) = jax.lax.scan(
        step, (state.position, current_lp), step_keys
    )

    acceptance = jnp.mean(accepts.astype(dtype))
    trace = ChainTrace(
        vals=vals,
        like=like,
        acceptance=acceptance,
        proposal_tries=jnp.sum(tries),
        bounds_exhausted=jnp.logical_not(jnp.all(found)),
        covariance_ok=jnp.all(jnp.isfinite(chol)),
    )
    new_state = replace(
        state,
        position=final_position,
        log_posterior=final_lp,
        acceptance=acceptance,
        key=new_key,
    )
    return trace, new_state


def make_round_kernel(log_post_fn, lower, upper, max_tries, batched=True):
    """
    Build the compiled round function for a model.

    Args:
        log_post_fn: Function mapping a parameter vector to its log posterior
            (data already bound)
        lower, upper: Parameter bounds (n_params,)
        max_tries: In-bounds redraws allowed per step
        batched: If True, the kernel takes a stacked ChainState and runs every
            chain in parallel via jax.vmap; chains share nothing but the
            read-only data captured in log_post_fn.

    Returns:
        Jitted function state -> (trace, state). A new sample_budget triggers
        recompilation (scan length is static).
    """
    round_fn = partial(
        chain_round,
        log_post_fn=log_post_fn,
        lower=jnp.asarray(lower),
        upper=jnp.asarray(upper),
        max_tries=int(max_tries),
    )
    if batched:
        round_fn = jax.vmap(round_fn)
    return jax.jit(round_fn)


def run_chain(data, model, chain_state: ChainState, num_steps=None, max_tries=1000):
    """
    Run one round of Metropolis steps for a single chain.

    Args:
        data: Data pytree passed to the model's logpdf
        model: Partial model dict or completed Model
        chain_state: Un-batched ChainState of one chain
        num_steps: Steps to run (defaults to chain_state.sample_budget)
        max_tries: In-bounds redraws allowed per step

    Returns:
        (ChainTrace, ChainState)

    Raises:
        NumericalError: If the proposal covariance is not positive definite
            or the trace is non-finite
        BoundsError: If some step found no in-bounds proposal
    """
    model = ensure_all_model_methods(model)
    if num_steps is not None:
        chain_state = replace(chain_state, sample_budget=int(num_steps))

    kernel = make_round_kernel(
        bind_log_posterior(data, model),
        model.lower_bound,
        model.upper_bound,
        max_tries,
        batched=False,
    )
    trace, chain_state = kernel(chain_state)
    check_round_output(trace)
    return trace, chain_state


def check_round_output(trace: ChainTrace) -> None:
    """
    Check the output of a round, for one chain or a stacked batch.

    A covariance that is not positive definite makes every candidate NaN,
    which also exhausts the in-bounds retries; it is reported first.

    Raises:
        NumericalError: If a chain's Cholesky factor or trace is non-finite
        BoundsError: If some step of some chain found no in-bounds proposal
    """
    covariance_ok = np.atleast_1d(np.asarray(jax.device_get(trace.covariance_ok)))
    if not np.all(covariance_ok):
        raise NumericalError(
            f"Proposal covariance of chain(s) {np.flatnonzero(~covariance_ok).tolist()} "
            "is not positive definite"
        )

    exhausted = np.atleast_1d(np.asarray(jax.device_get(trace.bounds_exhausted)))
    if np.any(exhausted):
        raise BoundsError(
            f"Chain(s) {np.flatnonzero(exhausted).tolist()} could not draw an in-bounds "
            "proposal within the retry limit. Check that lower_bound/upper_bound leave "
            "room for the proposal distribution (or raise 'max_proposal_tries')."
        )

    vals = np.asarray(jax.device_get(trace.vals))
    if vals.ndim == 2:
        vals = vals[None]
    finite = np.all(np.isfinite(vals), axis=(1, 2))
    if not np.all(finite):
        raise NumericalError(
            f"Chain(s) {np.flatnonzero(~finite).tolist()} produced non-finite parameter values"
        )
