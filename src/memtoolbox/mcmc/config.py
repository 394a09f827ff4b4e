"""
MCMC Configuration and Initialization.

This module handles setting up and validating an MCMC run:
- configure_mcmc_system: Main configuration entry point
- initialize_chains: Build the stacked ChainState of every chain
- gen_rng_keys: Generate JAX random keys

Configuration is split into two parts:
- user_config: Serializable config (plain Python values, defaults filled in)
- runtime_ctx: JAX-dependent objects that exist only during execution

All config keys use lowercase with underscores (e.g., 'burn_round_size').
"""

from typing import Any, Dict, Optional, Tuple

import jax
import jax.numpy as jnp
import jax.random as random

from ..error_handling import validate_mcmc_config
from ..model import Model, bind_log_posterior
from ..settings import clean_config
from .sampling import safe_log_posterior
from .types import ChainState


def gen_rng_keys(rng_seed: int) -> Tuple[Any, Any]:
    """Generate JAX random keys from seed.

    Returns:
        (master_key, init_key): Tuple of JAX PRNGKeys
    """
    mkey = jax.random.PRNGKey(rng_seed)
    master_key, init_key = random.split(mkey, 2)
    return master_key, init_key


def configure_mcmc_system(
    mcmc_config: Optional[Dict[str, Any]],
    data: Any,
    model: Model,
) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """
    Configure the MCMC system from config, data and a completed model.

    Args:
        mcmc_config: Input configuration dict (may be None or partial)
        data: Data pytree passed to the model's logpdf
        model: Completed Model (see ensure_all_model_methods)

    Returns:
        user_config: Clean config dict with defaults and derived values
        runtime_ctx: Dict with JAX keys, dtype and the bound log posterior

    Raises:
        ConfigurationError: If the configuration is invalid
    """
    user_config = clean_config(mcmc_config)
    validate_mcmc_config(user_config)

    # Configure JAX precision
    if user_config['use_double']:
        jax.config.update("jax_enable_x64", True)
        jnp_float_dtype = jnp.float64
    else:
        jax.config.update("jax_enable_x64", False)
        jnp_float_dtype = jnp.float32

    master_key, init_key = gen_rng_keys(user_config['rng_seed'])

    user_config['num_chains'] = model.num_chains
    user_config['num_params'] = model.num_params

    runtime_ctx = {
        'jnp_float_dtype': jnp_float_dtype,
        'master_key': master_key,
        'init_key': init_key,
        'log_post_fn': bind_log_posterior(data, model),
        'lower_bound': jnp.asarray(model.lower_bound, dtype=jnp_float_dtype),
        'upper_bound': jnp.asarray(model.upper_bound, dtype=jnp_float_dtype),
    }
    return user_config, runtime_ctx


def initialize_chains(
    model: Model,
    user_config: Dict[str, Any],
    runtime_ctx: Dict[str, Any],
) -> ChainState:
    """
    Set up initial values for all chains.

    Each chain starts at its own row of model.start with a diagonal burn
    covariance built from model.move_std and its own PRNG key.

    Returns:
        ChainState with array fields stacked along a leading chain axis
    """
    dtype = runtime_ctx['jnp_float_dtype']
    num_chains = model.num_chains

    start = jnp.asarray(model.start, dtype=dtype)
    co_matrix = jnp.diag(jnp.asarray(model.move_std, dtype=dtype))
    burn_covariance = jnp.broadcast_to(co_matrix, (num_chains,) + co_matrix.shape)

    log_post = jax.vmap(
        lambda p: safe_log_posterior(
            runtime_ctx['log_post_fn'], p,
            runtime_ctx['lower_bound'], runtime_ctx['upper_bound'],
        )
    )(start)

    return ChainState(
        position=start,
        log_posterior=log_post,
        burn_covariance=burn_covariance,
        acceptance=jnp.zeros(num_chains, dtype=dtype),
        key=random.split(runtime_ctx['init_key'], num_chains),
        sample_budget=int(user_config['burn_round_size']),
    )
