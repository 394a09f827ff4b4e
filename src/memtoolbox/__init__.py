"""
memtoolbox - Bayesian parameter estimation with adaptive multi-chain MCMC

Public API:
    Sampling:
        mcmc - Multi-chain MCMC with tuned proposals and R-hat convergence detection
        run_chain - Run one round of Metropolis steps for a single chain
        is_converged - Gelman-Rubin convergence test on per-chain traces
        compute_rhat - Per-parameter R-hat from a (samples, chains, params) history

    Types:
        Model - Completed model record
        ChainState - Per-chain sampler state carried between rounds
        ChainTrace - Output of one round
        PosteriorSample - Row-aligned posterior sample (vals, like, chain)

    Models:
        ensure_all_model_methods - Fill in pdf/logpdf/prior/logprior/prior_for_mc
        register_model - Register a model factory
        get_model - Build a registered model by name
        list_models - List all registered models
        standard_mixture_model, standard_mixture_model_with_bias - Model library

    Errors:
        ConfigurationError, BoundsError, NumericalError, ConvergenceError

Example:
    import numpy as np
    from memtoolbox import mcmc, get_model

    model = get_model('standard_mixture_with_bias')
    errors = model['generator']((0.0, 0.3, 8.0), (500,), rng=0)
    stored = mcmc({'errors': errors}, model, {'verbosity': 0})
    print(stored.as_dict()['g'].mean())
"""
# CRITICAL: Import jax_config FIRST to set environment variables before JAX loads
from . import jax_config  # noqa: F401

from .error_handling import (
    ConfigurationError,
    BoundsError,
    NumericalError,
    ConvergenceError,
)
from .model import Model, ensure_all_model_methods
from .registry import register_model, get_model, list_models
from .models import (
    standard_mixture_model,
    standard_mixture_model_with_bias,
    vonmises_logpdf,
)
from .settings import MCMC_DEFAULTS

# Main MCMC entry points
from .mcmc import (
    mcmc,
    run_chain,
    is_converged,
    compute_rhat,
    ChainState,
    ChainTrace,
    PosteriorSample,
)
