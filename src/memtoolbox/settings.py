"""
Sampler settings and configuration defaults.

This module holds the fixed tuning constants of the adaptive Metropolis
sampler and the default values for every key of the user-facing MCMC
configuration dict.

All config keys use lowercase with underscores. To add a new option:
1. Add its default to MCMC_DEFAULTS
2. Add its name to KNOWN_CONFIG_KEYS in error_handling
3. Validate it in validate_mcmc_config
"""

import copy
from typing import Any, Dict, Optional


# --- PROPOSAL MIXTURE ---
PROB_BIG_MOVE = 0.1         # Probability of taking a big jump
BIG_MOVE_FACTOR = 5.0       # A big move is this many times a normal perturbation

# --- COVARIANCE ADAPTATION (between burn rounds) ---
COV_KEEP_WEIGHT = 0.75      # Weight on the previous burn covariance
COV_LEARN_WEIGHT = 0.25     # Weight on the latest round's sample covariance
LOW_ACCEPTANCE = 0.15       # Below this, proposals are considered too wide
LOW_ACCEPTANCE_SHRINK = 3.0 # Covariance divisor applied on low acceptance

# Regularization added to the covariance before Cholesky factorization
COV_NUGGET = 1e-10


MCMC_DEFAULTS = {
    'convergence_threshold': 1.2,  # R-hat every parameter must fall below
    'samples_per_chain': 5000,     # Samples collected per chain after convergence
    'burn_round_size': 2000,       # Steps per chain in each tuning round
    'verbosity': 1,                # 0 silent, 1 phases, 2 R-hat, 3 acceptance
    'max_rounds': 200,             # Burn-round cap; None loops until converged
    'max_proposal_tries': 1000,    # In-bounds redraws allowed per step
    'rng_seed': 42,
    'use_double': True,
}


def clean_config(mcmc_config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Cleans the config dict and sets defaults.

    The caller's dict is never modified.
    """
    mcmc_config = copy.copy(mcmc_config) if mcmc_config else {}
    for key, default in MCMC_DEFAULTS.items():
        mcmc_config.setdefault(key, default)
    return mcmc_config
