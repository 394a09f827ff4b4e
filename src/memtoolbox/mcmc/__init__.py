"""
MCMC Subpackage - Core MCMC sampling implementation.

This package contains the core MCMC sampling logic:
- backend: Multi-chain driver (mcmc) with covariance tuning
- sampling: Truncated proposals and the per-chain Metropolis round
- diagnostics: Convergence diagnostics (Gelman-Rubin R-hat)
- config: Configuration and chain initialization
- types: Core data structures (ChainState, ChainTrace, PosteriorSample)
"""

# Import types first (needed by other modules)
from .types import ChainState, ChainTrace, PosteriorSample

# Import main entry points
from .backend import mcmc, run_round, tune_proposals, sample_covariance
from .sampling import (
    run_chain,
    chain_round,
    check_round_output,
    make_round_kernel,
    propose_in_bounds,
)

from .config import (
    configure_mcmc_system,
    initialize_chains,
    gen_rng_keys,
)
from .diagnostics import (
    compute_rhat,
    convergence_check,
    is_converged,
    log_rhat_summary,
    log_acceptance_summary,
)

__all__ = [
    # Main entry points
    'mcmc',
    'run_chain',
    'run_round',
    # Types
    'ChainState',
    'ChainTrace',
    'PosteriorSample',
    # Sampling
    'chain_round',
    'check_round_output',
    'make_round_kernel',
    'propose_in_bounds',
    'tune_proposals',
    'sample_covariance',
    # Config
    'configure_mcmc_system',
    'initialize_chains',
    'gen_rng_keys',
    # Diagnostics
    'compute_rhat',
    'convergence_check',
    'is_converged',
    'log_rhat_summary',
    'log_acceptance_summary',
]
