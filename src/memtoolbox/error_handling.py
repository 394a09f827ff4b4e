"""
Error Handling and Validation Utilities for the MCMC Driver

This module provides the exception hierarchy, configuration validation and
post-run diagnostic tools for MCMC sampling.
"""

from typing import Any, Dict

import numpy as np

import logging
logger = logging.getLogger('memtoolbox')


class ConfigurationError(ValueError):
    """Model or sampler configuration cannot be satisfied."""


class BoundsError(ConfigurationError):
    """No in-bounds proposal could be drawn (degenerate parameter bounds)."""


class NumericalError(RuntimeError):
    """Sampler state became non-finite (singular covariance, NaN trace)."""


class ConvergenceError(RuntimeError):
    """Chains did not converge within the allowed number of burn rounds."""


KNOWN_CONFIG_KEYS = frozenset({
    'convergence_threshold',
    'samples_per_chain',
    'burn_round_size',
    'verbosity',
    'max_rounds',
    'max_proposal_tries',
    'rng_seed',
    'use_double',
})


def validate_mcmc_config(mcmc_config: Dict[str, Any]) -> None:
    """
    Validates that MCMC configuration is sensible.

    Args:
        mcmc_config: Configuration dictionary (after clean_config)

    Raises:
        ConfigurationError: If configuration is invalid
    """
    errors = []

    if 'convergence_threshold' in mcmc_config:
        if not mcmc_config['convergence_threshold'] > 0:
            errors.append("convergence_threshold must be > 0")

    if 'samples_per_chain' in mcmc_config:
        if mcmc_config['samples_per_chain'] < 1:
            errors.append("samples_per_chain must be >= 1")

    if 'burn_round_size' in mcmc_config:
        # Within-chain variance needs at least two samples
        if mcmc_config['burn_round_size'] < 2:
            errors.append("burn_round_size must be >= 2")

    if mcmc_config.get('max_rounds') is not None:
        if mcmc_config['max_rounds'] < 2:
            errors.append("max_rounds must be >= 2 (or None for no limit)")

    if 'max_proposal_tries' in mcmc_config:
        if mcmc_config['max_proposal_tries'] < 1:
            errors.append("max_proposal_tries must be >= 1")

    if 'verbosity' in mcmc_config:
        if mcmc_config['verbosity'] not in (0, 1, 2, 3):
            errors.append(f"verbosity must be one of 0, 1, 2, 3, got {mcmc_config['verbosity']}")

    unknown = set(mcmc_config) - KNOWN_CONFIG_KEYS
    if unknown:
        errors.append(f"Unknown config keys: {sorted(unknown)}")

    if errors:
        raise ConfigurationError("Invalid MCMC configuration:\n  " + "\n  ".join(errors))


def diagnose_sampler_issues(sample, diagnostics: Dict[str, Any]) -> Dict[str, Any]:
    """
    Analyzes a posterior sample to identify common issues.

    Args:
        sample: PosteriorSample from the final collection round
        diagnostics: Existing diagnostics dict to extend

    Returns:
        diagnostics: Dictionary with issues, warnings, and info
    """
    diagnostics = diagnostics | {
        'issues': [],
        'warnings': [],
        'info': []
    }

    if not np.all(np.isfinite(sample.vals)):
        diagnostics['issues'].append(
            "Sample contains NaN or Inf parameter values - sampler became unstable"
        )

    n_neg_inf = int(np.sum(np.isneginf(sample.like)))
    if n_neg_inf > 0:
        diagnostics['warnings'].append(
            f"{n_neg_inf} sample(s) have zero posterior density"
        )

    # Stuck chains: a chain that never moved during the collection round
    stuck = []
    for c in range(sample.num_chains):
        chain_vars = np.var(sample.chain_vals(c), axis=0)
        if np.all(chain_vars < 1e-12):
            stuck.append(c)
    if stuck:
        diagnostics['warnings'].append(
            f"{len(stuck)} chain(s) appear stuck (near-zero variance): {stuck}"
        )

    acceptance = np.asarray(diagnostics.get('acceptance', []))
    low = np.flatnonzero(acceptance < 0.05)
    if low.size:
        diagnostics['warnings'].append(
            f"{low.size} chain(s) have acceptance rate < 5%: {low.tolist()}"
        )

    diagnostics['info'].append(f"Total samples: {sample.vals.shape[0]}")
    diagnostics['info'].append(f"Number of chains: {sample.num_chains}")
    diagnostics['info'].append(f"Number of parameters: {sample.vals.shape[1]}")

    return diagnostics


def print_diagnostics(diagnostics: Dict[str, Any]) -> None:
    """Log diagnostics from diagnose_sampler_issues."""
    if diagnostics['issues']:
        logger.error("[ERROR] ISSUES:")
        for issue in diagnostics['issues']:
            logger.error(f"  - {issue}")

    if diagnostics['warnings']:
        logger.warning("[WARN] WARNINGS:")
        for warning in diagnostics['warnings']:
            logger.warning(f"  - {warning}")

    if diagnostics['info']:
        logger.debug("[INFO] INFO:")
        for info in diagnostics['info']:
            logger.debug(f"  - {info}")

    if not diagnostics['issues'] and not diagnostics['warnings']:
        logger.debug("[OK] No issues detected")
