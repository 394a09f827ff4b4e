"""
MCMC Data Structures and Type Definitions.

This module contains the core data structures used by the MCMC driver:
- ChainState: Per-chain sampler state carried between rounds
- ChainTrace: Output of one round of one (or every) chain
- PosteriorSample: Final row-aligned sample returned to the caller

ChainState and ChainTrace are registered as JAX pytrees so a batch of chains
(array fields stacked along a leading chain axis) can flow through jit/vmap.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Sequence

import jax
import jax.numpy as jnp
import numpy as np


@dataclass(frozen=True)
class ChainState:
    """
    Mutable-by-replacement state of a chain between rounds.

    Each chain owns its state exclusively; the driver replaces it (with
    dataclasses.replace) only between rounds, never while a round runs.

    sample_budget is static pytree metadata: changing it triggers a new
    compilation of the round kernel, whose scan length it fixes.
    """
    position: jnp.ndarray         # (n_params,) or (n_chains, n_params)
    log_posterior: jnp.ndarray    # () or (n_chains,)
    burn_covariance: jnp.ndarray  # (n_params, n_params) or (n_chains, n_params, n_params)
    acceptance: jnp.ndarray       # () or (n_chains,) - last round's acceptance rate
    key: jnp.ndarray              # PRNG key, or (n_chains,) stacked keys
    sample_budget: int            # Steps to run next round

    @property
    def num_chains(self) -> int:
        return 1 if self.position.ndim == 1 else self.position.shape[0]

    def chain(self, c: int) -> 'ChainState':
        """Extract the state of chain c from a stacked batch."""
        return jax.tree_util.tree_map(lambda x: x[c], self)


def _chain_state_flatten(cs):
    children = (cs.position, cs.log_posterior, cs.burn_covariance, cs.acceptance, cs.key)
    aux_data = (cs.sample_budget,)
    return children, aux_data


def _chain_state_unflatten(aux_data, children):
    position, log_posterior, burn_covariance, acceptance, key = children
    (sample_budget,) = aux_data
    return ChainState(
        position=position,
        log_posterior=log_posterior,
        burn_covariance=burn_covariance,
        acceptance=acceptance,
        key=key,
        sample_budget=sample_budget,
    )


jax.tree_util.register_pytree_node(
    ChainState,
    _chain_state_flatten,
    _chain_state_unflatten
)


@dataclass(frozen=True)
class ChainTrace:
    """
    Immutable record of one round.

    Every step contributes one row (the post-step state), whether or not the
    proposal was accepted, so vals has exactly sample_budget rows.
    """
    vals: jnp.ndarray              # (n_steps, n_params) or (n_chains, n_steps, n_params)
    like: jnp.ndarray              # (n_steps,) or (n_chains, n_steps)
    acceptance: jnp.ndarray        # () or (n_chains,)
    proposal_tries: jnp.ndarray    # () or (n_chains,) - proposals drawn, incl. redraws
    bounds_exhausted: jnp.ndarray  # () or (n_chains,) - True if any step ran out of retries
    covariance_ok: jnp.ndarray     # () or (n_chains,) - False if the Cholesky factor is not finite

    def history(self) -> jnp.ndarray:
        """Stacked trace as (n_steps, n_chains, n_params) for R-hat."""
        if self.vals.ndim == 2:
            return self.vals[:, None, :]
        return jnp.swapaxes(self.vals, 0, 1)


def _chain_trace_flatten(ct):
    children = (ct.vals, ct.like, ct.acceptance, ct.proposal_tries, ct.bounds_exhausted,
                ct.covariance_ok)
    return children, None


def _chain_trace_unflatten(aux_data, children):
    return ChainTrace(*children)


jax.tree_util.register_pytree_node(
    ChainTrace,
    _chain_trace_flatten,
    _chain_trace_unflatten
)


@dataclass(frozen=True)
class PosteriorSample:
    """
    Posterior sample collected after convergence.

    All arrays are row-aligned numpy arrays on the host. Rows are grouped by
    chain: chain 0's samples first, then chain 1's, and so on.
    """
    vals: np.ndarray    # (n_chains * samples_per_chain, n_params)
    like: np.ndarray    # (n_chains * samples_per_chain,) - log posterior of each row
    chain: np.ndarray   # (n_chains * samples_per_chain,) - 0-based source chain
    param_names: Sequence[str] = ()
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_trace(cls, trace: ChainTrace, param_names=(), diagnostics=None) -> 'PosteriorSample':
        """Concatenate a stacked (n_chains, ...) trace into row-aligned arrays."""
        vals = np.asarray(jax.device_get(trace.vals))
        like = np.asarray(jax.device_get(trace.like))
        n_chains, n_steps, n_params = vals.shape
        return cls(
            vals=vals.reshape(n_chains * n_steps, n_params),
            like=like.reshape(n_chains * n_steps),
            chain=np.repeat(np.arange(n_chains), n_steps),
            param_names=tuple(param_names),
            diagnostics=dict(diagnostics or {}),
        )

    @property
    def num_chains(self) -> int:
        return int(self.chain.max()) + 1 if self.chain.size else 0

    @property
    def samples_per_chain(self) -> int:
        return self.vals.shape[0] // self.num_chains if self.num_chains else 0

    def chain_vals(self, c: int) -> np.ndarray:
        return self.vals[self.chain == c]

    def mean(self) -> np.ndarray:
        return np.mean(self.vals, axis=0)

    def var(self) -> np.ndarray:
        return np.var(self.vals, axis=0, ddof=1)

    def as_dict(self) -> Dict[str, np.ndarray]:
        """Parameter name -> column of samples (falls back to p0, p1, ...)."""
        names = self.param_names or [f"p{i}" for i in range(self.vals.shape[1])]
        return {name: self.vals[:, i] for i, name in enumerate(names)}
