"""
Model Contract

This module defines the completed model record consumed by the sampler and
the adapter that builds it from a partially specified model.

A partial model is a dict (or an existing Model). It must carry either a
density ('pdf') or a log-density ('logpdf'); everything else that can be
derived is filled in by ensure_all_model_methods():

    - prior        -> exp(logprior) if logprior is given, else uniform (1)
    - pdf          -> exp(logpdf)
    - logpdf       -> nansum(log(pdf))
    - logprior     -> nansum(log(prior))
    - prior_for_mc -> prior

Density functions take the data followed by one scalar per parameter:

    pdf(data, mu, g, K)

Prior functions take the whole parameter vector. All model functions must be
written with jax.numpy so the sampler can jit and vmap them.

Example:
    model = ensure_all_model_methods({
        'param_names': ['mu'],
        'lower_bound': [-10.0],
        'upper_bound': [10.0],
        'move_std': [0.1],
        'start': [[-5.0], [0.0], [5.0]],
        'logpdf': lambda data, mu: norm.logpdf(data['y'], mu, 1.0),
    })
"""

from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Union

import jax
import jax.numpy as jnp
import numpy as np

from .error_handling import ConfigurationError


@dataclass(frozen=True)
class Model:
    """
    A model with every density and prior function present.

    Built by ensure_all_model_methods(); treat as read-only.
    """
    pdf: Callable
    logpdf: Callable
    prior: Callable
    logprior: Callable
    prior_for_mc: Callable
    lower_bound: np.ndarray   # (n_params,) - may contain -inf
    upper_bound: np.ndarray   # (n_params,) - may contain +inf
    move_std: np.ndarray      # (n_params,) - initial proposal scale
    start: np.ndarray         # (n_chains, n_params) - one row per chain
    name: str = ''
    param_names: Sequence[str] = field(default_factory=tuple)
    generator: Optional[Callable] = None

    @property
    def num_params(self) -> int:
        return self.lower_bound.shape[0]

    @property
    def num_chains(self) -> int:
        return self.start.shape[0]

    def log_posterior(self, data, params):
        """Unnormalized log posterior: summed log-likelihood plus log prior."""
        log_lik = jnp.sum(self.logpdf(data, *[params[i] for i in range(self.num_params)]))
        return log_lik + self.logprior(params)


def _uniform_prior(params):
    return 1.0


def _exp_of(log_fn):
    def fn(*args):
        return jnp.exp(log_fn(*args))
    return fn


def _nansum_log_of(fn):
    # NaN terms are dropped; zero densities still give -inf
    def log_fn(*args):
        return jnp.nansum(jnp.log(jnp.asarray(fn(*args))))
    return log_fn


def _as_float_vector(model, key):
    try:
        return np.asarray(model[key], dtype=np.float64).reshape(-1)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"model['{key}'] must be a numeric sequence: {e}") from e


def ensure_all_model_methods(model: Union[Mapping[str, Any], Model]) -> Model:
    """
    Make sure a model is complete with all pdf/prior functions.

    Args:
        model: Partial model dict, or an already completed Model

    Returns:
        Model with pdf, logpdf, prior, logprior and prior_for_mc present

    Raises:
        ConfigurationError: If neither pdf nor logpdf is given, or the bounds,
            proposal scale or starting points are inconsistent.
    """
    if isinstance(model, Model):
        return model

    model = dict(model)
    if model.get('pdf') is None and model.get('logpdf') is None:
        raise ConfigurationError(
            "Model must define 'pdf' or 'logpdf' - neither was supplied."
        )

    prior = model.get('prior')
    logprior = model.get('logprior')
    if prior is None:
        prior = _exp_of(logprior) if logprior is not None else _uniform_prior
    if logprior is None:
        logprior = _nansum_log_of(prior)

    pdf = model.get('pdf')
    logpdf = model.get('logpdf')
    if pdf is None:
        pdf = _exp_of(logpdf)
    if logpdf is None:
        logpdf = _nansum_log_of(pdf)

    prior_for_mc = model.get('prior_for_mc') or prior

    lower, upper, move_std, start = _validate_geometry(model)

    known = {f.name for f in fields(Model)}
    extra = set(model) - known
    if extra:
        raise ConfigurationError(f"Unknown model keys: {sorted(extra)}")

    return Model(
        pdf=pdf,
        logpdf=logpdf,
        prior=prior,
        logprior=logprior,
        prior_for_mc=prior_for_mc,
        lower_bound=lower,
        upper_bound=upper,
        move_std=move_std,
        start=start,
        name=model.get('name', ''),
        param_names=tuple(model.get('param_names', ())),
        generator=model.get('generator'),
    )


def _validate_geometry(model: Dict[str, Any]):
    """Check bounds, proposal scale and starting points against each other."""
    missing = [k for k in ('lower_bound', 'upper_bound', 'move_std', 'start') if k not in model]
    if missing:
        raise ConfigurationError(f"Model is missing required keys: {missing}")

    lower = _as_float_vector(model, 'lower_bound')
    upper = _as_float_vector(model, 'upper_bound')
    move_std = _as_float_vector(model, 'move_std')
    start = np.atleast_2d(np.asarray(model['start'], dtype=np.float64))
    n_params = lower.shape[0]

    errors = []
    if upper.shape[0] != n_params:
        errors.append(f"upper_bound has {upper.shape[0]} entries, lower_bound has {n_params}")
    if move_std.shape[0] != n_params:
        errors.append(f"move_std has {move_std.shape[0]} entries, expected {n_params}")
    elif not np.all((move_std > 0) & np.isfinite(move_std)):
        errors.append("move_std entries must be positive and finite")
    if start.ndim != 2 or start.shape[1] != n_params:
        errors.append(f"start must have shape (n_chains, {n_params}), got {start.shape}")
    names = model.get('param_names')
    if names is not None and len(names) != n_params:
        errors.append(f"param_names has {len(names)} entries, expected {n_params}")
    if errors:
        raise ConfigurationError("Invalid model:\n  " + "\n  ".join(errors))

    if np.any(np.isnan(lower) | np.isnan(upper)):
        raise ConfigurationError("lower_bound and upper_bound must not contain NaN")

    if np.any(lower > upper):
        raise ConfigurationError("lower_bound must not exceed upper_bound")

    if start.shape[0] < 2:
        raise ConfigurationError(
            "MCMC requires at least 2 chains to detect convergence. "
            "Please pass a model with multiple rows in 'start'."
        )

    if not np.all(np.isfinite(start)):
        rows = sorted(set(np.nonzero(~np.isfinite(start))[0].tolist()))
        raise ConfigurationError(f"Starting point(s) {rows} are not finite")

    if np.unique(start, axis=0).shape[0] < start.shape[0]:
        raise ConfigurationError("Starting points must be distinct, one row per chain")

    outside = (start < lower) | (start > upper)
    if np.any(outside):
        rows = sorted(set(np.nonzero(outside)[0].tolist()))
        raise ConfigurationError(f"Starting point(s) {rows} lie outside the parameter bounds")

    return lower, upper, move_std, start


def prepare_data(data):
    """Convert the numeric leaves of a data pytree to JAX arrays."""
    def convert(x):
        if isinstance(x, (np.ndarray, jnp.ndarray, np.number, int, float)):
            return jnp.asarray(x)
        return x
    return jax.tree_util.tree_map(convert, data)


def bind_log_posterior(data, model: Model):
    """
    Bind the data to a model's log posterior.

    Returns:
        Function params -> scalar log posterior, safe to jit and vmap. The
        data is captured read-only and shared by every chain.
    """
    data_jax = prepare_data(data)

    def log_post_fn(params):
        return model.log_posterior(data_jax, params)

    return log_post_fn
