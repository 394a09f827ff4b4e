"""
Unit tests for the model contract adapter (ensure_all_model_methods).
"""

import jax.numpy as jnp
import numpy as np
import pytest

from memtoolbox import ConfigurationError, Model, ensure_all_model_methods
from memtoolbox.model import bind_log_posterior

from conftest import gaussian_known_variance_model


def _partial(**overrides):
    model = {
        'param_names': ['mu', 's'],
        'lower_bound': [-5.0, 0.1],
        'upper_bound': [5.0, 10.0],
        'move_std': [0.1, 0.1],
        'start': [[0.0, 1.0], [1.0, 2.0]],
    }
    model.update(overrides)
    return model


def _normal_pdf(data, mu, s):
    return jnp.exp(-0.5 * ((data - mu) / s) ** 2) / (s * jnp.sqrt(2 * jnp.pi))


# ============================================================================
# DERIVED METHODS
# ============================================================================

class TestDerivedMethods:
    """Test that missing density and prior functions are filled in."""

    def test_logpdf_derived_from_pdf(self):
        """Derived logpdf equals the sum of log(pdf) over the data."""
        model = ensure_all_model_methods(_partial(pdf=_normal_pdf))
        data = jnp.array([-1.0, 0.0, 0.5, 2.0])

        expected = np.sum(np.log(np.asarray(_normal_pdf(data, 0.3, 1.5))))
        np.testing.assert_allclose(model.logpdf(data, 0.3, 1.5), expected, rtol=1e-10)

    def test_pdf_derived_from_logpdf(self):
        """Derived pdf equals exp(logpdf)."""
        def logpdf(data, mu, s):
            return jnp.log(_normal_pdf(data, mu, s))

        model = ensure_all_model_methods(_partial(logpdf=logpdf))
        data = jnp.array([0.0, 1.0])
        np.testing.assert_allclose(
            model.pdf(data, 0.0, 1.0), _normal_pdf(data, 0.0, 1.0), rtol=1e-10
        )

    def test_derived_logpdf_ignores_nan(self):
        """NaN density values are dropped from the log-likelihood sum."""
        def pdf(data, mu, s):
            return jnp.array([0.5, jnp.nan, 0.25])

        model = ensure_all_model_methods(_partial(pdf=pdf))
        np.testing.assert_allclose(
            model.logpdf(None, 0.0, 1.0), np.log(0.5) + np.log(0.25), rtol=1e-12
        )

    def test_derived_logpdf_zero_density(self):
        """A zero density makes the log-likelihood -inf."""
        def pdf(data, mu, s):
            return jnp.array([0.5, 0.0])

        model = ensure_all_model_methods(_partial(pdf=pdf))
        assert np.isneginf(model.logpdf(None, 0.0, 1.0))

    def test_default_prior_is_uniform(self):
        model = ensure_all_model_methods(_partial(pdf=_normal_pdf))
        params = jnp.array([0.0, 1.0])

        assert float(model.prior(params)) == 1.0
        assert float(model.logprior(params)) == 0.0
        assert model.prior_for_mc is model.prior

    def test_logprior_derived_from_prior(self):
        """Vector-valued priors are summed in log space."""
        def prior(params):
            return jnp.array([0.5, 0.2])

        model = ensure_all_model_methods(_partial(pdf=_normal_pdf, prior=prior))
        np.testing.assert_allclose(
            model.logprior(jnp.zeros(2)), np.log(0.5) + np.log(0.2), rtol=1e-12
        )

    def test_prior_derived_from_logprior(self):
        def logprior(params):
            return -jnp.sum(params ** 2)

        model = ensure_all_model_methods(_partial(pdf=_normal_pdf, logprior=logprior))
        params = jnp.array([1.0, 0.5])
        np.testing.assert_allclose(model.prior(params), np.exp(-1.25), rtol=1e-12)
        assert model.logprior is logprior

    def test_supplied_methods_kept(self):
        """Functions the caller provides are never replaced."""
        def prior_for_mc(params):
            return 0.5

        partial = _partial(pdf=_normal_pdf, prior_for_mc=prior_for_mc)
        model = ensure_all_model_methods(partial)
        assert model.pdf is _normal_pdf
        assert model.prior_for_mc is prior_for_mc

    def test_input_dict_not_modified(self):
        partial = _partial(pdf=_normal_pdf)
        keys = set(partial)
        ensure_all_model_methods(partial)
        assert set(partial) == keys

    def test_completed_model_passes_through(self):
        model = ensure_all_model_methods(_partial(pdf=_normal_pdf))
        assert ensure_all_model_methods(model) is model

    def test_model_properties(self):
        model = ensure_all_model_methods(_partial(pdf=_normal_pdf, name='normal'))
        assert isinstance(model, Model)
        assert model.num_params == 2
        assert model.num_chains == 2
        assert model.param_names == ('mu', 's')
        assert model.name == 'normal'


# ============================================================================
# VALIDATION
# ============================================================================

class TestModelValidation:
    """Test rejection of models the sampler cannot run."""

    def test_missing_density(self):
        with pytest.raises(ConfigurationError, match="pdf"):
            ensure_all_model_methods(_partial())

    def test_single_chain_rejected(self):
        with pytest.raises(ConfigurationError, match="at least 2 chains"):
            ensure_all_model_methods(_partial(pdf=_normal_pdf, start=[[0.0, 1.0]]))

    def test_start_outside_bounds(self):
        with pytest.raises(ConfigurationError, match="outside"):
            ensure_all_model_methods(
                _partial(pdf=_normal_pdf, start=[[0.0, 1.0], [6.0, 1.0]])
            )

    def test_nonfinite_start(self):
        with pytest.raises(ConfigurationError, match="not finite"):
            ensure_all_model_methods(
                _partial(pdf=_normal_pdf, start=[[np.nan, 1.0], [0.0, 1.0]])
            )
        with pytest.raises(ConfigurationError, match="not finite"):
            ensure_all_model_methods(_partial(
                pdf=_normal_pdf, upper_bound=[np.inf, 10.0], start=[[np.inf, 1.0], [0.0, 1.0]]
            ))

    def test_nan_bounds(self):
        with pytest.raises(ConfigurationError, match="NaN"):
            ensure_all_model_methods(_partial(pdf=_normal_pdf, lower_bound=[np.nan, 0.1]))

    def test_duplicate_start_rows(self):
        with pytest.raises(ConfigurationError, match="distinct"):
            ensure_all_model_methods(
                _partial(pdf=_normal_pdf, start=[[0.0, 1.0], [1.0, 2.0], [0.0, 1.0]])
            )

    def test_bad_move_std(self):
        with pytest.raises(ConfigurationError, match="move_std"):
            ensure_all_model_methods(_partial(pdf=_normal_pdf, move_std=[0.1, 0.0]))
        with pytest.raises(ConfigurationError, match="move_std"):
            ensure_all_model_methods(_partial(pdf=_normal_pdf, move_std=[0.1]))

    def test_inverted_bounds(self):
        with pytest.raises(ConfigurationError, match="lower_bound"):
            ensure_all_model_methods(
                _partial(pdf=_normal_pdf, lower_bound=[-5.0, 10.0], upper_bound=[5.0, 0.1])
            )

    def test_param_names_length(self):
        with pytest.raises(ConfigurationError, match="param_names"):
            ensure_all_model_methods(_partial(pdf=_normal_pdf, param_names=['mu']))

    def test_missing_geometry(self):
        partial = _partial(pdf=_normal_pdf)
        del partial['start']
        with pytest.raises(ConfigurationError, match="start"):
            ensure_all_model_methods(partial)

    def test_unknown_key(self):
        with pytest.raises(ConfigurationError, match="Unknown model keys"):
            ensure_all_model_methods(_partial(pdf=_normal_pdf, movestd=[0.1, 0.1]))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            ensure_all_model_methods(_partial())


# ============================================================================
# LOG POSTERIOR
# ============================================================================

class TestLogPosterior:
    """Test the data-bound log posterior used by the sampler."""

    def test_matches_sum_of_logpdf_and_logprior(self, gaussian_data):
        model = ensure_all_model_methods(gaussian_known_variance_model())
        log_post_fn = bind_log_posterior(gaussian_data, model)

        y = gaussian_data['y']
        expected = np.sum(-0.5 * (y - 0.5) ** 2 - 0.5 * np.log(2 * np.pi))
        np.testing.assert_allclose(log_post_fn(jnp.array([0.5])), expected, rtol=1e-10)
