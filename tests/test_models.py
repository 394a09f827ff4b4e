"""
Tests for the model library and the model registry.
"""

import jax.numpy as jnp
import numpy as np
import pytest
from scipy import integrate, stats

from memtoolbox import (
    ensure_all_model_methods,
    get_model,
    list_models,
    mcmc,
    register_model,
    standard_mixture_model,
    standard_mixture_model_with_bias,
    vonmises_logpdf,
)
from memtoolbox.models import vonmises_pdf
from memtoolbox.registry import clear_registry


# ============================================================================
# REGISTRY
# ============================================================================

class TestRegistry:
    """Test model registration and lookup."""

    def test_builtin_models_registered(self):
        assert 'standard_mixture' in list_models()
        assert 'standard_mixture_with_bias' in list_models()

    def test_get_model_returns_fresh_dict(self):
        first = get_model('standard_mixture')
        first['start'] = None
        second = get_model('standard_mixture')
        assert second['start'] is not None

    def test_register_and_get(self, preserve_registry):
        def factory(scale=1.0):
            model = standard_mixture_model()
            model['move_std'] = [scale * s for s in model['move_std']]
            return model

        register_model('scaled_mixture', factory)
        assert get_model('scaled_mixture', scale=2.0)['move_std'] == [0.04, 0.2]

    def test_duplicate_rejected(self, preserve_registry):
        with pytest.raises(ValueError, match="already registered"):
            register_model('standard_mixture', standard_mixture_model)

    def test_non_callable_rejected(self, preserve_registry):
        with pytest.raises(ValueError, match="callable"):
            register_model('not_a_factory', {'pdf': None})

    def test_unknown_model(self):
        with pytest.raises(KeyError, match="standard_mixture"):
            get_model('no_such_model')

    def test_clear_registry(self, preserve_registry):
        clear_registry()
        assert list_models() == []


# ============================================================================
# VON MISES
# ============================================================================

class TestVonMises:
    """Test the von Mises density against scipy."""

    @pytest.mark.parametrize("kappa", [0.5, 2.0, 10.0, 200.0])
    def test_logpdf_matches_scipy(self, kappa):
        x = np.linspace(-3.0, 3.0, 41)
        np.testing.assert_allclose(
            vonmises_logpdf(jnp.asarray(x), 0.0, kappa),
            stats.vonmises.logpdf(x, kappa),
            rtol=1e-8, atol=1e-8,
        )

    def test_zero_concentration_is_uniform(self):
        x = jnp.linspace(-np.pi, np.pi, 11)
        np.testing.assert_allclose(vonmises_pdf(x, 0.0, 0.0), 1.0 / (2 * np.pi), rtol=1e-12)

    def test_large_concentration_finite(self):
        assert np.isfinite(float(vonmises_logpdf(0.0, 0.0, 1e6)))


# ============================================================================
# MIXTURE MODELS
# ============================================================================

class TestMixtureModels:
    """Test the standard mixture models."""

    @pytest.mark.parametrize("factory, params", [
        (standard_mixture_model_with_bias, (0.2, 0.3, 5.0)),
        (standard_mixture_model, (0.3, 5.0)),
    ])
    def test_density_integrates_to_one(self, factory, params):
        model = ensure_all_model_methods(factory())
        total, _ = integrate.quad(
            lambda e: float(model.pdf({'errors': jnp.array([e])}, *params)[0]),
            -np.pi, np.pi,
        )
        assert abs(total - 1.0) < 1e-6

    def test_guessing_zero_outside_circle(self):
        """Pure guessing gives no density to errors outside [-pi, pi]."""
        pdf = standard_mixture_model_with_bias()['pdf']
        density = pdf({'errors': jnp.array([0.0, 3.0, 4.0, -3.5])}, 0.0, 1.0, 5.0)
        np.testing.assert_allclose(density, [1 / (2 * np.pi), 1 / (2 * np.pi), 0.0, 0.0])

        pdf = standard_mixture_model()['pdf']
        assert float(pdf({'errors': jnp.array([4.0])}, 1.0, 5.0)[0]) == 0.0

    @pytest.mark.parametrize("factory", [standard_mixture_model_with_bias, standard_mixture_model])
    def test_model_is_complete(self, factory):
        model = ensure_all_model_methods(factory())
        assert model.num_chains == 3
        assert model.num_params == len(model.param_names)

    def test_generator(self):
        model = standard_mixture_model_with_bias()
        errors = model['generator']((0.0, 0.5, 8.0), (20, 10), rng=0)

        assert errors.shape == (20, 10)
        assert np.all((errors >= -np.pi) & (errors <= np.pi))

    def test_generator_guess_rate(self):
        """With g = 1 every response is a uniform guess."""
        errors = standard_mixture_model()['generator']((1.0, 50.0), (5000,), rng=1)
        assert np.std(errors) > 1.5

    def test_recovers_parameters(self):
        """Fitting simulated data recovers the generating guess rate and precision."""
        model = standard_mixture_model()
        errors = model['generator']((0.2, 10.0), (400,), rng=2)

        sample = mcmc({'errors': errors}, model, {
            'verbosity': 0,
            'burn_round_size': 500,
            'samples_per_chain': 1500,
        })
        g_mean, k_mean = sample.mean()

        assert abs(g_mean - 0.2) < 0.1
        assert 6.0 < k_mean < 16.0
        assert np.all((sample.vals[:, 0] >= 0.0) & (sample.vals[:, 0] <= 1.0))
