"""
Model Registration System

This module provides a registry of model factories. The model library
registers its models here at import time; user code can add its own with
register_model() and look any of them up by name with get_model().

A factory is a callable returning a partial model dict (see memtoolbox.model).

Example usage:
    from memtoolbox import register_model, get_model, mcmc

    def my_model():
        return {
            'name': 'My model',
            'param_names': ['mu'],
            'lower_bound': [-10.0],
            'upper_bound': [10.0],
            'move_std': [0.1],
            'start': [[-1.0], [1.0]],
            'logpdf': my_logpdf,
        }

    register_model('my_model', my_model)
    stored = mcmc(data, get_model('my_model'))
"""

_REGISTRY = {}


def register_model(name, factory):
    """
    Register a model factory.

    Args:
        name: Unique model identifier string (e.g., 'standard_mixture')
        factory: Callable (**kwargs) -> partial model dict

    Raises:
        ValueError: If name is already registered or factory is not callable.
    """
    if name in _REGISTRY:
        raise ValueError(f"Model '{name}' is already registered")
    if not callable(factory):
        raise ValueError(f"Factory for model '{name}' must be callable")
    _REGISTRY[name] = factory


def get_model(name, **kwargs):
    """
    Build a registered model by name.

    Args:
        name: The model identifier
        **kwargs: Passed through to the model factory

    Returns:
        Fresh partial model dict

    Raises:
        KeyError: If the model is not registered
    """
    if name not in _REGISTRY:
        available = list(_REGISTRY.keys())
        raise KeyError(f"Unknown model '{name}'. Available: {available}")
    return _REGISTRY[name](**kwargs)


def list_models():
    """
    List all registered model names.

    Returns:
        List of registered model name strings
    """
    return list(_REGISTRY.keys())


def clear_registry():
    """
    Clear all registered models. Primarily for testing.
    """
    _REGISTRY.clear()
