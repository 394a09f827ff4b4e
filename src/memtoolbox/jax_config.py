"""
JAX Configuration - MUST be imported before any JAX imports.

This module sets environment variables for JAX configuration including:
- Double precision by default
- Persistent compilation cache directory
- XLA C++ log suppression
"""
import os
from pathlib import Path

# --- PRECISION ---
os.environ.setdefault("JAX_ENABLE_X64", "True")

# --- PERSISTENT COMPILATION CACHE ---
# Round kernels are recompiled for every (model, round size) pair
_JAX_CACHE_DIR = Path.home() / ".cache" / "jax" / "memtoolbox_cache"
_JAX_CACHE_DIR.mkdir(parents=True, exist_ok=True)
os.environ.setdefault("JAX_COMPILATION_CACHE_DIR", str(_JAX_CACHE_DIR))
os.environ.setdefault("JAX_PERSISTENT_CACHE_MIN_COMPILE_TIME_SECS", "1.0")

# Suppress CUDA/XLA C++ warnings
os.environ.setdefault("TF_CPP_MIN_LOG_LEVEL", "2")
