"""
JAX-native transfer functions for expected-rate traces.

Mirrors transfer.rate_trace on jax.numpy arrays so long (N,T) current traces
can be evaluated on an accelerator without a numpy round trip per device.
"""

from typing import Optional
import os

try:
    import jax
    if os.getenv('CDPOISSON_JAX_X64', '1').lower() not in ('0', 'false', 'no'):
        jax.config.update('jax_enable_x64', True)
    import jax.numpy as jnp
except ImportError:  # pragma: no cover
    jax = None
    jnp = None


def _require_jax():  # pragma: no cover
    if jnp is None:
        raise ImportError("JAX is required for transfer_jax. Install jax/jaxlib.")


def clamped_linear(x, min_current: float, max_current: float,
                   min_rate: float, max_rate: float):
    """Elementwise clamped-linear map; a step at min_current for an empty window."""
    _require_jax()
    x = jnp.asarray(x)
    width = float(max_current) - float(min_current)
    if width > 0.0:
        ramp = min_rate + (x - min_current) / width * (max_rate - min_rate)
    else:
        ramp = jnp.full_like(x, max_rate)
    return jnp.where(x <= min_current, min_rate, jnp.where(x >= max_current, max_rate, ramp))


def gaussian_bump(avg, mean_current: float, sigma_current: float,
                  min_rate: float, max_rate: float):
    _require_jax()
    avg = jnp.asarray(avg)
    g = jnp.exp(-((avg - mean_current) ** 2) / (2.0 * sigma_current * sigma_current))
    return min_rate + g * (max_rate - min_rate)


def slice_means(x, slice_steps: int):
    """Mean of every slice of `slice_steps` steps, repeated over the slice.

    A trailing partial slice is averaged over its own length.
    """
    _require_jax()
    x = jnp.asarray(x)
    n = x.shape[-1]
    n_full = (n // slice_steps) * slice_steps
    parts = []
    if n_full:
        head = x[..., :n_full].reshape(x.shape[:-1] + (n_full // slice_steps, slice_steps))
        parts.append(jnp.repeat(head.mean(axis=-1), slice_steps, axis=-1))
    if n_full < n:
        tail = x[..., n_full:]
        parts.append(jnp.repeat(tail.mean(axis=-1, keepdims=True), n - n_full, axis=-1))
    return jnp.concatenate(parts, axis=-1)


def rate_trace(model: str, params: dict, currents, slice_steps: Optional[int] = None):
    """JAX counterpart of transfer.rate_trace; returns a jax array."""
    _require_jax()
    min_rate = float(params['min_rate'])
    max_rate = float(params['max_rate'])
    if model == 'cd_poisson_generator':
        return clamped_linear(currents, float(params['min_current']), float(params['max_current']),
                              min_rate, max_rate)
    if model == 'rbf_poisson_generator':
        if not slice_steps or slice_steps < 1:
            raise ValueError("slice_steps must be >= 1 for the Gaussian model.")
        avg = slice_means(currents, int(slice_steps))
        return gaussian_bump(avg, float(params['mean_current']), float(params['sigma_current']),
                             min_rate, max_rate)
    raise ValueError(f"Unknown model: {model}")
