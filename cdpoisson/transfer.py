"""
Current-to-rate transfer functions.

Scalar versions are used by the devices on every step (or slice); the numpy
`rate_trace` evaluates a whole current trace at once for offline inspection.
Rates are in Hz, currents in the units of the incoming CurrentEvents.
"""

from typing import Optional
import math
import numpy as np


def clamped_linear(current: float,
                   min_current: float,
                   max_current: float,
                   min_rate: float,
                   max_rate: float) -> float:
    """Linear ramp from min_rate to max_rate over [min_current, max_current].

    With max_current <= min_current the ramp is empty and the map is a step
    at min_current: min_rate at or below it, max_rate above it.
    """
    width = max_current - min_current
    if width <= 0.0:
        return float(min_rate if current <= min_current else max_rate)
    if current <= min_current:
        return float(min_rate)
    if current >= max_current:
        return float(max_rate)
    return float(min_rate + (current - min_current) / width * (max_rate - min_rate))


def gaussian_bump(average_current: float,
                  mean_current: float,
                  sigma_current: float,
                  min_rate: float,
                  max_rate: float) -> float:
    """Gaussian tuning curve: max_rate at mean_current, min_rate far away."""
    d = average_current - mean_current
    gaussian = math.exp(-(d * d) / (2.0 * sigma_current * sigma_current))
    return float(min_rate + gaussian * (max_rate - min_rate))


def _slice_means(currents: np.ndarray, slice_steps: int) -> np.ndarray:
    # Mean per slice, broadcast back to every step of that slice.
    n = currents.shape[-1]
    out = np.empty_like(currents, dtype=np.float64)
    for start in range(0, n, slice_steps):
        stop = min(start + slice_steps, n)
        out[..., start:stop] = currents[..., start:stop].mean(axis=-1, keepdims=True)
    return out


def rate_trace(model: str,
               params: dict,
               currents: np.ndarray,
               slice_steps: Optional[int] = None) -> np.ndarray:
    """
    Deterministic rate for every step of a current trace.

    Args:
        model: 'cd_poisson_generator' or 'rbf_poisson_generator'.
        params: parameter dict (see params.py for keys).
        currents: (T,) or (N,T) net input current per step.
        slice_steps: slice length; required for the Gaussian model, whose
            rate is evaluated on the mean current of each slice.

    Returns:
        rates in Hz, same shape as currents. This is the rate in force while
        the slice is processed, i.e. what a device would produce with
        instantaneous delivery.
    """
    x = np.asarray(currents, dtype=np.float64)
    min_rate = float(params['min_rate'])
    max_rate = float(params['max_rate'])

    if model == 'cd_poisson_generator':
        lo = float(params['min_current'])
        hi = float(params['max_current'])
        width = hi - lo
        if width > 0.0:
            ramp = min_rate + (x - lo) / width * (max_rate - min_rate)
        else:
            ramp = np.full_like(x, max_rate)
        return np.where(x <= lo, min_rate, np.where(x >= hi, max_rate, ramp))

    if model == 'rbf_poisson_generator':
        if not slice_steps or slice_steps < 1:
            raise ValueError("slice_steps must be >= 1 for the Gaussian model.")
        mu = float(params['mean_current'])
        sigma = float(params['sigma_current'])
        avg = _slice_means(x, int(slice_steps))
        return min_rate + np.exp(-((avg - mu) ** 2) / (2.0 * sigma * sigma)) * (max_rate - min_rate)

    raise ValueError(f"Unknown model: {model}")
