"""
Generator population builder.

Builds parameter sets for a population of generator devices from a simple
schema:

device_types: list of types, each:
  name: string
  model: 'cd_poisson_generator' | 'rbf_poisson_generator'
  n: int
  params: { <param>: value | [min, max] }   # ranges sampled uniformly
  jitter_percent: 0.0                       # multiplicative jitter on scalars

Returns a list of (model, params) pairs and a metadata dict with indices,
type names and models.
"""

from __future__ import annotations
from typing import Any, Dict, List, Tuple
import numpy as np

from .device import MODELS
from .errors import UnknownModelError


def _rng(seed: int) -> np.random.RandomState:
    return np.random.RandomState(int(seed))


def _sample_uniform(rng, low: float, high: float, size=None):
    return rng.uniform(low, high, size=size)


def _jitter(value: float, jitter_percent: float, rng) -> float:
    jp = float(jitter_percent)
    if jp <= 0.0:
        return float(value)
    return float(value * _sample_uniform(rng, 1.0 - jp, 1.0 + jp))


def _draw_params(ranges: Dict[str, Any], jitter: float, rng) -> Dict[str, float]:
    out = {}
    for key, val in ranges.items():
        if isinstance(val, (list, tuple)):
            if len(val) != 2:
                raise ValueError(f"Range for '{key}' must be [min, max].")
            lo, hi = float(val[0]), float(val[1])
            out[key] = lo if lo == hi else float(_sample_uniform(rng, lo, hi))
        else:
            out[key] = _jitter(float(val), jitter, rng)
    return out


def _order_rate_window(p: Dict[str, float]) -> None:
    # Independent draws may invert a window; swap rather than reject.
    for lo, hi in (('min_rate', 'max_rate'), ('min_current', 'max_current')):
        if lo in p and hi in p and p[lo] > p[hi]:
            p[lo], p[hi] = p[hi], p[lo]


def generate_population(device_types_cfg: List[Dict[str, Any]],
                        base_seed: int = 0) -> Tuple[List[Tuple[str, Dict[str, float]]], Dict[str, np.ndarray]]:
    """
    Draw parameter sets for every device of every type.

    Args:
        device_types_cfg: list of device type dicts (see module docstring)
        base_seed: int

    Returns:
        devices: list of (model, params)
        meta: dict with 'index', 'types', 'models'
    """
    rs = _rng(base_seed)

    devices: List[Tuple[str, Dict[str, float]]] = []
    types: List[str] = []

    for dt in device_types_cfg:
        name = dt.get('name', 'generator')
        model = dt.get('model', 'cd_poisson_generator')
        if model not in MODELS:
            raise UnknownModelError(f"Unknown model '{model}' in device type '{name}'")
        n = int(dt.get('n', 1))
        jitter = float(dt.get('jitter_percent', 0.0))
        pranges = dict(dt.get('params', {}))

        for _ in range(n):
            params = _draw_params(pranges, jitter, rs)
            _order_rate_window(params)
            devices.append((model, params))
            types.append(name)

    meta = {'index': np.arange(len(devices), dtype=np.int64),
            'types': np.array(types),
            'models': np.array([m for m, _ in devices])}
    return devices, meta
