"""
Poisson spike counts from rates (Hz) on a fixed step grid (ms).

The intensity of one step is lambda = step_ms * rate_hz * 1e-3. Counts are
drawn from Poisson(lambda), so a step may carry more than one spike; such
steps are emitted as one event with that multiplicity.

PoissonSampler is the per-device deviate with a mutable lambda. The random
source is always passed in by the caller and never kept.
`sample_spike_counts` is the batch form for (T,) or (N,T) rate arrays.
"""

from typing import Tuple
import math
import numpy as np


def _gen_seeds(n: int, base_seed: int) -> np.ndarray:
    rs = np.random.RandomState(base_seed)
    return rs.randint(0, 2**31 - 1, size=n)


def rate_to_lambda(rate_hz: float, step_ms: float) -> float:
    """Expected spike count of one step of `step_ms` at `rate_hz`."""
    lam = float(step_ms) * float(rate_hz) * 1e-3
    if not math.isfinite(lam) or lam < 0.0:
        raise ValueError(f"Poisson intensity must be finite and >= 0, got {lam}.")
    return lam


class PoissonSampler:
    """Poisson deviate with an adjustable mean."""

    def __init__(self, lam: float = 0.0):
        self._lambda = 0.0
        self.set_lambda(lam)

    @property
    def lam(self) -> float:
        return self._lambda

    def set_lambda(self, lam: float) -> None:
        lam = float(lam)
        if not math.isfinite(lam) or lam < 0.0:
            raise ValueError(f"Poisson intensity must be finite and >= 0, got {lam}.")
        self._lambda = lam

    def draw(self, rng: np.random.RandomState) -> int:
        """One non-negative spike count with mean lambda."""
        return int(rng.poisson(self._lambda))


def sample_spike_counts(rates_hz: np.ndarray,
                        step_ms: float,
                        base_seed: int = 0) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Draw per-step Poisson counts for rate time series.

    Args:
        rates_hz: shape (T,) or (N,T), rates in Hz.
        step_ms: step size in ms.
        base_seed: base random seed; per-row seeds derived from it.

    Returns:
        gids: row index per non-empty step (int64)
        steps: step index per non-empty step (int64)
        multiplicities: spike count per non-empty step (int64, all > 0)
    """
    rates = np.asarray(rates_hz, dtype=np.float64)
    if rates.ndim == 1:
        rates = rates[None, :]
    if np.any(rates < 0) or not np.all(np.isfinite(rates)):
        raise ValueError("rates must be finite and >= 0.")

    n, t = rates.shape
    lam = rates * float(step_ms) * 1e-3

    gids_list = []
    steps_list = []
    counts_list = []
    seeds = _gen_seeds(n, base_seed)

    for gid in range(n):
        rng = np.random.RandomState(int(seeds[gid]))
        counts = rng.poisson(lam[gid])
        hit = np.nonzero(counts > 0)[0]
        if hit.size:
            gids_list.append(np.full(hit.size, gid, dtype=np.int64))
            steps_list.append(hit.astype(np.int64))
            counts_list.append(counts[hit].astype(np.int64))

    if len(steps_list) == 0:
        empty = np.array([], dtype=np.int64)
        return empty, empty.copy(), empty.copy()

    gids = np.concatenate(gids_list, axis=0)
    steps = np.concatenate(steps_list, axis=0)
    mult = np.concatenate(counts_list, axis=0)

    # Sort by step (stable)
    order = np.argsort(steps, kind='mergesort')
    return gids[order], steps[order], mult[order]
