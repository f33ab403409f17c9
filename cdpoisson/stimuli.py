"""
Input current traces and a minimal CurrentTrace container.

Traces are numpy arrays (T,) of current amplitudes on the simulation grid
(dt in ms), replayed by a host current source one value per step.
"""

from typing import Optional, Sequence, Tuple
import math
import numpy as np


class CurrentTrace:
    """
    Pair a (T,) amplitude array with its step size and time axis (ms).
    """

    def __init__(self, data: np.ndarray, dt_ms: float):
        data = np.asarray(data, dtype=np.float64)
        assert data.ndim == 1, "CurrentTrace data must be (T,)."
        assert dt_ms > 0, "dt_ms must be positive."
        self.data = data
        self.dt_ms = float(dt_ms)
        self.t_range = np.arange(data.shape[0], dtype=np.float64) * self.dt_ms

    @property
    def n_steps(self) -> int:
        return int(self.data.shape[0])

    @property
    def duration(self) -> float:
        return self.n_steps * self.dt_ms

    def amplitude(self, step: int) -> float:
        """Amplitude at `step`; 0 outside the trace."""
        if 0 <= step < self.data.shape[0]:
            return float(self.data[step])
        return 0.0

    def as_array(self) -> np.ndarray:
        return self.data


def _n(duration_ms: float, dt_ms: float) -> int:
    return int(round(duration_ms / dt_ms))


def constant_current(amplitude: float, duration: float, dt: float) -> CurrentTrace:
    return CurrentTrace(np.full(_n(duration, dt), float(amplitude)), dt_ms=dt)


def step_current(amplitude_times: Sequence[float],
                 amplitude_values: Sequence[float],
                 duration: float,
                 dt: float) -> CurrentTrace:
    """
    Piecewise-constant current: amplitude_values[i] from amplitude_times[i] (ms)
    until the next change. Zero before the first change.
    """
    times = [float(t) for t in amplitude_times]
    values = [float(v) for v in amplitude_values]
    if len(times) != len(values):
        raise ValueError("amplitude_times and amplitude_values must have the same length.")
    if any(b < a for a, b in zip(times, times[1:])):
        raise ValueError("amplitude_times must be non-decreasing.")

    data = np.zeros(_n(duration, dt), dtype=np.float64)
    for t, v in zip(times, values):
        data[_n(t, dt):] = v
    return CurrentTrace(data, dt_ms=dt)


def ramp_current(start: float, stop: float, duration: float, dt: float) -> CurrentTrace:
    """Linear ramp from `start` to `stop` over `duration` ms."""
    n = _n(duration, dt)
    return CurrentTrace(np.linspace(float(start), float(stop), n), dt_ms=dt)


def sinusoidal_current(amplitude: float,
                       frequency: float,
                       duration: float,
                       dt: float,
                       offset: float = 0.0,
                       phase: float = 0.0) -> CurrentTrace:
    """
    offset + amplitude * sin(2*pi*frequency*t + phase).

    Args:
        frequency: Hz.
        phase: degrees.
    """
    t = np.arange(_n(duration, dt), dtype=np.float64) * dt * 1e-3
    data = float(offset) + float(amplitude) * np.sin(2.0 * math.pi * frequency * t + math.radians(phase))
    return CurrentTrace(data, dt_ms=dt)


def noise_current(mean: float,
                  std: float,
                  duration: float,
                  dt: float,
                  dt_noise: Optional[float] = None,
                  seed: int = 0) -> CurrentTrace:
    """Gaussian white noise held constant for `dt_noise` ms (default: one step)."""
    assert std >= 0
    hold = max(1, _n(dt_noise, dt)) if dt_noise else 1
    n = _n(duration, dt)
    rs = np.random.RandomState(int(seed))
    levels = rs.normal(float(mean), float(std), size=int(math.ceil(n / hold)))
    return CurrentTrace(np.repeat(levels, hold)[:n], dt_ms=dt)


def from_array(data: np.ndarray, dt: float) -> CurrentTrace:
    """Wrap an array (T,) into a CurrentTrace."""
    return CurrentTrace(np.asarray(data), dt_ms=float(dt))


def from_npy(path: str, dt: Optional[float] = None) -> CurrentTrace:
    """
    Load a (T,) array from .npy. The step size is not stored in the file and
    must be given.
    """
    arr = np.load(path)
    if arr.ndim != 1:
        raise ValueError("NPY must contain a 1D array (T,)")
    if dt is None:
        raise ValueError("dt must be provided for from_npy().")
    return CurrentTrace(arr, dt_ms=float(dt))


def shifted(trace: CurrentTrace, delay_steps: int, n_steps: int) -> np.ndarray:
    """Trace delayed by `delay_steps`, zero-padded/truncated to `n_steps`."""
    out = np.zeros(n_steps, dtype=np.float64)
    if delay_steps >= n_steps:
        return out
    seg = trace.data[:n_steps - delay_steps]
    out[delay_steps:delay_steps + seg.size] = seg
    return out


def trace_bounds(trace: CurrentTrace) -> Tuple[float, float]:
    if trace.n_steps == 0:
        return 0.0, 0.0
    return float(trace.data.min()), float(trace.data.max())
