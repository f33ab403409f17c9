"""
Device-side buffers: delayed current accumulation and analog data logging.

RingBuffer
    Sums weighted currents by delivery step. Slot indices are relative to the
    origin of the slice being processed. Reads never modify the buffer; the
    host calls `advance()` once a slice is done, which zeroes the consumed
    slots and moves the origin.

Recordables / DataLogger
    A device registers accessor callables under observable names at
    construction. A logging device connects with a list of names and an
    interval; `record_data(step)` then samples those accessors.
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional, Sequence
import logging
import numpy as np

from .errors import BadProperty

logger = logging.getLogger(__name__)


class RingBuffer:

    def __init__(self, size: int = 1):
        self._data = np.zeros(0, dtype=np.float64)
        self._origin = 0
        self.resize(size)

    @property
    def size(self) -> int:
        return int(self._data.size)

    def resize(self, size: int) -> None:
        size = int(size)
        if size < 1:
            raise ValueError("RingBuffer size must be >= 1.")
        self._data = np.zeros(size, dtype=np.float64)
        self._origin = 0

    def clear(self) -> None:
        self._data[:] = 0.0
        self._origin = 0

    def _index(self, rel_steps: int) -> int:
        rel_steps = int(rel_steps)
        if rel_steps < 0 or rel_steps >= self._data.size:
            raise ValueError(f"Delivery step {rel_steps} outside buffer window [0, {self._data.size}).")
        return (self._origin + rel_steps) % self._data.size

    def add_value(self, rel_steps: int, value: float) -> None:
        """Accumulate `value` for the step `rel_steps` after the slice origin."""
        self._data[self._index(rel_steps)] += float(value)

    def get_value(self, lag: int) -> float:
        """Net current for step `lag` of the current slice (read-only)."""
        return float(self._data[self._index(lag)])

    def advance(self, n_steps: int) -> None:
        """Zero the first `n_steps` slots of the window and shift the origin past them."""
        n_steps = int(n_steps)
        if n_steps < 0 or n_steps > self._data.size:
            raise ValueError(f"Cannot advance by {n_steps} steps (size {self._data.size}).")
        for k in range(n_steps):
            self._data[(self._origin + k) % self._data.size] = 0.0
        self._origin = (self._origin + n_steps) % self._data.size


class Recordables:
    """Name -> accessor registry owned by one device instance."""

    def __init__(self):
        self._accessors: Dict[str, Callable[[], float]] = {}

    def register(self, name: str, accessor: Callable[[], float]) -> None:
        self._accessors[name] = accessor

    def exposes_observable(self, name: str) -> Optional[Callable[[], float]]:
        return self._accessors.get(name)

    @property
    def names(self) -> List[str]:
        return list(self._accessors.keys())


class DataLogger:
    """Samples connected recordables into in-memory columns."""

    def __init__(self, recordables: Recordables):
        self._recordables = recordables
        self._record_from: List[str] = []
        self._interval = 1
        self._steps: List[int] = []
        self._values: Dict[str, List[float]] = {}

    @property
    def connected(self) -> bool:
        return bool(self._record_from)

    def connect_logging_device(self, record_from: Sequence[str], interval: int = 1) -> int:
        names = list(record_from)
        if not names:
            raise BadProperty("record_from must name at least one recordable.")
        unknown = [n for n in names if self._recordables.exposes_observable(n) is None]
        if unknown:
            raise BadProperty(f"Unknown recordables {unknown}; available: {self._recordables.names}")
        if int(interval) < 1:
            raise BadProperty("Recording interval must be >= 1 step.")
        self._record_from = names
        self._interval = int(interval)
        self._values = {n: [] for n in names}
        return 0

    def reset(self) -> None:
        """Drop recorded data; the connection is kept."""
        self._steps = []
        self._values = {n: [] for n in self._record_from}

    def init(self) -> None:
        logger.debug("data logger recording %s every %d step(s)", self._record_from, self._interval)

    def record_data(self, step: int) -> None:
        if not self._record_from or step % self._interval:
            return
        self._steps.append(int(step))
        for name in self._record_from:
            self._values[name].append(float(self._recordables.exposes_observable(name)()))

    @property
    def events(self) -> Dict[str, np.ndarray]:
        out = {'steps': np.asarray(self._steps, dtype=np.int64)}
        for name, vals in self._values.items():
            out[name] = np.asarray(vals, dtype=np.float64)
        return out
