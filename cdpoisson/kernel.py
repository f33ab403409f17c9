"""
Minimal in-process host for driving generator devices.

Time advances in slices of `min_delay` steps. Per slice:

1. current sources read their traces and produce CurrentEvents;
2. every device runs update() with the RNG of its virtual thread;
3. spike events go to the device's spike recorders; deferred draws of the
   Gaussian model are resolved once per recorder (independent counts);
4. ring buffers are advanced past the slice;
5. the slice's current events are delivered. Connection delays are at least
   `min_delay`, so they always land in a later slice.
"""

from __future__ import annotations
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import logging
import numpy as np

from .device import MODELS, PoissonGeneratorDevice
from .errors import BadProperty, CDPoissonError, UnknownModelError
from .events import CurrentEvent, PendingDraw, SpikeEvent
from .poisson import _gen_seeds
from .stimuli import CurrentTrace

logger = logging.getLogger(__name__)


class RngRegistry:
    """One RandomState per virtual thread, seeded from a base seed."""

    def __init__(self, n_threads: int = 1, base_seed: int = 0):
        if n_threads < 1:
            raise ValueError("n_threads must be >= 1.")
        seeds = _gen_seeds(n_threads, base_seed)
        self._rngs = [np.random.RandomState(int(s)) for s in seeds]

    def __len__(self):
        return len(self._rngs)

    def get_rng(self, thread: int) -> np.random.RandomState:
        return self._rngs[thread]


class CurrentSource:
    """Replays a CurrentTrace, one amplitude per simulation step."""

    def __init__(self, trace: CurrentTrace, gid: int):
        self.trace = trace
        self.gid = gid

    def amplitude(self, step: int) -> float:
        return self.trace.amplitude(step)


class SpikeRecorder:
    def __init__(self, resolution_ms: float):
        self.resolution_ms = resolution_ms
        self._senders: List[int] = []
        self._steps: List[int] = []
        self._mult: List[int] = []

    def handle(self, e: SpikeEvent, slice_origin: int) -> None:
        self._senders.append(e.sender)
        self._steps.append(slice_origin + e.lag)
        self._mult.append(e.multiplicity)

    @property
    def n_events(self) -> int:
        return len(self._steps)

    @property
    def events(self) -> Dict[str, np.ndarray]:
        steps = np.asarray(self._steps, dtype=np.int64)
        return {
            'senders': np.asarray(self._senders, dtype=np.int64),
            'steps': steps,
            'times': steps.astype(np.float64) * self.resolution_ms,
            'multiplicities': np.asarray(self._mult, dtype=np.int64),
        }


class Multimeter:
    """View on a device's data logger with step times converted to ms."""

    def __init__(self, device: PoissonGeneratorDevice, resolution_ms: float):
        self.device = device
        self.resolution_ms = resolution_ms

    @property
    def events(self) -> Dict[str, np.ndarray]:
        ev = self.device.B.logger.events
        ev['times'] = ev['steps'].astype(np.float64) * self.resolution_ms
        return ev


class _SliceQueue:
    def __init__(self):
        self.sent: List[SpikeEvent] = []
        self.deferred: List[PendingDraw] = []

    def send(self, e: SpikeEvent) -> None:
        self.sent.append(e)

    def defer(self, p: PendingDraw) -> None:
        self.deferred.append(p)


class Simulation:
    """
    Args:
        resolution_ms: step size.
        min_delay_ms: slice length and smallest allowed connection delay.
        n_threads: number of virtual threads (RNG streams).
        base_seed: seed for the per-thread streams.
    """

    def __init__(self, resolution_ms: float = 0.1, min_delay_ms: float = 1.0,
                 n_threads: int = 1, base_seed: int = 0):
        if resolution_ms <= 0:
            raise ValueError("resolution_ms must be positive.")
        self.resolution_ms = float(resolution_ms)
        self.min_delay = max(1, self.ms_to_steps(min_delay_ms))
        self.rngs = RngRegistry(n_threads, base_seed)

        self.devices: Dict[int, PoissonGeneratorDevice] = {}
        self.sources: Dict[int, CurrentSource] = {}
        self._connections: Dict[int, List[Tuple[int, float, int]]] = {}
        self._recorders: Dict[int, List[SpikeRecorder]] = {}
        self._max_delay = self.min_delay
        self._next_gid = 1
        self._clock = 0
        self._buffers_ready = False

    def ms_to_steps(self, t_ms: float) -> int:
        return int(round(float(t_ms) / self.resolution_ms))

    @property
    def time(self) -> float:
        return self._clock * self.resolution_ms

    def _new_gid(self) -> int:
        gid = self._next_gid
        self._next_gid += 1
        return gid

    # ------------------------------------------------------------------
    # Building
    # ------------------------------------------------------------------

    def create(self, model: str, params: Optional[Mapping[str, Any]] = None,
               trace: Optional[CurrentTrace] = None) -> int:
        """Create a device (MODELS key) or a 'current_source' replaying `trace`."""
        if model == 'current_source':
            if trace is None:
                raise ValueError("current_source requires a trace.")
            if abs(trace.dt_ms - self.resolution_ms) > 1e-12:
                raise ValueError(f"Trace dt {trace.dt_ms} ms does not match resolution {self.resolution_ms} ms.")
            gid = self._new_gid()
            self.sources[gid] = CurrentSource(trace, gid)
            return gid
        if model not in MODELS:
            raise UnknownModelError(f"Unknown model '{model}'")
        gid = self._new_gid()
        dev = PoissonGeneratorDevice(model, params, gid=gid)
        dev.thread = gid % len(self.rngs)
        if self._buffers_ready:
            dev.init_buffers(self.resolution_ms, self._max_delay + self.min_delay)
        self.devices[gid] = dev
        return gid

    def connect(self, source: int, target: int, weight: float = 1.0,
                delay_ms: Optional[float] = None, receptor_type: int = 0) -> None:
        if source not in self.sources:
            raise ValueError(f"Node {source} is not a current source.")
        if target not in self.devices:
            raise ValueError(f"Node {target} is not a generator device.")
        delay = self.min_delay if delay_ms is None else self.ms_to_steps(delay_ms)
        if delay < self.min_delay:
            raise BadProperty(f"Delay {delay} steps is below min_delay {self.min_delay} steps.")
        if self._buffers_ready and delay > self._max_delay:
            raise CDPoissonError("Cannot increase the maximal delay after simulation has started.")
        self.devices[target].handles_test_event('current', receptor_type)
        self._connections.setdefault(source, []).append((target, float(weight), delay))
        self._max_delay = max(self._max_delay, delay)

    def connect_spike_recorder(self, device: int) -> SpikeRecorder:
        rec = SpikeRecorder(self.resolution_ms)
        self._recorders.setdefault(device, []).append(rec)
        return rec

    def connect_multimeter(self, device: int, record_from: Sequence[str] = ('rate',),
                           interval_ms: Optional[float] = None, receptor_type: int = 0) -> Multimeter:
        interval = 1 if interval_ms is None else max(1, self.ms_to_steps(interval_ms))
        dev = self.devices[device]
        dev.connect_logging_device(record_from, interval, receptor_type)
        return Multimeter(dev, self.resolution_ms)

    def get_status(self, gid: int) -> Dict[str, Any]:
        return self.devices[gid].get_status()

    def set_status(self, gid: int, d: Mapping[str, Any]) -> None:
        self.devices[gid].set_status(d)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def simulate(self, t_ms: float) -> None:
        n_steps = self.ms_to_steps(t_ms)
        if n_steps < 0:
            raise ValueError("Simulation time must be non-negative.")
        if not self._buffers_ready:
            for dev in self.devices.values():
                dev.init_buffers(self.resolution_ms, self._max_delay + self.min_delay)
            self._buffers_ready = True
        for dev in self.devices.values():
            dev.calibrate()

        logger.info("simulating %d steps (%d devices, %d sources) from t=%g ms",
                    n_steps, len(self.devices), len(self.sources), self.time)
        while n_steps > 0:
            n = min(self.min_delay, n_steps)
            self._run_slice(n)
            n_steps -= n

    def _run_slice(self, n: int) -> None:
        origin = self._clock

        outgoing: List[Tuple[int, CurrentEvent]] = []
        for src in self.sources.values():
            for lag in range(n):
                amp = src.amplitude(origin + lag)
                if amp == 0.0:
                    continue
                for target, weight, delay in self._connections.get(src.gid, ()):
                    outgoing.append((target, CurrentEvent(amp, weight, origin + lag, delay)))

        queue = _SliceQueue()
        for dev in self.devices.values():
            dev.update(origin, 0, n, self.rngs.get_rng(dev.thread), queue)

        for e in queue.sent:
            for rec in self._recorders.get(e.sender, ()):
                rec.handle(e, origin)
        for p in queue.deferred:
            dev = self.devices[p.sender]
            rng = self.rngs.get_rng(dev.thread)
            for rec in self._recorders.get(p.sender, ()):
                e = dev.event_hook(p, rng)
                if e is not None:
                    rec.handle(e, origin)

        for dev in self.devices.values():
            dev.B.currents.advance(n)
        self._clock += n

        for target, e in outgoing:
            self.devices[target].handle_current(e, self._clock)
