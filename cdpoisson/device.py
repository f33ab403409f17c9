"""
Current-driven Poisson generator devices.

Two models share one device class and differ only in their parameter struct:

- cd_poisson_generator: clamped-linear rate, updated on every step whose
  input current differs from the last one.
- rbf_poisson_generator: Gaussian-bump rate, updated once per slice from
  the slice-average current. Spike counts are requested per step as
  PendingDraw placeholders and resolved by `event_hook` after the slice rate
  is known, independently for every spike target.

A Poisson generator may emit more than one spike in a step. It then sends a
single event with that multiplicity instead of n separate events; events
with multiplicity 0 are never sent.

Lifecycle driven by the host:
    init_state(proto) -> init_buffers(resolution_ms, buffer_steps)
    -> calibrate() -> update(origin, lag_from, lag_to, rng, queue) ...
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Sequence
import logging

import numpy as np

from .buffers import DataLogger, Recordables, RingBuffer
from .errors import BadProperty, NotCalibratedError, UnknownModelError, UnknownReceptorType
from .events import CurrentEvent, PendingDraw, SpikeEvent
from .params import ClampedLinearParams, GaussianBumpParams, State
from .poisson import PoissonSampler, rate_to_lambda

logger = logging.getLogger(__name__)

MODELS = {
    'cd_poisson_generator': ClampedLinearParams,
    'rbf_poisson_generator': GaussianBumpParams,
}

UNINITIALIZED = 'uninitialized'
CALIBRATED = 'calibrated'
RUNNING = 'running'


@dataclass
class Buffers:
    currents: RingBuffer
    logger: DataLogger
    step_ms: Optional[float] = None  # cached by init_buffers


class PoissonGeneratorDevice:
    """
    Poisson spike source whose rate follows the input current.

    Args:
        model: key of MODELS.
        params: parameter overrides, validated before anything is stored.
        gid: node id, used as event sender.
    """

    def __init__(self, model: str = 'cd_poisson_generator',
                 params: Optional[Mapping[str, Any]] = None, gid: int = 0):
        if model not in MODELS:
            raise UnknownModelError(f"Unknown model '{model}'; available: {sorted(MODELS)}")
        self.model = model
        self.gid = int(gid)
        self.thread = 0

        self.P = MODELS[model]().updated(params or {})
        self.S = State(input_current=0.0 if self.P.kind == 'clamped_linear' else None)
        self.V = PoissonSampler()

        self.recordables = Recordables()
        self.recordables.register('rate', lambda: self.S.rate)
        if self.S.input_current is not None:
            self.recordables.register('input_current', lambda: self.S.input_current)

        self.B = Buffers(currents=RingBuffer(1), logger=DataLogger(self.recordables))
        self.lifecycle = UNINITIALIZED

    def __repr__(self):
        return f"PoissonGeneratorDevice(model={self.model!r}, gid={self.gid}, rate={self.S.rate})"

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_status(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {'model': self.model, 'global_id': self.gid, 'state': self.lifecycle}
        d.update(self.P.get())
        d.update(self.S.get())
        d['recordables'] = self.recordables.names
        return d

    def set_status(self, d: Mapping[str, Any]) -> None:
        known = set(self.P.get()) | set(self.S.get())
        unknown = [k for k in d if k not in known]
        if unknown:
            raise BadProperty(f"Unknown properties for {self.model}: {unknown}")
        ptmp = self.P.updated(d)  # throws if BadProperty
        stmp = self.S.updated(d)
        lam = None
        if self.B.step_ms is not None:
            lam = rate_to_lambda(stmp.rate, self.B.step_ms)
        # if we get here, temporaries contain a consistent set of properties
        self.P = ptmp
        self.S = stmp
        if lam is not None:
            self.V.set_lambda(lam)

    # ------------------------------------------------------------------
    # Connections
    # ------------------------------------------------------------------

    def handles_test_event(self, kind: str, receptor_type: int = 0) -> int:
        if kind not in ('current', 'data_logging'):
            raise ValueError(f"{self.model} does not handle {kind} events.")
        if receptor_type != 0:
            raise UnknownReceptorType(receptor_type, self.model)
        return 0

    def connect_logging_device(self, record_from: Sequence[str], interval: int = 1,
                               receptor_type: int = 0) -> int:
        self.handles_test_event('data_logging', receptor_type)
        return self.B.logger.connect_logging_device(record_from, interval)

    def handle_current(self, e: CurrentEvent, slice_origin: int) -> None:
        assert e.delay_steps > 0
        self.B.currents.add_value(e.get_rel_delivery_steps(slice_origin), e.weight * e.current)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init_state(self, proto: 'PoissonGeneratorDevice') -> None:
        if proto.model != self.model:
            raise BadProperty(f"Cannot copy state of {proto.model} into {self.model}.")
        self.S = State(rate=proto.S.rate, input_current=proto.S.input_current)

    def init_buffers(self, resolution_ms: float, buffer_steps: int) -> None:
        self.B.currents.resize(buffer_steps)
        self.B.logger.reset()
        self.B.step_ms = float(resolution_ms)

    def calibrate(self) -> None:
        if self.B.step_ms is None:
            raise NotCalibratedError("init_buffers() must be called before calibrate().")
        self.B.logger.init()
        if self.P.kind == 'clamped_linear':
            self.S.rate = self.P.compute_rate(self.S.input_current)
        # rate is in Hz, step in ms
        self.V.set_lambda(rate_to_lambda(self.S.rate, self.B.step_ms))
        self.lifecycle = CALIBRATED
        logger.debug("%r calibrated, lambda=%g", self, self.V.lam)

    # ------------------------------------------------------------------
    # Update
    # ------------------------------------------------------------------

    def update(self, origin: int, lag_from: int, lag_to: int,
               rng: np.random.RandomState, queue) -> None:
        """
        Advance the device over steps [lag_from, lag_to) of the slice at `origin`.

        `queue` receives SpikeEvents via send() and PendingDraws via defer().
        """
        if self.lifecycle == UNINITIALIZED:
            raise NotCalibratedError(f"{self.model} {self.gid} must be calibrated before update().")
        assert 0 <= lag_from < lag_to
        self.lifecycle = RUNNING

        if self.P.kind == 'gaussian_bump':
            self._update_slice(origin, lag_from, lag_to, queue)
        else:
            self._update_steps(origin, lag_from, lag_to, rng, queue)

    def _update_steps(self, origin, lag_from, lag_to, rng, queue):
        S = self.S
        for lag in range(lag_from, lag_to):
            new_current = self.B.currents.get_value(lag)

            # Update the firing rate only when the input current changes
            if new_current != S.input_current:
                S.input_current = new_current
                rate = self.P.compute_rate(new_current)
                if rate != S.rate:
                    S.rate = rate
                    self.V.set_lambda(rate_to_lambda(rate, self.B.step_ms))

            if S.rate > 0.0:
                n_spikes = self.V.draw(rng)
                if n_spikes > 0:
                    queue.send(SpikeEvent(self.gid, n_spikes, lag))

            self.B.logger.record_data(origin + lag)

    def _update_slice(self, origin, lag_from, lag_to, queue):
        current_sum = 0.0
        for lag in range(lag_from, lag_to):
            current_sum += self.B.currents.get_value(lag)
            queue.defer(PendingDraw(self.gid, lag))
            self.B.logger.record_data(origin + lag)

        average_current = current_sum / float(lag_to - lag_from)
        self.S.rate = self.P.compute_rate(average_current)
        # lambda is updated only once per slice
        self.V.set_lambda(rate_to_lambda(self.S.rate, self.B.step_ms))

    def event_hook(self, pending: PendingDraw, rng: np.random.RandomState) -> Optional[SpikeEvent]:
        """Resolve one deferred draw with the current lambda; None for a zero count."""
        n_spikes = self.V.draw(rng)
        if n_spikes > 0:
            return SpikeEvent(pending.sender, n_spikes, pending.lag)
        return None


def cd_poisson_generator(gid: int = 0, **params) -> PoissonGeneratorDevice:
    """Clamped-linear generator (min/max current window)."""
    return PoissonGeneratorDevice('cd_poisson_generator', params, gid=gid)


def rbf_poisson_generator(gid: int = 0, **params) -> PoissonGeneratorDevice:
    """Gaussian-bump generator (mean/sigma current)."""
    return PoissonGeneratorDevice('rbf_poisson_generator', params, gid=gid)
