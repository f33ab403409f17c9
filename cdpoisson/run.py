"""
CLI entry: python -m cdpoisson.run path/to/config.json

Runs input currents -> generator devices -> Poisson spikes -> outputs (CSV/H5).

Two modes:
- simulate: step the devices on the host kernel (delays, slices, per-thread
  RNG streams, deferred draws of the Gaussian model).
- trace: evaluate the transfer functions over whole delayed current traces
  (numpy or JAX backend) and draw all counts in one batch.
"""

from __future__ import annotations
import sys, os
import logging
from typing import Any, Dict, List, Tuple

import numpy as np

from .config_parser import load_config
from .device import MODELS
from .generator import generate_population
from .io_output import write_spikes_csv, write_spikes_h5, write_rates_h5
from .kernel import Simulation
from .poisson import sample_spike_counts
from .stimuli import (CurrentTrace, constant_current, step_current, ramp_current,
                      sinusoidal_current, noise_current, from_npy, shifted, trace_bounds)
from .transfer import rate_trace

logger = logging.getLogger(__name__)


def _ensure_dir(path: str, overwrite: bool) -> None:
    if os.path.isdir(path):
        if not overwrite:
            raise FileExistsError(f"Output directory {path} exists and overwrite_output_dir is false.")
    else:
        os.makedirs(path, exist_ok=True)


def build_trace(inp: Dict[str, Any], resolution: float, tstop: float) -> CurrentTrace:
    mod = inp.get('module', 'constant').lower()
    duration = float(inp.get('duration', tstop))

    if mod == 'constant':
        return constant_current(float(inp.get('amplitude', 0.0)), duration, resolution)
    elif mod == 'step':
        return step_current(inp.get('amplitude_times', []), inp.get('amplitude_values', []),
                            duration, resolution)
    elif mod == 'ramp':
        return ramp_current(float(inp.get('start', 0.0)), float(inp.get('stop', 1.0)),
                            duration, resolution)
    elif mod == 'sine':
        return sinusoidal_current(
            amplitude=float(inp.get('amplitude', 1.0)),
            frequency=float(inp.get('frequency', 4.0)),
            duration=duration,
            dt=resolution,
            offset=float(inp.get('offset', 0.0)),
            phase=float(inp.get('phase', 0.0)),
        )
    elif mod == 'noise':
        return noise_current(
            mean=float(inp.get('mean', 0.0)),
            std=float(inp.get('std', 1.0)),
            duration=duration,
            dt=resolution,
            dt_noise=inp.get('dt_noise'),
            seed=int(inp.get('seed', 0)),
        )
    elif mod == 'npy':
        if 'path' not in inp:
            raise ValueError("npy input requires 'path'.")
        return from_npy(inp['path'], dt=resolution)
    else:
        raise ValueError(f"Unknown input module: {mod}")


def build_devices(cfg: Dict[str, Any]) -> List[Tuple[str, str, Dict[str, float]]]:
    """(name, model, params) for every device in the config."""
    if cfg.get('device_types'):
        devs, meta = generate_population(cfg['device_types'], base_seed=int(cfg['run']['base_seed']))
        return [(str(name), model, params) for name, (model, params) in zip(meta['types'], devs)]

    out = []
    for dcfg in cfg['devices']:
        model = dcfg.get('model', 'cd_poisson_generator')
        name = dcfg.get('name', model)
        for _ in range(int(dcfg.get('n', 1))):
            out.append((name, model, dict(dcfg.get('params', {}))))
    return out


def _targets(inp: Dict[str, Any], devices) -> List[int]:
    names = inp.get('targets')
    if names is None:
        return list(range(len(devices)))
    idx = [i for i, (name, _, _) in enumerate(devices) if name in names]
    if not idx:
        raise ValueError(f"Input targets {names} match no device.")
    return idx


def _backend(run: Dict[str, Any]) -> str:
    return str(run.get('backend', os.getenv('CDPOISSON_BACKEND', 'numpy'))).lower()


def run_simulation(cfg, devices, traces):
    run = cfg['run']
    res = float(run['resolution'])
    sim = Simulation(resolution_ms=res, min_delay_ms=float(run['min_delay']),
                     n_threads=int(run['n_threads']), base_seed=int(run['base_seed']))

    gids = [sim.create(model, params) for _, model, params in devices]
    for inp, trace in traces:
        src = sim.create('current_source', trace=trace)
        for i in _targets(inp, devices):
            sim.connect(src, gids[i], weight=float(inp.get('weight', 1.0)), delay_ms=inp.get('delay'))

    recorders = [sim.connect_spike_recorder(g) for g in gids]
    record = cfg['record']
    meters = []
    if cfg['output'].get('rates_h5'):
        meters = [sim.connect_multimeter(g, ['rate'], record.get('interval')) for g in gids]

    sim.simulate(float(run['tstop']))

    idx_list, times_list, mult_list = [], [], []
    for i, rec in enumerate(recorders):
        ev = rec.events
        idx_list.append(np.full(ev['steps'].size, i, dtype=np.int64))
        times_list.append(ev['times'])
        mult_list.append(ev['multiplicities'])
    idx = np.concatenate(idx_list) if idx_list else np.array([], dtype=np.int64)
    times = np.concatenate(times_list) if times_list else np.array([], dtype=np.float64)
    mult = np.concatenate(mult_list) if mult_list else np.array([], dtype=np.int64)
    order = np.argsort(times, kind='mergesort')

    rates = None
    rate_dt = res
    if meters:
        rates = np.stack([m.events['rate'] for m in meters], axis=0)
        if record.get('interval'):
            rate_dt = max(1, sim.ms_to_steps(record['interval'])) * res
    return idx[order], times[order], mult[order], rates, rate_dt


def run_trace(cfg, devices, traces):
    run = cfg['run']
    res = float(run['resolution'])
    n_steps = int(round(float(run['tstop']) / res))
    slice_steps = max(1, int(round(float(run['min_delay']) / res)))

    currents = np.zeros((len(devices), n_steps), dtype=np.float64)
    for inp, trace in traces:
        delay = inp.get('delay')
        d = slice_steps if delay is None else int(round(float(delay) / res))
        contrib = float(inp.get('weight', 1.0)) * shifted(trace, d, n_steps)
        for i in _targets(inp, devices):
            currents[i] += contrib

    backend = _backend(run)
    rates = np.zeros_like(currents)
    for i, (_, model, params) in enumerate(devices):
        full = MODELS[model]().updated(params).get()
        if backend in ('jax', 'jnp'):
            from . import transfer_jax
            rates[i] = np.asarray(transfer_jax.rate_trace(model, full, currents[i], slice_steps=slice_steps))
        else:
            rates[i] = rate_trace(model, full, currents[i], slice_steps=slice_steps)

    idx, steps, mult = sample_spike_counts(rates, res, base_seed=int(run['base_seed']))
    return idx, steps.astype(np.float64) * res, mult, rates, res


def run_config(cfg: Dict[str, Any]) -> str:
    out = cfg.get('output', {})
    out_dir = out.get('output_dir', cfg['manifest']['OUTPUT_DIR'])
    overwrite = bool(out.get('overwrite_output_dir', True))
    _ensure_dir(out_dir, overwrite)

    run = cfg['run']
    devices = build_devices(cfg)
    traces = []
    for inp in cfg['inputs']:
        trace = build_trace(inp, float(run['resolution']), float(run['tstop']))
        lo, hi = trace_bounds(trace)
        logger.info("input %s: %d steps, current in [%g, %g]", inp.get('module', 'constant'), trace.n_steps, lo, hi)
        traces.append((inp, trace))

    if run['mode'] == 'trace':
        idx, times, mult, rates, rate_dt = run_trace(cfg, devices, traces)
    else:
        idx, times, mult, rates, rate_dt = run_simulation(cfg, devices, traces)
    logger.info("%d spike events (%d spikes) from %d devices", idx.size, int(mult.sum()), len(devices))

    if out.get('spikes_csv'):
        write_spikes_csv(os.path.join(out_dir, out['spikes_csv']), idx, times, mult)
    if out.get('spikes_h5'):
        write_spikes_h5(os.path.join(out_dir, out['spikes_h5']), idx, times, mult)
    if out.get('rates_h5') and rates is not None:
        write_rates_h5(os.path.join(out_dir, out['rates_h5']), rates, dt_ms=rate_dt,
                       gids=np.arange(len(devices)))

    print(f"Wrote outputs to: {out_dir}")
    return out_dir


def main(argv=None):
    if argv is None:
        argv = sys.argv[1:]
    if not argv:
        print("Usage: python -m cdpoisson.run path/to/config.json")
        return 1
    logging.basicConfig(level=os.getenv('CDPOISSON_LOG_LEVEL', 'WARNING').upper(),
                        format='%(asctime)s %(name)s %(levelname)s: %(message)s')
    cfg = load_config(argv[0])
    run_config(cfg)
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
