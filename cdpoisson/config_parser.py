"""
JSON config loader for the generator pipeline.

Schema (subset):
- manifest: BASE_DIR, OUTPUT_DIR (and any other $VAR used in strings)
- run: resolution (ms), min_delay (ms), tstop (ms), n_threads, base_seed,
       mode ('simulate'|'trace'), backend ('numpy'|'jax', trace mode only)
- inputs: one dict or a list; module ('constant'|'step'|'ramp'|'sine'|'noise'|'npy'),
          module fields, weight, delay (ms), targets (device names; default all)
- devices: list of {name, model, params, n}  -- or --
  device_types: population schema (see generator.py)
- record: {interval (ms)} for the rate recording written to rates_h5
- output: output_dir, spikes_csv, spikes_h5, rates_h5, overwrite_output_dir
"""

from __future__ import annotations
from typing import Any, Dict
import os, json

RUN_DEFAULTS = {
    'resolution': 0.1,
    'min_delay': 1.0,
    'tstop': 1000.0,
    'n_threads': 1,
    'base_seed': 0,
    'mode': 'simulate',
}

MODES = ('simulate', 'trace')


def _expand_vars(s: str, manifest: Dict[str, str]) -> str:
    # Longest names first so $OUTPUT_DIR is not clobbered by a $OUTPUT entry.
    out = s
    for k in sorted(manifest, key=len, reverse=True):
        v = manifest[k]
        out = out.replace('${' + k + '}', v).replace('$' + k, v)
    return out


def _expand(obj, manifest):
    if isinstance(obj, dict):
        return {k: _expand(v, manifest) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_expand(v, manifest) for v in obj]
    if isinstance(obj, str):
        return _expand_vars(obj, manifest)
    return obj


def _manifest(cfg: Dict[str, Any], base_dir: str) -> Dict[str, str]:
    raw = cfg.get('manifest', {})
    # Accept both "BASE_DIR" and "$BASE_DIR" keys.
    manifest = {k.lstrip('$'): str(v) for k, v in raw.items()}
    manifest.setdefault('BASE_DIR', base_dir)
    manifest.setdefault('OUTPUT_DIR', os.path.join(manifest['BASE_DIR'], 'results'))
    # Manifest entries may reference each other (e.g. OUTPUT_DIR=$BASE_DIR/out).
    for _ in range(len(manifest)):
        manifest = {k: _expand_vars(v, manifest) for k, v in manifest.items()}
    return manifest


def validate_config(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Fill run defaults and check the sections the pipeline needs."""
    run = dict(RUN_DEFAULTS)
    run.update(cfg.get('run', {}))
    if run['mode'] not in MODES:
        raise ValueError(f"run.mode must be one of {MODES}, got {run['mode']!r}")
    for key in ('resolution', 'min_delay', 'tstop'):
        if float(run[key]) <= 0:
            raise ValueError(f"run.{key} must be positive.")
    cfg['run'] = run

    if not cfg.get('devices') and not cfg.get('device_types'):
        raise ValueError("Config needs a 'devices' or 'device_types' section.")
    if 'inputs' not in cfg:
        raise ValueError("Config needs an 'inputs' section.")
    if isinstance(cfg['inputs'], dict):
        cfg['inputs'] = [cfg['inputs']]
    cfg.setdefault('output', {})
    cfg.setdefault('record', {})
    return cfg


def load_config(path: str) -> Dict[str, Any]:
    with open(path, 'r', encoding='utf-8') as f:
        cfg = json.load(f)

    manifest = _manifest(cfg, os.path.abspath(os.path.dirname(path)))
    cfg = _expand({k: v for k, v in cfg.items() if k != 'manifest'}, manifest)
    cfg['manifest'] = manifest
    return validate_config(cfg)
