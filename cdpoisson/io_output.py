"""
Output writers for spikes and recorded rates.

CSV: three columns (gid,time,multiplicity). HDF5: group 'spikes' with
datasets 'node_ids', 'timestamps' and 'multiplicities'; rates under group
'rates'.
"""

from typing import Iterable, Optional
import numpy as np
import csv
import h5py


def write_spikes_csv(path: str, gids: Iterable[int], times: Iterable[float],
                     multiplicities: Optional[Iterable[int]] = None) -> None:
    gids = np.asarray(gids)
    times = np.asarray(times)
    mult = np.ones(gids.shape, dtype=np.int64) if multiplicities is None else np.asarray(multiplicities)
    with open(path, 'w', newline='') as f:
        w = csv.writer(f)
        w.writerow(['gid', 'time', 'multiplicity'])
        for g, t, m in zip(gids, times, mult):
            w.writerow([int(g), float(t), int(m)])


def write_spikes_h5(path: str, gids: Iterable[int], times: Iterable[float],
                    multiplicities: Optional[Iterable[int]] = None) -> None:
    gids = np.asarray(gids, dtype=np.int64)
    times = np.asarray(times, dtype=np.float64)
    mult = np.ones(gids.shape, dtype=np.int64) if multiplicities is None else np.asarray(multiplicities, dtype=np.int64)
    with h5py.File(path, 'w') as f:
        grp = f.create_group('spikes')
        grp.create_dataset('node_ids', data=gids, compression='gzip')
        grp.create_dataset('timestamps', data=times, compression='gzip')
        grp.create_dataset('multiplicities', data=mult, compression='gzip')
        grp.attrs.create('time_unit', 'ms')


def write_rates_h5(path: str, rates: np.ndarray, dt_ms: float,
                   gids: Optional[Iterable[int]] = None) -> None:
    """Write rates to HDF5.

    Datasets:
      - rates/values: (T,) or (N,T)
      - rates/node_ids: (N,) when gids are given
      - rates attrs: dt (ms), unit='Hz'
    """
    arr = np.asarray(rates)
    with h5py.File(path, 'w') as f:
        grp = f.create_group('rates')
        grp.create_dataset('values', data=arr, compression='gzip')
        if gids is not None:
            grp.create_dataset('node_ids', data=np.asarray(gids, dtype=np.int64))
        grp.attrs.create('dt', float(dt_ms))
        grp.attrs.create('unit', 'Hz')
