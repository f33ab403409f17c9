import os, sys
import numpy as np
import pytest

_THIS_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_THIS_DIR, '..'))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from cdpoisson.kernel import Simulation, RngRegistry
from cdpoisson.stimuli import constant_current, step_current
from cdpoisson.errors import BadProperty, UnknownReceptorType, UnknownModelError


def test_current_arrives_after_connection_delay():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0)
    dev = sim.create('cd_poisson_generator', {'min_current': 0.0, 'max_current': 1.0})
    src = sim.create('current_source', trace=constant_current(0.5, 10.0, 0.1))
    sim.connect(src, dev, weight=2.0, delay_ms=2.0)
    mm = sim.connect_multimeter(dev, ['rate', 'input_current'])
    sim.simulate(10.0)

    ev = mm.events
    assert ev['steps'].size == 100
    np.testing.assert_allclose(ev['input_current'][:20], 0.0)
    np.testing.assert_allclose(ev['input_current'][20:], 1.0)
    np.testing.assert_allclose(ev['rate'][:20], 1.0)
    np.testing.assert_allclose(ev['rate'][20:], 10.0)
    assert ev['times'][20] == pytest.approx(2.0)
    assert sim.time == pytest.approx(10.0)


def test_currents_from_several_sources_are_summed():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=0.5)
    dev = sim.create('cd_poisson_generator', {'min_current': 0.0, 'max_current': 10.0,
                                              'min_rate': 0.0, 'max_rate': 100.0})
    a = sim.create('current_source', trace=constant_current(1.0, 5.0, 0.1))
    b = sim.create('current_source', trace=step_current([2.0], [3.0], 5.0, 0.1))
    sim.connect(a, dev)
    sim.connect(b, dev, weight=0.5)
    mm = sim.connect_multimeter(dev, ['input_current'])
    sim.simulate(5.0)
    cur = mm.events['input_current']
    # min_delay = 5 steps
    np.testing.assert_allclose(cur[:5], 0.0)
    np.testing.assert_allclose(cur[5:25], 1.0)
    np.testing.assert_allclose(cur[25:], 2.5)


def test_clamped_linear_empirical_rate():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0, base_seed=11)
    dev = sim.create('cd_poisson_generator', {'min_rate': 200.0, 'max_rate': 200.0})
    rec = sim.connect_spike_recorder(dev)
    sim.simulate(2000.0)
    ev = rec.events
    n = ev['multiplicities'].sum()
    assert abs(n / 2.0 - 200.0) / 200.0 < 0.15
    assert np.all(ev['multiplicities'] > 0)
    assert np.all(ev['senders'] == dev)
    assert np.all(np.diff(ev['steps']) >= 0)


def test_zero_rate_device_stays_silent():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0)
    dev = sim.create('cd_poisson_generator', {'min_rate': 0.0, 'max_rate': 50.0})
    src = sim.create('current_source', trace=constant_current(-1.0, 1000.0, 0.1))
    sim.connect(src, dev)
    rec = sim.connect_spike_recorder(dev)
    sim.simulate(1000.0)
    assert rec.n_events == 0


def test_gaussian_targets_draw_independently():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0, base_seed=3)
    dev = sim.create('rbf_poisson_generator', {'min_rate': 0.0, 'max_rate': 500.0})
    r1 = sim.connect_spike_recorder(dev)
    r2 = sim.connect_spike_recorder(dev)
    sim.simulate(1000.0)
    e1, e2 = r1.events, r2.events
    # no input: slice average equals mean_current, so rate = max_rate
    assert sim.get_status(dev)['rate'] == pytest.approx(500.0)
    for ev in (e1, e2):
        assert abs(ev['multiplicities'].sum() - 500.0) / 500.0 < 0.15
        assert np.all(ev['multiplicities'] > 0)
    assert not np.array_equal(e1['steps'], e2['steps'])


def test_gaussian_rate_tracks_input_slice_average():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0)
    dev = sim.create('rbf_poisson_generator', {'mean_current': 0.0, 'sigma_current': 1.0,
                                               'min_rate': 1.0, 'max_rate': 10.0})
    src = sim.create('current_source', trace=constant_current(2.0, 20.0, 0.1))
    sim.connect(src, dev)
    sim.simulate(5.0)
    assert sim.get_status(dev)['rate'] == pytest.approx(1.0 + 9.0 * np.exp(-2.0))


def test_reproducible_for_base_seed():
    def run(seed):
        sim = Simulation(base_seed=seed)
        dev = sim.create('cd_poisson_generator', {'min_rate': 100.0, 'max_rate': 100.0})
        rec = sim.connect_spike_recorder(dev)
        sim.simulate(500.0)
        return rec.events['steps']

    assert np.array_equal(run(1), run(1))
    assert not np.array_equal(run(1), run(2))


def test_rng_registry_and_thread_assignment():
    reg = RngRegistry(3, base_seed=0)
    assert len(reg) == 3
    assert reg.get_rng(0) is not reg.get_rng(1)
    sim = Simulation(n_threads=2)
    a = sim.create('cd_poisson_generator')
    b = sim.create('cd_poisson_generator')
    assert {sim.devices[a].thread, sim.devices[b].thread} == {0, 1}


def test_connection_errors_leave_device_usable():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0)
    dev = sim.create('cd_poisson_generator')
    src = sim.create('current_source', trace=constant_current(0.5, 5.0, 0.1))
    with pytest.raises(UnknownReceptorType):
        sim.connect(src, dev, receptor_type=1)
    with pytest.raises(BadProperty):
        sim.connect(src, dev, delay_ms=0.5)
    with pytest.raises(ValueError):
        sim.connect(dev, src)
    with pytest.raises(UnknownModelError):
        sim.create('iaf_psc_alpha')
    with pytest.raises(ValueError):
        sim.create('current_source', trace=constant_current(0.5, 5.0, 0.2))
    sim.connect(src, dev)
    sim.simulate(5.0)
    assert sim.get_status(dev)['state'] == 'running'


def test_set_status_between_runs_is_used_after_recalibration():
    sim = Simulation()
    dev = sim.create('cd_poisson_generator')
    sim.simulate(2.0)
    assert sim.get_status(dev)['rate'] == 1.0
    sim.set_status(dev, {'min_rate': 3.0})
    sim.simulate(2.0)
    assert sim.get_status(dev)['rate'] == 3.0
    assert sim.devices[dev].V.lam == pytest.approx(0.1 * 3.0 * 1e-3)


def test_partial_final_slice():
    sim = Simulation(resolution_ms=0.1, min_delay_ms=1.0)
    dev = sim.create('cd_poisson_generator')
    mm = sim.connect_multimeter(dev, ['rate'])
    sim.simulate(1.55)
    assert mm.events['steps'].size == 16
