import os, sys, math
import numpy as np
import pytest

_THIS_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_THIS_DIR, '..'))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from cdpoisson.transfer import clamped_linear, gaussian_bump, rate_trace


CL = dict(min_current=0.0, max_current=1.0, min_rate=1.0, max_rate=10.0)
GB = dict(mean_current=0.0, sigma_current=1.0, min_rate=1.0, max_rate=10.0)


def test_clamped_linear_saturates_outside_window():
    for c in (-5.0, -0.1, 0.0):
        assert clamped_linear(c, **CL) == 1.0
    for c in (1.0, 1.5, 100.0):
        assert clamped_linear(c, **CL) == 10.0


def test_clamped_linear_strictly_increasing_inside_window():
    xs = np.linspace(0.01, 0.99, 50)
    ys = [clamped_linear(float(x), **CL) for x in xs]
    assert all(b > a for a, b in zip(ys, ys[1:]))
    assert clamped_linear(0.5, **CL) == pytest.approx(5.5)


def test_clamped_linear_empty_window_is_a_step():
    p = dict(min_current=0.3, max_current=0.3, min_rate=2.0, max_rate=8.0)
    assert clamped_linear(0.3, **p) == 2.0
    assert clamped_linear(0.30001, **p) == 8.0
    assert clamped_linear(-1.0, **p) == 2.0


def test_gaussian_peak_symmetry_and_tails():
    assert gaussian_bump(0.0, **GB) == 10.0
    for d in (0.3, 1.0, 2.5):
        assert gaussian_bump(d, **GB) == pytest.approx(gaussian_bump(-d, **GB))
    assert gaussian_bump(2.0, **GB) == pytest.approx(1.0 + 9.0 * math.exp(-2.0))
    assert gaussian_bump(50.0, **GB) == pytest.approx(1.0)


def test_rate_trace_matches_scalar_clamped():
    x = np.array([-1.0, 0.0, 0.25, 0.5, 1.0, 2.0])
    r = rate_trace('cd_poisson_generator', CL, x)
    expected = [clamped_linear(float(v), **CL) for v in x]
    np.testing.assert_allclose(r, expected)


def test_rate_trace_gaussian_uses_slice_means():
    # two slices of 2 steps + a partial slice of 1 step
    x = np.array([1.0, 3.0, 0.0, 0.0, 2.0])
    r = rate_trace('rbf_poisson_generator', GB, x, slice_steps=2)
    np.testing.assert_allclose(r[:2], gaussian_bump(2.0, **GB))
    np.testing.assert_allclose(r[2:4], 10.0)
    np.testing.assert_allclose(r[4], gaussian_bump(2.0, **GB))


def test_rate_trace_rejects_bad_input():
    with pytest.raises(ValueError):
        rate_trace('rbf_poisson_generator', GB, np.zeros(3))
    with pytest.raises(ValueError):
        rate_trace('iaf_psc_alpha', CL, np.zeros(3))


def test_clamped_linear_inverted_window_is_a_step_at_min_current():
    p = dict(min_current=0.5, max_current=0.2, min_rate=2.0, max_rate=8.0)
    assert clamped_linear(0.3, **p) == 2.0
    assert clamped_linear(0.5, **p) == 2.0
    assert clamped_linear(0.6, **p) == 8.0
