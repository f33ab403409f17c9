import os, sys
import numpy as np
import pytest

_THIS_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_THIS_DIR, '..'))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from cdpoisson.buffers import RingBuffer, Recordables, DataLogger
from cdpoisson.errors import BadProperty


def test_ring_buffer_sums_and_reads_without_clearing():
    rb = RingBuffer(6)
    rb.add_value(2, 1.5)
    rb.add_value(2, -0.5)
    rb.add_value(4, 3.0)
    assert rb.get_value(2) == 1.0
    assert rb.get_value(2) == 1.0
    assert rb.get_value(4) == 3.0
    assert rb.get_value(0) == 0.0


def test_ring_buffer_advance_clears_consumed_slots_and_wraps():
    rb = RingBuffer(4)
    rb.add_value(1, 1.0)
    rb.add_value(3, 2.0)
    rb.advance(2)
    # old slot 3 is now lag 1, old slot 1 was consumed
    assert rb.get_value(1) == 2.0
    assert rb.get_value(3) == 0.0
    rb.add_value(3, 5.0)  # wraps around the end of the storage
    assert rb.get_value(3) == 5.0
    rb.advance(4)
    assert all(rb.get_value(k) == 0.0 for k in range(4))


def test_ring_buffer_window_checks_and_clear():
    rb = RingBuffer(3)
    with pytest.raises(ValueError):
        rb.add_value(3, 1.0)
    with pytest.raises(ValueError):
        rb.get_value(-1)
    with pytest.raises(ValueError):
        rb.advance(4)
    with pytest.raises(ValueError):
        RingBuffer(0)
    rb.add_value(0, 1.0)
    rb.clear()
    assert rb.get_value(0) == 0.0


def test_recordables_and_logger_interval():
    state = {'rate': 1.0}
    rec = Recordables()
    rec.register('rate', lambda: state['rate'])
    assert rec.exposes_observable('rate')() == 1.0
    assert rec.exposes_observable('V_m') is None

    log = DataLogger(rec)
    log.record_data(0)
    assert log.events['steps'].size == 0  # not connected

    log.connect_logging_device(['rate'], interval=2)
    for step in range(6):
        state['rate'] = float(step)
        log.record_data(step)
    ev = log.events
    assert list(ev['steps']) == [0, 2, 4]
    np.testing.assert_allclose(ev['rate'], [0.0, 2.0, 4.0])

    log.reset()
    assert log.events['rate'].size == 0
    assert log.connected


def test_logger_rejects_unknown_names_and_bad_interval():
    log = DataLogger(Recordables())
    with pytest.raises(BadProperty):
        log.connect_logging_device(['rate'])
    rec = Recordables()
    rec.register('rate', lambda: 0.0)
    with pytest.raises(BadProperty):
        DataLogger(rec).connect_logging_device(['rate'], interval=0)
    with pytest.raises(BadProperty):
        DataLogger(rec).connect_logging_device([])
