import os, sys, json
import pytest

_THIS_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_THIS_DIR, '..'))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from cdpoisson.config_parser import load_config, validate_config


def _write(tmp_path, cfg):
    p = tmp_path / 'cfg.json'
    p.write_text(json.dumps(cfg), encoding='utf-8')
    return str(p)


def test_manifest_expansion_and_defaults(tmp_path):
    path = _write(tmp_path, {
        "manifest": {"$DATA": "$BASE_DIR/data"},
        "inputs": {"module": "npy", "path": "${DATA}/cur.npy"},
        "devices": [{"model": "cd_poisson_generator"}],
    })
    cfg = load_config(path)
    assert cfg['manifest']['BASE_DIR'] == str(tmp_path)
    assert cfg['manifest']['OUTPUT_DIR'] == os.path.join(str(tmp_path), 'results')
    assert cfg['inputs'] == [{"module": "npy", "path": f"{tmp_path}/data/cur.npy"}]
    assert cfg['run']['mode'] == 'simulate'
    assert cfg['run']['resolution'] == 0.1
    assert cfg['output'] == {} and cfg['record'] == {}


@pytest.mark.parametrize('cfg', [
    {"inputs": {}},
    {"devices": [{}]},
    {"devices": [{}], "inputs": {}, "run": {"mode": "batch"}},
    {"devices": [{}], "inputs": {}, "run": {"resolution": 0.0}},
])
def test_validation_errors(cfg):
    with pytest.raises(ValueError):
        validate_config(cfg)
