import os

import numpy as np
import pytest

from bsqp.core import config
from bsqp.bspline import bspline as bs

CURVE_YAML = """
name: corridor
created: 2024-01-15
curve:
  degree: 3
  dimension: 2
  domain: [0.0, 2.0]
  knot_strategy: clamped_nonuniform
  knot_weights: [1, 2]
  control_points:
    - [0.0, 0.0]
    - [1.0, 2.0]
    - [2.0, -1.0]
    - [3.0, 3.0]
    - [4.0, 0.0]
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "curve.yaml"
    path.write_text(CURVE_YAML)
    return str(path)


def test_load_config(config_file):
    cfg = config.load_config(config_file)
    assert cfg.name == "corridor"
    # timestamps are not resolved
    assert cfg.created == "2024-01-15"
    assert cfg._config_root_dir == os.path.dirname(os.path.abspath(config_file))
    assert isinstance(cfg.curve, config.dotdict)
    assert cfg.curve.degree == 3
    with pytest.raises(AttributeError):
        cfg.missing_key


def test_curve_from_config(config_file):
    cfg = config.load_config(config_file)
    curve = bs.Curve.from_config(cfg.curve)
    assert curve.degree == 3
    assert curve.dim == 2
    assert curve.domain == (0.0, 2.0)
    assert curve.knot_strategy == bs.KnotStrategy.clamped_nonuniform
    assert np.allclose(curve.knots, [0, 0, 0, 0, 1.5, 2, 2, 2, 2])
    assert np.allclose(curve.eval(2.0), [4.0, 0.0])


def test_curve_config():
    cfg = config.curve_config(dict(degree=2, dimension=1))
    assert cfg.domain == (0.0, 1.0)
    assert cfg.knot_strategy == 'clamped_uniform'
    assert cfg.knot_weights is None
    assert cfg.control_points is None
    assert cfg.zero_span_tol == 1e-12

    with pytest.raises(KeyError):
        config.curve_config(dict(degree=2))
    with pytest.raises(KeyError):
        config.curve_config(dict(degree=2, dimension=1, order=3))

    curve = bs.Curve.from_config(cfg)
    assert curve.n_poles == 0
    assert curve.basis is None


def test_dump_config(tmp_path, config_file):
    cfg = config.load_config(config_file)
    cfg.curve.degree = 2
    out_path = str(tmp_path / "dumped.yaml")
    config.dump_config(cfg, out_path)
    loaded = config.load_config(out_path)
    assert loaded.curve.degree == 2
    assert loaded.curve.control_points == cfg.curve.control_points
    assert loaded.curve.knot_weights == [1, 2]


def test_dotdict():
    cfg = config.dotdict.create(dict(a=1, b=[dict(c=2)], d=(dict(e=3),)))
    assert cfg.a == 1
    assert cfg.b[0].c == 2
    assert cfg.d[0].e == 3
    cfg.f = 4
    assert cfg['f'] == 4
    del cfg.f
    assert 'f' not in cfg
    assert config.dotdict.serialize(cfg) == dict(a=1, b=[dict(c=2)], d=[dict(e=3)])
