from typing import *

import os
import yaml


class YamlLimitedSafeLoader(type):
    """Meta YAML loader that skips the resolution of the specified YAML tags."""
    def __new__(cls, name, bases, namespace, do_not_resolve: List[str]) -> Type[yaml.SafeLoader]:
        do_not_resolve = set(do_not_resolve)
        implicit_resolvers = {
            key: [(tag, regex) for tag, regex in mappings if tag not in do_not_resolve]
            for key, mappings in yaml.SafeLoader.yaml_implicit_resolvers.items()
        }
        return super().__new__(
            cls,
            name,
            (yaml.SafeLoader, *bases),
            {**namespace, "yaml_implicit_resolvers": implicit_resolvers},
        )


class YamlNoTimestampSafeLoader(
    metaclass=YamlLimitedSafeLoader, do_not_resolve={"tag:yaml.org,2002:timestamp"}
):
    """A safe YAML loader that leaves timestamps as strings."""
    pass


class dotdict(dict):
    """
    dot.notation access to dictionary attributes
    """
    __setattr__ = dict.__setitem__
    __delattr__ = dict.__delitem__

    def __getattr__(self, item):
        try:
            return self[item]
        except KeyError:
            raise AttributeError(f"Missing configuration key: '{item}'.")

    @classmethod
    def create(cls, cfg: Any):
        """
        - recursively replace all dicts by the dotdict.
        """
        if isinstance(cfg, dict):
            items = ((k, cls.create(v)) for k, v in cfg.items())
            return dotdict(items)
        elif isinstance(cfg, list):
            return [cls.create(i) for i in cfg]
        elif isinstance(cfg, tuple):
            return tuple([cls.create(i) for i in cfg])
        else:
            return cfg

    @staticmethod
    def serialize(cfg):
        if isinstance(cfg, (dict, dotdict)):
            return {k: dotdict.serialize(v) for k, v in cfg.items()}
        elif isinstance(cfg, (list, tuple)):
            return [dotdict.serialize(i) for i in cfg]
        else:
            return cfg


# Curve settings and their defaults.
CURVE_DEFAULTS = dict(
    degree=None,
    dimension=None,
    domain=[0.0, 1.0],
    knot_strategy='clamped_uniform',
    knot_weights=None,
    control_points=None,
    zero_span_tol=1e-12,
)
CURVE_REQUIRED = ('degree', 'dimension')


def curve_config(cfg: Dict[str, Any]) -> dotdict:
    """
    Complete the curve settings 'cfg' by the defaults.
    Keys: degree, dimension, domain, knot_strategy, knot_weights, control_points, zero_span_tol.
    """
    unknown = set(cfg.keys()) - set(CURVE_DEFAULTS.keys())
    if unknown:
        raise KeyError(f"Unknown curve configuration keys: {sorted(unknown)}, "
                       f"valid keys: {list(CURVE_DEFAULTS.keys())}.")
    merged = dotdict.create({**CURVE_DEFAULTS, **cfg})
    missing = [k for k in CURVE_REQUIRED if merged[k] is None]
    if missing:
        raise KeyError(f"Missing curve configuration keys: {missing}.")
    merged.domain = tuple(merged.domain)
    return merged


def load_config(path: str) -> dotdict:
    """
    Load configuration from given YAML file, replace dictionaries by dotdict.
    The directory of the file is stored under the key '_config_root_dir'.
    """
    cfg_dir = os.path.dirname(path)
    with open(path) as f:
        cfg = yaml.load(f, Loader=YamlNoTimestampSafeLoader)
    if cfg is None:
        cfg = {}
    cfg['_config_root_dir'] = os.path.abspath(cfg_dir)
    return dotdict.create(cfg)


def dump_config(config: dotdict, path: str):
    with open(path, "w") as f:
        yaml.safe_dump(dotdict.serialize(config), f)
