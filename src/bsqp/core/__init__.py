from .config import dotdict, load_config, dump_config, curve_config
from .report import report
