from functools import wraps
import logging
import time

_report_indent_level = 0


def report(fn=None, level=logging.DEBUG):
    """
    Log the wall time of every call of the decorated function.
    Nested reported calls are indented.
    Usage:
        @report
        def f(): ...

        @report(level=logging.INFO)
        def g(): ...
    """
    if fn is None:
        return lambda f: report(f, level=level)

    @wraps(fn)
    def do_report(*args, **kwargs):
        global _report_indent_level
        _report_indent_level += 1
        init_time = time.perf_counter()
        try:
            return fn(*args, **kwargs)
        finally:
            duration = time.perf_counter() - init_time
            _report_indent_level -= 1
            indent = (_report_indent_level * 2) * " "
            logging.log(level, f"{indent}DONE {fn.__module__}.{fn.__qualname__} @ {duration:.6f} s")
    return do_report
