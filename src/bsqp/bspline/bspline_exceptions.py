class BSplineError(Exception):
    pass


class ParamError(BSplineError, ValueError):
    """
    Malformed input: wrong dimension of a point or vector, bad weights, bad degree, ...
    """
    pass


class DomainError(BSplineError, ValueError):
    """
    Parameter outside of the curve domain or too few control points for the knot vector.
    """
    pass


class PoleIndexError(BSplineError, IndexError):
    pass
