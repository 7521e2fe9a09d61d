"""
Common code for tests.
"""
import numpy as np
import scipy.integrate


def greville_poles(basis):
    """
    Control points of the linear function f(t) = t (linear precision of B-splines).
    """
    p = basis.degree
    if p == 0:
        return basis.knots[:-1].copy()
    return np.array([np.mean(basis.knots[i + 1: i + p + 1]) for i in range(basis.size)])


def integrated_squared_derivative(curve, k):
    """
    int_a^b |curve^(k)(t)|^2 dt by adaptive quadrature on every non-empty knot span.
    """
    knots = curve.knots
    total = 0.0
    for t0, t1 in zip(knots[:-1], knots[1:]):
        if t1 > t0:
            fn = lambda t: np.sum(curve.eval(t, k) ** 2)
            value, err = scipy.integrate.quad(fn, t0, t1, epsabs=1e-12, epsrel=1e-12)
            total += value
    return total


def eval_poly(coefs, s):
    """
    Evaluate polynomial(s) given by the rows of 'coefs' (lowest power first) at point 's'.
    """
    coefs = np.atleast_2d(coefs)
    powers = float(s) ** np.arange(coefs.shape[1])
    return coefs @ powers
