"""
Dense polynomial tools for the explicit (monomial) form of B-spline basis functions.

A polynomial of degree at most p is stored as a coefficient vector 'c' of length p + 1,
c[e] is the coefficient of s**e, lowest power first (numpy.polynomial.polynomial convention).
Here 's' is the curve parameter possibly shifted to the beginning of a knot span,
which keeps the powers small on long domains.
"""

import numpy as np
import scipy.special


def mul_linear(coefs, root):
    """
    Multiply polynomial(s) by (s - root).
    The length of the coefficient vector is kept, so the highest coefficient
    of 'coefs' must be zero.
    :param coefs: array (..., p + 1)
    :param root: float
    :return: array of the same shape
    """
    result = np.zeros_like(coefs)
    result[..., 1:] = coefs[..., :-1]
    result -= root * coefs
    return result


def derivative_operator(order, k):
    """
    Matrix D mapping coefficients of a polynomial of given order
    to the coefficients of its k-th derivative (of the same length):
        (D c)[e] = c[e + k] * (e + k)! / e!
    Zero matrix for k > order.
    :param order: degree of the polynomials
    :param k: derivative order
    :return: array (order + 1, order + 1)
    """
    n = order + 1
    d_mat = np.zeros((n, n))
    for e in range(n - k):
        d_mat[e, e + k] = scipy.special.perm(e + k, k, exact=True)
    return d_mat


def squared_integral_matrix(order, t0, t1):
    """
    Gram matrix of monomials over [t0, t1]:
        SQI[r, s] = int_t0^t1  x**r x**s  dx = (t1**(r+s+1) - t0**(r+s+1)) / (r+s+1)
    so that int_t0^t1 (sum_e c[e] x**e)**2 dx == c @ SQI @ c.
    """
    powers = np.arange(order + 1)
    exponent = powers[:, None] + powers[None, :] + 1
    return (float(t1) ** exponent - float(t0) ** exponent) / exponent

