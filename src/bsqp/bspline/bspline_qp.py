"""
Assembly of quadratic programs shaping a B-spline curve:

    min   1/2 x^T H x + g^T x
    s.t.  lbA <= A x <= ubA
          lbX <=  x  <= ubX

The decision vector stacks the control point coordinates dimension by dimension,
x[d * N + i] is the coordinate 'd' of the control point 'i', N is the number of control points.
So every dimension owns the contiguous slice x[d * N : (d + 1) * N] and the objective
terms below touch only the diagonal N x N blocks of H.

The problem is built incrementally by a QPBuilder: objective terms are added to H and g,
constraints append rows to A. The solver itself is not part of this module,
the solution is written back by Curve.load_control_points.
"""

import logging
from dataclasses import dataclass

import numpy as np
import scipy.sparse

from bsqp.core import report
from bsqp.bspline import bspline_poly as bp
from bsqp.bspline.bspline_exceptions import ParamError, DomainError, PoleIndexError


@dataclass(frozen=True)
class QPProblem:
    """
    Immutable snapshot of an assembled problem, all arrays are read-only.
    """
    H: np.ndarray
    g: np.ndarray
    A: np.ndarray
    lbA: np.ndarray
    ubA: np.ndarray
    lbX: np.ndarray
    ubX: np.ndarray
    x: np.ndarray

    @property
    def n_variables(self):
        return len(self.g)

    @property
    def n_constraints(self):
        return self.A.shape[0]

    def objective(self, x=None):
        """
        1/2 x^T H x + g^T x, for the initial guess 'self.x' by default.
        """
        if x is None:
            x = self.x
        return 0.5 * x @ self.H @ x + self.g @ x

    def constraint_violation(self, x=None):
        """
        Maximal violation of the constraint rows and of the box bounds, zero for a feasible 'x'.
        """
        if x is None:
            x = self.x
        violations = [0.0, np.max(self.lbX - x), np.max(x - self.ubX)]
        if self.n_constraints > 0:
            ax = self.A @ x
            violations.extend([np.max(self.lbA - ax), np.max(ax - self.ubA)])
        return float(max(violations))

    def sparse(self):
        """
        :return: (H, A) as scipy.sparse.csc_matrix, the format of sparse QP solvers.
        """
        return scipy.sparse.csc_matrix(self.H), scipy.sparse.csc_matrix(self.A)


class QPBuilder:
    """
    Incremental assembly of a QP for the control points of a curve.
    The curve must not change its number of control points while the problem is built.
    """
    # initial capacity of the constraint buffer, doubled when exceeded
    _min_capacity = 16

    def __init__(self, curve):
        """
        Zero objective, no constraint rows, unbounded decision variables,
        initial guess 'x' given by the current control points of the curve.
        """
        if curve.basis is None:
            raise DomainError(f"Curve with {curve.n_poles} control points has no knot vector, "
                              f"at least {curve.degree + 1} needed.")
        self.curve = curve
        self.n_poles = curve.n_poles
        self.dim = curve.dim
        size = self.dim * self.n_poles
        self.size = size

        self.H = np.zeros((size, size))
        self.g = np.zeros(size)
        max_float = np.finfo(float).max
        self.lbX = np.full(size, -max_float)
        self.ubX = np.full(size, max_float)
        self.x = curve.decision_vector()

        self.n_constraints = 0
        self._a_buf = np.zeros((0, size))
        self._lba_buf = np.zeros(0)
        self._uba_buf = np.zeros(0)

    @property
    def A(self):
        return self._a_buf[:self.n_constraints]

    @property
    def lbA(self):
        return self._lba_buf[:self.n_constraints]

    @property
    def ubA(self):
        return self._uba_buf[:self.n_constraints]

    def _block(self, d):
        return slice(d * self.n_poles, (d + 1) * self.n_poles)

    def _basis(self):
        if self.curve.n_poles != self.n_poles:
            raise ParamError(f"Curve has {self.curve.n_poles} control points, "
                             f"the QP was built for {self.n_poles}.")
        return self.curve.basis

    def _check_vector(self, vec, name):
        vec = np.atleast_1d(np.array(vec, dtype=float)).ravel()
        if len(vec) != self.dim:
            raise ParamError(f"The {name} {vec} of dimension {len(vec)}, curve dimension is {self.dim}.")
        return vec

    def _check_hyperplane(self, hyperplane):
        if hyperplane.dim != self.dim:
            raise ParamError(f"Hyperplane of dimension {hyperplane.dim}, curve dimension is {self.dim}.")
        return hyperplane.normal

    def _check_range(self, first, last):
        if not 0 <= first <= last < self.n_poles:
            raise PoleIndexError(f"Wrong control point range [{first}, {last}], "
                                 f"valid indices are [0, {self.n_poles - 1}].")

    def _reserve(self, n_rows):
        required = self.n_constraints + n_rows
        capacity = len(self._lba_buf)
        if required <= capacity:
            return
        capacity = max(2 * capacity, required, self._min_capacity)
        a_buf = np.zeros((capacity, self.size))
        lba_buf = np.zeros(capacity)
        uba_buf = np.zeros(capacity)
        n = self.n_constraints
        a_buf[:n] = self._a_buf[:n]
        lba_buf[:n] = self._lba_buf[:n]
        uba_buf[:n] = self._uba_buf[:n]
        self._a_buf, self._lba_buf, self._uba_buf = a_buf, lba_buf, uba_buf

    def _append_rows(self, rows, lower, upper):
        n_rows = rows.shape[0]
        self._reserve(n_rows)
        begin, end = self.n_constraints, self.n_constraints + n_rows
        self._a_buf[begin:end] = rows
        self._lba_buf[begin:end] = lower
        self._uba_buf[begin:end] = upper
        self.n_constraints = end

    def _local_row(self, t, k):
        """
        Values of k-th derivatives of all basis functions at 't', zero outside of the local window.
        """
        basis = self._basis()
        first, last = basis.affecting_points(t, t)
        row = np.zeros(self.n_poles)
        row[first: last + 1] = basis.eval_vector(first, last, t, k)
        return row

    def _pole_columns(self, first, last):
        # columns[d, j] = column of coordinate d of the control point first + j
        return np.arange(first, last + 1)[None, :] + self.n_poles * np.arange(self.dim)[:, None]

    @report
    def extend_integrated_squared_derivative(self, k, weight):
        """
        Add weight * int_a^b |d^k/dt^k curve(t)|^2 dt to the objective.

        On every non-empty knot span the basis functions are expanded into monomials
        of (t - t_span) (matrix M), differentiated (matrix D) and the square is integrated
        exactly (matrix SQI), the local Gram matrix M D^T SQI D M^T is added to the N x N block.
        The same block goes to every dimension, dimensions are not coupled.
        H gets 2 * weight * Gram due to the factor 1/2 in the objective.
        """
        if k < 0:
            raise ParamError(f"Derivative order must be non-negative, given {k}.")
        basis = self._basis()
        p = basis.degree
        if k > p:
            logging.debug(f"Derivative order {k} above degree {p}, zero energy term.")
            return

        d_mat = bp.derivative_operator(p, k)
        gram = np.zeros((self.n_poles, self.n_poles))
        knots = basis.knots
        n_spans = 0
        for span in range(len(knots) - 1):
            width = knots[span + 1] - knots[span]
            if width <= basis.tol:
                continue
            first = max(span - p, 0)
            last = min(span, self.n_poles - 1)
            coef_mat = basis.basis_coefficients(first, last, span, shift=knots[span])
            sqi = bp.squared_integral_matrix(p, 0.0, width)
            d_coef = coef_mat @ d_mat.T
            gram[first: last + 1, first: last + 1] += d_coef @ sqi @ d_coef.T
            n_spans += 1
        gram = 0.5 * (gram + gram.T)

        for d in range(self.dim):
            blk = self._block(d)
            self.H[blk, blk] += 2.0 * weight * gram
        logging.info(f"Integrated squared derivative k={k}, weight={weight}: {n_spans} spans.")

    def extend_position_at(self, t, target, weight):
        """
        Add weight * |curve(t) - target|^2 to the objective (up to a constant).
        """
        target = self._check_vector(target, "target")
        row = self._local_row(t, 0)
        outer = np.outer(row, row)
        for d in range(self.dim):
            blk = self._block(d)
            self.H[blk, blk] += 2.0 * weight * outer
            self.g[blk] += -2.0 * weight * target[d] * row

    def extend_derivative_constraint(self, t, k, target):
        """
        Append 'dim' equality rows: d^k/dt^k curve(t) == target.
        """
        target = self._check_vector(target, "target")
        row = self._local_row(t, k)
        rows = np.zeros((self.dim, self.size))
        for d in range(self.dim):
            rows[d, self._block(d)] = row
        self._append_rows(rows, target, target)
        logging.debug(f"Derivative constraint k={k} at t={t}: rows {self.n_constraints - self.dim}"
                      f"..{self.n_constraints - 1}.")

    def extend_beginning_constraint(self, k, target):
        """
        Append 'dim' equality rows: k-th derivative at the domain start equals 'target'.
        """
        self.extend_derivative_constraint(self.curve.domain[0], k, target)

    def extend_end_constraint(self, k, target):
        self.extend_derivative_constraint(self.curve.domain[1], k, target)

    def extend_hyperplane_constraint(self, first, last, hyperplane):
        """
        Append a row  normal . P_i <= offset  for every control point i in [first, last].
        Due to the convex hull property the curve part controlled only by these points
        lies in the half-space as well.
        """
        self._check_range(first, last)
        normal = self._check_hyperplane(hyperplane)
        columns = self._pole_columns(first, last)
        n_rows = last - first + 1
        rows = np.zeros((n_rows, self.size))
        rows[np.arange(n_rows)[None, :], columns] = normal[:, None]
        self._append_rows(rows, -np.inf, hyperplane.offset)
        logging.debug(f"Hyperplane constraint for control points [{first}, {last}].")

    def extend_hyperplane_constraint_on_interval(self, t_from, t_to, hyperplane):
        """
        Keep the curve on [t_from, t_to] in the half-space, constraints all control points
        affecting the interval.
        """
        first, last = self._basis().affecting_points(t_from, t_to)
        self.extend_hyperplane_constraint(first, last, hyperplane)

    def extend_hyperplane_penalty(self, first, last, hyperplane, weight):
        """
        Add the linear term  weight * normal . P_i  for every control point i in [first, last],
        pushing the points towards the negative side.
        """
        self._check_range(first, last)
        normal = self._check_hyperplane(hyperplane)
        columns = self._pole_columns(first, last)
        self.g[columns] += weight * normal[:, None]

    def extend_hyperplane_penalty_on_interval(self, t_from, t_to, hyperplane, weight):
        first, last = self._basis().affecting_points(t_from, t_to)
        self.extend_hyperplane_penalty(first, last, hyperplane, weight)

    def extend_decision_constraint(self, lower, upper):
        """
        Bound every coordinate of every control point: lower <= x <= upper.
        """
        if lower > upper:
            raise ParamError(f"Lower bound {lower} greater then upper bound {upper}.")
        self.lbX[:] = lower
        self.ubX[:] = upper

    @report
    def finalize(self):
        """
        :return: QPProblem, immutable copy of the current state.
        """
        arrays = [self.H, self.g, self.A, self.lbA, self.ubA, self.lbX, self.ubX, self.x]
        frozen = []
        for arr in arrays:
            arr = np.array(arr, dtype=float)
            arr.flags.writeable = False
            frozen.append(arr)
        logging.info(f"QP with {self.size} variables and {self.n_constraints} constraints.")
        return QPProblem(*frozen)
