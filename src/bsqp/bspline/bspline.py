"""
Module with classes representing B-spline bases and curves used for trajectory optimization.
Provides:
- construction of knot vectors (clamped / nonclamped, uniform / weighted),
- knot span lookup,
- evaluation of basis functions and their derivatives (Cox - de Boor recursion),
- explicit polynomial form of the basis on a single knot span, used for exact integrals,
- evaluation of curves and management of their control points.
"""

import enum
import logging
import numpy as np

from bsqp.bspline.bspline_exceptions import ParamError, DomainError, PoleIndexError
from bsqp.bspline.bspline_poly import mul_linear
from bsqp.core.config import curve_config


# Knot intervals not longer then this are treated as empty, i.e. their
# contribution to the basis recursion and to the integrals is zero.
ZERO_SPAN_TOL = 1e-12


class KnotStrategy(enum.Enum):
    clamped_uniform = "clamped_uniform"
    nonclamped_uniform = "nonclamped_uniform"
    clamped_nonuniform = "clamped_nonuniform"
    nonclamped_nonuniform = "nonclamped_nonuniform"

    @classmethod
    def get(cls, strategy):
        try:
            return cls(strategy)
        except ValueError:
            valid = [s.value for s in cls]
            raise ParamError(f"Unknown knot strategy: {strategy}, expected one of {valid}.")

    @property
    def clamped(self):
        return self in (KnotStrategy.clamped_uniform, KnotStrategy.clamped_nonuniform)

    @property
    def weighted(self):
        return self in (KnotStrategy.clamped_nonuniform, KnotStrategy.nonclamped_nonuniform)


def _check_domain(domain):
    try:
        a, b = domain
        a, b = float(a), float(b)
    except (TypeError, ValueError):
        raise ParamError(f"Domain must be a pair (a, b), given {domain}.")
    if not a <= b:
        raise ParamError(f"Wrong domain [{a}, {b}], a <= b expected.")
    return a, b


def _normalized_weights(weights):
    if weights is None:
        raise ParamError("Nonuniform knot strategy needs knot weights.")
    w = np.array(weights, dtype=float)
    if w.ndim != 1 or len(w) == 0:
        raise ParamError(f"Knot weights must be a non-empty vector, given {weights}.")
    if not np.all(np.isfinite(w)) or np.any(w <= 0.0):
        raise ParamError(f"Knot weights must be positive, given {weights}.")
    return w / np.sum(w)


def _weighted_knots(n_knots, weights, domain):
    """
    Distribute 'n_knots' knots in (a, b], the last one is b.
    The domain is split into len(weights) segments of equal length, the segment 'i'
    gets floor(n_knots * w_i) evenly spaced knots ending at the segment end.
    The last segment absorbs the rounding remainder and gets at least one knot.
    """
    shares = _normalized_weights(weights)
    counts = np.floor(shares * n_knots).astype(int)
    counts[-1] = n_knots - np.sum(counts[:-1])
    if counts[-1] < 1:
        # the last knot must be b, take one knot from the largest segment
        counts[np.argmax(counts[:-1])] -= 1
        counts[-1] = 1

    a, b = domain
    bounds = np.linspace(a, b, len(shares) + 1)
    knots = [np.linspace(seg_a, seg_b, count + 1)[1:]
             for seg_a, seg_b, count in zip(bounds[:-1], bounds[1:], counts) if count > 0]
    return np.concatenate(knots)


def make_knots(strategy, degree, n_poles, domain=(0.0, 1.0), weights=None):
    """
    Make a knot vector of length n_poles + degree + 1.
    :param strategy: KnotStrategy or its name:
        'clamped_uniform' - degree + 1 copies of a, evenly spaced interior knots, degree + 1 copies of b
        'nonclamped_uniform' - evenly spaced knots from a to b
        'clamped_nonuniform' - degree + 1 copies of a, n_poles - degree knots distributed according
            to the weights (the last one is b), degree copies of b
        'nonclamped_nonuniform' - a followed by n_poles + degree knots distributed according to the weights
    :param degree: non-negative int
    :param n_poles: number of control points, at least degree + 1
    :param domain: (a, b)
    :param weights: positive weights of the domain segments, for the nonuniform strategies
    :return: np array of knots
    """
    strategy = KnotStrategy.get(strategy)
    if degree < 0:
        raise ParamError(f"Degree must be non-negative, given {degree}.")
    a, b = _check_domain(domain)
    if n_poles < degree + 1:
        raise DomainError(f"Too few control points: {n_poles}, at least degree + 1 = {degree + 1} "
                          f"needed for the {strategy.value} knot vector.")
    p, n = degree, n_poles

    if strategy == KnotStrategy.clamped_uniform:
        inner = np.linspace(a, b, n - p + 1)[1:-1]
        knots = np.concatenate([np.full(p + 1, a), inner, np.full(p + 1, b)])
    elif strategy == KnotStrategy.nonclamped_uniform:
        knots = np.linspace(a, b, n + p + 1)
    elif strategy == KnotStrategy.clamped_nonuniform:
        knots = np.concatenate([np.full(p + 1, a),
                                _weighted_knots(n - p, weights, (a, b)),
                                np.full(p, b)])
    else:
        knots = np.concatenate([[a], _weighted_knots(n + p, weights, (a, b))])

    assert len(knots) == n + p + 1
    assert np.all(np.diff(knots) >= 0.0)
    return knots


class SplineBasis:
    """
    Represents a spline basis for a given knot vector and degree.
    Provides evaluation of the basis functions and their derivatives, knot span lookup
    and the explicit polynomial form of the basis functions on a knot span.
    The basis is immutable, a curve makes a new one whenever its knot vector changes.
    """

    @classmethod
    def make(cls, strategy, degree, n_poles, domain=(0.0, 1.0), weights=None, tol=ZERO_SPAN_TOL):
        """
        Basis with the knot vector given by the 'strategy', see 'make_knots'.
        """
        return cls(degree, make_knots(strategy, degree, n_poles, domain, weights), tol=tol)

    @classmethod
    def make_from_packed_knots(cls, degree, knots, tol=ZERO_SPAN_TOL):
        full_knots = [q for q, mult in knots for i in range(mult)]
        return cls(degree, full_knots, tol=tol)

    def __init__(self, degree, knots, tol=ZERO_SPAN_TOL):
        """
        Constructor of the basis.
        :param degree: Degree of the basis functions, >=0.
        :param knots: Knot vector including multiplicities, non-decreasing.
        :param tol: Knot intervals of length <= tol are treated as empty.
        """
        if degree < 0:
            raise ParamError(f"Degree must be non-negative, given {degree}.")
        knots = np.array(knots, dtype=float)
        if knots.ndim != 1 or len(knots) < 2 * degree + 2:
            raise ParamError(f"Knot vector of length {len(knots)}, at least 2 * degree + 2 = {2 * degree + 2} "
                             f"knots expected.")
        if np.any(np.diff(knots) < 0.0):
            raise ParamError(f"Knot vector must be non-decreasing, given {knots}.")

        self.degree = degree
        self.knots = knots
        self.tol = tol
        # Number of basis functions.
        self.size = len(self.knots) - self.degree - 1
        self.domain = (self.knots[0], self.knots[-1])
        self._coef_cache = {}

    def pack_knots(self):
        """
        :return: List of pairs (knot, multiplicity).
        """
        last, mult = self.knots[0], 0
        packed_knots = []
        for q in self.knots:
            if q == last:
                mult += 1
            else:
                packed_knots.append((last, mult))
                last, mult = q, 1
        packed_knots.append((last, mult))
        return packed_knots

    def check_domain(self, t):
        a, b = self.domain
        if not a <= t <= b:
            raise DomainError(f"Parameter t={t} outside of the domain [{a}, {b}].")

    def _check_window(self, first, last, order=None):
        if order is None:
            order = self.degree
        n_funs = len(self.knots) - order - 1
        if not 0 <= first <= last < n_funs:
            raise PoleIndexError(f"Wrong basis function range [{first}, {last}], "
                                 f"valid indices for order {order} are [0, {n_funs - 1}].")

    def find_span(self, t):
        """
        Find the knot span containing 't', i.e. the index 'i' with knots[i] <= t < knots[i+1].
        For 't' at the end of the domain the last non-empty span is returned,
        i.e. the trailing knots equal to 't' are skipped.
        :param t: float, must be within the domain.
        :return: i
        """
        self.check_domain(t)
        if t == self.domain[1]:
            i_span = np.searchsorted(self.knots, t, side='left') - 1
            return int(max(i_span, 0))
        return int(np.searchsorted(self.knots, t, side='right') - 1)

    def affecting_points(self, t_from, t_to):
        """
        Range of basis functions (i.e. control points) nonzero somewhere on [t_from, t_to].
        :return: (first, last), inclusive
        """
        if t_from > t_to:
            raise ParamError(f"Empty parameter interval [{t_from}, {t_to}].")
        first = max(self.find_span(t_from) - self.degree, 0)
        last = min(self.find_span(t_to), self.size - 1)
        return first, last

    def fn_supp(self, i_base):
        """
        Support of the base function 'i_base'.
        :param i_base:
        :return: (t_min, t_max)
        """
        return (self.knots[i_base], self.knots[i_base + self.degree + 1])

    def _ratio(self, top, i_low, i_high):
        # top / (knots[i_high] - knots[i_low]), zero for an empty knot interval
        width = self.knots[i_high] - self.knots[i_low]
        if width <= self.tol:
            return 0.0
        return top / width

    def eval_vector(self, first, last, t, k=0):
        """
        Evaluate k-th derivatives of the basis functions 'first', ..., 'last' at the point 't'.

        Order 0 indicator functions of the window extended by 'degree' are raised
        by the Cox - de Boor recursion up to the order 'degree - k', the last 'k' orders
        use the derivative recursion:
            N^(k)_{i,q} = q * ( N^(k-1)_{i,q-1} / (t_{i+q} - t_i) - N^(k-1)_{i+1,q-1} / (t_{i+q+1} - t_{i+1}) )
        Terms with an empty knot interval in denominator are zero.

        :param first: index of the first basis function
        :param last: index of the last basis function
        :param t: evaluation point
        :param k: derivative order, zero result for k > degree
        :return: np array of length last - first + 1
        """
        self.check_domain(t)
        self._check_window(first, last)
        if k < 0:
            raise ParamError(f"Derivative order must be non-negative, given {k}.")
        n_funs = last - first + 1
        p = self.degree
        if k > p:
            return np.zeros(n_funs)

        knots = self.knots
        n_cols = n_funs + p
        # two rows alternating by parity of the order, columns relative to 'first'
        table = np.zeros((2, n_cols))
        for j in range(n_cols):
            i = first + j
            if knots[i] <= t < knots[i + 1]:
                table[0, j] = 1.0
        if t == self.domain[1]:
            # half open intervals miss the domain end
            i_span = self.find_span(t) - first
            if 0 <= i_span < n_cols:
                table[0, i_span] = 1.0

        for q in range(1, p + 1):
            prev, cur = table[(q - 1) % 2], table[q % 2]
            for j in range(n_cols - q):
                i = first + j
                if q <= p - k:
                    cur[j] = self._ratio((t - knots[i]) * prev[j], i, i + q) \
                           + self._ratio((knots[i + q + 1] - t) * prev[j + 1], i + 1, i + q + 1)
                else:
                    cur[j] = q * (self._ratio(prev[j], i, i + q)
                                  - self._ratio(prev[j + 1], i + 1, i + q + 1))

        return table[p % 2, :n_funs].copy()

    def eval(self, i_base, t, k=0):
        """
        :param i_base: Index of base function to evaluate.
        :param t: point in which evaluate
        :param k: derivative order
        :return: b_i^(k)(t)
        """
        return self.eval_vector(i_base, i_base, t, k)[0]

    def basis_coefficients(self, first, last, span, order=None, shift=0.0):
        """
        Explicit polynomial form of the basis functions 'first', ..., 'last'
        of given order restricted to the knot span [knots[span], knots[span+1]).

        Bottom-up version of the Cox - de Boor recursion acting on polynomial coefficients
        instead of values. Order zero starts from the indicator of the 'span' on the window
        extended by 'order' functions, every further order shrinks the window by one.
        Results are cached, the basis is immutable.

        :param first: index of the first basis function
        :param last: index of the last basis function
        :param span: index of the knot span
        :param order: order of the basis functions, the basis degree by default
        :param shift: polynomials are in powers of (t - shift)
        :return: read-only array (last - first + 1, order + 1), row 'j' holds
            the coefficients of the function 'first + j', lowest power first.
        """
        if order is None:
            order = self.degree
        self._check_window(first, last, order)
        key = (first, last, span, order, shift)
        coefs = self._coef_cache.get(key, None)
        if coefs is not None:
            return coefs

        knots = self.knots
        n_cols = last - first + 1 + order
        table = np.zeros((n_cols, order + 1))
        if first <= span < first + n_cols:
            table[span - first, 0] = 1.0
        for q in range(1, order + 1):
            new_table = np.zeros_like(table)
            for j in range(n_cols - q):
                i = first + j
                new_table[j] = self._ratio(mul_linear(table[j], knots[i] - shift), i, i + q) \
                             - self._ratio(mul_linear(table[j + 1], knots[i + q + 1] - shift), i + 1, i + q + 1)
            table = new_table

        coefs = table[:last - first + 1]
        coefs.flags.writeable = False
        self._coef_cache[key] = coefs
        return coefs


class Curve:
    """
    B-spline curve of given degree in 'dim' dimensional space on the domain [a, b].

    The curve owns its knot vector (through the 'basis' object), it is regenerated
    with the curve's knot strategy whenever the number of control points changes or
    a new strategy is set. Curves with less then degree + 1 control points have no basis
    and can not be evaluated.
    """

    @classmethod
    def from_config(cls, cfg):
        """
        Make a curve from a configuration dictionary, see 'bsqp.core.config.curve_config'.
        """
        cfg = curve_config(cfg)
        return cls(cfg.degree, cfg.dimension, cfg.domain,
                   poles=cfg.control_points,
                   knot_strategy=cfg.knot_strategy,
                   knot_weights=cfg.knot_weights,
                   tol=cfg.zero_span_tol)

    def __init__(self, degree, dim, domain=(0.0, 1.0), poles=None,
                 knot_strategy=KnotStrategy.clamped_uniform, knot_weights=None, tol=ZERO_SPAN_TOL):
        """
        :param degree: Non-negative int.
        :param dim: Dimension of the control points, positive int.
        :param domain: (a, b), a <= b
        :param poles: Optional list of control points, at least degree + 1.
        :param knot_strategy: KnotStrategy or its name.
        :param knot_weights: Weights for the nonuniform knot strategies.
        :param tol: Knot intervals of length <= tol are treated as empty.
        """
        if int(degree) != degree or degree < 0:
            raise ParamError(f"Degree must be a non-negative int, given {degree}.")
        if int(dim) != dim or dim < 1:
            raise ParamError(f"Dimension must be a positive int, given {dim}.")
        self.degree = int(degree)
        self.dim = int(dim)
        self.domain = _check_domain(domain)
        self.knot_strategy = KnotStrategy.get(knot_strategy)
        self.knot_weights = knot_weights
        if self.knot_strategy.weighted:
            _normalized_weights(knot_weights)
        self.tol = tol

        self.basis = None
        self.poles = np.empty((0, self.dim))
        if poles is not None:
            self.set_control_points(poles)

    @property
    def n_poles(self):
        return len(self.poles)

    @property
    def knots(self):
        if self.basis is None:
            return np.empty(0)
        return self.basis.knots

    def __len__(self):
        return self.n_poles

    def __getitem__(self, idx):
        self._check_index(idx)
        return self.poles[idx]

    def __setitem__(self, idx, point):
        self._check_index(idx)
        self.poles[idx] = self._check_point(point)

    def _check_index(self, idx):
        if not 0 <= idx < self.n_poles:
            raise PoleIndexError(f"Control point index {idx} out of range [0, {self.n_poles - 1}].")

    def _check_point(self, point):
        point = np.array(point, dtype=float).ravel()
        if len(point) != self.dim:
            raise ParamError(f"Point {point} of dimension {len(point)}, curve dimension is {self.dim}.")
        return point

    def _check_points(self, points):
        points = np.array(points, dtype=float)
        if points.size == 0:
            return np.empty((0, self.dim))
        if self.dim == 1 and points.ndim == 1:
            points = points[:, None]
        if points.ndim != 2 or points.shape[1] != self.dim:
            raise ParamError(f"Control points of shape {points.shape}, expected (N, {self.dim}).")
        return points

    def generate_knots(self):
        """
        Regenerate the knot vector (i.e. the basis) for the current control points.
        Fails for less then degree + 1 control points.
        """
        self.basis = SplineBasis.make(self.knot_strategy, self.degree, self.n_poles, self.domain,
                                      self.knot_weights, tol=self.tol)
        logging.debug(f"Knot vector ({self.knot_strategy.value}, n_poles={self.n_poles}): {self.basis.knots}")

    def _update_knots(self):
        if self.n_poles < self.degree + 1:
            self.basis = None
        else:
            self.generate_knots()

    def set_knot_strategy(self, strategy, weights=None):
        strategy = KnotStrategy.get(strategy)
        if strategy.weighted:
            _normalized_weights(weights)
        self.knot_strategy = strategy
        self.knot_weights = weights
        self.generate_knots()

    def set_control_points(self, poles):
        """
        Replace all control points, an empty list clears the curve.
        """
        poles = self._check_points(poles)
        if len(poles) == 0:
            self.clear_control_points()
            return
        self.poles = poles
        self.generate_knots()

    def append_control_point(self, point):
        self.poles = np.concatenate([self.poles, self._check_point(point)[None, :]])
        self._update_knots()

    def remove_control_point(self, idx):
        if not 0 <= idx < self.n_poles:
            raise PoleIndexError(f"Index {idx} out of range [0, {self.n_poles - 1}] for removal.")
        self.poles = np.delete(self.poles, idx, axis=0)
        self._update_knots()

    def interpolate_and_extend(self, target, n_new):
        """
        Append 'n_new' control points evenly spaced on the segment from
        the last control point to 'target', the last appended point is 'target'.
        """
        target = self._check_point(target)
        if n_new < 1:
            raise ParamError(f"Number of new control points must be positive, given {n_new}.")
        if self.n_poles == 0:
            raise PoleIndexError("No control point to extend from.")
        fractions = np.arange(1, n_new + 1) / n_new
        start = self.poles[-1]
        new_poles = start[None, :] + fractions[:, None] * (target - start)[None, :]
        self.poles = np.concatenate([self.poles, new_poles])
        self._update_knots()

    def clear_control_points(self):
        self.poles = np.empty((0, self.dim))
        self.basis = None

    def decision_vector(self):
        """
        Control points stacked dimension by dimension: x[d * N + i] = poles[i, d].
        """
        return self.poles.T.ravel().copy()

    def load_control_points(self, x):
        """
        Set control points from the (solved) decision vector 'x', see 'decision_vector'.
        """
        x = np.array(x, dtype=float).ravel()
        if len(x) % self.dim != 0:
            raise ParamError(f"Decision vector of length {len(x)} is not a multiple of the dimension {self.dim}.")
        n_poles = len(x) // self.dim
        resized = n_poles != self.n_poles
        self.poles = x.reshape(self.dim, n_poles).T.copy()
        if resized:
            self._update_knots()

    def _require_basis(self):
        if self.basis is None:
            raise DomainError(f"Curve with {self.n_poles} control points has no knot vector, "
                              f"at least {self.degree + 1} needed.")
        return self.basis

    def find_span(self, t):
        return self._require_basis().find_span(t)

    def affecting_points(self, t_from, t_to):
        return self._require_basis().affecting_points(t_from, t_to)

    def eval(self, t, k=0):
        """
        Evaluate k-th derivative of the curve at the parameter 't'.
        :return: np array of length 'dim'
        """
        basis = self._require_basis()
        first, last = basis.affecting_points(t, t)
        t_base_vec = basis.eval_vector(first, last, t, k)
        return t_base_vec @ self.poles[first: last + 1, :]

    def eval_array(self, t_vec, k=0):
        """
        :return: np array (len(t_vec), dim)
        """
        t_vec = np.atleast_1d(t_vec)
        result = np.empty((len(t_vec), self.dim))
        for i, t in enumerate(t_vec):
            result[i] = self.eval(t, k)
        return result

    def on_negative_side(self, hyperplane):
        """
        True if the curve lies strictly in the negative half-space of the hyperplane.
        Uses the convex hull property: all control points must be on the negative side.
        """
        if self.n_poles == 0:
            return bool(hyperplane.signed_distance(np.zeros(self.dim)) < 0)
        return bool(np.all(hyperplane.signed_distance(self.poles) < 0))

    def on_non_positive_side(self, hyperplane):
        if self.n_poles == 0:
            return bool(hyperplane.signed_distance(np.zeros(self.dim)) <= 0)
        return bool(np.all(hyperplane.signed_distance(self.poles) <= 0))
