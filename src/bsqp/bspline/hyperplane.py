"""
Half-spaces used to keep a curve inside a convex region (e.g. an obstacle free corridor).
"""
from dataclasses import dataclass, field

import numpy as np


@dataclass(eq=False)
class Hyperplane:
    """
    Hyperplane { x : normal . x == offset }, the negative side is normal . x < offset.
    The normal is expected to be a unit vector.
    """
    normal: np.ndarray
    offset: float = 0.0
    dim: int = field(init=False)

    @classmethod
    def from_point(cls, normal, point):
        """
        Hyperplane with given normal passing through 'point'.
        """
        normal = np.asarray(normal, dtype=float)
        return cls(normal, float(normal @ np.asarray(point, dtype=float)))

    def __post_init__(self):
        self.normal = np.atleast_1d(np.array(self.normal, dtype=float))
        self.offset = float(self.offset)
        self.dim = len(self.normal)

    def signed_distance(self, points):
        """
        :param points: single point (dim,) or array (n, dim)
        :return: normal . point - offset, scalar or array (n,)
        """
        return np.asarray(points, dtype=float) @ self.normal - self.offset
