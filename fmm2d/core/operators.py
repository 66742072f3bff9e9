"""
Operators Module

Implements the FMM operators for the 2D logarithmic kernel:
P2M, M2M (S|S), M2L (S|R), L2L (R|R), L2P and P2P.

All translations act on the complex vector t = to - from and are applied
as a p x p matrix times the coefficient vector. Matrices depend only on
(t, p) and are cached; on a uniform tree there are only a handful of
distinct translation vectors per level.
"""

from abc import ABC, abstractmethod
from functools import lru_cache
from typing import List, Tuple, Union
import numpy as np

from .cell import Cell
from .expansion import Expansion, MultipoleExpansion, LocalExpansion
from .point import Point
from ..kernels import Kernel, LogarithmicKernel

Coefficients = Union[np.ndarray, Expansion]

_MATRIX_CACHE_SIZE = 1024


def _as_coefficients(coeffs: Coefficients, order: int) -> np.ndarray:
    if isinstance(coeffs, Expansion):
        coeffs = coeffs.coefficients
    coeffs = np.asarray(coeffs, dtype=np.complex128)
    if coeffs.shape != (order,):
        raise ValueError(
            f"Expected {order} coefficients, got shape {coeffs.shape}"
        )
    return coeffs


def _readonly(matrix: np.ndarray) -> np.ndarray:
    matrix.setflags(write=False)
    return matrix


@lru_cache(maxsize=_MATRIX_CACHE_SIZE)
def far_to_far_matrix(t: complex, order: int) -> np.ndarray:
    """
    S|S matrix re-expanding a far field about a center shifted by t.

    Lower triangular with unit diagonal. Column 0 carries the expansion
    of log(z + t); the rest carries the binomial series of (z + t)^-j.
    """
    m = np.zeros((order, order), dtype=np.complex128)
    np.fill_diagonal(m, 1.0)
    if order > 1:
        m[1, 0] = t
    for i in range(2, order):
        m[i, 0] = -m[i - 1, 0] * t * (i - 1) / i
    for i in range(1, order):
        for j in range(i - 1, 0, -1):
            m[i, j] = -m[i, j + 1] * t * j / (i - j)
    return _readonly(m)


@lru_cache(maxsize=_MATRIX_CACHE_SIZE)
def far_to_near_matrix(t: complex, order: int) -> np.ndarray:
    """
    S|R matrix turning a far field into a local expansion about a center
    displaced by t. Dense; requires t != 0.
    """
    if t == 0:
        raise ValueError("Far-to-near translation with zero vector")

    m = np.empty((order, order), dtype=np.complex128)
    m[0, 0] = np.log(t)
    for j in range(1, order):
        m[0, j] = t ** -j
    if order > 1:
        m[1, 0] = 1.0 / t
    for i in range(2, order):
        m[i, 0] = -m[i - 1, 0] * (i - 1) / (i * t)
    for i in range(1, order):
        for j in range(1, order):
            m[i, j] = -m[i - 1, j] * (i + j - 1) / (i * t)
    return _readonly(m)


@lru_cache(maxsize=_MATRIX_CACHE_SIZE)
def near_to_near_matrix(t: complex, order: int) -> np.ndarray:
    """
    R|R matrix re-expanding a local expansion about a center shifted by t.

    Upper triangular with unit diagonal: entry (i, j) is C(j, i) t^(j-i).
    """
    m = np.zeros((order, order), dtype=np.complex128)
    np.fill_diagonal(m, 1.0)
    for j in range(1, order):
        m[0, j] = m[0, j - 1] * t
    for i in range(1, order):
        for j in range(i + 1, order):
            m[i, j] = m[i - 1, j] * (j - i + 1) / (t * i)
    return _readonly(m)


class Operator(ABC):
    """
    Abstract base class for FMM operators.

    All operators implement a common interface for applying
    the operation to cells, coefficients or points.
    """

    def __init__(self, order: int):
        """
        Initialize the operator.

        Args:
            order: Number of expansion terms (p)
        """
        if order <= 0:
            raise ValueError(f"Expansion order must be positive, got {order}")
        self.order = order

    @abstractmethod
    def apply(self, *args, **kwargs):
        """Apply the operator."""
        pass


class P2M(Operator):
    """
    Particles-to-Multipole operator.

    A unit charge at xi seen from a center xstar:
        log(y - xi) = log(z) - sum_{m>=1} (xi - xstar)^m / m * z^-m,
        z = y - xstar,
    so b[0] = 1 and b[m] = -(xi - xstar)^m / m.
    """

    def coefficients(self, xi: complex, xstar: complex) -> np.ndarray:
        """Far-field coefficients of a unit charge at xi about xstar."""
        b = np.empty(self.order, dtype=np.complex128)
        b[0] = 1.0
        if self.order > 1:
            m = np.arange(1, self.order)
            b[1:] = -(complex(xi) - complex(xstar)) ** m / m
        return b

    def apply(self, cell: Cell, charges: np.ndarray) -> int:
        """
        Accumulate the sources of a leaf cell into its multipole expansion.

        Args:
            cell: Leaf cell whose sources are expanded
            charges: Charges indexed by source Point.index

        Returns:
            Number of sources expanded
        """
        if not cell.is_leaf:
            raise ValueError("P2M can only be applied to leaf cells")
        if not cell.sources:
            return 0

        z = np.array([p.coord for p in cell.sources]) - cell.center
        u = charges[[p.index for p in cell.sources]]

        b = np.zeros(self.order, dtype=np.complex128)
        b[0] = u.sum()
        if self.order > 1:
            m = np.arange(1, self.order)
            b[1:] = -(u @ (z[:, None] ** m)) / m
        cell.c.add(b)
        return len(cell.sources)


class M2M(Operator):
    """
    Multipole-to-Multipole (S|S) translation operator.

    Moves a far-field expansion from a child center to its parent center.
    """

    def matrix(self, t: complex) -> np.ndarray:
        return far_to_far_matrix(complex(t), self.order)

    def apply(self, source_center: complex, target_center: complex,
              coefficients: Coefficients) -> np.ndarray:
        """
        Apply M2M operator to translate a multipole expansion.

        Args:
            source_center: Center the coefficients are expanded about
            target_center: New expansion center
            coefficients: Far-field coefficients about source_center

        Returns:
            Far-field coefficients about target_center
        """
        coeffs = _as_coefficients(coefficients, self.order)
        return self.matrix(complex(target_center) - complex(source_center)) @ coeffs


class M2L(Operator):
    """
    Multipole-to-Local (S|R) conversion operator.

    Converts the far field of a well-separated cell into a local
    expansion about the target center. This is the only operator that
    takes a complex logarithm (principal branch) and must never be used
    with coincident centers.
    """

    def matrix(self, t: complex) -> np.ndarray:
        return far_to_near_matrix(complex(t), self.order)

    def apply(self, source_center: complex, target_center: complex,
              coefficients: Coefficients) -> np.ndarray:
        coeffs = _as_coefficients(coefficients, self.order)
        return self.matrix(complex(target_center) - complex(source_center)) @ coeffs


class L2L(Operator):
    """
    Local-to-Local (R|R) translation operator.

    Moves a local expansion from a parent center to a child center.
    """

    def matrix(self, t: complex) -> np.ndarray:
        return near_to_near_matrix(complex(t), self.order)

    def apply(self, source_center: complex, target_center: complex,
              coefficients: Coefficients) -> np.ndarray:
        coeffs = _as_coefficients(coefficients, self.order)
        return self.matrix(complex(target_center) - complex(source_center)) @ coeffs


class L2P(Operator):
    """
    Local-to-Particles operator.

    Evaluates the real part of sum_k D[k] (y - xstar)^k at target points.
    """

    def powers(self, y: complex, xstar: complex) -> np.ndarray:
        """R basis values (y - xstar)^m for m = 0..p-1."""
        return (complex(y) - complex(xstar)) ** np.arange(self.order)

    def apply(self, expansion: LocalExpansion, points: List[Point]) -> np.ndarray:
        """
        Evaluate a local expansion at target points.

        Args:
            expansion: Local expansion to evaluate
            points: Target points inside the expansion's cell

        Returns:
            Real far-field potentials, one per point
        """
        if not points:
            return np.zeros(0, dtype=np.float64)
        return expansion.evaluate(np.array([p.coord for p in points]))


class P2P(Operator):
    """
    Particles-to-Particles operator.

    Direct computation of near-field interactions.
    """

    def __init__(self, kernel: Kernel):
        super().__init__(order=1)
        self.kernel = kernel

    def apply(self, targets: List[Point], sources: List[Point],
              charges: np.ndarray) -> Tuple[np.ndarray, int]:
        """
        Apply P2P operator for direct near-field computation.

        Args:
            targets: Target points
            sources: Source points
            charges: Charges indexed by source Point.index

        Returns:
            Tuple of (potentials per target, number of kernel evaluations)
        """
        if not targets or not sources:
            return np.zeros(len(targets), dtype=np.float64), 0

        y = np.array([p.coord for p in targets])
        x = np.array([p.coord for p in sources])
        u = charges[[p.index for p in sources]]
        return self.kernel.evaluate(y, x, u, return_count=True)


class ExpansionKernel:
    """
    Expansion and translation library for a fixed truncation order p.

    Every coefficient array it produces or consumes has exactly p entries.
    """

    def __init__(self, order: int, kernel: Kernel = None):
        if order <= 0:
            raise ValueError(f"Expansion order must be positive, got {order}")
        if kernel is None:
            kernel = LogarithmicKernel()

        self.order = order
        self.kernel = kernel
        self.p2m = P2M(order)
        self.m2m = M2M(order)
        self.m2l = M2L(order)
        self.l2l = L2L(order)
        self.l2p = L2P(order)
        self.p2p = P2P(kernel)

    def far_coefficients(self, xi: complex, xstar: complex) -> np.ndarray:
        """Multipole coefficients of a unit charge at xi about xstar."""
        return self.p2m.coefficients(xi, xstar)

    def near_powers(self, y: complex, xstar: complex) -> np.ndarray:
        """Local basis values (y - xstar)^m."""
        return self.l2p.powers(y, xstar)

    def far_to_far(self, source_center: complex, target_center: complex,
                   coefficients: Coefficients) -> np.ndarray:
        return self.m2m.apply(source_center, target_center, coefficients)

    def far_to_near(self, source_center: complex, target_center: complex,
                    coefficients: Coefficients) -> np.ndarray:
        return self.m2l.apply(source_center, target_center, coefficients)

    def near_to_near(self, source_center: complex, target_center: complex,
                     coefficients: Coefficients) -> np.ndarray:
        return self.l2l.apply(source_center, target_center, coefficients)

    @staticmethod
    def direct_potential(y: complex, x: complex) -> complex:
        """Exact complex potential log(y - x). Caller excludes y == x."""
        return LogarithmicKernel.potential(y, x)

    def __repr__(self) -> str:
        return f"ExpansionKernel(p={self.order})"
