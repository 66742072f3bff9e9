"""
Expansion Module

Defines the series expansions of the 2D logarithmic potential used in FMM.

With z = y - center, the potential of unit charges is represented by

    far field (S):   sum_m b[m] * S_m(z),  S_0(z) = log(z), S_m(z) = z^-m
    near field (R):  sum_m d[m] * R_m(z),  R_m(z) = z^m

truncated to the first p terms. The physical potential is the real part.
"""

from abc import ABC, abstractmethod
import numpy as np


class Expansion(ABC):
    """
    Abstract base class for FMM expansions.

    An expansion holds exactly `order` complex coefficients about a fixed
    center.
    """

    def __init__(self, center: complex, order: int):
        """
        Initialize the expansion with zero coefficients.

        Args:
            center: Expansion center as a complex number
            order: Number of retained terms (p)
        """
        if order <= 0:
            raise ValueError(f"Expansion order must be positive, got {order}")
        self.center = complex(center)
        self.order = order
        self._coefficients = np.zeros(order, dtype=np.complex128)

    @property
    def coefficients(self) -> np.ndarray:
        """Coefficient array (length `order`)."""
        return self._coefficients

    @property
    def num_coefficients(self) -> int:
        """Return the number of coefficients in the expansion."""
        return len(self._coefficients)

    @abstractmethod
    def basis(self, points: np.ndarray) -> np.ndarray:
        """
        Evaluate the basis functions at the given points.

        Args:
            points: Complex array of evaluation points

        Returns:
            Array of shape (num_points, order)
        """
        pass

    def evaluate(self, points) -> np.ndarray:
        """
        Evaluate the (real) potential represented by the expansion.

        Args:
            points: Complex scalar or array of evaluation points

        Returns:
            Array of real potentials, one per point
        """
        points = np.atleast_1d(np.asarray(points, dtype=np.complex128))
        return (self.basis(points) @ self._coefficients).real

    def _checked(self, values) -> np.ndarray:
        values = np.asarray(values, dtype=np.complex128)
        if values.shape != self._coefficients.shape:
            raise ValueError(
                f"Expected {self.order} coefficients, got {values.shape}"
            )
        return values

    def set_coefficients(self, values: np.ndarray):
        """Overwrite all coefficients."""
        self._coefficients[:] = self._checked(values)

    def add(self, other):
        """Accumulate another expansion or a raw coefficient array."""
        if isinstance(other, Expansion):
            other = other.coefficients
        self._coefficients += self._checked(other)

    def is_zero(self) -> bool:
        return not np.any(self._coefficients)


class MultipoleExpansion(Expansion):
    """
    Multipole (S) expansion of the sources inside a cell.

    Valid OUTSIDE the disk around `center` that contains the sources.
    """

    def basis(self, points: np.ndarray) -> np.ndarray:
        z = points - self.center
        values = np.empty((len(z), self.order), dtype=np.complex128)
        values[:, 0] = np.log(z)
        if self.order > 1:
            m = np.arange(1, self.order)
            values[:, 1:] = z[:, None] ** (-m)
        return values


class LocalExpansion(Expansion):
    """
    Local (R) expansion of far-away sources.

    Valid INSIDE the cell it is centered on.
    """

    def basis(self, points: np.ndarray) -> np.ndarray:
        z = points - self.center
        return z[:, None] ** np.arange(self.order)
