"""
FMM Kernels Module

Pairwise kernel used for the direct (near-field) part of the sum.
"""

import numpy as np
from abc import ABC, abstractmethod

# Relative tolerance under which a target and a source are the same point.
EPSILON = np.finfo(np.float64).eps


class Kernel(ABC):
    """Abstract base class for kernel functions."""

    @abstractmethod
    def __call__(self, x: complex, y: complex) -> float:
        """
        Evaluate kernel G(x, y).

        Args:
            x: Source point
            y: Target point

        Returns:
            Kernel value
        """
        pass

    @abstractmethod
    def evaluate(self, targets: np.ndarray, sources: np.ndarray,
                 charges: np.ndarray, return_count: bool = False):
        """
        Sum charge-weighted kernel values over all sources for each target.

        Args:
            targets: Complex array of target points (M,)
            sources: Complex array of source points (N,)
            charges: Real array of source charges (N,)

        Returns:
            Real array of potentials (M,)
        """
        pass


class LogarithmicKernel(Kernel):
    """
    2D logarithmic kernel.

    G(x, y) = Re log(y - x) = log|y - x|

    Pairs closer than eps * max(1, |x|, |y|) are treated as coincident and
    contribute nothing.
    """

    @staticmethod
    def potential(y: complex, x: complex) -> complex:
        """Complex potential log(y - x), principal branch. Requires y != x."""
        return np.log(complex(y) - complex(x))

    @staticmethod
    def is_coincident(y: complex, x: complex) -> bool:
        y, x = complex(y), complex(x)
        return abs(y - x) <= EPSILON * max(1.0, abs(x), abs(y))

    def __call__(self, x: complex, y: complex) -> float:
        """Evaluate the kernel, returning 0 for coincident points."""
        if self.is_coincident(y, x):
            return 0.0
        return self.potential(y, x).real

    @staticmethod
    def separated(targets: np.ndarray, sources: np.ndarray) -> np.ndarray:
        """Boolean (M, N) mask of target/source pairs that are not coincident."""
        distance = np.abs(targets[:, None] - sources[None, :])
        scale = np.maximum(
            1.0,
            np.maximum(np.abs(targets)[:, None], np.abs(sources)[None, :])
        )
        return distance > EPSILON * scale

    def evaluate(self, targets: np.ndarray, sources: np.ndarray,
                 charges: np.ndarray, return_count: bool = False):
        """
        Direct sum over all (target, source) pairs.

        With `return_count`, also return the number of pairs actually
        evaluated (coincident pairs excluded).
        """
        targets = np.asarray(targets, dtype=np.complex128)
        sources = np.asarray(sources, dtype=np.complex128)
        charges = np.asarray(charges, dtype=np.float64)
        if targets.size == 0 or sources.size == 0:
            result = np.zeros(targets.shape, dtype=np.float64)
            return (result, 0) if return_count else result

        far = self.separated(targets, sources)
        values = np.zeros(far.shape, dtype=np.float64)
        values[far] = np.log(np.abs(targets[:, None] - sources[None, :])[far])
        result = values @ charges

        if return_count:
            return result, int(np.count_nonzero(far))
        return result
