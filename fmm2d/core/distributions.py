"""
Point distributions for driving and validating the FMM.
"""

from typing import Optional, Tuple
import numpy as np


def uniform_points(n: int, seed: Optional[int] = None) -> np.ndarray:
    """
    Draw n points uniformly from [0, 1)^2.

    Returns:
        Complex array of shape (n,)
    """
    if n < 0:
        raise ValueError("Number of points must be non-negative")
    rng = np.random.default_rng(seed)
    xy = rng.random((n, 2))
    return xy[:, 0] + 1j * xy[:, 1]


def lattice_points(num_levels: int) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Regular layout with four points per cell of level `num_levels - 1`.

    Each cell holds one point at each of its quarter and three-quarter
    offsets, so at level `num_levels` every leaf contains exactly one
    point. Sources and targets coincide and all charges are 1.

    Returns:
        Tuple of (sources, charges, targets)
    """
    if num_levels < 1:
        raise ValueError("Number of levels must be at least 1")

    cells_per_side = 2 ** (num_levels - 1)
    cell_length = 1.0 / cells_per_side
    offsets = np.array([0.25, 0.75]) * cell_length

    corners = np.arange(cells_per_side) * cell_length
    points = []
    for y0 in corners:
        for x0 in corners:
            for dy in offsets:
                for dx in offsets:
                    points.append(complex(x0 + dx, y0 + dy))

    sources = np.array(points, dtype=np.complex128)
    return sources, np.ones(len(sources)), sources.copy()
