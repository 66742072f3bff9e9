"""
2D Fast Multipole Method for the Logarithmic Potential

Computes u_j = sum_i q_i log|y_j - x_i| for N sources and M targets in the
unit square in near-linear time, using a uniform quadtree, truncated
multipole/local expansions and the S|S, S|R and R|R translation operators.

This package includes:
- Morton-addressed uniform quadtree (no parent/child links)
- P2M, M2M, M2L, L2L, L2P and P2P operators for the log kernel
- Five-phase solver with enforced phase ordering
- Direct O(N*M) reference summation for validation
"""

from fmm2d.core import (
    Point,
    Cell,
    CellType,
    Tree,
    TreeConfig,
    select_num_levels,
    FMM,
    DirectSolver,
    ExpansionKernel,
    MultipoleExpansion,
    LocalExpansion,
    direct_potentials,
    uniform_points,
    lattice_points,
)
from fmm2d.kernels import (
    Kernel,
    LogarithmicKernel,
)

__version__ = '0.1.0'

__all__ = [
    # Core classes
    'Point',
    'Cell',
    'CellType',
    'Tree',
    'TreeConfig',
    'select_num_levels',
    'FMM',
    'DirectSolver',
    'ExpansionKernel',
    'MultipoleExpansion',
    'LocalExpansion',
    'direct_potentials',
    # Point sets
    'uniform_points',
    'lattice_points',
    # Kernels
    'Kernel',
    'LogarithmicKernel',
]
