"""
FMM Core Module

This module contains the core data structures and algorithms for the
2D Fast Multipole Method.
"""

from .spatial_index import (
    MAX_LEVEL,
    MIN_INTERACTION_LEVEL,
    interleave,
    uninterleave,
    parent_address,
    child_addresses,
    neighbor_addresses,
    interaction_list,
    cell_center,
    cell_size,
    leaf_address,
)
from .point import Point
from .cell import Cell, CellType
from .tree import Tree, TreeConfig, select_num_levels
from .expansion import Expansion, MultipoleExpansion, LocalExpansion
from .operators import Operator, P2M, M2M, M2L, L2L, L2P, P2P, ExpansionKernel
from .fmm import FMM, DirectSolver, Phase, direct_potentials
from .distributions import uniform_points, lattice_points

__all__ = [
    'MAX_LEVEL',
    'MIN_INTERACTION_LEVEL',
    'interleave',
    'uninterleave',
    'parent_address',
    'child_addresses',
    'neighbor_addresses',
    'interaction_list',
    'cell_center',
    'cell_size',
    'leaf_address',
    'Point',
    'Cell',
    'CellType',
    'Tree',
    'TreeConfig',
    'select_num_levels',
    'Expansion',
    'MultipoleExpansion',
    'LocalExpansion',
    'Operator',
    'P2M',
    'M2M',
    'M2L',
    'L2L',
    'L2P',
    'P2P',
    'ExpansionKernel',
    'FMM',
    'DirectSolver',
    'Phase',
    'direct_potentials',
    'uniform_points',
    'lattice_points',
]
