"""
Cell Module

Represents a cell of the uniform quadtree used by the FMM.
"""

from typing import List
from dataclasses import dataclass, field
from enum import Enum

from .expansion import MultipoleExpansion, LocalExpansion
from .point import Point
from . import spatial_index


class CellType(Enum):
    """Type of cell in the tree."""
    ROOT = "root"
    INTERNAL = "internal"
    LEAF = "leaf"


@dataclass
class Cell:
    """
    A square of side 2^-level identified by (level, address).

    Geometry is derived from the address on demand and never stored.
    Points are only attached at the finest level.

    Attributes:
        level: Tree level (0 = root)
        address: Morton address within the level
        order: Number of expansion terms (p)
        cell_type: Type of cell (root, internal, or leaf)
        sources: Source points inside the cell
        targets: Target points inside the cell
        c: Multipole expansion of the sources inside the cell
        dtilde: Local expansion from the interaction list only
        d: Local expansion from everything outside the near neighbors
    """
    level: int
    address: int
    order: int
    cell_type: CellType = CellType.LEAF
    sources: List[Point] = field(default_factory=list)
    targets: List[Point] = field(default_factory=list)

    def __post_init__(self):
        """Allocate zero coefficient arrays about the cell center."""
        center = self.center
        self.c = MultipoleExpansion(center, self.order)
        self.dtilde = LocalExpansion(center, self.order)
        self.d = LocalExpansion(center, self.order)

    @property
    def center(self) -> complex:
        return spatial_index.cell_center(self.level, self.address)

    @property
    def size(self) -> float:
        return spatial_index.cell_size(self.level)

    @property
    def is_leaf(self) -> bool:
        return self.cell_type == CellType.LEAF

    @property
    def is_root(self) -> bool:
        return self.level == 0

    @property
    def is_empty(self) -> bool:
        return not self.sources and not self.targets

    @property
    def parent_address(self) -> int:
        return spatial_index.parent_address(self.address)

    @property
    def child_addresses(self) -> List[int]:
        return spatial_index.child_addresses(self.address)

    def neighbor_addresses(self) -> List[int]:
        """Same-level cells touching this one."""
        if self.level == 0:
            return []
        return spatial_index.neighbor_addresses(self.level, self.address)

    def interaction_list(self) -> List[int]:
        """Same-level cells whose far field is translated into this cell."""
        return spatial_index.interaction_list(self.level, self.address)

    def contains(self, coord: complex) -> bool:
        """Check if a point lies in the closed square of this cell."""
        half = self.size / 2.0
        offset = complex(coord) - self.center
        return abs(offset.real) <= half and abs(offset.imag) <= half

    def add_source(self, point: Point):
        self.sources.append(point)

    def add_target(self, point: Point):
        self.targets.append(point)

    def __repr__(self) -> str:
        type_str = self.cell_type.value
        return (f"Cell({type_str}, level={self.level}, addr={self.address}, "
                f"center=({self.center.real:.4g}, {self.center.imag:.4g}), "
                f"size={self.size:.4g}, "
                f"nx={len(self.sources)}, ny={len(self.targets)})")
