"""
Tree Module

Implements the uniform quadtree pyramid used by the FMM.

Every level l in [0, L] holds all 4^l cells, allocated up front and stored
in a flat list indexed by Morton address. Points are attached once, at the
finest level, by a direct address lookup.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

from .cell import Cell, CellType
from .point import Point
from .spatial_index import MAX_LEVEL

logger = logging.getLogger(__name__)

DEFAULT_NUM_LEVELS = 3
DEFAULT_EXPANSION_ORDER = 12
DEFAULT_CLUSTER_THRESHOLD = 5


@dataclass
class TreeConfig:
    """Configuration for tree construction."""
    num_levels: int = DEFAULT_NUM_LEVELS            # Finest level L (leaves)
    expansion_order: int = DEFAULT_EXPANSION_ORDER  # Number of expansion terms p
    max_level: int = MAX_LEVEL                      # Upper bound accepted for L

    def __post_init__(self):
        """Validate configuration."""
        if not 1 <= self.max_level <= MAX_LEVEL:
            raise ValueError(f"Max level must be in [1, {MAX_LEVEL}]")
        if not 1 <= self.num_levels <= self.max_level:
            raise ValueError(
                f"Number of levels must be in [1, {self.max_level}], "
                f"got {self.num_levels}"
            )
        if self.expansion_order <= 0:
            raise ValueError("Expansion order must be positive")


def as_points(points: Sequence) -> List[Point]:
    """Wrap coordinates into Points indexed by their input position."""
    result = []
    for i, point in enumerate(points):
        coord = point.coord if isinstance(point, Point) else complex(point)
        result.append(Point(coord, index=i))
    return result


class Tree:
    """
    Full level pyramid of Cells over the unit square.

    Cells are addressed as ``tree[level, address]``.
    """

    def __init__(self, sources: Sequence, targets: Sequence,
                 config: Optional[TreeConfig] = None):
        """
        Build the tree and attach points to the leaves.

        Args:
            sources: Source points (Points or complex coordinates)
            targets: Target points (Points or complex coordinates)
            config: Tree configuration parameters
        """
        if config is None:
            config = TreeConfig()

        self.config = config
        self.sources = as_points(sources)
        self.targets = as_points(targets)
        self.cells_by_level: List[List[Cell]] = []

        # Resolve every leaf address before allocating anything
        leaf = self.num_levels
        source_addresses = [p.box_address(leaf) for p in self.sources]
        target_addresses = [p.box_address(leaf) for p in self.targets]

        self._allocate_levels()

        leaves = self.cells_by_level[leaf]
        for point, address in zip(self.sources, source_addresses):
            leaves[address].add_source(point)
        for point, address in zip(self.targets, target_addresses):
            leaves[address].add_target(point)

        logger.debug("built tree: %s", self.get_statistics())

    @classmethod
    def build(cls, sources: Sequence, targets: Sequence,
              order: int, num_levels: int) -> 'Tree':
        """Build a tree for the given expansion order and finest level."""
        config = TreeConfig(num_levels=num_levels, expansion_order=order)
        return cls(sources, targets, config)

    def _allocate_levels(self):
        """Allocate all 4^l cells of every level with zero coefficients."""
        order = self.order
        finest = self.num_levels
        for level in range(finest + 1):
            if level == finest:
                cell_type = CellType.LEAF
            elif level == 0:
                cell_type = CellType.ROOT
            else:
                cell_type = CellType.INTERNAL
            self.cells_by_level.append([
                Cell(level=level, address=address, order=order,
                     cell_type=cell_type)
                for address in range(4 ** level)
            ])

    @property
    def num_levels(self) -> int:
        """Finest level L; levels run 0..L."""
        return self.config.num_levels

    @property
    def order(self) -> int:
        return self.config.expansion_order

    @property
    def leaves(self) -> List[Cell]:
        return self.cells_by_level[self.num_levels]

    def get_cells_at_level(self, level: int) -> List[Cell]:
        """Get all cells at a specific level."""
        if 0 <= level < len(self.cells_by_level):
            return self.cells_by_level[level]
        return []

    def get_cell(self, level: int, address: int) -> Cell:
        """Cell at (level, address)."""
        if not 0 <= level <= self.num_levels:
            raise IndexError(f"Level {level} not in tree")
        if not 0 <= address < 4 ** level:
            raise IndexError(f"Address {address} not in level {level}")
        return self.cells_by_level[level][address]

    def __getitem__(self, key: Tuple[int, int]) -> Cell:
        level, address = key
        return self.get_cell(level, address)

    def get_parent(self, cell: Cell) -> Optional[Cell]:
        if cell.is_root:
            return None
        return self.cells_by_level[cell.level - 1][cell.parent_address]

    def get_children(self, cell: Cell) -> List[Cell]:
        if cell.is_leaf:
            return []
        level = self.cells_by_level[cell.level + 1]
        return [level[a] for a in cell.child_addresses]

    def get_near_field_neighbors(self, cell: Cell) -> List[Cell]:
        """Adjacent cells at the same level (not including the cell)."""
        level = self.cells_by_level[cell.level]
        return [level[a] for a in cell.neighbor_addresses()]

    def get_interaction_list(self, cell: Cell) -> List[Cell]:
        """Same-level cells feeding the cell's far-to-near translations."""
        level = self.cells_by_level[cell.level]
        return [level[a] for a in cell.interaction_list()]

    def cluster_threshold(self) -> int:
        """Largest number of sources or targets found in any one leaf."""
        largest = 0
        for leaf in self.leaves:
            largest = max(largest, len(leaf.sources), len(leaf.targets))
        return largest

    def get_statistics(self) -> Dict[str, int]:
        """
        Compute and return tree statistics.

        Returns:
            Dictionary with tree statistics
        """
        num_cells = sum(len(level) for level in self.cells_by_level)
        non_empty = sum(1 for leaf in self.leaves if not leaf.is_empty)

        return {
            'num_sources': len(self.sources),
            'num_targets': len(self.targets),
            'num_cells': num_cells,
            'num_leaves': len(self.leaves),
            'num_non_empty_leaves': non_empty,
            'num_levels': self.num_levels,
            'cluster_threshold': self.cluster_threshold(),
        }

    def __repr__(self) -> str:
        stats = self.get_statistics()
        return (f"Tree(L={stats['num_levels']}, "
                f"p={self.order}, "
                f"N={stats['num_sources']}, "
                f"M={stats['num_targets']}, "
                f"cells={stats['num_cells']})")


def select_num_levels(sources: Sequence, targets: Sequence,
                      threshold: int = DEFAULT_CLUSTER_THRESHOLD,
                      min_level: int = 1,
                      max_level: int = MAX_LEVEL) -> int:
    """
    Pick the coarsest finest-level L whose leaves hold at most `threshold`
    sources and at most `threshold` targets.

    Falls back to `max_level` when no level in range meets the threshold.
    """
    if threshold <= 0:
        raise ValueError("Cluster threshold must be positive")
    if not 1 <= min_level <= max_level <= MAX_LEVEL:
        raise ValueError(
            f"Level range must satisfy 1 <= min <= max <= {MAX_LEVEL}"
        )

    sources = as_points(sources)
    targets = as_points(targets)
    for level in range(min_level, max_level + 1):
        occupancy = _max_occupancy(sources, targets, level)
        logger.debug("level %d: cluster threshold %d", level, occupancy)
        if occupancy <= threshold:
            return level
    return max_level


def _max_occupancy(sources: List[Point], targets: List[Point], level: int) -> int:
    """Cluster threshold at `level` without allocating coefficient storage."""
    largest = 0
    for points in (sources, targets):
        counts: Dict[int, int] = {}
        for point in points:
            address = point.box_address(level)
            counts[address] = counts.get(address, 0) + 1
        if counts:
            largest = max(largest, max(counts.values()))
    return largest
