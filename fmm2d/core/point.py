"""
Point Module

Represents a single source or target location in the unit square.
"""

from dataclasses import dataclass

from .spatial_index import leaf_address


@dataclass(frozen=True)
class Point:
    """
    Immutable 2D location stored as one complex number.

    Attributes:
        coord: Location as x + iy
        index: Position of the point in the caller's input sequence
    """
    coord: complex
    index: int = 0

    def __post_init__(self):
        """Normalize the coordinate to a Python complex."""
        object.__setattr__(self, 'coord', complex(self.coord))

    @property
    def x(self) -> float:
        return self.coord.real

    @property
    def y(self) -> float:
        return self.coord.imag

    def box_address(self, level: int) -> int:
        """Address of the level-`level` cell containing this point."""
        return leaf_address(self.coord, level)

    def __repr__(self) -> str:
        return f"Point(id={self.index}, pos=({self.x:.6g}, {self.y:.6g}))"
