"""
Spatial Index Module

Pure address arithmetic for the uniform quadtree over the unit square.

A cell at refinement level l is identified by a single integer address in
[0, 4^l), obtained by interleaving the bits of its grid coordinates
(gx, gy) in Morton (Z-order) fashion: bits of gx land on odd positions,
bits of gy on even positions, most significant pair first.

    level 1:   1 | 3        level 2:   5 |  7 | 13 | 15
               --+--                   4 |  6 | 12 | 14
               0 | 2                   1 |  3 |  9 | 11
                                       0 |  2 |  8 | 10

Parent, child and neighbor relations are derived from the address alone,
so the tree never stores links between cells.
"""

import math
from typing import List, Tuple

# Two address bits per level; addresses are packed into 8 bit-pairs.
MAX_LEVEL = 8

# Coarsest level at which a cell has well-separated cells.
MIN_INTERACTION_LEVEL = 2

_NEIGHBOR_OFFSETS = [
    (-1, -1), (0, -1), (1, -1),
    (-1, 0),           (1, 0),
    (-1, 1),  (0, 1),  (1, 1),
]


def _check_level(level: int, minimum: int = 1):
    if not minimum <= level <= MAX_LEVEL:
        raise ValueError(
            f"Level must be in [{minimum}, {MAX_LEVEL}], got {level}"
        )


def _check_address(address: int, level: int):
    if not 0 <= address < 4 ** level:
        raise ValueError(
            f"Address {address} out of range for level {level}"
        )


def interleave(gx: int, gy: int, level: int) -> int:
    """
    Pack grid coordinates into a cell address.

    Args:
        gx: Column of the cell, 0 <= gx < 2^level
        gy: Row of the cell, 0 <= gy < 2^level
        level: Refinement level in [1, MAX_LEVEL]

    Returns:
        Morton address of the cell
    """
    _check_level(level)
    side = 1 << level
    if not (0 <= gx < side and 0 <= gy < side):
        raise ValueError(
            f"Grid coordinate ({gx}, {gy}) out of range for level {level}"
        )
    if gx == 0 and gy == 0:
        return 0

    address = 0
    for bit in range(level - 1, -1, -1):
        address = (address << 2) | (((gx >> bit) & 1) << 1) | ((gy >> bit) & 1)
    return address


def uninterleave(address: int, level: int) -> Tuple[int, int]:
    """Inverse of :func:`interleave`: recover (gx, gy) from an address."""
    _check_level(level)
    _check_address(address, level)

    gx = gy = 0
    for bit in range(level):
        gx |= ((address >> (2 * bit + 1)) & 1) << bit
        gy |= ((address >> (2 * bit)) & 1) << bit
    return gx, gy


def parent_address(address: int) -> int:
    """Address of the enclosing cell one level up."""
    return address >> 2


def child_addresses(address: int) -> List[int]:
    """Addresses of the four children one level down."""
    base = address << 2
    return [base, base + 1, base + 2, base + 3]


def cell_size(level: int) -> float:
    """Side length of a cell at the given level."""
    return 2.0 ** -level


def cell_center(level: int, address: int) -> complex:
    """Center of cell (level, address) as a complex number."""
    if level == 0:
        _check_address(address, level)
        return complex(0.5, 0.5)
    gx, gy = uninterleave(address, level)
    size = cell_size(level)
    return complex((gx + 0.5) * size, (gy + 0.5) * size)


def leaf_address(coord: complex, level: int) -> int:
    """
    Address of the cell at `level` containing the point `coord`.

    Points on the upper or right edge of the unit square belong to the
    last row or column of cells.
    """
    x, y = coord.real, coord.imag
    if not (math.isfinite(x) and math.isfinite(y)):
        raise ValueError(f"Point {coord} has non-finite coordinates")
    if not (0.0 <= x <= 1.0 and 0.0 <= y <= 1.0):
        raise ValueError(f"Point {coord} lies outside the unit square")

    last = (1 << level) - 1
    gx = min(int(math.floor(x * (1 << level))), last)
    gy = min(int(math.floor(y * (1 << level))), last)
    return interleave(gx, gy, level)


def neighbor_addresses(level: int, address: int) -> List[int]:
    """
    Same-level cells sharing an edge or a corner with (level, address).

    The cell itself is not included. Order follows the fixed offset
    table, row by row from the bottom-left.
    """
    gx, gy = uninterleave(address, level)
    side = 1 << level

    neighbors = []
    for dx, dy in _NEIGHBOR_OFFSETS:
        nx, ny = gx + dx, gy + dy
        if 0 <= nx < side and 0 <= ny < side:
            neighbors.append(interleave(nx, ny, level))
    return neighbors


def interaction_list(level: int, address: int) -> List[int]:
    """
    Interaction list (E4) of cell (level, address).

    Children of the parent's neighbors that are not neighbors of the cell
    itself. Empty below MIN_INTERACTION_LEVEL, where every cell touches
    every other one.

    Returns:
        Sorted list of addresses at the same level
    """
    if level < MIN_INTERACTION_LEVEL:
        _check_address(address, level)
        return []

    near = set(neighbor_addresses(level, address))
    parent = parent_address(address)

    candidates = set()
    for parent_neighbor in neighbor_addresses(level - 1, parent):
        candidates.update(child_addresses(parent_neighbor))

    return sorted(candidates - near)
