"""
Tests for Point Distributions
"""

import pytest
import numpy as np
from fmm2d.core.distributions import uniform_points, lattice_points
from fmm2d.core.point import Point


class TestUniformPoints:
    """Test suite for random point sets."""

    def test_inside_unit_square(self):
        points = uniform_points(500, seed=0)
        assert points.shape == (500,)
        assert np.all((points.real >= 0) & (points.real < 1))
        assert np.all((points.imag >= 0) & (points.imag < 1))

    def test_seeded(self):
        np.testing.assert_array_equal(uniform_points(10, seed=3), uniform_points(10, seed=3))

    def test_negative_count(self):
        with pytest.raises(ValueError):
            uniform_points(-1)


class TestLatticePoints:
    """Test suite for the regular layout."""

    def test_one_point_per_leaf(self):
        sources, charges, targets = lattice_points(3)
        assert len(sources) == 4 ** 3
        np.testing.assert_array_equal(charges, np.ones(64))
        np.testing.assert_array_equal(sources, targets)

        addresses = sorted(Point(x).box_address(3) for x in sources)
        assert addresses == list(range(64))

    def test_first_cell_order(self):
        sources, _, _ = lattice_points(2)
        np.testing.assert_allclose(
            sources[:4], [0.125 + 0.125j, 0.375 + 0.125j, 0.125 + 0.375j, 0.375 + 0.375j]
        )

    def test_targets_are_a_copy(self):
        sources, _, targets = lattice_points(1)
        targets[0] = 0.0
        assert sources[0] != 0.0

    def test_invalid_levels(self):
        with pytest.raises(ValueError):
            lattice_points(0)
