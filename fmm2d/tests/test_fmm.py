"""
Tests for the FMM Solver

Tests accuracy against direct summation, phase ordering, and the state of
the coefficient pyramid between phases.
"""

import logging
import pytest
import numpy as np
from fmm2d.core.fmm import FMM, DirectSolver, Phase, direct_potentials
from fmm2d.core.tree import TreeConfig
from fmm2d.core.distributions import uniform_points, lattice_points
from fmm2d.kernels import LogarithmicKernel


def rotate(points, quarter_turns):
    """Rotate points about the center of the unit square."""
    center = 0.5 + 0.5j
    return center + (np.asarray(points) - center) * 1j ** quarter_turns


def orbit(point):
    """The four images of a point under quarter turns about the center."""
    return np.array([rotate(point, k) for k in range(4)])


@pytest.fixture
def random_problem():
    """200 random sources, charges and targets."""
    rng = np.random.default_rng(42)
    sources = uniform_points(200, seed=1)
    targets = uniform_points(200, seed=2)
    charges = rng.uniform(-1.0, 1.0, 200)
    return sources, charges, targets


class TestAccuracy:
    """FMM potentials against direct summation."""

    @pytest.mark.parametrize("num_levels", [2, 3, 4])
    def test_four_sources_one_target(self, num_levels):
        sources = [0.125 + 0.125j, 0.375 + 0.125j, 0.125 + 0.375j, 0.375 + 0.375j]
        target = 0.875 + 0.875j
        expected = sum(np.log(abs(target - x)) for x in sources)

        result = FMM.solve(sources, np.ones(4), [target], order=8, num_levels=num_levels)
        assert result[0] == pytest.approx(expected, abs=1e-6)

    def test_convergence_in_order(self, random_problem):
        sources, charges, targets = random_problem
        reference = direct_potentials(sources, charges, targets)

        errors = []
        for order in (4, 8, 16):
            result = FMM.solve(sources, charges, targets, order=order, num_levels=3)
            errors.append(np.max(np.abs(result - reference)))

        assert errors[0] > errors[1] > errors[2]
        assert errors[2] < 1e-5 * np.max(np.abs(reference))

    def test_rotational_symmetry(self):
        """A source set invariant under quarter turns gives equal potentials on a target orbit."""
        sources = np.concatenate([orbit(0.2 + 0.3j), orbit(0.45 + 0.1j)])
        targets = orbit(0.1 + 0.15j)

        result = FMM.solve(sources, np.ones(len(sources)), targets, order=10, num_levels=3)
        np.testing.assert_allclose(result, result[0], atol=1e-9)

    def test_targets_equal_to_sources(self):
        """Each point skips its own contribution and sees all others."""
        sources, charges, targets = lattice_points(3)
        reference = direct_potentials(sources, charges, targets)

        result = FMM.solve(sources, charges, targets, order=20, num_levels=3)
        assert np.all(np.isfinite(result))
        np.testing.assert_allclose(result, reference, atol=1e-6 * np.max(np.abs(reference)))

    def test_single_level_is_exact(self, random_problem):
        """With one level every leaf neighbors every other, so all work is direct."""
        sources, charges, targets = random_problem
        fmm = FMM(sources, charges, targets, TreeConfig(num_levels=1, expansion_order=4))
        result = fmm.compute()

        np.testing.assert_allclose(
            result, direct_potentials(sources, charges, targets), atol=1e-12
        )
        assert fmm.stats['num_ops_direct'] == 200 * 200

    def test_zero_charges(self, random_problem):
        sources, _, targets = random_problem
        result = FMM.solve(sources, np.zeros(200), targets, order=6, num_levels=3)
        np.testing.assert_array_equal(result, np.zeros(200))

    def test_no_targets(self, random_problem):
        sources, charges, _ = random_problem
        result = FMM.solve(sources, charges, [], order=6, num_levels=2)
        assert result.shape == (0,)

    def test_no_sources(self, random_problem):
        _, _, targets = random_problem
        result = FMM.solve([], [], targets, order=6, num_levels=2)
        np.testing.assert_array_equal(result, np.zeros(200))

    def test_error_estimate(self, random_problem):
        sources, charges, targets = random_problem
        fmm = FMM(sources, charges, targets, TreeConfig(num_levels=3, expansion_order=16))
        fmm.compute()

        estimate = fmm.get_error_estimate()
        assert set(estimate) == {
            'max_absolute_error', 'mean_absolute_error',
            'max_relative_error', 'l2_error',
        }
        assert estimate['mean_absolute_error'] <= estimate['max_absolute_error'] < 1e-3

        exact = fmm.get_error_estimate(reference=fmm.potentials)
        assert exact['max_absolute_error'] == 0.0


class TestPhases:
    """Phase ordering and the coefficient state after each phase."""

    @pytest.fixture
    def fmm(self, random_problem):
        sources, charges, targets = random_problem
        return FMM(sources, charges, targets, TreeConfig(num_levels=3, expansion_order=8))

    def test_phase_progression(self, fmm):
        assert fmm.phase == Phase.BUILT
        fmm.seed_leaves()
        assert fmm.phase == Phase.SEEDED
        fmm.upward_pass()
        fmm.downward_pass1()
        fmm.downward_pass2()
        assert fmm.phase == Phase.DOWNWARD2
        fmm.evaluate()
        assert fmm.phase == Phase.EVALUATED
        assert "EVALUATED" in repr(fmm)

    def test_out_of_order(self, fmm):
        with pytest.raises(RuntimeError):
            fmm.upward_pass()
        fmm.seed_leaves()
        with pytest.raises(RuntimeError):
            fmm.seed_leaves()
        with pytest.raises(RuntimeError):
            fmm.evaluate()

    def test_compute_runs_once(self, fmm):
        fmm.compute()
        with pytest.raises(RuntimeError):
            fmm.compute()

    def test_error_estimate_requires_solve(self, fmm):
        with pytest.raises(RuntimeError):
            fmm.get_error_estimate()

    def test_upward_pass_gathers_children(self, fmm):
        fmm.seed_leaves()
        fmm.upward_pass()

        m2m = fmm.expansion.m2m
        for cell in fmm.tree.get_cells_at_level(2):
            expected = np.zeros(8, dtype=np.complex128)
            for child in fmm.tree.get_children(cell):
                expected += m2m.apply(child.center, cell.center, child.c)
            np.testing.assert_allclose(cell.c.coefficients, expected, atol=1e-14)

    def test_coarse_levels_untouched(self, fmm):
        """Levels 0 and 1 never interact, so their expansions stay zero."""
        fmm.compute()
        for level in (0, 1):
            for cell in fmm.tree.get_cells_at_level(level):
                assert cell.c.is_zero()
                assert cell.dtilde.is_zero()
                assert cell.d.is_zero()

    def test_downward_pass2_starts_from_dtilde(self, fmm):
        fmm.seed_leaves()
        fmm.upward_pass()
        fmm.downward_pass1()
        fmm.downward_pass2()

        for cell in fmm.tree.get_cells_at_level(2):
            np.testing.assert_array_equal(cell.d.coefficients, cell.dtilde.coefficients)

        l2l = fmm.expansion.l2l
        for cell in fmm.tree.get_cells_at_level(3):
            parent = fmm.tree.get_parent(cell)
            expected = l2l.apply(parent.center, cell.center, parent.d) + cell.dtilde.coefficients
            np.testing.assert_allclose(cell.d.coefficients, expected, atol=1e-12)

    def test_evaluate_leaves_coefficients(self, fmm):
        fmm.seed_leaves()
        fmm.upward_pass()
        fmm.downward_pass1()
        fmm.downward_pass2()
        before = [leaf.d.coefficients.copy() for leaf in fmm.tree.leaves]

        fmm.evaluate()
        for leaf, coefficients in zip(fmm.tree.leaves, before):
            np.testing.assert_array_equal(leaf.d.coefficients, coefficients)

    def test_result_is_a_copy(self, fmm):
        result = fmm.compute()
        result[:] = 0.0
        assert np.any(fmm.potentials != 0.0)

    def test_stats(self, fmm):
        fmm.compute()
        assert fmm.stats['num_ops_indirect'] > 0
        assert 0 < fmm.stats['num_ops_direct'] < 200 * 200

    def test_logs_phases(self, fmm, caplog):
        caplog.set_level(logging.INFO, logger="fmm2d.core.fmm")
        fmm.compute()
        messages = [record.getMessage() for record in caplog.records]
        assert "seed leaves: start" in messages
        assert "upward pass: done" in messages
        assert messages[-1] == "evaluate: done"


class TestValidation:
    """Invalid inputs are rejected before any work is done."""

    def test_charge_count_mismatch(self):
        with pytest.raises(ValueError):
            FMM([0.1 + 0.1j, 0.2 + 0.2j], [1.0], [0.5 + 0.5j])

    def test_non_finite_charges(self):
        with pytest.raises(ValueError):
            FMM([0.1 + 0.1j], [np.nan], [0.5 + 0.5j])

    def test_points_outside_unit_square(self):
        with pytest.raises(ValueError):
            FMM([0.1 + 0.1j], [1.0], [1.5 + 0.5j])
        with pytest.raises(ValueError):
            FMM([-0.1 + 0.1j], [1.0], [0.5 + 0.5j])

    @pytest.mark.parametrize("order, num_levels", [(0, 2), (4, 0), (4, 9)])
    def test_bad_configuration(self, order, num_levels):
        with pytest.raises(ValueError):
            FMM.solve([0.1 + 0.1j], [1.0], [0.5 + 0.5j], order=order, num_levels=num_levels)


class TestDirectSolver:
    """Test suite for the reference summation."""

    def test_blocks_cover_all_targets(self, random_problem, monkeypatch):
        sources, charges, targets = random_problem
        expected, count = LogarithmicKernel().evaluate(
            targets, sources, charges, return_count=True
        )

        monkeypatch.setattr(DirectSolver, 'BLOCK_SIZE', 7)
        solver = DirectSolver(sources, charges, targets)
        np.testing.assert_allclose(solver.compute(), expected, atol=1e-12)
        assert solver.num_ops_direct == count

    def test_coincident_points_skipped(self):
        points = [0.25 + 0.25j, 0.75 + 0.25j]
        solver = DirectSolver(points, [1.0, 1.0], points)
        np.testing.assert_allclose(solver.compute(), [np.log(0.5), np.log(0.5)])
        assert solver.num_ops_direct == 2
