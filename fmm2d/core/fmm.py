"""
Main FMM Module

Implements the Fast Multipole Method for the 2D logarithmic potential on a
uniform quadtree, orchestrating the operators in five strictly sequential
phases:

    1. seed_leaves      P2M at the finest level L
    2. upward_pass      M2M, levels L-1 .. 2
    3. downward_pass1   M2L over interaction lists, levels 2 .. L
    4. downward_pass2   L2L, levels 3 .. L (level 2 starts from M2L only)
    5. evaluate         L2P + P2P at the leaves

Both tree traversals are written as gathers: a parent pulls from its four
children, a child pulls from its one parent. Cells of one level are
therefore independent of each other and each cell has a single writer.
"""

from enum import IntEnum
from typing import Dict, Optional, Sequence
import logging
import numpy as np

from .tree import Tree, TreeConfig, as_points
from .cell import Cell
from .operators import ExpansionKernel
from .spatial_index import MIN_INTERACTION_LEVEL
from ..kernels import Kernel, LogarithmicKernel

logger = logging.getLogger(__name__)


class Phase(IntEnum):
    """Progress of a solve; each phase may only follow its predecessor."""
    BUILT = 0
    SEEDED = 1
    UPWARD = 2
    DOWNWARD1 = 3
    DOWNWARD2 = 4
    EVALUATED = 5


def _as_charges(charges: Sequence[float], num_sources: int) -> np.ndarray:
    charges = np.asarray(charges, dtype=np.float64)
    if charges.ndim != 1 or len(charges) != num_sources:
        raise ValueError(
            f"Got {charges.size} charges for {num_sources} sources"
        )
    if not np.all(np.isfinite(charges)):
        raise ValueError("Charges must be finite")
    return charges


class FMM:
    """
    Fast Multipole Method for sum_i u_i log|y_j - x_i| over the unit square.

    Usage:
        fmm = FMM(sources, charges, targets, TreeConfig(num_levels=4))
        potentials = fmm.compute()

    or phase by phase, in order, exactly once each:
        fmm.seed_leaves(); fmm.upward_pass(); fmm.downward_pass1()
        fmm.downward_pass2(); potentials = fmm.evaluate()
    """

    def __init__(self, sources: Sequence, charges: Sequence[float],
                 targets: Sequence, config: Optional[TreeConfig] = None,
                 kernel: Optional[Kernel] = None):
        """
        Initialize FMM.

        Args:
            sources: Source points (complex coordinates in [0, 1]^2)
            charges: Real charge of each source, index-aligned with sources
            targets: Target points (complex coordinates in [0, 1]^2)
            config: Tree configuration (optional)
            kernel: Direct near-field kernel (optional)
        """
        if config is None:
            config = TreeConfig()
        if kernel is None:
            kernel = LogarithmicKernel()

        self.config = config
        self.charges = _as_charges(charges, len(sources))
        self.expansion = ExpansionKernel(config.expansion_order, kernel)

        # Build tree
        self.tree = Tree(sources, targets, config)

        self.potentials = np.zeros(len(self.tree.targets), dtype=np.float64)
        self.stats: Dict[str, int] = {
            'num_ops_indirect': 0,
            'num_ops_direct': 0,
        }
        self.phase = Phase.BUILT

    @classmethod
    def solve(cls, sources: Sequence, charges: Sequence[float],
              targets: Sequence, order: int, num_levels: int) -> np.ndarray:
        """Run a complete solve and return the target potentials."""
        config = TreeConfig(num_levels=num_levels, expansion_order=order)
        return cls(sources, charges, targets, config).compute()

    @property
    def num_levels(self) -> int:
        return self.tree.num_levels

    @property
    def order(self) -> int:
        return self.config.expansion_order

    def _advance(self, expected: Phase, name: str):
        if self.phase != expected:
            raise RuntimeError(
                f"{name} requires phase {expected.name}, "
                f"but the solver is at {self.phase.name}"
            )
        self.phase = Phase(expected + 1)

    def compute(self) -> np.ndarray:
        """
        Compute all target potentials using FMM.

        Returns:
            Array of potentials, index-aligned with the targets
        """
        self.seed_leaves()
        self.upward_pass()
        self.downward_pass1()
        self.downward_pass2()
        return self.evaluate()

    def seed_leaves(self):
        """Phase 1: P2M, expand each leaf's sources about its center."""
        self._advance(Phase.BUILT, "seed_leaves")
        logger.info("seed leaves: start")

        p2m = self.expansion.p2m
        for leaf in self.tree.leaves:
            count = p2m.apply(leaf, self.charges)
            self.stats['num_ops_indirect'] += count * self.order

        logger.info("seed leaves: done")

    def upward_pass(self):
        """
        Phase 2: M2M, gather children's multipole expansions into parents.

        Levels are finalized from L-1 up to 2; a level only reads the
        completed level below it.
        """
        self._advance(Phase.SEEDED, "upward_pass")
        logger.info("upward pass: start")

        for level in range(self.num_levels - 1, MIN_INTERACTION_LEVEL - 1, -1):
            logger.debug("upward pass level %d", level)
            for cell in self.tree.get_cells_at_level(level):
                self._gather_children(cell)

        logger.info("upward pass: done")

    def _gather_children(self, cell: Cell):
        m2m = self.expansion.m2m
        for child in self.tree.get_children(cell):
            if child.c.is_zero():
                continue
            cell.c.add(m2m.apply(child.center, cell.center, child.c))
            self.stats['num_ops_indirect'] += self.order ** 2

    def downward_pass1(self):
        """Phase 3: M2L, convert interaction-list multipoles to local expansions."""
        self._advance(Phase.UPWARD, "downward_pass1")
        logger.info("downward pass 1: start")

        m2l = self.expansion.m2l
        for level in range(MIN_INTERACTION_LEVEL, self.num_levels + 1):
            logger.debug("downward pass 1 level %d", level)
            for cell in self.tree.get_cells_at_level(level):
                center = cell.center
                for source in self.tree.get_interaction_list(cell):
                    if source.c.is_zero():
                        continue
                    cell.dtilde.add(m2l.apply(source.center, center, source.c))
                    self.stats['num_ops_indirect'] += self.order ** 2

        logger.info("downward pass 1: done")

    def downward_pass2(self):
        """
        Phase 4: L2L, give every cell the far field of everything outside
        its near neighbors.

        At the coarsest interaction level D is Dtilde; below it each child
        pulls its parent's D and adds its own Dtilde.
        """
        self._advance(Phase.DOWNWARD1, "downward_pass2")
        logger.info("downward pass 2: start")

        if self.num_levels >= MIN_INTERACTION_LEVEL:
            for cell in self.tree.get_cells_at_level(MIN_INTERACTION_LEVEL):
                cell.d.set_coefficients(cell.dtilde.coefficients)

        l2l = self.expansion.l2l
        for level in range(MIN_INTERACTION_LEVEL + 1, self.num_levels + 1):
            logger.debug("downward pass 2 level %d", level)
            for cell in self.tree.get_cells_at_level(level):
                parent = self.tree.get_parent(cell)
                cell.d.set_coefficients(
                    l2l.apply(parent.center, cell.center, parent.d)
                )
                cell.d.add(cell.dtilde)
                self.stats['num_ops_indirect'] += self.order ** 2 + self.order

        logger.info("downward pass 2: done")

    def evaluate(self) -> np.ndarray:
        """
        Phase 5: L2P plus P2P at the leaves.

        Returns:
            Array of potentials, index-aligned with the targets
        """
        self._advance(Phase.DOWNWARD2, "evaluate")
        logger.info("evaluate: start")

        l2p = self.expansion.l2p
        p2p = self.expansion.p2p
        for leaf in self.tree.leaves:
            if not leaf.targets:
                continue

            far = l2p.apply(leaf.d, leaf.targets)
            self.stats['num_ops_indirect'] += len(leaf.targets) * self.order

            sources = list(leaf.sources)
            for neighbor in self.tree.get_near_field_neighbors(leaf):
                sources.extend(neighbor.sources)
            near, count = p2p.apply(leaf.targets, sources, self.charges)
            self.stats['num_ops_direct'] += count

            indices = [p.index for p in leaf.targets]
            self.potentials[indices] = far + near

        logger.info("evaluate: done")
        return self.potentials.copy()

    def get_error_estimate(self, reference: Optional[np.ndarray] = None) -> Dict[str, float]:
        """
        Estimate FMM error compared to direct computation.

        Args:
            reference: Reference potentials from direct computation (optional)

        Returns:
            Dictionary with error metrics
        """
        if self.phase != Phase.EVALUATED:
            raise RuntimeError("Error estimate requires a completed solve")
        if reference is None:
            reference = DirectSolver(
                self.tree.sources, self.charges, self.tree.targets,
                kernel=self.expansion.kernel
            ).compute()

        reference = np.asarray(reference, dtype=np.float64)
        abs_error = np.abs(self.potentials - reference)
        rel_error = abs_error / (np.abs(reference) + 1e-14)
        ref_norm = np.linalg.norm(reference)

        return {
            'max_absolute_error': float(np.max(abs_error, initial=0.0)),
            'mean_absolute_error': float(np.mean(abs_error)) if abs_error.size else 0.0,
            'max_relative_error': float(np.max(rel_error, initial=0.0)),
            'l2_error': float(np.linalg.norm(abs_error) / ref_norm) if ref_norm > 0 else 0.0,
        }

    def __repr__(self) -> str:
        return f"FMM(p={self.order}, L={self.num_levels}, phase={self.phase.name})"


class DirectSolver:
    """
    O(N*M) reference summation with the same coincidence rule as the
    near-field part of the FMM. For validation only.
    """

    # Targets processed per block to bound the (block, N) work arrays
    BLOCK_SIZE = 1024

    def __init__(self, sources: Sequence, charges: Sequence[float],
                 targets: Sequence, kernel: Optional[Kernel] = None):
        if kernel is None:
            kernel = LogarithmicKernel()
        self.sources = as_points(sources)
        self.targets = as_points(targets)
        self.charges = _as_charges(charges, len(self.sources))
        self.kernel = kernel
        self.num_ops_direct = 0

    def compute(self) -> np.ndarray:
        """Compute potentials directly (O(N*M)) for validation."""
        logger.info("direct sum: start")

        x = np.array([p.coord for p in self.sources], dtype=np.complex128)
        y = np.array([p.coord for p in self.targets], dtype=np.complex128)
        potentials = np.zeros(len(y), dtype=np.float64)

        for start in range(0, len(y), self.BLOCK_SIZE):
            block = slice(start, start + self.BLOCK_SIZE)
            values, count = self.kernel.evaluate(
                y[block], x, self.charges, return_count=True
            )
            potentials[block] = values
            self.num_ops_direct += count

        logger.info("direct sum: done")
        return potentials


def direct_potentials(sources: Sequence, charges: Sequence[float],
                      targets: Sequence) -> np.ndarray:
    """Convenience wrapper around :class:`DirectSolver`."""
    return DirectSolver(sources, charges, targets).compute()
