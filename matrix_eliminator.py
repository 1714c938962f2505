"""
Matrix Eliminator

Reduces a sparse matrix over a Euclidean ring to echelon, Hermite or Smith
(diagonal) form with elementary operations, recording every operation so
that the transform matrices L and R with ``L * A * R == result`` can be
rebuilt afterwards (see ``elementary_operations``).

The worker (:class:`MatrixEliminator`) owns the row store and the operation
log. Each reduction is a strategy object with a ``step()`` method returning
``StepResult.CONTINUE`` or ``StepResult.DONE``; the worker drives a strategy
with ``run(strategy_cls)``. Column forms reuse the row strategies through
``run_transposed(strategy_cls)``, which transposes the store, runs the
strategy and transposes back. Operations applied while transposed are
logged as column operations.

Usage Example:
--------------
    from euclidean_rings import IntegerRing
    from sparse_matrix import Matrix
    from matrix_eliminator import EliminationMode, eliminate

    Z = IntegerRing()
    A = Matrix.from_rows(Z, [[2, 4], [6, 8]])
    E = eliminate(A, EliminationMode.DIAGONAL)
    print(E.result)                 # [2, 0; 0, 4]
    assert E.left * A * E.right == E.result

Termination relies on the ring: ``euc_div`` must strictly decrease
``degree``. A ring violating this makes the loop run forever.
"""

import logging
import time
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from elementary_operations import AddRow, MulRow, OperationLog, SwapRows
from elimination_result import EliminationResult
from sparse_matrix import Matrix
from sparse_row_store import RowStore


_logger = logging.getLogger(__name__)


class EliminationMode(Enum):
    ROW_ECHELON = 'row_echelon'
    COL_ECHELON = 'col_echelon'
    ROW_HERMITE = 'row_hermite'
    COL_HERMITE = 'col_hermite'
    DIAGONAL = 'diagonal'

    @property
    def is_column_mode(self) -> bool:
        return self in (EliminationMode.COL_ECHELON, EliminationMode.COL_HERMITE)


class StepResult(Enum):
    CONTINUE = 'continue'
    DONE = 'done'


class RowEchelonStrategy:
    """
    Row echelon reduction, one pivot column per completed step.

    For the current column, the candidates are the rows at or below the
    current row whose head sits in that column. The pivot is the first
    invertible candidate, otherwise the candidate of least Euclidean degree
    (ties: lighter row, then lower row index). The pivot row is normalized,
    every other candidate is reduced by Euclidean division, and if any
    remainder survives the same column is processed again. Once the pivot is
    the only candidate it is swapped into the current row and both cursors
    advance.
    """

    name = 'row_echelon'

    def __init__(self, worker: 'MatrixEliminator'):
        self.worker = worker
        self.current_row = 0
        self.current_col = 0

    def _select_pivot(self, candidates: List[Tuple[int, Any]]) -> Tuple[int, Any]:
        ring = self.worker.ring
        store = self.worker.store
        for i, a in candidates:
            if ring.is_invertible(a):
                return i, a
        return min(candidates, key=lambda c: (ring.degree(c[1]), store.row_weight(c[0]), c[0]))

    def step(self) -> StepResult:
        worker = self.worker
        store = worker.store
        ring = worker.ring

        if self.current_row >= store.rows or self.current_col >= store.cols:
            return StepResult.DONE

        candidates = [
            (i, a) for i, a in store.head_elements_in_col(self.current_col) if i >= self.current_row
        ]
        if not candidates:
            self.current_col += 1
            return StepResult.CONTINUE

        pivot_row, pivot = self._select_pivot(candidates)
        worker.logger.debug(
            "%s: col %d, pivot row %d (%s), %d candidates",
            self.name, self.current_col, pivot_row, pivot, len(candidates)
        )

        unit = ring.normalizing_unit(pivot)
        if unit != ring.identity:
            worker.apply(MulRow(pivot_row, unit))
            pivot = unit * pivot

        targets = []
        multipliers = []
        remains = False
        for i, a in candidates:
            if i == pivot_row:
                continue
            q, r = ring.euc_div(a, pivot)
            if not ring.is_zero(q):
                targets.append(i)
                multipliers.append(-q)
            if not ring.is_zero(r):
                remains = True
        worker.add_rows(pivot_row, targets, multipliers)

        if remains:
            return StepResult.CONTINUE

        if pivot_row != self.current_row:
            worker.apply(SwapRows(self.current_row, pivot_row))
        self.current_row += 1
        self.current_col += 1
        return StepResult.CONTINUE


class RowHermiteStrategy:
    """
    Row echelon reduction followed by reduction of the entries above each
    pivot modulo the pivot.
    """

    name = 'row_hermite'

    def __init__(self, worker: 'MatrixEliminator'):
        self.worker = worker
        self.echelon_done = False
        self.rank = 0
        self.current_row = 0

    def step(self) -> StepResult:
        worker = self.worker
        store = worker.store
        ring = worker.ring

        if not self.echelon_done:
            worker.run(RowEchelonStrategy)
            self.rank = store.nonzero_rows
            self.echelon_done = True
            return StepResult.CONTINUE

        if self.current_row >= self.rank:
            return StepResult.DONE

        t = self.current_row
        j0, a0 = store.head_element(t)
        targets = []
        multipliers = []
        for i, a in store.elements_in_col_above_row(j0, t):
            q = ring.euc_div(a, a0)[0]
            if not ring.is_zero(q):
                targets.append(i)
                multipliers.append(-q)
        worker.add_rows(t, targets, multipliers)

        self.current_row += 1
        return StepResult.CONTINUE


class ColEchelonStrategy:
    name = 'col_echelon'

    def __init__(self, worker: 'MatrixEliminator'):
        self.worker = worker

    def step(self) -> StepResult:
        self.worker.run_transposed(RowEchelonStrategy)
        return StepResult.DONE


class ColHermiteStrategy:
    name = 'col_hermite'

    def __init__(self, worker: 'MatrixEliminator'):
        self.worker = worker

    def step(self) -> StepResult:
        self.worker.run_transposed(RowHermiteStrategy)
        return StepResult.DONE


class DiagonalStrategy:
    """
    Smith normal form.

    Row and column Hermite reductions alternate until every row is either
    empty or holds one normalized entry on the diagonal. Then the divisibility
    chain is checked: if ``d_i`` does not divide ``d_{i+1}``, column ``i+1`` is
    added into column ``i``, which puts both entries into column ``i`` and
    lets the next reduction replace ``d_i`` by their gcd.
    """

    name = 'diagonal'

    def __init__(self, worker: 'MatrixEliminator'):
        self.worker = worker

    def _is_diagonal(self) -> bool:
        store = self.worker.store
        ring = self.worker.ring
        for i in range(store.rows):
            row = store.row(i)
            if not row:
                continue
            if len(row) != 1 or row[0][0] != i or not ring.is_normalized(row[0][1]):
                return False
        return True

    def step(self) -> StepResult:
        worker = self.worker
        worker.run(RowHermiteStrategy)
        if not self._is_diagonal():
            worker.run_transposed(RowHermiteStrategy)
            return StepResult.CONTINUE

        ring = worker.ring
        store = worker.store
        diagonal = [store.row(i)[0][1] for i in range(store.rows) if store.row(i)]
        for i in range(len(diagonal) - 1):
            if not ring.divides(diagonal[i], diagonal[i + 1]):
                worker.logger.debug(
                    "%s: %s does not divide %s, adding col %d into col %d",
                    self.name, diagonal[i], diagonal[i + 1], i + 1, i
                )
                worker.apply_transposed(AddRow(i + 1, i, ring.identity))
                return StepResult.CONTINUE
        return StepResult.DONE


STRATEGIES = {
    EliminationMode.ROW_ECHELON: RowEchelonStrategy,
    EliminationMode.COL_ECHELON: ColEchelonStrategy,
    EliminationMode.ROW_HERMITE: RowHermiteStrategy,
    EliminationMode.COL_HERMITE: ColHermiteStrategy,
    EliminationMode.DIAGONAL: DiagonalStrategy,
}


class MatrixEliminator:
    """
    Elimination worker: owns a row store copied from the input matrix and
    the log of every operation applied to it.

    Args:
        matrix: matrix to eliminate (never mutated)
        mode: EliminationMode
        logger: logging.Logger receiving the debug trace (default: module logger)
        executor: optional concurrent.futures.Executor used to fan out row
            additions from one pivot to several target rows
        track_weights: maintain row weights for pivot tie-breaking
    """

    def __init__(
        self,
        matrix: Matrix,
        mode: EliminationMode = EliminationMode.DIAGONAL,
        logger: Optional[logging.Logger] = None,
        executor=None,
        track_weights: bool = True
    ):
        if not isinstance(matrix, Matrix):
            raise TypeError(f"MatrixEliminator requires a Matrix, got {type(matrix).__name__}")
        if not isinstance(mode, EliminationMode):
            raise TypeError(f"mode must be an EliminationMode, got {mode!r}")

        self.matrix = matrix
        self.mode = mode
        self.ring = matrix.ring
        self.logger = logger if logger is not None else _logger
        self.executor = executor
        self.track_weights = track_weights

        self.store = RowStore.from_matrix(matrix, track_weights=track_weights)
        self.log = OperationLog(matrix.ring, matrix.rows, matrix.cols)
        self.transposed = False
        self.iteration_count = 0

        self._timing_stats: Dict[str, float] = {}
        self._timing_counts: Dict[str, int] = {}

    # ------------------------------------------------------------------ operations
    def apply(self, op) -> None:
        self.store.apply(op)
        self.log.record(op, self.transposed)

    def apply_transposed(self, op) -> None:
        """Apply ``op`` as a column operation on the current orientation."""
        self.transpose()
        self.apply(op)
        self.transpose()

    def add_rows(self, source: int, targets: Sequence[int], multipliers: Sequence[Any]) -> None:
        """Add multiples of the pivot row ``source`` to each target row."""
        if not targets:
            return
        if self.executor is not None and len(targets) > 1:
            self.store.batch_add_row(source, targets, multipliers, executor=self.executor)
            for i, r in zip(targets, multipliers):
                self.log.record(AddRow(source, i, r), self.transposed)
        else:
            for i, r in zip(targets, multipliers):
                self.apply(AddRow(source, i, r))

    def transpose(self) -> None:
        start = time.perf_counter()
        self.store.transpose()
        self.transposed = not self.transposed
        self._record_time('transpose', time.perf_counter() - start)

    # ------------------------------------------------------------------ drivers
    def run(self, strategy_cls) -> None:
        strategy = strategy_cls(self)
        start = time.perf_counter()
        self.logger.debug(
            "start %s on %dx%d%s", strategy.name, self.store.rows, self.store.cols,
            " (transposed)" if self.transposed else ""
        )
        while strategy.step() is StepResult.CONTINUE:
            self.iteration_count += 1
        self._record_time(strategy.name, time.perf_counter() - start)
        self.logger.debug("done %s after %d iterations in total", strategy.name, self.iteration_count)

    def run_transposed(self, strategy_cls) -> None:
        self.transpose()
        self.run(strategy_cls)
        self.transpose()

    def execute(self) -> EliminationResult:
        """Run the reduction for ``self.mode`` and wrap the outcome."""
        self.run(STRATEGIES[self.mode])
        return EliminationResult(
            self.matrix, self.mode, self.store.to_matrix(), self.log,
            options={'logger': self.logger, 'track_weights': self.track_weights}
        )

    # ------------------------------------------------------------------ statistics
    def _record_time(self, key: str, elapsed: float) -> None:
        self._timing_stats[key] = self._timing_stats.get(key, 0.0) + elapsed
        self._timing_counts[key] = self._timing_counts.get(key, 0) + 1

    def get_timing_statistics(self) -> Dict[str, Dict[str, float]]:
        """
        Get performance timing statistics.

        Returns:
            Dictionary keyed by strategy name (and 'transpose') with
            total_time, call_count and avg_time. Nested runs are also
            included in the totals of the strategy that started them.
        """
        stats = {}
        for key, total_time in self._timing_stats.items():
            count = self._timing_counts[key]
            stats[key] = {
                'total_time': total_time,
                'call_count': count,
                'avg_time': total_time / count if count > 0 else 0.0
            }
        return stats


def eliminate(
    matrix: Matrix,
    mode: EliminationMode = EliminationMode.DIAGONAL,
    *,
    logger: Optional[logging.Logger] = None,
    executor=None,
    track_weights: bool = True
) -> EliminationResult:
    """
    Eliminate ``matrix`` in the given mode.

    Returns:
        EliminationResult with the reduced matrix, transforms, rank, kernel,
        image, determinant and inverse (all computed lazily)
    """
    worker = MatrixEliminator(matrix, mode, logger=logger, executor=executor, track_weights=track_weights)
    return worker.execute()
