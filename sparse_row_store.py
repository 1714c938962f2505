"""
Sparse Row Store

Mutable per-row storage of a matrix used as the working area of the
elimination engine. Each row is a list of ``(col, value)`` pairs sorted by
column with no zero values, so the head (leftmost nonzero entry) of a row is
``row[0]``.

Two auxiliary indices are maintained incrementally on every mutation that
changes a row:

- head index: column -> set of rows whose head sits at that column, so the
  pivot search never rescans the matrix
- weight index: row -> sum of the Euclidean degrees of its entries, used to
  prefer light pivot rows

The store exclusively owns its rows: it is built from copies of a Matrix's
lines and hands out new Matrix objects when asked for a snapshot.
"""

from itertools import repeat
from typing import Any, Iterator, List, Optional, Sequence, Set, Tuple

from euclidean_rings import EuclideanRing
from sparse_matrix import Alignment, Line, Matrix, group_lines, merge_lines


def _merge_job(ring: EuclideanRing, source: Line, target: Line, r: Any) -> Line:
    return merge_lines(ring, target, source, r)


class RowStore:
    """
    Row-grouped mutable sparse matrix with head and weight tracking.

    Args:
        ring: ring adapter of the entries
        rows: number of rows
        cols: number of columns
        lines: one sorted ``[(col, value), ...]`` list per row (taken over, not copied)
        track_weights: maintain the per-row weight index
    """

    def __init__(self, ring: EuclideanRing, rows: int, cols: int, lines: List[Line],
                 track_weights: bool = True):
        if len(lines) != rows:
            raise ValueError(f"Expected {rows} row lines, got {len(lines)}")
        self.ring = ring
        self.rows = rows
        self.cols = cols
        self.track_weights = track_weights
        self._rows = lines
        self._rebuild_indices()

    @classmethod
    def from_matrix(cls, A: Matrix, track_weights: bool = True) -> 'RowStore':
        return cls(A.ring, A.rows, A.cols, A.row_lines(), track_weights=track_weights)

    @classmethod
    def identity(cls, ring: EuclideanRing, size: int, track_weights: bool = False) -> 'RowStore':
        lines = [[(i, ring.identity)] for i in range(size)]
        return cls(ring, size, size, lines, track_weights=track_weights)

    def _rebuild_indices(self) -> None:
        self._col_heads: List[Set[int]] = [set() for _ in range(self.cols)]
        for i, row in enumerate(self._rows):
            if row:
                self._col_heads[row[0][0]].add(i)
        if self.track_weights:
            self._weights = [self._weigh(row) for row in self._rows]
        else:
            self._weights = None

    def _weigh(self, row: Line) -> int:
        degree = self.ring.degree
        return sum(degree(a) for _, a in row)

    def _check_row(self, i: int) -> None:
        if not 0 <= i < self.rows:
            raise IndexError(f"Row index {i} out of range (0-{self.rows - 1})")

    # ------------------------------------------------------------------ queries
    def row(self, i: int) -> Line:
        """The stored row itself; callers must not mutate it."""
        return self._rows[i]

    def head_element(self, i: int) -> Optional[Tuple[int, Any]]:
        row = self._rows[i]
        return row[0] if row else None

    def row_weight(self, i: int) -> int:
        if self._weights is None:
            return 0
        return self._weights[i]

    def head_elements_in_col(self, j: int) -> List[Tuple[int, Any]]:
        """(row, value) for every row whose head sits at column ``j``, ordered by row."""
        return [(i, self._rows[i][0][1]) for i in sorted(self._col_heads[j])]

    def elements_in_col_above_row(self, j: int, i0: int) -> List[Tuple[int, Any]]:
        """(row, value) for the nonzero entries at column ``j`` in rows ``0 .. i0-1``."""
        result = []
        for i in range(i0):
            for col, a in self._rows[i]:
                if col == j:
                    result.append((i, a))
                    break
                if col > j:
                    break
        return result

    def find(self, i: int, j: int) -> Any:
        for col, a in self._rows[i]:
            if col == j:
                return a
            if col > j:
                break
        return self.ring.zero

    def components(self) -> Iterator[Tuple[int, int, Any]]:
        for i, row in enumerate(self._rows):
            for j, a in row:
                yield (i, j, a)

    @property
    def nonzero_rows(self) -> int:
        return sum(1 for row in self._rows if row)

    # ------------------------------------------------------------------ mutations
    def apply(self, op) -> None:
        """Apply an elementary operation (AddRow, MulRow or SwapRows)."""
        op.apply_to(self)

    def _replace_row(self, i: int, new_row: Line) -> None:
        old_row = self._rows[i]
        old_head = old_row[0][0] if old_row else None
        new_head = new_row[0][0] if new_row else None
        self._rows[i] = new_row
        if old_head != new_head:
            if old_head is not None:
                self._col_heads[old_head].discard(i)
            if new_head is not None:
                self._col_heads[new_head].add(i)
        if self._weights is not None:
            self._weights[i] = self._weigh(new_row)

    def add_row(self, i1: int, i2: int, r: Any) -> None:
        """``row[i2] += r * row[i1]`` by a single merge of the two sorted rows."""
        self._check_row(i1)
        self._check_row(i2)
        if i1 == i2:
            raise ValueError(f"Cannot add row {i1} to itself")
        source = self._rows[i1]
        if not source:
            raise ValueError(f"Attempt to add from empty row {i1}")
        self._replace_row(i2, merge_lines(self.ring, self._rows[i2], source, r))

    def batch_add_row(self, i1: int, targets: Sequence[int], multipliers: Sequence[Any],
                      executor=None) -> None:
        """
        Add multiples of row ``i1`` to several other rows at once.

        The target rows are independent of each other, so the merges can run
        through ``executor.map`` (any ``concurrent.futures.Executor``). The
        source row is only read. Index updates happen afterwards, serially.
        """
        self._check_row(i1)
        if len(targets) != len(multipliers):
            raise ValueError(f"Got {len(targets)} targets but {len(multipliers)} multipliers")
        if i1 in targets:
            raise ValueError(f"Cannot add row {i1} to itself")
        source = self._rows[i1]
        if not source:
            raise ValueError(f"Attempt to add from empty row {i1}")
        for i in targets:
            self._check_row(i)

        mapper = executor.map if executor is not None else map
        merged = list(mapper(
            _merge_job, repeat(self.ring), repeat(source), [self._rows[i] for i in targets], multipliers
        ))
        for i, new_row in zip(targets, merged):
            self._replace_row(i, new_row)

    def multiply_row(self, i: int, r: Any) -> None:
        self._check_row(i)
        if self.ring.is_zero(r):
            raise ValueError(f"Cannot multiply row {i} by zero")
        ring = self.ring
        product = ((j, r * a) for j, a in self._rows[i])
        # zero divisors can only appear in rings that are not domains
        self._replace_row(i, [(j, b) for j, b in product if not ring.is_zero(b)])

    def swap_rows(self, i: int, j: int) -> None:
        self._check_row(i)
        self._check_row(j)
        if i == j:
            return
        hi = self._rows[i][0][0] if self._rows[i] else None
        hj = self._rows[j][0][0] if self._rows[j] else None
        if hi != hj:
            if hi is not None:
                self._col_heads[hi].discard(i)
                self._col_heads[hi].add(j)
            if hj is not None:
                self._col_heads[hj].discard(j)
                self._col_heads[hj].add(i)
        self._rows[i], self._rows[j] = self._rows[j], self._rows[i]
        if self._weights is not None:
            self._weights[i], self._weights[j] = self._weights[j], self._weights[i]

    def transpose(self) -> None:
        """Regroup all entries by column, so that columns become rows."""
        lines = group_lines(self.cols, ((j, i, a) for i, j, a in self.components()))
        self.rows, self.cols = self.cols, self.rows
        self._rows = lines
        self._rebuild_indices()

    # ------------------------------------------------------------------ snapshots
    def to_matrix(self) -> Matrix:
        lines = [list(row) for row in self._rows]
        return Matrix._from_lines(self.ring, self.rows, self.cols, lines, Alignment.HORIZONTAL)

    def __repr__(self):
        return f"RowStore({self.ring.symbol}, {self.rows}x{self.cols}, nnz={sum(len(r) for r in self._rows)})"
