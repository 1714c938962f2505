"""
Elementary Operations and Operation Log

The three elementary row operations used by the eliminator, and the log that
records them so the transform matrices can be rebuilt afterwards:

    AddRow(source, target, multiplier)   row[target] += multiplier * row[source]
    MulRow(index, unit)                  row[index] *= unit   (unit must be invertible)
    SwapRows(i, j)                       exchange rows i and j

Column operations are the same objects applied while the working store is
transposed; the log keeps them in a separate sequence.

Replay rules (E_k is the elementary matrix of the k-th operation):

    L      = E_n ... E_1          row ops in order on an identity store
    L^-1   = E_1^-1 ... E_n^-1    inverse row ops in reverse order
    R      = F_1 ... F_m          col ops in order on an identity store, then transposed
    R^-1   = F_m^-1 ... F_1^-1    inverse col ops in reverse order, then transposed
"""

from dataclasses import dataclass
from typing import Any, List

from euclidean_rings import EuclideanRing
from sparse_matrix import Matrix
from sparse_row_store import RowStore


@dataclass(frozen=True)
class AddRow:
    source: int
    target: int
    multiplier: Any

    def inverse(self, ring: EuclideanRing) -> 'AddRow':
        return AddRow(self.source, self.target, -self.multiplier)

    def determinant(self, ring: EuclideanRing) -> Any:
        return ring.identity

    def apply_to(self, store: RowStore) -> None:
        store.add_row(self.source, self.target, self.multiplier)


@dataclass(frozen=True)
class MulRow:
    index: int
    unit: Any

    def inverse(self, ring: EuclideanRing) -> 'MulRow':
        inv = ring.inverse(self.unit)
        if inv is None:
            raise ValueError(f"MulRow multiplier {self.unit} is not a unit in {ring}")
        return MulRow(self.index, inv)

    def determinant(self, ring: EuclideanRing) -> Any:
        return self.unit

    def apply_to(self, store: RowStore) -> None:
        store.multiply_row(self.index, self.unit)


@dataclass(frozen=True)
class SwapRows:
    i: int
    j: int

    def inverse(self, ring: EuclideanRing) -> 'SwapRows':
        return self

    def determinant(self, ring: EuclideanRing) -> Any:
        return -ring.identity

    def apply_to(self, store: RowStore) -> None:
        store.swap_rows(self.i, self.j)


class OperationLog:
    """
    Ordered record of the row and column operations of one elimination.

    Args:
        ring: ring adapter of the eliminated matrix
        rows: row count of the eliminated matrix (size of L)
        cols: column count of the eliminated matrix (size of R)
    """

    def __init__(self, ring: EuclideanRing, rows: int, cols: int):
        self.ring = ring
        self.rows = rows
        self.cols = cols
        self.row_ops: List[Any] = []
        self.col_ops: List[Any] = []

    def record(self, op, transposed: bool = False) -> None:
        if transposed:
            self.col_ops.append(op)
        else:
            self.row_ops.append(op)

    def __len__(self):
        return len(self.row_ops) + len(self.col_ops)

    def _replay(self, size: int, ops) -> RowStore:
        store = RowStore.identity(self.ring, size)
        for op in ops:
            op.apply_to(store)
        return store

    def _inverse_ops(self, ops):
        return [op.inverse(self.ring) for op in reversed(ops)]

    def left(self) -> Matrix:
        return self._replay(self.rows, self.row_ops).to_matrix()

    def left_inverse(self) -> Matrix:
        return self._replay(self.rows, self._inverse_ops(self.row_ops)).to_matrix()

    def right(self) -> Matrix:
        return self._replay(self.cols, self.col_ops).to_matrix().transposed()

    def right_inverse(self) -> Matrix:
        return self._replay(self.cols, self._inverse_ops(self.col_ops)).to_matrix().transposed()

    def _product_of_determinants(self, ops) -> Any:
        d = self.ring.identity
        for op in ops:
            d = d * op.determinant(self.ring)
        return d

    def left_determinant(self) -> Any:
        return self._product_of_determinants(self.row_ops)

    def right_determinant(self) -> Any:
        return self._product_of_determinants(self.col_ops)
