"""
Elimination Result

Read-only outcome of one elimination: the reduced matrix, the operation log
and everything derived from them. Each derived value is computed on first
access and memoized.

For a matrix A with ``L * A * R == D`` in Smith form and ``r = rank``:

    kernel_matrix              = R[:, r:]
    kernel_transition_matrix   = R^-1[r:, :]
    image_matrix               = L^-1[:, :r] * diag(d_0 .. d_{r-1})
    image_transition_matrix    = L[:r, :]
    inverse                    = R * D^-1 * L   (only when every d_i is a unit)

Results of echelon and Hermite modes obtain these from a diagonal
elimination of the same input, run lazily on first use.
"""

from functools import cached_property
from typing import Any, List, Optional

from sparse_matrix import Matrix


class EliminationResult:
    """
    Args:
        matrix: the eliminated input matrix
        mode: EliminationMode that produced ``result``
        result: reduced matrix, ``left * matrix * right``
        log: OperationLog of the elimination
        options: keyword arguments reused for a follow-up diagonal elimination,
            without the executor
    """

    def __init__(self, matrix: Matrix, mode, result: Matrix, log, options: Optional[dict] = None):
        self.matrix = matrix
        self.mode = mode
        self.result = result
        self.log = log
        self.ring = matrix.ring
        self._options = dict(options) if options else {}

    def __repr__(self):
        return f"EliminationResult({self.mode.name}, {self.matrix.rows}x{self.matrix.cols}, rank={self.rank})"

    # ------------------------------------------------------------------ transforms
    @cached_property
    def left(self) -> Matrix:
        return self.log.left()

    @cached_property
    def left_inverse(self) -> Matrix:
        return self.log.left_inverse()

    @cached_property
    def right(self) -> Matrix:
        return self.log.right()

    @cached_property
    def right_inverse(self) -> Matrix:
        return self.log.right_inverse()

    # ------------------------------------------------------------------ rank
    @cached_property
    def rank(self) -> int:
        # echelon forms: rank = nonzero rows (row modes) = nonzero cols (col modes),
        # and the other count is never smaller
        nonzero_rows = sum(1 for line in self.result.row_lines() if line)
        nonzero_cols = sum(1 for line in self.result.col_lines() if line)
        return min(nonzero_rows, nonzero_cols)

    @property
    def nullity(self) -> int:
        return self.matrix.cols - self.rank

    @cached_property
    def _smith(self) -> 'EliminationResult':
        from matrix_eliminator import EliminationMode, eliminate
        if self.mode is EliminationMode.DIAGONAL:
            return self
        return eliminate(self.matrix, EliminationMode.DIAGONAL, **self._options)

    @cached_property
    def diagonal(self) -> List[Any]:
        """Nonzero diagonal entries of the Smith form, each dividing the next."""
        smith = self._smith.result
        return [smith[i, i] for i in range(self.rank)]

    # ------------------------------------------------------------------ kernel / image
    @cached_property
    def kernel_matrix(self) -> Matrix:
        smith = self._smith
        return smith.right.submatrix(None, range(self.rank, self.matrix.cols))

    @cached_property
    def kernel_transition_matrix(self) -> Matrix:
        smith = self._smith
        return smith.right_inverse.submatrix(range(self.rank, self.matrix.cols), None)

    @cached_property
    def image_matrix(self) -> Matrix:
        smith = self._smith
        r = self.rank
        D = Matrix(self.ring, r, r, ((i, i, d) for i, d in enumerate(self.diagonal)))
        return smith.left_inverse.submatrix(None, range(r)) * D

    @cached_property
    def image_transition_matrix(self) -> Matrix:
        return self._smith.left.submatrix(range(self.rank), None)

    @property
    def is_injective(self) -> bool:
        return self.rank == self.matrix.cols

    @cached_property
    def is_surjective(self) -> bool:
        return self.rank == self.matrix.rows and all(self.ring.is_invertible(d) for d in self.diagonal)

    @property
    def is_bijective(self) -> bool:
        return self.is_injective and self.is_surjective

    # ------------------------------------------------------------------ square only
    def _require_square(self, what: str) -> None:
        if not self.matrix.is_square:
            raise ValueError(f"{what} requires a square matrix (got {self.matrix.rows}x{self.matrix.cols})")

    @cached_property
    def determinant(self) -> Any:
        """
        Determinant of the input matrix.

        Every reduced form is triangular, so ``det(result)`` is the product of
        its diagonal, and ``det(result) = det(L) * det(A) * det(R)`` where both
        transform determinants are units.
        """
        self._require_square("Determinant")
        ring = self.ring
        n = self.matrix.rows
        if self.rank < n:
            return ring.zero
        d = ring.identity
        for i in range(n):
            d = d * self.result[i, i]
        return d * ring.inverse(self.log.left_determinant()) * ring.inverse(self.log.right_determinant())

    @cached_property
    def inverse(self) -> Optional[Matrix]:
        """``R * D^-1 * L`` from the Smith form, or None when the matrix is not invertible."""
        self._require_square("Inverse")
        if not self.is_bijective:
            return None
        smith = self._smith
        ring = self.ring
        n = self.matrix.rows
        D_inv = Matrix(ring, n, n, ((i, i, ring.inverse(d)) for i, d in enumerate(self.diagonal)))
        return smith.right * D_inv * smith.left
