"""
Sparse Matrix over a Euclidean Ring

A ``Matrix`` is logically an ``rows x cols`` grid over a ring adapter from
``euclidean_rings``; physically it only stores its nonzero entries, grouped
into one sorted line per row (horizontal alignment) or per column (vertical
alignment). Switching the alignment regroups the same entries and never
changes the logical matrix.

Invariants:
- no stored entry is zero
- entries within a line are strictly increasing by the orthogonal index

Matrices behave as values: no public operation mutates the logical content.
The elimination engine copies the lines it needs into its own row store, so
a Matrix is never shared with a running elimination.

Usage Example:
--------------
    from euclidean_rings import IntegerRing
    from sparse_matrix import Matrix

    Z = IntegerRing()
    A = Matrix.from_rows(Z, [[1, 2], [2, 3]])
    E = A.eliminate()
    print(E.determinant)          # -1
    print(A.inverse)              # [-3, 2; 2, -1]
"""

from enum import Enum
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
import sympy as sp

from euclidean_rings import EuclideanRing


Line = List[Tuple[int, Any]]
Component = Tuple[int, int, Any]


class Alignment(Enum):
    HORIZONTAL = 'horizontal'
    VERTICAL = 'vertical'

    @property
    def flipped(self) -> 'Alignment':
        return Alignment.VERTICAL if self is Alignment.HORIZONTAL else Alignment.HORIZONTAL


def group_lines(count: int, entries: Iterable[Tuple[int, int, Any]]) -> List[Line]:
    """
    Group ``(line, index, value)`` triples into ``count`` lines sorted by index.

    Values are taken as given; callers are responsible for dropping zeros.
    """
    lines: List[Line] = [[] for _ in range(count)]
    for k, j, a in entries:
        lines[k].append((j, a))
    for line in lines:
        if len(line) > 1:
            line.sort(key=lambda e: e[0])
    return lines


class Matrix:
    """
    Immutable sparse matrix over a Euclidean ring adapter.

    Args:
        ring: ring adapter (IntegerRing, RationalField, FiniteField, PolynomialRing, ...)
        rows: number of rows (>= 0)
        cols: number of columns (>= 0)
        components: iterable of (row, col, value); values are converted into
            the ring and zeros are dropped. Duplicate coordinates are rejected.
        alignment: initial storage alignment
    """

    def __init__(
        self,
        ring: EuclideanRing,
        rows: int,
        cols: int,
        components: Iterable[Component] = (),
        alignment: Alignment = Alignment.HORIZONTAL
    ):
        if not isinstance(ring, EuclideanRing):
            raise TypeError(f"ring must be a EuclideanRing instance, got {type(ring).__name__}")
        if not isinstance(rows, int) or not isinstance(cols, int) or rows < 0 or cols < 0:
            raise ValueError(f"Matrix size must be non-negative integers (got {rows}x{cols})")

        self.ring = ring
        self.rows = rows
        self.cols = cols

        entries: Dict[Tuple[int, int], Any] = {}
        for i, j, a in components:
            if not (0 <= i < rows and 0 <= j < cols):
                raise IndexError(f"Component ({i}, {j}) out of range for a {rows}x{cols} matrix")
            if (i, j) in entries:
                raise ValueError(f"Duplicate component at ({i}, {j})")
            entries[(i, j)] = ring.convert(a)

        nonzero = ((i, j, a) for (i, j), a in entries.items() if not ring.is_zero(a))
        if alignment is Alignment.HORIZONTAL:
            self._lines = group_lines(rows, nonzero)
        else:
            self._lines = group_lines(cols, ((j, i, a) for i, j, a in nonzero))
        self._alignment = alignment

    # ------------------------------------------------------------------ constructors
    @classmethod
    def _from_lines(cls, ring: EuclideanRing, rows: int, cols: int, lines: List[Line],
                    alignment: Alignment) -> 'Matrix':
        # lines must already satisfy the storage invariants
        m = cls.__new__(cls)
        m.ring = ring
        m.rows = rows
        m.cols = cols
        m._lines = lines
        m._alignment = alignment
        return m

    @classmethod
    def zero(cls, ring: EuclideanRing, rows: int, cols: int) -> 'Matrix':
        return cls(ring, rows, cols)

    @classmethod
    def identity(cls, ring: EuclideanRing, size: int) -> 'Matrix':
        return cls(ring, size, size, ((i, i, ring.identity) for i in range(size)))

    @classmethod
    def from_rows(cls, ring: EuclideanRing, grid: Sequence[Sequence[Any]],
                  cols: Optional[int] = None) -> 'Matrix':
        """
        Build a matrix from a list of rows.

        Args:
            ring: ring adapter
            grid: list of equally long rows
            cols: column count, only needed when ``grid`` is empty
        """
        rows = len(grid)
        if cols is None:
            cols = len(grid[0]) if rows > 0 else 0
        for i, row in enumerate(grid):
            if len(row) != cols:
                raise ValueError(f"Row {i} has length {len(row)}, expected {cols}")
        return cls(ring, rows, cols, (
            (i, j, a) for i, row in enumerate(grid) for j, a in enumerate(row)
        ))

    @classmethod
    def from_grid(cls, ring: EuclideanRing, rows: int, cols: int, grid: Sequence[Any]) -> 'Matrix':
        """Build a matrix from a flat row-major list; missing trailing entries are zero."""
        if len(grid) > rows * cols:
            raise ValueError(f"Grid of length {len(grid)} does not fit a {rows}x{cols} matrix")
        return cls(ring, rows, cols, ((k // cols, k % cols, a) for k, a in enumerate(grid)))

    @classmethod
    def from_sympy(cls, ring: EuclideanRing, M: sp.MatrixBase) -> 'Matrix':
        return cls(ring, M.rows, M.cols, (
            (i, j, M[i, j]) for i in range(M.rows) for j in range(M.cols) if M[i, j] != 0
        ))

    @classmethod
    def from_array(cls, ring: EuclideanRing, array: Any) -> 'Matrix':
        """Build a matrix from a 2-D numpy array (integer or object dtype)."""
        arr = np.asarray(array)
        if arr.ndim != 2:
            raise ValueError(f"Expected a 2-D array, got shape {arr.shape}")
        rows, cols = arr.shape
        nz_rows, nz_cols = np.nonzero(arr)
        return cls(ring, int(rows), int(cols), (
            (int(i), int(j), arr[i, j]) for i, j in zip(nz_rows, nz_cols)
        ))

    # ------------------------------------------------------------------ storage
    @property
    def alignment(self) -> Alignment:
        return self._alignment

    def switch_alignment(self, alignment: Alignment) -> None:
        """Regroup the stored entries by rows or by columns. The logical matrix is unchanged."""
        if alignment is not self._alignment:
            self._lines = self._lines_in(alignment)
            self._alignment = alignment

    def _lines_in(self, alignment: Alignment) -> List[Line]:
        if alignment is self._alignment:
            return self._lines
        count = self.rows if alignment is Alignment.HORIZONTAL else self.cols
        return group_lines(count, (
            (j, k, a) for k, line in enumerate(self._lines) for j, a in line
        ))

    def row_lines(self) -> List[Line]:
        """Copy of the matrix grouped by rows, one ``[(col, value), ...]`` list per row."""
        return [list(line) for line in self._lines_in(Alignment.HORIZONTAL)]

    def col_lines(self) -> List[Line]:
        """Copy of the matrix grouped by columns, one ``[(row, value), ...]`` list per column."""
        return [list(line) for line in self._lines_in(Alignment.VERTICAL)]

    # ------------------------------------------------------------------ queries
    @property
    def shape(self) -> Tuple[int, int]:
        return (self.rows, self.cols)

    @property
    def is_square(self) -> bool:
        return self.rows == self.cols

    @property
    def is_zero(self) -> bool:
        return all(not line for line in self._lines)

    @property
    def is_diagonal(self) -> bool:
        return all(
            not line or (len(line) == 1 and line[0][0] == k)
            for k, line in enumerate(self._lines)
        )

    @property
    def is_identity(self) -> bool:
        if not self.is_square or not self.is_diagonal:
            return False
        return all(
            len(line) == 1 and line[0][1] == self.ring.identity
            for line in self._lines
        )

    @property
    def nonzero_count(self) -> int:
        return sum(len(line) for line in self._lines)

    def __getitem__(self, index: Tuple[int, int]) -> Any:
        i, j = index
        if not (0 <= i < self.rows and 0 <= j < self.cols):
            raise IndexError(f"Index ({i}, {j}) out of range for a {self.rows}x{self.cols} matrix")
        k, target = (i, j) if self._alignment is Alignment.HORIZONTAL else (j, i)
        for idx, a in self._lines[k]:
            if idx == target:
                return a
            if idx > target:
                break
        return self.ring.zero

    def nonzero_components(self) -> Iterator[Component]:
        """Iterate over (row, col, value) in row-major order."""
        for i, line in enumerate(self._lines_in(Alignment.HORIZONTAL)):
            for j, a in line:
                yield (i, j, a)

    def row_entries(self, i: int) -> Line:
        return list(self._lines_in(Alignment.HORIZONTAL)[i])

    def col_entries(self, j: int) -> Line:
        return list(self._lines_in(Alignment.VERTICAL)[j])

    def diagonal(self) -> List[Any]:
        return [self[i, i] for i in range(min(self.rows, self.cols))]

    # ------------------------------------------------------------------ arithmetic
    def _check_same_ring(self, other: 'Matrix') -> None:
        if not isinstance(other, Matrix):
            raise TypeError(f"Expected a Matrix, got {type(other).__name__}")
        if self.ring != other.ring:
            raise TypeError(f"Matrices are over different rings: {self.ring} vs {other.ring}")

    def __eq__(self, other):
        if not isinstance(other, Matrix):
            return NotImplemented
        if self.shape != other.shape or self.ring != other.ring:
            return False
        return self._lines_in(Alignment.HORIZONTAL) == other._lines_in(Alignment.HORIZONTAL)

    __hash__ = None

    def __add__(self, other: 'Matrix') -> 'Matrix':
        self._check_same_ring(other)
        if self.shape != other.shape:
            raise ValueError(f"Cannot add a {self.rows}x{self.cols} and a {other.rows}x{other.cols} matrix")
        ring = self.ring
        a_lines = self._lines_in(Alignment.HORIZONTAL)
        b_lines = other._lines_in(Alignment.HORIZONTAL)
        lines = [merge_lines(ring, a, b, ring.identity) for a, b in zip(a_lines, b_lines)]
        return Matrix._from_lines(ring, self.rows, self.cols, lines, Alignment.HORIZONTAL)

    def __neg__(self) -> 'Matrix':
        return self.map_values(lambda a: -a)

    def __sub__(self, other: 'Matrix') -> 'Matrix':
        return self + (-other)

    def __mul__(self, other):
        if isinstance(other, Matrix):
            return self._matmul(other)
        r = self.ring.convert(other)
        return self.map_values(lambda a: a * r)

    def __rmul__(self, other):
        r = self.ring.convert(other)
        return self.map_values(lambda a: r * a)

    def _matmul(self, other: 'Matrix') -> 'Matrix':
        self._check_same_ring(other)
        if self.cols != other.rows:
            raise ValueError(
                f"Cannot multiply a {self.rows}x{self.cols} matrix by a {other.rows}x{other.cols} matrix"
            )
        ring = self.ring
        b_rows = other._lines_in(Alignment.HORIZONTAL)
        lines: List[Line] = []
        for a_row in self._lines_in(Alignment.HORIZONTAL):
            acc: Dict[int, Any] = {}
            for k, a in a_row:
                for j, b in b_rows[k]:
                    acc[j] = acc[j] + a * b if j in acc else a * b
            lines.append(sorted(
                ((j, c) for j, c in acc.items() if not ring.is_zero(c)),
                key=lambda e: e[0]
            ))
        return Matrix._from_lines(ring, self.rows, other.cols, lines, Alignment.HORIZONTAL)

    def map_values(self, f: Callable[[Any], Any], ring: Optional[EuclideanRing] = None) -> 'Matrix':
        """
        Apply ``f`` to every nonzero entry.

        Args:
            f: entry map (zero must map to zero)
            ring: target ring; when given, results are converted into it
                (e.g. reduction of an integer matrix mod 2)
        """
        target = ring if ring is not None else self.ring
        convert = target.convert if ring is not None else (lambda a: a)
        lines: List[Line] = []
        for line in self._lines:
            mapped = ((k, convert(f(a))) for k, a in line)
            lines.append([(k, b) for k, b in mapped if not target.is_zero(b)])
        return Matrix._from_lines(target, self.rows, self.cols, lines, self._alignment)

    # ------------------------------------------------------------------ structure
    def transposed(self) -> 'Matrix':
        lines = [list(line) for line in self._lines]
        return Matrix._from_lines(self.ring, self.cols, self.rows, lines, self._alignment.flipped)

    def select_rows(self, indices: Sequence[int]) -> 'Matrix':
        row_lines = self._lines_in(Alignment.HORIZONTAL)
        lines = [list(row_lines[i]) for i in indices]
        return Matrix._from_lines(self.ring, len(lines), self.cols, lines, Alignment.HORIZONTAL)

    def select_cols(self, indices: Sequence[int]) -> 'Matrix':
        col_lines = self._lines_in(Alignment.VERTICAL)
        lines = [list(col_lines[j]) for j in indices]
        return Matrix._from_lines(self.ring, self.rows, len(lines), lines, Alignment.VERTICAL)

    def submatrix(self, row_range: Optional[range] = None, col_range: Optional[range] = None) -> 'Matrix':
        row_range = row_range if row_range is not None else range(self.rows)
        col_range = col_range if col_range is not None else range(self.cols)
        for r, bound in ((row_range, self.rows), (col_range, self.cols)):
            if len(r) and (r[0] < 0 or r[-1] >= bound):
                raise IndexError(f"Range {r} out of bounds for a {self.rows}x{self.cols} matrix")
        return self.select_rows(list(row_range)).select_cols(list(col_range))

    def concat_horizontally(self, other: 'Matrix') -> 'Matrix':
        self._check_same_ring(other)
        if self.rows != other.rows:
            raise ValueError(f"Row counts differ: {self.rows} vs {other.rows}")
        lines = self.col_lines() + other.col_lines()
        return Matrix._from_lines(self.ring, self.rows, self.cols + other.cols, lines, Alignment.VERTICAL)

    def concat_vertically(self, other: 'Matrix') -> 'Matrix':
        self._check_same_ring(other)
        if self.cols != other.cols:
            raise ValueError(f"Column counts differ: {self.cols} vs {other.cols}")
        lines = self.row_lines() + other.row_lines()
        return Matrix._from_lines(self.ring, self.rows + other.rows, self.cols, lines, Alignment.HORIZONTAL)

    def direct_sum(self, other: 'Matrix') -> 'Matrix':
        """Block diagonal matrix ``[[self, 0], [0, other]]``."""
        self._check_same_ring(other)
        shift = self.cols
        lines = self.row_lines() + [
            [(j + shift, a) for j, a in line] for line in other.row_lines()
        ]
        return Matrix._from_lines(
            self.ring, self.rows + other.rows, self.cols + other.cols, lines, Alignment.HORIZONTAL
        )

    def blocks(self, row_sizes: Sequence[int], col_sizes: Sequence[int]) -> List[List['Matrix']]:
        """Split into a grid of blocks with the given row and column sizes."""
        if sum(row_sizes) != self.rows or sum(col_sizes) != self.cols:
            raise ValueError(
                f"Block sizes {list(row_sizes)} x {list(col_sizes)} do not cover a {self.rows}x{self.cols} matrix"
            )
        result = []
        i0 = 0
        for h in row_sizes:
            row_blocks = []
            j0 = 0
            for w in col_sizes:
                row_blocks.append(self.submatrix(range(i0, i0 + h), range(j0, j0 + w)))
                j0 += w
            result.append(row_blocks)
            i0 += h
        return result

    # ------------------------------------------------------------------ conversions
    def to_grid(self) -> List[List[Any]]:
        grid = [[self.ring.zero] * self.cols for _ in range(self.rows)]
        for i, j, a in self.nonzero_components():
            grid[i][j] = a
        return grid

    def to_sympy(self) -> sp.Matrix:
        M = sp.zeros(self.rows, self.cols)
        for i, j, a in self.nonzero_components():
            M[i, j] = self.ring.to_sympy(a)
        return M

    def to_array(self) -> np.ndarray:
        """Dense numpy object array of SymPy values."""
        arr = np.empty((self.rows, self.cols), dtype=object)
        arr.fill(self.ring.to_sympy(self.ring.zero))
        for i, j, a in self.nonzero_components():
            arr[i, j] = self.ring.to_sympy(a)
        return arr

    # ------------------------------------------------------------------ elimination
    def eliminate(self, mode=None, **kwargs):
        """
        Run the elimination engine on a copy of this matrix.

        Args:
            mode: EliminationMode (default: DIAGONAL)
            **kwargs: forwarded to ``matrix_eliminator.eliminate`` (logger, executor, track_weights)

        Returns:
            EliminationResult
        """
        from matrix_eliminator import EliminationMode, eliminate
        return eliminate(self, mode if mode is not None else EliminationMode.DIAGONAL, **kwargs)

    @property
    def determinant(self) -> Any:
        if not self.is_square:
            raise ValueError(f"Determinant requires a square matrix (got {self.rows}x{self.cols})")
        return self.eliminate().determinant

    @property
    def inverse(self) -> Optional['Matrix']:
        if not self.is_square:
            raise ValueError(f"Inverse requires a square matrix (got {self.rows}x{self.cols})")
        return self.eliminate().inverse

    # ------------------------------------------------------------------ display
    def __str__(self):
        grid = self.to_grid()
        body = "; ".join(", ".join(str(self.ring.to_sympy(a)) for a in row) for row in grid)
        return f"[{body}]"

    def __repr__(self):
        return f"Matrix({self.ring.symbol}, {self.rows}x{self.cols}, {self})"

    def detail_description(self) -> str:
        if self.rows == 0 or self.cols == 0:
            return f"[{self.rows}x{self.cols} empty]"
        grid = self.to_grid()
        rows = [", ".join(str(self.ring.to_sympy(a)) for a in row) for row in grid]
        return "[\t" + ",\n\t".join(rows) + "]"


def merge_lines(ring: EuclideanRing, a: Line, b: Line, r: Any) -> Line:
    """Return the sorted line ``a + r * b`` with zero sums dropped."""
    out: Line = []
    p, q = 0, 0
    while p < len(a) and q < len(b):
        ja, va = a[p]
        jb, vb = b[q]
        if ja == jb:
            c = va + r * vb
            if not ring.is_zero(c):
                out.append((ja, c))
            p += 1
            q += 1
        elif ja < jb:
            out.append(a[p])
            p += 1
        else:
            c = r * vb
            if not ring.is_zero(c):
                out.append((jb, c))
            q += 1
    out.extend(a[p:])
    for jb, vb in b[q:]:
        c = r * vb
        if not ring.is_zero(c):
            out.append((jb, c))
    return out
