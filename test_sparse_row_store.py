"""
Tests for the sparse row store used by the eliminator
"""

from concurrent.futures import ThreadPoolExecutor

import pytest

from euclidean_rings import IntegerRing
from sparse_matrix import Matrix
from sparse_row_store import RowStore


Z = IntegerRing()


def make_store(grid, track_weights=True):
    return RowStore.from_matrix(Matrix.from_rows(Z, grid), track_weights=track_weights)


class TestHeadTracking:
    """Test head and weight indices"""

    def test_initial_heads(self):
        store = make_store([[0, 2, 1], [3, 0, 0], [0, -1, 0], [0, 0, 0]])
        assert store.head_element(0) == (1, 2)
        assert store.head_element(3) is None
        assert store.head_elements_in_col(1) == [(0, 2), (2, -1)]
        assert store.head_elements_in_col(0) == [(1, 3)]
        assert store.head_elements_in_col(2) == []

    def test_row_weights(self):
        store = make_store([[1, 2, 0], [-1, 0, 3]])
        assert store.row_weight(0) == 3
        assert store.row_weight(1) == 4
        untracked = make_store([[1, 2, 0]], track_weights=False)
        assert untracked.row_weight(0) == 0

    def test_find_and_column_scan(self):
        store = make_store([[1, 5, 0], [0, 2, 7], [0, 0, 3]])
        assert store.find(1, 2) == 7
        assert store.find(2, 0) == 0
        assert store.elements_in_col_above_row(2, 2) == [(1, 7)]
        assert store.elements_in_col_above_row(1, 2) == [(0, 5), (1, 2)]


class TestMutations:
    """Test elementary row mutations"""

    def test_add_row_cancels_head(self):
        store = make_store([[1, 2, 0], [-1, 0, 3]])
        store.add_row(0, 1, Z.convert(1))
        assert store.row(1) == [(1, 2), (2, 3)]
        assert store.head_elements_in_col(0) == [(0, 1)]
        assert store.head_elements_in_col(1) == [(1, 2)]
        assert store.row_weight(1) == 5

    def test_add_row_to_empty_row(self):
        store = make_store([[0, 4], [0, 0]])
        store.add_row(0, 1, Z.convert(-2))
        assert store.row(1) == [(1, -8)]
        assert store.head_elements_in_col(1) == [(0, 4), (1, -8)]

    def test_add_row_preconditions(self):
        store = make_store([[1, 0], [0, 0]])
        with pytest.raises(ValueError, match="itself"):
            store.add_row(0, 0, Z.convert(1))
        with pytest.raises(ValueError, match="empty row"):
            store.add_row(1, 0, Z.convert(1))
        with pytest.raises(IndexError):
            store.add_row(0, 2, Z.convert(1))

    def test_multiply_row(self):
        store = make_store([[2, -3]])
        store.multiply_row(0, Z.convert(-1))
        assert store.row(0) == [(0, -2), (1, 3)]
        with pytest.raises(ValueError, match="zero"):
            store.multiply_row(0, Z.zero)

    def test_swap_rows_moves_heads(self):
        store = make_store([[1, 0], [0, 2], [0, 0]])
        store.swap_rows(0, 2)
        assert store.head_elements_in_col(0) == [(2, 1)]
        assert store.head_element(0) is None
        store.swap_rows(1, 2)
        assert store.head_elements_in_col(0) == [(1, 1)]
        assert store.head_elements_in_col(1) == [(2, 2)]
        assert store.row_weight(1) == 1

    def test_transpose(self):
        A = Matrix.from_rows(Z, [[1, 0, 2], [0, 3, 0]])
        store = RowStore.from_matrix(A)
        store.transpose()
        assert (store.rows, store.cols) == (3, 2)
        assert store.to_matrix() == A.transposed()
        assert store.head_elements_in_col(0) == [(0, 1), (2, 2)]

    def test_batch_add_matches_serial(self):
        """Fan-out through an executor gives the same rows as one-by-one additions"""
        grid = [[2, 1, 0, 3], [4, 0, 1, 0], [6, 5, 0, 1], [-2, 0, 0, 7]]
        serial = make_store(grid)
        for i, r in zip([1, 2, 3], [-2, -3, 1]):
            serial.add_row(0, i, Z.convert(r))

        batched = make_store(grid)
        with ThreadPoolExecutor(max_workers=2) as executor:
            batched.batch_add_row(0, [1, 2, 3], [Z.convert(r) for r in (-2, -3, 1)], executor=executor)

        assert batched.to_matrix() == serial.to_matrix()
        assert batched.head_elements_in_col(0) == [(0, 2)]
        assert [batched.row_weight(i) for i in range(4)] == [serial.row_weight(i) for i in range(4)]

    def test_batch_add_preconditions(self):
        store = make_store([[1, 0], [1, 1]])
        with pytest.raises(ValueError, match="multipliers"):
            store.batch_add_row(0, [1], [])
        with pytest.raises(ValueError, match="itself"):
            store.batch_add_row(0, [0, 1], [Z.convert(1), Z.convert(1)])


class TestOwnership:
    """The store never shares rows with matrices"""

    def test_source_matrix_untouched(self):
        A = Matrix.from_rows(Z, [[1, 2], [3, 4]])
        store = RowStore.from_matrix(A)
        store.add_row(0, 1, Z.convert(-3))
        assert A == Matrix.from_rows(Z, [[1, 2], [3, 4]])

    def test_snapshot_is_independent(self):
        store = make_store([[1, 2], [3, 4]])
        snapshot = store.to_matrix()
        store.add_row(0, 1, Z.convert(-3))
        store.swap_rows(0, 1)
        assert snapshot == Matrix.from_rows(Z, [[1, 2], [3, 4]])

    def test_identity(self):
        store = RowStore.identity(Z, 3)
        assert store.to_matrix().is_identity
        assert store.nonzero_rows == 3
