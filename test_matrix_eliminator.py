"""
Tests for the matrix eliminator and elimination results

SymPy serves as an independent oracle for determinants and ranks; numpy
provides seeded random integer matrices.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from fractions import Fraction as F

import numpy as np
import pytest
import sympy as sp

from euclidean_rings import FiniteField, IntegerRing, PolynomialRing, RationalField
from matrix_eliminator import EliminationMode, MatrixEliminator, StepResult, eliminate
from sparse_matrix import Matrix


Z = IntegerRing()
Q = RationalField()


def diag(ring, rows, cols, entries):
    return Matrix(ring, rows, cols, ((i, i, d) for i, d in enumerate(entries)))


def assert_smith_form(E):
    """Diagonal result with each entry dividing the next, plus both transform identities."""
    A = E.matrix
    B = E.result
    ring = A.ring
    assert B.is_diagonal
    d = [a for a in B.diagonal() if not ring.is_zero(a)]
    assert len(d) == E.rank
    assert all(ring.is_normalized(a) for a in d)
    assert all(ring.divides(d[i], d[i + 1]) for i in range(len(d) - 1))
    assert E.left * A * E.right == B
    assert E.left_inverse * B * E.right_inverse == A


def assert_row_echelon(B):
    last = -1
    seen_zero = False
    for line in B.row_lines():
        if not line:
            seen_zero = True
            continue
        assert not seen_zero, "nonzero row below a zero row"
        assert line[0][0] > last
        last = line[0][0]


def random_matrix(seed, rows, cols, low=-5, high=6):
    rng = np.random.default_rng(seed)
    return rng.integers(low, high, size=(rows, cols))


class TestSmithFormIntegers:
    """Test diagonal elimination over the integers"""

    def test_normalize_single_entry(self):
        E = eliminate(Matrix.from_rows(Z, [[-2]]))
        assert E.result == Matrix.from_rows(Z, [[2]])

    def test_regular_5x5(self):
        """Unimodular matrix reduces to the identity"""
        A = Matrix.from_rows(Z, [
            [2, -1, -2, -2, -3],
            [1, 2, -1, 1, -1],
            [2, -2, -4, -3, -6],
            [1, 7, 1, 5, 3],
            [1, -12, -6, -10, -11],
        ])
        E = eliminate(A, EliminationMode.DIAGONAL)
        assert E.result == Matrix.identity(Z, 5)
        assert E.rank == 5
        assert_smith_form(E)

    def test_rank4(self):
        A = Matrix.from_grid(Z, 5, 5, [
            3, -5, -22, 20, 8, 6, -11, -50, 45, 18, -1, 2, 10, -9, -3,
            3, -6, -30, 27, 10, -1, 2, 7, -6, -3,
        ])
        E = eliminate(A)
        assert E.result == diag(Z, 5, 5, [1, 1, 1, 1])
        assert E.rank == 4
        assert E.nullity == 1
        assert_smith_form(E)

    def test_full_rank_with_factors(self):
        A = Matrix.from_grid(Z, 5, 5, [
            -20, -7, -27, 2, 29, 17, 8, 14, -4, -10, 13, 8, 10, -4, -6,
            -9, -2, -14, 0, 16, 5, 0, 5, -1, -4,
        ])
        E = eliminate(A)
        assert E.result == diag(Z, 5, 5, [1, 1, 1, 2, 60])
        assert_smith_form(E)

    def test_rank3_with_factors(self):
        A = Matrix.from_grid(Z, 5, 5, [
            4, 6, -18, -15, -46, -1, 0, 6, 4, 13, -13, -12, 36, 30, 97,
            -7, -6, 18, 15, 49, -6, -6, 18, 15, 48,
        ])
        E = eliminate(A)
        assert E.result == diag(Z, 5, 5, [1, 1, 6])
        assert_smith_form(E)

    def test_rectangular_with_factors(self):
        A = Matrix.from_grid(Z, 4, 6, [
            8, -6, 14, -10, -14, 6, 12, -8, 18, -18, -20, 8,
            -16, 7, -23, 22, 23, -7, 32, -17, 44, -49, -49, 17,
        ])
        E = eliminate(A)
        assert E.result == diag(Z, 4, 6, [1, 1, 2, 12])
        assert_smith_form(E)

    def test_zero_matrix(self):
        A = Matrix.zero(Z, 4, 6)
        E = eliminate(A)
        assert E.result == A
        assert E.rank == 0
        assert E.kernel_matrix == Matrix.identity(Z, 6)

    def test_divisibility_is_enforced(self):
        """diag(2, 3) is diagonal but not in Smith form"""
        E = eliminate(Matrix.from_rows(Z, [[2, 0], [0, 3]]))
        assert E.result == diag(Z, 2, 2, [1, 6])
        assert_smith_form(E)

    @pytest.mark.parametrize("seed,shape", [
        (0, (4, 4)), (1, (5, 3)), (2, (3, 6)), (3, (6, 6)), (4, (5, 5)),
    ])
    def test_random_matrices_against_sympy(self, seed, shape):
        a = random_matrix(seed, *shape)
        A = Matrix.from_array(Z, a)
        E = eliminate(A)
        assert_smith_form(E)
        M = sp.Matrix(a.tolist())
        assert E.rank == M.rank()
        assert E.rank + E.nullity == A.cols
        if E.rank > 0:
            assert E.diagonal[0] == sp.gcd(list(M))
        if A.is_square and E.rank == A.rows:
            product = 1
            for d in E.diagonal:
                product *= int(d)
            assert product == abs(M.det())

    def test_empty_matrices(self):
        for rows, cols in ((0, 0), (0, 3), (3, 0)):
            E = eliminate(Matrix.zero(Z, rows, cols))
            assert E.rank == 0
            assert E.left.shape == (rows, rows)
            assert E.right.shape == (cols, cols)


class TestSmithFormOtherRings:
    """Test diagonal elimination over fields and polynomial rings"""

    def test_normalize_rational(self):
        E = eliminate(Matrix.from_rows(Q, [[-3]]))
        assert E.result == Matrix.from_rows(Q, [[1]])

    def test_rational_regular(self):
        A = Matrix.from_grid(Q, 5, 5, [
            -3, 0, 0, F(-9, 2), 0, F(10, 3), 2, 0, F(-15, 2), 6, F(-10, 3), -2, 0, F(15, 2), -10,
            0, 0, F(3, 4), -5, 0, 0, 0, 1, 0, 0,
        ])
        E = eliminate(A)
        assert E.result == Matrix.identity(Q, 5)
        assert_smith_form(E)

    def test_rational_rank3(self):
        A = Matrix.from_grid(Q, 5, 5, [
            1, 1, 0, F(8, 3), F(10, 3), -3, 0, 0, -3, -5, 2, 0, F(10, 3), 2, F(16, 3),
            F(79, 8), 0, F(395, 24), F(79, 8), F(79, 3), F(7, 2), 0, F(35, 6), F(7, 2), F(28, 3),
        ])
        E = eliminate(A)
        assert E.result == diag(Q, 5, 5, [1, 1, 1])
        assert_smith_form(E)

    def test_finite_field(self):
        F5 = FiniteField(5)
        A = Matrix.from_rows(F5, [[1, 2], [3, 4]])
        E = eliminate(A)
        assert E.result == Matrix.identity(F5, 2)
        assert E.determinant == F5.convert(-2)
        assert A * A.inverse == Matrix.identity(F5, 2)

        F2 = FiniteField(2)
        assert eliminate(Matrix.from_rows(F2, [[1, 1], [1, 1]])).rank == 1

    def test_polynomial_gcd(self):
        """diag(x - 1, x + 1) has Smith form diag(1, x^2 - 1)"""
        Qx = PolynomialRing('x')
        A = Matrix.from_rows(Qx, [['x - 1', 0], [0, 'x + 1']])
        E = eliminate(A)
        assert E.result == Matrix.from_rows(Qx, [[1, 0], [0, 'x**2 - 1']])
        assert_smith_form(E)

    def test_polynomial_characteristic_matrix(self):
        """xI - J for a 2x2 Jordan block has invariant factors 1, (x - 2)^2"""
        Qx = PolynomialRing('x')
        A = Matrix.from_rows(Qx, [['x - 2', -1], [0, 'x - 2']])
        E = eliminate(A)
        assert E.result == Matrix.from_rows(Qx, [[1, 0], [0, 'x**2 - 4*x + 4']])
        assert E.determinant == Qx.convert('(x - 2)**2')


class TestScenarios:
    """Kernel, image, inverse and determinant"""

    def test_kernel(self):
        A = Matrix.from_rows(Z, [[1, 2], [1, 2]])
        E = eliminate(A)
        K = E.kernel_matrix
        assert K.shape == (2, 1)
        assert (A * K).is_zero
        T = E.kernel_transition_matrix
        assert T * K == Matrix.identity(Z, 1)

    def test_image(self):
        A = Matrix.from_rows(Z, [[2, 4], [2, 4]])
        E = eliminate(A)
        assert E.image_matrix == Matrix.from_rows(Z, [[2], [2]])
        assert E.image_transition_matrix.shape == (1, 2)
        assert E.image_transition_matrix * E.image_matrix == diag(Z, 1, 1, E.diagonal)

    def test_inverse(self):
        A = Matrix.from_rows(Z, [[1, 2], [2, 3]])
        E = eliminate(A)
        assert E.inverse == Matrix.from_rows(Z, [[-3, 2], [2, -1]])
        assert A * E.inverse == Matrix.identity(Z, 2)

    def test_singular_has_no_inverse(self):
        assert eliminate(Matrix.from_rows(Z, [[1, 2], [2, 4]])).inverse is None
        assert eliminate(Matrix.from_rows(Z, [[2, 0], [0, 1]])).inverse is None

    def test_rational_inverse(self):
        A = Matrix.from_rows(Q, [[2, 1], [1, 1]])
        assert A * eliminate(A).inverse == Matrix.identity(Q, 2)

    def test_determinant(self):
        A = Matrix.from_rows(Z, [[3, -1, 2, 4], [2, 1, 1, 3], [-2, 0, 3, -1], [0, -2, 1, 3]])
        assert eliminate(A).determinant == 66
        assert eliminate(A).determinant == A.to_sympy().det()

    def test_determinant_of_singular(self):
        assert eliminate(Matrix.from_rows(Z, [[1, 2], [2, 4]])).determinant == 0

    def test_determinant_multiplicative(self):
        A = Matrix.from_array(Z, random_matrix(11, 4, 4))
        B = Matrix.from_array(Z, random_matrix(12, 4, 4))
        assert (A * B).determinant == A.determinant * B.determinant
        assert A.determinant == A.to_sympy().det()

    def test_square_required(self):
        E = eliminate(Matrix.zero(Z, 2, 3))
        with pytest.raises(ValueError, match="square"):
            E.determinant
        with pytest.raises(ValueError, match="square"):
            E.inverse

    def test_injective_surjective(self):
        E = eliminate(Matrix.from_rows(Z, [[2]]))
        assert E.is_injective
        assert not E.is_surjective
        E = eliminate(Matrix.from_rows(Z, [[1, 2]]))
        assert E.is_surjective
        assert not E.is_injective
        assert eliminate(Matrix.from_rows(Z, [[1, 2], [2, 3]])).is_bijective


class TestModes:
    """Test the echelon and Hermite modes"""

    def setup_method(self):
        self.A = Matrix.from_array(Z, random_matrix(5, 4, 5))

    def test_row_echelon(self):
        E = eliminate(self.A, EliminationMode.ROW_ECHELON)
        assert_row_echelon(E.result)
        assert E.right.is_identity
        assert E.left * self.A == E.result
        assert E.left_inverse * E.result == self.A

    def test_row_hermite(self):
        E = eliminate(self.A, EliminationMode.ROW_HERMITE)
        B = E.result
        assert_row_echelon(B)
        assert E.left * self.A == B
        for t, line in enumerate(B.row_lines()):
            if not line:
                continue
            j, pivot = line[0]
            assert pivot > 0
            for i in range(t):
                assert 0 <= B[i, j] < pivot

    def test_col_echelon(self):
        E = eliminate(self.A, EliminationMode.COL_ECHELON)
        assert_row_echelon(E.result.transposed())
        assert E.left.is_identity
        assert self.A * E.right == E.result
        assert E.result * E.right_inverse == self.A

    def test_col_hermite(self):
        E = eliminate(self.A, EliminationMode.COL_HERMITE)
        assert_row_echelon(E.result.transposed())
        assert self.A * E.right == E.result

    @pytest.mark.parametrize("mode", list(EliminationMode))
    def test_rank_agrees_across_modes(self, mode):
        E = eliminate(self.A, mode)
        assert E.rank == self.A.to_sympy().rank()
        assert (self.A * E.kernel_matrix).is_zero

    @pytest.mark.parametrize("mode", list(EliminationMode))
    def test_determinant_in_every_mode(self, mode):
        A = Matrix.from_rows(Z, [[3, -1, 2, 4], [2, 1, 1, 3], [-2, 0, 3, -1], [0, -2, 1, 3]])
        assert eliminate(A, mode).determinant == 66

    def test_mode_must_be_enum(self):
        with pytest.raises(TypeError, match="EliminationMode"):
            eliminate(self.A, 'diagonal')


class TestWorker:
    """Test the elimination worker itself"""

    def test_executor_gives_same_result(self):
        A = Matrix.from_array(Z, random_matrix(21, 6, 6))
        serial = eliminate(A)
        with ThreadPoolExecutor(max_workers=3) as executor:
            parallel = eliminate(A, executor=executor)
            assert parallel.result == serial.result
            assert parallel.left == serial.left
            assert parallel.right == serial.right

    def test_lazy_results_after_executor_shutdown(self):
        """Kernel and image of an echelon result are read after the pool is closed"""
        A = Matrix.from_rows(Z, [[2, 4, 6], [1, 3, 5], [3, 7, 11]])
        with ThreadPoolExecutor(max_workers=3) as executor:
            E = eliminate(A, EliminationMode.ROW_ECHELON, executor=executor)
        assert E.rank == 2
        assert (A * E.kernel_matrix).is_zero
        assert E.kernel_matrix.shape == (3, 1)
        assert E.image_transition_matrix * E.image_matrix == diag(Z, 2, 2, E.diagonal)
        assert E.diagonal == [1, 2]
        assert not E.is_surjective

    def test_without_weight_tracking(self):
        A = Matrix.from_array(Z, random_matrix(22, 5, 4))
        E = eliminate(A, track_weights=False)
        assert_smith_form(E)

    def test_injected_logger(self, caplog):
        logger = logging.getLogger("elimination_trace")
        caplog.set_level(logging.DEBUG, logger="elimination_trace")
        eliminate(Matrix.from_rows(Z, [[2, 4], [6, 8]]), logger=logger)
        messages = [r.getMessage() for r in caplog.records if r.name == "elimination_trace"]
        assert any("pivot" in m for m in messages)
        assert any(m.startswith("start diagonal") for m in messages)

    def test_timing_statistics(self):
        """A column pass is needed here, so transposes are timed too"""
        worker = MatrixEliminator(Matrix.from_rows(Z, [[2, 3], [0, 0]]), EliminationMode.DIAGONAL)
        E = worker.execute()
        assert E.result == diag(Z, 2, 2, [1])
        stats = worker.get_timing_statistics()
        assert {'diagonal', 'row_hermite', 'row_echelon', 'transpose'} <= set(stats)
        assert stats['diagonal']['call_count'] == 1
        assert worker.iteration_count > 0

    def test_strategy_step_protocol(self):
        from matrix_eliminator import RowEchelonStrategy
        worker = MatrixEliminator(Matrix.from_rows(Z, [[0, 1]]), EliminationMode.ROW_ECHELON)
        strategy = RowEchelonStrategy(worker)
        assert strategy.step() is StepResult.CONTINUE   # empty column 0
        assert strategy.step() is StepResult.CONTINUE   # pivot at column 1
        assert strategy.step() is StepResult.DONE

    def test_requires_matrix(self):
        with pytest.raises(TypeError, match="Matrix"):
            MatrixEliminator([[1, 2]])
