"""
Chain Complex and Homology Extraction

A (multi)graded sequence of modules ``C_I`` with a differential
``d: C_I -> C_{I+deg}`` of fixed degree. Degrees are ints or int tuples.

- ``modules`` maps a degree to a :class:`ModuleStructure`, or to None when
  the module is indeterminable. Degrees not in the mapping hold the zero
  module (``default_zero=True``) or are indeterminable.
- ``differential(I)`` returns the matrix of ``d`` at ``I`` with respect to
  the summand generators of source and target (``gens(I+deg) x gens(I)``),
  or None when it is unknown.

Homology at ``I`` is computed from the diagonal eliminations of the
differential matrices:

1. indeterminable module at ``I`` or ``I+deg``: None
2. incoming and outgoing differentials both zero: ``C_I`` itself
3. zero kernel: the zero module
4. free ``C_I``: kernel modulo image, via ``ModuleStructure.from_relations``
5. differential splitting along the divisor groups on both sides, over the
   integers with only ``Z/2`` torsion: free part and order-2 part (over
   ``F2``) computed separately and summed
6. anything else is left indeterminable (None) and logged

Homology generators are expressed in coordinates of the summand generators
of ``C_I``.

Usage Example:
--------------
    from euclidean_rings import IntegerRing
    from sparse_matrix import Matrix
    from chain_complex import ChainComplex

    Z = IntegerRing()
    d1 = Matrix.from_rows(Z, [[-1, -1, 0], [1, 0, -1], [0, 1, 1]])   # triangle boundary
    C = ChainComplex.from_boundary_matrices(Z, {1: d1})
    print(C.homology(0), C.homology(1))                                # Z Z
"""

import logging
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from euclidean_rings import EuclideanRing, FiniteField, IntegerRing
from module_structure import ModuleStructure
from matrix_eliminator import EliminationMode
from sparse_matrix import Matrix


_logger = logging.getLogger(__name__)

Degree = Union[int, tuple]


def shift_degree(I: Degree, d: Degree, sign: int = 1) -> Degree:
    """``I + sign * d`` for int or tuple degrees."""
    if isinstance(I, tuple):
        if not isinstance(d, tuple) or len(d) != len(I):
            raise TypeError(f"Degree {I!r} and differential degree {d!r} have different shapes")
        return tuple(a + sign * b for a, b in zip(I, d))
    if isinstance(d, tuple):
        raise TypeError(f"Degree {I!r} and differential degree {d!r} have different shapes")
    return I + sign * d


class ChainComplex:
    """
    Args:
        ring: ring adapter of all modules and differentials
        modules: degree -> ModuleStructure (or None when indeterminable)
        differential: callable degree -> Matrix (or None)
        degree: degree of the differential (-1 for chain, 1 for cochain complexes)
        name: display name
        default_zero: degrees missing from ``modules`` hold the zero module
        logger: logging.Logger for diagnostics (default: module logger)
    """

    def __init__(
        self,
        ring: EuclideanRing,
        modules: Mapping[Degree, Optional[ModuleStructure]],
        differential: Callable[[Degree], Optional[Matrix]],
        degree: Degree = -1,
        *,
        name: str = 'C',
        default_zero: bool = True,
        logger: Optional[logging.Logger] = None
    ):
        for I, M in modules.items():
            if M is not None and M.ring != ring:
                raise TypeError(f"Module at degree {I!r} is over {M.ring}, expected {ring}")
        self.ring = ring
        self.modules: Dict[Degree, Optional[ModuleStructure]] = dict(modules)
        self.differential = differential
        self.degree = degree
        self.name = name
        self.default_zero = default_zero
        self.logger = logger if logger is not None else _logger

        self._d_cache: Dict[Degree, Optional[Matrix]] = {}
        self._elimination_cache: Dict[Degree, Any] = {}

    @classmethod
    def from_boundary_matrices(
        cls,
        ring: EuclideanRing,
        matrices: Union[Mapping[Degree, Matrix], Sequence[Matrix]],
        degree: Degree = -1,
        name: str = 'C'
    ) -> 'ChainComplex':
        """
        Complex of free modules given by its differential matrices.

        Args:
            matrices: degree -> matrix of ``d: C_I -> C_{I+degree}``
                (a list is read as degrees 0, 1, 2, ...)
        """
        if not isinstance(matrices, Mapping):
            matrices = dict(enumerate(matrices))

        ranks: Dict[Degree, int] = {}

        def settle(I, n):
            if ranks.setdefault(I, n) != n:
                raise ValueError(f"Inconsistent rank at degree {I!r}: {ranks[I]} vs {n}")

        for I, A in matrices.items():
            if A.ring != ring:
                raise TypeError(f"Differential at degree {I!r} is over {A.ring}, expected {ring}")
            settle(I, A.cols)
            settle(shift_degree(I, degree), A.rows)

        modules = {I: ModuleStructure.free(ring, n) for I, n in ranks.items()}

        def differential(I):
            A = matrices.get(I)
            if A is None:
                target = ranks.get(shift_degree(I, degree), 0)
                return Matrix.zero(ring, target, ranks.get(I, 0))
            return A

        return cls(ring, modules, differential, degree, name=name)

    def __repr__(self):
        return f"ChainComplex({self.name}, {self.ring.symbol}, degree={self.degree!r})"

    # ------------------------------------------------------------------ modules / differentials
    def __getitem__(self, I: Degree) -> Optional[ModuleStructure]:
        if I in self.modules:
            return self.modules[I]
        return ModuleStructure.zero(self.ring) if self.default_zero else None

    @property
    def degrees(self) -> List[Degree]:
        return sorted(self.modules)

    def d_matrix(self, I: Degree) -> Optional[Matrix]:
        """Matrix of ``d: C_I -> C_{I+deg}``, or None when it cannot be determined."""
        if I in self._d_cache:
            return self._d_cache[I]

        source = self[I]
        target = self[shift_degree(I, self.degree)]
        if source is None or target is None:
            A = None
        elif source.generator_count == 0 or target.generator_count == 0:
            A = Matrix.zero(self.ring, target.generator_count, source.generator_count)
        else:
            A = self.differential(I)
            if A is not None:
                if A.ring != self.ring:
                    raise TypeError(f"Differential at {I!r} is over {A.ring}, expected {self.ring}")
                if A.shape != (target.generator_count, source.generator_count):
                    raise ValueError(
                        f"Differential at {I!r} has shape {A.rows}x{A.cols}, "
                        f"expected {target.generator_count}x{source.generator_count}"
                    )

        self._d_cache[I] = A
        return A

    def _elimination(self, I: Degree):
        if I not in self._elimination_cache:
            A = self.d_matrix(I)
            self._elimination_cache[I] = A.eliminate(EliminationMode.DIAGONAL) if A is not None else None
        return self._elimination_cache[I]

    def _free_elimination(self, I: Degree):
        source = self[I]
        target = self[shift_degree(I, self.degree)]
        if source is None or not source.is_free or target is None or not target.is_free:
            return None
        return self._elimination(I)

    def kernel(self, I: Degree) -> Optional[Matrix]:
        E = self._free_elimination(I)
        return E.kernel_matrix if E is not None else None

    def kernel_transition(self, I: Degree) -> Optional[Matrix]:
        E = self._free_elimination(I)
        return E.kernel_transition_matrix if E is not None else None

    def image(self, I: Degree) -> Optional[Matrix]:
        E = self._free_elimination(I)
        return E.image_matrix if E is not None else None

    # ------------------------------------------------------------------ homology
    def homology(self, I: Degree) -> Optional[ModuleStructure]:
        M = self[I]
        if M is None or self[shift_degree(I, self.degree)] is None:
            return None

        previous = shift_degree(I, self.degree, -1)
        A_in = self.d_matrix(previous)
        A_out = self.d_matrix(I)
        if A_in is not None and A_in.is_zero and A_out is not None and A_out.is_zero:
            return M

        Z = self.kernel(I)
        if Z is not None and Z.is_zero:
            return ModuleStructure.zero(self.ring)

        T = self.kernel_transition(I)
        B = self.image(previous)
        if Z is not None and T is not None and B is not None:
            return ModuleStructure.from_relations(self.ring, Z, T, T * B)

        if self.d_splits(I) and self.d_splits(previous):
            if isinstance(self.ring, IntegerRing) and all(c == 2 for c in M.torsion_coefficients):
                return self._split_homology(I)
            self.logger.warning(
                "%s: differential splits at %r but torsion %s is not supported",
                self.name, I, [str(c) for c in M.torsion_coefficients]
            )
            self.describe_map(I)
            return None

        self.logger.info("%s: homology at %r is indeterminable", self.name, I)
        return None

    def _split_homology(self, I: Degree) -> Optional[ModuleStructure]:
        free_h = self.free_part().homology(I)
        tor_h = self.order2_torsion_part().homology(I)
        if free_h is None or tor_h is None:
            return None

        M = self[I]
        n = M.generator_count
        free_indices = self._summand_indices(M, self.ring.is_zero)
        two_indices = self._summand_indices(M, lambda d: d == 2)

        free_gens, free_trans = self._embed(free_h, free_indices, n, lambda a: a)
        tor_gens, tor_trans = self._embed(tor_h, two_indices, n, tor_h.ring.to_sympy)

        free_module = ModuleStructure(self.ring, free_h.summands, free_gens, free_trans)
        tor_module = ModuleStructure(self.ring, [2] * tor_h.generator_count, tor_gens, tor_trans)
        return free_module.direct_sum(tor_module)

    def _embed(self, H: ModuleStructure, indices: List[int], n: int, lift):
        """Generators and transition of ``H`` re-indexed into the ``n`` summand coordinates of ``C_I``."""
        if H.generators is None or H.transition is None:
            return None, None
        k = H.generator_count
        gens = Matrix(self.ring, n, k, (
            (indices[i], j, lift(a)) for i, j, a in H.generators.nonzero_components()
        ))
        trans = Matrix(self.ring, k, n, (
            (i, indices[j], lift(a)) for i, j, a in H.transition.nonzero_components()
        ))
        return gens, trans

    def d_splits(self, I: Degree) -> bool:
        """
        True if the differential at ``I`` is block diagonal with respect to
        the divisor groups of source and target: every block between groups
        of different divisors is zero.
        """
        source = self[I]
        target = self[shift_degree(I, self.degree)]
        A = self.d_matrix(I)
        if source is None or target is None or A is None:
            return False

        t0 = source.divisor_groups()
        t1 = target.divisor_groups()
        blocks = A.blocks([n for _, n in t1], [n for _, n in t0])
        return all(
            t0[j][0] == t1[i][0] or B.is_zero
            for i, row in enumerate(blocks)
            for j, B in enumerate(row)
        )

    def homology_grid(self) -> Dict[Degree, Optional[ModuleStructure]]:
        """Homology at every listed degree. Trivial groups are dropped when ``default_zero``."""
        grid = {I: self.homology(I) for I in self.degrees}
        if self.default_zero:
            grid = {I: H for I, H in grid.items() if H is None or not H.is_trivial}
        return grid

    @property
    def is_exact(self) -> bool:
        return all(H is not None and H.is_trivial for H in (self.homology(I) for I in self.degrees))

    # ------------------------------------------------------------------ parts
    def _summand_indices(self, M: ModuleStructure, predicate) -> List[int]:
        return [k for k, d in enumerate(M.summands) if predicate(d)]

    def free_part(self) -> 'ChainComplex':
        """Subcomplex on the free summands of every module."""
        ring = self.ring
        is_free = ring.is_zero
        modules = {
            I: ModuleStructure.free(ring, M.rank) if M is not None else None
            for I, M in self.modules.items()
        }

        def differential(I):
            A = self.d_matrix(I)
            if A is None:
                return None
            rows = self._summand_indices(self[shift_degree(I, self.degree)], is_free)
            cols = self._summand_indices(self[I], is_free)
            return A.select_rows(rows).select_cols(cols)

        return ChainComplex(
            ring, modules, differential, self.degree,
            name=f"{self.name}_free", default_zero=self.default_zero, logger=self.logger
        )

    def order2_torsion_part(self) -> 'ChainComplex':
        """Subcomplex on the ``Z/2`` summands, as vector spaces over F2."""
        if not isinstance(self.ring, IntegerRing):
            raise TypeError(f"Order-2 torsion part requires the integers, not {self.ring}")
        Z = self.ring
        F2 = FiniteField(2)

        def is_two(d):
            return d == 2

        modules = {
            I: ModuleStructure.free(F2, len(self._summand_indices(M, is_two))) if M is not None else None
            for I, M in self.modules.items()
        }

        def differential(I):
            A = self.d_matrix(I)
            if A is None:
                return None
            rows = self._summand_indices(self[shift_degree(I, self.degree)], is_two)
            cols = self._summand_indices(self[I], is_two)
            return A.select_rows(rows).select_cols(cols).map_values(Z.to_sympy, ring=F2)

        return ChainComplex(
            F2, modules, differential, self.degree,
            name=f"{self.name}_2", default_zero=self.default_zero, logger=self.logger
        )

    # ------------------------------------------------------------------ diagnostics
    def assert_chain_complex(self) -> None:
        """Raise ValueError unless ``d ∘ d = 0`` at every listed degree."""
        for I in self.degrees:
            A = self.d_matrix(I)
            B = self.d_matrix(shift_degree(I, self.degree))
            if A is None or B is None or B.cols != A.rows:
                continue
            if not (B * A).is_zero:
                raise ValueError(f"{self.name}: d ∘ d is nonzero at degree {I!r}")

    def describe_map(self, I: Degree) -> None:
        source = self[I]
        target_degree = shift_degree(I, self.degree)
        target = self[target_degree]
        A = self.d_matrix(I)
        self.logger.debug(
            "%s: d at %r: %s -> %s (%r)\n%s",
            self.name, I, source, target, target_degree,
            A.detail_description() if A is not None else "indeterminable"
        )

    def clear_cache(self) -> None:
        self._d_cache.clear()
        self._elimination_cache.clear()

    def get_cache_statistics(self) -> Dict[str, int]:
        """
        Returns:
            Dictionary with the number of cached differential matrices
            ('d_matrices') and diagonal eliminations ('eliminations')
        """
        return {
            'd_matrices': len(self._d_cache),
            'eliminations': len(self._elimination_cache),
        }
