"""
Module Structure

Finitely generated module over a Euclidean ring, decomposed into cyclic
summands

    R/(d_0) ⊕ ... ⊕ R/(d_k) ⊕ R^r

with the torsion summands first and the free summands (divisor zero) last.
Unit divisors give trivial summands and are dropped; every divisor is kept
in its normalized associate form.

Optionally carries

- ``generators``: an ``n x s`` matrix whose columns express the ``s``
  summand generators in an ambient basis of size ``n``
- ``transition``: an ``s x n`` matrix taking ambient coordinates to
  coordinates with respect to the summand generators

Homology extraction produces these through :meth:`ModuleStructure.from_relations`.
"""

from typing import Any, List, Optional, Sequence, Tuple

from euclidean_rings import EuclideanRing
from matrix_eliminator import EliminationMode
from sparse_matrix import Matrix


class ModuleStructure:
    """
    Args:
        ring: ring adapter
        summands: divisor of each cyclic summand (0 for a free summand)
        generators: optional ambient generator matrix, one column per summand
        transition: optional transition matrix, one row per summand
    """

    def __init__(self, ring: EuclideanRing, summands: Sequence[Any],
                 generators: Optional[Matrix] = None, transition: Optional[Matrix] = None):
        divisors = [ring.convert(d) for d in summands]
        if generators is not None and generators.cols != len(divisors):
            raise ValueError(f"Expected {len(divisors)} generator columns, got {generators.cols}")
        if transition is not None and transition.rows != len(divisors):
            raise ValueError(f"Expected {len(divisors)} transition rows, got {transition.rows}")

        kept = [k for k, d in enumerate(divisors) if not ring.is_invertible(d)]
        order = [k for k in kept if not ring.is_zero(divisors[k])] + \
                [k for k in kept if ring.is_zero(divisors[k])]

        self.ring = ring
        self.summands: Tuple[Any, ...] = tuple(ring.normalized(divisors[k]) for k in order)
        self.generators = generators.select_cols(order) if generators is not None else None
        self.transition = transition.select_rows(order) if transition is not None else None

    # ------------------------------------------------------------------ constructors
    @classmethod
    def zero(cls, ring: EuclideanRing) -> 'ModuleStructure':
        return cls(ring, [], Matrix.zero(ring, 0, 0), Matrix.zero(ring, 0, 0))

    @classmethod
    def free(cls, ring: EuclideanRing, rank: int) -> 'ModuleStructure':
        """``R^rank`` generated by the standard basis."""
        return cls(ring, [ring.zero] * rank, Matrix.identity(ring, rank), Matrix.identity(ring, rank))

    @classmethod
    def from_relations(cls, ring: EuclideanRing, generating_matrix: Matrix,
                       transition_matrix: Matrix, relation_matrix: Matrix) -> 'ModuleStructure':
        """
        Quotient of the module spanned by the columns of ``generating_matrix``
        by the relations in the columns of ``relation_matrix``.

        Args:
            generating_matrix: ``n x k`` generators in the ambient basis
            transition_matrix: ``k x n`` ambient coordinates -> generator coordinates
            relation_matrix: ``k x m`` relations in generator coordinates
        """
        k = generating_matrix.cols
        if transition_matrix.rows != k or relation_matrix.rows != k:
            raise ValueError(
                f"Relation data do not match {k} generators: transition has {transition_matrix.rows} rows, "
                f"relations have {relation_matrix.rows} rows"
            )
        E = relation_matrix.eliminate(EliminationMode.DIAGONAL)
        divisors = E.diagonal + [ring.zero] * (k - E.rank)
        return cls(
            ring,
            divisors,
            generating_matrix * E.left_inverse,
            E.left * transition_matrix
        )

    # ------------------------------------------------------------------ structure
    @property
    def rank(self) -> int:
        return sum(1 for d in self.summands if self.ring.is_zero(d))

    @property
    def torsion_coefficients(self) -> List[Any]:
        return [d for d in self.summands if not self.ring.is_zero(d)]

    @property
    def generator_count(self) -> int:
        return len(self.summands)

    @property
    def is_free(self) -> bool:
        return not self.torsion_coefficients

    @property
    def is_trivial(self) -> bool:
        return not self.summands

    is_zero = is_trivial

    def divisor_groups(self) -> List[Tuple[Any, int]]:
        """Consecutive equal divisors grouped as ``(divisor, multiplicity)``."""
        groups: List[Tuple[Any, int]] = []
        for d in self.summands:
            if groups and groups[-1][0] == d:
                groups[-1] = (d, groups[-1][1] + 1)
            else:
                groups.append((d, 1))
        return groups

    def _part(self, indices: List[int]) -> 'ModuleStructure':
        return ModuleStructure(
            self.ring,
            [self.summands[k] for k in indices],
            self.generators.select_cols(indices) if self.generators is not None else None,
            self.transition.select_rows(indices) if self.transition is not None else None
        )

    def free_part(self) -> 'ModuleStructure':
        return self._part([k for k, d in enumerate(self.summands) if self.ring.is_zero(d)])

    def torsion_part(self) -> 'ModuleStructure':
        return self._part([k for k, d in enumerate(self.summands) if not self.ring.is_zero(d)])

    def direct_sum(self, other: 'ModuleStructure') -> 'ModuleStructure':
        """
        Sum of two submodule decompositions living in the same ambient basis.

        Generators are placed side by side and transitions stacked; they are
        dropped when either side lacks them.
        """
        if self.ring != other.ring:
            raise TypeError(f"Modules are over different rings: {self.ring} vs {other.ring}")
        generators = None
        transition = None
        if self.generators is not None and other.generators is not None:
            generators = self.generators.concat_horizontally(other.generators)
        if self.transition is not None and other.transition is not None:
            transition = self.transition.concat_vertically(other.transition)
        return ModuleStructure(self.ring, self.summands + other.summands, generators, transition)

    __add__ = direct_sum

    # ------------------------------------------------------------------ comparison / display
    def __eq__(self, other):
        if not isinstance(other, ModuleStructure):
            return NotImplemented
        return self.ring == other.ring and self.summands == other.summands

    def __hash__(self):
        return hash((self.ring, self.summands))

    def _divisor_label(self, d: Any) -> str:
        s = str(self.ring.to_sympy(d))
        return s if s.isalnum() else f"({s})"

    def __str__(self):
        if self.is_trivial:
            return "0"
        R = self.ring.symbol
        parts = []
        if self.rank == 1:
            parts.append(R)
        elif self.rank > 1:
            parts.append(f"{R}^{self.rank}")
        for d, count in self.divisor_groups():
            if self.ring.is_zero(d):
                continue
            cyclic = f"{R}/{self._divisor_label(d)}"
            parts.append(cyclic if count == 1 else f"({cyclic})^{count}")
        return " ⊕ ".join(parts)

    def __repr__(self):
        return f"ModuleStructure({self})"
