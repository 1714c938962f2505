"""
Euclidean Ring Adapters

This module provides the ring capability set consumed by the sparse matrix
elimination engine. Every adapter wraps one of SymPy's low-level polynomial
domains (``ZZ``, ``QQ``, ``GF(p)``) or a univariate ``PolyRing`` over one of
the field adapters, and exposes the operations the eliminator needs:

- additive group / multiplicative monoid (plain ``+``, ``-``, ``*`` on elements)
- ``zero`` / ``identity``
- ``euc_div(a, b) -> (q, r)`` with ``degree(r) < degree(b)`` whenever ``r != 0``
- ``degree(a)``: elimination weight, 0 for the zero element
- ``is_invertible`` / ``inverse``
- ``normalizing_unit(a)``: a unit ``u`` such that ``u * a`` is the canonical
  associate of ``a`` (the sign for integers, ``1/a`` in a field, the inverse
  leading coefficient for polynomials)

Any other object implementing :class:`EuclideanRing` can be plugged into the
engine. The engine does not guard against a ring whose ``euc_div`` fails to
decrease ``degree``; such a ring makes the elimination loop forever.

Usage Example:
--------------
    from euclidean_rings import IntegerRing, PolynomialRing, RationalField

    Z = IntegerRing()
    q, r = Z.euc_div(Z.convert(-7), Z.convert(2))   # (-4, 1)

    Qx = PolynomialRing('x', RationalField())
    f = Qx.convert('x**2 - 1')
"""

import numbers
from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

import sympy as sp
from sympy.polys.domains import GF, QQ, ZZ
from sympy.polys.rings import PolyRing


class EuclideanRing(ABC):
    """
    Abstract capability set of a Euclidean ring as used by the eliminator.

    Elements are opaque values supporting ``+``, unary ``-``, ``-``, ``*`` and
    ``==``. Everything else goes through the adapter.
    """

    symbol = "R"

    @property
    @abstractmethod
    def zero(self) -> Any:
        ...

    @property
    @abstractmethod
    def identity(self) -> Any:
        ...

    @abstractmethod
    def convert(self, x: Any) -> Any:
        """Convert an int, SymPy number/expression or native element into this ring."""

    @abstractmethod
    def is_invertible(self, a: Any) -> bool:
        ...

    @abstractmethod
    def euc_div(self, a: Any, b: Any) -> Tuple[Any, Any]:
        """Euclidean division ``a = q * b + r``; ``b`` must be nonzero."""

    @abstractmethod
    def degree(self, a: Any) -> int:
        ...

    @abstractmethod
    def normalizing_unit(self, a: Any) -> Any:
        ...

    @abstractmethod
    def to_sympy(self, a: Any) -> sp.Basic:
        ...

    @property
    def characteristic(self) -> int:
        return 0

    @property
    def is_field(self) -> bool:
        return False

    def is_zero(self, a: Any) -> bool:
        return not a

    def inverse(self, a: Any) -> Optional[Any]:
        """Multiplicative inverse of ``a``, or None when ``a`` is not a unit."""
        if not self.is_invertible(a):
            return None
        return self._unit_inverse(a)

    def _unit_inverse(self, a: Any) -> Any:
        # a is known to be a unit here
        return self.normalizing_unit(a)

    def is_normalized(self, a: Any) -> bool:
        return self.normalizing_unit(a) == self.identity

    def normalized(self, a: Any) -> Any:
        return self.normalizing_unit(a) * a

    def divides(self, a: Any, b: Any) -> bool:
        """True if ``a | b``. Zero divides only zero."""
        if self.is_zero(a):
            return self.is_zero(b)
        return self.is_zero(self.euc_div(b, a)[1])

    def _key(self) -> Tuple:
        return ()

    def __eq__(self, other):
        return type(self) is type(other) and self._key() == other._key()

    def __hash__(self):
        return hash((type(self).__name__,) + self._key())

    def __repr__(self):
        return f"{type(self).__name__}({self.symbol})"

    def __str__(self):
        return self.symbol


class IntegerRing(EuclideanRing):
    """The integers, backed by SymPy's ``ZZ`` domain (Python ints or gmpy mpz)."""

    symbol = "Z"

    def __init__(self):
        self.domain = ZZ

    @property
    def zero(self):
        return self.domain.zero

    @property
    def identity(self):
        return self.domain.one

    def convert(self, x):
        if isinstance(x, sp.Basic):
            return self.domain.from_sympy(x)
        if isinstance(x, numbers.Integral):
            return self.domain(int(x))
        return self.domain.convert(x)

    def is_invertible(self, a) -> bool:
        return a == 1 or a == -1

    def euc_div(self, a, b):
        if not b:
            raise ZeroDivisionError("Euclidean division by zero")
        # floor division: |r| < |b| and r has the sign of b
        return divmod(a, b)

    def degree(self, a) -> int:
        return int(abs(a))

    def normalizing_unit(self, a):
        return -self.domain.one if a < 0 else self.domain.one

    def to_sympy(self, a):
        return self.domain.to_sympy(a)


class RationalField(EuclideanRing):
    """The rationals, backed by SymPy's ``QQ`` domain."""

    symbol = "Q"

    def __init__(self):
        self.domain = QQ

    @property
    def zero(self):
        return self.domain.zero

    @property
    def identity(self):
        return self.domain.one

    @property
    def is_field(self) -> bool:
        return True

    def convert(self, x):
        if isinstance(x, sp.Basic):
            return self.domain.from_sympy(sp.nsimplify(x) if isinstance(x, sp.Float) else x)
        if isinstance(x, numbers.Integral):
            return self.domain(int(x))
        if isinstance(x, numbers.Rational):
            return self.domain(int(x.numerator), int(x.denominator))
        return self.domain.convert(x)

    def is_invertible(self, a) -> bool:
        return bool(a)

    def euc_div(self, a, b):
        if not b:
            raise ZeroDivisionError("Euclidean division by zero")
        return a / b, self.domain.zero

    def degree(self, a) -> int:
        return 1 if a else 0

    def normalizing_unit(self, a):
        return self.domain.one / a if a else self.domain.one

    def to_sympy(self, a):
        return self.domain.to_sympy(a)


class FiniteField(EuclideanRing):
    """
    The prime field F_p, backed by SymPy's ``GF(p)`` domain.

    Representatives are kept in ``0 .. p-1`` (non-symmetric) so that printed
    matrices read naturally.

    Args:
        p: prime modulus
    """

    def __init__(self, p: int):
        if not isinstance(p, numbers.Integral) or not sp.isprime(int(p)):
            raise ValueError(f"FiniteField modulus must be a prime integer (got {p!r})")
        self.p = int(p)
        self.domain = GF(self.p, symmetric=False)
        self.symbol = f"F{self.p}"

    @property
    def zero(self):
        return self.domain.zero

    @property
    def identity(self):
        return self.domain.one

    @property
    def characteristic(self) -> int:
        return self.p

    @property
    def is_field(self) -> bool:
        return True

    def convert(self, x):
        if isinstance(x, sp.Basic):
            return self.domain.from_sympy(x)
        if isinstance(x, numbers.Integral):
            return self.domain(int(x))
        return self.domain.convert(x)

    def is_invertible(self, a) -> bool:
        return bool(a)

    def euc_div(self, a, b):
        if not b:
            raise ZeroDivisionError("Euclidean division by zero")
        return a / b, self.domain.zero

    def degree(self, a) -> int:
        return 1 if a else 0

    def normalizing_unit(self, a):
        return self.domain.one / a if a else self.domain.one

    def to_sympy(self, a):
        return self.domain.to_sympy(a)

    def _key(self):
        return (self.p,)


class PolynomialRing(EuclideanRing):
    """
    Univariate polynomial ring K[x] over a field adapter K.

    The Euclidean degree of a nonzero polynomial is ``deg + 1`` so that the
    nonzero constants (the units) weigh strictly more than zero.

    Args:
        symbol: name of the indeterminate (default 'x')
        field: coefficient field adapter (RationalField or FiniteField)
    """

    def __init__(self, symbol: str = 'x', field: Optional[EuclideanRing] = None):
        field = field if field is not None else RationalField()
        if not field.is_field:
            raise TypeError(f"PolynomialRing coefficients must form a field (got {field})")
        self.field = field
        self.variable = symbol
        self.poly_ring = PolyRing(symbol, field.domain)
        self.symbol = f"{field.symbol}[{symbol}]"

    @property
    def zero(self):
        return self.poly_ring.zero

    @property
    def identity(self):
        return self.poly_ring.one

    @property
    def gen(self):
        return self.poly_ring.gens[0]

    @property
    def characteristic(self) -> int:
        return self.field.characteristic

    def convert(self, x):
        if isinstance(x, str):
            x = sp.sympify(x)
        if isinstance(x, numbers.Integral):
            x = int(x)
        return self.poly_ring(x)

    def is_invertible(self, a) -> bool:
        return bool(a) and a.is_ground

    def euc_div(self, a, b):
        if not b:
            raise ZeroDivisionError("Euclidean division by zero")
        return a.div(b)

    def degree(self, a) -> int:
        return a.degree() + 1 if a else 0

    def normalizing_unit(self, a):
        if not a:
            return self.poly_ring.one
        return self.poly_ring(self.field.inverse(a.LC))

    def _unit_inverse(self, a):
        return self.poly_ring(self.field.inverse(a.LC))

    def to_sympy(self, a):
        return a.as_expr()

    def _key(self):
        return (self.variable, self.field)
