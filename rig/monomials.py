"""
Monomial algebra for the free idempotent rig on two generators.

With generators a, b and the identity 1 there are 7 monomials:

    1, a, b, ab, ba, aba, bab

Because (1+1)^2 = 1+1 we have 4 = 2, 5 = 3, 6 = 2, 7 = 3, ... so every
element is a 7-tuple of coefficients in 0..3.  Tuples are packed into a
single index in 0..4^7-1, coefficient i occupying bit pair i.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np

# ---------------------------------------------------------------------------
# Monomial inventory
# ---------------------------------------------------------------------------

MONOMIALS = ("1", "a", "b", "ab", "ba", "aba", "bab")

# MONOMIAL_TABLE[i][j] = monomial index of MONOMIALS[i] * MONOMIALS[j]
MONOMIAL_TABLE = (
    (0, 1, 2, 3, 4, 5, 6),
    (1, 1, 3, 3, 5, 5, 3),
    (2, 4, 2, 6, 4, 4, 6),
    (3, 5, 3, 3, 5, 5, 3),
    (4, 4, 6, 6, 4, 4, 6),
    (5, 5, 3, 3, 5, 5, 3),
    (6, 4, 6, 6, 4, 4, 6),
)

NUM_MONOMIALS = len(MONOMIALS)          # 7
NUM_ELEMENTS = 1 << (2 * NUM_MONOMIALS)  # 16384

COEFF_BITS = 2
COEFF_MASK = 0x3


def norm_coeff(c: int) -> int:
    """Collapse a coefficient: 4 -> 2, 5 -> 3, 6 -> 2, 7 -> 3, ..."""
    if c >= 4:
        return 2 + (c % 2)
    return c


def normalize(coeffs: np.ndarray) -> np.ndarray:
    """Vectorized norm_coeff."""
    return np.where(coeffs >= 4, 2 + coeffs % 2, coeffs)


# ---------------------------------------------------------------------------
# Algebra
# ---------------------------------------------------------------------------

class MonomialAlgebra:
    """
    Formal sums over a fixed monomial basis with coefficients in 0..3.

    Args:
        table: square monomial product table, table[i][j] = index of m_i * m_j.
            Monomial 0 must be the identity.
        names: printable name of each monomial.
    """

    def __init__(self, table: Sequence[Sequence[int]] = MONOMIAL_TABLE,
                 names: Sequence[str] = MONOMIALS):
        n = len(names)
        if len(table) != n or any(len(row) != n for row in table):
            raise ValueError(f"Monomial table must be {n}x{n}")
        if any(not 0 <= v < n for row in table for v in row):
            raise ValueError("Monomial table entries must index the basis")
        self.table = tuple(tuple(row) for row in table)
        self.names = tuple(names)
        self.num_monomials = n
        self.num_elements = 1 << (COEFF_BITS * n)
        self._shifts = COEFF_BITS * np.arange(n, dtype=np.int64)
        self._tuples: np.ndarray | None = None

    def __getstate__(self):
        state = self.__dict__.copy()
        state["_tuples"] = None
        return state

    # -- index <-> tuple ----------------------------------------------------

    def tuple_to_index(self, tup: Sequence[int]) -> int:
        if len(tup) != self.num_monomials:
            raise ValueError(f"Expected {self.num_monomials} coefficients, got {len(tup)}")
        index = 0
        for i, c in enumerate(tup):
            if not 0 <= c <= COEFF_MASK:
                raise ValueError(f"Coefficient must be in 0..3, got {c}")
            index |= c << (COEFF_BITS * i)
        return index

    def index_to_tuple(self, index: int) -> tuple[int, ...]:
        if not 0 <= index < self.num_elements:
            raise ValueError(f"Index must be in 0..{self.num_elements - 1}, got {index}")
        return tuple((index >> (COEFF_BITS * i)) & COEFF_MASK
                     for i in range(self.num_monomials))

    def tuples(self) -> np.ndarray:
        """All elements as an (num_elements, num_monomials) coefficient array."""
        if self._tuples is None:
            idx = np.arange(self.num_elements, dtype=np.int64)
            tuples = (idx[:, None] >> self._shifts[None, :]) & COEFF_MASK
            tuples.flags.writeable = False
            self._tuples = tuples
        return self._tuples

    def encode(self, coeffs: np.ndarray) -> np.ndarray:
        """Pack normalized coefficient arrays (last axis = monomial) into indices."""
        return (coeffs.astype(np.int64) << self._shifts).sum(axis=-1)

    # -- arithmetic ---------------------------------------------------------

    def multiply_tuples(self, t1: Sequence[int], t2: Sequence[int]) -> tuple[int, ...]:
        acc = [0] * self.num_monomials
        for i, c1 in enumerate(t1):
            if c1 == 0:
                continue
            row = self.table[i]
            for j, c2 in enumerate(t2):
                acc[row[j]] += c1 * c2
        return tuple(norm_coeff(c) for c in acc)

    def add_tuples(self, t1: Sequence[int], t2: Sequence[int]) -> tuple[int, ...]:
        return tuple(norm_coeff(c1 + c2) for c1, c2 in zip(t1, t2))

    def multiply(self, x: int, y: int) -> int:
        return self.tuple_to_index(
            self.multiply_tuples(self.index_to_tuple(x), self.index_to_tuple(y)))

    def add(self, x: int, y: int) -> int:
        return self.tuple_to_index(
            self.add_tuples(self.index_to_tuple(x), self.index_to_tuple(y)))

    def slot_weights(self) -> np.ndarray:
        """
        Indicator matrices for the bilinear product.

        weights[k, i, j] = 1 when m_i * m_j = m_k, so that slot k of a
        product is t1 @ weights[k] @ t2.
        """
        n = self.num_monomials
        weights = np.zeros((n, n, n), dtype=np.float64)
        for i, row in enumerate(self.table):
            for j, k in enumerate(row):
                weights[k, i, j] = 1.0
        return weights

    # -- printing -----------------------------------------------------------

    def format_tuple(self, tup: Sequence[int], par: bool = False) -> str:
        terms = []
        for k, c in enumerate(tup):
            if c == 0:
                continue
            if k == 0:
                terms.append(str(c))
            elif c == 1:
                terms.append(self.names[k])
            else:
                terms.append(f"{c}{self.names[k]}")
        text = "+".join(terms) if terms else "0"
        return f"({text})" if par else text

    def format_index(self, index: int, par: bool = False) -> str:
        return self.format_tuple(self.index_to_tuple(index), par)


IDEMPOTENT_RIG = MonomialAlgebra()

# Index of the multiplicative identity (tuple 1,0,0,...) and of zero
ONE = 1
ZERO = 0
