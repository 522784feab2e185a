"""
Erasure code used by repair sets.

A book is cut into ``n`` equal data symbols ``d_0 .. d_{n-1}`` (the last one
zero-padded). Each parity symbol ``p_j`` is a linear combination over
GF(256)::

    p_j = sum_i C[j][i] * d_i        with  C[j][i] = 1 / (x_j + y_i)

where ``y_i = i`` and ``x_j = 128 + j``. ``C`` is a Cauchy matrix, so every
square sub-matrix is invertible: any ``e`` damaged data symbols can be
rebuilt from any ``e`` intact parity symbols. The x/y ranges are disjoint as
long as ``n <= 128`` and ``k <= 128``, which the repair-set layout enforces.
"""

from __future__ import annotations

from typing import Dict, List

from .constants import MAX_DATA_SYMBOLS
from .errors import RepairError
from .gf256 import gf_inv, gf_mul, gf_mul_add

_X_BASE = MAX_DATA_SYMBOLS
MAX_PARITY_SYMBOLS = 256 - MAX_DATA_SYMBOLS

_INV = [0] + [gf_inv(a) for a in range(1, 256)]


def coefficient(parity_index: int, data_index: int) -> int:
    return _INV[(_X_BASE + parity_index) ^ data_index]


def parity_count(data_count: int, redundancy: int) -> int:
    """Number of parity symbols that tolerate ``redundancy`` percent damage."""
    if data_count <= 0:
        return 0
    k = -(-data_count * redundancy // 100)
    return min(max(1, k), MAX_PARITY_SYMBOLS)


class ParityEncoder:
    """Accumulates parity symbols while data symbols are streamed in order."""

    def __init__(self, count: int, symbol_size: int):
        if count > MAX_PARITY_SYMBOLS:
            raise ValueError(f"at most {MAX_PARITY_SYMBOLS} parity symbols supported")
        self.symbol_size = symbol_size
        self.parity = [bytearray(symbol_size) for _ in range(count)]
        self._next_index = 0

    def update(self, symbol: bytes) -> None:
        if len(symbol) != self.symbol_size:
            raise ValueError("data symbols must be padded to the symbol size")
        i = self._next_index
        if i >= MAX_DATA_SYMBOLS:
            raise ValueError(f"at most {MAX_DATA_SYMBOLS} data symbols supported")
        for j, acc in enumerate(self.parity):
            gf_mul_add(acc, symbol, coefficient(j, i))
        self._next_index += 1

    def finish(self) -> List[bytes]:
        return [bytes(p) for p in self.parity]


def recover_symbols(
    known: Dict[int, bytes],
    parity: Dict[int, bytes],
    missing: List[int],
    symbol_size: int,
) -> Dict[int, bytes]:
    """Solve for the ``missing`` data symbols.

    Args:
        known: intact data symbols keyed by data index (padded).
        parity: intact parity symbols keyed by parity index.
        missing: data indices to rebuild.
        symbol_size: size of every symbol in bytes.

    Returns:
        Mapping from each missing data index to its rebuilt bytes.

    Raises:
        RepairError: fewer intact parity symbols than missing data symbols.
    """
    missing = sorted(missing)
    if not missing:
        return {}
    if len(parity) < len(missing):
        raise RepairError(
            f"{len(missing)} damaged symbol(s) but only {len(parity)} intact parity symbol(s)"
        )
    rows = sorted(parity)[: len(missing)]

    # For each chosen parity row j:
    #   sum_{i missing} C[j][i] * d_i = p_j - sum_{i known} C[j][i] * d_i
    matrix: List[List[int]] = []
    rhs: List[bytearray] = []
    for j in rows:
        acc = bytearray(parity[j])
        for i, data in known.items():
            gf_mul_add(acc, data, coefficient(j, i))
        matrix.append([coefficient(j, i) for i in missing])
        rhs.append(acc)

    inverse = _invert_matrix(matrix)
    if inverse is None:
        raise RepairError("parity equations are singular")
    solved = _apply_inverse(inverse, rhs, symbol_size)
    return dict(zip(missing, solved))


def _invert_matrix(matrix: List[List[int]]) -> List[List[int]] | None:
    """Invert a square matrix over GF(2^8) by Gauss-Jordan elimination."""
    n = len(matrix)
    aug = []
    for i in range(n):
        row = matrix[i][:]
        if len(row) != n:
            return None
        identity = [0] * n
        identity[i] = 1
        aug.append(row + identity)
    for col in range(n):
        pivot = None
        for r in range(col, n):
            if aug[r][col] != 0:
                pivot = r
                break
        if pivot is None:
            return None
        if pivot != col:
            aug[col], aug[pivot] = aug[pivot], aug[col]
        inv = gf_inv(aug[col][col])
        for c in range(2 * n):
            aug[col][c] = gf_mul(aug[col][c], inv)
        for r in range(n):
            if r == col:
                continue
            factor = aug[r][col]
            if factor:
                for c in range(2 * n):
                    aug[r][c] ^= gf_mul(factor, aug[col][c])
    return [row[n:] for row in aug]


def _apply_inverse(inverse: List[List[int]], rhs_list: List[bytearray], symbol_size: int) -> List[bytes]:
    n = len(inverse)
    solutions = [bytearray(symbol_size) for _ in range(n)]
    for i in range(n):
        for j in range(n):
            gf_mul_add(solutions[i], bytes(rhs_list[j]), inverse[i][j])
    return [bytes(sol) for sol in solutions]
