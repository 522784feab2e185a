"""GF(256) arithmetic over the AES polynomial 0x11B.

Parity symbols are linear combinations of data symbols in this field, so the
byte-vector helpers below are the hot path of both encoding and repair. When
NumPy is importable they run as table lookups over whole buffers; otherwise
they fall back to pure Python.
"""

from __future__ import annotations

from typing import List

try:  # optional acceleration
    import numpy as _np  # type: ignore

    _HAS_NUMPY = True
except ImportError:  # pragma: no cover - optional
    _np = None  # type: ignore
    _HAS_NUMPY = False

_POLY_REDUCED = 0x1B  # 0x11B without the x^8 term


def gf_mul(a: int, b: int) -> int:
    res = 0
    while b:
        if b & 1:
            res ^= a
        hi = a & 0x80
        a = (a << 1) & 0xFF
        if hi:
            a ^= _POLY_REDUCED
        b >>= 1
    return res


def gf_pow(a: int, power: int) -> int:
    result = 1
    base = a
    while power:
        if power & 1:
            result = gf_mul(result, base)
        base = gf_mul(base, base)
        power >>= 1
    return result


def gf_inv(a: int) -> int:
    if a == 0:
        raise ZeroDivisionError("No inverse for zero in GF(256)")
    return gf_pow(a, 254)


def _make_mul_rows() -> List[bytes]:
    # rows[c][x] = x * c, usable with bytes.translate
    return [bytes(gf_mul(x, c) for x in range(256)) for c in range(256)]


_MUL_ROWS = _make_mul_rows()
_NP_MUL_TABLE = None  # type: ignore


def _ensure_np_table():
    global _NP_MUL_TABLE
    if not _HAS_NUMPY or _NP_MUL_TABLE is not None:
        return
    _NP_MUL_TABLE = _np.frombuffer(b"".join(_MUL_ROWS), dtype=_np.uint8).reshape(256, 256)


def gf_mul_bytes(data: bytes, coeff: int) -> bytes:
    if coeff == 0:
        return bytes(len(data))
    if coeff == 1:
        return bytes(data)
    if _HAS_NUMPY and len(data) >= 1024:
        _ensure_np_table()
        row = _NP_MUL_TABLE[coeff]  # type: ignore[index]
        arr = _np.frombuffer(data, dtype=_np.uint8)  # type: ignore[attr-defined]
        return row[arr].tobytes()
    return bytes(data).translate(_MUL_ROWS[coeff])


def gf_add_bytes(dest: bytearray, src: bytes):
    """XOR ``src`` into ``dest`` in place (addition in GF(256))."""
    if _HAS_NUMPY and len(src) >= 1024:
        darr = _np.frombuffer(memoryview(dest), dtype=_np.uint8)  # type: ignore[attr-defined]
        sarr = _np.frombuffer(src, dtype=_np.uint8)  # type: ignore[attr-defined]
        darr[: len(sarr)] ^= sarr
        return
    n = len(src)
    if n == 0:
        return
    mixed = int.from_bytes(dest[:n], "little") ^ int.from_bytes(src, "little")
    dest[:n] = mixed.to_bytes(n, "little")


def gf_mul_add(dest: bytearray, src: bytes, coeff: int):
    """dest += coeff * src."""
    if coeff == 0:
        return
    gf_add_bytes(dest, gf_mul_bytes(src, coeff))
