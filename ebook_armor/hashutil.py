from __future__ import annotations

import hashlib
from typing import BinaryIO

from .constants import READ_CHUNK_SIZE


def blake2s_16(data: bytes) -> bytes:
    """16-byte tag used for data and parity symbols in a repair set."""
    return hashlib.blake2s(data, digest_size=16).digest()


def md5_stream(fh: BinaryIO, chunk_size: int = READ_CHUNK_SIZE) -> str:
    digest = hashlib.md5()
    while True:
        block = fh.read(chunk_size)
        if not block:
            break
        digest.update(block)
    return digest.hexdigest()


def md5_file(path: str) -> str:
    """Hex MD5 of a file, in the form ``md5sum`` writes to its ledger."""
    with open(path, "rb") as fh:
        return md5_stream(fh)
