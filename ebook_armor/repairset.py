"""
On-disk repair-set format (``<key>.armor``).

Layout::

    header        struct <8sHHIQIIIH  (magic, version major/minor, redundancy,
                                       book_size, symbol_size, data_count,
                                       parity_count, name_len)
    name          utf-8, name_len bytes
    header_crc    u32 crc32c over header + name
    tags          (data_count + parity_count) * 16 bytes of BLAKE2s-16
    tags_crc      u32 crc32c over tags
    parity        parity_count * symbol_size bytes

Data symbol tags cover the zero-padded symbol, so a truncated book shows up
as damage in its tail symbols.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass, field
from typing import BinaryIO, Dict, Iterator, List, Optional

from .constants import (
    MAX_DATA_SYMBOLS,
    MIN_SYMBOL_SIZE,
    REPAIRSET_MAGIC,
    SYMBOL_ALIGN,
    TAG_SIZE,
    VERSION_MAJOR,
    VERSION_MINOR,
)
from .crc32c import crc32c
from .errors import RepairError, RepairSetFormatError
from .hashutil import blake2s_16
from .parity import ParityEncoder, parity_count, recover_symbols


_HEADER_STRUCT = struct.Struct("<8sHHIQIIIH")
_CRC_STRUCT = struct.Struct("<I")


@dataclass
class RepairSet:
    name: str
    redundancy: int
    book_size: int
    symbol_size: int
    data_tags: List[bytes]
    parity_tags: List[bytes]
    parity_offset: int = 0

    @property
    def data_count(self) -> int:
        return len(self.data_tags)

    @property
    def parity_count(self) -> int:
        return len(self.parity_tags)

    def read_parity(self, fh: BinaryIO, index: int) -> bytes:
        fh.seek(self.parity_offset + index * self.symbol_size)
        return fh.read(self.symbol_size)


@dataclass
class RepairCheck:
    """Outcome of checking a book against its repair set."""

    name: str
    damaged_data: List[int] = field(default_factory=list)
    damaged_parity: List[int] = field(default_factory=list)
    size_mismatch: bool = False
    book_missing: bool = False
    error: Optional[str] = None
    data_count: int = 0
    parity_count: int = 0

    @property
    def ok(self) -> bool:
        return (
            self.error is None
            and not self.book_missing
            and not self.size_mismatch
            and not self.damaged_data
            and not self.damaged_parity
        )

    @property
    def recoverable(self) -> bool:
        """True when the original bytes can be rebuilt from what remains."""
        if self.error is not None:
            return False
        intact_parity = self.parity_count - len(self.damaged_parity)
        return len(self.damaged_data) <= intact_parity

    def summary(self) -> str:
        if self.error is not None:
            return self.error
        if self.ok:
            return "intact"
        parts = []
        if self.book_missing:
            parts.append("book missing")
        elif self.size_mismatch:
            parts.append("size changed")
        if self.damaged_data:
            parts.append(f"{len(self.damaged_data)}/{self.data_count} data symbol(s) damaged")
        if self.damaged_parity:
            parts.append(f"{len(self.damaged_parity)}/{self.parity_count} parity symbol(s) damaged")
        parts.append("recoverable" if self.recoverable else "NOT recoverable")
        return ", ".join(parts)


def symbol_layout(book_size: int) -> tuple[int, int]:
    """Return ``(symbol_size, data_count)`` for a book of ``book_size`` bytes."""
    per_symbol = -(-book_size // MAX_DATA_SYMBOLS)
    symbol_size = max(MIN_SYMBOL_SIZE, -(-per_symbol // SYMBOL_ALIGN) * SYMBOL_ALIGN)
    data_count = -(-book_size // symbol_size)
    return symbol_size, data_count


def iter_symbols(fh: BinaryIO, symbol_size: int, count: int) -> Iterator[bytes]:
    """Yield ``count`` zero-padded symbols; short or missing reads are padded."""
    for _ in range(count):
        block = fh.read(symbol_size)
        if len(block) < symbol_size:
            block = block + bytes(symbol_size - len(block))
        yield block


def write_repair_set(book: BinaryIO, book_size: int, name: str, redundancy: int, out: BinaryIO) -> RepairSet:
    """Stream ``book`` and write its repair set to ``out``."""
    if not 1 <= redundancy <= 100:
        raise ValueError(f"redundancy must be within 1..100, got {redundancy}")
    symbol_size, data_count = symbol_layout(book_size)
    pcount = parity_count(data_count, redundancy)

    encoder = ParityEncoder(pcount, symbol_size)
    data_tags: List[bytes] = []
    seen = 0
    for sym in iter_symbols(book, symbol_size, data_count):
        data_tags.append(blake2s_16(sym))
        encoder.update(sym)
        seen += 1
    if book.read(1):
        raise ValueError("book grew while building its repair set")
    parity = encoder.finish()
    parity_tags = [blake2s_16(p) for p in parity]

    name_bytes = name.encode("utf-8", "surrogateescape")
    header = _HEADER_STRUCT.pack(
        REPAIRSET_MAGIC,
        VERSION_MAJOR,
        VERSION_MINOR,
        redundancy,
        book_size,
        symbol_size,
        seen,
        pcount,
        len(name_bytes),
    ) + name_bytes
    tags = b"".join(data_tags) + b"".join(parity_tags)
    out.write(header)
    out.write(_CRC_STRUCT.pack(crc32c(header)))
    out.write(tags)
    out.write(_CRC_STRUCT.pack(crc32c(tags)))
    parity_offset = len(header) + 4 + len(tags) + 4
    for p in parity:
        out.write(p)
    return RepairSet(
        name=name,
        redundancy=redundancy,
        book_size=book_size,
        symbol_size=symbol_size,
        data_tags=data_tags,
        parity_tags=parity_tags,
        parity_offset=parity_offset,
    )


def read_repair_set(fh: BinaryIO) -> RepairSet:
    fh.seek(0)
    raw = fh.read(_HEADER_STRUCT.size)
    if len(raw) != _HEADER_STRUCT.size:
        raise RepairSetFormatError("Repair set header too short")
    (magic, vmaj, _vmin, redundancy, book_size, symbol_size, data_count, pcount, name_len) = _HEADER_STRUCT.unpack(raw)
    if magic != REPAIRSET_MAGIC:
        raise RepairSetFormatError("Bad repair set magic")
    if vmaj != VERSION_MAJOR:
        raise RepairSetFormatError(f"Unsupported repair set version {vmaj}")
    name_bytes = fh.read(name_len)
    crc_raw = fh.read(4)
    if len(name_bytes) != name_len or len(crc_raw) != 4:
        raise RepairSetFormatError("Repair set header truncated")
    if crc32c(raw + name_bytes) != _CRC_STRUCT.unpack(crc_raw)[0]:
        raise RepairSetFormatError("Repair set header CRC mismatch")
    if data_count > MAX_DATA_SYMBOLS or symbol_size <= 0:
        raise RepairSetFormatError("Repair set layout out of bounds")

    tag_len = (data_count + pcount) * TAG_SIZE
    tags = fh.read(tag_len)
    crc_raw = fh.read(4)
    if len(tags) != tag_len or len(crc_raw) != 4:
        raise RepairSetFormatError("Repair set tag table truncated")
    if crc32c(tags) != _CRC_STRUCT.unpack(crc_raw)[0]:
        raise RepairSetFormatError("Repair set tag table CRC mismatch")
    split = [tags[i : i + TAG_SIZE] for i in range(0, tag_len, TAG_SIZE)]
    name = name_bytes.decode("utf-8", "surrogateescape")
    return RepairSet(
        name=name,
        redundancy=redundancy,
        book_size=book_size,
        symbol_size=symbol_size,
        data_tags=split[:data_count],
        parity_tags=split[data_count:],
        parity_offset=fh.tell(),
    )


def check_book(rs: RepairSet, repair_fh: BinaryIO, book_fh: Optional[BinaryIO], book_size: Optional[int]) -> RepairCheck:
    """Compare a book (``None`` when missing) against its repair set."""
    check = RepairCheck(name=rs.name, data_count=rs.data_count, parity_count=rs.parity_count)
    for j, tag in enumerate(rs.parity_tags):
        payload = rs.read_parity(repair_fh, j)
        if len(payload) != rs.symbol_size or blake2s_16(payload) != tag:
            check.damaged_parity.append(j)
    if book_fh is None:
        check.book_missing = True
        check.damaged_data = list(range(rs.data_count))
        return check
    check.size_mismatch = book_size != rs.book_size
    for i, sym in enumerate(iter_symbols(book_fh, rs.symbol_size, rs.data_count)):
        if blake2s_16(sym) != rs.data_tags[i]:
            check.damaged_data.append(i)
    return check


def rebuild_book(rs: RepairSet, repair_fh: BinaryIO, book_fh: Optional[BinaryIO], check: RepairCheck, out: BinaryIO) -> None:
    """Write the original book bytes to ``out`` using intact symbols and parity."""
    damaged = set(check.damaged_data)
    known: Dict[int, bytes] = {}
    if book_fh is not None:
        book_fh.seek(0)
        for i, sym in enumerate(iter_symbols(book_fh, rs.symbol_size, rs.data_count)):
            if i not in damaged:
                known[i] = sym
    bad_parity = set(check.damaged_parity)
    parity = {j: rs.read_parity(repair_fh, j) for j in range(rs.parity_count) if j not in bad_parity}
    solved = recover_symbols(known, parity, sorted(damaged), rs.symbol_size)
    remaining = rs.book_size
    for i in range(rs.data_count):
        sym = known[i] if i in known else solved[i]
        if blake2s_16(sym) != rs.data_tags[i]:
            raise RepairError(f"rebuilt symbol {i} does not match its tag")
        chunk = sym[: min(rs.symbol_size, remaining)]
        out.write(chunk)
        remaining -= len(chunk)
