"""
Append-only checksum ledger in ``md5sum`` format.

Each line is ``<checksum>  <name>``. Names containing a backslash or a
newline are escaped and the line starts with ``\\``, the same convention GNU
``md5sum`` uses, so ``md5sum -c`` run from BOOK_DIR can read the file back.
There is deliberately no update or delete operation.
"""

from __future__ import annotations

import os
import string
import sys
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional, Set

from .errors import LedgerIOError


class ChecksumEntry(NamedTuple):
    name: str
    checksum: str


@dataclass
class DuplicateReport:
    """Checksums recorded more than once, with every name recorded for each."""

    groups: Dict[str, List[str]] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.groups)

    def __bool__(self) -> bool:
        return bool(self.groups)

    def __iter__(self) -> Iterator[str]:
        return iter(self.groups)

    def checksums(self) -> Set[str]:
        return set(self.groups)

    def lines(self) -> List[str]:
        return [f"{checksum}  {', '.join(names)}" for checksum, names in self.groups.items()]


_MD5_HEX_LEN = 32
_HEX_DIGITS = frozenset(string.hexdigits)

_ESCAPES = {"\\": "\\\\", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "n": "\n", "r": "\r"}


def _escape(name: str) -> tuple[str, bool]:
    if not any(ch in name for ch in _ESCAPES):
        return name, False
    return "".join(_ESCAPES.get(ch, ch) for ch in name), True


def _unescape(name: str) -> str:
    out = []
    it = iter(name)
    for ch in it:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(it, None)
        if nxt not in _UNESCAPES:
            raise ValueError(f"invalid escape sequence in {name!r}")
        out.append(_UNESCAPES[nxt])
    return "".join(out)


def format_line(name: str, checksum: str) -> str:
    escaped_name, escaped = _escape(name)
    prefix = "\\" if escaped else ""
    return f"{prefix}{checksum}  {escaped_name}\n"


def parse_line(line: str) -> ChecksumEntry:
    """Parse one ledger line (text or ``*`` binary-mode form)."""
    line = line.rstrip("\n")
    escaped = line.startswith("\\")
    if escaped:
        line = line[1:]
    checksum, sep, rest = line.partition(" ")
    if not sep or not rest or rest[0] not in " *" or len(rest) < 2:
        raise ValueError(f"malformed ledger line: {line!r}")
    if len(checksum) != _MD5_HEX_LEN or not set(checksum) <= _HEX_DIGITS:
        raise ValueError(f"malformed checksum in ledger line: {line!r}")
    name = rest[1:]
    if escaped:
        name = _unescape(name)
    return ChecksumEntry(name=name, checksum=checksum.lower())


class ChecksumLedger:
    """Book key -> checksum records backed by a single append-only file."""

    def __init__(self, path: str):
        self.path = path
        self._index: Optional[Dict[str, str]] = None
        self._count = 0

    def ensure(self) -> None:
        """Create an empty ledger file if none exists yet."""
        try:
            parent = os.path.dirname(os.path.abspath(self.path))
            os.makedirs(parent, exist_ok=True)
            with open(self.path, "a", encoding="utf-8"):
                pass
        except OSError as exc:
            raise LedgerIOError(f"cannot create ledger {self.path}: {exc}") from exc

    def entries(self) -> List[ChecksumEntry]:
        out: List[ChecksumEntry] = []
        try:
            fh = open(self.path, "r", encoding="utf-8", errors="surrogateescape", newline="\n")
        except FileNotFoundError:
            return out
        except OSError as exc:
            raise LedgerIOError(f"cannot read ledger {self.path}: {exc}") from exc
        with fh:
            try:
                for lineno, line in enumerate(fh, 1):
                    if not line.strip():
                        continue
                    try:
                        out.append(parse_line(line))
                    except ValueError as exc:
                        print(f"Warning: {self.path}:{lineno}: {exc}", file=sys.stderr)
            except OSError as exc:
                raise LedgerIOError(f"cannot read ledger {self.path}: {exc}") from exc
        return out

    def _load(self) -> Dict[str, str]:
        if self._index is None:
            index: Dict[str, str] = {}
            entries = self.entries()
            for entry in entries:
                index.setdefault(entry.name, entry.checksum)
            self._index = index
            self._count = len(entries)
        return self._index

    def __len__(self) -> int:
        self._load()
        return self._count

    def contains(self, name: str) -> bool:
        return name in self._load()

    def lookup(self, name: str) -> Optional[str]:
        """Checksum recorded for ``name``; the first entry wins."""
        return self._load().get(name)

    def append(self, name: str, checksum: str) -> ChecksumEntry:
        index = self._load()
        line = format_line(name, checksum)
        try:
            with open(self.path, "a", encoding="utf-8", errors="surrogateescape", newline="\n") as fh:
                fh.write(line)
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            raise LedgerIOError(f"cannot append to ledger {self.path}: {exc}") from exc
        index.setdefault(name, checksum.lower())
        self._count += 1
        return ChecksumEntry(name=name, checksum=checksum.lower())

    def duplicates(self) -> DuplicateReport:
        """Scan the whole ledger once for checksums recorded more than once."""
        by_checksum: Dict[str, List[str]] = {}
        for entry in self.entries():
            by_checksum.setdefault(entry.checksum, []).append(entry.name)
        return DuplicateReport({c: names for c, names in by_checksum.items() if len(names) > 1})
