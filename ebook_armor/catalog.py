from __future__ import annotations

import csv
import datetime
import os
from typing import List, NamedTuple, Optional

from .errors import LedgerIOError

# One physical line per record: no quoting, control characters escaped.
_ESCAPES = {"\\": "\\\\", "\t": "\\t", "\n": "\\n", "\r": "\\r"}
_UNESCAPES = {"\\": "\\", "t": "\t", "n": "\n", "r": "\r"}


def _escape(name: str) -> str:
    return "".join(_ESCAPES.get(ch, ch) for ch in name)


def _unescape(name: str) -> str:
    out = []
    it = iter(name)
    for ch in it:
        if ch != "\\":
            out.append(ch)
            continue
        nxt = next(it, None)
        if nxt in _UNESCAPES:
            out.append(_UNESCAPES[nxt])
        else:
            # stray backslash from a hand-edited log
            out.append(ch)
            if nxt is not None:
                out.append(nxt)
    return "".join(out)


class CatalogRecord(NamedTuple):
    date: str
    name: str
    checksum: str


class CatalogLog:
    """Tab-delimited history of ledger appends: ``date, checksum, name``.

    Rows are written in the same order as the ledger entries they mirror,
    one line each. Fields are never quoted; a backslash, tab, newline or
    carriage return in a name is written as ``\\\\``, ``\\t``, ``\\n`` or
    ``\\r`` so ``cut -f3`` sees the whole name. Rows from older logs, where
    checksum and name were joined by two spaces in a single column, are
    still understood by :meth:`records`.
    """

    def __init__(self, path: str):
        self.path = path

    def ensure(self) -> None:
        try:
            os.makedirs(os.path.dirname(os.path.abspath(self.path)), exist_ok=True)
            with open(self.path, "a", encoding="utf-8"):
                pass
        except OSError as exc:
            raise LedgerIOError(f"cannot create catalog log {self.path}: {exc}") from exc

    def append(self, name: str, checksum: str, date: Optional[datetime.date] = None) -> CatalogRecord:
        record = CatalogRecord((date or datetime.date.today()).isoformat(), name, checksum)
        try:
            with open(self.path, "a", encoding="utf-8", errors="surrogateescape", newline="") as fh:
                writer = csv.writer(fh, delimiter="\t", quoting=csv.QUOTE_NONE, quotechar=None, lineterminator="\n")
                writer.writerow([record.date, record.checksum, _escape(record.name)])
                fh.flush()
                os.fsync(fh.fileno())
        except OSError as exc:
            raise LedgerIOError(f"cannot append to catalog log {self.path}: {exc}") from exc
        return record

    def records(self) -> List[CatalogRecord]:
        try:
            fh = open(self.path, "r", encoding="utf-8", errors="surrogateescape", newline="")
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise LedgerIOError(f"cannot read catalog log {self.path}: {exc}") from exc
        out: List[CatalogRecord] = []
        with fh:
            try:
                for row in csv.reader(fh, delimiter="\t", quoting=csv.QUOTE_NONE):
                    if len(row) >= 3:
                        out.append(CatalogRecord(row[0], _unescape(row[2]), row[1]))
                    elif len(row) == 2:
                        checksum, _, name = row[1].partition("  ")
                        out.append(CatalogRecord(row[0], name, checksum))
            except (OSError, csv.Error) as exc:
                raise LedgerIOError(f"cannot read catalog log {self.path}: {exc}") from exc
        return out
