from __future__ import annotations

import datetime
import sys
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from .catalog import CatalogLog
from .config import ArmorConfig
from .constants import EXIT_DUPLICATES, EXIT_FATAL, EXIT_MISMATCH, EXIT_OK, EXIT_PROTECT_FAILED
from .errors import ChecksumMismatch, ContainerDamaged, RepairCreationError
from .ledger import ChecksumLedger, DuplicateReport
from .repair import RepairStore
from .verifier import Verifier
from .walker import Book, Collection, walk_collections


class Outcome(str, Enum):
    CATALOGED = "cataloged"
    VERIFIED = "verified"
    MISMATCH = "mismatch"
    CONTAINER_DAMAGED = "container-damaged"
    PROTECT_FAILED = "protect-failed"
    UNREADABLE = "unreadable"


_EXIT_BITS = {
    Outcome.MISMATCH: EXIT_MISMATCH,
    Outcome.CONTAINER_DAMAGED: EXIT_MISMATCH,
    Outcome.UNREADABLE: EXIT_MISMATCH,
    Outcome.PROTECT_FAILED: EXIT_PROTECT_FAILED,
}


@dataclass
class BookResult:
    book: Book
    outcome: Outcome
    checksum: Optional[str] = None
    expected: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.outcome in (Outcome.CATALOGED, Outcome.VERIFIED)


@dataclass
class RunReport:
    results: List[BookResult] = field(default_factory=list)
    duplicates: DuplicateReport = field(default_factory=DuplicateReport)
    interrupted: bool = False

    def counts(self) -> Dict[str, int]:
        out = {o.value: 0 for o in Outcome}
        for r in self.results:
            out[r.outcome.value] += 1
        return out

    @property
    def exit_code(self) -> int:
        code = EXIT_OK
        for r in self.results:
            code |= _EXIT_BITS.get(r.outcome, EXIT_OK)
        if self.duplicates:
            code |= EXIT_DUPLICATES
        if self.interrupted:
            code |= EXIT_FATAL
        return code

    def summary_line(self) -> str:
        counts = self.counts()
        parts = [f"{name}={n}" for name, n in counts.items()]
        parts.append(f"duplicates={len(self.duplicates)}")
        if self.interrupted:
            parts.append("interrupted")
        return "Summary: " + " ".join(parts)


class ArmorEngine:
    """Catalog new books, verify known ones, then look for duplicates.

    Books are handled strictly one at a time in walk order. A stop request
    (see :meth:`request_stop`) takes effect between books, never in the
    middle of one.

    Failure policy: per-book failures are recorded in the :class:`RunReport`
    and the walk continues, unless ``config.fail_fast`` is set, in which case
    the first failure is raised. Ledger and catalog I/O errors always abort.
    """

    def __init__(
        self,
        config: ArmorConfig,
        *,
        ledger: Optional[ChecksumLedger] = None,
        catalog: Optional[CatalogLog] = None,
        store: Optional[RepairStore] = None,
        verifier: Optional[Verifier] = None,
        quiet: bool = False,
        today: Optional[datetime.date] = None,
    ):
        self.config = config
        self.ledger = ledger or ChecksumLedger(config.index)
        self.catalog = catalog or CatalogLog(config.csv)
        self.store = store or RepairStore(config.repair)
        self.verifier = verifier or Verifier()
        self.quiet = quiet
        self.today = today
        self._stop = False

    def _say(self, msg: str) -> None:
        if not self.quiet:
            print(msg, flush=True)

    def _warn(self, msg: str) -> None:
        print(f"Warning: {msg}", file=sys.stderr, flush=True)

    def prepare(self) -> None:
        self.ledger.ensure()
        self.catalog.ensure()
        self.store.ensure()

    def request_stop(self) -> None:
        self._stop = True

    def books(self) -> Iterator[Tuple[Collection, Book]]:
        return walk_collections(self.config.book_dir, self.config.repair)

    def process(self, book: Book) -> BookResult:
        if self.ledger.contains(book.key):
            return self.verify_book(book)
        return self.catalog_book(book)

    def catalog_book(self, book: Book) -> BookResult:
        self._say(f"Cataloging {book.key} ...")
        try:
            container = self.verifier.verify_container_structure(book)
            if container is not None:
                self._say(f"ZIP check  {book.key} ... {'ok' if container else 'FAILED'}")
            if container is False:
                err = ContainerDamaged(book.key)
                self._warn(f"{err}; not cataloged")
                return BookResult(book, Outcome.CONTAINER_DAMAGED, error=err)
            checksum = self.verifier.checksum(book)
        except OSError as exc:
            return self._unreadable(book, exc)

        # Ledger first, so the catalog never names an entry the ledger lacks.
        self.ledger.append(book.key, checksum)
        self.catalog.append(book.key, checksum, date=self.today)
        return self._protect(book, checksum, Outcome.CATALOGED)

    def _protect(self, book: Book, checksum: str, outcome: Outcome, expected: Optional[str] = None) -> BookResult:
        self._say(f"Protecting {book.key} ...")
        try:
            self.store.protect(book, self.config.redundancy)
        except RepairCreationError as exc:
            self._say(f"Verifying  {book.key} is recoverable ... no.")
            self._warn(str(exc))
            return BookResult(book, Outcome.PROTECT_FAILED, checksum=checksum, expected=expected, error=exc)
        self._say(f"Verifying  {book.key} is recoverable ... yes.")
        return BookResult(book, outcome, checksum=checksum, expected=expected)

    def verify_book(self, book: Book) -> BookResult:
        """Re-check a known book; an intact book without recovery data is protected again."""
        expected = self.ledger.lookup(book.key) or ""
        self._say(f"Verifying {book.key} ...")
        try:
            result = self.verifier.verify_checksum(book, expected)
            container = self.verifier.verify_container_structure(book) if result.ok else None
        except OSError as exc:
            return self._unreadable(book, exc)
        if not result.ok:
            err = ChecksumMismatch(book.key, expected, result.actual)
            self._say(f"{book.key}: FAILED")
            self._warn(str(err))
            return BookResult(book, Outcome.MISMATCH, checksum=result.actual, expected=expected, error=err)
        if container is False:
            err = ContainerDamaged(book.key)
            self._say(f"{book.key}: FAILED")
            self._warn(str(err))
            return BookResult(book, Outcome.CONTAINER_DAMAGED, checksum=result.actual, expected=expected, error=err)
        self._say(f"{book.key}: OK")
        if not self.store.has(book.key):
            self._warn(f"{book.key}: no recovery data on record; protecting again")
            return self._protect(book, result.actual, Outcome.VERIFIED, expected=expected)
        return BookResult(book, Outcome.VERIFIED, checksum=result.actual, expected=expected)

    def _unreadable(self, book: Book, exc: OSError) -> BookResult:
        self._warn(f"cannot read {book.path}: {exc}")
        return BookResult(book, Outcome.UNREADABLE, error=exc)

    def check_duplicates(self) -> DuplicateReport:
        report = self.ledger.duplicates()
        if report:
            self._say("Duplicates found:")
            for line in report.lines():
                self._say("    " + line)
        return report

    def run(self) -> RunReport:
        self.prepare()
        report = RunReport()
        for _collection, book in self.books():
            if self._stop:
                report.interrupted = True
                break
            result = self.process(book)
            report.results.append(result)
            self._say("")
            if self.config.fail_fast and result.error is not None:
                raise result.error
        if not report.interrupted:
            report.duplicates = self.check_duplicates()
        return report
