from __future__ import annotations

import os
import shutil
import sys
from typing import Optional

from .constants import REPAIRSET_SUFFIX
from .errors import RepairCreationError, RepairError, RepairSetFormatError
from .pathutil import split_key
from .repairset import RepairCheck, RepairSet, check_book, read_repair_set, rebuild_book, write_repair_set
from .walker import Book


def _next_backup_path(path: str) -> str:
    # Same naming as `mv --backup=numbered`: file.~1~, file.~2~, ...
    n = 1
    while os.path.lexists(f"{path}.~{n}~"):
        n += 1
    return f"{path}.~{n}~"


def _remove_quietly(path: str) -> None:
    try:
        os.remove(path)
    except (FileNotFoundError, NotADirectoryError):
        pass


class RepairStore:
    """Per-book recovery data kept under one directory.

    For the key ``Fiction/dune.epub`` the store holds::

        <root>/Fiction/dune.epub.armor   parity and symbol tags
        <root>/Fiction/dune.epub         symlink to the book's absolute path

    Every lookup is resolved against ``root`` explicitly; the process working
    directory is never consulted or changed.
    """

    def __init__(self, root: str):
        self.root = os.path.abspath(root)

    def ensure(self) -> None:
        os.makedirs(self.root, exist_ok=True)

    def set_path(self, name: str) -> str:
        collection, book = split_key(name)
        return os.path.join(self.root, collection, book + REPAIRSET_SUFFIX)

    def link_path(self, name: str) -> str:
        collection, book = split_key(name)
        return os.path.join(self.root, collection, book)

    def has(self, name: str) -> bool:
        return os.path.isfile(self.set_path(name))

    def protect(self, book: Book, redundancy: int) -> RepairSet:
        """Build, store and self-verify the repair set for ``book``.

        Raises:
            RepairCreationError: generation failed, the artifacts could not be
                moved into place, or the new set does not verify. No
                artifacts from a failed attempt are left behind, and a set
                rotated aside for this attempt is put back.
        """
        name = book.key
        set_path = self.set_path(name)
        link_path = self.link_path(name)
        tmp_path = set_path + ".tmp"
        backup: Optional[str] = None
        try:
            os.makedirs(os.path.dirname(set_path), exist_ok=True)
            with open(book.path, "rb") as src, open(tmp_path, "wb") as out:
                size = os.fstat(src.fileno()).st_size
                rs = write_repair_set(src, size, name, redundancy, out)
                out.flush()
                os.fsync(out.fileno())
            if os.path.lexists(set_path):
                backup = _next_backup_path(set_path)
                os.replace(set_path, backup)
            os.replace(tmp_path, set_path)
            if os.path.lexists(link_path):
                os.remove(link_path)
            os.symlink(os.path.abspath(book.path), link_path)
        except (OSError, ValueError) as exc:
            _remove_quietly(tmp_path)
            if backup is not None and not os.path.lexists(set_path):
                self._restore(name, backup, book.path)
            raise RepairCreationError(name, str(exc)) from exc

        check = self.inspect(name)
        if not check.ok:
            self._discard(name)
            if backup is not None:
                self._restore(name, backup, book.path)
            raise RepairCreationError(name, f"self-verification failed ({check.summary()})")
        return rs

    def _discard(self, name: str) -> None:
        for path in (self.set_path(name), self.link_path(name)):
            try:
                _remove_quietly(path)
            except OSError as exc:
                print(f"Warning: failed to remove {path}: {exc}", file=sys.stderr)

    def _restore(self, name: str, backup: str, book_path: str) -> None:
        set_path = self.set_path(name)
        link_path = self.link_path(name)
        try:
            os.replace(backup, set_path)
            if not os.path.lexists(link_path):
                os.symlink(os.path.abspath(book_path), link_path)
        except OSError as exc:
            print(f"Warning: failed to restore {backup} as {set_path}: {exc}", file=sys.stderr)

    def inspect(self, name: str) -> RepairCheck:
        """Check the book behind ``name`` against its stored repair set.

        Expected failures (missing set, garbled set, dangling link, damaged
        symbols) are reported in the returned :class:`RepairCheck`.
        """
        set_path = self.set_path(name)
        link_path = self.link_path(name)
        try:
            with open(set_path, "rb") as rfh:
                rs = read_repair_set(rfh)
                if rs.name != name:
                    return RepairCheck(name=name, error=f"repair set belongs to {rs.name!r}")
                try:
                    bfh = open(link_path, "rb")
                except FileNotFoundError:
                    return check_book(rs, rfh, None, None)
                with bfh:
                    size = os.fstat(bfh.fileno()).st_size
                    return check_book(rs, rfh, bfh, size)
        except FileNotFoundError:
            return RepairCheck(name=name, error=f"no repair set at {set_path}")
        except RepairSetFormatError as exc:
            return RepairCheck(name=name, error=f"unreadable repair set: {exc}")
        except OSError as exc:
            return RepairCheck(name=name, error=str(exc))

    def verify(self, name: str) -> bool:
        """True when the book is intact and its recovery data is usable."""
        return self.inspect(name).ok

    def repair(self, name: str, output: Optional[str] = None) -> RepairCheck:
        """Recreate the original bytes of ``name`` from intact data and parity.

        Writes to ``output`` or, when omitted, back to the book the link
        points at. An in-place repair also rewrites damaged parity. Returns the
        check taken before repairing.
        """
        check = self.inspect(name)
        if check.error is not None:
            raise RepairError(f"{name}: {check.error}")
        if check.ok and output is None:
            return check
        if not check.recoverable:
            raise RepairError(f"{name}: damage exceeds recovery data ({check.summary()})")

        link_path = self.link_path(name)
        target = output or os.path.realpath(link_path)
        tmp_path = target + ".armor-tmp"
        try:
            with open(self.set_path(name), "rb") as rfh:
                rs = read_repair_set(rfh)
                bfh = None if check.book_missing else open(link_path, "rb")
                try:
                    with open(tmp_path, "wb") as out:
                        rebuild_book(rs, rfh, bfh, check, out)
                        out.flush()
                        os.fsync(out.fileno())
                finally:
                    if bfh is not None:
                        bfh.close()
            if os.path.exists(target):
                shutil.copymode(target, tmp_path)
            os.replace(tmp_path, target)
        except (OSError, RepairSetFormatError) as exc:
            _remove_quietly(tmp_path)
            raise RepairError(f"{name}: {exc}") from exc
        except RepairError:
            _remove_quietly(tmp_path)
            raise

        if output is None and check.damaged_parity:
            collection, book_name = split_key(name)
            try:
                self.protect(Book(collection=collection, name=book_name, path=target), rs.redundancy)
            except RepairCreationError as exc:
                raise RepairError(f"{name}: book restored but recovery data not rewritten: {exc}") from exc
        return check
