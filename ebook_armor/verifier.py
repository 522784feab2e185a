from __future__ import annotations

import zipfile
import zlib
from dataclasses import dataclass
from typing import Optional

from .constants import ZIP_MAGICS
from .hashutil import md5_file
from .walker import Book


@dataclass
class ChecksumResult:
    name: str
    expected: str
    actual: str

    @property
    def ok(self) -> bool:
        return self.expected.lower() == self.actual.lower()

    def __bool__(self) -> bool:
        return self.ok


def looks_like_zip(path: str) -> bool:
    """True for zip containers (EPUB, CBZ, DOCX, ...) whatever their extension.

    Only the leading signature counts. An end-of-central-directory record
    near the tail of a text or PDF book does not make it a zip.
    """
    with open(path, "rb") as fh:
        head = fh.read(4)
    return head in ZIP_MAGICS


class Verifier:
    """Content checks for a single book."""

    def checksum(self, book: Book) -> str:
        return md5_file(book.path)

    def verify_checksum(self, book: Book, expected: str) -> ChecksumResult:
        return ChecksumResult(name=book.key, expected=expected, actual=self.checksum(book))

    def verify_container_structure(self, book: Book) -> Optional[bool]:
        """Run a zip structural test; ``None`` means the book is not a zip.

        Every member is decompressed and checked against its stored CRC.
        Encrypted members and compression methods this Python cannot decode
        make the container untestable, which also yields ``None``.
        """
        if not looks_like_zip(book.path):
            return None
        try:
            with zipfile.ZipFile(book.path) as zf:
                return zf.testzip() is None
        except (NotImplementedError, RuntimeError):
            return None
        except (zipfile.BadZipFile, zlib.error, EOFError, OSError, ValueError):
            return False
