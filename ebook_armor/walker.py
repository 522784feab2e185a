from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Iterator, List, Tuple

from .pathutil import book_key


@dataclass(frozen=True)
class Collection:
    name: str
    path: str


@dataclass(frozen=True)
class Book:
    """A tracked file; ``path`` is absolute so nothing depends on the cwd."""

    collection: str
    name: str
    path: str

    @property
    def key(self) -> str:
        return book_key(self.collection, self.name)


def _listing(directory: str) -> List[str]:
    # Hidden entries are never collections or books.
    return sorted(name for name in os.listdir(directory) if not name.startswith("."))


def iter_collections(book_dir: str, repair_dir: str) -> Iterator[Collection]:
    """Yield the immediate subdirectories of ``book_dir`` that hold books.

    Loose files at the top level and the directory whose base name matches
    ``repair_dir`` are skipped.
    """
    root = os.path.abspath(book_dir)
    excluded = os.path.basename(os.path.normpath(repair_dir))
    for name in _listing(root):
        if name == excluded:
            continue
        path = os.path.join(root, name)
        if not os.path.isdir(path):
            continue
        yield Collection(name=name, path=path)


def iter_books(collection: Collection) -> Iterator[Book]:
    for name in _listing(collection.path):
        path = os.path.join(collection.path, name)
        if not os.path.isfile(path):
            continue
        yield Book(collection=collection.name, name=name, path=path)


def walk_collections(book_dir: str, repair_dir: str) -> Iterator[Tuple[Collection, Book]]:
    """Lazily yield ``(collection, book)`` pairs in listing order."""
    for collection in iter_collections(book_dir, repair_dir):
        for book in iter_books(collection):
            yield collection, book

