from __future__ import annotations

import os
from typing import Tuple


def book_key(collection: str, name: str) -> str:
    """Collection-qualified ledger key, e.g. ``Fiction/dune.epub``."""
    return f"{collection}/{name}"


def split_key(key: str) -> Tuple[str, str]:
    """Split a ledger key into ``(collection, name)``.

    Rules:
    - Exactly one '/' separates the collection from the book name
    - Neither part may be empty, '.' or '..'
    - Neither part may contain a platform path separator
    """
    collection, sep, name = key.partition("/")
    if not sep:
        raise ValueError(f"Key must be '<collection>/<name>': {key!r}")
    for part in (collection, name):
        if part in ("", ".", ".."):
            raise ValueError(f"Invalid key segment in {key!r}")
        if "/" in part or (os.sep != "/" and os.sep in part):
            raise ValueError(f"Key may not contain nested paths: {key!r}")
        if os.altsep and os.altsep in part:
            raise ValueError(f"Key may not contain nested paths: {key!r}")
    return collection, name
