"""
ebook-armor: long-term integrity for collections of electronic books.

Features:

- Append-only MD5 ledger (``md5sum -c`` compatible) plus a dated, tab-delimited
  catalog log of every book ever cataloged.
- Per-book recovery data: GF(256) Cauchy parity sized to a redundancy percent,
  stored beside a symlink to the book and self-verified before it is trusted.
- Re-verification of known books, including a structural test of zip-based
  containers (EPUB, CBZ, ...).
- Duplicate detection across the whole ledger.
- Explicit repair: rebuild a damaged book's original bytes from its parity.
"""

__version__ = "0.1"

__all__ = [
    "config",
    "engine",
    "ledger",
    "catalog",
    "repair",
    "verifier",
    "walker",
]

# Programmatic API: build an ebook_armor.config.ArmorConfig and hand it to
# ebook_armor.engine.ArmorEngine; ebook_armor.cli wraps the same calls.
