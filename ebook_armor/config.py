from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List, Mapping, Optional, Tuple

from .constants import (
    DEFAULT_BOOK_DIR,
    DEFAULT_CSV_NAME,
    DEFAULT_INDEX_NAME,
    DEFAULT_REDUNDANCY,
    DEFAULT_REPAIR_NAME,
)

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("", "0", "false", "no", "off")


def _parse_bool(var: str, value: str) -> bool:
    v = value.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{var} must be a boolean, got {value!r}")


def _parse_redundancy(value) -> int:
    try:
        pct = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"REDUNDANCY must be an integer percent, got {value!r}") from None
    if not 1 <= pct <= 100:
        raise ValueError(f"REDUNDANCY must be within 1..100, got {pct}")
    return pct


@dataclass(frozen=True)
class ArmorConfig:
    """Settings for one armor run, built once at startup and passed down."""

    book_dir: str
    index: str
    csv: str
    repair: str
    redundancy: int = DEFAULT_REDUNDANCY
    fail_fast: bool = False

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, **overrides) -> "ArmorConfig":
        """Read REDUNDANCY, BOOK_DIR, INDEX, CSV, REPAIR and FAIL_FAST.

        Empty variables count as unset. INDEX, CSV and REPAIR default to
        locations inside BOOK_DIR. Keyword overrides (``None`` ignored) win
        over the environment, and path defaults follow an overridden
        ``book_dir``.
        """
        env = os.environ if environ is None else environ

        def get(var: str) -> Optional[str]:
            value = env.get(var)
            return value if value else None

        overrides = {k: v for k, v in overrides.items() if v is not None}
        book_dir = overrides.pop("book_dir", None) or get("BOOK_DIR") or DEFAULT_BOOK_DIR
        book_dir = os.path.abspath(os.path.expanduser(book_dir))

        def path_of(key: str, var: str, default_name: str) -> str:
            value = overrides.pop(key, None) or get(var) or os.path.join(book_dir, default_name)
            return os.path.abspath(os.path.expanduser(value))

        index = path_of("index", "INDEX", DEFAULT_INDEX_NAME)
        csv_path = path_of("csv", "CSV", DEFAULT_CSV_NAME)
        repair = path_of("repair", "REPAIR", DEFAULT_REPAIR_NAME)

        redundancy = overrides.pop("redundancy", None)
        if redundancy is None:
            redundancy = get("REDUNDANCY") or DEFAULT_REDUNDANCY
        fail_fast = overrides.pop("fail_fast", None)
        if fail_fast is None:
            fail_fast = _parse_bool("FAIL_FAST", get("FAIL_FAST") or "")
        if overrides:
            raise TypeError(f"unknown configuration option(s): {', '.join(sorted(overrides))}")
        return cls(
            book_dir=book_dir,
            index=index,
            csv=csv_path,
            repair=repair,
            redundancy=_parse_redundancy(redundancy),
            fail_fast=bool(fail_fast),
        )

    def variables(self) -> List[Tuple[str, str]]:
        """Environment-style ``(name, value)`` pairs, for display."""
        return [
            ("REDUNDANCY", str(self.redundancy)),
            ("BOOK_DIR", self.book_dir),
            ("INDEX", self.index),
            ("CSV", self.csv),
            ("REPAIR", self.repair),
            ("FAIL_FAST", "yes" if self.fail_fast else "no"),
        ]
