from __future__ import annotations

import argparse
import json as _json
import signal
import sys
from typing import Any, Dict, List, Optional

from ebook_armor import __version__
from ebook_armor.config import ArmorConfig
from ebook_armor.constants import EXIT_FATAL, EXIT_MISMATCH, EXIT_PROTECT_FAILED
from ebook_armor.engine import ArmorEngine, RunReport
from ebook_armor.errors import (
    ArmorError,
    ChecksumMismatch,
    ContainerDamaged,
    RepairCreationError,
    RepairError,
)
from ebook_armor.ledger import ChecksumLedger
from ebook_armor.repair import RepairStore


def _report_json(report: RunReport) -> Dict[str, Any]:
    return {
        "results": [
            {
                "name": r.book.key,
                "outcome": r.outcome.value,
                "checksum": r.checksum,
                **({"expected": r.expected} if r.expected else {}),
                **({"message": str(r.error)} if r.error is not None else {}),
            }
            for r in report.results
        ],
        "counts": report.counts(),
        "duplicates": report.duplicates.groups,
        "interrupted": report.interrupted,
        "exit_code": report.exit_code,
    }


def cmd_run(config: ArmorConfig, *, quiet: bool = False, as_json: bool = False) -> int:
    """Catalog and verify every book under BOOK_DIR.

    The first Ctrl-C asks the engine to stop after the current book; a
    second one interrupts immediately.

    Returns:
        The run's exit status (bit set of EXIT_* constants).
    """
    engine = ArmorEngine(config, quiet=quiet or as_json)

    def _on_interrupt(_signum, _frame):
        print("Interrupt received; stopping after the current book.", file=sys.stderr, flush=True)
        engine.request_stop()
        signal.signal(signal.SIGINT, signal.default_int_handler)

    previous = signal.signal(signal.SIGINT, _on_interrupt)
    try:
        report = engine.run()
    finally:
        signal.signal(signal.SIGINT, previous)

    if as_json:
        print(_json.dumps(_report_json(report)))
    else:
        print(report.summary_line())
    return report.exit_code


def cmd_duplicates(config: ArmorConfig) -> bool:
    """Print checksums recorded more than once. Returns True when none."""
    report = ChecksumLedger(config.index).duplicates()
    if not report:
        print("No duplicates")
        return True
    print("Duplicates found:")
    for line in report.lines():
        print("    " + line)
    return False


def cmd_check(config: ArmorConfig, name: str) -> bool:
    """Check one book against its repair set.

    Prints:
        "OK" when intact, otherwise "FAIL" followed by what is damaged.
    """
    check = RepairStore(config.repair).inspect(name)
    if check.ok:
        print(f"{name}: OK")
        return True
    print(f"{name}: FAIL ({check.summary()})")
    return False


def cmd_repair(config: ArmorConfig, name: str, *, output: Optional[str] = None) -> bool:
    """Rebuild a damaged book from its repair set.

    Args:
        config: Run configuration (REPAIR locates the repair set).
        name: Ledger key of the book, ``<collection>/<name>``.
        output: Write the rebuilt book here instead of over the original.
    """
    store = RepairStore(config.repair)
    check = store.repair(name, output=output)
    if check.ok and output is None:
        print(f"{name}: no damage detected")
        return True
    if output is not None:
        print(f"Repaired copy written to: {output}")
    else:
        print(f"Repaired {name} ({check.summary()})")
    after = store.inspect(name)
    if output is None and not after.ok:
        print(f"{name}: FAIL after repair ({after.summary()})", file=sys.stderr)
        return False
    return True


def _tolerant_output() -> None:
    # Book names that are not valid UTF-8 arrive with surrogate escapes.
    for stream in (sys.stdout, sys.stderr):
        reconfigure = getattr(stream, "reconfigure", None)
        if reconfigure is not None:
            reconfigure(errors="backslashreplace")


def _show_variables(config: ArmorConfig) -> None:
    print("Environment Variables:")
    for var, value in config.variables():
        print(f"    {var}:\t\t{value}")


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="ebook-armor",
        description=(
            "Ensure the long-term integrity of electronic books and guard against bit-rot: "
            "catalog new books with a checksum and recovery data, verify known ones."
        ),
        epilog=(
            "Settings come from the environment (REDUNDANCY, BOOK_DIR, INDEX, CSV, REPAIR, FAIL_FAST); "
            "options override them."
        ),
    )
    ap.add_argument("-u", "--usage", action="store_true", help="show usage and exit")
    ap.add_argument("-d", "--show-config", action="store_true", help="display configuration variables and exit")
    ap.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    ap.add_argument("--book-dir", help="top-level directory for e-books (BOOK_DIR)")
    ap.add_argument("--index", help="location of the md5sum ledger (INDEX)")
    ap.add_argument("--csv", help="location of the tab-delimited catalog log (CSV)")
    ap.add_argument("--repair-dir", help="directory for recovery data (REPAIR)")
    ap.add_argument("--redundancy", type=int, help="percent damage each book can recover from (REDUNDANCY)")
    ap.add_argument(
        "--fail-fast",
        action="store_const",
        const=True,
        default=None,
        help="abort on the first per-book failure instead of reporting it at the end (FAIL_FAST)",
    )

    sub = ap.add_subparsers(dest="cmd")

    ap_run = sub.add_parser("run", help="Catalog and verify all books (default)")
    ap_run.add_argument("--quiet", action="store_true", help="limit output to the summary")
    ap_run.add_argument("--json", action="store_true", help="emit a JSON result summary")

    sub.add_parser("duplicates", help="Report checksums recorded more than once in the ledger")

    ap_check = sub.add_parser("check", help="Check one book against its recovery data")
    ap_check.add_argument("name", help="Book key, <collection>/<file>")

    ap_repair = sub.add_parser("repair", help="Rebuild a damaged book from its recovery data")
    ap_repair.add_argument("name", help="Book key, <collection>/<file>")
    ap_repair.add_argument("--output", help="write the rebuilt book here instead of in place")
    return ap


def main(argv: List[str] | None = None):
    _tolerant_output()
    ap = _build_parser()
    args = ap.parse_args(argv)
    if args.usage:
        ap.print_usage()
        sys.exit(0)
    try:
        config = ArmorConfig.from_env(
            book_dir=args.book_dir,
            index=args.index,
            csv=args.csv,
            repair=args.repair_dir,
            redundancy=args.redundancy,
            fail_fast=args.fail_fast,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    if args.show_config:
        _show_variables(config)
        sys.exit(0)

    try:
        if args.cmd in (None, "run"):
            code = cmd_run(
                config,
                quiet=getattr(args, "quiet", False),
                as_json=getattr(args, "json", False),
            )
            sys.exit(code)
        elif args.cmd == "duplicates":
            sys.exit(0 if cmd_duplicates(config) else 1)
        elif args.cmd == "check":
            sys.exit(0 if cmd_check(config, args.name) else 1)
        elif args.cmd == "repair":
            sys.exit(0 if cmd_repair(config, args.name, output=args.output) else 1)
        else:
            raise RuntimeError("Unknown command")
    except RepairCreationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_PROTECT_FAILED)
    except (ChecksumMismatch, ContainerDamaged) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_MISMATCH)
    except RepairError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    except (ArmorError, OSError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(EXIT_FATAL)
    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        sys.exit(EXIT_FATAL)


if __name__ == "__main__":
    main()
