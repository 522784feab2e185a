from __future__ import annotations

import argparse
import os
import random
import sys
from typing import Optional

from ebook_armor.errors import ArmorError
from ebook_armor.repair import RepairStore
from ebook_armor.repairset import read_repair_set


def _flip_byte(path: str, offset: int, xor_val: int = 0xFF) -> None:
    if offset < 0:
        raise ValueError("Offset must be non-negative")
    with open(path, "r+b") as f:
        f.seek(offset)
        b = f.read(1)
        if not b:
            raise ValueError("Offset beyond end of file")
        f.seek(offset)
        f.write(bytes([b[0] ^ (xor_val & 0xFF)]))
        f.flush()
        os.fsync(f.fileno())


def cmd_by_offset(args: argparse.Namespace) -> None:
    _flip_byte(args.path, args.offset, xor_val=args.xor)
    print(f"Flipped 1 byte at offset {args.offset}")


def cmd_symbol(args: argparse.Namespace) -> None:
    store = RepairStore(args.repair_dir)
    with open(store.set_path(args.name), "rb") as fh:
        rs = read_repair_set(fh)
    if args.index < 0 or args.index >= rs.data_count:
        raise ValueError(f"Symbol index out of range (0..{rs.data_count - 1})")
    off = args.index * rs.symbol_size + args.within
    _flip_byte(os.path.realpath(store.link_path(args.name)), off, xor_val=args.xor)
    print(f"Flipped 1 byte in data symbol {args.index} at book offset {off}")


def cmd_parity(args: argparse.Namespace) -> None:
    store = RepairStore(args.repair_dir)
    path = store.set_path(args.name)
    with open(path, "rb") as fh:
        rs = read_repair_set(fh)
    if args.index < 0 or args.index >= rs.parity_count:
        raise ValueError(f"Parity index out of range (0..{rs.parity_count - 1})")
    off = rs.parity_offset + args.index * rs.symbol_size + args.within
    _flip_byte(path, off, xor_val=args.xor)
    print(f"Flipped 1 byte in parity symbol {args.index} at repair-set offset {off}")


def cmd_random(args: argparse.Namespace) -> None:
    rng = random.Random(args.seed)
    flips = 0
    size = os.path.getsize(args.path)
    if size == 0:
        raise ValueError("File is empty")
    with open(args.path, "r+b") as f:
        for _ in range(args.count):
            pos = rng.randrange(0, size)
            f.seek(pos)
            b = f.read(1)
            if not b:
                continue
            f.seek(pos)
            f.write(bytes([b[0] ^ (args.xor & 0xFF)]))
            flips += 1
        f.flush()
        os.fsync(f.fileno())
    print(f"Flipped {flips} byte(s) at random offsets")


def main(argv: Optional[list[str]] = None) -> None:
    ap = argparse.ArgumentParser(prog="ebook_armor.corrupt", description="Damage books or repair sets for testing")
    sub = ap.add_subparsers(dest="cmd", required=True)

    p_off = sub.add_parser("by-offset", help="Flip one byte at an absolute file offset")
    p_off.add_argument("path", help="File to damage")
    p_off.add_argument("--offset", type=int, required=True, help="Absolute byte offset")
    p_off.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_off.set_defaults(func=cmd_by_offset)

    p_sym = sub.add_parser("symbol", help="Flip a byte within one data symbol of a protected book")
    p_sym.add_argument("name", help="Book key, <collection>/<file>")
    p_sym.add_argument("--repair-dir", required=True, help="REPAIR directory holding the book's repair set")
    p_sym.add_argument("--index", type=int, default=0, help="Data symbol index (0-based, default 0)")
    p_sym.add_argument("--within", type=int, default=10, help="Byte offset within symbol (default 10)")
    p_sym.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_sym.set_defaults(func=cmd_symbol)

    p_par = sub.add_parser("parity", help="Flip a byte within one parity symbol of a repair set")
    p_par.add_argument("name", help="Book key, <collection>/<file>")
    p_par.add_argument("--repair-dir", required=True, help="REPAIR directory holding the repair set")
    p_par.add_argument("--index", type=int, default=0, help="Parity symbol index (0-based, default 0)")
    p_par.add_argument("--within", type=int, default=10, help="Byte offset within symbol (default 10)")
    p_par.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_par.set_defaults(func=cmd_parity)

    p_rand = sub.add_parser("random", help="Flip N random bytes anywhere in a file")
    p_rand.add_argument("path", help="File to damage")
    p_rand.add_argument("--count", type=int, default=1, help="Number of random byte flips (default 1)")
    p_rand.add_argument("--seed", type=int, default=None, help="PRNG seed for reproducibility")
    p_rand.add_argument("--xor", type=lambda x: int(x, 0), default=0xFF, help="XOR mask to apply (default 0xFF)")
    p_rand.set_defaults(func=cmd_random)

    args = ap.parse_args(argv)
    try:
        args.func(args)
    except (ArmorError, OSError, ValueError, RuntimeError) as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
