from __future__ import annotations

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

from ebook_armor.repair import RepairStore

REPO_ROOT = Path(__file__).resolve().parent


def _random_bytes(size: int) -> bytes:
    return os.urandom(size)


def _build_fixture_library(root: Path) -> dict:
    books = {}
    (root / "Fiction").mkdir()
    (root / "NonFiction").mkdir()
    for key, data in (
        ("Fiction/dune.epub", _random_bytes(20_000)),
        ("Fiction/emma.txt", b"It is a truth universally acknowledged...\n" * 40),
        ("NonFiction/cosmos.pdf", _random_bytes(9_000)),
    ):
        (root / key).write_bytes(data)
        books[key] = data
    (root / "readme.txt").write_text("loose file, never cataloged")
    return books


class CLIIntegrationTests(unittest.TestCase):
    def run_cli(self, args, *, expect: int | None = 0, env_extra: dict | None = None, script: str | None = None):
        entry = [str(REPO_ROOT / script)] if script else ["-m", "ebook_armor.cli"]
        cmd = [sys.executable] + entry + list(args)
        env = os.environ.copy()
        for var in ("REDUNDANCY", "BOOK_DIR", "INDEX", "CSV", "REPAIR", "FAIL_FAST"):
            env.pop(var, None)
        env.update(env_extra or {})
        existing = env.get("PYTHONPATH", "")
        env["PYTHONPATH"] = str(REPO_ROOT) if not existing else f"{REPO_ROOT}{os.pathsep}{existing}"
        proc = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            env=env,
        )
        if expect is not None and proc.returncode != expect:
            raise AssertionError(
                f"CLI exited {proc.returncode}, expected {expect}\nCommand: {' '.join(cmd)}\nSTDOUT:\n{proc.stdout}\nSTDERR:\n{proc.stderr}"
            )
        return proc

    def make_library(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        root = Path(tmp.name)
        books = _build_fixture_library(root)
        return root, books

    def test_show_config_and_usage(self):
        root, _ = self.make_library()
        proc = self.run_cli(["-d"], env_extra={"BOOK_DIR": str(root), "REDUNDANCY": "30"})
        self.assertIn("Environment Variables:", proc.stdout)
        self.assertIn(f"BOOK_DIR:\t\t{root}", proc.stdout)
        self.assertIn("REDUNDANCY:\t\t30", proc.stdout)
        self.assertIn(f"INDEX:\t\t{root / 'index.md5sum'}", proc.stdout)

        usage = self.run_cli(["-u"])
        self.assertIn("usage:", usage.stdout)
        version = self.run_cli(["-v"])
        self.assertIn("ebook-armor", version.stdout)

        bad = self.run_cli(["-d"], expect=2, env_extra={"REDUNDANCY": "0"})
        self.assertIn("Error:", bad.stderr)

    def test_catalog_then_verify(self):
        root, books = self.make_library()
        first = self.run_cli(["--book-dir", str(root)])
        self.assertIn("Cataloging Fiction/dune.epub ...", first.stdout)
        self.assertIn("is recoverable ... yes.", first.stdout)
        self.assertIn("Summary: cataloged=3 verified=0", first.stdout)
        self.assertNotIn("readme.txt", first.stdout)

        index_text = (root / "index.md5sum").read_text()
        self.assertEqual(len(index_text.splitlines()), len(books))

        second = self.run_cli(["--book-dir", str(root), "run", "--json"])
        payload = json.loads(second.stdout)
        self.assertEqual(payload["counts"]["verified"], 3)
        self.assertEqual(payload["exit_code"], 0)
        self.assertEqual((root / "index.md5sum").read_text(), index_text)

    def test_mismatch_check_and_repair(self):
        root, books = self.make_library()
        self.run_cli(["--book-dir", str(root), "run", "--quiet"])

        target = root / "Fiction" / "dune.epub"
        with open(target, "rb+") as fh:
            fh.seek(1234)
            b = fh.read(1)
            fh.seek(1234)
            fh.write(bytes([b[0] ^ 0x5A]))

        run = self.run_cli(["--book-dir", str(root)], expect=1)
        self.assertIn("Fiction/dune.epub: FAILED", run.stdout)
        self.assertIn("checksum mismatch", run.stderr)

        check = self.run_cli(["--book-dir", str(root), "check", "Fiction/dune.epub"], expect=1)
        self.assertIn("FAIL", check.stdout)
        self.assertIn("recoverable", check.stdout)

        copy = root / "dune.repaired"
        repaired = self.run_cli(["--book-dir", str(root), "repair", "Fiction/dune.epub", "--output", str(copy)])
        self.assertIn("Repaired copy written to", repaired.stdout)
        self.assertEqual(copy.read_bytes(), books["Fiction/dune.epub"])

        self.run_cli(["--book-dir", str(root), "repair", "Fiction/dune.epub"])
        self.assertEqual(target.read_bytes(), books["Fiction/dune.epub"])
        ok = self.run_cli(["--book-dir", str(root), "check", "Fiction/dune.epub"])
        self.assertIn("Fiction/dune.epub: OK", ok.stdout)
        self.run_cli(["--book-dir", str(root), "run", "--quiet"])

    def test_corrupt_tool_and_parity_repair(self):
        root, books = self.make_library()
        self.run_cli(["--book-dir", str(root), "run", "--quiet"])
        repair_dir = str(root / "repair")

        proc = self.run_cli(
            ["parity", "Fiction/dune.epub", "--repair-dir", repair_dir, "--index", "0"],
            script="scripts/corrupt.py",
        )
        self.assertIn("Flipped 1 byte in parity symbol 0", proc.stdout)
        check = self.run_cli(["--book-dir", str(root), "check", "Fiction/dune.epub"], expect=1)
        self.assertIn("parity symbol(s) damaged", check.stdout)
        # the book itself is untouched, so the ledger still verifies it
        self.run_cli(["--book-dir", str(root), "run", "--quiet"])

        self.run_cli(
            ["symbol", "Fiction/dune.epub", "--repair-dir", repair_dir, "--index", "3"],
            script="scripts/corrupt.py",
        )
        self.run_cli(["--book-dir", str(root), "repair", "Fiction/dune.epub"])
        self.assertEqual((root / "Fiction" / "dune.epub").read_bytes(), books["Fiction/dune.epub"])
        self.run_cli(["--book-dir", str(root), "check", "Fiction/dune.epub"])

        bad = self.run_cli(
            ["symbol", "Fiction/dune.epub", "--repair-dir", repair_dir, "--index", "999"],
            script="scripts/corrupt.py",
            expect=2,
        )
        self.assertIn("out of range", bad.stderr)

    def test_undecodable_file_name(self):
        root, _ = self.make_library()
        raw_name = os.path.join(os.fsencode(str(root / "Fiction")), b"Mis\xe9rables.txt")
        try:
            with open(raw_name, "wb") as fh:
                fh.write(b"Les Miserables, tome premier\n" * 30)
        except OSError:
            self.skipTest("filesystem rejects non UTF-8 file names")
        (root / "Z").mkdir()
        (root / "Z" / "z.txt").write_text("last collection")

        strict = {"PYTHONIOENCODING": "utf-8:strict"}
        first = self.run_cli(["--book-dir", str(root)], env_extra=strict)
        self.assertIn("Mis\\udce9rables.txt", first.stdout)
        self.assertIn("Summary: cataloged=5", first.stdout)
        with open(root / "index.md5sum", "rb") as fh:
            ledger = fh.read()
        self.assertIn(b"  Fiction/Mis\xe9rables.txt\n", ledger)
        self.assertIn(b"  Z/z.txt\n", ledger)

        second = self.run_cli(["--book-dir", str(root), "run", "--json"], env_extra=strict)
        payload = json.loads(second.stdout)
        self.assertEqual(payload["counts"]["verified"], 5)
        self.assertEqual(payload["exit_code"], 0)

    def test_duplicates(self):
        root, books = self.make_library()
        (root / "NonFiction" / "dune-copy.epub").write_bytes(books["Fiction/dune.epub"])
        run = self.run_cli(["--book-dir", str(root)], expect=8)
        self.assertIn("Duplicates found:", run.stdout)
        self.assertIn("Fiction/dune.epub, NonFiction/dune-copy.epub", run.stdout)

        dup = self.run_cli(["--book-dir", str(root), "duplicates"], expect=1)
        self.assertIn("Duplicates found:", dup.stdout)

    def test_separate_index_and_repair_locations(self):
        root, _ = self.make_library()
        with tempfile.TemporaryDirectory() as other:
            other_root = Path(other)
            env = {
                "BOOK_DIR": str(root),
                "INDEX": str(other_root / "ledger.md5"),
                "CSV": str(other_root / "ledger.csv"),
                "REPAIR": str(other_root / "parity"),
                "REDUNDANCY": "50",
            }
            self.run_cli(["run", "--quiet"], env_extra=env)
            self.assertTrue((other_root / "ledger.md5").exists())
            self.assertEqual(len((other_root / "ledger.csv").read_text().splitlines()), 3)
            store = RepairStore(str(other_root / "parity"))
            self.assertTrue(store.verify("NonFiction/cosmos.pdf"))
            self.assertFalse((root / "index.md5sum").exists())

            none = self.run_cli(["duplicates"], env_extra=env)
            self.assertIn("No duplicates", none.stdout)

    def test_fail_fast(self):
        root, _ = self.make_library()
        self.run_cli(["--book-dir", str(root), "run", "--quiet"])
        (root / "Fiction" / "dune.epub").write_bytes(b"rotted")
        proc = self.run_cli(["--book-dir", str(root), "--fail-fast"], expect=1)
        self.assertIn("Error:", proc.stderr)
        self.assertNotIn("NonFiction/cosmos.pdf", proc.stdout)


if __name__ == "__main__":
    unittest.main()
