from __future__ import annotations

import datetime
import tempfile
import unittest
from pathlib import Path

from ebook_armor.catalog import CatalogLog
from ebook_armor.config import ArmorConfig
from ebook_armor.errors import LedgerIOError
from ebook_armor.ledger import ChecksumLedger, format_line, parse_line

MD5_A = "d41d8cd98f00b204e9800998ecf8427e"
MD5_B = "0cc175b9c0f1b6a831c399e269772661"


class LedgerLineTests(unittest.TestCase):
    def test_plain_line_matches_md5sum(self):
        self.assertEqual(format_line("Fiction/dune.epub", MD5_A), f"{MD5_A}  Fiction/dune.epub\n")
        entry = parse_line(f"{MD5_A}  Fiction/dune.epub\n")
        self.assertEqual(entry.name, "Fiction/dune.epub")
        self.assertEqual(entry.checksum, MD5_A)

    def test_binary_mode_marker(self):
        entry = parse_line(f"{MD5_A.upper()} *Comics/x.cbz")
        self.assertEqual(entry.name, "Comics/x.cbz")
        self.assertEqual(entry.checksum, MD5_A)

    def test_escaped_names(self):
        name = "Odd/back\\slash\nand newline.txt"
        line = format_line(name, MD5_B)
        self.assertTrue(line.startswith("\\" + MD5_B))
        self.assertEqual(line.count("\n"), 1)
        self.assertEqual(parse_line(line).name, name)

    def test_names_with_spaces(self):
        entry = parse_line(f"{MD5_A}  Fiction/The  Long Way.epub")
        self.assertEqual(entry.name, "Fiction/The  Long Way.epub")

    def test_malformed(self):
        for bad in (
            "",
            "nothex  A/b",
            f"{MD5_A}",
            f"{MD5_A} A/b",
            "abc  A/b",
            f"{MD5_A[:8]}_{MD5_A[8:31]}  A/b",
            f"{MD5_A}00  A/b",
        ):
            with self.assertRaises(ValueError):
                parse_line(bad)


class ChecksumLedgerTests(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.root = Path(self._tmp.name)
        self.path = self.root / "index.md5sum"

    def test_missing_file_is_empty(self):
        ledger = ChecksumLedger(str(self.path))
        self.assertEqual(len(ledger), 0)
        self.assertFalse(ledger.contains("Fiction/a.epub"))
        ledger.ensure()
        self.assertTrue(self.path.exists())

    def test_exact_match_only(self):
        ledger = ChecksumLedger(str(self.path))
        ledger.append("Fiction/a.pdf.bak", MD5_A)
        self.assertFalse(ledger.contains("Fiction/a.pdf"))
        self.assertFalse(ledger.contains("Fiction/a"))
        self.assertTrue(ledger.contains("Fiction/a.pdf.bak"))
        self.assertIsNone(ledger.lookup("Fiction/a.pdf"))

    def test_append_persists(self):
        ledger = ChecksumLedger(str(self.path))
        ledger.append("Fiction/a.epub", MD5_A)
        ledger.append("NonFiction/b.pdf", MD5_B)
        self.assertEqual(len(ledger), 2)
        reopened = ChecksumLedger(str(self.path))
        self.assertEqual(len(reopened), 2)
        self.assertEqual(reopened.lookup("NonFiction/b.pdf"), MD5_B)
        self.assertEqual(
            self.path.read_text(),
            f"{MD5_A}  Fiction/a.epub\n{MD5_B}  NonFiction/b.pdf\n",
        )

    def test_first_entry_wins(self):
        self.path.write_text(f"{MD5_A}  Fiction/a.epub\n{MD5_B}  Fiction/a.epub\n")
        ledger = ChecksumLedger(str(self.path))
        self.assertEqual(ledger.lookup("Fiction/a.epub"), MD5_A)
        self.assertEqual(len(ledger), 2)

    def test_malformed_lines_are_skipped(self):
        self.path.write_text(f"garbage\n\n{MD5_A}  Fiction/a.epub\n")
        ledger = ChecksumLedger(str(self.path))
        self.assertEqual(len(ledger), 1)
        self.assertTrue(ledger.contains("Fiction/a.epub"))

    def test_duplicates_by_checksum(self):
        ledger = ChecksumLedger(str(self.path))
        ledger.append("Fiction/x.epub", MD5_A)
        ledger.append("NonFiction/y.epub", MD5_B)
        ledger.append("NonFiction/x-copy.epub", MD5_A)
        report = ledger.duplicates()
        self.assertEqual(report.checksums(), {MD5_A})
        self.assertEqual(report.groups[MD5_A], ["Fiction/x.epub", "NonFiction/x-copy.epub"])
        self.assertEqual(report.lines(), [f"{MD5_A}  Fiction/x.epub, NonFiction/x-copy.epub"])

    def test_no_duplicates(self):
        ledger = ChecksumLedger(str(self.path))
        ledger.append("Fiction/x.epub", MD5_A)
        self.assertFalse(ledger.duplicates())
        self.assertEqual(len(ledger.duplicates()), 0)

    def test_unwritable_ledger(self):
        ledger = ChecksumLedger(str(self.root))
        with self.assertRaises(LedgerIOError):
            ledger.append("Fiction/x.epub", MD5_A)


class CatalogLogTests(unittest.TestCase):
    def test_rows_mirror_appends(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "index.csv"
            log = CatalogLog(str(path))
            log.ensure()
            log.append("Fiction/a.epub", MD5_A, date=datetime.date(2024, 3, 1))
            log.append("Fiction/b\tc.epub", MD5_B, date=datetime.date(2024, 3, 2))
            records = log.records()
            self.assertEqual([r.name for r in records], ["Fiction/a.epub", "Fiction/b\tc.epub"])
            self.assertEqual(records[0].date, "2024-03-01")
            self.assertEqual(records[1].checksum, MD5_B)
            self.assertTrue(path.read_text().startswith(f"2024-03-01\t{MD5_A}\tFiction/a.epub\n"))

    def test_one_plain_line_per_record(self):
        names = ['Fiction/The "Road".epub', "Fiction/tab\there.epub", "Fiction/line\nbreak.epub", "Fiction/back\\slash.epub"]
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "index.csv"
            log = CatalogLog(str(path))
            for name in names:
                log.append(name, MD5_A, date=datetime.date(2024, 3, 1))
            raw = path.read_text()
            lines = raw.splitlines()
            self.assertEqual(len(lines), len(names))
            self.assertEqual(lines[0], f'2024-03-01\t{MD5_A}\tFiction/The "Road".epub')
            self.assertEqual(lines[1].split("\t")[2], "Fiction/tab\\there.epub")
            self.assertEqual(lines[2], f"2024-03-01\t{MD5_A}\tFiction/line\\nbreak.epub")
            self.assertEqual([r.name for r in log.records()], names)

    def test_reads_two_column_rows(self):
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "index.csv"
            path.write_text(f"2019-01-01\t{MD5_A}  old.epub\n")
            records = CatalogLog(str(path)).records()
            self.assertEqual(len(records), 1)
            self.assertEqual(records[0].name, "old.epub")
            self.assertEqual(records[0].checksum, MD5_A)

    def test_unwritable_log(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(LedgerIOError):
                CatalogLog(tmp).append("Fiction/a.epub", MD5_A)


class ConfigTests(unittest.TestCase):
    def test_defaults_follow_book_dir(self):
        cfg = ArmorConfig.from_env({"BOOK_DIR": "/srv/books"})
        self.assertEqual(cfg.book_dir, "/srv/books")
        self.assertEqual(cfg.index, "/srv/books/index.md5sum")
        self.assertEqual(cfg.csv, "/srv/books/index.csv")
        self.assertEqual(cfg.repair, "/srv/books/repair")
        self.assertEqual(cfg.redundancy, 10)
        self.assertFalse(cfg.fail_fast)

    def test_environment_and_overrides(self):
        env = {"BOOK_DIR": "/srv/books", "INDEX": "/tmp/i.md5", "REDUNDANCY": "25", "FAIL_FAST": "yes", "CSV": ""}
        cfg = ArmorConfig.from_env(env, book_dir="/data/ebooks", redundancy=None)
        self.assertEqual(cfg.book_dir, "/data/ebooks")
        self.assertEqual(cfg.index, "/tmp/i.md5")
        self.assertEqual(cfg.csv, "/data/ebooks/index.csv")
        self.assertEqual(cfg.redundancy, 25)
        self.assertTrue(cfg.fail_fast)

    def test_invalid_values(self):
        for env in ({"REDUNDANCY": "0"}, {"REDUNDANCY": "101"}, {"REDUNDANCY": "ten"}, {"FAIL_FAST": "maybe"}):
            with self.assertRaises(ValueError):
                ArmorConfig.from_env(env)
        with self.assertRaises(TypeError):
            ArmorConfig.from_env({}, colour="blue")

    def test_variables_listing(self):
        cfg = ArmorConfig.from_env({"BOOK_DIR": "/srv/books"})
        names = [name for name, _ in cfg.variables()]
        self.assertEqual(names, ["REDUNDANCY", "BOOK_DIR", "INDEX", "CSV", "REPAIR", "FAIL_FAST"])


if __name__ == "__main__":
    unittest.main()
