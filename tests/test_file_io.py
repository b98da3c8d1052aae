"""Tests for reading merge inputs and writing the result."""

import tempfile
import unittest
from pathlib import Path

from tripane.services.file_io import (
    FileIOService,
    LineEnding,
    plain_newlines,
    restore_line_endings,
)


class ReadTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.service = FileIOService()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_reads_text_keeping_line_endings(self) -> None:
        path = self.root / "base.txt"
        path.write_bytes(b"alpha\r\nbeta\r\n")

        result = self.service.read_file(path)

        self.assertTrue(result.success)
        self.assertEqual(result.content.lines, ["alpha\r\n", "beta\r\n"])
        self.assertEqual(result.content.line_ending, LineEnding.CRLF)
        self.assertEqual(result.content.encoding, "utf-8")

    def test_forced_encoding_is_used(self) -> None:
        path = self.root / "latin.txt"
        path.write_bytes("caf\xe9\n".encode("latin-1"))

        result = self.service.read_file(path, encoding="latin-1")

        self.assertEqual(result.content.content, "caf\xe9\n")

    def test_missing_file_is_reported(self) -> None:
        result = self.service.read_file(self.root / "nope.txt")
        self.assertFalse(result.success)
        self.assertIn("not found", result.error)

    def test_binary_file_is_rejected(self) -> None:
        path = self.root / "blob.bin"
        path.write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00")

        result = self.service.read_file(path)

        self.assertFalse(result.success)
        self.assertTrue(result.is_binary)

    def test_oversized_file_is_rejected(self) -> None:
        path = self.root / "big.txt"
        path.write_text("x" * 100, encoding="utf-8")

        result = self.service.read_file(path, max_text_size=10)

        self.assertFalse(result.success)
        self.assertIn("too large", result.error)

    def test_line_ending_detection(self) -> None:
        self.assertEqual(LineEnding.of("a\nb\n"), LineEnding.LF)
        self.assertEqual(LineEnding.of("a\r\nb"), LineEnding.CRLF)
        self.assertEqual(LineEnding.of("a\rb\r"), LineEnding.CR)
        self.assertEqual(LineEnding.of("a\r\nb\n"), LineEnding.MIXED)
        self.assertEqual(LineEnding.of("a"), LineEnding.NONE)
        self.assertEqual(LineEnding.MIXED.newline, "\n")


class LineEndingRestoreTests(unittest.TestCase):
    def test_edited_text_gets_document_breaks_back(self) -> None:
        reference = ["a\r\n", "b\r\n", "c\r\n"]

        restored = restore_line_endings("a\nB\nc\nd", reference, "\r\n")

        self.assertEqual(restored, ["a\r\n", "B\r\n", "c\r\n", "d"])

    def test_kept_lines_of_mixed_document_keep_their_own_break(self) -> None:
        reference = ["a\r\n", "b\n", "c\r"]

        restored = restore_line_endings("a\nb\nx\nc\n", reference, "\n")

        self.assertEqual(restored, ["a\r\n", "b\n", "x\n", "c\r"])

    def test_plain_newlines(self) -> None:
        self.assertEqual(plain_newlines("a\r\nb\rc\n"), "a\nb\nc\n")


class WriteTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.service = FileIOService()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_atomic_write_creates_parent_directories(self) -> None:
        path = self.root / "out" / "merged.txt"

        result = self.service.write_file(path, "a\nX\nc\n")

        self.assertTrue(result.success)
        self.assertEqual(result.bytes_written, 6)
        self.assertEqual(path.read_text(encoding="utf-8"), "a\nX\nc\n")
        self.assertEqual(list(path.parent.iterdir()), [path])

    def test_backup_keeps_previous_content(self) -> None:
        path = self.root / "merged.txt"
        path.write_text("old\n", encoding="utf-8")

        result = self.service.write_file(path, "new\n", create_backup=True)

        self.assertEqual(result.backup_path, self.root / "merged.txt.orig")
        self.assertEqual(result.backup_path.read_text(encoding="utf-8"), "old\n")
        self.assertEqual(path.read_text(encoding="utf-8"), "new\n")

    def test_unencodable_text_fails_cleanly(self) -> None:
        path = self.root / "ascii.txt"

        result = self.service.write_file(path, "caf\xe9", encoding="ascii")

        self.assertFalse(result.success)
        self.assertFalse(path.exists())


if __name__ == "__main__":
    unittest.main()
