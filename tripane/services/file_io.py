"""
File I/O service for reading merge inputs and saving the merged base.

Handles:
- Encoding detection
- Line ending detection and restoration after editing
- Atomic writes with optional backup
- Binary file rejection
"""

from __future__ import annotations

import difflib
import logging
import os
import re
import shutil
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Sequence

import chardet

from tripane.core.models import split_lines

logger = logging.getLogger(__name__)


class LineEnding(Enum):
    """Newline convention of a document."""
    LF = "\n"
    CRLF = "\r\n"
    CR = "\r"
    MIXED = "mixed"
    NONE = ""        # Single line without terminator

    @classmethod
    def of(cls, text: str) -> LineEnding:
        """Convention used by the lines of ``text``."""
        endings = {line_terminator(line) for line in split_lines(text)}
        endings.discard("")
        if not endings:
            return cls.NONE
        if len(endings) > 1:
            return cls.MIXED
        return cls(endings.pop())

    @property
    def newline(self) -> str:
        """Terminator for lines added to the document."""
        if self in (LineEnding.MIXED, LineEnding.NONE):
            return "\n"
        return self.value


def line_terminator(line: str) -> str:
    """The line break a line ends with, or '' for an unterminated line."""
    if line.endswith("\r\n"):
        return "\r\n"
    if line.endswith(("\n", "\r")):
        return line[-1]
    return ""


_BREAK = re.compile(r"\r\n?")


def plain_newlines(text: str) -> str:
    """Text with every line break turned into '\\n', as a text widget shows it."""
    return _BREAK.sub("\n", text)


def restore_line_endings(
    plain_text: str,
    reference: Sequence[str],
    newline: str = "\n"
) -> list[str]:
    """
    Split edited widget text into lines with the document's breaks put back.

    Text widgets hand back '\\n' between lines whatever the file used.
    Lines that still match a line of ``reference`` get that line back with
    its exact break; lines that are new get ``newline``.
    """
    edited = split_lines(plain_text)
    restored = [
        line[:-1] + newline if line.endswith("\n") else line
        for line in edited
    ]

    matcher = difflib.SequenceMatcher(
        None, [plain_newlines(line) for line in reference], edited, autojunk=False
    )
    for block in matcher.get_matching_blocks():
        restored[block.b:block.b + block.size] = reference[block.a:block.a + block.size]

    return restored


@dataclass
class FileContent:
    """Decoded text of a file with what is needed to write it back."""
    content: str
    lines: list[str]
    encoding: str
    line_ending: LineEnding


@dataclass
class ReadResult:
    """Result of a file read operation."""
    success: bool
    content: Optional[FileContent] = None
    error: Optional[str] = None
    is_binary: bool = False


@dataclass
class WriteResult:
    """Result of a file write operation."""
    success: bool
    bytes_written: int = 0
    backup_path: Optional[Path] = None
    error: Optional[str] = None


class FileIOService:
    """Service for safe file I/O operations."""

    # Binary file signatures (magic bytes)
    BINARY_SIGNATURES = [
        b'\x89PNG',        # PNG
        b'\xff\xd8\xff',   # JPEG
        b'GIF8',           # GIF
        b'PK\x03\x04',     # ZIP
        b'%PDF',           # PDF
        b'\x7fELF',        # ELF
    ]

    def __init__(
        self,
        default_encoding: str = 'utf-8',
        fallback_encoding: str = 'latin-1',
        binary_check_size: int = 8192
    ):
        self.default_encoding = default_encoding
        self.fallback_encoding = fallback_encoding
        self.binary_check_size = binary_check_size

    def read_file(
        self,
        path: Path | str,
        encoding: Optional[str] = None,
        max_text_size: int = 50 * 1024 * 1024
    ) -> ReadResult:
        """
        Read a text file with automatic encoding detection.

        Lines keep their endings so joining them reproduces the file.

        Args:
            path: Path to the file
            encoding: Force specific encoding (auto-detect if None)
            max_text_size: Maximum file size in bytes to read as text

        Returns:
            ReadResult with content or error information
        """
        path = Path(path)

        if not path.exists():
            return ReadResult(success=False, error=f"File not found: {path}")

        if not path.is_file():
            return ReadResult(success=False, error=f"Not a file: {path}")

        try:
            file_size = path.stat().st_size
            if file_size > max_text_size:
                return ReadResult(
                    success=False,
                    error=f"File too large to merge ({file_size / 1024 / 1024:.2f} MB). "
                          f"Max size is {max_text_size / 1024 / 1024:.2f} MB."
                )

            raw_content = path.read_bytes()
        except PermissionError:
            return ReadResult(success=False, error=f"Permission denied: {path}")
        except OSError as e:
            return ReadResult(success=False, error=f"OS error: {e}")

        if self._is_binary(raw_content[:self.binary_check_size]):
            return ReadResult(success=False, is_binary=True,
                              error="File appears to be binary")

        detected_encoding = encoding or self._detect_encoding(raw_content)

        # A BOM decides the codec; utf-8-sig writes it back on save
        if raw_content.startswith(b'\xef\xbb\xbf'):
            detected_encoding = 'utf-8-sig'
        elif raw_content.startswith((b'\xff\xfe', b'\xfe\xff')):
            detected_encoding = 'utf-16'

        try:
            content = raw_content.decode(detected_encoding)
        except (UnicodeDecodeError, LookupError):
            logger.warning(
                "Decoding %s as %s failed, falling back to %s",
                path, detected_encoding, self.fallback_encoding
            )
            content = raw_content.decode(self.fallback_encoding, errors='replace')
            detected_encoding = self.fallback_encoding

        return ReadResult(
            success=True,
            content=FileContent(
                content=content,
                lines=split_lines(content),
                encoding=detected_encoding,
                line_ending=LineEnding.of(content)
            )
        )

    def write_file(
        self,
        path: Path | str,
        content: str,
        encoding: str = 'utf-8',
        atomic: bool = True,
        create_backup: bool = False,
        backup_extension: str = '.orig'
    ) -> WriteResult:
        """
        Write text content to a file.

        Args:
            path: Path to write to
            content: Text to write, line endings as given
            encoding: Encoding to use
            atomic: Use atomic write (write to temp then move)
            create_backup: Copy an existing file aside before overwriting
            backup_extension: Suffix appended to the backup copy

        Returns:
            WriteResult with success status
        """
        path = Path(path)
        backup_path: Optional[Path] = None

        try:
            encoded = content.encode(encoding)
        except (UnicodeEncodeError, LookupError) as e:
            return WriteResult(success=False, error=f"Encoding error: {e}")

        try:
            if create_backup and path.exists():
                backup_path = path.with_name(path.name + backup_extension)
                shutil.copy2(path, backup_path)

            path.parent.mkdir(parents=True, exist_ok=True)

            if atomic:
                # Write to temporary file then move
                fd, temp_path = tempfile.mkstemp(dir=path.parent)
                try:
                    with os.fdopen(fd, 'wb') as f:
                        f.write(encoded)
                    os.replace(temp_path, path)
                except Exception:
                    if os.path.exists(temp_path):
                        os.unlink(temp_path)
                    raise
            else:
                path.write_bytes(encoded)

            logger.info("Wrote %d bytes to %s", len(encoded), path)
            return WriteResult(success=True, bytes_written=len(encoded),
                               backup_path=backup_path)

        except PermissionError:
            return WriteResult(success=False, error=f"Permission denied: {path}")
        except OSError as e:
            return WriteResult(success=False, error=f"OS error: {e}")

    def _is_binary(self, chunk: bytes) -> bool:
        """Check if a leading chunk of a file looks binary."""
        if not chunk:
            return False

        # UTF-16 text legitimately contains null bytes
        if chunk.startswith((b'\xff\xfe', b'\xfe\xff')):
            return False

        for sig in self.BINARY_SIGNATURES:
            if chunk.startswith(sig):
                return True

        if b'\x00' in chunk:
            return True

        # Check ratio of non-text bytes
        non_text = sum(1 for b in chunk if b < 9 or (13 < b < 32))
        return non_text / len(chunk) > 0.3

    def _detect_encoding(self, content: bytes) -> str:
        """Detect encoding of content."""
        if not content:
            return self.default_encoding

        result = chardet.detect(content)

        if result['confidence'] > 0.7 and result['encoding']:
            encoding = result['encoding'].lower()
            if encoding == 'ascii':
                return 'utf-8'  # ASCII is subset of UTF-8
            return encoding

        return self.default_encoding
