"""
Unified Diff Parser

Parses ``git diff`` output into structured file/hunk/line records.

The parser is a single forward scan over lines driven by a small state
machine. It never raises: malformed or truncated input produces whatever
partial structure could be recovered.
"""

import re
from dataclasses import dataclass
from enum import Enum

import structlog

from .models import DiffFile, DiffHunk, DiffLine, LineType

logger = structlog.get_logger(__name__)


class ParserState(str, Enum):
    """Where the scanner currently is."""

    PREAMBLE = "preamble"  # before the first file header
    FILE_HEADER = "file_header"  # inside a file, no hunk open
    HUNK = "hunk"  # collecting hunk lines


@dataclass(frozen=True)
class HunkHeader:
    """Tokens of an ``@@ -a,b +c,d @@ context`` line."""

    old_start: int
    old_lines: int
    new_start: int
    new_lines: int
    context: str = ""


def _parse_range(token: str, marker: str) -> tuple[int, int] | None:
    """Parse ``-a,b`` / ``+c,d``; a missing count defaults to 1."""
    if not token.startswith(marker):
        return None
    start, sep, count = token[1:].partition(",")
    if not start.isdigit():
        return None
    if not sep:
        return int(start), 1
    if not count.isdigit():
        return None
    return int(start), int(count)


def parse_hunk_header(line: str) -> HunkHeader | None:
    """Tokenize a hunk header line, or return None if it is malformed."""
    if not line.startswith("@@ "):
        return None

    end = line.find(" @@", 2)
    if end == -1:
        return None

    tokens = line[3:end].split()
    if len(tokens) != 2:
        return None

    old_range = _parse_range(tokens[0], "-")
    new_range = _parse_range(tokens[1], "+")
    if old_range is None or new_range is None:
        return None

    return HunkHeader(
        old_start=old_range[0],
        old_lines=old_range[1],
        new_start=new_range[0],
        new_lines=new_range[1],
        context=line[end + 3 :].strip(),
    )


class DiffParser:
    """Parse unified diff text into DiffFile records."""

    FILE_HEADER = re.compile(r"^diff --git a/(.+) b/(.+)$")
    FILE_HEADER_PREFIX = "diff --git"
    NEW_FILE = "new file mode"
    DELETED_FILE = "deleted file mode"

    # Hunk line marker -> line type
    LINE_MARKERS = {
        "+": LineType.ADDITION,
        "-": LineType.DELETION,
        " ": LineType.CONTEXT,
    }

    def __init__(self) -> None:
        self._reset()

    def _reset(self) -> None:
        self.state = ParserState.PREAMBLE
        self.files: list[DiffFile] = []
        self.current_file: DiffFile | None = None
        self.current_hunk: DiffHunk | None = None
        self.old_line_no = 0
        self.new_line_no = 0

    def parse(self, raw_diff: str) -> list[DiffFile]:
        """Parse full diff output into structured DiffFile objects."""
        self._reset()

        for line in raw_diff.split("\n"):
            if line.startswith(self.FILE_HEADER_PREFIX):
                self._open_file(line)
            elif self.state == ParserState.HUNK and line[:1] in self.LINE_MARKERS:
                self._add_line(line)
            elif line.startswith("@@"):
                self._open_hunk(line)
            elif self.state != ParserState.PREAMBLE:
                self._apply_metadata(line)

        self._close_file()
        files = self.files
        self._reset()
        return files

    def _open_file(self, line: str) -> None:
        self._close_file()

        match = self.FILE_HEADER.match(line)
        if match:
            old_path, new_path = match.groups()
        else:
            logger.debug("Unparseable file header", line=line)
            old_path, new_path = "", ""

        self.current_file = DiffFile(old_path=old_path, new_path=new_path)
        self.state = ParserState.FILE_HEADER

    def _close_hunk(self) -> None:
        if self.current_hunk and self.current_file and not self.current_file.is_binary:
            self.current_file.hunks.append(self.current_hunk)
        self.current_hunk = None
        if self.current_file:
            self.state = ParserState.FILE_HEADER

    def _close_file(self) -> None:
        self._close_hunk()
        if self.current_file:
            self.files.append(self.current_file)
        self.current_file = None
        self.state = ParserState.PREAMBLE

    def _open_hunk(self, line: str) -> None:
        if self.current_file is None:
            logger.debug("Hunk header outside any file", line=line)
            return

        self._close_hunk()

        header = parse_hunk_header(line)
        if header is None:
            # Lines up to the next valid header are dropped
            logger.debug("Malformed hunk header", line=line, file=self.current_file.path)
            return

        self.current_hunk = DiffHunk(
            old_start=header.old_start,
            old_lines=header.old_lines,
            new_start=header.new_start,
            new_lines=header.new_lines,
            context=header.context,
        )
        self.old_line_no = header.old_start
        self.new_line_no = header.new_start
        self.state = ParserState.HUNK

    def _add_line(self, line: str) -> None:
        if self.current_hunk is None or self.current_file is None:
            return
        if self.current_file.is_binary:
            return

        line_type = self.LINE_MARKERS[line[0]]
        diff_line = DiffLine(type=line_type, content=line[1:])

        if line_type != LineType.ADDITION:
            diff_line.old_line_no = self.old_line_no
            self.old_line_no += 1
        if line_type != LineType.DELETION:
            diff_line.new_line_no = self.new_line_no
            self.new_line_no += 1

        # Counters move with classification so they always match the hunks
        if line_type == LineType.ADDITION:
            self.current_file.additions += 1
        elif line_type == LineType.DELETION:
            self.current_file.deletions += 1

        self.current_hunk.lines.append(diff_line)

    def _apply_metadata(self, line: str) -> None:
        if self.current_file is None:
            return

        if line.startswith(self.NEW_FILE):
            self.current_file.is_new = True
        elif line.startswith(self.DELETED_FILE):
            self.current_file.is_deleted = True
        elif "Binary files" in line and "differ" in line:
            self.current_file.is_binary = True
            self.current_file.hunks.clear()
            self.current_file.additions = 0
            self.current_file.deletions = 0
            self.current_hunk = None
            self.state = ParserState.FILE_HEADER


def parse_diff(raw_diff: str) -> list[DiffFile]:
    """Parse diff text with a fresh parser."""
    return DiffParser().parse(raw_diff)
