#!/usr/bin/env python3
"""lineup — substitution that keeps parenthesis alignment.

Replaces every occurrence of a search text in a file and, when the match is
followed on its line by an opening parenthesis, re-indents the argument lines
aligned on that parenthesis so that they stay aligned:

    function_call (param1,              another_beautiful_name (param1,
                   param2,      ==>                             param2,
                   param3);                                     param3);

Algorithm, for each match in document order:
  1. Look for the first '(' after the match, on the same line
  2. Replace the match, keeping an anchor on the end of the replacement
  3. Re-indent the consecutive following lines whose text starts right after
     that '(' (tabs or spaces, as each line already uses)
  4. Resume searching after the replacement

The search is literal and case sensitive. Existing misalignment is never
fixed. WARNING: the file is modified in place, with no backup.

Exit codes: 0=done (also when nothing matched), 1=error, 2=usage error
"""

import argparse
import bisect
import difflib
import json
import logging
import os
import re
import sys
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

logger = logging.getLogger("lineup")

TAB_WIDTH = 8

_LINE_BREAK = re.compile(r'\r\n|\r|\n')


class LineupError(Exception):
    """Base class for all fatal errors of a substitution run."""


class FileLoadError(LineupError):
    """The file could not be read or decoded."""


class FileSaveError(LineupError):
    """The file could not be written back."""


class SubstitutionError(LineupError):
    """The buffer refused an edit (invalid span or stale match)."""


class AlignmentError(LineupError):
    """Raised when realigning a line would need a negative indentation.

    This happens when the replacement is so much shorter than the search text
    that the aligned argument would have to start before column 0.
    """

    def __init__(self, line: int, column: int):
        self.line = line
        self.column = column
        super().__init__(
            f"line {line}: realigned indentation would be {column} columns wide"
        )


class Position(NamedTuple):
    line: int
    column: int  # in codepoints


class MatchSpan(NamedTuple):
    start: Position
    end: Position  # exclusive


class Indentation(NamedTuple):
    column: Optional[int]  # None for a blank line
    has_tab: bool
    width: int  # length of the leading whitespace run, in codepoints


@dataclass
class Anchor:
    position: Position
    left_gravity: bool = False


@dataclass
class SubstitutionStats:
    matches: int = 0
    realigned_lines: int = 0


@dataclass
class SubstitutionResult:
    status: str  # "applied", "unchanged", "error"
    file: str
    matches: int = 0
    realigned_lines: int = 0
    dry_run: bool = False
    error: Optional[str] = None
    diff: Optional[str] = None


def visual_column(line: str, index: int) -> int:
    """Return the visual column of line[index], tabs expanded to TAB_WIDTH."""
    if index < 0 or index > len(line):
        raise ValueError(f"index {index} out of range for a line of {len(line)}")
    column = 0
    for ch in line[:index]:
        if ch == '\t':
            column += TAB_WIDTH - column % TAB_WIDTH
        else:
            column += 1
    return column


def leading_info(line: str) -> Indentation:
    """Describe the leading whitespace of a line.

    The column is the visual column of the first non-whitespace character,
    or None when the line has no such character.
    """
    index = 0
    has_tab = False
    while index < len(line) and line[index].isspace():
        if line[index] == '\t':
            has_tab = True
        index += 1
    if index == len(line):
        return Indentation(None, has_tab, index)
    return Indentation(visual_column(line, index), has_tab, index)


def make_indentation(column: int, use_tabs: bool) -> str:
    """Build whitespace reaching the given visual column."""
    if use_tabs:
        return '\t' * (column // TAB_WIDTH) + ' ' * (column % TAB_WIDTH)
    return ' ' * column


def _normalize_newlines(text: str) -> str:
    return _LINE_BREAK.sub('\n', text)


class TextBuffer:
    """Mutable list of lines, each with its own line terminator.

    Keeping the terminator per line means get_text() always gives back
    exactly the text the buffer was built from, mixed line endings included.
    """

    def __init__(self, lines: Optional[List[str]] = None,
                 endings: Optional[List[str]] = None):
        self.lines: List[str] = list(lines) if lines else [""]
        if endings is None:
            endings = ["\n"] * (len(self.lines) - 1) + [""]
        if len(endings) != len(self.lines):
            raise ValueError("lines and endings must have the same length")
        self.endings: List[str] = list(endings)
        self.modified = False
        self._anchors: List[Anchor] = []

    @classmethod
    def from_text(cls, text: str) -> "TextBuffer":
        lines: List[str] = []
        endings: List[str] = []
        pos = 0
        for m in _LINE_BREAK.finditer(text):
            lines.append(text[pos:m.start()])
            endings.append(m.group())
            pos = m.end()
        lines.append(text[pos:])
        endings.append("")
        return cls(lines, endings)

    @property
    def line_count(self) -> int:
        return len(self.lines)

    @property
    def newline(self) -> str:
        """The most frequent line terminator, used for inserted line breaks."""
        counts = {}
        for ending in self.endings:
            if ending:
                counts[ending] = counts.get(ending, 0) + 1
        if not counts:
            return "\n"
        return max(counts, key=counts.get)

    def line(self, index: int) -> str:
        return self.lines[index]

    def get_text(self) -> str:
        return ''.join(line + ending for line, ending in zip(self.lines, self.endings))

    def _check_position(self, pos: Position) -> None:
        if not 0 <= pos.line < len(self.lines):
            raise SubstitutionError(f"invalid position {tuple(pos)}: no such line")
        if not 0 <= pos.column <= len(self.lines[pos.line]):
            raise SubstitutionError(f"invalid position {tuple(pos)}: past end of line")

    def get_slice(self, start: Position, end: Position) -> str:
        self._check_position(start)
        self._check_position(end)
        if start.line == end.line:
            return self.lines[start.line][start.column:end.column]
        parts = [self.lines[start.line][start.column:], self.endings[start.line]]
        for index in range(start.line + 1, end.line):
            parts.append(self.lines[index])
            parts.append(self.endings[index])
        parts.append(self.lines[end.line][:end.column])
        return ''.join(parts)

    def replace(self, start: Position, end: Position, text: str) -> Position:
        """Replace the span [start, end) with text, return the end of text.

        Anchors are moved the way text marks move in an editor buffer: those
        before the span stay put, those after it follow the text, and those
        inside it collapse to the start (left gravity) or to the end of the
        inserted text (right gravity).
        """
        self._check_position(start)
        self._check_position(end)
        if end < start:
            raise SubstitutionError(f"reversed span {tuple(start)} > {tuple(end)}")

        new_lines = _LINE_BREAK.split(text)
        new_endings = [self.newline] * (len(new_lines) - 1) if len(new_lines) > 1 else []
        new_lines[0] = self.lines[start.line][:start.column] + new_lines[0]
        new_end = Position(start.line + len(new_lines) - 1, len(new_lines[-1]))
        new_lines[-1] += self.lines[end.line][end.column:]
        new_endings.append(self.endings[end.line])

        self.lines[start.line:end.line + 1] = new_lines
        self.endings[start.line:end.line + 1] = new_endings
        self.modified = True

        line_shift = new_end.line - end.line
        for anchor in self._anchors:
            pos = anchor.position
            if pos < start or (pos == start and anchor.left_gravity):
                continue
            if pos <= end:
                anchor.position = start if anchor.left_gravity else new_end
            elif pos.line == end.line:
                anchor.position = Position(
                    new_end.line, new_end.column + pos.column - end.column)
            else:
                anchor.position = Position(pos.line + line_shift, pos.column)
        return new_end

    def create_anchor(self, position: Position, left_gravity: bool = False) -> Anchor:
        self._check_position(position)
        anchor = Anchor(position, left_gravity)
        self._anchors.append(anchor)
        return anchor

    def anchor_position(self, anchor: Anchor) -> Position:
        if not any(a is anchor for a in self._anchors):
            raise SubstitutionError("anchor does not belong to this buffer")
        return anchor.position

    def delete_anchor(self, anchor: Anchor) -> None:
        self._anchors = [a for a in self._anchors if a is not anchor]


def find_next(
    buffer: TextBuffer, start: Position, search_text: str
) -> Optional[MatchSpan]:
    """Find the first occurrence of search_text at or after start."""
    if not search_text:
        raise ValueError("search text must not be empty")

    if not _LINE_BREAK.search(search_text):
        for index in range(start.line, buffer.line_count):
            offset = start.column if index == start.line else 0
            col = buffer.line(index).find(search_text, offset)
            if col != -1:
                return MatchSpan(
                    Position(index, col), Position(index, col + len(search_text)))
        return None

    # Multi-line search text: match against the text with every line break
    # written as '\n', then map offsets back to positions.
    needle = _normalize_newlines(search_text)
    line_starts = []
    offset = 0
    for line in buffer.lines:
        line_starts.append(offset)
        offset += len(line) + 1
    haystack = '\n'.join(buffer.lines)
    idx = haystack.find(needle, line_starts[start.line] + start.column)
    if idx == -1:
        return None

    def to_position(off: int) -> Position:
        line = bisect.bisect_right(line_starts, off) - 1
        return Position(line, off - line_starts[line])

    return MatchSpan(to_position(idx), to_position(idx + len(needle)))


def parenthesis_column(line: str, column: int) -> Optional[int]:
    """Return the visual column just after the first '(' at or after column.

    That is the column on which argument lines are aligned. None when the
    rest of the line has no '('.
    """
    index = line.find('(', column)
    if index == -1:
        return None
    return visual_column(line, index + 1)


def realign_line(buffer: TextBuffer, index: int, delta: int) -> int:
    """Shift the text of one line by delta columns, keeping its tab style.

    The whole leading whitespace run is rewritten. Returns the new column.
    """
    info = leading_info(buffer.line(index))
    if info.column is None:
        raise ValueError(f"line {index + 1} is blank, nothing to realign")

    new_column = info.column + delta
    if new_column < 0:
        raise AlignmentError(index + 1, new_column)

    buffer.replace(
        Position(index, 0),
        Position(index, info.width),
        make_indentation(new_column, info.has_tab),
    )
    logger.debug("line %d: realigned from column %d to %d%s",
                 index + 1, info.column, new_column,
                 " (tabs)" if info.has_tab else "")
    return new_column


def replace_and_realign(
    buffer: TextBuffer, span: MatchSpan, search_text: str, replacement: str
) -> Tuple[Position, int]:
    """Replace one match and realign the argument lines that follow it.

    Returns (end of the replacement, number of realigned lines).
    """
    matched = buffer.get_slice(span.start, span.end)
    if _normalize_newlines(matched) != _normalize_newlines(search_text):
        raise SubstitutionError(
            f"line {span.start.line + 1}: expected {search_text!r}, found {matched!r}"
        )

    # Measured before the edit: the argument lines still sit on the old column.
    anchor_column = parenthesis_column(buffer.line(span.end.line), span.end.column)

    anchor = buffer.create_anchor(span.end)
    try:
        logger.debug("REPLACING line %d col %d", span.start.line + 1, span.start.column)
        buffer.replace(span.start, span.end, replacement)
        end = buffer.anchor_position(anchor)

        realigned = 0
        if anchor_column is not None:
            logger.debug("REALIGNING lines aligned on column %d", anchor_column)
            delta = len(replacement) - len(matched)
            index = end.line + 1
            while index < buffer.line_count:
                if leading_info(buffer.line(index)).column != anchor_column:
                    break
                realign_line(buffer, index, delta)
                realigned += 1
                index += 1

        return buffer.anchor_position(anchor), realigned
    finally:
        buffer.delete_anchor(anchor)


def run(buffer: TextBuffer, search_text: str, replacement: str) -> SubstitutionStats:
    """Replace every occurrence of search_text, left to right.

    Searching resumes after each replacement, so inserted text is never
    matched again.
    """
    stats = SubstitutionStats()
    cursor = Position(0, 0)
    while True:
        logger.debug("SCANNING from line %d col %d", cursor.line + 1, cursor.column)
        span = find_next(buffer, cursor, search_text)
        if span is None:
            break
        cursor, realigned = replace_and_realign(buffer, span, search_text, replacement)
        stats.matches += 1
        stats.realigned_lines += realigned
    logger.debug("DONE: %d match(es), %d realigned line(s)",
                 stats.matches, stats.realigned_lines)
    return stats


def substitute_text(
    text: str, search_text: str, replacement: str
) -> Tuple[str, SubstitutionStats]:
    """In-memory substitution: return the new text and the run statistics."""
    buffer = TextBuffer.from_text(text)
    stats = run(buffer, search_text, replacement)
    return buffer.get_text(), stats


def load_buffer(file_path: str) -> TextBuffer:
    try:
        with open(file_path, 'rb') as f:
            raw_bytes = f.read()
    except OSError as e:
        raise FileLoadError(f"Error when loading file: {e}") from e
    try:
        content = raw_bytes.decode('utf-8')
    except UnicodeDecodeError as e:
        raise FileLoadError(f"Error when loading file {file_path}: {e}") from e
    return TextBuffer.from_text(content)


def save_buffer(buffer: TextBuffer, file_path: str) -> None:
    # Encoded before opening: 'wb' truncates the file.
    try:
        data = buffer.get_text().encode('utf-8')
    except UnicodeEncodeError as e:
        raise FileSaveError(f"Error when saving file {file_path}: {e}") from e
    try:
        with open(file_path, 'wb') as f:
            f.write(data)
    except OSError as e:
        raise FileSaveError(f"Error when saving file: {e}") from e


def _compute_diff(old_content: str, new_content: str, file_path: str) -> str:
    """Compute a unified diff between old and new content."""
    old_lines = old_content.splitlines(keepends=True)
    new_lines = new_content.splitlines(keepends=True)
    diff_lines = difflib.unified_diff(
        old_lines, new_lines,
        fromfile=f"a/{os.path.basename(file_path)}",
        tofile=f"b/{os.path.basename(file_path)}",
    )
    return ''.join(diff_lines)


def substitute_file(
    file_path: str,
    search_text: str,
    replacement: str,
    dry_run: bool = False,
) -> SubstitutionResult:
    """Run the substitution on a file and save it in place.

    The file is written even when nothing matched; its content is then
    unchanged. A fatal error stops the run before anything is saved.
    """
    if not search_text:
        raise ValueError("search text must not be empty")

    try:
        buffer = load_buffer(file_path)
        old_content = buffer.get_text()
        stats = run(buffer, search_text, replacement)
        new_content = buffer.get_text()
        if not dry_run:
            save_buffer(buffer, file_path)
    except LineupError as e:
        return SubstitutionResult(
            status="error",
            file=file_path,
            dry_run=dry_run,
            error=str(e),
        )

    logger.info("%s: %d substitution(s), %d line(s) realigned",
                file_path, stats.matches, stats.realigned_lines)
    return SubstitutionResult(
        status="applied" if stats.matches else "unchanged",
        file=file_path,
        matches=stats.matches,
        realigned_lines=stats.realigned_lines,
        dry_run=dry_run,
        diff=_compute_diff(old_content, new_content, file_path),
    )


def result_to_dict(result: SubstitutionResult) -> dict:
    """Convert SubstitutionResult to JSON-serializable dict."""
    d = {
        "status": result.status,
        "file": result.file,
        "matches": result.matches,
        "realigned_lines": result.realigned_lines,
    }
    if result.dry_run:
        d["dry_run"] = True
    if result.error is not None:
        d["error"] = result.error
    if result.diff:
        d["diff"] = result.diff
    return d


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="lineup",
        description="Substitute text and keep the alignment of parameters "
                    "on the parenthesis",
        usage="%(prog)s [-h] [-n] [--diff] [-v] search-text replacement file\n"
              "WARNING: the script modifies <file>!",
    )
    parser.add_argument("search_text", metavar="search-text", help="Literal text to find")
    parser.add_argument("replacement", help="Replacement text (may be empty)")
    parser.add_argument("file", help="File to modify in place")
    parser.add_argument(
        "-n", "--dry-run",
        action="store_true",
        help="Show what would change without saving",
    )
    parser.add_argument(
        "--diff",
        action="store_true",
        help="Print unified diff to stderr",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Log every match and realigned line to stderr",
    )

    args = parser.parse_args(argv)

    if not args.search_text:
        parser.error("<search-text> must not be empty")
    if not args.file:
        parser.error("<file> must not be empty")

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(name)s: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    result = substitute_file(
        args.file, args.search_text, args.replacement,
        dry_run=args.dry_run,
    )

    if result.status == "error":
        logger.error("%s", result.error)
    elif args.diff and result.diff:
        print(result.diff, file=sys.stderr, end='')

    print(json.dumps(result_to_dict(result), indent=2))

    return 1 if result.status == "error" else 0


if __name__ == "__main__":
    sys.exit(main())
