"""
lineup Python wrapper — importable API for alignment-preserving substitution.

Zero dependencies (like lineup.py itself). Import and use directly:

    from lineup_wrapper import Lineup

    lu = Lineup()
    result = lu.substitute("file.c", "function_call", "another_beautiful_name")
    print(result.success, result.matches, result.realigned_lines)
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Optional

# Import core functions from lineup.py (same directory)
from lineup import (
    substitute_file,
    substitute_text as _substitute_text,
)


@dataclass
class SubstituteResponse:
    """Result of a substitution."""
    success: bool
    file: str
    matches: int = 0
    realigned_lines: int = 0
    error: Optional[str] = None
    diff: Optional[str] = None

    def to_dict(self) -> dict:
        d = {
            "success": self.success,
            "file": self.file,
            "matches": self.matches,
            "realigned_lines": self.realigned_lines,
        }
        if self.error:
            d["error"] = self.error
        if self.diff:
            d["diff"] = self.diff
        return d

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)


class Lineup:
    """
    Alignment-preserving substitution toolkit.

    Usage:
        lu = Lineup(show_diff=True)
        result = lu.substitute("file.c", "old_name", "new_name")
        text = lu.substitute_text(source, "old_name", "new_name")
        diff_str = lu.preview("file.c", "old_name", "new_name")
    """

    def __init__(self, show_diff: bool = False, dry_run: bool = False):
        self.show_diff = show_diff
        self.dry_run = dry_run

    def substitute(
        self,
        file: str,
        search_text: str,
        replacement: str,
        show_diff: Optional[bool] = None,
        dry_run: Optional[bool] = None,
    ) -> SubstituteResponse:
        """
        Replace every occurrence of search_text in a file, keeping alignment.

        Args:
            file: Path to the file to modify in place.
            search_text: Literal, case-sensitive text to find.
            replacement: Replacement text (may be empty).
            show_diff: Include unified diff in response.
            dry_run: Compute the result without saving.

        Returns:
            SubstituteResponse; success is True also when nothing matched.
        """
        do_diff = show_diff if show_diff is not None else self.show_diff
        do_dry_run = dry_run if dry_run is not None else self.dry_run

        if not search_text:
            return SubstituteResponse(success=False, file=file, error="search text must not be empty")

        result = substitute_file(file, search_text, replacement, dry_run=do_dry_run)
        ok = result.status != "error"

        return SubstituteResponse(
            success=ok,
            file=file,
            matches=result.matches,
            realigned_lines=result.realigned_lines,
            error=result.error,
            diff=result.diff if do_diff and ok else None,
        )

    def substitute_text(self, text: str, search_text: str, replacement: str) -> str:
        """
        Substitute in a string instead of a file.

        Raises:
            ValueError: search_text is empty.
            LineupError: a line cannot be realigned.
        """
        new_text, _ = _substitute_text(text, search_text, replacement)
        return new_text

    def preview(self, file: str, search_text: str, replacement: str) -> Optional[str]:
        """
        Preview the diff a substitution would produce, without saving.

        Returns:
            Unified diff string ("" when nothing matches), or None on error.
        """
        try:
            result = substitute_file(file, search_text, replacement, dry_run=True)
        except ValueError:
            return None
        if result.status == "error":
            return None
        return result.diff or ""
