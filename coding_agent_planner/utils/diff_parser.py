"""
Display-oriented parser for the patch dialect emitted by the generation service.

Every input line becomes one DiffLine. Lines that do not look like diff
syntax are kept as context so a slightly malformed patch still renders.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set, Tuple, Union

from ..core.models import PatchFormat

HUNK_HEADER_RE = re.compile(
    r"^@@\s+-(?P<sline>\d+)(?:,(?P<slen>\d+))?\s+\+(?P<dline>\d+)(?:,(?P<dlen>\d+))?\s+@@"
)


class DiffLineKind(str, Enum):
    CONTEXT = "context"
    ADDITION = "addition"
    DELETION = "deletion"
    FILE_HEADER = "file_header"
    HUNK_HEADER = "hunk_header"


@dataclass
class DiffLine:
    kind: DiffLineKind
    text: str
    old_line_number: Optional[int] = None
    new_line_number: Optional[int] = None

    def to_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {"type": self.kind.value, "content": self.text}
        numbers = {}
        if self.old_line_number is not None:
            numbers["old"] = self.old_line_number
        if self.new_line_number is not None:
            numbers["new"] = self.new_line_number
        if numbers:
            data["lineNumber"] = numbers
        return data


def _parse_hunk_header(header: str) -> Tuple[int, int, int, int]:
    # Format: @@ -l,s +l,s @@ optional
    m = HUNK_HEADER_RE.match(header)
    if not m:
        raise ValueError(f"Invalid hunk header: {header}")
    sline = int(m.group("sline"))
    slen = int(m.group("slen") or 1)
    dline = int(m.group("dline"))
    dlen = int(m.group("dlen") or 1)
    return sline, slen, dline, dlen


def parse_hunk_header(header: str) -> Optional[Tuple[int, int]]:
    """Return (old_start, new_start) for a hunk header, or None if it doesn't parse."""
    try:
        sline, _, dline, _ = _parse_hunk_header(header)
    except ValueError:
        return None
    return sline, dline


def file_header_lines(lines: List[str]) -> Set[int]:
    """Indexes of the ---/+++ file header lines in a split diff.

    Before the first hunk every ---/+++ line is a header. Inside a hunk only a
    "--- " line directly followed by a "+++ " line starts a new file section;
    any other line there is a deletion or addition ("--- note" removes "-- note").
    """
    headers: Set[int] = set()
    in_hunk = False
    for i, line in enumerate(lines):
        if line.startswith("@@"):
            in_hunk = True
        elif not in_hunk and (line.startswith("---") or line.startswith("+++")):
            headers.add(i)
        elif line.startswith("--- ") and i + 1 < len(lines) and lines[i + 1].startswith("+++ "):
            headers.update((i, i + 1))
            in_hunk = False
    return headers


def parse_diff(
    diff_text: str, patch_format: Union[PatchFormat, str] = PatchFormat.UNIFIED_DIFF
) -> List[DiffLine]:
    """Parse patch text into typed lines with old/new line numbers.

    Never raises: unknown line shapes are recorded as context, and a hunk
    header that doesn't match keeps the previous cursors.
    """
    lines = diff_text.split("\n")

    if PatchFormat(patch_format) is PatchFormat.FULL_FILE:
        return [
            DiffLine(DiffLineKind.CONTEXT, line, new_line_number=i + 1)
            for i, line in enumerate(lines)
        ]

    parsed: List[DiffLine] = []
    old_line = 0
    new_line = 0

    headers = file_header_lines(lines)

    for i, line in enumerate(lines):
        if line.startswith("@@"):
            starts = parse_hunk_header(line)
            if starts:
                old_line, new_line = starts
            parsed.append(DiffLine(DiffLineKind.HUNK_HEADER, line))
        elif i in headers:
            parsed.append(DiffLine(DiffLineKind.FILE_HEADER, line))
        elif line.startswith("+"):
            parsed.append(DiffLine(DiffLineKind.ADDITION, line[1:], new_line_number=new_line))
            new_line += 1
        elif line.startswith("-"):
            parsed.append(DiffLine(DiffLineKind.DELETION, line[1:], old_line_number=old_line))
            old_line += 1
        else:
            # Context, blank lines and anything unrecognized share the same accounting
            text = line[1:] if line.startswith(" ") else line
            parsed.append(DiffLine(DiffLineKind.CONTEXT, text, old_line, new_line))
            old_line += 1
            new_line += 1

    return parsed


def diff_stats(lines: List[DiffLine]) -> Dict[str, int]:
    """Counters shown under a rendered diff."""
    return {
        "lines": len(lines),
        "additions": sum(1 for l in lines if l.kind is DiffLineKind.ADDITION),
        "deletions": sum(1 for l in lines if l.kind is DiffLineKind.DELETION),
    }
