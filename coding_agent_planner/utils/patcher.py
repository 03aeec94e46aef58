"""
Minimal unified diff patch applier (pure Python) for the generation-service dialect.

Replays hunk operations against a mutable line list:
- "@@ -l,s +l,s @@" moves the cursor to the old start line
- "-" removes the line at the cursor (cursor stays)
- "+" inserts at the cursor (cursor advances)
- " " skips an unchanged line
- "---"/"+++" are file headers only before the first hunk or as a "--- "/"+++ " pair

Limitations:
- Applies hunks at the declared line numbers; no fuzzy matching and no
  context verification
- Out-of-range deletions are skipped (counted in ApplyReport.skipped_deletions)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterable, List

from ..core.models import PatchFormat, PatchPayload
from .diff_parser import file_header_lines, parse_hunk_header

logger = logging.getLogger(__name__)


@dataclass
class ApplyReport:
    content: str
    skipped_deletions: int = 0


@dataclass
class PatchChainResult:
    content: str
    applied: int = 0
    failed: int = 0
    skipped_deletions: int = 0
    errors: List[str] = field(default_factory=list)


def apply_patch_to_lines(original: List[str], diff_text: str) -> ApplyReport:
    # original is a list of lines WITHOUT trailing newlines
    content = original[:]
    pos = 0
    skipped = 0
    lines = diff_text.split("\n")
    headers = file_header_lines(lines)

    for i, line in enumerate(lines):
        if line.startswith("@@"):
            starts = parse_hunk_header(line)
            if starts:
                # Convert 1-based line number to 0-based index
                pos = max(0, starts[0] - 1)
            continue
        if i in headers:
            continue
        if line.startswith("-"):
            if pos < len(content):
                del content[pos]
            else:
                skipped += 1
        elif line.startswith("+"):
            content.insert(pos, line[1:])
            pos += 1
        elif line.startswith("\\"):
            # "\ No newline at end of file"
            continue
        else:
            # Context, including blank lines whose leading space was lost
            pos += 1

    return ApplyReport(content="\n".join(content), skipped_deletions=skipped)


def apply_unified_diff(original_content: str, diff_text: str) -> str:
    """Apply one patch to a text buffer and return the new buffer."""
    report = apply_patch_to_lines(original_content.split("\n"), diff_text)
    if report.skipped_deletions:
        logger.debug("Skipped %d out-of-range deletions", report.skipped_deletions)
    return report.content


def apply_patch_payload(original_content: str, payload: PatchPayload) -> ApplyReport:
    """Apply a normalized step result; full-file payloads replace the content."""
    if payload.format is PatchFormat.FULL_FILE:
        return ApplyReport(content=payload.diff_text)
    return apply_patch_to_lines(original_content.split("\n"), payload.diff_text)


def apply_patches_sequentially(
    original_content: str, payloads: Iterable[PatchPayload]
) -> PatchChainResult:
    """Apply patches in order, each output feeding the next.

    A patch that raises is logged and skipped; the content it would have
    replaced is kept.
    """
    result = PatchChainResult(content=original_content)
    for payload in payloads:
        if not payload.diff_text:
            continue
        try:
            report = apply_patch_payload(result.content, payload)
        except Exception as e:
            logger.warning(f"Failed to apply patch for step {payload.step_id}: {e}")
            result.failed += 1
            result.errors.append(str(e))
            continue
        result.content = report.content
        result.applied += 1
        result.skipped_deletions += report.skipped_deletions
    return result
