"""
Rebuild complete corrected files from the original code context and the
accepted step patches.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, Iterable, List, Optional

from ..utils.context_splitter import SplitResult, split_code_context
from ..utils.diff_parser import file_header_lines
from ..utils.patcher import apply_patches_sequentially
from .models import PatchPayload, ReconstructedFile

logger = logging.getLogger(__name__)

DEFAULT_TARGET_FILENAME = "modified_file.txt"
BUNDLE_FILENAME = "corrected_files.txt"

NULL_PATH = "/dev/null"


def header_path(diff_text: str) -> Optional[str]:
    """Path named by the diff's file headers, "+++" before "---", skipping /dev/null."""
    lines = diff_text.split("\n")
    headers = [lines[i] for i in sorted(file_header_lines(lines))]
    for prefix in ("+++", "---"):
        for line in headers:
            if not line.startswith(prefix):
                continue
            # Drop a trailing tab-separated timestamp
            path = line[3:].split("\t")[0].strip()
            if path and path != NULL_PATH:
                return re.sub(r"^[ab]/", "", path)
    return None


def resolve_target(payload: PatchPayload, split_result: SplitResult) -> str:
    """Decide which file of the split context a patch applies to.

    The patch's own +++ (then ---) header wins; otherwise the only file, the
    first file, or a placeholder name when the context had no files.
    """
    path = header_path(payload.diff_text or "")
    if path:
        return path

    files = split_result.files
    if split_result.is_single_file and len(files) == 1:
        return files[0].filename
    if files:
        return files[0].filename
    return DEFAULT_TARGET_FILENAME


def group_patches_by_file(
    executions: Iterable[PatchPayload], split_result: SplitResult
) -> Dict[str, List[PatchPayload]]:
    grouped: Dict[str, List[PatchPayload]] = {}
    for execution in executions:
        if not execution.diff_text:
            continue
        grouped.setdefault(resolve_target(execution, split_result), []).append(execution)
    return grouped


def calculate_change_stats(original: str, corrected: str) -> Dict[str, int]:
    """Position-based line statistics; not a minimal edit distance."""
    original_lines = original.split("\n")
    corrected_lines = corrected.split("\n")

    lines_added = max(0, len(corrected_lines) - len(original_lines))
    lines_removed = max(0, len(original_lines) - len(corrected_lines))
    changed_lines = sum(
        1 for old, new in zip(original_lines, corrected_lines) if old != new
    )

    return {
        "lines_added": lines_added,
        "lines_removed": lines_removed,
        "total_changes": changed_lines + lines_added + lines_removed,
    }


def generate_changes_summary(patch_count: int, stats: Dict[str, int]) -> str:
    if stats["total_changes"] == 0:
        return "No changes applied"

    changes = []
    if stats["lines_added"] > 0:
        changes.append(f"+{stats['lines_added']} lines")
    if stats["lines_removed"] > 0:
        changes.append(f"-{stats['lines_removed']} lines")
    summary = ", ".join(changes) if changes else f"{stats['total_changes']} modifications"

    noun = "patch" if patch_count == 1 else "patches"
    return f"{patch_count} {noun} applied: {summary}"


def reconstruct_files(
    code_context: str, accepted_executions: Iterable[PatchPayload]
) -> List[ReconstructedFile]:
    """Apply every accepted patch to its target file, in acceptance order."""
    split_result = split_code_context(code_context)
    if not split_result.files:
        return []

    grouped = group_patches_by_file(accepted_executions, split_result)
    known = {f.filename for f in split_result.files}
    for target in grouped:
        if target not in known:
            logger.warning(f"Patch target {target!r} is not in the code context; skipped")

    files: List[ReconstructedFile] = []
    for source in split_result.files:
        patches = grouped.get(source.filename, [])
        chain = apply_patches_sequentially(source.content, patches)
        stats = calculate_change_stats(source.content, chain.content)
        if chain.skipped_deletions:
            logger.warning(
                f"{source.filename}: {chain.skipped_deletions} deletion(s) fell outside the file"
            )
        files.append(ReconstructedFile(
            filename=source.filename,
            original_content=source.content,
            corrected_content=chain.content,
            language=source.language,
            changes_summary=generate_changes_summary(len(patches), stats),
            patches_applied=chain.applied,
            patches_failed=chain.failed,
            skipped_deletions=chain.skipped_deletions,
            **stats,
        ))
    return files


def bundle_ready_files(files: List[ReconstructedFile]) -> Optional[str]:
    """Text for the "download ready files" action.

    One file is returned as-is; several are concatenated with
    "=== <filename> ===" separators.
    """
    if not files:
        return None
    if len(files) == 1:
        return files[0].corrected_content
    return "\n\n".join(f"=== {f.filename} ===\n{f.corrected_content}" for f in files)


def ready_files_filename(files: List[ReconstructedFile]) -> str:
    if len(files) == 1:
        return files[0].filename
    return BUNDLE_FILENAME
