"""
Export utilities: combine accepted step patches into one .patch file.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from ..exceptions import ValidationError
from .models import AcceptedStep, PatchFormat, Plan, Step

EXPORT_FORMATS = [
    {"value": "unified_diff", "label": "Unified Diff", "description": "Standard diff format"},
    {"value": "git_patch", "label": "Git Patch", "description": "Git-compatible patch format"},
    {"value": "combined", "label": "Combined", "description": "All changes in one file"},
]
EXPORT_FORMAT_VALUES = [f["value"] for f in EXPORT_FORMATS]


@dataclass
class ExportOptions:
    format: str = "unified_diff"
    include_metadata: bool = True
    filename: Optional[str] = None

    def __post_init__(self):
        if self.format not in EXPORT_FORMAT_VALUES:
            raise ValidationError(
                f"Invalid export format. Must be one of: {', '.join(EXPORT_FORMAT_VALUES)}"
            )


def _iso_timestamp(now: Optional[datetime] = None) -> str:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def generate_patch_header(
    plan: Plan, accepted_steps: List[AcceptedStep], now: Optional[datetime] = None
) -> str:
    accepted_count = sum(1 for item in accepted_steps if item.participates)

    header = "# Coding Agent Planner - Generated Patch\n"
    header += f"# Generated: {_iso_timestamp(now)}\n"
    header += f"# Task: {plan.task}\n"
    if plan.language:
        header += f"# Language: {plan.language}\n"
    if plan.file:
        header += f"# Primary File: {plan.file}\n"
    header += f"# Steps Applied: {accepted_count}/{len(plan.steps)}\n"
    header += "\n"
    return header


def format_as_git_patch(patch: str, step: Step) -> str:
    """Give a bare hunk list the diff --git / index headers git apply expects."""
    if "diff --git" in patch or "index " in patch:
        return patch
    if "---" in patch and "+++" in patch:
        return patch

    filename = step.input_files[0] if step.input_files else "unknown.txt"
    git_patch = f"diff --git a/{filename} b/{filename}\n"
    git_patch += "index 0000000..0000000 100644\n"
    return git_patch + patch


def generate_combined_patch(
    plan: Plan,
    accepted_steps: List[AcceptedStep],
    options: Optional[ExportOptions] = None,
    now: Optional[datetime] = None,
) -> str:
    """Concatenate the accepted step patches, in plan order.

    The "combined" format always annotates each step, even without the
    metadata header.
    """
    options = options or ExportOptions()
    annotate = options.include_metadata or options.format == "combined"

    content = generate_patch_header(plan, accepted_steps, now) if options.include_metadata else ""

    for index, item in enumerate(i for i in accepted_steps if i.participates):
        step, execution = item.step, item.execution
        if index > 0:
            content += "\n\n"

        if annotate:
            content += f"# Step {step.id}: {step.title}\n"
            content += f"# {step.description}\n"
            if execution.explanation:
                content += f"# Explanation: {execution.explanation}\n"
            content += "\n"

        if options.format == "git_patch" and execution.format is PatchFormat.UNIFIED_DIFF:
            content += format_as_git_patch(execution.diff_text, step)
        else:
            content += execution.diff_text

    return content


def generate_patch_filename(plan: Plan, ext: str = "patch", now: Optional[datetime] = None) -> str:
    timestamp = re.sub(r"[:.]", "-", _iso_timestamp(now)[:19])
    task_name = re.sub(r"[^a-z0-9\s]", "", plan.task.lower())
    task_name = re.sub(r"\s+", "-", task_name)[:30]
    return f"{task_name}-{timestamp}.{ext}"


def export_accepted_changes(
    plan: Plan,
    accepted_steps: List[AcceptedStep],
    out_dir: str | Path = ".",
    options: Optional[ExportOptions] = None,
) -> Path:
    """Write the combined patch to out_dir and return its path."""
    options = options or ExportOptions()
    content = generate_combined_patch(plan, accepted_steps, options)
    out = Path(out_dir)
    out.mkdir(parents=True, exist_ok=True)
    target = out / (options.filename or generate_patch_filename(plan, "patch"))
    target.write_text(content, encoding="utf-8")
    return target
