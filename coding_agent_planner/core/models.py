"""
Value types shared by the parsers, the patch engine and the exporter.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional


class PatchFormat(str, Enum):
    UNIFIED_DIFF = "unified_diff"
    FULL_FILE = "full_file"


OUTPUT_TYPES = ("instruction", "patch", "file_replace")


@dataclass
class StepOutput:
    type: str
    patch_format: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"type": self.type}
        if self.patch_format is not None:
            data["patch_format"] = self.patch_format
        return data


@dataclass
class Step:
    id: str
    title: str
    description: str
    input_files: Optional[List[str]] = None
    output: Optional[StepOutput] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
        }
        if self.input_files is not None:
            data["input_files"] = list(self.input_files)
        if self.output is not None:
            data["output"] = self.output.to_dict()
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Step":
        output = data.get("output")
        return cls(
            id=data["id"],
            title=data["title"],
            description=data["description"],
            input_files=data.get("input_files"),
            output=StepOutput(**output) if isinstance(output, dict) else None,
        )


@dataclass
class Plan:
    task: str
    steps: List[Step]
    language: Optional[str] = None
    file: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"task": self.task}
        if self.language:
            data["language"] = self.language
        if self.file:
            data["file"] = self.file
        data["steps"] = [s.to_dict() for s in self.steps]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Plan":
        return cls(
            task=data["task"],
            steps=[Step.from_dict(s) for s in data.get("steps", [])],
            language=data.get("language"),
            file=data.get("file"),
        )


@dataclass
class PatchPayload:
    """Normalized result of executing one plan step."""

    step_id: str
    format: PatchFormat
    diff_text: str
    explanation: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step_id": self.step_id,
            "suggested_patch": {"format": self.format.value, "diff": self.diff_text},
            "explanation": self.explanation,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PatchPayload":
        patch = data.get("suggested_patch") or {}
        return cls(
            step_id=data.get("step_id", ""),
            format=PatchFormat(patch.get("format", PatchFormat.UNIFIED_DIFF.value)),
            diff_text=patch.get("diff", ""),
            explanation=data.get("explanation", ""),
        )


@dataclass
class AcceptedStep:
    step: Step
    execution: Optional[PatchPayload]
    accepted: bool = False

    @property
    def participates(self) -> bool:
        return self.execution is not None and self.accepted is True


@dataclass
class ReconstructedFile:
    filename: str
    original_content: str
    corrected_content: str
    language: str
    lines_added: int = 0
    lines_removed: int = 0
    total_changes: int = 0
    changes_summary: str = "No changes applied"
    patches_applied: int = 0
    patches_failed: int = 0
    skipped_deletions: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "originalContent": self.original_content,
            "correctedContent": self.corrected_content,
            "language": self.language,
            "linesAdded": self.lines_added,
            "linesRemoved": self.lines_removed,
            "totalChanges": self.total_changes,
            "changesSummary": self.changes_summary,
            "patchesApplied": self.patches_applied,
            "patchesFailed": self.patches_failed,
            "skippedDeletions": self.skipped_deletions,
        }

