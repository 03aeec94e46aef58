"""
Split a pasted "code context" blob into individual source files.

Supported layouts, tried in order (first one that yields files wins):
1. "File: name" / "Filename: name" / "**File:** name" followed by a fenced block
2. Comment headers naming a file ("// a.js", "# b.py", "<!-- c.html -->")
3. Several unlabeled fenced blocks (named file1.<ext>, file2.<ext>, ...)
4. Anything else: one file called main.txt
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Callable, List, Tuple

LANGUAGE_BY_EXTENSION = {
    "js": "javascript",
    "jsx": "javascript",
    "ts": "typescript",
    "tsx": "typescript",
    "py": "python",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "cs": "csharp",
    "php": "php",
    "rb": "ruby",
    "go": "go",
    "rs": "rust",
    "swift": "swift",
    "kt": "kotlin",
    "scala": "scala",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "sass": "sass",
    "json": "json",
    "xml": "xml",
    "yaml": "yaml",
    "yml": "yaml",
    "md": "markdown",
    "sql": "sql",
    "sh": "bash",
    "bash": "bash",
    "zsh": "bash",
    "ps1": "powershell",
}

EXTENSION_BY_LANGUAGE = {
    "javascript": "js",
    "typescript": "ts",
    "python": "py",
    "java": "java",
    "cpp": "cpp",
    "c": "c",
    "csharp": "cs",
    "php": "php",
    "ruby": "rb",
    "go": "go",
    "rust": "rs",
    "swift": "swift",
    "kotlin": "kt",
    "scala": "scala",
    "html": "html",
    "css": "css",
    "scss": "scss",
    "json": "json",
    "xml": "xml",
    "yaml": "yaml",
    "markdown": "md",
    "sql": "sql",
    "bash": "sh",
}

# Checked in order
CONTENT_HEURISTICS: List[Tuple[str, re.Pattern]] = [
    ("python", re.compile(r"^\s*(?:import|from|def|class|if\s+__name__)", re.M)),
    ("javascript", re.compile(r"^\s*(?:function|const|let|var|class|import|export)", re.M)),
    ("typescript", re.compile(r"^\s*(?:interface|type|class|import|export).*:\s*\w", re.M)),
    ("java", re.compile(r"^\s*(?:public|private|class|import|package)", re.M)),
    ("c", re.compile(r"^\s*(?:#include|int\s+main|void\s+\w)", re.M)),
    ("php", re.compile(r"^\s*(?:<\?php|function\s+\w|class\s+\w)", re.M)),
    ("ruby", re.compile(r"^\s*(?:def\s+\w|class\s+\w|module\s+\w)", re.M)),
]

LABELED_FENCE_RE = re.compile(
    r"(?:^|\n)(?:File:|Filename:|\*\*File:\*\*)\s*([^\n]+)\n```(\w+)?\n(.*?)\n```",
    re.IGNORECASE | re.DOTALL,
)
COMMENT_HEADER_RE = re.compile(
    r"(?:^|\n)(?://|#|<!--)\s*([^\n]+?\.\w+)(?:\s*-->)?\n(.*?)"
    r"(?=\n(?://|#|<!--)[^\n]+?\.\w+|\n*\Z)",
    re.IGNORECASE | re.DOTALL,
)
FENCED_BLOCK_RE = re.compile(r"```(\w+)?\n(.*?)\n```", re.DOTALL)
FENCE_MARKER_RE = re.compile(r"```\w*\n?")

FALLBACK_FILENAME = "main.txt"


@dataclass(frozen=True)
class SourceFile:
    filename: str
    content: str
    language: str

    def to_dict(self) -> dict:
        return {"filename": self.filename, "content": self.content, "language": self.language}


@dataclass(frozen=True)
class SplitResult:
    files: List[SourceFile] = field(default_factory=list)
    is_single_file: bool = True

    def to_dict(self) -> dict:
        return {
            "files": [f.to_dict() for f in self.files],
            "isSingleFile": self.is_single_file,
        }


def detect_language_from_filename(filename: str) -> str:
    ext = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return LANGUAGE_BY_EXTENSION.get(ext, "text")


def detect_language_from_content(content: str) -> str:
    for language, pattern in CONTENT_HEURISTICS:
        if pattern.search(content):
            return language
    return "text"


def get_extension_from_language(language: str) -> str:
    return EXTENSION_BY_LANGUAGE.get(language, "txt")


def _labeled_fences(text: str) -> List[SourceFile]:
    files = []
    for m in LABELED_FENCE_RE.finditer(text):
        filename = m.group(1).strip()
        files.append(SourceFile(
            filename=filename,
            content=m.group(3).strip(),
            language=m.group(2) or detect_language_from_filename(filename),
        ))
    return files


def _comment_headers(text: str) -> List[SourceFile]:
    files = []
    for m in COMMENT_HEADER_RE.finditer(text):
        filename = m.group(1).strip()
        files.append(SourceFile(
            filename=filename,
            content=m.group(2).strip(),
            language=detect_language_from_filename(filename),
        ))
    return files


def _unlabeled_fences(text: str) -> List[SourceFile]:
    blocks = list(FENCED_BLOCK_RE.finditer(text))
    # A single unlabeled block is handled by the fallback
    if len(blocks) < 2:
        return []
    return [
        SourceFile(
            filename=f"file{i}.{get_extension_from_language(m.group(1) or 'txt')}",
            content=m.group(2).strip(),
            language=m.group(1) or "text",
        )
        for i, m in enumerate(blocks, start=1)
    ]


def _whole_input(text: str) -> List[SourceFile]:
    cleaned = FENCE_MARKER_RE.sub("", text).strip()
    return [SourceFile(
        filename=FALLBACK_FILENAME,
        content=cleaned,
        language=detect_language_from_content(cleaned),
    )]


SPLIT_RULES: List[Tuple[str, Callable[[str], List[SourceFile]]]] = [
    ("labeled_fences", _labeled_fences),
    ("comment_headers", _comment_headers),
    ("unlabeled_fences", _unlabeled_fences),
    ("whole_input", _whole_input),
]


def split_code_context(text: str) -> SplitResult:
    """Partition a code-context string into source files.

    Blank input gives no files; any other input gives at least one.
    """
    if not text or not text.strip():
        return SplitResult(files=[], is_single_file=True)

    files: List[SourceFile] = []
    for _, rule in SPLIT_RULES:
        files = rule(text)
        if files:
            break
    return SplitResult(files=files, is_single_file=len(files) == 1)
