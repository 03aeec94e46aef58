"""
Parsing of generation-service responses into plans and patch payloads.

Model output is free text that usually, but not always, contains valid JSON.
Step results go through three recovery tiers before giving up:

1. strict ``json.loads`` of the outermost ``{...}`` span
2. re-escape the ``"diff"`` string (raw newlines/tabs, stray backslashes) and parse again
3. pull ``step_id``, ``explanation`` and ``suggested_patch`` out with regexes
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Dict, List, Optional, Tuple

from ..exceptions import ParseError
from .models import OUTPUT_TYPES, PatchFormat, PatchPayload, Plan, Step, StepOutput

logger = logging.getLogger(__name__)

JSON_SPAN_RE = re.compile(r"\{.*\}", re.DOTALL)
LEADING_FENCE_RE = re.compile(r"^```(?:json)?\s*", re.MULTILINE)
TRAILING_FENCE_RE = re.compile(r"\s*```\s*$", re.MULTILINE)

DIFF_FIELD_RE = re.compile(r'"diff":\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
VALID_ESCAPE_RE = re.compile(r'\\(["\\/bfnrt]|u[0-9a-fA-F]{4})')

STEP_ID_RE = re.compile(r'"step_id":\s*"([^"]+)"')
EXPLANATION_RE = re.compile(r'"explanation":\s*"((?:[^"\\]|\\.)*)"', re.DOTALL)
SUGGESTED_PATCH_RE = re.compile(r'"suggested_patch":\s*\{([^}]*(?:\{[^}]*\}[^}]*)*)\}')
FORMAT_RE = re.compile(r'"format":\s*"([^"]+)"')
LOOSE_DIFF_RE = re.compile(r'"diff":\s*"(.*?)"\s*\}', re.DOTALL)

# Output types the model tends to invent, mapped onto the accepted ones
OUTPUT_TYPE_SYNONYMS = {
    "file": "file_replace",
    "code": "patch",
    "diff": "patch",
    "console_output": "instruction",
    "output": "instruction",
    "guidance": "instruction",
}

VALID_PATCH_FORMATS = [f.value for f in PatchFormat]


def _extract_json_span(response: str) -> str:
    text = LEADING_FENCE_RE.sub("", response, count=1)
    text = TRAILING_FENCE_RE.sub("", text, count=1)
    m = JSON_SPAN_RE.search(text)
    if not m:
        raise ParseError("No JSON object found in response", response)
    return m.group(0)


def _escape_diff_content(content: str) -> str:
    out = []
    i = 0
    while i < len(content):
        ch = content[i]
        if ch == "\\":
            m = VALID_ESCAPE_RE.match(content, i)
            if m:
                out.append(m.group(0))
                i = m.end()
                continue
            out.append("\\\\")
        elif ch == "\n":
            out.append("\\n")
        elif ch == "\r":
            out.append("\\r")
        elif ch == "\t":
            out.append("\\t")
        else:
            out.append(ch)
        i += 1
    return "".join(out)


def fix_malformed_json_diff(json_string: str) -> str:
    """Re-escape the contents of every "diff" string so json.loads accepts them."""
    return DIFF_FIELD_RE.sub(
        lambda m: '"diff": "' + _escape_diff_content(m.group(1)) + '"', json_string
    )


def _unescape(value: str) -> str:
    return value.replace("\\n", "\n").replace("\\t", "\t").replace('\\"', '"')


def extract_step_execution_manually(json_string: str) -> Dict[str, Any]:
    """Last resort: pick the fields out of broken JSON one by one."""
    result: Dict[str, Any] = {}

    m = STEP_ID_RE.search(json_string)
    if m:
        result["step_id"] = m.group(1)

    m = EXPLANATION_RE.search(json_string)
    if m:
        result["explanation"] = _unescape(m.group(1))

    m = SUGGESTED_PATCH_RE.search(json_string)
    if m:
        fmt = FORMAT_RE.search(m.group(1))
        # The diff may contain braces, so search the whole string for it
        diff = LOOSE_DIFF_RE.search(json_string)
        if fmt and diff:
            result["suggested_patch"] = {
                "format": fmt.group(1),
                "diff": _unescape(diff.group(1)),
            }

    return result


def validate_step_execution(parsed: Any, response: Optional[str] = None) -> PatchPayload:
    """Check the recovered structure and build a PatchPayload."""
    if not isinstance(parsed, dict):
        raise ParseError("Step execution must be a JSON object", response)

    step_id = parsed.get("step_id")
    if not step_id or not isinstance(step_id, str):
        raise ParseError('Missing or invalid "step_id" field', response)

    patch = parsed.get("suggested_patch")
    if not patch or not isinstance(patch, dict):
        raise ParseError('Missing or invalid "suggested_patch" object', response)

    fmt = patch.get("format")
    if not fmt or not isinstance(fmt, str):
        raise ParseError("Missing or invalid patch format", response)

    diff = patch.get("diff")
    if not diff or not isinstance(diff, str):
        raise ParseError("Missing or invalid patch diff", response)

    explanation = parsed.get("explanation")
    if not explanation or not isinstance(explanation, str):
        raise ParseError('Missing or invalid "explanation" field', response)

    if fmt not in VALID_PATCH_FORMATS:
        raise ParseError(
            f"Invalid patch format. Must be one of: {', '.join(VALID_PATCH_FORMATS)}", response
        )

    return PatchPayload(
        step_id=step_id.strip(),
        format=PatchFormat(fmt),
        diff_text=diff,
        explanation=explanation.strip(),
    )


def normalize_step_execution(response: str) -> Tuple[PatchPayload, int]:
    """Recover a PatchPayload from model output.

    Returns the payload and the tier (1, 2 or 3) that produced it. Raises
    ParseError only when all three tiers fail.
    """
    raw_json = _extract_json_span(response)

    try:
        return validate_step_execution(json.loads(raw_json), response), 1
    except (ValueError, ParseError) as e:
        logger.debug(f"Strict parse failed: {e}")

    try:
        fixed = fix_malformed_json_diff(raw_json)
        return validate_step_execution(json.loads(fixed), response), 2
    except (ValueError, ParseError) as e:
        logger.debug(f"Diff re-escape failed: {e}")

    manual = extract_step_execution_manually(raw_json)
    payload = validate_step_execution(manual, response)
    logger.info("Step execution recovered by manual field extraction")
    return payload, 3


def parse_step_execution_response(response: str) -> PatchPayload:
    payload, _ = normalize_step_execution(response)
    return payload


def normalize_output_type(output_type: Optional[str]) -> Optional[str]:
    if output_type and output_type in OUTPUT_TYPE_SYNONYMS:
        return OUTPUT_TYPE_SYNONYMS[output_type]
    return output_type


def validate_step(step: Any, index: int) -> Step:
    """Validate a single plan step; index is zero-based."""
    prefix = f"Step {index + 1}:"

    if not isinstance(step, dict):
        raise ParseError(f"{prefix} Step must be an object")

    for key in ("id", "title", "description"):
        if not step.get(key) or not isinstance(step.get(key), str):
            raise ParseError(f'{prefix} Missing or invalid "{key}" field')

    input_files = step.get("input_files")
    if input_files is not None:
        if not isinstance(input_files, list):
            raise ParseError(f'{prefix} "input_files" must be an array')
        if not all(isinstance(f, str) for f in input_files):
            raise ParseError(f'{prefix} All "input_files" must be strings')

    output = None
    raw_output = step.get("output")
    if raw_output is not None:
        if not isinstance(raw_output, dict):
            raise ParseError(f'{prefix} "output" must be an object')
        received = raw_output.get("type")
        output_type = normalize_output_type(received)
        if output_type != received:
            logger.debug(f'{prefix} Mapping output type "{received}" to "{output_type}"')
        if not output_type or output_type not in OUTPUT_TYPES:
            raise ParseError(
                f"{prefix} Invalid output type. Must be one of: {', '.join(OUTPUT_TYPES)}. "
                f"Received: {received}"
            )
        output = StepOutput(type=output_type, patch_format=raw_output.get("patch_format"))

    return Step(
        id=step["id"].strip(),
        title=step["title"].strip(),
        description=step["description"].strip(),
        input_files=input_files,
        output=output,
    )


def parse_plan_response(response: str) -> Plan:
    """Parse and validate a Plan response from the model."""
    logger.debug(f"Raw plan response: {response}")
    m = JSON_SPAN_RE.search(response)
    if not m:
        raise ParseError("No JSON object found in response", response)

    try:
        parsed = json.loads(m.group(0))
    except ValueError as e:
        raise ParseError(f"Invalid JSON format: {e}", response)

    if not isinstance(parsed, dict):
        raise ParseError("Plan must be a JSON object", response)
    if not parsed.get("task") or not isinstance(parsed["task"], str):
        raise ParseError('Missing or invalid "task" field', response)
    steps = parsed.get("steps")
    if not isinstance(steps, list):
        raise ParseError('Missing or invalid "steps" array', response)
    if not steps:
        raise ParseError("Steps array cannot be empty", response)

    return Plan(
        task=parsed["task"].strip(),
        steps=[validate_step(s, i) for i, s in enumerate(steps)],
        language=parsed.get("language") or None,
        file=parsed.get("file") or None,
    )


def sanitize_json_response(response: str) -> str:
    """Strip fences and chatter, and fix trailing commas and bare keys."""
    cleaned = response.strip()
    cleaned = re.sub(r"```json\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"```\s*$", "", cleaned)
    cleaned = re.sub(r"^Here's the.*?:\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r"^The response is:\s*", "", cleaned, flags=re.IGNORECASE)
    cleaned = re.sub(r",(\s*[}\]])", r"\1", cleaned)
    cleaned = re.sub(r'([{,]\s*)(\w+):', r'\1"\2":', cleaned)
    return cleaned


def validate_json_structure(response: str) -> bool:
    m = JSON_SPAN_RE.search(sanitize_json_response(response))
    if not m:
        return False
    try:
        json.loads(m.group(0))
    except ValueError:
        return False
    return True


def extract_error_info(response: str) -> Dict[str, Any]:
    """Hints for why a response could not be parsed."""
    m = JSON_SPAN_RE.search(response)
    hints: List[str] = []

    if not m:
        hints.append("No JSON object found in response")
    else:
        try:
            json.loads(m.group(0))
        except ValueError as e:
            hints.append(f"JSON syntax error: {e}")

    if "```" in response:
        hints.append("Response contains markdown code blocks")
    if '"task"' in response and '"steps"' not in response:
        hints.append('Missing required "steps" field')
    if '"steps"' in response and '"task"' not in response:
        hints.append('Missing required "task" field')

    return {
        "hasJson": m is not None,
        "jsonContent": m.group(0) if m else None,
        "errorHints": hints,
    }
