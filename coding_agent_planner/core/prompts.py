"""
Prompt templates for the generation service, plus input sanitizing and validation.
"""

import re
from typing import Dict, List, Optional

from ..config.settings import settings
from ..exceptions import ValidationError

PLAN_PROMPT = """You are a coding assistant that creates step-by-step implementation plans. Given code context and user intent, generate a detailed plan with discrete, actionable steps.

## Context
{language_context}{file_context}

## Code Context
```
{code_context}
```

## User Intent
{intent}

## Instructions
Create a plan with steps that are:
1. Discrete and actionable
2. Focused on specific code changes
3. Ordered logically for implementation
4. Clear about input files and expected output

Return your response as a JSON object with this exact structure:
{{
  "task": "{intent}",
  "language": "{language}",
  "file": "{file}",
  "steps": [
    {{
      "id": "step_1",
      "title": "Brief step title",
      "description": "Detailed description of what to implement",
      "input_files": ["file1.ts", "file2.ts"],
      "output": {{
        "type": "patch",
        "patch_format": "unified_diff"
      }}
    }}
  ]
}}

Generate 3-8 steps that cover the complete implementation. Each step should be implementable independently."""

STEP_PROMPT = """You are a coding assistant that implements specific code changes. Given a step description and code context, generate the exact code changes needed.

## Step to Implement
**Title:** {title}
**Description:** {description}{input_files_context}

## Current Code Context
```
{code_context}
```

## Instructions
Implement the requested step by generating the exact code changes. Focus on:
1. Making minimal, targeted changes
2. Following best practices and existing code patterns
3. Ensuring the change is complete and functional
4. Providing clear explanations

Return your response as a JSON object with this exact structure:
{{
  "step_id": "step_id_here",
  "suggested_patch": {{
    "format": "unified_diff",
    "diff": "--- a/file.ts\\n+++ b/file.ts\\n@@ -1,3 +1,4 @@\\n line1\\n+new line\\n line2"
  }},
  "explanation": "Clear explanation of what was changed and why"
}}

Generate a unified diff format patch that can be applied to the codebase."""


def generate_plan_prompt(
    code_context: str, intent: str, language: Optional[str] = None, file: Optional[str] = None
) -> str:
    return PLAN_PROMPT.format(
        language_context=f"\nProgramming Language: {language}" if language else "",
        file_context=f"\nTarget File: {file}" if file else "",
        code_context=code_context,
        intent=intent,
        language=language or "auto-detect",
        file=file or "auto-detect",
    )


def generate_step_execution_prompt(
    step_title: str,
    step_description: str,
    code_context: str,
    input_files: Optional[List[str]] = None,
) -> str:
    return STEP_PROMPT.format(
        title=step_title,
        description=step_description,
        input_files_context=f"\nInput Files: {', '.join(input_files)}" if input_files else "",
        code_context=code_context,
    )


def replace_template_variables(template: str, variables: Dict[str, str]) -> str:
    """Substitute ${name} placeholders."""
    result = template
    for key, value in variables.items():
        result = result.replace("${" + key + "}", value)
    return result


def sanitize_input(text: str) -> str:
    """Neutralize fences and headings a user could use to steer the prompt."""
    text = text.replace("```", "\\`\\`\\`")
    text = re.sub(r"\n\s*##\s", "\n\\\\## ", text)
    text = re.sub(r"\n\s*\*\*Instructions\*\*", "\n\\\\**Instructions**", text, flags=re.IGNORECASE)
    return text.strip()


def _check_context_size(code_context: str) -> None:
    limit = settings.max_context_chars
    if len(code_context) > limit:
        raise ValidationError(f"Code context is too large (max {limit:,} characters)")


def validate_prompt_context(code_context: str, intent: str, require_context: bool = True) -> None:
    if require_context and (not code_context or not code_context.strip()):
        raise ValidationError("Code context is required")
    if not intent or not intent.strip():
        raise ValidationError("Intent is required")
    _check_context_size(code_context)
    if len(intent) > settings.max_intent_chars:
        raise ValidationError(f"Intent is too long (max {settings.max_intent_chars:,} characters)")


def validate_step_execution_context(
    step_title: str,
    step_description: str,
    code_context: str,
    input_files: Optional[List[str]] = None,
) -> None:
    if not step_title or not step_title.strip():
        raise ValidationError("Step title is required")
    if not step_description or not step_description.strip():
        raise ValidationError("Step description is required")
    if not code_context or not code_context.strip():
        raise ValidationError("Code context is required")
    _check_context_size(code_context)
    if input_files is not None and not all(isinstance(f, str) for f in input_files):
        raise ValidationError("All input files must be strings")
