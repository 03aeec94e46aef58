"""
Tests para la normalización de respuestas del modelo
"""

import json
from unittest.mock import patch

import pytest

from coding_agent_planner.core.models import PatchFormat
from coding_agent_planner.core.parsers import (
    extract_error_info,
    extract_step_execution_manually,
    fix_malformed_json_diff,
    normalize_output_type,
    normalize_step_execution,
    parse_plan_response,
    parse_step_execution_response,
    sanitize_json_response,
    validate_json_structure,
)
from coding_agent_planner.exceptions import ParseError


def _execution(**overrides):
    data = {
        "step_id": "step_1",
        "suggested_patch": {"format": "unified_diff", "diff": "@@ -1 +1 @@\n-a\n+b"},
        "explanation": "Replace a with b",
    }
    data.update(overrides)
    return data


class TestNormalizeStepExecution:

    def test_tier1_valid_json_in_fence(self):
        response = "Here you go:\n```json\n" + json.dumps(_execution()) + "\n```"
        with patch("coding_agent_planner.core.parsers.fix_malformed_json_diff") as fix, \
                patch("coding_agent_planner.core.parsers.extract_step_execution_manually") as manual:
            payload, tier = normalize_step_execution(response)
        assert tier == 1
        fix.assert_not_called()
        manual.assert_not_called()
        assert payload.step_id == "step_1"
        assert payload.format is PatchFormat.UNIFIED_DIFF
        assert payload.diff_text == "@@ -1 +1 @@\n-a\n+b"

    def test_tier2_raw_newlines_in_diff(self):
        response = (
            '{"step_id": "s1", "suggested_patch": {"format": "unified_diff", '
            '"diff": "@@ -1 +1 @@\n-a\n\t+b"}, "explanation": "x"}'
        )
        payload, tier = normalize_step_execution(response)
        assert tier == 2
        assert payload.diff_text == "@@ -1 +1 @@\n-a\n\t+b"

    def test_tier2_stray_backslash_in_diff(self):
        response = (
            '{"step_id": "s1", "suggested_patch": {"format": "unified_diff", '
            '"diff": "+re = /\\d+/"}, "explanation": "x"}'
        )
        payload, tier = normalize_step_execution(response)
        assert tier == 2
        assert payload.diff_text == "+re = /\\d+/"

    def test_tier3_manual_extraction(self):
        response = (
            '{"step_id": "s1", "suggested_patch": {"format": "unified_diff", '
            '"diff": "-a\\n+b"}, "explanation": "ok",}'
        )
        payload, tier = normalize_step_execution(response)
        assert tier == 3
        assert payload.step_id == "s1"
        assert payload.diff_text == "-a\n+b"
        assert payload.explanation == "ok"

    def test_no_json_raises(self):
        with pytest.raises(ParseError, match="No JSON object found"):
            normalize_step_execution("I cannot do that.")

    def test_missing_explanation_fails_all_tiers(self):
        data = _execution()
        del data["explanation"]
        response = json.dumps(data)
        with pytest.raises(ParseError, match="explanation") as exc:
            normalize_step_execution(response)
        assert exc.value.original_response == response

    def test_invalid_format(self):
        response = json.dumps(_execution(suggested_patch={"format": "zip", "diff": "+a"}))
        with pytest.raises(ParseError, match="Invalid patch format"):
            parse_step_execution_response(response)

    def test_values_are_stripped(self):
        payload = parse_step_execution_response(json.dumps(_execution(step_id="  s9 ", explanation=" e ")))
        assert payload.step_id == "s9"
        assert payload.explanation == "e"


def test_fix_malformed_json_diff_keeps_valid_escapes():
    fixed = fix_malformed_json_diff('{"diff": "a\\nb\nc\\"d"}')
    assert json.loads(fixed) == {"diff": 'a\nb\nc"d'}


def test_extract_step_execution_manually_partial():
    assert extract_step_execution_manually('{"step_id": "s1", broken') == {"step_id": "s1"}


class TestParsePlanResponse:

    def test_plan_with_chatter_and_synonyms(self):
        plan = {
            "task": " Add validation ",
            "language": "python",
            "steps": [
                {"id": "step_1", "title": "Validate", "description": "Add check",
                 "input_files": ["app.py"], "output": {"type": "code", "patch_format": "unified_diff"}},
                {"id": "step_2", "title": "Docs", "description": "Explain",
                 "output": {"type": "guidance"}},
            ],
        }
        result = parse_plan_response("Sure! " + json.dumps(plan) + " Hope it helps.")
        assert result.task == "Add validation"
        assert result.language == "python"
        assert result.file is None
        assert [s.output.type for s in result.steps] == ["patch", "instruction"]
        assert result.steps[0].input_files == ["app.py"]

    def test_invalid_output_type(self):
        plan = {"task": "t", "steps": [{"id": "s", "title": "t", "description": "d",
                                        "output": {"type": "banana"}}]}
        with pytest.raises(ParseError, match="Step 1: Invalid output type"):
            parse_plan_response(json.dumps(plan))

    def test_empty_steps(self):
        with pytest.raises(ParseError, match="Steps array cannot be empty"):
            parse_plan_response('{"task": "t", "steps": []}')

    def test_missing_step_field(self):
        plan = {"task": "t", "steps": [{"id": "s", "title": "t", "description": "d"}, {"id": "s2"}]}
        with pytest.raises(ParseError, match='Step 2: Missing or invalid "title"'):
            parse_plan_response(json.dumps(plan))

    def test_invalid_json(self):
        with pytest.raises(ParseError, match="Invalid JSON format"):
            parse_plan_response('{"task": "t", steps}')


def test_normalize_output_type():
    assert normalize_output_type("file") == "file_replace"
    assert normalize_output_type("diff") == "patch"
    assert normalize_output_type("patch") == "patch"
    assert normalize_output_type(None) is None


def test_sanitize_json_response():
    cleaned = sanitize_json_response('```json\n{task: "x", "steps": [1,],}\n```')
    assert json.loads(cleaned) == {"task": "x", "steps": [1]}
    assert validate_json_structure('```json\n{task: "x", "steps": [1,],}\n```') is True
    assert validate_json_structure("nothing here") is False


def test_extract_error_info():
    info = extract_error_info("no json")
    assert info["hasJson"] is False
    assert "No JSON object found in response" in info["errorHints"]

    info = extract_error_info('```\n{"task": "t"}\n```')
    assert info["hasJson"] is True
    assert "Response contains markdown code blocks" in info["errorHints"]
    assert 'Missing required "steps" field' in info["errorHints"]
