from unittest.mock import patch

import pytest

from coding_agent_planner.core.models import PatchFormat, PatchPayload
from coding_agent_planner.utils.patcher import (
    apply_patch_payload,
    apply_patch_to_lines,
    apply_patches_sequentially,
    apply_unified_diff,
)


def _payload(diff, step_id="step_1", fmt=PatchFormat.UNIFIED_DIFF):
    return PatchPayload(step_id=step_id, format=fmt, diff_text=diff, explanation="x")


def test_insert_between_context_lines():
    diff = "@@ -1,3 +1,4 @@\n a\n+x\n b\n c"
    assert apply_unified_diff("a\nb\nc", diff) == "a\nx\nb\nc"


def test_delete_middle_line():
    diff = "@@ -1,3 +1,2 @@\n a\n-b\n c"
    assert apply_unified_diff("a\nb\nc", diff) == "a\nc"


def test_replace_line_with_file_headers():
    diff = "--- a/f.txt\n+++ b/f.txt\n@@ -2,1 +2,1 @@\n-b\n+B"
    assert apply_unified_diff("a\nb\nc", diff) == "a\nB\nc"


def test_hunk_header_moves_cursor():
    diff = "@@ -3,1 +3,2 @@\n c\n+d"
    assert apply_unified_diff("a\nb\nc", diff) == "a\nb\nc\nd"


def test_no_newline_marker_is_ignored():
    diff = "@@ -1,1 +1,1 @@\n-a\n+A\n\\ No newline at end of file"
    assert apply_unified_diff("a", diff) == "A"


def test_empty_diff_is_noop():
    assert apply_unified_diff("a\nb", "") == "a\nb"


def test_context_only_diff_is_noop():
    diff = "@@ -1,2 +1,2 @@\n a\n b"
    assert apply_unified_diff("a\nb", diff) == "a\nb"


def test_out_of_range_deletion_is_skipped_and_counted():
    report = apply_patch_to_lines(["a"], "@@ -5,1 +5,0 @@\n-x")
    assert report.content == "a"
    assert report.skipped_deletions == 1


def test_unparseable_hunk_header_keeps_cursor():
    diff = "@@ nonsense @@\n+x"
    assert apply_unified_diff("a\nb", diff) == "x\na\nb"


def test_apply_patch_payload_full_file_replaces_content():
    report = apply_patch_payload("old\ncontent", _payload("new content", fmt=PatchFormat.FULL_FILE))
    assert report.content == "new content"


def test_sequential_application_is_order_sensitive():
    p1 = _payload("@@ -2,1 +2,1 @@\n-b\n+B1", "step_1")
    p2 = _payload("@@ -2,1 +2,1 @@\n-b\n+B2", "step_2")

    forward = apply_patches_sequentially("a\nb\nc", [p1, p2])
    backward = apply_patches_sequentially("a\nb\nc", [p2, p1])

    assert forward.content == "a\nB2\nc"
    assert backward.content == "a\nB1\nc"
    assert forward.content != backward.content
    assert forward.applied == 2


def test_sequential_skips_empty_diffs():
    result = apply_patches_sequentially("a", [_payload("")])
    assert result.content == "a"
    assert result.applied == 0


def test_failing_patch_keeps_previous_content():
    good = _payload("@@ -1,1 +1,1 @@\n-a\n+A", "step_2")
    with patch(
        "coding_agent_planner.utils.patcher.apply_patch_payload",
        side_effect=[RuntimeError("boom"), apply_patch_payload("a", good)],
    ):
        result = apply_patches_sequentially("a", [_payload("+x", "step_1"), good])

    assert result.failed == 1
    assert result.applied == 1
    assert result.content == "A"
    assert result.errors == ["boom"]


def test_deleting_line_that_starts_with_dashes():
    original = "SELECT 1;\n-- old note\nSELECT 2;"
    diff = "@@ -1,3 +1,2 @@\n SELECT 1;\n--- old note\n SELECT 2;"
    assert apply_unified_diff(original, diff) == "SELECT 1;\nSELECT 2;"


def test_adding_line_that_starts_with_pluses():
    assert apply_unified_diff("a\nb", "@@ -1,2 +1,3 @@\n a\n+++i;\n b") == "a\n++i;\nb"


def test_file_headers_before_hunk_are_skipped():
    diff = "--- a/app.py\n+++ b/app.py\n@@ -1,2 +1,1 @@\n a\n-b"
    assert apply_unified_diff("a\nb", diff) == "a"


@pytest.mark.parametrize("add,remove", [
    ("@@ -1,0 +1,1 @@\n+X", "@@ -1,1 +1,0 @@\n-X"),
    ("@@ -2,0 +2,1 @@\n+X", "@@ -2,1 +2,0 @@\n-X"),
    ("@@ -4,0 +4,1 @@\n+X", "@@ -4,1 +4,0 @@\n-X"),
], ids=["first", "middle", "last"])
def test_single_addition_round_trip(add, remove):
    original = "a\nb\nc"
    added = apply_unified_diff(original, add)
    assert added.split("\n").count("X") == 1
    assert apply_unified_diff(added, remove) == original
