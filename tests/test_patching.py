# tests/test_patching.py
"""Tests for diff application and the patch trust policy."""
import pytest

from sitegen.errors import PatchError
from sitegen.patching import apply_patch, count_changes, make_diff, parse_unified_diff, validate_patch

TEN = "a\nb\nc\nd\ne\nf\ng\nh\ni\nj\n"

ONE_LINE = "@@ -3,3 +3,3 @@\n c\n-d\n+D\n e"


def test_apply_single_line_change_keeps_everything_else():
    out = apply_patch(TEN, ONE_LINE)

    assert out == "a\nb\nc\nD\ne\nf\ng\nh\ni\nj\n"


def test_apply_with_file_headers():
    diff = "--- a/x.txt\n+++ b/x.txt\n" + ONE_LINE
    assert apply_patch(TEN, diff).splitlines()[3] == "D"


def test_offset_within_fuzz_is_accepted():
    drifted = ONE_LINE.replace("@@ -3,3 +3,3 @@", "@@ -5,3 +5,3 @@")
    assert apply_patch(TEN, drifted, fuzz=2).splitlines()[3] == "D"


def test_offset_beyond_fuzz_is_context_mismatch():
    drifted = ONE_LINE.replace("@@ -3,3 +3,3 @@", "@@ -6,3 +6,3 @@")
    with pytest.raises(PatchError) as exc:
        apply_patch(TEN, drifted, fuzz=2)
    assert exc.value.reason == "context-mismatch"


def test_hunk_without_numbers_needs_unique_match():
    assert apply_patch(TEN, "@@ @@\n c\n-d\n+D").splitlines()[3] == "D"

    with pytest.raises(PatchError):
        apply_patch("x\ny\nx\ny\n", "@@ @@\n-x\n+X")


def test_pure_insertion_after_line():
    out = apply_patch("a\nb\nc\n", "@@ -2,0 +3,1 @@\n+X")
    assert out == "a\nb\nX\nc\n"


def test_trailing_newline_preserved_or_absent():
    assert apply_patch("one\ntwo", "@@ -2,1 +2,1 @@\n-two\n+2") == "one\n2"
    assert apply_patch("one\ntwo\n", "@@ -2,1 +2,1 @@\n-two\n+2") == "one\n2\n"


def test_parse_rejects_garbage_lines():
    with pytest.raises(PatchError) as exc:
        parse_unified_diff("@@ -1,1 +1,1 @@\n*junk")
    assert exc.value.reason == "malformed"


def test_count_changes_uses_larger_side_of_each_hunk():
    diff = "@@ -1,3 +1,2 @@\n-a\n-b\n+AB\n c\n@@ -8,1 +7,1 @@\n-h\n+H"
    assert count_changes(diff) == 3


def test_validate_accepts_small_patch():
    result = validate_patch(TEN, ONE_LINE)

    assert result.valid
    assert result.changed_lines == 1
    assert result.change_ratio == pytest.approx(0.1)
    assert result.content.splitlines()[3] == "D"


def test_validate_flags_disproportionate_patch():
    diff = "@@ -1,4 +1,4 @@\n-a\n-b\n-c\n-d\n+A\n+B\n+C\n+D"
    result = validate_patch(TEN, diff, max_change_ratio=0.30)

    assert not result.valid
    assert result.reason == "disproportionate"
    assert result.changed_lines == 4


@pytest.mark.parametrize("diff, reason", [
    ("", "empty"),
    ("   \n", "empty"),
    ("@@ -3,1 +3,1 @@\n-c\n+c", "empty"),
    ("@@ -40,1 +40,1 @@\n-nope\n+yes", "context-mismatch"),
    ("@@ -1,1 +1,1 @@\n?x", "malformed"),
])
def test_validate_never_raises(diff, reason):
    result = validate_patch(TEN, diff)

    assert not result.valid
    assert result.reason == reason
    assert result.error


def test_make_diff_roundtrip_applies():
    old = "x\ny\nz\n"
    new = "x\nY\nz\n"
    diff = make_diff(old, new, "f.txt")

    assert diff.startswith("--- a/f.txt\n+++ b/f.txt\n")
    assert apply_patch(old, diff) == new
