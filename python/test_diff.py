"""
Tests for change tracking and the HTML text utilities it builds on.

Run: python3 test_diff.py
From: python/
"""

import sys

sys.path.insert(0, '.')

from lexpatch.diff import diff_text, track_changes
from lexpatch.utils.html import (
    extract_clean_text,
    iter_text_leaves,
    normalize_for_comparison,
    parse_content,
    serialize_content,
)


# --- HTML utilities ---


def test_fragment_round_trip_keeps_leading_text():
    content = "Intro <b>bold</b> tail"
    parsed = parse_content(content)
    assert not parsed.is_document
    assert serialize_content(parsed) == content
    print("PASS: fragment round trip")


def test_text_leaves_in_document_order():
    parsed = parse_content("Intro <b>bold</b> tail")
    leaves = [(leaf.path, leaf.slot, leaf.text) for leaf in iter_text_leaves(parsed.root)]
    assert leaves == [((), "text", "Intro "), ((0,), "text", "bold"), ((0,), "tail", " tail")]
    print("PASS: text leaves order")


def test_text_leaves_skip_script_and_comments():
    parsed = parse_content("<p>a<!-- note -->b</p><script>var x = 1;</script><p>c</p>")
    texts = [leaf.text for leaf in iter_text_leaves(parsed.root)]
    assert texts == ["a", "b", "c"]
    print("PASS: script and comments skipped")


def test_extract_clean_text():
    assert extract_clean_text("<p>First</p><p>Second</p>") == "First Second"
    assert extract_clean_text("Line one<br>Line two") == "Line one Line two"
    assert extract_clean_text("Line one\\nLine two") == "Line one Line two"
    assert extract_clean_text("<p>Smith &amp;  Jones</p>") == "Smith & Jones"
    assert extract_clean_text("") == ""
    print("PASS: extract_clean_text")


def test_normalize_for_comparison():
    assert normalize_for_comparison("<p>The <b>Term</b>, ends.</p>") == "the term ends"
    print("PASS: normalize_for_comparison")


# --- Change tracking ---


def test_track_replacement():
    changes = track_changes("<p>Notice within 10 days.</p>", "<p>Notice within 14 days.</p>")
    assert len(changes) == 1
    change = changes[0]
    assert change.action == "replace"
    assert (change.old_text, change.new_text) == ("10", "14")
    assert change.position == len("Notice within ")
    print("PASS: track replacement")


def test_track_insert_and_delete():
    changes = track_changes("<p>The fee is due.</p>", "<p>The fee is now due.</p>")
    assert len(changes) == 1
    assert changes[0].action == "insert"
    assert changes[0].new_text.strip() == "now"
    assert changes[0].context.startswith("The fee is")

    changes = diff_text("The fee is now due.", "The fee is due.")
    assert len(changes) == 1
    assert changes[0].action == "delete"
    assert changes[0].old_text.strip() == "now"
    print("PASS: track insert and delete")


def test_markup_only_change_is_not_a_text_change():
    assert track_changes("<p>Same words</p>", "<div><b>Same</b> words</div>") == []
    print("PASS: markup-only change ignored")


if __name__ == "__main__":
    tests = [
        test_fragment_round_trip_keeps_leading_text,
        test_text_leaves_in_document_order,
        test_text_leaves_skip_script_and_comments,
        test_extract_clean_text,
        test_normalize_for_comparison,
        test_track_replacement,
        test_track_insert_and_delete,
        test_markup_only_change_is_not_a_text_change,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"FAIL: {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    sys.exit(1 if failed else 0)
