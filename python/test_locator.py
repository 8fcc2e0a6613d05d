"""
Tests for the TextLocator strategy cascade and PatchApplier.

Run: python3 test_locator.py
From: python/
"""

import sys

sys.path.insert(0, '.')

from lexpatch.diff import track_changes
from lexpatch.errors import StaleMatchError
from lexpatch.models import MatchResult, NoMatch
from lexpatch.patch.applier import PatchApplier
from lexpatch.patch.locator import TextLocator, locate
from lexpatch.patch.strategies import (
    DEFAULT_STRATEGIES,
    ExactMatch,
    TreeWalkMatch,
    WordBoundaryMatch,
    dash_variants,
    entity_variants,
    normalize_whitespace,
)

applier = PatchApplier()


def _replace(document, snippet, replacement):
    match = locate(document, snippet)
    assert match, f"Expected a match for '{snippet}'"
    return match, applier.apply(document, match, replacement)


# --- Cascade order ---


def test_strategy_order():
    names = [s.name for s in DEFAULT_STRATEGIES]
    assert names == [
        "exact",
        "whitespace",
        "dash_variant",
        "inline_markup",
        "case_insensitive",
        "entity_variant",
        "word_boundary",
        "tree_walk",
    ]
    print("PASS: strategy order")


def test_exact_match_example():
    document = "<p>The term is 30 days.</p>"
    match, result = _replace(document, "30 days", "60 days")
    assert match.strategy == "exact"
    assert result == "<p>The term is 60 days.</p>"
    print("PASS: exact match")


def test_exact_wins_over_looser_earlier_hit():
    """A case-insensitive hit earlier in the document must not beat a later exact hit."""
    document = "<p>TERM one</p><p>term one</p>"
    match = locate(document, "term one")
    assert match.strategy == "exact"
    assert match.start == document.index("term one")
    print("PASS: exact first")


def test_whitespace_normalized_example():
    document = "<p>Acme  Corp shall pay.</p>"
    match, result = _replace(document, "Acme Corp", "Acme Inc")
    assert match.strategy == "whitespace"
    assert match.matched_text == "Acme  Corp"
    assert normalize_whitespace(match.matched_text) == "Acme Corp"
    assert result == "<p>Acme Inc shall pay.</p>"
    print("PASS: whitespace-normalized match")


def test_whitespace_across_newline():
    document = "<p>Either party may\n   terminate this Agreement.</p>"
    match = locate(document, "may terminate")
    assert match.strategy == "whitespace"
    assert document[match.start : match.end] == "may\n   terminate"
    print("PASS: whitespace match across newline")


def test_dash_variant_keeps_spacing():
    document = "<p>Term: 2020–2024 inclusive</p>"
    match, result = _replace(document, "2020-2024", "2020-2026")
    assert match.strategy == "dash_variant"
    assert match.matched_text == "2020–2024"
    assert result == "<p>Term: 2020-2026 inclusive</p>"
    print("PASS: dash variant (same spacing)")


def test_dash_variant_spaced():
    document = "<p>payment — net 30</p>"
    match = locate(document, "payment-net 30")
    assert match.strategy == "dash_variant"
    assert match.matched_text == "payment — net 30"
    print("PASS: dash variant (spaced)")


def test_dash_variants_exclude_original():
    variants = dash_variants("a-b")
    assert "a-b" not in variants
    assert "a–b" in variants and "a—b" in variants and "a – b" in variants
    assert dash_variants("no dashes here") == []
    print("PASS: dash variant candidates")


def test_inline_markup_single_word():
    document = "<p>The <strong>Supplier</strong> shall deliver.</p>"
    match, result = _replace(document, "The Supplier shall deliver.", "The Supplier must deliver.")
    assert match.strategy == "inline_markup"
    assert match.wrap.tag == "strong"
    assert result == "<p>The <strong>Supplier</strong> must deliver.</p>"
    print("PASS: inline markup (single word)")


def test_inline_markup_word_pair():
    document = "<p>The <em>Service Provider</em> agrees</p>"
    match, result = _replace(document, "The Service Provider agrees", "The Service Provider consents")
    assert match.strategy == "inline_markup"
    assert match.wrap.mode == "pair"
    assert result == "<p>The <em>Service Provider</em> consents</p>"
    print("PASS: inline markup (word pair)")


def test_inline_markup_word_dropped_from_replacement():
    document = "<p>The <b>Buyer</b> pays</p>"
    match, result = _replace(document, "The Buyer pays", "Nobody pays")
    assert match.strategy == "inline_markup"
    assert result == "<p>Nobody pays</p>"
    print("PASS: inline markup (wrapped word removed)")


def test_case_insensitive():
    document = "<p>CONFIDENTIAL INFORMATION</p>"
    match = locate(document, "Confidential Information")
    assert match.strategy == "case_insensitive"
    assert match.matched_text == "CONFIDENTIAL INFORMATION"
    print("PASS: case-insensitive match")


def test_entity_variant_char_to_entity():
    document = "<p>Pages 1&ndash;5 apply</p>"
    match, result = _replace(document, "Pages 1–5 apply", "Pages 1–9 apply")
    assert match.strategy == "entity_variant"
    assert match.matched_text == "Pages 1&ndash;5 apply"
    assert result == "<p>Pages 1–9 apply</p>"
    print("PASS: entity variant (char -> entity)")


def test_entity_variant_entity_to_char():
    document = "<p>A–B</p>"
    match = locate(document, "A&ndash;B")
    assert match.strategy == "entity_variant"
    assert match.matched_text == "A–B"
    print("PASS: entity variant (entity -> char)")


def test_entity_variant_candidates():
    variants = entity_variants("x — y")
    assert variants == ["x &mdash; y", "x &#8212; y", "x &#x2014; y"]
    print("PASS: entity variant candidates")


def test_word_boundary():
    document = "<p>The  TERM of this Agreement</p>"
    match = locate(document, "the term of")
    assert match.strategy == "word_boundary"
    assert match.matched_text == "The  TERM of"
    print("PASS: word boundary match")


def test_word_boundary_needs_two_words():
    strategy = WordBoundaryMatch()
    document = "<p>Subterms apply</p>"
    assert strategy.find(document, "SUBTERMS") is None
    match = strategy.find(document, "SUBTERMS   apply")
    assert match.matched_text == "Subterms apply"
    # Word edges are anchored: a partial word does not match.
    assert strategy.find(document, "terms apply") is None
    print("PASS: word boundary needs two words")


def test_tree_walk_entity_escaped_text():
    document = "<p>Smith &amp; Jones LLP</p>"
    match, result = _replace(document, "Smith & Jones", "Smith & Partners")
    assert match.strategy == "tree_walk"
    assert match.is_structural
    assert match.path == (0,) and match.slot == "text"
    assert result == "<p>Smith &amp; Partners LLP</p>"
    print("PASS: tree walk on entity-escaped text")


def test_tree_walk_tail_leaf():
    document = "<p><b>Note:</b> Tom &amp; Jerry agree.</p>"
    match = TreeWalkMatch().find(document, "Tom & Jerry")
    assert match.slot == "tail"
    assert match.path == (0, 0)
    result = applier.apply(document, match, "Tom & Spike")
    assert result == "<p><b>Note:</b> Tom &amp; Spike agree.</p>"
    print("PASS: tree walk on tail text")


def test_tree_walk_keeps_surrounding_markup():
    document = "<p class=x>A&nbsp;B<br/>Smith &amp; Jones</p>"
    match = TreeWalkMatch().find(document, "Smith & Jones")
    assert match.slot == "tail"
    result = applier.apply(document, match, "Smith & Co")
    assert result == "<p class=x>A&nbsp;B<br/>Smith &amp; Co</p>"
    print("PASS: tree walk splices the leaf only")


def test_tree_walk_repeated_leaf_reserialises():
    document = "<p>Smith &amp; Jones<br/></p><p>Smith &amp; Jones</p>"
    match = TreeWalkMatch().find(document, "Smith & Jones")
    assert match.path == (0,) and match.slot == "text"
    result = applier.apply(document, match, "Smith & Co")
    # Ambiguous raw text: the tree is reserialised, which normalises <br/>.
    assert result == "<p>Smith &amp; Co<br></p><p>Smith &amp; Jones</p>"
    print("PASS: tree walk falls back to reserialising")


# --- No match / edge cases ---


def test_no_match_leaves_document_untouched():
    document = "<p>Payment within 30 days.</p>"
    original = str(document)
    match = locate(document, "Force majeure clause")
    assert isinstance(match, NoMatch)
    assert not match
    assert match.reason == "no_match"
    assert len(match.tried) == 8
    assert document == original
    print("PASS: no match")


def test_empty_snippet():
    for snippet in ("", "   "):
        match = locate("<p>text</p>", snippet)
        assert isinstance(match, NoMatch)
        assert match.reason == "empty_snippet"
    print("PASS: empty snippet")


def test_locate_is_idempotent():
    document = "<p>Acme  Corp shall pay.</p>"
    assert locate(document, "Acme Corp") == locate(document, "Acme Corp")
    print("PASS: locate idempotence")


def test_custom_strategy_list():
    locator = TextLocator([ExactMatch()])
    match = locator.locate("<p>CONFIDENTIAL</p>", "Confidential")
    assert isinstance(match, NoMatch)
    assert match.tried == ("exact",)
    print("PASS: custom strategy list")


# --- Applier ---


def test_applier_replaces_first_occurrence_only():
    document = "<p>30 days</p><p>30 days</p>"
    _, result = _replace(document, "30 days", "60 days")
    assert result == "<p>60 days</p><p>30 days</p>"
    print("PASS: single substitution")


def test_applier_locality():
    old = "<p>The term is 30 days.</p>"
    _, new = _replace(old, "30 days", "60 days")
    changes = track_changes(old, new)
    assert len(changes) == 1
    assert changes[0].action == "replace"
    assert changes[0].old_text == "30"
    assert changes[0].new_text == "60"
    print("PASS: replacement is local")


def test_applier_rejects_stale_match():
    match = MatchResult(strategy="exact", start=0, end=4, matched_text="abcd")
    try:
        applier.apply("wxyz and more", match, "new")
    except StaleMatchError as e:
        assert e.error_code == "stale_match"
    else:
        raise AssertionError("Expected StaleMatchError")
    print("PASS: stale match rejected")


if __name__ == "__main__":
    tests = [
        test_strategy_order,
        test_exact_match_example,
        test_exact_wins_over_looser_earlier_hit,
        test_whitespace_normalized_example,
        test_whitespace_across_newline,
        test_dash_variant_keeps_spacing,
        test_dash_variant_spaced,
        test_dash_variants_exclude_original,
        test_inline_markup_single_word,
        test_inline_markup_word_pair,
        test_inline_markup_word_dropped_from_replacement,
        test_case_insensitive,
        test_entity_variant_char_to_entity,
        test_entity_variant_entity_to_char,
        test_entity_variant_candidates,
        test_word_boundary,
        test_word_boundary_needs_two_words,
        test_tree_walk_entity_escaped_text,
        test_tree_walk_tail_leaf,
        test_tree_walk_keeps_surrounding_markup,
        test_tree_walk_repeated_leaf_reserialises,
        test_no_match_leaves_document_untouched,
        test_empty_snippet,
        test_locate_is_idempotent,
        test_custom_strategy_list,
        test_applier_replaces_first_occurrence_only,
        test_applier_locality,
        test_applier_rejects_stale_match,
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
