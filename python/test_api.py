"""
Tests for apply_suggestion / apply_all and the request helpers.

Run: python3 test_api.py
From: python/
"""

import sys

sys.path.insert(0, '.')

from lexpatch.api import apply_all, apply_suggestion, suggestions_from_edits
from lexpatch.config import StreamSettings
from lexpatch.models import AppliedState, Suggestion, SuggestionKind
from lexpatch.stream.endpoints import (
    analysis_request,
    changes_analysis_request,
    document_to_pages,
    get_endpoint,
    region_name_for_api,
    risk_analysis_request,
    split_document_pages,
)


def _suggestion(original, replacement, n=0, kind=SuggestionKind.CHANGE):
    return Suggestion(id=f"{kind.value}_{n}", kind=kind, order=n, original=original, replacement=replacement)


def test_apply_marks_applied():
    s = _suggestion("30 days", "60 days")
    result = apply_suggestion("<p>The term is 30 days.</p>", s)
    assert result.success
    assert result.updated_content == "<p>The term is 60 days.</p>"
    assert result.strategy == "exact"
    assert result.suggestion_id == s.id
    assert s.applied_state == AppliedState.APPLIED

    again = apply_suggestion(result.updated_content, s)
    assert not again.success
    assert again.reason == "already_applied"
    print("PASS: apply marks applied")


def test_no_match_marks_failed_and_allows_retry():
    s = _suggestion("Force majeure", "Act of God")
    result = apply_suggestion("<p>Payment within 30 days.</p>", s)
    assert not result.success
    assert result.reason == "no_match"
    assert result.updated_content is None
    assert s.applied_state == AppliedState.FAILED

    retry = apply_suggestion("<p>Force majeure applies.</p>", s)
    assert retry.success
    assert retry.updated_content == "<p>Act of God applies.</p>"
    print("PASS: no match then retry")


def test_dismissed_and_not_applicable():
    s = _suggestion("a", "b")
    s.transition(AppliedState.DISMISSED)
    assert apply_suggestion("<p>a</p>", s).reason == "dismissed"

    question = Suggestion(id="question_0", kind=SuggestionKind.QUESTION, order=0, title="Who signs?")
    result = apply_suggestion("<p>a</p>", question)
    assert result.reason == "not_applicable"
    assert question.applied_state == AppliedState.PENDING
    print("PASS: dismissed and not applicable")


def test_apply_all_is_sequential():
    suggestions = [
        _suggestion("Acme", "Zenith", 0),
        _suggestion("Zenith Corp", "Zenith Inc", 1),
        _suggestion("missing text", "x", 2),
    ]
    content, results = apply_all("<p>Acme Corp</p>", suggestions)
    assert content == "<p>Zenith Inc</p>"
    assert [r.success for r in results] == [True, True, False]
    assert results[2].reason == "no_match"
    print("PASS: apply_all sequential")


def test_suggestions_from_edits():
    suggestions = suggestions_from_edits(
        [{"original": "a", "replacement": "b"}, {"target_text": "c", "new_text": "d", "comment": "why"}]
    )
    assert [s.id for s in suggestions] == ["change_0", "change_1"]
    assert suggestions[1].original == "c"
    assert suggestions[1].replacement == "d"
    assert suggestions[1].title == "why"
    print("PASS: suggestions_from_edits")


def test_request_helpers():
    assert region_name_for_api("us-newyork") == "USA New York"
    assert region_name_for_api("uk") == "United Kingdom"
    assert region_name_for_api("mars") == "mars"
    assert document_to_pages("<p>x</p>") == [{"page_number": 1, "html_content": "<p>x</p>"}]
    assert risk_analysis_request("c") == {"content": "c"}
    assert risk_analysis_request("c", category="Fees", number_of_changes=3) == {
        "content": "c",
        "category": "Fees",
        "number_of_changes": 3,
    }
    assert analysis_request(["a", "b"], "buyer") == {
        "contract_ids": ["a", "b"],
        "role": "buyer",
        "additional_requirements": "",
    }
    print("PASS: request helpers")


def test_changes_analysis_request_pages():
    content = "<p>" + "word " * 1000 + "</p>"
    pages = split_document_pages(content)
    assert [p["page_number"] for p in pages] == [1, 2]
    assert "".join(p["page_content"] for p in pages) == content
    assert len(pages[0]["page_content"]) <= 3000
    assert pages[0]["page_content"].endswith("word")
    assert split_document_pages("") == []

    body = changes_analysis_request("<p>x</p>", messages=[{"content": "Tighten", "message_type": "user"}], number_of_changes=2)
    assert body == {
        "messages": [{"content": "Tighten", "message_type": "user"}],
        "pages": [{"page_number": 1, "page_content": "<p>x</p>"}],
        "number_of_changes": 2,
    }
    assert get_endpoint("changes_analysis").path == "/changes_analysis/changes_analysis_stream"
    print("PASS: changes analysis request")


def test_settings_from_env():
    import os

    saved = {k: os.environ.get(k) for k in ("LEXPATCH_API_TOKEN", "LEXPATCH_CONNECT_TIMEOUT")}
    os.environ["LEXPATCH_API_TOKEN"] = "env-token"
    os.environ["LEXPATCH_CONNECT_TIMEOUT"] = "2.5"
    try:
        settings = StreamSettings.from_env(base_url="https://example.test")
        assert settings.api_token == "env-token"
        assert settings.connect_timeout == 2.5
        assert settings.base_url == "https://example.test"
        assert settings.read_timeout is None
        assert settings.auth_headers() == {"Authorization": "Bearer env-token"}
    finally:
        for key, value in saved.items():
            if value is None:
                os.environ.pop(key, None)
            else:
                os.environ[key] = value
    assert StreamSettings().auth_headers() == {}
    print("PASS: settings from env")


if __name__ == "__main__":
    tests = [
        test_apply_marks_applied,
        test_no_match_marks_failed_and_allows_retry,
        test_dismissed_and_not_applicable,
        test_apply_all_is_sequential,
        test_suggestions_from_edits,
        test_request_helpers,
        test_changes_analysis_request_pages,
        test_settings_from_env,
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
