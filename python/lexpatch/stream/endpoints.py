"""
Catalogue of the upstream streaming endpoints and helpers for their request bodies.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from lexpatch.models import SuggestionKind
from lexpatch.stream.router import Classifier, classify_event, classify_typed_event


@dataclass(frozen=True)
class Endpoint:
    name: str
    method: str
    path: str
    unit_kinds: Tuple[SuggestionKind, ...]
    total_field: Optional[str] = None
    classifier: Classifier = classify_event

    def format_path(self, **params: Any) -> str:
        try:
            return self.path.format(**params)
        except KeyError as e:
            raise ValueError(f"Endpoint '{self.name}' requires path parameter {e}") from e


RISK_CATEGORIES = Endpoint(
    name="risk_categories",
    method="POST",
    path="/risk_categories_analyze_stream",
    unit_kinds=(SuggestionKind.CATEGORY,),
    total_field="total_categories",
)
RISK_ANALYSIS = Endpoint(
    name="risk_analysis",
    method="POST",
    path="/risk_analysis/risk_analysis_stream",
    unit_kinds=(SuggestionKind.RISK,),
    total_field="total_risks",
)
JURISDICTION_CHANGE = Endpoint(
    name="jurisdiction_change",
    method="POST",
    path="/jurisdiction/jurisdiction-change",
    unit_kinds=(SuggestionKind.CHANGE,),
    total_field="total_changes",
)
DOCUMENT_ANALYSIS = Endpoint(
    name="document_analysis",
    method="POST",
    path="/analysis/analyze",
    unit_kinds=(SuggestionKind.CHANGE,),
    total_field="total_changes",
)
MISSING_INFO = Endpoint(
    name="missing_info",
    method="GET",
    path="/contracts/{contract_id}/missing_info_stream",
    unit_kinds=(SuggestionKind.QUESTION,),
    total_field="total",
)
SUGGESTED_ANSWERS = Endpoint(
    name="suggested_answers",
    method="POST",
    path="/contracts/{contract_id}/ai_suggested_answers_stream",
    unit_kinds=(SuggestionKind.ANSWER,),
    total_field="total_questions",
)
CHANGES_ANALYSIS = Endpoint(
    name="changes_analysis",
    method="POST",
    path="/changes_analysis/changes_analysis_stream",
    unit_kinds=(SuggestionKind.CHANGE,),
    total_field="total_changes",
    classifier=classify_typed_event,
)

ENDPOINTS: Dict[str, Endpoint] = {
    endpoint.name: endpoint
    for endpoint in (
        RISK_CATEGORIES,
        RISK_ANALYSIS,
        JURISDICTION_CHANGE,
        DOCUMENT_ANALYSIS,
        MISSING_INFO,
        SUGGESTED_ANSWERS,
        CHANGES_ANALYSIS,
    )
}


def get_endpoint(name: str) -> Endpoint:
    try:
        return ENDPOINTS[name]
    except KeyError:
        raise ValueError(f"Unknown endpoint '{name}'. Known: {', '.join(sorted(ENDPOINTS))}") from None


# --- Request bodies ---

_REGION_NAMES = {
    "us-california": "USA California",
    "us-newyork": "USA New York",
    "us-texas": "USA Texas",
    "us-florida": "USA Florida",
    "us-illinois": "USA Illinois",
    "uk": "United Kingdom",
    "canada": "Canada",
    "australia": "Australia",
}


def region_name_for_api(region_id: str) -> str:
    return _REGION_NAMES.get(region_id, region_id)


def document_to_pages(content: str) -> List[Dict[str, Any]]:
    """The whole editor document is sent as a single page."""
    return [{"page_number": 1, "html_content": content}]


def risk_analysis_request(
    content: str, category: Optional[str] = None, number_of_changes: Optional[int] = None
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"content": content}
    if category:
        body["category"] = category
    if number_of_changes:
        body["number_of_changes"] = number_of_changes
    return body


def risk_categories_request(content: str) -> Dict[str, Any]:
    return {"content": content}


def jurisdiction_request(region_id: str, content: str) -> Dict[str, Any]:
    return {"region_name": region_name_for_api(region_id), "pages": document_to_pages(content)}


def analysis_request(contract_ids: List[str], role: str, additional_requirements: str = "") -> Dict[str, Any]:
    return {
        "contract_ids": list(contract_ids),
        "role": role,
        "additional_requirements": additional_requirements or "",
    }


def suggested_answers_request(questions: List[Any]) -> Dict[str, Any]:
    return {"questions": list(questions)}


def split_document_pages(content: str, page_size: int = 3000) -> List[Dict[str, Any]]:
    """
    Splits HTML into ``page_content`` pages of at most ``page_size`` characters.
    A page ends after its last tag or space when that falls in the final fifth
    of the page; the next page starts where the previous one ended.
    """
    pages: List[Dict[str, Any]] = []
    start = 0
    while start < len(content):
        chunk = content[start : start + page_size]
        if start + page_size < len(content):
            last_tag = chunk.rfind(">")
            last_space = chunk.rfind(" ")
            if last_tag > last_space and last_tag > len(chunk) * 0.8:
                chunk = chunk[: last_tag + 1]
            elif last_space > len(chunk) * 0.8:
                chunk = chunk[:last_space]
        pages.append({"page_number": len(pages) + 1, "page_content": chunk})
        start += len(chunk)
    return pages


def changes_analysis_request(
    content: str, messages: Optional[List[Dict[str, Any]]] = None, number_of_changes: Optional[int] = None
) -> Dict[str, Any]:
    body: Dict[str, Any] = {"messages": list(messages or []), "pages": split_document_pages(content)}
    if number_of_changes:
        body["number_of_changes"] = number_of_changes
    return body
