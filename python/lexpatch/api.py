"""
Caller-facing entry points: stream suggestions from an endpoint, then apply them
to the current editor content one at a time.
"""

from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import httpx
import structlog

from lexpatch.config import StreamSettings
from lexpatch.models import AppliedState, ApplyResult, EditRequest, NoMatch, Suggestion, SuggestionKind
from lexpatch.patch.applier import PatchApplier
from lexpatch.patch.locator import TextLocator
from lexpatch.stream.endpoints import Endpoint, get_endpoint
from lexpatch.stream.router import CompleteCallback, ErrorCallback, ProgressCallback
from lexpatch.stream.session import SessionController
from lexpatch.stream.transport import HttpEventStream, build_request, create_client

logger = structlog.get_logger(__name__)

_applier = PatchApplier()
_default_locator = TextLocator()


def open_session(
    endpoint: Union[Endpoint, str],
    request_payload: Optional[Dict[str, Any]],
    on_progress: Optional[ProgressCallback] = None,
    on_complete: Optional[CompleteCallback] = None,
    on_error: Optional[ErrorCallback] = None,
    *,
    settings: Optional[StreamSettings] = None,
    client: Optional[httpx.Client] = None,
) -> SessionController:
    """
    Opens a streaming session against ``endpoint``.
    The connection is made on the first ``run()``; the caller drives the session
    from whichever thread should receive the callbacks.
    """
    if isinstance(endpoint, str):
        endpoint = get_endpoint(endpoint)
    settings = settings or StreamSettings.from_env()

    request = build_request(settings, endpoint, request_payload)
    owns_client = client is None
    source = HttpEventStream(client or create_client(settings), request, owns_client=owns_client)

    controller = SessionController(endpoint, on_progress, on_complete, on_error, settings=settings)
    return controller.open(source)


def cancel(controller: SessionController) -> bool:
    return controller.cancel()


def apply_suggestion(document: str, suggestion: Suggestion, *, locator: Optional[TextLocator] = None) -> ApplyResult:
    """
    Locates ``suggestion.original`` in ``document`` and replaces that single occurrence.
    On failure the document is left untouched and ``reason`` says why.
    """
    if suggestion.applied_state == AppliedState.APPLIED:
        return ApplyResult(success=False, reason="already_applied", suggestion_id=suggestion.id)
    if suggestion.applied_state == AppliedState.DISMISSED:
        return ApplyResult(success=False, reason="dismissed", suggestion_id=suggestion.id)
    if not suggestion.is_applicable:
        return ApplyResult(success=False, reason="not_applicable", suggestion_id=suggestion.id)

    locator = locator or _default_locator
    match = locator.locate(document, suggestion.original)
    if isinstance(match, NoMatch):
        logger.warning(f"Could not locate suggestion {suggestion.id}: {match.reason}")
        suggestion.transition(AppliedState.FAILED)
        return ApplyResult(success=False, reason=match.reason, suggestion_id=suggestion.id)

    updated = _applier.apply(document, match, suggestion.replacement)
    suggestion.transition(AppliedState.APPLIED)
    return ApplyResult(
        success=True,
        updated_content=updated,
        strategy=match.strategy,
        suggestion_id=suggestion.id,
    )


def apply_all(
    document: str, suggestions: Sequence[Suggestion], *, locator: Optional[TextLocator] = None
) -> Tuple[str, List[ApplyResult]]:
    """Applies suggestions in order, each against the output of the previous one."""
    content = document
    results = []
    for suggestion in suggestions:
        result = apply_suggestion(content, suggestion, locator=locator)
        if result.success:
            content = result.updated_content
        results.append(result)

    applied = sum(1 for r in results if r.success)
    logger.info(f"Applied {applied}/{len(results)} suggestions")
    return content, results


def suggestions_from_edits(edits: Sequence[Union[EditRequest, Dict[str, Any]]]) -> List[Suggestion]:
    """Wraps plain edits as pending suggestions so they go through the same apply path."""
    suggestions = []
    for order, edit in enumerate(edits):
        if isinstance(edit, dict):
            edit = EditRequest(
                original=edit.get("original") or edit.get("target_text") or "",
                replacement=edit.get("replacement") or edit.get("new_text") or "",
                title=edit.get("title") or edit.get("comment"),
            )
        suggestions.append(
            Suggestion(
                id=f"{SuggestionKind.CHANGE.value}_{order}",
                kind=SuggestionKind.CHANGE,
                order=order,
                original=edit.original,
                replacement=edit.replacement,
                title=edit.title,
            )
        )
    return suggestions
