"""
Classifies decoded frames and dispatches them to session callbacks.

Most upstream endpoints speak the same envelope: ``status`` frames for
lifecycle (started, per-page markers, completed, error) and single-key
frames carrying one unit of work (``{"risk": {...}}``, ``{"change": {...}}``...).
The changes-analysis stream uses a ``{"type": ..., "data": {...}}`` envelope
instead, so each Endpoint names the classifier for its frames.
Each unit becomes a Suggestion through the parser registered for its kind.
"""

from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Tuple

import structlog
from pydantic import ValidationError

from lexpatch.errors import UpstreamError
from lexpatch.models import (
    CompletionSummary,
    EventKind,
    ProgressUpdate,
    StreamEvent,
    SuggestionKind,
)

logger = structlog.get_logger(__name__)

ProgressCallback = Callable[[ProgressUpdate], None]
CompleteCallback = Callable[[CompletionSummary], None]
ErrorCallback = Callable[[Exception], None]

# (source key, suggestion fields)
Derived = Tuple[Optional[str], Dict[str, Any]]

Classifier = Callable[[Dict[str, Any], Iterable[SuggestionKind]], StreamEvent]

ALL_UNIT_KINDS: FrozenSet[str] = frozenset(kind.value for kind in SuggestionKind)


def classify_event(payload: Dict[str, Any], unit_kinds: Iterable[SuggestionKind]) -> StreamEvent:
    status = payload.get("status")
    if status == "started":
        return StreamEvent(kind=EventKind.STARTED, payload=payload)

    for unit_kind in unit_kinds:
        body = payload.get(unit_kind.value)
        if body:
            return StreamEvent(kind=EventKind.UNIT, payload=payload, unit_kind=unit_kind, body=body)

    if status == "completed":
        return StreamEvent(kind=EventKind.COMPLETED, payload=payload)
    if status == "error":
        return StreamEvent(kind=EventKind.FAILED, payload=payload)
    if isinstance(status, str) and status:
        return StreamEvent(kind=EventKind.MARKER, payload=payload)
    return StreamEvent(kind=EventKind.UNKNOWN, payload=payload)


def classify_typed_event(payload: Dict[str, Any], unit_kinds: Iterable[SuggestionKind]) -> StreamEvent:
    """
    Classifier for ``{"type": "change", "data": {...}}`` frames.
    ``type`` names the unit kind; ``complete`` and ``error`` end the stream.
    """
    event_type = payload.get("type")
    if event_type == "complete":
        return StreamEvent(kind=EventKind.COMPLETED, payload=payload)
    if event_type == "error":
        return StreamEvent(kind=EventKind.FAILED, payload=payload)

    for unit_kind in unit_kinds:
        if event_type == unit_kind.value and payload.get("data"):
            return StreamEvent(kind=EventKind.UNIT, payload=payload, unit_kind=unit_kind, body=payload["data"])

    if event_type == "started" or payload.get("status") == "started":
        return StreamEvent(kind=EventKind.STARTED, payload=payload)
    if isinstance(event_type, str) and event_type and event_type not in ALL_UNIT_KINDS:
        return StreamEvent(kind=EventKind.MARKER, payload=payload)
    return StreamEvent(kind=EventKind.UNKNOWN, payload=payload)


# --- Per-kind parsers ---


def _text(value: Any) -> Optional[str]:
    # Upstream sends numeric ids and indexes where a label is expected.
    if value is None or isinstance(value, str):
        return value
    return str(value)


def apply_changes(context: str, changes: Any) -> str:
    """Applies each ``{from, to}`` pair to ``context`` once, in order."""
    text = context
    for change in changes or []:
        if not isinstance(change, dict):
            continue
        old = change.get("from")
        new = change.get("to")
        if not old or new is None:
            continue
        if old not in text:
            logger.debug(f"Change source not in context, skipping: '{old[:50]}'")
            continue
        text = text.replace(old, new, 1)
    return text


def _details(body: Dict[str, Any], consumed: Iterable[str]) -> Dict[str, Any]:
    skip = set(consumed)
    return {k: v for k, v in body.items() if k not in skip}


def parse_risk(body: Dict[str, Any], payload: Dict[str, Any]) -> Derived:
    context = _text(body.get("context"))
    fields = {
        "original": context,
        "replacement": apply_changes(context, body.get("changes")) if context is not None else None,
        "title": _text(body.get("header")),
        "rationale": _text(body.get("reason")),
        # 'changes' is kept so callers can render the individual edits.
        "details": _details(body, ("context", "header", "reason", "id")),
    }
    return _text(body.get("id")), fields


def _first(body: Dict[str, Any], *names: str) -> Optional[str]:
    for name in names:
        if body.get(name) is not None:
            return _text(body[name])
    return None


def parse_change(body: Dict[str, Any], payload: Dict[str, Any]) -> Derived:
    if "original" not in body and "old_sentence" not in body and "context" in body:
        key, fields = parse_risk(body, payload)
        if fields["title"] is None:
            fields["title"] = _text(body.get("title"))
        return key, fields

    fields = {
        "original": _first(body, "original", "old_sentence"),
        "replacement": _first(body, "suggested", "replacement", "new_sentence"),
        "title": _text(body.get("header") or body.get("title")),
        "rationale": _text(body.get("reason")),
        "details": _details(
            body,
            ("original", "old_sentence", "suggested", "replacement", "new_sentence", "header", "title", "reason", "id"),
        ),
    }
    return _text(body.get("id")), fields


def parse_category(body: Dict[str, Any], payload: Dict[str, Any]) -> Derived:
    if isinstance(body, str):
        body = {"category": body}
    title = _text(body.get("category") or body.get("name"))
    fields = {
        "title": title,
        "rationale": _text(body.get("description") or body.get("reason")),
        "details": _details(body, ("category", "name", "description", "reason", "id")),
    }
    # A re-scored category replaces the earlier entry of the same name.
    return _text(body.get("id")) or title, fields


def parse_question(body: Any, payload: Dict[str, Any]) -> Derived:
    if isinstance(body, dict):
        text = body.get("question")
        index = body.get("index")
    else:
        text = body
        index = payload.get("index")
    fields = {
        "title": _text(text),
        "details": {"index": index},
    }
    return _text(index), fields


def parse_answer(body: Dict[str, Any], payload: Dict[str, Any]) -> Derived:
    question = _text(body.get("question") or body.get("question_id"))
    fields = {
        "title": question,
        "replacement": _text(body.get("answer")),
        "details": _details(body, ("question", "answer")),
    }
    return question, fields


UNIT_PARSERS: Dict[SuggestionKind, Callable[[Any, Dict[str, Any]], Derived]] = {
    SuggestionKind.RISK: parse_risk,
    SuggestionKind.CHANGE: parse_change,
    SuggestionKind.CATEGORY: parse_category,
    SuggestionKind.QUESTION: parse_question,
    SuggestionKind.ANSWER: parse_answer,
}


def derive_suggestion(kind: SuggestionKind, body: Any, payload: Dict[str, Any]) -> Derived:
    key, fields = UNIT_PARSERS[kind](body, payload)
    page_number = payload.get("page_number")
    if page_number is not None:
        fields.setdefault("details", {})["page_number"] = page_number
    return key, fields


# --- Router ---


class EventRouter:
    """
    Routes the payloads of one session.

    The router owns the "exactly once" guarantee: after a completed or failed
    event it drops everything else that arrives.
    """

    def __init__(
        self,
        session,
        unit_kinds: Iterable[SuggestionKind],
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        total_field: Optional[str] = None,
        classifier: Classifier = classify_event,
    ):
        self.session = session
        self.unit_kinds = tuple(unit_kinds)
        self.classifier = classifier
        self.total_field = total_field
        self.on_progress = on_progress
        self.on_complete = on_complete
        self.on_error = on_error
        self.finished = False

    def route(self, payload: Dict[str, Any]) -> StreamEvent:
        event = self.classifier(payload, self.unit_kinds)
        if self.finished:
            logger.debug(f"Session {self.session.id}: dropping {event.kind.value} event after terminal event")
            return event

        if event.kind == EventKind.UNIT:
            self._handle_unit(event)
        elif event.kind in (EventKind.STARTED, EventKind.MARKER):
            self._handle_status(event)
        elif event.kind == EventKind.COMPLETED:
            self._handle_completed(event)
        elif event.kind == EventKind.FAILED:
            self._handle_failed(event)
        else:
            foreign = ALL_UNIT_KINDS.intersection(payload)
            if foreign:
                logger.debug(f"Session {self.session.id}: ignoring unit kinds {sorted(foreign)} from another endpoint")
            else:
                logger.debug(f"Session {self.session.id}: dropping unrecognised frame with keys {sorted(payload)}")
        return event

    def route_all(self, payloads: Iterable[Dict[str, Any]]) -> List[StreamEvent]:
        events = []
        for payload in payloads:
            events.append(self.route(payload))
        return events

    def _handle_unit(self, event: StreamEvent) -> None:
        try:
            key, fields = derive_suggestion(event.unit_kind, event.body, event.payload)
            suggestion, created = self.session.aggregator.upsert(event.unit_kind, key, **fields)
        except (AttributeError, TypeError, ValidationError) as e:
            logger.warning(f"Session {self.session.id}: skipping malformed {event.unit_kind.value} unit: {e}")
            return

        progress = self.session.progress
        if created:
            progress.received += 1
        if event.payload.get("progress") is not None:
            progress.progress = event.payload["progress"]

        self._notify(event, suggestion=suggestion, created=created)

    def _handle_status(self, event: StreamEvent) -> None:
        progress = self.session.progress
        payload = event.payload
        if payload.get("message") is not None:
            progress.message = payload["message"]
        if payload.get("progress") is not None:
            progress.progress = payload["progress"]
        if payload.get("page_number") is not None:
            progress.page_number = payload["page_number"]
        self._notify(event)

    def _handle_completed(self, event: StreamEvent) -> None:
        self.finished = True
        payload = event.payload
        progress = self.session.progress

        total = payload.get(self.total_field) if self.total_field else None
        if isinstance(total, int):
            progress.total = total
        else:
            total = len(self.session.aggregator)
        if payload.get("message") is not None:
            progress.message = payload["message"]

        logger.info(f"Session {self.session.id} completed with {len(self.session.aggregator)} suggestions")
        if self.on_complete:
            self.on_complete(
                CompletionSummary(
                    session_id=self.session.id,
                    suggestions=self.session.aggregator.snapshot(),
                    total=total,
                    message=progress.message,
                )
            )

    def _handle_failed(self, event: StreamEvent) -> None:
        self.finished = True
        payload = event.payload
        message = payload.get("error") or payload.get("message") or "Upstream reported an error"
        logger.error(f"Session {self.session.id} upstream error: {message}")
        if self.on_error:
            self.on_error(UpstreamError(str(message)))

    def _notify(self, event: StreamEvent, suggestion=None, created: bool = False) -> None:
        if not self.on_progress:
            return
        progress = self.session.progress
        self.on_progress(
            ProgressUpdate(
                session_id=self.session.id,
                event=event.unit_kind.value if event.unit_kind else (event.status or event.kind.value),
                suggestions=self.session.aggregator.snapshot(),
                suggestion=suggestion,
                created=created,
                message=progress.message,
                progress=progress.progress,
                page_number=progress.page_number,
            )
        )
