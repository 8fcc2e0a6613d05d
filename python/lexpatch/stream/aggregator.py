from typing import Any, Dict, Iterator, List, Optional, Tuple

import structlog

from lexpatch.models import AppliedState, Suggestion, SuggestionKind

logger = structlog.get_logger(__name__)

_UPDATABLE_FIELDS = ("original", "replacement", "rationale", "title", "details")


class SuggestionAggregator:
    """
    Ordered, in-memory store of the suggestions discovered in one session.
    Suggestions are appended in arrival order and never removed; a unit that
    repeats a known source key updates the existing entry where it stands.
    """

    def __init__(self):
        self._suggestions: List[Suggestion] = []
        self._by_id: Dict[str, Suggestion] = {}
        self._by_source: Dict[Tuple[SuggestionKind, str], Suggestion] = {}

    def upsert(self, kind: SuggestionKind, source_key: Optional[str] = None, **fields: Any) -> Tuple[Suggestion, bool]:
        """Returns the stored suggestion and whether it was newly created."""
        if source_key is not None:
            existing = self._by_source.get((kind, source_key))
            if existing is not None:
                for name in _UPDATABLE_FIELDS:
                    if name in fields:
                        setattr(existing, name, fields[name])
                logger.debug(f"Updated suggestion {existing.id} in place")
                return existing, False

        order = len(self._suggestions)
        suggestion = Suggestion(
            id=f"{kind.value}_{order}",
            kind=kind,
            order=order,
            **{name: fields[name] for name in _UPDATABLE_FIELDS if name in fields},
        )
        self._suggestions.append(suggestion)
        self._by_id[suggestion.id] = suggestion
        if source_key is not None:
            self._by_source[(kind, source_key)] = suggestion
        return suggestion, True

    def get(self, suggestion_id: str) -> Optional[Suggestion]:
        return self._by_id.get(suggestion_id)

    def snapshot(self) -> List[Suggestion]:
        return list(self._suggestions)

    def set_state(self, suggestion_id: str, state: AppliedState) -> Suggestion:
        suggestion = self._by_id.get(suggestion_id)
        if suggestion is None:
            raise KeyError(suggestion_id)
        suggestion.transition(state)
        return suggestion

    def __len__(self) -> int:
        return len(self._suggestions)

    def __iter__(self) -> Iterator[Suggestion]:
        return iter(list(self._suggestions))
