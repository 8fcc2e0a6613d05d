from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

from lexpatch.errors import InvalidTransitionError


class SuggestionKind(str, Enum):
    CATEGORY = "category"
    RISK = "risk"
    # Jurisdiction changes and multi-document analysis changes share this key.
    CHANGE = "change"
    QUESTION = "question"
    ANSWER = "answer"


class AppliedState(str, Enum):
    PENDING = "pending"
    APPLIED = "applied"
    FAILED = "failed"
    DISMISSED = "dismissed"


_ALLOWED_TRANSITIONS = {
    AppliedState.PENDING: {AppliedState.APPLIED, AppliedState.FAILED, AppliedState.DISMISSED},
    # A failed apply may be retried or dismissed.
    AppliedState.FAILED: {AppliedState.APPLIED, AppliedState.FAILED, AppliedState.DISMISSED},
    AppliedState.APPLIED: set(),
    AppliedState.DISMISSED: set(),
}


class SessionState(str, Enum):
    IDLE = "idle"
    STREAMING = "streaming"
    COMPLETED = "completed"
    ERRORED = "errored"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.ERRORED, SessionState.CANCELLED)


class Suggestion(BaseModel):
    """
    One proposed edit discovered in a stream.
    The patch engine treats ``original`` -> ``replacement`` as a single-location
    "Search and Replace" against the current document content.
    """

    id: str = Field(..., description="Session-scoped identifier, e.g. 'risk_3'.")
    kind: SuggestionKind
    original: Optional[str] = Field(
        None,
        description="Snippet as quoted by the model. May ignore markup, whitespace and punctuation conventions.",
    )
    replacement: Optional[str] = Field(None, description="Text that replaces the located snippet.")
    rationale: Optional[str] = None
    title: Optional[str] = None
    order: int = Field(..., ge=0, description="Discovery order within the session.")
    applied_state: AppliedState = AppliedState.PENDING
    details: Dict[str, Any] = Field(default_factory=dict)

    @property
    def is_applicable(self) -> bool:
        return bool(self.original) and self.replacement is not None

    def transition(self, new_state: AppliedState) -> None:
        if new_state not in _ALLOWED_TRANSITIONS[self.applied_state]:
            raise InvalidTransitionError(
                f"Suggestion {self.id} cannot move from {self.applied_state.value} to {new_state.value}"
            )
        self.applied_state = new_state


class ApplyResult(BaseModel):
    success: bool
    updated_content: Optional[str] = None
    strategy: Optional[str] = None
    reason: Optional[str] = None
    suggestion_id: Optional[str] = None


class EventKind(str, Enum):
    STARTED = "started"
    UNIT = "unit"
    MARKER = "marker"
    COMPLETED = "completed"
    FAILED = "failed"
    UNKNOWN = "unknown"


@dataclass
class StreamEvent:
    kind: EventKind
    payload: Dict[str, Any]
    unit_kind: Optional[SuggestionKind] = None
    body: Any = None

    @property
    def status(self) -> Optional[str]:
        return self.payload.get("status")


@dataclass
class SessionProgress:
    message: Optional[str] = None
    progress: Any = None
    page_number: Optional[int] = None
    received: int = 0
    total: Optional[int] = None


@dataclass
class ProgressUpdate:
    """Passed to ``on_progress``: the single changed unit plus the full snapshot."""

    session_id: str
    event: str
    suggestions: List[Suggestion]
    suggestion: Optional[Suggestion] = None
    created: bool = False
    message: Optional[str] = None
    progress: Any = None
    page_number: Optional[int] = None


@dataclass
class CompletionSummary:
    session_id: str
    suggestions: List[Suggestion]
    total: int
    message: Optional[str] = None


@dataclass
class InlineWrap:
    """Wrapping transform that made an inline-markup variant match."""

    tag: str
    mode: str  # 'word', 'pair', 'all_words', 'all_pairs'
    words: Tuple[str, ...] = ()


@dataclass
class MatchResult:
    strategy: str
    start: int
    end: int
    matched_text: str
    # Structural location (tree walk only): child indices from the root and the leaf slot.
    path: Optional[Tuple[int, ...]] = None
    slot: Optional[str] = None
    wrap: Optional[InlineWrap] = None

    @property
    def is_structural(self) -> bool:
        return self.path is not None

    def __bool__(self) -> bool:
        return True


@dataclass
class NoMatch:
    snippet: str
    reason: str = "no_match"
    tried: Tuple[str, ...] = field(default_factory=tuple)

    def __bool__(self) -> bool:
        return False


class EditRequest(BaseModel):
    """A caller-supplied edit, used by the CLI and tool server to build suggestions."""

    original: str = Field(..., description="Snippet to locate in the document.")
    replacement: str = Field("", description="Text to put in its place.")
    title: Optional[str] = None
