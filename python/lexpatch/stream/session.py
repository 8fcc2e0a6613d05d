"""
Session lifecycle: idle -> streaming -> completed | errored | cancelled.

A SessionController wires EventDecoder -> EventRouter -> SuggestionAggregator
for one upstream exchange. Chunks can be pushed with ``feed()`` or pulled from
an attached source with ``run()``. Terminal states are sticky: once a session
has completed, errored or been cancelled, no further callback fires.
"""

import threading
import uuid
from dataclasses import dataclass, field
from typing import Iterable, List, Optional, Union

import structlog

from lexpatch.config import StreamSettings
from lexpatch.errors import InvalidTransitionError, StreamInterruptedError, TransportError
from lexpatch.models import CompletionSummary, ProgressUpdate, SessionProgress, SessionState, Suggestion
from lexpatch.stream.aggregator import SuggestionAggregator
from lexpatch.stream.decoder import Chunk, EventDecoder
from lexpatch.stream.endpoints import Endpoint, get_endpoint
from lexpatch.stream.router import CompleteCallback, ErrorCallback, EventRouter, ProgressCallback

logger = structlog.get_logger(__name__)


@dataclass
class Session:
    id: str
    endpoint: str
    state: SessionState = SessionState.IDLE
    aggregator: SuggestionAggregator = field(default_factory=SuggestionAggregator)
    progress: SessionProgress = field(default_factory=SessionProgress)
    error: Optional[Exception] = None

    @property
    def suggestions(self) -> List[Suggestion]:
        return self.aggregator.snapshot()


class SessionController:
    def __init__(
        self,
        endpoint: Union[Endpoint, str],
        on_progress: Optional[ProgressCallback] = None,
        on_complete: Optional[CompleteCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        *,
        settings: Optional[StreamSettings] = None,
        session_id: Optional[str] = None,
    ):
        if isinstance(endpoint, str):
            endpoint = get_endpoint(endpoint)
        settings = settings or StreamSettings()

        self.endpoint = endpoint
        self.session = Session(id=session_id or uuid.uuid4().hex[:12], endpoint=endpoint.name)
        self.decoder = EventDecoder(frame_prefix=settings.frame_prefix)
        self.router = EventRouter(
            self.session,
            endpoint.unit_kinds,
            on_progress=self._on_progress,
            on_complete=self._on_complete,
            on_error=self._on_error,
            total_field=endpoint.total_field,
            classifier=endpoint.classifier,
        )
        self._user_progress = on_progress
        self._user_complete = on_complete
        self._user_error = on_error
        self._source: Optional[Iterable[Chunk]] = None
        # Reentrant: callbacks run under the lock and may call back into the controller.
        self._lock = threading.RLock()

    # --- Read access ---

    @property
    def id(self) -> str:
        return self.session.id

    @property
    def state(self) -> SessionState:
        return self.session.state

    @property
    def suggestions(self) -> List[Suggestion]:
        return self.session.suggestions

    # --- Lifecycle ---

    def open(self, source: Optional[Iterable[Chunk]] = None) -> "SessionController":
        with self._lock:
            if self.session.state != SessionState.IDLE:
                raise InvalidTransitionError(
                    f"Session {self.id} cannot open from state {self.session.state.value}"
                )
            self._source = source
            self.session.state = SessionState.STREAMING
            logger.info(f"Session {self.id} streaming from '{self.endpoint.name}'")
        return self

    def feed(self, chunk: Chunk) -> None:
        """Push mode: decodes ``chunk`` and routes every completed frame."""
        with self._lock:
            if self.session.state == SessionState.IDLE:
                self.open()
            if self.session.state.is_terminal:
                return
            self._route(self.decoder.feed(chunk))

    def finish(self) -> None:
        """End of stream. A session still streaming at this point was cut short."""
        with self._lock:
            if self.session.state.is_terminal:
                return
            self._route(self.decoder.flush())
            if self.session.state == SessionState.STREAMING:
                logger.error(f"Session {self.id} ended without a completed or error frame")
                self._fail(StreamInterruptedError("Stream ended before the session completed"))

    def run(self, source: Optional[Iterable[Chunk]] = None) -> Session:
        """Pull mode: pumps the attached (or given) source to the end."""
        with self._lock:
            if self.session.state == SessionState.IDLE:
                self.open(source)
            elif source is not None:
                self._source = source
            source = self._source
        if source is None:
            raise ValueError(f"Session {self.id} has no chunk source to run")

        try:
            for chunk in source:
                if self.session.state.is_terminal:
                    break
                self.feed(chunk)
        except (TransportError, OSError) as e:
            with self._lock:
                if self.session.state.is_terminal:
                    logger.debug(f"Session {self.id}: ignoring transport error after {self.session.state.value}: {e}")
                else:
                    if not isinstance(e, TransportError):
                        e = TransportError(str(e))
                    logger.error(f"Session {self.id} transport failure: {e}")
                    self._fail(e)
            return self.session

        self.finish()
        return self.session

    def cancel(self) -> bool:
        """Stops the session. Returns False when it had already finished."""
        with self._lock:
            if self.session.state.is_terminal:
                return False
            self.session.state = SessionState.CANCELLED
            logger.info(f"Session {self.id} cancelled with {len(self.session.aggregator)} suggestions")
            self._release()
            return True

    # --- Internals ---

    def _route(self, payloads) -> None:
        for payload in payloads:
            if self.session.state != SessionState.STREAMING:
                break
            self.router.route(payload)

    def _release(self) -> None:
        source, self._source = self._source, None
        close = getattr(source, "close", None)
        if close is not None:
            close()

    def _fail(self, error: Exception) -> None:
        self.router.finished = True
        self._on_error(error)

    def _on_progress(self, update: ProgressUpdate) -> None:
        if self.session.state == SessionState.STREAMING and self._user_progress:
            self._user_progress(update)

    def _on_complete(self, summary: CompletionSummary) -> None:
        if self.session.state != SessionState.STREAMING:
            return
        self.session.state = SessionState.COMPLETED
        self._release()
        if self._user_complete:
            self._user_complete(summary)

    def _on_error(self, error: Exception) -> None:
        if self.session.state != SessionState.STREAMING:
            return
        self.session.state = SessionState.ERRORED
        self.session.error = error
        self._release()
        if self._user_error:
            self._user_error(error)
