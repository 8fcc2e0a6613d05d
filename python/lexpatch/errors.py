"""
Error taxonomy for the streaming and patching engine.

Transport and upstream failures are surfaced to the session's error callback.
Malformed frames and no-match results are ordinary data and never raised.
"""

from typing import Optional


class LexpatchError(Exception):
    """Base class for engine errors. ``error_code`` is stable for logging/metrics."""

    error_code = "lexpatch_error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.error_code}: {self.message}"


class TransportError(LexpatchError):
    """The connection never opened, returned an error status, or dropped mid-stream."""

    error_code = "transport_failed"

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StreamInterruptedError(TransportError):
    """The feed ended before a completed/error frame arrived."""

    error_code = "stream_interrupted"


class UpstreamError(LexpatchError):
    """The upstream service reported a failure with a ``status: error`` frame."""

    error_code = "upstream_failed"


class StaleMatchError(LexpatchError):
    """A MatchResult was applied to a document it was not located in."""

    error_code = "stale_match"


class InvalidTransitionError(LexpatchError):
    error_code = "invalid_transition"
