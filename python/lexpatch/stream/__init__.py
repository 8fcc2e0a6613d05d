from lexpatch.stream.aggregator import SuggestionAggregator
from lexpatch.stream.decoder import EventDecoder
from lexpatch.stream.endpoints import ENDPOINTS, Endpoint, get_endpoint
from lexpatch.stream.router import EventRouter, classify_event, classify_typed_event
from lexpatch.stream.session import Session, SessionController
from lexpatch.stream.transport import HttpEventStream, build_request, create_client

__all__ = [
    "ENDPOINTS",
    "Endpoint",
    "EventDecoder",
    "EventRouter",
    "HttpEventStream",
    "Session",
    "SessionController",
    "SuggestionAggregator",
    "build_request",
    "classify_event",
    "classify_typed_event",
    "create_client",
    "get_endpoint",
]
