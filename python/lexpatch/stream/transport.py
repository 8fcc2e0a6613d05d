"""
HTTP transport for streaming sessions.

Requests are built from an Endpoint plus StreamSettings; the response body is
exposed as a closable iterable of raw byte chunks for the EventDecoder.
"""

import string
from typing import Any, Dict, Iterator, Optional

import httpx
import structlog

from lexpatch.config import StreamSettings
from lexpatch.errors import TransportError
from lexpatch.stream.endpoints import Endpoint

logger = structlog.get_logger(__name__)


def _path_fields(path: str):
    return [name for _, name, _, _ in string.Formatter().parse(path) if name]


def build_request(
    settings: StreamSettings,
    endpoint: Endpoint,
    payload: Optional[Dict[str, Any]] = None,
    path_params: Optional[Dict[str, Any]] = None,
) -> httpx.Request:
    """
    Builds the upstream request. Path parameters missing from ``path_params``
    are taken out of ``payload`` (e.g. ``contract_id``).
    """
    params = dict(path_params or {})
    body = dict(payload or {})
    for name in _path_fields(endpoint.path):
        if name not in params and name in body:
            params[name] = body.pop(name)

    url = settings.base_url.rstrip("/") + endpoint.format_path(**params)
    headers = {"Accept": "text/event-stream", **settings.auth_headers()}

    if endpoint.method == "GET":
        return httpx.Request("GET", url, headers=headers)
    return httpx.Request(endpoint.method, url, headers=headers, json=body)


def create_client(settings: StreamSettings, **kwargs: Any) -> httpx.Client:
    timeout = httpx.Timeout(None, connect=settings.connect_timeout, read=settings.read_timeout)
    return httpx.Client(timeout=timeout, **kwargs)


class HttpEventStream:
    """
    Sends ``request`` on first iteration and yields the response body in chunks.
    ``close()`` releases the connection and may be called from another thread.
    """

    def __init__(self, client: httpx.Client, request: httpx.Request, owns_client: bool = False):
        self.client = client
        self.request = request
        self.owns_client = owns_client
        self._response: Optional[httpx.Response] = None
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        response = self._open()
        try:
            for chunk in response.iter_bytes():
                yield chunk
        except (httpx.HTTPError, httpx.StreamError, OSError) as e:
            raise TransportError(f"Stream from {self.request.url} dropped: {e}") from e
        finally:
            self.close()

    def _open(self) -> httpx.Response:
        if self._closed:
            raise TransportError(f"Stream to {self.request.url} was closed before it opened")
        try:
            response = self.client.send(self.request, stream=True)
        except (httpx.HTTPError, OSError) as e:
            self.close()
            logger.error(f"Connection to {self.request.url} failed: {e}")
            raise TransportError(f"Could not connect to {self.request.url}: {e}") from e

        self._response = response
        if response.status_code >= 400:
            try:
                detail = response.read().decode("utf-8", errors="replace")
            except (httpx.HTTPError, httpx.StreamError):
                detail = ""
            self.close()
            logger.error(f"Upstream returned {response.status_code} for {self.request.url}")
            raise TransportError(
                f"{self.request.method} {self.request.url} failed: {response.status_code} {detail[:200]}".rstrip(),
                status_code=response.status_code,
            )
        return response

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._response is not None:
            self._response.close()
        if self.owns_client:
            self.client.close()
