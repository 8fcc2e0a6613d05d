"""
Turns an arbitrarily chunked streaming response into decoded frame payloads.

Upstream frames are single lines of the form ``data: {...json...}``. Chunks may
split a frame (or a multi-byte UTF-8 character) anywhere; the decoder keeps the
trailing partial line until the rest of it arrives.
"""

import codecs
import json
from typing import Any, Dict, Iterable, Iterator, List, Union

import structlog

from lexpatch.config import DEFAULT_FRAME_PREFIX

logger = structlog.get_logger(__name__)

Chunk = Union[bytes, bytearray, str]


class EventDecoder:
    def __init__(self, frame_prefix: str = DEFAULT_FRAME_PREFIX):
        self.frame_prefix = frame_prefix
        self._buffer = ""
        self._utf8 = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def feed(self, chunk: Chunk) -> List[Dict[str, Any]]:
        """Adds a chunk and returns every payload completed by it, in order."""
        if isinstance(chunk, (bytes, bytearray)):
            chunk = self._utf8.decode(bytes(chunk))
        if not chunk:
            return []

        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        return self._decode_lines(lines)

    def flush(self) -> List[Dict[str, Any]]:
        """End of stream: decodes whatever is left in the buffer as a final line."""
        self._buffer += self._utf8.decode(b"", final=True)
        remaining, self._buffer = self._buffer, ""
        if not remaining:
            return []
        return self._decode_lines([remaining])

    def iter_events(self, source: Iterable[Chunk]) -> Iterator[Dict[str, Any]]:
        for chunk in source:
            yield from self.feed(chunk)
        yield from self.flush()

    def _decode_lines(self, lines: List[str]) -> List[Dict[str, Any]]:
        payloads = []
        for line in lines:
            payload = self._decode_line(line)
            if payload is not None:
                payloads.append(payload)
        return payloads

    def _decode_line(self, line: str):
        if line.endswith("\r"):
            line = line[:-1]
        if not line.startswith(self.frame_prefix):
            return None

        raw = line[len(self.frame_prefix) :]
        try:
            payload = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"Skipping malformed frame: {e}: '{raw[:80]}'")
            return None

        if not isinstance(payload, dict):
            logger.warning(f"Skipping frame that is not a JSON object: '{raw[:80]}'")
            return None
        return payload
