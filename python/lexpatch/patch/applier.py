import html
from typing import Optional

import structlog

from lexpatch.errors import StaleMatchError
from lexpatch.models import MatchResult
from lexpatch.patch.strategies import apply_inline_wrap
from lexpatch.utils.html import get_leaf_text, parse_content, serialize_content, set_leaf_text

logger = structlog.get_logger(__name__)


class PatchApplier:
    """
    Performs exactly one substitution at a located position.
    Other occurrences of the same text are never touched.
    """

    def apply(self, document: str, match: MatchResult, replacement: str) -> str:
        if match.wrap is not None:
            replacement = apply_inline_wrap(replacement, match.wrap)

        if match.is_structural:
            return self._apply_to_leaf(document, match, replacement)
        return self._splice(document, match, replacement)

    def _splice(self, document: str, match: MatchResult, replacement: str) -> str:
        located = document[match.start : match.end]
        if located != match.matched_text:
            raise StaleMatchError(
                f"Text at [{match.start}:{match.end}] is '{located[:50]}', expected '{match.matched_text[:50]}'"
            )
        return document[: match.start] + replacement + document[match.end :]

    def _apply_to_leaf(self, document: str, match: MatchResult, replacement: str) -> str:
        parsed = parse_content(document)
        leaf_text = get_leaf_text(parsed.root, match.path, match.slot)
        if leaf_text is None or leaf_text[match.start : match.end] != match.matched_text:
            raise StaleMatchError(f"No text leaf at {match.path}/{match.slot} holds '{match.matched_text[:50]}'")

        # Leaf text is character data, so the replacement is escaped either way.
        new_text = leaf_text[: match.start] + replacement + leaf_text[match.end :]
        spliced = self._splice_leaf(document, match, leaf_text, new_text)
        if spliced is not None:
            return spliced

        # Reserialising normalises markup outside the leaf too (quoted attributes,
        # void tags, named entities such as &nbsp; become literal characters).
        set_leaf_text(parsed.root, match.path, match.slot, new_text)
        logger.debug(f"Replaced text in leaf {match.path}/{match.slot} by reserialising")
        return serialize_content(parsed)

    def _splice_leaf(self, document: str, match: MatchResult, leaf_text: str, new_text: str) -> Optional[str]:
        """
        Replaces the leaf in the raw markup when its escaped text occurs exactly
        once and the result parses back with the new text at the same leaf.
        """
        escaped = html.escape(leaf_text, quote=False)
        if not escaped.strip() or document.count(escaped) != 1:
            return None
        start = document.index(escaped)
        candidate = document[:start] + html.escape(new_text, quote=False) + document[start + len(escaped) :]
        if get_leaf_text(parse_content(candidate).root, match.path, match.slot) != new_text:
            return None
        logger.debug(f"Spliced text leaf {match.path}/{match.slot} into the raw markup")
        return candidate
