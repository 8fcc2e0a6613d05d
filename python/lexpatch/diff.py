import re
from typing import Dict, List, Optional, Tuple

import structlog
from diff_match_patch import diff_match_patch
from pydantic import BaseModel, Field

from lexpatch.utils.html import extract_clean_text

logger = structlog.get_logger(__name__)


class TextChange(BaseModel):
    """One edit between two versions of a document's visible text."""

    action: str = Field(..., description="'insert', 'delete' or 'replace'.")
    old_text: str = ""
    new_text: str = ""
    position: int = Field(..., ge=0, description="Offset in the old clean text.")
    context: Optional[str] = Field(None, description="Up to 50 characters of preceding text, for inserts.")


def track_changes(old_html: str, new_html: str) -> List[TextChange]:
    """
    Compares the visible text of two document versions.
    Uses word-level diffing so changes read as whole words, not characters.
    """
    return diff_text(extract_clean_text(old_html), extract_clean_text(new_html))


def diff_text(old_text: str, new_text: str) -> List[TextChange]:
    dmp = diff_match_patch()

    chars1, chars2, token_array = _words_to_chars(old_text, new_text)
    diffs = dmp.diff_main(chars1, chars2, False)
    dmp.diff_cleanupSemantic(diffs)
    dmp.diff_charsToLines(diffs, token_array)

    changes = []
    position = 0
    pending_delete = None  # (position, text)

    for op, text in diffs:
        if op == 0:
            if pending_delete:
                changes.append(_deletion(*pending_delete))
                pending_delete = None
            position += len(text)

        elif op == -1:
            # Held back: a delete followed by an insert is one replacement.
            pending_delete = (position, text)
            position += len(text)

        elif op == 1:
            if pending_delete:
                idx, deleted = pending_delete
                changes.append(TextChange(action="replace", old_text=deleted, new_text=text, position=idx))
                pending_delete = None
            else:
                context = old_text[max(0, position - 50) : position] or None
                changes.append(TextChange(action="insert", new_text=text, position=position, context=context))

    if pending_delete:
        changes.append(_deletion(*pending_delete))

    logger.debug(f"Tracked {len(changes)} changes")
    return changes


def _deletion(position: int, text: str) -> TextChange:
    return TextChange(action="delete", old_text=text, position=position)


def _words_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits text into words/tokens and encodes each distinct token as one Unicode character.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}
    split_pattern = r"(\s+|\w+|[^\w\s])"

    def encode_text(text: str) -> str:
        tokens = [t for t in re.split(split_pattern, text) if t]
        encoded_chars = []
        for token in tokens:
            if token not in token_hash:
                token_hash[token] = len(token_array)
                token_array.append(token)
            encoded_chars.append(chr(token_hash[token]))
        return "".join(encoded_chars)

    return encode_text(text1), encode_text(text2), token_array
