"""
Matching strategies used by TextLocator.

Each strategy answers one question: "where does this snippet live in this document?"
A strategy either returns a MatchResult for a single location or None. Strategies
never modify the document; PatchApplier does that once a location is known.
"""

import re
from typing import Iterable, List, Optional, Sequence, Tuple

import structlog
from lxml import etree

from lexpatch.models import InlineWrap, MatchResult
from lexpatch.utils.html import iter_text_leaves, parse_content

logger = structlog.get_logger(__name__)

HYPHEN = "-"
EN_DASH = "–"
EM_DASH = "—"
DASHES = (HYPHEN, EN_DASH, EM_DASH)

INLINE_TAGS = ("strong", "b", "em", "i", "u")

# en/em dash -> (named, decimal, hex) entity spellings
DASH_ENTITIES = {
    EN_DASH: ("&ndash;", "&#8211;", "&#x2013;"),
    EM_DASH: ("&mdash;", "&#8212;", "&#x2014;"),
}

_DASH_CHAR_RE = re.compile(r"[-–—]")
_SPACED_DASH_RE = re.compile(r"\s*[-–—]\s*")
_WHITESPACE_RE = re.compile(r"\s+")
_WORD_RE = re.compile(r"\w+")
_ENTITY_RE = re.compile(r"&(?:ndash|mdash|#8211|#8212|#x2013|#x2014);", re.IGNORECASE)
_ENTITY_CHARS = {
    "&ndash;": EN_DASH,
    "&#8211;": EN_DASH,
    "&#x2013;": EN_DASH,
    "&mdash;": EM_DASH,
    "&#8212;": EM_DASH,
    "&#x2014;": EM_DASH,
}

# Snippets longer than this skip per-word markup variants (quadratic in words).
MAX_WRAP_WORDS = 64


class MatchStrategy:
    """Base class. Subclasses set ``name`` and implement ``find``."""

    name = ""

    def find(self, document: str, snippet: str) -> Optional[MatchResult]:
        raise NotImplementedError

    def _hit(self, start: int, end: int, document: str, **extra) -> MatchResult:
        return MatchResult(
            strategy=self.name,
            start=start,
            end=end,
            matched_text=document[start:end],
            **extra,
        )

    def _find_first_variant(self, document: str, variants: Iterable[str]) -> Optional[MatchResult]:
        for variant in variants:
            idx = document.find(variant)
            if idx != -1:
                logger.debug(f"{self.name}: matched variant '{variant[:50]}'")
                return self._hit(idx, idx + len(variant), document)
        return None


def _dedupe(candidates: Iterable[str], exclude: str) -> List[str]:
    seen = {exclude}
    unique = []
    for candidate in candidates:
        if candidate and candidate not in seen:
            seen.add(candidate)
            unique.append(candidate)
    return unique


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def make_flexible_whitespace_regex(snippet: str) -> str:
    """
    Escapes the literal parts of ``snippet`` and turns every whitespace run into ``\\s+``.
    """
    parts = []
    last_idx = 0
    for match in _WHITESPACE_RE.finditer(snippet):
        literal = snippet[last_idx : match.start()]
        if literal:
            parts.append(re.escape(literal))
        parts.append(r"\s+")
        last_idx = match.end()
    remaining = snippet[last_idx:]
    if remaining:
        parts.append(re.escape(remaining))
    return "".join(parts)


# ---------------------------------------------------------------------------
# 1. Exact
# ---------------------------------------------------------------------------


class ExactMatch(MatchStrategy):
    name = "exact"

    def find(self, document, snippet):
        idx = document.find(snippet)
        if idx == -1:
            return None
        return self._hit(idx, idx + len(snippet), document)


# ---------------------------------------------------------------------------
# 2. Whitespace-normalised
# ---------------------------------------------------------------------------


class WhitespaceNormalizedMatch(MatchStrategy):
    name = "whitespace"

    def find(self, document, snippet):
        normalized_snippet = normalize_whitespace(snippet)
        if not normalized_snippet:
            return None
        if normalized_snippet not in normalize_whitespace(document):
            return None

        # The comparison says it is there; locate the real (un-normalised) text.
        try:
            match = re.search(make_flexible_whitespace_regex(snippet.strip()), document)
        except re.error:
            return None
        if not match:
            return None
        return self._hit(match.start(), match.end(), document)


# ---------------------------------------------------------------------------
# 3. Dash variants
# ---------------------------------------------------------------------------


def dash_variants(snippet: str) -> List[str]:
    """
    Hyphen / en dash / em dash substituted for each other:
    first keeping the original spacing, then tight ('a–b'), then spaced ('a – b').
    """
    if not _DASH_CHAR_RE.search(snippet):
        return []

    candidates = []
    for dash in DASHES:
        candidates.append(_DASH_CHAR_RE.sub(lambda _m, d=dash: d, snippet))
    for dash in DASHES:
        candidates.append(_SPACED_DASH_RE.sub(lambda _m, d=dash: d, snippet))
        candidates.append(_SPACED_DASH_RE.sub(lambda _m, d=dash: f" {d} ", snippet))
    return _dedupe(candidates, exclude=snippet)


class DashVariantMatch(MatchStrategy):
    name = "dash_variant"

    def find(self, document, snippet):
        return self._find_first_variant(document, dash_variants(snippet))


# ---------------------------------------------------------------------------
# 4. Inline markup variants
# ---------------------------------------------------------------------------


def _word_spans(text: str) -> List[Tuple[int, int]]:
    return [(m.start(), m.end()) for m in _WORD_RE.finditer(text)]


def _wrap(text: str, start: int, end: int, tag: str) -> str:
    return f"{text[:start]}<{tag}>{text[start:end]}</{tag}>{text[end:]}"


def inline_markup_variants(snippet: str) -> List[Tuple[str, InlineWrap]]:
    """
    Candidate spellings of ``snippet`` with emphasis tags the model may have stripped.
    Order per tag: one wrapped word, one wrapped adjacent pair, every pair, every word.
    """
    spans = _word_spans(snippet)
    if not spans:
        return []

    candidates: List[Tuple[str, InlineWrap]] = []
    per_word = len(spans) <= MAX_WRAP_WORDS

    for tag in INLINE_TAGS:
        if per_word:
            for start, end in spans:
                word = snippet[start:end]
                candidates.append((_wrap(snippet, start, end, tag), InlineWrap(tag, "word", (word,))))
            for (start, first_end), (second_start, end) in zip(spans, spans[1:]):
                gap = snippet[first_end:second_start]
                if not gap or not gap.isspace():
                    continue
                pair = (snippet[start:first_end], snippet[second_start:end])
                candidates.append((_wrap(snippet, start, end, tag), InlineWrap(tag, "pair", pair)))

        candidates.append((wrap_all_pairs(snippet, tag), InlineWrap(tag, "all_pairs")))
        candidates.append((wrap_all_words(snippet, tag), InlineWrap(tag, "all_words")))

    seen = {snippet}
    unique = []
    for text, wrap in candidates:
        if text not in seen:
            seen.add(text)
            unique.append((text, wrap))
    return unique


def wrap_all_pairs(text: str, tag: str) -> str:
    return re.sub(r"(\w+)\s+(\w+)", lambda m: f"<{tag}>{m.group(1)} {m.group(2)}</{tag}>", text)


def wrap_all_words(text: str, tag: str) -> str:
    return _WORD_RE.sub(lambda m: f"<{tag}>{m.group(0)}</{tag}>", text)


def apply_inline_wrap(replacement: str, wrap: InlineWrap) -> str:
    """
    Mirrors the wrapping that located the snippet onto the replacement text.
    Targeted wraps apply only when the wrapped word(s) survive in the replacement.
    """
    if wrap.mode == "all_pairs":
        return wrap_all_pairs(replacement, wrap.tag)
    if wrap.mode == "all_words":
        return wrap_all_words(replacement, wrap.tag)

    pattern = r"\s+".join(re.escape(word) for word in wrap.words)
    match = re.search(rf"(?<!\w){pattern}(?!\w)", replacement)
    if not match:
        return replacement
    return _wrap(replacement, match.start(), match.end(), wrap.tag)


class InlineMarkupMatch(MatchStrategy):
    name = "inline_markup"

    def find(self, document, snippet):
        if "<" not in document:
            return None
        for variant, wrap in inline_markup_variants(snippet):
            idx = document.find(variant)
            if idx != -1:
                logger.debug(f"{self.name}: matched <{wrap.tag}> {wrap.mode} variant")
                return self._hit(idx, idx + len(variant), document, wrap=wrap)
        return None


# ---------------------------------------------------------------------------
# 5. Case-insensitive
# ---------------------------------------------------------------------------


class CaseInsensitiveMatch(MatchStrategy):
    name = "case_insensitive"

    def find(self, document, snippet):
        match = re.search(re.escape(snippet), document, re.IGNORECASE)
        if not match:
            return None
        return self._hit(match.start(), match.end(), document)


# ---------------------------------------------------------------------------
# 6. Markup entity variants
# ---------------------------------------------------------------------------


def entity_variants(snippet: str) -> List[str]:
    candidates = []
    if any(dash in snippet for dash in DASH_ENTITIES):
        for form in range(3):
            variant = snippet
            for char, spellings in DASH_ENTITIES.items():
                variant = variant.replace(char, spellings[form])
            candidates.append(variant)
    if _ENTITY_RE.search(snippet):
        candidates.append(_ENTITY_RE.sub(lambda m: _ENTITY_CHARS[m.group(0).lower()], snippet))
    return _dedupe(candidates, exclude=snippet)


class EntityVariantMatch(MatchStrategy):
    name = "entity_variant"

    def find(self, document, snippet):
        return self._find_first_variant(document, entity_variants(snippet))


# ---------------------------------------------------------------------------
# 7. Word boundary
# ---------------------------------------------------------------------------


def make_word_sequence_regex(snippet: str) -> Optional[str]:
    words = snippet.split()
    if len(words) < 2:
        return None
    pattern = r"\s+".join(re.escape(word) for word in words)
    if _WORD_RE.match(words[0][0]):
        pattern = r"\b" + pattern
    if _WORD_RE.match(words[-1][-1]):
        pattern = pattern + r"\b"
    return pattern


class WordBoundaryMatch(MatchStrategy):
    name = "word_boundary"

    def find(self, document, snippet):
        pattern = make_word_sequence_regex(snippet)
        if pattern is None:
            return None
        try:
            match = re.search(pattern, document, re.IGNORECASE)
        except re.error:
            return None
        if not match:
            return None
        return self._hit(match.start(), match.end(), document)


# ---------------------------------------------------------------------------
# 8. Structure-aware tree walk
# ---------------------------------------------------------------------------


class TreeWalkMatch(MatchStrategy):
    """
    Searches decoded text leaves instead of raw markup, so entity-escaped text
    ('Smith &amp; Jones') and text split from its markup still resolve.
    Offsets in the result are relative to the leaf text.
    """

    name = "tree_walk"

    def find(self, document, snippet):
        if not document.strip():
            return None
        try:
            parsed = parse_content(document)
        except (etree.ParserError, ValueError) as e:
            logger.debug(f"{self.name}: document could not be parsed: {e}")
            return None

        for leaf in iter_text_leaves(parsed.root):
            idx = leaf.text.find(snippet)
            if idx != -1:
                return MatchResult(
                    strategy=self.name,
                    start=idx,
                    end=idx + len(snippet),
                    matched_text=snippet,
                    path=leaf.path,
                    slot=leaf.slot,
                )
        return None


DEFAULT_STRATEGIES: Sequence[MatchStrategy] = (
    ExactMatch(),
    WhitespaceNormalizedMatch(),
    DashVariantMatch(),
    InlineMarkupMatch(),
    CaseInsensitiveMatch(),
    EntityVariantMatch(),
    WordBoundaryMatch(),
    TreeWalkMatch(),
)
