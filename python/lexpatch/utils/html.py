"""
Low-level utilities for reading and rewriting editor HTML with lxml.
Editor content is usually a fragment (the editor's innerHTML); full documents are also accepted.
"""

import re
from typing import Iterator, NamedTuple, Optional, Tuple

import structlog
from lxml import etree
from lxml import html as lxml_html

logger = structlog.get_logger(__name__)

_WRAPPER_TAG = "div"
_SKIP_TEXT_TAGS = frozenset({"script", "style"})
_BREAKING_TAGS = ("br", "p", "div", "li", "tr", "td", "th", "h1", "h2", "h3", "h4", "h5", "h6")
_DOCUMENT_RE = re.compile(r"^\s*(<!doctype[^>]*>\s*)?<html[\s>]", re.IGNORECASE)
_WHITESPACE_RE = re.compile(r"\s+")


# --- Types ---
class TextLeaf(NamedTuple):
    path: Tuple[int, ...]  # child indices from the root element
    slot: str  # 'text' or 'tail'
    text: str


class ParsedContent(NamedTuple):
    root: etree._Element
    is_document: bool
    doctype: str = ""


def parse_content(content: str) -> ParsedContent:
    """
    Parses editor content into an lxml tree.
    Fragments are wrapped in a synthetic <div> so leading text and sibling blocks share one root.
    """
    if _DOCUMENT_RE.match(content):
        root = lxml_html.document_fromstring(content)
        doctype = root.getroottree().docinfo.doctype or ""
        return ParsedContent(root=root, is_document=True, doctype=doctype)

    root = lxml_html.fragment_fromstring(content, create_parent=_WRAPPER_TAG)
    return ParsedContent(root=root, is_document=False)


def serialize_content(parsed: ParsedContent) -> str:
    markup = lxml_html.tostring(parsed.root, encoding="unicode", method="html")
    if parsed.is_document:
        if parsed.doctype:
            return f"{parsed.doctype}\n{markup}"
        return markup

    # Strip the synthetic wrapper: '<div>' ... '</div>'
    open_tag = f"<{_WRAPPER_TAG}>"
    close_tag = f"</{_WRAPPER_TAG}>"
    if markup.startswith(open_tag) and markup.endswith(close_tag):
        return markup[len(open_tag) : -len(close_tag)]
    # Empty wrapper serialises as '<div></div>' too; anything else is unexpected.
    logger.warning("Unexpected wrapper serialisation, returning markup as-is")
    return markup


def _is_element(node) -> bool:
    # Comments and processing instructions carry a callable tag.
    return isinstance(node.tag, str)


def iter_text_leaves(root: etree._Element) -> Iterator[TextLeaf]:
    """
    Yields every text-bearing leaf in document order.
    lxml stores contiguous character data in a single .text or .tail, so one leaf
    is one uninterrupted run of text between tags.
    """
    yield from _iter_leaves(root, ())


def _iter_leaves(element, path: Tuple[int, ...]) -> Iterator[TextLeaf]:
    if element.text and element.tag not in _SKIP_TEXT_TAGS:
        yield TextLeaf(path=path, slot="text", text=element.text)

    for index, child in enumerate(element):
        child_path = path + (index,)
        if _is_element(child):
            yield from _iter_leaves(child, child_path)
        if child.tail:
            yield TextLeaf(path=child_path, slot="tail", text=child.tail)


def resolve_path(root: etree._Element, path: Tuple[int, ...]) -> Optional[etree._Element]:
    node = root
    for index in path:
        if index >= len(node):
            return None
        node = node[index]
    return node


def get_leaf_text(root: etree._Element, path: Tuple[int, ...], slot: str) -> Optional[str]:
    node = resolve_path(root, path)
    if node is None:
        return None
    return node.text if slot == "text" else node.tail


def set_leaf_text(root: etree._Element, path: Tuple[int, ...], slot: str, text: str) -> None:
    node = resolve_path(root, path)
    if node is None:
        raise ValueError(f"No node at path {path}")
    if slot == "text":
        node.text = text
    else:
        node.tail = text


def extract_clean_text(content: str) -> str:
    """
    Plain text of the content with whitespace collapsed, as the editor shows it.
    Literal '\\n' sequences (escaped newlines from the API) count as line breaks.
    """
    if not content:
        return ""
    processed = content.replace("\\n", "<br>")
    try:
        parsed = parse_content(processed)
    except (etree.ParserError, ValueError) as e:
        logger.warning(f"Falling back to raw text, content could not be parsed: {e}")
        return _WHITESPACE_RE.sub(" ", content).strip()

    # Line breaks and block boundaries carry no text; keep the words on either side apart.
    for element in parsed.root.iter(*_BREAKING_TAGS):
        element.tail = " " + (element.tail or "")

    text = "".join(leaf.text for leaf in iter_text_leaves(parsed.root))
    return _WHITESPACE_RE.sub(" ", text).strip()


def normalize_for_comparison(content: str) -> str:
    """Lower-cased, punctuation-free clean text for loose equality checks."""
    text = extract_clean_text(content).lower()
    text = re.sub(r"[^\w\s]", "", text)
    return _WHITESPACE_RE.sub(" ", text).strip()
