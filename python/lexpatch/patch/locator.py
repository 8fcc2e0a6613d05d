from typing import Optional, Sequence, Union

import structlog

from lexpatch.models import MatchResult, NoMatch
from lexpatch.patch.strategies import DEFAULT_STRATEGIES, MatchStrategy

logger = structlog.get_logger(__name__)


class TextLocator:
    """
    Finds where a model-quoted snippet lives in editor content.

    Strategies run in priority order and the first hit wins. The cascade starts
    strict (exact substring) and loosens step by step, ending with a walk over
    the parsed text leaves. Callers may pass their own ordered strategies.
    """

    def __init__(self, strategies: Optional[Sequence[MatchStrategy]] = None):
        self.strategies = tuple(strategies) if strategies is not None else tuple(DEFAULT_STRATEGIES)

    def locate(self, document: str, snippet: str) -> Union[MatchResult, NoMatch]:
        if not snippet or not snippet.strip():
            return NoMatch(snippet=snippet or "", reason="empty_snippet")

        tried = []
        for strategy in self.strategies:
            tried.append(strategy.name)
            result = strategy.find(document, snippet)
            if result is not None:
                if strategy.name != "exact":
                    logger.debug(f"Located snippet via '{strategy.name}': '{snippet[:50]}...'")
                return result

        logger.warning(f"Snippet not found after {len(tried)} strategies: '{snippet[:50]}...'")
        return NoMatch(snippet=snippet, reason="no_match", tried=tuple(tried))


_default_locator = TextLocator()


def locate(document: str, snippet: str) -> Union[MatchResult, NoMatch]:
    return _default_locator.locate(document, snippet)
