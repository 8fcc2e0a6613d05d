from lexpatch.patch.applier import PatchApplier
from lexpatch.patch.locator import TextLocator, locate
from lexpatch.patch.strategies import DEFAULT_STRATEGIES, MatchStrategy

__all__ = ["PatchApplier", "TextLocator", "locate", "DEFAULT_STRATEGIES", "MatchStrategy"]
