from importlib.metadata import PackageNotFoundError, version

from lexpatch.api import apply_all, apply_suggestion, cancel, open_session
from lexpatch.models import ApplyResult, MatchResult, NoMatch, Suggestion
from lexpatch.patch import PatchApplier, TextLocator
from lexpatch.stream import SessionController

try:
    __version__ = version("lexpatch")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "open_session",
    "apply_suggestion",
    "apply_all",
    "cancel",
    "ApplyResult",
    "MatchResult",
    "NoMatch",
    "Suggestion",
    "PatchApplier",
    "TextLocator",
    "SessionController",
    "__version__",
]
