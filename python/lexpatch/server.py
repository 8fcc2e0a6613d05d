import logging
import sys
from pathlib import Path
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from lexpatch.api import apply_all, suggestions_from_edits
from lexpatch.diff import track_changes
from lexpatch.models import EditRequest, NoMatch
from lexpatch.patch.locator import locate

# --- LOGGING CONFIGURATION ---
# MCP communicates over stdio. All logs must go to stderr.
logging.basicConfig(stream=sys.stderr, level=logging.INFO, force=True)

structlog.configure(
    processors=[
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.JSONRenderer(),
    ],
    logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
)

mcp = FastMCP("Lexpatch Suggestion Service")


def _read_text(path: str) -> str:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"File not found: {path}")
    return p.read_text(encoding="utf-8")


@mcp.tool()
def locate_in_html(file_path: str, snippet: str) -> str:
    """
    Finds where a snippet lives in an HTML document.

    The snippet may differ from the document in whitespace, dash style, case,
    inline emphasis tags or HTML entities; the report names the strategy that found it.

    Args:
        file_path: Absolute path to the HTML file.
        snippet: Text to look for, as quoted by the reviewer.
    """
    try:
        document = _read_text(file_path)
        match = locate(document, snippet)
        if isinstance(match, NoMatch):
            return f"Not found ({match.reason}). Tried: {', '.join(match.tried) or 'nothing'}"
        if match.is_structural:
            return f"Found via {match.strategy} in text node {list(match.path)}/{match.slot}: '{match.matched_text}'"
        return f"Found via {match.strategy} at [{match.start}:{match.end}]: '{match.matched_text}'"
    except Exception as e:
        return f"Error locating text: {str(e)}"


@mcp.tool()
def apply_suggestions_to_html(
    file_path: str,
    edits: List[EditRequest],
    output_path: Optional[str] = None,
) -> str:
    """
    Applies a list of text replacements to an HTML document, in order.

    Each edit replaces exactly one occurrence of `original` with `replacement`.
    Edits that cannot be located are skipped and reported; the rest still apply.

    Args:
        file_path: Absolute path to the source HTML file.
        edits: List of edits. Each edit transforms `original` -> `replacement`.
        output_path: Optional. If not provided, writes '<name>_patched.html' beside the source.
    """
    try:
        document = _read_text(file_path)
        suggestions = suggestions_from_edits(edits)
        content, results = apply_all(document, suggestions)

        if not output_path:
            p = Path(file_path)
            output_path = str(p.parent / f"{p.stem}_patched{p.suffix}")
        Path(output_path).write_text(content, encoding="utf-8")

        applied = sum(1 for r in results if r.success)
        lines = [f"Applied {applied} edits. Skipped {len(results) - applied} edits. Saved to: {output_path}"]
        for suggestion, result in zip(suggestions, results):
            if not result.success:
                lines.append(f"- skipped '{suggestion.original[:60]}': {result.reason}")
        return "\n".join(lines)

    except Exception as e:
        return f"Error applying edits: {str(e)}"


@mcp.tool()
def diff_html_files(original_path: str, modified_path: str) -> str:
    """
    Compares the visible text of two HTML documents word by word.

    Args:
        original_path: Path to the base document.
        modified_path: Path to the new document.
    """
    try:
        changes = track_changes(_read_text(original_path), _read_text(modified_path))
        if not changes:
            return "No text differences found between the documents."

        output = [f"--- {Path(original_path).name}", f"+++ {Path(modified_path).name}", ""]
        for change in changes:
            output.append(f"@@ {change.action} at {change.position} @@")
            if change.old_text:
                output.append(f"- {change.old_text}")
            if change.new_text:
                output.append(f"+ {change.new_text}")
            output.append("")
        return "\n".join(output)

    except Exception as e:
        return f"Error computing diff: {str(e)}"


def main():
    mcp.run()


if __name__ == "__main__":
    main()
